"""vlbi_init: VLBI session ingestion and normalization."""

__version__ = '0.3.0'
