"""errors: Exception types raised during session initialization.

Configuration errors are fatal: they abort the session load and no partial
session is returned. Data-quality problems are never raised, they are
recovered locally and reported with a logger warning.
"""


class ConfigurationError(RuntimeError):
    """Base class for fatal configuration errors."""


class UnknownFormatError(ConfigurationError):
    """Session input format tag is not one of the supported formats."""


class WrapperNotFoundError(ConfigurationError):
    """No vgosDB wrapper file matches the requested selection."""


class TableResolutionError(ConfigurationError):
    """A logical table role has zero or several matching tables.

    Args:
        role (str): Name of the logical table role
        candidates (list): Matching table identifiers (empty if none matched)
    """

    def __init__(self, role: str, candidates: list):
        self.role = role
        self.candidates = list(candidates)
        if not self.candidates:
            msg = f'No table found for role {role!r}'
        else:
            msg = f'Ambiguous table for role {role!r}: {self.candidates}'
        super().__init__(msg)


class CrossReferenceError(ConfigurationError):
    """Cross-reference tables are inconsistent with each other."""
