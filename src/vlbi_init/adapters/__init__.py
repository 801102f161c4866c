"""adapters: Session format adapters, one per SessionFormat."""

from ..config import SessionFormat
from .base import SessionAdapter as SessionAdapter
from .ngs import NgsAdapter as NgsAdapter
from .vgosdb import VgosDbAdapter as VgosDbAdapter
from .vso import VsoAdapter as VsoAdapter

# fmt: off
ADAPTERS = {
    SessionFormat.NGS:    NgsAdapter,
    SessionFormat.VSO:    VsoAdapter,
    SessionFormat.VGOSDB: VgosDbAdapter,
}
# fmt: on


def get_adapter(data_type) -> SessionAdapter:
    """Get the adapter for a session format.

    Args:
        data_type (str or SessionFormat): Format tag, e.g. 'vgosdb'

    Returns:
        adapter (SessionAdapter): Adapter instance

    Raises:
        UnknownFormatError: if data_type is not a known format
    """
    return ADAPTERS[SessionFormat.from_tag(data_type)]()
