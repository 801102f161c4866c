"""base: Common interface of the session format adapters."""

from ..config import InitConfig, SessionFormat
from ..datamodel.policy import Policy
from ..datamodel.session import Session
from ..io.frames import ReferenceFrames


class SessionAdapter:
    """Convert one session input format into a normalized Session.

    Subclasses set ``format`` and implement ``load``. Adapters do not apply
    exclusions; the exclusion engine runs on their output.
    """

    format: SessionFormat = None

    def load(self, path: str, config: InitConfig, frames: ReferenceFrames, policy: Policy) -> Session:
        """Load and normalize a session.

        Args:
            path (str): Input file, or vgosDB session directory
            config (InitConfig): Session configuration
            frames (ReferenceFrames): Reference frame catalogs
            policy (Policy): Session policy (cable calibration availability)

        Returns:
            session (Session): Normalized session
        """
        raise NotImplementedError

    def __repr__(self):
        return f'<{type(self).__name__} format={self.format.value}>'
