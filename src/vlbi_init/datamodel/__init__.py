"""Default __init__ imports for datamodel submodule."""

from .policy import BaselineExclusion as BaselineExclusion
from .policy import ClockBreak as ClockBreak
from .policy import DownWeight as DownWeight
from .policy import ExclusionReport as ExclusionReport
from .policy import JetExclusion as JetExclusion
from .policy import OutlierEntry as OutlierEntry
from .policy import Policy as Policy
from .policy import TimeWindowExclusion as TimeWindowExclusion
from .session import Antenna as Antenna
from .session import Observation as Observation
from .session import Scan as Scan
from .session import ScanStation as ScanStation
from .session import Session as Session
from .session import Source as Source
from .session import SourceCollection as SourceCollection
