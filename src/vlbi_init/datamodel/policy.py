"""policy: Data models for exclusion and weighting policies (OPT/OUT/JET files)."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TimeWindowExclusion:
    """Station or source exclusion, optionally limited to an epoch window.

    A window with start == end == 0 covers the whole session.
    """

    # fmt: off
    name: str               # Station or source name
    start: float = 0.0      # Window start (MJD), 0 = whole session
    end: float = 0.0        # Window end (MJD), 0 = whole session
    # fmt: on

    @property
    def whole_session(self) -> bool:
        """True if the exclusion is not time-bounded."""
        return self.start == 0 and self.end == 0

    def applies(self, name: str, mjd: float) -> bool:
        """Check if exclusion applies to name at epoch mjd."""
        if name.strip() != self.name.strip():
            return False
        return self.whole_session or self.start <= mjd <= self.end


@dataclass(frozen=True)
class BaselineExclusion:
    """Baseline exclusion (unordered station pair)."""

    station1: str
    station2: str

    def matches(self, name1: str, name2: str) -> bool:
        """Check if the (unordered) station pair matches this baseline."""
        return {self.station1, self.station2} == {name1.strip(), name2.strip()}


@dataclass(frozen=True)
class DownWeight:
    """Station to be down-weighted, with its weighting coefficient."""

    station: str
    coefficient: float


@dataclass(frozen=True)
class ClockBreak:
    """Clock break of a station at an epoch."""

    station: str
    mjd: float


@dataclass(frozen=True)
class OutlierEntry:
    """Outlier observation, keyed by unordered station pair and epoch."""

    station1: str
    station2: str
    mjd: float

    def matches(self, name1: str, name2: str, mjd: float, tol: float) -> bool:
        """Check pair and epoch match (tol in days)."""
        return {self.station1, self.station2} == {name1.strip(), name2.strip()} and abs(mjd - self.mjd) <= tol


@dataclass(frozen=True)
class JetExclusion:
    """Observation excluded because of its jet angle."""

    station1: str
    station2: str
    source: str
    mjd: float
    angle: float

    def matches(self, name1: str, name2: str, mjd: float, tol: float) -> bool:
        """Check pair and epoch match (tol in days)."""
        return {self.station1, self.station2} == {name1.strip(), name2.strip()} and abs(mjd - self.mjd) <= tol


@dataclass(frozen=True)
class Policy:
    """Exclusion and weighting policy for one session.

    Built once per session from the control files (or defaults), read-only afterwards.
    """

    # fmt: off
    stations: tuple = ()            # TimeWindowExclusion for stations
    sources: tuple = ()             # TimeWindowExclusion for sources
    baselines: tuple = ()           # BaselineExclusion
    downweight: tuple = ()          # DownWeight
    outliers: tuple = ()            # OutlierEntry
    jet: tuple = ()                 # JetExclusion
    no_cable_cal: tuple = ()        # Names of stations without cable calibration
    reference_clock: str = ''       # Reference clock station ('' if not set)
    clock_breaks: tuple = ()        # ClockBreak
    jet_angle_limit: float = None   # Threshold used to build the jet list
    # fmt: on

    def downweight_coefficient(self, station: str) -> float:
        """Weighting coefficient of a station, None if not down-weighted."""
        for dw in self.downweight:
            if dw.station == station.strip():
                return dw.coefficient
        return None

    def has_cable_cal(self, station: str) -> bool:
        """False if station is listed with no cable calibration."""
        return station.strip() not in self.no_cable_cal


@dataclass
class ExclusionReport:
    """Summary of what the exclusion engine removed or annotated."""

    # fmt: off
    stations: list = field(default_factory=list)        # (name, start, end) of station exclusions that removed data
    sources: list = field(default_factory=list)         # (name, start, end) of source exclusions that removed data
    baselines: list = field(default_factory=list)       # (station1, station2) excluded baselines
    outliers: list = field(default_factory=list)        # (station1, station2, mjd) removed outliers
    jet: list = field(default_factory=list)             # (station1, station2, mjd) removed by jet angle
    n_obs_station: int = 0          # Observations removed by station exclusion
    n_obs_source: int = 0           # Observations removed by source exclusion
    n_obs_baseline: int = 0         # Observations removed by baseline exclusion
    n_obs_outlier: int = 0          # Observations removed as outliers
    n_obs_jet: int = 0              # Observations removed by jet angle
    n_obs_quality: int = 0          # Observations removed by quality code
    n_obs_iono_flag: int = 0        # Observations removed by ionosphere flag
    removed_scans: int = 0          # Scans left empty and removed
    removed_antennas: list = field(default_factory=list)    # Antennas without observations, removed
    removed_sources: list = field(default_factory=list)     # Sources without scans, removed
    downweighted: dict = field(default_factory=dict)        # station -> coefficient
    # fmt: on

    @property
    def n_obs_total(self) -> int:
        """Total number of observations removed."""
        return (self.n_obs_station + self.n_obs_source + self.n_obs_baseline + self.n_obs_outlier
                + self.n_obs_jet + self.n_obs_quality + self.n_obs_iono_flag)
