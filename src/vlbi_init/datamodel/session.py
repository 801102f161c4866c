"""session: Data models for a normalized VLBI session."""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import xarray as xp
from astropy.coordinates import EarthLocation

from ..errors import CrossReferenceError


@dataclass
class Antenna:
    """VLBI station (antenna), as referenced by integer index in scans."""

    # fmt: off
    name: str                       # Station name, e.g. WETTZELL
    x: float = np.nan               # Geocentric X (m)
    y: float = np.nan               # Geocentric Y (m)
    z: float = np.nan               # Geocentric Z (m)
    mount: str = ''                 # Mount type, e.g. AZEL
    axis_offset: float = 0.0        # Axis offset (m)
    in_trf: bool = False            # Position taken from terrestrial reference frame catalog
    downweight: float = None        # Weighting coefficient, None if not down-weighted
    cable_cal: bool = True          # False if no cable calibration is available
    # fmt: on

    @property
    def xyz(self) -> np.ndarray:
        """Geocentric position (m)."""
        return np.array((self.x, self.y, self.z))

    @property
    def geodetic(self) -> tuple:
        """Geodetic (lon, lat, height) position, in (deg, deg, m)."""
        eloc = EarthLocation.from_geocentric(self.x, self.y, self.z, unit='m')
        lon, lat, height = eloc.to_geodetic()
        return lon.to('deg').value, lat.to('deg').value, height.to('m').value


@dataclass
class Source:
    """Observed radio source (quasar) or spacecraft."""

    # fmt: off
    name: str                             # Source name (IVS name, or spacecraft id)
    ra: float = np.nan                    # Right ascension (rad)
    de: float = np.nan                    # Declination (rad)
    n_obs: int = 0                        # Number of observations in session
    n_scans: int = 0                      # Number of scans in session
    in_reference_frame: bool = False      # Included in the no-net-rotation datum
    fixed_in_estimation: bool = False     # Held fixed to catalog value in estimation
    kind: str = 'quasar'                  # 'quasar' or 'spacecraft'
    ephemeris: pd.DataFrame = None        # Spacecraft ephemeris (name, mjd, x, y, z, ...)
    # fmt: on


@dataclass
class SourceCollection:
    """Sources, partitioned into natural (quasar) and artificial (spacecraft) sources."""

    quasars: list = field(default_factory=list)
    spacecraft: list = field(default_factory=list)

    def __len__(self):
        return len(self.quasars) + len(self.spacecraft)

    def by_obs_type(self, obs_type: str) -> list:
        """Return source list matching a scan obs_type ('q' or 's')."""
        return self.spacecraft if obs_type == 's' else self.quasars


@dataclass
class ScanStation:
    """Per-station sub-record of a scan.

    Met quantities are None if unavailable or invalid.
    """

    # fmt: off
    antenna_index: int              # Index into Session.antennas
    temp: float = None              # Temperature (deg C)
    pres: float = None              # Pressure (hPa)
    e: float = None                 # Water vapour partial pressure (hPa)
    cab: float = 0.0                # Cable calibration (ns)
    az: float = None                # Azimuth (rad), computed downstream
    zd: float = None                # Zenith distance (rad), computed downstream
    zdry: float = None              # Zenith hydrostatic delay, computed downstream
    zwet: float = None              # Zenith wet delay, computed downstream
    axkt: float = None              # Axis offset correction, computed downstream
    therm: float = None             # Thermal deformation, computed downstream
    pantd: float = None             # Antenna deformation, computed downstream
    # fmt: on


@dataclass
class Observation:
    """A single baseline delay observation."""

    # fmt: off
    i1: int                         # Antenna index of station 1
    i2: int                         # Antenna index of station 2
    delay: float                    # Group delay, cable cal and ionosphere applied (s)
    sigma: float                    # Delay sigma incl. ionosphere sigma (s)
    delion: float = 0.0             # Ionospheric delay (ns)
    sgdion: float = 0.0             # Ionospheric delay sigma (ns)
    q_code: int = 0                 # Delay quality / edit flag
    q_code_ion: int = 0             # Ionosphere correction flag
    # fmt: on


@dataclass
class Scan:
    """One observing epoch of one source."""

    # fmt: off
    mjd: float                      # Epoch (MJD, UTC)
    tim: tuple                      # (year, month, day, hour, minute, second, doy)
    source_index: int               # Index into sources.quasars ('q') or sources.spacecraft ('s')
    stations: list = field(default_factory=list)        # ScanStation records
    observations: list = field(default_factory=list)    # Observation records
    obs_type: str = 'q'             # 'q' quasar, 's' spacecraft
    # fmt: on

    @property
    def nobs(self) -> int:
        """Number of observations in scan."""
        return len(self.observations)

    @property
    def station_indices(self) -> list:
        """Antenna indices of participating stations."""
        return [s.antenna_index for s in self.stations]

    def station(self, antenna_index: int) -> ScanStation:
        """Get the sub-record of a participating station by antenna index."""
        for s in self.stations:
            if s.antenna_index == antenna_index:
                return s
        raise KeyError(f'Antenna {antenna_index} does not participate in scan at {self.mjd}')


@dataclass
class Session:
    """Normalized VLBI session: antennas, sources and scans."""

    # fmt: off
    name: str                       # Session name
    data_type: str                  # Input format tag the session was read from
    antennas: list                  # Antenna records
    sources: SourceCollection       # Quasar and spacecraft sources
    scans: list                     # Scan records, epoch ordered
    parameters: dict = field(default_factory=dict)  # Session-wide settings (clock reference, breaks...)
    provenance: dict = field(default_factory=dict)  # Input files, software versions
    # fmt: on

    @property
    def n_obs(self) -> int:
        """Total number of observations."""
        return sum(s.nobs for s in self.scans)

    @property
    def antenna_names(self) -> list:
        """Antenna names, in index order."""
        return [a.name for a in self.antennas]


def check_session(session: Session):
    """Check the structural invariants of a session.

    Checks every observation references a station present in its scan, and
    that scan source indexes point into the matching source list.

    Args:
        session (Session): Session to check

    Raises:
        CrossReferenceError: if an invariant is violated
    """
    n_ant = len(session.antennas)
    for ii, scan in enumerate(session.scans):
        stations = set(scan.station_indices)
        if len(stations) != len(scan.stations):
            raise CrossReferenceError(f'Scan {ii}: duplicate station records')
        if any(s < 0 or s >= n_ant for s in stations):
            raise CrossReferenceError(f'Scan {ii}: station index out of range')
        for obs in scan.observations:
            if obs.i1 not in stations or obs.i2 not in stations:
                raise CrossReferenceError(
                    f'Scan {ii}: observation ({obs.i1}, {obs.i2}) references station not in scan'
                )
        n_src = len(session.sources.by_obs_type(scan.obs_type))
        if not 0 <= scan.source_index < n_src:
            raise CrossReferenceError(f'Scan {ii}: source index {scan.source_index} out of range')


def count_source_observations(session: Session):
    """Update Source.n_obs and Source.n_scans from the scan list (in place)."""
    for sources in (session.sources.quasars, session.sources.spacecraft):
        for src in sources:
            src.n_obs = 0
            src.n_scans = 0
    for scan in session.scans:
        src = session.sources.by_obs_type(scan.obs_type)[scan.source_index]
        src.n_scans += 1
        src.n_obs += scan.nobs


def session_to_dataframe(session: Session) -> pd.DataFrame:
    """Flatten the observations of a session into a pandas DataFrame.

    Args:
        session (Session): Normalized session

    Returns:
        df (pd.DataFrame): One row per observation, columns
            scan, mjd, source, station1, station2, delay, sigma, delion, sgdion, q_code, q_code_ion
    """
    names = session.antenna_names
    rows = []
    for ii, scan in enumerate(session.scans):
        src = session.sources.by_obs_type(scan.obs_type)[scan.source_index]
        for obs in scan.observations:
            rows.append(
                (ii, scan.mjd, src.name, names[obs.i1], names[obs.i2], obs.delay, obs.sigma,
                 obs.delion, obs.sgdion, obs.q_code, obs.q_code_ion)
            )
    columns = ('scan', 'mjd', 'source', 'station1', 'station2', 'delay', 'sigma',
               'delion', 'sgdion', 'q_code', 'q_code_ion')
    return pd.DataFrame(rows, columns=columns)


def session_to_xarray(session: Session) -> xp.Dataset:
    """Create an xarray Dataset of session observations.

    Args:
        session (Session): Normalized session

    Returns:
        ds (xp.Dataset): Dataset with dimension 'obs'

    Notes:
        <xarray.Dataset>
            Dimensions:  (obs: N_obs)
            Data variables:
                scan      (obs) int64     scan index
                mjd       (obs) float64   scan epoch (MJD)
                source    (obs) <U        source name
                station1  (obs) <U        station 1 name
                station2  (obs) <U        station 2 name
                delay     (obs) float64   corrected group delay (s)
                sigma     (obs) float64   delay sigma (s)
                delion    (obs) float64   ionospheric delay (ns)
                sgdion    (obs) float64   ionospheric delay sigma (ns)
                q_code    (obs) int64
                q_code_ion (obs) int64
            Attributes:
                session, data_type
    """
    df = session_to_dataframe(session)
    units = {'mjd': 'd', 'delay': 's', 'sigma': 's', 'delion': 'ns', 'sgdion': 'ns'}

    data_vars = {}
    for col in df.columns:
        values = df[col].values
        if values.dtype == object:
            values = values.astype('str')
        attrs = {'units': units[col]} if col in units else {}
        data_vars[col] = xp.DataArray(values, dims=('obs',), attrs=attrs)

    ds = xp.Dataset(data_vars=data_vars, attrs={'session': session.name, 'data_type': session.data_type})
    return ds
