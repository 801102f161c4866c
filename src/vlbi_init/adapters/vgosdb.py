"""vgosdb: Session adapter for vgosDB containers.

Normalizing a vgosDB session takes these steps:

    1. Select the wrapper and read its tables (io.vgosdb.read_vgosdb)
    2. Pick the delay, delay sigma and ionosphere tables of the frequency band
    3. Resolve scan / station / observation topology from the cross-reference tables
    4. Validate met data per (station, scan)
    5. Apply cable calibration and ionosphere correction to the delays
    6. Broadcast a session-wide DelayFlag to all observations
    7. Apply the source policy for sources with few scans

Table layout (netCDF dimensions, row major):

    ObsCrossRef       Obs2Baseline (NumObs, 2), Obs2Scan (NumObs)
    StationCrossRef   Scan2Station (NumScans, NumStation)
    SourceCrossRef    Scan2Source (NumScans)
    TimeUTC           YMDHM (NumScans, 5), Second (NumScans)
    GroupDelay_b?     GroupDelay, GroupDelaySig (NumObs), in s
    GroupDelayFull_b? GroupDelayFull (NumObs), in s
    Cal-SlantPathIonoGroup_b?  Cal-SlantPathIonoGroup, Cal-SlantPathIonoGroupSigma (NumObs, 2)
                               in s, Cal-SlantPathIonoGroupDataFlag (NumObs)
    Edit              DelayFlag (NumObs) or a single value
    <station>/Met     TempC, AtmPres, RelHum (NumScans of station)
    <station>/Cal-Cable  Cal-Cable (NumScans of station), in s
"""

from dataclasses import dataclass

import numpy as np
from loguru import logger

from ..config import InitConfig, SessionFormat
from ..crossref import resolve_cross_reference
from ..datamodel.policy import Policy
from ..datamodel.session import Observation, Scan, ScanStation, Session, SourceCollection
from ..delay import assemble_delay
from ..errors import ConfigurationError, CrossReferenceError
from ..io.frames import ReferenceFrames, apriori_directions, apriori_positions
from ..io.vgosdb import (
    APRIORI_SOURCE,
    APRIORI_STATION,
    CABLE_CAL,
    EDIT,
    MET,
    OBS_CROSS_REF,
    SOURCE_CROSS_REF,
    STATION_CROSS_REF,
    TIME_UTC,
    TableRegistry,
    TableRole,
    VgosDbDump,
    band_role,
    get_variable,
    read_vgosdb,
)
from ..met import station_met
from ..time_utils import ymdhms_to_mjd
from ..utils import decode_strings
from .base import SessionAdapter
from .common import build_antennas, build_sources, finalize_sources

IONO_STEM = 'Cal-SlantPathIonoGroup'


@dataclass(frozen=True)
class BandConfig:
    """Tables providing delay, delay sigma and ionosphere correction for one band setting."""

    # fmt: off
    delay: TableRole                # Table holding the delay
    delay_var: str                  # Delay variable name
    sigma: TableRole                # Table holding the delay sigma
    sigma_var: str = 'GroupDelaySig'
    iono: TableRole = None          # Ionosphere table, None if not used
    # fmt: on


def _group_delay(band: str) -> TableRole:
    return band_role('GroupDelay', band)


def _iono(band: str) -> TableRole:
    return band_role(IONO_STEM, band, required=False)


# fmt: off
FREQUENCY_BANDS = {
    'GroupDelayFull_bX':      BandConfig(band_role('GroupDelayFull', 'X', by_institution=True), 'GroupDelayFull',
                                         _group_delay('X'), iono=_iono('X')),
    'GroupDelayFull_bS':      BandConfig(band_role('GroupDelayFull', 'S', by_institution=True), 'GroupDelayFull',
                                         _group_delay('S'), iono=_iono('S')),
    'GroupDelay_bX':          BandConfig(_group_delay('X'), 'GroupDelay', _group_delay('X')),
    'GroupDelay_bS':          BandConfig(_group_delay('S'), 'GroupDelay', _group_delay('S')),
    'GroupDelay_plusiono_bX': BandConfig(_group_delay('X'), 'GroupDelay', _group_delay('X'), iono=_iono('X')),
    'GroupDelay_plusiono_bS': BandConfig(_group_delay('S'), 'GroupDelay', _group_delay('S'), iono=_iono('S')),
}
# fmt: on


def get_band_config(frequency_band: str) -> BandConfig:
    """Look up the table configuration of a frequency band setting.

    Raises:
        ConfigurationError: if the band is not one of FREQUENCY_BANDS
    """
    try:
        return FREQUENCY_BANDS[frequency_band]
    except KeyError:
        raise ConfigurationError(
            f'Unknown frequency band {frequency_band!r} (expected one of {list(FREQUENCY_BANDS)})'
        ) from None


def broadcast_delay_flag(flag: np.ndarray, n_obs: int) -> np.ndarray:
    """Return per-observation delay flags, broadcasting a session-wide scalar.

    Args:
        flag (np.ndarray): DelayFlag values, one per observation or a single value
        n_obs (int): Number of observations

    Returns:
        q_code (np.ndarray): (N_obs,) integer flags
    """
    f = np.atleast_1d(np.asarray(flag)).ravel()
    if f.size == 1 and n_obs != 1:
        logger.warning('DelayFlag only provided as one value! Value used for all observations.')
        f = np.repeat(f, n_obs)
    elif f.size != n_obs:
        raise CrossReferenceError(f'DelayFlag has {f.size} entries, expected {n_obs}')
    return np.nan_to_num(f.astype('float64')).astype('int64')


def _per_obs(values: np.ndarray, n_obs: int, name: str) -> np.ndarray:
    """Per-observation vector; for (NumObs, 2) tables the first column is used."""
    v = np.asarray(values, dtype='float64')
    if v.ndim == 2:
        if v.shape[0] == n_obs:
            v = v[:, 0]
        elif v.shape[1] == n_obs:
            v = v[0, :]
    v = v.ravel()
    if v.size != n_obs:
        raise CrossReferenceError(f'{name} has {v.size} entries, expected {n_obs}')
    return v


def _required_table(dump: VgosDbDump, registry: TableRegistry, role: TableRole):
    path = registry.resolve(role)
    ds = dump.table(path)
    if ds is None:
        raise ConfigurationError(f'Table {path} (role {role.name}) listed in wrapper but not loaded')
    return ds


def _ionosphere(dump: VgosDbDump, registry: TableRegistry, band_name: str, n_obs: int) -> tuple:
    """Ionosphere delay (ns), sigma (ns) and flag; zeros if the band has no usable table."""
    band = get_band_config(band_name)
    zeros = np.zeros(n_obs)
    if band.iono is None:
        logger.warning(f'With frequency band {band_name} the ionospheric delay will not be used')
        return zeros, zeros.copy(), np.zeros(n_obs, dtype='int64')

    ds = dump.table(registry.resolve(band.iono))
    delion = get_variable(ds, IONO_STEM)
    if ds is None or delion is None:
        logger.warning(f'Ionospheric delay table {band.iono.name} not found, ionospheric delay will not be used')
        return zeros, zeros.copy(), np.zeros(n_obs, dtype='int64')

    delion = _per_obs(delion, n_obs, IONO_STEM) * 1e9
    sgdion = get_variable(ds, f'{IONO_STEM}Sigma')
    sgdion = zeros.copy() if sgdion is None else _per_obs(sgdion, n_obs, f'{IONO_STEM}Sigma') * 1e9

    bad = ~np.isfinite(delion) | ~np.isfinite(sgdion)
    if bad.any():
        logger.warning(f'{bad.sum()} observations have no ionospheric delay, set to 0')
        delion[bad] = 0.0
        sgdion[bad] = 0.0

    flag = get_variable(ds, f'{IONO_STEM}DataFlag')
    if flag is None:
        flag = np.zeros(n_obs, dtype='int64')
    else:
        flag = np.nan_to_num(_per_obs(flag, n_obs, f'{IONO_STEM}DataFlag')).astype('int64')
        logger.info('Ionospheric delay flag will be used')
    logger.info('Ionospheric delay will be used')
    return delion, sgdion, flag


def _scan_epochs(ds, n_scans: int) -> tuple:
    """MJD, day-of-year and (year, month, day, hour, minute, second) per scan."""
    ymdhm = np.asarray(get_variable(ds, 'YMDHM', required=True), dtype='int64')
    if ymdhm.ndim == 2 and ymdhm.shape[1] != 5 and ymdhm.shape[0] == 5:
        ymdhm = ymdhm.T
    ymdhm = ymdhm.reshape(-1, 5)
    if len(ymdhm) != n_scans:
        raise CrossReferenceError(f'TimeUTC has {len(ymdhm)} epochs, expected {n_scans} scans')

    second = get_variable(ds, 'Second')
    second = np.zeros(n_scans) if second is None else np.asarray(second, dtype='float64').ravel()
    if second.size == 1 and n_scans > 1:
        logger.warning('TimeUTC Second only provided as one value! Seconds set to 0.')
        second = np.zeros(n_scans)
    elif second.size != n_scans:
        raise CrossReferenceError(f'TimeUTC Second has {second.size} entries, expected {n_scans}')

    mjd, doy = ymdhms_to_mjd(ymdhm[:, 0], ymdhm[:, 1], ymdhm[:, 2], ymdhm[:, 3], ymdhm[:, 4], second)
    return mjd, doy, ymdhm, second


def _apriori(dump: VgosDbDump, registry: TableRegistry) -> tuple:
    """A priori station positions and source directions from the Apriori tables."""
    stations, sources = {}, {}

    ds = dump.table(registry.resolve(APRIORI_STATION))
    xyz = get_variable(ds, 'AprioriStationXYZ')
    if xyz is not None:
        names = get_variable(ds, 'AprioriStationList')
        names = dump.station_names if names is None else decode_strings(names)
        stations = apriori_positions(names, xyz)

    ds = dump.table(registry.resolve(APRIORI_SOURCE))
    radec = get_variable(ds, 'AprioriSource2000RaDec')
    if radec is not None:
        names = get_variable(ds, 'AprioriSourceList')
        names = dump.source_names if names is None else decode_strings(names)
        sources = apriori_directions(names, radec)

    return stations, sources


def normalize_vgosdb(dump: VgosDbDump, config: InitConfig, frames: ReferenceFrames, policy: Policy) -> Session:
    """Normalize the tables of a vgosDB session into a Session.

    Args:
        dump (VgosDbDump): Tables read by read_vgosdb
        config (InitConfig): Session configuration
        frames (ReferenceFrames): Reference frame catalogs
        policy (Policy): Session policy (stations without cable calibration)

    Returns:
        session (Session): Normalized session

    Raises:
        TableResolutionError: if a required table role has zero or several matches
        CrossReferenceError: if the cross-reference tables are inconsistent
    """
    settings = config.vgosdb
    band = get_band_config(settings.frequency_band)
    registry = TableRegistry(dump.wrapper, settings.institution)
    station_names = dump.station_names
    source_names = dump.source_names

    # Topology
    ds_obs = _required_table(dump, registry, OBS_CROSS_REF)
    scan2station = get_variable(_required_table(dump, registry, STATION_CROSS_REF), 'Scan2Station', required=True)
    scan2source = get_variable(_required_table(dump, registry, SOURCE_CROSS_REF), 'Scan2Source', required=True)
    xref = resolve_cross_reference(
        get_variable(ds_obs, 'Obs2Baseline', required=True),
        get_variable(ds_obs, 'Obs2Scan', required=True),
        scan2station,
        scan2source,
    )
    n_obs = xref.n_obs
    n_sta = np.atleast_2d(np.asarray(scan2station)).shape[1]
    if n_sta != len(station_names):
        raise CrossReferenceError(f'Scan2Station has {n_sta} stations, Head lists {len(station_names)}')
    if len(xref.scan_source) and xref.scan_source.max() >= len(source_names):
        raise CrossReferenceError('Scan2Source references a source outside the Head source list')

    mjd, doy, ymdhm, second = _scan_epochs(_required_table(dump, registry, TIME_UTC), xref.n_scans)

    # Observables
    delay = _per_obs(get_variable(_required_table(dump, registry, band.delay), band.delay_var, required=True), n_obs, band.delay_var)
    sigma = _per_obs(get_variable(_required_table(dump, registry, band.sigma), band.sigma_var, required=True), n_obs, band.sigma_var)
    delion, sgdion, q_code_ion = _ionosphere(dump, registry, settings.frequency_band, n_obs)

    flag = get_variable(dump.table(registry.resolve(EDIT)), 'DelayFlag')
    if flag is None:
        logger.warning('No DelayFlag found in Edit table, quality codes set to 0')
        flag = np.zeros(n_obs, dtype='int64')
    q_code = broadcast_delay_flag(flag, n_obs)

    # Per-station tables
    met_tables, cable = {}, {}
    for ii, name in enumerate(station_names):
        met_tables[ii] = dump.table(registry.resolve(MET, name))
        if met_tables[ii] is None:
            logger.warning(f'No met data for station {name}')
        cab = get_variable(dump.table(registry.resolve(CABLE_CAL, name)), 'Cal-Cable')
        if cab is None:
            logger.warning(f'No cable calibration for station {name}, set to 0')
        elif not policy.has_cable_cal(name):
            logger.info(f'Cable calibration of station {name} not used')
            cab = None
        cable[ii] = None if cab is None else np.asarray(cab, dtype='float64').ravel() * 1e9

    # Scan station records
    scan_station_records = []
    for i_scan in range(xref.n_scans):
        records = []
        for ii, counter in zip(xref.scan_stations[i_scan], xref.scan_counters[i_scan]):
            met = station_met(met_tables[ii], int(counter))
            cab = 0.0
            if cable[ii] is not None and 0 <= counter < len(cable[ii]) and np.isfinite(cable[ii][counter]):
                cab = float(cable[ii][counter])
            records.append(ScanStation(antenna_index=int(ii), temp=met.temp, pres=met.pres, e=met.e, cab=cab))
        scan_station_records.append(records)

    # Delays, all observations at once
    cab1 = np.array([scan_station_records[s][loc].cab for s, loc in zip(xref.obs_scan, xref.local_baselines[:, 0])])
    cab2 = np.array([scan_station_records[s][loc].cab for s, loc in zip(xref.obs_scan, xref.local_baselines[:, 1])])
    tau, sig = assemble_delay(
        delay,
        sigma,
        delion,
        sgdion,
        cab1,
        cab2,
        cable_calibration=config.cable_calibration,
        ionosphere=config.ionosphere_correction,
    )

    scans = []
    for i_scan in range(xref.n_scans):
        observations = [
            Observation(
                i1=int(xref.baselines[jj, 0]),
                i2=int(xref.baselines[jj, 1]),
                delay=float(tau[jj]),
                sigma=float(sig[jj]),
                delion=float(delion[jj]),
                sgdion=float(sgdion[jj]),
                q_code=int(q_code[jj]),
                q_code_ion=int(q_code_ion[jj]),
            )
            for jj in xref.scan_obs[i_scan]
        ]
        tim = tuple(int(v) for v in ymdhm[i_scan]) + (float(second[i_scan]), int(doy[i_scan]))
        scans.append(
            Scan(
                mjd=float(mjd[i_scan]),
                tim=tim,
                source_index=int(xref.scan_source[i_scan]),
                stations=scan_station_records[i_scan],
                observations=observations,
                obs_type='q',
            )
        )

    station_apriori, source_apriori = _apriori(dump, registry)
    session = Session(
        name=config.session_name,
        data_type=SessionFormat.VGOSDB.value,
        antennas=build_antennas(station_names, frames, station_apriori, policy),
        sources=SourceCollection(quasars=build_sources(source_names, frames, source_apriori)),
        scans=scans,
    )
    finalize_sources(session, config.source_estimation)
    return session


class VgosDbAdapter(SessionAdapter):
    """Adapter for vgosDB session directories."""

    format = SessionFormat.VGOSDB

    def load(self, path: str, config: InitConfig, frames: ReferenceFrames, policy: Policy) -> Session:
        """Read a vgosDB session directory and normalize it into a Session."""
        logger.info(f'Start reading {path}')
        dump = read_vgosdb(path, config.session_name, config.vgosdb)
        session = normalize_vgosdb(dump, config, frames, policy)
        logger.info('...reading the vgosDB session finished!')
        return session
