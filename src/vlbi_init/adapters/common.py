"""common: Building blocks shared by the session adapters."""

import numpy as np
import pandas as pd
from loguru import logger

from ..config import InitConfig, SourceEstimation
from ..datamodel.policy import Policy
from ..datamodel.session import Antenna, Observation, Scan, ScanStation, Session, Source, count_source_observations
from ..delay import assemble_delay
from ..io.frames import ReferenceFrames
from ..met import MetReadings, validate_met
from ..time_utils import ymdhms_to_mjd

MIN_SCANS_NNR = 3


def apply_source_policy(sources: list, mode: SourceEstimation) -> list:
    """Keep sources with fewer than 3 scans out of the no-net-rotation constraint.

    With NNR estimation such sources leave the reference frame datum. With
    piecewise-linear source estimation they are held fixed to their catalog
    position instead, and stay in the reference frame. Without source
    estimation the sources are left unchanged.

    Args:
        sources (list): Source records, with n_scans already counted
        mode (SourceEstimation): Source estimation mode

    Returns:
        few (list): Names of the sources the policy was applied to
    """
    if mode == SourceEstimation.NONE:
        return []

    few = [src for src in sources if src.n_scans < MIN_SCANS_NNR]
    for src in few:
        if mode == SourceEstimation.NNR:
            src.in_reference_frame = False
            src.fixed_in_estimation = False
        else:
            src.in_reference_frame = True
            src.fixed_in_estimation = True

    if few and mode == SourceEstimation.NNR:
        logger.info(f'{len(few)} sources with <{MIN_SCANS_NNR} scans found. They will not be included in NNR.')
    elif few:
        logger.info(f'{len(few)} sources with <{MIN_SCANS_NNR} scans found. Their coordinates will not be estimated.')
    return [src.name for src in few]


def finalize_sources(session: Session, mode: SourceEstimation):
    """Count observations per source and apply the source policy to the quasars (in place)."""
    count_source_observations(session)
    apply_source_policy(session.sources.quasars, mode)


def unique_in_order(*columns) -> list:
    """Unique values of one or more sequences, in order of first appearance."""
    values = []
    for col in columns:
        values.extend(list(col))
    return list(dict.fromkeys(values))


def build_antennas(names: list, frames: ReferenceFrames, apriori: dict, policy: Policy) -> list:
    """Create Antenna records, preferring TRF catalog positions over a priori ones.

    Args:
        names (list): Station names, in station index order
        frames (ReferenceFrames): Reference frame catalogs
        apriori (dict): Fallback positions, name -> dict(x, y, z, mount, axis_offset)
        policy (Policy): Session policy (for cable calibration availability)

    Returns:
        antennas (list): Antenna records
    """
    antennas = []
    for name in names:
        entry = frames.station(name)
        in_trf = entry is not None
        if entry is None:
            entry = apriori.get(name)
            if entry is None:
                logger.warning(f'Station {name} not found in TRF and no a priori position available')
                entry = {}
            else:
                logger.warning(f'Station {name} not found in TRF, using a priori position')

        antennas.append(
            Antenna(
                name=name,
                x=entry.get('x', np.nan),
                y=entry.get('y', np.nan),
                z=entry.get('z', np.nan),
                mount=entry.get('mount', ''),
                axis_offset=entry.get('axis_offset', 0.0),
                in_trf=in_trf,
                cable_cal=policy.has_cable_cal(name),
            )
        )
    return antennas


def build_sources(names: list, frames: ReferenceFrames, apriori: dict) -> list:
    """Create quasar Source records; sources in the CRF catalog are in the reference frame."""
    sources = []
    for name in names:
        radec = frames.source(name)
        in_crf = radec is not None
        if radec is None:
            radec = apriori.get(name)
            if radec is None:
                logger.warning(f'Source {name} not found in CRF and no a priori direction available')
                radec = (np.nan, np.nan)
        sources.append(Source(name=name, ra=radec[0], de=radec[1], in_reference_frame=in_crf))
    return sources


def _column(df: pd.DataFrame, name: str, default=0.0) -> np.ndarray:
    if name in df.columns:
        return df[name].values
    return np.full(len(df), default)


def _station_record(row, k: int, index: int, has_cab: bool) -> ScanStation:
    """ScanStation of station k (1 or 2) of an observation table row."""
    met = MetReadings()
    if hasattr(row, f'temp{k}'):
        met = validate_met(getattr(row, f'temp{k}'), getattr(row, f'pres{k}', None), getattr(row, f'hum{k}', None))
    cab = float(getattr(row, f'cab{k}', 0.0)) if has_cab else 0.0
    if not np.isfinite(cab):
        cab = 0.0
    return ScanStation(antenna_index=index, temp=met.temp, pres=met.pres, e=met.e, cab=cab)


def scans_from_table(
    obs: pd.DataFrame,
    antenna_names: list,
    source_lookup: dict,
    config: InitConfig,
    policy: Policy,
) -> list:
    """Group a per-observation table into scans.

    Observations sharing epoch and source form one scan. Scans are epoch
    ordered; observations keep their table order within a scan.

    Args:
        obs (pd.DataFrame): Observation table with columns year, month, day, hour,
            minute, second, source, station1, station2, delay, sigma, and optionally
            delion, sgdion, q_code, q_code_ion, temp1/2, pres1/2, hum1/2, cab1/2
        antenna_names (list): Antenna names in index order
        source_lookup (dict): source name -> (obs_type, index into the matching source list)
        config (InitConfig): Session configuration (correction switches)
        policy (Policy): Session policy (stations without cable calibration)

    Returns:
        scans (list): Scan records
    """
    ant_idx = {name: ii for ii, name in enumerate(antenna_names)}
    mjd, doy = ymdhms_to_mjd(obs['year'], obs['month'], obs['day'], obs['hour'], obs['minute'], obs['second'])
    obs = obs.assign(mjd=mjd, doy=doy).sort_values('mjd', kind='stable')
    has_cab = 'cab1' in obs.columns

    scans = []
    keys = ['year', 'month', 'day', 'hour', 'minute', 'second', 'source']
    for _, grp in obs.groupby(keys, sort=False):
        first = grp.iloc[0]
        obs_type, src_idx = source_lookup[first['source']]

        stations = {}
        for row in grp.itertuples(index=False):
            for k, name in ((1, row.station1), (2, row.station2)):
                ii = ant_idx[name]
                if ii not in stations:
                    stations[ii] = _station_record(row, k, ii, has_cab and policy.has_cable_cal(name))

        i1 = grp['station1'].map(ant_idx).values
        i2 = grp['station2'].map(ant_idx).values
        cab1 = np.array([stations[ii].cab for ii in i1])
        cab2 = np.array([stations[ii].cab for ii in i2])
        delion = _column(grp, 'delion')
        sgdion = _column(grp, 'sgdion')

        delay, sigma = assemble_delay(
            grp['delay'].values,
            grp['sigma'].values,
            delion,
            sgdion,
            cab1,
            cab2,
            cable_calibration=config.cable_calibration,
            ionosphere=config.ionosphere_correction,
        )

        q_code = _column(grp, 'q_code', 0)
        q_code_ion = _column(grp, 'q_code_ion', 0)
        observations = [
            Observation(
                i1=int(i1[jj]),
                i2=int(i2[jj]),
                delay=float(delay[jj]),
                sigma=float(sigma[jj]),
                delion=float(delion[jj]),
                sgdion=float(sgdion[jj]),
                q_code=int(q_code[jj]),
                q_code_ion=int(q_code_ion[jj]),
            )
            for jj in range(len(grp))
        ]

        tim = (
            int(first['year']),
            int(first['month']),
            int(first['day']),
            int(first['hour']),
            int(first['minute']),
            float(first['second']),
            int(first['doy']),
        )
        scans.append(
            Scan(
                mjd=float(first['mjd']),
                tim=tim,
                source_index=src_idx,
                stations=[stations[ii] for ii in sorted(stations)],
                observations=observations,
                obs_type=obs_type,
            )
        )
    return scans
