"""exclusion: Apply exclusion and weighting policies to a normalized session.

Observations are removed, in this order of attribution, for:

    source     scan source excluded (whole session or within a window)
    station    either station excluded (whole session or within a window)
    baseline   station pair on the baseline exclusion list
    outlier    station pair and epoch on the outlier list
    jet        station pair and epoch on the jet angle list, angle above the limit
    quality    delay quality code above qlim
    iono_flag  nonzero ionosphere flag

The session is then compacted: station records without observations, empty
scans, and antennas and sources no longer observed are dropped, and indices
are remapped. Down-weighted stations are annotated, not removed.
"""

import copy

from loguru import logger

from .adapters.common import finalize_sources
from .config import InitConfig
from .datamodel.policy import ExclusionReport, Policy
from .datamodel.session import Session

SECONDS_PER_DAY = 86400.0


def _first(entries, predicate):
    for entry in entries:
        if predicate(entry):
            return entry
    return None


def _obs_exclusion(policy: Policy, config: InitConfig, n1: str, n2: str, source: str, mjd: float, obs) -> tuple:
    """Return (category, identity) of the first rule excluding an observation, or (None, None)."""
    tol = config.outlier_tolerance / SECONDS_PER_DAY

    for name in (n1, n2):
        rule = _first(policy.stations, lambda r: r.applies(name, mjd))
        if rule is not None:
            return 'station', (rule.name, rule.start, rule.end)

    rule = _first(policy.baselines, lambda r: r.matches(n1, n2))
    if rule is not None:
        return 'baseline', (rule.station1, rule.station2)

    rule = _first(policy.outliers, lambda r: r.matches(n1, n2, mjd, tol))
    if rule is not None:
        return 'outlier', (rule.station1, rule.station2, rule.mjd)

    limit = policy.jet_angle_limit
    rule = _first(
        policy.jet,
        lambda r: r.matches(n1, n2, mjd, tol)
        and (not r.source or r.source == source)
        and (limit is None or r.angle > limit),
    )
    if rule is not None:
        return 'jet', (rule.station1, rule.station2, rule.mjd)

    if config.qlim is not None and obs.q_code > config.qlim:
        return 'quality', None

    if config.use_iono_flag and config.ionosphere_correction and obs.q_code_ion != 0:
        return 'iono_flag', None

    return None, None


def _record(report: ExclusionReport, category: str, identity):
    setattr(report, f'n_obs_{category}', getattr(report, f'n_obs_{category}') + 1)
    if identity is None:
        return
    ids = getattr(report, {'station': 'stations', 'baseline': 'baselines', 'outlier': 'outliers', 'jet': 'jet'}[category])
    if identity not in ids:
        ids.append(identity)


def _compact(session: Session, report: ExclusionReport):
    """Drop unobserved station records, scans, antennas and sources; remap indices (in place)."""
    n_scans = len(session.scans)
    for scan in session.scans:
        used = {o.i1 for o in scan.observations} | {o.i2 for o in scan.observations}
        scan.stations = [s for s in scan.stations if s.antenna_index in used]
    session.scans = [s for s in session.scans if s.observations]
    report.removed_scans += n_scans - len(session.scans)

    # Antennas
    used = sorted({s.antenna_index for scan in session.scans for s in scan.stations})
    remap = {old: new for new, old in enumerate(used)}
    report.removed_antennas += [a.name for ii, a in enumerate(session.antennas) if ii not in remap]
    session.antennas = [session.antennas[ii] for ii in used]
    for scan in session.scans:
        for s in scan.stations:
            s.antenna_index = remap[s.antenna_index]
        for o in scan.observations:
            o.i1, o.i2 = remap[o.i1], remap[o.i2]

    # Sources, per obs_type list
    for obs_type, attr in (('q', 'quasars'), ('s', 'spacecraft')):
        sources = getattr(session.sources, attr)
        used = sorted({scan.source_index for scan in session.scans if scan.obs_type == obs_type})
        remap = {old: new for new, old in enumerate(used)}
        report.removed_sources += [src.name for ii, src in enumerate(sources) if ii not in remap]
        setattr(session.sources, attr, [sources[ii] for ii in used])
        for scan in session.scans:
            if scan.obs_type == obs_type:
                scan.source_index = remap[scan.source_index]


def apply_exclusions(session: Session, policy: Policy, config: InitConfig) -> tuple:
    """Apply a policy to a session.

    The input session is not modified. Applying the same policy to the
    returned session removes nothing further.

    Args:
        session (Session): Normalized session
        policy (Policy): Exclusion and weighting policy
        config (InitConfig): Session configuration (qlim, use_iono_flag, outlier_tolerance,
                             source_estimation)

    Returns:
        (session, report): New Session, and the ExclusionReport
    """
    session = copy.deepcopy(session)
    report = ExclusionReport()
    names = session.antenna_names

    for scan in session.scans:
        src = session.sources.by_obs_type(scan.obs_type)[scan.source_index]
        rule = _first(policy.sources, lambda r: r.applies(src.name, scan.mjd))
        if rule is not None:
            report.n_obs_source += scan.nobs
            if (rule.name, rule.start, rule.end) not in report.sources:
                report.sources.append((rule.name, rule.start, rule.end))
            scan.observations = []
            continue

        kept = []
        for obs in scan.observations:
            category, identity = _obs_exclusion(policy, config, names[obs.i1], names[obs.i2], src.name, scan.mjd, obs)
            if category is None:
                kept.append(obs)
            else:
                _record(report, category, identity)
        scan.observations = kept

    _compact(session, report)

    for ant in session.antennas:
        ant.downweight = policy.downweight_coefficient(ant.name)
        if ant.downweight is not None:
            report.downweighted[ant.name] = ant.downweight

    finalize_sources(session, config.source_estimation)
    return session, report


def log_report(report: ExclusionReport):
    """Log the exclusion report."""
    logger.info(f'Stations excluded: {len(report.stations)} ({report.n_obs_station} observations)')
    for name, start, end in report.stations:
        if start == 0 and end == 0:
            logger.info(f'    {name}')
        else:
            logger.info(f'    {name} {start:f} {end:f}')
    logger.info(f'Sources excluded: {len(report.sources)} ({report.n_obs_source} observations)')
    for name, start, end in report.sources:
        if start == 0 and end == 0:
            logger.info(f'    {name}')
        else:
            logger.info(f'    {name} {start:f} {end:f}')
    logger.info(f'Baselines excluded: {len(report.baselines)} ({report.n_obs_baseline} observations)')
    for sta1, sta2 in report.baselines:
        logger.info(f'    {sta1}-{sta2}')
    logger.info(f'Outliers removed: {report.n_obs_outlier}')
    for sta1, sta2, mjd in report.outliers:
        logger.info(f'    {sta1:>10s} {sta2:>10s} {mjd:5.2f}')
    logger.info(f'Observations excluded due to jet angle: {report.n_obs_jet}')
    if report.n_obs_quality:
        logger.info(f'Observations excluded due to quality code: {report.n_obs_quality}')
    if report.n_obs_iono_flag:
        logger.info(f'Observations excluded due to ionosphere flag: {report.n_obs_iono_flag}')
    if report.removed_scans:
        logger.info(f'Scans removed: {report.removed_scans}')
    if report.removed_antennas:
        logger.info(f'Stations without remaining observations: {report.removed_antennas}')
    if report.removed_sources:
        logger.info(f'Sources without remaining scans: {report.removed_sources}')
    for name, coef in report.downweighted.items():
        logger.info(f'Station down-weighted: {name} {coef}')
