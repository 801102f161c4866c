"""pipeline: Session initialization, from configuration to normalized session.

init_session runs these stages in order, each once:

    RESOLVE_PATHS            input and control file paths from the configuration
    LOAD_REFERENCE_FRAMES    TRF and CRF catalogs
    LOAD_POLICY_FILES        OPT, OUT and JET control files (defaults if absent)
    DISPATCH_FORMAT_ADAPTER  read and normalize the session
    APPLY_EXCLUSION_ENGINE   apply the policy
    SUMMARIZE                log stations, sources and scans found
"""

import enum
import os
from dataclasses import dataclass, replace

from loguru import logger

from .adapters import get_adapter
from .config import InitConfig, SessionFormat
from .datamodel.policy import Policy
from .datamodel.session import Session, check_session
from .errors import ConfigurationError
from .exclusion import apply_exclusions, log_report
from .io.control import read_jet, read_opt, read_out
from .io.frames import ReferenceFrames, get_trf_and_crf
from .utils import get_software_versions

# fmt: off
DATA_SUBDIRS = {
    SessionFormat.NGS:    'NGS',
    SessionFormat.VSO:    'VSO',
    SessionFormat.VGOSDB: 'vgosDB',
}
# fmt: on

JET_NAME_LENGTH = 14


class InitStage(enum.Enum):
    """Stages of session initialization, in execution order."""

    RESOLVE_PATHS = 1
    LOAD_REFERENCE_FRAMES = 2
    LOAD_POLICY_FILES = 3
    DISPATCH_FORMAT_ADAPTER = 4
    APPLY_EXCLUSION_ENGINE = 5
    SUMMARIZE = 6


@dataclass(frozen=True)
class SessionPaths:
    """Resolved input and control file paths of a session."""

    # fmt: off
    data: str       # Input file, or vgosDB session directory
    opt: str        # OPT exclusion file
    out: str        # OUT outlier file
    jet: str        # JET jet angle file
    jetuv: str      # JETUV jet angle file
    jetjb: str      # JETJB jet angle file
    # fmt: on


def opt_stem(session_name: str, fmt: SessionFormat) -> str:
    """Session name stem used for the OPT file name.

    NGS session names are truncated before the first underscore if there is
    exactly one, or before the second if there are exactly two.

    Raises:
        ConfigurationError: for NGS session names with more than two underscores
    """
    if fmt != SessionFormat.NGS:
        return session_name
    idx = [ii for ii, c in enumerate(session_name) if c == '_']
    if len(idx) == 0:
        return session_name
    if len(idx) == 1:
        return session_name[: idx[0]]
    if len(idx) == 2:
        return session_name[: idx[1]]
    raise ConfigurationError(f'More than 2 underscores found in session name {session_name}, cannot find OPT file')


def resolve_paths(config: InitConfig) -> SessionPaths:
    """Resolve the input and control file paths of a session.

    Args:
        config (InitConfig): Session configuration

    Returns:
        paths (SessionPaths): Resolved paths

    Raises:
        UnknownFormatError: if config.data_type is not a known format
        ConfigurationError: if the OPT file name cannot be derived
    """
    fmt = config.format
    name, year = config.session_name, config.year

    data = config.data_file or os.path.join(config.data_root, DATA_SUBDIRS[fmt], year, name)
    jet_root = os.path.join(config.jetang_dir, name[:JET_NAME_LENGTH])

    return SessionPaths(
        data=data,
        opt=os.path.join(config.opt_dir, config.opt_subdir, year, f'{opt_stem(name, fmt)}.OPT'),
        out=os.path.join(config.outlier_dir, config.out_subdir, year, f'{name}.OUT'),
        jet=f'{jet_root}.JET',
        jetuv=f'{jet_root}.JETUV',
        jetjb=f'{jet_root}.JETJB',
    )


def load_policy(config: InitConfig, paths: SessionPaths) -> Policy:
    """Build the session policy from the OPT, OUT and JET files.

    Missing control files are not an error: the corresponding part of the
    policy keeps its default (empty) value and a warning is logged.

    Args:
        config (InitConfig): Session configuration
        paths (SessionPaths): Resolved paths

    Returns:
        policy (Policy): Session policy
    """
    policy = Policy()

    if config.use_opt_files:
        if os.path.exists(paths.opt):
            logger.info(f'Reading OPT file: {paths.opt}')
            policy, _ = read_opt(paths.opt)
        else:
            logger.warning(f'No OPT file was found: {paths.opt}')

    if config.remove_outliers:
        if os.path.exists(paths.out):
            outliers = read_out(paths.out)
            policy = replace(policy, outliers=tuple(outliers))
            logger.info(f'{len(outliers)} outliers are applied')
        else:
            logger.warning(f'Outlier list does not exist: {paths.out}')
    else:
        logger.info('Outlier list is not applied')

    if config.exclude_jet:
        if os.path.exists(paths.jet):
            jet = read_jet(paths.jet, config.jet_angle_limit)
            policy = replace(policy, jet=tuple(jet), jet_angle_limit=config.jet_angle_limit)
            logger.info(f'Read JET file: {paths.jet}')
            logger.info(f'Number of obs to be excluded due to jet angle: {config.jet_angle_limit} {len(jet)}')
        else:
            logger.warning(f'No JET file was found: {paths.jet}')

    return policy


def _log_stage(stage: InitStage):
    logger.info(f'[{stage.value}/{len(InitStage)}] {stage.name}')


def summarize(session: Session):
    """Log the stations, sources and scans of a session."""
    logger.info(
        f'A total of {len(session.antennas)} stations, {len(session.sources.quasars)} sources (quasars), '
        f'{len(session.sources.spacecraft)} spacecraft and {len(session.scans)} scans '
        f'({session.n_obs} observations) were found'
    )
    logger.info('The following stations were found:')
    for ii, name in enumerate(session.antenna_names):
        logger.info(f'{ii + 1:2d}. {name}')


def init_session(config: InitConfig, frames: ReferenceFrames = None) -> Session:
    """Initialize a VLBI session: read, normalize and apply exclusions.

    Args:
        config (InitConfig): Session configuration
        frames (ReferenceFrames): Reference frame catalogs. Loaded from the
                                  configuration if None.

    Returns:
        session (Session): Normalized session. session.provenance holds the
                           resolved paths, the exclusion report and software versions.

    Raises:
        ConfigurationError: (or a subclass) for fatal configuration problems.
                            No partial session is returned.
    """
    logger.info(f'Initializing session {config.session_name} ({config.data_type})')

    _log_stage(InitStage.RESOLVE_PATHS)
    paths = resolve_paths(config)
    logger.debug(f'Paths: {paths}')

    _log_stage(InitStage.LOAD_REFERENCE_FRAMES)
    if frames is None:
        frames = get_trf_and_crf(config)

    _log_stage(InitStage.LOAD_POLICY_FILES)
    policy = load_policy(config, paths)

    _log_stage(InitStage.DISPATCH_FORMAT_ADAPTER)
    adapter = get_adapter(config.data_type)
    session = adapter.load(paths.data, config, frames, policy)
    check_session(session)

    _log_stage(InitStage.APPLY_EXCLUSION_ENGINE)
    session, report = apply_exclusions(session, policy, config)
    log_report(report)
    check_session(session)

    session.parameters.update(
        {
            'reference_clock': policy.reference_clock,
            'clock_breaks': [(cb.station, cb.mjd) for cb in policy.clock_breaks],
            'no_cable_cal': list(policy.no_cable_cal),
        }
    )
    session.provenance.update(
        {
            'paths': paths,
            'trf_file': frames.trf_file,
            'crf_file': frames.crf_file,
            'exclusion_report': report,
            'software': get_software_versions(),
        }
    )

    _log_stage(InitStage.SUMMARIZE)
    summarize(session)
    logger.info(f'Session {config.session_name} successfully initialized')
    return session
