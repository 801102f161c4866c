"""cli: Command-line utility for VLBI session initialization."""

import argparse
import os
import sys
from dataclasses import asdict

import h5py
from loguru import logger

from . import __version__
from .config import load_config
from .datamodel.session import Session, session_to_xarray
from .errors import ConfigurationError
from .parallelize import run_in_parallel, task
from .pipeline import init_session
from .utils import get_resource_path, reset_logger

TEMPLATE_CONFIG = 'data/session_template.yaml'


def parse_args(args):
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description='VLBI session initialization utility')
    p.add_argument('config', nargs='*', help='Session configuration YAML file(s), one per session')
    p.add_argument(
        '-t',
        '--template',
        help='Print a session configuration template and exit.',
        action='store_true',
        default=False,
    )
    p.add_argument(
        '-o',
        '--outdir',
        help='Output directory. If supplied, observations of each session are written to <session>.nc',
        required=False,
        default=None,
    )
    p.add_argument(
        '-r',
        '--data_root',
        help='Override the data root directory of all session configurations',
        required=False,
        default=None,
    )
    p.add_argument(
        '-w',
        '--num-workers',
        help='Number of parallel processors (i.e. number of sessions to load in parallel).',
        required=False,
        default=1,
        type=int,
    )
    p.add_argument(
        '-v',
        '--verbose',
        help='Run with verbose output.',
        action='store_true',
        default=False,
    )
    p.add_argument(
        '-p',
        '--parallel_backend',
        help="Joblib backend to use: 'loky' (default) or 'threading'",
        required=False,
        default='loky',
    )
    args = p.parse_args(args)
    return args


def write_session(session: Session, filename: str):
    """Write the observations of a session to netCDF (h5netcdf engine).

    Session provenance (input files, exclusion counts, software versions)
    is added as a 'provenance' HDF5 group, with one attribute per entry.

    Args:
        session (Session): Initialized session
        filename (str): name of output file
    """
    ds = session_to_xarray(session)
    ds.to_netcdf(filename, engine='h5netcdf')

    prov = session.provenance
    with h5py.File(filename, mode='a') as h:
        h.attrs['VERSION'] = __version__

        ####################
        # PROVENANCE GROUP #
        ####################

        g_prov = h.create_group('provenance')
        for k in ('trf_file', 'crf_file'):
            if prov.get(k) is not None:
                g_prov.attrs[k] = prov[k]

        if prov.get('paths') is not None:
            g_paths = g_prov.create_group('paths')
            for k, v in asdict(prov['paths']).items():
                if v is not None:
                    g_paths.attrs[k] = v

        if prov.get('exclusion_report') is not None:
            report = prov['exclusion_report']
            g_excl = g_prov.create_group('exclusion_report')
            for k, v in asdict(report).items():
                if k.startswith('n_obs_') or k == 'removed_scans':
                    g_excl.attrs[k] = v
            g_excl.attrs['n_obs_total'] = report.n_obs_total
            g_excl.attrs['removed_antennas'] = ','.join(report.removed_antennas)
            g_excl.attrs['removed_sources'] = ','.join(report.removed_sources)

        g_soft = g_prov.create_group('software')
        for k, v in prov.get('software', {}).items():
            g_soft.attrs[k] = v


def init_session_file(fn_config: str, outdir: str = None, data_root: str = None) -> tuple:
    """Initialize one session from its configuration file.

    Args:
        fn_config (str): Path to session configuration YAML
        outdir (str): Output directory for <session>.nc, or None to skip writing
        data_root (str): Data root override, or None

    Returns:
        (session_name, n_obs, fn_out): Session name, number of observations
                                       and output file (None if not written)
    """
    config = load_config(fn_config)
    if data_root is not None:
        config = config.replace(data_root=data_root)

    session = init_session(config)

    fn_out = None
    if outdir is not None:
        fn_out = os.path.join(outdir, f'{config.session_name}.nc')
        logger.info(f'Creating output file: {fn_out}')
        write_session(session, fn_out)
    return config.session_name, session.n_obs, fn_out


@task
def init_session_task(fn_config: str, outdir: str, data_root: str, verbose: bool):
    """Parallelizable task for session initialization.

    Configuration errors are returned, not raised, so one bad session does
    not stop the batch.
    """
    if not verbose:
        reset_logger(use_tqdm=True, disable=True)
    try:
        return init_session_file(fn_config, outdir, data_root)
    except ConfigurationError as e:
        logger.error(f'{fn_config}: {e}')
        return fn_config, None, None


def run(args=None):
    """Command-line utility for session initialization.

    Args:
        args (list): List of command line arguments to pass to parse_args().

    Returns:
        results (list): (session_name, n_obs, fn_out) per configuration file,
                        None if argument errors were found
    """
    args = parse_args(args)
    config_error_found = False

    # Reset logger
    reset_logger(level='DEBUG' if args.verbose else 'INFO')
    logger.info(f'vlbi_init {__version__}')

    if args.template:
        with open(get_resource_path(TEMPLATE_CONFIG), 'r') as fh:
            print(fh.read())
        return None

    if not args.config:
        logger.error('No session config passed.')
        config_error_found = True

    for fn in args.config:
        if not os.path.exists(fn):
            logger.error(f'Cannot find session config: {fn}')
            config_error_found = True

    if args.num_workers < 1:
        logger.error(f'Number of workers must be at least 1: {args.num_workers}')
        config_error_found = True

    if args.parallel_backend not in ('loky', 'threading'):
        logger.error(f'Parallel backend not valid: {args.parallel_backend}')
        config_error_found = True

    if args.outdir is not None and os.path.exists(args.outdir) and not os.path.isdir(args.outdir):
        logger.error(f'Output path exists and is not a directory: {args.outdir}')
        config_error_found = True

    # Raise error and quit if config issues exist
    if config_error_found:
        logger.error('Errors found. Please check arguments.')
        return None

    if args.outdir is not None and not os.path.exists(args.outdir):
        logger.info(f'Creating directory {args.outdir}')
        os.makedirs(args.outdir)

    logger.info(f'Starting initialization of {len(args.config)} sessions with {args.num_workers} workers')

    if args.num_workers > 1 and len(args.config) > 1:
        task_list = [init_session_task(fn, args.outdir, args.data_root, args.verbose) for fn in args.config]
        results = run_in_parallel(
            task_list,
            n_workers=args.num_workers,
            backend=args.parallel_backend,
            verbose=args.verbose,
        )
    else:
        results = []
        for fn in args.config:
            try:
                results.append(init_session_file(fn, args.outdir, args.data_root))
            except ConfigurationError as e:
                logger.error(f'{fn}: {e}')
                if len(args.config) == 1:
                    raise
                results.append((fn, None, None))

    n_failed = sum(1 for r in results if r[1] is None)
    if n_failed:
        logger.warning(f'{n_failed} of {len(results)} sessions failed')
    return results


if __name__ == '__main__':  # pragma: no cover
    run(sys.argv[1:])
