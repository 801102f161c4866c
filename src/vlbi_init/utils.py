"""utils: Utilities used in vlbi_init package."""

import os
import sys

import numpy as np
import vlbi_init
import yaml
from loguru import logger
from tqdm import tqdm


def reset_logger(
    use_tqdm: bool = False, disable: bool = False, level: str = 'INFO'
) -> logger:
    """Reset loguru logger and setup output format.

    Helps loguru (logger), tqdm (progress bar) and joblib (parallel) work together.

    Args:
        use_tqdm (bool): Set to true if using tqdm progress bar
        disable (bool): Disable the logger (set to ERROR only output)
        level (str): One of DEBUG, INFO, WARNING, ERROR, CRITICAL

    Notes:
        If using the `@task` decorator, it's a good idea to add reset_logger
        to your function to keep the task quiet so progress bar shows, eg::

            @task
            def init_session_task(fn_config, ...):
            if not verbose:
                reset_logger(use_tqdm=True, disable=True)

    Returns:
        logger (logger): loguru logger object
    """
    logger.remove()
    logger_fmt = '<g>{time:HH:mm:ss.S}</g> | <w><b>{level}</b></w> | {message}'
    if not disable:
        if not use_tqdm:
            logger.add(sys.stdout, format=logger_fmt, level=level, colorize=True)
        else:
            logger.add(
                lambda msg: tqdm.write(msg, end=''),
                format=logger_fmt,
                level=level,
                colorize=True,
            )
    else:
        logger.add(
            lambda msg: tqdm.write(msg, end=''),
            format=logger_fmt,
            level='ERROR',
            colorize=True,
        )
    return logger


def load_yaml(filename: str) -> dict:
    """Read YAML file into a Python dict."""
    with open(filename, 'r') as fh:
        d = yaml.load(fh, yaml.Loader)
    return d


def get_resource_path(relative_path: str) -> str:
    """Get the path to an internal package resource (e.g. data file).

    Args:
        relative_path (str): Relative path to data file, e.g. 'data/session_template.yaml'

    Returns:
        abs_path (str): Absolute path to the data file
    """
    path_root = os.path.abspath(vlbi_init.__path__[0])
    abs_path = os.path.join(path_root, relative_path)

    if not os.path.exists(abs_path):
        logger.warning(f'File not found: {abs_path}')

    return os.path.abspath(abs_path)


def get_software_versions() -> dict:
    """Return version of main software packages."""
    from astropy import __version__ as astropy_version
    from numpy import __version__ as numpy_version
    from pandas import __version__ as pandas_version
    from vlbi_init import __version__ as vlbi_init_version
    from xarray import __version__ as xarray_version

    # fmt: off
    software = {
        'vlbi_init':      vlbi_init_version,
        'astropy':        astropy_version,
        'numpy':          numpy_version,
        'xarray':         xarray_version,
        'pandas':         pandas_version,
    }
    # fmt: on

    return software


def decode_strings(arr) -> list:
    """Decode a netCDF string or character array into a list of stripped strings.

    Args:
        arr (array-like): 1D array of str/bytes, or 2D char array (N_str, N_char)

    Returns:
        strings (list): List of python strings, whitespace stripped
    """
    arr = np.asarray(arr)
    if arr.ndim == 0:
        arr = arr.reshape(1)

    if arr.dtype.kind in ('S', 'U') and arr.ndim == 2 and arr.dtype.itemsize in (1, 4):
        # Character array, one string per row
        rows = [b''.join(r) if arr.dtype.kind == 'S' else ''.join(r) for r in arr]
    else:
        rows = list(arr)

    strings = []
    for s in rows:
        if isinstance(s, bytes):
            s = s.decode('ascii', errors='replace')
        strings.append(str(s).strip().strip('\x00').strip())
    return strings
