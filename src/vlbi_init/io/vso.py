"""vso: Readers for VSO observation tables and spacecraft orbit files."""

import os

import pandas as pd
from astropy.time import Time
from loguru import logger

from ..errors import ConfigurationError

# fmt: off
VSO_COLUMNS = ('year', 'month', 'day', 'hour', 'minute', 'second',
               'source', 'station1', 'station2',
               'delay', 'sigma',        # Group delay and sigma (s)
               'delion', 'sgdion')      # Ionosphere delay and sigma (ns), optional
# fmt: on

N_REQUIRED = 11


def read_vso(filename: str) -> pd.DataFrame:
    """Read a VSO observation table.

    One observation per line, whitespace separated::

        # year month day hour minute second source station1 station2 delay sigma [delion sgdion]
        2017 1 3 18 30 0.0 0059+581 WETTZELL ONSALA60 -1.234e-3 2.1e-11 0.31 0.02

    Args:
        filename (str): Path to VSO file

    Returns:
        df (pd.DataFrame): Columns as VSO_COLUMNS; delion/sgdion are 0 when not given

    Raises:
        ConfigurationError: if the table has too few columns
    """
    df = pd.read_csv(filename, sep=r'\s+', comment='#', header=None, dtype=str)

    if df.shape[1] < N_REQUIRED:
        raise ConfigurationError(f'{filename}: expected at least {N_REQUIRED} columns, found {df.shape[1]}')
    if df.shape[1] > len(VSO_COLUMNS):
        logger.warning(f'{filename}: ignoring {df.shape[1] - len(VSO_COLUMNS)} extra columns')
        df = df.iloc[:, : len(VSO_COLUMNS)]
    if df.shape[1] == N_REQUIRED + 1:
        raise ConfigurationError(f'{filename}: ionosphere columns need both delion and sgdion')

    df.columns = VSO_COLUMNS[: df.shape[1]]
    for col in ('delion', 'sgdion'):
        if col not in df.columns:
            df[col] = 0.0

    try:
        for col in ('year', 'month', 'day', 'hour', 'minute'):
            df[col] = df[col].astype('int64')
        for col in ('second', 'delay', 'sigma', 'delion', 'sgdion'):
            df[col] = df[col].astype('float64')
    except ValueError as e:
        raise ConfigurationError(f'{filename}: non-numeric value in numeric column ({e})') from None

    return df


def detect_orbit_file_type(filename: str) -> str:
    """Choose the orbit file type from the file extension.

    Args:
        filename (str): Orbit file path

    Returns:
        file_type (str): 'sp3' for .sp3 files, otherwise 'sat_ephem_trf'
    """
    return 'sp3' if filename.lower().endswith('.sp3') else 'sat_ephem_trf'


def _read_sp3(filename: str) -> pd.DataFrame:
    """Read positions from an SP3 orbit file (km converted to m)."""
    rows = []
    epoch = None
    with open(filename, 'r') as fh:
        for line in fh:
            if line.startswith('*'):
                tokens = line[1:].split()
                epoch = Time(
                    {
                        'year': int(tokens[0]),
                        'month': int(tokens[1]),
                        'day': int(tokens[2]),
                        'hour': int(tokens[3]),
                        'minute': int(tokens[4]),
                        'second': float(tokens[5]),
                    },
                    format='ymdhms',
                    scale='utc',
                ).mjd
            elif line.startswith('P') and epoch is not None:
                name = line[1:4].strip()
                x, y, z = (float(v) * 1e3 for v in line[4:].split()[:3])
                rows.append((name, epoch, x, y, z))
    return pd.DataFrame(rows, columns=('name', 'mjd', 'x', 'y', 'z'))


def _read_sat_ephem_trf(filename: str) -> pd.DataFrame:
    """Read a whitespace table: name mjd x y z [vx vy vz] (m, m/s)."""
    df = pd.read_csv(filename, sep=r'\s+', comment='#', header=None)
    columns = ('name', 'mjd', 'x', 'y', 'z', 'vx', 'vy', 'vz')
    if df.shape[1] not in (5, 8):
        raise ConfigurationError(f'{filename}: expected 5 or 8 columns, found {df.shape[1]}')
    df.columns = columns[: df.shape[1]]
    df['name'] = df['name'].astype(str)
    return df


def read_orbit_file(filename: str, file_type: str = None) -> pd.DataFrame:
    """Read a spacecraft orbit file.

    Args:
        filename (str): Path to orbit file
        file_type (str): 'sp3' or 'sat_ephem_trf'. Detected from extension if None.

    Returns:
        eph (pd.DataFrame): Columns name, mjd, x, y, z (m, terrestrial frame),
                            and vx, vy, vz (m/s) where available. Sorted by name, mjd.
    """
    if not os.path.exists(filename):
        raise ConfigurationError(f'Orbit file not found: {filename}')
    file_type = file_type or detect_orbit_file_type(filename)
    logger.info(f'Reading {file_type} orbit file: {filename}')

    if file_type == 'sp3':
        eph = _read_sp3(filename)
    elif file_type == 'sat_ephem_trf':
        eph = _read_sat_ephem_trf(filename)
    else:
        raise ConfigurationError(f'Unknown orbit file type: {file_type}')

    eph = eph.sort_values(['name', 'mjd'], kind='stable').reset_index(drop=True)
    logger.debug(f'{filename}: {len(eph)} epochs for {eph["name"].nunique()} spacecraft')
    return eph
