"""frames: Terrestrial and celestial reference frame catalogs.

Catalogs are YAML files::

    # TRF
    stations:
      WETTZELL:
        x: 4075539.5173     # m
        y: 931735.2717
        z: 4801629.3505
        mount: AZEL
        axis_offset: 0.0    # m

    # CRF
    sources:
      0059+581:
        ra: 02h02m45.76s    # or degrees, as a number
        dec: +58d24m11.1s

Station names are compared after stripping whitespace.
"""

import os
from dataclasses import dataclass, field

import numpy as np
from astropy.coordinates import SkyCoord
from loguru import logger

from ..config import InitConfig
from ..errors import ConfigurationError
from ..utils import load_yaml


@dataclass
class ReferenceFrames:
    """TRF and CRF catalog entries for one session (read-only after loading)."""

    # fmt: off
    trf: dict = field(default_factory=dict)     # station name -> dict(x, y, z, mount, axis_offset)
    crf: dict = field(default_factory=dict)     # source name -> (ra, de) in rad
    trf_file: str = None
    crf_file: str = None
    # fmt: on

    def station(self, name: str) -> dict:
        """TRF entry of a station, None if not in catalog."""
        return self.trf.get(name.strip())

    def source(self, name: str) -> tuple:
        """(ra, de) of a source in rad, None if not in catalog."""
        return self.crf.get(name.strip())


def _parse_direction(name: str, entry: dict, filename: str) -> tuple:
    ra, dec = entry.get('ra'), entry.get('dec', entry.get('de'))
    if ra is None or dec is None:
        raise ConfigurationError(f'{filename}: source {name} needs ra and dec')
    if isinstance(ra, str) or isinstance(dec, str):
        coord = SkyCoord(str(ra), str(dec), unit=('hourangle', 'deg'), frame='icrs')
    else:
        coord = SkyCoord(float(ra), float(dec), unit='deg', frame='icrs')
    return float(coord.ra.rad), float(coord.dec.rad)


def read_trf(filename: str) -> dict:
    """Read a TRF catalog.

    Args:
        filename (str): Path to TRF YAML file

    Returns:
        trf (dict): station name -> dict(x, y, z, mount, axis_offset)
    """
    d = load_yaml(filename) or {}
    trf = {}
    for name, entry in (d.get('stations') or {}).items():
        try:
            trf[str(name).strip()] = {
                'x': float(entry['x']),
                'y': float(entry['y']),
                'z': float(entry['z']),
                'mount': str(entry.get('mount', '')),
                'axis_offset': float(entry.get('axis_offset', 0.0)),
            }
        except (KeyError, TypeError, ValueError):
            raise ConfigurationError(f'{filename}: bad entry for station {name}') from None
    return trf


def read_crf(filename: str) -> dict:
    """Read a CRF catalog.

    Args:
        filename (str): Path to CRF YAML file

    Returns:
        crf (dict): source name -> (ra, de) in rad
    """
    d = load_yaml(filename) or {}
    return {str(name).strip(): _parse_direction(name, entry, filename) for name, entry in (d.get('sources') or {}).items()}


def get_trf_and_crf(config: InitConfig) -> ReferenceFrames:
    """Load the TRF and CRF catalogs named in the session configuration.

    A catalog that is not configured, or not found, is replaced by an empty
    one (with a warning); positions then come from the session data itself.

    Args:
        config (InitConfig): Session configuration

    Returns:
        frames (ReferenceFrames): Catalogs and the file names they came from
    """
    frames = ReferenceFrames()

    if config.trf_file and os.path.exists(config.trf_file):
        frames.trf = read_trf(config.trf_file)
        frames.trf_file = config.trf_file
        logger.info(f'TRF: {config.trf_file} ({len(frames.trf)} stations)')
    else:
        logger.warning(f'No TRF catalog found ({config.trf_file}), using a priori positions from session data')

    if config.crf_file and os.path.exists(config.crf_file):
        frames.crf = read_crf(config.crf_file)
        frames.crf_file = config.crf_file
        logger.info(f'CRF: {config.crf_file} ({len(frames.crf)} sources)')
    else:
        logger.warning(f'No CRF catalog found ({config.crf_file}), using a priori directions from session data')

    return frames


def apriori_positions(names: list, xyz: np.ndarray) -> dict:
    """Build TRF-like entries from a priori station positions (e.g. vgosDB Apriori tables)."""
    xyz = np.asarray(xyz, dtype='float64').reshape(-1, 3)
    return {n: {'x': p[0], 'y': p[1], 'z': p[2], 'mount': '', 'axis_offset': 0.0} for n, p in zip(names, xyz)}


def apriori_directions(names: list, radec: np.ndarray) -> dict:
    """Build CRF-like entries from a priori source directions (rad)."""
    radec = np.asarray(radec, dtype='float64').reshape(-1, 2)
    return {n: (float(rd[0]), float(rd[1])) for n, rd in zip(names, radec)}
