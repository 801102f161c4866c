"""crossref: Resolve observation/scan/station cross-reference tables.

The container format stores observations as flat arrays. Four independently
indexed tables tie them together:

    obs2baseline  (N_obs, 2)       1-based station indices of each observation
    obs2scan      (N_obs,)         1-based scan index of each observation
    scan2station  (N_scan, N_sta)  nonzero if station participates in scan. The
                                   value is the 1-based row of that scan in the
                                   station's own tables (met, cable cal).
    scan2source   (N_scan,)        1-based source index of each scan
"""

from dataclasses import dataclass

import numpy as np
from loguru import logger

from .errors import CrossReferenceError


@dataclass
class CrossReference:
    """Resolved session topology (all indices 0-based)."""

    # fmt: off
    scan_stations: list         # Per scan: participating station indices (ascending)
    scan_counters: list         # Per scan: row index into each participating station's tables
    scan_obs: list              # Per scan: observation indices, in input order
    baselines: np.ndarray       # (N_obs, 2) global station indices
    local_baselines: np.ndarray # (N_obs, 2) indices into scan_stations of the parent scan
    obs_scan: np.ndarray        # (N_obs,) parent scan index
    scan_source: np.ndarray     # (N_scan,) source index
    # fmt: on

    @property
    def n_scans(self) -> int:
        """Number of scans."""
        return len(self.scan_stations)

    @property
    def n_obs(self) -> int:
        """Number of observations."""
        return len(self.obs_scan)


def broadcast_baselines(obs2baseline: np.ndarray, n_obs: int) -> np.ndarray:
    """Return a (N_obs, 2) baseline array, broadcasting a single baseline row.

    Intensive sessions (single baseline) may store only one row.

    Args:
        obs2baseline (np.ndarray): (N_obs, 2) or (1, 2) or (2,) baseline array
        n_obs (int): Number of observations

    Returns:
        bl (np.ndarray): (N_obs, 2) integer array
    """
    bl = np.asarray(obs2baseline)
    if bl.ndim == 1:
        bl = bl.reshape(-1, 2)
    if bl.ndim != 2 or bl.shape[1] != 2:
        if bl.ndim == 2 and bl.shape[0] == 2:
            bl = bl.T
        else:
            raise CrossReferenceError(f'Obs2Baseline has unexpected shape {bl.shape}')

    if bl.shape[0] == 1 and n_obs > 1:
        logger.warning('Obs2Baseline only provided for one baseline! Values duplicated for all observations.')
        bl = np.repeat(bl, n_obs, axis=0)
    elif bl.shape[0] != n_obs:
        raise CrossReferenceError(f'Obs2Baseline has {bl.shape[0]} rows, expected {n_obs}')

    return bl.astype('int64')


def resolve_cross_reference(
    obs2baseline: np.ndarray,
    obs2scan: np.ndarray,
    scan2station: np.ndarray,
    scan2source: np.ndarray,
) -> CrossReference:
    """Build scan/station/observation topology from cross-reference tables.

    Args:
        obs2baseline (np.ndarray): (N_obs, 2) 1-based station indices per observation
        obs2scan (np.ndarray): (N_obs,) 1-based scan index per observation
        scan2station (np.ndarray): (N_scan, N_sta) station participation / counter matrix
        scan2source (np.ndarray): (N_scan,) 1-based source index per scan

    Returns:
        xref (CrossReference): Resolved topology, 0-based indices

    Raises:
        CrossReferenceError: if tables are inconsistent (e.g. observation station not in scan)
    """
    obs2scan = np.atleast_1d(np.asarray(obs2scan)).astype('int64').ravel() - 1
    scan2station = np.atleast_2d(np.asarray(scan2station)).astype('int64')
    scan2source = np.atleast_1d(np.asarray(scan2source)).astype('int64').ravel() - 1

    n_obs = len(obs2scan)
    n_scan, n_sta = scan2station.shape

    if len(scan2source) != n_scan:
        raise CrossReferenceError(f'Scan2Source has {len(scan2source)} entries, Scan2Station has {n_scan} scans')
    if n_obs and (obs2scan.min() < 0 or obs2scan.max() >= n_scan):
        raise CrossReferenceError('Obs2Scan references a scan outside Scan2Station')

    baselines = broadcast_baselines(obs2baseline, n_obs) - 1
    if n_obs and (baselines.min() < 0 or baselines.max() >= n_sta):
        raise CrossReferenceError('Obs2Baseline references a station outside Scan2Station')

    scan_stations = []
    scan_counters = []
    scan_obs = []
    local_baselines = np.zeros_like(baselines)

    for i_scan in range(n_scan):
        row = scan2station[i_scan]
        stations = np.flatnonzero(row > 0)
        scan_stations.append(stations)
        scan_counters.append(row[stations] - 1)

        obs_idx = np.flatnonzero(obs2scan == i_scan)
        scan_obs.append(obs_idx)

        # Translate global station index into position within this scan's station list
        lut = np.full(n_sta, -1, dtype='int64')
        lut[stations] = np.arange(len(stations))
        local = lut[baselines[obs_idx]]
        if np.any(local < 0):
            bad = obs_idx[np.any(local < 0, axis=1)][0]
            raise CrossReferenceError(
                f'Observation {bad + 1} references station not participating in scan {i_scan + 1}'
            )
        local_baselines[obs_idx] = local

    xref = CrossReference(
        scan_stations=scan_stations,
        scan_counters=scan_counters,
        scan_obs=scan_obs,
        baselines=baselines,
        local_baselines=local_baselines,
        obs_scan=obs2scan,
        scan_source=scan2source,
    )
    return xref
