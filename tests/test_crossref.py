"""test_crossref: Tests for cross-reference resolution."""

import numpy as np
import pytest
from session_data import OBS2BASELINE, OBS2SCAN, SCAN2SOURCE, SCAN2STATION
from vlbi_init.crossref import broadcast_baselines, resolve_cross_reference
from vlbi_init.errors import CrossReferenceError


def test_resolve_cross_reference():
    """Resolve the standard 2 scan, 4 observation topology."""
    xref = resolve_cross_reference(OBS2BASELINE, OBS2SCAN, SCAN2STATION, SCAN2SOURCE)

    assert xref.n_scans == 2
    assert xref.n_obs == 4
    assert list(xref.scan_stations[0]) == [0, 1, 2]
    assert list(xref.scan_stations[1]) == [0, 1]
    assert list(xref.scan_counters[1]) == [1, 1]
    assert list(xref.scan_obs[0]) == [0, 1, 2]
    assert list(xref.scan_obs[1]) == [3]
    assert list(xref.scan_source) == [0, 1]
    assert xref.baselines.tolist() == [[0, 1], [0, 2], [1, 2], [0, 1]]
    assert xref.local_baselines.tolist() == [[0, 1], [0, 2], [1, 2], [0, 1]]


def test_local_baselines():
    """Local baselines index into the scan's own station list."""
    scan2station = np.array([[0, 1, 1]])
    xref = resolve_cross_reference([[2, 3]], [1], scan2station, [1])
    assert list(xref.scan_stations[0]) == [1, 2]
    assert xref.local_baselines.tolist() == [[0, 1]]
    assert xref.baselines.tolist() == [[1, 2]]


def test_station_not_in_scan():
    """An observation of a station absent from its scan is fatal."""
    scan2station = np.array([[1, 1, 0], [2, 2, 1]])
    with pytest.raises(CrossReferenceError):
        resolve_cross_reference([[1, 3]], [1], scan2station, [1, 1])


def test_inconsistent_sizes():
    """Mismatched table sizes are fatal."""
    with pytest.raises(CrossReferenceError):
        resolve_cross_reference(OBS2BASELINE, OBS2SCAN, SCAN2STATION, [1])
    with pytest.raises(CrossReferenceError):
        resolve_cross_reference(OBS2BASELINE, [1, 1, 1, 3], SCAN2STATION, SCAN2SOURCE)
    with pytest.raises(CrossReferenceError):
        resolve_cross_reference([[1, 4]] * 4, OBS2SCAN, SCAN2STATION, SCAN2SOURCE)


def test_broadcast_baselines():
    """A single baseline row is repeated for all observations."""
    bl = broadcast_baselines(np.array([[1, 2]]), 3)
    assert bl.shape == (3, 2)
    assert bl.tolist() == [[1, 2]] * 3

    # (2, N) storage is transposed
    bl = broadcast_baselines(np.array([[1, 1, 2], [2, 3, 3]]), 3)
    assert bl.tolist() == [[1, 2], [1, 3], [2, 3]]

    with pytest.raises(CrossReferenceError):
        broadcast_baselines(np.array([[1, 2], [1, 3]]), 3)


if __name__ == '__main__':
    test_resolve_cross_reference()
    test_local_baselines()
    test_station_not_in_scan()
    test_inconsistent_sizes()
    test_broadcast_baselines()
