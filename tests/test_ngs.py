"""test_ngs: Tests for NGS file reading and the NGS adapter."""

import os

import numpy as np
import pytest
from session_data import (
    DELAY_FULL,
    DELAY_SIG,
    SESSION,
    STATIONS,
    make_config,
    source_rad,
    standard_observations,
    write_catalogs,
    write_ngs,
)
from vlbi_init.adapters import NgsAdapter
from vlbi_init.config import SourceEstimation
from vlbi_init.datamodel import Policy
from vlbi_init.errors import ConfigurationError
from vlbi_init.io import ReferenceFrames, get_trf_and_crf, read_ngs


def test_read_ngs(ngs_file):
    """Read station, source and data cards."""
    ngs = read_ngs(ngs_file)

    assert ngs.header[0].startswith('DATA IN NGS FORMAT')
    assert list(ngs.stations['name']) == list(STATIONS)
    assert ngs.stations['x'].iloc[0] == pytest.approx(4075539.5173)
    assert ngs.stations['mount'].iloc[0] == 'AZEL'

    ra, de = source_rad('0059+581')
    assert ngs.sources['ra'].iloc[0] == pytest.approx(ra, abs=1e-9)
    assert ngs.sources['de'].iloc[0] == pytest.approx(de, abs=1e-9)

    obs = ngs.observations
    assert len(obs) == 4
    assert list(obs['station1']) == ['WETTZELL', 'WETTZELL', 'ONSALA60', 'WETTZELL']
    assert list(obs['source']) == ['0059+581'] * 3 + ['1803+784']
    assert obs['second'].iloc[3] == pytest.approx(30.0)
    assert np.allclose(obs['delay'], DELAY_FULL, rtol=1e-9)
    assert np.allclose(obs['sigma'], DELAY_SIG, rtol=1e-4)

    # Humidity converted from percent
    assert obs['hum1'].iloc[0] == pytest.approx(0.8)
    assert obs['cab2'].iloc[0] == pytest.approx(0.03)


def test_incomplete_observation(tmp_path, log_messages):
    """Observations without a delay card are dropped with a warning."""
    observations = standard_observations()
    fn = str(tmp_path / 'incomplete.ngs')
    write_ngs(fn, observations)

    # Drop the card 02 of observation 2
    with open(fn) as fh:
        lines = [line for line in fh if not line.rstrip('\n').endswith('       202')]
    with open(fn, 'w') as fh:
        fh.writelines(lines)

    ngs = read_ngs(fn)
    assert len(ngs.observations) == 3
    assert any('dropping 1 observations' in m for m in log_messages)


def test_unterminated_block(tmp_path):
    """Missing $END markers are fatal."""
    fn = str(tmp_path / 'bad.ngs')
    with open(fn, 'w') as fh:
        fh.write('DATA IN NGS FORMAT\n\nWETTZELL    4075539.5173    931735.2717   4801629.3505 AZEL\n')
    with pytest.raises(ConfigurationError):
        read_ngs(fn)


def test_ngs_adapter(ngs_file, data_root):
    """NGS adapter normalizes the standard session."""
    config = make_config(data_root, 'ngs')
    session = NgsAdapter().load(ngs_file, config, ReferenceFrames(), Policy())

    assert session.name == SESSION
    assert session.data_type == 'ngs'
    assert session.antenna_names == list(STATIONS)
    assert len(session.scans) == 2
    assert [s.nobs for s in session.scans] == [3, 1]
    assert session.scans[0].station_indices == [0, 1, 2]

    # Cable calibration (0.01, 0.03 ns) applied, ionosphere subtracted
    obs = session.scans[0].observations[0]
    expected = DELAY_FULL[0] + 0.02e-9 - obs.delion * 1e-9
    assert obs.delay == pytest.approx(expected, abs=1e-17)
    assert obs.delion == pytest.approx(0.1)

    # Met from card 06, station 1 of first observation
    st = session.scans[0].station(0)
    assert st.temp == 10.0
    assert st.pres == 950.0
    assert st.e == pytest.approx(6.1078 * np.exp(171.0 / 245.0) * 0.8)

    # Apriori positions from station cards
    assert not session.antennas[0].in_trf
    assert session.antennas[0].x == pytest.approx(4075539.5173)

    # Sources: all quasars, 1 scan each, so out of NNR datum
    assert len(session.sources.quasars) == 2
    assert session.sources.spacecraft == []
    assert all(not s.in_reference_frame for s in session.sources.quasars)
    assert session.sources.quasars[0].n_obs == 3


def test_ngs_adapter_catalogued_sources(tmp_path, data_root):
    """Catalogued sources keep their CRF flags unless they have fewer than 3 scans."""
    obs = standard_observations()
    obs[1]['epoch'] = (2017, 1, 3, 18, 31, 0.0)
    obs[2]['epoch'] = (2017, 1, 3, 18, 32, 0.0)
    fn = str(tmp_path / 'catalogued.ngs')
    write_ngs(fn, obs)
    fn_trf, fn_crf = write_catalogs(str(tmp_path))

    flags = {}
    for mode in ('nnr', 'pwl', 'none'):
        config = make_config(
            data_root, 'ngs', trf_file=fn_trf, crf_file=fn_crf, source_estimation=SourceEstimation(mode)
        )
        session = NgsAdapter().load(fn, config, get_trf_and_crf(config), Policy())
        assert [s.n_scans for s in session.sources.quasars] == [3, 1]
        flags[mode] = [(s.in_reference_frame, s.fixed_in_estimation) for s in session.sources.quasars]

    assert flags['nnr'] == [(True, False), (False, False)]
    assert flags['pwl'] == [(True, False), (True, True)]
    assert flags['none'] == [(True, False), (True, False)]


def test_ngs_adapter_no_cable_cal(ngs_file, data_root):
    """Stations without cable calibration contribute zero cable delay."""
    config = make_config(data_root, 'ngs', ionosphere_correction=False)
    policy = Policy(no_cable_cal=('ONSALA60',))
    session = NgsAdapter().load(ngs_file, config, ReferenceFrames(), policy)

    obs = session.scans[0].observations[0]
    # cab2 of ONSALA60 ignored, cab1 of WETTZELL (0.01 ns) subtracted
    assert obs.delay == pytest.approx(DELAY_FULL[0] - 0.01e-9, abs=1e-17)
    assert not session.antennas[1].cable_cal
    assert session.scans[0].station(1).cab == 0.0


if __name__ == '__main__':
    import tempfile

    root = tempfile.mkdtemp()
    os.makedirs(os.path.join(root, 'NGS', '2017'))
    fn = os.path.join(root, 'NGS', '2017', SESSION)
    write_ngs(fn, standard_observations())
    test_read_ngs(fn)
    test_ngs_adapter(fn, root)
