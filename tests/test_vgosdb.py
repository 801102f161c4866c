"""test_vgosdb: Tests for vgosDB reading, table resolution and normalization."""

import os

import numpy as np
import pytest
from session_data import (
    CABLE,
    DELAY,
    DELAY_FULL,
    DELAY_SIG,
    IONO,
    IONO_SIG,
    SESSION,
    SOURCES,
    STATIONS,
    build_vgosdb_dump,
    make_config,
    write_vgosdb,
)
from vlbi_init.adapters.vgosdb import (
    FREQUENCY_BANDS,
    broadcast_delay_flag,
    get_band_config,
    normalize_vgosdb,
)
from vlbi_init.config import VgosDbSettings
from vlbi_init.datamodel import Policy
from vlbi_init.datamodel.session import check_session
from vlbi_init.errors import ConfigurationError, CrossReferenceError, TableResolutionError, WrapperNotFoundError
from vlbi_init.io import ReferenceFrames, find_wrapper, read_vgosdb, read_wrapper
from vlbi_init.io.vgosdb import (
    EDIT,
    MET,
    TableRegistry,
    Wrapper,
    band_role,
    get_variable,
    parse_table_name,
    parse_wrapper_name,
)


def _touch(directory, *names):
    os.makedirs(directory, exist_ok=True)
    for name in names:
        with open(os.path.join(directory, name), 'w') as fh:
            fh.write('')


def test_parse_wrapper_name():
    """Split wrapper names into session, version, institution and kind."""
    w = parse_wrapper_name('17JAN03XA_V004_iIVS_kall.wrp')
    assert (w.session, w.version, w.institution, w.kind) == ('17JAN03XA', 4, 'IVS', 'all')

    w = parse_wrapper_name('/data/17JAN03XA_V002_kall.wrp')
    assert w.institution is None
    assert w.kind == 'all'

    assert parse_wrapper_name('17JAN03XA_V004_iIVS_kall.txt') is None


def test_find_wrapper(tmp_path):
    """Highest version of the selected institution and tag wins."""
    d = str(tmp_path)
    _touch(
        d,
        f'{SESSION}_V002_iIVS_kall.wrp',
        f'{SESSION}_V004_iIVS_kall.wrp',
        f'{SESSION}_V005_iGSFC_kall.wrp',
        f'{SESSION}_V006_iIVS_kngs.wrp',
    )
    assert os.path.basename(find_wrapper(d, SESSION)) == f'{SESSION}_V004_iIVS_kall.wrp'
    assert os.path.basename(find_wrapper(d, SESSION, version='2')) == f'{SESSION}_V002_iIVS_kall.wrp'
    assert os.path.basename(find_wrapper(d, SESSION, institution='GSFC')) == f'{SESSION}_V005_iGSFC_kall.wrp'

    with pytest.raises(WrapperNotFoundError):
        find_wrapper(d, SESSION, institution='BKG')
    with pytest.raises(WrapperNotFoundError):
        find_wrapper(d, SESSION, version='9')
    with pytest.raises(WrapperNotFoundError):
        find_wrapper(str(tmp_path / 'missing'), SESSION)


def test_find_wrapper_without_institution(tmp_path, log_messages):
    """Wrappers without institution tag are a fallback."""
    d = str(tmp_path)
    _touch(d, f'{SESSION}_V001_kall.wrp', f'{SESSION}_V003_kall.wrp')
    assert os.path.basename(find_wrapper(d, SESSION, institution='IVS')) == f'{SESSION}_V003_kall.wrp'
    assert any('without institution tag' in m for m in log_messages)


def test_read_wrapper(tmp_path):
    """Parse wrapper blocks into table paths per scope."""
    fn = str(tmp_path / f'{SESSION}_V004_iIVS_kall.wrp')
    with open(fn, 'w') as fh:
        fh.write(
            '! comment\n'
            'Begin History\n'
            'Begin Program calc\n'
            'Default_Dir History\n'
            'Ignored.nc\n'
            'End Program calc\n'
            'End History\n'
            'Begin Session\n'
            'Head.nc\n'
            'Default_Dir CrossReference\n'
            'StationCrossRef.nc\n'
            'End Session\n'
            'Begin Station DSS 65\n'
            'Default_Dir DSS_65\n'
            'Met.nc\n'
            'End Station DSS 65\n'
            'Begin Observation\n'
            'Default_Dir ObsEdit\n'
            'GroupDelayFull_bX_V002_iIVS.nc\n'
            'End Observation\n'
        )
    w = read_wrapper(fn)
    assert w.session == ['Head.nc', os.path.join('CrossReference', 'StationCrossRef.nc')]
    assert w.stations == {'DSS_65': [os.path.join('DSS_65', 'Met.nc')]}
    assert w.files('Station', 'DSS 65') == [os.path.join('DSS_65', 'Met.nc')]
    assert w.observation == [os.path.join('ObsEdit', 'GroupDelayFull_bX_V002_iIVS.nc')]
    assert w.scan == []
    assert 'Ignored.nc' not in ''.join(w.all_files())


def test_parse_table_name():
    """Table names are split into structural fields."""
    n = parse_table_name('ObsEdit/GroupDelayFull_bX_V002_iIVS_kall.nc')
    assert (n.stem, n.band, n.version, n.institution, n.kind) == ('GroupDelayFull', 'X', 2, 'IVS', 'all')

    n = parse_table_name('ObsDerived/Cal-SlantPathIonoGroup_bS.nc')
    assert (n.stem, n.band, n.version) == ('Cal-SlantPathIonoGroup', 'S', None)

    n = parse_table_name('Edit.nc')
    assert (n.stem, n.band, n.institution) == ('Edit', None, None)

    # Band is an exact token, not a substring
    n = parse_table_name('GroupDelay_bX_plus.nc')
    assert n.stem == 'GroupDelay_plus'
    assert n.band == 'X'


def test_registry_resolution():
    """Roles bind to exactly one structurally matching table."""
    wrapper = Wrapper(
        filename='w.wrp',
        observation=[
            'ObsEdit/GroupDelayFull_bX_V002_iIVS.nc',
            'ObsEdit/GroupDelayFull_bX_V001.nc',
            'ObsEdit/GroupDelayFull_bS_V002_iIVS.nc',
            'Observables/GroupDelay_bX.nc',
            'ObsEdit/Edit_V001.nc',
        ],
        stations={'WETTZELL': ['WETTZELL/Met.nc']},
    )
    registry = TableRegistry(wrapper, 'IVS')

    # Institution tagged table takes precedence
    role = band_role('GroupDelayFull', 'X', by_institution=True)
    assert registry.resolve(role) == 'ObsEdit/GroupDelayFull_bX_V002_iIVS.nc'

    # Untagged table for an institution role without a tagged match
    assert registry.resolve(EDIT) == 'ObsEdit/Edit_V001.nc'

    assert registry.resolve(MET, 'WETTZELL') == 'WETTZELL/Met.nc'
    assert registry.resolve(MET, 'ONSALA60') is None
    assert ('Met', 'WETTZELL') in registry.bindings

    with pytest.raises(TableResolutionError) as e:
        registry.resolve(band_role('GroupDelay', 'S'))
    assert e.value.candidates == []


def test_registry_ambiguous():
    """Two equally good candidates is an error naming both."""
    wrapper = Wrapper(
        filename='w.wrp',
        observation=['ObsEdit/Edit_V001_iIVS.nc', 'ObsEdit/Edit_V002_iIVS.nc'],
    )
    with pytest.raises(TableResolutionError) as e:
        TableRegistry(wrapper, 'IVS').resolve(EDIT)
    assert len(e.value.candidates) == 2
    assert 'Ambiguous' in str(e.value)


def test_band_configs():
    """All frequency band settings resolve; plusiono bands use their own band."""
    assert len(FREQUENCY_BANDS) == 6
    for name, band in FREQUENCY_BANDS.items():
        assert band.delay.band == name[-1]
        assert band.sigma.band == name[-1]
        if band.iono is not None:
            assert band.iono.band == name[-1]

    assert get_band_config('GroupDelay_plusiono_bX').sigma.name == 'GroupDelay_bX'
    assert get_band_config('GroupDelay_bS').iono is None
    with pytest.raises(ConfigurationError):
        get_band_config('PhaseDelay_bX')


def test_broadcast_delay_flag(log_messages):
    """A single DelayFlag value applies to every observation."""
    assert broadcast_delay_flag(np.array([1]), 4).tolist() == [1, 1, 1, 1]
    assert any('DelayFlag only provided as one value' in m for m in log_messages)
    assert broadcast_delay_flag(np.array([0, 1, 0]), 3).tolist() == [0, 1, 0]
    with pytest.raises(CrossReferenceError):
        broadcast_delay_flag(np.array([0, 1]), 3)


def test_get_variable():
    """Variable names match with '-' or '_'."""
    dump = build_vgosdb_dump()
    ds = dump.tables['ObsDerived/Cal-SlantPathIonoGroup_bX.nc']
    assert get_variable(ds, 'Cal_SlantPathIonoGroup') is not None
    assert get_variable(ds, 'Missing') is None
    with pytest.raises(ConfigurationError):
        get_variable(ds, 'Missing', required=True)


def test_normalize_vgosdb(vgosdb_dump, data_root):
    """Normalize the standard session."""
    config = make_config(data_root, 'vgosdb')
    session = normalize_vgosdb(vgosdb_dump, config, ReferenceFrames(), Policy())
    check_session(session)

    assert session.antenna_names == list(STATIONS)
    assert [s.name for s in session.sources.quasars] == list(SOURCES)
    assert len(session.scans) == 2
    assert session.n_obs == 4
    assert session.scans[1].tim == (2017, 1, 3, 18, 35, 30.0, 3)
    assert session.scans[1].mjd - session.scans[0].mjd == pytest.approx(330 / 86400)

    # Delays: cable cal (station tables, s -> ns) then ionosphere
    obs = session.scans[0].observations
    cab_w, cab_o = CABLE['WETTZELL'][0], CABLE['ONSALA60'][0]
    assert obs[0].delay == pytest.approx(DELAY_FULL[0] + (cab_o - cab_w) - IONO[0], abs=1e-17)
    assert obs[0].delion == pytest.approx(IONO[0] * 1e9)
    assert obs[0].sigma == pytest.approx(np.hypot(DELAY_SIG[0], IONO_SIG[0]))
    # NYALES20 has no cable calibration table
    assert obs[1].delay == pytest.approx(DELAY_FULL[1] - cab_w - IONO[1], abs=1e-17)

    # Second scan uses the second row of the station tables
    obs = session.scans[1].observations[0]
    cab_w, cab_o = CABLE['WETTZELL'][1], CABLE['ONSALA60'][1]
    assert obs.delay == pytest.approx(DELAY_FULL[3] + (cab_o - cab_w) - IONO[3], abs=1e-17)

    # Met, validated per quantity
    wz, on, ny = (session.scans[0].station(ii) for ii in range(3))
    assert wz.temp == 10.0 and wz.pres == 950.0
    assert wz.e == pytest.approx(6.1078 * np.exp(171.0 / 245.0) * 0.8)
    assert on.temp is None and on.pres == 1000.0 and on.e is None
    assert ny.temp is None and ny.pres is None and ny.e is None
    on2 = session.scans[1].station(1)
    assert on2.temp == 5.0 and on2.pres is None and on2.e is None

    # A priori positions and directions from the Apriori tables
    assert session.antennas[0].x == pytest.approx(4075539.5173)
    assert not session.antennas[0].in_trf
    assert not np.isnan(session.sources.quasars[1].de)


def test_normalize_without_iono(data_root, log_messages):
    """A missing ionosphere table gives zero ionosphere correction and a warning."""
    dump = build_vgosdb_dump(iono=False)
    config = make_config(data_root, 'vgosdb')
    session = normalize_vgosdb(dump, config, ReferenceFrames(), Policy())

    obs = session.scans[0].observations[0]
    cab_w, cab_o = CABLE['WETTZELL'][0], CABLE['ONSALA60'][0]
    assert obs.delion == 0.0
    assert obs.sgdion == 0.0
    assert obs.delay == pytest.approx(DELAY_FULL[0] + (cab_o - cab_w), abs=1e-17)
    assert obs.sigma == pytest.approx(DELAY_SIG[0])
    assert any('Ionospheric delay table' in m for m in log_messages)


def test_normalize_without_edit(data_root, log_messages):
    """A missing Edit table gives quality code 0 for all observations and a warning."""
    dump = build_vgosdb_dump()
    dump.tables.pop('ObsEdit/Edit_V002_iIVS.nc')
    session = normalize_vgosdb(dump, make_config(data_root, 'vgosdb'), ReferenceFrames(), Policy())
    assert session.n_obs == 4
    assert all(o.q_code == 0 for s in session.scans for o in s.observations)
    assert any('No DelayFlag found' in m for m in log_messages)


def test_normalize_band_settings(vgosdb_dump, data_root):
    """GroupDelay_bX uses the GroupDelay table and no ionosphere."""
    config = make_config(data_root, 'vgosdb', vgosdb=VgosDbSettings(frequency_band='GroupDelay_bX'))
    session = normalize_vgosdb(vgosdb_dump, config, ReferenceFrames(), Policy())
    obs = session.scans[0].observations[0]
    cab_w, cab_o = CABLE['WETTZELL'][0], CABLE['ONSALA60'][0]
    assert obs.delay == pytest.approx(DELAY[0] + (cab_o - cab_w), abs=1e-17)
    assert obs.delion == 0.0

    config = make_config(data_root, 'vgosdb', vgosdb=VgosDbSettings(frequency_band='GroupDelay_plusiono_bX'))
    session = normalize_vgosdb(vgosdb_dump, config, ReferenceFrames(), Policy())
    assert session.scans[0].observations[0].delion == pytest.approx(IONO[0] * 1e9)

    config = make_config(data_root, 'vgosdb', vgosdb=VgosDbSettings(frequency_band='GroupDelayFull_bS'))
    with pytest.raises(TableResolutionError):
        normalize_vgosdb(vgosdb_dump, config, ReferenceFrames(), Policy())


def test_normalize_broadcasts(data_root, log_messages):
    """Scalar DelayFlag and single-row Obs2Baseline are broadcast."""
    dump = build_vgosdb_dump(delay_flag=[2])
    config = make_config(data_root, 'vgosdb')
    session = normalize_vgosdb(dump, config, ReferenceFrames(), Policy())
    assert all(o.q_code == 2 for s in session.scans for o in s.observations)

    # All observations on baseline 1-2: NYALES20 observations become WETTZELL-ONSALA60
    dump = build_vgosdb_dump(single_baseline=True)
    session = normalize_vgosdb(dump, config, ReferenceFrames(), Policy())
    assert all((o.i1, o.i2) == (0, 1) for s in session.scans for o in s.observations)
    assert any('Obs2Baseline only provided for one baseline' in m for m in log_messages)


def test_normalize_head_mismatch(vgosdb_dump, data_root):
    """Head station list must match the cross-reference tables."""
    vgosdb_dump.head = vgosdb_dump.head.isel(NumStation=slice(0, 2))
    config = make_config(data_root, 'vgosdb')
    with pytest.raises(CrossReferenceError):
        normalize_vgosdb(vgosdb_dump, config, ReferenceFrames(), Policy())


def test_read_vgosdb_from_disk(tmp_path, data_root):
    """Write the standard session as netCDF tables, read and normalize it."""
    pytest.importorskip('h5netcdf')
    path = write_vgosdb(build_vgosdb_dump(), str(tmp_path / 'vgosDB' / '2017' / SESSION))

    dump = read_vgosdb(path, settings=VgosDbSettings())
    assert dump.session_name == SESSION
    assert dump.station_names == list(STATIONS)
    assert 'CrossReference/ObsCrossRef.nc' in dump.tables
    assert dump.wrapper.files('Station', 'NYALES20') == []

    session = normalize_vgosdb(dump, make_config(data_root, 'vgosdb'), ReferenceFrames(), Policy())
    assert session.n_obs == 4
    assert session.scans[0].station(1).pres == 1000.0


def test_read_vgosdb_missing_head(tmp_path):
    """Head.nc is required."""
    d = str(tmp_path)
    _touch(d, f'{SESSION}_V004_iIVS_kall.wrp')
    with pytest.raises(ConfigurationError):
        read_vgosdb(d, SESSION)


if __name__ == '__main__':
    test_parse_wrapper_name()
    test_parse_table_name()
    test_registry_resolution()
    test_registry_ambiguous()
    test_band_configs()
    test_get_variable()
