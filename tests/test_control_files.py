"""test_control_files: Tests for OPT, OUT and JET file reading."""

import os

import pytest
from session_data import write_jet, write_opt, write_out
from vlbi_init.datamodel import BaselineExclusion, ClockBreak, DownWeight, TimeWindowExclusion
from vlbi_init.errors import ConfigurationError
from vlbi_init.io import read_jet, read_opt, read_out


def test_read_opt(tmp_path):
    """Read all OPT blocks."""
    fn = str(tmp_path / 'OPT' / 'session.OPT')
    write_opt(
        fn,
        stations=['KOKEE', ('WETTZELL', 58000.0, 58001.0)],
        sources=['0059+581'],
        baselines=[('WETTZELL', 'NYALES20')],
        no_cable_cal=['HARTRAO'],
        downweight=[('ONSALA60', 2.0)],
        reference_clock='WETTZELL',
        clock_breaks=[('NYALES20', 58000.25)],
    )
    policy, baselines = read_opt(fn)

    assert policy.stations == (TimeWindowExclusion('KOKEE'), TimeWindowExclusion('WETTZELL', 58000.0, 58001.0))
    assert policy.stations[0].whole_session
    assert policy.sources == (TimeWindowExclusion('0059+581'),)
    assert baselines == [BaselineExclusion('WETTZELL', 'NYALES20')]
    assert policy.baselines == tuple(baselines)
    assert policy.no_cable_cal == ('HARTRAO',)
    assert policy.downweight == (DownWeight('ONSALA60', 2.0),)
    assert policy.reference_clock == 'WETTZELL'
    assert policy.clock_breaks == (ClockBreak('NYALES20', 58000.25),)

    assert policy.downweight_coefficient('ONSALA60') == 2.0
    assert policy.downweight_coefficient('WETTZELL') is None
    assert not policy.has_cable_cal('HARTRAO')


def test_read_opt_names_with_spaces(tmp_path):
    """Station names may contain spaces within their 8 columns."""
    fn = str(tmp_path / 'spaces.OPT')
    with open(fn, 'w') as fh:
        fh.write('* comment\n')
        fh.write('STATIONS TO BE EXCLUDED: 1\n')
        fh.write('DSS 65   \n')
        fh.write('BASELINES TO BE EXCLUDED: 1\n')
        fh.write('DSS 65   WETTZELL\n')
    policy, _ = read_opt(fn)
    assert policy.stations[0].name == 'DSS 65'
    assert policy.baselines[0] == BaselineExclusion('DSS 65', 'WETTZELL')


def test_read_opt_count_mismatch(tmp_path, log_messages):
    """Block entry counts that do not match are a warning."""
    fn = str(tmp_path / 'count.OPT')
    with open(fn, 'w') as fh:
        fh.write('SOURCES TO BE EXCLUDED: 3\n')
        fh.write('0059+581\n')
    policy, _ = read_opt(fn)
    assert len(policy.sources) == 1
    assert any('announces 3 entries' in m for m in log_messages)


def test_read_opt_errors(tmp_path):
    """Unparseable entries are configuration errors."""
    fn = str(tmp_path / 'bad.OPT')
    with open(fn, 'w') as fh:
        fh.write('STATIONS TO BE DOWN-WEIGHTED: 1\n')
        fh.write('ONSALA60\n')
    with pytest.raises(ConfigurationError):
        read_opt(fn)

    with open(fn, 'w') as fh:
        fh.write('BASELINES TO BE EXCLUDED: 1\n')
        fh.write('ONSALA60\n')
    with pytest.raises(ConfigurationError):
        read_opt(fn)


def test_time_window_exclusion():
    """Windows are inclusive; zero windows cover the session."""
    w = TimeWindowExclusion('WETTZELL', 58000.0, 58001.0)
    assert w.applies('WETTZELL', 58000.0)
    assert w.applies('WETTZELL', 58001.0)
    assert w.applies('WETTZELL ', 58000.5)
    assert not w.applies('WETTZELL', 58002.0)
    assert not w.applies('ONSALA60', 58000.5)
    assert TimeWindowExclusion('WETTZELL').applies('WETTZELL', 12345.0)


def test_read_out(tmp_path):
    """Read outlier entries."""
    fn = str(tmp_path / 'OUT' / 'session.OUT')
    write_out(fn, [('WETTZELL', 'ONSALA60', 57756.7708333), ('ONSALA60', 'NYALES20', 57756.77)])
    outliers = read_out(fn)
    assert len(outliers) == 2
    assert outliers[0].station1 == 'WETTZELL'
    assert outliers[0].matches('ONSALA60', 'WETTZELL', 57756.7708333, 1e-5)
    assert not outliers[0].matches('ONSALA60', 'WETTZELL', 57756.78, 1e-5)


def test_read_jet(tmp_path):
    """Only jet angles above the threshold are kept."""
    fn = str(tmp_path / 'JETANG' / 'session.JET')
    write_jet(
        fn,
        [
            ('WETTZELL', 'ONSALA60', '0059+581', 57756.77, 12.5),
            ('WETTZELL', 'NYALES20', '0059+581', 57756.77, 10.0),
            ('ONSALA60', 'NYALES20', '0059+581', 57756.77, 3.0),
        ],
    )
    jet = read_jet(fn, 10.0)
    assert len(jet) == 1
    assert jet[0].source == '0059+581'
    assert jet[0].angle == 12.5

    assert len(read_jet(fn, 2.0)) == 3
    assert os.path.exists(fn)


if __name__ == '__main__':
    test_time_window_exclusion()
