"""ngs: Reader for NGS card format session files.

An NGS file is plain 80-column text::

    DATA IN NGS FORMAT FROM DATABASE 17JAN03XA             (header, 2 lines)
    <free-format comment line>
    WETTZELL   4075539.5173    931735.2717   4801629.3505 AZEL  0.0000   (station cards)
    $END
    0059+581   02 02 45.7600   +58 24 11.100               (source cards)
    $END
     8.2100000000000E+09 ...                               (auxiliary block)
    $END
    <data cards>

Each data card carries the observation sequence number in columns 71-78 and
the card number in columns 79-80. Cards used here:

    01  station 1, station 2, source, year month day hour minute second
    02  delay (ns), delay sigma (ns), rate, rate sigma, quality code
    06  temp 1, temp 2 (deg C), pres 1, pres 2 (hPa), rel. humidity 1, 2 (%)
    07  cable calibration 1, 2 (ns)
    08  ionosphere delay (ns), sigma (ns), rate, rate sigma, ionosphere flag

Other card numbers are skipped.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger

from ..errors import ConfigurationError

END_MARKER = '$END'

# fmt: off
OBS_COLUMNS = {
    'seq': 'int64',
    'station1': 'str', 'station2': 'str', 'source': 'str',
    'year': 'int64', 'month': 'int64', 'day': 'int64',
    'hour': 'int64', 'minute': 'int64', 'second': 'float64',
    'delay': 'float64',     # Group delay (s)
    'sigma': 'float64',     # Group delay sigma (s)
    'q_code': 'int64',
    'temp1': 'float64', 'temp2': 'float64',
    'pres1': 'float64', 'pres2': 'float64',
    'hum1': 'float64', 'hum2': 'float64',     # Relative humidity (fraction)
    'cab1': 'float64', 'cab2': 'float64',     # Cable calibration (ns)
    'delion': 'float64', 'sgdion': 'float64', # Ionosphere delay and sigma (ns)
    'q_code_ion': 'int64',
}
# fmt: on


@dataclass
class NgsData:
    """Parsed contents of an NGS file."""

    # fmt: off
    header: list                    # Header lines
    stations: pd.DataFrame          # name, x, y, z, mount, axis_offset
    sources: pd.DataFrame           # name, ra, de (rad)
    observations: pd.DataFrame      # One row per observation, see OBS_COLUMNS
    # fmt: on


def _parse_station_card(line: str) -> tuple:
    tokens = line[55:].split()
    mount = tokens[0] if tokens else ''
    offset = float(tokens[1]) if len(tokens) > 1 else 0.0
    return (line[:8].strip(), float(line[10:25]), float(line[25:40]), float(line[40:55]), mount, offset)


def _parse_source_card(line: str) -> tuple:
    tokens = line[8:].split()
    rah, ram, ras, ded, dem, des = tokens[:6]
    ra = (int(rah) + int(ram) / 60 + float(ras) / 3600) * 15
    sign = -1 if ded.strip().startswith('-') else 1
    de = sign * (abs(int(ded)) + int(dem) / 60 + float(des) / 3600)
    return (line[:8].strip(), np.deg2rad(ra), np.deg2rad(de))


def _read_block(lines: list, idx: int, parser, label: str, filename: str) -> tuple:
    """Parse lines until $END, returning (rows, next line index)."""
    rows = []
    while idx < len(lines) and not lines[idx].startswith(END_MARKER):
        line = lines[idx]
        if parser is not None and line.strip():
            try:
                rows.append(parser(line))
            except (IndexError, ValueError):
                raise ConfigurationError(f'{filename}: cannot parse {label} card: {line!r}') from None
        idx += 1
    if idx >= len(lines):
        raise ConfigurationError(f'{filename}: {label} block is not terminated by {END_MARKER}')
    return rows, idx + 1


def _floats(line: str, n: int) -> list:
    """First n whitespace separated values of the data field (columns 1-70)."""
    tokens = line[:70].replace('D', 'E').split()
    return [float(t) for t in tokens[:n]]


def _new_record(seq: int) -> dict:
    rec = {k: (np.nan if v == 'float64' else 0) for k, v in OBS_COLUMNS.items() if v != 'str'}
    rec.update({'seq': seq, 'station1': '', 'station2': '', 'source': ''})
    rec.update({'cab1': 0.0, 'cab2': 0.0, 'delion': 0.0, 'sgdion': 0.0})
    return rec


def read_ngs(filename: str) -> NgsData:
    """Read an NGS card file.

    Args:
        filename (str): Path to NGS file

    Returns:
        ngs (NgsData): Header, station and source cards, and an observation table.
                       Delays are converted to seconds, humidity to a fraction.

    Raises:
        ConfigurationError: if the file structure cannot be parsed
    """
    with open(filename, 'r') as fh:
        lines = [line.rstrip('\n\r') for line in fh]

    if len(lines) < 2:
        raise ConfigurationError(f'{filename}: too short to be an NGS file')

    header = lines[:2]
    stations, idx = _read_block(lines, 2, _parse_station_card, 'station', filename)
    sources, idx = _read_block(lines, idx, _parse_source_card, 'source', filename)
    _, idx = _read_block(lines, idx, None, 'auxiliary', filename)

    records = {}
    n_skipped = 0
    for line in lines[idx:]:
        if not line.strip():
            continue
        line = line.ljust(80)
        try:
            seq = int(line[70:78])
            card = int(line[78:80])
        except ValueError:
            raise ConfigurationError(f'{filename}: bad sequence/card number: {line!r}') from None

        rec = records.setdefault(seq, _new_record(seq))
        try:
            if card == 1:
                rec['station1'] = line[0:8].strip()
                rec['station2'] = line[10:18].strip()
                rec['source'] = line[20:28].strip()
                tokens = line[28:70].split()
                rec['year'], rec['month'], rec['day'], rec['hour'], rec['minute'] = (int(t) for t in tokens[:5])
                rec['second'] = float(tokens[5])
            elif card == 2:
                vals = _floats(line, 5)
                rec['delay'] = vals[0] * 1e-9
                rec['sigma'] = vals[1] * 1e-9
                rec['q_code'] = int(vals[4]) if len(vals) > 4 else 0
            elif card == 6:
                vals = _floats(line, 6)
                rec['temp1'], rec['temp2'], rec['pres1'], rec['pres2'] = vals[:4]
                rec['hum1'], rec['hum2'] = vals[4] / 100, vals[5] / 100
            elif card == 7:
                vals = _floats(line, 2)
                rec['cab1'], rec['cab2'] = vals[:2]
            elif card == 8:
                vals = _floats(line, 5)
                rec['delion'], rec['sgdion'] = vals[:2]
                rec['q_code_ion'] = int(vals[4]) if len(vals) > 4 else 0
            else:
                n_skipped += 1
        except (IndexError, ValueError):
            raise ConfigurationError(f'{filename}: cannot parse card {card} of observation {seq}') from None

    if n_skipped:
        logger.debug(f'{filename}: skipped {n_skipped} cards with unused card numbers')

    obs = pd.DataFrame(list(records.values()), columns=list(OBS_COLUMNS.keys()))
    incomplete = (obs['station1'] == '') | obs['delay'].isna()
    if incomplete.any():
        logger.warning(f'{filename}: dropping {incomplete.sum()} observations without card 01 or 02')
        obs = obs[~incomplete].reset_index(drop=True)

    ngs = NgsData(
        header=header,
        stations=pd.DataFrame(stations, columns=('name', 'x', 'y', 'z', 'mount', 'axis_offset')),
        sources=pd.DataFrame(sources, columns=('name', 'ra', 'de')),
        observations=obs,
    )
    logger.debug(
        f'{filename}: {len(ngs.stations)} stations, {len(ngs.sources)} sources, {len(obs)} observations'
    )
    return ngs
