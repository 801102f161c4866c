"""control: Readers for OPT, OUT and JET session control files.

OPT files hold exclusion and weighting settings for one session, in blocks
introduced by a header line such as::

    CLOCK REFERENCE:
    WETTZELL
    STATIONS TO BE EXCLUDED: 1
    KOKEE    58000.0 58001.0
    BASELINES TO BE EXCLUDED: 1
    WETTZELL NYALES20
    SOURCES TO BE EXCLUDED: 1
    0059+581
    NO CABLE CAL: 1
    HARTRAO
    STATIONS TO BE DOWN-WEIGHTED: 1
    ONSALA60 2.0
    CLOCK BREAKS: 1
    NYALES20 58000.25

Station and source names occupy the first 8 columns (they may contain
spaces); anything after that is whitespace separated. Lines starting with
'*', '#' or '%' are comments.
"""

import re

from loguru import logger

from ..datamodel.policy import (
    BaselineExclusion,
    ClockBreak,
    DownWeight,
    JetExclusion,
    OutlierEntry,
    Policy,
    TimeWindowExclusion,
)
from ..errors import ConfigurationError

NAME_WIDTH = 8
COMMENT_CHARS = ('*', '#', '%')

# fmt: off
OPT_SECTIONS = {
    'CLOCK REFERENCE':              'reference_clock',
    'STATIONS TO BE EXCLUDED':      'stations',
    'SOURCES TO BE EXCLUDED':       'sources',
    'BASELINES TO BE EXCLUDED':     'baselines',
    'NO CABLE CAL':                 'no_cable_cal',
    'STATIONS TO BE DOWN-WEIGHTED': 'downweight',
    'CLOCK BREAKS':                 'clock_breaks',
}
# fmt: on

RE_HEADER = re.compile(r'^\s*([A-Z][A-Z \-]*[A-Z])\s*:\s*(\d*)\s*$')


def _content_lines(filename: str) -> list:
    """Read a text file, dropping blank and comment lines."""
    with open(filename, 'r') as fh:
        lines = [line.rstrip('\n\r') for line in fh]
    return [line for line in lines if line.strip() and not line.lstrip().startswith(COMMENT_CHARS)]


def _split_name(line: str) -> tuple:
    """Split a line into an 8-char name field and the remaining tokens."""
    return line[:NAME_WIDTH].strip(), line[NAME_WIDTH:].split()


def _parse_window(name: str, tokens: list, filename: str) -> TimeWindowExclusion:
    if len(tokens) >= 2:
        try:
            return TimeWindowExclusion(name, float(tokens[0]), float(tokens[1]))
        except ValueError:
            raise ConfigurationError(f'{filename}: bad exclusion window for {name}: {tokens}') from None
    return TimeWindowExclusion(name)


def read_opt(filename: str) -> tuple:
    """Read an OPT session control file.

    Args:
        filename (str): Path to OPT file

    Returns:
        (policy, baselines): Policy record, and the list of BaselineExclusion
                             entries (also contained in policy.baselines)

    Raises:
        ConfigurationError: if a block contains unparseable values
    """
    sections = {v: [] for v in OPT_SECTIONS.values()}
    counts = {}
    current = None

    for line in _content_lines(filename):
        m = RE_HEADER.match(line)
        if m and m.group(1) in OPT_SECTIONS:
            current = OPT_SECTIONS[m.group(1)]
            counts[current] = int(m.group(2)) if m.group(2) else None
            continue
        if current is None:
            logger.debug(f'{filename}: skipping line outside of block: {line!r}')
            continue
        sections[current].append(line)

    for key, n in counts.items():
        if n is not None and n != len(sections[key]):
            logger.warning(f'{filename}: block {key} announces {n} entries, found {len(sections[key])}')

    stations = []
    for line in sections['stations']:
        name, tokens = _split_name(line)
        stations.append(_parse_window(name, tokens, filename))

    sources = []
    for line in sections['sources']:
        name, tokens = _split_name(line)
        sources.append(_parse_window(name, tokens, filename))

    baselines = []
    for line in sections['baselines']:
        sta1 = line[:NAME_WIDTH].strip()
        sta2 = line[NAME_WIDTH + 1 : 2 * NAME_WIDTH + 1].strip()
        if not sta2:
            raise ConfigurationError(f'{filename}: baseline entry needs two stations: {line!r}')
        baselines.append(BaselineExclusion(sta1, sta2))

    downweight = []
    for line in sections['downweight']:
        name, tokens = _split_name(line)
        try:
            downweight.append(DownWeight(name, float(tokens[0])))
        except (IndexError, ValueError):
            raise ConfigurationError(f'{filename}: down-weight entry needs a coefficient: {line!r}') from None

    clock_breaks = []
    for line in sections['clock_breaks']:
        name, tokens = _split_name(line)
        try:
            clock_breaks.append(ClockBreak(name, float(tokens[0])))
        except (IndexError, ValueError):
            raise ConfigurationError(f'{filename}: clock break entry needs an epoch: {line!r}') from None

    no_cable_cal = tuple(_split_name(line)[0] for line in sections['no_cable_cal'])
    ref_clock = _split_name(sections['reference_clock'][0])[0] if sections['reference_clock'] else ''

    policy = Policy(
        stations=tuple(stations),
        sources=tuple(sources),
        baselines=tuple(baselines),
        downweight=tuple(downweight),
        no_cable_cal=no_cable_cal,
        reference_clock=ref_clock,
        clock_breaks=tuple(clock_breaks),
    )
    return policy, baselines


def read_out(filename: str) -> list:
    """Read an OUT outlier file.

    Each line holds two 8-char station names and the epoch (MJD)::

        WETTZELL NYALES20 58000.3412

    Args:
        filename (str): Path to OUT file

    Returns:
        outliers (list): List of OutlierEntry
    """
    outliers = []
    for line in _content_lines(filename):
        sta1 = line[:NAME_WIDTH].strip()
        sta2 = line[NAME_WIDTH + 1 : 2 * NAME_WIDTH + 1].strip()
        tokens = line[2 * NAME_WIDTH + 1 :].split()
        try:
            outliers.append(OutlierEntry(sta1, sta2, float(tokens[0])))
        except (IndexError, ValueError):
            raise ConfigurationError(f'{filename}: bad outlier entry: {line!r}') from None
    return outliers


def read_jet(filename: str, threshold: float) -> list:
    """Read a JET jet-angle file, keeping observations above the angle threshold.

    Each line holds two 8-char station names, an 8-char source name, the epoch
    (MJD) and the jet angle (deg)::

        WETTZELL NYALES20 0059+581 58000.3412  12.5

    Args:
        filename (str): Path to JET file
        threshold (float): Jet angle limit (deg); observations with angle > threshold are returned

    Returns:
        jet (list): List of JetExclusion
    """
    jet = []
    w = NAME_WIDTH
    for line in _content_lines(filename):
        sta1 = line[:w].strip()
        sta2 = line[w + 1 : 2 * w + 1].strip()
        source = line[2 * w + 2 : 3 * w + 2].strip()
        tokens = line[3 * w + 2 :].split()
        try:
            mjd, angle = float(tokens[0]), float(tokens[1])
        except (IndexError, ValueError):
            raise ConfigurationError(f'{filename}: bad jet angle entry: {line!r}') from None
        if angle > threshold:
            jet.append(JetExclusion(sta1, sta2, source, mjd, angle))
    logger.debug(f'{filename}: {len(jet)} observations above jet angle {threshold}')
    return jet
