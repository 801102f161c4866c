"""vgosdb: Reader for vgosDB session containers.

A vgosDB session is a directory of netCDF tables, grouped into
sub-directories (Session, Scan, Observables, ObsEdit, ObsDerived,
CrossReference, Apriori, and one per station), plus one or more wrapper
(.wrp) files. A wrapper lists which table files make up one version of the
session, in blocks::

    Begin Session
    Head.nc
    Default_Dir CrossReference
    StationCrossRef.nc
    SourceCrossRef.nc
    End Session
    Begin Station WETTZELL
    Default_Dir WETTZELL
    Met.nc
    Cal-Cable.nc
    End Station WETTZELL
    Begin Scan
    Default_Dir Scan
    TimeUTC.nc
    End Scan
    Begin Observation
    Default_Dir ObsEdit
    GroupDelayFull_bX_V002_iIVS_kall.nc
    ...
    End Observation

Table file names are structured as ``<Stem>[_b<band>][_V<version>][_i<institution>][_k<kind>].nc``.
Tables are bound to logical roles (TableRole) by a TableRegistry, which
compares these fields rather than matching substrings.
"""

import os
import re
from dataclasses import dataclass, field

import numpy as np
import xarray as xp
from loguru import logger

from ..config import VgosDbSettings
from ..errors import ConfigurationError, TableResolutionError, WrapperNotFoundError
from ..utils import decode_strings

HEAD_FILE = 'Head.nc'
SCOPES = ('Session', 'Scan', 'Observation', 'Station')

RE_WRAPPER = re.compile(
    r'^(?P<session>.+?)_V(?P<version>\d+)(?:_i(?P<institution>[^_.]+))?(?:_k(?P<kind>[^_.]+))?\.wrp$'
)


def normalize_station_name(name: str) -> str:
    """Station name as used for vgosDB directories and wrapper blocks (spaces -> '_')."""
    return name.strip().replace(' ', '_')


@dataclass(frozen=True)
class WrapperName:
    """Fields of a wrapper file name, e.g. 17JAN03XA_V004_iIVS_kall.wrp."""

    filename: str
    session: str
    version: int
    institution: str = None
    kind: str = None


def parse_wrapper_name(filename: str) -> WrapperName:
    """Parse a wrapper file name, returning None if it is not a wrapper name."""
    m = RE_WRAPPER.match(os.path.basename(filename))
    if m is None:
        return None
    return WrapperName(
        filename=filename,
        session=m.group('session'),
        version=int(m.group('version')),
        institution=m.group('institution'),
        kind=m.group('kind'),
    )


def find_wrapper(
    directory: str,
    session_name: str,
    institution: str = 'IVS',
    tag: str = 'all',
    version: str = 'highest_version',
) -> str:
    """Select the wrapper file of a vgosDB session.

    Args:
        directory (str): vgosDB session directory
        session_name (str): Session name (wrapper file prefix)
        institution (str): Institution tag. Wrappers without an institution tag
                           are used if none matches.
        tag (str): Wrapper kind tag, e.g. 'all'
        version (str): Wrapper version number, or 'highest_version'

    Returns:
        filename (str): Path to the selected wrapper

    Raises:
        WrapperNotFoundError: if no wrapper matches the selection
    """
    if not os.path.isdir(directory):
        raise WrapperNotFoundError(f'vgosDB directory not found: {directory}')

    names = [parse_wrapper_name(os.path.join(directory, f)) for f in sorted(os.listdir(directory))]
    names = [n for n in names if n is not None and n.session == session_name and n.kind == tag]

    candidates = [n for n in names if n.institution == institution]
    if not candidates:
        candidates = [n for n in names if n.institution is None]
        if candidates:
            logger.warning(f'No {institution} wrapper for {session_name}, using wrapper without institution tag')

    if candidates and version != 'highest_version':
        try:
            candidates = [n for n in candidates if n.version == int(version)]
        except ValueError:
            raise ConfigurationError(f'Wrapper version must be a number or highest_version, got {version!r}') from None

    if not candidates:
        available = [os.path.basename(f) for f in os.listdir(directory) if f.endswith('.wrp')]
        raise WrapperNotFoundError(
            f'No wrapper for session={session_name} institution={institution} tag={tag} '
            f'version={version} in {directory} (available: {available})'
        )

    selected = max(candidates, key=lambda n: n.version)
    logger.info(f'Using wrapper: {os.path.basename(selected.filename)}')
    return selected.filename


@dataclass
class Wrapper:
    """Table files listed by a wrapper, as paths relative to the session directory."""

    # fmt: off
    filename: str
    session: list = field(default_factory=list)
    scan: list = field(default_factory=list)
    observation: list = field(default_factory=list)
    stations: dict = field(default_factory=dict)    # normalized station name -> list of paths
    # fmt: on

    def files(self, scope: str, station: str = None) -> list:
        """Table paths listed in a scope (Session, Scan, Observation or Station)."""
        if scope == 'Station':
            return self.stations.get(normalize_station_name(station or ''), [])
        if scope not in SCOPES:
            raise ValueError(f'Unknown wrapper scope: {scope}')
        return getattr(self, scope.lower())

    def all_files(self) -> list:
        """All table paths listed in the wrapper, without duplicates."""
        paths = self.session + self.scan + self.observation
        for station_files in self.stations.values():
            paths += station_files
        return list(dict.fromkeys(paths))


def read_wrapper(filename: str) -> Wrapper:
    """Read a vgosDB wrapper file.

    History and Program blocks are skipped, as are lines starting with '!'.

    Args:
        filename (str): Path to .wrp file

    Returns:
        wrapper (Wrapper): Table files per scope
    """
    wrapper = Wrapper(filename=filename)
    scope, station, default_dir = None, None, ''

    with open(filename, 'r') as fh:
        lines = fh.readlines()

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith('!'):
            continue
        tokens = line.split()
        key = tokens[0].lower()

        if key == 'begin':
            block = tokens[1].capitalize() if len(tokens) > 1 else ''
            scope = block if block in SCOPES else None
            default_dir = ''
            if scope == 'Station':
                station = normalize_station_name(' '.join(tokens[2:]))
                wrapper.stations.setdefault(station, [])
            continue
        if key == 'end':
            scope, station = None, None
            continue
        if scope is None:
            continue

        if key == 'default_dir':
            default_dir = tokens[1] if len(tokens) > 1 else ''
        elif line.lower().endswith('.nc'):
            path = os.path.join(default_dir, line) if default_dir else line
            if scope == 'Station':
                wrapper.stations[station].append(path)
            else:
                wrapper.files(scope).append(path)

    logger.debug(
        f'{os.path.basename(filename)}: {len(wrapper.all_files())} tables, {len(wrapper.stations)} stations'
    )
    return wrapper


@dataclass(frozen=True)
class TableName:
    """Structural fields of a table file name."""

    stem: str
    band: str = None
    version: int = None
    institution: str = None
    kind: str = None


def parse_table_name(filename: str) -> TableName:
    """Split a table file name into stem, band, version, institution and kind.

    Args:
        filename (str): Table file name or path, e.g. 'ObsEdit/GroupDelayFull_bX_V002_iIVS_kall.nc'

    Returns:
        name (TableName): e.g. TableName('GroupDelayFull', 'X', 2, 'IVS', 'all')
    """
    base = os.path.basename(filename)
    if base.lower().endswith('.nc'):
        base = base[:-3]
    tokens = base.split('_')

    stem = tokens[0]
    fields = {}
    for t in tokens[1:]:
        if re.fullmatch(r'b[A-Za-z]', t):
            fields['band'] = t[1].upper()
        elif re.fullmatch(r'V\d+', t):
            fields['version'] = int(t[1:])
        elif t.startswith('i') and len(t) > 1:
            fields['institution'] = t[1:]
        elif t.startswith('k') and len(t) > 1:
            fields['kind'] = t[1:]
        else:
            stem = f'{stem}_{t}'
    return TableName(stem=stem, **fields)


@dataclass(frozen=True)
class TableRole:
    """Logical table role, e.g. 'station cross reference'."""

    # fmt: off
    name: str                       # Role name, used in error messages
    scope: str                      # Wrapper scope: Session, Scan, Observation or Station
    stem: str                       # Table stem, e.g. StationCrossRef
    band: str = None                # Band designator (X or S) for band dependent tables
    by_institution: bool = False    # Table is edited per institution (_i<institution> tag)
    required: bool = True           # Resolution fails if no table matches
    # fmt: on


# fmt: off
OBS_CROSS_REF     = TableRole('ObsCrossRef', 'Observation', 'ObsCrossRef')
STATION_CROSS_REF = TableRole('StationCrossRef', 'Session', 'StationCrossRef')
SOURCE_CROSS_REF  = TableRole('SourceCrossRef', 'Session', 'SourceCrossRef')
TIME_UTC          = TableRole('TimeUTC', 'Scan', 'TimeUTC')
EDIT              = TableRole('Edit', 'Observation', 'Edit', by_institution=True, required=False)
MET               = TableRole('Met', 'Station', 'Met', required=False)
CABLE_CAL         = TableRole('Cal-Cable', 'Station', 'Cal-Cable', required=False)
APRIORI_STATION   = TableRole('AprioriStation', 'Session', 'Station', required=False)
APRIORI_SOURCE    = TableRole('AprioriSource', 'Session', 'Source', required=False)
# fmt: on


def band_role(stem: str, band: str, by_institution: bool = False, required: bool = True) -> TableRole:
    """Create a role for a band dependent observation table, e.g. GroupDelay_bX."""
    return TableRole(f'{stem}_b{band}', 'Observation', stem, band=band, by_institution=by_institution, required=required)


class TableRegistry:
    """Bind logical table roles to the table files listed in a wrapper.

    Every role must resolve to exactly one table. Where several tables share
    stem and band, those tagged with the selected institution take precedence.

    Args:
        wrapper (Wrapper): Parsed wrapper
        institution (str): Institution tag, e.g. IVS
    """

    def __init__(self, wrapper: Wrapper, institution: str = 'IVS'):
        self.wrapper = wrapper
        self.institution = institution
        self.bindings = {}

    def candidates(self, role: TableRole, station: str = None) -> list:
        """Table paths structurally matching a role."""
        matches = []
        for path in self.wrapper.files(role.scope, station):
            name = parse_table_name(path)
            if name.stem == role.stem and name.band == role.band:
                matches.append((path, name))

        preferred = [m for m in matches if m[1].institution == self.institution]
        if preferred:
            matches = preferred
        elif role.by_institution:
            matches = [m for m in matches if m[1].institution is None]
        return [m[0] for m in matches]

    def resolve(self, role: TableRole, station: str = None) -> str:
        """Resolve a role to a table path.

        Args:
            role (TableRole): Logical table role
            station (str): Station name, for Station scope roles

        Returns:
            path (str): Table path relative to the session directory, or None
                        for an optional role without a match

        Raises:
            TableResolutionError: if zero (required roles) or several tables match
        """
        cands = self.candidates(role, station)
        role_name = f'{role.name} ({station})' if station else role.name
        if len(cands) == 1:
            self.bindings[(role.name, station)] = cands[0]
            logger.debug(f'Role {role_name} -> {cands[0]}')
            return cands[0]
        if not cands and not role.required:
            logger.debug(f'Role {role_name}: no table')
            return None
        raise TableResolutionError(role_name, cands)


@dataclass
class VgosDbDump:
    """Tables of a vgosDB session, loaded into memory."""

    # fmt: off
    session_name: str
    path: str                       # Session directory
    head: xp.Dataset                # Head.nc
    wrapper: Wrapper
    tables: dict                    # Relative table path -> xp.Dataset
    # fmt: on

    @property
    def station_names(self) -> list:
        """Station names from Head.nc, in station index order."""
        return decode_strings(get_variable(self.head, 'StationList', required=True))

    @property
    def source_names(self) -> list:
        """Source names from Head.nc, in source index order."""
        return decode_strings(get_variable(self.head, 'SourceList', required=True))

    def table(self, path: str) -> xp.Dataset:
        """Loaded table for a path (None if path is None or the table is absent)."""
        if path is None:
            return None
        return self.tables.get(path)


def get_variable(ds: xp.Dataset, name: str, required: bool = False) -> np.ndarray:
    """Get variable values from a table, accepting '-' or '_' in the name.

    Args:
        ds (xp.Dataset): Table dataset (or None)
        name (str): Variable name, e.g. Cal-SlantPathIonoGroup
        required (bool): Raise ConfigurationError instead of returning None if missing

    Returns:
        values (np.ndarray): Variable values, or None if missing
    """
    if ds is not None:
        for n in (name, name.replace('-', '_'), name.replace('_', '-')):
            if n in ds.variables:
                return ds[n].values
    if required:
        raise ConfigurationError(f'Variable {name} not found in table')
    return None


def open_table(filename: str, engine: str = None) -> xp.Dataset:
    """Open a netCDF table and load it into memory."""
    with xp.open_dataset(filename, engine=engine) as ds:
        return ds.load()


def read_vgosdb(path: str, session_name: str = None, settings: VgosDbSettings = None, engine: str = None) -> VgosDbDump:
    """Read the tables of a vgosDB session listed by its wrapper.

    Args:
        path (str): vgosDB session directory
        session_name (str): Session name, defaults to the directory name
        settings (VgosDbSettings): Wrapper selection (institution, tag, version)
        engine (str): xarray netCDF engine, auto-detected if None

    Returns:
        dump (VgosDbDump): Head, wrapper and tables

    Raises:
        WrapperNotFoundError: if no wrapper matches the settings
        ConfigurationError: if Head.nc is missing
    """
    settings = settings or VgosDbSettings()
    session_name = session_name or os.path.basename(os.path.normpath(path))

    fn_wrapper = find_wrapper(
        path, session_name, settings.institution, settings.wrapper_tag, settings.wrapper_version
    )
    wrapper = read_wrapper(fn_wrapper)

    fn_head = os.path.join(path, HEAD_FILE)
    if not os.path.exists(fn_head):
        raise ConfigurationError(f'{HEAD_FILE} not found in {path}')
    head = open_table(fn_head, engine)

    tables = {}
    for rel_path in wrapper.all_files():
        if rel_path == HEAD_FILE:
            continue
        fn = os.path.join(path, rel_path)
        if not os.path.exists(fn):
            logger.warning(f'Table listed in wrapper not found: {rel_path}')
            continue
        tables[rel_path] = open_table(fn, engine)

    logger.info(f'Read {len(tables)} tables from {path}')
    return VgosDbDump(session_name=session_name, path=path, head=head, wrapper=wrapper, tables=tables)
