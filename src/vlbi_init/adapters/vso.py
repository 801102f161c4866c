"""vso: Session adapter for VSO tables, with optional spacecraft ephemerides."""

import os

from loguru import logger

from ..config import InitConfig, SessionFormat
from ..datamodel.policy import Policy
from ..datamodel.session import Session, Source, SourceCollection
from ..io.frames import ReferenceFrames
from ..io.vso import read_orbit_file, read_vso
from .base import SessionAdapter
from .common import build_antennas, build_sources, finalize_sources, scans_from_table, unique_in_order


class VsoAdapter(SessionAdapter):
    """Adapter for VSO files.

    Sources listed in the orbit file become spacecraft (scan obs_type 's'),
    all others are quasars.
    """

    format = SessionFormat.VSO

    def load(self, path: str, config: InitConfig, frames: ReferenceFrames, policy: Policy) -> Session:
        """Read a VSO file (and orbit file) and normalize it into a Session."""
        logger.info(f'Start reading {path}')
        obs = read_vso(path)

        eph = None
        if config.orbit_file:
            if os.path.exists(config.orbit_file):
                eph = read_orbit_file(config.orbit_file)
            else:
                logger.warning(f'Orbit file not found: {config.orbit_file}, all sources treated as quasars')

        station_names = unique_in_order(obs['station1'], obs['station2'])
        source_names = unique_in_order(obs['source'])
        sc_names = set(eph['name']) if eph is not None else set()

        antennas = build_antennas(station_names, frames, {}, policy)
        quasars = build_sources([n for n in source_names if n not in sc_names], frames, {})
        spacecraft = [
            Source(name=n, kind='spacecraft', ephemeris=eph[eph['name'] == n].reset_index(drop=True))
            for n in source_names
            if n in sc_names
        ]
        if spacecraft:
            logger.info(f'{len(spacecraft)} spacecraft observed: {[s.name for s in spacecraft]}')

        lookup = {src.name: ('q', ii) for ii, src in enumerate(quasars)}
        lookup.update({src.name: ('s', ii) for ii, src in enumerate(spacecraft)})

        scans = scans_from_table(obs, station_names, lookup, config, policy)

        session = Session(
            name=config.session_name,
            data_type=self.format.value,
            antennas=antennas,
            sources=SourceCollection(quasars=quasars, spacecraft=spacecraft),
            scans=scans,
        )
        finalize_sources(session, config.source_estimation)
        logger.info('...reading the VSO file finished!')
        return session
