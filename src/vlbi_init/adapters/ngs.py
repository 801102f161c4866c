"""ngs: Session adapter for NGS card files."""

from loguru import logger

from ..config import InitConfig, SessionFormat
from ..datamodel.policy import Policy
from ..datamodel.session import Session, SourceCollection
from ..io.frames import ReferenceFrames
from ..io.ngs import read_ngs
from .base import SessionAdapter
from .common import build_antennas, build_sources, finalize_sources, scans_from_table, unique_in_order


class NgsAdapter(SessionAdapter):
    """Adapter for NGS files. NGS sessions hold quasar observations only."""

    format = SessionFormat.NGS

    def load(self, path: str, config: InitConfig, frames: ReferenceFrames, policy: Policy) -> Session:
        """Read an NGS file and normalize it into a Session."""
        logger.info(f'Start reading {path}')
        ngs = read_ngs(path)
        obs = ngs.observations

        station_apriori = {
            row.name: {'x': row.x, 'y': row.y, 'z': row.z, 'mount': row.mount, 'axis_offset': row.axis_offset}
            for row in ngs.stations.itertuples(index=False)
        }
        station_names = unique_in_order(ngs.stations['name'], obs['station1'], obs['station2'])
        for name in station_names:
            if name not in station_apriori:
                logger.warning(f'Station {name} has observations but no NGS station card')

        source_apriori = {row.name: (row.ra, row.de) for row in ngs.sources.itertuples(index=False)}
        source_names = unique_in_order(ngs.sources['name'], obs['source'])

        antennas = build_antennas(station_names, frames, station_apriori, policy)
        quasars = build_sources(source_names, frames, source_apriori)
        lookup = {src.name: ('q', ii) for ii, src in enumerate(quasars)}

        scans = scans_from_table(obs, station_names, lookup, config, policy)

        session = Session(
            name=config.session_name,
            data_type=self.format.value,
            antennas=antennas,
            sources=SourceCollection(quasars=quasars),
            scans=scans,
        )
        finalize_sources(session, config.source_estimation)
        logger.info('...reading the NGS file finished!')
        return session
