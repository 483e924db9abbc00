"""
Finishing-position sources and the resolver that tries them in priority order.

Each ResultSource turns a list of race ids into confirmed positions from one
backing table. The resolver stops at the first source returning at least one
confirmed position and reports which source that was; a source that raises is
logged and skipped. When every source comes back empty the tag is "none", which
callers read as "no completed races yet".
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from core.connectors.table_reader import TableReader, QueryFilter, fetch_in_batches
from model_tracking.horse_matcher import bare_horse_name
from model_tracking.records import RacePositions, ResultPositions, ResultRow
from utils.race_clock import Clock

NO_SOURCE = 'none'


@dataclass
class ResolvedPositions:
    positions: ResultPositions = field(default_factory=dict)
    source: str = NO_SOURCE

    @property
    def completed_race_ids(self) -> set:
        return {race_id for race_id, race_positions in self.positions.items() if race_positions}


def build_positions(rows: Iterable[ResultRow]) -> ResultPositions:
    positions: ResultPositions = {}
    for row in rows:
        race_positions = positions.setdefault(row.race_id, RacePositions())
        race_positions.add(row.position, horse_id=row.horse_id, bare_name=bare_horse_name(row.horse_name))
    return positions


class ResultSource(ABC):
    """One backing table of finishing positions."""

    name = 'base'

    def __init__(self, reader: TableReader, table: str, batch_size: int = 50):
        self.reader = reader
        self.table = table
        self.batch_size = batch_size
        self.logger = logging.getLogger(__name__)

    @abstractmethod
    def fetch_rows(self, race_ids: Sequence[str], race_date: Optional[str] = None) -> List[Dict[str, Any]]:
        """Raw rows for the given races; race_date is the race day being resolved."""
        raise NotImplementedError

    @abstractmethod
    def to_result_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Map a raw row onto ResultRow fields."""
        raise NotImplementedError

    def fetch_positions(self, race_ids: Sequence[str], race_date: Optional[str] = None) -> ResultPositions:
        rows = []
        skipped = 0
        for raw in self.fetch_rows(race_ids, race_date):
            try:
                rows.append(ResultRow(**self.to_result_row(raw)))
            except ValidationError:
                skipped += 1

        if skipped:
            self.logger.debug(f"{self.name}: skipped {skipped} rows without a confirmed position")

        return build_positions(rows)


class RaceRunnersSource(ResultSource):
    """Dedicated per-runner results table: race_id, horse_id, horse, position."""

    name = 'race_runners'

    def fetch_rows(self, race_ids, race_date=None):
        return fetch_in_batches(
            self.reader, self.table, ['race_id', 'horse_id', 'horse', 'position'],
            'race_id', race_ids, self.batch_size,
            filters=[QueryFilter('position', 'not_null'), QueryFilter('position', 'gt', 0)],
            skip_failed_batches=True,
        )

    def to_result_row(self, row):
        return {
            'race_id': row.get('race_id'),
            'horse_id': row.get('horse_id'),
            'horse_name': row.get('horse'),
            'position': row.get('position'),
        }


class EntryPositionSource(ResultSource):
    """finishing_position column written back onto race_entries."""

    name = 'entry_positions'

    def fetch_rows(self, race_ids, race_date=None):
        return fetch_in_batches(
            self.reader, self.table, ['race_id', 'horse_id', 'horse_name', 'finishing_position'],
            'race_id', race_ids, self.batch_size,
            filters=[QueryFilter('finishing_position', 'not_null'), QueryFilter('finishing_position', 'gt', 0)],
            skip_failed_batches=True,
        )

    def to_result_row(self, row):
        return {
            'race_id': row.get('race_id'),
            'horse_id': row.get('horse_id'),
            'horse_name': row.get('horse_name'),
            'position': row.get('finishing_position'),
        }


class ArchivedResultsSource(ResultSource):
    """
    Per-model archive (ml_model_race_results) limited to rows written on the race
    day being resolved, or on the clock's current day when none is given.
    """

    name = 'archived_results'

    def __init__(self, reader: TableReader, table: str, clock: Clock, batch_size: int = 50):
        super().__init__(reader, table, batch_size)
        self.clock = clock

    def fetch_rows(self, race_ids, race_date=None):
        day = date.fromisoformat(race_date or self.clock.today())
        day_start = f"{day.isoformat()}T00:00:00"
        next_day_start = f"{(day + timedelta(days=1)).isoformat()}T00:00:00"
        return fetch_in_batches(
            self.reader, self.table, ['race_id', 'horse_id', 'horse_name', 'actual_position'],
            'race_id', race_ids, self.batch_size,
            filters=[
                QueryFilter('actual_position', 'gt', 0),
                QueryFilter('created_at', 'gte', day_start),
                QueryFilter('created_at', 'lt', next_day_start),
            ],
            skip_failed_batches=True,
        )

    def to_result_row(self, row):
        return {
            'race_id': row.get('race_id'),
            'horse_id': row.get('horse_id'),
            'horse_name': row.get('horse_name'),
            'position': row.get('actual_position'),
        }


class ResultSourceResolver:
    """
    Try result sources in order until one yields confirmed positions.

    Args:
        sources: Sources in priority order
    """

    def __init__(self, sources: Sequence[ResultSource]):
        if not sources:
            raise ValueError("ResultSourceResolver needs at least one source")
        self.sources = list(sources)
        self.logger = logging.getLogger(__name__)

    def resolve_positions(self, race_ids: Sequence[str], race_date: Optional[str] = None) -> ResolvedPositions:
        if race_ids is None:
            raise ValueError("race_ids must be a list, got None")

        race_ids = [str(race_id) for race_id in race_ids]
        if not race_ids:
            return ResolvedPositions()

        for source in self.sources:
            try:
                positions = source.fetch_positions(race_ids, race_date)
            except Exception as e:
                self.logger.warning(f"Result source '{source.name}' failed: {e}")
                continue

            positions = {race_id: race_positions for race_id, race_positions in positions.items() if race_positions}
            if positions:
                self.logger.info(f"Got results for {len(positions)} races from {source.name}")
                return ResolvedPositions(positions, source.name)

            self.logger.info(f"Result source '{source.name}' returned no data")

        return ResolvedPositions()


def build_result_sources(reader: TableReader, tracker_config, clock: Clock) -> List[ResultSource]:
    """
    Instantiate the configured sources in order.

    Args:
        reader: Backend shared by all sources
        tracker_config: TrackerConfig section
        clock: Clock used to scope the archive to the current day

    Raises:
        ValueError: For an unknown source name
    """
    tables = tracker_config.tables
    batch_size = tracker_config.batch_size
    factories = {
        RaceRunnersSource.name: lambda: RaceRunnersSource(reader, tables.runners, batch_size),
        EntryPositionSource.name: lambda: EntryPositionSource(reader, tables.entries, batch_size),
        ArchivedResultsSource.name: lambda: ArchivedResultsSource(reader, tables.archive, clock, batch_size),
    }

    sources = []
    for source_name in tracker_config.result_sources:
        if source_name not in factories:
            raise ValueError(f"Unknown result source '{source_name}'. Available sources: {sorted(factories)}")
        sources.append(factories[source_name]())
    return sources
