"""
Race and race-entry access for the model tracker.
"""

import logging
from typing import Dict, List, Sequence

from pydantic import ValidationError

from core.connectors.table_reader import TableReader, fetch_in_batches
from model_tracking.records import Race, RaceEntry

RACE_COLUMNS = ['race_id', 'off_time', 'course_name', 'date', 'going', 'is_abandoned', 'race_status']
ENTRY_COLUMNS = ['race_id', 'horse_id', 'horse_name', 'trainer_name', 'jockey_name', 'current_odds', 'number']


class RaceDataError(RuntimeError):
    """Raised when the day's races cannot be loaded."""


class RaceRepository:
    """
    Loads a day's races and their entries as validated records.

    Args:
        reader: Storage backend
        races_table: Name of the races table
        entries_table: Name of the race entries table
        proba_fields: Model probability columns to read from the entries table
        batch_size: Maximum race ids per entries query
    """

    def __init__(self,
                 reader: TableReader,
                 races_table: str = 'races',
                 entries_table: str = 'race_entries',
                 proba_fields: Sequence[str] = (),
                 batch_size: int = 50):
        self.reader = reader
        self.races_table = races_table
        self.entries_table = entries_table
        self.proba_fields = list(proba_fields)
        self.batch_size = batch_size
        self.logger = logging.getLogger(__name__)

    def fetch_races(self, race_date: str) -> List[Race]:
        """
        Get all races scheduled on a date, abandoned ones included.

        Raises:
            RaceDataError: If the backend query fails
        """
        try:
            rows = self.reader.select_in(self.races_table, RACE_COLUMNS, 'date', [race_date])
        except Exception as e:
            raise RaceDataError(f"Failed to fetch races for {race_date}: {e}") from e

        races = []
        for row in rows:
            try:
                races.append(Race(**row))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid race row {row.get('race_id')!r}: {e}")

        self.logger.info(f"Found {len(races)} races for {race_date}")
        return races

    def fetch_entries(self, race_ids: Sequence[str]) -> List[RaceEntry]:
        """Get entries with model probabilities; failed batches are logged and skipped."""
        rows = fetch_in_batches(
            self.reader, self.entries_table, ENTRY_COLUMNS + self.proba_fields,
            'race_id', list(race_ids), self.batch_size,
            skip_failed_batches=True,
        )

        entries = []
        for row in rows:
            try:
                entries.append(RaceEntry.from_record(row, self.proba_fields))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid entry row {row.get('horse_id')!r}: {e}")

        self.logger.info(f"Got {len(entries)} entries for {len(set(race_ids))} races")
        return entries

    def fetch_entries_by_race(self, race_ids: Sequence[str]) -> Dict[str, List[RaceEntry]]:
        grouped: Dict[str, List[RaceEntry]] = {race_id: [] for race_id in race_ids}
        for entry in self.fetch_entries(race_ids):
            grouped.setdefault(entry.race_id, []).append(entry)
        return grouped
