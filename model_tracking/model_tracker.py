import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from core.connectors.reader_factory import create_reader
from core.connectors.table_reader import TableReader
from core.storage.race_repository import RaceRepository
from model_tracking.performance_aggregator import ModelPerformance, aggregate
from model_tracking.performance_history import PerformanceHistory, aggregate_history
from model_tracking.probability_normalizer import RaceProbabilityNormalizer
from model_tracking.records import Race, RaceEntry
from model_tracking.result_sources import ResultSourceResolver, ResolvedPositions, build_result_sources
from model_tracking.upcoming_runner import next_pick
from utils.env_setup import AppConfig, ModelSpec, ThresholdsConfig
from utils.race_clock import Clock, SystemClock, minutes_into_race_day


@dataclass
class TrackerSnapshot:
    """Every model's performance for one race day, computed at one instant."""
    models: List[ModelPerformance]
    last_updated: str
    race_date: str
    total_races_today: int
    completed_races: int
    results_source: str
    abandoned_courses: List[str] = field(default_factory=list)
    abandoned_count: int = 0
    awaiting_results: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary_frame(self) -> pd.DataFrame:
        """One row per model with the headline figures."""
        columns = ['model_name', 'full_name', 'races_completed', 'races_won', 'races_lost',
                   'races_top3', 'win_rate', 'performance_trend', 'is_due_winner']
        rows = [{column: getattr(performance, column) for column in columns} for performance in self.models]
        frame = pd.DataFrame(rows, columns=columns)
        # No completed races -> rate is not applicable rather than 0%
        frame['win_rate'] = [
            round(performance.win_rate, 1) if performance.has_results else None
            for performance in self.models
        ]
        return frame


def races_awaiting_results(races: Sequence[Race],
                           completed_race_ids: set,
                           now_minutes: int,
                           buffer_minutes: int = 10) -> List[str]:
    """Races that went off more than buffer_minutes ago but have no confirmed result."""
    awaiting = []
    for race in sorted(races, key=lambda race: race.off_minutes):
        if race.is_abandoned_race or race.race_id in completed_race_ids:
            continue
        if race.off_minutes > 0 and (now_minutes - race.off_minutes) > buffer_minutes:
            awaiting.append(race.race_id)
    return awaiting


def compute_snapshot(races: Sequence[Race],
                     entries_by_race: Mapping[str, Sequence[RaceEntry]],
                     resolved: ResolvedPositions,
                     models: Sequence[ModelSpec],
                     clock: Clock,
                     thresholds: Optional[ThresholdsConfig] = None,
                     race_date: Optional[str] = None) -> TrackerSnapshot:
    """
    Pure part of a tracker refresh: everything after the fetches.

    The clock is read once and that instant is used for every model. A past race
    day counts as fully elapsed and a future one as not yet started.
    """
    if races is None:
        raise ValueError("races must be a list of Race records, got None")

    thresholds = thresholds or ThresholdsConfig()
    instant = clock.now()
    race_date = race_date or instant.date().isoformat()
    now_minutes = minutes_into_race_day(race_date, instant)

    abandoned = [race for race in races if race.is_abandoned_race]
    active = [race for race in races if not race.is_abandoned_race]
    active_ids = {race.race_id for race in active}

    positions = {race_id: race_positions for race_id, race_positions in resolved.positions.items()
                 if race_id in active_ids and race_positions}
    completed_ids = set(positions)

    performances = []
    for model in models:
        normalizer = RaceProbabilityNormalizer(entries_by_race, model.proba_field)
        performance = aggregate(active, entries_by_race, positions, model, thresholds, normalizer)
        performance.next_runner = next_pick(active, entries_by_race, model, now_minutes, completed_ids, normalizer)
        performances.append(performance)

    return TrackerSnapshot(
        models=performances,
        last_updated=instant.isoformat(),
        race_date=race_date,
        total_races_today=len(active),
        completed_races=len(completed_ids),
        results_source=resolved.source,
        abandoned_courses=list(dict.fromkeys(race.course_name for race in abandoned)),
        abandoned_count=len(abandoned),
        awaiting_results=races_awaiting_results(active, completed_ids, now_minutes,
                                                thresholds.results_buffer_minutes),
    )


class ModelTracker:
    """
    Orchestrates a tracker refresh:
    1. Loads the day's races and drops abandoned meetings
    2. Loads entries with every model's probabilities
    3. Resolves finishing positions from the first result source with data
    4. Aggregates each model's performance and finds its next runner
    """

    def __init__(self,
                 config: AppConfig,
                 reader: Optional[TableReader] = None,
                 clock: Optional[Clock] = None,
                 verbose: bool = False):
        """
        Initialize the tracker.

        Args:
            config: Loaded application configuration
            reader: Storage backend (default: built from base.backend, see create_reader)
            clock: Source of "now" (default: system clock in the configured timezone)
            verbose: Log progress at INFO level
        """
        self.config = config
        self.verbose = verbose
        self.clock = clock or SystemClock(config.timezone)
        self.reader = reader or create_reader(config)
        self.models = config.get_models()

        tracker = config.tracker
        self.repository = RaceRepository(
            self.reader,
            races_table=tracker.tables.races,
            entries_table=tracker.tables.entries,
            proba_fields=[model.proba_field for model in self.models],
            batch_size=tracker.batch_size,
        )
        self.resolver = ResultSourceResolver(build_result_sources(self.reader, tracker, self.clock))

        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(logging.INFO if verbose else logging.WARNING)

    def build_snapshot(self, race_date: Optional[str] = None) -> TrackerSnapshot:
        """
        Compute every model's performance for a race day.

        Args:
            race_date: YYYY-MM-DD (default: the clock's today)

        Returns:
            TrackerSnapshot

        Raises:
            RaceDataError: If the races cannot be loaded
        """
        race_date = race_date or self.clock.today()
        self.logger.info(f"Building model tracker snapshot for {race_date}")

        races = self.repository.fetch_races(race_date)
        if not races:
            return compute_snapshot([], {}, ResolvedPositions(), self.models, self.clock,
                                    self.config.tracker.thresholds, race_date)

        active_ids = [race.race_id for race in races if not race.is_abandoned_race]
        abandoned_count = len(races) - len(active_ids)
        if abandoned_count:
            self.logger.info(f"{len(races)} total races, {abandoned_count} abandoned, {len(active_ids)} active")

        entries_by_race = self.repository.fetch_entries_by_race(active_ids)
        resolved = self.resolver.resolve_positions(active_ids, race_date)
        self.logger.info(f"{len(resolved.completed_race_ids)} completed races (source: {resolved.source})")

        return compute_snapshot(races, entries_by_race, resolved, self.models, self.clock,
                                self.config.tracker.thresholds, race_date)

    def build_history(self, days_back: Optional[int] = None, model_name: Optional[str] = None) -> PerformanceHistory:
        """
        Archived accuracy per model over a rolling window.

        Args:
            days_back: Window in days (default: tracker.history_days; 0 = whole archive)
            model_name: Restrict to one configured model

        Raises:
            ValueError: If model_name is not configured
            RaceDataError: If the archive cannot be read
        """
        tracker = self.config.tracker
        days_back = tracker.history_days if days_back is None else days_back
        self.logger.info(f"Building {days_back}-day model history for {model_name or 'all models'}")
        return aggregate_history(self.reader, self.models, self.clock, days_back, model_name,
                                 table=tracker.tables.archive, batch_size=tracker.batch_size)
