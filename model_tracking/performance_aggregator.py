"""
Per-model outcome classification and aggregation for one race day.

For every race with confirmed results, the model's ranked picks are walked in
order and the first runner that can be matched to a finishing position is credited
to the model. A top pick that did not run therefore falls through to the model's
next choice instead of dropping the race.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence

from model_tracking.horse_matcher import MatchOutcome, match_position
from model_tracking.pick_selector import rank_picks
from model_tracking.probability_normalizer import RaceProbabilityNormalizer
from model_tracking.records import Race, RaceEntry, ResultPositions
from utils.env_setup import ModelSpec, ThresholdsConfig
from utils.race_clock import normalize_race_clock_time

logger = logging.getLogger(__name__)

TREND_HOT = 'hot'
TREND_COLD = 'cold'
TREND_NORMAL = 'normal'


@dataclass
class RaceResult:
    """Container for one race credited to a model."""
    race_id: str
    course: str
    off_time: str
    horse_name: str
    probability: float
    normalized_probability: float
    finishing_position: int
    is_winner: bool
    match_method: str


@dataclass
class NextRunner:
    """Model's top pick in the next race still to run."""
    horse_name: str
    odds: str
    trainer: str
    jockey: str
    confidence: float
    normalized_confidence: float
    race_time: str
    course: str
    race_id: str
    horse_id: Optional[str]


@dataclass
class ModelPerformance:
    """Container for one model's figures on one race day."""
    model_name: str
    full_name: str
    total_races_today: int
    races_completed: int
    races_won: int
    races_lost: int
    races_top3: int
    win_rate: float
    top3_rate: float
    has_results: bool
    performance_trend: str
    is_due_winner: bool
    race_results: List[RaceResult] = field(default_factory=list)
    next_runner: Optional[NextRunner] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_win_rate(won: int, completed: int) -> float:
    """Win percentage, 0 when nothing has completed."""
    if completed <= 0:
        return 0.0
    return won / completed * 100


def classify_trend(win_rate: float, completed: int, thresholds: Optional[ThresholdsConfig] = None) -> str:
    thresholds = thresholds or ThresholdsConfig()
    if win_rate >= thresholds.hot_win_rate:
        return TREND_HOT
    if completed > 0 and win_rate <= thresholds.cold_win_rate:
        return TREND_COLD
    return TREND_NORMAL


def is_due_winner(completed: int, won: int, win_rate: float, thresholds: Optional[ThresholdsConfig] = None) -> bool:
    thresholds = thresholds or ThresholdsConfig()
    return (completed - won) >= thresholds.due_winner_min_losses and win_rate < thresholds.due_winner_max_win_rate


def _validate_inputs(races, entries_by_race, result_positions):
    if races is None:
        raise ValueError("races must be a list of Race records, got None")
    if not isinstance(races, (list, tuple)):
        raise ValueError(f"races must be a list of Race records, got {type(races).__name__}")
    if not isinstance(entries_by_race, Mapping):
        raise ValueError(f"entries_by_race must be a mapping of race_id to entries, got {type(entries_by_race).__name__}")
    if not isinstance(result_positions, Mapping):
        raise ValueError(f"result_positions must be a mapping of race_id to positions, got {type(result_positions).__name__}")
    for race_id, entries in entries_by_race.items():
        if not isinstance(entries, (list, tuple)):
            raise ValueError(f"Entries for race {race_id} must be a list, got {type(entries).__name__}")


def credit_race(race: Race,
                entries: Sequence[RaceEntry],
                result_positions: ResultPositions,
                model: ModelSpec,
                normalizer: Optional[RaceProbabilityNormalizer] = None) -> Optional[RaceResult]:
    """
    Credit one race to a model via its highest-ranked runner with a confirmed position.

    Runners with no positive probability for the model are never credited. Returns
    None when no ranked runner resolves.
    """
    race_positions = result_positions.get(race.race_id)
    if not race_positions:
        return None

    for entry in rank_picks(entries, model):
        probability = entry.probability(model.proba_field)
        if probability <= 0:
            break

        match = match_position(entry, race_positions)
        if match.outcome is not MatchOutcome.MATCHED:
            # Non-runner, result gap or ambiguous name: try the next pick
            continue

        normalized = normalizer.normalize(probability, race.race_id) if normalizer else probability
        return RaceResult(
            race_id=race.race_id,
            course=race.course_name or 'Unknown',
            off_time=race.off_time,
            horse_name=entry.horse_name or 'Unknown',
            probability=probability,
            normalized_probability=normalized,
            finishing_position=match.position,
            is_winner=match.position == 1,
            match_method=match.method.value,
        )

    return None


def aggregate(races: Sequence[Race],
              entries_by_race: Mapping[str, Sequence[RaceEntry]],
              result_positions: ResultPositions,
              model: ModelSpec,
              thresholds: Optional[ThresholdsConfig] = None,
              normalizer: Optional[RaceProbabilityNormalizer] = None) -> ModelPerformance:
    """
    Build one model's performance for a race day.

    Args:
        races: The day's races; abandoned races are ignored
        entries_by_race: race_id -> runners
        result_positions: race_id -> confirmed positions
        model: Model whose picks are evaluated
        thresholds: Trend and due-winner thresholds
        normalizer: Normalizer for the displayed probability of each credited pick

    Returns:
        ModelPerformance with no next_runner set

    Raises:
        ValueError: If an input collection is missing or of the wrong type
    """
    _validate_inputs(races, entries_by_race, result_positions)
    thresholds = thresholds or ThresholdsConfig()
    normalizer = normalizer or RaceProbabilityNormalizer(entries_by_race, model.proba_field)

    active_races = [race for race in races if not race.is_abandoned_race]
    race_results: List[RaceResult] = []
    races_won = 0
    races_lost = 0
    races_top3 = 0

    for race in active_races:
        if race.race_id not in result_positions:
            continue

        entries = entries_by_race.get(race.race_id) or []
        if not entries:
            logger.debug(f"No entries for completed race {race.race_id}; skipped for {model.name}")
            continue

        result = credit_race(race, entries, result_positions, model, normalizer)
        if result is None:
            continue

        if result.is_winner:
            races_won += 1
        else:
            races_lost += 1
        if 1 <= result.finishing_position <= 3:
            races_top3 += 1

        race_results.append(result)

    race_results.sort(key=lambda result: normalize_race_clock_time(result.off_time))

    completed = races_won + races_lost
    win_rate = calculate_win_rate(races_won, completed)

    return ModelPerformance(
        model_name=model.name,
        full_name=model.full_name,
        total_races_today=len(active_races),
        races_completed=completed,
        races_won=races_won,
        races_lost=races_lost,
        races_top3=races_top3,
        win_rate=win_rate,
        top3_rate=calculate_win_rate(races_top3, completed),
        has_results=completed > 0,
        performance_trend=classify_trend(win_rate, completed, thresholds),
        is_due_winner=is_due_winner(completed, races_won, win_rate, thresholds),
        race_results=race_results,
    )
