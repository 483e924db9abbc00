from typing import AbstractSet, Mapping, Optional, Sequence

from core.calculators.odds_formatter import decimal_to_fractional
from model_tracking.performance_aggregator import NextRunner
from model_tracking.pick_selector import rank_picks
from model_tracking.probability_normalizer import RaceProbabilityNormalizer
from model_tracking.records import Race, RaceEntry
from utils.env_setup import ModelSpec
from utils.race_clock import format_race_time


def next_pick(races: Sequence[Race],
              entries_by_race: Mapping[str, Sequence[RaceEntry]],
              model: ModelSpec,
              now_minutes: int,
              completed_race_ids: AbstractSet[str] = frozenset(),
              normalizer: Optional[RaceProbabilityNormalizer] = None) -> Optional[NextRunner]:
    """
    Model's top pick in the earliest race that has not gone off and has no result.

    Races are ordered with the racing AM/PM convention applied. A race in which the
    model gives no runner a positive probability is passed over.

    Args:
        races: The day's races
        entries_by_race: race_id -> runners
        model: Model whose pick is wanted
        now_minutes: Current time as minutes since midnight
        completed_race_ids: Races that already have confirmed results
        normalizer: Normalizer for the pick's displayed confidence

    Returns:
        NextRunner, or None when no upcoming race qualifies
    """
    if races is None:
        raise ValueError("races must be a list of Race records, got None")

    upcoming = sorted(
        (race for race in races if not race.is_abandoned_race),
        key=lambda race: race.off_minutes,
    )

    for race in upcoming:
        if race.off_minutes <= now_minutes:
            continue
        if race.race_id in completed_race_ids:
            continue

        ranked = rank_picks(entries_by_race.get(race.race_id) or [], model)
        if not ranked:
            continue

        top = ranked[0]
        probability = top.probability(model.proba_field)
        if probability <= 0:
            continue

        normalized = normalizer.normalize(probability, race.race_id) if normalizer else probability
        return NextRunner(
            horse_name=top.horse_name or 'Unknown',
            odds=decimal_to_fractional(top.current_odds) if top.current_odds else 'N/A',
            trainer=top.trainer_name or 'N/A',
            jockey=top.jockey_name or 'N/A',
            confidence=probability * 100,
            normalized_confidence=normalized * 100,
            race_time=format_race_time(race.off_time),
            course=race.course_name or 'N/A',
            race_id=race.race_id,
            horse_id=top.horse_id,
        )

    return None
