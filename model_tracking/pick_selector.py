from typing import List, Sequence

from model_tracking.records import RaceEntry
from utils.env_setup import ModelSpec


def rank_picks(entries: Sequence[RaceEntry], model: ModelSpec) -> List[RaceEntry]:
    """
    Order a race's runners by one model's probability, highest first.

    Missing or non-numeric probabilities rank as 0. The sort is stable, so ties keep
    the race-card order.
    """
    return sorted(entries, key=lambda entry: entry.probability(model.proba_field), reverse=True)
