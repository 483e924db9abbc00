"""
Per-race probability normalization.

Raw model outputs are independent per-runner scores that do not sum to 1 across a
field. Dividing each by the race total gives win probabilities that do:

    normalized(horse) = raw(horse) / sum(raw(all horses in the race))

When the total is not positive the raw value is returned unchanged.
"""

from typing import Dict, Iterable, List, Mapping, Sequence

import numpy as np

from model_tracking.records import RaceEntry


def _field_total(entries: Sequence[RaceEntry], proba_field: str) -> float:
    if not entries:
        return 0.0
    return float(np.sum([entry.probability(proba_field) for entry in entries]))


def normalize_probability(raw_probability: float, race_total: float) -> float:
    if race_total > 0:
        return raw_probability / race_total
    return raw_probability


class RaceProbabilityNormalizer:
    """
    Holds one model field's per-race totals so each race is summed once.

    Args:
        entries_by_race: race_id -> runners in that race
        proba_field: Entry column to normalize (usually the ensemble model's)
    """

    def __init__(self, entries_by_race: Mapping[str, Sequence[RaceEntry]], proba_field: str):
        self.proba_field = proba_field
        self.race_totals: Dict[str, float] = {
            race_id: _field_total(entries, proba_field)
            for race_id, entries in entries_by_race.items()
        }

    def normalize(self, raw_probability: float, race_id: str) -> float:
        return normalize_probability(raw_probability, self.race_totals.get(race_id, 0.0))


def normalize_field(entries: Sequence[RaceEntry], proba_field: str) -> List[float]:
    """
    Normalize one model field across a single race.

    Returns:
        Normalized probabilities in the same order as entries
    """
    total = _field_total(entries, proba_field)
    return [normalize_probability(entry.probability(proba_field), total) for entry in entries]


def normalize_all_models(entries: Sequence[RaceEntry], proba_fields: Iterable[str]) -> Dict[str, List[float]]:
    """proba_field -> normalize_field(entries, proba_field) for every field."""
    return {proba_field: normalize_field(entries, proba_field) for proba_field in proba_fields}


def with_normalized_ensemble(entries: Sequence[RaceEntry], proba_field: str = 'ensemble_proba') -> List[Dict]:
    """
    Entries of one race as dictionaries carrying a `normalized_ensemble` value.
    """
    rows = []
    for entry, normalized in zip(entries, normalize_field(entries, proba_field)):
        row = entry.model_dump()
        row['normalized_ensemble'] = normalized
        rows.append(row)
    return rows


# Display helpers, thresholds sized for fields of 5-20 runners

def normalized_stars(prob: float) -> int:
    if prob >= 0.30:
        return 5
    if prob >= 0.22:
        return 4
    if prob >= 0.14:
        return 3
    if prob >= 0.08:
        return 2
    return 1


def confidence_band(prob: float) -> str:
    if prob >= 0.25:
        return 'high'
    if prob >= 0.12:
        return 'medium'
    return 'low'


def format_normalized(prob: float) -> str:
    return f"{prob * 100:.1f}%"
