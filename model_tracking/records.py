"""
Typed race records validated at the data-fetch boundary.

Rows arrive from the storage backends as loosely typed dictionaries; everything
downstream of the repository and the result sources works on these models.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict, field_validator

from utils.race_clock import normalize_race_clock_time


def coerce_probability(value: Any) -> Optional[float]:
    """Float value of a model output, or None when missing or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def coerce_position(value: Any) -> Optional[int]:
    """Confirmed finishing position (>= 1) or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 1 or number != int(number):
        return None
    return int(number)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class Race(BaseModel):
    model_config = ConfigDict(extra='ignore')

    race_id: str
    off_time: str = ''
    course_name: str = ''
    date: str = ''
    going: Optional[str] = None
    is_abandoned: Optional[bool] = None
    race_status: Optional[str] = None

    @field_validator('race_id', mode='before')
    @classmethod
    def _race_id_text(cls, value):
        text = _as_text(value)
        if text is None:
            raise ValueError("race_id is required")
        return text

    @field_validator('off_time', 'course_name', 'date', mode='before')
    @classmethod
    def _optional_text(cls, value):
        return _as_text(value) or ''

    @property
    def is_abandoned_race(self) -> bool:
        return (
            (self.going or '').lower() == 'abandoned'
            or self.is_abandoned is True
            or self.race_status == 'abandoned'
        )

    @property
    def off_minutes(self) -> int:
        return normalize_race_clock_time(self.off_time)


class RaceEntry(BaseModel):
    model_config = ConfigDict(extra='ignore')

    race_id: str
    horse_id: Optional[str] = None
    horse_name: str = ''
    trainer_name: Optional[str] = None
    jockey_name: Optional[str] = None
    current_odds: Optional[str] = None
    number: Optional[int] = None
    finishing_position: Optional[int] = None
    probabilities: Dict[str, Optional[float]] = {}

    @field_validator('race_id', mode='before')
    @classmethod
    def _race_id_text(cls, value):
        text = _as_text(value)
        if text is None:
            raise ValueError("race_id is required")
        return text

    @field_validator('horse_id', 'trainer_name', 'jockey_name', 'current_odds', mode='before')
    @classmethod
    def _nullable_text(cls, value):
        return _as_text(value)

    @field_validator('horse_name', mode='before')
    @classmethod
    def _name_text(cls, value):
        return _as_text(value) or ''

    @field_validator('number', mode='before')
    @classmethod
    def _number(cls, value):
        return coerce_position(value)

    @field_validator('finishing_position', mode='before')
    @classmethod
    def _finishing_position(cls, value):
        return coerce_position(value)

    @classmethod
    def from_record(cls, record: Dict[str, Any], proba_fields: Iterable[str]) -> 'RaceEntry':
        """Build an entry from a raw row, lifting each model column into probabilities."""
        data = dict(record)
        data['probabilities'] = {name: coerce_probability(record.get(name)) for name in proba_fields}
        return cls(**data)

    def probability(self, proba_field: str) -> float:
        """Model probability with missing values counted as 0."""
        value = self.probabilities.get(proba_field)
        return value if value is not None else 0.0


class ResultRow(BaseModel):
    """One confirmed finishing position from a result source."""
    model_config = ConfigDict(extra='ignore')

    race_id: str
    horse_id: Optional[str] = None
    horse_name: Optional[str] = None
    position: int

    @field_validator('race_id', mode='before')
    @classmethod
    def _race_id_text(cls, value):
        text = _as_text(value)
        if text is None:
            raise ValueError("race_id is required")
        return text

    @field_validator('horse_id', 'horse_name', mode='before')
    @classmethod
    def _nullable_text(cls, value):
        return _as_text(value)

    @field_validator('position', mode='before')
    @classmethod
    def _confirmed_position(cls, value):
        position = coerce_position(value)
        if position is None:
            raise ValueError(f"not a confirmed finishing position: {value!r}")
        return position


@dataclass
class RacePositions:
    """Finishing positions for one race, keyed by horse id and by bare name."""
    by_horse_id: Dict[str, int] = field(default_factory=dict)
    by_name: Dict[str, int] = field(default_factory=dict)
    ambiguous_names: Set[str] = field(default_factory=set)

    def add(self, position: int, horse_id: Optional[str] = None, bare_name: Optional[str] = None):
        if horse_id:
            self.by_horse_id[horse_id] = position
        if bare_name:
            existing = self.by_name.get(bare_name)
            if existing is not None and existing != position:
                self.ambiguous_names.add(bare_name)
            self.by_name.setdefault(bare_name, position)

    def __len__(self):
        return max(len(self.by_horse_id), len(self.by_name))

    def __bool__(self):
        return bool(self.by_horse_id or self.by_name)


# race_id -> RacePositions
ResultPositions = Dict[str, RacePositions]
