"""
Per-model accuracy over a rolling window of the prediction archive.

Each archive row (ml_model_race_results) is one model's pick for one race together
with where it finished. Over the last N days this module counts, per model, the
archived picks, how many won, how many placed in the top three, and the average
probability the model gave them.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from core.connectors.table_reader import TableReader, QueryFilter, fetch_in_batches
from core.storage.race_repository import RaceDataError
from model_tracking.performance_aggregator import calculate_win_rate
from model_tracking.records import coerce_position, coerce_probability
from utils.env_setup import ModelSpec
from utils.race_clock import Clock

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = ['race_id', 'model_name', 'predicted_probability', 'actual_position',
                   'is_winner', 'is_top3', 'created_at']


class ArchivedPick(BaseModel):
    """One archived model pick with its outcome."""
    model_config = ConfigDict(extra='ignore')

    race_id: str
    model_name: str
    predicted_probability: float = 0.0
    actual_position: int
    is_winner: Optional[bool] = None
    is_top3: Optional[bool] = None
    created_at: Optional[str] = None

    @field_validator('race_id', 'model_name', mode='before')
    @classmethod
    def _text(cls, value):
        return str(value).strip() if value is not None else value

    @field_validator('predicted_probability', mode='before')
    @classmethod
    def _probability(cls, value):
        probability = coerce_probability(value)
        return probability if probability is not None else 0.0

    @field_validator('actual_position', mode='before')
    @classmethod
    def _position(cls, value):
        position = coerce_position(value)
        if position is None:
            raise ValueError(f"not a confirmed finishing position: {value!r}")
        return position

    @property
    def won(self) -> bool:
        return self.is_winner if self.is_winner is not None else self.actual_position == 1

    @property
    def placed(self) -> bool:
        return self.is_top3 if self.is_top3 is not None else self.actual_position <= 3


@dataclass
class ModelHistory:
    """One model's archived accuracy over the window."""
    model_name: str
    full_name: str
    total_predictions: int = 0
    correct_winner_predictions: int = 0
    correct_top3_predictions: int = 0
    winner_accuracy: float = 0.0
    top3_accuracy: float = 0.0
    average_confidence: float = 0.0
    average_confidence_when_correct: float = 0.0
    average_confidence_when_incorrect: float = 0.0


@dataclass
class PerformanceHistory:
    days_back: int
    model_filter: str
    total_records: int
    since: Optional[str]
    models: List[ModelHistory] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary_frame(self) -> pd.DataFrame:
        columns = ['model_name', 'total_predictions', 'winner_accuracy', 'top3_accuracy', 'average_confidence']
        return pd.DataFrame([{column: getattr(model, column) for column in columns} for model in self.models],
                            columns=columns)


def _mean_percent(values: pd.Series) -> float:
    if values.empty:
        return 0.0
    return float(values.mean() * 100)


def summarize_history(picks: Sequence[ArchivedPick], models: Sequence[ModelSpec]) -> List[ModelHistory]:
    """
    Per-model counts and rates for the given archived picks.

    Every model in models gets an entry, with zeros when it has no picks. Picks of
    models not listed are ignored.
    """
    frame = pd.DataFrame(
        [{'model_name': pick.model_name, 'probability': pick.predicted_probability,
          'won': pick.won, 'placed': pick.placed} for pick in picks],
        columns=['model_name', 'probability', 'won', 'placed'],
    )

    histories = []
    for model in models:
        model_picks = frame[frame['model_name'] == model.name]
        total = len(model_picks)
        won = int(model_picks['won'].sum())
        placed = int(model_picks['placed'].sum())
        winners = model_picks['won'].astype(bool)
        histories.append(ModelHistory(
            model_name=model.name,
            full_name=model.full_name,
            total_predictions=total,
            correct_winner_predictions=won,
            correct_top3_predictions=placed,
            winner_accuracy=calculate_win_rate(won, total),
            top3_accuracy=calculate_win_rate(placed, total),
            average_confidence=_mean_percent(model_picks['probability']),
            average_confidence_when_correct=_mean_percent(model_picks.loc[winners, 'probability']),
            average_confidence_when_incorrect=_mean_percent(model_picks.loc[~winners, 'probability']),
        ))
    return histories


def aggregate_history(reader: TableReader,
                      models: Sequence[ModelSpec],
                      clock: Clock,
                      days_back: int = 30,
                      model_name: Optional[str] = None,
                      table: str = 'ml_model_race_results',
                      batch_size: int = 50) -> PerformanceHistory:
    """
    Aggregate archived picks of the last days_back days per model.

    Args:
        reader: Storage backend
        models: Configured models; every one appears in the result
        clock: Source of "now" for the window start
        days_back: Window length in days; 0 or less reads the whole archive
        model_name: Restrict to one model
        table: Archive table name
        batch_size: Maximum model names per query

    Returns:
        PerformanceHistory

    Raises:
        ValueError: If model_name is not a configured model
        RaceDataError: If the archive cannot be read
    """
    if model_name is not None:
        models = [model for model in models if model.name == model_name]
        if not models:
            raise ValueError(f"Model '{model_name}' not found in configured models")

    since = None
    filters = []
    if days_back > 0:
        since = (clock.now() - timedelta(days=days_back)).strftime('%Y-%m-%dT%H:%M:%S')
        filters.append(QueryFilter('created_at', 'gte', since))

    try:
        rows = fetch_in_batches(reader, table, HISTORY_COLUMNS, 'model_name',
                                [model.name for model in models], batch_size, filters=filters)
    except Exception as e:
        raise RaceDataError(f"Failed to fetch model history from {table}: {e}") from e

    picks = []
    for row in rows:
        try:
            picks.append(ArchivedPick(**row))
        except ValidationError:
            logger.debug(f"Skipping archive row for race {row.get('race_id')!r} without a confirmed position")

    logger.info(f"Got {len(picks)} archived picks over {days_back} days")

    return PerformanceHistory(
        days_back=days_back,
        model_filter=model_name or 'all',
        total_records=len(picks),
        since=since,
        models=summarize_history(picks, models),
    )
