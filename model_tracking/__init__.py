"""
Model tracking for daily race predictions.

Attributes each prediction model's top pick per race to a finishing position and
rolls the outcomes into per-model performance figures.
"""

from .model_tracker import ModelTracker, TrackerSnapshot, compute_snapshot
from .performance_aggregator import ModelPerformance, RaceResult, NextRunner, aggregate
from .result_sources import ResultSourceResolver, ResolvedPositions
from .probability_normalizer import RaceProbabilityNormalizer
from .performance_history import PerformanceHistory, ModelHistory, aggregate_history

__all__ = [
    'ModelTracker',
    'TrackerSnapshot',
    'compute_snapshot',
    'ModelPerformance',
    'RaceResult',
    'NextRunner',
    'aggregate',
    'ResultSourceResolver',
    'ResolvedPositions',
    'RaceProbabilityNormalizer',
    'PerformanceHistory',
    'ModelHistory',
    'aggregate_history',
]

__version__ = '1.0.0'
