"""
Shared fixtures for the model tracker tests.
"""

import sqlite3

import pytest

from model_tracking.records import Race, RaceEntry
from utils.env_setup import DEFAULT_MODELS, ModelSpec

PROBA_FIELDS = [model['proba_field'] for model in DEFAULT_MODELS]


@pytest.fixture
def model_specs():
    """The five default models."""
    return [ModelSpec(**model) for model in DEFAULT_MODELS]


@pytest.fixture
def ensemble():
    return ModelSpec(name='ensemble', full_name='Ensemble Model', proba_field='ensemble_proba')


@pytest.fixture
def make_race():
    """Factory for Race records."""
    def _make_race(race_id, off_time='02:00', course_name='Ascot', race_date='2025-09-05', **extra):
        return Race(race_id=race_id, off_time=off_time, course_name=course_name, date=race_date, **extra)
    return _make_race


@pytest.fixture
def make_entry():
    """Factory for RaceEntry records; keyword probabilities are keyed by proba field."""
    def _make_entry(race_id, horse_id, horse_name, finishing_position=None, **probabilities):
        record = {
            'race_id': race_id,
            'horse_id': horse_id,
            'horse_name': horse_name,
            'trainer_name': 'J Gosden',
            'jockey_name': 'F Dettori',
            'current_odds': '5.0',
            'finishing_position': finishing_position,
        }
        record.update(probabilities)
        return RaceEntry.from_record(record, PROBA_FIELDS)
    return _make_entry


@pytest.fixture
def racing_db(tmp_path):
    """Empty SQLite database with the tracker's tables; returns its path."""
    db_path = tmp_path / 'racing.db'
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE races (
            race_id TEXT PRIMARY KEY,
            off_time TEXT,
            course_name TEXT,
            date TEXT,
            going TEXT,
            is_abandoned INTEGER,
            race_status TEXT
        );
        CREATE TABLE race_entries (
            race_id TEXT,
            horse_id TEXT,
            horse_name TEXT,
            trainer_name TEXT,
            jockey_name TEXT,
            current_odds TEXT,
            number INTEGER,
            finishing_position INTEGER,
            mlp_proba REAL,
            rf_proba REAL,
            xgboost_proba REAL,
            benter_proba REAL,
            ensemble_proba REAL
        );
        CREATE TABLE race_runners (
            race_id TEXT,
            horse_id TEXT,
            horse TEXT,
            position INTEGER
        );
        CREATE TABLE ml_model_race_results (
            race_id TEXT,
            horse_id TEXT,
            horse_name TEXT,
            model_name TEXT,
            predicted_probability REAL,
            actual_position INTEGER,
            is_winner INTEGER,
            is_top3 INTEGER,
            created_at TEXT
        );
    """)
    conn.commit()
    conn.close()
    return str(db_path)


@pytest.fixture
def insert_rows():
    """Insert dict rows into a table of a SQLite database file."""
    def _insert_rows(db_path, table, rows):
        conn = sqlite3.connect(db_path)
        try:
            for row in rows:
                columns = list(row)
                conn.execute(
                    f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})",
                    [row[column] for column in columns],
                )
            conn.commit()
        finally:
            conn.close()
    return _insert_rows
