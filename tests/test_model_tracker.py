"""
End-to-end tests for the model tracker on a temporary SQLite database.
"""

from unittest.mock import patch

import pytest
import yaml

from core.connectors.table_reader import SQLiteTableReader
from model_tracking.model_tracker import ModelTracker, compute_snapshot, races_awaiting_results
from model_tracking.result_sources import NO_SOURCE, ResolvedPositions
from utils.env_setup import AppConfig
from utils.race_clock import FixedClock

RACE_DATE = '2025-09-05'


@pytest.fixture
def config(tmp_path, racing_db):
    """AppConfig whose active database is the temporary racing_db."""
    config_path = tmp_path / 'config.yaml'
    config_path.write_text(yaml.safe_dump({
        'base': {'backend': 'sqlite', 'active_db': 'racing'},
        'databases': [{'name': 'racing', 'type': 'sqlite', 'path': racing_db}],
    }))
    return AppConfig(str(config_path))


@pytest.fixture
def race_day(racing_db, insert_rows):
    """
    Three active races and one abandoned meeting:
    R1 13:30 (result in), R2 14:30 (no result yet), R3 16:00 (to run), R4 abandoned.
    """
    insert_rows(racing_db, 'races', [
        {'race_id': 'R1', 'off_time': '01:30', 'course_name': 'Ascot', 'date': RACE_DATE},
        {'race_id': 'R2', 'off_time': '02:30', 'course_name': 'Ascot', 'date': RACE_DATE},
        {'race_id': 'R3', 'off_time': '04:00', 'course_name': 'York', 'date': RACE_DATE},
        {'race_id': 'R4', 'off_time': '03:00', 'course_name': 'Kelso', 'date': RACE_DATE,
         'is_abandoned': 1},
        {'race_id': 'X1', 'off_time': '02:00', 'course_name': 'Ayr', 'date': '2025-09-04'},
    ])
    insert_rows(racing_db, 'race_entries', [
        {'race_id': 'R1', 'horse_id': 'H1', 'horse_name': 'Kingmambo (IRE)', 'current_odds': '3.0',
         'ensemble_proba': 0.6, 'rf_proba': 0.2},
        {'race_id': 'R1', 'horse_id': 'H2', 'horse_name': 'Bravo', 'current_odds': '4.0',
         'ensemble_proba': 0.3, 'rf_proba': 0.7},
        {'race_id': 'R2', 'horse_id': 'H3', 'horse_name': 'Charlie', 'current_odds': '6.0',
         'ensemble_proba': 0.5, 'rf_proba': 0.5},
        {'race_id': 'R3', 'horse_id': 'H4', 'horse_name': 'Delta', 'current_odds': '2.5',
         'ensemble_proba': 0.45, 'rf_proba': 0.1},
        {'race_id': 'R3', 'horse_id': 'H5', 'horse_name': 'Echo', 'current_odds': '9.0',
         'ensemble_proba': 0.15, 'rf_proba': 0.3},
        {'race_id': 'R4', 'horse_id': 'H6', 'horse_name': 'Foxtrot', 'current_odds': '2.0',
         'ensemble_proba': 0.9, 'rf_proba': 0.9},
    ])
    insert_rows(racing_db, 'race_runners', [
        {'race_id': 'R1', 'horse_id': None, 'horse': 'Kingmambo', 'position': 1},
        {'race_id': 'R1', 'horse_id': 'H2', 'horse': 'Bravo', 'position': 2},
        {'race_id': 'R4', 'horse_id': 'H6', 'horse': 'Foxtrot', 'position': 1},
    ])


@pytest.fixture
def tracker(config):
    return ModelTracker(config, clock=FixedClock.at(RACE_DATE, '15:00'))


class TestModelTracker:

    def test_snapshot(self, tracker, race_day):
        """Test the headline figures of a race day with one result in."""
        snapshot = tracker.build_snapshot()

        assert snapshot.race_date == RACE_DATE
        assert snapshot.last_updated == '2025-09-05T15:00:00+00:00'
        assert snapshot.total_races_today == 3
        assert snapshot.completed_races == 1
        assert snapshot.results_source == 'race_runners'
        assert snapshot.abandoned_courses == ['Kelso']
        assert snapshot.abandoned_count == 1
        assert snapshot.awaiting_results == ['R2']
        assert [model.model_name for model in snapshot.models] == ['mlp', 'rf', 'xgboost', 'benter', 'ensemble']

    def test_ensemble_win_by_bare_name(self, tracker, race_day):
        """Test the ensemble's pick is matched on its name without country suffix."""
        ensemble = tracker.build_snapshot().models[-1]

        assert ensemble.races_completed == 1
        assert ensemble.races_won == 1
        assert ensemble.performance_trend == 'hot'
        result = ensemble.race_results[0]
        assert result.horse_name == 'Kingmambo (IRE)'
        assert result.match_method == 'bare_name'
        assert result.normalized_probability == pytest.approx(0.6 / 0.9)

    def test_rf_loses(self, tracker, race_day):
        rf = tracker.build_snapshot().models[1]

        assert rf.races_lost == 1
        assert rf.races_top3 == 1
        assert rf.performance_trend == 'cold'

    def test_next_runner(self, tracker, race_day):
        """Test R2 has gone off, so the next runner comes from the 16:00 race."""
        ensemble = tracker.build_snapshot().models[-1]

        runner = ensemble.next_runner
        assert runner.race_id == 'R3'
        assert runner.horse_name == 'Delta'
        assert runner.race_time == '16:00'
        assert runner.odds == '6/4'
        assert runner.confidence == pytest.approx(45.0)
        assert runner.normalized_confidence == pytest.approx(75.0)

    def test_model_without_probabilities(self, tracker, race_day):
        """Test a model with no outputs has no results and no next runner."""
        mlp = tracker.build_snapshot().models[0]

        assert mlp.races_completed == 0
        assert not mlp.has_results
        assert mlp.next_runner is None

    def test_no_results_yet(self, tracker, racing_db, insert_rows):
        insert_rows(racing_db, 'races', [
            {'race_id': 'R1', 'off_time': '01:30', 'course_name': 'Ascot', 'date': RACE_DATE},
        ])

        snapshot = tracker.build_snapshot()

        assert snapshot.completed_races == 0
        assert snapshot.results_source == NO_SOURCE
        assert all(model.races_completed == 0 for model in snapshot.models)

    def test_no_races(self, tracker):
        snapshot = tracker.build_snapshot()

        assert snapshot.total_races_today == 0
        assert snapshot.results_source == NO_SOURCE
        assert snapshot.abandoned_count == 0
        assert all(model.next_runner is None for model in snapshot.models)

    def test_other_date(self, tracker, race_day):
        snapshot = tracker.build_snapshot('2025-09-04')

        assert snapshot.race_date == '2025-09-04'
        assert snapshot.total_races_today == 1

    def test_past_date(self, tracker, racing_db, insert_rows):
        """Test an earlier race day is fully run: archive of that day used, no next runner."""
        insert_rows(racing_db, 'races', [
            {'race_id': 'P1', 'off_time': '04:00', 'course_name': 'Ayr', 'date': '2025-09-01'},
            {'race_id': 'P2', 'off_time': '05:00', 'course_name': 'Ayr', 'date': '2025-09-01'},
        ])
        insert_rows(racing_db, 'race_entries', [
            {'race_id': 'P1', 'horse_id': 'H1', 'horse_name': 'Old', 'ensemble_proba': 0.5},
            {'race_id': 'P2', 'horse_id': 'H2', 'horse_name': 'Older', 'ensemble_proba': 0.5},
        ])
        insert_rows(racing_db, 'ml_model_race_results', [
            {'race_id': 'P1', 'horse_id': 'H1', 'horse_name': 'Old', 'model_name': 'ensemble',
             'predicted_probability': 0.5, 'actual_position': 1, 'is_winner': 1, 'is_top3': 1,
             'created_at': '2025-09-01T17:00:00'},
        ])

        snapshot = tracker.build_snapshot('2025-09-01')

        assert snapshot.results_source == 'archived_results'
        assert snapshot.completed_races == 1
        assert snapshot.awaiting_results == ['P2']
        assert all(model.next_runner is None for model in snapshot.models)
        assert snapshot.models[-1].races_won == 1

    def test_future_date(self, tracker, racing_db, insert_rows):
        """Test a later race day is all to come: earliest race is next, nothing awaiting."""
        insert_rows(racing_db, 'races', [
            {'race_id': 'F1', 'off_time': '12:15', 'course_name': 'Ascot', 'date': '2025-09-06'},
            {'race_id': 'F2', 'off_time': '01:00', 'course_name': 'Ascot', 'date': '2025-09-06'},
        ])
        insert_rows(racing_db, 'race_entries', [
            {'race_id': 'F1', 'horse_id': 'H1', 'horse_name': 'Early', 'ensemble_proba': 0.4},
            {'race_id': 'F2', 'horse_id': 'H2', 'horse_name': 'Later', 'ensemble_proba': 0.6},
        ])

        snapshot = tracker.build_snapshot('2025-09-06')

        assert snapshot.awaiting_results == []
        assert snapshot.completed_races == 0
        assert snapshot.models[-1].next_runner.race_id == 'F1'
        assert snapshot.models[-1].next_runner.race_time == '12:15'

    def test_summary_frame(self, tracker, race_day):
        """Test models without results show no win rate rather than 0%."""
        frame = tracker.build_snapshot().summary_frame()

        assert list(frame['model_name']) == ['mlp', 'rf', 'xgboost', 'benter', 'ensemble']
        assert frame.loc[frame['model_name'] == 'ensemble', 'win_rate'].iloc[0] == 100.0
        assert frame.loc[frame['model_name'] == 'mlp', 'win_rate'].isna().iloc[0]

    def test_to_dict(self, tracker, race_day):
        data = tracker.build_snapshot().to_dict()

        assert data['results_source'] == 'race_runners'
        assert data['models'][-1]['race_results'][0]['race_id'] == 'R1'


class TestComputeSnapshot:

    def test_single_instant(self, make_race, make_entry, model_specs):
        """Test every model is computed against the clock's one reading."""
        clock = FixedClock.at(RACE_DATE, '12:00')
        races = [make_race('R1', off_time='01:00')]
        entries_by_race = {'R1': [make_entry('R1', 'H1', 'Alpha', mlp_proba=0.3, ensemble_proba=0.4)]}

        snapshot = compute_snapshot(races, entries_by_race, ResolvedPositions(), model_specs, clock)

        assert snapshot.race_date == RACE_DATE
        assert snapshot.models[0].next_runner.horse_name == 'Alpha'
        assert snapshot.models[-1].next_runner.confidence == pytest.approx(40.0)

    def test_none_races(self, model_specs):
        with pytest.raises(ValueError):
            compute_snapshot(None, {}, ResolvedPositions(), model_specs, FixedClock.at(RACE_DATE, '12:00'))


class TestRacesAwaitingResults:

    def test_buffer(self, make_race):
        races = [make_race('R1', off_time='01:00'), make_race('R2', off_time='01:55'), make_race('R3', off_time='')]

        assert races_awaiting_results(races, set(), now_minutes=14 * 60, buffer_minutes=10) == ['R1']
        assert races_awaiting_results(races, {'R1'}, now_minutes=14 * 60, buffer_minutes=10) == []


class TestTrackerBackend:

    def test_default_reader_follows_configured_backend(self, tmp_path):
        """Test base.backend 'supabase' is used when no reader is passed."""
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(yaml.safe_dump({'base': {'backend': 'supabase'}}))
        config = AppConfig(str(config_path))

        with patch('core.connectors.reader_factory.create_supabase_reader') as create_supabase_reader:
            tracker = ModelTracker(config, clock=FixedClock.at(RACE_DATE, '12:00'))

        create_supabase_reader.assert_called_once_with(config)
        assert tracker.reader is create_supabase_reader.return_value

    def test_default_reader_sqlite(self, config):
        tracker = ModelTracker(config, clock=FixedClock.at(RACE_DATE, '12:00'))
        assert isinstance(tracker.reader, SQLiteTableReader)


class TestBuildHistory:

    def test_uses_configured_window(self, tracker, racing_db, insert_rows):
        """Test the archive window defaults to tracker.history_days (30)."""
        insert_rows(racing_db, 'ml_model_race_results', [
            {'race_id': 'A1', 'model_name': 'ensemble', 'predicted_probability': 0.4,
             'actual_position': 1, 'is_winner': 1, 'is_top3': 1, 'created_at': '2025-09-01T17:00:00'},
            {'race_id': 'A2', 'model_name': 'ensemble', 'predicted_probability': 0.2,
             'actual_position': 5, 'is_winner': 0, 'is_top3': 0, 'created_at': '2025-08-20T17:00:00'},
            {'race_id': 'A3', 'model_name': 'ensemble', 'predicted_probability': 0.3,
             'actual_position': 1, 'is_winner': 1, 'is_top3': 1, 'created_at': '2025-07-01T17:00:00'},
        ])

        history = tracker.build_history()

        assert history.days_back == 30
        assert history.total_records == 2
        ensemble = history.models[-1]
        assert ensemble.total_predictions == 2
        assert ensemble.winner_accuracy == pytest.approx(50.0)

    def test_single_model(self, tracker):
        history = tracker.build_history(7, 'rf')

        assert history.model_filter == 'rf'
        assert [model.model_name for model in history.models] == ['rf']
