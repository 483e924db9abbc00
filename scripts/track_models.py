#!/usr/bin/env python3
"""
Model Tracker Report

Shows how each prediction model's top picks have fared on a race day and each
model's next runner.

Usage:
    # Today's races from the configured backend
    python scripts/track_models.py

    # Specific date, Supabase backend, JSON dump
    python scripts/track_models.py --date 2025-09-05 --backend supabase --json outputs/tracker.json

    # Archived accuracy of the ensemble over the last 30 days
    python scripts/track_models.py --history 30 --model ensemble
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.connectors.reader_factory import create_reader
from core.storage.race_repository import RaceDataError
from model_tracking.model_tracker import ModelTracker, TrackerSnapshot
from model_tracking.performance_history import PerformanceHistory
from utils.env_setup import AppConfig


def format_report(snapshot: TrackerSnapshot) -> str:
    lines = [
        f"Model tracker for {snapshot.race_date} (updated {snapshot.last_updated})",
        f"  Races today: {snapshot.total_races_today}",
        f"  Completed races: {snapshot.completed_races} (source: {snapshot.results_source})",
    ]

    if snapshot.abandoned_count:
        lines.append(
            f"  Abandoned: {snapshot.abandoned_count} race(s) at {', '.join(snapshot.abandoned_courses)}"
        )
    if snapshot.awaiting_results:
        lines.append(f"  Awaiting results: {', '.join(snapshot.awaiting_results)}")

    with pd.option_context('display.width', 140, 'display.max_columns', 20):
        frame = snapshot.summary_frame()
        frame['win_rate'] = frame['win_rate'].map(lambda rate: 'N/A' if pd.isna(rate) else f"{rate:.1f}%")
        lines.append("")
        lines.append(frame.to_string(index=False))

    lines.append("")
    lines.append("Next runners:")
    for performance in snapshot.models:
        runner = performance.next_runner
        if runner is None:
            lines.append(f"  {performance.full_name}: no upcoming pick")
            continue
        lines.append(
            f"  {performance.full_name}: {runner.horse_name} ({runner.odds}) "
            f"{runner.race_time} {runner.course}, win chance {runner.normalized_confidence:.1f}%"
        )
        if performance.is_due_winner:
            losses = performance.races_completed - performance.races_won
            lines.append(f"    {losses} races without a win - due for a winner")

    return "\n".join(lines)


def format_history(history: PerformanceHistory) -> str:
    window = f"last {history.days_back} days" if history.days_back > 0 else "whole archive"
    lines = [
        f"Archived model accuracy ({window}, model: {history.model_filter})",
        f"  Archived picks: {history.total_records}",
        "",
    ]
    frame = history.summary_frame()
    for column in ['winner_accuracy', 'top3_accuracy', 'average_confidence']:
        frame[column] = frame[column].map(lambda value: f"{value:.1f}%")
    lines.append(frame.to_string(index=False))
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Daily prediction model tracker")
    parser.add_argument('--config', default='config.yaml', help='Path to config.yaml')
    parser.add_argument('--date', help='Race date YYYY-MM-DD (default: today in the configured timezone)')
    parser.add_argument('--backend', choices=['sqlite', 'supabase'], help='Override base.backend')
    parser.add_argument('--history', type=int, metavar='DAYS',
                        help='Report archived accuracy over the last DAYS days instead (0 = whole archive)')
    parser.add_argument('--model', help='With --history, restrict to one model')
    parser.add_argument('--json', dest='json_path', help='Also write the result as JSON to this path')
    parser.add_argument('--verbose', action='store_true', help='Log progress')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = AppConfig(args.config)
    reader = create_reader(config, args.backend)
    tracker = ModelTracker(config, reader=reader, verbose=args.verbose)

    try:
        if args.history is not None:
            result = tracker.build_history(args.history, args.model)
            print(format_history(result))
        else:
            result = tracker.build_snapshot(args.date)
            print(format_report(result))
    except RaceDataError as e:
        print(f"Error: {e}. Try again shortly.", file=sys.stderr)
        return 1

    if args.json_path:
        output_path = Path(args.json_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"\nSaved: {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
