#!/usr/bin/env python3
"""
Consistency checker for attribute risk results.

Verifies that the per-record summary table agrees with the long-format rank
tables and with the summary report.
Run this after any analysis to catch export drift.

Usage:
    python scripts/check_consistency.py [results_dir]
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import yaml

TOLERANCE = 1e-6


def check_record(record_id, row: pd.Series, ranks: pd.DataFrame, outcomes: list) -> list:
    """Check one record's summary row against its rank table."""
    errors = []

    total = ranks['prob'].sum()
    if abs(total - 1.0) > TOLERANCE:
        errors.append(f"record {record_id}: probabilities sum to {total}")

    if len(ranks) != row['n_combinations']:
        errors.append(f"record {record_id}: {len(ranks)} rank rows but "
                      f"n_combinations = {row['n_combinations']}")

    if not np.array_equal(ranks['rank'].to_numpy(), np.arange(1, len(ranks) + 1)):
        errors.append(f"record {record_id}: ranks are not 1..N")

    if np.any(np.diff(ranks['prob'].to_numpy()) > TOLERANCE):
        errors.append(f"record {record_id}: rank table not sorted by probability")

    top = ranks['prob'].iloc[0]
    if abs(top - row['top_prob']) > TOLERANCE:
        errors.append(f"record {record_id}: top_prob {row['top_prob']} != rank-1 prob {top}")

    true_rank = int(row['true_rank'])
    if true_rank < 1 or true_rank > len(ranks):
        errors.append(f"record {record_id}: true_rank {true_rank} out of range")
    elif abs(ranks['prob'].iloc[true_rank - 1] - row['true_value_prob']) > TOLERANCE:
        errors.append(f"record {record_id}: prob at true_rank != true_value_prob")

    for name in outcomes:
        marginal = row[f'marginal_{name}']
        if row['true_value_prob'] > marginal + TOLERANCE:
            errors.append(f"record {record_id}: true_value_prob exceeds marginal of '{name}'")
        if marginal > 1.0 + TOLERANCE:
            errors.append(f"record {record_id}: marginal of '{name}' above 1")

    return errors


def main():
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("results")

    if not out.exists():
        print(f"ERROR: {out}/ directory not found. Run the analysis first.")
        return 1

    # Load summary report
    report_path = out / "analysis_report.yaml"
    if not report_path.exists():
        print(f"ERROR: {report_path} not found.")
        return 1

    report = yaml.safe_load(report_path.read_text())

    # Load per-record table
    record_path = out / "tables" / "record_risk.csv"
    if not record_path.exists():
        print(f"ERROR: {record_path} not found.")
        return 1

    records = pd.read_csv(record_path)

    # Load rank tables
    ranks_path = out / "tables" / "rank_tables.csv"
    if not ranks_path.exists():
        print(f"ERROR: {ranks_path} not found.")
        return 1

    rank_tables = pd.read_csv(ranks_path)

    print("=" * 60)
    print("CONSISTENCY CHECK")
    print("=" * 60)

    outcomes = report.get('outcomes', [])
    errors = []

    grouped = {rid: group for rid, group in rank_tables.groupby('record_id', sort=False)}
    for _, row in records.iterrows():
        ranks = grouped.get(row['record_id'])
        if ranks is None:
            errors.append(f"record {row['record_id']}: missing from rank tables")
            continue
        errors.extend(check_record(row['record_id'], row, ranks, outcomes))

    print(f"\nRecords checked: {len(records)}")

    # Summary report against the table
    summary = report.get('results_summary', {})
    if summary.get('n_records') != len(records):
        errors.append(f"report n_records ({summary.get('n_records')}) != table rows ({len(records)})")
    elif len(records) > 0:
        mean_table = records['true_value_prob'].mean()
        mean_summary = summary['mean_true_value_prob']
        print(f"  Summary mean_true_value_prob: {mean_summary}")
        print(f"  Table mean true_value_prob:   {mean_table}")
        if abs(mean_table - mean_summary) > TOLERANCE:
            errors.append(f"summary mean ({mean_summary}) != table mean ({mean_table})")
        else:
            print("  ✓ Match")

    print("\n" + "=" * 60)

    if errors:
        print("ERRORS FOUND:")
        for e in errors:
            print(f"  - {e}")
        return 1
    else:
        print("All consistency checks passed.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
