from __future__ import annotations

import argparse
import csv
from pathlib import Path

from identity_resolution.datasets import ReferenceDatasetGenerator


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate synthetic multi-source person exports, one CSV per source")
    parser.add_argument("--size", type=int, default=10000)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--duplicate-rate", type=float, default=0.15)
    parser.add_argument("--output-dir", type=Path, default=Path("data/reference_sources"))
    args = parser.parse_args()

    rows_by_source: dict[str, list[dict[str, str]]] = {}
    for source_id, row in ReferenceDatasetGenerator(seed=args.seed).generate_rows(args.size, args.duplicate_rate):
        rows_by_source.setdefault(source_id, []).append(row)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    for source_id, rows in rows_by_source.items():
        columns = sorted({column for row in rows for column in row})
        path = args.output_dir / f"{source_id}.csv"
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=columns)
            writer.writeheader()
            writer.writerows(rows)
        print(f"{source_id}: {len(rows)} rows -> {path}")


if __name__ == "__main__":
    main()
