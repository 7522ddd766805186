from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from identity_resolution.config import Settings, load_settings
from identity_resolution.datasets import SOURCE_SCHEMAS, ReferenceDatasetGenerator
from identity_resolution.errors import MissingInputError, ResolutionError
from identity_resolution.log import configure_logging
from identity_resolution.models import ResolutionResult, RunReport, StagingRecord
from identity_resolution.runners import LocalResolutionPipeline
from identity_resolution.steps.backfill import FactTableSpec
from identity_resolution.stores import SqliteStore

logger = logging.getLogger(__name__)

_STAGING_CSV_COLUMNS = [
    "id",
    "source_id",
    "source_ref",
    "first_name",
    "last_name",
    "display_name",
    "email",
    "email2",
    "email3",
    "phone",
    "phone2",
    "phone3",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip",
    "country",
    "company",
    "crossrefs",
]


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    try:
        settings = load_settings(args.config)
        configure_logging(args.log_level or settings.logging.level)

        if args.command == "run-test":
            run_test(
                settings,
                size=args.size,
                duplicate_rate=args.duplicate_rate,
                seed=args.seed,
                output_dir=args.output_dir,
                show_clusters=args.show_clusters,
            )
        elif args.command == "resolve":
            resolve(
                settings,
                inputs=_parse_inputs(parser, args.input),
                db_path=args.db,
                fact_tables=_fact_specs(args),
            )
        elif args.command == "backfill":
            backfill(settings, db_path=args.db, fact_tables=_fact_specs(args))
    except ResolutionError as exc:
        logger.error("%s", exc)
        return 1
    return 0


def run_test(
    settings: Settings,
    *,
    size: int,
    duplicate_rate: float,
    seed: int,
    output_dir: Path,
    show_clusters: int,
) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)

    records = ReferenceDatasetGenerator(seed=seed).generate(size=size, duplicate_rate=duplicate_rate)
    dataset_path = output_dir / "staging_dataset.csv"
    _write_staging_csv(dataset_path, records)

    result = LocalResolutionPipeline(settings).run(records)

    clusters_path = output_dir / "clusters.json"
    summary_path = output_dir / "summary.json"
    _write_json(clusters_path, [asdict(cluster) for cluster in result.clusters])
    summary = _build_summary(result.report, dataset_path=dataset_path, clusters_path=clusters_path)
    _write_json(summary_path, summary)

    print(f"Dataset: {dataset_path}")
    print(f"Clusters: {clusters_path}")
    print(f"Summary: {summary_path}")
    print("---")
    print(f"records={summary['record_count']}")
    print(f"clusters={summary['cluster_count']}")
    print(f"persons={summary['person_count']}")
    print(f"households={summary['household_count']}")
    print(f"largest_cluster_size={summary['largest_cluster_size']} (cap {summary['cluster_cap']})")
    if show_clusters > 0:
        print("---")
        print("sample_clusters=")
        print(json.dumps(_cluster_sample_payload(result, records, limit=show_clusters), indent=2))


def resolve(
    settings: Settings,
    *,
    inputs: list[tuple[str, Path]],
    db_path: Path | None,
    fact_tables: list[FactTableSpec],
) -> RunReport:
    """Load source exports into the staging snapshot, resolve it and swap in the new generation."""
    records: list[StagingRecord] = []
    for source_id, path in inputs:
        records.extend(_read_source_csv(source_id, path, start=len(records)))
    if not records:
        raise MissingInputError("No staging records found in the given inputs")

    with _open_store(settings, db_path) as store:
        store.replace_staging(records)
        report = LocalResolutionPipeline(settings).run_store(store, fact_tables)
    print(json.dumps(_report_payload(report), indent=2))
    return report


def backfill(settings: Settings, *, db_path: Path | None, fact_tables: list[FactTableSpec]) -> dict[str, int]:
    if not fact_tables:
        raise MissingInputError("No fact tables given; pass --table at least once")
    with _open_store(settings, db_path) as store:
        updated = LocalResolutionPipeline(settings).run_backfill(store, fact_tables)
    print(json.dumps(updated, indent=2))
    return updated


def _open_store(settings: Settings, db_path: Path | None) -> SqliteStore:
    return SqliteStore(
        db_path or settings.store.path,
        batch_size=settings.store.batch_size,
        retries=settings.store.retries,
        retry_backoff_seconds=settings.store.retry_backoff_seconds,
    )


def _build_summary(report: RunReport, *, dataset_path: Path, clusters_path: Path) -> dict[str, object]:
    payload = _report_payload(report)
    payload["dataset_path"] = str(dataset_path)
    payload["clusters_path"] = str(clusters_path)
    return payload


def _report_payload(report: RunReport) -> dict[str, Any]:
    return asdict(report)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="identity-resolution", description="Person identity resolution CLI")
    parser.add_argument("--config", type=Path, default=None, help="YAML config (default: ./config.yaml if present)")
    parser.add_argument("--log-level", type=str, default=None)
    subparsers = parser.add_subparsers(dest="command")

    run_test_parser = subparsers.add_parser(
        "run-test",
        help="Generate a synthetic multi-source snapshot, resolve it, and output clusters + summary",
    )
    run_test_parser.add_argument("--size", type=int, default=2000)
    run_test_parser.add_argument("--duplicate-rate", type=float, default=0.15)
    run_test_parser.add_argument("--seed", type=int, default=42)
    run_test_parser.add_argument("--output-dir", type=Path, default=Path("data/cli_output"))
    run_test_parser.add_argument("--show-clusters", type=int, default=10)

    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Load source CSV exports into SQLite, resolve persons and optionally backfill facts",
    )
    resolve_parser.add_argument(
        "--input",
        action="append",
        default=[],
        metavar="SOURCE=PATH",
        help=f"Source export CSV; SOURCE is one of {', '.join(sorted(SOURCE_SCHEMAS))}",
    )
    resolve_parser.add_argument("--db", type=Path, default=None)
    _add_fact_arguments(resolve_parser)

    backfill_parser = subparsers.add_parser("backfill", help="Link unlinked fact rows in SQLite to persons")
    backfill_parser.add_argument("--db", type=Path, default=None)
    _add_fact_arguments(backfill_parser)

    return parser


def _add_fact_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--table", action="append", default=[], help="Fact table to backfill (repeatable)")
    parser.add_argument(
        "--ref-suffix",
        action="append",
        default=[],
        metavar="TABLE=SUFFIX",
        help="Suffix stripped from that table's source refs, e.g. ticket=:ticket",
    )
    parser.add_argument("--payload-column", type=str, default=None, help="JSON column holding the raw source row")


def _parse_inputs(parser: argparse.ArgumentParser, values: list[str]) -> list[tuple[str, Path]]:
    inputs: list[tuple[str, Path]] = []
    for value in values:
        source_id, sep, path = value.partition("=")
        if not sep or source_id not in SOURCE_SCHEMAS:
            parser.error(f"--input expects SOURCE=PATH with SOURCE in {sorted(SOURCE_SCHEMAS)}, got {value!r}")
        inputs.append((source_id, Path(path)))
    return inputs


def _fact_specs(args: argparse.Namespace) -> list[FactTableSpec]:
    suffixes = dict(value.partition("=")[::2] for value in args.ref_suffix)
    return [
        FactTableSpec(name=table, payload_column=args.payload_column, ref_suffix=suffixes.get(table) or None)
        for table in args.table
    ]


def _write_json(path: Path, payload: object) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)


def _write_staging_csv(path: Path, records: list[StagingRecord]) -> None:
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=_STAGING_CSV_COLUMNS)
        writer.writeheader()
        for record in records:
            row = asdict(record)
            row["crossrefs"] = ";".join(f"{source}={ref}" for source, ref in record.crossrefs)
            writer.writerow(row)


def _read_source_csv(source_id: str, path: Path, start: int = 0) -> list[StagingRecord]:
    if not path.exists():
        raise MissingInputError(f"Input file not found: {path}")

    schema = SOURCE_SCHEMAS[source_id]
    records: list[StagingRecord] = []
    skipped = 0
    with path.open("r", newline="", encoding="utf-8-sig") as handle:
        for row in csv.DictReader(handle):
            record = schema.to_staging(row, record_id=f"stg_{start + len(records):07d}")
            if record is None:
                skipped += 1
                continue
            records.append(record)
    logger.info("%s: read %d records from %s (%d rows without an id)", source_id, len(records), path, skipped)
    return records


def _cluster_sample_payload(
    result: ResolutionResult,
    records: list[StagingRecord],
    limit: int = 10,
) -> list[dict[str, Any]]:
    by_id = {record.id: record for record in records}
    ranked = sorted(result.clusters, key=lambda cluster: (-len(cluster.record_ids), cluster.cluster_id))
    payload: list[dict[str, Any]] = []

    for cluster in ranked[:limit]:
        payload.append(
            {
                "cluster_id": cluster.cluster_id,
                "size": len(cluster.record_ids),
                "match_method": cluster.match_method.value,
                "confidence": round(cluster.confidence, 4),
                "records": [
                    {
                        "source": f"{by_id[record_id].source_id}/{by_id[record_id].source_ref}",
                        "name": by_id[record_id].display_name,
                        "email": by_id[record_id].email,
                    }
                    for record_id in cluster.record_ids
                ],
            }
        )
    return payload


if __name__ == "__main__":
    sys.exit(main())
