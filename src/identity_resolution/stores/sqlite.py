"""SQLite-backed store for staging records, canonical generations and facts.

A generation is written in two phases. Every canonical table is first filled
under a ``__next`` name in batched transactions; the live tables are then
replaced by renaming the ``__next`` tables inside one transaction. A failure
before the swap leaves the previous generation untouched.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from identity_resolution.errors import MissingInputError, StoreError
from identity_resolution.models import (
    FactLink,
    FactRow,
    MatchMethod,
    PersonEmail,
    ResolutionResult,
    SourceLink,
    StagingRecord,
)
from identity_resolution.steps.backfill import FactTableSpec
from identity_resolution.stores.retry import run_with_retries

logger = logging.getLogger(__name__)

T = TypeVar("T")

NEXT_SUFFIX = "__next"

_TRANSIENT_MARKERS = ("locked", "busy", "timeout", "timed out", "disk i/o")

STAGING_COLUMNS = (
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
)

_STAGING_COLUMN_DDL = ", ".join(f"{column} TEXT" for column in STAGING_COLUMNS)

STAGING_TABLE = "staging_person_extract"

STAGING_DDL = f"""
CREATE TABLE IF NOT EXISTS {STAGING_TABLE} (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    {_STAGING_COLUMN_DDL},
    crossrefs TEXT,
    UNIQUE (id)
)
"""

# Canonical generation tables: name -> (column definitions, insert columns).
GENERATION_TABLES: dict[str, tuple[str, tuple[str, ...]]] = {
    "person": (
        """
        id TEXT PRIMARY KEY,
        display_name TEXT,
        first_name TEXT,
        last_name TEXT,
        confidence REAL NOT NULL,
        match_method TEXT NOT NULL,
        record_count INTEGER NOT NULL
        """,
        ("id", "display_name", "first_name", "last_name", "confidence", "match_method", "record_count"),
    ),
    "person_email": (
        """
        email TEXT PRIMARY KEY,
        person_id TEXT NOT NULL,
        is_primary INTEGER NOT NULL,
        source_id TEXT
        """,
        ("email", "person_id", "is_primary", "source_id"),
    ),
    "person_phone": (
        """
        phone_normalized TEXT PRIMARY KEY,
        person_id TEXT NOT NULL,
        phone_display TEXT,
        is_primary INTEGER NOT NULL,
        source_id TEXT
        """,
        ("phone_normalized", "person_id", "phone_display", "is_primary", "source_id"),
    ),
    "person_address": (
        """
        person_id TEXT PRIMARY KEY,
        line1 TEXT NOT NULL,
        line2 TEXT,
        city TEXT,
        state TEXT,
        zip TEXT,
        country TEXT,
        is_primary INTEGER NOT NULL,
        source_id TEXT
        """,
        ("person_id", "line1", "line2", "city", "state", "zip", "country", "is_primary", "source_id"),
    ),
    "source_link": (
        """
        source_id TEXT NOT NULL,
        source_record_id TEXT NOT NULL,
        person_id TEXT NOT NULL,
        match_method TEXT NOT NULL,
        confidence REAL NOT NULL,
        PRIMARY KEY (source_id, source_record_id)
        """,
        ("source_id", "source_record_id", "person_id", "match_method", "confidence"),
    ),
    "household": (
        """
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
        """,
        ("id", "name"),
    ),
    "household_member": (
        """
        person_id TEXT PRIMARY KEY,
        household_id TEXT NOT NULL,
        role TEXT NOT NULL
        """,
        ("person_id", "household_id", "role"),
    ),
}


def is_transient(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def _quote(identifier: str) -> str:
    if '"' in identifier or not identifier:
        raise StoreError(f"Invalid identifier: {identifier!r}")
    return f'"{identifier}"'


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[None]:
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


@contextmanager
def _savepoint(conn: sqlite3.Connection, name: str = "batch_rows") -> Iterator[None]:
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield
    except BaseException:
        conn.execute(f"ROLLBACK TO {name}")
        conn.execute(f"RELEASE {name}")
        raise
    conn.execute(f"RELEASE {name}")


class SqliteStore:
    """Resolution store on a single SQLite database file."""

    def __init__(
        self,
        path: Path | str,
        *,
        batch_size: int = 100,
        retries: int = 3,
        retry_backoff_seconds: float = 0.5,
        timeout: float = 30.0,
    ) -> None:
        self._path = str(path)
        self._batch_size = batch_size
        self._retries = retries
        self._backoff = retry_backoff_seconds
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "SqliteStore":
        self.initialize()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, timeout=self._timeout, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def initialize(self) -> None:
        """Create the staging table and empty live canonical tables if missing."""

        def create() -> None:
            conn = self.connection
            with _transaction(conn):
                conn.execute(STAGING_DDL)
                for table, (ddl, _columns) in GENERATION_TABLES.items():
                    conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({ddl})")

        self._retry(create, label="initialize schema")

    # ------------------------------------------------------------------
    # Staging snapshot
    # ------------------------------------------------------------------

    def replace_staging(self, records: Iterable[StagingRecord]) -> int:
        rows = [_staging_row(record) for record in records]
        columns = (*STAGING_COLUMNS, "crossrefs")
        sql = f"INSERT INTO {STAGING_TABLE} ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})"

        def write() -> None:
            conn = self.connection
            with _transaction(conn):
                conn.execute(f"DELETE FROM {STAGING_TABLE}")
                conn.executemany(sql, rows)

        self._retry(write, label="replace staging snapshot")
        logger.info("Loaded %d staging records", len(rows))
        return len(rows)

    def load_staging(self) -> list[StagingRecord]:
        if not self._has_table(STAGING_TABLE):
            raise MissingInputError(f"{self._path} has no {STAGING_TABLE} table; load a staging snapshot first")

        def read() -> list[sqlite3.Row]:
            columns = ", ".join((*STAGING_COLUMNS, "crossrefs"))
            return self.connection.execute(
                f"SELECT {columns} FROM {STAGING_TABLE} ORDER BY seq"
            ).fetchall()

        rows = self._retry(read, label="load staging snapshot")
        return [_staging_record(row) for row in rows]

    # ------------------------------------------------------------------
    # Canonical generation
    # ------------------------------------------------------------------

    def write_generation(self, result: ResolutionResult) -> dict[str, int]:
        rows_by_table = _generation_rows(result)
        skipped: dict[str, int] = {}
        try:
            for table, rows in rows_by_table.items():
                self._create_next_table(table)
                dropped = self._insert_rows(f"{table}{NEXT_SUFFIX}", GENERATION_TABLES[table][1], rows)
                if dropped:
                    skipped[table] = dropped
                    logger.info("%s: skipped %d duplicate rows", table, dropped)
        except Exception:
            self._drop_next_tables()
            raise

        self._retry(self._swap_generation, label="swap generation")
        logger.info(
            "Wrote generation: %s",
            ", ".join(f"{table}={len(rows)}" for table, rows in rows_by_table.items()),
        )
        return skipped

    def _create_next_table(self, table: str) -> None:
        ddl = GENERATION_TABLES[table][0]

        def create() -> None:
            conn = self.connection
            with _transaction(conn):
                conn.execute(f"DROP TABLE IF EXISTS {table}{NEXT_SUFFIX}")
                conn.execute(f"CREATE TABLE {table}{NEXT_SUFFIX} ({ddl})")

        self._retry(create, label=f"create {table}{NEXT_SUFFIX}")

    def _insert_rows(self, table: str, columns: Sequence[str], rows: Sequence[tuple]) -> int:
        """Batched insert; a batch hitting a unique key falls back to row-by-row.

        Returns the number of duplicate rows skipped.
        """
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})"
        skipped = 0
        for start in range(0, len(rows), self._batch_size):
            chunk = rows[start : start + self._batch_size]
            skipped += self._retry(
                lambda chunk=chunk: self._insert_chunk(sql, chunk),
                label=f"insert into {table}",
            )
        return skipped

    def _insert_chunk(self, sql: str, chunk: Sequence[tuple]) -> int:
        conn = self.connection
        with _transaction(conn):
            try:
                with _savepoint(conn):
                    conn.executemany(sql, chunk)
                return 0
            except sqlite3.IntegrityError:
                pass

            skipped = 0
            for row in chunk:
                try:
                    with _savepoint(conn):
                        conn.execute(sql, row)
                except sqlite3.IntegrityError:
                    skipped += 1
            return skipped

    def _swap_generation(self) -> None:
        conn = self.connection
        with _transaction(conn):
            for table in GENERATION_TABLES:
                conn.execute(f"DROP TABLE IF EXISTS {table}")
                conn.execute(f"ALTER TABLE {table}{NEXT_SUFFIX} RENAME TO {table}")

    def _drop_next_tables(self) -> None:
        conn = self.connection
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        for table in GENERATION_TABLES:
            try:
                conn.execute(f"DROP TABLE IF EXISTS {table}{NEXT_SUFFIX}")
            except sqlite3.Error as exc:
                logger.warning("Could not drop %s%s: %s", table, NEXT_SUFFIX, exc)

    def table_counts(self) -> dict[str, int]:
        def count() -> dict[str, int]:
            conn = self.connection
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in GENERATION_TABLES
            }

        return self._retry(count, label="count generation tables")

    def _has_table(self, name: str) -> bool:
        row = self._retry(
            lambda: self.connection.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
            ).fetchone(),
            label=f"look up table {name}",
        )
        return row is not None

    def load_crosswalk(self) -> list[SourceLink]:
        rows = self._retry(
            lambda: self.connection.execute(
                "SELECT source_id, source_record_id, person_id, match_method, confidence FROM source_link"
            ).fetchall(),
            label="load crosswalk",
        )
        return [
            SourceLink(
                person_id=row["person_id"],
                source_id=row["source_id"],
                source_ref=row["source_record_id"],
                match_method=MatchMethod(row["match_method"]),
                confidence=row["confidence"],
            )
            for row in rows
        ]

    def load_emails(self) -> list[PersonEmail]:
        rows = self._retry(
            lambda: self.connection.execute(
                "SELECT email, person_id, is_primary, source_id FROM person_email"
            ).fetchall(),
            label="load emails",
        )
        return [
            PersonEmail(
                person_id=row["person_id"],
                email=row["email"],
                is_primary=bool(row["is_primary"]),
                source_id=row["source_id"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Fact tables
    # ------------------------------------------------------------------

    def unlinked_facts(self, spec: FactTableSpec) -> list[FactRow]:
        self._check_fact_table(spec)
        payload = _quote(spec.payload_column) if spec.payload_column else "NULL"
        sql = (
            f"SELECT {_quote(spec.id_column)} AS fact_id, {_quote(spec.source_id_column)} AS source_id, "
            f"{_quote(spec.source_ref_column)} AS source_ref, {payload} AS payload "
            f"FROM {_quote(spec.name)} WHERE {_quote(spec.person_column)} IS NULL"
        )
        rows = self._retry(lambda: self.connection.execute(sql).fetchall(), label=f"scan {spec.name}")
        return [
            FactRow(
                fact_id=str(row["fact_id"]),
                source_id=None if row["source_id"] is None else str(row["source_id"]),
                source_ref=row["source_ref"],
                raw_payload=_parse_payload(row["payload"]),
            )
            for row in rows
        ]

    def link_facts(self, spec: FactTableSpec, links: Sequence[FactLink]) -> int:
        sql = (
            f"UPDATE {_quote(spec.name)} SET {_quote(spec.person_column)} = ? "
            f"WHERE CAST({_quote(spec.id_column)} AS TEXT) = ? AND {_quote(spec.person_column)} IS NULL"
        )
        params = [(link.person_id, link.fact_id) for link in links]
        updated = 0
        for start in range(0, len(params), self._batch_size):
            chunk = params[start : start + self._batch_size]
            updated += self._retry(lambda chunk=chunk: self._update_chunk(sql, chunk), label=f"link {spec.name}")
        return updated

    def _check_fact_table(self, spec: FactTableSpec) -> None:
        # SQLite reads an unknown double-quoted column as a string literal, so
        # a misspelled column would silently match nothing.
        rows = self._retry(
            lambda: self.connection.execute(f"PRAGMA table_info({_quote(spec.name)})").fetchall(),
            label=f"inspect {spec.name}",
        )
        if not rows:
            raise StoreError(f"Fact table {spec.name!r} does not exist in {self._path}")
        present = {row["name"] for row in rows}
        wanted = [spec.id_column, spec.source_id_column, spec.source_ref_column, spec.person_column]
        if spec.payload_column:
            wanted.append(spec.payload_column)
        missing = [column for column in wanted if column not in present]
        if missing:
            raise StoreError(f"Fact table {spec.name!r} is missing columns: {', '.join(missing)}")

    def _update_chunk(self, sql: str, chunk: Sequence[tuple]) -> int:
        conn = self.connection
        before = conn.total_changes
        with _transaction(conn):
            conn.executemany(sql, chunk)
        return conn.total_changes - before

    def _retry(self, fn: Callable[[], T], *, label: str) -> T:
        try:
            return run_with_retries(
                fn,
                label=label,
                is_transient=is_transient,
                retries=self._retries,
                backoff_seconds=self._backoff,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"{label}: {exc}") from exc


def _staging_row(record: StagingRecord) -> tuple:
    values = [getattr(record, column) for column in STAGING_COLUMNS]
    crossrefs = json.dumps([list(pair) for pair in record.crossrefs]) if record.crossrefs else None
    return (*values, crossrefs)


def _staging_record(row: sqlite3.Row) -> StagingRecord:
    values = {column: row[column] for column in STAGING_COLUMNS}
    crossrefs = tuple(tuple(pair) for pair in json.loads(row["crossrefs"])) if row["crossrefs"] else ()
    return StagingRecord(**values, crossrefs=crossrefs)


def _parse_payload(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, (bytes, str)):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def _generation_rows(result: ResolutionResult) -> dict[str, list[tuple]]:
    return {
        "person": [
            (p.id, p.display_name, p.first_name, p.last_name, p.confidence, p.match_method.value, p.record_count)
            for p in result.persons
        ],
        "person_email": [(e.email, e.person_id, int(e.is_primary), e.source_id) for e in result.emails],
        "person_phone": [
            (p.phone_normalized, p.person_id, p.phone_display, int(p.is_primary), p.source_id)
            for p in result.phones
        ],
        "person_address": [
            (a.person_id, a.line1, a.line2, a.city, a.state, a.zip, a.country, int(a.is_primary), a.source_id)
            for a in result.addresses
        ],
        "source_link": [
            (s.source_id, s.source_ref, s.person_id, s.match_method.value, s.confidence)
            for s in result.source_links
        ],
        "household": [(h.id, h.name) for h in result.households],
        "household_member": [(m.person_id, m.household_id, m.role.value) for m in result.members],
    }
