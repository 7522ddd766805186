from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from identity_resolution.models import FactLink, FactRow, PersonEmail, ResolutionResult, SourceLink, StagingRecord
from identity_resolution.steps.backfill import FactTableSpec, apply_links

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Local reference store.

    Keeps the same contract as the SQLite store so tests and small runs do not
    need a database. A generation is swapped in with a single assignment.
    """

    def __init__(
        self,
        staging: Iterable[StagingRecord] = (),
        facts: dict[str, list[FactRow]] | None = None,
    ) -> None:
        self._staging = list(staging)
        self.facts: dict[str, list[FactRow]] = facts if facts is not None else {}
        self.generation: ResolutionResult | None = None

    def load_staging(self) -> list[StagingRecord]:
        return list(self._staging)

    def replace_staging(self, records: Iterable[StagingRecord]) -> None:
        self._staging = list(records)

    def write_generation(self, result: ResolutionResult) -> dict[str, int]:
        skipped: dict[str, int] = {}
        emails = _unique(result.emails, lambda row: row.email, "person_email", skipped)
        phones = _unique(result.phones, lambda row: row.phone_normalized, "person_phone", skipped)
        links = _unique(result.source_links, lambda row: (row.source_id, row.source_ref), "source_link", skipped)
        self.generation = replace(result, emails=emails, phones=phones, source_links=links)
        return skipped

    def load_crosswalk(self) -> list[SourceLink]:
        return list(self.generation.source_links) if self.generation else []

    def load_emails(self) -> list[PersonEmail]:
        return list(self.generation.emails) if self.generation else []

    def unlinked_facts(self, spec: FactTableSpec) -> list[FactRow]:
        return [fact for fact in self.facts.get(spec.name, []) if not fact.person_id]

    def link_facts(self, spec: FactTableSpec, links: Sequence[FactLink]) -> int:
        return apply_links(self.facts.get(spec.name, []), links)


def _unique(rows, key, table: str, skipped: dict[str, int]) -> list:
    seen = set()
    kept = []
    for row in rows:
        value = key(row)
        if value in seen:
            skipped[table] = skipped.get(table, 0) + 1
            continue
        seen.add(value)
        kept.append(row)
    if table in skipped:
        logger.info("%s: skipped %d duplicate rows", table, skipped[table])
    return kept
