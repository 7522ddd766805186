from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from identity_resolution.models import FactLink, FactRow, PersonEmail, SourceLink
from identity_resolution.steps.normalize import normalize_email

if TYPE_CHECKING:
    from identity_resolution.interfaces import ResolutionStore

logger = logging.getLogger(__name__)

# Raw payload keys that source systems use for a denormalized contact email.
EMAIL_PAYLOAD_KEYS = (
    "Email",
    "email",
    "Email Address",
    "EmailAddress",
    "ContactEmail",
    "CustomerEmail",
    "customer_email",
)


@dataclass(frozen=True, slots=True)
class FactTableSpec:
    """Describes a fact table with a nullable person reference and a source reference."""

    name: str
    id_column: str = "id"
    source_id_column: str = "source_id"
    source_ref_column: str = "source_ref"
    person_column: str = "person_id"
    payload_column: str | None = None
    ref_suffix: str | None = None


class LinkageBackfill:
    """Resolves unlinked fact rows to persons through the crosswalk.

    Exact source reference matches come first; a contact email embedded in the
    raw payload, matched against primary emails, is the fallback. Rows that
    already carry a person are never touched, so repeated runs are no-ops.
    """

    def __init__(self, source_links: Iterable[SourceLink], emails: Iterable[PersonEmail]) -> None:
        self._by_reference: dict[tuple[str, str], str] = {}
        for link in source_links:
            self._by_reference.setdefault((link.source_id, link.source_ref), link.person_id)
        self._by_email: dict[str, str] = {}
        for email in emails:
            if email.is_primary:
                self._by_email.setdefault(email.email, email.person_id)

    def link(self, spec: FactTableSpec, facts: Sequence[FactRow]) -> list[FactLink]:
        links: list[FactLink] = []
        by_email = 0
        for fact in facts:
            if fact.person_id:
                continue
            person_id = self._match_reference(spec, fact)
            via = "source_ref"
            if person_id is None:
                person_id = self._match_email(fact.raw_payload)
                via = "email"
            if person_id is None:
                continue
            if via == "email":
                by_email += 1
            links.append(FactLink(fact_id=fact.fact_id, person_id=person_id, via=via))

        logger.info(
            "%s: %d of %d facts matched (%d via payload email)",
            spec.name,
            len(links),
            len(facts),
            by_email,
        )
        return links

    def _match_reference(self, spec: FactTableSpec, fact: FactRow) -> str | None:
        if fact.source_id is None or not fact.source_ref:
            return None
        ref = strip_ref_suffix(fact.source_ref, spec.ref_suffix)
        return self._by_reference.get((str(fact.source_id), ref))

    def _match_email(self, payload: Mapping[str, Any] | None) -> str | None:
        email = payload_email(payload)
        if email is None:
            return None
        return self._by_email.get(email)


def strip_ref_suffix(ref: str, suffix: str | None) -> str:
    if suffix and ref.endswith(suffix):
        return ref[: -len(suffix)]
    return ref


def payload_email(payload: Mapping[str, Any] | None) -> str | None:
    if not payload:
        return None
    for key in EMAIL_PAYLOAD_KEYS:
        value = payload.get(key)
        if value is None or not str(value).strip():
            continue
        return normalize_email(value)
    return None


def apply_links(facts: Sequence[FactRow], links: Sequence[FactLink]) -> int:
    """Stamp person ids onto in-memory fact rows that are still unlinked."""
    by_id = {link.fact_id: link.person_id for link in links}
    updated = 0
    for fact in facts:
        if fact.person_id or fact.fact_id not in by_id:
            continue
        fact.person_id = by_id[fact.fact_id]
        updated += 1
    return updated


def backfill_store(store: ResolutionStore, tables: Iterable[FactTableSpec]) -> dict[str, int]:
    """Link every listed fact table in ``store``; returns rows updated per table."""
    backfill = LinkageBackfill(store.load_crosswalk(), store.load_emails())
    updated: dict[str, int] = {}
    for spec in tables:
        links = backfill.link(spec, store.unlinked_facts(spec))
        updated[spec.name] = store.link_facts(spec, links) if links else 0
        logger.info("%s: %d rows updated", spec.name, updated[spec.name])
    return updated
