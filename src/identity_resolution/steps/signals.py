from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from identity_resolution.errors import MissingInputError
from identity_resolution.models import StagingRecord
from identity_resolution.steps.normalize import normalize_email, normalize_name_zip, normalize_phone

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SignalIndex:
    """Inverted indexes from normalized identifiers to staging record ids.

    Built fresh for every run. Keys keep first-seen order and each bucket keeps
    input order, so every pass over the index is deterministic.
    """

    record_order: dict[str, int] = field(default_factory=dict)
    by_source_key: dict[tuple[str, str], list[str]] = field(default_factory=lambda: defaultdict(list))
    email: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    phone: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    name_zip: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    emails_by_record: dict[str, list[str]] = field(default_factory=dict)
    phones_by_record: dict[str, list[str]] = field(default_factory=dict)
    rejected: Counter = field(default_factory=Counter)

    def position(self, record_id: str) -> int:
        return self.record_order[record_id]


class SignalIndexBuilder:
    """Normalizes every signal on every record and files it under its key."""

    def build(self, records: Sequence[StagingRecord]) -> SignalIndex:
        index = SignalIndex()
        for position, record in enumerate(records):
            if record.id in index.record_order:
                raise MissingInputError(f"Duplicate staging record id: {record.id!r}")
            index.record_order[record.id] = position
            index.by_source_key[record.source_key].append(record.id)

            emails = _distinct(record.raw_emails, normalize_email, index.rejected, "email")
            phones = _distinct(record.raw_phones, normalize_phone, index.rejected, "phone")
            index.emails_by_record[record.id] = emails
            index.phones_by_record[record.id] = phones
            for email in emails:
                index.email[email].append(record.id)
            for phone in phones:
                index.phone[phone].append(record.id)

            name_zip = normalize_name_zip(record.last_name, record.zip)
            if name_zip:
                index.name_zip[name_zip].append(record.id)
            elif record.last_name or record.zip:
                index.rejected["name_zip"] += 1

        logger.info(
            "Indexed %d records: %d emails, %d phones, %d name+zip keys",
            len(index.record_order),
            len(index.email),
            len(index.phone),
            len(index.name_zip),
        )
        if index.rejected:
            logger.debug("Rejected signals: %s", dict(index.rejected))
        return index


def _distinct(raw_values, normalizer, rejected: Counter, label: str) -> list[str]:
    values: list[str] = []
    for raw in raw_values:
        if raw is None or not str(raw).strip():
            continue
        value = normalizer(raw)
        if value is None:
            rejected[label] += 1
            continue
        if value not in values:
            values.append(value)
    return values
