from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from identity_resolution.models import (
    Cluster,
    Person,
    PersonAddress,
    PersonEmail,
    PersonPhone,
    StagingRecord,
)
from identity_resolution.steps.normalize import format_phone
from identity_resolution.steps.signals import SignalIndex

logger = logging.getLogger(__name__)

# Name fields weigh highest, then contact, then geography.
COMPLETENESS_WEIGHTS: tuple[tuple[str, int], ...] = (
    ("first_name", 3),
    ("last_name", 3),
    ("email", 2),
    ("phone", 2),
    ("address_line1", 2),
    ("city", 1),
    ("state", 1),
    ("zip", 1),
    ("display_name", 1),
)

DEFAULT_COUNTRY = "US"


def new_id() -> str:
    return str(uuid.uuid4())


def _present(value: object) -> bool:
    return value is not None and bool(str(value).strip())


def _clean(value: object) -> str | None:
    return str(value).strip() if _present(value) else None


def completeness_score(record: StagingRecord, emails: Sequence[str] = (), phones: Sequence[str] = ()) -> int:
    score = 0
    for attr, weight in COMPLETENESS_WEIGHTS:
        if attr == "email":
            present = bool(emails)
        elif attr == "phone":
            present = bool(phones)
        else:
            present = _present(getattr(record, attr))
        if present:
            score += weight
    return score


def pick_best_record(
    records: Sequence[StagingRecord],
    index: SignalIndex | None = None,
) -> StagingRecord:
    """Highest completeness score wins; ties keep the first-encountered record."""
    best = records[0]
    best_score = -1
    for record in records:
        score = completeness_score(record, *_contact_values(record, index))
        if score > best_score:
            best, best_score = record, score
    return best


def _contact_values(record: StagingRecord, index: SignalIndex | None) -> tuple[list[str], list[str]]:
    if index is not None:
        return index.emails_by_record.get(record.id, []), index.phones_by_record.get(record.id, [])
    return (
        [e for e in record.raw_emails if _present(e)],
        [p for p in record.raw_phones if _present(p)],
    )


def display_name_for(record: StagingRecord) -> str | None:
    if _present(record.display_name):
        return _clean(record.display_name)
    parts = [_clean(record.first_name), _clean(record.last_name)]
    joined = " ".join(part for part in parts if part)
    return joined or None


@dataclass(slots=True)
class SynthesisOutput:
    persons: list[Person] = field(default_factory=list)
    emails: list[PersonEmail] = field(default_factory=list)
    phones: list[PersonPhone] = field(default_factory=list)
    addresses: list[PersonAddress] = field(default_factory=list)
    person_by_cluster: dict[str, Person] = field(default_factory=dict)
    best_by_person: dict[str, StagingRecord] = field(default_factory=dict)


class CanonicalSynthesizer:
    """Materializes one Person, its contact points and address per cluster."""

    def __init__(self, id_factory: Callable[[], str] = new_id) -> None:
        self._id_factory = id_factory

    def synthesize(
        self,
        clusters: Sequence[Cluster],
        records_by_id: Mapping[str, StagingRecord],
        index: SignalIndex,
    ) -> SynthesisOutput:
        output = SynthesisOutput()
        claimed_emails: set[str] = set()
        claimed_phones: set[str] = set()

        for cluster in clusters:
            members = [records_by_id[rid] for rid in cluster.record_ids]
            best = pick_best_record(members, index)
            person = Person(
                id=self._id_factory(),
                display_name=display_name_for(best),
                first_name=_clean(best.first_name),
                last_name=_clean(best.last_name),
                confidence=cluster.confidence,
                match_method=cluster.match_method,
                record_count=len(members),
            )
            output.persons.append(person)
            output.person_by_cluster[cluster.cluster_id] = person
            output.best_by_person[person.id] = best

            emails = _ordered_values(best, members, index.emails_by_record)
            for position, email in enumerate(v for v in emails if v not in claimed_emails):
                claimed_emails.add(email)
                output.emails.append(
                    PersonEmail(
                        person_id=person.id,
                        email=email,
                        is_primary=position == 0,
                        source_id=best.source_id,
                    )
                )

            phones = _ordered_values(best, members, index.phones_by_record)
            for position, phone in enumerate(v for v in phones if v not in claimed_phones):
                claimed_phones.add(phone)
                output.phones.append(
                    PersonPhone(
                        person_id=person.id,
                        phone_normalized=phone,
                        phone_display=format_phone(phone),
                        is_primary=position == 0,
                        source_id=best.source_id,
                    )
                )

            if _present(best.address_line1):
                output.addresses.append(
                    PersonAddress(
                        person_id=person.id,
                        line1=_clean(best.address_line1),
                        line2=_clean(best.address_line2),
                        city=_clean(best.city),
                        state=_clean(best.state),
                        zip=_clean(best.zip),
                        country=_clean(best.country) or DEFAULT_COUNTRY,
                        source_id=best.source_id,
                    )
                )

        logger.info(
            "Synthesized %d persons (%d emails, %d phones, %d addresses)",
            len(output.persons),
            len(output.emails),
            len(output.phones),
            len(output.addresses),
        )
        return output


def _ordered_values(
    best: StagingRecord,
    members: Sequence[StagingRecord],
    values_by_record: Mapping[str, Sequence[str]],
) -> list[str]:
    ordered: list[str] = list(values_by_record.get(best.id, ()))
    for member in members:
        for value in values_by_record.get(member.id, ()):
            if value not in ordered:
                ordered.append(value)
    return ordered
