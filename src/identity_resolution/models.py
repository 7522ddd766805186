from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping


class MatchMethod(StrEnum):
    CROSSREF = "crossref"
    EMAIL = "email"
    PHONE = "phone"
    NAMEZIP = "namezip"
    SINGLETON = "singleton"


# Ordered strongest first; clustering passes run in this order.
PASS_ORDER: tuple[MatchMethod, ...] = (
    MatchMethod.CROSSREF,
    MatchMethod.EMAIL,
    MatchMethod.PHONE,
    MatchMethod.NAMEZIP,
    MatchMethod.SINGLETON,
)

CONFIDENCE: Mapping[MatchMethod, float] = {
    MatchMethod.CROSSREF: 0.99,
    MatchMethod.EMAIL: 0.99,
    MatchMethod.PHONE: 0.95,
    MatchMethod.NAMEZIP: 0.80,
    MatchMethod.SINGLETON: 0.80,
}


class HouseholdRole(StrEnum):
    PRIMARY = "primary"
    MEMBER = "member"


@dataclass(frozen=True, slots=True)
class StagingRecord:
    """One source-system person record, already flattened to the common shape."""

    id: str
    source_id: str
    source_ref: str
    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    email: str | None = None
    email2: str | None = None
    email3: str | None = None
    phone: str | None = None
    phone2: str | None = None
    phone3: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    company: str | None = None
    crossrefs: tuple[tuple[str, str], ...] = ()

    @property
    def source_key(self) -> tuple[str, str]:
        return (self.source_id, self.source_ref)

    @property
    def raw_emails(self) -> tuple[str | None, ...]:
        return (self.email, self.email2, self.email3)

    @property
    def raw_phones(self) -> tuple[str | None, ...]:
        return (self.phone, self.phone2, self.phone3)


@dataclass(slots=True)
class Cluster:
    """A collection of staging record ids that resolve to the same person."""

    cluster_id: str
    record_ids: list[str]
    confidence: float
    match_method: MatchMethod


@dataclass(frozen=True, slots=True)
class CappedMerge:
    """A union skipped because it would have pushed a cluster over the size cap."""

    record_id: str
    match_method: MatchMethod
    signal_key: str


@dataclass(slots=True)
class Person:
    id: str
    display_name: str | None
    first_name: str | None
    last_name: str | None
    confidence: float
    match_method: MatchMethod
    record_count: int


@dataclass(slots=True)
class PersonEmail:
    person_id: str
    email: str
    is_primary: bool
    source_id: str | None = None


@dataclass(slots=True)
class PersonPhone:
    person_id: str
    phone_normalized: str
    phone_display: str
    is_primary: bool
    source_id: str | None = None


@dataclass(slots=True)
class PersonAddress:
    person_id: str
    line1: str
    line2: str | None
    city: str | None
    state: str | None
    zip: str | None
    country: str
    is_primary: bool = True
    source_id: str | None = None


@dataclass(slots=True)
class SourceLink:
    """Crosswalk row: one source record resolved to one person."""

    person_id: str
    source_id: str
    source_ref: str
    match_method: MatchMethod
    confidence: float


@dataclass(slots=True)
class Household:
    id: str
    name: str


@dataclass(slots=True)
class HouseholdMember:
    household_id: str
    person_id: str
    role: HouseholdRole


@dataclass(slots=True)
class FactRow:
    """A transactional or engagement fact that references a source record."""

    fact_id: str
    source_id: str | None
    source_ref: str | None
    person_id: str | None = None
    raw_payload: Mapping[str, Any] | None = None


@dataclass(slots=True)
class FactLink:
    fact_id: str
    person_id: str
    via: str


@dataclass(slots=True)
class RunReport:
    """Aggregate counts for one resolution run."""

    record_count: int = 0
    cluster_count: int = 0
    merges_by_method: dict[str, int] = field(default_factory=dict)
    capped_by_method: dict[str, int] = field(default_factory=dict)
    clusters_by_method: dict[str, int] = field(default_factory=dict)
    rejected_signals: dict[str, int] = field(default_factory=dict)
    person_count: int = 0
    email_count: int = 0
    phone_count: int = 0
    address_count: int = 0
    source_link_count: int = 0
    household_count: int = 0
    multi_person_household_count: int = 0
    duplicate_rows_skipped: dict[str, int] = field(default_factory=dict)
    backfill_updated: dict[str, int] = field(default_factory=dict)
    capped_merges: list[CappedMerge] = field(default_factory=list)
    cluster_cap: int = 0
    largest_cluster_size: int = 0


@dataclass(slots=True)
class ResolutionResult:
    """One full generation of canonical output."""

    clusters: list[Cluster]
    persons: list[Person]
    emails: list[PersonEmail]
    phones: list[PersonPhone]
    addresses: list[PersonAddress]
    source_links: list[SourceLink]
    households: list[Household]
    members: list[HouseholdMember]
    report: RunReport
