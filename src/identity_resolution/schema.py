from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Mapping, Sequence

from identity_resolution.models import StagingRecord


class FieldTag(StrEnum):
    SOURCE_REF = "source_ref"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    DISPLAY_NAME = "display_name"
    EMAIL = "email"
    EMAIL2 = "email2"
    EMAIL3 = "email3"
    PHONE = "phone"
    PHONE2 = "phone2"
    PHONE3 = "phone3"
    ADDRESS_LINE1 = "address_line1"
    ADDRESS_LINE2 = "address_line2"
    CITY = "city"
    STATE = "state"
    ZIP = "zip"
    COUNTRY = "country"
    COMPANY = "company"


@dataclass(frozen=True, slots=True)
class CrossrefColumn:
    """A column holding another source system's native id for the same person."""

    column: str
    target_source_id: str
    target_ref_prefix: str = ""


@dataclass(frozen=True)
class RecordSchema:
    """Maps one source system's export columns onto staging fields.

    Each tag lists candidate columns; the first non-blank value wins, so
    exports that renamed a header across years still map cleanly.
    """

    source_id: str
    tag_to_columns: Mapping[FieldTag, tuple[str, ...]]
    source_ref_prefix: str = ""
    crossrefs: tuple[CrossrefColumn, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(
        cls,
        source_id: str,
        mapping: Mapping[FieldTag, Sequence[str]],
        *,
        source_ref_prefix: str = "",
        crossrefs: Sequence[CrossrefColumn] = (),
    ) -> "RecordSchema":
        frozen = {tag: tuple(columns) for tag, columns in mapping.items()}
        return cls(
            source_id=source_id,
            tag_to_columns=frozen,
            source_ref_prefix=source_ref_prefix,
            crossrefs=tuple(crossrefs),
        )

    def columns_for(self, tag: FieldTag) -> tuple[str, ...]:
        return self.tag_to_columns.get(tag, ())

    def value_for(self, row: Mapping[str, object], tag: FieldTag) -> str | None:
        for column in self.columns_for(tag):
            text = _text(row.get(column))
            if text:
                return text
        return None

    def to_staging(self, row: Mapping[str, object], record_id: str) -> StagingRecord | None:
        """Build a staging record from one raw row; rows without a native id are skipped."""
        native_id = self.value_for(row, FieldTag.SOURCE_REF)
        if not native_id:
            return None

        values = {tag.value: self.value_for(row, tag) for tag in FieldTag if tag is not FieldTag.SOURCE_REF}
        if not values["display_name"]:
            joined = " ".join(part for part in (values["first_name"], values["last_name"]) if part)
            values["display_name"] = joined or None

        return StagingRecord(
            id=record_id,
            source_id=self.source_id,
            source_ref=f"{self.source_ref_prefix}{native_id}",
            crossrefs=self._crossrefs(row),
            **values,
        )

    def _crossrefs(self, row: Mapping[str, object]) -> tuple[tuple[str, str], ...]:
        pairs = []
        for ref in self.crossrefs:
            text = _text(row.get(ref.column))
            if text:
                pairs.append((ref.target_source_id, f"{ref.target_ref_prefix}{text}"))
        return tuple(pairs)


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()
