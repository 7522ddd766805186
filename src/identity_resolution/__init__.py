"""Batch person identity resolution across source systems."""

from identity_resolution.models import (
    Cluster,
    MatchMethod,
    Person,
    ResolutionResult,
    RunReport,
    SourceLink,
    StagingRecord,
)
from identity_resolution.schema import FieldTag, RecordSchema

__all__ = [
    "Cluster",
    "FieldTag",
    "MatchMethod",
    "Person",
    "RecordSchema",
    "ResolutionResult",
    "RunReport",
    "SourceLink",
    "StagingRecord",
]
