from __future__ import annotations

from typing import Protocol, Sequence

from identity_resolution.models import (
    FactLink,
    FactRow,
    PersonEmail,
    ResolutionResult,
    SourceLink,
    StagingRecord,
)
from identity_resolution.steps.backfill import FactTableSpec
from identity_resolution.steps.clustering import ClusteringOutcome
from identity_resolution.steps.signals import SignalIndex


class Clusterer(Protocol):
    """Step 2: turn an indexed snapshot into disjoint clusters."""

    @property
    def max_cluster_size(self) -> int:
        """Cap the clusterer runs with; reported on every run."""
        ...

    def cluster(self, records: Sequence[StagingRecord], index: SignalIndex) -> ClusteringOutcome:
        ...


class ResolutionStore(Protocol):
    """Source of the staging snapshot and sink for one canonical generation.

    ``write_generation`` must replace the previous generation as a whole or
    not at all; readers never see a partially written generation.
    """

    def load_staging(self) -> list[StagingRecord]:
        ...

    def write_generation(self, result: ResolutionResult) -> dict[str, int]:
        """Persist a generation; returns duplicate rows skipped per table."""
        ...

    def load_crosswalk(self) -> list[SourceLink]:
        ...

    def load_emails(self) -> list[PersonEmail]:
        ...

    def unlinked_facts(self, spec: FactTableSpec) -> list[FactRow]:
        ...

    def link_facts(self, spec: FactTableSpec, links: Sequence[FactLink]) -> int:
        """Set person ids on rows that are still unlinked; returns rows updated."""
        ...
