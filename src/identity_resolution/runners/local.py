from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from identity_resolution.config import Settings
from identity_resolution.errors import MissingInputError
from identity_resolution.interfaces import Clusterer, ResolutionStore
from identity_resolution.models import ResolutionResult, RunReport, StagingRecord
from identity_resolution.steps.backfill import FactTableSpec, backfill_store
from identity_resolution.steps.clustering import SignalClusterer
from identity_resolution.steps.crosswalk import CrosswalkWriter
from identity_resolution.steps.households import HouseholdAssigner
from identity_resolution.steps.signals import SignalIndexBuilder
from identity_resolution.steps.synthesis import CanonicalSynthesizer, new_id

logger = logging.getLogger(__name__)


class LocalResolutionPipeline:
    """Single-machine runner: the whole snapshot is resolved in memory."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clusterer: Clusterer | None = None,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        settings = settings or Settings()
        self._clusterer = clusterer or SignalClusterer(
            max_cluster_size=settings.clustering.max_cluster_size,
            name_zip_max_group=settings.clustering.name_zip_max_group,
            first_name_prefix_length=settings.clustering.first_name_prefix_length,
        )
        self._indexer = SignalIndexBuilder()
        self._synthesizer = CanonicalSynthesizer(id_factory)
        self._crosswalk = CrosswalkWriter()
        self._households = HouseholdAssigner(id_factory)

    def run(self, records: Sequence[StagingRecord]) -> ResolutionResult:
        if not records:
            raise MissingInputError("Staging snapshot is empty")

        index = self._indexer.build(records)
        outcome = self._clusterer.cluster(records, index)
        records_by_id = {record.id: record for record in records}

        synthesized = self._synthesizer.synthesize(outcome.clusters, records_by_id, index)
        links = self._crosswalk.write(outcome.clusters, synthesized.person_by_cluster, records_by_id)
        households = self._households.assign(synthesized.persons, synthesized.best_by_person)

        clusters_by_method: dict[str, int] = {}
        for cluster in outcome.clusters:
            key = cluster.match_method.value
            clusters_by_method[key] = clusters_by_method.get(key, 0) + 1

        report = RunReport(
            record_count=len(records),
            cluster_count=len(outcome.clusters),
            merges_by_method={str(k): v for k, v in outcome.merges_by_method.items()},
            capped_by_method={str(k): v for k, v in outcome.capped_by_method.items()},
            clusters_by_method=clusters_by_method,
            rejected_signals=dict(index.rejected),
            person_count=len(synthesized.persons),
            email_count=len(synthesized.emails),
            phone_count=len(synthesized.phones),
            address_count=len(synthesized.addresses),
            source_link_count=len(links),
            household_count=len(households.households),
            multi_person_household_count=households.multi_person_count,
            capped_merges=list(outcome.capped),
            cluster_cap=self._clusterer.max_cluster_size,
            largest_cluster_size=max((len(c.record_ids) for c in outcome.clusters), default=0),
        )
        logger.info(
            "Resolved %d records into %d persons (%d households, %d multi-person)",
            report.record_count,
            report.person_count,
            report.household_count,
            report.multi_person_household_count,
        )
        return ResolutionResult(
            clusters=outcome.clusters,
            persons=synthesized.persons,
            emails=synthesized.emails,
            phones=synthesized.phones,
            addresses=synthesized.addresses,
            source_links=links,
            households=households.households,
            members=households.members,
            report=report,
        )

    def run_store(
        self,
        store: ResolutionStore,
        fact_tables: Sequence[FactTableSpec] = (),
    ) -> RunReport:
        """Load the snapshot, resolve it, swap in the new generation and backfill facts."""
        result = self.run(store.load_staging())
        result.report.duplicate_rows_skipped = store.write_generation(result)
        if fact_tables:
            result.report.backfill_updated = self.run_backfill(store, fact_tables)
        return result.report

    def run_backfill(self, store: ResolutionStore, fact_tables: Sequence[FactTableSpec]) -> dict[str, int]:
        return backfill_store(store, fact_tables)
