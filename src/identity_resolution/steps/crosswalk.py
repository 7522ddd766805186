from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from identity_resolution.models import Cluster, Person, SourceLink, StagingRecord

logger = logging.getLogger(__name__)


class CrosswalkWriter:
    """Emits one SourceLink per (source_id, source_ref); the first occurrence wins."""

    def write(
        self,
        clusters: Sequence[Cluster],
        person_by_cluster: Mapping[str, Person],
        records_by_id: Mapping[str, StagingRecord],
    ) -> list[SourceLink]:
        links: list[SourceLink] = []
        seen: set[tuple[str, str]] = set()
        repeated = 0

        for cluster in clusters:
            person = person_by_cluster[cluster.cluster_id]
            for record_id in cluster.record_ids:
                record = records_by_id[record_id]
                if record.source_key in seen:
                    repeated += 1
                    continue
                seen.add(record.source_key)
                links.append(
                    SourceLink(
                        person_id=person.id,
                        source_id=record.source_id,
                        source_ref=record.source_ref,
                        match_method=cluster.match_method,
                        confidence=cluster.confidence,
                    )
                )

        if repeated:
            logger.info("Crosswalk: %d repeated source references collapsed", repeated)
        return links
