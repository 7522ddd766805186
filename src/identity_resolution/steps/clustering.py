from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from identity_resolution.errors import ConfigurationError
from identity_resolution.models import CONFIDENCE, PASS_ORDER, CappedMerge, Cluster, MatchMethod, StagingRecord
from identity_resolution.steps.normalize import first_name_prefix
from identity_resolution.steps.signals import SignalIndex

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLUSTER_SIZE = 20
DEFAULT_NAME_ZIP_MAX_GROUP = 5


@dataclass(slots=True)
class ClusteringOutcome:
    clusters: list[Cluster]
    merges_by_method: Counter = field(default_factory=Counter)
    capped_by_method: Counter = field(default_factory=Counter)
    capped: list[CappedMerge] = field(default_factory=list)


class SignalClusterer:
    """Multi-pass deterministic clustering over shared identifiers.

    Passes run strongest first: cross-reference, email, phone, name+zip, then
    singletons for whatever is left. A record resolved by a stronger pass is
    never touched again by a weaker one, and every union is bounded by
    ``max_cluster_size`` so one shared identifier (an office inbox, a payment
    processor's info@ address) cannot chain unrelated people together.
    Records excluded by the cap stay eligible for the weaker passes.
    """

    def __init__(
        self,
        max_cluster_size: int = DEFAULT_MAX_CLUSTER_SIZE,
        name_zip_max_group: int = DEFAULT_NAME_ZIP_MAX_GROUP,
        first_name_prefix_length: int = 3,
    ) -> None:
        if max_cluster_size < 1:
            raise ConfigurationError(f"max_cluster_size must be at least 1, got {max_cluster_size}")
        self._max_cluster_size = max_cluster_size
        self._name_zip_max_group = name_zip_max_group
        self._prefix_length = first_name_prefix_length

    @property
    def max_cluster_size(self) -> int:
        return self._max_cluster_size

    def cluster(self, records: Sequence[StagingRecord], index: SignalIndex) -> ClusteringOutcome:
        run = _ClusterRun(self._max_cluster_size)

        for record in records:
            for pair in record.crossrefs:
                targets = [rid for rid in index.by_source_key.get(pair, ()) if rid != record.id]
                if targets:
                    run.apply_bucket([record.id, *targets], MatchMethod.CROSSREF, f"{pair[0]}:{pair[1]}")
        run.log_pass(MatchMethod.CROSSREF)

        for email, record_ids in index.email.items():
            if len(record_ids) >= 2:
                run.apply_bucket(record_ids, MatchMethod.EMAIL, email)
        run.log_pass(MatchMethod.EMAIL)

        for phone, record_ids in index.phone.items():
            if len(record_ids) >= 2:
                run.apply_bucket(record_ids, MatchMethod.PHONE, phone)
        run.log_pass(MatchMethod.PHONE)

        by_id = {record.id: record for record in records}
        for key, record_ids in index.name_zip.items():
            if not 2 <= len(record_ids) <= self._name_zip_max_group:
                continue
            if not self._first_names_agree([by_id[rid] for rid in record_ids]):
                continue
            run.apply_bucket(record_ids, MatchMethod.NAMEZIP, key)
        run.log_pass(MatchMethod.NAMEZIP)

        for record in records:
            run.resolve_singleton(record.id)

        return run.outcome([record.id for record in records])

    def _first_names_agree(self, records: Sequence[StagingRecord]) -> bool:
        prefixes = {first_name_prefix(record.first_name, self._prefix_length) for record in records}
        return len(prefixes) == 1 and None not in prefixes


class _CappedUnionFind:
    """Union-find whose unions refuse to grow a component past ``max_size``."""

    def __init__(self, max_size: int) -> None:
        self._max_size = max_size
        self._parent: dict[str, str] = {}
        self._size: dict[str, int] = {}

    def find(self, item: str) -> str:
        if item not in self._parent:
            self._parent[item] = item
            self._size[item] = 1
            return item
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, keep: str, other: str) -> bool:
        """Attach ``other``'s component under ``keep``'s root. False if capped."""
        root_keep = self.find(keep)
        root_other = self.find(other)
        if root_keep == root_other:
            return True
        if self._size[root_keep] + self._size[root_other] > self._max_size:
            return False
        self._parent[root_other] = root_keep
        self._size[root_keep] += self._size.pop(root_other)
        return True


class _ClusterRun:
    """Mutable state for one clustering invocation."""

    def __init__(self, max_size: int) -> None:
        self._uf = _CappedUnionFind(max_size)
        self._resolved_by: dict[str, MatchMethod] = {}
        self._root_method: dict[str, MatchMethod] = {}
        self.merges: Counter = Counter()
        self.capped_counts: Counter = Counter()
        self.capped: list[CappedMerge] = []

    def _eligible(self, record_id: str, method: MatchMethod) -> bool:
        prior = self._resolved_by.get(record_id)
        return prior is None or prior == method

    def apply_bucket(self, record_ids: Sequence[str], method: MatchMethod, key: str) -> None:
        # Records already clustered by a stronger pass act as the anchor; the
        # first one in bucket order wins and other strong clusters are left alone.
        target: str | None = None
        for record_id in record_ids:
            if not self._eligible(record_id, method):
                target = record_id
                break

        for record_id in record_ids:
            if not self._eligible(record_id, method):
                continue
            if target is None:
                target = record_id
                continue
            self._join(target, record_id, method, key)

    def _join(self, target: str, record_id: str, method: MatchMethod, key: str) -> None:
        root_target = self._uf.find(target)
        root_other = self._uf.find(record_id)
        if root_target == root_other:
            return
        if self._is_stronger(root_target, method) and self._is_stronger(root_other, method):
            return
        if not self._uf.union(root_target, root_other):
            self.capped_counts[method] += 1
            self.capped.append(CappedMerge(record_id=record_id, match_method=method, signal_key=key))
            return

        self.merges[method] += 1
        # A merged cluster keeps the strongest pass that founded either side.
        founders = [method, self._root_method.pop(root_other, None), self._root_method.get(root_target)]
        self._root_method[root_target] = min((m for m in founders if m), key=PASS_ORDER.index)
        self._resolved_by.setdefault(target, method)
        self._resolved_by.setdefault(record_id, method)

    def _is_stronger(self, root: str, method: MatchMethod) -> bool:
        founder = self._root_method.get(root)
        return founder is not None and PASS_ORDER.index(founder) < PASS_ORDER.index(method)

    def resolve_singleton(self, record_id: str) -> None:
        if record_id in self._resolved_by:
            return
        self._resolved_by[record_id] = MatchMethod.SINGLETON
        self._root_method[self._uf.find(record_id)] = MatchMethod.SINGLETON

    def log_pass(self, method: MatchMethod) -> None:
        logger.info(
            "%s pass: %d merges, %d capped, %d records resolved so far",
            method.value,
            self.merges[method],
            self.capped_counts[method],
            len(self._resolved_by),
        )
        if self.capped_counts[method]:
            keys = {c.signal_key for c in self.capped if c.match_method == method}
            logger.warning(
                "%s pass: %d merges skipped by the cluster cap across %d signal keys",
                method.value,
                self.capped_counts[method],
                len(keys),
            )

    def outcome(self, ordered_ids: Sequence[str]) -> ClusteringOutcome:
        grouped: dict[str, list[str]] = defaultdict(list)
        for record_id in ordered_ids:
            grouped[self._uf.find(record_id)].append(record_id)

        clusters: list[Cluster] = []
        for root, members in grouped.items():
            method = self._root_method[root]
            clusters.append(
                Cluster(
                    cluster_id=f"cluster_{members[0]}",
                    record_ids=members,
                    confidence=CONFIDENCE[method],
                    match_method=method,
                )
            )
        logger.info("Formed %d clusters from %d records", len(clusters), len(ordered_ids))
        return ClusteringOutcome(
            clusters=clusters,
            merges_by_method=self.merges,
            capped_by_method=self.capped_counts,
            capped=self.capped,
        )
