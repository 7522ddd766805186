import pytest

from identity_resolution.config import ClusteringSettings, Settings
from identity_resolution.datasets import ReferenceDatasetGenerator
from identity_resolution.errors import MissingInputError
from identity_resolution.models import FactRow, MatchMethod, StagingRecord
from identity_resolution.runners import LocalResolutionPipeline
from identity_resolution.steps.backfill import FactTableSpec
from identity_resolution.stores import InMemoryStore


def _example_records() -> list[StagingRecord]:
    return [
        StagingRecord(
            id="A",
            source_id="keap",
            source_ref="keap:contact:1",
            first_name="Jo",
            email="j@x.com",
            phone="5551234567",
        ),
        StagingRecord(id="B", source_id="givebutter", source_ref="gb:1", email="j@x.com"),
        StagingRecord(id="C", source_id="stripe", source_ref="cus_1", phone="5551234567"),
    ]


def test_example_scenario_resolves_single_person() -> None:
    result = LocalResolutionPipeline().run(_example_records())

    assert len(result.persons) == 1
    person = result.persons[0]
    assert person.confidence == 0.99
    assert person.record_count == 3
    assert [link.confidence for link in result.source_links] == [0.99, 0.99, 0.99]
    assert {link.person_id for link in result.source_links} == {person.id}
    assert [email.email for email in result.emails] == ["j@x.com"]
    assert [phone.phone_normalized for phone in result.phones] == ["5551234567"]
    assert result.report.merges_by_method == {"email": 1, "phone": 1}


def test_empty_snapshot_is_rejected() -> None:
    with pytest.raises(MissingInputError):
        LocalResolutionPipeline().run([])


def test_synthetic_snapshot_invariants() -> None:
    records = ReferenceDatasetGenerator(seed=3).generate(size=400, duplicate_rate=0.25)
    settings = Settings(clustering=ClusteringSettings(max_cluster_size=6))

    result = LocalResolutionPipeline(settings).run(records)

    source_keys = [(link.source_id, link.source_ref) for link in result.source_links]
    assert len(source_keys) == len(set(source_keys))
    assert set(source_keys) == {record.source_key for record in records}

    clustered = [record_id for cluster in result.clusters for record_id in cluster.record_ids]
    assert sorted(clustered) == sorted(record.id for record in records)
    assert all(len(cluster.record_ids) <= 6 for cluster in result.clusters)
    assert result.report.cluster_cap == 6
    assert result.report.largest_cluster_size == max(len(cluster.record_ids) for cluster in result.clusters)

    emails = [email.email for email in result.emails]
    assert len(emails) == len(set(emails))
    for person in result.persons:
        assert sum(1 for e in result.emails if e.person_id == person.id and e.is_primary) <= 1
        assert sum(1 for p in result.phones if p.person_id == person.id and p.is_primary) <= 1

    assert sorted(m.person_id for m in result.members) == sorted(p.id for p in result.persons)
    assert result.report.person_count < result.report.record_count
    assert result.report.merges_by_method.get(MatchMethod.CROSSREF.value, 0) > 0


def test_run_store_writes_generation_and_backfills() -> None:
    facts = {
        "donation": [
            FactRow(fact_id="d1", source_id="givebutter", source_ref="gb:1"),
            FactRow(fact_id="d2", source_id="stripe", source_ref="ch_9", raw_payload={"CustomerEmail": "J@X.com"}),
            FactRow(fact_id="d3", source_id="stripe", source_ref="ch_10"),
        ]
    }
    store = InMemoryStore(_example_records(), facts=facts)
    pipeline = LocalResolutionPipeline()

    report = pipeline.run_store(store, [FactTableSpec(name="donation")])

    assert store.generation is not None
    person_id = store.generation.persons[0].id
    assert report.backfill_updated == {"donation": 2}
    assert [fact.person_id for fact in facts["donation"]] == [person_id, person_id, None]
    assert pipeline.run_backfill(store, [FactTableSpec(name="donation")]) == {"donation": 0}
