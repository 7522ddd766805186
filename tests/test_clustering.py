import pytest

from identity_resolution.errors import ConfigurationError, MissingInputError
from identity_resolution.models import MatchMethod, StagingRecord
from identity_resolution.steps.clustering import SignalClusterer
from identity_resolution.steps.signals import SignalIndexBuilder


def _record(record_id: str, source_id: str = "crm", **fields: object) -> StagingRecord:
    return StagingRecord(id=record_id, source_id=source_id, source_ref=f"{source_id}:{record_id}", **fields)


def _cluster(records, **kwargs):
    index = SignalIndexBuilder().build(records)
    return SignalClusterer(**kwargs).cluster(records, index)


def _groups(outcome) -> list[list[str]]:
    return [cluster.record_ids for cluster in outcome.clusters]


def test_index_counts_rejected_signals_and_rejects_duplicate_ids() -> None:
    records = [
        _record("1", email="null", phone="http://spam.example", last_name="Li", zip="787"),
        _record("2", email="a@x.com", email2="A@X.com", phone="555-123-4567"),
    ]
    index = SignalIndexBuilder().build(records)

    assert index.rejected == {"email": 1, "phone": 1, "name_zip": 1}
    assert index.emails_by_record["2"] == ["a@x.com"]
    assert list(index.email) == ["a@x.com"]

    with pytest.raises(MissingInputError):
        SignalIndexBuilder().build([_record("1"), _record("1", source_id="other")])


def test_email_then_phone_example_resolves_one_cluster_at_email_confidence() -> None:
    records = [
        _record("A", email="j@x.com", phone="5551234567"),
        _record("B", email="j@x.com"),
        _record("C", phone="5551234567"),
    ]
    outcome = _cluster(records)

    assert _groups(outcome) == [["A", "B", "C"]]
    cluster = outcome.clusters[0]
    assert cluster.match_method == MatchMethod.EMAIL
    assert cluster.confidence == 0.99
    assert outcome.merges_by_method == {MatchMethod.EMAIL: 1, MatchMethod.PHONE: 1}


def test_cap_splits_shared_inbox() -> None:
    records = [_record(str(i), email="info@charity.org") for i in range(25)]
    outcome = _cluster(records, max_cluster_size=20)

    assert len(outcome.clusters) >= 2
    assert all(len(cluster.record_ids) <= 20 for cluster in outcome.clusters)
    assert outcome.capped_by_method == {MatchMethod.EMAIL: 5}
    assert {capped.record_id for capped in outcome.capped} == {"20", "21", "22", "23", "24"}
    assert all(capped.signal_key == "info@charity.org" for capped in outcome.capped)


def test_capped_records_fall_through_to_weaker_passes() -> None:
    records = [
        _record("1", email="shared@x.com"),
        _record("2", email="shared@x.com"),
        _record("3", email="shared@x.com", phone="5550001111"),
        _record("4", phone="5550001111"),
    ]
    outcome = _cluster(records, max_cluster_size=2)

    assert _groups(outcome) == [["1", "2"], ["3", "4"]]
    assert outcome.clusters[1].match_method == MatchMethod.PHONE
    assert outcome.clusters[1].confidence == 0.95


def test_cap_below_one_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        SignalClusterer(max_cluster_size=0)


def test_stronger_pass_is_not_overridden_by_weaker_signal() -> None:
    # 1 and 2 share an email; 3 and 4 share one too. 2 and 3 share only a phone.
    records = [
        _record("1", email="a@x.com"),
        _record("2", email="a@x.com", phone="5550001111"),
        _record("3", email="b@x.com", phone="5550001111"),
        _record("4", email="b@x.com"),
    ]
    outcome = _cluster(records)

    assert _groups(outcome) == [["1", "2"], ["3", "4"]]
    assert outcome.merges_by_method == {MatchMethod.EMAIL: 2}


def test_email_pass_is_transitive_across_keys() -> None:
    records = [
        _record("1", email="a@x.com"),
        _record("2", email="a@x.com", email2="b@x.com"),
        _record("3", email="b@x.com"),
    ]
    outcome = _cluster(records)

    assert _groups(outcome) == [["1", "2", "3"]]


def test_crossref_links_donation_contact_to_crm_record() -> None:
    records = [
        StagingRecord(id="k1", source_id="keap", source_ref="keap:contact:42", first_name="Ann"),
        StagingRecord(
            id="g1",
            source_id="givebutter",
            source_ref="givebutter:contact:9",
            first_name="Annie",
            crossrefs=(("keap", "keap:contact:42"),),
        ),
        StagingRecord(id="g2", source_id="givebutter", source_ref="givebutter:contact:10"),
    ]
    outcome = _cluster(records)

    assert _groups(outcome) == [["k1", "g1"], ["g2"]]
    assert outcome.clusters[0].match_method == MatchMethod.CROSSREF
    assert outcome.clusters[1].match_method == MatchMethod.SINGLETON
    assert outcome.clusters[1].confidence == 0.8


def test_name_zip_requires_matching_first_name_prefix() -> None:
    records = [
        _record("1", first_name="Jonathan", last_name="Smith", zip="78701"),
        _record("2", first_name="Jon", last_name="SMITH", zip="78701-0001"),
        _record("3", first_name="Mary", last_name="Brown", zip="78702"),
        _record("4", first_name="Pat", last_name="Brown", zip="78702"),
    ]
    outcome = _cluster(records)

    assert _groups(outcome) == [["1", "2"], ["3"], ["4"]]
    assert outcome.clusters[0].match_method == MatchMethod.NAMEZIP
    assert outcome.clusters[0].confidence == 0.8


def test_name_zip_skips_oversized_buckets() -> None:
    records = [_record(str(i), first_name="Sam", last_name="Lee", zip="10001") for i in range(6)]
    outcome = _cluster(records, name_zip_max_group=5)

    assert len(outcome.clusters) == 6
    assert all(cluster.match_method == MatchMethod.SINGLETON for cluster in outcome.clusters)


def test_every_record_lands_in_exactly_one_cluster() -> None:
    records = [
        _record("1", email="a@x.com", phone="5551112222"),
        _record("2", email="A@X.COM"),
        _record("3", phone="(555) 111-2222"),
        _record("4", first_name="Al", last_name="Ng", zip="94110"),
        _record("5", first_name="Alan", last_name="Ng", zip="94110"),
        _record("6"),
    ]
    outcome = _cluster(records)

    seen = [record_id for cluster in outcome.clusters for record_id in cluster.record_ids]
    assert sorted(seen) == sorted(record.id for record in records)
    assert len(seen) == len(set(seen))
    assert [cluster.cluster_id for cluster in outcome.clusters] == ["cluster_1", "cluster_4", "cluster_5", "cluster_6"]


def test_clustering_is_deterministic() -> None:
    records = [_record(str(i), email=f"user{i % 3}@x.com", phone=f"555000{i % 4:04d}") for i in range(12)]

    first = _cluster(records)
    second = _cluster(records)

    assert _groups(first) == _groups(second)


def test_weaker_pass_never_bridges_two_stronger_clusters() -> None:
    records = [
        StagingRecord(id="k1", source_id="keap", source_ref="k:1", email="ann@x.com"),
        StagingRecord(id="g1", source_id="gb", source_ref="g:1", crossrefs=(("keap", "k:1"),)),
        StagingRecord(id="k2", source_id="keap", source_ref="k:2", email="bob@x.com"),
        StagingRecord(id="g2", source_id="gb", source_ref="g:2", crossrefs=(("keap", "k:2"),)),
        StagingRecord(id="x", source_id="stripe", source_ref="cus_1", email="ann@x.com", email2="bob@x.com"),
    ]
    outcome = _cluster(records)

    assert _groups(outcome) == [["k1", "g1", "x"], ["k2", "g2"]]
    assert [cluster.match_method for cluster in outcome.clusters] == [MatchMethod.CROSSREF, MatchMethod.CROSSREF]


def test_capped_bridge_leaves_rest_of_second_email_group_unmerged() -> None:
    # 3 carries both emails, so the b@x.com bucket grows the a@x.com cluster
    # until the cap and everything after that falls through alone.
    records = [
        _record("1", email="a@x.com"),
        _record("2", email="a@x.com"),
        _record("3", email="a@x.com", email2="b@x.com"),
        *[_record(str(i), email="b@x.com") for i in range(4, 8)],
    ]
    outcome = _cluster(records, max_cluster_size=4)

    assert _groups(outcome) == [["1", "2", "3", "4"], ["5"], ["6"], ["7"]]
    assert {capped.record_id for capped in outcome.capped} == {"5", "6", "7"}
    assert [cluster.match_method for cluster in outcome.clusters[1:]] == [MatchMethod.SINGLETON] * 3


def test_phone_pass_respects_cap_of_email_founded_cluster() -> None:
    records = [
        _record("1", email="a@x.com"),
        _record("2", email="a@x.com", phone="5550001111"),
        _record("3", phone="5550001111"),
    ]
    outcome = _cluster(records, max_cluster_size=2)

    assert _groups(outcome) == [["1", "2"], ["3"]]
    assert outcome.capped_by_method == {MatchMethod.PHONE: 1}
    assert [(c.record_id, c.signal_key) for c in outcome.capped] == [("3", "5550001111")]
    assert outcome.clusters[0].match_method == MatchMethod.EMAIL
    assert outcome.clusters[1].match_method == MatchMethod.SINGLETON


def test_name_zip_bucket_joins_cluster_founded_by_email() -> None:
    records = [
        _record("1", first_name="Jon", last_name="Smith", zip="78701", email="a@x.com"),
        _record("2", first_name="Jonathan", last_name="Smith", zip="78701", email="a@x.com"),
        _record("3", first_name="Jon", last_name="Smith", zip="78701"),
    ]

    joined = _cluster(records)
    capped = _cluster(records, max_cluster_size=2)

    assert _groups(joined) == [["1", "2", "3"]]
    assert joined.clusters[0].match_method == MatchMethod.EMAIL
    assert joined.merges_by_method == {MatchMethod.EMAIL: 1, MatchMethod.NAMEZIP: 1}
    assert _groups(capped) == [["1", "2"], ["3"]]
    assert capped.capped_by_method == {MatchMethod.NAMEZIP: 1}
