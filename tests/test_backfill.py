from identity_resolution.models import FactRow, MatchMethod, PersonEmail, SourceLink
from identity_resolution.steps.backfill import FactTableSpec, LinkageBackfill, apply_links, payload_email


def _backfill() -> LinkageBackfill:
    links = [
        SourceLink("p1", "keap", "keap:contact:1", MatchMethod.EMAIL, 0.99),
        SourceLink("p2", "givebutter", "gb:42", MatchMethod.SINGLETON, 0.8),
    ]
    emails = [
        PersonEmail(person_id="p1", email="ann@x.com", is_primary=True, source_id="keap"),
        PersonEmail(person_id="p2", email="bob@x.com", is_primary=True, source_id="givebutter"),
        PersonEmail(person_id="p2", email="alt@x.com", is_primary=False, source_id="givebutter"),
    ]
    return LinkageBackfill(links, emails)


def test_exact_source_reference_match() -> None:
    facts = [FactRow(fact_id="f1", source_id="keap", source_ref="keap:contact:1")]
    links = _backfill().link(FactTableSpec(name="donation"), facts)

    assert [(link.fact_id, link.person_id, link.via) for link in links] == [("f1", "p1", "source_ref")]


def test_ref_suffix_is_stripped_before_matching() -> None:
    facts = [
        FactRow(fact_id="t1", source_id="givebutter", source_ref="gb:42:ticket"),
        FactRow(fact_id="t2", source_id="givebutter", source_ref="gb:42:sub"),
    ]
    links = _backfill().link(FactTableSpec(name="ticket", ref_suffix=":ticket"), facts)

    assert [(link.fact_id, link.person_id) for link in links] == [("t1", "p2")]


def test_payload_email_fallback_uses_primary_emails_only() -> None:
    facts = [
        FactRow(fact_id="f1", source_id="stripe", source_ref="ch_1", raw_payload={"Email Address": " ANN@x.com "}),
        FactRow(fact_id="f2", source_id="stripe", source_ref="ch_2", raw_payload={"customer_email": "alt@x.com"}),
        FactRow(fact_id="f3", source_id="stripe", source_ref="ch_3", raw_payload={"email": ""}),
        FactRow(fact_id="f4", source_id="stripe", source_ref="ch_4"),
    ]
    links = _backfill().link(FactTableSpec(name="payment"), facts)

    assert [(link.fact_id, link.person_id, link.via) for link in links] == [("f1", "p1", "email")]


def test_payload_email_takes_first_non_blank_key() -> None:
    assert payload_email({"Email": "  ", "email": "First@X.com", "ContactEmail": "second@x.com"}) == "first@x.com"
    assert payload_email({"Notes": "ann@x.com"}) is None
    assert payload_email(None) is None


def test_backfill_is_idempotent_and_never_overwrites() -> None:
    facts = [
        FactRow(fact_id="f1", source_id="keap", source_ref="keap:contact:1"),
        FactRow(fact_id="f2", source_id="givebutter", source_ref="gb:42", person_id="someone_else"),
        FactRow(fact_id="f3", source_id="keap", source_ref="keap:contact:999"),
    ]
    spec = FactTableSpec(name="donation")
    backfill = _backfill()

    first = apply_links(facts, backfill.link(spec, facts))
    second = apply_links(facts, backfill.link(spec, facts))

    assert first == 1
    assert second == 0
    assert [fact.person_id for fact in facts] == ["p1", "someone_else", None]
