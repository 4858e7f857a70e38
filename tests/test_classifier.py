"""Tests for the Proposal Classifier cascade and consolidation."""

from datetime import date

from janus.classification.classifier import ProposalClassifier
from janus.classification.schemas import ClassificationTier
from janus.ingest.extractor import SplitConfigExtractor

S1 = [(100, ("B1", "B2"))]
S2 = [(100, ("B3", "B4"))]


def _classify(snapshot, **kwargs):
    extraction = SplitConfigExtractor().extract(snapshot)
    return ProposalClassifier(extraction.brokers, **kwargs).classify(extraction.certificates)


def test_simple_group_gets_one_open_ended_proposal(g100_snapshot):
    result = _classify(g100_snapshot)

    (proposal,) = result.proposals
    assert proposal.id == "P-G100-1"
    assert proposal.tier is ClassificationTier.SIMPLE
    assert proposal.product_codes == ("*",)
    assert proposal.plan_codes == ("*",)
    assert proposal.effective_from == date(2023, 1, 1)
    assert proposal.effective_to is None
    assert proposal.year_to is None
    assert proposal.lead_broker_id == "B1"
    assert proposal.lead_broker_name == "Broker B1"
    assert proposal.certificate_count == 4
    assert {m.proposal_id for m in result.key_mappings} == {"P-G100-1"}
    assert len(result.key_mappings) == 4
    assert result.tier_counts["Simple"] == 1


def test_simple_proposal_split_configuration(g100_snapshot):
    (proposal,) = _classify(g100_snapshot).proposals
    config = proposal.split_configuration
    assert config.id == "PSV-P-G100-1"
    assert [(p.id, p.broker_id, p.split_percent) for p in config.participants] == [
        ("PSV-P-G100-1-S1", "B1", 100)
    ]
    assert config.total_split_percent == 100


def test_year_differentiated_group(g200_snapshot):
    result = _classify(g200_snapshot)

    assert [p.id for p in result.proposals] == ["P-G200-1", "P-G200-2"]
    first, second = result.proposals
    assert {first.tier, second.tier} == {ClassificationTier.YEAR_DIFFERENTIATED}
    assert (first.year_from, first.year_to) == (2023, 2023)
    assert (second.year_from, second.year_to) == (2024, 2024)
    assert first.effective_from == date(2023, 1, 1)
    assert second.effective_from == date(2024, 3, 1)
    assert first.certificate_count == 2
    assert first.config_signature != second.config_signature
    mapping = {m.key.year: m.proposal_id for m in result.key_mappings}
    assert mapping == {2023: "P-G200-1", 2024: "P-G200-2"}


def test_plan_differentiated_group(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G300", "2023-01-01", "A", "P1", splits=S1),
        make_rows("C2", "G300", "2024-01-01", "A", "P1", splits=S1),
        make_rows("C3", "G300", "2023-02-01", "A", "P2", splits=S2),
        make_rows("C4", "G300", "2023-03-01", "B", splits=S1),
    )
    result = _classify(snapshot)
    by_id = {p.id: p for p in result.proposals}

    assert set(by_id) == {"P-G300-1", "P-G300-2", "P-G300-C1"}
    p1 = by_id["P-G300-1"]
    assert p1.tier is ClassificationTier.PLAN_DIFFERENTIATED
    assert (p1.product_codes, p1.plan_codes) == (("A",), ("P1",))
    assert (p1.year_from, p1.year_to) == (2023, 2024)
    assert p1.effective_to == date(2024, 12, 31)
    assert by_id["P-G300-2"].plan_codes == ("P2",)
    assert by_id["P-G300-C1"].product_codes == ("B",)
    assert result.tier_counts["PlanDifferentiated"] == 2


def test_granular_proposals_consolidate_by_signature(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G400", "2023-01-01", "A", splits=S1),
        make_rows("C2", "G400", "2023-06-01", "A", splits=S2),
        make_rows("C3", "G400", "2023-03-01", "B", splits=S1),
    )
    result = _classify(snapshot)

    assert [p.id for p in result.proposals] == ["P-G400-C1", "P-G400-C2"]
    merged, single = result.proposals
    assert merged.tier is ClassificationTier.CONSOLIDATED
    assert merged.product_codes == ("A", "B")
    assert merged.plan_codes == ("*",)
    assert len(merged.source_proposal_ids) == 2
    assert merged.certificate_count == 2
    assert single.product_codes == ("A",)
    assert single.source_proposal_ids and len(single.source_proposal_ids) == 1
    assert result.tier_counts["Granular"] == 3
    assert result.tier_counts["Consolidated"] == 2


def test_consolidated_key_mapping_stays_single_valued(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G400", "2023-01-01", "A", splits=S1),
        make_rows("C2", "G400", "2023-06-01", "A", splits=S2),
        make_rows("C3", "G400", "2023-03-01", "B", splits=S1),
    )
    result = _classify(snapshot)

    keys = [m.key for m in result.key_mappings]
    assert len(keys) == len(set(keys))
    mapping = {m.key.product_code: m.proposal_id for m in result.key_mappings}
    assert mapping == {"A": "P-G400-C1", "B": "P-G400-C1"}


def test_wide_consolidated_scope_becomes_wildcard(make_rows, make_snapshot):
    certificates = [
        make_rows(f"C{i:02d}", "G500", "2023-01-01", f"P{i:02d}", splits=S1) for i in range(1, 13)
    ]
    certificates.append(make_rows("CZ", "G500", "2023-05-01", "Z", splits=S2))

    wide = _classify(make_snapshot(*certificates), scope_wildcard_threshold=10)
    assert wide.proposals[0].product_codes == ("*",)
    assert wide.proposals[1].product_codes == ("Z",)
    assert [p.product_code for p in wide.products if p.proposal_id == "P-G500-C1"] == ["*"]

    narrow = _classify(make_snapshot(*certificates), scope_wildcard_threshold=20)
    assert len(narrow.proposals[0].product_codes) == 12


def test_classification_is_deterministic(make_rows, make_snapshot):
    snapshot = make_snapshot(
        *[
            make_rows(f"C{g}-{i}", f"G{g}", f"202{i % 2 + 3}-0{i}-01", "A", splits=S1 if i % 2 else S2)
            for g in range(10)
            for i in range(1, 5)
        ]
    )
    sequential = _classify(snapshot, max_workers=1)
    parallel = _classify(snapshot, max_workers=4)
    again = _classify(snapshot, max_workers=1)

    assert sequential.model_dump() == parallel.model_dump() == again.model_dump()
