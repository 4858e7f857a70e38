"""Tests for the Hierarchy Builder, StateRules and broker assignments."""

from datetime import date
from decimal import Decimal

import pytest

from janus.classification.classifier import ProposalClassifier
from janus.classification.normalizer import DateRangeNormalizer
from janus.classification.schemas import ClassificationTier, Proposal, SplitConfiguration
from janus.exceptions import StateRuleConflictError
from janus.hierarchy.builder import HierarchyBuilder, link_proposal
from janus.hierarchy.schemas import HierarchyParticipant, LinkTier, StateRule
from janus.hierarchy.state_rules import assert_exclusive, build_state_rules, distribute
from janus.ingest.extractor import SplitConfigExtractor


def _build(snapshot):
    extraction = SplitConfigExtractor().extract(snapshot)
    classification = DateRangeNormalizer().normalize(
        ProposalClassifier(extraction.brokers).classify(extraction.certificates)
    )
    return HierarchyBuilder(extraction.brokers).build(extraction, classification), classification


def _proposal(pid, start, end):
    return Proposal(
        id=pid,
        group_id="G1",
        tier=ClassificationTier.GRANULAR,
        config_signature="sig",
        product_codes=("A",),
        plan_codes=("*",),
        year_from=start.year,
        effective_from=start,
        effective_to=end,
        lead_broker_id="B1",
        split_configuration=SplitConfiguration(id=f"PSV-{pid}", proposal_id=pid),
    )


def _participant(pid, level, percent):
    return HierarchyParticipant(
        id=pid, hierarchy_version_id="V", level=level, broker_id=pid, split_percent=percent
    )


def test_single_sequence_group_gets_one_hierarchy(g100_snapshot):
    result, _ = _build(g100_snapshot)

    (hierarchy,) = result.hierarchies
    assert hierarchy.id == "H-G100-1"
    assert hierarchy.split_sequence == 1
    assert hierarchy.writing_broker_id == "B1"
    assert hierarchy.writing_broker_name == "Broker B1"
    assert hierarchy.proposal_id == "P-G100-1"
    assert hierarchy.link_tier is LinkTier.OPEN_ENDED
    assert hierarchy.representative_date == date(2023, 1, 1)
    assert hierarchy.certificate_count == 4

    version = hierarchy.version
    assert version.id == "H-G100-1-V1"
    assert [(p.level, p.broker_id) for p in version.participants] == [(1, "B1"), (2, "B2")]
    assert version.participants[0].commission_rate == Decimal("70")
    assert version.participants[1].schedule_code == "S1"


def test_single_jurisdiction_collapses_to_catch_all(g100_snapshot):
    result, _ = _build(g100_snapshot)
    (rule,) = result.hierarchies[0].version.state_rules

    assert rule.id == "SR-H-G100-1-V1-ALL"
    assert rule.is_catch_all
    assert rule.states == []
    assert [s.product_code for s in rule.splits] == ["A", "B"]
    assert len(rule.splits[0].distributions) == 2
    assert rule.splits[0].distributions[0].id == (
        "SR-H-G100-1-V1-ALL-A-H-G100-1-V1-PB1-L1"
    )


def test_multiple_jurisdictions_get_state_rules(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G600", "2023-01-01", "A", state="TX"),
        make_rows("C2", "G600", "2023-02-01", "A", state="CA"),
        make_rows("C3", "G600", "2023-03-01", "B", state="CA"),
    )
    result, _ = _build(snapshot)
    rules = result.hierarchies[0].version.state_rules

    assert [r.id for r in rules] == ["SR-H-G600-1-V1-CA", "SR-H-G600-1-V1-TX"]
    assert not any(r.is_catch_all for r in rules)
    assert rules[0].states[0].state_name == "California"
    assert [s.product_code for s in rules[0].splits] == ["A", "B"]
    assert [s.product_code for s in rules[1].splits] == ["A"]


def test_each_split_sequence_gets_its_own_hierarchy(make_rows, make_snapshot):
    splits = [(60, ("B1", "B2")), (40, ("B3", "B2"))]
    snapshot = make_snapshot(
        make_rows("C1", "G700", "2023-01-01", "A", splits=splits),
        make_rows("C2", "G700", "2023-05-01", "A", splits=splits),
    )
    result, classification = _build(snapshot)

    assert [(h.id, h.split_sequence, h.writing_broker_id) for h in result.hierarchies] == [
        ("H-G700-1", 1, "B1"),
        ("H-G700-2", 2, "B3"),
    ]
    assert {h.proposal_id for h in result.hierarchies} == {"P-G700-1"}

    (config,) = result.split_configurations
    assert [(p.sequence, p.hierarchy_id) for p in config.participants] == [
        (1, "H-G700-1"),
        (2, "H-G700-2"),
    ]
    # the classifier's own configuration is left unlinked
    assert classification.proposals[0].split_configuration.participants[0].hierarchy_id is None


def test_hierarchies_follow_their_dates_to_proposals(g200_snapshot):
    result, _ = _build(g200_snapshot)

    assert [(h.id, h.writing_broker_id, h.proposal_id, h.link_tier) for h in result.hierarchies] == [
        ("H-G200-1", "B1", "P-G200-1", LinkTier.WITHIN_RANGE),
        ("H-G200-2", "B3", "P-G200-2", LinkTier.WITHIN_RANGE),
    ]


def test_link_proposal_tiers():
    bounded = _proposal("P-G1-1", date(2023, 1, 1), date(2023, 12, 31))
    open_ended = _proposal("P-G1-2", date(2024, 1, 1), None)

    assert link_proposal([bounded, open_ended], date(2023, 6, 1)) == (bounded, LinkTier.WITHIN_RANGE)
    assert link_proposal([bounded, open_ended], date(2025, 6, 1)) == (open_ended, LinkTier.OPEN_ENDED)
    assert link_proposal([bounded], date(2022, 6, 1)) == (bounded, LinkTier.LATEST)

    later = _proposal("P-G1-3", date(2024, 1, 1), date(2024, 12, 31))
    assert link_proposal([bounded, later], date(2025, 6, 1)) == (later, LinkTier.LATEST)

    with pytest.raises(ValueError):
        link_proposal([], date(2023, 1, 1))


def test_distribution_uses_explicit_percent_or_equal_share():
    explicit = distribute("SP", [_participant("P1", 1, Decimal("60")), _participant("P2", 2, Decimal("40"))])
    assert [d.percentage for d in explicit] == [Decimal("60"), Decimal("40")]

    fallback = distribute("SP", [_participant("P1", 1, None), _participant("P2", 2, None)])
    assert [d.percentage for d in fallback] == [Decimal("50.0000"), Decimal("50.0000")]

    assert distribute("SP", []) == []


def test_build_state_rules_without_state_data_is_catch_all():
    rules = build_state_rules("V1", [], [(None, "A"), (None, "B")])
    assert len(rules) == 1 and rules[0].is_catch_all
    assert [s.product_code for s in rules[0].splits] == ["A", "B"]


def test_assert_exclusive_rejects_mixed_rules():
    rules = [
        StateRule(id="SR-V1-ALL", hierarchy_version_id="V1", is_catch_all=True),
        StateRule(id="SR-V1-TX", hierarchy_version_id="V1", is_catch_all=False),
        StateRule(id="SR-V2-TX", hierarchy_version_id="V2", is_catch_all=False),
    ]
    with pytest.raises(StateRuleConflictError, match="V1"):
        assert_exclusive(rules)
    assert_exclusive(rules[1:])


def test_broker_assignments_keep_latest_redirect(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G800", "2023-01-01", "A", paid_broker="B7"),
        make_rows("C2", "G800", "2023-06-01", "A", paid_broker="B8"),
        make_rows("C3", "G800", "2023-03-01", "A", paid_broker="B1"),
    )
    result, _ = _build(snapshot)

    (assignment,) = result.broker_assignments
    assert assignment.id == "BA-B1"
    assert assignment.paid_broker_id == "B8"
    assert assignment.certificate_id == "C2"
