"""Tests for the Date-Range Normalizer and contiguity verification."""

from datetime import date

import pytest

from janus.classification.classifier import ProposalClassifier
from janus.classification.normalizer import DateRangeNormalizer, verify_contiguity
from janus.classification.schemas import (
    ClassificationResult,
    ClassificationTier,
    Proposal,
    SplitConfiguration,
)
from janus.exceptions import DateRangeIntegrityError
from janus.ingest.extractor import SplitConfigExtractor


def _proposal(pid, start, end, group="G1"):
    return Proposal(
        id=pid,
        group_id=group,
        tier=ClassificationTier.GRANULAR,
        config_signature="sig",
        product_codes=("A",),
        plan_codes=("*",),
        year_from=start.year,
        year_to=(end or start).year,
        effective_from=start,
        effective_to=end,
        lead_broker_id="B1",
        split_configuration=SplitConfiguration(id=f"PSV-{pid}", proposal_id=pid),
    )


def test_year_differentiated_proposals_become_contiguous(g200_snapshot):
    extraction = SplitConfigExtractor().extract(g200_snapshot)
    classified = ProposalClassifier(extraction.brokers).classify(extraction.certificates)
    normalized = DateRangeNormalizer(strict=True).normalize(classified)

    first, second = sorted(normalized.proposals, key=lambda p: p.effective_from)
    assert first.effective_to == date(2024, 2, 29)
    assert second.effective_from == date(2024, 3, 1)
    assert second.effective_to == date(2024, 12, 31)
    assert normalized.date_range_issues == []


def test_normalize_does_not_mutate_input():
    original = ClassificationResult(
        proposals=[
            _proposal("P-G1-1", date(2023, 1, 1), date(2023, 12, 31)),
            _proposal("P-G1-2", date(2023, 7, 1), date(2024, 12, 31)),
        ]
    )
    normalized = DateRangeNormalizer().normalize(original)

    assert original.proposals[0].effective_to == date(2023, 12, 31)
    assert normalized.proposals[0].effective_to == date(2023, 6, 30)


def test_open_ended_predecessor_is_closed():
    result = DateRangeNormalizer().normalize(
        ClassificationResult(
            proposals=[
                _proposal("P-G1-1", date(2023, 1, 1), None),
                _proposal("P-G1-2", date(2024, 1, 1), date(2024, 12, 31)),
            ]
        )
    )
    assert result.proposals[0].effective_to == date(2023, 12, 31)
    assert result.proposals[1].effective_to == date(2024, 12, 31)


def test_shared_start_dates_share_end_dates():
    result = DateRangeNormalizer().normalize(
        ClassificationResult(
            proposals=[
                _proposal("P-G1-2", date(2023, 1, 1), date(2023, 12, 31)),
                _proposal("P-G1-1", date(2023, 1, 1), date(2024, 12, 31)),
                _proposal("P-G1-3", date(2023, 9, 1), date(2025, 12, 31)),
            ]
        )
    )
    assert [p.id for p in result.proposals] == ["P-G1-1", "P-G1-2", "P-G1-3"]
    assert [p.effective_to for p in result.proposals] == [
        date(2023, 8, 31),
        date(2023, 8, 31),
        date(2025, 12, 31),
    ]
    assert result.date_range_issues == []


def test_groups_are_normalized_independently():
    result = DateRangeNormalizer().normalize(
        ClassificationResult(
            proposals=[
                _proposal("P-G1-1", date(2023, 1, 1), date(2023, 12, 31), group="G1"),
                _proposal("P-G2-1", date(2023, 6, 1), date(2023, 12, 31), group="G2"),
            ]
        )
    )
    assert [p.effective_to for p in result.proposals] == [date(2023, 12, 31), date(2023, 12, 31)]


def test_verify_reports_gap_and_overlap():
    gap = [
        _proposal("P-G1-1", date(2023, 1, 1), date(2023, 6, 30)),
        _proposal("P-G1-2", date(2023, 8, 1), date(2023, 12, 31)),
    ]
    overlap = [
        _proposal("P-G2-1", date(2023, 1, 1), date(2023, 9, 30), group="G2"),
        _proposal("P-G2-2", date(2023, 8, 1), date(2023, 12, 31), group="G2"),
    ]
    issues = verify_contiguity(gap + overlap)
    assert len(issues) == 2
    assert "gap" in issues[0] and "G1" in issues[0]
    assert "overlap" in issues[1] and "G2" in issues[1]


def test_strict_mode_raises(monkeypatch):
    monkeypatch.setattr(
        "janus.classification.normalizer.verify_contiguity", lambda proposals: ["group G1: gap"]
    )
    with pytest.raises(DateRangeIntegrityError, match="gap"):
        DateRangeNormalizer(strict=True).normalize(
            ClassificationResult(proposals=[_proposal("P-G1-1", date(2023, 1, 1), None)])
        )
