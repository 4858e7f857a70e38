"""Tests for the Conformance Auditor."""

from decimal import Decimal

import pytest

from janus.pipeline import MigrationPipeline
from janus.validation.conformance import ConformanceAuditor, ConformanceClass


@pytest.mark.parametrize(
    "conformant, total, expected",
    [
        (10, 10, ConformanceClass.CONFORMANT),
        (0, 0, ConformanceClass.CONFORMANT),
        (19, 20, ConformanceClass.NEARLY_CONFORMANT),
        (96, 100, ConformanceClass.NEARLY_CONFORMANT),
        (94, 100, ConformanceClass.NON_CONFORMANT),
        # 94.995% displays as 95.00 but sits below the threshold
        (18999, 20000, ConformanceClass.NON_CONFORMANT),
        (19000, 20000, ConformanceClass.NEARLY_CONFORMANT),
        (0, 3, ConformanceClass.NON_CONFORMANT),
    ],
)
def test_classification_thresholds(conformant, total, expected):
    assert ConformanceAuditor(nearly_threshold=95).classify(conformant, total) is expected


def test_custom_threshold():
    auditor = ConformanceAuditor(nearly_threshold=80)
    assert auditor.classify(8, 10) is ConformanceClass.NEARLY_CONFORMANT
    assert auditor.classify(7, 10) is ConformanceClass.NON_CONFORMANT


def test_fully_conformant_group(g100_snapshot):
    report = MigrationPipeline(max_workers=1).run(g100_snapshot).conformance

    (record,) = report.records
    assert record.group_id == "G100"
    assert record.total_certificates == 4
    assert record.conformant_certificates == 4
    assert record.conformance_percent == Decimal("100.00")
    assert record.classification is ConformanceClass.CONFORMANT
    assert not record.is_flagged
    assert report.overall_percent == Decimal("100.00")


def test_flagged_and_mismatched_groups(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C100-1", "G100", "2023-01-01", "A"),
        make_rows("C1", "G900", "2023-01-01", "A", splits=[(100, ("B1", "B2"))]),
        make_rows("C2", "G900", "2023-01-01", "A", splits=[(100, ("B3", "B2"))]),
        make_rows("C3", "G900", "2023-04-01", "B", splits=[(100, ("B1", "B2"))]),
        make_rows("C4", None, "2023-01-01", "A"),
        make_rows("C5", "G950", "2023-01-01", "A", splits=[(60, ("B1",)), (30, ("B2",))]),
    )
    report = MigrationPipeline(max_workers=1).run(snapshot).conformance
    records = {r.group_id: r for r in report.records}

    assert sorted(records) == ["G100", "G900", "G950"]

    g900 = records["G900"]
    assert g900.total_certificates == 3
    assert g900.conformant_certificates == 1
    assert g900.exception_certificates == 2
    assert g900.conformance_percent == Decimal("33.33")
    assert g900.classification is ConformanceClass.NON_CONFORMANT
    assert g900.is_flagged

    g950 = records["G950"]
    assert g950.conformant_certificates == 0
    assert g950.unmapped_certificates == 1
    assert g950.classification is ConformanceClass.NON_CONFORMANT

    assert report.total_certificates == 5
    assert report.conformant_certificates == 2
    assert report.overall_percent == Decimal("40.00")
    assert report.classification_counts == {
        "Conformant": 1,
        "Nearly-Conformant": 0,
        "Non-Conformant": 2,
    }
