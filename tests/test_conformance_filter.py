"""Tests for the Non-Conformance Filter."""

from janus.classification.conformance_filter import NonConformanceFilter
from janus.classification.schemas import ExceptionReason
from janus.ingest.extractor import SplitConfigExtractor


def _extract(snapshot):
    return SplitConfigExtractor().extract(snapshot).certificates


def test_conformant_pool_keeps_single_signature_keys(g100_snapshot):
    result = NonConformanceFilter(excluded_group_ids=[]).partition(_extract(g100_snapshot))
    assert len(result.conformant) == 4
    assert result.exceptions == []
    assert result.flagged_groups == []


def test_key_with_two_signatures_is_routed_whole(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G1", "2023-01-01", "A", splits=[(100, ("B1", "B2"))]),
        make_rows("C2", "G1", "2023-01-01", "A", splits=[(100, ("B3", "B2"))]),
        make_rows("C3", "G1", "2023-01-01", "B", splits=[(100, ("B1", "B2"))]),
    )
    result = NonConformanceFilter(excluded_group_ids=[]).partition(_extract(snapshot))

    assert [c.certificate_id for c in result.conformant] == ["C3"]
    assert sorted(e.certificate.certificate_id for e in result.exceptions) == ["C1", "C2"]
    assert {e.reason for e in result.exceptions} == {ExceptionReason.FLAGGED_NON_CONFORMANT}
    assert result.flagged_groups == ["G1"]
    (key,) = result.non_conformant_keys
    assert key.key.product_code == "A"
    assert len(key.signatures) == 2
    assert key.certificate_ids == ["C1", "C2"]


def test_same_key_on_different_dates_is_not_compared(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G1", "2023-01-01", "A", splits=[(100, ("B1", "B2"))]),
        make_rows("C2", "G1", "2023-02-01", "A", splits=[(100, ("B3", "B2"))]),
    )
    result = NonConformanceFilter(excluded_group_ids=[]).partition(_extract(snapshot))
    assert len(result.conformant) == 2
    assert result.flagged_groups == []


def test_direct_to_consumer_goes_to_exceptions(make_rows, make_snapshot):
    snapshot = make_snapshot(make_rows("C1", "", "2023-01-01", "A"))
    result = NonConformanceFilter(excluded_group_ids=[]).partition(_extract(snapshot))
    assert result.conformant == []
    assert result.exceptions[0].reason is ExceptionReason.NO_GROUP
    assert result.flagged_groups == []


def test_split_mismatch_is_removed_before_keying(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G1", "2023-01-01", "A", splits=[(60, ("B1",)), (30, ("B2",))]),
        make_rows("C2", "G1", "2023-01-01", "A", splits=[(100, ("B1",))]),
    )
    result = NonConformanceFilter(excluded_group_ids=[]).partition(_extract(snapshot))

    assert [c.certificate_id for c in result.conformant] == ["C2"]
    (mismatch,) = result.exceptions
    assert mismatch.reason is ExceptionReason.SPLIT_MISMATCH
    assert result.non_conformant_keys == []
    assert any("C1" in w and "90" in w for w in result.warnings)


def test_excluded_group_is_flagged(g100_snapshot):
    result = NonConformanceFilter(excluded_group_ids=["G100"]).partition(_extract(g100_snapshot))
    assert result.conformant == []
    assert len(result.exceptions) == 4
    assert result.flagged_groups == ["G100"]


def test_missing_reference_is_routed_to_exceptions(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G1", "2023-01-01", "A", splits=[(100, ("B1", "ZZZ"))]),
        make_rows("C2", "G1", "2023-01-01", "B", splits=[(100, ("B1", "B2"))]),
    )
    extraction = SplitConfigExtractor().extract(snapshot)
    result = NonConformanceFilter(excluded_group_ids=[]).partition(
        extraction.certificates, extraction.missing_references
    )

    assert [c.certificate_id for c in result.conformant] == ["C2"]
    (missing,) = result.exceptions
    assert missing.certificate.certificate_id == "C1"
    assert missing.reason is ExceptionReason.MISSING_REFERENCE
    assert missing.detail == "missing broker ZZZ"
    assert result.flagged_groups == []


def test_split_mismatch_outranks_missing_reference(make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G1", "2023-01-01", "A", splits=[(90, ("B1", "ZZZ"))]),
    )
    extraction = SplitConfigExtractor().extract(snapshot)
    result = NonConformanceFilter(excluded_group_ids=[]).partition(
        extraction.certificates, extraction.missing_references
    )
    assert [e.reason for e in result.exceptions] == [ExceptionReason.SPLIT_MISMATCH]
