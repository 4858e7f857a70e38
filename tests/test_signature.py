"""Tests for ConfigSignature computation."""

from decimal import Decimal

from janus.ingest.signature import canonical_decimal, chain_signature, config_signature, split_signature


def test_canonical_decimal_drops_trailing_zeros():
    assert canonical_decimal(Decimal("70.00")) == "70"
    assert canonical_decimal(Decimal("100")) == "100"
    assert canonical_decimal(Decimal("33.3300")) == "33.33"
    assert canonical_decimal(None) is None


def test_split_signature_ignores_tier_order():
    a = split_signature(Decimal("100"), [(1, "B1", "S1"), (2, "B2", "S1")])
    b = split_signature(Decimal("100.0"), [(2, "B2", "S1"), (1, "B1", "S1")])
    assert a == b


def test_split_signature_distinguishes_structure():
    base = split_signature(Decimal("100"), [(1, "B1", "S1"), (2, "B2", "S1")])
    assert base != split_signature(Decimal("100"), [(1, "B1", "S1"), (2, "B3", "S1")])
    assert base != split_signature(Decimal("50"), [(1, "B1", "S1"), (2, "B2", "S1")])
    assert base != split_signature(Decimal("100"), [(1, "B1", "S2"), (2, "B2", "S1")])


def test_config_signature_is_order_stable():
    s1 = split_signature(Decimal("60"), [(1, "B1", None)])
    s2 = split_signature(Decimal("40"), [(1, "B2", None)])
    forward = config_signature([(1, Decimal("60"), s1), (2, Decimal("40"), s2)])
    reverse = config_signature([(2, Decimal("40"), s2), (1, Decimal("60"), s1)])
    assert forward == reverse
    assert len(forward) == 64


def test_config_signature_depends_on_sequence_order():
    s1 = split_signature(Decimal("50"), [(1, "B1", None)])
    s2 = split_signature(Decimal("50"), [(1, "B2", None)])
    assert config_signature([(1, Decimal("50"), s1), (2, Decimal("50"), s2)]) != config_signature(
        [(1, Decimal("50"), s2), (2, Decimal("50"), s1)]
    )


def test_chain_signature_treats_missing_schedule_as_blank():
    assert chain_signature([(1, "B1", None)]) == chain_signature([(1, "B1", "")])
