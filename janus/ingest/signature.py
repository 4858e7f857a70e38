"""ConfigSignature computation.

Signatures are content hashes over a canonical JSON rendering of a split
structure.  The rendering sorts nothing implicitly: callers pass tiers and
splits already ordered by level and sequence, and the functions here sort
them again so that the hash never depends on the order rows were read in.
Decimal amounts are rendered in their normalized form so ``70``, ``70.0``
and ``70.00`` hash identically.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Any, Iterable, Optional


def canonical_decimal(value: Decimal | int | None) -> Optional[str]:
    """Render *value* without exponent or trailing zeros."""
    if value is None:
        return None
    normalized = Decimal(value).normalize()
    text = format(normalized, "f")
    return "0" if text in ("-0", "") else text


def content_hash(payload: Any) -> str:
    """SHA-256 of the canonical JSON rendering of *payload*."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def split_signature(
    split_percent: Decimal,
    tiers: Iterable[tuple[int, str, Optional[str]]],
) -> str:
    """Signature of one split sequence.

    Args:
        split_percent: The sequence's share of the premium.
        tiers: ``(level, broker_id, schedule_code)`` triples.

    Returns:
        Hex digest.  The group id and the sequence number are not part of
        the payload.
    """
    ordered = sorted(tiers, key=lambda t: (t[0], t[1], t[2] or ""))
    return content_hash(
        {
            "percent": canonical_decimal(split_percent),
            "tiers": [[level, broker, schedule or ""] for level, broker, schedule in ordered],
        }
    )


def config_signature(splits: Iterable[tuple[int, Decimal, str]]) -> str:
    """Signature of a whole certificate from ``(sequence, percent, split_signature)``."""
    ordered = sorted(splits, key=lambda s: (s[0], s[2]))
    return content_hash([[canonical_decimal(percent), sig] for _, percent, sig in ordered])


def chain_signature(participants: Iterable[tuple[int, str, Optional[str]]]) -> str:
    """Signature of a hierarchy's participant chain (no percentages)."""
    ordered = sorted(participants, key=lambda p: (p[0], p[1], p[2] or ""))
    return content_hash([[level, broker, schedule or ""] for level, broker, schedule in ordered])
