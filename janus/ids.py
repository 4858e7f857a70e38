"""Deterministic id allocation.

Every id Janus emits is a pure function of natural keys (group id, ordinal
within the group, parent id).  Ordinals are assigned by the caller from a
stable sort, so re-running the engine on the same snapshot yields the same
ids.  Nothing here consults a sequence, a clock or a random source.
"""

from __future__ import annotations

CATCH_ALL_STATE = "ALL"


# ── Proposals ─────────────────────────────────────────────────────

def proposal_id(group_id: str, ordinal: int) -> str:
    return f"P-{group_id}-{ordinal}"


def consolidated_proposal_id(group_id: str, ordinal: int) -> str:
    return f"P-{group_id}-C{ordinal}"


def proposal_product_id(proposal: str, product_code: str) -> str:
    return f"{proposal}-{product_code}"


def split_version_id(proposal: str) -> str:
    return f"PSV-{proposal}"


def split_participant_id(version: str, sequence: int) -> str:
    return f"{version}-S{sequence}"


# ── Hierarchies ───────────────────────────────────────────────────

def hierarchy_id(group_id: str, ordinal: int) -> str:
    return f"H-{group_id}-{ordinal}"


def hierarchy_version_id(hierarchy: str, version: int = 1) -> str:
    return f"{hierarchy}-V{version}"


def hierarchy_participant_id(version: str, broker_id: str, level: int) -> str:
    return f"{version}-P{broker_id}-L{level}"


def state_rule_id(version: str, state: str | None = None) -> str:
    """Rule id for *state*, or for the catch-all rule when *state* is None."""
    return f"SR-{version}-{state or CATCH_ALL_STATE}"


def state_rule_state_id(rule: str, state: str) -> str:
    return f"{rule}-{state}"


def hierarchy_split_id(rule: str, product_code: str) -> str:
    return f"{rule}-{product_code}"


def split_distribution_id(split: str, participant: str) -> str:
    return f"{split}-{participant}"


def broker_assignment_id(source_broker_id: str) -> str:
    return f"BA-{source_broker_id}"


# ── Exceptions ────────────────────────────────────────────────────

def policy_hierarchy_assignment_id(certificate_id: str) -> str:
    return f"PHA-{certificate_id}"


def policy_hierarchy_participant_id(assignment: str, sequence: int, level: int) -> str:
    return f"{assignment}-S{sequence}-L{level}"


def exception_rule_link_id(assignment: str, rule: str) -> str:
    return f"{assignment}-{rule}"
