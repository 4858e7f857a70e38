"""Janus hierarchy package — broker upline chains and their applicability.

- :class:`HierarchyBuilder` — one Hierarchy per (group, split sequence, writing broker)
- :class:`BrokerAssignmentBuilder` — split-broker to paid-broker redirects
- :func:`build_state_rules` — catch-all or per-state rules with splits and distributions
"""

from janus.hierarchy.assignments import BrokerAssignmentBuilder
from janus.hierarchy.builder import HierarchyBuilder, link_proposal
from janus.hierarchy.schemas import (
    BrokerAssignment,
    Hierarchy,
    HierarchyParticipant,
    HierarchyResult,
    HierarchySplit,
    HierarchyVersion,
    LinkTier,
    SplitDistribution,
    StateRule,
)
from janus.hierarchy.state_rules import assert_exclusive, build_state_rules, catch_all_rule

__all__ = [
    "HierarchyBuilder",
    "BrokerAssignmentBuilder",
    "link_proposal",
    "build_state_rules",
    "assert_exclusive",
    "catch_all_rule",
    "BrokerAssignment",
    "Hierarchy",
    "HierarchyParticipant",
    "HierarchyResult",
    "HierarchySplit",
    "HierarchyVersion",
    "LinkTier",
    "SplitDistribution",
    "StateRule",
]
