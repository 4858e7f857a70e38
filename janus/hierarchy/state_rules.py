"""StateRule construction for Hierarchy versions.

A Hierarchy observed in a single jurisdiction (or in none) gets one catch-all
rule; one observed in several gets one rule per jurisdiction.  Each rule
carries a HierarchySplit per product observed under it, and each split is
distributed across the version's participants.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from janus import ids
from janus.exceptions import StateRuleConflictError
from janus.hierarchy.schemas import (
    HierarchyParticipant,
    HierarchySplit,
    SplitDistribution,
    StateRule,
    StateRuleState,
)

logger = logging.getLogger("janus.hierarchy.state_rules")

STATE_NAMES: dict[str, str] = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "DC": "District of Columbia", "FL": "Florida", "GA": "Georgia", "HI": "Hawaii",
    "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine",
    "MD": "Maryland", "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
    "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska",
    "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico",
    "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
    "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "PR": "Puerto Rico",
    "RI": "Rhode Island", "SC": "South Carolina", "SD": "South Dakota", "TN": "Tennessee",
    "TX": "Texas", "UT": "Utah", "VT": "Vermont", "VA": "Virginia",
    "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}


def build_state_rules(
    version_id: str,
    participants: list[HierarchyParticipant],
    observations: Iterable[tuple[Optional[str], str]],
) -> list[StateRule]:
    """Build the rules for one Hierarchy version.

    Args:
        version_id: Owning HierarchyVersion id.
        participants: The version's participants, used for distributions.
        observations: ``(state_code, product_code)`` pairs seen on the
            Hierarchy's certificates.  ``state_code`` may be ``None``.

    Returns:
        Either a single catch-all rule or one rule per observed state.
    """
    products_by_state: dict[str, set[str]] = defaultdict(set)
    all_products: set[str] = set()
    for state, product in observations:
        all_products.add(product)
        if state:
            products_by_state[state].add(product)

    if len(products_by_state) <= 1:
        rule_id = ids.state_rule_id(version_id)
        rule = StateRule(id=rule_id, hierarchy_version_id=version_id, is_catch_all=True)
        rule.splits = [
            _split(rule_id, product, participants) for product in sorted(all_products)
        ]
        return [rule]

    rules: list[StateRule] = []
    for state in sorted(products_by_state):
        rule_id = ids.state_rule_id(version_id, state)
        rules.append(
            StateRule(
                id=rule_id,
                hierarchy_version_id=version_id,
                is_catch_all=False,
                states=[
                    StateRuleState(
                        id=ids.state_rule_state_id(rule_id, state),
                        state_rule_id=rule_id,
                        state_code=state,
                        state_name=STATE_NAMES.get(state),
                    )
                ],
                splits=[
                    _split(rule_id, product, participants)
                    for product in sorted(products_by_state[state])
                ],
            )
        )
    return rules


def distribute(split_id: str, participants: list[HierarchyParticipant]) -> list[SplitDistribution]:
    """Cross a split with every participant.

    Each participant receives its own split percent; participants without one
    share 100 equally.
    """
    if not participants:
        return []
    equal_share = (Decimal(100) / Decimal(len(participants))).quantize(Decimal("0.0001"))
    return [
        SplitDistribution(
            id=ids.split_distribution_id(split_id, p.id),
            hierarchy_split_id=split_id,
            participant_id=p.id,
            percentage=p.split_percent if p.split_percent is not None else equal_share,
        )
        for p in participants
    ]


def assert_exclusive(rules: list[StateRule]) -> None:
    """Reject a version whose rules mix catch-all and per-state scopes."""
    by_version: dict[str, list[StateRule]] = defaultdict(list)
    for rule in rules:
        by_version[rule.hierarchy_version_id].append(rule)
    for version_id, version_rules in by_version.items():
        catch_all = [r for r in version_rules if r.is_catch_all]
        if len(catch_all) > 1 or (catch_all and len(version_rules) > 1):
            raise StateRuleConflictError(
                f"hierarchy version {version_id} mixes a catch-all rule with "
                f"{len(version_rules) - 1} other rule(s)"
            )


def catch_all_rule(rules: list[StateRule]) -> Optional[StateRule]:
    for rule in rules:
        if rule.is_catch_all:
            return rule
    return None


def _split(rule_id: str, product: str, participants: list[HierarchyParticipant]) -> HierarchySplit:
    split_id = ids.hierarchy_split_id(rule_id, product)
    return HierarchySplit(
        id=split_id,
        state_rule_id=rule_id,
        product_code=product,
        distributions=distribute(split_id, participants),
    )
