"""Matcher strategies for the Policy Resolver.

Each matcher implements one fallback tier.  :meth:`ProposalMatcher.attempt`
returns an assignment tagged with the matcher's provenance, or ``None`` to
let the next tier try.  Matchers are stateless and read only the
:class:`ResolutionIndex`, so each tier can be exercised on its own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Optional

from janus.classification.schemas import ClassificationResult, Proposal, ProposalKeyMapping
from janus.config import settings
from janus.ingest.schemas import Policy, YearKey
from janus.resolution.schemas import PolicyAssignment, ProvenanceTag


class ResolutionIndex:
    """Read-only lookups over the classifier's output."""

    def __init__(self, classification: ClassificationResult, wildcard: str | None = None) -> None:
        self.wildcard = wildcard or settings.plan_wildcard
        self.proposals: dict[str, Proposal] = {p.id: p for p in classification.proposals}
        self.key_map: dict[YearKey, ProposalKeyMapping] = {}
        self.by_product_plan: dict[tuple[str, str, str], list[ProposalKeyMapping]] = defaultdict(list)
        self.by_group: dict[str, list[Proposal]] = defaultdict(list)

        for mapping in sorted(classification.key_mappings, key=lambda m: (m.key, m.proposal_id)):
            self.key_map.setdefault(mapping.key, mapping)
            key = mapping.key
            self.by_product_plan[(key.group_id, key.product_code, key.plan_code)].append(mapping)
        for proposal in sorted(classification.proposals, key=lambda p: p.id):
            self.by_group[proposal.group_id].append(proposal)


class ProposalMatcher(ABC):
    """One tier of the resolver cascade."""

    tag: ProvenanceTag

    @abstractmethod
    def attempt(self, policy: Policy, index: ResolutionIndex) -> Optional[PolicyAssignment]:
        """Return an assignment for *policy*, or ``None`` if this tier cannot."""

    def _assign(self, policy: Policy, proposal_id: str, matched_year: int | None = None) -> PolicyAssignment:
        return PolicyAssignment(
            policy_id=policy.policy_id,
            certificate_id=policy.certificate_id,
            group_id=policy.group_id,
            proposal_id=proposal_id,
            provenance=self.tag,
            matched_year=matched_year,
        )


class KeyMappingMatcher(ProposalMatcher):
    """Exact (group, year, product, plan) key mapping."""

    tag = ProvenanceTag.KEY_MAPPING

    def attempt(self, policy: Policy, index: ResolutionIndex) -> Optional[PolicyAssignment]:
        mapping = index.key_map.get(policy.year_key)
        if mapping is None:
            return None
        return self._assign(policy, mapping.proposal_id)


class ProductWildcardMatcher(ProposalMatcher):
    """A Proposal of the group scoped to all products that covers the policy year.

    Among several, the one whose date range contains the policy date wins,
    then the latest start, then the lowest id.
    """

    tag = ProvenanceTag.PRODUCT_WILDCARD

    def attempt(self, policy: Policy, index: ResolutionIndex) -> Optional[PolicyAssignment]:
        candidates = [
            p for p in index.by_group.get(policy.group_id, [])
            if p.has_wildcard_products(index.wildcard)
            and p.in_scope(policy.product_code, policy.plan_code, index.wildcard)
            and p.covers_year(policy.year)
        ]
        if not candidates:
            return None
        best = min(
            candidates,
            key=lambda p: (
                not p.covers_date(policy.effective_date),
                -p.effective_from.toordinal(),
                p.id,
            ),
        )
        return self._assign(policy, best.id)


class YearAdjacentMatcher(ProposalMatcher):
    """Nearest-year mapping for the same (group, product, plan).

    Equal distances prefer the earlier year, then the lower Proposal id.
    """

    tag = ProvenanceTag.YEAR_ADJACENT

    def attempt(self, policy: Policy, index: ResolutionIndex) -> Optional[PolicyAssignment]:
        mappings = [
            m for m in index.by_product_plan.get(
                (policy.group_id, policy.product_code, policy.plan_code), []
            )
            if m.key.year != policy.year
        ]
        if not mappings:
            return None
        best = min(
            mappings,
            key=lambda m: (abs(m.key.year - policy.year), m.key.year, m.proposal_id),
        )
        return self._assign(policy, best.proposal_id, matched_year=best.key.year)


class GroupFallbackMatcher(ProposalMatcher):
    """The group's single best Proposal: open-ended first, else latest start."""

    tag = ProvenanceTag.GROUP_FALLBACK

    def attempt(self, policy: Policy, index: ResolutionIndex) -> Optional[PolicyAssignment]:
        proposals = index.by_group.get(policy.group_id, [])
        if not proposals:
            return None
        best = min(
            proposals,
            key=lambda p: (not p.is_open_ended, -p.effective_from.toordinal(), p.id),
        )
        return self._assign(policy, best.id)


DEFAULT_MATCHERS: tuple[type[ProposalMatcher], ...] = (
    KeyMappingMatcher,
    ProductWildcardMatcher,
    YearAdjacentMatcher,
    GroupFallbackMatcher,
)
