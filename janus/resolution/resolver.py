"""Policy Resolver — four-tier fallback cascade.

Every policy outside the exception path is offered to each matcher in turn;
the first assignment wins and carries that matcher's provenance tag.
Direct-to-consumer policies and policies whose certificates were routed to
the exception path are not attempted.  A policy no tier can place is logged
and returned as an exception candidate.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Optional, Sequence

from janus.classification.schemas import ClassificationResult
from janus.ingest.schemas import Policy
from janus.resolution.matchers import DEFAULT_MATCHERS, ProposalMatcher, ResolutionIndex
from janus.resolution.schemas import PolicyAssignment, ProvenanceTag, ResolutionResult

logger = logging.getLogger("janus.resolution.resolver")


class PolicyResolver:
    """Assigns policies to Proposals.

    Usage::

        resolver = PolicyResolver()
        result = resolver.resolve(policies, classification, excluded={"C-1"})

    Parameters
    ----------
    matchers:
        Ordered matcher instances; defaults to key mapping, product wildcard,
        year-adjacent and group fallback.
    """

    def __init__(self, matchers: Sequence[ProposalMatcher] | None = None) -> None:
        self.matchers: list[ProposalMatcher] = (
            list(matchers) if matchers is not None else [cls() for cls in DEFAULT_MATCHERS]
        )

    def resolve(
        self,
        policies: Iterable[Policy],
        classification: ClassificationResult,
        excluded: Iterable[str] = (),
    ) -> ResolutionResult:
        """Resolve *policies* against *classification*.

        Args:
            policies: Extracted policies.
            classification: Normalized classifier output.
            excluded: Certificate ids already on the exception path.
        """
        index = ResolutionIndex(classification)
        excluded_ids = set(excluded)
        result = ResolutionResult()
        counts: Counter = Counter()

        for policy in sorted(policies, key=lambda p: p.policy_id):
            if policy.is_direct_to_consumer or policy.certificate_id in excluded_ids:
                result.skipped_policy_ids.append(policy.policy_id)
                continue

            assignment = self.resolve_one(policy, index)
            if assignment is None:
                message = (
                    f"policy {policy.policy_id} (group {policy.group_id}, {policy.year} "
                    f"{policy.product_code}/{policy.plan_code}) matched no proposal"
                )
                logger.warning(message)
                result.warnings.append(message)
                result.unresolved.append(policy)
                continue

            result.assignments.append(assignment)
            counts[assignment.provenance.value] += 1

        result.provenance_counts = {tag.value: counts.get(tag.value, 0) for tag in ProvenanceTag}
        logger.info(
            "Resolved %d policies (%s); %d unresolved, %d skipped",
            len(result.assignments),
            ", ".join(f"{k}={v}" for k, v in result.provenance_counts.items()),
            len(result.unresolved),
            len(result.skipped_policy_ids),
        )
        return result

    def resolve_one(self, policy: Policy, index: ResolutionIndex) -> Optional[PolicyAssignment]:
        for matcher in self.matchers:
            assignment = matcher.attempt(policy, index)
            if assignment is not None:
                return assignment
        return None
