"""Exception Resolver.

Builds a PolicyHierarchyAssignment for every certificate that cannot share a
Proposal-based structure:

- direct-to-consumer certificates (no-group sentinel);
- certificates whose split percents do not sum to the expected total;
- every certificate of a group flagged non-conformant, conformant keys included;
- policies the resolver could not place.

Each certificate appears once, under its highest-precedence reason, with its
split structure copied verbatim.  When a shared Hierarchy exists for the
certificate's first split, the assignment references it and links its
product only to that Hierarchy version's catch-all StateRule.
"""

from __future__ import annotations

import logging
from collections import Counter

from janus import ids
from janus.classification.schemas import ExceptionReason, FilterResult
from janus.hierarchy.schemas import HierarchyResult
from janus.hierarchy.state_rules import assert_exclusive, catch_all_rule
from janus.ingest.schemas import CertificateConfiguration, ExtractionResult
from janus.resolution.schemas import (
    ExceptionResult,
    ExceptionRuleLink,
    PolicyHierarchyAssignment,
    PolicyHierarchyParticipant,
    ResolutionResult,
)

logger = logging.getLogger("janus.resolution.exception_resolver")


class ExceptionResolver:
    """Collects exception candidates and emits their assignments."""

    def resolve(
        self,
        extraction: ExtractionResult,
        filtered: FilterResult,
        resolution: ResolutionResult,
        hierarchies: HierarchyResult,
    ) -> ExceptionResult:
        candidates = self.collect(filtered, resolution, extraction)
        index = hierarchies.index()
        result = ExceptionResult()
        counts: Counter = Counter()

        for certificate_id in sorted(candidates):
            cert, reason, detail = candidates[certificate_id]
            assignment = self._assignment(cert, reason, detail, extraction)

            hierarchy = index.get(
                (cert.group_id, cert.splits[0].sequence, cert.splits[0].writing_broker_id)
            )
            if hierarchy is not None:
                assignment.hierarchy_id = hierarchy.id
                rules = hierarchy.version.state_rules
                assert_exclusive(rules)
                rule = catch_all_rule(rules)
                if rule is not None:
                    result.rule_links.append(
                        ExceptionRuleLink(
                            id=ids.exception_rule_link_id(assignment.id, rule.id),
                            assignment_id=assignment.id,
                            state_rule_id=rule.id,
                            product_code=cert.product_code,
                        )
                    )
                else:
                    message = (
                        f"{assignment.id}: hierarchy {hierarchy.id} has only state-specific "
                        f"rules; product {cert.product_code} not linked"
                    )
                    logger.warning(message)
                    result.warnings.append(message)

            result.assignments.append(assignment)
            counts[reason.value] += 1

        result.reason_counts = {reason.value: counts.get(reason.value, 0) for reason in ExceptionReason}
        logger.info(
            "Built %d policy hierarchy assignments (%s)",
            len(result.assignments),
            ", ".join(f"{k}={v}" for k, v in result.reason_counts.items() if v),
        )
        return result

    @staticmethod
    def collect(
        filtered: FilterResult,
        resolution: ResolutionResult,
        extraction: ExtractionResult,
    ) -> dict[str, tuple[CertificateConfiguration, ExceptionReason, str]]:
        """Exception candidates keyed by certificate id, highest precedence kept."""
        candidates: dict[str, tuple[CertificateConfiguration, ExceptionReason, str]] = {}

        def offer(cert: CertificateConfiguration, reason: ExceptionReason, detail: str) -> None:
            current = candidates.get(cert.certificate_id)
            if current is None or reason.precedence < current[1].precedence:
                candidates[cert.certificate_id] = (cert, reason, detail)

        for item in filtered.exceptions:
            offer(item.certificate, item.reason, item.detail)

        flagged = set(filtered.flagged_groups)
        for cert in filtered.conformant:
            if cert.group_id in flagged:
                offer(cert, ExceptionReason.FLAGGED_NON_CONFORMANT, "group flagged non-conformant")

        by_id = {c.certificate_id: c for c in extraction.certificates}
        for policy in resolution.unresolved:
            cert = by_id.get(policy.certificate_id)
            if cert is not None:
                offer(cert, ExceptionReason.UNRESOLVED, "no proposal matched")
        return candidates

    @staticmethod
    def _assignment(
        cert: CertificateConfiguration,
        reason: ExceptionReason,
        detail: str,
        extraction: ExtractionResult,
    ) -> PolicyHierarchyAssignment:
        assignment_id = ids.policy_hierarchy_assignment_id(cert.certificate_id)
        participants = []
        for split in cert.splits:
            for tier in split.tiers:
                broker = extraction.brokers.get(tier.broker_id)
                participants.append(
                    PolicyHierarchyParticipant(
                        id=ids.policy_hierarchy_participant_id(assignment_id, split.sequence, tier.level),
                        assignment_id=assignment_id,
                        split_sequence=split.sequence,
                        level=tier.level,
                        broker_id=tier.broker_id,
                        broker_name=broker.name if broker is not None and broker.name else None,
                        split_percent=tier.split_percent,
                        schedule_code=tier.schedule_code,
                        commission_rate=tier.commission_rate,
                    )
                )
        return PolicyHierarchyAssignment(
            id=assignment_id,
            policy_id=cert.certificate_id,
            certificate_id=cert.certificate_id,
            group_id=cert.group_id,
            product_code=cert.product_code,
            reason=reason,
            detail=detail,
            writing_broker_id=cert.splits[0].writing_broker_id,
            total_split_percent=cert.total_split_percent,
            participants=participants,
        )
