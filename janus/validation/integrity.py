"""Integrity Verifier — post-run structural checks.

Checks run over a completed run's outputs:

- **contiguity**: each group's Proposal timeline has no gap or overlap;
- **coverage**: every conformant certificate maps to exactly one Proposal
  whose scope contains its product and plan;
- **split totals**: every SplitConfiguration sums to the expected total;
- **hierarchy links**: every Hierarchy references an existing Proposal;
- **state rules**: no Hierarchy version mixes catch-all and per-state rules;
- **exception completeness**: every exception certificate has exactly one
  PolicyHierarchyAssignment.

Findings that break a stated invariant are errors; findings that are
expected side effects of normalization are warnings.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from decimal import Decimal

from pydantic import BaseModel, Field

from janus.classification.normalizer import verify_contiguity
from janus.classification.schemas import ClassificationResult, FilterResult
from janus.config import settings
from janus.exceptions import StateRuleConflictError
from janus.hierarchy.schemas import HierarchyResult
from janus.hierarchy.state_rules import assert_exclusive
from janus.resolution.schemas import ExceptionResult

logger = logging.getLogger("janus.validation.integrity")


class IntegrityReport(BaseModel):
    """Outcome of an integrity verification run."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    checks_run: list[str] = Field(default_factory=list)
    #: Error and warning counts keyed by check name.
    check_errors: dict[str, int] = Field(default_factory=dict)
    check_warnings: dict[str, int] = Field(default_factory=dict)

    def begin(self, check: str) -> None:
        self.checks_run.append(check)
        self.check_errors[check] = 0
        self.check_warnings[check] = 0

    def error(self, message: str) -> None:
        """Record an error against the check currently running."""
        self.is_valid = False
        self.errors.append(message)
        if self.checks_run:
            self.check_errors[self.checks_run[-1]] += 1

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        if self.checks_run:
            self.check_warnings[self.checks_run[-1]] += 1

    def passed(self, check: str) -> bool:
        return check in self.check_errors and self.check_errors[check] == 0


class IntegrityVerifier:
    """Verifies the invariants a finished run must satisfy."""

    def __init__(self, *, expected_split_total: int | None = None, wildcard: str | None = None) -> None:
        total = expected_split_total if expected_split_total is not None else settings.expected_split_total
        self.expected_split_total = Decimal(total)
        self.wildcard = wildcard or settings.plan_wildcard

    def verify(
        self,
        filtered: FilterResult,
        classification: ClassificationResult,
        hierarchies: HierarchyResult,
        exceptions: ExceptionResult,
    ) -> IntegrityReport:
        report = IntegrityReport()
        self.check_contiguity(classification, report)
        self.check_coverage(filtered, classification, report)
        self.check_split_totals(hierarchies, report)
        self.check_hierarchy_links(classification, hierarchies, report)
        self.check_state_rules(hierarchies, report)
        self.check_exception_completeness(filtered, exceptions, report)

        for message in report.errors:
            logger.error(message)
        logger.info(
            "Integrity verification: %d checks, %d errors, %d warnings",
            len(report.checks_run), len(report.errors), len(report.warnings),
        )
        return report

    # ── Checks ─────────────────────────────────────────────────────────────

    def check_contiguity(self, classification: ClassificationResult, report: IntegrityReport) -> None:
        report.begin("contiguity")
        for issue in verify_contiguity(classification.proposals):
            report.error(issue)

    def check_coverage(
        self,
        filtered: FilterResult,
        classification: ClassificationResult,
        report: IntegrityReport,
    ) -> None:
        report.begin("coverage")
        mapped: dict = defaultdict(set)
        for mapping in classification.key_mappings:
            mapped[mapping.key].add(mapping.proposal_id)
        proposals = {p.id: p for p in classification.proposals}

        for cert in filtered.conformant:
            proposal_ids = mapped.get(cert.year_key, set())
            if len(proposal_ids) != 1:
                report.error(
                    f"certificate {cert.certificate_id} maps to {len(proposal_ids)} proposals"
                )
                continue
            proposal = proposals.get(next(iter(proposal_ids)))
            if proposal is None:
                report.error(f"certificate {cert.certificate_id} maps to a missing proposal")
                continue
            if not proposal.in_scope(cert.product_code, cert.plan_code, self.wildcard):
                report.error(
                    f"certificate {cert.certificate_id} ({cert.product_code}/{cert.plan_code}) "
                    f"is outside the scope of {proposal.id}"
                )
            elif not proposal.covers_date(cert.effective_date):
                report.warn(
                    f"certificate {cert.certificate_id} dated {cert.effective_date} falls outside "
                    f"the normalized range of {proposal.id}"
                )

    def check_split_totals(self, hierarchies: HierarchyResult, report: IntegrityReport) -> None:
        report.begin("split_totals")
        for config in hierarchies.split_configurations:
            if config.total_split_percent != self.expected_split_total:
                report.warn(
                    f"split configuration {config.id} totals {config.total_split_percent}"
                )
            for participant in config.participants:
                if participant.hierarchy_id is None:
                    report.warn(
                        f"split participant {participant.id} has no hierarchy"
                    )

    def check_hierarchy_links(
        self,
        classification: ClassificationResult,
        hierarchies: HierarchyResult,
        report: IntegrityReport,
    ) -> None:
        report.begin("hierarchy_links")
        proposal_ids = {p.id for p in classification.proposals}
        for hierarchy in hierarchies.hierarchies:
            if hierarchy.proposal_id not in proposal_ids:
                report.error(
                    f"hierarchy {hierarchy.id} links to unknown proposal {hierarchy.proposal_id}"
                )

    def check_state_rules(self, hierarchies: HierarchyResult, report: IntegrityReport) -> None:
        report.begin("state_rules")
        for hierarchy in hierarchies.hierarchies:
            try:
                assert_exclusive(hierarchy.version.state_rules)
            except StateRuleConflictError as exc:
                report.error(str(exc))

    def check_exception_completeness(
        self,
        filtered: FilterResult,
        exceptions: ExceptionResult,
        report: IntegrityReport,
    ) -> None:
        report.begin("exception_completeness")
        seen = Counter(a.certificate_id for a in exceptions.assignments)
        for certificate_id, count in sorted(seen.items()):
            if count > 1:
                report.error(f"certificate {certificate_id} has {count} exception assignments")

        expected = {e.certificate.certificate_id for e in filtered.exceptions}
        flagged = set(filtered.flagged_groups)
        expected.update(c.certificate_id for c in filtered.conformant if c.group_id in flagged)
        for certificate_id in sorted(expected - set(seen)):
            report.error(f"certificate {certificate_id} is missing from exception assignments")
