"""Conformance Auditor.

Measures, per group, how many certificates resolve to exactly one Proposal
through their natural year key.  A certificate is conformant when it stayed
in the conformant pool and its key maps to exactly one Proposal; zero or
several mappings make it non-conformant.  The resulting classification is
advisory metadata for export gating and never fails the run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, Field

from janus.classification.schemas import ClassificationResult, FilterResult
from janus.config import settings
from janus.ingest.schemas import CertificateConfiguration, ExtractionResult, YearKey

logger = logging.getLogger("janus.validation.conformance")


class ConformanceClass(str, Enum):
    CONFORMANT = "Conformant"
    NEARLY_CONFORMANT = "Nearly-Conformant"
    NON_CONFORMANT = "Non-Conformant"


class ConformanceRecord(BaseModel):
    """Per-group conformance aggregate.

    Attributes
    ----------
    unmapped_certificates:
        Certificates whose key maps to no Proposal.
    ambiguous_certificates:
        Certificates whose key maps to more than one Proposal.
    signature_mismatches:
        Certificates mapped to a Proposal of a different ConfigSignature.
        Advisory; they still count as conformant.
    """

    group_id: str
    total_certificates: int
    conformant_certificates: int
    exception_certificates: int = 0
    unmapped_certificates: int = 0
    ambiguous_certificates: int = 0
    signature_mismatches: int = 0
    conformance_percent: Decimal
    classification: ConformanceClass
    is_flagged: bool = False


class ConformanceReport(BaseModel):
    records: list[ConformanceRecord] = Field(default_factory=list)
    classification_counts: dict[str, int] = Field(default_factory=dict)
    total_certificates: int = 0
    conformant_certificates: int = 0

    @property
    def overall_percent(self) -> Decimal:
        if not self.total_certificates:
            return Decimal("100.00")
        return _percent(self.conformant_certificates, self.total_certificates)


def _percent(part: int, whole: int) -> Decimal:
    return (Decimal(part) * 100 / Decimal(whole)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ConformanceAuditor:
    """Classifies groups as Conformant, Nearly-Conformant or Non-Conformant."""

    def __init__(self, *, nearly_threshold: float | None = None) -> None:
        threshold = nearly_threshold if nearly_threshold is not None else settings.nearly_conformant_threshold
        self.nearly_threshold = Decimal(str(threshold))

    def classify(self, conformant: int, total: int) -> ConformanceClass:
        """Classify on the exact ratio; the rounded percent is for display only."""
        if total == 0 or conformant == total:
            return ConformanceClass.CONFORMANT
        if Decimal(conformant) * 100 >= self.nearly_threshold * total:
            return ConformanceClass.NEARLY_CONFORMANT
        return ConformanceClass.NON_CONFORMANT

    def audit(
        self,
        extraction: ExtractionResult,
        filtered: FilterResult,
        classification: ClassificationResult,
    ) -> ConformanceReport:
        mapped: dict[YearKey, set[str]] = defaultdict(set)
        for mapping in classification.key_mappings:
            mapped[mapping.key].add(mapping.proposal_id)
        signatures = {p.id: p.config_signature for p in classification.proposals}
        exception_ids = {e.certificate.certificate_id for e in filtered.exceptions}
        flagged = set(filtered.flagged_groups)

        certs_by_group: dict[str, dict[str, CertificateConfiguration]] = defaultdict(dict)
        for cert in extraction.certificates:
            if cert.is_direct_to_consumer:
                continue
            certs_by_group[cert.group_id].setdefault(cert.certificate_id, cert)

        report = ConformanceReport()
        for group_id in sorted(certs_by_group):
            certs = certs_by_group[group_id].values()
            conformant = exceptions = unmapped = ambiguous = mismatches = 0
            for cert in certs:
                proposal_ids = mapped.get(cert.year_key, set())
                if len(proposal_ids) == 0:
                    unmapped += 1
                elif len(proposal_ids) > 1:
                    ambiguous += 1
                if cert.certificate_id in exception_ids:
                    exceptions += 1
                    continue
                if len(proposal_ids) == 1:
                    conformant += 1
                    (proposal_id,) = proposal_ids
                    if signatures.get(proposal_id) != cert.config_signature:
                        mismatches += 1

            total = len(certs)
            record = ConformanceRecord(
                group_id=group_id,
                total_certificates=total,
                conformant_certificates=conformant,
                exception_certificates=exceptions,
                unmapped_certificates=unmapped,
                ambiguous_certificates=ambiguous,
                signature_mismatches=mismatches,
                conformance_percent=_percent(conformant, total) if total else Decimal("100.00"),
                classification=self.classify(conformant, total),
                is_flagged=group_id in flagged,
            )
            report.records.append(record)
            report.total_certificates += total
            report.conformant_certificates += conformant

        counts = defaultdict(int)
        for record in report.records:
            counts[record.classification.value] += 1
        report.classification_counts = {c.value: counts[c.value] for c in ConformanceClass}
        logger.info(
            "Conformance: %d groups, %s%% of %d certificates conformant (%s)",
            len(report.records),
            report.overall_percent,
            report.total_certificates,
            ", ".join(f"{k}={v}" for k, v in report.classification_counts.items()),
        )
        return report
