"""Pydantic models produced by the classification stage."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from janus.ingest.schemas import CertificateConfiguration, NaturalKey, YearKey


class ExceptionReason(str, Enum):
    """Why a certificate bypasses Proposal-based resolution.

    Members are declared in precedence order: when a certificate qualifies
    for several reasons the first one wins.
    """

    NO_GROUP = "NoGroup"
    SPLIT_MISMATCH = "SplitMismatch"
    MISSING_REFERENCE = "MissingReference"
    FLAGGED_NON_CONFORMANT = "FlaggedNonConformant"
    UNRESOLVED = "Unresolved"

    @property
    def precedence(self) -> int:
        return list(ExceptionReason).index(self)


class ClassificationTier(str, Enum):
    SIMPLE = "Simple"
    PLAN_DIFFERENTIATED = "PlanDifferentiated"
    YEAR_DIFFERENTIATED = "YearDifferentiated"
    GRANULAR = "Granular"
    CONSOLIDATED = "Consolidated"


# ---------------------------------------------------------------------------
# Non-Conformance Filter output
# ---------------------------------------------------------------------------


class ExceptionCertificate(BaseModel):
    """A certificate routed to the exception path with its reason."""

    certificate: CertificateConfiguration
    reason: ExceptionReason
    detail: str = ""


class NonConformantKey(BaseModel):
    """A natural key observed with more than one ConfigSignature."""

    key: NaturalKey
    signatures: list[str]
    certificate_ids: list[str]


class FilterResult(BaseModel):
    """Partition of the extracted certificates."""

    conformant: list[CertificateConfiguration] = Field(default_factory=list)
    exceptions: list[ExceptionCertificate] = Field(default_factory=list)
    non_conformant_keys: list[NonConformantKey] = Field(default_factory=list)
    flagged_groups: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


class SplitParticipant(BaseModel):
    """One split sequence of a Proposal's premium split."""

    id: str
    sequence: int
    broker_id: str
    broker_name: Optional[str] = None
    split_percent: Decimal
    hierarchy_id: Optional[str] = None


class SplitConfiguration(BaseModel):
    """PremiumSplitVersion of a Proposal."""

    id: str
    proposal_id: str
    participants: list[SplitParticipant] = Field(default_factory=list)

    @property
    def total_split_percent(self) -> Decimal:
        return sum((p.split_percent for p in self.participants), Decimal(0))


class Proposal(BaseModel):
    """A group-level commission agreement.

    Attributes
    ----------
    id:
        Deterministic id from group and ordinal (see :mod:`janus.ids`).
    product_codes / plan_codes:
        Scope; ``("*",)`` means every product (plan).
    year_from / year_to:
        Certificate years the Proposal was derived from.  ``year_to`` is
        ``None`` for open-ended Proposals.
    effective_from / effective_to:
        Agreement date range; ``effective_to`` ``None`` means open-ended.
    source_proposal_ids:
        Granular Proposals merged into a consolidated one.
    """

    id: str
    group_id: str
    tier: ClassificationTier
    config_signature: str
    product_codes: tuple[str, ...]
    plan_codes: tuple[str, ...]
    year_from: int
    year_to: Optional[int] = None
    effective_from: date
    effective_to: Optional[date] = None
    lead_broker_id: str
    lead_broker_name: Optional[str] = None
    certificate_count: int = 0
    source_proposal_ids: list[str] = Field(default_factory=list)
    split_configuration: SplitConfiguration

    @property
    def is_open_ended(self) -> bool:
        return self.effective_to is None

    def covers_date(self, on: date) -> bool:
        if on < self.effective_from:
            return False
        return self.effective_to is None or on <= self.effective_to

    def covers_year(self, year: int) -> bool:
        if year < self.year_from:
            return False
        return self.year_to is None or year <= self.year_to

    def has_wildcard_products(self, wildcard: str = "*") -> bool:
        return self.product_codes == (wildcard,)

    def in_scope(self, product_code: str, plan_code: str, wildcard: str = "*") -> bool:
        """True when (product, plan) falls inside this Proposal's scope."""
        products_ok = self.has_wildcard_products(wildcard) or product_code in self.product_codes
        plans_ok = self.plan_codes == (wildcard,) or plan_code in self.plan_codes
        return products_ok and plans_ok


class ProposalProduct(BaseModel):
    id: str
    proposal_id: str
    product_code: str


class ProposalKeyMapping(BaseModel):
    """Natural year-key to Proposal link used by exact-key resolution."""

    key: YearKey
    proposal_id: str
    config_signature: str


class ClassificationResult(BaseModel):
    """Proposals, key mappings and products for the conformant pool."""

    proposals: list[Proposal] = Field(default_factory=list)
    key_mappings: list[ProposalKeyMapping] = Field(default_factory=list)
    products: list[ProposalProduct] = Field(default_factory=list)
    tier_counts: dict[str, int] = Field(default_factory=dict)
    date_range_issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def proposals_by_group(self) -> dict[str, list[Proposal]]:
        grouped: dict[str, list[Proposal]] = {}
        for proposal in self.proposals:
            grouped.setdefault(proposal.group_id, []).append(proposal)
        return grouped
