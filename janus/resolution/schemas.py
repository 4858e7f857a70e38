"""Pydantic models for policy resolution and the exception path."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from janus.classification.schemas import ExceptionReason
from janus.ingest.schemas import Policy


class ProvenanceTag(str, Enum):
    """Resolver tier that produced a policy-to-Proposal assignment."""

    KEY_MAPPING = "KeyMapping"
    PRODUCT_WILDCARD = "ProductWildcard"
    YEAR_ADJACENT = "YearAdjacent"
    GROUP_FALLBACK = "GroupFallback"


class PolicyAssignment(BaseModel):
    policy_id: str
    certificate_id: str
    group_id: str
    proposal_id: str
    provenance: ProvenanceTag
    #: Year of the key mapping used, when it differs from the policy's own year.
    matched_year: Optional[int] = None


class ResolutionResult(BaseModel):
    assignments: list[PolicyAssignment] = Field(default_factory=list)
    unresolved: list[Policy] = Field(default_factory=list)
    skipped_policy_ids: list[str] = Field(default_factory=list)
    provenance_counts: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)

    def by_certificate(self) -> dict[str, PolicyAssignment]:
        return {a.certificate_id: a for a in self.assignments}


class PolicyHierarchyParticipant(BaseModel):
    """One verbatim (split sequence, level) row of an exception certificate."""

    id: str
    assignment_id: str
    split_sequence: int
    level: int
    broker_id: str
    broker_name: Optional[str] = None
    split_percent: Decimal
    schedule_code: Optional[str] = None
    commission_rate: Optional[Decimal] = None


class PolicyHierarchyAssignment(BaseModel):
    """Lossless exception record for a policy that bypasses Proposal sharing.

    Attributes
    ----------
    reason:
        Highest-precedence reason the certificate qualified for.
    hierarchy_id:
        Shared Hierarchy of the certificate's first split, when one exists.
    total_split_percent:
        Sum of the certificate's per-sequence split percents, as found.
    """

    id: str
    policy_id: str
    certificate_id: str
    group_id: str
    product_code: str
    reason: ExceptionReason
    detail: str = ""
    writing_broker_id: str
    total_split_percent: Decimal
    hierarchy_id: Optional[str] = None
    participants: list[PolicyHierarchyParticipant] = Field(default_factory=list)


class ExceptionRuleLink(BaseModel):
    """Product link from an exception assignment to a catch-all StateRule."""

    id: str
    assignment_id: str
    state_rule_id: str
    product_code: str


class ExceptionResult(BaseModel):
    assignments: list[PolicyHierarchyAssignment] = Field(default_factory=list)
    rule_links: list[ExceptionRuleLink] = Field(default_factory=list)
    reason_counts: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
