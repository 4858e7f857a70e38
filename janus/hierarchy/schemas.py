"""Pydantic models produced by the Hierarchy Builder."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from janus.classification.schemas import SplitConfiguration


class LinkTier(str, Enum):
    """How a Hierarchy found its Proposal."""

    WITHIN_RANGE = "WithinRange"
    OPEN_ENDED = "OpenEnded"
    LATEST = "Latest"


class HierarchyParticipant(BaseModel):
    id: str
    hierarchy_version_id: str
    level: int
    broker_id: str
    broker_name: Optional[str] = None
    split_percent: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    schedule_code: Optional[str] = None


class SplitDistribution(BaseModel):
    id: str
    hierarchy_split_id: str
    participant_id: str
    percentage: Decimal


class HierarchySplit(BaseModel):
    """Product-code link under a StateRule."""

    id: str
    state_rule_id: str
    product_code: str
    distributions: list[SplitDistribution] = Field(default_factory=list)


class StateRuleState(BaseModel):
    id: str
    state_rule_id: str
    state_code: str
    state_name: Optional[str] = None


class StateRule(BaseModel):
    """Jurisdiction applicability of a Hierarchy version.

    A catch-all rule has no ``states`` and applies everywhere.
    """

    id: str
    hierarchy_version_id: str
    is_catch_all: bool
    states: list[StateRuleState] = Field(default_factory=list)
    splits: list[HierarchySplit] = Field(default_factory=list)


class HierarchyVersion(BaseModel):
    id: str
    hierarchy_id: str
    version: int = 1
    effective_from: date
    effective_to: Optional[date] = None
    participants: list[HierarchyParticipant] = Field(default_factory=list)
    state_rules: list[StateRule] = Field(default_factory=list)


class Hierarchy(BaseModel):
    """Broker upline chain for one (group, split sequence, writing broker).

    Attributes
    ----------
    chain_signature:
        Content hash of the participant chain.  Informational only; two
        split sequences with equal chains still get separate Hierarchies.
    representative_date:
        Earliest effective date among the certificates observed for the triple.
    proposal_id:
        The single Proposal this Hierarchy is linked to.
    link_tier:
        Which match tier produced ``proposal_id``.
    """

    id: str
    group_id: str
    split_sequence: int
    writing_broker_id: str
    writing_broker_name: Optional[str] = None
    chain_signature: str
    representative_date: date
    proposal_id: str
    link_tier: LinkTier
    certificate_count: int = 0
    version: HierarchyVersion


class BrokerAssignment(BaseModel):
    """Commission redirect from a split broker to the broker actually paid."""

    id: str
    source_broker_id: str
    paid_broker_id: str
    effective_date: date
    certificate_id: str


class HierarchyResult(BaseModel):
    hierarchies: list[Hierarchy] = Field(default_factory=list)
    #: Proposal split configurations with participant hierarchy links filled in.
    split_configurations: list[SplitConfiguration] = Field(default_factory=list)
    broker_assignments: list[BrokerAssignment] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def index(self) -> dict[tuple[str, int, str], Hierarchy]:
        """Hierarchies keyed by (group, split sequence, writing broker)."""
        return {
            (h.group_id, h.split_sequence, h.writing_broker_id): h for h in self.hierarchies
        }
