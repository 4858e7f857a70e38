"""SQLAlchemy ORM models for the Janus staging tables.

Tables are grouped by the pipeline stage that owns them.  Foreign keys only
point inside a stage group, so each group can be deleted and re-inserted on
its own; references across groups are plain indexed id columns.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from janus.config import settings

JsonList = JSON().with_variant(JSONB(), "postgresql")


# ── Engine & Session ──────────────────────────────────────────────

def make_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine; pool sizing applies to server databases only."""
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(url, echo=False, pool_size=10, max_overflow=20)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


# ── Proposals ─────────────────────────────────────────────────────

class ProposalRow(Base):
    __tablename__ = "janus_proposals"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    tier: Mapped[str] = mapped_column(String(30), nullable=False)
    config_signature: Mapped[str] = mapped_column(String(64), nullable=False)
    product_codes: Mapped[list] = mapped_column(JsonList, nullable=False)
    plan_codes: Mapped[list] = mapped_column(JsonList, nullable=False)
    year_from: Mapped[int] = mapped_column(Integer, nullable=False)
    year_to: Mapped[Optional[int]] = mapped_column(Integer)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date)
    lead_broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    lead_broker_name: Mapped[Optional[str]] = mapped_column(String(300))
    certificate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_proposal_ids: Mapped[list] = mapped_column(JsonList, nullable=False, default=list)


class ProposalProductRow(Base):
    __tablename__ = "janus_proposal_products"

    id: Mapped[str] = mapped_column(String(150), primary_key=True)
    proposal_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("janus_proposals.id", ondelete="CASCADE"), nullable=False
    )
    product_code: Mapped[str] = mapped_column(String(50), nullable=False)


class ProposalKeyMappingRow(Base):
    __tablename__ = "janus_proposal_key_mappings"

    group_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    plan_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    proposal_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("janus_proposals.id", ondelete="CASCADE"), nullable=False
    )
    config_signature: Mapped[str] = mapped_column(String(64), nullable=False)


# ── Hierarchies ───────────────────────────────────────────────────

class HierarchyRow(Base):
    __tablename__ = "janus_hierarchies"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    split_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    writing_broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    writing_broker_name: Mapped[Optional[str]] = mapped_column(String(300))
    chain_signature: Mapped[str] = mapped_column(String(64), nullable=False)
    representative_date: Mapped[date] = mapped_column(Date, nullable=False)
    proposal_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    link_tier: Mapped[str] = mapped_column(String(20), nullable=False)
    certificate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class HierarchyVersionRow(Base):
    __tablename__ = "janus_hierarchy_versions"

    id: Mapped[str] = mapped_column(String(110), primary_key=True)
    hierarchy_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("janus_hierarchies.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date)


class HierarchyParticipantRow(Base):
    __tablename__ = "janus_hierarchy_participants"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    hierarchy_version_id: Mapped[str] = mapped_column(
        String(110), ForeignKey("janus_hierarchy_versions.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    broker_name: Mapped[Optional[str]] = mapped_column(String(300))
    split_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 4))
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 4))
    schedule_code: Mapped[Optional[str]] = mapped_column(String(50))


class StateRuleRow(Base):
    __tablename__ = "janus_state_rules"

    id: Mapped[str] = mapped_column(String(150), primary_key=True)
    hierarchy_version_id: Mapped[str] = mapped_column(
        String(110), ForeignKey("janus_hierarchy_versions.id", ondelete="CASCADE"), nullable=False
    )
    is_catch_all: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class StateRuleStateRow(Base):
    __tablename__ = "janus_state_rule_states"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    state_rule_id: Mapped[str] = mapped_column(
        String(150), ForeignKey("janus_state_rules.id", ondelete="CASCADE"), nullable=False
    )
    state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    state_name: Mapped[Optional[str]] = mapped_column(String(100))


class HierarchySplitRow(Base):
    __tablename__ = "janus_hierarchy_splits"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    state_rule_id: Mapped[str] = mapped_column(
        String(150), ForeignKey("janus_state_rules.id", ondelete="CASCADE"), nullable=False
    )
    product_code: Mapped[str] = mapped_column(String(50), nullable=False)


class SplitDistributionRow(Base):
    __tablename__ = "janus_split_distributions"

    id: Mapped[str] = mapped_column(String(400), primary_key=True)
    hierarchy_split_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("janus_hierarchy_splits.id", ondelete="CASCADE"), nullable=False
    )
    participant_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("janus_hierarchy_participants.id", ondelete="CASCADE"), nullable=False
    )
    percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)


class PremiumSplitVersionRow(Base):
    __tablename__ = "janus_premium_split_versions"

    id: Mapped[str] = mapped_column(String(110), primary_key=True)
    proposal_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    total_split_percent: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)


class PremiumSplitParticipantRow(Base):
    __tablename__ = "janus_premium_split_participants"

    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    version_id: Mapped[str] = mapped_column(
        String(110), ForeignKey("janus_premium_split_versions.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    broker_name: Mapped[Optional[str]] = mapped_column(String(300))
    split_percent: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    hierarchy_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("janus_hierarchies.id", ondelete="SET NULL")
    )


class BrokerAssignmentRow(Base):
    __tablename__ = "janus_broker_assignments"

    id: Mapped[str] = mapped_column(String(60), primary_key=True)
    source_broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    paid_broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    certificate_id: Mapped[str] = mapped_column(String(50), nullable=False)


# ── Policies ──────────────────────────────────────────────────────

class PolicyRow(Base):
    __tablename__ = "janus_policies"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    certificate_id: Mapped[str] = mapped_column(String(50), nullable=False)
    group_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    product_code: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_code: Mapped[str] = mapped_column(String(50), nullable=False)
    issued_state: Mapped[Optional[str]] = mapped_column(String(2))
    writing_broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    premium: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    proposal_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    provenance: Mapped[Optional[str]] = mapped_column(String(20))
    matched_year: Mapped[Optional[int]] = mapped_column(Integer)


# ── Exceptions ────────────────────────────────────────────────────

class PolicyHierarchyAssignmentRow(Base):
    __tablename__ = "janus_policy_hierarchy_assignments"

    id: Mapped[str] = mapped_column(String(60), primary_key=True)
    policy_id: Mapped[str] = mapped_column(String(50), nullable=False)
    certificate_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    group_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    product_code: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    detail: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    writing_broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    total_split_percent: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    hierarchy_id: Mapped[Optional[str]] = mapped_column(String(100))


class PolicyHierarchyParticipantRow(Base):
    __tablename__ = "janus_policy_hierarchy_participants"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    assignment_id: Mapped[str] = mapped_column(
        String(60),
        ForeignKey("janus_policy_hierarchy_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    split_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    broker_id: Mapped[str] = mapped_column(String(50), nullable=False)
    broker_name: Mapped[Optional[str]] = mapped_column(String(300))
    split_percent: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    schedule_code: Mapped[Optional[str]] = mapped_column(String(50))
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 4))


class ExceptionRuleLinkRow(Base):
    __tablename__ = "janus_exception_rule_links"

    id: Mapped[str] = mapped_column(String(220), primary_key=True)
    assignment_id: Mapped[str] = mapped_column(
        String(60),
        ForeignKey("janus_policy_hierarchy_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    state_rule_id: Mapped[str] = mapped_column(String(150), nullable=False)
    product_code: Mapped[str] = mapped_column(String(50), nullable=False)


# ── Conformance ───────────────────────────────────────────────────

class GroupConformanceRow(Base):
    __tablename__ = "janus_group_conformance"

    group_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    total_certificates: Mapped[int] = mapped_column(Integer, nullable=False)
    conformant_certificates: Mapped[int] = mapped_column(Integer, nullable=False)
    exception_certificates: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmapped_certificates: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ambiguous_certificates: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    signature_mismatches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conformance_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    is_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
