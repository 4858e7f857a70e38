"""Snapshot store — atomic per-stage replacement of the staging tables.

Each stage group's output is written in a single transaction: the group's
tables are cleared child-first and the new rows inserted parent-first.  The
rows are built completely before the transaction opens, so a failing stage
never touches the tables and a failing write rolls back to the previous
output.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from janus.classification.schemas import ClassificationResult
from janus.db import (
    Base,
    BrokerAssignmentRow,
    ExceptionRuleLinkRow,
    GroupConformanceRow,
    HierarchyParticipantRow,
    HierarchyRow,
    HierarchySplitRow,
    HierarchyVersionRow,
    PolicyHierarchyAssignmentRow,
    PolicyHierarchyParticipantRow,
    PolicyRow,
    PremiumSplitParticipantRow,
    PremiumSplitVersionRow,
    ProposalKeyMappingRow,
    ProposalProductRow,
    ProposalRow,
    SplitDistributionRow,
    StateRuleRow,
    StateRuleStateRow,
    make_engine,
    make_session_factory,
)
from janus.hierarchy.schemas import HierarchyResult
from janus.ingest.schemas import ExtractionResult
from janus.resolution.schemas import ExceptionResult, ResolutionResult
from janus.validation.conformance import ConformanceReport

if TYPE_CHECKING:
    from janus.pipeline import MigrationResult

logger = logging.getLogger("janus.store")

#: Tables owned by each stage group, parents before children.
STAGE_TABLES: dict[str, list[type[Base]]] = {
    "proposals": [ProposalRow, ProposalProductRow, ProposalKeyMappingRow],
    "hierarchies": [
        HierarchyRow,
        HierarchyVersionRow,
        HierarchyParticipantRow,
        StateRuleRow,
        StateRuleStateRow,
        HierarchySplitRow,
        SplitDistributionRow,
        PremiumSplitVersionRow,
        PremiumSplitParticipantRow,
        BrokerAssignmentRow,
    ],
    "policies": [PolicyRow],
    "exceptions": [
        PolicyHierarchyAssignmentRow,
        PolicyHierarchyParticipantRow,
        ExceptionRuleLinkRow,
    ],
    "conformance": [GroupConformanceRow],
}


class SnapshotStore:
    """Writes pipeline output into the staging database.

    Parameters
    ----------
    db_engine:
        Optional pre-built async engine; created lazily from settings otherwise.
    """

    def __init__(self, db_engine: AsyncEngine | None = None, database_url: str | None = None) -> None:
        self._engine = db_engine
        self._database_url = database_url
        self._sessions = make_session_factory(db_engine) if db_engine is not None else None

    # ------------------------------------------------------------------
    # Engine access
    # ------------------------------------------------------------------

    async def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = make_engine(self._database_url)
            self._sessions = make_session_factory(self._engine)
        return self._engine

    async def close(self) -> None:
        """Dispose the database engine pool."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("SnapshotStore database engine disposed")

    async def create_schema(self) -> None:
        engine = await self._get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Staging schema ready (%d tables)", len(Base.metadata.tables))

    # ------------------------------------------------------------------
    # Stage replacement
    # ------------------------------------------------------------------

    async def replace_stage(self, stage: str, rows: dict[type[Base], Sequence[Base]]) -> None:
        """Atomically replace every table of *stage* with *rows*."""
        tables = STAGE_TABLES[stage]
        unknown = set(rows) - set(tables)
        if unknown:
            raise ValueError(
                f"stage '{stage}' does not own {', '.join(sorted(m.__tablename__ for m in unknown))}"
            )

        await self._get_engine()
        async with self._sessions() as session:
            async with session.begin():
                for model in reversed(tables):
                    await session.execute(delete(model))
                for model in tables:
                    batch = rows.get(model, ())
                    if batch:
                        session.add_all(batch)
                        await session.flush()
        logger.info(
            "Replaced stage %s: %s",
            stage,
            ", ".join(f"{m.__tablename__}={len(rows.get(m, ()))}" for m in tables),
        )

    async def replace_proposals(self, classification: ClassificationResult) -> None:
        await self.replace_stage("proposals", proposal_rows(classification))

    async def replace_hierarchies(self, hierarchies: HierarchyResult) -> None:
        await self.replace_stage("hierarchies", hierarchy_rows(hierarchies))

    async def replace_policies(self, extraction: ExtractionResult, resolution: ResolutionResult) -> None:
        await self.replace_stage("policies", policy_rows(extraction, resolution))

    async def replace_exceptions(self, exceptions: ExceptionResult) -> None:
        await self.replace_stage("exceptions", exception_rows(exceptions))

    async def replace_conformance(self, report: ConformanceReport) -> None:
        await self.replace_stage("conformance", conformance_rows(report))

    async def persist(self, result: "MigrationResult") -> None:
        """Replace every stage group from a finished in-memory run."""
        await self.replace_proposals(result.classification)
        await self.replace_hierarchies(result.hierarchies)
        await self.replace_policies(result.extraction, result.resolution)
        await self.replace_exceptions(result.exceptions)
        await self.replace_conformance(result.conformance)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def count(self, model: type[Base]) -> int:
        await self._get_engine()
        async with self._sessions() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()

    async def ids(self, model: type[Base]) -> list[str]:
        """Primary key values of *model*, sorted."""
        await self._get_engine()
        column = model.__mapper__.primary_key[0]
        async with self._sessions() as session:
            return list((await session.execute(select(column).order_by(column))).scalars())


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def proposal_rows(classification: ClassificationResult) -> dict[type[Base], list[Base]]:
    return {
        ProposalRow: [
            ProposalRow(
                id=p.id,
                group_id=p.group_id,
                tier=p.tier.value,
                config_signature=p.config_signature,
                product_codes=list(p.product_codes),
                plan_codes=list(p.plan_codes),
                year_from=p.year_from,
                year_to=p.year_to,
                effective_from=p.effective_from,
                effective_to=p.effective_to,
                lead_broker_id=p.lead_broker_id,
                lead_broker_name=p.lead_broker_name,
                certificate_count=p.certificate_count,
                source_proposal_ids=list(p.source_proposal_ids),
            )
            for p in classification.proposals
        ],
        ProposalProductRow: [
            ProposalProductRow(id=pp.id, proposal_id=pp.proposal_id, product_code=pp.product_code)
            for pp in classification.products
        ],
        ProposalKeyMappingRow: [
            ProposalKeyMappingRow(
                group_id=m.key.group_id,
                year=m.key.year,
                product_code=m.key.product_code,
                plan_code=m.key.plan_code,
                proposal_id=m.proposal_id,
                config_signature=m.config_signature,
            )
            for m in classification.key_mappings
        ],
    }


def hierarchy_rows(result: HierarchyResult) -> dict[type[Base], list[Base]]:
    rows: dict[type[Base], list[Base]] = {model: [] for model in STAGE_TABLES["hierarchies"]}
    for h in result.hierarchies:
        v = h.version
        rows[HierarchyRow].append(
            HierarchyRow(
                id=h.id,
                group_id=h.group_id,
                split_sequence=h.split_sequence,
                writing_broker_id=h.writing_broker_id,
                writing_broker_name=h.writing_broker_name,
                chain_signature=h.chain_signature,
                representative_date=h.representative_date,
                proposal_id=h.proposal_id,
                link_tier=h.link_tier.value,
                certificate_count=h.certificate_count,
            )
        )
        rows[HierarchyVersionRow].append(
            HierarchyVersionRow(
                id=v.id,
                hierarchy_id=h.id,
                version=v.version,
                effective_from=v.effective_from,
                effective_to=v.effective_to,
            )
        )
        rows[HierarchyParticipantRow].extend(
            HierarchyParticipantRow(**p.model_dump()) for p in v.participants
        )
        for rule in v.state_rules:
            rows[StateRuleRow].append(
                StateRuleRow(
                    id=rule.id,
                    hierarchy_version_id=rule.hierarchy_version_id,
                    is_catch_all=rule.is_catch_all,
                )
            )
            rows[StateRuleStateRow].extend(StateRuleStateRow(**s.model_dump()) for s in rule.states)
            for split in rule.splits:
                rows[HierarchySplitRow].append(
                    HierarchySplitRow(
                        id=split.id, state_rule_id=split.state_rule_id, product_code=split.product_code
                    )
                )
                rows[SplitDistributionRow].extend(
                    SplitDistributionRow(**d.model_dump()) for d in split.distributions
                )

    for config in result.split_configurations:
        rows[PremiumSplitVersionRow].append(
            PremiumSplitVersionRow(
                id=config.id,
                proposal_id=config.proposal_id,
                total_split_percent=config.total_split_percent,
            )
        )
        rows[PremiumSplitParticipantRow].extend(
            PremiumSplitParticipantRow(version_id=config.id, **p.model_dump())
            for p in config.participants
        )

    rows[BrokerAssignmentRow] = [
        BrokerAssignmentRow(**a.model_dump()) for a in result.broker_assignments
    ]
    return rows


def policy_rows(extraction: ExtractionResult, resolution: ResolutionResult) -> dict[type[Base], list[Base]]:
    assignments = resolution.by_certificate()
    rows = []
    for policy in extraction.policies:
        assignment = assignments.get(policy.certificate_id)
        rows.append(
            PolicyRow(
                id=policy.policy_id,
                certificate_id=policy.certificate_id,
                group_id=policy.group_id,
                effective_date=policy.effective_date,
                product_code=policy.product_code,
                plan_code=policy.plan_code,
                issued_state=policy.issued_state,
                writing_broker_id=policy.writing_broker_id,
                premium=policy.premium,
                status=policy.status,
                proposal_id=assignment.proposal_id if assignment else None,
                provenance=assignment.provenance.value if assignment else None,
                matched_year=assignment.matched_year if assignment else None,
            )
        )
    return {PolicyRow: rows}


def exception_rows(result: ExceptionResult) -> dict[type[Base], list[Base]]:
    assignments: list[Base] = []
    participants: list[Base] = []
    for a in result.assignments:
        assignments.append(
            PolicyHierarchyAssignmentRow(
                id=a.id,
                policy_id=a.policy_id,
                certificate_id=a.certificate_id,
                group_id=a.group_id,
                product_code=a.product_code,
                reason=a.reason.value,
                detail=a.detail[:200],
                writing_broker_id=a.writing_broker_id,
                total_split_percent=a.total_split_percent,
                hierarchy_id=a.hierarchy_id,
            )
        )
        participants.extend(PolicyHierarchyParticipantRow(**p.model_dump()) for p in a.participants)
    return {
        PolicyHierarchyAssignmentRow: assignments,
        PolicyHierarchyParticipantRow: participants,
        ExceptionRuleLinkRow: [ExceptionRuleLinkRow(**link.model_dump()) for link in result.rule_links],
    }


def conformance_rows(report: ConformanceReport) -> dict[type[Base], list[Base]]:
    return {
        GroupConformanceRow: [
            GroupConformanceRow(
                **record.model_dump(exclude={"classification"}),
                classification=record.classification.value,
            )
            for record in report.records
        ]
    }
