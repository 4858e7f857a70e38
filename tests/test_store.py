"""Tests for the staging store, run against an on-disk SQLite database."""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from janus.db import (
    ExceptionRuleLinkRow,
    GroupConformanceRow,
    HierarchyRow,
    PolicyHierarchyAssignmentRow,
    PolicyRow,
    ProposalKeyMappingRow,
    ProposalRow,
    StateRuleRow,
)
from janus.pipeline import MigrationPipeline
from janus.store import SnapshotStore


@pytest_asyncio.fixture
async def store(tmp_path):
    store = SnapshotStore(database_url=f"sqlite+aiosqlite:///{tmp_path}/janus.db")
    await store.create_schema()
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_run_and_persist_writes_every_stage(store, g100_snapshot):
    result = await MigrationPipeline(max_workers=1).run_and_persist(g100_snapshot, store)

    assert await store.ids(ProposalRow) == ["P-G100-1"]
    assert await store.count(ProposalKeyMappingRow) == len(result.classification.key_mappings)
    assert await store.ids(HierarchyRow) == ["H-G100-1"]
    assert await store.ids(StateRuleRow) == ["SR-H-G100-1-V1-ALL"]
    assert await store.count(PolicyRow) == 4
    assert await store.count(PolicyHierarchyAssignmentRow) == 0
    assert await store.ids(GroupConformanceRow) == ["G100"]


@pytest.mark.asyncio
async def test_rerun_replaces_instead_of_appending(store, g100_snapshot):
    pipeline = MigrationPipeline(max_workers=1)
    await pipeline.run_and_persist(g100_snapshot, store)
    first = {model: await store.ids(model) for model in (ProposalRow, HierarchyRow, PolicyRow)}

    await pipeline.run_and_persist(g100_snapshot, store)
    second = {model: await store.ids(model) for model in (ProposalRow, HierarchyRow, PolicyRow)}

    assert first == second


@pytest.mark.asyncio
async def test_exception_rows_are_persisted(store, make_rows, make_snapshot):
    snapshot = make_snapshot(
        make_rows("C1", "G900", "2023-01-01", "A", splits=[(100, ("B1", "B2"))]),
        make_rows("C2", "G900", "2023-01-01", "A", splits=[(100, ("B3", "B2"))]),
        make_rows("C3", "G900", "2023-04-01", "B", splits=[(100, ("B1", "B2"))]),
    )
    result = await MigrationPipeline(max_workers=1).run_and_persist(snapshot, store)

    assert await store.ids(PolicyHierarchyAssignmentRow) == ["PHA-C1", "PHA-C2", "PHA-C3"]
    assert await store.count(ExceptionRuleLinkRow) == len(result.exceptions.rule_links)


@pytest.mark.asyncio
async def test_failed_replace_keeps_previous_rows(store, g100_snapshot):
    await MigrationPipeline(max_workers=1).run_and_persist(g100_snapshot, store)

    broken = GroupConformanceRow(
        group_id="G999",
        total_certificates=None,
        conformant_certificates=0,
        conformance_percent=Decimal("0.00"),
        classification="Non-Conformant",
    )
    with pytest.raises(IntegrityError):
        await store.replace_stage("conformance", {GroupConformanceRow: [broken]})

    assert await store.ids(GroupConformanceRow) == ["G100"]


@pytest.mark.asyncio
async def test_stage_rejects_tables_it_does_not_own(store):
    with pytest.raises(ValueError, match="janus_policies"):
        await store.replace_stage("proposals", {PolicyRow: []})


@pytest.mark.asyncio
async def test_persist_writes_an_in_memory_result(store, g200_snapshot):
    result = MigrationPipeline(max_workers=1).run(g200_snapshot)
    await store.persist(result)

    assert await store.ids(ProposalRow) == ["P-G200-1", "P-G200-2"]
    assert await store.ids(HierarchyRow) == ["H-G200-1", "H-G200-2"]
    assert await store.count(PolicyRow) == 3
