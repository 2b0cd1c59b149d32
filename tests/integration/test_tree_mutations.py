"""Integration tests for TreeService mutations against a SQLite database.

Covers node creation, moves, deletes, batch creation, updates, lazy root
creation and tenant isolation. Every mutation runs in its own transaction,
so failure cases also assert that the stored tree is unchanged.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select, text

from materialized_tree.core.database import create_schema, drop_schema
from materialized_tree.core.database.hierarchy.identifiers import new_node_id
from materialized_tree.core.exceptions import (
    HasDescendantsError,
    InvalidMoveError,
    InvalidPathError,
    ParentNotFoundError,
    UnauthorizedError,
)
from materialized_tree.core.settings import TableConfig, TreeSettings
from materialized_tree.features.tree import NodeCreate, NodeUpdate, TreeNode, TreeService, build_tree_model

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


async def _paths(service: TreeService, tenant) -> list[str]:
    return [node.path for node in await service.get_descendants(tenant, "/")]


@pytest.fixture
async def abc(service, tenant):
    """Tree with A and B under the root and C under A."""
    a = await service.create_node(tenant, "A", "/")
    b = await service.create_node(tenant, "B", "/")
    c = await service.create_node(tenant, "C", a.path)
    return a, b, c


# ============================================================================
# Root and creation
# ============================================================================


class TestRootNode:
    """Test suite for lazy root creation."""

    async def test_root_created_on_first_access(self, service, tenant):
        root = await service.get_root_node(tenant)

        assert root.path == "/"
        assert root.name == "root"
        assert root.parent_code is None
        assert root.meta == {"is_root": True}
        assert root.tenant == tenant

    async def test_root_is_reused(self, service, tenant):
        first = await service.get_root_node(tenant)
        second = await service.get_root_node(tenant)

        assert first.code == second.code

    async def test_root_name_from_settings(self, session_factory, tenant):
        service = TreeService(session_factory, settings=TreeSettings(root_name="Company"))

        root = await service.get_root_node(tenant)

        assert root.name == "Company"

    async def test_concurrent_root_creation_converges(self, service, session_factory, tree_settings, tenant, monkeypatch):
        rival = TreeService(session_factory, settings=tree_settings)
        original = service.repository.get_by_path
        winners = []

        async def stale_first_read(session, scope, path):
            if not winners:
                # Another writer creates the root between our read and our insert
                winners.append(await rival.get_root_node(scope))
                return None
            return await original(session, scope, path)

        monkeypatch.setattr(service.repository, "get_by_path", stale_first_read)

        root = await service.get_root_node(tenant)

        assert root.code == winners[0].code
        async with session_factory() as session:
            live_roots = await session.scalar(
                select(func.count()).select_from(TreeNode).where(TreeNode.path == "/", TreeNode.deleted_at.is_(None))
            )
        assert live_roots == 1


class TestCreateNode:
    """Test suite for create_node."""

    async def test_create_under_root(self, service, tenant):
        root = await service.get_root_node(tenant)

        node = await service.create_node(tenant, "Engineering", "/")

        assert node.path == f"/{node.code}"
        assert node.parent_code == root.code
        assert node.depth == 1
        node.check_invariants(root)

    async def test_create_nested(self, service, tenant, abc):
        a, _, c = abc

        assert c.path == f"{a.path}/{c.code}"
        assert c.parent_code == a.code
        assert c.depth == 2

    async def test_owner_and_metadata_persisted(self, service, tenant, owner):
        node = await service.create_node(tenant, "Docs", "/", owner=owner, metadata={"color": "blue"})

        stored = await service.get_node_by_code(tenant, node.code)

        assert stored.owner == owner
        assert stored.meta == {"color": "blue"}

    async def test_missing_parent(self, service, tenant):
        with pytest.raises(ParentNotFoundError):
            await service.create_node(tenant, "Orphan", f"/{new_node_id()}")

        assert await _paths(service, tenant) == []

    @pytest.mark.parametrize("parent_path", ["", "relative", "/A/", "/not-a-node-id"])
    async def test_invalid_parent_path(self, service, tenant, parent_path):
        with pytest.raises(InvalidPathError):
            await service.create_node(tenant, "Bad", parent_path)


# ============================================================================
# Moves
# ============================================================================


class TestMoveNode:
    """Test suite for move_node."""

    async def test_move_leaf(self, service, tenant, abc):
        a, b, c = abc

        moved = await service.move_node(tenant, c.path, b.path)

        assert moved.code == c.code
        assert moved.path == f"{b.path}/{c.code}"
        assert moved.parent_code == b.code
        assert [n.code for n in await service.get_children(tenant, b.code)] == [c.code]
        assert await service.get_children(tenant, a.code) == []

    async def test_move_rewrites_whole_subtree(self, service, tenant):
        a = await service.create_node(tenant, "A", "/")
        b = await service.create_node(tenant, "B", a.path)
        c = await service.create_node(tenant, "C", b.path)
        d = await service.create_node(tenant, "D", c.path)

        await service.move_node(tenant, b.path, "/")

        assert await _paths(service, tenant) == sorted(
            [a.path, f"/{b.code}", f"/{b.code}/{c.code}", f"/{b.code}/{c.code}/{d.code}"]
        )
        stored_d = await service.get_node_by_code(tenant, d.code)
        assert stored_d.parent_code == c.code
        assert stored_d.depth == 3
        assert await service.get_descendants(tenant, a.path) == []

    async def test_move_to_current_parent_is_noop(self, service, tenant, abc):
        a, _, c = abc
        before = await _paths(service, tenant)

        moved = await service.move_node(tenant, c.path, a.path)

        assert moved.path == c.path
        assert await _paths(service, tenant) == before

    async def test_move_root_rejected(self, service, tenant, abc):
        _, b, _ = abc

        with pytest.raises(InvalidMoveError):
            await service.move_node(tenant, "/", b.path)

    async def test_move_under_itself_rejected(self, service, tenant, abc):
        a, _, c = abc
        before = await _paths(service, tenant)

        with pytest.raises(InvalidMoveError):
            await service.move_node(tenant, a.path, a.path)
        with pytest.raises(InvalidMoveError):
            await service.move_node(tenant, a.path, c.path)

        assert await _paths(service, tenant) == before

    async def test_move_to_missing_parent(self, service, tenant, abc):
        _, _, c = abc
        before = await _paths(service, tenant)

        with pytest.raises(ParentNotFoundError):
            await service.move_node(tenant, c.path, f"/{new_node_id()}")

        assert await _paths(service, tenant) == before

    async def test_move_missing_node(self, service, tenant, abc):
        _, b, _ = abc

        with pytest.raises(UnauthorizedError):
            await service.move_node(tenant, f"/{new_node_id()}", b.path)

    async def test_failed_move_rolls_back(self, service, tenant, abc, monkeypatch):
        _, b, c = abc
        before = await _paths(service, tenant)

        async def failing_set_parent(*args, **kwargs):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(service.repository, "set_parent", failing_set_parent)

        with pytest.raises(RuntimeError, match="connection lost"):
            await service.move_node(tenant, c.path, b.path)

        assert await _paths(service, tenant) == before
        assert (await service.get_node_by_code(tenant, c.code)).path == c.path

    async def test_move_rejects_parent_row_off_target_path(self, service, tenant, abc, monkeypatch):
        a, b, c = abc
        before = await _paths(service, tenant)
        original = service.repository.get_by_path

        async def wrong_parent(session, scope, path):
            return await original(session, scope, a.path)

        monkeypatch.setattr(service.repository, "get_by_path", wrong_parent)

        with pytest.raises(InvalidPathError, match="parent path"):
            await service.move_node(tenant, c.path, b.path)

        assert await _paths(service, tenant) == before


# ============================================================================
# Deletes
# ============================================================================


class TestDeleteNode:
    """Test suite for delete_node."""

    async def test_delete_leaf(self, service, tenant, abc):
        a, b, c = abc

        assert await service.delete_node(tenant, c.path) == 1

        assert await _paths(service, tenant) == sorted([a.path, b.path])
        with pytest.raises(UnauthorizedError):
            await service.get_node_by_path(tenant, c.path)

    async def test_delete_with_descendants_requires_cascade(self, service, tenant, abc):
        a, _, _ = abc
        before = await _paths(service, tenant)

        with pytest.raises(HasDescendantsError) as exc_info:
            await service.delete_node(tenant, a.path)

        assert exc_info.value.extra["descendants"] == 1
        assert await _paths(service, tenant) == before

    async def test_cascade_delete(self, service, tenant, abc):
        a, b, _ = abc

        assert await service.delete_node(tenant, a.path, cascade=True) == 2

        assert await _paths(service, tenant) == [b.path]

    async def test_soft_delete_markers(self, service, session_factory, tenant, abc):
        a, _, c = abc

        await service.delete_node(tenant, a.path, cascade=True, deleted_by="user-1")

        async with session_factory() as session:
            rows = (await session.scalars(select(TreeNode).where(TreeNode.code.in_([a.code, c.code])))).all()
        assert len(rows) == 2
        assert all(row.is_deleted and row.deleted_by == "user-1" for row in rows)

    async def test_hard_delete(self, session_factory, tenant):
        service = TreeService(session_factory, settings=TreeSettings(soft_delete=False))
        a = await service.create_node(tenant, "A", "/")
        await service.create_node(tenant, "C", a.path)

        assert await service.delete_node(tenant, a.path, cascade=True) == 2

        async with session_factory() as session:
            remaining = await session.scalar(select(func.count()).select_from(TreeNode))
        assert remaining == 1

    async def test_delete_missing_node(self, service, tenant):
        with pytest.raises(UnauthorizedError):
            await service.delete_node(tenant, f"/{new_node_id()}")

    async def test_root_can_be_recreated_after_delete(self, service, tenant, abc):
        old_root = await service.get_root_node(tenant)

        with pytest.raises(HasDescendantsError):
            await service.delete_node(tenant, "/")
        assert await service.delete_node(tenant, "/", cascade=True) == 4

        new_root = await service.get_root_node(tenant)
        assert new_root.code != old_root.code
        assert await _paths(service, tenant) == []


# ============================================================================
# Batch creation
# ============================================================================


class TestBatchCreate:
    """Test suite for batch_create_nodes."""

    async def test_mixed_parents(self, service, tenant, owner):
        root = await service.get_root_node(tenant)
        a = await service.create_node(tenant, "A", "/")

        nodes = await service.batch_create_nodes(
            tenant,
            [
                NodeCreate(name="X", parent_path="/"),
                NodeCreate(name="Y", parent_path=a.path, owner=owner),
                NodeCreate(name="Z", parent_path=a.path, metadata={"k": 1}),
            ],
        )

        assert [n.name for n in nodes] == ["X", "Y", "Z"]
        assert nodes[0].parent_code == root.code
        assert nodes[1].path == f"{a.path}/{nodes[1].code}"
        assert nodes[1].owner == owner
        assert len(await service.get_children(tenant, a.code)) == 2

    async def test_batch_creates_root_lazily(self, service, tenant):
        nodes = await service.batch_create_nodes(tenant, [NodeCreate(name="X")])

        root = await service.get_root_node(tenant)
        assert nodes[0].parent_code == root.code

    async def test_missing_parent_inserts_nothing(self, service, tenant):
        a = await service.create_node(tenant, "A", "/")
        ghost = f"/{new_node_id()}"

        with pytest.raises(ParentNotFoundError) as exc_info:
            await service.batch_create_nodes(
                tenant,
                [NodeCreate(name="X", parent_path=a.path), NodeCreate(name="Y", parent_path=ghost)],
            )

        assert exc_info.value.extra["missing"] == [ghost]
        assert await _paths(service, tenant) == [a.path]

    async def test_chunked_inserts(self, session_factory, tenant):
        service = TreeService(session_factory, settings=TreeSettings(batch_size=2))

        nodes = await service.batch_create_nodes(tenant, [NodeCreate(name=f"n{i}") for i in range(5)])

        assert len({n.code for n in nodes}) == 5
        assert len(await _paths(service, tenant)) == 5

    async def test_empty_batch(self, service, tenant):
        assert await service.batch_create_nodes(tenant, []) == []


# ============================================================================
# Updates
# ============================================================================


class TestUpdateNode:
    """Test suite for update_node."""

    async def test_update_fields(self, service, tenant, owner):
        node = await service.create_node(tenant, "Old", "/")

        updated = await service.update_node(tenant, node.code, {"name": "New", "owner": owner, "metadata": {"a": 1}})

        stored = await service.get_node_by_code(tenant, node.code)
        assert updated.name == stored.name == "New"
        assert stored.owner == owner
        assert stored.meta == {"a": 1}
        assert stored.path == node.path

    async def test_only_set_fields_change(self, service, tenant, owner):
        node = await service.create_node(tenant, "Keep", "/", owner=owner)

        await service.update_node(tenant, node.code, NodeUpdate(metadata={"b": 2}))

        stored = await service.get_node_by_code(tenant, node.code)
        assert stored.name == "Keep"
        assert stored.owner == owner

    async def test_clear_owner(self, service, tenant, owner):
        node = await service.create_node(tenant, "Owned", "/", owner=owner)

        await service.update_node(tenant, node.code, NodeUpdate(owner=None))

        assert (await service.get_node_by_code(tenant, node.code)).owner is None

    @pytest.mark.parametrize("field", ["path", "parent_code", "code", "tenant_id"])
    async def test_protected_fields_rejected(self, service, tenant, field):
        node = await service.create_node(tenant, "A", "/")

        with pytest.raises(ValidationError):
            await service.update_node(tenant, node.code, {field: "x"})

        stored = await service.get_node_by_code(tenant, node.code)
        assert (stored.path, stored.parent_code) == (node.path, node.parent_code)

    async def test_update_missing_node(self, service, tenant):
        with pytest.raises(UnauthorizedError):
            await service.update_node(tenant, new_node_id(), {"name": "x"})


# ============================================================================
# Caller-owned transactions
# ============================================================================


class TestCallerTransaction:
    """Test suite for services bound to a caller's session."""

    async def test_caller_rollback_discards_tree_changes(self, service, session_factory, tenant):
        async with session_factory() as session:
            bound = service.with_session(session)
            node = await bound.create_node(tenant, "Draft", "/")

            assert session.in_transaction()
            assert [n.code for n in await bound.get_descendants(tenant, "/")] == [node.code]

            await session.rollback()

        async with session_factory() as session:
            rows = await session.scalar(select(func.count()).select_from(TreeNode))
        assert rows == 0

    async def test_caller_commit_keeps_tree_changes(self, service, session_factory, tenant):
        async with session_factory() as session, session.begin():
            bound = service.with_session(session)
            team = await bound.create_node(tenant, "Team", "/")
            squad = await bound.create_node(tenant, "Squad", team.path)

        assert await _paths(service, tenant) == [team.path, squad.path]
        assert (await service.get_node_by_code(tenant, squad.code)).parent_code == team.code

    async def test_error_in_caller_block_rolls_back_move(self, service, session_factory, tenant, abc):
        _, b, c = abc
        before = await _paths(service, tenant)

        with pytest.raises(RuntimeError, match="quota exceeded"):
            async with session_factory() as session, session.begin():
                moved = await service.with_session(session).move_node(tenant, c.path, b.path)
                assert moved.parent_code == b.code
                raise RuntimeError("quota exceeded")

        assert await _paths(service, tenant) == before

    async def test_delete_and_create_share_one_transaction(self, service, session_factory, tenant, abc):
        a, b, _ = abc

        async with session_factory() as session, session.begin():
            bound = service.with_session(session)
            await bound.delete_node(tenant, a.path, cascade=True)
            replacement = await bound.create_node(tenant, "A2", b.path)

        assert await _paths(service, tenant) == [b.path, replacement.path]

    async def test_bound_service_shares_configuration(self, service, session_factory):
        async with session_factory() as session:
            bound = service.with_session(session)

        assert bound is not service
        assert bound.model is service.model
        assert bound.settings is service.settings


# ============================================================================
# Tenant isolation
# ============================================================================


class TestTenantIsolation:
    """Test suite for tenant scoping of every operation."""

    async def test_roots_are_per_tenant(self, service, tenant, other_tenant):
        root = await service.get_root_node(tenant)
        other_root = await service.get_root_node(other_tenant)

        assert root.code != other_root.code
        assert other_root.tenant == other_tenant

    async def test_other_tenant_cannot_see_nodes(self, service, tenant, other_tenant, abc):
        a, _, c = abc

        with pytest.raises(UnauthorizedError):
            await service.get_node_by_path(other_tenant, a.path)
        with pytest.raises(UnauthorizedError):
            await service.get_node_by_code(other_tenant, a.code)
        with pytest.raises(UnauthorizedError):
            await service.get_node_by_id(other_tenant, a.id)
        assert await service.get_descendants(other_tenant, "/") == []
        assert await service.get_ancestors(other_tenant, c.path) == []
        assert (await service.search_nodes(other_tenant, "A")).total == 0

    async def test_other_tenant_cannot_mutate_nodes(self, service, tenant, other_tenant, abc):
        a, b, c = abc
        before = await _paths(service, tenant)

        with pytest.raises(UnauthorizedError):
            await service.move_node(other_tenant, c.path, "/")
        with pytest.raises(ParentNotFoundError):
            await service.create_node(other_tenant, "X", a.path)
        with pytest.raises(UnauthorizedError):
            await service.delete_node(other_tenant, b.path)
        with pytest.raises(UnauthorizedError):
            await service.update_node(other_tenant, b.code, {"name": "stolen"})

        assert await _paths(service, tenant) == before


# ============================================================================
# Custom table configuration
# ============================================================================

DEPARTMENTS = TableConfig(
    table_name="departments",
    path_column="dpath",
    tenant_id_column="company_id",
    tenant_type_column="company_kind",
)


class TestCustomTable:
    """Test suite for services over a table with configured names."""

    @pytest.fixture
    async def dept_service(self, db_engine, session_factory):
        model = build_tree_model(DEPARTMENTS)
        await create_schema(db_engine, model)
        return TreeService(session_factory, model=model)

    async def test_model_built_from_settings(self, session_factory):
        settings = TreeSettings(
            table_name="departments",
            path_column="dpath",
            tenant_id_column="company_id",
            tenant_type_column="company_kind",
        )

        service = TreeService(session_factory, settings=settings)

        assert service.model is build_tree_model(DEPARTMENTS)

    async def test_operations_use_configured_columns(self, dept_service, session_factory, tenant):
        a = await dept_service.create_node(tenant, "A", "/")
        b = await dept_service.create_node(tenant, "B", a.path)
        await dept_service.move_node(tenant, b.path, "/")

        async with session_factory() as session:
            rows = (
                await session.execute(text("SELECT dpath, company_id FROM departments ORDER BY dpath"))
            ).all()
        assert [tuple(row) for row in rows] == [("/", "acme"), (f"/{a.code}", "acme"), (f"/{b.code}", "acme")]

        async with session_factory() as session:
            default_rows = await session.scalar(select(func.count()).select_from(TreeNode))
        assert default_rows == 0

    async def test_schema_helpers_are_idempotent(self, db_engine, session_factory):
        model = build_tree_model(DEPARTMENTS)

        await create_schema(db_engine, model)
        await create_schema(db_engine, model)
        await drop_schema(db_engine, model)
        await drop_schema(db_engine, model)

        async with session_factory() as session:
            tables = (await session.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))).scalars().all()
        assert "departments" not in tables
        assert "tree_nodes" in tables
