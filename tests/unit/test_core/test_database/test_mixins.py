"""Unit tests for MaterializedPathMixin properties and predicates.

Properties are computed from loaded columns and never query the database,
so these tests use transient instances.
"""

from __future__ import annotations

import pytest
from sqlalchemy.dialects import sqlite

from materialized_tree.core.database.hierarchy.identifiers import new_node_id
from materialized_tree.core.database.hierarchy.path import MaterializedPath
from materialized_tree.core.database.tenancy import OwnerRef, TenantRef
from materialized_tree.core.exceptions import InvalidPathError
from materialized_tree.features.tree import TreeNode


def _sql(clause) -> str:
    return str(clause.compile(dialect=sqlite.dialect(), compile_kwargs={"literal_binds": True}))


@pytest.fixture
def chain() -> tuple[TreeNode, TreeNode, TreeNode]:
    """Transient root -> a -> b chain."""
    root_code, a_code, b_code = new_node_id(), new_node_id(), new_node_id()
    root = TreeNode(code=root_code, name="root", path="/", parent_code=None, tenant_type="org", tenant_id="acme")
    a = TreeNode(code=a_code, name="a", path=f"/{a_code}", parent_code=root_code, tenant_type="org", tenant_id="acme")
    b = TreeNode(
        code=b_code,
        name="b",
        path=f"/{a_code}/{b_code}",
        parent_code=a_code,
        tenant_type="org",
        tenant_id="acme",
    )
    return root, a, b


@pytest.mark.unit
class TestMaterializedPathMixin:
    """Test suite for MaterializedPathMixin properties."""

    def test_depth_and_segments(self, chain):
        root, a, b = chain

        assert root.depth == 0
        assert a.depth == 1
        assert b.depth == 2
        assert b.segments == [a.code, b.code]
        assert b.materialized_path == MaterializedPath(b.path)

    def test_is_root(self, chain):
        root, a, _ = chain

        assert root.is_root
        assert not a.is_root

    def test_tenant_property_round_trip(self, chain):
        _, a, _ = chain

        assert a.tenant == TenantRef("org", "acme")
        a.tenant = TenantRef("workspace", "w1")
        assert (a.tenant_type, a.tenant_id) == ("workspace", "w1")

    def test_owner_property(self, chain):
        _, a, _ = chain

        assert a.owner is None
        a.owner = OwnerRef("user", "u1")
        assert a.owner == OwnerRef("user", "u1")
        a.owner = None
        assert (a.owner_type, a.owner_id) == (None, None)

    def test_check_invariants_accepts_consistent_nodes(self, chain):
        root, a, b = chain

        root.check_invariants(None)
        a.check_invariants(root)
        b.check_invariants(a)

    def test_check_invariants_root_mismatch(self, chain):
        root, _, _ = chain
        root.parent_code = new_node_id()

        with pytest.raises(InvalidPathError):
            root.check_invariants(None)

    def test_check_invariants_non_root_requires_parent(self, chain):
        _, a, _ = chain

        with pytest.raises(InvalidPathError):
            a.check_invariants(None)

    def test_check_invariants_root_rejects_parent(self, chain):
        root, a, _ = chain

        with pytest.raises(InvalidPathError):
            root.check_invariants(a)

    def test_check_invariants_last_segment_mismatch(self, chain):
        root, a, _ = chain
        a.code = new_node_id()

        with pytest.raises(InvalidPathError, match="last segment"):
            a.check_invariants(root)

    def test_check_invariants_parent_code_mismatch(self, chain):
        root, a, _ = chain
        a.parent_code = new_node_id()

        with pytest.raises(InvalidPathError, match="parent_code"):
            a.check_invariants(root)

    def test_check_invariants_parent_path_mismatch(self, chain):
        root, a, b = chain
        stale = TreeNode(
            code=a.code,
            name="a",
            path=f"/{new_node_id()}/{a.code}",
            parent_code=a.code,
            tenant_type="org",
            tenant_id="acme",
        )

        with pytest.raises(InvalidPathError, match="parent path"):
            b.check_invariants(stale)
        b.check_invariants(a)

    def test_check_invariants_other_tenant_parent(self, chain):
        _, a, b = chain
        a.tenant = TenantRef(kind="org", id="globex")

        with pytest.raises(InvalidPathError, match="another tenant"):
            b.check_invariants(a)

    def test_repr(self, chain):
        _, a, _ = chain

        assert repr(a) == f"<TreeNode code={a.code!r} path={a.path!r} name='a'>"


@pytest.mark.unit
class TestSubtreeClause:
    """Test suite for the subtree LIKE predicate."""

    def test_descendants_only(self):
        sql = _sql(TreeNode.subtree_clause(MaterializedPath("/A")))

        assert sql == "tree_nodes.path LIKE '/A/%'"

    def test_include_self(self):
        sql = _sql(TreeNode.subtree_clause(MaterializedPath("/A"), include_self=True))

        assert "tree_nodes.path = '/A'" in sql
        assert "tree_nodes.path LIKE '/A/%'" in sql

    def test_root_excludes_itself(self):
        sql = _sql(TreeNode.subtree_clause(MaterializedPath.root()))

        assert "tree_nodes.path LIKE '/%'" in sql
        assert "tree_nodes.path != '/'" in sql
