"""
Tests for the query engine and its read models.
"""

import pytest

from actiongraph.core.errors import NotFoundError, ValidationError
from actiongraph.query.engine import ActionQueryEngine


class TestBasicQueries:
    def test_get_action(self, graph, product_tree):
        assert graph.get_action(product_tree["ads"].id).title == "Launch Ads"

    def test_get_missing(self, graph):
        with pytest.raises(NotFoundError):
            graph.get_action("missing")

    def test_list_actions(self, graph, product_tree):
        graph.complete_action(product_tree["ads"].id)

        assert len(graph.list_actions()) == 5
        assert [a.title for a in graph.list_actions(done=True)] == ["Launch Ads"]
        assert [a.title for a in graph.list_actions(limit=2, offset=1)] == [
            "Marketing",
            "Launch Ads",
        ]

    def test_list_actions_rejects_negative_paging(self, graph):
        with pytest.raises(ValidationError):
            graph.list_actions(limit=-1)
        with pytest.raises(ValidationError):
            graph.list_actions(offset=-1)

    def test_count_actions(self, store, product_tree):
        engine = ActionQueryEngine(store)
        assert engine.count_actions() == 5
        assert engine.count_actions(done=True) == 0

    def test_family_edges(self, graph, product_tree):
        """Should return the parent edge first, then child edges."""
        marketing = product_tree["marketing"]
        edges = graph.list_family_edges(marketing.id)
        assert [(e.src, e.dst) for e in edges] == [
            (product_tree["product"].id, marketing.id),
            (marketing.id, product_tree["ads"].id),
            (marketing.id, product_tree["copy"].id),
        ]

    def test_ancestor_chain(self, graph, product_tree):
        """Should list ancestors root-first, without the action itself."""
        chain = graph.get_ancestor_chain(product_tree["ads"].id)
        assert [a.title for a in chain] == ["Product", "Marketing"]
        assert graph.get_ancestor_chain(product_tree["product"].id) == []


class TestActionDetail:
    def test_detail(self, graph, product_tree):
        """Should include parent chain, children, prerequisites and dependents."""
        marketing = product_tree["marketing"]
        engineering = product_tree["engineering"]
        graph.add_dependency(marketing.id, engineering.id)

        detail = graph.get_action_detail(marketing.id)

        assert detail.action.id == marketing.id
        assert detail.parent_id == product_tree["product"].id
        assert [a.title for a in detail.parent_chain] == ["Product"]
        assert [a.title for a in detail.children] == ["Launch Ads", "Write Copy"]
        assert [a.title for a in detail.dependencies] == ["Engineering"]
        assert detail.dependents == []

        assert [a.title for a in graph.get_action_detail(engineering.id).dependents] == ["Marketing"]

    def test_detail_missing(self, graph):
        with pytest.raises(NotFoundError):
            graph.get_action_detail("missing")


class TestTree:
    def test_full_tree(self, graph, product_tree):
        tree = graph.get_tree()

        assert [n.title for n in tree.root_actions] == ["Product"]
        product = tree.root_actions[0]
        assert [n.title for n in product.children] == ["Marketing", "Engineering"]
        assert [n.title for n in product.children[0].children] == ["Launch Ads", "Write Copy"]

    def test_completed_pruned_by_default(self, graph, product_tree):
        """Should hide done actions unless asked to include them."""
        graph.complete_action(product_tree["ads"].id)

        marketing = graph.get_tree().root_actions[0].children[0]
        assert [n.title for n in marketing.children] == ["Write Copy"]

        marketing = graph.get_tree(include_completed=True).root_actions[0].children[0]
        assert [n.title for n in marketing.children] == ["Launch Ads", "Write Copy"]

    def test_scoped_tree(self, graph, product_tree):
        tree = graph.get_tree(root_id=product_tree["marketing"].id)
        assert [n.title for n in tree.root_actions] == ["Marketing"]
        assert len(tree.root_actions[0].children) == 2

    def test_scoped_tree_missing_root(self, graph):
        with pytest.raises(NotFoundError):
            graph.get_tree(root_id="missing")

    def test_node_dependencies(self, graph, product_tree):
        graph.add_dependency(product_tree["ads"].id, product_tree["copy"].id)
        marketing = graph.get_tree().root_actions[0].children[0]
        assert marketing.children[0].dependencies == [product_tree["copy"].id]


class TestDependencyOverview:
    def test_overview(self, graph):
        """Should list only actions with prerequisites or dependents."""
        design = graph.create_action("Design")
        build = graph.create_action("Build", depends_on_ids=[design.id])
        graph.create_action("Unrelated")

        overview = graph.get_dependency_overview()

        assert [m.action_title for m in overview] == ["Design", "Build"]
        assert [d.id for d in overview[0].dependents] == [build.id]
        assert [d.title for d in overview[1].depends_on] == ["Design"]

    def test_completed_excluded(self, graph):
        design = graph.create_action("Design")
        graph.create_action("Build", depends_on_ids=[design.id])
        graph.complete_action(design.id)

        overview = graph.get_dependency_overview()
        assert [m.action_title for m in overview] == ["Build"]
        assert overview[0].depends_on[0].done is True

        full = graph.get_dependency_overview(include_completed=True)
        assert [m.action_title for m in full] == ["Design", "Build"]


class TestBuildPath:
    def test_breadcrumb(self, graph, product_tree):
        path = graph.build_path(product_tree["ads"].id)
        assert path.breadcrumb == "Product > Marketing > Launch Ads"
        assert path.titles == ["Product", "Marketing", "Launch Ads"]

    def test_without_current(self, graph, product_tree):
        path = graph.build_path(product_tree["ads"].id, separator=" / ", include_current=False)
        assert path.breadcrumb == "Product / Marketing"

    def test_root(self, graph, product_tree):
        assert graph.build_path(product_tree["product"].id).breadcrumb == "Product"
