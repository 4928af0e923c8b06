"""
Tests for the ActionGraph client.

Test Coverage:
    - Atomic creation with parent and prerequisites
    - Field edits, completion toggles and optimistic versioning
    - Construction from config / environment and disposal
"""

import os
import tempfile

import pytest

from actiongraph import ActionGraph, EngineConfig
from actiongraph.core.errors import (
    CycleDetectedError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from actiongraph.storage.engine import InMemoryActionStore
from actiongraph.storage.sqlite import SQLiteActionStore


class TestCreateAction:
    """Tests for create_action."""

    def test_create_root(self, graph):
        action = graph.create_action("  Ship it  ", description="v1", vision="Live")
        assert action.title == "Ship it"
        assert action.version == 1
        assert graph.get_ancestor_chain(action.id) == []

    def test_create_with_parent_and_dependencies(self, graph):
        parent = graph.create_action("Parent")
        dep = graph.create_action("Dep")

        child = graph.create_action("Child", parent_id=parent.id, depends_on_ids=[dep.id, dep.id])

        assert [a.id for a in graph.get_ancestor_chain(child.id)] == [parent.id]
        deps = graph.list_dependency_edges(child.id)
        assert [(e.src, e.dst) for e in deps] == [(dep.id, child.id)]

    def test_blank_title(self, graph):
        with pytest.raises(ValidationError):
            graph.create_action("   ")

    def test_missing_parent_creates_nothing(self, store, graph):
        """Should fail with NotFoundError and leave no action behind."""
        with pytest.raises(NotFoundError, match="Parent action with ID missing not found"):
            graph.create_action("Orphan", parent_id="missing")
        assert store.count() == 0

    def test_missing_dependency_creates_nothing(self, store, graph):
        dep = graph.create_action("Dep")
        with pytest.raises(NotFoundError, match="Dependency action"):
            graph.create_action("Child", depends_on_ids=[dep.id, "missing"])
        assert store.count() == 1
        assert store.list_edges() == []

    def test_single_string_dependency(self, store, graph):
        """Should reject a bare id string instead of reading it character by character."""
        dep = graph.create_action("Dep")
        with pytest.raises(ValidationError) as exc_info:
            graph.create_action("Child", depends_on_ids=dep.id)
        assert exc_info.value.field == "depends_on_ids"
        assert store.count() == 1

    def test_rejected_edge_creates_nothing(self, store, mirrored_graph):
        """Should roll back the new action when one of its edges is rejected."""
        parent = mirrored_graph.create_action("Parent")
        before = store.count()

        # The mirror makes the child a prerequisite of its parent
        with pytest.raises(CycleDetectedError):
            mirrored_graph.create_action("Child", parent_id=parent.id, depends_on_ids=[parent.id])

        assert store.count() == before
        assert store.list_edges() == []


class TestUpdateAction:
    """Tests for update_action and completion toggles."""

    def test_update_fields(self, graph):
        action = graph.create_action("Draft")
        updated = graph.update_action(action.id, {"title": "Final", "vision": "Published"})
        assert updated.title == "Final"
        assert updated.vision == "Published"
        assert updated.version == 2

    def test_empty_update(self, graph):
        action = graph.create_action("Draft")
        with pytest.raises(ValidationError, match="At least one field"):
            graph.update_action(action.id, {})

    def test_complete_and_uncomplete(self, graph):
        """Should toggle done and bump the version each time."""
        action = graph.create_action("Task")
        assert graph.complete_action(action.id).done is True
        reopened = graph.uncomplete_action(action.id)
        assert reopened.done is False
        assert reopened.version == 3

    def test_version_conflict(self, graph):
        """Should detect a concurrent edit through expected_version."""
        action = graph.create_action("Task")
        graph.update_action(action.id, {"description": "first"}, expected_version=1)

        with pytest.raises(VersionConflictError):
            graph.update_action(action.id, {"description": "second"}, expected_version=1)
        assert graph.get_action(action.id).description == "first"

    def test_update_missing(self, graph):
        with pytest.raises(NotFoundError):
            graph.update_action("missing", {"done": True})


class TestLifecycle:
    """Construction and disposal."""

    def test_default_store(self):
        graph = ActionGraph()
        assert isinstance(graph.store, InMemoryActionStore)
        assert graph.config.mirror_family_dependencies is False

    def test_from_config_sqlite(self):
        with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
            db_path = f.name

        try:
            config = EngineConfig(database_url=f"sqlite:///{db_path}")
            with ActionGraph.from_config(config) as graph:
                assert isinstance(graph.store, SQLiteActionStore)
                action_id = graph.create_action("Persisted").id

            with ActionGraph.from_config(config) as graph:
                assert graph.get_action(action_id).title == "Persisted"
        finally:
            for suffix in ("", "-wal", "-shm"):
                if os.path.exists(db_path + suffix):
                    os.unlink(db_path + suffix)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ACTIONGRAPH_DATABASE_URL", "memory://")
        monkeypatch.setenv("ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES", "true")
        monkeypatch.setenv("ACTIONGRAPH_LOG_LEVEL", "warning")

        with ActionGraph.from_env() as graph:
            assert isinstance(graph.store, InMemoryActionStore)
            parent = graph.create_action("Parent")
            child = graph.create_action("Child", parent_id=parent.id)
            assert len(graph.list_dependency_edges(child.id)) == 1


@pytest.mark.integration
class TestEndToEnd:
    def test_plan_lifecycle(self, graph):
        """Should carry a small plan from creation to completion."""
        launch = graph.create_action("Launch")
        build = graph.create_action("Build", parent_id=launch.id)
        test = graph.create_action("Test", parent_id=launch.id, depends_on_ids=[build.id])

        assert graph.next_action().id == build.id
        graph.complete_action(build.id)
        assert graph.next_action().id == test.id
        graph.complete_action(test.id)
        assert [a.id for a in graph.compute_workable()] == [launch.id]
        graph.complete_action(launch.id)
        assert graph.next_action() is None
        assert graph.verify_invariants().valid
