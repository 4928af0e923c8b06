"""
Tests for the derived-field backfill runner.
"""

import pytest

from actiongraph.core.config import EngineConfig
from actiongraph.core.errors import ValidationError
from actiongraph.core.models import ActionCreate
from actiongraph.interface.client import ActionGraph
from actiongraph.runtime.backfill import BackfillRunner


class FakeSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return FakeSleep()


def summarize(action):
    return f"Summary of {action.title}"


class TestBackfillRunner:
    def test_fills_in_batches(self, store, sleep):
        """Should process fixed-size batches and pause between them."""
        for i in range(7):
            store.create(ActionCreate(title=f"Task {i}"))
        runner = BackfillRunner(store, batch_size=3, delay_seconds=2.0, sleep=sleep)

        report = runner.run("node_summary", summarize)

        assert report.total == 7
        assert len(report.updated) == 7
        assert report.batches == 3
        assert sleep.calls == [2.0, 2.0]
        assert all(a.node_summary.startswith("Summary of") for a in store.list())
        assert all(a.version == 1 for a in store.list())

    def test_idempotent(self, store, sleep):
        """Should skip actions that already have the field."""
        for i in range(3):
            store.create(ActionCreate(title=f"Task {i}"))
        runner = BackfillRunner(store, batch_size=10, delay_seconds=0, sleep=sleep)

        runner.run("subtree_summary", summarize)
        again = runner.run("subtree_summary", summarize)

        assert again.total == 0
        assert again.batches == 0

    def test_failures_reported(self, store, sleep):
        """Should log and report a failing action and keep going."""
        bad = store.create(ActionCreate(title="Bad"))
        good = store.create(ActionCreate(title="Good"))

        def flaky(action):
            if action.id == bad.id:
                raise RuntimeError("model unavailable")
            return [0.5, 0.25]

        report = BackfillRunner(store, sleep=sleep).run("embedding_vector", flaky)

        assert report.updated == [good.id]
        assert [f.action_id for f in report.failed] == [bad.id]
        assert "model unavailable" in report.failed[0].error
        assert report.remaining == 1
        assert store.get(good.id).embedding_vector == [0.5, 0.25]

    def test_mistyped_value_reported(self, store, sleep):
        """Should report a value of the wrong type and keep the graph readable."""
        action = store.create(ActionCreate(title="Task"))

        report = BackfillRunner(store, sleep=sleep).run("embedding_vector", lambda a: "abc")

        assert report.updated == []
        assert [f.action_id for f in report.failed] == [action.id]
        assert "embedding_vector" in report.failed[0].error
        assert store.get(action.id).embedding_vector is None
        assert [a.id for a in ActionGraph(store).compute_workable()] == [action.id]

    def test_none_leaves_action_pending(self, store, sleep):
        action = store.create(ActionCreate(title="Later"))
        report = BackfillRunner(store, sleep=sleep).run("node_summary", lambda a: None)
        assert report.skipped == [action.id]
        assert store.get(action.id).node_summary is None

    def test_exclude_completed_and_limit(self, store, sleep):
        graph = ActionGraph(store)
        done = graph.create_action("Done")
        graph.complete_action(done.id)
        for i in range(3):
            graph.create_action(f"Open {i}")

        runner = BackfillRunner(store, sleep=sleep)
        report = runner.run("node_summary", summarize, include_completed=False, limit=2)

        assert report.total == 2
        assert done.id not in report.updated

    def test_rejects_non_derived_field(self, store, sleep):
        with pytest.raises(ValidationError):
            BackfillRunner(store, sleep=sleep).run("title", summarize)

    def test_rejects_bad_batch_size(self, store):
        with pytest.raises(ValidationError):
            BackfillRunner(store, batch_size=0)


class TestClientBackfill:
    def test_uses_config(self, store, sleep):
        """Should take batch size and delay from the engine config."""
        config = EngineConfig(backfill_batch_size=2, backfill_delay=0.25)
        graph = ActionGraph(store, config)
        for i in range(5):
            graph.create_action(f"Task {i}")

        report = graph.backfill("family_context_summary", summarize, sleep=sleep)

        assert report.batches == 3
        assert sleep.calls == [0.25, 0.25]
