"""
Batched backfill of collaborator-owned fields.

Summaries and embeddings are produced outside the engine. The runner
finds the actions still missing a field, hands each one to a
caller-supplied generator, and writes the result back through
``update_derived`` (which never bumps ``version``).

Work is done in fixed-size batches with a pause between them, so a slow
or rate-limited generator is not hammered. Re-running is safe: actions
that already have the field are skipped, so an interrupted run simply
resumes. A failure on one action is logged and reported; the rest of the
batch carries on and nothing is retried.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from actiongraph.core.errors import ValidationError
from actiongraph.core.models import DERIVED_FIELDS, Action
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


ValueGenerator = Callable[[Action], Any]


class BackfillFailure(BaseModel):
    action_id: str
    error: str


class BackfillReport(BaseModel):
    """Outcome of a backfill run."""

    field: str
    total: int = Field(default=0, description="Actions that needed the field at start")
    updated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(
        default_factory=list,
        description="Actions the generator returned None for"
    )
    failed: list[BackfillFailure] = Field(default_factory=list)
    batches: int = 0

    @property
    def remaining(self) -> int:
        return self.total - len(self.updated)


class BackfillRunner:
    """
    Fills a derived field for every action missing it.

    Example:
        ```python
        runner = BackfillRunner(store, batch_size=10, delay_seconds=1.0)
        report = runner.run("node_summary", summarize)
        print(f"{len(report.updated)}/{report.total} summarized")
        ```

    Args:
        store: Backing store
        batch_size: Actions per batch
        delay_seconds: Pause between batches
        sleep: Injected for tests
    """

    def __init__(
        self,
        store: ActionStore,
        batch_size: int = 10,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValidationError("batch_size must be at least 1", field="batch_size")
        if delay_seconds < 0:
            raise ValidationError("delay_seconds must not be negative", field="delay_seconds")
        self._store = store
        self._batch_size = batch_size
        self._delay = delay_seconds
        self._sleep = sleep

    @staticmethod
    def _missing(action: Action, field: str) -> bool:
        value = getattr(action, field)
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        return False

    def pending(self, field: str, include_completed: bool = True) -> list[Action]:
        """Actions whose ``field`` is still empty, oldest first."""
        if field not in DERIVED_FIELDS:
            raise ValidationError(f"{field} is not a derived field", field="field")
        done = None if include_completed else False
        return [a for a in self._store.list(done=done) if self._missing(a, field)]

    def run(
        self,
        field: str,
        generate: ValueGenerator,
        include_completed: bool = True,
        limit: Optional[int] = None,
    ) -> BackfillReport:
        """
        Generate and store ``field`` for every action missing it.

        Args:
            field: One of the derived fields
            generate: Called with each action; returns the value to store,
                or None to leave the action for a later run
            include_completed: Also fill done actions
            limit: Process at most this many actions

        Returns:
            BackfillReport of what happened
        """
        pending = self.pending(field, include_completed=include_completed)
        if limit is not None:
            pending = pending[:limit]

        report = BackfillReport(field=field, total=len(pending))
        logger.info(f"Backfilling {field} for {len(pending)} actions")

        for start in range(0, len(pending), self._batch_size):
            if start > 0 and self._delay > 0:
                self._sleep(self._delay)

            batch = pending[start:start + self._batch_size]
            report.batches += 1
            for action in batch:
                try:
                    value = generate(action)
                    if value is None:
                        report.skipped.append(action.id)
                        continue
                    self._store.update_derived(action.id, {field: value})
                    report.updated.append(action.id)
                except Exception as e:
                    logger.warning(f"Backfill of {field} failed for action {action.id}: {e}")
                    report.failed.append(BackfillFailure(action_id=action.id, error=str(e)))

            logger.debug(
                f"Backfill batch {report.batches}: "
                f"{len(report.updated)}/{report.total} {field} written"
            )

        logger.info(
            f"Backfill of {field} done: {len(report.updated)} updated, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report
