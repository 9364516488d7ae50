"""Commit coordination - flush every dirty view into the document store.

Commit functions run one at a time, in registration order, so the merge order
of concurrent editors is deterministic.
"""

import asyncio
import inspect

from ..exceptions import CommitFailureError
from ..store.document import DocumentStore
from ..types import CommitResult
from ..utils.logging import get_logger
from ..views.dirty import DirtyTracker
from ..views.registry import ViewRegistry

logger = get_logger("coordinator")


class CommitCoordinator:
    """Drains dirty views into the store.

    One pass:
    1. Capture the dirty view ids, ordered by registration.
    2. Await each view's commit function in that order. Views that
       unregistered after being marked dirty are skipped and reported.
    3. Stop at the first commit function that raises. Views committed so far
       stay clean; the rest stay dirty so the pass can be retried.
    4. Clear a view's flag only if it was not marked dirty again while the
       pass ran, so an edit made mid-pass waits for the next pass.

    A commit function returning ``False`` declines (its local validation
    failed); that view stays dirty and the pass continues.

    Passes are serialized: a second ``submit_all_forms`` waits for the first,
    so no commit function ever runs concurrently with itself or another.

    Example:
        coordinator = CommitCoordinator(store, registry, tracker)
        result = await coordinator.submit_all_forms()
        if result.success:
            persist(result.document)
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: ViewRegistry,
        tracker: DirtyTracker,
    ):
        self._store = store
        self._registry = registry
        self._tracker = tracker
        self._lock = asyncio.Lock()
        self._passes = 0

    @property
    def is_running(self) -> bool:
        """Whether a pass is in progress."""
        return self._lock.locked()

    @property
    def pass_count(self) -> int:
        return self._passes

    def pending_views(self) -> list[str]:
        """Dirty view ids in the order a pass would visit them.

        Views are ordered by registration ordinal; ids the registry never
        saw follow in the order they were first marked dirty.
        """
        dirty = self._tracker.dirty_views()

        def sort_key(entry: tuple[int, str]) -> tuple[int, int]:
            position, view_id = entry
            ordinal = self._registry.ordinal(view_id)
            return (0, ordinal) if ordinal is not None else (1, position)

        return [view_id for _, view_id in sorted(enumerate(dirty), key=sort_key)]

    async def submit_all_forms(self) -> CommitResult:
        """Run one commit pass over every dirty view.

        Returns:
            CommitResult. On success ``document`` is the snapshot after every
            commit landed; on failure ``error`` names the view that raised.
        """
        async with self._lock:
            return await self._run_pass()

    async def _run_pass(self) -> CommitResult:
        order = self.pending_views()
        if not order:
            return CommitResult(success=True, document=self._store.snapshot())

        self._passes += 1
        generations = {view_id: self._tracker.generation(view_id) for view_id in order}
        committed: list[str] = []
        skipped: list[str] = []
        declined: list[str] = []

        logger.info(f"Commit pass {self._passes}: {len(order)} dirty view(s) {order}")

        for position, view_id in enumerate(order):
            commit_fn = self._registry.get(view_id)
            if commit_fn is None:
                logger.warning(f"View '{view_id}' is dirty but no longer registered; skipped")
                self._tracker.clear_if_unchanged(view_id, generations[view_id])
                skipped.append(view_id)
                continue

            try:
                outcome = commit_fn()
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as e:
                error = CommitFailureError(view_id, e)
                logger.error(f"{error}; {len(order) - position - 1} view(s) left uncommitted")
                return CommitResult(
                    success=False,
                    committed=committed,
                    skipped=skipped,
                    declined=declined,
                    pending=order[position:],
                    error=error,
                )

            if outcome is False:
                logger.info(f"View '{view_id}' declined to commit; left dirty")
                declined.append(view_id)
                continue

            if not self._tracker.clear_if_unchanged(view_id, generations[view_id]):
                logger.debug(f"View '{view_id}' edited during the pass; left dirty")
            committed.append(view_id)

        return CommitResult(
            success=True,
            document=self._store.snapshot(),
            committed=committed,
            skipped=skipped,
            declined=declined,
        )
