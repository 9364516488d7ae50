"""Dirty tracking for mounted views."""

import threading
from typing import Callable, Iterable

from ..types import ALL_VIEWS
from ..utils.logging import get_logger

logger = get_logger("dirty")

AggregateListener = Callable[[bool], None]


class DirtyTracker:
    """Map of view id -> "has uncommitted edits".

    ``has_unsaved_changes`` is computed on every read, so it always reflects
    the latest ``set_dirty`` call. Each transition to dirty bumps a per-view
    generation; the commit coordinator uses it to avoid clearing a flag that
    was set again while the view was committing.

    Example:
        tracker = DirtyTracker()
        tracker.set_dirty("settings.general", True)
        tracker.has_unsaved_changes  # True

        tracker.clear_all()          # same as set_dirty("all", False)
        tracker.has_unsaved_changes  # False
    """

    def __init__(self, on_change: AggregateListener | None = None):
        """Initialize the tracker.

        Args:
            on_change: Called with the new aggregate whenever it flips.
        """
        self._flags: dict[str, bool] = {}
        self._generations: dict[str, int] = {}
        self._listeners: list[AggregateListener] = []
        self._lock = threading.RLock()

        if on_change:
            self._listeners.append(on_change)

    @property
    def has_unsaved_changes(self) -> bool:
        """True iff at least one view is dirty."""
        with self._lock:
            return any(self._flags.values())

    def set_dirty(self, view_id: str, dirty: bool = True) -> None:
        """Set the flag for ``view_id``.

        The reserved id ``"all"`` clears every entry at once; marking "all"
        dirty is not meaningful and raises ValueError.
        """
        with self._lock:
            before = any(self._flags.values())

            if view_id == ALL_VIEWS:
                if dirty:
                    raise ValueError(f"'{ALL_VIEWS}' can only be used to clear dirty flags")
                for key in self._flags:
                    self._flags[key] = False
            else:
                self._flags[view_id] = bool(dirty)
                if dirty:
                    self._generations[view_id] = self._generations.get(view_id, 0) + 1

            self._notify(before)

    def clear_all(self, keep: Iterable[str] = ()) -> None:
        """Clear every dirty flag except those of the views in ``keep``."""
        keep = set(keep)
        if not keep:
            self.set_dirty(ALL_VIEWS, False)
            return
        with self._lock:
            before = any(self._flags.values())
            for key in self._flags:
                if key not in keep:
                    self._flags[key] = False
            self._notify(before)

    def is_dirty(self, view_id: str) -> bool:
        with self._lock:
            return self._flags.get(view_id, False)

    def dirty_views(self) -> list[str]:
        """Ids currently flagged dirty, in the order they were first tracked."""
        with self._lock:
            return [view_id for view_id, dirty in self._flags.items() if dirty]

    def generation(self, view_id: str) -> int:
        """Number of times ``view_id`` has been marked dirty."""
        with self._lock:
            return self._generations.get(view_id, 0)

    def clear_if_unchanged(self, view_id: str, generation: int) -> bool:
        """Clear ``view_id`` unless it was marked dirty again after ``generation``.

        Returns:
            True if the flag was cleared.
        """
        with self._lock:
            if self._generations.get(view_id, 0) != generation:
                return False
            before = any(self._flags.values())
            self._flags[view_id] = False
            self._notify(before)
            return True

    def forget(self, view_id: str) -> None:
        """Drop every record of ``view_id``."""
        with self._lock:
            before = any(self._flags.values())
            self._flags.pop(view_id, None)
            self._generations.pop(view_id, None)
            self._notify(before)

    def snapshot(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._flags)

    def subscribe(self, listener: AggregateListener) -> Callable[[], None]:
        """Register a listener for aggregate flips.

        Returns:
            Function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, before: bool) -> None:
        after = any(self._flags.values())
        if after == before:
            return
        for listener in list(self._listeners):
            try:
                listener(after)
            except Exception:
                logger.exception("Dirty-state listener failed")
