"""View registry for scenario-sync.

Editable views register a commit function when they mount and remove it when
they unmount. The registry is the coordinator's only way to reach a view.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from ..types import ALL_VIEWS
from ..utils.logging import get_logger

logger = get_logger("registry")

# Commit functions may be plain callables or coroutine functions.
CommitFn = Callable[[], Any]


@dataclass
class ViewRecord:
    """A registered view."""

    view_id: str
    commit_fn: CommitFn
    ordinal: int
    token: int
    registered_at: datetime = field(default_factory=datetime.now)


class ViewRegistry:
    """Map of view id -> commit function.

    Re-registering an id replaces the previous commit function (last writer
    wins) so a remounted view does not leak its old handler. The view keeps
    the ordinal it got on first registration, which fixes its place in every
    commit pass.

    Example:
        registry = ViewRegistry()
        unregister = registry.register("settings.general", form.commit)

        ...

        unregister()  # on unmount
    """

    def __init__(self):
        self._views: dict[str, ViewRecord] = {}
        self._ordinals: dict[str, int] = {}
        self._next_token = 0
        self._lock = threading.RLock()

    def register(self, view_id: str, commit_fn: CommitFn) -> Callable[[], bool]:
        """Register (or replace) the commit function for ``view_id``.

        Args:
            view_id: Unique view identifier.
            commit_fn: Sync or async callable applying the view's edits.

        Returns:
            Function removing this registration. It does nothing if the id
            was re-registered since, so a stale unmount cannot drop a newer
            mount.
        """
        if view_id == ALL_VIEWS:
            raise ValueError(f"'{ALL_VIEWS}' is reserved and cannot be registered")
        if not callable(commit_fn):
            raise TypeError(f"commit_fn for view '{view_id}' is not callable")

        with self._lock:
            ordinal = self._ordinals.setdefault(view_id, len(self._ordinals))
            self._next_token += 1
            token = self._next_token

            if view_id in self._views:
                logger.debug(f"View '{view_id}' re-registered; previous handler replaced")
            self._views[view_id] = ViewRecord(
                view_id=view_id, commit_fn=commit_fn, ordinal=ordinal, token=token
            )

        def unregister() -> bool:
            return self._unregister(view_id, token)

        return unregister

    def unregister(self, view_id: str) -> bool:
        """Remove ``view_id`` regardless of which mount registered it.

        Returns:
            True if the view was registered.
        """
        with self._lock:
            return self._views.pop(view_id, None) is not None

    def _unregister(self, view_id: str, token: int) -> bool:
        with self._lock:
            record = self._views.get(view_id)
            if record is None or record.token != token:
                return False
            del self._views[view_id]
            return True

    def get(self, view_id: str) -> CommitFn | None:
        """Commit function for ``view_id``, or None if not registered."""
        with self._lock:
            record = self._views.get(view_id)
            return record.commit_fn if record else None

    def is_registered(self, view_id: str) -> bool:
        with self._lock:
            return view_id in self._views

    def ordinal(self, view_id: str) -> int | None:
        """Registration order of ``view_id``; kept after it unregisters."""
        with self._lock:
            return self._ordinals.get(view_id)

    def view_ids(self) -> list[str]:
        """Registered ids in registration order."""
        with self._lock:
            return [r.view_id for r in sorted(self._views.values(), key=lambda r: r.ordinal)]

    def clear(self) -> None:
        """Drop every registration and ordinal."""
        with self._lock:
            self._views.clear()
            self._ordinals.clear()

    def __contains__(self, view_id: object) -> bool:
        with self._lock:
            return view_id in self._views

    def __len__(self) -> int:
        with self._lock:
            return len(self._views)
