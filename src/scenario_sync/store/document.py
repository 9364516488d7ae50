"""Document store for scenario-sync.

This module holds the single canonical scenario document:
- Path-addressable reads and writes
- Copy-on-write snapshots (readers never see a half-applied change)
- Array section operations on embedded collections
- Versioned change notifications

Every mutation replaces the affected nodes; nothing is edited in place.
"""

import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable, Iterable, Sequence

from ..exceptions import ArrayOperationError, NoActiveDocumentError, PathError
from ..types import (
    ArrayOp,
    ChangeEvent,
    ChangeKind,
    Document,
    DocumentVersion,
    PathSegment,
    Result,
)
from ..utils.logging import get_logger
from .paths import (
    IDENTITY_FIELDS,
    assoc_in,
    dissoc_in,
    get_in,
    identity_of,
    normalize_path,
    path_to_str,
)

logger = get_logger("store")

Listener = Callable[[ChangeEvent], None]

_MISSING = object()

# Top-level keys that make up the metadata envelope.
METADATA_FIELDS = ("id", "name", "description", "createdAt", "updatedAt")


class DocumentStore:
    """Canonical store for the active scenario document.

    The store is an explicitly constructed object with an ``init``/``teardown``
    lifecycle; consumers receive it by reference.

    Example:
        store = DocumentStore()
        store.init({"name": "New Scenario", "settings": {"x": 1}})

        store.set_by_path(["settings", "x"], 2)
        store.get_by_path("settings.x")  # 2

        store.array_op("settings.contracts", ArrayOp.ADD, {"id": "c1"})
        store.array_op("settings.contracts", ArrayOp.UPDATE, {"years": 5}, "c1")
    """

    def __init__(
        self,
        document: Document | None = None,
        on_change: Listener | None = None,
        max_history: int = 100,
    ):
        """Initialize the store.

        Args:
            document: Optional document to make active immediately.
            on_change: Listener called after every mutation.
            max_history: Number of version records to keep.
        """
        self._document: Document | None = None
        self._version = 0
        self._modified = False
        self._history: deque[DocumentVersion] = deque(maxlen=max_history)
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

        if on_change:
            self._listeners.append(on_change)
        if document is not None:
            self.init(document)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self, document: Document, source: str | None = None) -> Document:
        """Install ``document`` as the active document.

        Used by initialize and load. Resets the modified flag.
        """
        if not isinstance(document, dict):
            raise TypeError(f"document must be a dict, got {type(document).__name__}")
        with self._lock:
            self._commit(dict(document), ChangeKind.REPLACE, ["*"], source, modified=False)
            logger.info(f"Document installed (version {self._version})")
            return self._document

    def replace_document(self, document: Document, source: str | None = None) -> Document:
        """Replace the whole active document (alias of ``init`` used by load)."""
        return self.init(document, source=source)

    def clear(self, source: str | None = None) -> None:
        """Drop the active document."""
        with self._lock:
            if self._document is None:
                return
            self._commit(None, ChangeKind.CLEAR, ["*"], source, modified=False)
            logger.info("Document cleared")

    def teardown(self) -> None:
        """Drop the document and every listener."""
        with self._lock:
            self._document = None
            self._modified = False
            self._listeners.clear()
            self._history.clear()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """Whether a document is currently active."""
        with self._lock:
            return self._document is not None

    @property
    def version(self) -> int:
        """Current document version."""
        with self._lock:
            return self._version

    @property
    def is_modified(self) -> bool:
        """Whether the document changed since it was installed or last saved."""
        with self._lock:
            return self._modified

    @property
    def identity(self) -> str | None:
        """Persisted identity of the active document, if any."""
        value = self.get_by_path(["id"])
        return str(value) if value not in (None, "") else None

    def snapshot(self) -> Document | None:
        """Current snapshot.

        The returned tree is never mutated by the store afterwards, so it is
        a consistent point-in-time view. Callers must treat it as read-only.
        """
        with self._lock:
            return self._document

    def require_document(self, operation: str | None = None) -> Document:
        """Return the active document or raise NoActiveDocumentError."""
        with self._lock:
            if self._document is None:
                raise NoActiveDocumentError(operation)
            return self._document

    def get_by_path(
        self, path: str | Sequence[PathSegment], default: Any = None
    ) -> Any:
        """Get a value from the active document.

        Args:
            path: Segment list or dotted string (e.g., "settings.general").
            default: Returned when no document is active or a segment is absent.

        Returns:
            The value at path or default.
        """
        segments = normalize_path(path)
        with self._lock:
            if self._document is None:
                return default
            return get_in(self._document, segments, default)

    def get_history(self, limit: int | None = None) -> list[DocumentVersion]:
        """Version records, newest first."""
        with self._lock:
            history = list(reversed(self._history))
            if limit:
                history = history[:limit]
            return history

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def set_by_path(
        self,
        path: str | Sequence[PathSegment],
        value: Any,
        source: str | None = None,
    ) -> Result[Document]:
        """Set a value, cloning ancestors and sharing every sibling subtree.

        Missing intermediate containers are created as empty dicts, so a
        section can be written before it exists.

        Args:
            path: Segment list or dotted string.
            value: Value to store.
            source: Identifier of the writer (usually a view id).

        Returns:
            Result carrying the new snapshot.
        """
        segments = normalize_path(path)
        with self._lock:
            if self._document is None:
                return Result.fail(NoActiveDocumentError("set_by_path"))
            try:
                updated = assoc_in(self._document, segments, value)
            except PathError as e:
                logger.warning(f"set_by_path rejected: {e}")
                return Result.fail(e)

            self._commit(updated, ChangeKind.SET, [path_to_str(segments)], source)
            logger.debug(f"Set '{path_to_str(segments)}' (version {self._version})")
            return Result.ok(self._document)

    def update_many(
        self,
        updates: dict[str, Any] | Iterable[tuple[str | Sequence[PathSegment], Any]],
        source: str | None = None,
    ) -> Result[Document]:
        """Apply several path writes as one version and one change event.

        Either every write lands or none does.

        Args:
            updates: Mapping of dotted path -> value, or (path, value) pairs.
            source: Identifier of the writer.

        Returns:
            Result carrying the new snapshot.
        """
        pairs = list(updates.items()) if isinstance(updates, dict) else list(updates)
        normalized = [(normalize_path(path), value) for path, value in pairs]

        with self._lock:
            if self._document is None:
                return Result.fail(NoActiveDocumentError("update_many"))
            if not normalized:
                return Result.ok(self._document)

            updated = self._document
            try:
                for segments, value in normalized:
                    updated = assoc_in(updated, segments, value)
            except PathError as e:
                logger.warning(f"update_many rejected: {e}")
                return Result.fail(e)

            changed = [path_to_str(segments) for segments, _ in normalized]
            self._commit(updated, ChangeKind.BATCH, changed, source)
            logger.debug(f"Applied {len(changed)} updates (version {self._version})")
            return Result.ok(self._document)

    def delete_by_path(
        self, path: str | Sequence[PathSegment], source: str | None = None
    ) -> Result[Document]:
        """Remove the node at ``path``. Absent paths report failure."""
        segments = normalize_path(path)
        with self._lock:
            if self._document is None:
                return Result.fail(NoActiveDocumentError("delete_by_path"))
            updated, removed = dissoc_in(self._document, segments)
            if not removed:
                return Result.fail(PathError(path, "path does not exist"))
            self._commit(updated, ChangeKind.SET, [f"-{path_to_str(segments)}"], source)
            return Result.ok(self._document)

    def array_op(
        self,
        path: str | Sequence[PathSegment],
        op: ArrayOp | str,
        item: Any = None,
        match_id: Any = None,
        source: str | None = None,
        identity_fields: Sequence[str] = IDENTITY_FIELDS,
    ) -> Result[Document]:
        """Apply an operation to the array at ``path``.

        Args:
            path: Path of the array section.
            op: One of add, update, remove, replace.
            item: Element to add, partial to merge, or full list to replace.
            match_id: Identity of the element for update/remove.
            source: Identifier of the writer.
            identity_fields: Fields checked, in order, for element identity.

        Returns:
            Result carrying the new snapshot. A missing match or a non-array
            target is a failure result, never an exception; the document is
            not touched.
        """
        op = ArrayOp(op)
        segments = normalize_path(path)
        target = path_to_str(segments)

        with self._lock:
            if self._document is None:
                return Result.fail(NoActiveDocumentError(f"array_op:{op.value}"))

            current = get_in(self._document, segments, _MISSING)
            absent = current is _MISSING or current is None

            if not absent and not isinstance(current, list):
                return self._array_failure(
                    target, op, f"target is {type(current).__name__}, not an array", match_id
                )

            if op is ArrayOp.ADD:
                new_items = [*([] if absent else current), item]

            elif op is ArrayOp.REPLACE:
                if not isinstance(item, (list, tuple)):
                    return self._array_failure(target, op, "replacement must be a list")
                new_items = list(item)

            else:
                if absent:
                    return self._array_failure(target, op, "array does not exist", match_id)
                wanted = None if match_id is None else str(match_id)
                index = next(
                    (
                        i
                        for i, element in enumerate(current)
                        if wanted is not None and identity_of(element, identity_fields) == wanted
                    ),
                    None,
                )
                if index is None:
                    return self._array_failure(target, op, "no matching element", match_id)

                new_items = list(current)
                if op is ArrayOp.UPDATE:
                    new_items[index] = {**current[index], **(item or {})}
                else:
                    del new_items[index]

            try:
                updated = assoc_in(self._document, segments, new_items)
            except PathError as e:
                return self._array_failure(target, op, e.reason, match_id)

            self._commit(updated, ChangeKind.ARRAY, [target], source)
            logger.debug(f"Array '{op.value}' at '{target}' (version {self._version})")
            return Result.ok(self._document)

    def merge_fields(
        self,
        fields: dict[str, Any],
        source: str | None = None,
        mark_modified: bool = True,
    ) -> Result[Document]:
        """Shallow-merge top-level fields (metadata envelope) into the document.

        Args:
            fields: Top-level key -> value.
            source: Identifier of the writer.
            mark_modified: False when reconciling server-assigned values.
        """
        with self._lock:
            if self._document is None:
                return Result.fail(NoActiveDocumentError("merge_fields"))
            if not fields:
                return Result.ok(self._document)
            updated = {**self._document, **fields}
            self._commit(
                updated, ChangeKind.METADATA, sorted(fields), source, modified=mark_modified
            )
            return Result.ok(self._document)

    def mark_saved(self) -> None:
        """Record that the current document matches the persisted copy."""
        with self._lock:
            self._modified = False

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener.

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

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _array_failure(
        self, target: str, op: ArrayOp, reason: str, match_id: Any = None
    ) -> Result[Document]:
        error = ArrayOperationError(
            target, op.value, reason, None if match_id is None else str(match_id)
        )
        logger.debug(str(error))
        return Result.fail(error)

    def _commit(
        self,
        document: Document | None,
        kind: ChangeKind,
        changed_paths: list[str],
        source: str | None,
        modified: bool | None = None,
    ) -> None:
        """Swap in a new snapshot, record the version and notify listeners."""
        previous = self._document
        self._document = document
        self._version += 1
        self._modified = True if modified is None else modified

        version = DocumentVersion(
            version=self._version,
            timestamp=datetime.now(),
            source=source,
            changed_paths=changed_paths,
        )
        self._history.append(version)

        event = ChangeEvent(kind=kind, version=version, previous=previous, current=document)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Change listener failed for version {self._version}")
