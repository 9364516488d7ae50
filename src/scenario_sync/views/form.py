"""Editable views bound to document sections.

A view keeps a local buffer of edits. Editing marks it dirty; the commit
coordinator later calls its commit function to write the buffer back.
"""

import copy
from typing import Any, Callable, Iterable, Sequence

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError
from ..store.arrays import ArraySection
from ..store.document import DocumentStore
from ..store.paths import assoc_in, get_in, normalize_path, path_to_str
from ..types import ArrayOp, BatchOperation, ChangeEvent, ChangeKind, PathSegment
from ..utils.logging import get_logger
from .dirty import DirtyTracker
from .registry import ViewRegistry

logger = get_logger("views")

Transform = Callable[[Any], Any]


class _MountedView:
    """Mount bookkeeping shared by the view types."""

    def __init__(self, view_id: str, registry: ViewRegistry, tracker: DirtyTracker):
        self.view_id = view_id
        self._registry = registry
        self._tracker = tracker
        self._unregister: Callable[[], bool] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_mounted(self) -> bool:
        return self._unregister is not None

    @property
    def is_dirty(self) -> bool:
        return self._tracker.is_dirty(self.view_id)

    def _mount(self, store: DocumentStore, commit_fn: Callable[[], Any]) -> None:
        if self.is_mounted:
            return
        self._unregister = self._registry.register(self.view_id, commit_fn)
        self._unsubscribe = store.subscribe(self._on_store_change)
        logger.debug(f"View '{self.view_id}' mounted")

    def on_unmount(self) -> None:
        """Unregister and drop uncommitted edits."""
        if self._unregister:
            self._unregister()
            self._unregister = None
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._tracker.set_dirty(self.view_id, False)
        logger.debug(f"View '{self.view_id}' unmounted")

    def _mark_dirty(self) -> None:
        self._tracker.set_dirty(self.view_id, True)

    def _on_store_change(self, event: ChangeEvent) -> None:
        if event.kind not in (ChangeKind.REPLACE, ChangeKind.CLEAR):
            return
        if self.is_dirty:
            logger.debug(f"View '{self.view_id}' is dirty; kept its buffer across replace")
            return
        self._reload()

    def _reload(self) -> None:
        raise NotImplementedError


class FormView(_MountedView):
    """A form editing the mapping at ``path``.

    Example:
        form = FormView("general", store, registry, tracker, "settings.general",
                        schema=GeneralSettings)
        form.on_mount()
        form.edit("projectLife", 25)

        await coordinator.submit_all_forms()   # calls form.commit()
    """

    def __init__(
        self,
        view_id: str,
        store: DocumentStore,
        registry: ViewRegistry,
        tracker: DirtyTracker,
        path: str | Sequence[PathSegment],
        schema: type[BaseModel] | None = None,
        transform_before_load: Transform | None = None,
        transform_before_save: Transform | None = None,
    ):
        """Bind a form to a section.

        Args:
            view_id: Unique view identifier.
            store: Document store.
            registry: Registry the commit function is registered in.
            tracker: Dirty tracker.
            path: Section the form edits.
            schema: Optional pydantic model validating the buffer on commit.
            transform_before_load: Applied to the section value when loading.
            transform_before_save: Applied to the buffer before writing.
        """
        super().__init__(view_id, registry, tracker)
        self._store = store
        self._path = normalize_path(path)
        self._schema = schema
        self._transform_before_load = transform_before_load
        self._transform_before_save = transform_before_save
        self._values: dict[str, Any] = {}
        self._errors: list[str] = []

    @property
    def path(self) -> tuple[PathSegment, ...]:
        return self._path

    @property
    def values(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    @property
    def validation_error(self) -> ValidationError | None:
        """Errors from the last declined commit, if any."""
        return ValidationError(self.view_id, self._errors) if self._errors else None

    def on_mount(self) -> None:
        """Load the buffer from the store and register the commit function."""
        self._reload()
        self._mount(self._store, self.commit)

    def get(self, field: str | Sequence[PathSegment], default: Any = None) -> Any:
        return get_in(self._values, field, default)

    def edit(self, field: str | Sequence[PathSegment], value: Any) -> None:
        """Set one (possibly nested) field and mark the view dirty."""
        self._values = assoc_in(self._values, field, value)
        self._mark_dirty()

    def update(self, values: dict[str, Any]) -> None:
        """Set several top-level fields and mark the view dirty once."""
        self._values = {**self._values, **values}
        self._mark_dirty()

    def commit(self) -> bool:
        """Write the buffer to the store.

        Returns:
            False if validation failed; the view then stays dirty and
            ``errors`` lists the failures.

        Raises:
            ScenarioSyncError: If the store rejects the write.
        """
        values: Any = self._values
        if self._schema is not None:
            try:
                validated = self._schema.model_validate(values)
            except PydanticValidationError as e:
                self._errors = [
                    f"{'.'.join(str(loc) for loc in err['loc']) or '<root>'}: {err['msg']}"
                    for err in e.errors()
                ]
                logger.info(str(ValidationError(self.view_id, self._errors)))
                return False
            values = {**values, **validated.model_dump()}

        if self._transform_before_save:
            values = self._transform_before_save(values)

        result = self._store.set_by_path(self._path, values, source=self.view_id)
        if not result.success:
            raise result.error

        self._errors = []
        logger.debug(f"View '{self.view_id}' committed to '{path_to_str(self._path)}'")
        return True

    def reset(self) -> None:
        """Discard edits and reload from the store."""
        self._reload()
        self._tracker.set_dirty(self.view_id, False)

    def _reload(self) -> None:
        value = self._store.get_by_path(self._path, {})
        if self._transform_before_load:
            value = self._transform_before_load(value)
        self._values = copy.deepcopy(value) if isinstance(value, dict) else {}
        self._errors = []


class ArraySectionView(_MountedView):
    """Buffered editor for an array section.

    Edits queue as batch operations and land in one ``batch`` call on commit.

    Example:
        view = ArraySectionView("contracts", contracts_section, store, registry, tracker)
        view.on_mount()
        view.add({"name": "Full service"})
        view.remove("contract_1a2b")
    """

    def __init__(
        self,
        view_id: str,
        section: ArraySection,
        store: DocumentStore,
        registry: ViewRegistry,
        tracker: DirtyTracker,
    ):
        super().__init__(view_id, registry, tracker)
        self._section = section
        self._store = store
        self._pending: list[BatchOperation] = []

    @property
    def section(self) -> ArraySection:
        return self._section

    @property
    def pending(self) -> list[BatchOperation]:
        return list(self._pending)

    @property
    def items(self) -> list[Any]:
        """Section contents with the queued operations applied."""
        return self._section.preview(self._pending)

    def on_mount(self) -> None:
        self._mount(self._store, self.commit)

    def add(self, item: dict[str, Any]) -> str | None:
        """Queue an element; returns the id it will carry."""
        item = self._section.ensure_identity(item)
        self._queue(BatchOperation(type=ArrayOp.ADD, item=item))
        return self._section.identity(item)

    def update(self, item_id: Any, partial: dict[str, Any]) -> None:
        self._queue(BatchOperation(type=ArrayOp.UPDATE, id=item_id, item=partial))

    def remove(self, item_id: Any) -> None:
        self._queue(BatchOperation(type=ArrayOp.REMOVE, id=item_id))

    def replace(self, items: Iterable[Any]) -> None:
        self._queue(BatchOperation(type=ArrayOp.REPLACE, item=list(items)))

    def commit(self) -> bool:
        """Apply the queued operations as one batch."""
        if not self._pending:
            return True
        result = self._section.batch(self._pending)
        if not result.success:
            raise result.error
        logger.debug(f"View '{self.view_id}' committed {len(self._pending)} operation(s)")
        self._pending = []
        return True

    def reset(self) -> None:
        self._pending = []
        self._tracker.set_dirty(self.view_id, False)

    def on_unmount(self) -> None:
        self._pending = []
        super().on_unmount()

    def _queue(self, operation: BatchOperation) -> None:
        self._pending.append(operation)
        self._mark_dirty()

    def _reload(self) -> None:
        self._pending = []
