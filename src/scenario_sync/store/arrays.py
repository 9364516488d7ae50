"""Array section management.

Embedded sub-collections of the scenario (contracts, locations, repair
packages) are edited through an ArraySection bound to one path. Batches are
applied to a private working copy and land as a single replace.
"""

import uuid
from typing import Any, Callable, Iterable, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NoActiveDocumentError
from ..types import ArrayOp, BatchOperation, Document, PathSegment, Result
from ..utils.logging import get_logger
from .document import DocumentStore
from .paths import IDENTITY_FIELDS, identity_of, normalize_path, path_to_str

logger = get_logger("arrays")


class ArraySection:
    """CRUD over one array section of the document.

    Example:
        contracts = ArraySection(store, "settings.modules.contracts.oemContracts",
                                 id_prefix="contract")

        contracts.add_item({"name": "Full service", "years": 5})
        contracts.update_item("contract_1a2b", {"years": 7})

        # Several edits, one mutation
        contracts.batch([
            {"type": "add", "item": {"name": "Blades only"}},
            {"type": "remove", "id": "contract_1a2b"},
        ])
    """

    def __init__(
        self,
        store: DocumentStore,
        path: str | Sequence[PathSegment],
        id_field: str | None = None,
        id_factory: Callable[[], str] | None = None,
        id_prefix: str = "item",
        source: str | None = None,
    ):
        """Bind a section to ``path``.

        Args:
            store: Document store holding the section.
            path: Path of the array.
            id_field: Single identity field; None checks value, id, _id in order.
            id_factory: Generates ids for new elements that carry none.
            id_prefix: Prefix for generated ids when no factory is given.
            source: Writer identifier attached to change events.
        """
        self._store = store
        self._path = normalize_path(path)
        self._id_field = id_field
        self._identity_fields: tuple[str, ...] = (id_field,) if id_field else IDENTITY_FIELDS
        self._id_factory = id_factory or (lambda: f"{id_prefix}_{uuid.uuid4().hex[:12]}")
        self._source = source or f"section:{path_to_str(self._path)}"

    @property
    def path(self) -> tuple[PathSegment, ...]:
        return self._path

    @property
    def items(self) -> list[Any]:
        """Current elements (empty when the section does not exist yet)."""
        value = self._store.get_by_path(self._path, [])
        return list(value) if isinstance(value, list) else []

    def identity(self, item: Any) -> str | None:
        return identity_of(item, self._identity_fields)

    def get_item(self, item_id: Any) -> dict[str, Any] | None:
        wanted = str(item_id)
        for element in self.items:
            if self.identity(element) == wanted:
                return element
        return None

    def add_item(self, item: dict[str, Any]) -> Result[Document]:
        """Append an element, assigning an id when it carries none."""
        return self._store.array_op(
            self._path,
            ArrayOp.ADD,
            self.ensure_identity(item),
            source=self._source,
            identity_fields=self._identity_fields,
        )

    def update_item(self, item_id: Any, partial: dict[str, Any]) -> Result[Document]:
        """Shallow-merge ``partial`` into the element with ``item_id``."""
        return self._store.array_op(
            self._path,
            ArrayOp.UPDATE,
            partial,
            item_id,
            source=self._source,
            identity_fields=self._identity_fields,
        )

    def remove_item(self, item_id: Any) -> Result[Document]:
        """Delete the element with ``item_id``."""
        return self._store.array_op(
            self._path,
            ArrayOp.REMOVE,
            match_id=item_id,
            source=self._source,
            identity_fields=self._identity_fields,
        )

    def replace_all(self, items: Iterable[Any]) -> Result[Document]:
        """Set the whole section."""
        return self._store.array_op(
            self._path,
            ArrayOp.REPLACE,
            list(items),
            source=self._source,
            identity_fields=self._identity_fields,
        )

    def batch(self, operations: Iterable[BatchOperation | dict[str, Any]]) -> Result[Document]:
        """Apply ordered heterogeneous operations as one replace.

        Operations run against a private working copy; update/remove with no
        matching element and unknown operation types are skipped.

        Returns:
            Result of the single replace, or a no-op success for an empty batch.
        """
        operations = list(operations)
        if not self._store.is_active:
            return Result.fail(NoActiveDocumentError("batch"))
        if not operations:
            return Result.ok(self._store.snapshot())

        return self.replace_all(self.preview(operations))

    def preview(self, operations: Iterable[BatchOperation | dict[str, Any]]) -> list[Any]:
        """Elements the section would hold after ``operations``, without writing."""
        working = self.items
        for raw in operations:
            try:
                operation = (
                    raw if isinstance(raw, BatchOperation) else BatchOperation.model_validate(raw)
                )
            except PydanticValidationError:
                logger.warning(f"Unknown batch operation skipped: {raw!r}")
                continue
            working = self._apply(working, operation)
        return working

    def _apply(self, working: list[Any], operation: BatchOperation) -> list[Any]:
        if operation.type is ArrayOp.ADD:
            return [*working, self.ensure_identity(operation.item or {})]

        if operation.type is ArrayOp.REPLACE:
            if operation.item is None:
                return []
            if not isinstance(operation.item, list):
                logger.warning(
                    f"Batch replace skipped: expected a list for '{path_to_str(self._path)}', "
                    f"got {type(operation.item).__name__}"
                )
                return working
            return list(operation.item)

        index = next(
            (i for i, element in enumerate(working) if self.identity(element) == operation.id),
            None,
        )
        if index is None:
            logger.debug(
                f"Batch {operation.type.value} skipped: no element '{operation.id}' "
                f"in '{path_to_str(self._path)}'"
            )
            return working

        updated = list(working)
        if operation.type is ArrayOp.UPDATE:
            updated[index] = {**working[index], **(operation.item or {})}
        else:
            del updated[index]
        return updated

    def ensure_identity(self, item: dict[str, Any]) -> dict[str, Any]:
        """Return ``item``, with a generated id if it carries none."""
        if self.identity(item) is not None:
            return item
        return {**item, (self._id_field or "id"): self._id_factory()}
