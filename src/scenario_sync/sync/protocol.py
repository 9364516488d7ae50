"""Save/load protocol.

ScenarioManager wraps the commit coordinator with metadata merging and the
remote adapter calls, and reconciles server-assigned identity and timestamps
back into the document.
"""

from contextlib import contextmanager
from typing import Any, Awaitable, Iterator

from ..exceptions import (
    NoActiveDocumentError,
    NoIdentityError,
    OperationInProgressError,
    RemoteFailureError,
)
from ..remote.adapter import ScenarioAdapter
from ..remote.defaults import DefaultsProvider
from ..store.document import DocumentStore
from ..types import Document, RemoteResponse, Result, ScenarioListing, ScenarioMetadata
from ..utils.logging import StructuredLogger
from ..views.dirty import DirtyTracker
from .coordinator import CommitCoordinator

logger = StructuredLogger("protocol")

DEFAULT_NAME = "New Scenario"

# Fields the server owns; stripped from default bodies before install.
SERVER_FIELDS = ("id", "_id", "createdAt", "updatedAt")

MetadataInput = ScenarioMetadata | dict[str, Any] | None


class ScenarioManager:
    """Persistence lifecycle of the active scenario.

    Operations return ``Result`` and never raise for remote or commit
    failures. Only one of save/update/load/initialize/delete runs at a time;
    a call that overlaps another fails with ``OperationInProgressError``.

    Example:
        manager = ScenarioManager(store, coordinator, tracker, adapter, defaults)
        await manager.initialize()

        store.set_by_path("settings.general.projectLife", 25)
        result = await manager.save({"name": "Base case"})
        if result.success:
            print(store.identity)
    """

    def __init__(
        self,
        store: DocumentStore,
        coordinator: CommitCoordinator,
        tracker: DirtyTracker,
        adapter: ScenarioAdapter,
        defaults: DefaultsProvider,
        page_size: int = 100,
        defaults_variant: str | None = None,
    ):
        self._store = store
        self._coordinator = coordinator
        self._tracker = tracker
        self._adapter = adapter
        self._defaults = defaults
        self._page_size = page_size
        self._defaults_variant = defaults_variant
        self._running: str | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def running_operation(self) -> str | None:
        """Name of the persistence operation in flight, if any."""
        return self._running

    @property
    def has_unsaved_changes(self) -> bool:
        """Uncommitted view edits or committed edits not yet persisted."""
        return self._tracker.has_unsaved_changes or self._store.is_modified

    def has_valid_scenario(self) -> bool:
        return self._store.is_active

    def is_new_scenario(self) -> bool:
        """True when a document is active but was never persisted."""
        return self._store.is_active and self._store.identity is None

    def prepare_payload(self, metadata: MetadataInput = None) -> Document | None:
        """Build the body sent to the remote service.

        Returns:
            None when no document is active.
        """
        document = self._store.snapshot()
        if document is None:
            return None

        override = _metadata(metadata)
        payload: Document = {}
        if self._store.identity is not None:
            payload["id"] = self._store.identity
        payload["name"] = override.name or document.get("name") or DEFAULT_NAME
        payload["description"] = override.description or document.get("description") or ""
        payload["settings"] = document.get("settings", {})
        payload["simulation"] = document.get("simulation") or {}
        return payload

    # -------------------------------------------------------------------------
    # Save / update
    # -------------------------------------------------------------------------

    async def save(self, metadata: MetadataInput = None) -> Result[Document]:
        """Commit every dirty view, then create or update remotely.

        Creates when the document has no persisted id, updates otherwise.
        """
        try:
            with self._exclusive("save"):
                return await self._persist("save", metadata, require_identity=False)
        except OperationInProgressError as e:
            logger.warning(str(e))
            return Result.fail(e)

    async def update(self, metadata: MetadataInput = None) -> Result[Document]:
        """Commit every dirty view, then update the persisted scenario.

        Fails with ``NoIdentityError`` before any commit or network call when
        the document was never persisted.
        """
        try:
            with self._exclusive("update"):
                return await self._persist("update", metadata, require_identity=True)
        except OperationInProgressError as e:
            logger.warning(str(e))
            return Result.fail(e)

    async def _persist(
        self, operation: str, metadata: MetadataInput, require_identity: bool
    ) -> Result[Document]:
        log = logger.bind(operation=operation, scenario_id=self._store.identity)
        if not self._store.is_active:
            return Result.fail(NoActiveDocumentError(operation))

        if require_identity and self._store.identity is None:
            error = NoIdentityError()
            log.warning(str(error))
            return Result.fail(error)

        committed = await self._coordinator.submit_all_forms()
        if not committed.success:
            log.error("Aborted by commit failure", view_id=committed.error.view_id)
            return Result.fail(committed.error)

        payload = self.prepare_payload(metadata)
        if payload is None:
            return Result.fail(NoActiveDocumentError(operation))

        scenario_id = self._store.identity
        if scenario_id is None:
            response = await self._call("create", self._adapter.create(payload))
        else:
            response = await self._call("update", self._adapter.update(scenario_id, payload))

        if not response.success:
            log.error("Remote call failed", status=response.status_code)
            return Result.fail(_remote_failure(operation, response))

        data = response.data if isinstance(response.data, dict) else {}
        fields: dict[str, Any] = {
            "name": payload["name"],
            "description": payload["description"],
        }
        if scenario_id is None:
            if data.get("id") is None:
                log.error("Create response carried no id")
                return Result.fail(RemoteFailureError(operation, "response carried no id"))
            fields["id"] = str(data["id"])
            fields["createdAt"] = data.get("createdAt")
        if data.get("updatedAt") is not None:
            fields["updatedAt"] = data["updatedAt"]

        self._store.merge_fields(fields, source=operation, mark_modified=False)
        # Declined views were never written to the store
        self._tracker.clear_all(keep=committed.declined)
        self._store.mark_saved()

        log.info("Scenario persisted", scenario_id=self._store.identity)
        return Result.ok(self._store.snapshot())

    # -------------------------------------------------------------------------
    # Load / initialize / delete
    # -------------------------------------------------------------------------

    async def load(self, scenario_id: str) -> Result[Document]:
        """Replace the active document with a persisted one.

        Dirty flags are left alone; clean mounted views re-sync on replace.
        A failed load leaves the previous document active.
        """
        try:
            with self._exclusive("load"):
                response = await self._call("get", self._adapter.get(scenario_id))
                if not response.success:
                    return Result.fail(_remote_failure("load", response))
                if not isinstance(response.data, dict):
                    return Result.fail(RemoteFailureError("load", "response carried no document"))

                document = self._store.init(response.data, source="load")
                logger.info("Scenario loaded", scenario_id=self._store.identity)
                return Result.ok(document)
        except OperationInProgressError as e:
            logger.warning(str(e))
            return Result.fail(e)

    async def initialize(self, variant: str | None = None) -> Result[Document]:
        """Install a fresh document built from the defaults provider."""
        try:
            with self._exclusive("initialize"):
                return await self._initialize(variant)
        except OperationInProgressError as e:
            logger.warning(str(e))
            return Result.fail(e)

    async def _initialize(self, variant: str | None) -> Result[Document]:
        variant = variant or self._defaults_variant
        response = await self._call("defaults", self._defaults.get_defaults(variant))
        if not response.success:
            return Result.fail(_remote_failure("initialize", response))
        if not isinstance(response.data, dict):
            return Result.fail(RemoteFailureError("initialize", "defaults carried no body"))

        body = {k: v for k, v in response.data.items() if k not in SERVER_FIELDS}
        body.setdefault("name", DEFAULT_NAME)
        body.setdefault("description", "")

        document = self._store.init(body, source="initialize")
        logger.info("Scenario initialized", variant=variant or "default")
        return Result.ok(document)

    async def delete_scenario(self, scenario_id: str) -> Result[str]:
        """Delete a persisted scenario.

        Deleting the active scenario clears the store and installs a fresh
        one from defaults.
        """
        try:
            with self._exclusive("delete"):
                response = await self._call("delete", self._adapter.delete(scenario_id))
                if not response.success:
                    return Result.fail(_remote_failure("delete", response))

                logger.info("Scenario deleted", scenario_id=scenario_id)
                if self._store.identity is not None and self._store.identity == str(scenario_id):
                    self._store.clear(source="delete")
                    initialized = await self._initialize(None)
                    if not initialized.success:
                        logger.error(f"Re-initialize after delete failed: {initialized.error}")

                return Result.ok(str(scenario_id))
        except OperationInProgressError as e:
            logger.warning(str(e))
            return Result.fail(e)

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def list_scenarios(
        self, page: int = 1, page_size: int | None = None, search: str | None = None
    ) -> Result[ScenarioListing]:
        """Page through persisted scenarios."""
        response = await self._call(
            "list", self._adapter.list(page, page_size or self._page_size, search)
        )
        if not response.success:
            return Result.fail(_remote_failure("list", response))

        listing = response.data
        if not isinstance(listing, ScenarioListing):
            listing = ScenarioListing.model_validate(listing or {})
        return Result.ok(listing)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if self._running is not None:
            raise OperationInProgressError(operation, self._running)
        self._running = operation
        try:
            yield
        finally:
            self._running = None

    async def _call(self, operation: str, call: Awaitable[RemoteResponse]) -> RemoteResponse:
        # Custom adapters may raise; fold that into a failed response.
        try:
            return await call
        except Exception as e:
            logger.exception(f"Remote '{operation}' raised")
            return RemoteResponse.fail(str(e))


def _metadata(metadata: MetadataInput) -> ScenarioMetadata:
    if metadata is None:
        return ScenarioMetadata()
    if isinstance(metadata, ScenarioMetadata):
        return metadata
    return ScenarioMetadata.model_validate(metadata)


def _remote_failure(operation: str, response: RemoteResponse) -> RemoteFailureError:
    return RemoteFailureError(operation, response.error or "unknown error", response.status_code)
