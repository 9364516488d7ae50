"""Remote persistence adapters for scenario documents.

Every adapter call is async and returns a ``RemoteResponse``; none of them
raise for a failed request.
"""

import copy
import json
import math
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable
from urllib.parse import quote

import httpx

from ..control.retry import RetryConfig
from ..types import Document, Pagination, RemoteResponse, ScenarioListing, ScenarioSummary
from ..utils.logging import get_logger
from .http import DEFAULT_TIMEOUT, RemoteClient

logger = get_logger("remote.adapter")

SCENARIOS_ROUTE = "/api/scenarios"


def normalize_identity(document: Any) -> Any:
    """Rename a top-level Mongo-style ``_id`` to ``id`` (as a string)."""
    if not isinstance(document, dict) or "_id" not in document:
        return document
    normalized = {k: v for k, v in document.items() if k != "_id"}
    normalized.setdefault("id", str(document["_id"]))
    return normalized


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex[:24]


class ScenarioAdapter(ABC):
    """Abstract interface to the scenario persistence service.

    Implementations:
    - InMemoryScenarioAdapter: process-local, for tests and offline use
    - FileScenarioAdapter: one JSON file per scenario
    - HttpScenarioAdapter: the REST service at ``/api/scenarios``

    Example:
        adapter = InMemoryScenarioAdapter()
        created = await adapter.create({"name": "Base case", "settings": {}})
        if created.success:
            loaded = await adapter.get(created.data["id"])
    """

    @abstractmethod
    async def list(
        self, page: int = 1, page_size: int = 100, search: str | None = None
    ) -> RemoteResponse:
        """Page of ``ScenarioSummary`` entries as a ``ScenarioListing``."""
        pass

    @abstractmethod
    async def get(self, scenario_id: str) -> RemoteResponse:
        """Full document for ``scenario_id``."""
        pass

    @abstractmethod
    async def create(self, payload: Document) -> RemoteResponse:
        """Persist a new document; data carries ``id``/``createdAt``/``updatedAt``."""
        pass

    @abstractmethod
    async def update(self, scenario_id: str, payload: Document) -> RemoteResponse:
        """Overwrite an existing document; data carries ``updatedAt``."""
        pass

    @abstractmethod
    async def delete(self, scenario_id: str) -> RemoteResponse:
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass


class LocalScenarioAdapter(ScenarioAdapter):
    """Adapter whose records live on this machine.

    Subclasses provide record storage; this class implements the service's
    behavior on top of it: ids and timestamps are assigned here, ``name`` is
    required on create, unknown ids fail with 404, and listings are sorted
    newest first.
    """

    def __init__(self, id_factory: Callable[[], str] | None = None):
        self._id_factory = id_factory or _new_id
        self._lock = threading.RLock()
        self._stats: dict[str, int] = {}
        self._failures: dict[str, RemoteResponse] = {}

    # -- storage hooks ----------------------------------------------------

    @abstractmethod
    def _read(self, scenario_id: str) -> Document | None:
        pass

    @abstractmethod
    def _write(self, scenario_id: str, document: Document) -> None:
        pass

    @abstractmethod
    def _remove(self, scenario_id: str) -> bool:
        pass

    @abstractmethod
    def _read_all(self) -> Iterable[Document]:
        pass

    # -- failure injection and stats --------------------------------------

    def inject_failure(
        self, operation: str, error: str = "Injected failure", status_code: int = 500
    ) -> None:
        """Make the next ``operation`` call fail with the given error."""
        with self._lock:
            self._failures[operation] = RemoteResponse.fail(error, status_code=status_code)

    def get_stats(self) -> dict[str, int]:
        """Number of calls per operation."""
        with self._lock:
            return dict(self._stats)

    def _begin(self, operation: str) -> RemoteResponse | None:
        with self._lock:
            self._stats[operation] = self._stats.get(operation, 0) + 1
            failure = self._failures.pop(operation, None)
        if failure is not None:
            logger.error(f"{operation}: {failure.error}")
        return failure

    # -- operations -------------------------------------------------------

    async def list(
        self, page: int = 1, page_size: int = 100, search: str | None = None
    ) -> RemoteResponse:
        failure = self._begin("list")
        if failure:
            return failure

        page = max(int(page), 1)
        page_size = max(int(page_size), 1)

        with self._lock:
            records = [normalize_identity(r) for r in self._read_all()]

        if search:
            needle = search.lower()
            records = [
                r
                for r in records
                if needle in str(r.get("name", "")).lower()
                or needle in str(r.get("description", "")).lower()
            ]

        records.sort(key=lambda r: r.get("createdAt") or "", reverse=True)
        total = len(records)
        start = (page - 1) * page_size
        items = [ScenarioSummary.model_validate(r) for r in records[start : start + page_size]]

        listing = ScenarioListing(
            items=items,
            pagination=Pagination(
                total=total,
                page=page,
                limit=page_size,
                pages=math.ceil(total / page_size),
            ),
        )
        return RemoteResponse.ok(listing)

    async def get(self, scenario_id: str) -> RemoteResponse:
        failure = self._begin("get")
        if failure:
            return failure

        with self._lock:
            record = self._read(str(scenario_id))
        if record is None:
            return RemoteResponse.fail("Scenario not found", status_code=404)
        return RemoteResponse.ok(copy.deepcopy(record))

    async def create(self, payload: Document) -> RemoteResponse:
        failure = self._begin("create")
        if failure:
            return failure

        if not payload.get("name"):
            return RemoteResponse.fail("Name is required", status_code=400)

        scenario_id = str(self._id_factory())
        timestamp = _now()
        record = {k: copy.deepcopy(v) for k, v in payload.items() if k not in ("id", "_id")}
        record.update(id=scenario_id, createdAt=timestamp, updatedAt=timestamp)

        with self._lock:
            self._write(scenario_id, record)

        logger.info(f"Created scenario {scenario_id}")
        return RemoteResponse.ok(
            {
                "id": scenario_id,
                "name": record.get("name"),
                "description": record.get("description", ""),
                "createdAt": timestamp,
                "updatedAt": timestamp,
            },
            status_code=201,
        )

    async def update(self, scenario_id: str, payload: Document) -> RemoteResponse:
        failure = self._begin("update")
        if failure:
            return failure

        scenario_id = str(scenario_id)
        with self._lock:
            existing = self._read(scenario_id)
            if existing is None:
                return RemoteResponse.fail("Scenario not found", status_code=404)

            timestamp = _now()
            record = {
                k: copy.deepcopy(v) for k, v in payload.items() if k not in ("id", "_id")
            }
            record.update(
                id=scenario_id,
                createdAt=existing.get("createdAt"),
                updatedAt=timestamp,
            )
            self._write(scenario_id, record)

        logger.info(f"Updated scenario {scenario_id}")
        return RemoteResponse.ok(
            {
                "id": scenario_id,
                "name": record.get("name"),
                "description": record.get("description", ""),
                "updatedAt": timestamp,
            }
        )

    async def delete(self, scenario_id: str) -> RemoteResponse:
        failure = self._begin("delete")
        if failure:
            return failure

        with self._lock:
            removed = self._remove(str(scenario_id))
        if not removed:
            return RemoteResponse.fail("Scenario not found", status_code=404)

        logger.info(f"Deleted scenario {scenario_id}")
        return RemoteResponse.ok({"id": str(scenario_id)})


class InMemoryScenarioAdapter(LocalScenarioAdapter):
    """Process-local adapter. Records are deep-copied in and out."""

    def __init__(
        self,
        scenarios: dict[str, Document] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        super().__init__(id_factory=id_factory)
        self._records: dict[str, Document] = {}
        for scenario_id, document in (scenarios or {}).items():
            self._records[str(scenario_id)] = {**copy.deepcopy(document), "id": str(scenario_id)}

    def _read(self, scenario_id: str) -> Document | None:
        record = self._records.get(scenario_id)
        return copy.deepcopy(record) if record is not None else None

    def _write(self, scenario_id: str, document: Document) -> None:
        self._records[scenario_id] = copy.deepcopy(document)

    def _remove(self, scenario_id: str) -> bool:
        return self._records.pop(scenario_id, None) is not None

    def _read_all(self) -> Iterable[Document]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def __len__(self) -> int:
        return len(self._records)


class FileScenarioAdapter(LocalScenarioAdapter):
    """One JSON file per scenario under ``base_dir``."""

    def __init__(self, base_dir: str | Path, id_factory: Callable[[], str] | None = None):
        """Initialize file storage.

        Args:
            base_dir: Directory holding the scenario files.
            id_factory: Optional id generator.
        """
        super().__init__(id_factory=id_factory)
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, scenario_id: str) -> Path:
        # Sanitize scenario_id for filesystem
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in scenario_id)
        return self._base_dir / f"scenario_{safe_id}.json"

    def _read(self, scenario_id: str) -> Document | None:
        path = self._path(scenario_id)
        if not path.exists():
            return None
        with open(path) as f:
            return json.load(f)

    def _write(self, scenario_id: str, document: Document) -> None:
        path = self._path(scenario_id)

        # Write atomically
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(document, f, indent=2, default=str)
        temp_path.replace(path)

    def _remove(self, scenario_id: str) -> bool:
        path = self._path(scenario_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _read_all(self) -> Iterable[Document]:
        records = []
        for path in sorted(self._base_dir.glob("scenario_*.json")):
            with open(path) as f:
                records.append(json.load(f))
        return records


class HttpScenarioAdapter(ScenarioAdapter):
    """Adapter for the REST scenario service.

    Routes:
        GET    /api/scenarios?page=&limit=&search=
        GET    /api/scenarios/{id}
        POST   /api/scenarios
        PUT    /api/scenarios/{id}
        DELETE /api/scenarios/{id}

    The service's ``_id`` fields are exposed as ``id``.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: RemoteClient | None = None,
    ):
        if client is None and endpoint is None:
            raise ValueError("HttpScenarioAdapter needs an endpoint or a RemoteClient")
        self._owns_client = client is None
        self._remote = client or RemoteClient(
            endpoint, timeout=timeout, retry=retry, transport=transport
        )

    @staticmethod
    def _item_route(scenario_id: str) -> str:
        return f"{SCENARIOS_ROUTE}/{quote(str(scenario_id), safe='')}"

    async def list(
        self, page: int = 1, page_size: int = 100, search: str | None = None
    ) -> RemoteResponse:
        params: dict[str, Any] = {"page": page, "limit": page_size}
        if search:
            params["search"] = search

        response = await self._remote.request(
            "GET", SCENARIOS_ROUTE, operation="list", params=params
        )
        if not response.success:
            return response

        body = response.data or {}
        if isinstance(body, dict):
            raw_items = body.get("scenarios", body.get("items", []))
            raw_pagination = body.get("pagination") or {}
        else:
            raw_items = body
            raw_pagination = {}

        items = [ScenarioSummary.model_validate(normalize_identity(i)) for i in raw_items]
        pagination = Pagination.model_validate(
            {"total": len(items), "page": page, "limit": page_size, **raw_pagination}
        )
        return RemoteResponse.ok(
            ScenarioListing(items=items, pagination=pagination),
            status_code=response.status_code or 200,
        )

    async def get(self, scenario_id: str) -> RemoteResponse:
        response = await self._remote.request(
            "GET", self._item_route(scenario_id), operation="get"
        )
        return self._normalized(response)

    async def create(self, payload: Document) -> RemoteResponse:
        response = await self._remote.request(
            "POST", SCENARIOS_ROUTE, operation="create", json=payload
        )
        return self._normalized(response)

    async def update(self, scenario_id: str, payload: Document) -> RemoteResponse:
        response = await self._remote.request(
            "PUT", self._item_route(scenario_id), operation="update", json=payload
        )
        return self._normalized(response)

    async def delete(self, scenario_id: str) -> RemoteResponse:
        response = await self._remote.request(
            "DELETE", self._item_route(scenario_id), operation="delete"
        )
        return self._normalized(response)

    async def close(self) -> None:
        if self._owns_client:
            await self._remote.close()

    @staticmethod
    def _normalized(response: RemoteResponse) -> RemoteResponse:
        if not response.success:
            return response
        return response.model_copy(update={"data": normalize_identity(response.data)})
