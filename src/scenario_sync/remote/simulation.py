"""Simulation service client."""

from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx

from ..control.retry import RetryConfig
from ..types import RemoteResponse, SimulationRequest
from ..utils.logging import get_logger
from .http import DEFAULT_TIMEOUT, RemoteClient

logger = get_logger("remote.simulation")

DISTRIBUTIONS_ROUTE = "/api/simulation/distributions"


class SimulationService(ABC):
    """Runs a batch of distribution simulations.

    A successful response's data is ``{"simulationInfo": [result, ...]}``
    where each result echoes its ``distribution`` (including its ``key``).
    """

    @abstractmethod
    async def simulate(self, request: SimulationRequest) -> RemoteResponse:
        pass

    async def close(self) -> None:
        pass


class HttpSimulationService(SimulationService):
    """Simulation via ``POST /api/simulation/distributions``."""

    def __init__(
        self,
        endpoint: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: RemoteClient | None = None,
    ):
        if client is None and endpoint is None:
            raise ValueError("HttpSimulationService needs an endpoint or a RemoteClient")
        self._owns_client = client is None
        self._remote = client or RemoteClient(
            endpoint, timeout=timeout, retry=retry, transport=transport
        )

    async def simulate(self, request: SimulationRequest) -> RemoteResponse:
        payload = request.model_dump(mode="json", by_alias=True)
        logger.info(f"Simulating {len(request.distributions)} distribution(s)")
        return await self._remote.request(
            "POST", DISTRIBUTIONS_ROUTE, operation="simulate", json=payload
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._remote.close()


class LocalSimulationService(SimulationService):
    """Simulation computed by a local function.

    ``handler`` receives the request and returns the ``simulationInfo``
    list. Exceptions it raises become failed responses.
    """

    def __init__(self, handler: Callable[[SimulationRequest], list[dict[str, Any]]]):
        self._handler = handler
        self.requests: list[SimulationRequest] = []

    async def simulate(self, request: SimulationRequest) -> RemoteResponse:
        self.requests.append(request)
        try:
            results = self._handler(request)
        except Exception as e:
            logger.error(f"Local simulation failed: {e}")
            return RemoteResponse.fail(str(e))
        return RemoteResponse.ok({"simulationInfo": results})
