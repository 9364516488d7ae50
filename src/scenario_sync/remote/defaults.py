"""Default scenario bodies used by ``initialize``."""

import copy
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ..control.retry import RetryConfig
from ..types import Document, RemoteResponse
from ..utils.logging import get_logger
from .http import DEFAULT_TIMEOUT, RemoteClient

logger = get_logger("remote.defaults")

DEFAULTS_ROUTE = "/api/defaults"
DEFAULT_VARIANT = "default"


def default_scenario() -> Document:
    """Baseline scenario body with no identity."""
    project_life = 20
    return {
        "name": "New Scenario",
        "description": "",
        "settings": {
            "general": {
                "projectName": "",
                "startDate": None,
                "projectLife": project_life,
            },
            "project": {
                "windFarm": {"numWTGs": 20, "mwPerWTG": 3.5, "capacityFactor": 35},
            },
            "modules": {
                "financing": {"capex": 50000000, "devex": 10000000, "model": "Balance-Sheet"},
                "cost": {
                    "annualBaseOM": 5000000,
                    "escalationRate": {
                        "key": "escalationRate",
                        "type": "normal",
                        "parameters": {"value": 2, "stdDev": 0.5},
                    },
                },
                "revenue": {
                    "energyProduction": {
                        "key": "energyProduction",
                        "type": "normal",
                        "parameters": {"value": 1000, "stdDev": 100},
                    },
                    "electricityPrice": {
                        "key": "electricityPrice",
                        "type": "fixed",
                        "parameters": {"value": 50},
                    },
                    "downtimePerEvent": {
                        "key": "downtimePerEvent",
                        "type": "weibull",
                        "parameters": {"scale": 24, "shape": 1.5},
                    },
                    "windVariability": {
                        "key": "windVariability",
                        "type": "fixed",
                        "parameters": {"value": 0},
                    },
                },
                "contracts": {"oemContracts": []},
                "risk": {"insuranceEnabled": False, "reserveFunds": 0},
            },
            "simulation": {
                "iterations": 10000,
                "seed": 42,
                "percentiles": [
                    {"value": 50, "description": "primary"},
                    {"value": 75, "description": "upper_bound"},
                    {"value": 25, "description": "lower_bound"},
                ],
                "primaryPercentile": 50,
            },
        },
        "simulation": {"inputSim": {}, "outputSim": []},
    }


class DefaultsProvider(ABC):
    """Source of default scenario bodies, keyed by variant."""

    @abstractmethod
    async def get_defaults(self, variant: str | None = None) -> RemoteResponse:
        """Fetch the default body for ``variant``; data is the body."""
        pass

    async def close(self) -> None:
        pass


class StaticDefaultsProvider(DefaultsProvider):
    """Defaults served from memory.

    Example:
        provider = StaticDefaultsProvider({"offshore": offshore_body})
        response = await provider.get_defaults("offshore")
    """

    def __init__(self, variants: dict[str, Document] | None = None):
        self._variants: dict[str, Document] = {DEFAULT_VARIANT: default_scenario()}
        self._variants.update(copy.deepcopy(variants or {}))

    def variants(self) -> list[str]:
        return sorted(self._variants)

    async def get_defaults(self, variant: str | None = None) -> RemoteResponse:
        variant = variant or DEFAULT_VARIANT
        body = self._variants.get(variant)
        if body is None:
            logger.error(f"Unknown defaults variant '{variant}'")
            return RemoteResponse.fail(f"Unknown defaults variant '{variant}'", status_code=404)
        return RemoteResponse.ok(copy.deepcopy(body))


class HttpDefaultsProvider(DefaultsProvider):
    """Defaults fetched from ``GET /api/defaults``.

    The service answers ``{"success": true, "defaults": {...}}``; a body that
    carries only settings is wrapped into a full scenario.
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
            raise ValueError("HttpDefaultsProvider needs an endpoint or a RemoteClient")
        self._owns_client = client is None
        self._remote = client or RemoteClient(
            endpoint, timeout=timeout, retry=retry, transport=transport
        )

    async def get_defaults(self, variant: str | None = None) -> RemoteResponse:
        params = {"variant": variant} if variant else None
        response = await self._remote.request(
            "GET", DEFAULTS_ROUTE, operation="defaults", params=params
        )
        if not response.success:
            return response

        body = _unwrap_defaults(response.data)
        if body is None:
            return RemoteResponse.fail("Defaults response carried no body", response.status_code)
        return RemoteResponse.ok(body, status_code=response.status_code or 200)

    async def close(self) -> None:
        if self._owns_client:
            await self._remote.close()


def _unwrap_defaults(data: Any) -> Document | None:
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("defaults"), dict):
        data = data["defaults"]
    if "settings" in data:
        return data
    # Bare settings block
    base = default_scenario()
    base["settings"] = data
    return base
