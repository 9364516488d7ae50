"""Shared HTTP plumbing for the remote collaborators.

Every call goes through ``RemoteClient.request``, which retries transient
transport failures and folds the server's ``{success, data, error}`` envelope
into a ``RemoteResponse``. Nothing here raises for an HTTP or transport
failure; callers inspect ``success``.
"""

from dataclasses import replace
from typing import Any

import httpx

from ..control.retry import RetryConfig, RetryStrategy
from ..exceptions import RetryExhaustedError
from ..types import RemoteResponse
from ..utils.logging import get_logger

logger = get_logger("remote.http")

DEFAULT_TIMEOUT = 30.0

_ENVELOPE_FIELDS = ("success", "message", "timestamp")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

# Failures raised before the request left the client
_UNSENT_ERRORS = [httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout]


class RemoteClient:
    """Thin wrapper over ``httpx.AsyncClient``.

    Example:
        async with RemoteClient("http://localhost:5000") as remote:
            response = await remote.request("GET", "/api/defaults", operation="defaults")
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the client.

        Args:
            endpoint: Base URL of the service.
            timeout: Per-request timeout in seconds.
            retry: Retry configuration. Transport errors are retried unless
                the config names its own retryable errors; POST is retried
                only for failures that happened before sending.
            transport: Optional httpx transport (tests pass a MockTransport).
            headers: Extra headers sent with every request.
        """
        retry = retry or RetryConfig()
        if not retry.retryable_errors:
            retry = replace(retry, retryable_errors=[httpx.TransportError])
        if not retry.unsent_errors:
            retry = replace(retry, unsent_errors=list(_UNSENT_ERRORS))

        self._endpoint = endpoint.rstrip("/")
        self._retry = RetryStrategy(retry)
        self._client = httpx.AsyncClient(
            base_url=self._endpoint,
            timeout=timeout,
            transport=transport,
            headers=headers,
        )

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def retry(self) -> RetryStrategy:
        return self._retry

    async def request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> RemoteResponse:
        """Send one request and return its envelope."""
        logger.debug(f"{operation}: {method} {url}")
        try:
            response = await self._retry.execute(
                self._client.request,
                method,
                url,
                label=operation,
                idempotent=method.upper() in IDEMPOTENT_METHODS,
                params=params,
                json=json,
            )
        except RetryExhaustedError as e:
            logger.error(f"{operation}: {e}")
            return RemoteResponse.fail(f"{operation} failed: {e.last_error}")
        except httpx.HTTPError as e:
            logger.error(f"{operation}: {e}")
            return RemoteResponse.fail(f"{operation} failed: {e}")

        return to_envelope(response, operation)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def to_envelope(response: httpx.Response, operation: str) -> RemoteResponse:
    """Convert an HTTP response into a ``RemoteResponse``.

    Bodies shaped ``{"success": ..., "data": ...}`` are unwrapped. An envelope
    without ``data`` yields its remaining fields (``{"success": true,
    "defaults": {...}}`` gives ``{"defaults": {...}}``). Any other JSON body
    becomes ``data`` as is.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    status = response.status_code

    if response.is_error:
        message = _error_message(body) or response.reason_phrase or f"HTTP {status}"
        logger.error(f"{operation}: server returned {status}: {message}")
        return RemoteResponse.fail(message, status_code=status)

    if isinstance(body, dict) and "success" in body:
        if not body["success"]:
            message = _error_message(body) or "Request failed"
            logger.error(f"{operation}: {message}")
            return RemoteResponse.fail(message, status_code=status)
        if "data" in body:
            return RemoteResponse.ok(body["data"], status_code=status)
        payload = {k: v for k, v in body.items() if k not in _ENVELOPE_FIELDS}
        return RemoteResponse.ok(payload, status_code=status)

    return RemoteResponse.ok(body, status_code=status)


def _error_message(body: Any) -> str | None:
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if message:
            return str(message)
    return None
