"""
JSON-RPC Transport
==================

Minimal async JSON-RPC 2.0 client over httpx, shared by the chain node,
bundler and paymaster clients.

Version: 0.1.0
"""

import itertools
from typing import Any

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger


logger = get_logger(__name__)


class JsonRpcTransport:
    """
    JSON-RPC over HTTP POST.

    Transport failures, non-2xx responses and JSON-RPC error objects are
    all raised as `ExternalServiceError` tagged with `service`.
    """

    def __init__(
        self,
        url: str,
        service: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._service = service
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        try:
            response = await self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "rpc_http_error",
                service=self._service,
                method=method,
                status_code=e.response.status_code,
            )
            raise ExternalServiceError(
                self._service,
                f"{method} failed",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("rpc_transport_error", service=self._service, method=method, error=str(e))
            raise ExternalServiceError(self._service, f"{method} failed: {e}") from e

        body = response.json()
        if body.get("error"):
            error = body["error"]
            logger.warning(
                "rpc_error_response",
                service=self._service,
                method=method,
                code=error.get("code"),
                message=error.get("message"),
            )
            raise ExternalServiceError(self._service, f"{method}: {error.get('message', error)}")

        return body.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()
