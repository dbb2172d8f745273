"""
HTTP transport for remote data sources.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import MalformedResponseError, TransportError

from ..query.params import RequestDescriptor


NETWORK_ERROR_MESSAGE = "Network Error - Please check your connection"
DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"

USER_MESSAGES: Dict[int, str] = {
    0: NETWORK_ERROR_MESSAGE,
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    500: "Internal Server Error",
}


def user_message_for(status_code: Optional[int]) -> str:
    """User-facing text for a failed request."""
    if status_code is None:
        return DEFAULT_ERROR_MESSAGE
    return USER_MESSAGES.get(status_code, DEFAULT_ERROR_MESSAGE)


class HttpTransport:
    """Executes GET descriptors and returns decoded JSON payloads.

    There are no retries; a failed call surfaces as
    ``TransportError`` and the caller decides what to do with it.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._transport = transport
        self.logger = get_logger("datasource.transport")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport, headers=self.headers)

    async def fetch(self, request: RequestDescriptor) -> Any:
        """Execute ``request`` and return its JSON body."""
        params = list(request.params)
        try:
            async with self._client() as client:
                response = await client.get(request.url, params=params)
        except httpx.HTTPError as exc:
            self.logger.error("Remote data source unreachable", url=request.url, error=str(exc))
            raise TransportError(
                str(exc) or type(exc).__name__,
                status_code=0,
                user_message=NETWORK_ERROR_MESSAGE,
                details={"url": request.url},
            )

        if response.status_code >= 400:
            self.logger.error(
                "Remote data source request failed",
                url=request.url,
                params=params,
                status_code=response.status_code,
            )
            raise TransportError(
                f"Unexpected status {response.status_code}",
                status_code=response.status_code,
                user_message=user_message_for(response.status_code),
                details={"url": request.url, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError:
            self.logger.warning("Remote data source returned non-JSON body", url=request.url)
            raise MalformedResponseError(details={"url": request.url, "status_code": response.status_code})

        self.logger.debug("Remote data retrieved", url=request.url, params=params)
        return payload
