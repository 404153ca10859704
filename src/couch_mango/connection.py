"""httpx client lifecycle, status mapping and health check for one CouchDB server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import (
    CouchConnectionError,
    CouchHTTPError,
    CouchProtocolError,
    DocumentConflictError,
    DocumentNotFoundError,
)

if TYPE_CHECKING:
    from .settings import CouchSettings

logger = logging.getLogger("couch_mango.connection")

_STATUS_ERRORS: dict[int, type[CouchHTTPError]] = {
    404: DocumentNotFoundError,
    409: DocumentConflictError,
}


def error_from_response(response: httpx.Response) -> CouchHTTPError:
    """Build the error for a non-2xx answer from its ``{error, reason}`` body."""
    error = reason = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        reason = body.get("reason")
    request = response.request
    message = f"{request.method} {request.url.path} -> {response.status_code}"
    if error or reason:
        message += f" {error}: {reason}"
    cls = _STATUS_ERRORS.get(response.status_code, CouchHTTPError)
    return cls(message, status_code=response.status_code, error=error, reason=reason)


class CouchConnectionManager:
    """Wrap an ``httpx.AsyncClient`` bound to one CouchDB server.

    Extra keyword arguments go to ``httpx.AsyncClient`` (e.g. ``transport``).
    """

    def __init__(self, settings: CouchSettings, **client_kwargs: Any) -> None:
        self._settings = settings
        self._client_kwargs = client_kwargs
        self._client: httpx.AsyncClient | None = None

    @property
    def settings(self) -> CouchSettings:
        return self._settings

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the client, creating it on first use. Idempotent."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.server_url,
                auth=self._settings.auth,
                timeout=self._settings.timeout,
                headers={"Accept": "application/json"},
                **self._client_kwargs,
            )
        return self._client

    async def connect(self, database: str | None = None) -> httpx.AsyncClient:
        """Create the client and check that ``database`` exists."""
        client = self.client
        if database is None:
            return client
        try:
            response = await client.get(f"/{database}")
        except httpx.TransportError as e:
            raise CouchConnectionError(
                f"Cannot reach CouchDB at {self._settings.server_url}: {e}"
            ) from e
        if response.status_code == 404:
            raise CouchConnectionError(f"Database {database!r} does not exist")
        if response.is_error:
            raise CouchConnectionError(str(error_from_response(response)))
        return client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Non-2xx answers raise a :class:`CouchHTTPError` subclass; transport
        errors propagate as raised by httpx.
        """
        response = await self.client.request(method, path, params=params, json=json)
        logger.debug("%s %s -> %s", method, path, response.status_code)
        if response.is_error:
            raise error_from_response(response)
        try:
            return response.json()
        except ValueError as e:
            raise CouchProtocolError(f"{method} {path} returned a non-JSON body") from e

    async def list_databases(self) -> list[str]:
        names = await self.request("GET", "/_all_dbs")
        if not isinstance(names, list):
            raise CouchProtocolError(f"_all_dbs returned {type(names).__name__}, expected a list")
        return names

    async def head(self, path: str) -> httpx.Response:
        response = await self.client.head(path)
        if response.is_error:
            raise error_from_response(response)
        return response

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        """List databases; return True if the server answered."""
        try:
            await self.list_databases()
            return True
        except (httpx.HTTPError, CouchHTTPError, CouchProtocolError):
            return False
