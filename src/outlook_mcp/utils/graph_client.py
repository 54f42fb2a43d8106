"""Thin Microsoft Graph client built on the auth façade.

Every request first calls
:meth:`~outlook_mcp.auth.service.AuthService.ensure_authenticated`, so callers
never handle tokens themselves.  A missing or unusable token surfaces as
:class:`~outlook_mcp.auth.errors.NeedsReauthError`, whose message tells the
user what to do next.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping

import httpx

from outlook_mcp.auth.errors import NeedsReauthError
from outlook_mcp.auth.service import AuthService

logger = logging.getLogger("outlook-mcp.utils.graph_client")

GRAPH_BASE_URL: Final[str] = "https://graph.microsoft.com/v1.0"


class GraphClient:
    """Authenticated JSON requests against Microsoft Graph."""

    def __init__(
        self,
        auth: AuthService,
        *,
        base_url: str = GRAPH_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Send one request with a fresh bearer token and return the JSON body."""
        token = await self.auth.ensure_authenticated()
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            resp = await client.request(
                method,
                self._url(path),
                params=dict(params) if params else None,
                json=json,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
            )

        if resp.status_code == 401:
            raise NeedsReauthError(
                "Authentication required. Microsoft Graph rejected the access token. "
                "Run the 'authenticate' tool to sign in again."
            )
        resp.raise_for_status()
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def get_paginated(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        max_count: int = 0,
    ) -> dict[str, Any]:
        """Follow ``@odata.nextLink`` and collect up to *max_count* items (0 = all)."""
        items: list[Any] = []
        response = await self.get(path, params)
        items.extend(response.get("value") or [])
        logger.debug("Pagination: retrieved %d items so far", len(items))

        next_link = response.get("@odata.nextLink")
        while next_link:
            if max_count > 0 and len(items) >= max_count:
                logger.debug("Pagination: reached max count of %d, stopping", max_count)
                break
            # nextLink already carries the original query
            response = await self.get(next_link)
            items.extend(response.get("value") or [])
            logger.debug("Pagination: retrieved %d items so far", len(items))
            next_link = response.get("@odata.nextLink")

        if max_count > 0:
            items = items[:max_count]
        return {"value": items, "@odata.count": len(items)}
