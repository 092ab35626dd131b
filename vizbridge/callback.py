"""Async HTTP delivery of RPC responses to the control process.

The control process registers its callback URL with an ``init`` command.
Each RPC response is POSTed there as ``{"result": ...}`` or
``{"error": "..."}`` with the request id as the ``id`` query parameter.
Responses completed before the URL is known wait for it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

import httpx

from vizbridge.exceptions import CallbackUnavailableError

if TYPE_CHECKING:
    from vizbridge.rpc import RpcResponse

log = logging.getLogger(__name__)

__all__ = ["CallbackClient"]


class CallbackClient:
    """Posts RPC responses to the control process callback URL."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout_s: float = 30.0,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s
        self._url: asyncio.Future[str] | None = None

    def _url_future(self) -> asyncio.Future[str]:
        if self._url is None:
            self._url = asyncio.get_running_loop().create_future()
        return self._url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
            self._owns_client = True
        return self._client

    @property
    def url(self) -> str | None:
        fut = self._url
        if fut is None or not fut.done() or fut.exception() is not None:
            return None
        return fut.result()

    def set_url(self, url: str) -> None:
        """Register the callback URL; later registrations replace it."""
        fut = self._url_future()
        if fut.done():
            self._url = asyncio.get_running_loop().create_future()
            fut = self._url
        fut.set_result(url)
        log.info("RPC callback URL registered: %s", url)

    def abandon_pending(self) -> None:
        """Fail every post still waiting for a callback URL.

        A later ``set_url`` registers a fresh URL as usual.
        """
        fut = self._url_future()
        if fut.done():
            return
        fut.set_exception(CallbackUnavailableError("no callback URL was registered"))
        # Retrieved here; posts waiting on the future see the same error.
        fut.exception()
        log.info("callback URL never registered; pending responses dropped")

    async def post(self, response: RpcResponse) -> bool:
        """Deliver *response*; returns False (and logs) if delivery failed."""
        try:
            url = await asyncio.shield(self._url_future())
        except CallbackUnavailableError as exc:
            log.error("failed to deliver RPC response %s: %s", response.id, exc)
            return False
        body = json.dumps(response.to_wire(), default=str)
        try:
            resp = await self._get_client().post(
                url,
                params={"id": response.id},
                content=body,
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.error("failed to deliver RPC response %s: %s", response.id, exc)
            return False
        return True

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
