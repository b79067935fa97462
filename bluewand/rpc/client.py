"""
RPC client: handshake over HTTP, event streams over Server-Sent Events.
"""

from __future__ import annotations

import json
import logging
import ssl
from collections.abc import AsyncIterator, Callable
from typing import Any

import aiohttp
from aiohttp_sse_client import client as sse_client

from bluewand.config import ClientConfig
from bluewand.core.errors import RPCError
from bluewand.core.model import ButtonEvent, DomainEvent, MotionEvent

LOGGER = logging.getLogger(__name__)


def parse_button(data: dict[str, Any]) -> ButtonEvent:
    return ButtonEvent(pressed=bool(data["pressed"]))


def parse_motion(data: dict[str, Any]) -> MotionEvent:
    return MotionEvent(w=int(data["w"]), x=int(data["x"]), y=int(data["y"]), z=int(data["z"]))


class WandClient:
    """Async client for a bluewand server.

    Use as an async context manager; it owns one ``aiohttp.ClientSession``.
    """

    def __init__(self, config: ClientConfig) -> None:
        config.validate()
        self.config = config
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> WandClient:
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _url(self, rpc: str) -> str:
        return f"{self.config.base_url}/bluewand/{rpc}"

    def _request_options(self) -> dict[str, Any]:
        if not self.config.tls:
            return {}
        context = ssl.create_default_context(cafile=self.config.cert)
        return {"ssl": context, "server_hostname": self.config.server_host_override}

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("WandClient must be used as 'async with WandClient(...)'")
        return self._session

    async def on_connect(self) -> str:
        """Handshake and return the wand identifier."""
        session = self._require_session()
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with session.post(
                self._url("OnConnect"),
                json={},
                timeout=timeout,
                **self._request_options(),
            ) as response:
                body = await response.json(content_type=None)
                if response.status >= 400:
                    raise RPCError(response.status, str(body.get("detail", "Unknown error")))
                return str(body["uid"])
        except aiohttp.ClientError as exc:
            raise RPCError(0, f"Connection error: {exc}") from exc

    def on_button(self, uid: str) -> AsyncIterator[ButtonEvent]:
        return self._stream("OnButton", uid, "button", parse_button)  # type: ignore[return-value]

    def on_motion(self, uid: str) -> AsyncIterator[MotionEvent]:
        return self._stream("OnMotion", uid, "motion", parse_motion)  # type: ignore[return-value]

    async def _stream(
        self,
        rpc: str,
        uid: str,
        event_type: str,
        parse: Callable[[dict[str, Any]], DomainEvent],
    ) -> AsyncIterator[DomainEvent]:
        session = self._require_session()
        url = self._url(rpc)
        LOGGER.debug("opening %s stream: %s", event_type, url)
        try:
            async with sse_client.EventSource(
                url,
                option={"method": "POST"},
                session=session,
                max_connect_retry=0,
                json={"uid": uid},
                timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
                **self._request_options(),
            ) as source:
                async for event in source:
                    if event.type == event_type:
                        yield parse(json.loads(event.data))
                    elif event.type == "error":
                        detail = json.loads(event.data).get("detail", "stream failed")
                        raise RPCError(500, detail)
                    elif event.type == "end":
                        LOGGER.debug("%s stream ended by server", event_type)
                        return
        except ConnectionError as exc:
            raise RPCError(0, f"{rpc} failed: {exc}") from exc
        except aiohttp.ClientError as exc:
            raise RPCError(0, f"Connection error: {exc}") from exc
