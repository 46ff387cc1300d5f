"""
Device Channel
==============
Best-effort bidirectional message channel between the phone (primary) and
the watch (companion).

Semantics, identical for every transport:
- Two kinds of outbound traffic: ``send_message`` (one-off message) and
  ``update_context`` (full-state broadcast).
- No acknowledgement, no retry, no ordering guarantee. A send either hands
  the payload to the transport or raises ``SendFailedError``.
- Sending before activation raises ``ChannelInactiveError``.
- Inbound payloads are dispatched to the handlers registered with
  ``set_handlers``.

Transports:
- PairedChannel: in-process pair backed by asyncio queues. Delivery happens
  when the receiving end calls ``deliver_pending()``, optionally in reverse
  order, which is how tests reproduce racing messages.
- HttpDeviceChannel: posts payloads to the companion bridge with httpx.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
PayloadHandler = Callable[[Payload], Awaitable[None]]

MESSAGE = "message"
CONTEXT = "context"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ChannelError(Exception):
    """Base class for channel failures."""


class ChannelInactiveError(ChannelError):
    """No paired device, or the session has not been activated."""


class SendFailedError(ChannelError):
    """Transport-level failure while handing a payload over."""


# ---------------------------------------------------------------------------
# Base channel
# ---------------------------------------------------------------------------

class ChannelState(str, Enum):
    INACTIVE = "inactive"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


class DeviceChannel(ABC):
    """Transport-independent channel behaviour."""

    def __init__(self) -> None:
        self.state = ChannelState.INACTIVE
        self._on_message: Optional[PayloadHandler] = None
        self._on_context: Optional[PayloadHandler] = None

    @property
    def is_supported(self) -> bool:
        return True

    @property
    def is_activated(self) -> bool:
        return self.state is ChannelState.ACTIVATED

    def set_handlers(
        self,
        on_message: Optional[PayloadHandler] = None,
        on_context: Optional[PayloadHandler] = None,
    ) -> None:
        self._on_message = on_message
        self._on_context = on_context

    async def activate(self) -> bool:
        """Establish the session. Returns True when activated."""
        if not self.is_supported:
            return False
        self.state = ChannelState.ACTIVATING
        activated = await self._activate()
        self.state = ChannelState.ACTIVATED if activated else ChannelState.INACTIVE
        logger.debug("%s activation %s", type(self).__name__, "succeeded" if activated else "failed")
        return activated

    def deactivate(self) -> None:
        self.state = ChannelState.INACTIVE

    async def send_message(self, payload: Payload) -> None:
        self._require_active()
        await self._send(MESSAGE, payload)

    async def update_context(self, payload: Payload) -> None:
        self._require_active()
        await self._send(CONTEXT, payload)

    async def receive(self, kind: str, payload: Payload) -> None:
        """Dispatch one inbound payload to the registered handler."""
        handler = self._on_message if kind == MESSAGE else self._on_context
        if handler is None:
            logger.debug("No %s handler registered, dropping payload", kind)
            return
        await handler(payload)

    def _require_active(self) -> None:
        if not self.is_activated:
            raise ChannelInactiveError(f"{type(self).__name__} is not activated")

    @abstractmethod
    async def _activate(self) -> bool: ...

    @abstractmethod
    async def _send(self, kind: str, payload: Payload) -> None: ...


# ---------------------------------------------------------------------------
# In-process pair
# ---------------------------------------------------------------------------

class PairedChannel(DeviceChannel):
    """One end of an in-process channel pair."""

    def __init__(self) -> None:
        super().__init__()
        self._peer: Optional[PairedChannel] = None
        self._inbox: asyncio.Queue[tuple[str, Payload]] = asyncio.Queue()
        # transport knobs for simulating a flaky link
        self.reachable = True
        self.fail_sends = False

    @classmethod
    def pair(cls) -> tuple["PairedChannel", "PairedChannel"]:
        """Return (primary_end, companion_end)."""
        primary, companion = cls(), cls()
        primary._peer, companion._peer = companion, primary
        return primary, companion

    @property
    def pending_count(self) -> int:
        return self._inbox.qsize()

    async def _activate(self) -> bool:
        return self._peer is not None and self.reachable

    async def _send(self, kind: str, payload: Payload) -> None:
        if self.fail_sends or not self.reachable or self._peer is None:
            raise SendFailedError(f"{kind} could not be delivered to peer")
        # copy so later local mutation cannot leak into an in-flight payload
        self._peer._inbox.put_nowait((kind, copy.deepcopy(payload)))

    async def deliver_pending(self, reverse: bool = False) -> int:
        """Dispatch every queued inbound payload. Returns how many were delivered."""
        batch: list[tuple[str, Payload]] = []
        while True:
            try:
                batch.append(self._inbox.get_nowait())
            except asyncio.QueueEmpty:
                break

        if reverse:
            batch.reverse()

        for kind, payload in batch:
            await self.receive(kind, payload)
        return len(batch)


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------

class HttpDeviceChannel(DeviceChannel):
    """Channel to a companion bridge reachable over HTTP.

    Endpoints on the bridge: ``GET /health``, ``POST /messages``,
    ``POST /context``.
    """

    def __init__(self, base_url: str, timeout: float = 5.0) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def is_supported(self) -> bool:
        return bool(self._base_url)

    async def _activate(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(f"{self._base_url}/health")
        except httpx.HTTPError as exc:
            logger.warning("Companion bridge unreachable: %s", exc)
            return False
        return response.is_success

    async def _send(self, kind: str, payload: Payload) -> None:
        path = "/messages" if kind == MESSAGE else "/context"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(f"{self._base_url}{path}", json=payload)
        except httpx.HTTPError as exc:
            raise SendFailedError(f"{kind} send failed: {exc}") from exc

        if not response.is_success:
            raise SendFailedError(f"{kind} send failed with {response.status_code}: {response.text}")
