"""
Messaging Session Connector

Owns the live session handle for one run.

Responsibilities:
- open the persisted session store and load the paired device
- start the transport and funnel its lifecycle events into one queue
- render pairing codes for the operator
- persist rotated credentials as the platform hands them out
- release the transport and the store, whatever happens afterward

IMPORTANT:
- MUST be used as an async context manager (or close() in a finally)
- Event callbacks may arrive on transport threads; they only ever
  schedule work onto the owning loop
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional

from core.errors import AggregationError
from services.messaging.events import (
    ConnectionEvent,
    LoggedOut,
    QRNeeded,
    describe,
)
from services.messaging.qr import print_qr
from services.messaging.transport import ChannelInfo, PlatformTransport
from shared.logging.logger import get_logger
from shared.storage.session_store import SessionStore

log = get_logger("messaging.connector")


class SessionConnector:
    def __init__(
        self,
        transport: PlatformTransport,
        store: SessionStore,
        *,
        qr_renderer: Optional[Callable[[str], None]] = print_qr,
    ):
        self._transport = transport
        self._store = store
        self._qr_renderer = qr_renderer

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._started = False
        self._connected = False
        self._closed = False
        self._device_id: Optional[str] = None

    # --------------------------------------------------
    # Context manager
    # --------------------------------------------------

    async def __aenter__(self) -> "SessionConnector":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    async def connect(self) -> "asyncio.Queue[ConnectionEvent]":
        """
        Open the session and start the transport handshake.

        Returns the queue that receives every lifecycle event. The queue has
        exactly one consumer (StabilityGate).
        """
        if self._closed:
            raise RuntimeError("SessionConnector is closed")
        if self._events is not None:
            return self._events

        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()

        self._store.open()
        device = self._store.load_device()
        if device:
            self._device_id = device.device_id
            log.info(f"Using stored device session {device.device_id}")
            credentials: Optional[Dict[str, Any]] = device.credentials
        else:
            log.info("No stored device session; pairing will be required")
            credentials = None

        self._started = True
        await self._transport.connect(
            credentials,
            self._emit,
            self._save_credentials,
        )
        self._connected = True
        return self._events

    async def close(self) -> None:
        """Disconnect the transport and release the store. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._started:
            log.info("Disconnecting messaging session")
            try:
                await self._transport.disconnect()
            except Exception as e:
                log.warning(f"Transport disconnect error ignored: {e}")
            self._connected = False

        try:
            self._store.close()
        except Exception as e:
            log.warning(f"Session store close error ignored: {e}")

    # --------------------------------------------------
    # Transport callbacks (any thread)
    # --------------------------------------------------

    def _emit(self, event: ConnectionEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            log.debug(f"Dropping {describe(event)} (connector not running)")
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._dispatch(event)
        else:
            loop.call_soon_threadsafe(self._dispatch, event)

    def _dispatch(self, event: ConnectionEvent) -> None:
        if self._closed or self._events is None:
            return

        if isinstance(event, QRNeeded):
            if self._qr_renderer:
                try:
                    self._qr_renderer(event.code)
                except Exception as e:
                    log.warning(f"Failed to render pairing QR code: {e}")
        elif isinstance(event, LoggedOut):
            log.error(f"Messaging session logged out{f': {event.reason}' if event.reason else ''}")
            try:
                self._store.clear()
            except Exception as e:
                log.warning(f"Failed to clear revoked session: {e}")
        else:
            log.info(f"Messaging event: {describe(event)}")

        self._events.put_nowait(event)

    def _save_credentials(self, device_id: str, credentials: Dict[str, Any]) -> None:
        if self._closed:
            log.warning("Credential update received after close; not persisted")
            return
        self._store.save_device(device_id, credentials)
        self._device_id = device_id

    # --------------------------------------------------
    # Queries
    # --------------------------------------------------

    async def get_channel_info(self, external_id: str) -> ChannelInfo:
        if not self._connected or self._closed:
            raise AggregationError("Messaging session is not connected")
        return await self._transport.get_channel_info(external_id)

    @property
    def device_id(self) -> Optional[str]:
        return self._device_id

    @property
    def connected(self) -> bool:
        return self._connected and not self._closed
