"""
WhatsApp transport (neonize / whatsmeow)

Default PlatformTransport. Drives a neonize client and translates its
callbacks into ConnectionEvent values:

    QR callback    -> QRNeeded
    ConnectedEv    -> Connected
    PairStatusEv   -> device persisted through save_credentials
    DisconnectedEv -> Disconnected
    LoggedOutEv    -> LoggedOut

Device keys live in whatsmeow's own tables (whatsmeow_device and friends)
inside the session database; SessionStore only keeps the index row naming
the paired JID.

IMPORTANT:
- neonize loads its native library on import, so it is imported only when
  a client is actually built
- client.connect() blocks on some neonize releases; it always runs on a
  worker thread, and every callback arrives on a neonize thread
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from services.messaging.events import Connected, Disconnected, LoggedOut, QRNeeded
from services.messaging.transport import (
    ChannelInfo,
    EmitFn,
    PlatformTransport,
    SaveCredentialsFn,
)
from shared.logging.logger import get_logger
from shared.storage.session_store import DEFAULT_DB_PATH, WHATSMEOW_STORE

log = get_logger("messaging.whatsapp")

DEFAULT_NEWSLETTER_SERVER = "newsletter"


def jid_to_str(jid: Any) -> Optional[str]:
    """"user@server" for a neonize JID message, None for an empty one."""
    user = getattr(jid, "User", "") or ""
    server = getattr(jid, "Server", "") or ""
    if not user:
        return None
    return f"{user}@{server}" if server else user


def split_jid(external_id: str) -> tuple:
    user, _, server = external_id.strip().partition("@")
    if not user:
        raise ValueError(f"invalid JID {external_id!r}")
    return user, server or DEFAULT_NEWSLETTER_SERVER


class NeonizeBackend:
    """The only place that touches the neonize API."""

    def create_client(self, db_path: str) -> Any:
        from neonize.client import NewClient

        return NewClient(db_path)

    def bind(self, client: Any, transport: "WhatsAppTransport") -> None:
        from neonize.events import ConnectedEv, DisconnectedEv, LoggedOutEv, PairStatusEv

        client.event.qr(transport.on_qr)
        client.event(ConnectedEv)(transport.on_connected)
        client.event(PairStatusEv)(transport.on_pair_status)
        client.event(DisconnectedEv)(transport.on_disconnected)
        client.event(LoggedOutEv)(transport.on_logged_out)

    def newsletter_jid(self, external_id: str) -> Any:
        from neonize.utils import build_jid

        user, server = split_jid(external_id)
        return build_jid(user, server)


class WhatsAppTransport(PlatformTransport):
    def __init__(
        self,
        session_db_path: Path | str = DEFAULT_DB_PATH,
        *,
        backend: Optional[NeonizeBackend] = None,
        join_timeout: float = 5.0,
    ):
        self._db_path = Path(session_db_path)
        self._backend = backend or NeonizeBackend()
        self._join_timeout = join_timeout

        self._client: Any = None
        self._thread: Optional[threading.Thread] = None
        self._emit: Optional[EmitFn] = None
        self._save_credentials: Optional[SaveCredentialsFn] = None

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    async def connect(
        self,
        credentials: Optional[Dict[str, Any]],
        emit: EmitFn,
        save_credentials: SaveCredentialsFn,
    ) -> None:
        if self._client is not None:
            raise RuntimeError("WhatsAppTransport already connected")

        self._emit = emit
        self._save_credentials = save_credentials

        if credentials and credentials.get("jid"):
            log.info(f"Resuming WhatsApp device {credentials['jid']}")
        else:
            log.info("No paired WhatsApp device; a QR code will be shown")

        self._client = self._backend.create_client(str(self._db_path))
        self._backend.bind(self._client, self)

        self._thread = threading.Thread(
            target=self._run_client,
            name="whatsapp-client",
            daemon=True,
        )
        self._thread.start()

    def _run_client(self) -> None:
        client = self._client
        try:
            client.connect()
        except Exception as e:
            log.error(f"WhatsApp client stopped: {e}")
            self._send(Disconnected(str(e)))

    async def disconnect(self) -> None:
        client, thread = self._client, self._thread
        self._client = None
        self._thread = None
        if client is None:
            return

        log.info("Disconnecting WhatsApp client")
        await asyncio.to_thread(client.disconnect)

        if thread is not None and thread.is_alive():
            await asyncio.to_thread(thread.join, self._join_timeout)
            if thread.is_alive():
                log.warning("WhatsApp client thread still running after disconnect")

    # --------------------------------------------------
    # Queries
    # --------------------------------------------------

    async def get_channel_info(self, external_id: str) -> ChannelInfo:
        client = self._client
        if client is None:
            raise RuntimeError("WhatsApp client is not connected")

        jid = self._backend.newsletter_jid(external_id)
        info = await asyncio.to_thread(client.get_newsletter_info, jid)
        if info is None:
            raise LookupError(f"newsletter {external_id} not found")

        meta = getattr(info, "ThreadMeta", None)
        count = getattr(meta, "SubscriberCount", None)
        if count is None:
            raise LookupError(f"newsletter {external_id} has no subscriber count")
        name = getattr(getattr(meta, "Name", None), "Text", "") or external_id

        return ChannelInfo(name=name, subscriber_count=int(count))

    # --------------------------------------------------
    # neonize callbacks (neonize threads)
    # --------------------------------------------------

    def _send(self, event) -> None:
        if self._emit is not None:
            self._emit(event)

    def on_qr(self, _client: Any, data: bytes) -> None:
        code = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else str(data)
        self._send(QRNeeded(code))

    def on_connected(self, _client: Any, _ev: Any) -> None:
        self._send(Connected())

    def on_pair_status(self, _client: Any, ev: Any) -> None:
        error = getattr(ev, "Error", "")
        if error:
            log.error(f"WhatsApp pairing failed: {error}")
            return

        jid = jid_to_str(getattr(ev, "ID", None))
        if jid is None or self._save_credentials is None:
            return

        self._save_credentials(
            jid,
            {
                "jid": jid,
                "store": WHATSMEOW_STORE,
                "platform": getattr(ev, "Platform", "") or "",
                "business_name": getattr(ev, "BusinessName", "") or "",
            },
        )

    def on_disconnected(self, _client: Any, _ev: Any) -> None:
        self._send(Disconnected())

    def on_logged_out(self, _client: Any, ev: Any) -> None:
        reason = getattr(ev, "Reason", None)
        self._send(LoggedOut(str(reason) if reason else None))


def create_transport(
    session_db_path: Path | str = DEFAULT_DB_PATH,
    **kwargs: Any,
) -> WhatsAppTransport:
    """MESSAGING_TRANSPORT factory (services.messaging.whatsapp:create_transport)."""
    return WhatsAppTransport(session_db_path, **kwargs)
