"""
Messaging platform transport contract.

The platform client (device pairing, wire protocol, key rotation) plugs in
through PlatformTransport and is selected at runtime by a "module:factory"
dotted path. The default is the WhatsApp client in services.messaging.whatsapp.
Factories are called with session_db_path= and must accept it.

A transport:
- emits ConnectionEvent values through the emit callback (any thread)
- hands rotated credential material to save_credentials (any thread)
- answers channel metadata lookups once connected
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.errors import ConfigError
from services.messaging.events import ConnectionEvent
from shared.logging.logger import get_logger

log = get_logger("messaging.transport")

EmitFn = Callable[[ConnectionEvent], None]
SaveCredentialsFn = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class ChannelInfo:
    name: str
    subscriber_count: int


class PlatformTransport(ABC):
    @abstractmethod
    async def connect(
        self,
        credentials: Optional[Dict[str, Any]],
        emit: EmitFn,
        save_credentials: SaveCredentialsFn,
    ) -> None:
        """
        Start the transport handshake and return once it is underway.

        credentials is None when the device has never been paired; the
        transport then emits QRNeeded codes until pairing completes and
        reports the new device through save_credentials(device_id, payload).
        """

    @abstractmethod
    async def get_channel_info(self, external_id: str) -> ChannelInfo:
        """Query channel metadata by external ID."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the transport. Must be safe to call more than once."""


def load_transport(path: str, **kwargs: Any) -> PlatformTransport:
    """
    Resolve "package.module:factory" and build a transport.

    The factory may be a PlatformTransport subclass or any callable
    returning an instance. Keyword arguments are passed through.
    """
    if not path or ":" not in path:
        raise ConfigError(
            f"Invalid transport path {path!r} (expected 'package.module:factory')"
        )

    module_name, _, attr = path.partition(":")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import transport module {module_name!r}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"Transport factory {attr!r} not found in {module_name!r}")

    transport = factory(**kwargs)
    if not isinstance(transport, PlatformTransport):
        raise ConfigError(
            f"Transport factory {path!r} returned {type(transport).__name__}, "
            "expected a PlatformTransport"
        )

    log.info(f"Loaded messaging transport {type(transport).__name__} from {path}")
    return transport
