"""
Messaging Session Package

Everything that touches the messaging platform session:
- lifecycle events and the pluggable platform transport
- the session connector (owns the live handle)
- the stability gate (decides when the session is usable)

IMPORTANT:
- Importing this package MUST NOT open a session
- Importing this package MUST NOT create asyncio tasks
"""

from services.messaging.connector import SessionConnector
from services.messaging.events import Connected, ConnectionEvent, Disconnected, LoggedOut, QRNeeded
from services.messaging.stability import GateState, StabilityGate
from services.messaging.transport import ChannelInfo, PlatformTransport, load_transport

__all__ = [
    "SessionConnector",
    "StabilityGate",
    "GateState",
    "PlatformTransport",
    "ChannelInfo",
    "load_transport",
    "ConnectionEvent",
    "QRNeeded",
    "Connected",
    "Disconnected",
    "LoggedOut",
]
