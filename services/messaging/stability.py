"""
Connection Stability Gate

Decides, from a noisy stream of lifecycle events, when a freshly
established session is usable for queries.

A session may flap right after the transport handshake while the platform
finishes background sync. "Ready" is therefore debounced: the session must
stay connected for a quiet period (stable_after) with no intervening
disconnect. The whole wait is bounded by max_wait.

The transition function (start / on_event / on_tick) is synchronous and
takes an explicit clock value, so sequences can be replayed without a
network or an event loop. wait_until_stable() is the only async surface and
is the single consumer of the event queue.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple

from core.errors import AuthExpired, ConnectionTimeout
from services.messaging.events import (
    Connected,
    ConnectionEvent,
    Disconnected,
    LoggedOut,
    QRNeeded,
    describe,
)
from shared.logging.logger import get_logger

log = get_logger("messaging.stability")

DEFAULT_STABLE_AFTER = 10.0
DEFAULT_MAX_WAIT = 120.0


class GateState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    UNSTABLE = "unstable"
    RECONNECTING = "reconnecting"
    STABLE = "stable"
    TIMED_OUT = "timed_out"
    AUTH_EXPIRED = "auth_expired"


_TERMINAL = {GateState.TIMED_OUT, GateState.AUTH_EXPIRED}
_SETTLED = _TERMINAL | {GateState.STABLE}


class StabilityGate:
    def __init__(
        self,
        *,
        stable_after: float = DEFAULT_STABLE_AFTER,
        max_wait: float = DEFAULT_MAX_WAIT,
        clock: Optional[Callable[[], float]] = None,
    ):
        if stable_after <= 0:
            raise ValueError("stable_after must be positive")
        if max_wait <= 0:
            raise ValueError("max_wait must be positive")

        self.stable_after = float(stable_after)
        self.max_wait = float(max_wait)
        self._clock = clock or time.monotonic

        self._state = GateState.IDLE
        self._started_at: Optional[float] = None
        self._overall_deadline: Optional[float] = None
        self._quiet_deadline: Optional[float] = None
        self._connect_count = 0
        self._transitions: List[Tuple[GateState, float]] = []

    # --------------------------------------------------
    # Introspection
    # --------------------------------------------------

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def transitions(self) -> List[Tuple[GateState, float]]:
        """(state, clock) pairs in the order they were entered."""
        return list(self._transitions)

    @property
    def connect_count(self) -> int:
        return self._connect_count

    def next_deadline(self) -> Optional[float]:
        """Earliest pending timer (quiet period or overall bound)."""
        if self._state in _SETTLED or self._overall_deadline is None:
            return None
        if self._quiet_deadline is None:
            return self._overall_deadline
        return min(self._quiet_deadline, self._overall_deadline)

    def snapshot(self) -> dict:
        started = self._started_at or 0.0
        return {
            "state": self._state.value,
            "stable_after": self.stable_after,
            "max_wait": self.max_wait,
            "connect_count": self._connect_count,
            "transitions": [
                {"state": state.value, "at": round(at - started, 3)}
                for state, at in self._transitions
            ],
        }

    # --------------------------------------------------
    # Transition function
    # --------------------------------------------------

    def _enter(self, state: GateState, now: float) -> None:
        if state is self._state:
            return
        log.debug(f"[gate] {self._state.value} -> {state.value}")
        self._state = state
        self._transitions.append((state, now))

    def start(self, now: Optional[float] = None) -> GateState:
        if self._state is not GateState.IDLE:
            raise RuntimeError(f"StabilityGate already started ({self._state.value})")

        now = self._clock() if now is None else now
        self._started_at = now
        self._overall_deadline = now + self.max_wait
        self._transitions.append((GateState.IDLE, now))
        self._enter(GateState.CONNECTING, now)
        return self._state

    def on_event(self, event: ConnectionEvent, now: Optional[float] = None) -> GateState:
        """
        Apply one lifecycle event.

        Raises AuthExpired on LoggedOut regardless of the current state.
        Events after a terminal state are ignored.
        """
        now = self._clock() if now is None else now

        if isinstance(event, LoggedOut):
            self._quiet_deadline = None
            self._enter(GateState.AUTH_EXPIRED, now)
            raise AuthExpired(
                "Messaging session was logged out by the platform; "
                "re-pair the device and run again"
                + (f" ({event.reason})" if event.reason else "")
            )

        if self._state in _TERMINAL:
            log.debug(f"[gate] ignoring {describe(event)} in {self._state.value}")
            return self._state

        if self._state is GateState.IDLE:
            raise RuntimeError("StabilityGate received an event before start()")

        if isinstance(event, Connected):
            if self._state in (GateState.CONNECTING, GateState.RECONNECTING):
                self._connect_count += 1
                self._quiet_deadline = now + self.stable_after
                self._enter(GateState.UNSTABLE, now)
                log.info(
                    f"[gate] Connected, waiting {self.stable_after:g}s for synchronization"
                )
            else:
                log.debug("[gate] duplicate Connected ignored")

        elif isinstance(event, Disconnected):
            if self._state in (GateState.UNSTABLE, GateState.STABLE):
                self._quiet_deadline = None
                self._enter(GateState.RECONNECTING, now)
                log.info(f"[gate] {describe(event)}, waiting for reconnect")
            else:
                log.debug(f"[gate] {describe(event)} while {self._state.value}")

        elif isinstance(event, QRNeeded):
            log.info("[gate] Waiting for device pairing (QR code issued)")

        else:
            log.warning(f"[gate] unknown event ignored: {event!r}")

        return self._state

    def on_tick(self, now: Optional[float] = None) -> GateState:
        """
        Fire any elapsed timer.

        Raises ConnectionTimeout once the overall bound passes before the
        session became stable.
        """
        now = self._clock() if now is None else now

        if self._state in _SETTLED or self._state is GateState.IDLE:
            return self._state

        quiet = self._quiet_deadline
        if (
            self._state is GateState.UNSTABLE
            and quiet is not None
            and now >= quiet
            and quiet <= self._overall_deadline
        ):
            self._quiet_deadline = None
            self._enter(GateState.STABLE, now)
            log.info(
                f"[gate] Connection stable after {now - self._started_at:.1f}s "
                f"({self._connect_count} connect(s))"
            )
            return self._state

        if now >= self._overall_deadline:
            waiting_for = (
                "stable connection"
                if self._connect_count
                else "connection"
            )
            prior = self._state
            self._quiet_deadline = None
            self._enter(GateState.TIMED_OUT, now)
            raise ConnectionTimeout(
                f"Timeout waiting for {waiting_for} after {self.max_wait:g}s "
                f"(last state: {prior.value})"
            )

        return self._state

    # --------------------------------------------------
    # Async arbitration
    # --------------------------------------------------

    async def wait_until_stable(self, events: "asyncio.Queue[ConnectionEvent]") -> None:
        """
        Block until STABLE, consuming events from a single queue.

        Each event is taken from the queue exactly once. Events already
        queued are applied before timers fire, and no wait outlives the next
        deadline.
        """
        if self._state is GateState.IDLE:
            self.start()

        log.info("Waiting for messaging connection and synchronization...")

        while True:
            # Events are stamped when consumed, not when they arrived. That is
            # only sound because the queue is drained before every tick: an
            # event that arrived before a deadline is applied before that
            # deadline is evaluated.
            while not events.empty():
                self.on_event(events.get_nowait(), self._clock())

            state = self.on_tick(self._clock())
            if state is GateState.STABLE:
                return

            deadline = self.next_deadline()
            timeout = max(0.0, deadline - self._clock()) if deadline is not None else None

            try:
                event = await asyncio.wait_for(events.get(), timeout=timeout)
            except asyncio.TimeoutError:
                continue

            self.on_event(event, self._clock())
