from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple


@dataclass(frozen=True)
class ChannelRef:
    # -------------------------------------------------
    # CONFIGURED INPUT (immutable for a run)
    # -------------------------------------------------
    display_name: str
    external_id: str


@dataclass(frozen=True)
class ChannelStat:
    display_name: str
    external_id: str
    subscriber_count: int

    def __post_init__(self):
        if isinstance(self.subscriber_count, bool) or not isinstance(
            self.subscriber_count, int
        ):
            raise TypeError(
                f"[{self.display_name}] subscriber_count must be int, "
                f"got {type(self.subscriber_count).__name__}"
            )
        if self.subscriber_count < 0:
            raise ValueError(
                f"[{self.display_name}] subscriber_count must be non-negative"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display_name": self.display_name,
            "external_id": self.external_id,
            "subscriber_count": self.subscriber_count,
        }


@dataclass(frozen=True)
class AggregateReport:
    """
    Total plus per-channel subscriber counts captured in one run.

    Invariants:
    - total == sum of stats[i].subscriber_count
    - stats preserves the configured channel order
    - captured_at is timezone-aware UTC
    """

    total: int
    stats: Tuple[ChannelStat, ...]
    captured_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "stats", tuple(self.stats))

        expected = sum(stat.subscriber_count for stat in self.stats)
        if self.total != expected:
            raise ValueError(
                f"AggregateReport total {self.total} does not match "
                f"sum of channel counts {expected}"
            )

        if self.captured_at.tzinfo is None:
            raise ValueError("captured_at must be timezone-aware")

    @classmethod
    def from_stats(
        cls,
        stats: Iterable[ChannelStat],
        captured_at: datetime,
    ) -> "AggregateReport":
        stats = tuple(stats)
        return cls(
            total=sum(stat.subscriber_count for stat in stats),
            stats=stats,
            captured_at=captured_at.astimezone(timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "captured_at": self.captured_at.isoformat().replace("+00:00", "Z"),
            "stats": [stat.to_dict() for stat in self.stats],
        }


@dataclass(frozen=True)
class RemoteDocument:
    """
    A remotely hosted text document plus its version token.

    fingerprint is opaque; None means the host offers no compare-and-swap
    for this document (e.g. repository description).
    """

    path: str
    content: str
    fingerprint: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)
