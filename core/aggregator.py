"""
Subscriber aggregation.

Queries every configured channel, in configured order, on a session that
the StabilityGate has already declared stable. The first failing lookup
fails the whole run: a partial total would be a silent undercount.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from core.errors import AggregationError
from core.models import AggregateReport, ChannelRef, ChannelStat
from services.messaging.transport import ChannelInfo
from shared.logging.logger import get_logger

log = get_logger("core.aggregator")


class ChannelLookup(Protocol):
    async def get_channel_info(self, external_id: str) -> ChannelInfo:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriberAggregator:
    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now

    async def aggregate(
        self,
        channel_refs: Sequence[ChannelRef],
        session: ChannelLookup,
    ) -> AggregateReport:
        # Captured before any query so every later patch attempt reuses it.
        captured_at = self._clock()

        log.info(f"Fetching subscriber counts for {len(channel_refs)} channel(s)")

        stats: List[ChannelStat] = []
        for ref in channel_refs:
            stats.append(await self._query(ref, session))

        report = AggregateReport.from_stats(stats, captured_at)

        log.info(f"Total subscribers: {report.total}")
        for stat in report.stats:
            log.info(f"- {stat.display_name}: {stat.subscriber_count} subscribers")

        return report

    async def _query(self, ref: ChannelRef, session: ChannelLookup) -> ChannelStat:
        if not ref.external_id:
            raise AggregationError(f"Channel {ref.display_name!r} has no external ID")

        try:
            info = await session.get_channel_info(ref.external_id)
        except AggregationError:
            raise
        except Exception as e:
            raise AggregationError(
                f"Failed to get channel info for {ref.display_name}: {e}"
            ) from e

        count = getattr(info, "subscriber_count", None)
        if isinstance(count, bool) or not isinstance(count, int):
            raise AggregationError(
                f"Channel {ref.display_name} returned no usable subscriber count "
                f"({count!r})"
            )
        if count < 0:
            raise AggregationError(
                f"Channel {ref.display_name} returned a negative subscriber count ({count})"
            )

        log.debug(f"[{ref.external_id}] {ref.display_name}: {count}")

        return ChannelStat(
            display_name=ref.display_name,
            external_id=ref.external_id,
            subscriber_count=count,
        )
