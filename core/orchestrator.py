"""
Run Orchestrator

Sequences one run:

    SessionConnector -> StabilityGate -> SubscriberAggregator
        -> DocumentPatcher (repository description)
        -> DocumentPatcher (README block)

The messaging session is scoped to the aggregation step and released
before any publishing starts. There is no partial success path: any
component failure propagates to the entrypoint as a SyncError.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from core.aggregator import SubscriberAggregator
from core.config_loader import RunConfig
from core.models import AggregateReport
from core.patcher import DocumentPatcher, PatchResult
from core.patches import (
    build_commit_message,
    description_patch,
    readme_patches,
)
from services.github.client import DESCRIPTION_REF, GitHubClient
from services.messaging.connector import SessionConnector
from services.messaging.stability import StabilityGate
from services.messaging.transport import PlatformTransport
from shared.logging.logger import get_logger
from shared.storage.session_store import SessionStore

log = get_logger("core.orchestrator")


@dataclass
class RunResult:
    report: AggregateReport
    patches: List[PatchResult] = field(default_factory=list)
    gate: Optional[dict] = None


class RunOrchestrator:
    def __init__(
        self,
        config: RunConfig,
        *,
        transport: PlatformTransport,
        github: GitHubClient,
        store: Optional[SessionStore] = None,
        aggregator: Optional[SubscriberAggregator] = None,
        patcher: Optional[DocumentPatcher] = None,
        qr_renderer: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._config = config
        self._transport = transport
        self._github = github
        self._store = store or SessionStore(config.session_db_path)
        self._aggregator = aggregator or SubscriberAggregator()
        self._patcher = patcher or DocumentPatcher(max_conflict_retries=1)
        self._qr_renderer = qr_renderer
        self._sleep = sleep
        self._clock = clock
        self._gate: Optional[StabilityGate] = None

    @property
    def gate(self) -> Optional[StabilityGate]:
        return self._gate

    # --------------------------------------------------
    # Steps
    # --------------------------------------------------

    async def collect(self) -> AggregateReport:
        """Connect, wait for a stable session, aggregate, release."""
        stability = self._config.stability

        connector_kwargs = {}
        if self._qr_renderer is not None:
            connector_kwargs["qr_renderer"] = self._qr_renderer

        log.info("Fetching messaging channel data...")

        async with SessionConnector(self._transport, self._store, **connector_kwargs) as session:
            events = await session.connect()

            self._gate = StabilityGate(
                stable_after=stability.stable_after,
                max_wait=stability.max_wait,
                clock=self._clock,
            )
            await self._gate.wait_until_stable(events)

            if stability.settle_seconds:
                log.info(
                    f"Connection is stable; settling {stability.settle_seconds:g}s before queries"
                )
                await self._sleep(stability.settle_seconds)

            return await self._aggregator.aggregate(self._config.channels, session)

    async def publish(self, report: AggregateReport) -> List[PatchResult]:
        """Rewrite the repository description, then the README block."""
        github_cfg = self._config.github
        results = []

        log.info("Updating repository description...")
        results.append(
            await self._patcher.apply_patches(
                DESCRIPTION_REF,
                self._github.get_description,
                self._github.push_description,
                [description_patch(github_cfg.description_template)],
                report,
            )
        )

        log.info(f"Updating {github_cfg.readme_path}...")
        results.append(
            await self._patcher.apply_patches(
                github_cfg.readme_path,
                self._github.get_document,
                self._github.put_document,
                readme_patches(include_inline=github_cfg.inline_dau),
                report,
                commit_message=lambda r: build_commit_message(github_cfg.commit_prefix, r),
            )
        )

        return results

    async def run(self) -> RunResult:
        report = await self.collect()
        patches = await self.publish(report)

        log.info(
            f"Successfully updated GitHub repository with {report.total} subscribers "
            f"across {len(report.stats)} channel(s)"
        )

        return RunResult(
            report=report,
            patches=patches,
            gate=self._gate.snapshot() if self._gate else None,
        )
