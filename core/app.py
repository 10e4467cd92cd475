import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from core.config_loader import RunConfig, load_run_config
from core.errors import ConfigError, SyncError
from core.orchestrator import RunOrchestrator, RunResult
from runtime.version import as_dict, as_string
from services.github.client import GitHubClient
from services.messaging.transport import PlatformTransport, load_transport
from shared.logging.logger import get_logger
from shared.storage.state_publisher import RunStatePublisher

log = get_logger("core.app")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _build_github(config: RunConfig) -> GitHubClient:
    target = config.github
    return GitHubClient(
        token=target.token,
        owner=target.owner,
        repo=target.repo,
        branch=target.branch,
    )


def _publish_state(
    publisher: Optional[RunStatePublisher],
    *,
    result: Optional[RunResult] = None,
    error: Optional[BaseException] = None,
    orchestrator: Optional[RunOrchestrator] = None,
) -> None:
    if publisher is None:
        return

    gate = None
    if result is not None:
        gate = result.gate
    elif orchestrator is not None and orchestrator.gate is not None:
        gate = orchestrator.gate.snapshot()

    publisher.publish(
        ok=error is None,
        report=result.report.to_dict() if result else None,
        error=str(error) if error else None,
        error_type=type(error).__name__ if error else None,
        extra={
            "runtime": as_dict(),
            "gate": gate,
            "patches": [
                {
                    "document": p.document_ref,
                    "pushed": p.pushed,
                    "attempts": p.attempts,
                    "outcomes": [o.action for o in p.outcomes],
                }
                for p in (result.patches if result else [])
            ],
        },
    )


async def main(
    config: Optional[RunConfig] = None,
    *,
    transport: Optional[PlatformTransport] = None,
    github: Optional[GitHubClient] = None,
    dotenv_path: Optional[Path] = None,
) -> int:
    """
    Execute one run and return the process exit code.

    Every failure is logged once here with a descriptive message.
    """
    log.info(f"{as_string()} starting")

    # --------------------------------------------------
    # CONFIG
    # --------------------------------------------------
    try:
        config = config or load_run_config(dotenv_path=dotenv_path)
        transport = transport or load_transport(
            config.transport,
            session_db_path=config.session_db_path,
        )
    except ConfigError as e:
        log.error(f"Configuration error: {e}")
        return e.exit_code

    publisher = RunStatePublisher(config.state_path) if config.state_path else None

    orchestrator = RunOrchestrator(
        config,
        transport=transport,
        github=github or _build_github(config),
    )

    # --------------------------------------------------
    # RUN
    # --------------------------------------------------
    try:
        if config.run_timeout:
            result = await asyncio.wait_for(orchestrator.run(), timeout=config.run_timeout)
        else:
            result = await orchestrator.run()

    except asyncio.TimeoutError as e:
        log.error(f"Run exceeded RUN_TIMEOUT_SECONDS ({config.run_timeout:g}s); aborted")
        _publish_state(publisher, error=e, orchestrator=orchestrator)
        return EXIT_FAILURE

    except SyncError as e:
        log.error(f"{type(e).__name__}: {e}")
        _publish_state(publisher, error=e, orchestrator=orchestrator)
        return e.exit_code

    except asyncio.CancelledError:
        log.warning("Run cancelled before completion")
        _publish_state(
            publisher,
            error=RuntimeError("run cancelled"),
            orchestrator=orchestrator,
        )
        raise

    except Exception as e:
        log.exception(f"Unexpected failure: {e}")
        _publish_state(publisher, error=e, orchestrator=orchestrator)
        return EXIT_FAILURE

    _publish_state(publisher, result=result)
    return EXIT_OK


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    task: asyncio.Task,
):
    """
    Ctrl+C / SIGTERM cancel the run task so the session is released
    through the normal unwind path.
    """

    def _handler(signum, frame):
        log.info(f"Signal {signum} received; cancelling run")
        loop.call_soon_threadsafe(task.cancel)

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.debug(f"Signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run(dotenv_path: Optional[Path] = None) -> int:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    task = loop.create_task(main(dotenv_path=dotenv_path))
    _install_signal_handlers(loop, task)

    try:
        return loop.run_until_complete(task)

    except (asyncio.CancelledError, KeyboardInterrupt):
        log.info("Run interrupted")
        return EXIT_INTERRUPTED

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for pending_task in pending:
            pending_task.cancel()

        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()


if __name__ == "__main__":
    sys.exit(run())
