"""
Remote document patching under optimistic concurrency.

A run applies an ordered list of PatchSpecs to ONE fetched copy of a
remote document and pushes the result ONCE, carrying the fingerprint that
came with the fetch. If the host rejects the push because the document
moved underneath us, the whole fetch -> patch -> push cycle is repeated
exactly once.

The text transform (apply_patches) is pure: same content, same patches,
same report -> same output. Running it over its own output is a no-op,
provided every spec's build() produces text its locate pattern matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Pattern, Sequence, Tuple, Union

from core.errors import ConflictError
from core.models import AggregateReport, RemoteDocument
from shared.logging.logger import get_logger

log = get_logger("core.patcher")

BuildFn = Callable[[AggregateReport], str]
FetchFn = Callable[[str], Awaitable[RemoteDocument]]
PushFn = Callable[[str, str, Optional[str], str], Awaitable[None]]
MessageFn = Callable[[AggregateReport], str]


class Fallback(str, Enum):
    APPEND = "append"
    REPLACE = "replace"
    SKIP = "skip"


@dataclass(frozen=True)
class PatchSpec:
    """
    Declarative rewrite rule.

    - locate: where the managed text lives
    - build: pure report -> replacement text
    - fallback: what to do when locate finds nothing
    - fallback_build: text used by the fallback (defaults to build)
    """

    name: str
    locate: Pattern[str]
    build: BuildFn
    fallback: Fallback = Fallback.APPEND
    fallback_build: Optional[BuildFn] = None
    separator: str = "\n\n"

    def fallback_text(self, report: AggregateReport) -> str:
        return (self.fallback_build or self.build)(report)


@dataclass(frozen=True)
class PatchOutcome:
    name: str
    # "replaced" | "appended" | "replaced-all" | "skipped"
    action: str
    matches: int = 0


@dataclass
class PatchResult:
    document_ref: str
    pushed: bool
    attempts: int
    content: str
    outcomes: List[PatchOutcome] = field(default_factory=list)


def compile_pattern(pattern: Union[str, Pattern[str]]) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def apply_patches(
    content: str,
    patches: Sequence[PatchSpec],
    report: AggregateReport,
) -> Tuple[str, List[PatchOutcome]]:
    """
    Apply specs in order; spec i+1 sees the output of spec i.

    Replacement text is inserted literally (no backreference expansion).
    """
    working = content
    outcomes: List[PatchOutcome] = []

    for spec in patches:
        replacement = spec.build(report)
        updated, count = spec.locate.subn(lambda _m: replacement, working)

        if count:
            working = updated
            outcomes.append(PatchOutcome(spec.name, "replaced", count))
            continue

        if spec.fallback is Fallback.APPEND:
            block = spec.fallback_text(report)
            working = working + spec.separator + block if working else block
            outcomes.append(PatchOutcome(spec.name, "appended"))
        elif spec.fallback is Fallback.REPLACE:
            working = spec.fallback_text(report)
            outcomes.append(PatchOutcome(spec.name, "replaced-all"))
        else:
            outcomes.append(PatchOutcome(spec.name, "skipped"))

    return working, outcomes


class DocumentPatcher:
    def __init__(self, *, max_conflict_retries: int = 1):
        if max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must be >= 0")
        self._max_conflict_retries = max_conflict_retries

    async def apply_patches(
        self,
        document_ref: str,
        fetch: FetchFn,
        push: PushFn,
        patches: Sequence[PatchSpec],
        report: AggregateReport,
        *,
        commit_message: Union[str, MessageFn] = "Update document",
    ) -> PatchResult:
        message = commit_message(report) if callable(commit_message) else commit_message
        attempts = 0

        while True:
            attempts += 1
            document = await fetch(document_ref)
            patched, outcomes = apply_patches(document.content, patches, report)

            summary = ", ".join(f"{o.name}={o.action}" for o in outcomes)
            log.info(f"[{document_ref}] attempt {attempts}: {summary or 'no patches'}")

            if patched == document.content:
                log.info(f"[{document_ref}] already up to date; nothing to push")
                return PatchResult(document_ref, False, attempts, patched, outcomes)

            try:
                await push(document_ref, patched, document.fingerprint, message)
            except ConflictError as e:
                if attempts > self._max_conflict_retries:
                    raise ConflictError(
                        f"[{document_ref}] still conflicting after {attempts} attempt(s): {e}"
                    ) from e
                log.warning(
                    f"[{document_ref}] changed concurrently ({e}); refetching and reapplying"
                )
                continue

            log.info(f"[{document_ref}] pushed ({len(patched)} chars)")
            return PatchResult(document_ref, True, attempts, patched, outcomes)
