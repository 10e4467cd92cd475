"""
The patch rules this runtime publishes with.

Each build function is pure (report -> text), and every built text matches
its own locate pattern, so a rerun with the same report rewrites a document
to identical bytes.
"""

from __future__ import annotations

import re
from typing import List, Optional

from core.errors import PatternNotFound
from core.models import AggregateReport
from core.patcher import Fallback, PatchSpec

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S UTC"

DEFAULT_DESCRIPTION_TEMPLATE = (
    "With {total} DAU, this repository stores 3 microservices created for a "
    "solution for university students (UFPR) to receive the daily college "
    "restaurant menu on multiple WhatsApp Groups. Using AWS, the project "
    "includes a scraper for menu data extraction and a WhatsApp sender for "
    "distribution"
)

DESCRIPTION_PATTERN = re.compile(r"With [\d,]+ DAU")

# Both ends anchored to a line start, so channel names ("- name = n users")
# never open or close a block. Starts at the intro line nearest the footer and
# accepts footers written without the colon.
DAU_BLOCK_PATTERN = re.compile(
    r"^Right now, the system has(?:(?!^Right now, the system has)[\s\S])*?"
    r"^Last updated at:? [^\n\r]*",
    re.MULTILINE,
)

INLINE_DAU_PATTERN = re.compile(r"(\d{1,3}(?:,\d{3})*|\d+)\s+daily active users")


def format_timestamp(report: AggregateReport) -> str:
    return report.captured_at.strftime(TIMESTAMP_FORMAT)


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------

def build_dau_block(report: AggregateReport) -> str:
    lines = [
        f"Right now, the system has **{report.total} daily active users** "
        "who receive the menu every day.",
        "",
    ]
    lines.extend(
        f"- {stat.display_name} = {stat.subscriber_count} users" for stat in report.stats
    )
    if report.stats:
        lines.append("")
    lines.append(f"Last updated at: {format_timestamp(report)}")
    return "\n".join(lines)


def build_description(template: str, report: AggregateReport) -> str:
    return template.format(total=report.total)


def build_commit_message(prefix: str, report: AggregateReport) -> str:
    return (
        f"{prefix}: Update DAU to {report.total} users with detailed breakdown "
        f"(updated at {format_timestamp(report)})"
    )


# ----------------------------------------------------------------------
# Specs
# ----------------------------------------------------------------------

def description_patch(template: Optional[str] = None) -> PatchSpec:
    """
    Short description field limited to the total count.

    Rewrites the "With <n> DAU" fragment in place; a description without it
    is replaced by the full template.
    """
    template = template or DEFAULT_DESCRIPTION_TEMPLATE
    return PatchSpec(
        name="description",
        locate=DESCRIPTION_PATTERN,
        build=lambda report: f"With {report.total} DAU",
        fallback=Fallback.REPLACE,
        fallback_build=lambda report: build_description(template, report),
    )


def dau_block_patch() -> PatchSpec:
    """Multi-line block: total, one line per channel, capture time."""
    return PatchSpec(
        name="dau-block",
        locate=DAU_BLOCK_PATTERN,
        build=build_dau_block,
        fallback=Fallback.APPEND,
    )


def inline_dau_patch() -> PatchSpec:
    """Any free-standing "<n> daily active users" mention; left alone if absent."""
    return PatchSpec(
        name="inline-dau",
        locate=INLINE_DAU_PATTERN,
        build=lambda report: f"{report.total} daily active users",
        fallback=Fallback.SKIP,
    )


def readme_patches(*, include_inline: bool = False) -> List[PatchSpec]:
    patches = [dau_block_patch()]
    if include_inline:
        patches.append(inline_dau_patch())
    return patches


# ----------------------------------------------------------------------
# Readers
# ----------------------------------------------------------------------

def read_current_dau(content: str) -> int:
    """Return the first published "<n> daily active users" count."""
    match = INLINE_DAU_PATTERN.search(content)
    if not match:
        raise PatternNotFound("could not find DAU in document")
    return int(match.group(1).replace(",", ""))


def validate_description_template(template: Optional[str]) -> str:
    template = template or DEFAULT_DESCRIPTION_TEMPLATE
    if "{total}" not in template:
        raise ValueError("description template must contain '{total}'")
    try:
        template.format(total=0)
    except (KeyError, IndexError, ValueError) as e:
        raise ValueError(f"invalid description template: {e}") from e
    return template
