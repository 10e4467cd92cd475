"""
tests/test_patches.py

Text produced by the publishing rules and the readers over it.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.errors import PatternNotFound
from core.models import AggregateReport
from core.patches import (
    DEFAULT_DESCRIPTION_TEMPLATE,
    build_commit_message,
    build_dau_block,
    build_description,
    format_timestamp,
    read_current_dau,
    validate_description_template,
)


class TestBuilders:
    def test_dau_block_layout(self, campus_report) -> None:
        assert build_dau_block(campus_report) == (
            "Right now, the system has **60 daily active users** who receive the menu every day.\n"
            "\n"
            "- Campus A = 10 users\n"
            "- Campus B = 20 users\n"
            "- Campus C = 30 users\n"
            "\n"
            "Last updated at: 19/10/2026 12:30:00 UTC"
        )

    def test_dau_block_without_channels(self) -> None:
        report = AggregateReport.from_stats([], datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        assert build_dau_block(report) == (
            "Right now, the system has **0 daily active users** who receive the menu every day.\n"
            "\n"
            "Last updated at: 02/01/2026 03:04:05 UTC"
        )

    def test_timestamp_is_rendered_in_utc(self) -> None:
        local = timezone(timedelta(hours=-3))
        report = AggregateReport.from_stats([], datetime(2026, 10, 19, 9, 30, tzinfo=local))
        assert format_timestamp(report) == "19/10/2026 12:30:00 UTC"

    def test_description_uses_template(self, campus_report) -> None:
        assert build_description("{total} users", campus_report) == "60 users"
        assert build_description(DEFAULT_DESCRIPTION_TEMPLATE, campus_report).startswith("With 60 DAU,")

    def test_commit_message(self, campus_report) -> None:
        assert build_commit_message("ru-counter", campus_report) == (
            "ru-counter: Update DAU to 60 users with detailed breakdown "
            "(updated at 19/10/2026 12:30:00 UTC)"
        )


class TestReaders:
    def test_reads_plain_count(self) -> None:
        assert read_current_dau("We have 1234 daily active users today") == 1234

    def test_reads_comma_grouped_count(self) -> None:
        assert read_current_dau("Right now, **1,234 daily active users**") == 1234

    def test_reads_first_mention(self) -> None:
        assert read_current_dau("5 daily active users ... 7 daily active users") == 5

    def test_missing_count_raises(self) -> None:
        with pytest.raises(PatternNotFound):
            read_current_dau("# README\n\nnothing here")


class TestTemplateValidation:
    def test_empty_template_uses_default(self) -> None:
        assert validate_description_template(None) == DEFAULT_DESCRIPTION_TEMPLATE
        assert validate_description_template("") == DEFAULT_DESCRIPTION_TEMPLATE

    def test_template_must_mention_total(self) -> None:
        with pytest.raises(ValueError):
            validate_description_template("static text")

    def test_template_with_unknown_field_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            validate_description_template("{total} and {other}")
