"""
tests/test_config_loader.py

Environment -> RunConfig mapping. Always passes an explicit env mapping so
no .env file or process variable leaks into the assertions.
"""

from pathlib import Path

import pytest

from core.config_loader import load_github_target, load_run_config
from core.errors import ConfigError
from core.patches import DEFAULT_DESCRIPTION_TEMPLATE


def _env(**overrides):
    env = {
        "NUMBER_NEWSLETTERS": "2",
        "NEWSLETTER_JID1": "111@newsletter",
        "NEWSLETTER_NAME1": "Campus A",
        "NEWSLETTER_JID2": "222@newsletter",
        "PAT_TOKEN": "ghp_secret",
        "GITHUB_OWNER": "octo",
        "GITHUB_REPO": "menu",
        "MESSAGING_TRANSPORT": "conftest:make_fake_transport",
    }
    env.update(overrides)
    return {k: v for k, v in env.items() if v is not None}


class TestRunConfig:
    def test_defaults(self) -> None:
        config = load_run_config(_env())

        assert [(c.display_name, c.external_id) for c in config.channels] == [
            ("Campus A", "111@newsletter"),
            ("Newsletter 2", "222@newsletter"),
        ]
        assert config.github.branch == "main"
        assert config.github.readme_path == "README.md"
        assert config.github.commit_prefix == "ru-counter"
        assert config.github.description_template == DEFAULT_DESCRIPTION_TEMPLATE
        assert config.github.inline_dau is False
        assert config.stability.stable_after == 10.0
        assert config.stability.max_wait == 120.0
        assert config.stability.settle_seconds == 2.0
        assert config.session_db_path == Path("db/session.db")
        assert config.state_path == Path("state/last_run.json")
        assert config.run_timeout is None

    def test_overrides(self) -> None:
        config = load_run_config(
            _env(
                GITHUB_BRANCH="dev",
                README_PATH="docs/README.md",
                README_INLINE_DAU="yes",
                STABLE_SECONDS="3",
                MAX_WAIT_SECONDS="30.5",
                SETTLE_SECONDS="0",
                SESSION_DB_PATH="/tmp/x/session.db",
                STATE_PATH="off",
                RUN_TIMEOUT_SECONDS="300",
                DESCRIPTION_TEMPLATE="{total} students",
            )
        )

        assert config.github.branch == "dev"
        assert config.github.readme_path == "docs/README.md"
        assert config.github.inline_dau is True
        assert config.github.description_template == "{total} students"
        assert config.stability.stable_after == 3.0
        assert config.stability.max_wait == 30.5
        assert config.stability.settle_seconds == 0.0
        assert config.session_db_path == Path("/tmp/x/session.db")
        assert config.state_path is None
        assert config.run_timeout == 300.0

    def test_transport_defaults_to_whatsapp(self) -> None:
        config = load_run_config(_env(MESSAGING_TRANSPORT=None))
        assert config.transport == "services.messaging.whatsapp:create_transport"

    def test_zero_channels_is_allowed(self) -> None:
        config = load_run_config(_env(NUMBER_NEWSLETTERS="0"))
        assert config.channels == ()

    def test_describe_hides_token(self) -> None:
        described = load_run_config(_env()).describe()
        assert "ghp_secret" not in repr(described)
        assert described["repository"] == "octo/menu@main"


class TestRunConfigErrors:
    @pytest.mark.parametrize(
        "missing",
        ["NUMBER_NEWSLETTERS", "NEWSLETTER_JID2", "PAT_TOKEN", "GITHUB_OWNER", "GITHUB_REPO"],
    )
    def test_missing_required_variable(self, missing) -> None:
        with pytest.raises(ConfigError, match=missing):
            load_run_config(_env(**{missing: None}))

    def test_blank_value_counts_as_missing(self) -> None:
        with pytest.raises(ConfigError, match="PAT_TOKEN"):
            load_run_config(_env(PAT_TOKEN="   "))

    @pytest.mark.parametrize("value", ["two", "-1"])
    def test_bad_channel_count(self, value) -> None:
        with pytest.raises(ConfigError, match="NUMBER_NEWSLETTERS"):
            load_run_config(_env(NUMBER_NEWSLETTERS=value))

    def test_stable_period_must_fit_inside_max_wait(self) -> None:
        with pytest.raises(ConfigError, match="STABLE_SECONDS"):
            load_run_config(_env(STABLE_SECONDS="60", MAX_WAIT_SECONDS="60"))

    def test_non_positive_stable_period(self) -> None:
        with pytest.raises(ConfigError):
            load_run_config(_env(STABLE_SECONDS="0"))

    def test_bad_boolean(self) -> None:
        with pytest.raises(ConfigError, match="README_INLINE_DAU"):
            load_run_config(_env(README_INLINE_DAU="maybe"))

    def test_template_without_total(self) -> None:
        with pytest.raises(ConfigError, match="DESCRIPTION_TEMPLATE"):
            load_run_config(_env(DESCRIPTION_TEMPLATE="no placeholder"))

    def test_config_error_exit_code(self) -> None:
        with pytest.raises(ConfigError) as excinfo:
            load_run_config({})
        assert excinfo.value.exit_code == 2


def test_github_target_needs_only_github_variables() -> None:
    target = load_github_target(
        {"PAT_TOKEN": "x", "GITHUB_OWNER": "octo", "GITHUB_REPO": "menu"}
    )
    assert target.repo == "menu"
    assert target.readme_path == "README.md"
