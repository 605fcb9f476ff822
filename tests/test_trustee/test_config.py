"""Tests for configuration loading and overrides."""
from __future__ import annotations

import pytest

from trustee.config import AppConfig, ProviderConfig, SessionConfig, load_config, override
from trustee.errors import ConfigError
from trustee.state import AgentMode


class TestSessionConfig:
    def test_defaults(self):
        config = SessionConfig()
        assert config.max_iterations == 50
        assert config.checkpoint_interval == 1
        assert config.mode == AgentMode.AUTO
        assert config.completion_tools == ("submit",)

    def test_mode_string_is_parsed(self):
        assert SessionConfig(mode="Interactive").mode == AgentMode.INTERACTIVE

    def test_unknown_mode(self):
        with pytest.raises(ConfigError, match="Unknown mode"):
            SessionConfig(mode="yolo")

    @pytest.mark.parametrize("kwargs", [
        {"max_iterations": 0},
        {"checkpoint_interval": 0},
        {"tool_timeout": 0},
        {"provider_timeout": -1},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            SessionConfig(**kwargs)


class TestProviderConfig:
    def test_unknown_kind(self):
        with pytest.raises(ConfigError):
            ProviderConfig(kind="carrier-pigeon")

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-123")
        assert ProviderConfig(api_key_env="MY_KEY").api_key() == "sk-123"

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("MY_KEY", raising=False)
        with pytest.raises(ConfigError, match="MY_KEY"):
            ProviderConfig(api_key_env="MY_KEY").api_key()


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "nope.toml") == AppConfig()
        assert load_config(None) == AppConfig()

    def test_full_file(self, tmp_path):
        path = tmp_path / "trustee.toml"
        path.write_text(
            """
[session]
max_iterations = 12
mode = "agentic"
model = "claude-test"
completion_tools = ["submit", "finish"]

[session.retry]
max_retries = 5
jitter = false

[provider]
kind = "stub"

[checkpoint]
dir = "ckpt"
keep = 3

[lifecycle]
templates_dir = "prompts"

[lifecycle.task_types]
docs = ["readme", "docs"]

[tools]
working_dir = "work"
disabled = ["run_command"]
""",
            encoding="utf-8",
        )
        config = load_config(path)
        assert config.session.max_iterations == 12
        assert config.session.mode == AgentMode.AGENTIC
        assert config.session.completion_tools == ("submit", "finish")
        assert config.session.retry.max_retries == 5
        assert config.session.retry.jitter is False
        assert config.provider.kind == "stub"
        assert config.checkpoint_dir == "ckpt"
        assert config.checkpoint_keep == 3
        assert config.templates_dir == "prompts"
        assert config.task_types == {"docs": ("readme", "docs")}
        assert config.working_dir == "work"
        assert config.disabled_tools == ("run_command",)

    def test_unknown_section(self, tmp_path):
        path = tmp_path / "c.toml"
        path.write_text("[plugins]\nx = 1\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="plugins"):
            load_config(path)

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "c.toml"
        path.write_text("[session]\nmax_iteration = 3\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="max_iteration"):
            load_config(path)

    @pytest.mark.parametrize("text, match", [
        ('[checkpoint]\ndri = "x"\n', "dri"),
        ('[lifecycle]\ntemplate_dir = "p"\n', "template_dir"),
        ('[tools]\ndisable = ["run_command"]\n', "disable"),
    ])
    def test_unknown_key_in_app_tables(self, tmp_path, text, match):
        path = tmp_path / "c.toml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ConfigError, match=match):
            load_config(path)

    @pytest.mark.parametrize("text", [
        "[checkpoint]\nkeep = 0\n",
        '[checkpoint]\nkeep = "3"\n',
        "[checkpoint]\ndir = 5\n",
        '[tools]\ndisabled = "run_command"\n',
        '[lifecycle.task_types]\ndocs = "readme"\n',
        "checkpoint = 3\n",
    ])
    def test_invalid_app_values(self, tmp_path, text):
        path = tmp_path / "c.toml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "c.toml"
        path.write_text("[session\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(path)


class TestOverride:
    def test_none_values_are_ignored(self):
        config = AppConfig()
        assert override(config, model=None, checkpoint_dir=None) == config

    def test_routes_session_and_app_keys(self):
        config = override(
            AppConfig(), max_iterations=3, mode="interactive", checkpoint_dir="x", provider="stub",
        )
        assert config.session.max_iterations == 3
        assert config.session.mode == AgentMode.INTERACTIVE
        assert config.checkpoint_dir == "x"
        assert config.provider.kind == "stub"
