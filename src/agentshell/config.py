"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""


class LLMConfig(BaseModel):
    backend: str = "llm"  # "llm" | "stub" | "anthropic"
    cli_path: str = "llm"
    timeout: int = 120
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = 4096


class ToolsConfig(BaseModel):
    enabled: bool = False
    directory: str = "tools"
    describe_timeout: float = 5.0
    call_timeout: float = 30.0
    stub: bool = False  # exported to tools as AGENTSHELL_STUB=1
    max_rounds: int = 5
    enforce_validation: bool = True


class AgentConfig(BaseModel):
    soul: Optional[str] = None  # defaults to agents/<id>/soul.md
    model: Optional[str] = None


class TelegramConfig(BaseModel):
    token: str = ""
    stub: bool = False
    agent: str = "telegram"
    poll_timeout: int = 30
    retry_delay: float = 5.0
    concurrent_chats: bool = False


class AppConfig(BaseModel):
    home: str = "."
    log_level: str = "INFO"
    model: str = "claude-sonnet-4-5-20250929"
    default_agent: str = "default"
    llm: LLMConfig = Field(default_factory=LLMConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    agents: dict[str, AgentConfig] = Field(default_factory=lambda: {"default": AgentConfig()})
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)

    @property
    def home_path(self) -> Path:
        return Path(self.home).resolve()

    def resolve_path(self, value: str | Path) -> Path:
        path = Path(value)
        return path if path.is_absolute() else self.home_path / path

    @property
    def tools_dir(self) -> Path:
        return self.resolve_path(self.tools.directory)

    def agent_dir(self, agent_id: str) -> Path:
        return self.home_path / "agents" / agent_id

    def resolve_agent(self, agent_id: str) -> AgentConfig:
        """Return the agent's settings, accepting unlisted agents that have a soul file."""
        agent = self.agents.get(agent_id)
        if agent is not None:
            return agent
        if (self.agent_dir(agent_id) / "soul.md").is_file():
            return AgentConfig()
        raise ConfigError(f"agent '{agent_id}' not found")

    def soul_path(self, agent_id: str) -> Path:
        agent = self.resolve_agent(agent_id)
        if agent.soul:
            return self.resolve_path(agent.soul)
        return self.agent_dir(agent_id) / "soul.md"

    def model_for(self, agent_id: str) -> str:
        agent = self.agents.get(agent_id)
        if agent is not None and agent.model:
            return agent.model
        return self.model

    def tool_env(self) -> dict[str, str]:
        """Environment additions passed to tool executables."""
        return {"AGENTSHELL_STUB": "1"} if self.tools.stub else {}


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")

_TRUTHY = {"1", "true", "yes", "on"}


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Environment variables win over file values."""
    env = os.environ
    if env.get("AGENTSHELL_LLM_BACKEND"):
        data.setdefault("llm", {})["backend"] = env["AGENTSHELL_LLM_BACKEND"]
    if env.get("AGENTSHELL_MODEL"):
        data["model"] = env["AGENTSHELL_MODEL"]
    if env.get("AGENTSHELL_TELEGRAM_TOKEN"):
        data.setdefault("telegram", {})["token"] = env["AGENTSHELL_TELEGRAM_TOKEN"]
    if "AGENTSHELL_TELEGRAM_STUB" in env:
        data.setdefault("telegram", {})["stub"] = env["AGENTSHELL_TELEGRAM_STUB"].lower() in _TRUTHY
    if "AGENTSHELL_STUB" in env:
        data.setdefault("tools", {})["stub"] = env["AGENTSHELL_STUB"].lower() in _TRUTHY
    return data


def load_config(
    config_path: str | Path = "config.yaml",
    env_path: str | Path = ".env",
    require: bool = False,
) -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation.

    A missing config file yields the defaults unless *require* is set. The
    ``home`` key defaults to the directory holding the config file.
    """
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    data: dict[str, Any] = {}
    if config_file.exists():
        raw_text = config_file.read_text(encoding="utf-8")

        # First pass: extract home for self-referencing
        raw_data = yaml.safe_load(raw_text) or {}
        if not isinstance(raw_data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {config_file}")
        home = _interpolate_env_vars(str(raw_data.get("home", ".")))
        home_path = Path(home)
        if not home_path.is_absolute():
            home_path = config_file.resolve().parent / home_path

        # Second pass: interpolate all env vars
        interpolated = _interpolate_env_vars(raw_text, extra={"home": str(home_path)})
        data = yaml.safe_load(interpolated) or {}
        data["home"] = str(home_path)
    elif require:
        raise ConfigError(f"Configuration file not found: {config_file}")

    data = _apply_env_overrides(data)
    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e
