"""Configuration system for the wallet agent bot.

Loads the bot config from ``config.yaml``, supports environment variable
expansion (``${VAR}``) so secrets can stay out of the file, and writes a
starter config for ``wallet-agent-bot init``.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from wallet_agent_bot.errors import ConfigError


# ---------------------------------------------------------------------------
# ${VAR} placeholders
# ---------------------------------------------------------------------------

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def _substitute_env(node: object) -> object:
    """Replace ``${VAR}`` in every string of a parsed YAML tree.

    Unset variables stay as literal placeholders; the LLM router and the
    ``run`` command reject values that still start with ``${``.
    """
    if isinstance(node, str):
        return _PLACEHOLDER.sub(lambda m: os.environ.get(m.group(1), m.group(0)), node)
    if isinstance(node, dict):
        return {key: _substitute_env(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_substitute_env(value) for value in node]
    return node


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful on-chain assistant that manages the user's custodial "
    "wallet. Use your tools to check balances, estimate gas and send "
    "transfers. Before sending funds, restate the amount and recipient. "
    "Never reveal private keys. Be concise and helpful."
)


class LLMProviderConfig(BaseModel):
    """Credentials and model for one backend."""

    api_key: str = ""
    model: str = ""
    base_url: Optional[str] = None    # self-hosted or OpenAI-compatible server
    max_tokens: int = 4096


class LLMConfig(BaseModel):
    """Which backend the agent uses, plus the settings of each configured one."""

    default_provider: str = "openai"
    anthropic: Optional[LLMProviderConfig] = None
    openai: Optional[LLMProviderConfig] = None


class AgentConfig(BaseModel):
    """Reasoning loop settings shared by every user's session."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.7
    max_iterations: int = 8           # LLM round-trips per user message
    llm_timeout_seconds: float = 60.0
    tool_timeout_seconds: float = 45.0
    history_messages: int = 40        # conversation window loaded per turn


class WalletConfig(BaseModel):
    """Blockchain settings. One chain per deployment."""

    chain: str = "ethereum"
    rpc_url: Optional[str] = None     # overrides the chain table's public RPC
    max_transfer_amount: float = 0.0  # native units per transfer (0 = unlimited)


class ImportPolicy(str, Enum):
    SINGLE_SHOT = "single_shot"
    RETRY_UNTIL_VALID = "retry_until_valid"


class ImportConfig(BaseModel):
    """How the bot treats the message following an "import account" request."""

    policy: ImportPolicy = ImportPolicy.SINGLE_SHOT


class TelegramConfig(BaseModel):
    token: str = ""                   # ${TELEGRAM_BOT_TOKEN}


class DatabaseConfig(BaseModel):
    path: str = "wallet-agent-bot.db"


class BotConfig(BaseModel):
    """Root configuration object for the bot."""

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    imports: ImportConfig = Field(default_factory=ImportConfig)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def load_config(path: Path) -> BotConfig:
    """Load and validate the bot configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation.

    Raises
    ------
    ConfigError
        If the file is missing, is not valid YAML, or fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw_data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw_data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    expanded = _substitute_env(raw_data)
    try:
        return BotConfig.model_validate(expanded)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}:\n{exc}") from exc


def save_config(config: BotConfig, path: Path) -> None:
    """Serialize a :class:`BotConfig` to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)


def starter_config() -> BotConfig:
    """A config with env-var placeholders for every secret."""
    return BotConfig(
        telegram=TelegramConfig(token="${TELEGRAM_BOT_TOKEN}"),
        llm=LLMConfig(
            default_provider="openai",
            openai=LLMProviderConfig(api_key="${OPENAI_API_KEY}", model="gpt-4o"),
            anthropic=LLMProviderConfig(
                api_key="${ANTHROPIC_API_KEY}", model="claude-sonnet-4-5-20250929"
            ),
        ),
    )
