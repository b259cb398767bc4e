"""Settings read from the environment (and a ``.env`` file when present)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_ITERATIONS = 50
DEFAULT_BROWSER_TIMEOUT_MS = 30000
DEFAULT_USER_DATA_DIR = "./browser-data"
DEFAULT_THROTTLE_SECONDS = 0.5


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    LOGGER.warning("config.unrecognized_bool", extra={"value": value})
    return default


def _to_int(value: Optional[str], default: int, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(minimum, int(value))
    except ValueError:
        LOGGER.warning("config.unrecognized_int", extra={"value": value})
        return default


def _to_float(value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        LOGGER.warning("config.unrecognized_float", extra={"value": value})
        return default


@dataclass
class AgentConfig:
    """Knobs for one agent session."""

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    require_confirmation: bool = True
    enable_thinking: bool = True
    show_thinking: bool = True
    show_plan: bool = True
    show_history: bool = True
    throttle_seconds: float = DEFAULT_THROTTLE_SECONDS


@dataclass
class AppConfig:
    llm_model: str = DEFAULT_MODEL
    llm_base_url: Optional[str] = None
    llm_api_key: Optional[str] = None
    headless: bool = False
    browser_timeout_ms: int = DEFAULT_BROWSER_TIMEOUT_MS
    user_data_dir: str = DEFAULT_USER_DATA_DIR
    persistent_browser: bool = True
    log_level: str = "INFO"
    agent: AgentConfig = field(default_factory=AgentConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AppConfig":
        # values already in the environment win over the .env file
        load_dotenv(env_file)
        agent = AgentConfig(
            max_iterations=_to_int(os.getenv("AGENT_MAX_ITERATIONS"), DEFAULT_MAX_ITERATIONS, minimum=1),
            require_confirmation=_to_bool(os.getenv("AGENT_REQUIRE_CONFIRMATION"), True),
            enable_thinking=_to_bool(os.getenv("AGENT_ENABLE_THINKING"), True),
            show_thinking=_to_bool(os.getenv("AGENT_SHOW_THINKING"), True),
            show_plan=_to_bool(os.getenv("AGENT_SHOW_PLAN"), True),
            show_history=_to_bool(os.getenv("AGENT_SHOW_HISTORY"), True),
            throttle_seconds=_to_float(os.getenv("AGENT_THROTTLE_SECONDS"), DEFAULT_THROTTLE_SECONDS),
        )
        return cls(
            llm_model=os.getenv("LLM_MODEL") or DEFAULT_MODEL,
            llm_base_url=os.getenv("LLM_BASE_URL") or None,
            llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
            headless=_to_bool(os.getenv("HEADLESS"), False),
            browser_timeout_ms=_to_int(os.getenv("BROWSER_TIMEOUT"), DEFAULT_BROWSER_TIMEOUT_MS, minimum=1),
            user_data_dir=os.getenv("BROWSER_USER_DATA_DIR") or DEFAULT_USER_DATA_DIR,
            persistent_browser=_to_bool(os.getenv("BROWSER_PERSISTENT"), True),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            agent=agent,
        )
