"""LLM-driven browser agent with a confirmation gate for risky actions."""

from .agent import BrowserAgent
from .config import AgentConfig, AppConfig
from .models import TaskOutcome

__all__ = ["AgentConfig", "AppConfig", "BrowserAgent", "TaskOutcome"]
