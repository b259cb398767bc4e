"""Interactive command line entry point."""

from __future__ import annotations

import logging
import sys
from typing import Callable, List, Optional

from .agent import BrowserAgent
from .browser import BrowserManager
from .config import AppConfig
from .dom_extractor import DOMExtractor
from .executor import ToolDispatcher
from .llm import LLMClient
from .models import TaskOutcome
from .visualizer import AgentVisualizer

LOGGER = logging.getLogger(__name__)

EXIT_WORDS = {"exit", "quit"}
BANNER = (
    "\n╔════════════════════════════════════════════════════════════╗\n"
    "║              AI Browser Automation Agent                   ║\n"
    "╚════════════════════════════════════════════════════════════╝\n"
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_agent(config: AppConfig) -> BrowserAgent:
    browser = BrowserManager(
        headless=config.headless,
        timeout_ms=config.browser_timeout_ms,
        user_data_dir=config.user_data_dir,
    )
    visualizer = AgentVisualizer()
    llm = LLMClient(
        config.llm_model,
        base_url=config.llm_base_url,
        api_key=config.llm_api_key,
        enable_thinking=config.agent.enable_thinking,
    )
    dispatcher = ToolDispatcher(browser, DOMExtractor(), ask_user=visualizer.ask_user)
    return BrowserAgent(llm, dispatcher, visualizer, config.agent)


def _ask(prompt: Callable[[str], str], text: str) -> Optional[str]:
    try:
        return prompt(text).strip()
    except EOFError:
        return None


def run_session(
    agent: BrowserAgent,
    first_goal: Optional[str] = None,
    prompt: Callable[[str], str] = input,
) -> List[TaskOutcome]:
    """Run tasks until the user types ``exit`` or declines another task."""
    outcomes: List[TaskOutcome] = []
    goal = first_goal
    while True:
        if not goal:
            goal = _ask(prompt, '\nWhat would you like me to do? (or "exit" to quit) ')
            if goal is None:
                break
            if not goal:
                print("Please enter a task")
                continue
        if goal.lower() in EXIT_WORDS:
            break

        try:
            outcomes.append(agent.run_task(goal))
        except Exception as exc:
            LOGGER.exception("session.task_failed", extra={"goal": goal})
            print(f"\n❌ Task failed: {exc}")
        goal = None

        again = _ask(prompt, "Would you like to give another task? [Y/n] ")
        if again is None or again.lower() in {"n", "no"}:
            break
    return outcomes


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    config = AppConfig.from_env()
    configure_logging(config.log_level)
    print(BANNER)

    agent = build_agent(config)
    browser = agent.browser
    try:
        if config.persistent_browser:
            browser.launch_persistent()
        else:
            browser.launch()
    except Exception as exc:
        LOGGER.error("browser.launch_failed", extra={"error": str(exc)})
        print(f"❌ Could not start the browser: {exc}")
        browser.close()
        return 1

    try:
        first_goal = " ".join(args).strip() or None
        run_session(agent, first_goal)
    except KeyboardInterrupt:
        print("\n\nShutting down gracefully...")
    finally:
        browser.close()
        print("\nGoodbye! 👋\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
