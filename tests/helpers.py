from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from web_agent.agent import BrowserAgent
from web_agent.config import AgentConfig
from web_agent.dom_extractor import filter_elements
from web_agent.errors import EnvironmentStateError, ToolExecutionError
from web_agent.executor import ToolDispatcher
from web_agent.llm import ModelDecision, ThinkingUpdate
from web_agent.models import Conversation, SimplifiedElement, TaskState, ToolInvocationRequest
from web_agent.planner import new_plan


def tool_call(name: str, args: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None) -> ToolInvocationRequest:
    arguments = args if args is not None else {}
    return ToolInvocationRequest(
        id=call_id or f"call-{name}",
        name=name,
        arguments=arguments,
        raw_arguments=json.dumps(arguments),
    )


def decision(*calls: ToolInvocationRequest, content: Optional[str] = None) -> ModelDecision:
    return ModelDecision(content=content, tool_calls=list(calls), model="fake-model")


def element(
    element_id: str,
    text: Optional[str] = None,
    attributes: Optional[Dict[str, str]] = None,
    semantic_context: Optional[str] = None,
    in_viewport: bool = True,
    y: int = 0,
    nearby_text: Optional[str] = None,
) -> SimplifiedElement:
    return SimplifiedElement(
        id=element_id,
        tag="button",
        text=text,
        attributes=attributes or {},
        semantic_context=semantic_context,
        is_in_viewport=in_viewport,
        bounding_box={"x": 0, "y": y, "width": 10, "height": 10},
        nearby_text=nearby_text,
    )


def make_state(goal: str = "test goal") -> TaskState:
    return TaskState(goal=goal, conversation=Conversation(), plan=new_plan(goal))


class FakePage:
    def __init__(self, url: str = "https://example.com/"):
        self.url = url


class FakeBrowser:
    def __init__(self, url: str = "https://example.com/"):
        self.page: Optional[FakePage] = FakePage(url)
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, str] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise ToolExecutionError(self.fail_on[name])

    def current_page(self) -> FakePage:
        if self.page is None:
            raise EnvironmentStateError("No active page")
        return self.page

    def current_url(self) -> str:
        return self.current_page().url

    def navigate(self, url: str) -> None:
        self.current_page()
        self._record("navigate", url)
        self.page.url = url

    def click(self, element_id: str) -> None:
        self.current_page()
        self._record("click", element_id)

    def type_text(self, element_id: str, text: str, press_enter: bool = False) -> None:
        self.current_page()
        self._record("type_text", element_id, text, press_enter)

    def scroll(self, direction: str) -> None:
        self._record("scroll", direction)

    def wait(self, milliseconds: int) -> int:
        self._record("wait", milliseconds)
        return milliseconds

    def go_back(self) -> None:
        self._record("go_back")

    def screenshot(self, filename: Optional[str] = None) -> str:
        self._record("screenshot", filename)
        return filename or "screenshot-1.png"

    def extract_text(self, element_id: str) -> str:
        self._record("extract_text", element_id)
        return "Extracted"

    def new_tab(self, url: Optional[str] = None) -> str:
        self._record("new_tab", url)
        return "page-1"

    def switch_tab(self, tab_id: str) -> None:
        self._record("switch_tab", tab_id)

    def close_tab(self, tab_id: str) -> None:
        self._record("close_tab", tab_id)

    def list_tabs(self) -> List[Dict[str, Any]]:
        self._record("list_tabs")
        return [{"id": "page-0", "url": self.current_url(), "title": "Example", "current": True}]


class FakeExtractor:
    def __init__(self, elements: Optional[Sequence[SimplifiedElement]] = None):
        self.elements = list(elements or [])
        self.found: Optional[SimplifiedElement] = None
        self.info: Optional[Dict[str, Any]] = None
        self.text = "Hello world"

    def page_context(self, page: FakePage) -> Dict[str, str]:
        return {"url": page.url, "title": "Example", "description": "", "main_content": ""}

    def page_structure(self, page: FakePage) -> str:
        return "PAGE STRUCTURE:\n- Main Content: 1 section(s)"

    def extract_elements(self, page, selector=None, text_contains=None, max_elements=50):
        return filter_elements(self.elements, text_contains, max_elements)

    def find_element(self, page, selector=None, text=None, attribute=None, attribute_value=None):
        if self.found is None:
            return None
        return self.found, 3

    def element_info(self, page, element_id):
        return self.info

    def read_page_text(self, page, selector=None, max_length=2000):
        return self.text[:max_length]


class FakeRenderer:
    def __init__(self, answers: Optional[Sequence[bool]] = None, user_reply: str = "42"):
        self.answers = list(answers or [])
        self.prompts: List[str] = []
        self.questions: List[tuple] = []
        self.events: List[tuple] = []
        self.user_reply = user_reply

    def confirm_action(self, message: str) -> bool:
        self.prompts.append(message)
        return self.answers.pop(0) if self.answers else False

    def ask_user(self, question: str, reason: str) -> str:
        self.questions.append((question, reason))
        return self.user_reply

    def __getattr__(self, name: str):
        if name.startswith("display_") or name == "finish_thinking":
            return lambda *args: self.events.append((name, args))
        raise AttributeError(name)

    def event_names(self) -> List[str]:
        return [name for name, _ in self.events]


Script = Union[Sequence[Union[ModelDecision, Exception]], Callable[[int], Union[ModelDecision, Exception]]]


class ScriptedLLM:
    """Returns pre-baked decisions, one per request."""

    def __init__(self, script: Script, thinking: Sequence[str] = ()):
        self.script = script
        self.thinking = list(thinking)
        self.requests: List[List[Dict[str, Any]]] = []
        self.stream_flags: List[bool] = []

    def stream_decision(self, messages, tools=None, tool_choice="required", *, stream=True):
        index = len(self.requests)
        self.requests.append(messages)
        self.stream_flags.append(stream)
        if callable(self.script):
            step = self.script(index)
        else:
            step = self.script[min(index, len(self.script) - 1)]
        if isinstance(step, Exception):
            raise step
        if stream:
            for text in self.thinking:
                yield ThinkingUpdate(text)
        yield step


def make_agent(
    llm: ScriptedLLM,
    browser: Optional[FakeBrowser] = None,
    extractor: Optional[FakeExtractor] = None,
    renderer: Optional[FakeRenderer] = None,
    **config: Any,
):
    browser = browser or FakeBrowser()
    extractor = extractor or FakeExtractor()
    renderer = renderer or FakeRenderer()
    config.setdefault("throttle_seconds", 0)
    sleeps: List[float] = []
    dispatcher = ToolDispatcher(browser, extractor, ask_user=renderer.ask_user)
    agent = BrowserAgent(llm, dispatcher, renderer, AgentConfig(**config), sleep=sleeps.append)
    return agent, browser, extractor, renderer, sleeps
