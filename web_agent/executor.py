"""Run one tool call against the browser and report what happened.

``ToolDispatcher.dispatch`` never lets a tool failure escape: bad arguments,
unknown tools and browser errors all come back as a failed
``ToolInvocationResult`` whose text starts with ``Error:`` so the model can try
something else. The one exception is ``EnvironmentStateError`` (no page to act
on), which the loop treats as fatal for the task.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional, Protocol

from .dom_extractor import DOMExtractor, format_element_info, format_elements_for_llm
from .errors import AgentError, EnvironmentStateError, ToolExecutionError
from .models import SimplifiedElement, TaskState, ToolInvocationRequest, ToolInvocationResult
from .planner import merge_plan_update, plan_summary
from .tools import (
    AskUserArgs,
    CompleteTaskArgs,
    ElementArgs,
    FindElementArgs,
    NavigateArgs,
    NewTabArgs,
    NoArgs,
    PageContentArgs,
    ReadPageTextArgs,
    ScreenshotArgs,
    ScrollArgs,
    TabArgs,
    TypeTextArgs,
    UpdatePlanArgs,
    WaitArgs,
    validate_arguments,
)

LOGGER = logging.getLogger(__name__)


class Actuator(Protocol):
    def current_page(self) -> Any: ...
    def current_url(self) -> str: ...
    def navigate(self, url: str) -> None: ...
    def click(self, element_id: str) -> None: ...
    def type_text(self, element_id: str, text: str, press_enter: bool = False) -> None: ...
    def scroll(self, direction: str) -> None: ...
    def wait(self, milliseconds: int) -> int: ...
    def go_back(self) -> None: ...
    def screenshot(self, filename: Optional[str] = None) -> str: ...
    def extract_text(self, element_id: str) -> str: ...
    def new_tab(self, url: Optional[str] = None) -> str: ...
    def switch_tab(self, tab_id: str) -> None: ...
    def close_tab(self, tab_id: str) -> None: ...
    def list_tabs(self) -> Any: ...


Handler = Callable[[Any, TaskState], str]


class ToolDispatcher:
    def __init__(
        self,
        browser: Actuator,
        extractor: Optional[DOMExtractor] = None,
        ask_user: Optional[Callable[[str, str], str]] = None,
    ):
        self.browser = browser
        self.extractor = extractor or DOMExtractor()
        self._ask_user = ask_user or _no_user
        self._handlers: Dict[str, Handler] = {
            "navigate": self._navigate,
            "get_page_structure": self._get_page_structure,
            "get_page_content": self._get_page_content,
            "find_element": self._find_element,
            "get_element_info": self._get_element_info,
            "read_page_text": self._read_page_text,
            "click": self._click,
            "type_text": self._type_text,
            "scroll": self._scroll,
            "wait": self._wait,
            "new_tab": self._new_tab,
            "switch_tab": self._switch_tab,
            "list_tabs": self._list_tabs,
            "close_tab": self._close_tab,
            "go_back": self._go_back,
            "take_screenshot": self._take_screenshot,
            "extract_text": self._extract_text,
            "ask_user": self._ask,
            "update_plan": self._update_plan,
            "complete_task": self._complete_task,
        }

    @property
    def operations(self):
        return tuple(self._handlers)

    def dispatch(self, request: ToolInvocationRequest, state: TaskState) -> ToolInvocationResult:
        try:
            args = validate_arguments(request.name, request.arguments)
            handler = self._handlers[request.name]
            content = handler(args, state)
        except EnvironmentStateError:
            raise
        except AgentError as exc:
            LOGGER.info("tool.failed", extra={"tool": request.name, "error": str(exc)})
            return ToolInvocationResult(call_id=request.id, success=False, content=f"Error: {exc}")
        except Exception as exc:
            LOGGER.exception("tool.crashed", extra={"tool": request.name})
            return ToolInvocationResult(call_id=request.id, success=False, content=f"Error: {exc}")
        return ToolInvocationResult(call_id=request.id, success=True, content=content)

    # navigation and discovery

    def _navigate(self, args: NavigateArgs, state: TaskState) -> str:
        self.browser.navigate(args.url)
        state.current_elements = []
        return f"Navigated to {args.url}"

    def _get_page_structure(self, args: NoArgs, state: TaskState) -> str:
        page = self.browser.current_page()
        structure = self.extractor.page_structure(page)
        context = self.extractor.page_context(page)
        return (
            f"Page: {context['title']}\nURL: {context['url']}\n\n{structure}\n\n"
            "Use get_page_content to see interactive elements you can click or type into."
        )

    def _get_page_content(self, args: PageContentArgs, state: TaskState) -> str:
        page = self.browser.current_page()
        context = self.extractor.page_context(page)
        elements = self.extractor.extract_elements(
            page,
            selector=args.selector,
            text_contains=args.text_contains,
            max_elements=args.max_elements,
        )
        state.current_elements = elements
        visible = sum(1 for element in elements if element.is_in_viewport)
        listing = format_elements_for_llm(elements, args.max_elements)
        return (
            f"Page: {context['title']}\nURL: {context['url']}\n\n"
            f"Found {len(elements)} elements ({visible} visible, {len(elements) - visible} below viewport):\n\n"
            f"{listing}"
        )

    def _find_element(self, args: FindElementArgs, state: TaskState) -> str:
        found = self.extractor.find_element(
            self.browser.current_page(),
            selector=args.selector,
            text=args.text,
            attribute=args.attribute,
            attribute_value=args.attribute_value,
        )
        if found is None:
            return (
                "No element found. Try a different selector/text/attribute "
                "or use get_page_content to see all elements."
            )
        element, total = found
        _remember_element(state, element)
        return (
            f'Found element [{element.id}] {element.tag} "{element.text or ""}" ({total} total matches)\n'
            f"Attributes: {json.dumps(element.attributes, ensure_ascii=False)}"
        )

    def _get_element_info(self, args: ElementArgs, state: TaskState) -> str:
        info = self.extractor.element_info(self.browser.current_page(), args.element_id)
        if not info:
            raise ToolExecutionError(f"Element {args.element_id} not found")
        return format_element_info(args.element_id, info)

    def _read_page_text(self, args: ReadPageTextArgs, state: TaskState) -> str:
        text = self.extractor.read_page_text(self.browser.current_page(), args.selector, args.max_length)
        return f"Page text ({len(text)} chars):\n\n{text}"

    # interaction

    def _click(self, args: ElementArgs, state: TaskState) -> str:
        self.browser.click(args.element_id)
        return f"Clicked element {args.element_id}. Call get_page_content to see the updated page."

    def _type_text(self, args: TypeTextArgs, state: TaskState) -> str:
        self.browser.type_text(args.element_id, args.text, args.press_enter)
        if args.press_enter:
            return (
                f'Typed "{args.text}" into {args.element_id} and pressed Enter. '
                "Call get_page_content to see the results."
            )
        return f'Typed "{args.text}" into {args.element_id}'

    def _scroll(self, args: ScrollArgs, state: TaskState) -> str:
        self.browser.scroll(args.direction)
        return f"Scrolled {args.direction}"

    def _wait(self, args: WaitArgs, state: TaskState) -> str:
        waited = self.browser.wait(args.milliseconds)
        return f"Waited {waited}ms"

    def _go_back(self, args: NoArgs, state: TaskState) -> str:
        self.browser.go_back()
        state.current_elements = []
        return "Navigated back"

    def _take_screenshot(self, args: ScreenshotArgs, state: TaskState) -> str:
        path = self.browser.screenshot(args.filename)
        return f"Screenshot saved: {path}"

    def _extract_text(self, args: ElementArgs, state: TaskState) -> str:
        return self.browser.extract_text(args.element_id) or "No text found"

    # tabs

    def _new_tab(self, args: NewTabArgs, state: TaskState) -> str:
        tab_id = self.browser.new_tab(args.url)
        if args.url:
            return f"Created new tab: {tab_id} at {args.url}"
        return f"Created new tab: {tab_id}"

    def _switch_tab(self, args: TabArgs, state: TaskState) -> str:
        self.browser.switch_tab(args.tab_id)
        state.current_elements = []
        return f"Switched to tab {args.tab_id}"

    def _list_tabs(self, args: NoArgs, state: TaskState) -> str:
        tabs = self.browser.list_tabs()
        lines = ["Open tabs:"]
        for tab in tabs:
            marker = " (current)" if tab.get("current") else ""
            lines.append(f"- {tab['id']}: {tab['url']}{marker}")
        return "\n".join(lines)

    def _close_tab(self, args: TabArgs, state: TaskState) -> str:
        self.browser.close_tab(args.tab_id)
        return f"Closed tab {args.tab_id}"

    # agent control

    def _ask(self, args: AskUserArgs, state: TaskState) -> str:
        answer = self._ask_user(args.question, args.reason)
        return f"User responded: {answer}"

    def _update_plan(self, args: UpdatePlanArgs, state: TaskState) -> str:
        state.plan = merge_plan_update(state.plan, args.to_plan_update())
        summary = plan_summary(state.plan)
        LOGGER.info("plan.updated", extra={"steps": len(state.plan.steps)})
        return summary

    def _complete_task(self, args: CompleteTaskArgs, state: TaskState) -> str:
        state.complete = True
        state.success = args.success
        state.summary = args.summary
        return args.summary


def _remember_element(state: TaskState, element: SimplifiedElement) -> None:
    state.current_elements = [item for item in state.current_elements if item.id != element.id]
    state.current_elements.append(element)


def _no_user(question: str, reason: str) -> str:
    raise ToolExecutionError("No user is attached to answer questions")
