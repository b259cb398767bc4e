"""The execution loop: ask the model, gate risky calls, dispatch, repeat.

A ``BrowserAgent`` owns one conversation for the whole session. Each call to
``run_task`` appends the new goal to it and drives iterations until the model
calls ``complete_task`` or the iteration budget runs out. Per-task state lives
in a ``TaskState`` that is created fresh for every task.
"""

from __future__ import annotations

import logging
import textwrap
import time
from typing import Any, Callable, Optional

from .confirmation import ConfirmationGate
from .config import AgentConfig
from .errors import EnvironmentStateError, ModelCallError, ProtocolViolation
from .executor import ToolDispatcher
from .llm import ModelDecision, ThinkingUpdate
from .models import (
    ActionHistoryItem,
    Conversation,
    ConversationTurn,
    TaskOutcome,
    TaskState,
    ToolInvocationRequest,
    ToolInvocationResult,
)
from .planner import new_plan
from .security import ActionContext, assess_action
from .tools import TOOL_DEFINITIONS

LOGGER = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Action cancelled by user"
SKIPPED_AFTER_COMPLETION = "Skipped: task already completed"
SKIPPED_AFTER_ABORT = "Skipped: task aborted"
SKIPPED_AFTER_FAILURE = "Skipped: an earlier call in this turn failed"
NO_TOOL_CALLS_MESSAGE = "Model did not return tool calls as required"

SYSTEM_PROMPT = textwrap.dedent(
    """
    You are an autonomous web automation agent. You accomplish the user's task by
    controlling a real web browser through the tools you are given.

    === HOW TO WORK ===
    1. Always act through tools. Never answer with plain text only.
    2. At the start of a task call update_plan() with a short list of steps, and
       update it whenever you finish a step or change strategy.
    3. On a new page call get_page_structure() to understand the layout, then
       get_page_content() to list interactive elements and their IDs.
    4. Interact with elements by their IDs (click, type_text). IDs change when the
       page changes, so refresh them with get_page_content() after navigation.
    5. After each action check that it worked before moving on.

    === FINDING ELEMENTS ===
    - Elements are grouped by viewport. Prefer visible ones and scroll when needed.
    - Craft your own CSS selectors from what you see, e.g. "button[type='submit']",
      "[href*='cart']", "nav a", "form input".
    - Use text_contains or find_element() to narrow down large pages.
    - If one approach fails, try a different one: text, then attributes, then structure.

    === WHEN STUCK ===
    Try 3-5 different strategies (other selectors, read_page_text, scroll, wait).
    Use ask_user() only for CAPTCHAs, logins, 2FA or after exhausting the options.

    === COMPLETION ===
    Call complete_task(summary, success) as soon as the main objective is met
    (success=true), or after several failed approaches (success=false).
    Do not over-optimize: a search task is done when results are shown, a cart task
    when the item is in the cart, a navigation task when the page is reached.

    === SECURITY ===
    Sensitive actions (payments, deletions, account changes) are confirmed with the
    user automatically. Proceed normally; a cancelled action means choose another way.
    """
).strip()


class BrowserAgent:
    def __init__(
        self,
        llm: Any,
        dispatcher: ToolDispatcher,
        renderer: Any,
        config: Optional[AgentConfig] = None,
        *,
        gate: Optional[ConfirmationGate] = None,
        sleep: Callable[[float], None] = time.sleep,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.llm = llm
        self.dispatcher = dispatcher
        self.browser = dispatcher.browser
        self.renderer = renderer
        self.config = config or AgentConfig()
        self.gate = gate or ConfirmationGate(
            renderer.confirm_action, require_confirmation=self.config.require_confirmation
        )
        self._sleep = sleep
        self.conversation = Conversation([ConversationTurn.system(system_prompt)])
        self.state: Optional[TaskState] = None

    def run_task(self, goal: str) -> TaskOutcome:
        state = TaskState(goal=goal, conversation=self.conversation, plan=new_plan(goal))
        self.state = state
        self.conversation.append(ConversationTurn.user(goal))
        LOGGER.info("task.started", extra={"goal": goal, "max_iterations": self.config.max_iterations})
        self._render("display_task", goal)
        if self.config.show_plan:
            self._render("display_plan", state.plan)

        aborted_reason: Optional[str] = None
        while not state.complete and state.iteration < self.config.max_iterations:
            state.iteration += 1
            self._render("display_iteration", state.iteration, self.config.max_iterations)
            try:
                self._run_iteration(state)
            except (ModelCallError, ProtocolViolation) as exc:
                LOGGER.warning("iteration.failed", extra={"iteration": state.iteration, "error": str(exc)})
                self._correct(state, exc)
            except EnvironmentStateError as exc:
                aborted_reason = f"Browser is not available: {exc}"
                state.last_error = str(exc)
                LOGGER.error("task.aborted", extra={"iteration": state.iteration, "error": str(exc)})
                break
            except Exception as exc:
                LOGGER.exception("iteration.crashed", extra={"iteration": state.iteration})
                self._correct(state, exc)

            if not state.complete and state.iteration < self.config.max_iterations:
                self._sleep(self.config.throttle_seconds)

        return self._finish(state, aborted_reason)

    def _correct(self, state: TaskState, exc: Exception) -> None:
        state.last_error = str(exc)
        self.conversation.append(ConversationTurn.user(f"An error occurred: {exc}. Please try a different approach."))

    # one iteration

    def _run_iteration(self, state: TaskState) -> None:
        decision = self._request_decision(state)
        if not decision.tool_calls:
            if decision.content:
                self.conversation.append(ConversationTurn.assistant(decision.content))
            LOGGER.warning("model.no_tool_calls", extra={"iteration": state.iteration})
            raise ProtocolViolation(NO_TOOL_CALLS_MESSAGE)

        calls = list(decision.tool_calls)
        self.conversation.append(ConversationTurn.assistant(decision.content, tuple(calls)))

        for index, call in enumerate(calls):
            if state.complete:
                # every tool call needs an answer or the next request is rejected
                self.conversation.append(ConversationTurn.tool(call.id, SKIPPED_AFTER_COMPLETION))
                continue
            try:
                self._handle_call(call, state)
            except Exception as exc:
                self.conversation.append(ConversationTurn.tool(call.id, f"Error: {exc}"))
                skipped = SKIPPED_AFTER_ABORT if isinstance(exc, EnvironmentStateError) else SKIPPED_AFTER_FAILURE
                for pending in calls[index + 1:]:
                    self.conversation.append(ConversationTurn.tool(pending.id, skipped))
                raise

    def _request_decision(self, state: TaskState) -> ModelDecision:
        stream = self.config.enable_thinking and self.config.show_thinking
        decision: Optional[ModelDecision] = None
        LOGGER.debug("model.request", extra={"iteration": state.iteration, "turns": len(self.conversation)})
        try:
            for event in self.llm.stream_decision(
                self.conversation.to_messages(), TOOL_DEFINITIONS, "required", stream=stream
            ):
                if isinstance(event, ThinkingUpdate):
                    self._render("display_thinking", event.text)
                else:
                    decision = event
        finally:
            self._render("finish_thinking")

        if decision is None:
            raise ModelCallError("No response from LLM")
        self._render(
            "display_response", decision.content, len(decision.tool_calls), decision.usage, decision.model
        )
        return decision

    def _handle_call(self, call: ToolInvocationRequest, state: TaskState) -> None:
        self._render("display_current_step", state.iteration, call.name, call.arguments)

        if not self._gate_allows(call, state):
            self.conversation.append(ConversationTurn.tool(call.id, CANCELLED_MESSAGE))
            self._render("display_cancelled", call.name)
            return

        result = self.dispatcher.dispatch(call, state)
        self.conversation.append(ConversationTurn.tool(result.call_id, result.content))
        self._record(state, call, result)

        if call.name != "complete_task":
            self._render("display_step_result", result.content, result.success)
        if call.name == "update_plan" and result.success and self.config.show_plan:
            self._render("display_plan", state.plan)

    def _gate_allows(self, call: ToolInvocationRequest, state: TaskState) -> bool:
        # unparsable arguments never reach the browser, the dispatcher rejects them
        if not self.gate.needs_review() or call.arguments is None:
            return True
        element_id = call.arguments.get("element_id")
        element = state.find_element(element_id) if isinstance(element_id, str) else None
        context = ActionContext(
            action=call.name,
            page_url=self._page_url(),
            element_text=element.text if element else None,
            element_attributes=dict(element.attributes) if element else {},
            semantic_context=element.semantic_context if element else None,
        )
        assessment = assess_action(context)
        decision = self.gate.review(assessment, context, state.confirmed_actions)
        return decision.allows_dispatch

    def _page_url(self) -> str:
        try:
            return self.browser.current_url()
        except EnvironmentStateError:
            # no page yet; calls that need one fail in the dispatcher
            return ""

    # bookkeeping

    def _record(self, state: TaskState, call: ToolInvocationRequest, result: ToolInvocationResult) -> None:
        state.action_history.append(
            ActionHistoryItem(
                iteration=state.iteration,
                tool=call.name,
                arguments=dict(call.arguments or {}),
                result=result.content,
                status="success" if result.success else "failed",
            )
        )

    def _finish(self, state: TaskState, aborted_reason: Optional[str]) -> TaskOutcome:
        if aborted_reason is not None:
            outcome = TaskOutcome("aborted", False, aborted_reason, state.iteration, state.action_history)
        elif state.complete:
            outcome = TaskOutcome("completed", state.success, state.summary, state.iteration, state.action_history)
        else:
            reason = f"Task reached maximum iterations ({self.config.max_iterations})"
            if state.last_error:
                reason = f"{reason}. Last error: {state.last_error}"
            outcome = TaskOutcome("unresolved", False, reason, state.iteration, state.action_history)

        LOGGER.info(
            "task.finished",
            extra={"status": outcome.status, "success": outcome.success, "iterations": outcome.iterations},
        )
        self._render("display_task_completion", outcome.success, outcome.summary)
        if self.config.show_history and outcome.action_history:
            self._render("display_action_history", outcome.action_history)
        return outcome

    def _render(self, method: str, *args: Any) -> None:
        handler = getattr(self.renderer, method, None)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as exc:
            LOGGER.warning("renderer.failed", extra={"method": method, "error": str(exc)})
