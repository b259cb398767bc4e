from __future__ import annotations

import pytest

from helpers import FakeBrowser, FakeExtractor, element, make_state, tool_call
from web_agent.errors import EnvironmentStateError
from web_agent.executor import ToolDispatcher
from web_agent.models import ToolInvocationRequest


def _dispatcher(browser=None, extractor=None, ask_user=None):
    return ToolDispatcher(browser or FakeBrowser(), extractor or FakeExtractor(), ask_user=ask_user)


def test_navigate_reports_url_and_clears_elements() -> None:
    browser = FakeBrowser()
    state = make_state()
    state.current_elements = [element("el-0", "Old")]

    result = _dispatcher(browser).dispatch(tool_call("navigate", {"url": "https://shop.example.com"}), state)

    assert result.success
    assert result.content == "Navigated to https://shop.example.com"
    assert browser.calls == [("navigate", "https://shop.example.com")]
    assert state.current_elements == []


def test_get_page_content_stores_elements_for_later_lookups() -> None:
    extractor = FakeExtractor([element("el-0", "Search"), element("el-1", "Footer", in_viewport=False, y=2000)])
    state = make_state()

    result = _dispatcher(extractor=extractor).dispatch(tool_call("get_page_content"), state)

    assert result.success
    assert "Found 2 elements (1 visible, 1 below viewport)" in result.content
    assert "=== VISIBLE IN VIEWPORT ===" in result.content
    assert "=== BELOW VIEWPORT (need scroll) ===" in result.content
    assert state.find_element("el-1").text == "Footer"


def test_get_page_content_applies_text_filter() -> None:
    extractor = FakeExtractor([element("el-0", "Search"), element("el-1", "Cart")])
    state = make_state()

    _dispatcher(extractor=extractor).dispatch(tool_call("get_page_content", {"text_contains": "cart"}), state)

    assert [item.id for item in state.current_elements] == ["el-1"]


def test_find_element_adds_match_to_known_elements() -> None:
    extractor = FakeExtractor()
    extractor.found = element("el-found-1", "Checkout", {"type": "submit"})
    state = make_state()
    state.current_elements = [element("el-0", "Home")]

    result = _dispatcher(extractor=extractor).dispatch(tool_call("find_element", {"text": "checkout"}), state)

    assert result.content.startswith('Found element [el-found-1] button "Checkout" (3 total matches)')
    assert [item.id for item in state.current_elements] == ["el-0", "el-found-1"]


def test_find_element_without_match_is_not_an_error() -> None:
    result = _dispatcher().dispatch(tool_call("find_element", {"text": "nothing"}), make_state())

    assert result.success
    assert result.content.startswith("No element found.")


def test_missing_element_info_is_a_failure() -> None:
    result = _dispatcher().dispatch(tool_call("get_element_info", {"element_id": "el-9"}), make_state())

    assert not result.success
    assert result.content == "Error: Element el-9 not found"


def test_browser_failure_becomes_error_result() -> None:
    browser = FakeBrowser()
    browser.fail_on["click"] = "Failed to click el-2: timeout. Try scrolling to the element."

    result = _dispatcher(browser).dispatch(tool_call("click", {"element_id": "el-2"}, "call-7"), make_state())

    assert result.call_id == "call-7"
    assert not result.success
    assert result.content.startswith("Error: Failed to click el-2")


def test_unknown_tool_becomes_error_result() -> None:
    result = _dispatcher().dispatch(tool_call("teleport", {}), make_state())

    assert not result.success
    assert result.content == "Error: Unknown tool: teleport"


def test_invalid_json_arguments_become_error_result() -> None:
    request = ToolInvocationRequest(id="call-1", name="navigate", arguments=None, raw_arguments="{url:")

    result = _dispatcher().dispatch(request, make_state())

    assert not result.success
    assert "not valid JSON" in result.content


def test_missing_page_propagates() -> None:
    browser = FakeBrowser()
    browser.page = None

    with pytest.raises(EnvironmentStateError):
        _dispatcher(browser).dispatch(tool_call("get_page_structure"), make_state())


def test_type_text_with_enter() -> None:
    browser = FakeBrowser()

    result = _dispatcher(browser).dispatch(
        tool_call("type_text", {"element_id": "el-1", "text": "laptop", "press_enter": True}), make_state()
    )

    assert browser.calls == [("type_text", "el-1", "laptop", True)]
    assert "pressed Enter" in result.content


def test_tab_operations() -> None:
    browser = FakeBrowser()
    dispatcher = _dispatcher(browser)
    state = make_state()

    opened = dispatcher.dispatch(tool_call("new_tab", {"url": "https://example.org"}), state)
    listed = dispatcher.dispatch(tool_call("list_tabs"), state)
    closed = dispatcher.dispatch(tool_call("close_tab", {"tab_id": "page-1"}), state)

    assert opened.content == "Created new tab: page-1 at https://example.org"
    assert listed.content == "Open tabs:\n- page-0: https://example.com/ (current)"
    assert closed.content == "Closed tab page-1"


def test_ask_user_returns_reply() -> None:
    asked = []
    dispatcher = _dispatcher(ask_user=lambda question, reason: asked.append((question, reason)) or "123456")

    result = dispatcher.dispatch(
        tool_call("ask_user", {"question": "Enter the 2FA code", "reason": "2FA verification"}), make_state()
    )

    assert result.content == "User responded: 123456"
    assert asked == [("Enter the 2FA code", "2FA verification")]


def test_ask_user_without_user_fails_cleanly() -> None:
    result = _dispatcher().dispatch(tool_call("ask_user", {"question": "?", "reason": "captcha"}), make_state())

    assert not result.success


def test_update_plan_replaces_state_plan() -> None:
    state = make_state("buy milk")

    result = _dispatcher().dispatch(
        tool_call(
            "update_plan",
            {
                "steps": [{"description": "Open shop", "status": "in_progress"}, {"description": "Add milk"}],
                "current_step_index": 0,
                "completion_criteria": ["milk in cart"],
                "adaptations": ["store search"],
            },
        ),
        state,
    )

    assert result.content == "Plan updated: 2 steps, currently on step 1"
    assert state.plan.goal == "buy milk"
    assert [step.status for step in state.plan.steps] == ["in_progress", "pending"]
    assert state.plan.adaptations == ["store search"]


def test_complete_task_marks_state() -> None:
    state = make_state()

    result = _dispatcher().dispatch(tool_call("complete_task", {"summary": "Added to cart", "success": True}), state)

    assert result.content == "Added to cart"
    assert state.complete and state.success
    assert state.summary == "Added to cart"


def test_every_contract_operation_has_a_handler() -> None:
    from web_agent.tools import TOOL_NAMES

    assert set(_dispatcher().operations) == set(TOOL_NAMES)


def _plan_call(*statuses):
    return tool_call(
        "update_plan",
        {
            "steps": [{"description": f"step {index}", "status": status} for index, status in enumerate(statuses)],
            "current_step_index": 0,
            "completion_criteria": [],
        },
    )


def test_update_plan_progress_cannot_go_backwards() -> None:
    state = make_state()
    dispatcher = _dispatcher()

    dispatcher.dispatch(_plan_call("completed", "in_progress"), state)
    result = dispatcher.dispatch(_plan_call("pending", "completed"), state)

    assert not result.success
    assert result.content == "Error: Cannot move step-1 from completed to pending"
    assert [step.status for step in state.plan.steps] == ["completed", "in_progress"]
