"""Tool contract offered to the model and validation of the arguments it sends.

Each operation has a pydantic model for its arguments. ``TOOL_DEFINITIONS`` is
generated from those models and passed verbatim as the ``tools`` parameter of
the chat completion request, and ``validate_arguments`` validates a decoded
argument mapping with the same model, so the two cannot drift apart.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Type

from pydantic import AfterValidator, BaseModel, Field, StrictBool, ValidationError, field_validator, model_validator

from .errors import ToolArgumentError, UnknownToolError
from .planner import PlanUpdate, StepDraft, StepStatus

MAX_WAIT_MS = 10000
DEFAULT_MAX_ELEMENTS = 50
DEFAULT_TEXT_LENGTH = 2000

# empty strings from the model mean "not given"
OptionalText = Annotated[Optional[str], AfterValidator(lambda value: value or None)]

_ELEMENT_ID = 'Element ID from get_page_content or find_element (e.g. "el-0", "el-1")'


class ToolArguments(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # an explicit null is treated like an omitted argument
        if isinstance(data, Mapping):
            return {key: value for key, value in data.items() if value is not None}
        return data


class NoArgs(ToolArguments):
    pass


class NavigateArgs(ToolArguments):
    url: str = Field(description="Full URL including the protocol (http:// or https://)")


class PageContentArgs(ToolArguments):
    selector: OptionalText = Field(
        None, description='CSS selector to narrow the search, e.g. "button", "input", "a[href*=\'cart\']"'
    )
    text_contains: OptionalText = Field(
        None, description="Case-insensitive text filter over element text, attributes and context"
    )
    max_elements: int = Field(DEFAULT_MAX_ELEMENTS, ge=1, description="Maximum elements to return (default 50)")


class FindElementArgs(ToolArguments):
    selector: OptionalText = Field(None, description="CSS selector designed from the page analysis")
    text: OptionalText = Field(None, description="Partial text the element must contain")
    attribute: OptionalText = Field(None, description='Attribute name to filter by, e.g. "href", "type", "aria-label"')
    attribute_value: OptionalText = Field(None, description="Partial value the chosen attribute must contain")


class ElementArgs(ToolArguments):
    element_id: str = Field(description=_ELEMENT_ID)


class ReadPageTextArgs(ToolArguments):
    selector: OptionalText = Field(None, description="CSS selector to read from. Leave empty for the main content.")
    max_length: int = Field(DEFAULT_TEXT_LENGTH, ge=1, description="Maximum characters to return (default 2000)")


class TypeTextArgs(ToolArguments):
    element_id: str = Field(description=_ELEMENT_ID)
    text: str = Field(description="Text to type into the field")
    press_enter: StrictBool = Field(False, description="Press Enter after typing (default false)")


class ScrollArgs(ToolArguments):
    direction: Literal["up", "down", "top", "bottom"] = Field(description="Direction to scroll")


class WaitArgs(ToolArguments):
    milliseconds: int = Field(
        description=f"Time to wait in milliseconds (max {MAX_WAIT_MS})",
        json_schema_extra={"maximum": MAX_WAIT_MS},
    )

    @field_validator("milliseconds")
    @classmethod
    def _clamp(cls, value: int) -> int:
        return max(0, min(value, MAX_WAIT_MS))


class NewTabArgs(ToolArguments):
    url: OptionalText = Field(None, description="Optional URL for the new tab")


class TabArgs(ToolArguments):
    tab_id: str = Field(description='Tab ID, e.g. "page-0"')


class ScreenshotArgs(ToolArguments):
    filename: OptionalText = Field(None, description="Optional file name (auto-generated when omitted)")


class AskUserArgs(ToolArguments):
    question: str = Field(description="Specific question telling the user exactly what to do")
    reason: str = Field(description='Why help is needed, e.g. "CAPTCHA detected"')


class PlanStepArgs(ToolArguments):
    description: str = Field(description="What this step accomplishes")
    status: Optional[StepStatus] = Field(None, description="Current status of the step")


class UpdatePlanArgs(ToolArguments):
    steps: List[PlanStepArgs] = Field(description="Ordered, verifiable steps")
    current_step_index: int = Field(description="0-based index of the active step")
    completion_criteria: List[str] = Field(description="Criteria that must hold for the task to count as done")
    adaptations: Optional[List[str]] = Field(None, description="Optional notes on how the plan changed")

    def to_plan_update(self) -> PlanUpdate:
        return PlanUpdate(
            steps=[StepDraft(description=step.description, status=step.status) for step in self.steps],
            current_step_index=self.current_step_index,
            completion_criteria=list(self.completion_criteria),
            adaptations=list(self.adaptations) if self.adaptations is not None else None,
        )


class CompleteTaskArgs(ToolArguments):
    summary: str = Field(description="What was accomplished, or why it could not be")
    success: StrictBool = Field(description="Whether the main objective was achieved")


_TOOLS: List[Tuple[str, str, Type[ToolArguments]]] = [
    ("navigate", "Navigate to a URL. Call wait() afterwards if the page needs more time to load.", NavigateArgs),
    (
        "get_page_structure",
        "Overview of the page layout: landmarks, headings and forms. Use it first on a new page.",
        NoArgs,
    ),
    ("get_page_content", "List interactive elements with unique IDs, grouped by viewport visibility.", PageContentArgs),
    (
        "find_element",
        "Find the first element matching the given criteria and assign it an ID for interaction.",
        FindElementArgs,
    ),
    ("get_element_info", "Detailed info about one element: attributes, text, parent and children.", ElementArgs),
    ("read_page_text", "Read visible text from the page or from one element.", ReadPageTextArgs),
    ("click", "Click an element by its element ID.", ElementArgs),
    (
        "type_text",
        "Type text into an input or textarea. Call get_page_content afterwards if Enter navigates.",
        TypeTextArgs,
    ),
    ("scroll", "Scroll the page to reveal more content.", ScrollArgs),
    ("wait", "Wait for content to load.", WaitArgs),
    ("new_tab", "Open a new tab, optionally at a URL.", NewTabArgs),
    ("switch_tab", "Switch to another open tab.", TabArgs),
    ("list_tabs", "List open tabs with their IDs and URLs.", NoArgs),
    ("close_tab", "Close a tab.", TabArgs),
    ("go_back", "Go back to the previous page in history.", NoArgs),
    ("take_screenshot", "Save a screenshot of the current page.", ScreenshotArgs),
    ("extract_text", "Extract the text content of one element.", ElementArgs),
    (
        "ask_user",
        "Ask the human for help. Last resort for CAPTCHA, login, 2FA or an ambiguous page.",
        AskUserArgs,
    ),
    (
        "update_plan",
        "Create or update the execution plan. Call it at task start, when a step finishes "
        "and whenever the strategy changes.",
        UpdatePlanArgs,
    ),
    ("complete_task", "Finish the task and report the outcome.", CompleteTaskArgs),
]

_MODELS: Dict[str, Type[ToolArguments]] = {name: model for name, _, model in _TOOLS}


def _parameters(model: Type[ToolArguments]) -> Dict[str, Any]:
    """JSON schema of ``model`` in the shape the chat-completions API expects."""
    schema = model.model_json_schema()
    definitions = schema.pop("$defs", {})

    def clean(node: Any) -> Any:
        if isinstance(node, list):
            return [clean(item) for item in node]
        if not isinstance(node, dict):
            return node
        if "$ref" in node:
            return clean(definitions[node["$ref"].rsplit("/", 1)[-1]])
        variants = node.get("anyOf")
        if variants and {"type": "null"} in variants and len(variants) == 2:
            # Optional[X] -> X; optional-ness is carried by "required"
            merged = {key: value for key, value in node.items() if key not in ("anyOf", "default")}
            merged.update(next(variant for variant in variants if variant != {"type": "null"}))
            node = merged
        return {
            key: clean(value)
            for key, value in node.items()
            if not (key == "title" and isinstance(value, str)) and not (key == "default" and value is None)
        }

    parameters = clean(schema)
    parameters.pop("description", None)
    parameters.setdefault("properties", {})
    parameters.setdefault("required", [])
    return parameters


def _tool(name: str, description: str, model: Type[ToolArguments]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": _parameters(model)},
    }


TOOL_DEFINITIONS: List[Dict[str, Any]] = [_tool(name, description, model) for name, description, model in _TOOLS]
TOOL_NAMES = tuple(name for name, _, _ in _TOOLS)


def _describe(name: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"'{location}' {item['msg'].lower()}")
    return f"{name}: " + "; ".join(problems)


def validate_arguments(name: str, arguments: Optional[Mapping[str, Any]]) -> ToolArguments:
    """Validate ``arguments`` with the model of ``name`` and return the model instance."""
    model = _MODELS.get(name)
    if model is None:
        raise UnknownToolError(name)
    if arguments is None:
        raise ToolArgumentError(f"{name}: arguments were not valid JSON")
    if not isinstance(arguments, Mapping):
        raise ToolArgumentError(f"{name}: arguments must be a JSON object")
    try:
        return model.model_validate(dict(arguments))
    except ValidationError as exc:
        raise ToolArgumentError(_describe(name, exc)) from exc
