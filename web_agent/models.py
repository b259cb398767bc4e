"""Data carried through a task: conversation, tool calls, audit log and state."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Literal, Mapping, Optional, Set, Tuple

from .planner import TaskPlan

Role = Literal["system", "user", "assistant", "tool"]
ActionStatus = Literal["success", "failed"]
OutcomeStatus = Literal["completed", "unresolved", "aborted"]


@dataclass(frozen=True)
class ToolInvocationRequest:
    id: str
    name: str
    # None when the model sent arguments that were not valid JSON.
    arguments: Optional[Mapping[str, Any]]
    raw_arguments: str = "{}"

    def __post_init__(self):
        if self.arguments is not None:
            # read-only view over a private copy so recorded turns cannot change
            object.__setattr__(self, "arguments", MappingProxyType(copy.deepcopy(dict(self.arguments))))

    def to_message(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


@dataclass(frozen=True)
class ToolInvocationResult:
    call_id: str
    success: bool
    content: str


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: Optional[str] = None
    tool_calls: Tuple[ToolInvocationRequest, ...] = ()
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "ConversationTurn":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: Optional[str], tool_calls: Tuple[ToolInvocationRequest, ...] = ()
    ) -> "ConversationTurn":
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, call_id: str, content: str) -> "ConversationTurn":
        return cls(role="tool", content=content, tool_call_id=call_id)

    def to_message(self) -> Dict[str, Any]:
        """Render the turn in the chat-completions message format."""
        if self.role == "tool":
            return {"role": "tool", "tool_call_id": self.tool_call_id, "content": self.content or ""}
        if self.role == "assistant":
            message: Dict[str, Any] = {"role": "assistant", "content": self.content}
            if self.tool_calls:
                message["tool_calls"] = [call.to_message() for call in self.tool_calls]
            return message
        return {"role": self.role, "content": self.content or ""}


class Conversation:
    """Append-only list of turns shared by every task in a session."""

    def __init__(self, turns: Optional[List[ConversationTurn]] = None):
        self._turns: List[ConversationTurn] = list(turns or [])

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def to_messages(self) -> List[Dict[str, Any]]:
        return [turn.to_message() for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(tuple(self._turns))

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]


@dataclass
class SimplifiedElement:
    """One DOM element as reported by the extractor, addressed by ``id``."""

    id: str
    tag: str
    text: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    interactable: bool = True
    role: Optional[str] = None
    bounding_box: Optional[Dict[str, int]] = None
    is_in_viewport: bool = False
    z_index: int = 0
    aria_label: Optional[str] = None
    semantic_context: Optional[str] = None
    nearby_text: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SimplifiedElement":
        attributes = payload.get("attributes") or {}
        return cls(
            id=str(payload.get("id", "")),
            tag=str(payload.get("tag", "")),
            text=payload.get("text") or None,
            attributes={str(k): str(v) for k, v in attributes.items()},
            interactable=bool(payload.get("interactable", True)),
            role=payload.get("role") or None,
            bounding_box=payload.get("boundingBox"),
            is_in_viewport=bool(payload.get("isInViewport", False)),
            z_index=int(payload.get("zIndex") or 0),
            aria_label=payload.get("ariaLabel") or None,
            semantic_context=payload.get("semanticContext") or None,
            nearby_text=payload.get("nearbyText") or None,
        )


@dataclass
class ActionHistoryItem:
    iteration: int
    tool: str
    arguments: Dict[str, Any]
    result: str
    status: ActionStatus
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class TaskState:
    """Everything that changes while a single task runs."""

    goal: str
    conversation: Conversation
    plan: TaskPlan
    confirmed_actions: Set[str] = field(default_factory=set)
    action_history: List[ActionHistoryItem] = field(default_factory=list)
    current_elements: List[SimplifiedElement] = field(default_factory=list)
    iteration: int = 0
    complete: bool = False
    success: bool = False
    summary: str = ""
    last_error: Optional[str] = None

    def find_element(self, element_id: Optional[str]) -> Optional[SimplifiedElement]:
        if not element_id:
            return None
        for element in self.current_elements:
            if element.id == element_id:
                return element
        return None


@dataclass
class TaskOutcome:
    status: OutcomeStatus
    success: bool
    summary: str
    iterations: int
    action_history: List[ActionHistoryItem] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == "completed"
