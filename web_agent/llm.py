"""Chat-completions client that turns a conversation into the next decision."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from openai import OpenAI, OpenAIError

from .errors import ModelCallError
from .models import ToolInvocationRequest

LOGGER = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 2000
DEFAULT_REASONING_EFFORT = "high"
THINKING_MODELS = (
    "mistralai/ministral-3-14b-reasoning",
    "ministral-3-14b-reasoning",
    "o1-preview",
    "o1-mini",
    "o1",
)


@dataclass
class ThinkingUpdate:
    """Reasoning streamed so far (cumulative, not a delta)."""

    text: str


@dataclass
class ModelDecision:
    content: Optional[str]
    tool_calls: List[ToolInvocationRequest] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)
    model: str = ""
    reasoning: Optional[str] = None
    finish_reason: Optional[str] = None


StreamEvent = Union[ThinkingUpdate, ModelDecision]


def is_thinking_model(model: str) -> bool:
    return any(name in model for name in THINKING_MODELS)


def parse_tool_call(call_id: str, name: str, raw_arguments: Optional[str]) -> ToolInvocationRequest:
    raw = raw_arguments or "{}"
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        decoded = None
    if not isinstance(decoded, dict):
        decoded = None
    return ToolInvocationRequest(id=call_id, name=name, arguments=decoded, raw_arguments=raw)


def _usage_dict(usage: Any) -> Dict[str, int]:
    if usage is None:
        return {}
    return {
        "prompt_tokens": int(getattr(usage, "prompt_tokens", 0) or 0),
        "completion_tokens": int(getattr(usage, "completion_tokens", 0) or 0),
        "total_tokens": int(getattr(usage, "total_tokens", 0) or 0),
    }


def _reasoning_delta(delta: Any) -> str:
    # providers disagree on the field name
    return getattr(delta, "reasoning", None) or getattr(delta, "reasoning_content", None) or ""


class LLMClient:
    def __init__(
        self,
        model: str,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        enable_thinking: bool = True,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.enable_thinking = enable_thinking
        self._client = client or OpenAI(base_url=base_url, api_key=api_key)
        LOGGER.info("llm.initialized", extra={"model": model, "base_url": base_url})

    def build_request(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "required",
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": DEFAULT_MAX_TOKENS,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = tool_choice or "auto"
        if self.enable_thinking and is_thinking_model(self.model):
            params["reasoning_effort"] = DEFAULT_REASONING_EFFORT
        return params

    def stream_decision(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "required",
        *,
        stream: bool = True,
    ) -> Iterator[StreamEvent]:
        """Yield ``ThinkingUpdate`` events and finally one ``ModelDecision``.

        With ``stream=False`` a single request is made and only the decision is
        yielded. Failures of the endpoint surface as ``ModelCallError``.
        """
        params = self.build_request(messages, tools, tool_choice)
        if not stream:
            yield self._complete(params)
            return
        yield from self._stream(params)

    def decide(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "required",
        on_thinking: Optional[Callable[[str], None]] = None,
    ) -> ModelDecision:
        stream = self.enable_thinking and on_thinking is not None
        decision: Optional[ModelDecision] = None
        for event in self.stream_decision(messages, tools, tool_choice, stream=stream):
            if isinstance(event, ThinkingUpdate):
                if on_thinking:
                    on_thinking(event.text)
            else:
                decision = event
        if decision is None:
            raise ModelCallError("No response from LLM")
        return decision

    def _complete(self, params: Dict[str, Any]) -> ModelDecision:
        try:
            response = self._client.chat.completions.create(**params)
        except OpenAIError as exc:
            LOGGER.error("llm.request_failed", extra={"error": str(exc)})
            raise ModelCallError(f"LLM request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices or choices[0].message is None:
            raise ModelCallError("No response from LLM")
        message = choices[0].message
        calls = [
            parse_tool_call(call.id, call.function.name, call.function.arguments)
            for call in (message.tool_calls or [])
        ]
        return ModelDecision(
            content=message.content,
            tool_calls=calls,
            usage=_usage_dict(getattr(response, "usage", None)),
            model=getattr(response, "model", "") or self.model,
            reasoning=_reasoning_delta(message) or None,
            finish_reason=choices[0].finish_reason,
        )

    def _stream(self, params: Dict[str, Any]) -> Iterator[StreamEvent]:
        try:
            chunks = self._client.chat.completions.create(
                **params, stream=True, stream_options={"include_usage": True}
            )
        except OpenAIError as exc:
            LOGGER.error("llm.stream_failed", extra={"error": str(exc)})
            raise ModelCallError(f"LLM request failed: {exc}") from exc

        content = ""
        reasoning = ""
        fragments: Dict[int, Dict[str, str]] = {}
        usage: Dict[str, int] = {}
        finish_reason: Optional[str] = None
        model = params["model"]

        try:
            for chunk in chunks:
                if getattr(chunk, "usage", None):
                    usage = _usage_dict(chunk.usage)
                if getattr(chunk, "model", None):
                    model = chunk.model
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                if delta is None:
                    continue

                piece = _reasoning_delta(delta)
                if piece:
                    reasoning += piece
                    yield ThinkingUpdate(reasoning)
                if delta.content:
                    content += delta.content
                for call in delta.tool_calls or []:
                    index = call.index if call.index is not None else 0
                    slot = fragments.setdefault(index, {"id": "", "name": "", "arguments": ""})
                    if call.id:
                        slot["id"] = call.id
                    if call.function is not None:
                        if call.function.name:
                            slot["name"] = call.function.name
                        if call.function.arguments:
                            slot["arguments"] += call.function.arguments
        except Exception as exc:
            # transport errors and malformed chunks alike end this request
            LOGGER.error("llm.stream_failed", extra={"error": str(exc)})
            raise ModelCallError(f"LLM stream interrupted: {exc}") from exc

        calls = [
            parse_tool_call(slot["id"], slot["name"], slot["arguments"])
            for _, slot in sorted(fragments.items())
        ]
        yield ModelDecision(
            content=content or None,
            tool_calls=calls,
            usage=usage,
            model=model,
            reasoning=reasoning or None,
            finish_reason=finish_reason or "stop",
        )
