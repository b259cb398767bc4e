"""Exception types raised across the agent.

Everything derives from :class:`AgentError` so callers that only care about
"something inside the agent went wrong" can catch a single type. The loop
treats the subclasses differently:

* ``ModelCallError`` / ``ProtocolViolation`` end the current iteration and are
  fed back to the model as a corrective user message.
* ``ToolArgumentError`` / ``UnknownToolError`` / ``ToolExecutionError`` are
  confined to a single tool call and become an ``Error: ...`` tool result.
* ``EnvironmentStateError`` means the browser has no usable page; the task is
  aborted.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for agent failures."""


class ModelCallError(AgentError):
    """The model endpoint failed or returned nothing usable."""


class ProtocolViolation(AgentError):
    """The model answered without any tool calls."""


class ToolArgumentError(AgentError):
    """Arguments for a tool call were missing, malformed or of the wrong type."""


class UnknownToolError(AgentError):
    """The model asked for an operation that is not in the tool contract."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolExecutionError(AgentError):
    """The browser rejected an operation (timeout, detached element, ...)."""


class EnvironmentStateError(AgentError):
    """No active page or browser context to act on."""


class PlanTransitionError(AgentError, ValueError):
    """A plan step was asked to move backwards through its lifecycle."""
