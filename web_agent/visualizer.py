"""Terminal output for a running task: plan, steps, thinking and prompts."""

from __future__ import annotations

import json
import sys
from typing import Any, Dict, List, Mapping, Optional

from .models import ActionHistoryItem
from .planner import TaskPlan

RULE = "─" * 60
DOUBLE_RULE = "═" * 60

STATUS_ICONS: Dict[str, str] = {
    "pending": "⏸️",
    "in_progress": "▶️",
    "completed": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}


def _clip(text: str, limit: int) -> str:
    return f"{text[:limit]}..." if len(text) > limit else text


class AgentVisualizer:
    def __init__(self) -> None:
        self._thinking_buffer = ""

    def display_task(self, goal: str) -> None:
        print(f"\n{'=' * 60}\n🎯 Task: {goal}\n{'=' * 60}\n")

    def display_plan(self, plan: Optional[TaskPlan]) -> None:
        if plan is None:
            return
        print("\n📋 TASK PLAN")
        print(RULE)
        print(plan.goal)
        print(RULE)
        for index, step in enumerate(plan.steps):
            marker = " ←" if index == plan.current_step_index else ""
            print(f"{STATUS_ICONS.get(step.status, '•')} {index + 1}. {step.description}{marker}")
            if step.result:
                print(f"   └─ {_clip(step.result, 80)}")
        if plan.adaptations:
            print("   Adaptations: " + "; ".join(plan.adaptations))
        print(RULE + "\n")

    def display_iteration(self, iteration: int, max_iterations: int) -> None:
        print(f"\n━━━ Iteration {iteration}/{max_iterations} ━━━\n")

    def display_thinking(self, thinking: str) -> None:
        # thinking arrives cumulative; only print the new tail
        if not self._thinking_buffer:
            print("\n🧠 AGENT THINKING")
            print(RULE)
        if len(thinking) > len(self._thinking_buffer):
            sys.stdout.write(thinking[len(self._thinking_buffer):])
            sys.stdout.flush()
            self._thinking_buffer = thinking

    def finish_thinking(self) -> None:
        if self._thinking_buffer:
            print("\n" + RULE + "\n")
            self._thinking_buffer = ""

    def display_response(self, content: Optional[str], tool_calls: int, usage: Dict[str, int], model: str) -> None:
        if content:
            print(f"💬 Response: {content}")
        if tool_calls:
            print(f"   🔧 Tool calls: {tool_calls}")
        if usage:
            print(
                f"   📊 Tokens: prompt={usage.get('prompt_tokens', 0)}, "
                f"completion={usage.get('completion_tokens', 0)}, total={usage.get('total_tokens', 0)}"
            )
        if model:
            print(f"   ⏱️  Model: {model}")

    def display_current_step(self, iteration: int, tool: str, args: Optional[Mapping[str, Any]]) -> None:
        print(f"\n⚙️  STEP {iteration}\n")
        print(f"🔧 Tool: {tool}")
        print("📋 Parameters:")
        for key, value in (args or {}).items():
            if isinstance(value, str) and len(value) > 50:
                shown = f"{value[:50]}..."
            else:
                shown = json.dumps(value, ensure_ascii=False)
            print(f"   {key}: {shown}")
        print()

    def display_step_result(self, result: str, success: bool) -> None:
        label = "✓ Result" if success else "✗ Error"
        print(f"{label}:")
        print(f"   {_clip(result, 200)}")
        print(RULE + "\n")

    def display_cancelled(self, tool: str) -> None:
        print(f"🚫 {tool} cancelled by user")

    def display_task_completion(self, success: bool, summary: str) -> None:
        if success:
            print("\n✅ TASK COMPLETED")
            print("\n📋 Summary:")
        else:
            print("\n❌ TASK NOT COMPLETED")
            print("\n📋 Reason:")
        print(f"   {summary}")
        print("\n" + DOUBLE_RULE)

    def display_action_history(self, history: List[ActionHistoryItem], last_n: int = 10) -> None:
        recent = history[-last_n:]
        print("\n📜 ACTION HISTORY\n")
        for index, item in enumerate(recent):
            icon = "✓" if item.status == "success" else "✗"
            print(f"[{item.iteration}] {icon} {item.tool}")
            print(f"   ⏰ {item.timestamp.strftime('%H:%M:%S')}")
            print(f"   📥 Arguments: {_clip(json.dumps(item.arguments, ensure_ascii=False), 60)}")
            print(f"   📤 Result: {_clip(item.result, 80)}")
            if index < len(recent) - 1:
                print("   ↓")
        print("\n" + RULE)

    def confirm_action(self, message: str) -> bool:
        print("\n" + DOUBLE_RULE)
        print(message)
        print(DOUBLE_RULE + "\n")
        try:
            answer = input("Proceed? [y/N] ").strip().lower()
        except EOFError:
            # no terminal to answer from: treat as a refusal
            return False
        return answer in {"y", "yes"}

    def ask_user(self, question: str, reason: str) -> str:
        print("\n" + "=" * 60)
        print("🤝 Agent needs your help!")
        print(f"Reason: {reason}")
        print("=" * 60 + "\n")
        try:
            answer = input(f"{question} ").strip()
        except EOFError:
            answer = ""
        print("\n✓ User response received\n")
        return answer
