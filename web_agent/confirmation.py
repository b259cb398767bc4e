"""Human approval for risky actions.

The gate only decides; prompting is delegated to whatever ``confirm`` callable
the caller provides (the terminal visualizer in normal runs, a fake in tests).
Approvals are remembered per task through the ``confirmed`` set the caller
owns, so the same action on the same element is only asked about once.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Set

from .security import ActionContext, SecurityAssessment, action_key, generate_confirmation_message

LOGGER = logging.getLogger(__name__)


class GateDecision(str, Enum):
    NOT_REQUIRED = "not_required"
    PRE_APPROVED = "pre_approved"
    APPROVED = "approved"
    DENIED = "denied"

    @property
    def allows_dispatch(self) -> bool:
        return self is not GateDecision.DENIED


class ConfirmationGate:
    def __init__(self, confirm: Callable[[str], bool], *, require_confirmation: bool = True):
        self._confirm = confirm
        self.require_confirmation = require_confirmation

    def needs_review(self) -> bool:
        return self.require_confirmation

    def review(
        self,
        assessment: SecurityAssessment,
        context: ActionContext,
        confirmed: Set[str],
    ) -> GateDecision:
        if not self.require_confirmation:
            return GateDecision.NOT_REQUIRED
        if not assessment.is_destructive or assessment.risk_level == "low":
            return GateDecision.NOT_REQUIRED

        key = action_key(context.action, context.element_text, assessment.category)
        if key in confirmed:
            LOGGER.debug("confirmation.reused", extra={"action_key": key})
            return GateDecision.PRE_APPROVED

        message = generate_confirmation_message(assessment, context)
        approved = bool(self._confirm(message))
        LOGGER.info(
            "confirmation.answered",
            extra={"action_key": key, "approved": approved, "risk_level": assessment.risk_level},
        )
        if not approved:
            return GateDecision.DENIED
        confirmed.add(key)
        return GateDecision.APPROVED
