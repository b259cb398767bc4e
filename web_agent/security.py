"""Classify browser actions by how much damage they could do.

``assess_action`` runs a fixed list of signal checks over an
``ActionContext``. Each check either stays quiet or proposes a
``SecurityAssessment``; the most severe proposal wins and ties go to the check
that ran first. Nothing here talks to the browser or keeps state.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Literal, Optional, Sequence, Tuple

RiskLevel = Literal["low", "medium", "high", "critical"]
RiskCategory = Literal["financial", "data_loss", "privacy", "account", "content_modification"]

RISK_LEVEL_ORDER: Dict[str, int] = {"critical": 4, "high": 3, "medium": 2, "low": 1}

RISK_EMOJI: Dict[str, str] = {
    "critical": "🚨",
    "high": "⚠️",
    "medium": "⚡",
    "low": "ℹ️",
}

CATEGORY_RISK_LEVELS: Dict[str, RiskLevel] = {
    "financial": "critical",
    "data_loss": "high",
    "account": "high",
    "privacy": "medium",
    "content_modification": "medium",
}

# category -> language -> keywords. Dict order is the match order.
DESTRUCTIVE_KEYWORDS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "financial": {
        "en": ("buy", "purchase", "pay", "checkout", "order", "payment", "billing", "card", "subscribe", "donate"),
        "ru": ("купить", "оплатить", "платить", "оформить", "заказ", "платеж", "подписка", "донат"),
        "es": ("comprar", "pagar", "pedido", "pago"),
        "de": ("kaufen", "bezahlen", "bestellen", "zahlung"),
        "fr": ("acheter", "payer", "commande", "paiement"),
    },
    "data_loss": {
        "en": ("delete", "remove", "clear", "erase", "cancel", "unsubscribe", "deactivate", "close account"),
        "ru": ("удалить", "очистить", "стереть", "отменить", "отписаться", "деактивировать", "закрыть"),
        "es": ("eliminar", "borrar", "cancelar"),
        "de": ("löschen", "entfernen", "abbrechen"),
        "fr": ("supprimer", "effacer", "annuler"),
    },
    "content_modification": {
        "en": ("send", "post", "publish", "submit", "upload", "share", "create", "edit"),
        "ru": ("отправить", "опубликовать", "разместить", "загрузить", "поделиться", "создать", "редактировать"),
        "es": ("enviar", "publicar", "compartir"),
        "de": ("senden", "veröffentlichen", "teilen"),
        "fr": ("envoyer", "publier", "partager"),
    },
    "account": {
        "en": ("logout", "log out", "sign out", "change password", "reset", "verify"),
        "ru": ("выйти", "выход", "сменить пароль", "сбросить"),
        "es": ("cerrar sesión", "salir"),
        "de": ("abmelden", "ausloggen"),
        "fr": ("déconnexion", "se déconnecter"),
    },
}

DESTRUCTIVE_ATTRIBUTE_TERMS = (
    "delete",
    "remove",
    "buy",
    "purchase",
    "pay",
    "submit-payment",
    "checkout",
    "confirm-order",
)

SENSITIVE_FORM_INDICATORS = ("payment", "credit-card", "cvv", "card-number", "billing", "password")

SENSITIVE_URL_PATTERNS: Tuple[re.Pattern, ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        "checkout",
        "payment",
        "cart",
        "order",
        "billing",
        "delete",
        "remove",
        "settings",
        "account",
        "profile",
    )
)

# (substring, category, risk). First match wins.
SEMANTIC_CONTEXT_RULES: Tuple[Tuple[str, RiskCategory, RiskLevel], ...] = (
    ("checkout", "financial", "high"),
    ("payment", "financial", "critical"),
    ("cart", "financial", "low"),
    ("billing", "financial", "high"),
    ("delete", "data_loss", "high"),
    ("settings", "account", "medium"),
)

PAYMENT_FIELD_TERMS = ("card", "cvv", "credit")

NO_RISK_REASON = "No destructive patterns detected"


@dataclass
class ActionContext:
    action: str
    page_url: str = ""
    element_text: Optional[str] = None
    element_attributes: Dict[str, str] = field(default_factory=dict)
    semantic_context: Optional[str] = None


@dataclass
class SecurityAssessment:
    is_destructive: bool
    risk_level: RiskLevel
    reason: str
    category: Optional[RiskCategory] = None


def _attributes_blob(context: ActionContext) -> str:
    if not context.element_attributes:
        return ""
    return json.dumps(context.element_attributes, ensure_ascii=False, separators=(",", ":")).lower()


def check_text_keywords(context: ActionContext) -> Optional[SecurityAssessment]:
    text = (context.element_text or "").lower()
    if not text:
        return None
    for category, languages in DESTRUCTIVE_KEYWORDS.items():
        for language, keywords in languages.items():
            for keyword in keywords:
                if keyword in text:
                    return SecurityAssessment(
                        is_destructive=True,
                        risk_level=CATEGORY_RISK_LEVELS[category],
                        reason=f'Detected {category} keyword: "{keyword}" ({language})',
                        category=category,  # type: ignore[arg-type]
                    )
    return None


def check_attributes(context: ActionContext) -> Optional[SecurityAssessment]:
    attributes = context.element_attributes or {}
    if not attributes:
        return None
    blob = _attributes_blob(context)

    looks_like_button = attributes.get("type") == "submit" or attributes.get("role") == "button"
    if looks_like_button:
        for term in DESTRUCTIVE_ATTRIBUTE_TERMS:
            if term in blob:
                return SecurityAssessment(
                    is_destructive=True,
                    risk_level="high",
                    reason=f'Button attributes indicate destructive action: "{term}"',
                    category="content_modification",
                )

    for indicator in SENSITIVE_FORM_INDICATORS:
        if indicator in blob:
            return SecurityAssessment(
                is_destructive=True,
                risk_level="critical",
                reason=f'Sensitive form field detected: "{indicator}"',
                category="financial",
            )
    return None


def check_url(context: ActionContext) -> Optional[SecurityAssessment]:
    if not context.page_url:
        return None
    for pattern in SENSITIVE_URL_PATTERNS:
        if pattern.search(context.page_url):
            return SecurityAssessment(
                is_destructive=True,
                risk_level="medium",
                reason=f"Operating in sensitive area: {pattern.pattern}",
                category="privacy",
            )
    return None


def check_semantic_context(context: ActionContext) -> Optional[SecurityAssessment]:
    semantic = (context.semantic_context or "").lower()
    if not semantic:
        return None
    for needle, category, risk in SEMANTIC_CONTEXT_RULES:
        if needle in semantic:
            return SecurityAssessment(
                is_destructive=True,
                risk_level=risk,
                reason=f"Element is in {needle} context",
                category=category,
            )
    return None


def check_typed_field(context: ActionContext) -> Optional[SecurityAssessment]:
    if context.action != "type_text":
        return None
    attributes = context.element_attributes or {}
    if attributes.get("type") == "password":
        return SecurityAssessment(
            is_destructive=True,
            risk_level="high",
            reason="Typing into password field",
            category="account",
        )
    blob = _attributes_blob(context)
    if any(term in blob for term in PAYMENT_FIELD_TERMS):
        return SecurityAssessment(
            is_destructive=True,
            risk_level="critical",
            reason="Typing into payment information field",
            category="financial",
        )
    return None


SignalCheck = Callable[[ActionContext], Optional[SecurityAssessment]]

# Order matters: ties on risk level go to the earliest check.
SIGNAL_CHECKS: Tuple[SignalCheck, ...] = (
    check_text_keywords,
    check_attributes,
    check_url,
    check_semantic_context,
    check_typed_field,
)


def collect_signals(
    context: ActionContext, checks: Sequence[SignalCheck] = SIGNAL_CHECKS
) -> List[SecurityAssessment]:
    signals: List[SecurityAssessment] = []
    for check in checks:
        result = check(context)
        if result is not None:
            signals.append(result)
    return signals


def assess_action(
    context: ActionContext, checks: Sequence[SignalCheck] = SIGNAL_CHECKS
) -> SecurityAssessment:
    """Return the single most severe assessment for ``context``."""
    signals = collect_signals(context, checks)
    if not signals:
        return SecurityAssessment(is_destructive=False, risk_level="low", reason=NO_RISK_REASON)

    # sorted() is stable, so equal levels keep check order
    ranked = sorted(signals, key=lambda item: RISK_LEVEL_ORDER[item.risk_level], reverse=True)
    top = ranked[0]
    return SecurityAssessment(
        is_destructive=True,
        risk_level=top.risk_level,
        reason=top.reason,
        category=top.category,
    )


def action_key(action: str, element_text: Optional[str], category: Optional[str]) -> str:
    return f"{action}:{element_text or ''}:{category}"


def generate_confirmation_message(assessment: SecurityAssessment, context: ActionContext) -> str:
    emoji = RISK_EMOJI.get(assessment.risk_level, "")
    category = (assessment.category or "unknown").upper()
    lines = [
        f"{emoji} SECURITY CHECK [{category}]",
        f"Risk: {assessment.risk_level.upper()}",
        f"Reason: {assessment.reason}",
        "",
    ]
    if context.element_text:
        lines.append(f'Element: "{context.element_text}"')
    lines.append(f"Page: {context.page_url}")
    lines.append("")
    lines.append("Do you want to proceed with this action?")
    return "\n".join(lines)
