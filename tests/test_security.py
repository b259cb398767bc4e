from __future__ import annotations

import pytest

from web_agent.security import (
    ActionContext,
    SecurityAssessment,
    _attributes_blob,
    action_key,
    assess_action,
    check_attributes,
    check_semantic_context,
    check_text_keywords,
    check_typed_field,
    check_url,
    generate_confirmation_message,
)


def test_no_signals_is_low_and_not_destructive() -> None:
    result = assess_action(ActionContext(action="click", page_url="https://example.com/docs", element_text="Learn more"))

    assert result.is_destructive is False
    assert result.risk_level == "low"
    assert result.category is None
    assert result.reason == "No destructive patterns detected"


def test_complete_purchase_submit_button_is_critical_financial() -> None:
    context = ActionContext(
        action="click",
        page_url="https://shop.example.com/product/42",
        element_text="Complete Purchase",
        element_attributes={"type": "submit"},
    )

    result = assess_action(context)

    assert result.is_destructive is True
    assert result.category == "financial"
    assert result.risk_level == "critical"
    assert result.reason == 'Detected financial keyword: "purchase" (en)'


@pytest.mark.parametrize(
    ("text", "language"),
    [
        ("Buy now", "en"),
        ("Купить сейчас", "ru"),
        ("Comprar ahora", "es"),
        ("Jetzt kaufen", "de"),
        ("Acheter maintenant", "fr"),
    ],
)
def test_financial_keywords_in_each_language(text: str, language: str) -> None:
    result = assess_action(ActionContext(action="click", element_text=text))

    assert result.is_destructive is True
    assert result.category == "financial"
    assert result.risk_level == "critical"
    assert f"({language})" in result.reason


def test_text_keyword_categories_use_default_severity() -> None:
    assert check_text_keywords(ActionContext(action="click", element_text="Delete file")).risk_level == "high"
    assert check_text_keywords(ActionContext(action="click", element_text="Publish")).risk_level == "medium"
    assert check_text_keywords(ActionContext(action="click", element_text="Sign out")).category == "account"


def test_keyword_match_is_case_insensitive() -> None:
    result = check_text_keywords(ActionContext(action="click", element_text="DELETE ACCOUNT"))

    assert result is not None
    assert result.category == "data_loss"


def test_attribute_check_flags_destructive_buttons() -> None:
    context = ActionContext(action="click", element_attributes={"role": "button", "class": "btn-delete"})

    result = check_attributes(context)

    assert result.category == "content_modification"
    assert result.risk_level == "high"


def test_attribute_check_flags_sensitive_fields() -> None:
    context = ActionContext(action="click", element_attributes={"name": "credit-card"})

    result = check_attributes(context)

    assert result.category == "financial"
    assert result.risk_level == "critical"


def test_url_check_reports_sensitive_area() -> None:
    result = check_url(ActionContext(action="click", page_url="https://example.com/Account/overview"))

    assert result.risk_level == "medium"
    assert result.category == "privacy"
    assert result.reason == "Operating in sensitive area: account"


def test_semantic_context_first_match_wins() -> None:
    result = check_semantic_context(ActionContext(action="click", semantic_context='in form "cart", under "Payment"'))

    # "payment" rule comes before "cart"
    assert result.category == "financial"
    assert result.risk_level == "critical"


def test_cart_context_alone_is_low() -> None:
    result = check_semantic_context(ActionContext(action="click", semantic_context="in cart summary"))

    assert result.risk_level == "low"


def test_typed_field_only_applies_to_type_text() -> None:
    attributes = {"type": "password"}

    assert check_typed_field(ActionContext(action="click", element_attributes=attributes)) is None
    result = check_typed_field(ActionContext(action="type_text", element_attributes=attributes))
    assert result.risk_level == "high"
    assert result.category == "account"


def test_typing_card_number_is_critical() -> None:
    context = ActionContext(action="type_text", element_attributes={"placeholder": "Card number"})

    result = assess_action(context)

    assert result.risk_level == "critical"
    assert result.category == "financial"


def test_highest_risk_wins_across_signals() -> None:
    context = ActionContext(
        action="click",
        page_url="https://example.com/settings",
        element_text="Remove item",
    )

    result = assess_action(context)

    # url gives medium/privacy, text gives high/data_loss
    assert result.risk_level == "high"
    assert result.category == "data_loss"


def test_tie_goes_to_first_evaluated_signal() -> None:
    context = ActionContext(
        action="click",
        page_url="https://example.com/profile",
        element_text="Share",
    )

    result = assess_action(context)

    # both medium: text keyword (content_modification) beats url (privacy)
    assert result.risk_level == "medium"
    assert result.category == "content_modification"


def test_custom_check_order_changes_tie_winner() -> None:
    context = ActionContext(action="click", page_url="https://example.com/profile", element_text="Share")

    result = assess_action(context, checks=(check_url, check_text_keywords))

    assert result.category == "privacy"


def test_action_key_format() -> None:
    assert action_key("click", "Buy", "financial") == "click:Buy:financial"
    assert action_key("click", None, "privacy") == "click::privacy"


def test_confirmation_message_lists_details() -> None:
    assessment = SecurityAssessment(True, "critical", 'Detected financial keyword: "buy" (en)', "financial")
    context = ActionContext(action="click", page_url="https://shop.example.com/cart", element_text="Buy now")

    message = generate_confirmation_message(assessment, context)

    assert message.startswith("🚨 SECURITY CHECK [FINANCIAL]")
    assert "Risk: CRITICAL" in message
    assert 'Element: "Buy now"' in message
    assert "Page: https://shop.example.com/cart" in message
    assert message.endswith("Do you want to proceed with this action?")


def test_attribute_text_is_compact_json() -> None:
    context = ActionContext(action="click", element_attributes={"type": "submit", "name": "Pay"})

    assert _attributes_blob(context) == '{"type":"submit","name":"pay"}'
