"""Turn the live DOM into compact text the model can reason over.

Every element reported to the model is stamped in the page with a
``data-agent-id`` attribute so later ``click`` / ``type_text`` calls can find
it again with ``[data-agent-id="el-N"]``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from .errors import ToolExecutionError
from .models import SimplifiedElement

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ELEMENTS = 50
MAIN_CONTENT_SELECTORS = ["main", "article", "[role='main']", "#content", ".content"]
IMPORTANT_ATTRIBUTES = [
    "href",
    "type",
    "placeholder",
    "value",
    "aria-label",
    "title",
    "name",
    "id",
    "class",
    "role",
    "data-testid",
]
LANDMARKS = [
    ("header, [role='banner']", "Header"),
    ("nav, [role='navigation']", "Navigation"),
    ("main, [role='main']", "Main Content"),
    ("aside, [role='complementary']", "Sidebar"),
    ("footer, [role='contentinfo']", "Footer"),
]
FIND_ELEMENT_FALLBACK_SELECTOR = "a, button, input, textarea, select, [role='button'], [onclick]"


_EXTRACT_ELEMENTS_JS = """
({ selector, includeHidden, attributes }) => {
    const skipTags = ['script', 'style', 'noscript', 'meta', 'link'];
    const interactiveTags = ['input', 'button', 'a', 'select', 'textarea'];

    const nearbyText = (el) => {
        const parent = el.parentElement;
        if (!parent) return '';
        let text = '';
        parent.childNodes.forEach((node) => {
            if (node !== el && node.nodeType === Node.TEXT_NODE) {
                text += (node.textContent || '').trim() + ' ';
            }
        });
        return text.trim().substring(0, 100);
    };

    const semanticContext = (el) => {
        const parts = [];
        const form = el.closest('form');
        if (form) {
            const formName = form.getAttribute('name') || form.getAttribute('id');
            if (formName) parts.push(`in form "${formName}"`);
        }
        if (el.closest('nav, [role="navigation"]')) parts.push('in navigation');
        if (el.closest('main, [role="main"], article')) parts.push('in main content');
        if (el.closest('ul, ol')) parts.push('in list');
        let current = el;
        while (current && current !== document.body) {
            const prev = current.previousElementSibling;
            if (prev && /^H[1-6]$/.test(prev.tagName)) {
                const headingText = (prev.textContent || '').trim().substring(0, 50);
                if (headingText) parts.push(`under "${headingText}"`);
                break;
            }
            current = current.parentElement;
        }
        return parts.join(', ');
    };

    const inViewport = (rect) => (
        rect.top >= 0 &&
        rect.left >= 0 &&
        rect.bottom <= (window.innerHeight || document.documentElement.clientHeight) &&
        rect.right <= (window.innerWidth || document.documentElement.clientWidth)
    );

    const candidates = Array.from(document.querySelectorAll(selector || '*')).filter((el) => {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        if (!includeHidden) {
            if (rect.width === 0 || rect.height === 0 || style.display === 'none' ||
                style.visibility === 'hidden' || style.opacity === '0') {
                return false;
            }
        }
        const tag = el.tagName.toLowerCase();
        if (skipTags.includes(tag)) return false;
        const hasText = (el.textContent || '').trim().length > 0;
        return hasText || el.attributes.length > 0 || interactiveTags.includes(tag);
    });

    const results = candidates.map((el, index) => {
        const id = `el-${index}`;
        el.setAttribute('data-agent-id', id);
        const attrs = {};
        attributes.forEach((name) => {
            const value = el.getAttribute(name);
            if (value) attrs[name] = value;
        });
        let text = ((el.innerText || '').trim()).substring(0, 200);
        if (!text && el.tagName === 'INPUT') {
            text = el.value || attrs.placeholder || '';
        }
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return {
            id,
            tag: el.tagName.toLowerCase(),
            text,
            attributes: attrs,
            interactable: true,
            role: el.getAttribute('role') || '',
            boundingBox: {
                x: Math.round(rect.x),
                y: Math.round(rect.y),
                width: Math.round(rect.width),
                height: Math.round(rect.height),
            },
            isInViewport: inViewport(rect),
            zIndex: parseInt(style.zIndex) || 0,
            ariaLabel: el.getAttribute('aria-label') || '',
            semanticContext: semanticContext(el),
            nearbyText: nearbyText(el),
        };
    });

    results.sort((a, b) => {
        if (a.isInViewport && !b.isInViewport) return -1;
        if (!a.isInViewport && b.isInViewport) return 1;
        return a.boundingBox.y - b.boundingBox.y;
    });
    return results;
}
"""

_PAGE_CONTEXT_JS = """
(mainSelectors) => {
    const meta = document.querySelector('meta[name="description"]');
    let mainContent = '';
    for (const selector of mainSelectors) {
        const el = document.querySelector(selector);
        if (el) {
            mainContent = (el.textContent || '').trim().substring(0, 500);
            if (mainContent) break;
        }
    }
    return {
        description: meta ? meta.getAttribute('content') || '' : '',
        mainContent,
    };
}
"""

_PAGE_STRUCTURE_JS = """
(landmarks) => {
    const lines = ['PAGE STRUCTURE:'];
    landmarks.forEach(([selector, label]) => {
        const count = document.querySelectorAll(selector).length;
        if (count > 0) lines.push(`- ${label}: ${count} section(s)`);
    });
    const headings = Array.from(document.querySelectorAll('h1, h2, h3, h4, h5, h6'));
    if (headings.length > 0) {
        lines.push('\\nHEADINGS:');
        headings.slice(0, 10).forEach((h) => {
            const indent = '  '.repeat(parseInt(h.tagName[1]) - 1);
            lines.push(`${indent}${h.tagName}: ${(h.textContent || '').trim().substring(0, 60)}`);
        });
    }
    const forms = document.querySelectorAll('form').length;
    if (forms > 0) lines.push(`\\nFORMS: ${forms} form(s) found`);
    return lines.join('\\n');
}
"""

_FIND_ELEMENT_JS = """
({ selector, text, attribute, attributeValue, fallback }) => {
    let candidates = Array.from(document.querySelectorAll(selector || fallback));
    if (text) {
        const needle = text.toLowerCase();
        candidates = candidates.filter((el) => {
            const elText = (el.innerText || '').toLowerCase();
            const value = (el.value || '').toString().toLowerCase();
            return elText.includes(needle) || value.includes(needle);
        });
    }
    if (attribute) {
        candidates = candidates.filter((el) => {
            const value = el.getAttribute(attribute);
            if (value === null) return false;
            return attributeValue ? value.includes(attributeValue) : true;
        });
    }
    if (candidates.length === 0) return null;
    const el = candidates[0];
    const id = `el-found-${Date.now()}`;
    el.setAttribute('data-agent-id', id);
    const attrs = {};
    ['href', 'type', 'placeholder', 'value', 'class', 'id', 'name', 'role', 'aria-label'].forEach((name) => {
        const value = el.getAttribute(name);
        if (value) attrs[name] = value;
    });
    return {
        element: {
            id,
            tag: el.tagName.toLowerCase(),
            text: ((el.innerText || '').trim()).substring(0, 100) || el.value || '',
            attributes: attrs,
            interactable: true,
        },
        totalMatches: candidates.length,
    };
}
"""

_ELEMENT_INFO_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return null;
    const attributes = {};
    for (const attr of Array.from(el.attributes)) {
        attributes[attr.name] = attr.value;
    }
    const parent = el.parentElement;
    const children = Array.from(el.children).slice(0, 5).map((child) => ({
        tag: child.tagName.toLowerCase(),
        class: child.className,
        text: ((child.innerText || '').trim()).substring(0, 30),
    }));
    return {
        tag: el.tagName.toLowerCase(),
        text: (el.innerText || '').trim() || el.value || '',
        attributes,
        parent: parent ? {
            tag: parent.tagName.toLowerCase(),
            class: parent.className,
            id: parent.id,
            text: ((parent.innerText || '').trim()).substring(0, 50),
        } : null,
        children: children.length > 0 ? children : null,
        html: el.outerHTML.substring(0, 200),
    };
}
"""

_READ_TEXT_JS = """
({ selector, maxLength, mainSelectors }) => {
    let el = null;
    if (selector) {
        el = document.querySelector(selector);
    } else {
        for (const candidate of mainSelectors) {
            el = document.querySelector(candidate);
            if (el) break;
        }
        if (!el) el = document.body;
    }
    if (!el) return '';
    return (el.textContent || '').trim().substring(0, maxLength);
}
"""


def element_selector(element_id: str) -> str:
    return f'[data-agent-id="{element_id}"]'


def filter_elements(
    elements: List[SimplifiedElement],
    text_contains: Optional[str] = None,
    max_elements: int = DEFAULT_MAX_ELEMENTS,
) -> List[SimplifiedElement]:
    """Apply the case-insensitive text filter, then the size limit."""
    filtered = elements
    if text_contains:
        needle = text_contains.lower()

        def matches(element: SimplifiedElement) -> bool:
            haystacks = [
                element.text or "",
                " ".join(element.attributes.values()),
                element.nearby_text or "",
                element.semantic_context or "",
            ]
            return any(needle in value.lower() for value in haystacks)

        filtered = [element for element in filtered if matches(element)]

    limit = max_elements or DEFAULT_MAX_ELEMENTS
    if len(filtered) > limit:
        LOGGER.debug("dom.limit_elements", extra={"found": len(filtered), "limit": limit})
        filtered = filtered[:limit]
    return filtered


def format_element(element: SimplifiedElement) -> str:
    parts = [f"[{element.id}] {element.tag}"]
    if element.text:
        parts.append(f'"{element.text}"')
    if element.attributes:
        attrs = ", ".join(f'{key}="{value}"' for key, value in element.attributes.items())
        parts.append(f"[{attrs}]")
    if element.semantic_context:
        parts.append(f"{{{element.semantic_context}}}")
    if element.nearby_text and element.nearby_text != element.text:
        parts.append(f'(near: "{element.nearby_text}")')
    if element.bounding_box:
        parts.append(f"@({element.bounding_box.get('y', 0)}px)")
    return " ".join(parts)


def format_elements_for_llm(elements: List[SimplifiedElement], max_elements: int = DEFAULT_MAX_ELEMENTS) -> str:
    limited = elements[:max_elements]
    visible = [element for element in limited if element.is_in_viewport]
    below = [element for element in limited if not element.is_in_viewport]

    lines: List[str] = []
    if visible:
        lines.append("=== VISIBLE IN VIEWPORT ===")
        lines.extend(format_element(element) for element in visible)
        lines.append("")
    if below:
        lines.append("=== BELOW VIEWPORT (need scroll) ===")
        lines.extend(format_element(element) for element in below)
    return "\n".join(lines)


def format_element_info(element_id: str, info: Dict[str, Any]) -> str:
    return (
        f"Element {element_id}:\n"
        f"Tag: {info.get('tag')}\n"
        f"Text: {info.get('text')}\n"
        f"Attributes: {json.dumps(info.get('attributes') or {}, indent=2, ensure_ascii=False)}\n"
        f"Parent: {json.dumps(info.get('parent'), ensure_ascii=False)}\n"
        f"Children: {json.dumps(info.get('children'), ensure_ascii=False)}\n"
        f"HTML: {info.get('html')}..."
    )


class DOMExtractor:
    """Read-only views of the current page."""

    def extract_elements(
        self,
        page: Page,
        selector: Optional[str] = None,
        text_contains: Optional[str] = None,
        max_elements: int = DEFAULT_MAX_ELEMENTS,
        include_hidden: bool = False,
    ) -> List[SimplifiedElement]:
        payload = self._evaluate(
            page,
            _EXTRACT_ELEMENTS_JS,
            {"selector": selector, "includeHidden": include_hidden, "attributes": IMPORTANT_ATTRIBUTES},
        )
        elements = [SimplifiedElement.from_payload(item) for item in payload or []]
        filtered = filter_elements(elements, text_contains, max_elements)
        LOGGER.debug("dom.extracted", extra={"total": len(elements), "returned": len(filtered)})
        return filtered

    def page_context(self, page: Page) -> Dict[str, str]:
        details = self._evaluate(page, _PAGE_CONTEXT_JS, MAIN_CONTENT_SELECTORS) or {}
        return {
            "url": page.url,
            "title": page.title(),
            "description": details.get("description") or "",
            "main_content": details.get("mainContent") or "",
        }

    def page_structure(self, page: Page) -> str:
        return self._evaluate(page, _PAGE_STRUCTURE_JS, [list(item) for item in LANDMARKS]) or ""

    def find_element(
        self,
        page: Page,
        selector: Optional[str] = None,
        text: Optional[str] = None,
        attribute: Optional[str] = None,
        attribute_value: Optional[str] = None,
    ) -> Optional[Tuple[SimplifiedElement, int]]:
        found = self._evaluate(
            page,
            _FIND_ELEMENT_JS,
            {
                "selector": selector,
                "text": text,
                "attribute": attribute,
                "attributeValue": attribute_value,
                "fallback": FIND_ELEMENT_FALLBACK_SELECTOR,
            },
        )
        if not found:
            return None
        return SimplifiedElement.from_payload(found["element"]), int(found.get("totalMatches") or 1)

    def element_info(self, page: Page, element_id: str) -> Optional[Dict[str, Any]]:
        return self._evaluate(page, _ELEMENT_INFO_JS, element_selector(element_id))

    def read_page_text(self, page: Page, selector: Optional[str] = None, max_length: int = 2000) -> str:
        return self._evaluate(
            page,
            _READ_TEXT_JS,
            {"selector": selector, "maxLength": max_length, "mainSelectors": MAIN_CONTENT_SELECTORS},
        ) or ""

    @staticmethod
    def _evaluate(page: Page, script: str, arg: Any) -> Any:
        try:
            return page.evaluate(script, arg)
        except PlaywrightError as exc:
            raise ToolExecutionError(f"Page script failed: {exc}") from exc
