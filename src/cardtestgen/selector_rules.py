from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .runtime_checks import escape_css_attribute_value

CARD_TAG = "merch-card"
DEFAULT_CARD_TYPE = "fries"

MEANINGFUL_CSS_PROPERTIES: tuple[str, ...] = (
    "color",
    "background-color",
    "border-color",
    "border-top-color",
    "border-right-color",
    "border-bottom-color",
    "border-left-color",
    "font-size",
    "font-weight",
    "line-height",
    "text-align",
    "width",
    "height",
    "min-width",
    "max-width",
    "min-height",
    "max-height",
    "padding",
    "margin",
    "border-radius",
    "display",
    "position",
    "text-decoration",
    "text-decoration-line",
    "text-decoration-color",
)

NOISE_STYLE_VALUES = frozenset(
    {
        "",
        "auto",
        "none",
        "normal",
        "transparent",
        "0px",
        "initial",
        "inherit",
        "rgba(0, 0, 0, 0)",
    }
)

# Ranked candidates per logical element, highest priority first.
ELEMENT_CANDIDATE_SELECTORS: dict[str, tuple[str, ...]] = {
    "title": (
        'h3[slot="heading-xxs"]',
        'h2[slot="heading-xs"]',
        'h1[slot="heading-s"]',
        '[slot="heading-xs"]',
        '[slot="heading-s"]',
        '[slot="heading-m"]',
        '[slot="heading-l"]',
        '[slot="heading-xl"]',
    ),
    "description": (
        'div[slot="body-s"]',
        'p[slot="body-s"]',
        '[slot="body-xs"]',
        '[slot="body-s"]',
        '[slot="body-m"]',
        '[slot="body-l"]',
        '[slot="body-xl"]',
    ),
    "price": (
        'p[slot="price"] span[is="inline-price"]',
        '[slot="price"] span[is="inline-price"]',
        'span[is="inline-price"]',
        '[slot="price"]',
    ),
    "cta": (
        '[slot="cta"] a.spectrum-Button',
        '[slot="cta"] a',
        '[slot="cta"]',
    ),
    "icon": ("merch-icon",),
    "trialBadge": (
        'div[slot="trial-badge"] merch-badge',
        '[slot="trial-badge"] merch-badge',
        '[slot="trial-badge"]',
    ),
    "badge": (
        'div[slot="badge"] merch-badge',
        '[slot="badge"] merch-badge',
        '[slot="badge"]',
    ),
    "eyebrow": ('[slot="eyebrow"]',),
    "backgroundImage": ('[slot="media"]',),
    "legalLink": ('[slot="legal-link"]',),
    "strikethroughPrice": ('[slot="strikethrough-price"]',),
}

# Variant markers looked up in the card's class list and variant attribute, in order.
VARIANT_MARKERS: tuple[str, ...] = ("catalog", "plans", "special-offers", "suggested", "slice")


@dataclass(frozen=True, slots=True)
class CardLocatorStrategy:
    name: str
    selector: str
    resolve_closest_card: bool = False


def card_locator_strategies(card_id: str) -> list[CardLocatorStrategy]:
    value = escape_css_attribute_value(card_id)
    return [
        CardLocatorStrategy("id", f'{CARD_TAG}[id="{value}"]'),
        CardLocatorStrategy("fragment", f'aem-fragment[fragment="{value}"]', resolve_closest_card=True),
        CardLocatorStrategy("fragment-id", f'aem-fragment[fragment-id="{value}"]', resolve_closest_card=True),
        CardLocatorStrategy("data-card-id", f'{CARD_TAG}[data-card-id="{value}"]'),
    ]


def is_meaningful_style_value(value: Any) -> bool:
    if value is None:
        return False
    normalized = " ".join(str(value).split())
    return normalized not in NOISE_STYLE_VALUES


def filter_meaningful_styles(styles: Mapping[str, Any]) -> dict[str, str]:
    return {
        str(name): " ".join(str(value).split())
        for name, value in styles.items()
        if is_meaningful_style_value(value)
    }


def detect_card_type(
    class_names: str,
    variant_attribute: str,
    has_price: bool,
    has_icon: bool,
    has_media: bool,
) -> str:
    """Resolve a card's variant: markers first, then structure, then the default."""
    haystacks = (class_names or "", variant_attribute or "")
    for marker in VARIANT_MARKERS:
        if any(marker in haystack for haystack in haystacks):
            return marker

    if has_price and has_icon:
        return "fries"
    if has_media:
        return "catalog"
    if has_price:
        return "plans"
    return DEFAULT_CARD_TYPE


def candidate_selectors_for(element_name: str) -> tuple[str, ...]:
    return ELEMENT_CANDIDATE_SELECTORS.get(element_name, ())
