from __future__ import annotations

import re
from typing import Any, Mapping, Sequence

from .errors import GenerationError, InvalidInputError, PathTraversalError
from .models import (
    DEFAULT_BROWSER_PARAMS,
    DEFAULT_PATH,
    INTERACTION_TYPES,
    TEST_TYPES,
    CardConfiguration,
    CardMetadata,
    ElementSpec,
    InteractionSpec,
)

BROWSERS = ("chromium", "firefox", "webkit")
MODES = ("headless", "headed")
MIN_TIMEOUT_MS = 1000
MAX_TIMEOUT_MS = 300000

_BRANCH_PATTERN = re.compile(r"^[a-zA-Z0-9_/-]+$")
_CARD_TYPE_PATTERN = re.compile(r"^[a-z0-9-]+$")
_UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_ELEMENT_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_UNSAFE_CHARS = re.compile(r"[<>\"'`]")


def validate_branch(value: Any) -> str:
    branch = _required_text(value, "branch")
    if len(branch) > 100:
        raise InvalidInputError("branch must be at most 100 characters.")
    if ".." in branch:
        raise PathTraversalError("branch must not contain '..'.")
    if not _BRANCH_PATTERN.fullmatch(branch):
        raise InvalidInputError("branch may only contain letters, numbers, '_', '/' and '-'.")
    return branch


def validate_card_id(value: Any) -> str:
    card_id = _required_text(value, "cardId")
    if not _UUID_PATTERN.fullmatch(card_id):
        raise InvalidInputError(f"cardId must be a UUID, got '{sanitize_string(card_id, 60)}'.")
    return card_id


def validate_card_type(value: Any) -> str:
    card_type = _required_text(value, "cardType")
    if ".." in card_type or "/" in card_type or "\\" in card_type:
        raise PathTraversalError("cardType must not contain path segments.")
    if len(card_type) > 50:
        raise InvalidInputError("cardType must be at most 50 characters.")
    if not _CARD_TYPE_PATTERN.fullmatch(card_type):
        raise InvalidInputError("cardType may only contain lowercase letters, numbers and '-'.")
    return card_type


def validate_test_type(value: Any) -> str:
    test_type = _required_text(value, "testType")
    if test_type not in TEST_TYPES:
        raise InvalidInputError(f"testType must be one of: {', '.join(TEST_TYPES)}.")
    return test_type


def validate_browser(value: Any) -> str:
    browser = _required_text(value, "browser")
    if browser not in BROWSERS:
        raise InvalidInputError(f"browser must be one of: {', '.join(BROWSERS)}.")
    return browser


def validate_mode(value: Any) -> str:
    mode = _required_text(value, "mode")
    if mode not in MODES:
        raise InvalidInputError(f"mode must be one of: {', '.join(MODES)}.")
    return mode


def validate_timeout(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidInputError("timeout must be an integer number of milliseconds.")
    try:
        timeout = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError("timeout must be an integer number of milliseconds.") from exc
    if timeout < MIN_TIMEOUT_MS or timeout > MAX_TIMEOUT_MS:
        raise InvalidInputError(f"timeout must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS} ms.")
    return timeout


def validate_file_name(value: Any) -> str:
    name = _required_text(value, "fileName")
    if ".." in name or "/" in name or "\\" in name or "\x00" in name:
        raise PathTraversalError(f"Invalid file name: {sanitize_string(name, 60)}")
    if len(name) > 255:
        raise InvalidInputError("fileName must be at most 255 characters.")
    return name


def sanitize_string(value: Any, max_length: int = 1000) -> str:
    if value is None:
        return ""
    text = _CONTROL_CHARS.sub("", str(value))
    text = _UNSAFE_CHARS.sub("", text)
    return text.strip()[:max_length]


def _required_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{label} is required.")
    return value.strip()


def validate_test_types(values: Sequence[Any]) -> tuple[str, ...]:
    if isinstance(values, str):
        values = [values]
    ordered: list[str] = []
    for value in values or ():
        test_type = validate_test_type(value)
        if test_type not in ordered:
            ordered.append(test_type)
    if not ordered:
        raise GenerationError("testTypes must contain at least one test type.")
    return tuple(ordered)


def validate_configuration(config: CardConfiguration) -> CardConfiguration:
    validate_card_type(config.card_type)
    validate_test_types(config.test_types)
    if not config.elements:
        raise GenerationError("Configuration must declare at least one element.")
    for name, element in config.elements.items():
        if not _ELEMENT_NAME_PATTERN.fullmatch(name):
            raise GenerationError(f"Element name '{name}' is not a valid identifier.")
        if not element.selector.strip():
            raise GenerationError(f"Element '{name}' has an empty selector.")
        for interaction in element.interactions:
            if interaction.type not in INTERACTION_TYPES:
                raise GenerationError(f"Element '{name}' has unknown interaction type '{interaction.type}'.")
    return config


def parse_card_configuration(payload: Mapping[str, Any]) -> CardConfiguration:
    """Build a validated configuration from camelCase mapping input."""
    if not isinstance(payload, Mapping):
        raise InvalidInputError("Card configuration must be an object.")

    card_type = validate_card_type(payload.get("cardType"))
    card_id = str(payload.get("cardId") or "").strip()
    test_suite = str(payload.get("testSuite") or f"{card_type}-suite").strip()
    test_types = validate_test_types(payload.get("testTypes") or [])

    raw_elements = payload.get("elements") or {}
    if not isinstance(raw_elements, Mapping):
        raise InvalidInputError("elements must be an object keyed by element name.")
    elements: dict[str, ElementSpec] = {}
    for name, raw in raw_elements.items():
        if not raw:
            continue
        elements[str(name)] = _parse_element(str(name), raw)

    css_properties: dict[str, dict[str, str]] = {}
    raw_css = payload.get("cssProperties") or {}
    if isinstance(raw_css, Mapping):
        for scope, properties in raw_css.items():
            if isinstance(properties, Mapping):
                css_properties[str(scope)] = _string_map(properties)

    config = CardConfiguration(
        card_type=card_type,
        card_id=card_id,
        test_suite=test_suite,
        elements=elements,
        test_types=test_types,
        css_properties=css_properties,
        metadata=_parse_metadata(payload.get("metadata") or {}),
    )
    return validate_configuration(config)


def _parse_element(name: str, raw: Any) -> ElementSpec:
    if isinstance(raw, str):
        return ElementSpec(selector=raw)
    if not isinstance(raw, Mapping):
        raise InvalidInputError(f"Element '{name}' must be an object or selector string.")
    selector = str(raw.get("selector") or "").strip()
    if not selector:
        raise InvalidInputError(f"Element '{name}' requires a selector.")

    interactions: list[InteractionSpec] = []
    for item in raw.get("interactions") or ():
        if isinstance(item, str):
            interactions.append(InteractionSpec(type=item))
            continue
        if not isinstance(item, Mapping):
            continue
        interactions.append(
            InteractionSpec(
                type=str(item.get("type") or "click"),
                value=_optional_text(item.get("value")),
                wait_for=_optional_text(item.get("waitFor")),
                expected_result=_optional_text(item.get("expectedResult")),
            )
        )

    expected_attribute = raw.get("expectedAttribute") or {}
    return ElementSpec(
        selector=selector,
        fallback_selectors=tuple(str(item) for item in raw.get("fallbackSelectors") or ()),
        alternative_selectors=tuple(str(item) for item in raw.get("alternativeSelectors") or ()),
        expected_text=_optional_text(raw.get("expectedText")),
        expected_value=_optional_text(raw.get("expectedValue")),
        expected_attribute=_string_map(expected_attribute) if isinstance(expected_attribute, Mapping) else {},
        css_properties=_string_map(raw.get("cssProperties") or {}),
        interactions=tuple(interactions),
        confidence=raw.get("confidence") if isinstance(raw.get("confidence"), int) else None,
    )


def _parse_metadata(raw: Any) -> CardMetadata:
    if not isinstance(raw, Mapping):
        return CardMetadata()
    tags = raw.get("tags") or ()
    if isinstance(tags, str):
        tags = tags.split()
    return CardMetadata(
        tags=tuple(str(tag) for tag in tags),
        path=str(raw.get("path") or DEFAULT_PATH),
        browser_params=str(raw.get("browserParams") or DEFAULT_BROWSER_PARAMS),
        milolibs=_optional_text(raw.get("milolibs")),
    )


def _string_map(raw: Mapping[str, Any]) -> dict[str, str]:
    return {str(key): str(value) for key, value in raw.items() if value is not None}


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None
