from __future__ import annotations

import re
from typing import Any

_MISSING_BROWSER_ERROR_HINTS = (
    "executable doesn't exist",
    "executable does not exist",
    "download new browsers",
    "playwright install",
    "could not find browser",
    "because executable",
)

_CLOSED_TARGET_HINTS = (
    "has been closed",
    "target page, context or browser has been closed",
    "browser has been closed",
    "target closed",
)

AUTH_URL_HINTS = (
    "auth.services.adobe.com",
    "adobelogin.com",
    "/ims/authorize",
)

_CSS_SAFE_ID_PATTERN = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")


def _is_missing_browser_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _MISSING_BROWSER_ERROR_HINTS)


def is_closed_target_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _CLOSED_TARGET_HINTS)


def is_authentication_url(url: str) -> bool:
    lowered = (url or "").lower()
    return any(hint in lowered for hint in AUTH_URL_HINTS)


def normalize_space(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def is_css_safe_id(value: str) -> bool:
    return bool(_CSS_SAFE_ID_PATTERN.fullmatch(value.strip()))


def escape_css_attribute_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def escape_js_single_quoted(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")


def build_id_selector_candidates(raw_id: Any) -> list[str]:
    if raw_id is None:
        return []

    id_value = str(raw_id).strip()
    if not id_value:
        return []

    selectors: list[str] = []
    if is_css_safe_id(id_value):
        selectors.append(f"#{id_value}")
    selectors.append(f'[id="{escape_css_attribute_value(id_value)}"]')
    return selectors
