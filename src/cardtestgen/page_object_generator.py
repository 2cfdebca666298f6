from __future__ import annotations

import re
from typing import Mapping, Sequence

from .features import build_css_table
from .models import CardConfiguration
from .naming import js_string, page_object_class_name

_INDENT = "    "
_JS_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def generate_page_object(config: CardConfiguration, *, include_fallbacks: bool = False) -> str:
    """Render the page object class.

    With ``include_fallbacks`` each locator chains its fallback selectors with
    ``.or()`` in priority order; otherwise only the primary selector is emitted.
    """
    class_name = page_object_class_name(config.card_type)
    lines = [
        f"export default class {class_name} {{",
        f"{_INDENT}constructor(page) {{",
        f"{_INDENT * 2}this.page = page;",
        "",
    ]
    for name, element in config.elements.items():
        selectors = (element.selector, *element.fallback_selectors) if include_fallbacks else (element.selector,)
        lines.append(f"{_INDENT * 2}this.{name} = {locator_chain(selectors)};")
    lines.append("")
    lines.append(f"{_INDENT * 2}// {config.card_type} card properties:")
    lines.append(f"{_INDENT * 2}this.cssProp = {format_css_table(build_css_table(config), depth=2)};")
    lines.append(f"{_INDENT}}}")
    lines.append("}")
    return "\n".join(lines) + "\n"


def locator_chain(selectors: Sequence[str]) -> str:
    unique = list(dict.fromkeys(selectors))
    chain = f"page.locator({js_string(unique[0])})"
    for selector in unique[1:]:
        chain += f".or(page.locator({js_string(selector)}))"
    return chain


def js_key(name: str) -> str:
    if _JS_IDENTIFIER.fullmatch(name):
        return name
    return js_string(name)


def format_css_table(table: Mapping[str, Mapping[str, str]], depth: int = 0) -> str:
    if not table:
        return "{}"
    outer = _INDENT * depth
    lines = ["{"]
    for scope, properties in table.items():
        lines.append(f"{outer}{_INDENT}{js_key(scope)}: {{")
        for prop, value in properties.items():
            lines.append(f"{outer}{_INDENT * 2}{js_key(prop)}: {js_string(value)},")
        lines.append(f"{outer}{_INDENT}}},")
    lines.append(f"{outer}}}")
    return "\n".join(lines)
