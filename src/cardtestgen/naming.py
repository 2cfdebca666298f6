from __future__ import annotations

import re

from .runtime_checks import escape_js_single_quoted

_WORD_SPLIT = re.compile(r"[^A-Za-z0-9]+")


def to_pascal_case(value: str) -> str:
    words = [word for word in _WORD_SPLIT.split(value) if word]
    return "".join(word[:1].upper() + word[1:] for word in words)


def to_title_words(value: str) -> str:
    words = [word for word in _WORD_SPLIT.split(value) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words)


def page_object_class_name(card_type: str) -> str:
    return f"CCD{to_pascal_case(card_type)}Page"


def page_object_import_name(card_type: str) -> str:
    return f"CCD{to_pascal_case(card_type)}"


def spec_import_name(card_type: str) -> str:
    return f"{page_object_import_name(card_type)}Spec"


def card_variable_name(card_type: str) -> str:
    name = re.sub(r"[^A-Za-z0-9_]", "", card_type)
    if not name or name[0].isdigit():
        name = f"card{name}"
    return name


def feature_name(card_type: str) -> str:
    return f"M@S Studio CCD {to_title_words(card_type)}"


def describe_title(card_type: str) -> str:
    return f"M@S Studio CCD {card_type[:1].upper()}{card_type[1:]} card test suite"


def js_string(value: str) -> str:
    return f"'{escape_js_single_quoted(value)}'"


def spec_file_name(card_type: str, test_type: str) -> str:
    return f"{card_type}_{test_type}.spec.js"


def test_file_name(card_type: str, test_type: str) -> str:
    return f"{card_type}_{test_type}.test.js"


def page_object_file_name(card_type: str) -> str:
    return f"{card_type}.page.js"
