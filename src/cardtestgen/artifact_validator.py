"""Structural checks over generated artifacts.

The checks are substring and pattern based rather than a JavaScript parse, so
they tolerate false negatives: a file that mentions a construct in a comment
still passes that check.
"""

from __future__ import annotations

import re

from .artifacts import ArtifactStore
from .models import FileValidation, ValidationResult
from .naming import card_variable_name
from .test_module import bracket_balance, parse_test_module

REQUIRED_TEST_IMPORTS = ("expect", "test", "@playwright/test", "StudioPage", "WebUtil")

TEST_FILE_PREFIX = "Test file: "

_VALID_IMPORT = re.compile(r"""^import\s+.*from\s+['"][^'"]+['"];?$""", re.MULTILINE)
_VALID_EXPORT = re.compile(r"^export\s+(default\s+)?", re.MULTILINE)
_TEST_CASE_OPENERS = ("test(`", "test('", 'test("')
_ACCESSOR_DEFINITION = re.compile(r"this\.([A-Za-z_$][\w$]*)\s*=")


def validate_test_source(content: str, path: str = "") -> FileValidation:
    errors: list[str] = []
    warnings: list[str] = []

    for name in REQUIRED_TEST_IMPORTS:
        if name not in content:
            errors.append(f"Missing required import: {name}")

    if "test.describe" not in content:
        errors.append("Missing test.describe block")
    if "test.beforeEach" not in content:
        warnings.append("Missing test.beforeEach setup")
    if not any(opener in content for opener in _TEST_CASE_OPENERS):
        errors.append("No test cases found")

    module = parse_test_module(content)
    if any(not block.is_async for block in module.tests()):
        errors.append("Tests should be async for Playwright")
    if ".page" not in content and "Page(" not in content:
        errors.append("No page object usage detected")

    balance = bracket_balance(content)
    if balance.unexpected:
        errors.append(f"Syntax error: Unexpected token '{balance.unexpected[0]}'")
    elif balance.unclosed:
        errors.append("Syntax error: Unexpected end of input")

    if "import " in content and not _VALID_IMPORT.search(content):
        warnings.append("Import statements may have syntax issues")
    if "export " in content and not _VALID_EXPORT.search(content):
        warnings.append("Export statements may have syntax issues")

    return FileValidation(path=path, exists=True, valid=not errors, errors=errors, warnings=warnings)


def validate_page_object_source(content: str, path: str = "") -> FileValidation:
    errors: list[str] = []
    if "export default class" not in content:
        errors.append(f"Page object should export a default class: {path}")
    if "constructor(page)" not in content:
        errors.append(f"Page object should have constructor(page): {path}")
    return FileValidation(path=path, exists=True, valid=not errors, errors=errors)


def validate_spec_source(content: str, path: str = "") -> FileValidation:
    errors: list[str] = []
    if "export default" not in content:
        errors.append(f"Spec file should have default export: {path}")
    if "FeatureName" not in content:
        errors.append(f"Spec file should have FeatureName: {path}")
    if "features" not in content:
        errors.append(f"Spec file should have features array: {path}")
    return FileValidation(path=path, exists=True, valid=not errors, errors=errors)


def missing_accessors(test_source: str, page_object_source: str, variable: str) -> list[str]:
    """Accessor names the test reads from the page object that the page object never defines."""
    defined = set(_ACCESSOR_DEFINITION.findall(page_object_source))
    used = re.findall(rf"(?<![\w$.]){re.escape(variable)}\.([A-Za-z_$][\w$]*)", test_source)
    missing: list[str] = []
    for name in used:
        if name not in defined and name not in missing:
            missing.append(name)
    return missing


def validate_generated_files(
    store: ArtifactStore,
    card_type: str,
    test_type: str,
    project: str | None = None,
) -> ValidationResult:
    paths = store.paths(card_type, test_type, project)
    errors: list[str] = []
    warnings: list[str] = []
    files: dict[str, FileValidation] = {}
    contents: dict[str, str] = {}

    for file_type, path in paths.as_dict().items():
        content = store.read(path)
        if content is None:
            errors.append(f"Missing {file_type} file: {path}")
            files[file_type] = FileValidation(path=str(path), exists=False, valid=False)
            continue
        contents[file_type] = content

        if file_type == "pageObject":
            result = validate_page_object_source(content, str(path))
            errors.extend(result.errors)
        elif file_type == "spec":
            result = validate_spec_source(content, str(path))
            errors.extend(result.errors)
        else:
            result = validate_test_source(content, str(path))
            errors.extend(f"{TEST_FILE_PREFIX}{error}" for error in result.errors)
            warnings.extend(f"{TEST_FILE_PREFIX}{warning}" for warning in result.warnings)
        files[file_type] = result

    if "test" in contents and "pageObject" in contents:
        for name in missing_accessors(contents["test"], contents["pageObject"], card_variable_name(card_type)):
            warnings.append(f"{TEST_FILE_PREFIX}Accessor '{name}' is not defined in the page object")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings, files=files)
