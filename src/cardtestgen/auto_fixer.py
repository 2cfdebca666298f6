"""Pattern-to-patch repair of generated artifacts.

Errors are routed to the artifact they concern, then matched against an ordered
registry. The first pattern whose regex matches an error is the only one tried
for it; an error no pattern repairs is reported back as remaining.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
from typing import Callable, Literal, Mapping, Sequence

from .artifact_validator import TEST_FILE_PREFIX
from .artifacts import ArtifactStore
from .models import FixResult
from .naming import feature_name, js_string, page_object_class_name, page_object_file_name, page_object_import_name
from .settings import DEFAULT_IMPORT_PATHS
from .test_module import Block, ImportDecl, TestModule, bracket_balance, make_test_async, parse_test_module

FixTarget = Literal["test", "pageObject", "spec"]

PLAYWRIGHT_SOURCE = "@playwright/test"
SELECTOR_NOT_FOUND = "Selector not found: "


@dataclass(frozen=True, slots=True)
class FixContext:
    card_type: str
    test_type: str
    import_paths: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_IMPORT_PATHS))
    selector_fallbacks: Mapping[str, str] = field(default_factory=dict)


Patch = Callable[[str, re.Match[str], FixContext], str]


@dataclass(frozen=True, slots=True)
class FixPattern:
    name: str
    pattern: re.Pattern[str]
    target: FixTarget
    patch: Patch


def target_for(error: str) -> FixTarget:
    if error.startswith(TEST_FILE_PREFIX):
        return "test"
    if error.startswith("Page object") or error.startswith(SELECTOR_NOT_FOUND) or error.startswith("Missing pageObject"):
        return "pageObject"
    if error.startswith("Spec file") or error.startswith("Missing spec"):
        return "spec"
    return "test"


def _module_patch(edit: Callable[[TestModule, re.Match[str], FixContext], None]) -> Patch:
    def patch(content: str, match: re.Match[str], context: FixContext) -> str:
        module = parse_test_module(content)
        edit(module, match, context)
        return module.render()

    return patch


def _add_missing_import(module: TestModule, match: re.Match[str], context: FixContext) -> None:
    name = match.group(1).strip()
    if name in ("expect", "test", PLAYWRIGHT_SOURCE):
        wanted = ["expect", "test"] if name == PLAYWRIGHT_SOURCE else [name]
        decl = module.find_import_from(PLAYWRIGHT_SOURCE)
        if decl is None:
            module.imports.insert(0, ImportDecl(source=PLAYWRIGHT_SOURCE, names=["expect", "test"]))
            return
        for item in wanted:
            if not decl.provides(item):
                decl.add_name(item)
        return

    path_keys = {"StudioPage": "studioPage", "WebUtil": "webUtil", "EditorPage": "editorPage", "OSTPage": "ostPage"}
    key = path_keys.get(name)
    if key is None or module.find_import(name) is not None:
        return
    module.add_import(ImportDecl(source=context.import_paths.get(key, DEFAULT_IMPORT_PATHS[key]), default=name))


def _indent_block(text: str, prefix: str = "    ") -> str:
    return "\n".join(f"{prefix}{line}" if line.strip() else line for line in text.split("\n"))


def _wrap_in_describe(module: TestModule, match: re.Match[str], context: FixContext) -> None:
    if module.describes():
        return
    tests = [block for block in module.body if block.kind == "test"]
    remaining = [block for block in module.body if block.kind != "test"]

    children = [
        Block(
            "text",
            "\n    let page;\n    let studioPage;\n    let webUtil;\n\n    ",
        ),
        Block(
            "hook",
            "test.beforeEach(async ({ browser }) => {\n"
            "        page = await browser.newPage();\n"
            "        studioPage = new StudioPage(page);\n"
            "        webUtil = new WebUtil(page);\n"
            "    });",
            name="beforeEach",
        ),
        Block("text", "\n\n    "),
        Block("hook", "test.afterEach(async () => {\n        await page.close();\n    });", name="afterEach"),
    ]
    for test_block in tests:
        children.append(Block("text", "\n\n    "))
        children.append(Block("test", _indent_block(test_block.text).lstrip()))
    children.append(Block("text", "\n"))

    title = js_string(f"{context.card_type} {context.test_type} tests")
    describe = Block("describe", f"test.describe({title}, () => {{", name="describe", children=children, closer="});")

    while remaining and remaining[-1].kind == "text" and not remaining[-1].text.strip():
        remaining.pop()
    if remaining and remaining[-1].kind == "text":
        remaining[-1] = Block("text", remaining[-1].text.rstrip())
    module.body = [*remaining, Block("text", "\n\n"), describe, Block("text", "\n")]


def _make_tests_async(module: TestModule, match: re.Match[str], context: FixContext) -> None:
    for block in module.tests():
        make_test_async(block)


def _add_page_object_usage(module: TestModule, match: re.Match[str], context: FixContext) -> None:
    import_name = page_object_import_name(context.card_type)
    if module.find_import(import_name) is None:
        module.add_import(ImportDecl(source=f"../{page_object_file_name(context.card_type)}", default=import_name))
    usage = f"const cardPage = new {import_name}(page);"
    hooks = module.hooks("beforeEach")
    if hooks:
        hook = hooks[0]
        if usage in hook.text:
            return
        body_open = hook.text.find("{", hook.text.find("=>"))
        if body_open != -1:
            hook.text = f"{hook.text[: body_open + 1]}\n    {usage}{hook.text[body_open + 1 :]}"
            return
    hook = Block("hook", f"test.beforeEach(async ({{ page }}) => {{\n    {usage}\n}});", name="beforeEach")
    module.body = [Block("text", "\n\n"), hook, *module.body] if module.body else [Block("text", "\n\n"), hook]


def _close_brackets(content: str, match: re.Match[str], context: FixContext) -> str:
    if "Unexpected end of input" not in match.group(1):
        return content
    balance = bracket_balance(content)
    if balance.unexpected or not balance.unclosed:
        return content
    return content.rstrip("\n") + "\n" + balance.closing_suffix() + "\n"


def _export_page_object_class(content: str, match: re.Match[str], context: FixContext) -> str:
    if "export default class" in content:
        return content
    return re.sub(
        r"(?:export\s+)?class\s+[A-Za-z_$][\w$]*",
        f"export default class {page_object_class_name(context.card_type)}",
        content,
        count=1,
    )


def _add_constructor(content: str, match: re.Match[str], context: FixContext) -> str:
    if "constructor(page)" in content:
        return content
    return re.sub(
        r"(export default class [A-Za-z_$][\w$]*\s*\{)",
        lambda found: found.group(1) + "\n    constructor(page) {\n        this.page = page;\n    }\n",
        content,
        count=1,
    )


def _rotate_selector(content: str, match: re.Match[str], context: FixContext) -> str:
    selector = match.group(1).strip()
    replacement = context.selector_fallbacks.get(selector)
    if not replacement:
        return content
    current = f"page.locator({js_string(selector)})"
    if current not in content:
        return content
    return content.replace(current, f"page.locator({js_string(replacement)})", 1)


def _add_spec_export(content: str, match: re.Match[str], context: FixContext) -> str:
    if "export default" in content:
        return content
    declared = re.search(r"^(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*=\s*\{", content, re.MULTILINE)
    if not declared:
        return content
    return content.rstrip("\n") + f"\n\nexport default {declared.group(1)};\n"


def _add_feature_name(content: str, match: re.Match[str], context: FixContext) -> str:
    if "FeatureName" in content:
        return content
    return re.sub(
        r"((?:export default|(?:const|let|var)\s+[A-Za-z_$][\w$]*\s*=)\s*\{)",
        lambda found: f"{found.group(1)}\n    FeatureName: {js_string(feature_name(context.card_type))},",
        content,
        count=1,
    )


def _add_features_array(content: str, match: re.Match[str], context: FixContext) -> str:
    if "features" in content:
        return content
    return re.sub(
        r"(FeatureName:\s*'(?:[^'\\]|\\.)*',)",
        lambda found: f"{found.group(1)}\n    features: [],",
        content,
        count=1,
    )


DEFAULT_PATTERNS: tuple[FixPattern, ...] = (
    FixPattern("missingImports", re.compile(r"Missing required import: (.+)"), "test", _module_patch(_add_missing_import)),
    FixPattern("missingTestDescribe", re.compile(r"Missing test\.describe block"), "test", _module_patch(_wrap_in_describe)),
    FixPattern("missingAsyncTest", re.compile(r"Tests should be async for Playwright"), "test", _module_patch(_make_tests_async)),
    FixPattern("syntaxErrors", re.compile(r"Syntax error: (.+)"), "test", _close_brackets),
    FixPattern("missingPageObject", re.compile(r"No page object usage detected"), "test", _module_patch(_add_page_object_usage)),
    FixPattern("pageObjectExport", re.compile(r"should export a default class"), "pageObject", _export_page_object_class),
    FixPattern("pageObjectConstructor", re.compile(r"should have constructor\(page\)"), "pageObject", _add_constructor),
    FixPattern("selectorMismatch", re.compile(re.escape(SELECTOR_NOT_FOUND) + r"(.+)"), "pageObject", _rotate_selector),
    FixPattern("specExport", re.compile(r"should have default export"), "spec", _add_spec_export),
    FixPattern("specFeatureName", re.compile(r"should have FeatureName"), "spec", _add_feature_name),
    FixPattern("specFeatures", re.compile(r"should have features array"), "spec", _add_features_array),
)


def apply_patterns(
    content: str,
    errors: Sequence[str],
    target: FixTarget,
    context: FixContext,
    patterns: Sequence[FixPattern] = DEFAULT_PATTERNS,
) -> tuple[str, list[str], list[str]]:
    """Apply the first matching pattern per error; returns (content, fixes, remaining)."""
    fixes: list[str] = []
    remaining: list[str] = []
    candidates = [pattern for pattern in patterns if pattern.target == target]
    for error in errors:
        message = error[len(TEST_FILE_PREFIX) :] if error.startswith(TEST_FILE_PREFIX) else error
        fixed = False
        for pattern in candidates:
            match = pattern.pattern.search(message)
            if not match:
                continue
            updated = pattern.patch(content, match, context)
            if updated != content:
                content = updated
                fixes.append(f"Applied {pattern.name} fix for: {error}")
                fixed = True
            break
        if not fixed:
            remaining.append(error)
    return content, fixes, remaining


class AutoFixer:
    def __init__(
        self,
        store: ArtifactStore,
        patterns: Sequence[FixPattern] = DEFAULT_PATTERNS,
    ) -> None:
        self.store = store
        self.patterns = tuple(patterns)
        self.logger = logging.getLogger("cardtestgen.fixer")

    def fix(
        self,
        card_type: str,
        test_type: str,
        errors: Sequence[str],
        *,
        dry_run: bool = False,
        backup: bool = True,
        backed_up: set[Path] | None = None,
        selector_fallbacks: Mapping[str, str] | None = None,
        project: str | None = None,
    ) -> FixResult:
        """Repair on-disk artifacts for ``errors``.

        ``backed_up`` carries the files already backed up in this run so a file is
        copied at most once, before its first mutation.
        """
        paths = self.store.paths(card_type, test_type, project)
        context = FixContext(
            card_type=card_type,
            test_type=test_type,
            import_paths=self.store.settings.import_paths,
            selector_fallbacks=dict(selector_fallbacks or {}),
        )
        seen = backed_up if backed_up is not None else set()
        result = FixResult()

        partitions: dict[FixTarget, list[str]] = {"test": [], "pageObject": [], "spec": []}
        for error in errors:
            partitions[target_for(error)].append(error)

        targets: dict[FixTarget, Path] = {"test": paths.test, "pageObject": paths.page_object, "spec": paths.spec}
        for target, target_errors in partitions.items():
            if not target_errors:
                continue
            path = targets[target]
            original = self.store.read(path)
            if original is None:
                result.remaining_errors.extend(target_errors)
                continue

            content, fixes, remaining = apply_patterns(original, target_errors, target, context, self.patterns)
            result.fixes_applied.extend(fixes)
            result.remaining_errors.extend(remaining)
            if dry_run or content == original:
                continue
            if backup and path not in seen:
                result.backups.append(self.store.backup(path))
                seen.add(path)
            result.written.append(self.store.write(path, content))

        self.logger.info(
            "Fixed %s issue(s), %s remaining for %s/%s",
            len(result.fixes_applied),
            len(result.remaining_errors),
            card_type,
            test_type,
        )
        return result
