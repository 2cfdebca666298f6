from cardtestgen.test_module import (
    Block,
    ImportDecl,
    bracket_balance,
    find_matching,
    make_test_async,
    parse_test_module,
)

SOURCE = """// generated
import { expect, test } from '@playwright/test';
import StudioPage from '../../../studio.page.js';

let studio;

test.beforeEach(async ({ page }) => {
    studio = new StudioPage(page);
});

test.describe('fries css', () => {
    // comment with test( inside
    test('card is visible', async ({ page }) => {
        await expect(page.locator('merch-card')).toBeVisible();
    });

    test(`uses ${'template'}`, ({ page }) => {
        expect(')').toBeTruthy();
    });
});
"""


def test_unmodified_module_renders_back_byte_for_byte() -> None:
    module = parse_test_module(SOURCE)
    assert module.render() == SOURCE
    assert module.prologue == "// generated\n"
    assert [decl.source for decl in module.imports] == ["@playwright/test", "../../../studio.page.js"]


def test_blocks_are_classified() -> None:
    module = parse_test_module(SOURCE)
    assert len(module.describes()) == 1
    assert [hook.name for hook in module.hooks("beforeEach")] == ["beforeEach"]
    tests = module.tests()
    assert len(tests) == 2
    assert tests[0].is_async
    assert not tests[1].is_async


def test_make_test_async_only_touches_sync_tests() -> None:
    module = parse_test_module(SOURCE)
    first, second = module.tests()
    assert not make_test_async(first)
    assert make_test_async(second)
    assert second.text.startswith("test(`uses ${'template'}`, async ({ page }) => {")
    assert not make_test_async(Block("hook", "test.beforeEach(() => {});", name="beforeEach"))


def test_import_decl_parse_and_render() -> None:
    decl = ImportDecl.parse("import { test } from '@playwright/test';")
    assert decl.names == ["test"]
    assert decl.provides("test")
    decl.add_name("expect")
    assert decl.render() == "import { test, expect } from '@playwright/test';"
    aliased = ImportDecl.parse('import Page, { helper as h } from "./page.js"')
    assert aliased.default == "Page"
    assert aliased.provides("h")
    assert ImportDecl(source="./side-effect.js").render() == "import './side-effect.js';"


def test_bracket_balance_reports_unclosed_and_unexpected() -> None:
    open_balance = bracket_balance("test('x', async () => { foo('}'); [1, 2")
    assert open_balance.unclosed == ("(", "{", "[")
    assert open_balance.closing_suffix() == "]})"
    stray = bracket_balance("a(); }")
    assert stray.unexpected == ("}",)
    assert bracket_balance("const s = `{${x}`; // )").balanced


def test_find_matching_skips_strings_and_comments() -> None:
    text = "f('(', /* ) */ g())"
    assert find_matching(text, 1) == len(text) - 1
    assert find_matching("f(()", 1) is None
