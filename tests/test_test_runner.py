import asyncio
from pathlib import Path
from typing import Sequence

from cardtestgen.artifacts import ArtifactStore, generate_artifacts
from cardtestgen.models import CardConfiguration, ElementSpec
from cardtestgen.settings import Settings
from cardtestgen.test_runner import (
    ProcessOutcome,
    TestRunner,
    build_playwright_command,
    classify_output,
    credential_warnings,
    render_execution_report,
)

CREDENTIALS = {"IMS_EMAIL": "qa@example.com", "IMS_PASS": "secret"}


class FakeLauncher:
    def __init__(self, outcome: ProcessOutcome | None = None, error: Exception | None = None) -> None:
        self.outcome = outcome or ProcessOutcome(0, "1 passed", "")
        self.error = error
        self.calls: list[tuple[list[str], Path, float]] = []

    async def __call__(self, command: Sequence[str], cwd: Path, timeout: float) -> ProcessOutcome:
        self.calls.append((list(command), cwd, timeout))
        if self.error is not None:
            raise self.error
        return self.outcome


def _runner(tmp_path: Path, launcher: FakeLauncher, *, save: bool = True) -> TestRunner:
    settings = Settings(project_root=tmp_path)
    store = ArtifactStore(settings)
    if save:
        config = CardConfiguration(
            card_type="fries",
            card_id="",
            test_suite="suite",
            elements={"title": ElementSpec(selector='h3[slot="heading-xxs"]', expected_text="Photoshop")},
            test_types=("css",),
        )
        store.save(generate_artifacts(config))
    return TestRunner(settings, store, launcher=launcher, environ=CREDENTIALS)


def test_command_line_for_headed_run() -> None:
    command = build_playwright_command(Path("nala/x.test.js"), browser="firefox", timeout_ms=45000, headless=False)
    assert command == [
        "npx",
        "playwright",
        "test",
        "nala/x.test.js",
        "--reporter=json",
        "--timeout=45000",
        "--project=mas-live-firefox",
        "--headed",
    ]


def test_classification_of_runner_output() -> None:
    output = (
        "Error: locator.textContent: Test ended.\n"
        "waiting for locator('p[slot=\"price\"]') resolved to 0 elements\n"
        "Timeout 30000ms exceeded.\n"
    )
    kinds = [(error.kind, error.message) for error in classify_output(output)]
    assert kinds == [
        ("selector_mismatch", 'Selector not found: p[slot="price"]'),
        ("timeout", "Test timed out waiting for element or action"),
    ]
    css = classify_output("TypeError: Cannot convert undefined or null to object\nExpected true toBeTruthy")
    assert [error.kind for error in css] == ["css_mismatch", "css_mismatch"]
    assert classify_output("authenticate step failed")[0].kind == "authentication"
    assert classify_output("all good") == []


def test_chained_locator_reports_the_element_selector() -> None:
    output = (
        "Error: locator.click: Error: strict mode violation: "
        "locator('merch-card[id=\"abc\"]').locator('[slot=\"cta\"] a') resolved to 2 elements"
    )
    errors = classify_output(output)
    assert errors[0].kind == "selector_mismatch"
    assert errors[0].selector == '[slot="cta"] a'
    assert errors[0].message == 'Selector not found: [slot="cta"] a'


def test_credential_warnings() -> None:
    assert credential_warnings(CREDENTIALS) == []
    assert credential_warnings({"IMS_EMAIL": "x"}) == [
        "IMS_PASS environment variable not set - authentication may fail"
    ]


def test_missing_test_file_is_not_found(tmp_path: Path) -> None:
    launcher = FakeLauncher()
    result = asyncio.run(_runner(tmp_path, launcher, save=False).run("fries", "css"))
    assert not result.success
    assert result.error.startswith("Test file not found: ")
    assert result.errors[0].kind == "not_found"
    assert launcher.calls == []


def test_dry_run_validates_without_launching(tmp_path: Path) -> None:
    launcher = FakeLauncher()
    result = asyncio.run(_runner(tmp_path, launcher).run("fries", "css", dry_run=True))
    assert result.success
    assert result.output == "Dry run completed - test file is valid"
    assert launcher.calls == []


def test_invalid_test_file_is_not_executed(tmp_path: Path) -> None:
    launcher = FakeLauncher()
    runner = _runner(tmp_path, launcher)
    runner.store.write(runner.store.paths("fries", "css").test, "import { test } from '@playwright/test';\n}")
    result = asyncio.run(runner.run("fries", "css"))
    assert not result.success
    kinds = {error.kind for error in result.errors}
    assert kinds == {"structural", "syntax"}
    assert launcher.calls == []


def test_successful_run_uses_project_root_and_hard_timeout(tmp_path: Path) -> None:
    launcher = FakeLauncher(ProcessOutcome(0, '{"stats": {"expected": 2}}', ""))
    result = asyncio.run(_runner(tmp_path, launcher).run("fries", "css", timeout_ms=10000))
    assert result.success
    assert result.exit_code == 0
    assert result.errors == []
    command, cwd, timeout = launcher.calls[0]
    assert cwd == tmp_path
    assert timeout == 15.0
    assert command[3].endswith("fries_css.test.js")
    assert "--headed" not in command


def test_failed_run_is_classified(tmp_path: Path) -> None:
    launcher = FakeLauncher(ProcessOutcome(1, "", "Timeout 10000ms exceeded."))
    result = asyncio.run(_runner(tmp_path, launcher).run("fries", "css"))
    assert not result.success
    assert [str(error) for error in result.errors] == ["Test timed out waiting for element or action"]

    opaque = FakeLauncher(ProcessOutcome(2, "", "segfault"))
    result = asyncio.run(_runner(tmp_path, opaque).run("fries", "css"))
    assert [error.kind for error in result.errors] == ["unfixable"]
    assert result.errors[0].message == "Test run failed with exit code 2"


def test_hard_timeout_and_launch_failure(tmp_path: Path) -> None:
    timed_out = FakeLauncher(ProcessOutcome(None, "partial", "", timed_out=True))
    result = asyncio.run(_runner(tmp_path, timed_out).run("fries", "css", timeout_ms=2000))
    assert result.timed_out
    assert result.error == "Test execution timed out after 2000ms"
    assert result.errors[0].kind == "timeout"

    broken = FakeLauncher(error=FileNotFoundError("npx"))
    result = asyncio.run(_runner(tmp_path, broken).run("fries", "css"))
    assert not result.success
    assert result.errors[0].kind == "unfixable"


def test_execution_report_lists_errors_and_warnings(tmp_path: Path) -> None:
    launcher = FakeLauncher(ProcessOutcome(1, "", "Timeout 10000ms exceeded."))
    runner = _runner(tmp_path, launcher)
    runner._environ = {}
    report = render_execution_report(asyncio.run(runner.run("fries", "css")))
    assert "**Status**: Failed" in report
    assert "- [timeout] Test timed out waiting for element or action" in report
    assert "- IMS_EMAIL environment variable not set - authentication may fail" in report
