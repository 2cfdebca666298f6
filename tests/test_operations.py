import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Sequence

from cardtestgen.artifacts import ArtifactStore
from cardtestgen.live_extractor import ExtractionTimeouts, LiveCardExtractor
from cardtestgen.operations import CardTestService, default_configuration, selector_fallback_map
from cardtestgen.settings import Settings, load_settings
from cardtestgen.test_runner import ProcessOutcome, TestRunner

CARD_ID = "206a8742-0289-4196-92d4-ced99ec4191e"
TITLE_SELECTOR = 'h3[slot="heading-xxs"]'

PAYLOAD = {
    "cardType": "fries",
    "cardId": CARD_ID,
    "testTypes": ["css", "edit"],
    "elements": {
        "title": {"selector": TITLE_SELECTOR, "expectedText": "Photoshop"},
        "price": {"selector": '[slot="price"]', "cssProperties": {"color": "rgb(34, 34, 34)"}},
    },
}


class EmptyPage:
    url = "https://main--mas--adobecom.hlx.page/studio.html"

    async def goto(self, url: str, **_: Any) -> None:
        return None

    async def wait_for_selector(self, selector: str, **_: Any) -> None:
        return None

    async def query_selector(self, selector: str) -> None:
        return None

    async def query_selector_all(self, selector: str) -> list:
        return []


class SequenceLauncher:
    def __init__(self, *outcomes: ProcessOutcome) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, command: Sequence[str], cwd: Path, timeout: float) -> ProcessOutcome:
        self.calls += 1
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


def _service(tmp_path: Path, launcher: SequenceLauncher | None = None) -> CardTestService:
    settings = Settings(project_root=tmp_path)
    runner = TestRunner(
        settings,
        ArtifactStore(settings),
        launcher=launcher or SequenceLauncher(ProcessOutcome(0, "ok", "")),
        environ={"IMS_EMAIL": "qa@example.com", "IMS_PASS": "secret"},
    )

    def extractor() -> LiveCardExtractor:
        @asynccontextmanager
        async def session(headless: bool):
            yield EmptyPage()

        return LiveCardExtractor(settings, timeouts=ExtractionTimeouts(10, 10, 10), session_factory=session)

    return CardTestService(settings, runner=runner, extractor_factory=extractor)


def test_missing_card_reports_not_found_and_writes_nothing(tmp_path: Path) -> None:
    service = _service(tmp_path)
    report = asyncio.run(service.extract_from_live_instance(CARD_ID, "main", save=True))
    assert not report.ok
    assert report.text.startswith(f"Error (not_found): Card not found: {CARD_ID}")
    assert report.files == []
    assert not (tmp_path / "nala").exists()


def test_complete_suite_from_mapping_is_saved(tmp_path: Path) -> None:
    service = _service(tmp_path)
    report = service.generate_complete_suite(PAYLOAD, save=True)
    assert report.ok
    base = tmp_path / "nala" / "studio" / "commerce" / "fries"
    assert report.files == [
        base / "fries.page.js",
        base / "specs" / "fries_css.spec.js",
        base / "tests" / "fries_css.test.js",
        base / "specs" / "fries_edit.spec.js",
        base / "tests" / "fries_edit.test.js",
    ]
    assert "## Files written" in report.text
    assert service.validate_generated_tests("fries", "css").ok
    assert service.validate_generated_tests("fries", "edit").ok


def test_invalid_inputs_become_failed_reports(tmp_path: Path) -> None:
    service = _service(tmp_path)
    assert service.generate_complete_suite({**PAYLOAD, "cardType": "../x"}).text.startswith("Error (invalid_input)")
    assert not service.generate_spec(PAYLOAD, "save").ok
    assert not service.generate_extraction_script("bogus").ok
    missing = service.validate_generated_tests("fries", "css")
    assert not missing.ok
    assert "Missing pageObject file" in missing.text


def test_single_artifact_operations(tmp_path: Path) -> None:
    service = _service(tmp_path)
    assert "this.title = page.locator" in service.generate_page_object(PAYLOAD).text
    assert "@studio-fries-css-title" in service.generate_spec(PAYLOAD).text
    assert "test.describe('M@S Studio CCD Fries card test suite'" in service.generate_test(PAYLOAD).text
    script = service.generate_extraction_script(CARD_ID)
    assert script.ok
    assert "main--mas--adobecom.hlx.page" in script.text


def test_run_and_fix_generates_defaults_then_succeeds(tmp_path: Path) -> None:
    launcher = SequenceLauncher(ProcessOutcome(0, "ok", ""))
    service = _service(tmp_path, launcher)
    report = asyncio.run(service.run_and_fix("fries", "css"))
    assert report.ok
    assert "## Generated files" in report.text
    assert "- Outcome: success" in report.text
    assert len(report.files) == 3
    assert launcher.calls == 1


def test_run_and_fix_rotates_a_failing_selector(tmp_path: Path) -> None:
    failure = ProcessOutcome(
        1,
        "",
        "Error: locator.textContent: waiting for "
        f"locator('merch-card[id=\"{CARD_ID}\"]').locator('{TITLE_SELECTOR}') resolved to 0 elements",
    )
    launcher = SequenceLauncher(failure, ProcessOutcome(0, "ok", ""))
    service = _service(tmp_path, launcher)
    report = asyncio.run(service.run_and_fix("fries", "css", max_attempts=3))

    assert report.ok
    assert "- Outcome: patched" in report.text
    page_object = service.store.paths("fries", "css").page_object
    assert "page.locator('h2[slot=\"heading-xs\"]')" in page_object.read_text(encoding="utf-8")
    assert len(list(page_object.parent.glob("fries.page.js.backup.*"))) == 1


def test_run_and_fix_rejects_bad_card_type(tmp_path: Path) -> None:
    report = asyncio.run(_service(tmp_path).run_and_fix("../etc", "css"))
    assert not report.ok
    assert report.files == []


def test_analyze_snapshot_report(tmp_path: Path) -> None:
    data = {
        "cardType": "fries",
        "elements": {
            "title": {
                "primarySelector": TITLE_SELECTOR,
                "elementInfo": {"tagName": "h3", "textContent": "Photoshop", "attributes": {"slot": "heading-xxs"}},
                "cssProperties": {"color": "rgb(44, 44, 44)"},
            }
        },
    }
    report = _service(tmp_path).analyze_snapshot(data, card_id=CARD_ID, generate=True)
    assert report.ok
    assert f"- title: `{TITLE_SELECTOR}` (confidence" in report.text
    assert "## Page object" in report.text
    failed = _service(tmp_path).analyze_snapshot({"error": "Card not found"}, card_id=CARD_ID)
    assert failed.text.startswith("Error (not_found)")


def test_default_configuration_and_fallback_chains() -> None:
    config = default_configuration("fries", "functional")
    assert list(config.elements) == ["title", "description", "price", "cta"]
    assert config.elements["cta"].interactions[0].type == "click"
    assert default_configuration("fries", "css").elements["cta"].interactions == ()
    fallbacks = selector_fallback_map()
    assert fallbacks[TITLE_SELECTOR] == 'h2[slot="heading-xs"]'
    assert fallbacks['[slot="cta"] a.spectrum-Button'] == '[slot="cta"] a'


def test_configured_and_discovered_variants_decide_the_surface(tmp_path: Path) -> None:
    (tmp_path / ".cardtestgen.json").write_text(json.dumps({"variants": {"plans": "commerce"}}), encoding="utf-8")
    variants_dir = tmp_path / "web-components" / "src" / "variants"
    variants_dir.mkdir(parents=True)
    (variants_dir / "ah-segment.js").write_text("export default {};\n", encoding="utf-8")

    service = CardTestService(load_settings(environ={}, cwd=tmp_path, home=tmp_path / "home"))

    assert service.store.paths("plans", "css").base_dir == tmp_path / "nala" / "studio" / "commerce" / "plans"
    discovered = service.registry.get("ah-segment")
    assert discovered is not None
    assert discovered.source == "discovered"
    assert service.store.paths("ah-segment", "css").base_dir.parent.name == "adobe-home"


def test_fallback_selectors_are_emitted_only_on_request(tmp_path: Path) -> None:
    service = _service(tmp_path)
    payload = {
        **PAYLOAD,
        "elements": {"title": {"selector": TITLE_SELECTOR, "fallbackSelectors": ['h2[slot="heading-xs"]']}},
    }
    chained = """this.title = page.locator('h3[slot="heading-xxs"]').or(page.locator('h2[slot="heading-xs"]'));"""

    plain = service.generate_page_object(payload).text
    assert """this.title = page.locator('h3[slot="heading-xxs"]');""" in plain
    assert ".or(" not in plain

    assert chained in service.generate_page_object(payload, include_fallbacks=True).text
    suite = service.generate_complete_suite(payload, ["css"], include_fallbacks=True)
    assert suite.ok
    assert chained in suite.text
    assert chained not in service.generate_complete_suite(payload, ["css"]).text
