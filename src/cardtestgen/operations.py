"""Inbound operation surface.

Every operation returns an ``OperationReport``; precondition failures and
unexpected errors are converted into failed reports at this boundary.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from .artifact_validator import validate_generated_files
from .artifacts import ArtifactStore, generate_artifacts
from .auto_fixer import AutoFixer
from .errors import CardTestGenError
from .extraction_script import build_automated_extraction_script
from .features import DEFAULT_CARD_ID, INTERACTION_TEST_TYPES
from .live_extractor import LiveCardExtractor, configuration_from_extraction
from .models import (
    DEFAULT_BROWSER_PARAMS,
    DEFAULT_PATH,
    CardConfiguration,
    CardMetadata,
    ElementSpec,
    ExecutionResult,
    FixResult,
    GeneratedArtifactSet,
    InteractionSpec,
    ValidationResult,
)
from .orchestrator import RetryOrchestrator, render_fix_report
from .page_object_generator import generate_page_object
from .selector_rules import ELEMENT_CANDIDATE_SELECTORS
from .settings import Settings
from .snapshot_analyzer import SnapshotAnalyzer
from .spec_generator import generate_spec
from .test_generator import generate_test
from .test_runner import TestRunner, render_execution_report
from .validation import (
    parse_card_configuration,
    validate_card_type,
    validate_configuration,
    validate_test_type,
    validate_test_types,
)
from .variant_registry import VariantRegistry

DEFAULT_ELEMENTS = ("title", "description", "price", "cta")

ConfigInput = CardConfiguration | Mapping[str, Any]


@dataclass(slots=True)
class OperationReport:
    ok: bool
    text: str
    files: list[Path] = field(default_factory=list)


def default_configuration(card_type: str, test_type: str) -> CardConfiguration:
    """Configuration built from the ranked default selectors, used when nothing exists on disk yet."""
    card_type = validate_card_type(card_type)
    test_type = validate_test_type(test_type)
    elements: dict[str, ElementSpec] = {}
    for name in DEFAULT_ELEMENTS:
        primary, *fallbacks = ELEMENT_CANDIDATE_SELECTORS[name]
        interactions: tuple[InteractionSpec, ...] = ()
        if name == "cta" and test_type in INTERACTION_TEST_TYPES:
            interactions = (InteractionSpec(type="click"),)
        elements[name] = ElementSpec(selector=primary, fallback_selectors=tuple(fallbacks), interactions=interactions)
    return CardConfiguration(
        card_type=card_type,
        card_id=DEFAULT_CARD_ID,
        test_suite=f"{card_type}-suite",
        elements=elements,
        test_types=(test_type,),
    )


def selector_fallback_map(config: CardConfiguration | None = None) -> dict[str, str]:
    """Each known selector mapped to the candidate that should replace it when it stops resolving."""
    chains = [list(candidates) for candidates in ELEMENT_CANDIDATE_SELECTORS.values()]
    if config is not None:
        chains.extend(element.candidate_selectors() for element in config.elements.values())
    fallbacks: dict[str, str] = {}
    for chain in chains:
        for current, following in zip(chain, chain[1:]):
            fallbacks[current] = following
    return fallbacks


def _as_configuration(config: ConfigInput) -> CardConfiguration:
    if isinstance(config, CardConfiguration):
        return validate_configuration(config)
    return parse_card_configuration(config)


def _failure(exc: BaseException, files: Sequence[Path] = ()) -> OperationReport:
    if isinstance(exc, CardTestGenError):
        text = f"Error ({exc.kind}): {exc}"
    else:
        text = f"Unexpected error: {exc}"
    if files:
        text += "\n\nFiles written before the failure:\n" + "\n".join(f"- {path}" for path in files)
    return OperationReport(False, text + "\n", list(files))


def _render_artifacts(artifact_set: GeneratedArtifactSet) -> str:
    config = artifact_set.configuration
    sections = [
        f"# Generated suite for {config.card_type}",
        "",
        "## Page object",
        "```javascript",
        artifact_set.page_object.rstrip(),
        "```",
    ]
    for test_type in artifact_set.test_types():
        sections.extend(["", f"## Spec ({test_type})", "```javascript", artifact_set.spec[test_type].rstrip(), "```"])
        sections.extend(["", f"## Test ({test_type})", "```javascript", artifact_set.test[test_type].rstrip(), "```"])
    return "\n".join(sections) + "\n"


def _render_validation(card_type: str, test_type: str, validation: ValidationResult) -> str:
    status = "Valid" if validation.valid else "Invalid"
    lines = [f"## File Validation: {card_type} / {test_type}", "", f"**Status**: {status}"]
    for file_type, result in validation.files.items():
        state = "missing" if not result.exists else ("valid" if result.valid else "invalid")
        lines.append(f"- {file_type}: {result.path} ({state})")
    if validation.errors:
        lines.append("**Errors**:")
        lines.extend(f"- {error}" for error in validation.errors)
    if validation.warnings:
        lines.append("**Warnings**:")
        lines.extend(f"- {warning}" for warning in validation.warnings)
    return "\n".join(lines) + "\n"


class CardTestService:
    def __init__(
        self,
        settings: Settings,
        registry: VariantRegistry | None = None,
        runner: TestRunner | None = None,
        extractor_factory: Callable[[], LiveCardExtractor] | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or VariantRegistry(settings)
        self.store = ArtifactStore(settings, self.registry)
        self.fixer = AutoFixer(self.store)
        self.runner = runner or TestRunner(settings, self.store)
        self.extractor_factory = extractor_factory or (lambda: LiveCardExtractor(settings))
        self.analyzer = SnapshotAnalyzer()
        self.logger = logging.getLogger("cardtestgen.operations")

    def generate_page_object(self, config: ConfigInput, *, include_fallbacks: bool = False) -> OperationReport:
        try:
            text = generate_page_object(_as_configuration(config), include_fallbacks=include_fallbacks)
            return OperationReport(True, text)
        except Exception as exc:
            return self._report_failure("generate_page_object", exc)

    def generate_spec(self, config: ConfigInput, test_type: str = "css") -> OperationReport:
        try:
            return OperationReport(True, generate_spec(_as_configuration(config), test_type))
        except Exception as exc:
            return self._report_failure("generate_spec", exc)

    def generate_test(self, config: ConfigInput, test_type: str = "css") -> OperationReport:
        try:
            text = generate_test(_as_configuration(config), test_type, self.settings.import_paths)
            return OperationReport(True, text)
        except Exception as exc:
            return self._report_failure("generate_test", exc)

    def generate_complete_suite(
        self,
        config: ConfigInput,
        test_types: Sequence[str] | None = None,
        *,
        save: bool = False,
        project: str | None = None,
        include_fallbacks: bool = False,
    ) -> OperationReport:
        try:
            configuration = _as_configuration(config)
            self.registry.ensure(configuration.card_type)
            artifact_set = generate_artifacts(
                configuration,
                test_types,
                self.settings.import_paths,
                include_fallbacks=include_fallbacks,
            )
            text = _render_artifacts(artifact_set)
            files: list[Path] = []
            if save:
                files = self.store.save(artifact_set, project)
                text += "\n## Files written\n" + "\n".join(f"- {path}" for path in files) + "\n"
            return OperationReport(True, text, files)
        except Exception as exc:
            return self._report_failure("generate_complete_suite", exc)

    async def extract_from_live_instance(
        self,
        card_id: str,
        branch_or_url: str | None = None,
        *,
        path: str = DEFAULT_PATH,
        browser_params: str = DEFAULT_BROWSER_PARAMS,
        milolibs: str | None = None,
        card_type: str | None = None,
        test_types: Sequence[str] = ("css",),
        headless: bool | None = None,
        generate: bool = False,
        save: bool = False,
        project: str | None = None,
    ) -> OperationReport:
        files: list[Path] = []
        try:
            test_types = validate_test_types(test_types)
            extractor = self.extractor_factory()
            result = await extractor.extract(
                card_id,
                branch_or_url,
                path=path,
                browser_params=browser_params,
                milolibs=milolibs,
                card_type=card_type,
                headless=self.settings.headless if headless is None else headless,
            )
            configuration = configuration_from_extraction(
                result,
                test_types,
                CardMetadata(path=path, browser_params=browser_params, milolibs=milolibs),
            )
            lines = [
                f"# Extraction for card {result.card_id}",
                "",
                f"- Card type: {result.card_type}",
                f"- URL: {result.url}",
                f"- Elements: {', '.join(result.elements) or 'none'}",
            ]
            lines.extend(f"- Warning: {warning}" for warning in result.warnings)
            lines.extend(["", "```json", json.dumps(asdict(result), indent=2), "```"])
            text = "\n".join(lines) + "\n"
            if generate or save:
                self.registry.ensure(configuration.card_type)
                artifact_set = generate_artifacts(configuration, None, self.settings.import_paths)
                text += "\n" + _render_artifacts(artifact_set)
                if save:
                    files = self.store.save(artifact_set, project)
                    text += "\n## Files written\n" + "\n".join(f"- {path}" for path in files) + "\n"
            return OperationReport(True, text, files)
        except Exception as exc:
            return self._report_failure("extract_from_live_instance", exc, files)

    def generate_extraction_script(
        self,
        card_id: str,
        branch_or_url: str | None = None,
        *,
        path: str = DEFAULT_PATH,
        browser_params: str = DEFAULT_BROWSER_PARAMS,
        milolibs: str | None = None,
        headless: bool = False,
    ) -> OperationReport:
        try:
            script = build_automated_extraction_script(
                card_id,
                branch_or_url or self.settings.base_url_override or self.settings.default_branch,
                path=path,
                browser_params=browser_params,
                milolibs=milolibs,
                headless=headless,
            )
            return OperationReport(True, script)
        except Exception as exc:
            return self._report_failure("generate_extraction_script", exc)

    def validate_generated_tests(self, card_type: str, test_type: str, project: str | None = None) -> OperationReport:
        try:
            validation = validate_generated_files(self.store, card_type, test_type, project)
            return OperationReport(validation.valid, _render_validation(card_type, test_type, validation))
        except Exception as exc:
            return self._report_failure("validate_generated_tests", exc)

    async def run_generated_tests(
        self,
        card_type: str,
        test_type: str,
        *,
        headless: bool | None = None,
        browser: str | None = None,
        timeout_ms: int | None = None,
        dry_run: bool = False,
        project: str | None = None,
    ) -> OperationReport:
        try:
            validation = validate_generated_files(self.store, card_type, test_type, project)
            text = _render_validation(card_type, test_type, validation)
            if not validation.valid:
                return OperationReport(False, text + f"\n**Summary**: Validation failed: {len(validation.errors)} errors\n")
            execution = await self.runner.run(
                card_type,
                test_type,
                headless=headless,
                browser=browser,
                timeout_ms=timeout_ms,
                dry_run=dry_run,
                project=project,
            )
            text += "\n" + render_execution_report(execution)
            summary = "All tests passed" if execution.success else f"Test execution failed: {execution.error}"
            return OperationReport(execution.success, text + f"\n**Summary**: {summary}\n")
        except Exception as exc:
            return self._report_failure("run_generated_tests", exc)

    async def run_and_fix(
        self,
        card_type: str,
        test_type: str,
        *,
        config: ConfigInput | None = None,
        max_attempts: int | None = None,
        headless: bool | None = None,
        browser: str | None = None,
        timeout_ms: int | None = None,
        project: str | None = None,
    ) -> OperationReport:
        files: list[Path] = []
        try:
            card_type = validate_card_type(card_type)
            test_type = validate_test_type(test_type)
            configuration = _as_configuration(config) if config is not None else None
            preamble = ""
            if self.store.read(self.store.paths(card_type, test_type, project).test) is None:
                configuration = configuration or default_configuration(card_type, test_type)
                self.registry.ensure(card_type)
                artifact_set = generate_artifacts(configuration, [test_type], self.settings.import_paths)
                files.extend(self.store.save(artifact_set, project))
                preamble = "## Generated files\n" + "\n".join(f"- {path}" for path in files) + "\n\n"

            backed_up: set[Path] = set()
            fallbacks = selector_fallback_map(configuration)

            def fix(errors: Sequence[str]) -> FixResult:
                result = self.fixer.fix(
                    card_type,
                    test_type,
                    errors,
                    backed_up=backed_up,
                    selector_fallbacks=fallbacks,
                    project=project,
                )
                files.extend(path for path in result.written if path not in files)
                return result

            async def execute() -> ExecutionResult:
                return await self.runner.run(
                    card_type,
                    test_type,
                    headless=headless,
                    browser=browser,
                    timeout_ms=timeout_ms,
                    project=project,
                )

            orchestrator = RetryOrchestrator(
                validate=lambda: validate_generated_files(self.store, card_type, test_type, project),
                fix=fix,
                execute=execute,
                max_attempts=max_attempts or self.settings.max_fix_attempts,
            )
            state = await orchestrator.run()
            text = preamble + render_fix_report(card_type, test_type, state)
            return OperationReport(state.outcome in ("success", "patched"), text, files)
        except Exception as exc:
            return self._report_failure("run_and_fix", exc, files)

    def analyze_snapshot(
        self,
        element_data: Mapping[str, Any],
        *,
        card_id: str | None = None,
        snapshot: Any = None,
        test_types: Sequence[str] = ("css",),
        generate: bool = False,
    ) -> OperationReport:
        try:
            analysis = self.analyzer.analyze(element_data, card_id=card_id, snapshot=snapshot, test_types=test_types)
            config = analysis.configuration
            lines = [f"# Snapshot analysis for {config.card_type}", ""]
            for name, element in config.elements.items():
                score = analysis.confidence.get(name)
                lines.append(f"- {name}: `{element.selector}` (confidence {score if score is not None else 'n/a'})")
                for selector in analysis.accessibility_selectors.get(name, ()):
                    lines.append(f"  - {selector}")
            text = "\n".join(lines) + "\n"
            if generate:
                text += "\n" + _render_artifacts(generate_artifacts(config, None, self.settings.import_paths))
            return OperationReport(True, text)
        except Exception as exc:
            return self._report_failure("analyze_snapshot", exc)

    def _report_failure(self, operation: str, exc: Exception, files: Sequence[Path] = ()) -> OperationReport:
        if isinstance(exc, CardTestGenError):
            self.logger.warning("%s failed: %s", operation, exc)
        else:
            self.logger.exception("%s failed unexpectedly", operation)
        return _failure(exc, files)
