from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .errors import ClassifiedError

TestType = Literal["css", "functional", "edit", "save", "discard", "interaction"]
InteractionType = Literal["click", "hover", "type", "select", "edit"]
FixOutcome = Literal["success", "patched", "exhausted", "unfixable"]

TEST_TYPES: tuple[str, ...] = ("css", "functional", "edit", "save", "discard", "interaction")
INTERACTION_TYPES: tuple[str, ...] = ("click", "hover", "type", "select", "edit")
ELEMENT_NAMES: tuple[str, ...] = (
    "title",
    "eyebrow",
    "description",
    "price",
    "strikethroughPrice",
    "cta",
    "icon",
    "legalLink",
    "backgroundImage",
    "badge",
    "trialBadge",
)

DEFAULT_PATH = "/studio.html"
DEFAULT_BROWSER_PARAMS = "#query="


@dataclass(frozen=True, slots=True)
class InteractionSpec:
    type: str
    value: str | None = None
    wait_for: str | None = None
    expected_result: str | None = None


@dataclass(frozen=True, slots=True)
class ElementSpec:
    selector: str
    fallback_selectors: tuple[str, ...] = ()
    alternative_selectors: tuple[str, ...] = ()
    expected_text: str | None = None
    expected_value: str | None = None
    expected_attribute: dict[str, str] = field(default_factory=dict)
    css_properties: dict[str, str] = field(default_factory=dict)
    interactions: tuple[InteractionSpec, ...] = ()
    confidence: int | None = None

    def candidate_selectors(self) -> list[str]:
        """Primary selector first, then fallbacks, then alternatives, without duplicates."""
        ordered: list[str] = []
        for selector in (self.selector, *self.fallback_selectors, *self.alternative_selectors):
            if selector and selector not in ordered:
                ordered.append(selector)
        return ordered


@dataclass(frozen=True, slots=True)
class CardMetadata:
    tags: tuple[str, ...] = ()
    path: str = DEFAULT_PATH
    browser_params: str = DEFAULT_BROWSER_PARAMS
    milolibs: str | None = None


@dataclass(frozen=True, slots=True)
class CardConfiguration:
    card_type: str
    card_id: str
    test_suite: str
    elements: dict[str, ElementSpec]
    test_types: tuple[str, ...]
    css_properties: dict[str, dict[str, str]] = field(default_factory=dict)
    metadata: CardMetadata = field(default_factory=CardMetadata)


@dataclass(frozen=True, slots=True)
class ExtractedElement:
    selector: str
    css: dict[str, str]
    slot: str | None
    tag_name: str
    text_content: str
    alternative_selectors: tuple[str, ...] = ()
    confidence: int | None = None


@dataclass(slots=True)
class ExtractionResult:
    card_type: str
    card_id: str
    card: dict[str, str] = field(default_factory=dict)
    elements: dict[str, ExtractedElement] = field(default_factory=dict)
    slots: tuple[str, ...] = ()
    url: str = ""
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class GeneratedArtifactSet:
    configuration: CardConfiguration
    page_object: str
    spec: dict[str, str] = field(default_factory=dict)
    test: dict[str, str] = field(default_factory=dict)

    def test_types(self) -> list[str]:
        return list(self.test)


@dataclass(frozen=True, slots=True)
class ArtifactPaths:
    base_dir: Path
    page_object: Path
    spec: Path
    test: Path

    def as_dict(self) -> dict[str, Path]:
        return {"pageObject": self.page_object, "spec": self.spec, "test": self.test}


@dataclass(slots=True)
class FileValidation:
    path: str
    exists: bool
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    files: dict[str, FileValidation] = field(default_factory=dict)


@dataclass(slots=True)
class FixResult:
    fixes_applied: list[str] = field(default_factory=list)
    remaining_errors: list[str] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.remaining_errors


@dataclass(slots=True)
class ExecutionResult:
    success: bool
    output: str = ""
    error: str = ""
    duration_ms: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[ClassifiedError] = field(default_factory=list)
    exit_code: int | None = None
    timed_out: bool = False


@dataclass(slots=True)
class AttemptRecord:
    number: int
    validation: ValidationResult
    fix: FixResult | None = None
    execution: ExecutionResult | None = None


@dataclass(slots=True)
class FixAttemptState:
    max_attempts: int
    attempt: int = 0
    fixes_applied: list[str] = field(default_factory=list)
    remaining_errors: list[str] = field(default_factory=list)
    outcome: FixOutcome | None = None
    history: list[AttemptRecord] = field(default_factory=list)
