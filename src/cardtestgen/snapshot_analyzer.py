from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Mapping, Sequence

from .errors import CardNotFoundError, InvalidInputError
from .models import CardConfiguration, CardMetadata, ElementSpec, ExtractedElement, ExtractionResult
from .runtime_checks import build_id_selector_candidates, escape_css_attribute_value, escape_js_single_quoted
from .selector_rules import detect_card_type, filter_meaningful_styles
from .validation import validate_card_type

SELECTOR_PRIORITIES: dict[str, int] = {
    "id": 10,
    "data-testid": 9,
    "slot": 8,
    "aria-label": 7,
    "role": 6,
    "class": 5,
    "text": 4,
    "tag": 1,
}

BASE_CONFIDENCE = 50
CONFIDENCE_BONUSES: tuple[tuple[str, int], ...] = (
    ("id", 20),
    ("data-testid", 15),
    ("aria-label", 10),
    ("role", 5),
)
MULTI_STRATEGY_BONUS = 10
MULTI_STRATEGY_THRESHOLD = 4
MAX_CONFIDENCE = 100
FALLBACK_LIMIT = 3

_SNAPSHOT_LINE = re.compile(r'^\s*-\s*(?P<role>[a-zA-Z]+)(?:\s+"(?P<name>(?:[^"\\]|\\.)*)")?')


@dataclass(frozen=True, slots=True)
class SelectorCandidate:
    type: str
    value: str
    priority: int
    is_text: bool = False


@dataclass(slots=True)
class SnapshotAnalysis:
    result: ExtractionResult
    configuration: CardConfiguration
    accessibility_selectors: dict[str, list[str]] = field(default_factory=dict)
    confidence: dict[str, int] = field(default_factory=dict)


def build_alternative_selectors(info: Mapping[str, Any]) -> list[SelectorCandidate]:
    """Derive ranked selector candidates from raw element attributes."""
    attributes = info.get("attributes") or {}
    tag = str(info.get("tagName") or "").lower()
    candidates: list[SelectorCandidate] = []

    id_selectors = build_id_selector_candidates(attributes.get("id"))
    if id_selectors:
        candidates.append(SelectorCandidate("id", id_selectors[0], SELECTOR_PRIORITIES["id"]))
    test_id = str(attributes.get("data-testid") or "").strip()
    if test_id:
        candidates.append(
            SelectorCandidate(
                "data-testid",
                f'[data-testid="{escape_css_attribute_value(test_id)}"]',
                SELECTOR_PRIORITIES["data-testid"],
            )
        )
    slot = str(attributes.get("slot") or "").strip()
    if slot:
        candidates.append(SelectorCandidate("slot", f'{tag}[slot="{slot}"]', SELECTOR_PRIORITIES["slot"]))
    aria_label = str(attributes.get("aria-label") or "").strip()
    if aria_label:
        candidates.append(
            SelectorCandidate(
                "aria-label",
                f'[aria-label="{escape_css_attribute_value(aria_label)}"]',
                SELECTOR_PRIORITIES["aria-label"],
            )
        )
    role = str(attributes.get("role") or "").strip()
    if role:
        candidates.append(SelectorCandidate("role", f'[role="{role}"]', SELECTOR_PRIORITIES["role"]))
    classes = [item for item in str(attributes.get("class") or "").split() if not item.startswith("_")]
    if 0 < len(classes) < 4:
        candidates.append(SelectorCandidate("class", "." + ".".join(classes), SELECTOR_PRIORITIES["class"]))
    text = str(info.get("textContent") or "").strip()
    if 0 < len(text) < 50:
        candidates.append(SelectorCandidate("text", text, SELECTOR_PRIORITIES["text"], is_text=True))
    if tag:
        candidates.append(SelectorCandidate("tag", tag, SELECTOR_PRIORITIES["tag"]))

    candidates.sort(key=lambda item: item.priority, reverse=True)
    return candidates


def selector_confidence(candidates: Sequence[SelectorCandidate]) -> int:
    kinds = {candidate.type for candidate in candidates}
    confidence = BASE_CONFIDENCE
    for kind, bonus in CONFIDENCE_BONUSES:
        if kind in kinds:
            confidence += bonus
    if len(candidates) >= MULTI_STRATEGY_THRESHOLD:
        confidence += MULTI_STRATEGY_BONUS
    return min(confidence, MAX_CONFIDENCE)


def accessibility_selectors(
    candidates: Sequence[SelectorCandidate],
    snapshot_nodes: Sequence[tuple[str, str]] = (),
) -> list[str]:
    selectors: list[str] = []
    for candidate in candidates:
        if candidate.type == "role":
            role = candidate.value.removeprefix('[role="').removesuffix('"]')
            selectors.append(f"page.getByRole('{escape_js_single_quoted(role)}')")
        elif candidate.type == "aria-label":
            label = candidate.value.removeprefix('[aria-label="').removesuffix('"]').replace('\\"', '"')
            selectors.append(f"page.getByLabel('{escape_js_single_quoted(label)}')")
        elif candidate.type == "text" and candidate.is_text:
            text = candidate.value
            selectors.append(f"page.getByText('{escape_js_single_quoted(text)}')")
            for role, name in snapshot_nodes:
                if name and name == text:
                    selectors.insert(
                        0,
                        f"page.getByRole('{escape_js_single_quoted(role)}', {{ name: '{escape_js_single_quoted(name)}' }})",
                    )
                    break
    return list(dict.fromkeys(selectors))


def parse_accessibility_snapshot(snapshot: Any) -> list[tuple[str, str]]:
    """Flatten an aria snapshot (YAML-like text or a role/name tree) into (role, name) pairs."""
    if snapshot is None:
        return []
    nodes: list[tuple[str, str]] = []
    if isinstance(snapshot, str):
        for line in snapshot.splitlines():
            match = _SNAPSHOT_LINE.match(line)
            if match:
                nodes.append((match.group("role"), (match.group("name") or "").replace('\\"', '"')))
        return nodes

    stack: list[Any] = [snapshot]
    while stack:
        node = stack.pop()
        if isinstance(node, Mapping):
            role = str(node.get("role") or "").strip()
            if role:
                nodes.append((role, str(node.get("name") or "").strip()))
            children = node.get("children") or []
            stack.extend(reversed(list(children)))
        elif isinstance(node, (list, tuple)):
            stack.extend(reversed(list(node)))
    return nodes


def _parse_candidates(raw: Any, info: Mapping[str, Any]) -> list[SelectorCandidate]:
    if not raw:
        return build_alternative_selectors(info)
    candidates: list[SelectorCandidate] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        kind = str(item.get("type") or "")
        value = str(item.get("value") or "")
        if not kind or not value:
            continue
        priority = item.get("priority")
        candidates.append(
            SelectorCandidate(
                kind,
                value,
                int(priority) if isinstance(priority, (int, float)) else SELECTOR_PRIORITIES.get(kind, 0),
                bool(item.get("isTextContent")) or kind == "text",
            )
        )
    candidates.sort(key=lambda item: item.priority, reverse=True)
    return candidates


class SnapshotAnalyzer:
    def analyze(
        self,
        element_data: Mapping[str, Any],
        *,
        card_id: str | None = None,
        snapshot: Any = None,
        test_types: Sequence[str] = ("css", "functional"),
        metadata: CardMetadata | None = None,
    ) -> SnapshotAnalysis:
        if not isinstance(element_data, Mapping):
            raise InvalidInputError("Element data must be an object.")
        resolved_id = str(card_id or element_data.get("cardId") or "").strip()
        if element_data.get("error"):
            raise CardNotFoundError(resolved_id or "unknown", str(element_data["error"]))

        snapshot_nodes = parse_accessibility_snapshot(snapshot)
        raw_elements = element_data.get("elements") or {}
        extracted: dict[str, ExtractedElement] = {}
        specs: dict[str, ElementSpec] = {}
        a11y: dict[str, list[str]] = {}
        confidence: dict[str, int] = {}

        for name, raw in raw_elements.items():
            if not isinstance(raw, Mapping):
                continue
            primary = str(raw.get("primarySelector") or raw.get("selector") or "").strip()
            if not primary:
                continue
            info = raw.get("elementInfo") or {}
            candidates = _parse_candidates(raw.get("alternativeSelectors"), info)
            element_a11y = accessibility_selectors(candidates, snapshot_nodes)
            score = selector_confidence(candidates)
            css = filter_meaningful_styles(raw.get("cssProperties") or raw.get("css") or {})
            alternatives = tuple(candidate.value for candidate in candidates if not candidate.is_text)

            all_selectors = list(dict.fromkeys([primary, *alternatives]))
            attributes = info.get("attributes") or {}
            extracted[str(name)] = ExtractedElement(
                selector=primary,
                css=css,
                slot=attributes.get("slot") or None,
                tag_name=str(info.get("tagName") or ""),
                text_content=str(info.get("textContent") or "").strip(),
                alternative_selectors=alternatives,
                confidence=score,
            )
            specs[str(name)] = ElementSpec(
                selector=primary,
                fallback_selectors=tuple(all_selectors[1 : 1 + FALLBACK_LIMIT]),
                alternative_selectors=tuple(element_a11y[:2]),
                css_properties=css,
                confidence=score,
            )
            a11y[str(name)] = element_a11y
            confidence[str(name)] = score

        card_css = filter_meaningful_styles((element_data.get("cssProperties") or {}).get("card") or {})
        card_type = self._resolve_card_type(element_data, extracted)
        slots = tuple(dict.fromkeys(item.slot for item in extracted.values() if item.slot))
        result = ExtractionResult(
            card_type=card_type,
            card_id=resolved_id,
            card=card_css,
            elements=extracted,
            slots=slots,
        )
        configuration = CardConfiguration(
            card_type=card_type,
            card_id=resolved_id,
            test_suite=f"{card_type} - Smart Generated",
            elements=specs,
            test_types=tuple(test_types),
            css_properties={"card": card_css} if card_css else {},
            metadata=metadata or CardMetadata(tags=("@mas-studio", f"@{card_type}")),
        )
        return SnapshotAnalysis(result, configuration, a11y, confidence)

    @staticmethod
    def _resolve_card_type(element_data: Mapping[str, Any], extracted: Mapping[str, ExtractedElement]) -> str:
        raw = str(element_data.get("cardType") or "").strip().lower()
        if raw and raw != "unknown":
            return validate_card_type(raw)
        slots = {item.slot for item in extracted.values()}
        return detect_card_type(
            "",
            "",
            has_price="price" in extracted or "price" in slots,
            has_icon="icon" in extracted,
            has_media="backgroundImage" in extracted or "media" in slots,
        )
