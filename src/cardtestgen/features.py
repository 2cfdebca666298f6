from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .errors import GenerationError
from .models import TEST_TYPES, CardConfiguration, InteractionSpec
from .selector_rules import filter_meaningful_styles

DEFAULT_CARD_ID = "206a8742-0289-4196-92d4-ced99ec4191e"
DEFAULT_SAVE_CARD_ID = "cc85b026-240a-4280-ab41-7618e65daac4"

EDITOR_TEST_TYPES = ("edit", "save", "discard")
INTERACTION_TEST_TYPES = ("functional", "interaction")

CardCheck = Literal["text", "contains", "src", "visible"]

PHOTOSHOP_ICON = "https://www.adobe.com/content/dam/shared/images/product-icons/svg/photoshop.svg"
ILLUSTRATOR_ICON = "https://www.adobe.com/content/dam/shared/images/product-icons/svg/illustrator.svg"
BACKGROUND_URL = (
    "https://main--milo--adobecom.aem.page/assets/img/commerce/"
    "media_1d63dab9ee1edbf371d6f0548516c9e12b3ea3ff4.png"
)


@dataclass(frozen=True, slots=True)
class EditableField:
    element: str
    edit_label: str
    save_label: str
    discard_label: str
    editor_field: str
    original_key: str | None
    new_key: str
    card_check: CardCheck
    edit_data: tuple[tuple[str, str], ...]
    save_data: tuple[tuple[str, str], ...]

    def label_for(self, test_type: str) -> str:
        if test_type == "save":
            return f"edited-{self.save_label}"
        if test_type == "discard":
            return f"edited-{self.discard_label}"
        return self.edit_label

    def data_for(self, test_type: str) -> tuple[tuple[str, str], ...]:
        return self.save_data if test_type == "save" else self.edit_data


# Editor-backed fields in the order their tests are emitted.
EDITABLE_FIELDS: tuple[EditableField, ...] = (
    EditableField(
        element="title",
        edit_label="title",
        save_label="title",
        discard_label="title",
        editor_field="title",
        original_key="title",
        new_key="newTitle",
        card_check="text",
        edit_data=(("title", "Automation Test Card"), ("newTitle", "Change title")),
        save_data=(("title", "Field Edit & Save"), ("newTitle", "Cloned Field Edit")),
    ),
    EditableField(
        element="eyebrow",
        edit_label="eyebrow",
        save_label="eyebrow",
        discard_label="eyebrow",
        editor_field="subtitle",
        original_key="subtitle",
        new_key="newSubtitle",
        card_check="text",
        edit_data=(("subtitle", "do not edit"), ("newSubtitle", "Change subtitle")),
        save_data=(("subtitle", "do not edit"), ("newSubtitle", "New Subtitle")),
    ),
    EditableField(
        element="description",
        edit_label="description",
        save_label="description",
        discard_label="description",
        editor_field="description",
        original_key="description",
        new_key="newDescription",
        card_check="contains",
        edit_data=(
            ("description", "MAS repo validation card for Nala tests"),
            ("newDescription", "New Test Description"),
        ),
        save_data=(
            ("description", "MAS repo validation card for Nala tests"),
            ("newDescription", "New Test Description"),
        ),
    ),
    EditableField(
        element="icon",
        edit_label="mnemonic",
        save_label="mnemonic",
        discard_label="mnemonic",
        editor_field="iconURL",
        original_key="iconURL",
        new_key="newIconURL",
        card_check="src",
        edit_data=(("iconURL", PHOTOSHOP_ICON), ("newIconURL", ILLUSTRATOR_ICON)),
        save_data=(("iconURL", PHOTOSHOP_ICON), ("newIconURL", ILLUSTRATOR_ICON)),
    ),
    EditableField(
        element="backgroundImage",
        edit_label="background",
        save_label="image",
        discard_label="background",
        editor_field="backgroundImage",
        original_key=None,
        new_key="newBackgroundURL",
        card_check="visible",
        edit_data=(("newBackgroundURL", BACKGROUND_URL),),
        save_data=(("newBackgroundURL", BACKGROUND_URL),),
    ),
    EditableField(
        element="price",
        edit_label="price",
        save_label="price",
        discard_label="price",
        editor_field="prices",
        original_key="price",
        new_key="newPrice",
        card_check="contains",
        edit_data=(
            ("price", "US$17.24/mo"),
            ("strikethroughPrice", "US$34.49/mo"),
            ("newPrice", "US$17.24/moper license"),
            ("newStrikethroughPrice", "US$34.49/moper license"),
        ),
        save_data=(
            ("price", "US$17.24/mo"),
            ("strikethroughPrice", "US$34.49/mo"),
            ("newPrice", "US$17.24/moper license"),
        ),
    ),
    EditableField(
        element="cta",
        edit_label="cta-label",
        save_label="cta-label",
        discard_label="cta-label",
        editor_field="footer",
        original_key="ctaText",
        new_key="newCtaText",
        card_check="contains",
        edit_data=(
            ("osi", "A1xn6EL4pK93bWjM8flffQpfEL-bnvtoQKQAvkx574M"),
            ("ctaText", "Buy now"),
            ("newCtaText", "Buy now 2"),
        ),
        save_data=(("ctaText", "Buy now"), ("newCtaText", "Buy now 2")),
    ),
)


@dataclass(frozen=True, slots=True)
class FeaturePlan:
    tcid: int
    test_type: str
    slug: str
    element: str
    data: tuple[tuple[str, str], ...] = ()
    interaction: InteractionSpec | None = None
    editable: EditableField | None = None
    css_scope: str | None = None
    expected_text: str | None = None
    expected_value: str | None = None
    expected_attribute: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class FeatureSet:
    test_type: str
    card_id: str
    path: str
    browser_params: str
    features: tuple[FeaturePlan, ...] = field(default_factory=tuple)


def require_test_type(config: CardConfiguration, test_type: str) -> str:
    if test_type not in TEST_TYPES:
        raise GenerationError(f"Unknown test type '{test_type}'.")
    if test_type not in config.test_types:
        raise GenerationError(
            f"Test type '{test_type}' is not declared in testTypes ({', '.join(config.test_types)})."
        )
    return test_type


def build_css_table(config: CardConfiguration) -> dict[str, dict[str, str]]:
    """CSS expectations keyed by scope: configured scopes first, then per-element ones."""
    table: dict[str, dict[str, str]] = {}
    card_scope = filter_meaningful_styles(config.css_properties.get("card") or {})
    if card_scope:
        table["card"] = card_scope
    for scope, properties in config.css_properties.items():
        if scope == "card" or scope in config.elements:
            continue
        filtered = filter_meaningful_styles(properties)
        if filtered:
            table[scope] = filtered
    for name, element in config.elements.items():
        merged = dict(config.css_properties.get(name) or {})
        merged.update(element.css_properties)
        filtered = filter_meaningful_styles(merged)
        if filtered:
            table[name] = filtered
    return table


def plan_features(config: CardConfiguration, test_type: str) -> FeatureSet:
    require_test_type(config, test_type)
    default_id = DEFAULT_SAVE_CARD_ID if test_type == "save" else DEFAULT_CARD_ID

    if test_type == "css":
        features = _plan_css(config)
    elif test_type in EDITOR_TEST_TYPES:
        features = _plan_editor(config, test_type)
    else:
        features = _plan_interactions(config, test_type)

    if not features:
        raise GenerationError(f"Configuration has nothing to test for test type '{test_type}'.")
    return FeatureSet(
        test_type=test_type,
        card_id=config.card_id or default_id,
        path=config.metadata.path,
        browser_params=config.metadata.browser_params,
        features=tuple(features),
    )


def _plan_css(config: CardConfiguration) -> list[FeaturePlan]:
    table = build_css_table(config)
    features = [FeaturePlan(0, "css", "css-card", "card", css_scope="card" if "card" in table else None)]
    for name, element in config.elements.items():
        scope = name if name in table else None
        if scope is None and not (element.expected_text or element.expected_value or element.expected_attribute):
            continue
        features.append(
            FeaturePlan(
                len(features),
                "css",
                f"css-{name}",
                name,
                css_scope=scope,
                expected_text=element.expected_text,
                expected_value=element.expected_value,
                expected_attribute=tuple(element.expected_attribute.items()),
            )
        )
    return features


def _plan_editor(config: CardConfiguration, test_type: str) -> list[FeaturePlan]:
    features: list[FeaturePlan] = []
    for editable in EDITABLE_FIELDS:
        element = config.elements.get(editable.element)
        if element is None:
            continue
        data = list(editable.data_for(test_type))
        if element.expected_text and editable.original_key:
            data = [
                (key, element.expected_text if key == editable.original_key else value) for key, value in data
            ]
        features.append(
            FeaturePlan(
                len(features),
                test_type,
                f"{test_type}-{editable.label_for(test_type)}",
                editable.element,
                data=tuple(data),
                editable=editable,
            )
        )
    return features


def _plan_interactions(config: CardConfiguration, test_type: str) -> list[FeaturePlan]:
    features: list[FeaturePlan] = []
    for name, element in config.elements.items():
        for interaction in element.interactions:
            data: list[tuple[str, str]] = []
            if interaction.value is not None:
                data.append(("value", interaction.value))
            features.append(
                FeaturePlan(
                    len(features),
                    test_type,
                    f"{interaction.type}-{name}",
                    name,
                    data=tuple(data),
                    interaction=interaction,
                )
            )
    return features


def feature_tags(config: CardConfiguration, test_type: str) -> str:
    base = f"@mas-studio @ccd @ccd-{config.card_type} @ccd-{config.card_type}-{test_type}"
    extra = [tag for tag in config.metadata.tags if tag not in base.split()]
    if test_type == "css" and "@ccd-css" not in extra:
        extra.insert(0, "@ccd-css")
    return " ".join([base, *extra])
