from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import re
import time
from typing import Callable

from .settings import Settings

DEFAULT_SURFACE = "acom"
CACHE_TTL_SECONDS = 60.0

BUILTIN_VARIANTS: dict[str, str] = {
    "suggested": "ccd",
    "slice": "ccd",
    "ccd-action": "ccd",
    "catalog": "acom",
    "plans": "acom",
    "plans-students": "acom",
    "plans-education": "acom",
    "special-offers": "acom",
    "mini": "acom",
    "fries": "commerce",
    "promoted-plans": "adobe-home",
    "try-buy-widget": "adobe-home",
}

# Checked in order; the first matching rule decides the surface.
SURFACE_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("ccd", re.compile(r"^ccd-")),
    ("adobe-home", re.compile(r"^ah-")),
    ("commerce", re.compile(r"fries")),
    ("express", re.compile(r"express")),
)

_VARIANT_FILE_PATTERN = re.compile(r"^[a-z0-9-]+$")


@dataclass(frozen=True, slots=True)
class VariantInfo:
    name: str
    surface: str
    source: str


class VariantRegistry:
    """Runtime lookup table from card variant to the surface its artifacts are filed under."""

    def __init__(self, settings: Settings | None = None, clock: Callable[[], float] | None = None) -> None:
        self.settings = settings
        self.logger = logging.getLogger("cardtestgen.variants")
        self._clock = clock or time.monotonic
        self._variants: dict[str, VariantInfo] = {}
        self._last_refresh: float | None = None
        self._load_builtins()
        if settings is not None:
            self.refresh(force=True)

    def _load_builtins(self) -> None:
        for name, surface in BUILTIN_VARIANTS.items():
            self._variants[name] = VariantInfo(name, surface, "builtin")

    def register(self, name: str, surface: str | None = None, source: str = "runtime") -> VariantInfo:
        normalized = name.strip()
        if not normalized:
            raise ValueError("Variant name is required.")
        info = VariantInfo(normalized, surface or detect_surface(normalized), source)
        self._variants[normalized] = info
        return info

    def unregister(self, name: str) -> bool:
        return self._variants.pop(name.strip(), None) is not None

    def get(self, name: str) -> VariantInfo | None:
        return self._variants.get(name.strip())

    def is_known(self, name: str) -> bool:
        return name.strip() in self._variants

    def surface_for(self, card_type: str) -> str:
        if self.settings is not None:
            self.refresh()
        info = self.get(card_type)
        if info:
            return info.surface
        return detect_surface(card_type)

    def ensure(self, card_type: str) -> VariantInfo:
        info = self.get(card_type)
        if info:
            return info
        info = self.register(card_type, source="dynamic")
        self.logger.warning("Registered unknown variant '%s' on surface '%s'", card_type, info.surface)
        return info

    def refresh(self, force: bool = False) -> int:
        now = self._clock()
        if not force and self._last_refresh is not None and now - self._last_refresh < CACHE_TTL_SECONDS:
            return 0

        dynamic = {name: info for name, info in self._variants.items() if info.source in {"runtime", "dynamic"}}
        self._variants = {}
        self._load_builtins()

        loaded = 0
        if self.settings is not None:
            for name in discover_variant_names(self.settings.resolve_project_root()):
                if name not in self._variants:
                    self._variants[name] = VariantInfo(name, detect_surface(name), "discovered")
                    loaded += 1
            for name, surface in self.settings.variants.items():
                self._variants[name] = VariantInfo(name, surface, "config")
                loaded += 1
        for name, info in dynamic.items():
            self._variants.setdefault(name, info)

        self._last_refresh = now
        self.logger.info("Variant registry refreshed: %s variants (%s loaded)", len(self._variants), loaded)
        return loaded


def detect_surface(card_type: str) -> str:
    normalized = card_type.strip().lower()
    if normalized in BUILTIN_VARIANTS:
        return BUILTIN_VARIANTS[normalized]
    for surface, pattern in SURFACE_RULES:
        if pattern.search(normalized):
            return surface
    return DEFAULT_SURFACE


def discover_variant_names(project_root: Path) -> list[str]:
    variants_dir = project_root / "web-components" / "src" / "variants"
    if not variants_dir.is_dir():
        return []
    names: list[str] = []
    for source_file in sorted(variants_dir.glob("*.js")):
        stem = source_file.stem
        if stem.startswith("variant") or not _VARIANT_FILE_PATTERN.fullmatch(stem):
            continue
        names.append(stem)
    return names
