from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Sequence

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .errors import AuthenticationRequiredError, CardNotFoundError, ExtractionTimeoutError
from .models import (
    DEFAULT_BROWSER_PARAMS,
    DEFAULT_PATH,
    CardConfiguration,
    CardMetadata,
    ElementSpec,
    ExtractedElement,
    ExtractionResult,
)
from .runtime_checks import (
    _is_missing_browser_error,
    is_authentication_url,
    is_closed_target_error,
    normalize_space,
)
from .selector_rules import (
    CARD_TAG,
    ELEMENT_CANDIDATE_SELECTORS,
    MEANINGFUL_CSS_PROPERTIES,
    candidate_selectors_for,
    card_locator_strategies,
    detect_card_type,
    filter_meaningful_styles,
)
from .validation import validate_branch, validate_card_id

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

    from .settings import Settings

LOCAL_BASE_URL = "http://localhost:3000"
AUTH_RETURN_URL_PATTERN = "**/studio.html**"

COMPUTED_STYLE_JS = """
(el, properties) => {
  const styles = window.getComputedStyle(el);
  const result = {};
  for (const prop of properties) {
    result[prop] = styles.getPropertyValue(prop);
  }
  return result;
}
"""

CARD_SIGNALS_JS = """
(card) => ({
  className: String(card.className || ''),
  variant: card.getAttribute('variant') || '',
  hasPrice: !!card.querySelector('[slot="price"]'),
  hasIcon: !!card.querySelector('merch-icon'),
  hasMedia: !!card.querySelector('[slot="media"]'),
  slots: Array.from(card.querySelectorAll('[slot]')).map((node) => node.getAttribute('slot')),
})
"""

ELEMENT_DETAILS_JS = """
(el) => ({
  slot: el.getAttribute('slot'),
  tagName: el.tagName.toLowerCase(),
  textContent: (el.textContent || '').trim(),
})
"""

CLOSEST_CARD_JS = "(el) => el.closest('merch-card')"
CONTAINS_ID_JS = "(el, id) => el.id === id || el.outerHTML.includes(id)"


@dataclass(frozen=True, slots=True)
class ExtractionTimeouts:
    page_load_ms: int = 30000
    card_visible_ms: int = 20000
    auth_redirect_ms: int = 60000
    overall_ms: int = 180000


def build_base_url(branch_or_url: str, milolibs: str | None = None) -> str:
    value = branch_or_url.strip()
    if value.startswith("http://") or value.startswith("https://"):
        return value.rstrip("/")
    if value == "local" or "localhost" in value or milolibs == "local":
        return LOCAL_BASE_URL
    return f"https://{validate_branch(value)}--mas--adobecom.hlx.page"


def build_card_url(
    card_id: str,
    branch_or_url: str,
    path: str = DEFAULT_PATH,
    browser_params: str = DEFAULT_BROWSER_PARAMS,
    milolibs: str | None = None,
) -> str:
    base_url = build_base_url(branch_or_url, milolibs)
    route = path or DEFAULT_PATH
    if milolibs and milolibs != "local" and "milolibs=" not in route:
        separator = "&" if "?" in route else "?"
        route = f"{route}{separator}milolibs={milolibs}"
    return f"{base_url}{route}{browser_params or ''}{card_id}"


SessionFactory = Callable[[bool], Any]


class LiveCardExtractor:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        timeouts: ExtractionTimeouts | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.settings = settings
        self.timeouts = timeouts or ExtractionTimeouts()
        self.logger = logging.getLogger("cardtestgen.extractor")
        self._session_factory = session_factory or self.browser_session

    @asynccontextmanager
    async def browser_session(self, headless: bool = True) -> AsyncIterator[Page]:
        from playwright.async_api import async_playwright

        async with async_playwright() as playwright:
            try:
                browser = await playwright.chromium.launch(headless=headless)
            except Exception as exc:
                if _is_missing_browser_error(exc):
                    raise RuntimeError("Chromium not installed. Run: python -m playwright install chromium") from exc
                raise
            self.logger.info("Browser session opened (headless=%s)", headless)
            try:
                context = await browser.new_context(viewport={"width": 1440, "height": 900})
                page = await context.new_page()
                yield page
            finally:
                try:
                    await browser.close()
                except Exception as exc:
                    if not is_closed_target_error(exc):
                        raise
                    self.logger.debug("Browser already closed: %s", exc)
                self.logger.info("Browser session closed")

    async def extract(
        self,
        card_id: str,
        branch_or_url: str | None = None,
        *,
        path: str = DEFAULT_PATH,
        browser_params: str = DEFAULT_BROWSER_PARAMS,
        milolibs: str | None = None,
        card_type: str | None = None,
        headless: bool = True,
    ) -> ExtractionResult:
        card_id = validate_card_id(card_id)
        target = branch_or_url or self._default_target()
        url = build_card_url(card_id, target, path, browser_params, milolibs)
        async with self._session_factory(headless) as page:
            try:
                return await asyncio.wait_for(
                    self.extract_from_page(page, card_id, url, card_type=card_type),
                    self.timeouts.overall_ms / 1000,
                )
            except asyncio.TimeoutError as exc:
                raise ExtractionTimeoutError(
                    f"Extraction of card {card_id} did not finish within {self.timeouts.overall_ms}ms."
                ) from exc

    def _default_target(self) -> str:
        if self.settings is None:
            return "main"
        return self.settings.base_url_override or self.settings.default_branch

    async def extract_from_page(
        self,
        page: Page,
        card_id: str,
        url: str,
        *,
        card_type: str | None = None,
    ) -> ExtractionResult:
        warnings: list[str] = []
        self.logger.info("Navigating to %s", url)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.timeouts.page_load_ms)
        except PlaywrightTimeoutError:
            warnings.append(f"Page load exceeded {self.timeouts.page_load_ms}ms; continuing with partial page.")
            self.logger.warning("Page load timed out for %s", url)

        auth_pending = await self._wait_for_authentication(page, warnings)

        try:
            await page.wait_for_selector(CARD_TAG, timeout=self.timeouts.card_visible_ms)
        except PlaywrightTimeoutError:
            warnings.append(f"No {CARD_TAG} became visible within {self.timeouts.card_visible_ms}ms.")
            self.logger.warning("Card wait timed out for %s", card_id)

        card = await locate_card(page, card_id)
        if card is None:
            if auth_pending:
                raise AuthenticationRequiredError(
                    f"Authentication is required before card {card_id} can be located."
                )
            raise CardNotFoundError(card_id, "no locator strategy matched")
        self.logger.info("Located card %s", card_id)

        signals = await card.evaluate(CARD_SIGNALS_JS)
        detected_type = card_type or detect_card_type(
            str(signals.get("className") or ""),
            str(signals.get("variant") or ""),
            bool(signals.get("hasPrice")),
            bool(signals.get("hasIcon")),
            bool(signals.get("hasMedia")),
        )

        card_css = filter_meaningful_styles(await read_computed_styles(card))
        elements: dict[str, ExtractedElement] = {}
        for element_name, candidates in ELEMENT_CANDIDATE_SELECTORS.items():
            extracted = await probe_element(card, candidates)
            if extracted is None:
                self.logger.warning("No candidate matched for %s", element_name)
                continue
            if not extracted.css:
                continue
            elements[element_name] = extracted

        slots = tuple(dict.fromkeys(str(slot) for slot in signals.get("slots") or () if slot))
        return ExtractionResult(
            card_type=detected_type,
            card_id=card_id,
            card=card_css,
            elements=elements,
            slots=slots,
            url=url,
            warnings=warnings,
        )

    async def _wait_for_authentication(self, page: Page, warnings: list[str]) -> bool:
        if not is_authentication_url(page.url):
            return False
        self.logger.info("Authentication redirect detected, waiting for return to studio")
        try:
            await page.wait_for_url(AUTH_RETURN_URL_PATTERN, timeout=self.timeouts.auth_redirect_ms)
        except PlaywrightTimeoutError:
            message = f"Authentication redirect did not return within {self.timeouts.auth_redirect_ms}ms."
            warnings.append(message)
            self.logger.warning(message)
            return True
        return False


async def locate_card(page: Page, card_id: str) -> ElementHandle | None:
    for strategy in card_locator_strategies(card_id):
        handle = await page.query_selector(strategy.selector)
        if handle is None:
            continue
        if not strategy.resolve_closest_card:
            return handle
        closest = (await handle.evaluate_handle(CLOSEST_CARD_JS)).as_element()
        if closest is not None:
            return closest

    for handle in await page.query_selector_all(CARD_TAG):
        if await handle.evaluate(CONTAINS_ID_JS, card_id):
            return handle
    return None


async def read_computed_styles(element: ElementHandle) -> dict[str, Any]:
    styles = await element.evaluate(COMPUTED_STYLE_JS, list(MEANINGFUL_CSS_PROPERTIES))
    return dict(styles or {})


async def probe_element(card: ElementHandle, candidates: Sequence[str]) -> ExtractedElement | None:
    for selector in candidates:
        node = await card.query_selector(selector)
        if node is None:
            continue
        css = filter_meaningful_styles(await read_computed_styles(node))
        details = await node.evaluate(ELEMENT_DETAILS_JS)
        return ExtractedElement(
            selector=selector,
            css=css,
            slot=details.get("slot") or None,
            tag_name=str(details.get("tagName") or ""),
            text_content=normalize_space(details.get("textContent")),
        )
    return None


def configuration_from_extraction(
    result: ExtractionResult,
    test_types: Sequence[str] = ("css",),
    metadata: CardMetadata | None = None,
) -> CardConfiguration:
    elements: dict[str, ElementSpec] = {}
    for name, extracted in result.elements.items():
        candidates = candidate_selectors_for(name)
        fallbacks: tuple[str, ...] = ()
        if extracted.selector in candidates:
            fallbacks = candidates[candidates.index(extracted.selector) + 1 :]
        elements[name] = ElementSpec(
            selector=extracted.selector,
            fallback_selectors=fallbacks,
            alternative_selectors=extracted.alternative_selectors,
            expected_text=extracted.text_content or None,
            css_properties=dict(extracted.css),
            confidence=extracted.confidence,
        )
    css_properties = {"card": dict(result.card)} if result.card else {}
    title = " ".join(word.capitalize() for word in result.card_type.split("-"))
    return CardConfiguration(
        card_type=result.card_type,
        card_id=result.card_id,
        test_suite=f"M@S Studio CCD {title}",
        elements=elements,
        test_types=tuple(test_types),
        css_properties=css_properties,
        metadata=metadata or CardMetadata(),
    )
