from __future__ import annotations

import json

from .models import DEFAULT_BROWSER_PARAMS, DEFAULT_PATH
from .live_extractor import build_card_url
from .selector_rules import (
    CARD_TAG,
    ELEMENT_CANDIDATE_SELECTORS,
    MEANINGFUL_CSS_PROPERTIES,
    NOISE_STYLE_VALUES,
)
from .validation import validate_card_id

_IN_PAGE_TEMPLATE = """() => {
  const cardId = __CARD_ID__;
  const selectorMap = __SELECTOR_MAP__;
  const properties = __PROPERTIES__;
  const noise = new Set(__NOISE__);

  const findCard = () => {
    let card = document.querySelector(`__CARD_TAG__[id="${cardId}"]`);
    if (!card) {
      const fragment = document.querySelector(`aem-fragment[fragment="${cardId}"]`);
      if (fragment) card = fragment.closest('__CARD_TAG__');
    }
    if (!card) {
      for (const candidate of document.querySelectorAll('__CARD_TAG__')) {
        if (candidate.id === cardId || candidate.outerHTML.includes(cardId)) {
          card = candidate;
          break;
        }
      }
    }
    return card;
  };

  const readStyles = (el) => {
    const styles = window.getComputedStyle(el);
    const result = {};
    for (const prop of properties) {
      const value = styles.getPropertyValue(prop);
      if (value && !noise.has(value)) result[prop] = value;
    }
    return result;
  };

  const alternatives = (el) => {
    const found = [];
    if (el.id) found.push({ type: 'id', value: `#${el.id}`, priority: 10 });
    const testId = el.getAttribute('data-testid');
    if (testId) found.push({ type: 'data-testid', value: `[data-testid="${testId}"]`, priority: 9 });
    const slot = el.getAttribute('slot');
    if (slot) found.push({ type: 'slot', value: `${el.tagName.toLowerCase()}[slot="${slot}"]`, priority: 8 });
    const label = el.getAttribute('aria-label');
    if (label) found.push({ type: 'aria-label', value: `[aria-label="${label}"]`, priority: 7 });
    const role = el.getAttribute('role');
    if (role) found.push({ type: 'role', value: `[role="${role}"]`, priority: 6 });
    const text = (el.textContent || '').trim();
    if (text && text.length < 50) found.push({ type: 'text', value: text, priority: 4, isTextContent: true });
    found.push({ type: 'tag', value: el.tagName.toLowerCase(), priority: 1 });
    return found;
  };

  const card = findCard();
  if (!card) return { error: `Card with ID ${cardId} not found` };

  const result = {
    cardType: card.getAttribute('variant') || 'unknown',
    cardId,
    elements: {},
    cssProperties: { card: readStyles(card) },
  };
  for (const [name, selectors] of Object.entries(selectorMap)) {
    for (const selector of selectors) {
      const el = card.querySelector(selector);
      if (!el) continue;
      const css = readStyles(el);
      if (Object.keys(css).length === 0) break;
      result.elements[name] = {
        primarySelector: selector,
        alternativeSelectors: alternatives(el),
        elementInfo: {
          tagName: el.tagName.toLowerCase(),
          textContent: (el.textContent || '').trim(),
          attributes: {
            id: el.id || null,
            class: typeof el.className === 'string' ? el.className : null,
            slot: el.getAttribute('slot'),
            role: el.getAttribute('role'),
            'aria-label': el.getAttribute('aria-label'),
            'data-testid': el.getAttribute('data-testid'),
          },
        },
        cssProperties: css,
      };
      break;
    }
  }
  return result;
}"""

_SCRIPT_TEMPLATE = '''"""Extract card __CARD_ID__ from a running studio page and print it as JSON."""

import asyncio
import json

from playwright.async_api import async_playwright

URL = __URL__
CARD_SELECTOR = __CARD_SELECTOR__
EXTRACTION_JS = __EXTRACTION_JS__


async def main() -> None:
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=__HEADLESS__)
        try:
            page = await browser.new_page()
            print("Navigating to:", URL)
            await page.goto(URL, wait_until="domcontentloaded")
            if "auth.services.adobe.com" in page.url:
                await page.wait_for_url("**/studio.html**", timeout=60000)
            await page.wait_for_selector(CARD_SELECTOR, timeout=__CARD_TIMEOUT__)
            result = await page.evaluate(EXTRACTION_JS)
            print(json.dumps(result, indent=2))
        finally:
            await browser.close()


if __name__ == "__main__":
    asyncio.run(main())
'''


def build_in_page_extraction_js(card_id: str) -> str:
    selector_map = {name: list(selectors) for name, selectors in ELEMENT_CANDIDATE_SELECTORS.items()}
    noise = sorted(value for value in NOISE_STYLE_VALUES if value)
    return (
        _IN_PAGE_TEMPLATE.replace("__CARD_ID__", json.dumps(card_id))
        .replace("__SELECTOR_MAP__", json.dumps(selector_map))
        .replace("__PROPERTIES__", json.dumps(list(MEANINGFUL_CSS_PROPERTIES)))
        .replace("__NOISE__", json.dumps(noise))
        .replace("__CARD_TAG__", CARD_TAG)
    )


def build_automated_extraction_script(
    card_id: str,
    branch_or_url: str = "main",
    *,
    path: str = DEFAULT_PATH,
    browser_params: str = DEFAULT_BROWSER_PARAMS,
    milolibs: str | None = None,
    headless: bool = False,
    card_timeout_ms: int = 10000,
) -> str:
    card_id = validate_card_id(card_id)
    url = build_card_url(card_id, branch_or_url, path, browser_params, milolibs)
    return (
        _SCRIPT_TEMPLATE.replace("__CARD_ID__", card_id)
        .replace("__URL__", repr(url))
        .replace("__CARD_SELECTOR__", repr(CARD_TAG))
        .replace("__EXTRACTION_JS__", repr(build_in_page_extraction_js(card_id)))
        .replace("__HEADLESS__", "True" if headless else "False")
        .replace("__CARD_TIMEOUT__", str(int(card_timeout_ms)))
    )
