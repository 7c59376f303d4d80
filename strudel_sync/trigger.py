import logging

from playwright.async_api import Error as PlaywrightError

from .config import BridgeConfig
from .errors import TriggerNotFound
from .models import InjectionStatus, TriggerOutcome

logger = logging.getLogger(__name__)

# First pass: markup that names the action outright.
EVALUATE_SELECTORS = (
    'button[title*="evaluate" i]',
    'button[aria-label*="evaluate" i]',
    '[role="button"][title*="evaluate" i]',
    '[title*="ctrl+enter" i]',
    '[aria-label*="ctrl+enter" i]',
    'button:has(svg[class*="play" i])',
    'button:has([class*="play-icon" i])',
)

# Second pass: any clickable control whose label hints at it.
CLICKABLE_SELECTOR = 'button, [role="button"], input[type="button"], input[type="submit"]'
LABEL_KEYWORDS = ("play", "eval", "ctrl")
# the REPL's play button turns into stop/pause while running
EXCLUDED_KEYWORDS = ("stop", "pause")

LABEL_JS = """(el) => [
  el.innerText || el.textContent || "",
  el.getAttribute("title") || "",
  el.getAttribute("aria-label") || "",
  el.getAttribute("value") || "",
].join(" ").toLowerCase()"""


async def is_clickable(el):
    return await el.is_visible() and await el.is_enabled()


async def find_control(page):
    """Return ``(element, description)`` of the first usable evaluate control."""
    for selector in EVALUATE_SELECTORS:
        el = await page.query_selector(selector)
        if el is not None and await is_clickable(el):
            return el, f"control:{selector}"
        logger.debug(f"No evaluate control for {selector}")

    for el in await page.query_selector_all(CLICKABLE_SELECTOR):
        label = await el.evaluate(LABEL_JS)
        if any(word in label for word in EXCLUDED_KEYWORDS):
            continue
        if any(word in label for word in LABEL_KEYWORDS) and await is_clickable(el):
            return el, f"scan:{' '.join(label.split())[:40]}"

    raise TriggerNotFound("no evaluate control on the page")


async def press_shortcut(page, config):
    await page.click(config.content_selector)
    await page.keyboard.press(config.evaluate_shortcut)


async def trigger_evaluation(page, injection=None, config=None):
    config = config or BridgeConfig()

    if injection is not None and not injection.ok:
        return TriggerOutcome("skipped", False, "injection failed")

    # after a DOM-level edit the shortcut runs too, so the editor's own
    # key handler evaluates what is actually on screen
    degraded = injection is not None and injection.status is InjectionStatus.DOM_FALLBACK

    clicked = None
    try:
        el, method = await find_control(page)
        await el.click()
        clicked = method
        logger.debug(f"Evaluated via {method}")
    except TriggerNotFound as e:
        logger.debug(f"{e}; using {config.evaluate_shortcut}")
    except PlaywrightError as e:
        logger.info(f"Evaluate control failed, using {config.evaluate_shortcut}: {e}")

    if clicked and not degraded:
        return TriggerOutcome(clicked, True)

    keyboard = f"keyboard:{config.evaluate_shortcut}"
    try:
        await press_shortcut(page, config)
    except PlaywrightError as e:
        logger.info(f"Keyboard evaluation failed: {e}")
        if clicked:
            return TriggerOutcome(clicked, True, str(e))
        return TriggerOutcome("none", False, str(e))
    if clicked:
        return TriggerOutcome(f"{clicked}+{keyboard}", True)
    return TriggerOutcome(keyboard, True)
