import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import BridgeConfig
from .errors import InjectionFailure, InjectionTimeout
from .models import InjectionOutcome, InjectionStatus

logger = logging.getLogger(__name__)

# One change spanning the whole document: CodeMirror records it as a
# single transaction, so undo and incremental highlighting stay coherent.
DISPATCH_JS = """(view, text) => {
  view.dispatch({changes: {from: 0, to: view.state.doc.length, insert: text}});
  return view.state.doc.length;
}"""

DOM_REPLACE_JS = """(el, text) => {
  el.focus();
  el.textContent = text;
  el.dispatchEvent(new InputEvent("input", {bubbles: true, inputType: "insertText", data: text}));
  return true;
}"""


async def wait_editable(page, config):
    try:
        node = await page.wait_for_selector(
            config.editable_selector,
            state="visible",
            timeout=config.editable_timeout * 1000,
        )
    except PlaywrightTimeoutError as e:
        raise InjectionTimeout(
            f"{config.editable_selector} not editable after {config.editable_timeout:g}s"
        ) from e
    except PlaywrightError as e:
        raise InjectionFailure(f"waiting for {config.editable_selector}: {e}") from e
    if node is None:
        raise InjectionFailure(f"{config.editable_selector} disappeared")
    return node


async def replace_dom_text(node, content):
    try:
        await node.focus()
        await node.evaluate(DOM_REPLACE_JS, content)
    except PlaywrightError as e:
        raise InjectionFailure(f"DOM fallback failed: {e}") from e


async def inject(page, handle, content, config=None):
    """Replace the whole editor document with ``content``.

    With a valid handle the change goes through the view's own
    ``dispatch``. Without one (or if that dispatch throws) the
    content-editable node is overwritten directly and an ``input`` event
    is fired for whatever listeners the page has; that path is reported
    as DOM_FALLBACK because the editor's internal state may lag behind.
    """
    config = config or BridgeConfig()

    try:
        node = await wait_editable(page, config)
    except (InjectionTimeout, InjectionFailure) as e:
        logger.info(f"Injection aborted: {e}")
        method = "timeout" if isinstance(e, InjectionTimeout) else "wait"
        return InjectionOutcome(InjectionStatus.FAILED, method, str(e))

    outcome = None
    if handle is not None and handle.valid:
        try:
            await handle.js.evaluate(DISPATCH_JS, content)
        except PlaywrightError as e:
            logger.info(f"Dispatch via {handle.strategy} failed, falling back to DOM: {e}")
        else:
            outcome = InjectionOutcome(
                InjectionStatus.TRANSACTIONAL, f"dispatch:{handle.strategy}"
            )

    if outcome is None:
        try:
            await replace_dom_text(node, content)
        except InjectionFailure as e:
            logger.info(str(e))
            return InjectionOutcome(InjectionStatus.FAILED, "dom", str(e))
        outcome = InjectionOutcome(InjectionStatus.DOM_FALLBACK, "dom")

    # highlighting and the REPL's parse run asynchronously after an edit
    try:
        await page.wait_for_timeout(config.settle_delay * 1000)
    except PlaywrightError as e:
        logger.info(f"Settle delay interrupted after {outcome.method} injection: {e}")
    return outcome
