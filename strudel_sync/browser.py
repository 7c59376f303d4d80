import logging
from contextlib import asynccontextmanager

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .errors import BridgeError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_page(config):
    """Launch Chromium on the REPL and yield the page once the editor is up."""
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=config.headless)
        try:
            page = await browser.new_page()
            logger.info(f"Loading {config.url}")
            try:
                await page.goto(config.url, wait_until="networkidle")
                await page.wait_for_selector(
                    config.editor_selector, timeout=config.ready_timeout * 1000
                )
            except PlaywrightError as e:
                raise BridgeError(f"could not load the editor at {config.url}: {e}") from e
            await page.wait_for_timeout(config.ready_delay * 1000)
            logger.info("Editor ready")
            yield page
        finally:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser already gone: {e}")
