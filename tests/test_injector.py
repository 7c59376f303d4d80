import pytest

from fakes import FakePage, page_error, view_handle
from strudel_sync.config import BridgeConfig
from strudel_sync.injector import inject
from strudel_sync.models import EditorHandle, InjectionStatus


def located(js, strategy="direct-property"):
    return EditorHandle(js, strategy, has_doc_length=True, can_dispatch=True)


@pytest.mark.asyncio
async def test_valid_handle_uses_transactional_dispatch():
    page = FakePage()
    js = view_handle()

    outcome = await inject(page, located(js), "sound('bd sd')")

    assert outcome.status is InjectionStatus.TRANSACTIONAL
    assert outcome.method == "dispatch:direct-property"
    assert js.dispatched == ["sound('bd sd')"]
    assert page.content.text is None
    assert page.waits == [100.0]


@pytest.mark.asyncio
async def test_missing_handle_degrades_to_dom():
    page = FakePage()

    outcome = await inject(page, None, "s('hh*8')")

    assert outcome.status is InjectionStatus.DOM_FALLBACK
    assert outcome.ok
    assert page.content.focused
    assert page.content.text == "s('hh*8')"


@pytest.mark.asyncio
async def test_invalid_handle_is_not_dispatched_to():
    page = FakePage()
    js = view_handle()
    handle = EditorHandle(js, "own-property", has_doc_length=True, can_dispatch=False)

    outcome = await inject(page, handle, "x")

    assert outcome.status is InjectionStatus.DOM_FALLBACK
    assert js.dispatched == []


@pytest.mark.asyncio
async def test_stale_handle_falls_back_to_dom():
    page = FakePage()
    js = view_handle(dispatch_error=page_error("view is destroyed"))

    outcome = await inject(page, located(js), "note('c e g')")

    assert outcome.status is InjectionStatus.DOM_FALLBACK
    assert page.content.text == "note('c e g')"


@pytest.mark.asyncio
async def test_editable_node_timeout_is_failed_outcome():
    page = FakePage(editable=False)
    config = BridgeConfig(editable_timeout=0.5)

    outcome = await inject(page, located(view_handle()), "x", config)

    assert outcome.status is InjectionStatus.FAILED
    assert outcome.method == "timeout"
    assert "not editable after 0.5s" in outcome.error
    assert page.waits == []


@pytest.mark.asyncio
async def test_empty_content_still_replaces_document():
    page = FakePage()
    js = view_handle()

    outcome = await inject(page, located(js), "")

    assert outcome.status is InjectionStatus.TRANSACTIONAL
    assert js.dispatched == [""]


@pytest.mark.asyncio
async def test_page_closing_during_settle_keeps_outcome():
    page = FakePage()
    page.wait_error = page_error("Target page, context or browser has been closed")
    js = view_handle()

    outcome = await inject(page, located(js), "b")

    assert outcome.status is InjectionStatus.TRANSACTIONAL
    assert js.dispatched == ["b"]


@pytest.mark.asyncio
async def test_page_closing_during_settle_after_dom_fallback():
    page = FakePage()
    page.wait_error = page_error()

    outcome = await inject(page, None, "b")

    assert outcome.status is InjectionStatus.DOM_FALLBACK
    assert page.content.text == "b"
