"""
Tests for the Playwright document renderer.

async_playwright is patched, so no browser is launched.
"""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from namegen.exceptions import DocumentRenderError, RendererUnavailableError
from namegen.models.domain import PDFMargins, PDFOptions
from namegen.services.pdf_renderer import (
    BROWSER_ARGS,
    DocumentRenderer,
    create_renderer,
    shutdown_renderer,
)


class FakeChromium:
    """Playwright driver, browser and page mocks wired together."""

    def __init__(self) -> None:
        self.page = MagicMock()
        self.page.set_content = AsyncMock()
        self.page.pdf = AsyncMock(return_value=b"%PDF-1.7")
        self.page.close = AsyncMock()

        self.browser = MagicMock()
        self.browser.is_connected = MagicMock(return_value=True)
        self.browser.new_page = AsyncMock(return_value=self.page)
        self.browser.close = AsyncMock()

        self.driver = MagicMock()
        self.driver.chromium.launch = AsyncMock(return_value=self.browser)
        self.driver.stop = AsyncMock()

        self.entry = MagicMock()
        self.entry.start = AsyncMock(return_value=self.driver)


@pytest.fixture
def chromium() -> Iterator[FakeChromium]:
    fake = FakeChromium()
    with patch(
        "namegen.services.pdf_renderer.async_playwright", return_value=fake.entry
    ):
        yield fake


class TestStart:
    async def test_launches_once(self, chromium: FakeChromium):
        renderer = DocumentRenderer()

        await renderer.start()
        await renderer.start()

        chromium.driver.chromium.launch.assert_awaited_once()
        kwargs = chromium.driver.chromium.launch.await_args.kwargs
        assert kwargs["headless"] is True
        assert kwargs["args"] == list(BROWSER_ARGS)

    async def test_relaunches_after_disconnect(self, chromium: FakeChromium):
        renderer = DocumentRenderer()
        await renderer.start()
        chromium.browser.is_connected.return_value = False

        await renderer.start()

        assert chromium.driver.chromium.launch.await_count == 2

    async def test_start_failure_is_unavailable(self, chromium: FakeChromium):
        chromium.driver.chromium.launch.side_effect = Exception("Executable doesn't exist")
        renderer = DocumentRenderer()

        with pytest.raises(RendererUnavailableError):
            await renderer.start()

        assert await renderer.is_available() is False
        assert renderer.status() == {
            "running": False,
            "last_start_error": "Executable doesn't exist",
        }
        chromium.driver.stop.assert_awaited()

    async def test_available_when_started(self, chromium: FakeChromium):
        renderer = DocumentRenderer()

        assert await renderer.is_available() is True
        assert renderer.status()["running"] is True


class TestRenderDocument:
    async def test_renders_pdf_with_options(self, chromium: FakeChromium):
        renderer = DocumentRenderer()
        options = PDFOptions(format="Letter", margin=PDFMargins(top="1cm"))

        pdf = await renderer.render_document("<p>李明</p>", options)

        assert pdf == b"%PDF-1.7"
        chromium.page.set_content.assert_awaited_once()
        assert chromium.page.set_content.await_args.args[0] == "<p>李明</p>"
        chromium.page.pdf.assert_awaited_once_with(
            format="Letter",
            print_background=True,
            margin={"top": "1cm", "right": "0.5cm", "bottom": "0.5cm", "left": "0.5cm"},
        )
        chromium.page.close.assert_awaited_once()

    async def test_failure_closes_page(self, chromium: FakeChromium):
        chromium.page.pdf.side_effect = Exception("Target closed")
        renderer = DocumentRenderer()

        with pytest.raises(DocumentRenderError, match="Target closed"):
            await renderer.render_document("<p>x</p>")

        chromium.page.close.assert_awaited_once()

    async def test_page_close_failure_does_not_mask_result(self, chromium: FakeChromium):
        chromium.page.close.side_effect = Exception("already closed")

        assert await DocumentRenderer().render_document("<p>x</p>") == b"%PDF-1.7"


class TestShutdown:
    async def test_close_stops_browser_and_driver(self, chromium: FakeChromium):
        renderer = create_renderer()
        await renderer.start()

        await shutdown_renderer(renderer)

        chromium.browser.close.assert_awaited_once()
        chromium.driver.stop.assert_awaited_once()
        assert renderer.status()["running"] is False

    async def test_close_never_started(self):
        await DocumentRenderer().close()
