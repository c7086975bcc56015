"""
Document Renderer - HTML to PDF through a shared headless Chromium.

Playwright and the browser are started lazily on first use and kept for the
lifetime of the process; each render gets its own page. Start-up failures
surface as RendererUnavailableError (HTTP 503), failures while rendering a
specific document as DocumentRenderError.
"""

import asyncio
import time
from typing import Any

from playwright.async_api import Browser, Playwright, async_playwright
from structlog import get_logger

from namegen.exceptions import DocumentRenderError, RendererUnavailableError
from namegen.models.domain import PDFOptions
from namegen.observability.metrics import metrics

logger = get_logger(__name__)

# Chromium flags for containerised servers
BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
)

LAUNCH_TIMEOUT_MS = 60_000
CONTENT_TIMEOUT_MS = 30_000


class DocumentRenderer:
    """Playwright-backed PDF renderer."""

    def __init__(self, headless: bool = True) -> None:
        self.headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._start_lock = asyncio.Lock()
        self._start_error: str | None = None

    async def start(self) -> Browser:
        """
        Launch Playwright and Chromium once.

        Raises:
            RendererUnavailableError: Driver or browser could not be started
        """
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        async with self._start_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            try:
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=list(BROWSER_ARGS),
                    timeout=LAUNCH_TIMEOUT_MS,
                )
            except Exception as exc:
                self._start_error = str(exc)
                logger.error("pdf_renderer_start_failed", error=str(exc))
                await self._stop_driver()
                raise RendererUnavailableError(str(exc)) from exc

            self._start_error = None
            logger.info("pdf_renderer_started", headless=self.headless)
            return self._browser

    async def is_available(self) -> bool:
        """True if the browser is running or can be started now."""
        try:
            await self.start()
        except RendererUnavailableError:
            metrics.record_pdf_render("unavailable")
            return False
        return True

    async def render_document(self, html: str, options: PDFOptions | None = None) -> bytes:
        """
        Render HTML to a PDF.

        Raises:
            RendererUnavailableError: Browser could not be started
            DocumentRenderError: Loading the content or printing failed
        """
        options = options or PDFOptions()
        browser = await self.start()

        start = time.perf_counter()
        page = None
        try:
            page = await browser.new_page()
            await page.set_content(html, wait_until="networkidle", timeout=CONTENT_TIMEOUT_MS)
            pdf_bytes = await page.pdf(
                format=options.format,
                print_background=True,
                margin=self._margin(options),
            )
        except Exception as exc:
            metrics.record_pdf_render("failed", time.perf_counter() - start)
            logger.error("pdf_render_failed", error=str(exc), error_class=type(exc).__name__)
            raise DocumentRenderError(str(exc)) from exc
        finally:
            if page is not None:
                await self._close_page(page)

        duration = time.perf_counter() - start
        metrics.record_pdf_render("success", duration)
        logger.info(
            "pdf_rendered",
            size_bytes=len(pdf_bytes),
            duration_seconds=round(duration, 3),
            page_format=options.format,
        )
        return pdf_bytes

    async def close(self) -> None:
        """Close the browser and the Playwright driver."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                # Driver may already be gone at process shutdown
                logger.warning("pdf_renderer_browser_close_failed", error=str(exc))
            finally:
                self._browser = None
        await self._stop_driver()

    def status(self) -> dict[str, Any]:
        """Snapshot for the service info endpoint."""
        return {
            "running": self._browser is not None and self._browser.is_connected(),
            "last_start_error": self._start_error,
        }

    @staticmethod
    def _margin(options: PDFOptions) -> dict[str, str]:
        return {
            "top": options.margin.top,
            "right": options.margin.right,
            "bottom": options.margin.bottom,
            "left": options.margin.left,
        }

    @staticmethod
    async def _close_page(page: Any) -> None:
        try:
            await page.close()
        except Exception as exc:
            logger.warning("pdf_renderer_page_close_failed", error=str(exc))

    async def _stop_driver(self) -> None:
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                logger.warning("pdf_renderer_driver_stop_failed", error=str(exc))
            finally:
                self._playwright = None


def create_renderer() -> DocumentRenderer:
    """Create a renderer; the browser starts on first use."""
    return DocumentRenderer(headless=True)


async def shutdown_renderer(renderer: DocumentRenderer) -> None:
    """Tear down a renderer created by create_renderer."""
    await renderer.close()
    logger.info("pdf_renderer_stopped")
