import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from app.core.config import settings

logger = logging.getLogger(__name__)

PDF_MARGIN = {"top": "0.5in", "right": "0.5in", "bottom": "0.5in", "left": "0.5in"}


class PdfRenderError(RuntimeError):
    """Raised when headless Chromium cannot produce the PDF."""


async def render_pdf(html: str) -> bytes:
    """Print a complete HTML document to Letter-size PDF bytes with headless Chromium."""
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(
                args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]
            )
            try:
                page = await browser.new_page()
                await page.set_content(
                    html, wait_until="networkidle", timeout=settings.PDF_RENDER_TIMEOUT_MS
                )
                await page.emulate_media(media="print")
                return await page.pdf(
                    format="Letter",
                    print_background=True,
                    margin=PDF_MARGIN,
                )
            finally:
                await browser.close()
    except PlaywrightError as e:
        logger.error(f"PDF generation failed: {e}", exc_info=True)
        raise PdfRenderError(str(e)) from e
