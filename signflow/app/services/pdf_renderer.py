"""
HTML → PDF rendering service.

Rendering is print emulation: the sanitized HTML fragment is placed in a
document shell (Jinja2 + StrictUndefined) whose print CSS encodes the
requested page setup as an ``@page`` rule, plus pagination rules that
keep rows, paragraphs, images, headings and tables from splitting across
a page boundary and keep headings with the content that follows them.

The shell is printed by headless Chromium driven through Playwright:

- content is loaded with ``wait_until="networkidle"``
- media is emulated as ``print``
- background graphics are printed
- ``prefer_css_page_size`` lets the shell's ``@page`` rule win over the
  engine defaults

RENDERING CONTRACT (ENFORCED):
- Input MUST already be sanitized. This module does not re-sanitize;
  unsanitized input can run script inside the rendering sandbox.
- Each call launches its own browser and closes it on every exit path.
- A hard timeout bounds loading; timeouts and engine crashes raise
  RenderError. A truncated or non-PDF result is never returned.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from signflow.app.config import Settings
from signflow.app.errors import RenderError
from signflow.app.schemas.document import PdfGenerationOptions

logger = logging.getLogger(__name__)

TEMPLATE_ROOT = Path(__file__).resolve().parent.parent / "templates"
DOCUMENT_TEMPLATE = "document.html.jinja"

PDF_MAGIC = b"%PDF-"


def _mm(value: float) -> str:
    return f"{value:g}mm"


class PdfRenderer:
    """
    Renders sanitized HTML fragments to PDF bytes.

    ``playwright_factory`` must return a context manager yielding a
    Playwright instance; it defaults to ``sync_playwright`` and exists so
    the engine can be substituted.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        playwright_factory: Optional[Callable] = None,
        template_root: Path = TEMPLATE_ROOT,
    ) -> None:
        self.settings = settings
        self._playwright_factory = playwright_factory or sync_playwright
        self._env = Environment(
            loader=FileSystemLoader(template_root),
            undefined=StrictUndefined,
            autoescape=False,
        )

    # ------------------------------------------------------------------
    # Document shell
    # ------------------------------------------------------------------

    def build_document(
        self,
        html: str,
        options: Optional[PdfGenerationOptions] = None,
    ) -> str:
        """Wrap ``html`` in the print shell for ``options``."""
        options = options or PdfGenerationOptions()
        margins: Dict[str, str] = {
            "top": _mm(options.margins.top),
            "right": _mm(options.margins.right),
            "bottom": _mm(options.margins.bottom),
            "left": _mm(options.margins.left),
        }

        template = self._env.get_template(DOCUMENT_TEMPLATE)
        return template.render(
            content=html,
            page_size=options.format.value,
            orientation=options.orientation.value,
            margins=margins,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(
        self,
        html: str,
        options: Optional[PdfGenerationOptions] = None,
    ) -> bytes:
        """
        Render a sanitized HTML fragment to a PDF.

        Raises:
            RenderError:
                On timeout, engine failure, or output lacking the
                ``%PDF-`` signature.
        """
        options = options or PdfGenerationOptions()
        document = self.build_document(html, options)
        timeout_ms = self.settings.render_timeout_seconds * 1000

        try:
            with self._playwright_factory() as playwright:
                browser = playwright.chromium.launch(
                    headless=True,
                    timeout=timeout_ms,
                )
                try:
                    context = browser.new_context()
                    context.set_default_timeout(timeout_ms)
                    page = context.new_page()

                    page.set_content(
                        document,
                        wait_until="networkidle",
                        timeout=timeout_ms,
                    )
                    page.emulate_media(media="print")

                    pdf_bytes = page.pdf(
                        format=options.format.value,
                        landscape=options.landscape,
                        print_background=True,
                        prefer_css_page_size=True,
                        margin={
                            "top": _mm(options.margins.top),
                            "right": _mm(options.margins.right),
                            "bottom": _mm(options.margins.bottom),
                            "left": _mm(options.margins.left),
                        },
                    )
                finally:
                    browser.close()

        except PlaywrightTimeoutError as exc:
            logger.error(
                "pdf_render_timeout",
                extra={"timeout_seconds": self.settings.render_timeout_seconds},
            )
            raise RenderError(
                f"Rendering exceeded {self.settings.render_timeout_seconds}s",
                timed_out=True,
            ) from exc

        except PlaywrightError as exc:
            logger.exception("pdf_render_engine_failure")
            raise RenderError(f"Render engine failure: {exc}") from exc

        if not pdf_bytes or not pdf_bytes.startswith(PDF_MAGIC):
            raise RenderError("Render engine returned a non-PDF payload")

        logger.info(
            "pdf_rendered",
            extra={
                "format": options.format.value,
                "orientation": options.orientation.value,
                "size_bytes": len(pdf_bytes),
            },
        )

        return pdf_bytes
