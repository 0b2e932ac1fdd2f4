"""
Coordinate-space conversion between drawing surfaces and PDF pages.

A canvas (or any raster drawing surface) has its origin at the top-left
corner and y grows downward. A PDF page has its origin at the bottom-left
corner of the media box and y grows upward. Explicit signature placements
must be expressed in PDF space before they reach the compositor; this
module is the single place that flip happens.
"""

from typing import NamedTuple


class PdfRect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def canvas_to_pdf_rect(
    x: float,
    y: float,
    width: float,
    height: float,
    *,
    page_height: float,
    scale: float = 1.0,
) -> PdfRect:
    """
    Convert a top-left-origin rectangle to a bottom-left-origin one.

    Args:
        x, y:
            Top-left corner of the rectangle on the drawing surface.
        width, height:
            Rectangle size on the drawing surface.
        page_height:
            Height of the target page in points.
        scale:
            Points per drawing-surface unit (e.g. 72 / 96 for CSS pixels).

    The lower edge of the rectangle sits ``y + height`` units below the
    surface's top edge, so its PDF y is ``page_height - (y + height)``.
    """
    if scale <= 0:
        raise ValueError("scale must be positive")
    if page_height < 0:
        raise ValueError("page_height must be non-negative")

    pdf_width = width * scale
    pdf_height = height * scale
    pdf_x = x * scale
    pdf_y = page_height - y * scale - pdf_height

    return PdfRect(x=pdf_x, y=pdf_y, width=pdf_width, height=pdf_height)
