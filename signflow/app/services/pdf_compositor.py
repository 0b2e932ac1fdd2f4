"""
PDF signature compositing.

This module stamps raster signature images onto an existing PDF using
pikepdf. "Signing" here is purely visual: no certificate, no signature
dictionary, no byte-range coverage is produced.

Processing order:
1. Load the page tree (unparsable input → MalformedPdfError).
2. Draw each positioned SignaturePlacement at (x, y, width, height) in
   the page's bottom-left-origin point space.
3. Draw each page overlay across the full media box.
4. Write signed-state metadata (Title, Author, Producer, ModDate + XMP).
5. Serialize.

Failure semantics:
- Placements and overlays referencing pages the document does not have
  are skipped with a warning and returned as SkippedPlacement records.
  Callers may hold page numbers from an earlier revision of the document.
- An undecodable PNG fails the whole operation with SigningError. The
  document is only serialized after every image is embedded, so a
  partially stamped PDF never leaves this module.

Coordinate contract:
    Placements are NOT flipped here. Coordinates captured on a
    top-left-origin surface must go through
    ``signflow.app.utils.coordinates.canvas_to_pdf_rect`` first.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from io import BytesIO
from typing import Callable, List, Mapping, Optional, Sequence, Tuple, Union

import pikepdf
from pikepdf import Name, Stream
from pikepdf.models.metadata import encode_pdf_date
from PIL import Image, UnidentifiedImageError

from signflow.app.config import Settings
from signflow.app.errors import MalformedPdfError, SigningError, ValidationError
from signflow.app.schemas.document import (
    PageOverlay,
    SignaturePlacement,
    SigningResult,
    SkippedPlacement,
)

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

# PDF readers tolerate up to 1024 bytes of garbage before the header.
_HEADER_SEARCH_WINDOW = 1024

_PNG_DATA_URL_PREFIX = re.compile(r"^data:image/png;base64,", re.IGNORECASE)

Overlays = Union[Mapping[Union[int, str], str], Sequence[PageOverlay]]


# ---------------------------------------------------------------------------
# Image helpers
# ---------------------------------------------------------------------------


def decode_png_payload(payload: str) -> bytes:
    """
    Decode a PNG supplied as raw base64 or as a ``data:image/png`` URL.

    Raises:
        SigningError: If the payload is not valid base64.
    """
    data = _PNG_DATA_URL_PREFIX.sub("", payload.strip(), count=1)
    data = "".join(data.split())
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SigningError(
            f"Signature image is not valid base64: {exc}"
        ) from exc


def _load_png(png_bytes: bytes) -> Image.Image:
    try:
        with Image.open(BytesIO(png_bytes)) as image:
            if image.format != "PNG":
                raise SigningError(
                    f"Signature image must be PNG, got {image.format}"
                )
            image.load()
            return image.convert("RGBA")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as exc:
        raise SigningError(
            f"Signature image could not be decoded: {exc}"
        ) from exc


def _image_xobject(pdf: pikepdf.Pdf, image: Image.Image) -> Stream:
    """
    Build an image XObject from an RGBA image.

    Colour goes into a DeviceRGB stream; a non-opaque alpha channel goes
    into a DeviceGray soft mask so transparent pen strokes stay
    transparent on the page.
    """
    xobject = pdf.make_indirect(Stream(pdf, image.convert("RGB").tobytes()))
    xobject.Type = Name.XObject
    xobject.Subtype = Name.Image
    xobject.Width = image.width
    xobject.Height = image.height
    xobject.ColorSpace = Name.DeviceRGB
    xobject.BitsPerComponent = 8

    alpha = image.getchannel("A")
    if alpha.getextrema() != (255, 255):
        smask = pdf.make_indirect(Stream(pdf, alpha.tobytes()))
        smask.Type = Name.XObject
        smask.Subtype = Name.Image
        smask.Width = image.width
        smask.Height = image.height
        smask.ColorSpace = Name.DeviceGray
        smask.BitsPerComponent = 8
        xobject.SMask = smask

    return xobject


# ---------------------------------------------------------------------------
# Compositor
# ---------------------------------------------------------------------------


class PdfCompositor:
    """
    Embeds signature images into PDFs.

    Each ``sign`` call opens its own in-memory object graph and closes it
    on every exit path; instances carry only immutable configuration.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign(
        self,
        pdf_bytes: bytes,
        placements: Sequence[SignaturePlacement] = (),
        overlays: Optional[Overlays] = None,
    ) -> SigningResult:
        """
        Stamp placements and overlays onto ``pdf_bytes``.

        Raises:
            ValidationError: Input exceeds the configured size limit.
            MalformedPdfError: Input is not a loadable PDF.
            SigningError: An image could not be decoded or embedded.
        """
        if len(pdf_bytes) > self.settings.max_pdf_bytes:
            raise ValidationError(
                f"PDF exceeds the {self.settings.max_pdf_size_mb}MB limit.",
                code="FILE_TOO_LARGE",
                status_code=413,
            )

        if PDF_MAGIC not in pdf_bytes[:_HEADER_SEARCH_WINDOW]:
            raise MalformedPdfError("Input does not carry a %PDF- header")

        overlay_items = self._normalize_overlays(overlays)

        try:
            pdf = pikepdf.open(BytesIO(pdf_bytes))
        except pikepdf.PdfError as exc:
            raise MalformedPdfError(f"PDF could not be parsed: {exc}") from exc

        with pdf:
            page_count = len(pdf.pages)
            skipped: List[SkippedPlacement] = []
            isolated: set = set()
            applied_placements = 0
            applied_overlays = 0

            # ------------------------------------------------------------------
            # 1. Positioned signatures
            # ------------------------------------------------------------------
            for index, placement in enumerate(placements):
                page_index = placement.page - 1
                if not 0 <= page_index < page_count:
                    skipped.append(
                        self._skip("placement", index, placement.page, page_count)
                    )
                    continue

                self._draw_image(
                    pdf,
                    page_index,
                    placement.image_base64,
                    (placement.x, placement.y, placement.width, placement.height),
                    isolated,
                )
                applied_placements += 1

            # ------------------------------------------------------------------
            # 2. Full-page overlays
            # ------------------------------------------------------------------
            for index, (page_number, image_base64) in enumerate(overlay_items):
                page_index = page_number - 1
                if not 0 <= page_index < page_count:
                    skipped.append(
                        self._skip("overlay", index, page_number, page_count)
                    )
                    continue

                mediabox = pdf.pages[page_index].mediabox
                llx, lly = float(mediabox[0]), float(mediabox[1])
                width = float(mediabox[2]) - llx
                height = float(mediabox[3]) - lly

                self._draw_image(
                    pdf,
                    page_index,
                    image_base64,
                    (llx, lly, width, height),
                    isolated,
                )
                applied_overlays += 1

            # ------------------------------------------------------------------
            # 3. Signed-state metadata
            # ------------------------------------------------------------------
            self._write_metadata(pdf)

            # ------------------------------------------------------------------
            # 4. Serialize
            # ------------------------------------------------------------------
            buffer = BytesIO()
            try:
                pdf.save(buffer)
            except pikepdf.PdfError as exc:
                raise SigningError(
                    f"Failed to serialize signed PDF: {exc}"
                ) from exc

        logger.info(
            "pdf_signed",
            extra={
                "page_count": page_count,
                "applied_placements": applied_placements,
                "applied_overlays": applied_overlays,
                "skipped": len(skipped),
            },
        )

        return SigningResult(
            pdf_bytes=buffer.getvalue(),
            page_count=page_count,
            applied_placements=applied_placements,
            applied_overlays=applied_overlays,
            skipped=skipped,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_overlays(
        overlays: Optional[Overlays],
    ) -> List[Tuple[int, str]]:
        if not overlays:
            return []

        if isinstance(overlays, Mapping):
            items: List[Tuple[int, str]] = []
            for key, image_base64 in overlays.items():
                try:
                    page_number = int(key)
                except (TypeError, ValueError) as exc:
                    raise ValidationError(
                        f"Overlay key '{key}' is not a page number"
                    ) from exc
                items.append((page_number, image_base64))
            return sorted(items, key=lambda item: item[0])

        return [(o.page_number, o.image_base64) for o in overlays]

    @staticmethod
    def _skip(kind: str, index: int, page: int, page_count: int) -> SkippedPlacement:
        logger.warning(
            "signature_page_out_of_range",
            extra={
                "kind": kind,
                "index": index,
                "page": page,
                "page_count": page_count,
            },
        )
        return SkippedPlacement(
            kind=kind,
            index=index,
            page=page,
            page_count=page_count,
        )

    @staticmethod
    def _draw_image(
        pdf: pikepdf.Pdf,
        page_index: int,
        image_base64: str,
        rect: Tuple[float, float, float, float],
        isolated: set,
    ) -> None:
        x, y, width, height = rect
        image = _load_png(decode_png_payload(image_base64))

        page = pdf.pages[page_index]

        if page.obj.get("/Contents") is None:
            page.obj.Contents = pdf.make_stream(b"")

        # Wrap the existing content once so its graphics state (CTM,
        # clipping) cannot leak into the stamped images.
        if page_index not in isolated:
            page.contents_add(Stream(pdf, b"q\n"), prepend=True)
            page.contents_add(Stream(pdf, b"\nQ\n"), prepend=False)
            isolated.add(page_index)

        name = page.add_resource(
            _image_xobject(pdf, image),
            Name.XObject,
            prefix="Sig",
        )

        operators = (
            f"q {width:.4f} 0 0 {height:.4f} {x:.4f} {y:.4f} cm "
            f"{name} Do Q\n"
        )
        page.contents_add(Stream(pdf, operators.encode("ascii")), prepend=False)

    def _write_metadata(self, pdf: pikepdf.Pdf) -> None:
        settings = self.settings

        pdf.docinfo["/Title"] = settings.signed_title
        pdf.docinfo["/Author"] = settings.signed_author
        pdf.docinfo["/Producer"] = settings.signed_producer
        pdf.docinfo["/ModDate"] = encode_pdf_date(self._clock())

        with pdf.open_metadata(set_pikepdf_as_editor=False) as meta:
            meta.load_from_docinfo(pdf.docinfo)

