"""
Document-level data model.

Defines the records that flow through the integrity pipeline:

    raw HTML → sanitized HTML → PDF bytes → signed PDF bytes

Coordinates are PDF points (1/72 inch) with a bottom-left origin unless
stated otherwise. Margins are millimetres.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    PositiveInt,
    field_validator,
)


# ---------------------------------------------------------------------------
# PDF generation options
# ---------------------------------------------------------------------------


class PageFormat(str, Enum):
    A4 = "A4"
    LETTER = "Letter"
    LEGAL = "Legal"


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class Margins(BaseModel):
    model_config = ConfigDict(frozen=True)

    top: NonNegativeFloat = 20
    right: NonNegativeFloat = 20
    bottom: NonNegativeFloat = 20
    left: NonNegativeFloat = 20


class PdfGenerationOptions(BaseModel):
    """
    Page setup for HTML → PDF rendering.

    Defaults: A4, portrait, 20mm margins on all sides.
    """

    model_config = ConfigDict(frozen=True)

    format: PageFormat = PageFormat.A4
    orientation: Orientation = Orientation.PORTRAIT
    margins: Margins = Field(default_factory=Margins)

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v):
        # Editors send lowercase names ("a4", "letter").
        if isinstance(v, str):
            for member in PageFormat:
                if member.value.lower() == v.strip().lower():
                    return member
        return v

    @field_validator("orientation", mode="before")
    @classmethod
    def normalize_orientation(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def landscape(self) -> bool:
        return self.orientation is Orientation.LANDSCAPE


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


class SignaturePlacement(BaseModel):
    """
    A signature image positioned on one page.

    (x, y) is the lower-left corner of the image in the page's point
    space. Coordinates captured on a top-left-origin canvas must be
    converted with ``canvas_to_pdf_rect`` before building a placement.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    page: PositiveInt = Field(description="1-indexed page number")
    x: NonNegativeFloat
    y: NonNegativeFloat
    width: NonNegativeFloat
    height: NonNegativeFloat
    image_base64: str = Field(
        alias="imageBase64",
        min_length=1,
        description="PNG as raw base64 or a data:image/png;base64, URL",
    )


class PageOverlay(BaseModel):
    """A PNG that always covers the full media box of one page."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    page_number: PositiveInt = Field(alias="pageNumber")
    image_base64: str = Field(alias="imageBase64", min_length=1)


class SkippedPlacement(BaseModel):
    """A placement or overlay that referenced a page the PDF does not have."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: Literal["placement", "overlay"]
    index: int = Field(description="Position of the item in its input sequence")
    page: int
    page_count: int = Field(alias="pageCount")
    reason: str = "page does not exist"


class SigningResult(BaseModel):
    """
    Outcome of a best-effort signing run.

    ``pdf_bytes`` is only ever the fully composited document. Skipped
    items let callers distinguish "signed with N skipped" from a clean
    run; outright failures raise instead.
    """

    pdf_bytes: bytes
    page_count: int
    applied_placements: int = 0
    applied_overlays: int = 0
    skipped: List[SkippedPlacement] = Field(default_factory=list)

    @property
    def has_skipped(self) -> bool:
        return bool(self.skipped)


# ---------------------------------------------------------------------------
# Sanitization reporting
# ---------------------------------------------------------------------------


class SanitizationViolation(BaseModel):
    """One construct removed by the sanitizer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tag", "attribute"]
    tag: str
    attribute: Optional[str] = None
    reason: str = "not allowed"

    def describe(self) -> str:
        if self.kind == "tag":
            return f"Stripped <{self.tag}> tag ({self.reason})"
        return (
            f"Stripped attribute '{self.attribute}' from <{self.tag}> "
            f"({self.reason})"
        )

    def __str__(self) -> str:
        return self.describe()


class ValidationReport(BaseModel):
    """Result of a dry-run sanitization."""

    valid: bool
    violations: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Uploaded documents
# ---------------------------------------------------------------------------


class DocumentMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(min_length=1)
    size_bytes: PositiveInt = Field(alias="sizeBytes")
    mime_type: str = Field(alias="mimeType")
    uploaded_at: datetime = Field(alias="uploadedAt")


class DocumentContent(BaseModel):
    """Sanitized HTML produced from an uploaded DOCX."""

    html: str
    metadata: DocumentMetadata
    warnings: List[str] = Field(default_factory=list)
