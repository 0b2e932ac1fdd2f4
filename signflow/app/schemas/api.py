"""
Request and response bodies for the HTTP surface.

Wire names are camelCase; Python attributes are snake_case. Every model
accepts both on input.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from signflow.app.schemas.document import (
    DocumentContent,
    PageOverlay,
    PdfGenerationOptions,
    SignaturePlacement,
    SkippedPlacement,
)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ValidateHtmlRequest(BaseModel):
    html: str = Field(min_length=1)


class GeneratePdfRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    html: str = Field(min_length=1)
    options: PdfGenerationOptions = Field(default_factory=PdfGenerationOptions)
    strict: Optional[bool] = Field(
        default=None,
        description="Reject content that needs stripping; defaults to server config",
    )


class SignPdfRequest(BaseModel):
    """
    Signatures to stamp onto a stored PDF.

    ``overlays`` accepts either a list of ``{pageNumber, imageBase64}``
    objects or a ``{"<page>": "<png>"}`` mapping.
    """

    model_config = ConfigDict(populate_by_name=True)

    placements: List[SignaturePlacement] = Field(default_factory=list)
    overlays: List[PageOverlay] = Field(default_factory=list)

    @field_validator("overlays", mode="before")
    @classmethod
    def expand_overlay_mapping(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return [
                {"pageNumber": page, "imageBase64": image}
                for page, image in v.items()
            ]
        return v


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class StoredDocumentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    size_bytes: int = Field(alias="sizeBytes")


class SignPdfResponse(StoredDocumentResponse):
    page_count: int = Field(alias="pageCount")
    skipped_placements: List[SkippedPlacement] = Field(
        default_factory=list,
        alias="skippedPlacements",
    )


class ConvertResponse(DocumentContent):
    pass


class ApiErrorDetail(BaseModel):
    code: str
    message: str
    violations: Optional[List[str]] = None


class ApiErrorBody(BaseModel):
    error: ApiErrorDetail
