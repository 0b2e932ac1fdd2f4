"""
DOCX → sanitized semantic HTML.

Upload validation happens before any bytes reach the converter. The
conversion itself is delegated to mammoth and treated as a black box that
returns raw HTML plus warnings; its output is sanitized immediately, so
nothing downstream ever sees unsanitized conversion output.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from io import BytesIO
from pathlib import PurePath
from typing import Callable, List, NamedTuple, Optional

import mammoth

from signflow.app.config import Settings
from signflow.app.errors import DocumentParseError, ValidationError
from signflow.app.schemas.document import (
    DocumentContent,
    DocumentMetadata,
    SanitizationViolation,
)
from signflow.app.services.sanitizer import HtmlSanitizer

logger = logging.getLogger(__name__)

DOCX_MIME_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)

ALLOWED_EXTENSIONS = (".docx",)

# DOCX is a ZIP container.
ZIP_MAGIC = b"PK"

# Word styles → semantic HTML.
SEMANTIC_STYLE_MAP = "\n".join([
    "p[style-name='Heading 1'] => h1:fresh",
    "p[style-name='Heading 2'] => h2:fresh",
    "p[style-name='Heading 3'] => h3:fresh",
    "p[style-name='Heading 4'] => h4:fresh",
    "p[style-name='Heading 5'] => h5:fresh",
    "p[style-name='Heading 6'] => h6:fresh",
    "p[style-name='List Paragraph'] => li:fresh",
    "p[style-name='Normal'] => p:fresh",
    "b => strong",
    "i => em",
    "u => u",
    "br[type='page'] => hr.page-break",
])


class ConversionOutput(NamedTuple):
    html: str
    warnings: List[str]


Converter = Callable[[bytes], ConversionOutput]


def convert_with_mammoth(data: bytes) -> ConversionOutput:
    """Convert DOCX bytes with mammoth; images are inlined as data URIs."""
    result = mammoth.convert_to_html(
        BytesIO(data),
        style_map=SEMANTIC_STYLE_MAP,
    )
    warnings = [
        message.message
        for message in result.messages
        if message.type == "warning"
    ]
    return ConversionOutput(html=result.value, warnings=warnings)


class DocumentParser:
    def __init__(
        self,
        settings: Settings,
        *,
        sanitizer: Optional[HtmlSanitizer] = None,
        converter: Converter = convert_with_mammoth,
    ) -> None:
        self.settings = settings
        self.sanitizer = sanitizer or HtmlSanitizer()
        self._converter = converter

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_upload(
        self,
        filename: str,
        size: int,
        content_type: Optional[str] = None,
    ) -> None:
        """
        Reject uploads that cannot be a DOCX within the size limit.

        Raises:
            ValidationError: with code INVALID_FILE_TYPE, FILE_TOO_LARGE
            or EMPTY_FILE.
        """
        if PurePath(filename or "").suffix.lower() not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                "Only .docx files are supported",
                code="INVALID_FILE_TYPE",
            )

        self._check_size(size)

        if content_type and content_type != DOCX_MIME_TYPE:
            raise ValidationError(
                "Invalid file type. Please upload a .docx file.",
                code="INVALID_FILE_TYPE",
            )

    def _check_size(self, size: int) -> None:
        if size == 0:
            raise ValidationError("File is empty", code="EMPTY_FILE")

        if size > self.settings.max_upload_bytes:
            raise ValidationError(
                "File size must be less than "
                f"{self.settings.max_upload_size_mb}MB",
                code="FILE_TOO_LARGE",
                status_code=413,
            )

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_docx(self, data: bytes, filename: str) -> DocumentContent:
        """
        Convert a DOCX upload into sanitized HTML.

        Raises:
            ValidationError: Empty, oversized or non-ZIP input.
            DocumentParseError: The converter failed or produced nothing.
        """
        self._check_size(len(data))

        if not data.startswith(ZIP_MAGIC):
            raise ValidationError(
                "File does not appear to be a valid DOCX document",
                code="INVALID_FILE_TYPE",
            )

        try:
            output = self._converter(data)
        except Exception as exc:
            logger.warning(
                "docx_conversion_failed",
                extra={"document_filename": filename, "error_type": type(exc).__name__},
            )
            raise DocumentParseError(
                "Invalid DOCX file: file structure is corrupted or truncated"
            ) from exc

        if not output.html or not output.html.strip():
            raise DocumentParseError(
                "Document appears to be empty or could not be parsed"
            )

        def log_violation(violation: SanitizationViolation) -> None:
            logger.warning(
                "docx_markup_stripped",
                extra={
                    "document_filename": filename,
                    "violation": violation.describe(),
                },
            )

        html = self.sanitizer.sanitize(
            output.html,
            strict=False,
            on_violation=log_violation,
        )

        metadata = DocumentMetadata(
            filename=filename,
            size_bytes=len(data),
            mime_type=DOCX_MIME_TYPE,
            uploaded_at=datetime.now(timezone.utc),
        )

        return DocumentContent(
            html=html,
            metadata=metadata,
            warnings=list(output.warnings),
        )
