import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Path, Request, UploadFile, status
from fastapi.responses import Response

from signflow.app.config import Settings
from signflow.app.schemas.api import (
    ApiErrorBody,
    ConvertResponse,
    GeneratePdfRequest,
    SignPdfRequest,
    SignPdfResponse,
    StoredDocumentResponse,
    ValidateHtmlRequest,
)
from signflow.app.schemas.document import SanitizationViolation, ValidationReport
from signflow.app.services.document_parser import DocumentParser
from signflow.app.services.pdf_compositor import PdfCompositor
from signflow.app.services.pdf_renderer import PdfRenderer
from signflow.app.services.sanitizer import HtmlSanitizer
from signflow.app.services.schema_validator import SchemaValidator
from signflow.app.services.storage import FileStorage

logger = logging.getLogger("signflow.api")

router = APIRouter(tags=["Documents"])

# Endpoints are plain `def`: the render engine and pikepdf block, so they
# run in the worker threadpool. The Playwright sync API refuses to run on
# a thread that owns an event loop.

ERROR_RESPONSES = {
    400: {"model": ApiErrorBody, "description": "Invalid input"},
    413: {"model": ApiErrorBody, "description": "Payload too large"},
    422: {"model": ApiErrorBody, "description": "Unprocessable document"},
    500: {"model": ApiErrorBody, "description": "Processing failure"},
}

# =============================================================================
# Dependency providers
# =============================================================================


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_sanitizer(settings: SettingsDep) -> HtmlSanitizer:
    return HtmlSanitizer(max_input_bytes=settings.max_html_bytes)


def get_schema_validator(
    sanitizer: Annotated[HtmlSanitizer, Depends(get_sanitizer)],
) -> SchemaValidator:
    return SchemaValidator(sanitizer)


def get_renderer(settings: SettingsDep) -> PdfRenderer:
    return PdfRenderer(settings)


def get_compositor(settings: SettingsDep) -> PdfCompositor:
    return PdfCompositor(settings)


def get_storage(settings: SettingsDep) -> FileStorage:
    return FileStorage(settings.storage_dir)


def get_document_parser(
    settings: SettingsDep,
    sanitizer: Annotated[HtmlSanitizer, Depends(get_sanitizer)],
) -> DocumentParser:
    return DocumentParser(settings, sanitizer=sanitizer)


# =============================================================================
# POST /documents/convert
# =============================================================================


@router.post(
    "/convert",
    summary="Convert a DOCX upload to sanitized HTML",
    response_model=ConvertResponse,
    responses=ERROR_RESPONSES,
)
def convert_document(
    file: Annotated[UploadFile, File(description="Word document (.docx)")],
    settings: SettingsDep,
    parser: Annotated[DocumentParser, Depends(get_document_parser)],
) -> ConvertResponse:
    # Bounded read: one byte past the limit is enough to reject.
    data = file.file.read(settings.max_upload_bytes + 1)
    filename = file.filename or ""

    parser.validate_upload(filename, len(data), file.content_type)

    content = parser.parse_docx(data, filename)

    logger.info(
        "docx_converted",
        extra={
            "document_filename": filename,
            "size_bytes": len(data),
            "warning_count": len(content.warnings),
        },
    )

    return ConvertResponse.model_validate(content.model_dump())


# =============================================================================
# POST /documents/validate
# =============================================================================


@router.post(
    "/validate",
    summary="Report what sanitization would strip, without changing anything",
    response_model=ValidationReport,
    responses=ERROR_RESPONSES,
)
def validate_html(
    body: ValidateHtmlRequest,
    validator: Annotated[SchemaValidator, Depends(get_schema_validator)],
) -> ValidationReport:
    return validator.validate(body.html)


# =============================================================================
# POST /documents/pdf
# =============================================================================


@router.post(
    "/pdf",
    summary="Sanitize HTML, render it to PDF and store the result",
    status_code=status.HTTP_201_CREATED,
    response_model=StoredDocumentResponse,
    responses=ERROR_RESPONSES,
)
def generate_pdf(
    body: GeneratePdfRequest,
    settings: SettingsDep,
    sanitizer: Annotated[HtmlSanitizer, Depends(get_sanitizer)],
    renderer: Annotated[PdfRenderer, Depends(get_renderer)],
    storage: Annotated[FileStorage, Depends(get_storage)],
) -> StoredDocumentResponse:
    strict = (
        body.strict if body.strict is not None else settings.strict_sanitization
    )

    def log_violation(violation: SanitizationViolation) -> None:
        logger.info(
            "html_markup_stripped",
            extra={"violation": violation.describe(), "strict": strict},
        )

    # The renderer trusts its input; nothing unsanitized may reach it.
    clean_html = sanitizer.sanitize(
        body.html,
        strict=strict,
        on_violation=log_violation,
    )

    pdf_bytes = renderer.render(clean_html, body.options)
    pdf_id = storage.save(pdf_bytes)

    return StoredDocumentResponse(id=pdf_id, size_bytes=len(pdf_bytes))


# =============================================================================
# POST /documents/{pdf_id}/sign
# =============================================================================


@router.post(
    "/{pdf_id}/sign",
    summary="Stamp signature images onto a stored PDF",
    status_code=status.HTTP_201_CREATED,
    response_model=SignPdfResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ApiErrorBody}},
)
def sign_pdf(
    pdf_id: Annotated[str, Path(description="Identifier of a stored PDF")],
    body: SignPdfRequest,
    compositor: Annotated[PdfCompositor, Depends(get_compositor)],
    storage: Annotated[FileStorage, Depends(get_storage)],
) -> SignPdfResponse:
    """
    Signing is best-effort per item: signatures aimed at pages the PDF
    does not have are skipped and listed in ``skippedPlacements``. The
    stored source PDF is never modified; the signed copy gets a new id.
    """
    pdf_bytes = storage.read(pdf_id)

    result = compositor.sign(
        pdf_bytes,
        placements=body.placements,
        overlays=body.overlays,
    )

    signed_id = storage.save(result.pdf_bytes)

    if result.has_skipped:
        logger.warning(
            "pdf_signed_with_skipped_items",
            extra={
                "source_id": pdf_id,
                "signed_id": signed_id,
                "skipped": len(result.skipped),
            },
        )

    return SignPdfResponse(
        id=signed_id,
        size_bytes=len(result.pdf_bytes),
        page_count=result.page_count,
        skipped_placements=result.skipped,
    )


# =============================================================================
# GET /documents/{document_id}
# =============================================================================


@router.get(
    "/{document_id}",
    summary="Download a stored PDF",
    response_class=Response,
    responses={
        200: {
            "content": {"application/pdf": {}},
            "description": "Stored PDF",
        },
        400: {"model": ApiErrorBody},
        404: {"model": ApiErrorBody},
    },
)
def download_document(
    document_id: str,
    storage: Annotated[FileStorage, Depends(get_storage)],
) -> Response:
    pdf_bytes = storage.read(document_id)

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": (
                f'attachment; filename="{document_id}.pdf"'
            ),
        },
    )
