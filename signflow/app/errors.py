"""
Error taxonomy for the document integrity pipeline.

Every failure the pipeline reports to a caller is one of the classes
below. Each carries an HTTP status, a stable machine-readable code and a
message that is safe to show to an end user:

- validation-type errors expose their specific, actionable message
  (e.g. "File size must be less than 10MB", "not a valid PDF")
- internal errors expose a generic message; details go to the logs

Out-of-range signature pages are NOT errors. They are reported as skipped
placements on an otherwise successful signing result.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class SignFlowError(RuntimeError):
    """Base class for all failures surfaced by SignFlow services."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    public_message: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    @property
    def user_message(self) -> str:
        """Message that may be returned to an end user."""
        if self.public_message is not None:
            return self.public_message
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }


# ---------------------------------------------------------------------------
# Input errors (specific messages are user-visible)
# ---------------------------------------------------------------------------


class ValidationError(SignFlowError):
    """Malformed or oversized input, caught before processing."""

    status_code = 400
    code = "VALIDATION_ERROR"


class StrictSanitizationError(SignFlowError):
    """
    Strict-mode sanitization removed at least one construct.

    The caller receives the violation descriptions but no sanitized
    output.
    """

    status_code = 422
    code = "STRICT_SANITIZATION_FAILED"

    def __init__(self, violations: Sequence[Any]) -> None:
        self.violations: List[str] = [str(v) for v in violations]
        count = len(self.violations)
        super().__init__(
            "Document failed strict validation: "
            f"{count} disallowed construct{'s' if count != 1 else ''} "
            "would be stripped."
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["error"]["violations"] = list(self.violations)
        return body


# Name used by the sanitizer contract.
StrictValidationError = StrictSanitizationError


class MalformedPdfError(SignFlowError):
    """Input bytes are not a loadable PDF."""

    status_code = 422
    code = "INVALID_PDF"
    public_message = "The uploaded file is not a valid PDF."


class DocumentParseError(SignFlowError):
    """A DOCX upload passed validation but could not be converted."""

    status_code = 422
    code = "PARSE_FAILED"


class NotFoundError(SignFlowError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} not found")


# ---------------------------------------------------------------------------
# Internal errors (generic messages are user-visible)
# ---------------------------------------------------------------------------


class SigningError(SignFlowError):
    """Embedding a signature image into the PDF failed."""

    status_code = 500
    code = "SIGNING_FAILED"
    public_message = "The document could not be signed."


class RenderError(SignFlowError):
    """The headless render engine timed out, crashed or produced no PDF."""

    status_code = 500
    code = "RENDER_FAILED"
    public_message = "The PDF could not be generated."

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(
            message,
            status_code=504 if timed_out else None,
        )
        self.timed_out = timed_out
