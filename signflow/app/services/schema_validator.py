"""
HTML schema validation (dry-run sanitization).

Reports what the sanitizer WOULD remove without returning or persisting
anything. Used as a pre-flight check, e.g. before accepting editor
content.
"""

from __future__ import annotations

from typing import List, Optional

from signflow.app.schemas.document import SanitizationViolation, ValidationReport
from signflow.app.services.sanitizer import HtmlSanitizer


class SchemaValidator:
    def __init__(self, sanitizer: Optional[HtmlSanitizer] = None) -> None:
        self.sanitizer = sanitizer or HtmlSanitizer()

    def validate(self, html: str) -> ValidationReport:
        """
        Check ``html`` against the sanitizer's allow-list.

        The document is valid iff sanitization removes nothing.
        Whitespace normalization alone never makes a document invalid.
        """
        violations: List[SanitizationViolation] = []

        self.sanitizer.sanitize(
            html,
            strict=False,
            on_violation=violations.append,
        )

        return ValidationReport(
            valid=not violations,
            violations=[v.describe() for v in violations],
        )
