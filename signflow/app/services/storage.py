"""
Local blob storage for generated and signed PDFs.

Blobs are opaque and addressed by server-generated UUID4 identifiers.
Client-supplied identifiers are parsed as UUIDs before they are turned
into paths, so no caller-controlled string ever reaches the filesystem.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path

from signflow.app.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class FileStorage:
    def __init__(self, root: Path, *, extension: str = "pdf") -> None:
        self.root = Path(root)
        self.extension = extension.lstrip(".")

    def save(self, data: bytes) -> str:
        """
        Persist ``data`` and return its new identifier.

        The blob is written to a temporary file in the same directory and
        renamed into place, so readers never observe a partial file.
        """
        self.root.mkdir(parents=True, exist_ok=True)

        blob_id = str(uuid.uuid4())
        target = self.root / f"{blob_id}.{self.extension}"

        fd, tmp_name = tempfile.mkstemp(
            dir=self.root,
            prefix=".upload_",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(
            "blob_stored",
            extra={"blob_id": blob_id, "size_bytes": len(data)},
        )
        return blob_id

    def path_for(self, blob_id: str) -> Path:
        """
        Resolve ``blob_id`` to its on-disk path.

        Raises:
            ValidationError: ``blob_id`` is not a UUID.
        """
        try:
            canonical = str(uuid.UUID(blob_id))
        except (TypeError, ValueError, AttributeError) as exc:
            raise ValidationError(
                "Invalid document id",
                code="INVALID_DOCUMENT_ID",
            ) from exc

        return self.root / f"{canonical}.{self.extension}"

    def exists(self, blob_id: str) -> bool:
        return self.path_for(blob_id).is_file()

    def read(self, blob_id: str) -> bytes:
        """
        Raises:
            ValidationError: ``blob_id`` is not a UUID.
            NotFoundError: No blob is stored under ``blob_id``.
        """
        path = self.path_for(blob_id)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError("Document") from exc
