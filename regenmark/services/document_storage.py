"""
RegenMark Certification Engine
Evidence document storage.

Evaluations store document metadata only; the bytes go through a
``DocumentStorage``.  ``LocalDocumentStorage`` writes to a directory served
under a URL prefix, which is what single-node deployments use.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Protocol

from flask import current_app
from werkzeug.utils import secure_filename

from regenmark.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

STORAGE_EXTENSION_KEY = "regenmark_storage"
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class StoredDocument:
    """Metadata of one stored evidence file, ready to attach to an evaluation."""

    name: str
    file_name: str
    url: str
    file_size: int
    mime_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "file_name": self.file_name,
            "url": self.url,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
        }


class DocumentStorage(Protocol):
    def store(self, data: bytes, filename: str, mime_type: str | None = None,
              *, prefix: str = "") -> StoredDocument:
        ...


class LocalDocumentStorage:
    """Write documents below *upload_dir*; URLs are ``{url_prefix}/{stored name}``."""

    def __init__(self, upload_dir: str, url_prefix: str = "/uploads/regenmarks",
                 max_bytes: int = MAX_DOCUMENT_BYTES) -> None:
        self.upload_dir = upload_dir
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    def store(self, data: bytes, filename: str, mime_type: str | None = None,
              *, prefix: str = "") -> StoredDocument:
        if not data:
            raise ValidationError("Document is empty", details={"file_name": filename})
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"Document exceeds {self.max_bytes} bytes",
                details={"file_name": filename, "file_size": len(data)},
            )
        original = secure_filename(filename or "") or "document"
        _, ext = os.path.splitext(original)
        parts = [p for p in (prefix, str(int(time.time() * 1000)), uuid.uuid4().hex[:12]) if p]
        stored_name = "_".join(parts) + ext.lower()

        os.makedirs(self.upload_dir, exist_ok=True)
        path = os.path.join(self.upload_dir, stored_name)
        with open(path, "wb") as fh:
            fh.write(data)

        logger.info("Stored evidence document %s (%d bytes)", stored_name, len(data))
        return StoredDocument(
            name=filename or original,
            file_name=original,
            url=f"{self.url_prefix}/{stored_name}",
            file_size=len(data),
            mime_type=mime_type,
        )


def init_document_storage(app, storage: DocumentStorage | None = None) -> DocumentStorage:
    storage = storage or LocalDocumentStorage(
        app.config["REGENMARK_UPLOAD_DIR"],
        app.config.get("REGENMARK_UPLOAD_URL_PREFIX", "/uploads/regenmarks"),
    )
    app.extensions[STORAGE_EXTENSION_KEY] = storage
    return storage


def get_document_storage() -> DocumentStorage:
    return current_app.extensions[STORAGE_EXTENSION_KEY]
