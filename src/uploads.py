"""UploadStore: validated file uploads kept in a sandboxed local directory."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

ALLOWED_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/jpg",
        "application/pdf",
        "text/plain",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)

URL_PREFIX = "/uploads/"

_SAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9._\-]")


@dataclass
class StoredUpload:
    """Where an accepted upload ended up."""

    public_id: str
    url: str
    size: int
    content_type: str


class UploadStore:
    """Writes uploads under *root* with unique, sanitized names.

    Local file I/O is synchronous; uploads are capped small enough that it
    doesn't stall the event loop in practice.
    """

    def __init__(self, root: Path | None = None, max_size: int | None = None) -> None:
        self._root = (root or settings.upload_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self.max_size = max_size if max_size is not None else settings.max_upload_size

    @staticmethod
    def sanitize_filename(name: str) -> str:
        """Replace unsafe characters, strip leading dots, truncate to 200 chars.

        Raises ``ValueError`` if the result is empty.
        """
        sanitized = _SAFE_FILENAME_RE.sub("_", name).lstrip(".")[:200]
        if not sanitized:
            msg = f"Filename is empty after sanitization: {name!r}"
            raise ValueError(msg)
        return sanitized

    def too_large_message(self) -> str:
        mb = self.max_size / (1024 * 1024)
        return f"File too large. Maximum size is {mb:g}MB."

    def validate(self, size: int, content_type: str) -> None:
        """Raise ``ValueError`` if the upload is too large or of a disallowed type."""
        if size > self.max_size:
            msg = self.too_large_message()
            raise ValueError(msg)
        if content_type not in ALLOWED_TYPES:
            msg = "File type not supported."
            raise ValueError(msg)

    def save(self, filename: str, data: bytes, content_type: str) -> StoredUpload:
        """Validate and write *data*. Returns the stored location."""
        self.validate(len(data), content_type)
        public_id = f"{uuid.uuid4().hex[:12]}_{self.sanitize_filename(filename)}"
        (self._root / public_id).write_bytes(data)
        logger.info("Stored upload %s (%s, %d bytes)", public_id, content_type, len(data))
        return StoredUpload(
            public_id=public_id,
            url=f"{URL_PREFIX}{public_id}",
            size=len(data),
            content_type=content_type,
        )

    def resolve(self, public_id: str) -> Path:
        """Absolute path of a stored upload.

        Raises ``ValueError`` on traversal attempts and ``FileNotFoundError``
        if nothing is stored under *public_id*.
        """
        target = (self._root / self.sanitize_filename(public_id)).resolve()
        if target.parent != self._root:
            msg = f"Path traversal detected: {public_id!r}"
            raise ValueError(msg)
        if not target.is_file():
            msg = f"Upload not found: {public_id}"
            raise FileNotFoundError(msg)
        return target
