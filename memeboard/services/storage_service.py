"""
memeboard.services.storage_service — Blob storage buckets
==========================================================

A minimal object store: each bucket is a sub-directory of the configured
``storage_dir`` and every object gets a public URL served by the API
(``/api/storage/<bucket>/<path>``).  Meme images live in the ``memes``
bucket, avatars in ``avatars``.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path, PurePosixPath

from memeboard.constants import (
    ALLOWED_IMAGE_EXTENSIONS,
    AVATARS_BUCKET,
    MAX_IMAGE_BYTES,
    MEMES_BUCKET,
)
from memeboard.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

BUCKETS: frozenset[str] = frozenset({MEMES_BUCKET, AVATARS_BUCKET})


def validate_image(filename: str, content: bytes, content_type: str | None) -> str:
    """Check an uploaded image and return its normalized extension.

    Raises
    ------
    ValidationError
        Not an image, unsupported extension, empty or larger than 5 MB.
    """
    if content_type is not None and not content_type.startswith("image/"):
        raise ValidationError("Please select an image file")

    ext = PurePosixPath(filename or "").suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError(
            f"File type not allowed: {ext or filename!r}. "
            f"Allowed: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )

    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > MAX_IMAGE_BYTES:
        raise ValidationError(
            f"File size must be less than {MAX_IMAGE_BYTES // 1024 // 1024}MB"
        )
    return ext


class BlobStore:
    """Filesystem-backed buckets with public URL issuance."""

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def ensure_buckets(self) -> None:
        """Create every bucket directory if missing."""
        for bucket in BUCKETS:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> Path:
        if bucket not in BUCKETS:
            raise NotFoundError(f"Unknown bucket: {bucket!r}")
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValidationError(f"Invalid object path: {path!r}")
        return self.root / bucket / Path(*rel.parts)

    def upload_blob(self, bucket: str, path: str, content: bytes) -> str:
        """Store *content* at *bucket*/*path*; returns *path*.

        Raises :class:`ValidationError` when the object is too large or the
        path already exists.
        """
        if len(content) > MAX_IMAGE_BYTES:
            raise ValidationError(
                f"File too large: {len(content)} bytes (max {MAX_IMAGE_BYTES // 1024 // 1024}MB)"
            )
        dest = self._resolve(bucket, path)
        if dest.exists():
            raise ValidationError(f"Object already exists: {bucket}/{path}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
        logger.info("Stored blob %s/%s (%d bytes)", bucket, path, len(content))
        return path

    def unique_path(self, bucket: str, prefix: str, ext: str) -> str:
        """``<prefix>-<epoch ms><ext>`` that is not taken yet in *bucket*."""
        stamp = int(time.time() * 1000)
        while (self.root / bucket / f"{prefix}-{stamp}{ext}").exists():
            stamp += 1
        return f"{prefix}-{stamp}{ext}"

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/api/storage/{bucket}/{path}"

    def open_path(self, bucket: str, path: str) -> Path:
        """Filesystem path of an existing object (for serving it)."""
        dest = self._resolve(bucket, path)
        if not dest.is_file():
            raise NotFoundError(f"Object not found: {bucket}/{path}")
        return dest

    def delete_blob(self, bucket: str, path: str) -> bool:
        """Remove an object.  Returns True if it existed."""
        dest = self._resolve(bucket, path)
        if dest.is_file():
            dest.unlink()
            return True
        return False
