"""Application-level storage helpers to avoid infra coupling."""
from __future__ import annotations

from pathlib import PurePath
from typing import Optional
import mimetypes

_IMAGE_EXTENSIONS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def guess_content_type(filename: str) -> str:
    ctype, _ = mimetypes.guess_type(filename)
    return ctype or "application/octet-stream"


def sniff_image_content_type(filename: str) -> Optional[str]:
    """Image MIME type from the extension alone; None for anything else."""
    return _IMAGE_EXTENSIONS.get(PurePath(filename).suffix.lower())
