"""Upload policy: allowed kinds, size bounds and media types per kind.

All checks here run before any network call. The order is fixed:
token, file, kind, size, media type.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from domain.common.exceptions import (
    AuthenticationRequiredException,
    FileTooLargeException,
    FileTooSmallException,
    InvalidUploadKindException,
    MissingFileException,
    UnsupportedMediaTypeException,
)
from .entity import LocalFile, UploadKind, UploadRequest

DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_MIN_IMAGE_BYTES = 1024

DEFAULT_IMAGE_CONTENT_TYPES = (
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
)
DEFAULT_GENERIC_CONTENT_TYPES = (
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "application/pdf",
)

DEFAULT_BUCKETS: dict[UploadKind, str] = {
    UploadKind.AVATAR: "avatars",
    UploadKind.BANNER: "banners",
    UploadKind.MOVEMENT_MEDIA: "movement-media",
}

DIRECT_KINDS = frozenset({UploadKind.AVATAR, UploadKind.BANNER})
IMAGE_KINDS = frozenset({UploadKind.AVATAR, UploadKind.BANNER})


def normalize_kind(value: object) -> Optional[UploadKind]:
    """Map user input like ``" Avatar "`` or ``"movement_media"`` to a kind."""
    if isinstance(value, UploadKind):
        return value
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower().replace("_", "-")
    try:
        return UploadKind(cleaned)
    except ValueError:
        return None


def map_kind_to_bucket(kind: UploadKind, buckets: Optional[Mapping[UploadKind, str]] = None) -> str:
    """Bucket for a direct-upload kind.

    Only avatar and banner have a direct bucket; anything else reaching this
    point is a programming error, not a user error.
    """
    if kind not in DIRECT_KINDS:
        raise ValueError(f"No direct-upload bucket for kind {kind!r}")
    return (buckets or DEFAULT_BUCKETS)[kind]


def require_token(access_token: object) -> str:
    """Return the bearer token without surrounding whitespace."""
    if not isinstance(access_token, str) or not access_token.strip():
        raise AuthenticationRequiredException()
    return access_token.strip()


@dataclass(frozen=True)
class UploadPolicy:
    max_bytes: int = DEFAULT_MAX_BYTES
    min_image_bytes: int = DEFAULT_MIN_IMAGE_BYTES
    image_content_types: tuple[str, ...] = DEFAULT_IMAGE_CONTENT_TYPES
    generic_content_types: tuple[str, ...] = DEFAULT_GENERIC_CONTENT_TYPES
    buckets: Mapping[UploadKind, str] = field(default_factory=lambda: dict(DEFAULT_BUCKETS))

    def bucket_for(self, kind: UploadKind) -> str:
        return map_kind_to_bucket(kind, self.buckets)

    def allowed_content_types(self, kind: UploadKind) -> tuple[str, ...]:
        if kind in IMAGE_KINDS:
            return self.image_content_types
        return self.generic_content_types

    def validate_direct(
        self,
        file: Optional[LocalFile],
        *,
        access_token: Optional[str],
        kind: object,
        max_bytes: Optional[int] = None,
    ) -> UploadRequest:
        token = require_token(access_token)
        if file is None:
            raise MissingFileException()

        normalized = normalize_kind(kind)
        if normalized is None or normalized not in DIRECT_KINDS:
            raise InvalidUploadKindException(kind, sorted(k.value for k in DIRECT_KINDS))

        limit = max_bytes if max_bytes is not None else self.max_bytes
        if file.size > limit:
            raise FileTooLargeException(size=file.size, max_size=limit)
        if normalized in IMAGE_KINDS and file.size < self.min_image_bytes:
            raise FileTooSmallException(size=file.size, min_size=self.min_image_bytes)

        allowed = self.allowed_content_types(normalized)
        if not file.content_type or file.content_type.lower() not in allowed:
            raise UnsupportedMediaTypeException(file.content_type, list(allowed))

        return UploadRequest(file=file, kind=normalized, access_token=token)

    def validate_generic(self, file: Optional[LocalFile], *, access_token: Optional[str]) -> tuple[LocalFile, str]:
        """Checks for the single-POST path; an undeclared type is left to the server.

        Returns the file and the stripped token.
        """
        token = require_token(access_token)
        if file is None:
            raise MissingFileException()
        if file.size > self.max_bytes:
            raise FileTooLargeException(size=file.size, max_size=self.max_bytes)
        if file.content_type and file.content_type.lower() not in self.generic_content_types:
            raise UnsupportedMediaTypeException(file.content_type, list(self.generic_content_types))
        return file, token
