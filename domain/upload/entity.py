"""Domain value objects for the signed direct-upload protocol."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class UploadKind(str, Enum):
    """What the uploaded object is for; decides bucket and media policy."""

    AVATAR = "avatar"
    BANNER = "banner"
    MOVEMENT_MEDIA = "movement-media"


class UploadStage(str, Enum):
    """Per-invocation protocol stages."""

    IDLE = "idle"
    VALIDATING = "validating"
    SIGNING = "signing"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class LocalFile:
    """Binary handle with a declared MIME type, held fully in memory."""

    content: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.content, (bytes, bytearray, memoryview)):
            raise DomainValidationException(
                "File content must be bytes",
                field="content",
                details={"type": type(self.content).__name__},
            )

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadRequest:
    file: LocalFile
    kind: UploadKind
    # already stripped; sent as-is in the Authorization header
    access_token: str = field(default="", repr=False)

    @property
    def content_type(self) -> str:
        return self.file.content_type or ""

    @property
    def byte_size(self) -> int:
        return self.file.size


@dataclass(frozen=True)
class SignedUploadGrant:
    """Authorization for exactly one PUT; consumed immediately, never cached."""

    upload_url: str
    object_key: str
    bucket: str
    public_url: Optional[str] = None
    expires_in_seconds: Optional[int] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class TransferReceipt:
    status_code: int
    bytes_sent: int
    request_id: Optional[str] = None


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    confirmed_bytes: int
    url: Optional[str] = None
    request_id: Optional[str] = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class UploadOutcome:
    """What the caller persists on its owning record (profile, avatar, banner)."""

    kind: UploadKind
    bucket: str
    object_key: str
    public_url: Optional[str] = None
    expires_in_seconds: Optional[int] = None
    ok: bool = True

    @property
    def url(self) -> Optional[str]:
        return self.public_url

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "kind": self.kind.value,
            "bucket": self.bucket,
            "object_key": self.object_key,
            "url": self.public_url,
            "expires_in": self.expires_in_seconds,
        }


@dataclass(frozen=True)
class MediaUploadResult:
    """Result of the single-POST multipart upload."""

    url: Optional[str]
    filename: Optional[str] = None
    mime: Optional[str] = None
    raw: dict = field(default_factory=dict)
