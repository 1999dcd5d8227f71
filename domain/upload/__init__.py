"""Upload domain exports."""
from .entity import (
    LocalFile,
    MediaUploadResult,
    SignedUploadGrant,
    TransferReceipt,
    UploadKind,
    UploadOutcome,
    UploadRequest,
    UploadStage,
    VerificationResult,
)
from .policy import UploadPolicy, map_kind_to_bucket, normalize_kind

__all__ = [
    "LocalFile",
    "MediaUploadResult",
    "SignedUploadGrant",
    "TransferReceipt",
    "UploadKind",
    "UploadOutcome",
    "UploadRequest",
    "UploadStage",
    "VerificationResult",
    "UploadPolicy",
    "map_kind_to_bucket",
    "normalize_kind",
]
