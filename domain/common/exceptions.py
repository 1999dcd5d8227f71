"""领域层业务异常定义，供领域、应用与基础设施使用。

上传协议的每一种失败都有独立的异常类型，error_type 字段与失败种类同名，
调用方可以按类型或按 error_type 字符串做映射。
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.upload_codes import UploadCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class UploadException(BusinessException):
    """上传失败基类：携带失败阶段、HTTP 状态码与请求追踪ID"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str,
        *,
        stage: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
        )
        self.stage = stage
        self.status_code = status_code
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


# ---------------------------------------------------------------------------
# Pre-flight failures (raised before any network call, never retried)
# ---------------------------------------------------------------------------
class AuthenticationRequiredException(UploadException):
    def __init__(self, stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.AUTHENTICATION_REQUIRED,
            message="Authentication required",
            error_type="AuthenticationRequired",
            stage=stage,
            field="access_token",
        )


class MissingFileException(UploadException):
    def __init__(self, stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.MISSING_FILE,
            message="File is required",
            error_type="MissingFile",
            stage=stage,
            field="file",
        )


class InvalidUploadKindException(UploadException):
    def __init__(self, kind: object, allowed: list[str], stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.INVALID_UPLOAD_KIND,
            message=f"Invalid upload kind: {kind!r}",
            error_type="InvalidUploadKind",
            stage=stage,
            details={"kind": kind if isinstance(kind, str) else repr(kind), "allowed": allowed},
            field="kind",
        )


def _format_limit(max_size: int) -> str:
    # 整 MB 显示为 "5MB"，不足 1MB 时显示字节数
    mib = 1024 * 1024
    if max_size >= mib and max_size % mib == 0:
        return f"{max_size // mib}MB"
    if max_size >= mib:
        return f"{max_size / mib:.1f}MB"
    return f"{max_size} bytes"


class FileTooLargeException(UploadException):
    def __init__(self, size: int, max_size: int, stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.FILE_TOO_LARGE,
            message=f"File too large. Max size is {_format_limit(max_size)}.",
            error_type="FileTooLarge",
            stage=stage,
            details={"size": size, "max_size": max_size},
            field="size",
        )


class FileTooSmallException(UploadException):
    def __init__(self, size: int, min_size: int, stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.FILE_TOO_SMALL,
            message=f"File too small ({size} bytes). Minimum size is {min_size} bytes.",
            error_type="FileTooSmall",
            stage=stage,
            details={"size": size, "min_size": min_size},
            field="size",
        )


class UnsupportedMediaTypeException(UploadException):
    def __init__(self, content_type: Optional[str], allowed: list[str], stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.UNSUPPORTED_MEDIA_TYPE,
            message="That file type is not supported.",
            error_type="UnsupportedMediaType",
            stage=stage,
            details={"content_type": content_type, "allowed": allowed},
            field="content_type",
        )


# ---------------------------------------------------------------------------
# Remote failures (raised after a network call, surfaced as a single error)
# ---------------------------------------------------------------------------
class SigningFailedException(UploadException):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(
            code=UploadCode.SIGNING_FAILED,
            message=message,
            error_type="SigningFailed",
            stage=stage,
            status_code=status_code,
            request_id=request_id,
        )


class IncompleteSigningResponseException(UploadException):
    def __init__(
        self,
        missing: list[str],
        *,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(
            code=UploadCode.INCOMPLETE_SIGNING_RESPONSE,
            message=f"Signing response missing {', '.join(missing)}",
            error_type="IncompleteSigningResponse",
            stage=stage,
            status_code=status_code,
            request_id=request_id,
            details={"missing": missing},
        )


class UploadTransportException(UploadException):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(
            code=UploadCode.UPLOAD_TRANSPORT_ERROR,
            message=message,
            error_type="UploadTransportError",
            stage=stage,
            status_code=status_code,
            request_id=request_id,
        )


class UploadTimedOutException(UploadException):
    def __init__(self, timeout: float, stage: Optional[str] = None):
        super().__init__(
            code=UploadCode.UPLOAD_TIMED_OUT,
            message=f"Upload timed out after {timeout:g}s",
            error_type="UploadTimedOut",
            stage=stage,
            details={"timeout": timeout},
        )


class VerificationFailedException(UploadException):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[dict] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(
            code=UploadCode.VERIFICATION_FAILED,
            message=message,
            error_type="VerificationFailed",
            stage=stage,
            status_code=status_code,
            request_id=request_id,
            details=details,
        )


class UploadRequestFailedException(UploadException):
    """Single-POST media upload rejected by the backend."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            code=UploadCode.UPLOAD_REQUEST_FAILED,
            message=message,
            error_type="UploadRequestFailed",
            status_code=status_code,
            request_id=request_id,
        )
