"""Application-owned upload port abstractions (hexagonal architecture).

Defines the minimal calls the upload use cases need so that the
application layer does not depend on httpx or the backend client.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from domain.upload import TransferReceipt

ProgressCallback = Callable[[float], None]


class BackendCallError(Exception):
    """Typed failure of a backend call.

    ``status_code`` is None when no response was received (timeout, network).
    ``server_message`` is the backend's own error text, if it sent one.
    """

    def __init__(
        self,
        status_code: Optional[int],
        server_message: Optional[str],
        request_id: Optional[str] = None,
        *,
        timed_out: bool = False,
    ):
        self.status_code = status_code
        self.server_message = server_message
        self.request_id = request_id
        self.timed_out = timed_out
        super().__init__(server_message or f"Backend call failed: {status_code}")


class ObjectTransferError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, request_id: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(message)


class ObjectTransferTimeout(Exception):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Transfer timed out after {timeout:g}s")


@dataclass
class SignResult:
    """Raw signing response; completeness is checked by the caller."""
    upload_url: Optional[str]
    object_key: Optional[str]
    public_url: Optional[str] = None
    bucket: Optional[str] = None
    expires_in: Optional[int] = None
    request_id: Optional[str] = None


@dataclass
class VerifyResult:
    ok: bool
    remote_bytes: Optional[int] = None
    url: Optional[str] = None
    request_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class MultipartResult:
    body: dict[str, Any]
    request_id: Optional[str] = None


@dataclass
class UploadFailureReport:
    stage: str
    error_type: str
    message: str
    kind: Optional[str] = None
    status_code: Optional[int] = None
    request_id: Optional[str] = None


@runtime_checkable
class UploadBackendPort(Protocol):
    async def sign(
        self,
        access_token: str,
        *,
        bucket: str,
        content_type: str,
        byte_size: int,
    ) -> SignResult: ...

    async def verify(
        self,
        access_token: str,
        *,
        kind: str,
        object_key: str,
        expected_bytes: int,
    ) -> VerifyResult: ...

    async def upload_multipart(
        self,
        access_token: str,
        *,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> MultipartResult: ...


@runtime_checkable
class ObjectTransferPort(Protocol):
    async def put(
        self,
        upload_url: str,
        content: bytes,
        content_type: str,
        *,
        timeout: float,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferReceipt: ...


@runtime_checkable
class FailureReporter(Protocol):
    def report(self, failure: UploadFailureReport) -> None: ...
