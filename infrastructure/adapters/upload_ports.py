"""Infrastructure adapters that implement the application upload ports
by delegating to the backend API client and the signed-URL transfer,
translating models and errors.
"""
from __future__ import annotations

from typing import Optional

from application.ports.uploads import (
    BackendCallError,
    FailureReporter,
    MultipartResult,
    ObjectTransferError,
    ObjectTransferPort,
    ObjectTransferTimeout,
    ProgressCallback,
    SignResult,
    UploadBackendPort,
    UploadFailureReport,
    VerifyResult,
)
from core.logging_config import get_logger
from domain.upload import TransferReceipt
from infrastructure.external.api_clients import APIError, APITimeoutError, UploadsAPIClient
from infrastructure.external.storage.exceptions import TransferError, TransferTimeoutError
from infrastructure.external.storage.signed_transfer import SignedURLTransfer

logger = get_logger(__name__)


def _to_backend_error(exc: APIError) -> BackendCallError:
    return BackendCallError(
        status_code=exc.status_code,
        server_message=exc.server_message,
        request_id=exc.request_id,
        timed_out=isinstance(exc, APITimeoutError),
    )


class UploadsBackendAdapter(UploadBackendPort):
    def __init__(self, client: UploadsAPIClient):
        self.client = client

    async def sign(
        self,
        access_token: str,
        *,
        bucket: str,
        content_type: str,
        byte_size: int,
    ) -> SignResult:
        try:
            body, response = await self.client.sign(
                access_token,
                bucket=bucket,
                content_type=content_type,
                byte_size=byte_size,
            )
        except APIError as exc:
            raise _to_backend_error(exc) from exc
        return SignResult(
            upload_url=body.upload_url,
            object_key=body.object_key,
            public_url=body.public_url,
            bucket=body.bucket,
            expires_in=body.expires_in,
            request_id=body.request_id or response.request_id,
        )

    async def verify(
        self,
        access_token: str,
        *,
        kind: str,
        object_key: str,
        expected_bytes: int,
    ) -> VerifyResult:
        try:
            body, response = await self.client.verify(
                access_token,
                kind=kind,
                object_key=object_key,
                expected_bytes=expected_bytes,
            )
        except APIError as exc:
            raise _to_backend_error(exc) from exc
        return VerifyResult(
            ok=body.ok,
            remote_bytes=body.remote_bytes,
            url=body.url,
            request_id=body.request_id or response.request_id,
            raw=body.model_dump(),
        )

    async def upload_multipart(
        self,
        access_token: str,
        *,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> MultipartResult:
        try:
            response = await self.client.upload_multipart(
                access_token,
                content=content,
                filename=filename,
                content_type=content_type,
            )
        except APIError as exc:
            raise _to_backend_error(exc) from exc
        body = response.data if isinstance(response.data, dict) else {}
        return MultipartResult(body=body, request_id=response.request_id)


class SignedTransferAdapter(ObjectTransferPort):
    def __init__(self, transfer: SignedURLTransfer):
        self.transfer = transfer

    async def put(
        self,
        upload_url: str,
        content: bytes,
        content_type: str,
        *,
        timeout: float,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferReceipt:
        try:
            return await self.transfer.put(
                upload_url,
                content,
                content_type,
                timeout=timeout,
                on_progress=on_progress,
            )
        except TransferTimeoutError as exc:
            raise ObjectTransferTimeout(exc.timeout) from exc
        except TransferError as exc:
            raise ObjectTransferError(exc.message, status_code=exc.status_code, request_id=exc.request_id) from exc


class LoggingFailureReporter(FailureReporter):
    """Default diagnostics sink: one structured warning per failed upload."""

    def report(self, failure: UploadFailureReport) -> None:
        logger.warning(
            "Direct upload failed",
            stage=failure.stage,
            error_type=failure.error_type,
            error=failure.message,
            kind=failure.kind,
            status_code=failure.status_code,
            upstream_request_id=failure.request_id,
        )
