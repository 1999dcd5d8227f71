"""Signed direct-upload orchestration (application/services).

One call walks ``validating → signing → transferring → verifying`` in order.
Each step consumes the previous step's output, so the steps are awaited one
after another and never concurrently. Nothing is kept between calls; a failed
attempt is restarted from signing by the caller.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from application.ports.uploads import (
    BackendCallError,
    FailureReporter,
    ObjectTransferError,
    ObjectTransferPort,
    ObjectTransferTimeout,
    ProgressCallback,
    UploadBackendPort,
    UploadFailureReport,
)
from core.logging_config import get_logger
from core.request_context import bind_request_id
from domain.common.exceptions import (
    IncompleteSigningResponseException,
    SigningFailedException,
    UploadException,
    UploadTimedOutException,
    UploadTransportException,
    VerificationFailedException,
)
from domain.upload import (
    LocalFile,
    SignedUploadGrant,
    UploadKind,
    UploadOutcome,
    UploadPolicy,
    UploadRequest,
    UploadStage,
    VerificationResult,
)

logger = get_logger(__name__)

DEFAULT_TRANSFER_TIMEOUT = 30.0


def _status_message(prefix: str, exc: BackendCallError) -> str:
    if exc.server_message:
        return exc.server_message
    if exc.status_code is not None:
        return f"{prefix}: {exc.status_code}"
    if exc.timed_out:
        return f"{prefix}: request timed out"
    return f"{prefix}: network error"


@dataclass
class _UploadRun:
    """Stage tracker for a single invocation."""

    stage: UploadStage = UploadStage.IDLE
    kind: Optional[UploadKind] = None

    def advance(self, stage: UploadStage) -> None:
        logger.debug("Direct upload stage", previous=self.stage.value, stage=stage.value)
        self.stage = stage


class DirectUploadService:
    """Coordinates sign → PUT → verify for avatar and banner uploads.

    The returned outcome is not persisted here; the caller stores
    ``public_url``/``object_key`` on whatever record owns the media.
    """

    def __init__(
        self,
        backend: UploadBackendPort,
        transfer: ObjectTransferPort,
        policy: Optional[UploadPolicy] = None,
        *,
        transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT,
        reporter: Optional[FailureReporter] = None,
    ):
        self._backend = backend
        self._transfer = transfer
        self._policy = policy or UploadPolicy()
        self._transfer_timeout = transfer_timeout
        self._reporter = reporter

    async def upload_direct(
        self,
        file: Optional[LocalFile],
        *,
        access_token: Optional[str],
        kind: object,
        max_bytes: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> UploadOutcome:
        """Upload ``file`` straight to storage and confirm the stored size.

        Args:
            file: the local file handle
            access_token: bearer token for the sign and verify calls
            kind: ``avatar`` or ``banner`` (case and ``_``/``-`` insensitive)
            max_bytes: overrides the policy's size ceiling
            on_progress: receives 0-100 as bytes are handed to the transport
            timeout: total seconds allowed for the PUT step

        Raises:
            UploadException: a subclass naming the failure; ``stage`` tells
                where it happened
        """
        run = _UploadRun()
        with bind_request_id():
            try:
                run.advance(UploadStage.VALIDATING)
                request = self._policy.validate_direct(
                    file,
                    access_token=access_token,
                    kind=kind,
                    max_bytes=max_bytes,
                )
                run.kind = request.kind
                token = request.access_token

                run.advance(UploadStage.SIGNING)
                grant = await self._sign(request, token)

                run.advance(UploadStage.TRANSFERRING)
                await self._put(request, grant, timeout=timeout, on_progress=on_progress)

                run.advance(UploadStage.VERIFYING)
                verification = await self._verify(request, grant, token)

                run.advance(UploadStage.DONE)
            except UploadException as exc:
                if exc.stage is None:
                    exc.stage = run.stage.value
                run.advance(UploadStage.FAILED)
                self._report(exc, run)
                raise

            logger.info(
                "Direct upload verified",
                kind=request.kind.value,
                bucket=grant.bucket,
                object_key=grant.object_key,
                bytes=verification.confirmed_bytes,
            )
            return UploadOutcome(
                kind=request.kind,
                bucket=grant.bucket,
                object_key=grant.object_key,
                public_url=grant.public_url,
                expires_in_seconds=grant.expires_in_seconds,
            )

    # ------------------------------------------------------------------
    # Protocol steps
    # ------------------------------------------------------------------
    async def _sign(self, request: UploadRequest, access_token: str) -> SignedUploadGrant:
        bucket = self._policy.bucket_for(request.kind)
        try:
            result = await self._backend.sign(
                access_token,
                bucket=bucket,
                content_type=request.content_type,
                byte_size=request.byte_size,
            )
        except BackendCallError as exc:
            raise SigningFailedException(
                _status_message("Upload signing failed", exc),
                status_code=exc.status_code,
                request_id=exc.request_id,
                stage=UploadStage.SIGNING.value,
            ) from exc

        missing = [
            name
            for name, value in (("upload_url", result.upload_url), ("object_key", result.object_key))
            if not value
        ]
        if missing:
            raise IncompleteSigningResponseException(
                missing,
                request_id=result.request_id,
                stage=UploadStage.SIGNING.value,
            )

        logger.debug("Upload signed", object_key=result.object_key, upstream_request_id=result.request_id)
        return SignedUploadGrant(
            upload_url=str(result.upload_url),
            object_key=str(result.object_key),
            bucket=result.bucket or bucket,
            public_url=result.public_url,
            expires_in_seconds=result.expires_in,
            request_id=result.request_id,
        )

    async def _put(
        self,
        request: UploadRequest,
        grant: SignedUploadGrant,
        *,
        timeout: Optional[float],
        on_progress: Optional[ProgressCallback],
    ) -> None:
        limit = timeout if timeout is not None else self._transfer_timeout
        try:
            receipt = await self._transfer.put(
                grant.upload_url,
                bytes(request.file.content),
                request.content_type,
                timeout=limit,
                on_progress=on_progress,
            )
        except ObjectTransferTimeout as exc:
            raise UploadTimedOutException(exc.timeout, stage=UploadStage.TRANSFERRING.value) from exc
        except ObjectTransferError as exc:
            raise UploadTransportException(
                exc.message,
                status_code=exc.status_code,
                request_id=exc.request_id,
                stage=UploadStage.TRANSFERRING.value,
            ) from exc
        logger.debug("Upload transferred", object_key=grant.object_key, bytes=receipt.bytes_sent)

    async def _verify(
        self,
        request: UploadRequest,
        grant: SignedUploadGrant,
        access_token: str,
    ) -> VerificationResult:
        try:
            result = await self._backend.verify(
                access_token,
                kind=request.kind.value,
                object_key=grant.object_key,
                expected_bytes=request.byte_size,
            )
        except BackendCallError as exc:
            raise VerificationFailedException(
                _status_message("Upload verification failed", exc),
                status_code=exc.status_code,
                request_id=exc.request_id,
                stage=UploadStage.VERIFYING.value,
            ) from exc

        if not result.ok:
            # the object may exist in storage but is not considered valid
            raise VerificationFailedException(
                "Upload verification failed: stored object does not match the uploaded file",
                request_id=result.request_id,
                details={
                    "object_key": grant.object_key,
                    "expected_bytes": request.byte_size,
                    "remote_bytes": result.remote_bytes,
                },
                stage=UploadStage.VERIFYING.value,
            )

        return VerificationResult(
            ok=True,
            confirmed_bytes=result.remote_bytes if result.remote_bytes is not None else request.byte_size,
            url=result.url,
            request_id=result.request_id,
            raw=result.raw,
        )

    def _report(self, exc: UploadException, run: _UploadRun) -> None:
        if self._reporter is None:
            return
        report = UploadFailureReport(
            stage=exc.stage or run.stage.value,
            error_type=exc.error_type,
            message=exc.message,
            kind=run.kind.value if run.kind else None,
            status_code=exc.status_code,
            request_id=exc.request_id,
        )
        try:
            self._reporter.report(report)
        except Exception:
            # the upload error below is what the caller needs to see
            logger.exception("Failure reporter raised")
