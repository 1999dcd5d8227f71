"""Single-POST multipart upload for movement evidence/media."""
from __future__ import annotations

from typing import Optional

from application.ports.uploads import BackendCallError, UploadBackendPort
from application.utils.media_urls import to_render_url
from core.logging_config import get_logger
from domain.common.exceptions import UploadRequestFailedException
from domain.upload import LocalFile, MediaUploadResult, UploadPolicy

logger = get_logger(__name__)


class MediaUploadService:
    """Uploads through the backend (``POST /uploads``) instead of a signed URL."""

    def __init__(self, backend: UploadBackendPort, base_url: str, policy: Optional[UploadPolicy] = None):
        self._backend = backend
        self._base_url = base_url.rstrip("/")
        self._policy = policy or UploadPolicy()

    async def upload_file(self, file: Optional[LocalFile], *, access_token: Optional[str]) -> MediaUploadResult:
        checked, token = self._policy.validate_generic(file, access_token=access_token)
        try:
            result = await self._backend.upload_multipart(
                token,
                content=bytes(checked.content),
                filename=checked.filename,
                content_type=checked.content_type,
            )
        except BackendCallError as exc:
            if exc.server_message:
                message = exc.server_message
            elif exc.status_code is not None:
                message = f"Upload failed: {exc.status_code}"
            else:
                message = "Upload failed: network error"
            raise UploadRequestFailedException(
                message,
                status_code=exc.status_code,
                request_id=exc.request_id,
            ) from exc

        body = result.body
        file_url = None
        for key in ("url", "file_url", "path"):
            if body.get(key):
                file_url = str(body[key])
                break

        url = to_render_url(file_url, self._base_url)
        logger.info("Media uploaded", url=url, bytes=checked.size, request_id=result.request_id)
        return MediaUploadResult(
            url=url,
            filename=body.get("filename") or checked.filename,
            mime=body.get("mime") or checked.content_type,
            raw=body,
        )
