"""Service wiring and lifecycle for the upload client.

Assembles the upload policy from settings, builds the backend client and the
signed-URL transfer, and injects them into the application services.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.uploads import FailureReporter
from application.services.direct_upload_service import DirectUploadService
from application.services.media_upload_service import MediaUploadService
from application.utils.media_urls import to_render_url, uploads_path_to_public_url
from core.config import Settings, get_settings
from core.logging_config import get_logger
from domain.upload import UploadKind, UploadPolicy
from infrastructure.adapters.upload_ports import (
    LoggingFailureReporter,
    SignedTransferAdapter,
    UploadsBackendAdapter,
)
from infrastructure.external.api_clients import UploadsAPIClient
from infrastructure.external.storage.signed_transfer import SignedURLTransfer

logger = get_logger(__name__)


def build_upload_policy(settings: Settings) -> UploadPolicy:
    """Assemble UploadPolicy from settings (single source of truth)."""
    s = settings.uploads
    return UploadPolicy(
        max_bytes=s.max_bytes,
        min_image_bytes=s.min_image_bytes,
        image_content_types=tuple(t.lower() for t in s.image_content_types),
        generic_content_types=tuple(t.lower() for t in s.generic_content_types),
        buckets={
            UploadKind.AVATAR: s.bucket_avatars,
            UploadKind.BANNER: s.bucket_banners,
            UploadKind.MOVEMENT_MEDIA: s.bucket_movement_media,
        },
    )


class UploadClient:
    """Entry point for callers: ``async with UploadClient() as client: ...``.

    Args:
        settings: explicit configuration; defaults to ``get_settings()``
        reporter: failure diagnostics sink; defaults to structured logging
        api_transport: httpx transport for backend calls (tests inject a mock)
        storage_transport: httpx transport for signed PUTs
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        reporter: Optional[FailureReporter] = None,
        api_transport: Optional[httpx.AsyncBaseTransport] = None,
        storage_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        backend_cfg = self.settings.backend
        upload_cfg = self.settings.uploads

        self.policy = build_upload_policy(self.settings)
        self.api = UploadsAPIClient(
            base_url=backend_cfg.base_url,
            timeout=backend_cfg.timeout,
            max_retries=backend_cfg.max_retries,
            retry_delay=backend_cfg.retry_delay,
            user_agent=backend_cfg.user_agent,
            debug=backend_cfg.debug_http,
            verify_ssl=backend_cfg.verify_ssl,
            transport=api_transport,
        )
        backend = UploadsBackendAdapter(self.api)
        self.storage = SignedURLTransfer(
            chunk_size=upload_cfg.chunk_size,
            verify_ssl=upload_cfg.verify_ssl,
            transport=storage_transport,
        )
        transfer = SignedTransferAdapter(self.storage)

        self.direct = DirectUploadService(
            backend,
            transfer,
            self.policy,
            transfer_timeout=upload_cfg.transfer_timeout,
            reporter=reporter or LoggingFailureReporter(),
        )
        self.media = MediaUploadService(backend, backend_cfg.base_url, self.policy)

        logger.debug("Upload client initialized", base_url=backend_cfg.base_url)

    async def health(self) -> dict:
        return await self.api.health()

    def render_url(self, path_or_url: object) -> Optional[str]:
        return to_render_url(path_or_url, self.settings.backend.base_url)

    def public_url_for(self, value: object, kind_hint: Optional[str] = None) -> Optional[str]:
        buckets = {kind.value: bucket for kind, bucket in self.policy.buckets.items()}
        return uploads_path_to_public_url(
            value,
            public_storage_base=self.settings.uploads.public_storage_base,
            buckets=buckets,
            kind_hint=kind_hint,
        )

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self) -> "UploadClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
