"""Backend client for the upload endpoints (sign, verify, multipart, health)."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .base import APIResponse, BaseAPIClient


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SignUploadRequest(BaseModel):
    bucket: str
    content_type: str
    bytes: int


class SignUploadResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    upload_url: Optional[str] = None
    object_key: Optional[str] = None
    public_url: Optional[str] = None
    bucket: Optional[str] = None
    expires_in: Optional[int] = None
    request_id: Optional[str] = None

    @field_validator("upload_url", "object_key", "public_url", "bucket", "request_id", mode="before")
    @classmethod
    def _strings(cls, v):
        return _optional_str(v)

    @field_validator("expires_in", mode="before")
    @classmethod
    def _expires(cls, v):
        return _optional_int(v)


class VerifyUploadRequest(BaseModel):
    kind: str
    object_key: str
    expected_bytes: int


class VerifyUploadResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    ok: bool = False
    remote_bytes: Optional[int] = None
    url: Optional[str] = None
    request_id: Optional[str] = None

    @field_validator("ok", mode="before")
    @classmethod
    def _strict_true(cls, v):
        # only a literal JSON true counts as confirmation
        return v is True

    @field_validator("remote_bytes", mode="before")
    @classmethod
    def _ints(cls, v):
        return _optional_int(v)

    @field_validator("url", "request_id", mode="before")
    @classmethod
    def _strings(cls, v):
        return _optional_str(v)


class UploadsAPIClient(BaseAPIClient):
    """Bearer-authenticated calls to the platform's upload endpoints.

    The access token is passed per call rather than stored on the client, so
    one client can serve uploads for different sessions.
    """

    SIGN_ENDPOINT = "uploads/sign"
    VERIFY_ENDPOINT = "uploads/verify"
    UPLOAD_ENDPOINT = "uploads"
    HEALTH_ENDPOINT = "health"

    async def sign(
        self,
        access_token: str,
        *,
        bucket: str,
        content_type: str,
        byte_size: int,
    ) -> tuple[SignUploadResponse, APIResponse]:
        payload = SignUploadRequest(bucket=bucket, content_type=content_type, bytes=byte_size)
        return await self.post_typed(
            self.SIGN_ENDPOINT,
            SignUploadResponse,
            json_data=payload,
            headers=self.bearer(access_token),
        )

    async def verify(
        self,
        access_token: str,
        *,
        kind: str,
        object_key: str,
        expected_bytes: int,
    ) -> tuple[VerifyUploadResponse, APIResponse]:
        payload = VerifyUploadRequest(kind=kind, object_key=object_key, expected_bytes=expected_bytes)
        return await self.post_typed(
            self.VERIFY_ENDPOINT,
            VerifyUploadResponse,
            json_data=payload,
            headers=self.bearer(access_token),
        )

    async def upload_multipart(
        self,
        access_token: str,
        *,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> APIResponse:
        files = {
            "file": (
                filename or "upload",
                bytes(content),
                content_type or "application/octet-stream",
            )
        }
        return await self.post(self.UPLOAD_ENDPOINT, files=files, headers=self.bearer(access_token))

    async def health(self) -> dict:
        response = await self.get(self.HEALTH_ENDPOINT)
        return response.data if isinstance(response.data, dict) else {}
