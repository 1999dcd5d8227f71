"""Pytest bootstrap configuration.

Pin environment variables that settings read before any test builds
them, and provide an in-memory fake of the upload backend and storage.
"""
import asyncio
import json
import os
import uuid
from typing import Any, Optional

# Settings must never pick up production guards from the host environment
os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("DEBUG", "false")

import httpx
import pytest

from core.config import BackendSettings, Settings, UploadSettings
from infrastructure.upload_client import UploadClient

BACKEND_URL = "http://backend.test"
STORAGE_URL = "https://storage.test"


class FakeUploadPlatform:
    """Routes backend and storage requests to canned responses and records them."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.requests: dict[str, list[httpx.Request]] = {"sign": [], "put": [], "verify": [], "upload": [], "health": []}
        self.bodies: dict[str, list[Any]] = {"sign": [], "put": [], "verify": [], "upload": []}

        self.sign_status = 200
        self.sign_body: Optional[dict] = None  # None -> generated grant
        self.sign_headers: dict[str, str] = {}
        self.sign_error: Optional[Exception] = None
        self.put_status = 200
        self.put_delay = 0.0
        self.put_error: Optional[Exception] = None
        self.verify_status = 200
        self.verify_body: Optional[dict] = None  # None -> ok with remote_bytes = expected
        self.verify_error: Optional[Exception] = None
        self.upload_status = 200
        self.upload_body: dict = {"url": "/uploads/abc.png", "filename": "abc.png", "mime": "image/png"}

    # ------------------------------------------------------------------
    def grant_for(self, bucket: str) -> dict:
        key = f"{bucket}/{uuid.uuid4()}.png"
        return {
            "upload_url": f"{STORAGE_URL}/object/upload/sign/{key}?token=abc",
            "object_key": key,
            "public_url": f"{STORAGE_URL}/object/public/{key}",
            "bucket": bucket,
            "expires_in": 600,
        }

    async def api_handler(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        path = request.url.path
        if path == "/uploads/sign":
            payload = json.loads(body)
            self.calls.append(("sign", str(request.url)))
            self.requests["sign"].append(request)
            self.bodies["sign"].append(payload)
            if self.sign_error is not None:
                raise self.sign_error
            data = self.sign_body if self.sign_body is not None else self.grant_for(payload["bucket"])
            return httpx.Response(self.sign_status, json=data, headers=self.sign_headers)
        if path == "/uploads/verify":
            payload = json.loads(body)
            self.calls.append(("verify", str(request.url)))
            self.requests["verify"].append(request)
            self.bodies["verify"].append(payload)
            if self.verify_error is not None:
                raise self.verify_error
            data = self.verify_body
            if data is None:
                data = {"ok": True, "remote_bytes": payload["expected_bytes"], "expected_bytes": payload["expected_bytes"]}
            return httpx.Response(self.verify_status, json=data, headers={"x-request-id": "verify-rid"})
        if path == "/uploads":
            self.calls.append(("upload", str(request.url)))
            self.requests["upload"].append(request)
            self.bodies["upload"].append(body)
            return httpx.Response(self.upload_status, json=self.upload_body)
        if path == "/health":
            self.calls.append(("health", str(request.url)))
            self.requests["health"].append(request)
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404, json={"error": "not found"})

    async def storage_handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(("put", str(request.url)))
        self.requests["put"].append(request)
        if self.put_error is not None:
            raise self.put_error
        if self.put_delay:
            await asyncio.sleep(self.put_delay)
        body = await request.aread()
        self.bodies["put"].append(body)
        return httpx.Response(self.put_status, text="" if self.put_status < 300 else "denied")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_settings(**upload_overrides: Any) -> Settings:
    return Settings(
        backend=BackendSettings(base_url=BACKEND_URL, max_retries=0, retry_delay=0.001),
        uploads=UploadSettings(**upload_overrides),
    )


@pytest.fixture
def platform() -> FakeUploadPlatform:
    return FakeUploadPlatform()


@pytest.fixture
def client_factory(platform):
    def _build(settings: Optional[Settings] = None, **kwargs: Any) -> UploadClient:
        return UploadClient(
            settings or make_settings(chunk_size=256 * 1024),
            api_transport=httpx.MockTransport(platform.api_handler),
            storage_transport=httpx.MockTransport(platform.storage_handler),
            **kwargs,
        )

    return _build
