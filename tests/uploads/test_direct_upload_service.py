import asyncio
import json

import httpx
import pytest
from structlog.testing import capture_logs

from application.ports.uploads import UploadFailureReport
from conftest import STORAGE_URL, make_settings
from domain.common.exceptions import (
    AuthenticationRequiredException,
    FileTooLargeException,
    FileTooSmallException,
    IncompleteSigningResponseException,
    InvalidUploadKindException,
    MissingFileException,
    SigningFailedException,
    UnsupportedMediaTypeException,
    UploadTimedOutException,
    UploadTransportException,
    VerificationFailedException,
)
from domain.upload import LocalFile, UploadKind

TWO_MB = 2 * 1024 * 1024
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def png(size: int = TWO_MB) -> LocalFile:
    return LocalFile(content=PNG_HEADER + b"\0" * (size - len(PNG_HEADER)), content_type="image/png", filename="me.png")


class RecordingReporter:
    def __init__(self):
        self.reports: list[UploadFailureReport] = []

    def report(self, failure: UploadFailureReport) -> None:
        self.reports.append(failure)


@pytest.mark.asyncio
async def test_avatar_upload_signs_puts_and_verifies(platform, client_factory):
    async with client_factory() as client:
        outcome = await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert platform.call_names() == ["sign", "put", "verify"]

    signed_key = platform.bodies["verify"][0]["object_key"]
    assert outcome.ok is True
    assert outcome.kind is UploadKind.AVATAR
    assert outcome.bucket == "avatars"
    assert outcome.object_key == signed_key
    assert outcome.url == f"{STORAGE_URL}/object/public/{signed_key}"
    assert outcome.expires_in_seconds == 600
    assert outcome.to_dict()["url"] == outcome.public_url


@pytest.mark.asyncio
async def test_each_step_uses_the_previous_steps_output(platform, client_factory):
    file = png()
    async with client_factory() as client:
        await client.direct.upload_direct(file, access_token="tok", kind="avatar")

    assert platform.bodies["sign"][0] == {"bucket": "avatars", "content_type": "image/png", "bytes": TWO_MB}
    sign_request = platform.requests["sign"][0]
    assert sign_request.headers["authorization"] == "Bearer tok"
    assert sign_request.headers["x-request-id"]

    put_request = platform.requests["put"][0]
    assert str(put_request.url).startswith(f"{STORAGE_URL}/object/upload/sign/avatars/")
    assert put_request.headers["content-type"] == "image/png"
    assert put_request.headers["content-length"] == str(TWO_MB)
    assert "authorization" not in put_request.headers
    assert platform.bodies["put"][0] == file.content

    verify = platform.bodies["verify"][0]
    assert verify["kind"] == "avatar"
    assert verify["expected_bytes"] == TWO_MB
    assert str(put_request.url).split("/object/upload/sign/")[1].startswith(verify["object_key"])
    assert platform.requests["verify"][0].headers["authorization"] == "Bearer tok"
    # backend calls of one upload share a correlation id
    assert platform.requests["verify"][0].headers["x-request-id"] == sign_request.headers["x-request-id"]


@pytest.mark.asyncio
async def test_banner_kind_is_normalized(platform, client_factory):
    async with client_factory() as client:
        outcome = await client.direct.upload_direct(png(), access_token="tok", kind=" Banner ")

    assert outcome.kind is UploadKind.BANNER
    assert outcome.bucket == "banners"
    assert platform.bodies["sign"][0]["bucket"] == "banners"


@pytest.mark.asyncio
async def test_grant_bucket_falls_back_to_mapped_bucket(platform, client_factory):
    platform.sign_body = {"upload_url": f"{STORAGE_URL}/put/x", "object_key": "x.png"}
    async with client_factory() as client:
        outcome = await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert outcome.bucket == "avatars"
    assert outcome.public_url is None
    assert outcome.expires_in_seconds is None


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", ["movement-media", "document", "", None, 42])
async def test_invalid_kind_makes_no_network_calls(platform, client_factory, kind):
    async with client_factory() as client:
        with pytest.raises(InvalidUploadKindException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind=kind)

    assert info.value.error_type == "InvalidUploadKind"
    assert info.value.stage == "validating"
    assert platform.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "   "])
async def test_missing_token_fails_first(platform, client_factory, token):
    async with client_factory() as client:
        with pytest.raises(AuthenticationRequiredException):
            await client.direct.upload_direct(None, access_token=token, kind="nope")
    assert platform.calls == []


@pytest.mark.asyncio
async def test_missing_file(platform, client_factory):
    async with client_factory() as client:
        with pytest.raises(MissingFileException):
            await client.direct.upload_direct(None, access_token="tok", kind="avatar")
    assert platform.calls == []


@pytest.mark.asyncio
async def test_file_over_policy_limit(platform, client_factory):
    async with client_factory() as client:
        with pytest.raises(FileTooLargeException) as info:
            await client.direct.upload_direct(png(5 * 1024 * 1024 + 1), access_token="tok", kind="avatar")
    assert info.value.details["max_size"] == 5 * 1024 * 1024
    assert platform.calls == []


@pytest.mark.asyncio
async def test_caller_max_bytes_overrides_policy(platform, client_factory):
    async with client_factory() as client:
        with pytest.raises(FileTooLargeException):
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar", max_bytes=TWO_MB - 1)
    assert platform.calls == []


@pytest.mark.asyncio
async def test_placeholder_sized_image_rejected(platform, client_factory):
    async with client_factory() as client:
        with pytest.raises(FileTooSmallException):
            await client.direct.upload_direct(
                LocalFile(content=b"", content_type="image/png"), access_token="tok", kind="avatar"
            )
    assert platform.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("content_type", ["application/pdf", "text/html", None])
async def test_non_image_type_rejected(platform, client_factory, content_type):
    file = LocalFile(content=b"x" * 4096, content_type=content_type)
    async with client_factory() as client:
        with pytest.raises(UnsupportedMediaTypeException):
            await client.direct.upload_direct(file, access_token="tok", kind="banner")
    assert platform.calls == []


@pytest.mark.asyncio
async def test_sign_without_object_key_never_transfers(platform, client_factory):
    platform.sign_body = {"upload_url": f"{STORAGE_URL}/put/x"}
    async with client_factory() as client:
        with pytest.raises(IncompleteSigningResponseException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert info.value.details == {"missing": ["object_key"]}
    assert info.value.stage == "signing"
    assert platform.call_names() == ["sign"]


@pytest.mark.asyncio
async def test_sign_error_carries_server_message_and_is_not_retried(platform, client_factory):
    platform.sign_status = 500
    platform.sign_body = {"error": "Bucket not allowed"}
    platform.sign_headers = {"x-request-id": "sign-rid"}
    async with client_factory() as client:
        with pytest.raises(SigningFailedException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert info.value.message == "Bucket not allowed"
    assert info.value.status_code == 500
    assert info.value.request_id == "sign-rid"
    assert platform.call_names() == ["sign"]


@pytest.mark.asyncio
async def test_sign_error_without_message_uses_status(platform, client_factory):
    platform.sign_status = 401
    platform.sign_body = {}
    async with client_factory() as client:
        with pytest.raises(SigningFailedException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")
    assert info.value.message == "Upload signing failed: 401"


@pytest.mark.asyncio
async def test_rejected_put_skips_verify(platform, client_factory):
    platform.put_status = 403
    async with client_factory() as client:
        with pytest.raises(UploadTransportException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert info.value.status_code == 403
    assert info.value.error_type == "UploadTransportError"
    assert info.value.stage == "transferring"
    assert platform.call_names() == ["sign", "put"]


@pytest.mark.asyncio
async def test_put_network_error(platform, client_factory):
    platform.put_error = httpx.ConnectError("connection refused")
    async with client_factory() as client:
        with pytest.raises(UploadTransportException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")
    assert info.value.status_code is None
    assert "verify" not in platform.call_names()


@pytest.mark.asyncio
async def test_slow_put_times_out(platform, client_factory):
    platform.put_delay = 5.0
    async with client_factory() as client:
        with pytest.raises(UploadTimedOutException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar", timeout=0.05)

    assert info.value.stage == "transferring"
    assert "verify" not in platform.call_names()


@pytest.mark.asyncio
async def test_size_mismatch_fails_verification(platform, client_factory):
    platform.verify_body = {"ok": False, "error": "Size mismatch", "remote_bytes": 1024}
    async with client_factory() as client:
        with pytest.raises(VerificationFailedException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert info.value.error_type == "VerificationFailed"
    assert info.value.details["remote_bytes"] == 1024
    assert info.value.details["expected_bytes"] == TWO_MB
    assert platform.call_names() == ["sign", "put", "verify"]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"ok": "true"}, {"ok": 1}, {}, {"status": "ok"}])
async def test_only_literal_true_confirms(platform, client_factory, body):
    platform.verify_body = body
    async with client_factory() as client:
        with pytest.raises(VerificationFailedException):
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")


@pytest.mark.asyncio
async def test_verify_http_error(platform, client_factory):
    platform.verify_status = 502
    platform.verify_body = {"message": "storage unavailable"}
    async with client_factory() as client:
        with pytest.raises(VerificationFailedException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="banner")

    assert info.value.status_code == 502
    assert info.value.message == "storage unavailable"
    assert info.value.request_id == "verify-rid"


@pytest.mark.asyncio
async def test_repeated_uploads_get_independent_keys(platform, client_factory):
    file = png()
    async with client_factory() as client:
        first, second = await asyncio.gather(
            client.direct.upload_direct(file, access_token="tok", kind="avatar"),
            client.direct.upload_direct(file, access_token="tok", kind="avatar"),
        )
    assert first.object_key != second.object_key


@pytest.mark.asyncio
async def test_progress_reaches_100(platform, client_factory):
    seen: list[float] = []
    async with client_factory(make_settings(chunk_size=512 * 1024)) as client:
        await client.direct.upload_direct(png(), access_token="tok", kind="avatar", on_progress=seen.append)

    assert seen[0] == 0.0
    assert seen[-1] == 100.0
    assert seen == sorted(seen)
    # 2MB in 512KB chunks
    assert len(seen) == 5


@pytest.mark.asyncio
async def test_failures_are_reported_with_stage(platform, client_factory):
    platform.put_status = 500
    reporter = RecordingReporter()
    async with client_factory(reporter=reporter) as client:
        with pytest.raises(UploadTransportException):
            await client.direct.upload_direct(png(), access_token="tok", kind="banner")

    assert len(reporter.reports) == 1
    report = reporter.reports[0]
    assert report.stage == "transferring"
    assert report.error_type == "UploadTransportError"
    assert report.kind == "banner"
    assert report.status_code == 500


@pytest.mark.asyncio
async def test_broken_reporter_does_not_hide_upload_error(platform, client_factory):
    class Exploding:
        def report(self, failure):
            raise RuntimeError("sink down")

    platform.sign_body = {"object_key": "k"}
    async with client_factory(reporter=Exploding()) as client:
        with pytest.raises(IncompleteSigningResponseException):
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")


@pytest.mark.asyncio
async def test_sign_request_serializes_expected_fields(platform, client_factory):
    async with client_factory() as client:
        await client.direct.upload_direct(png(), access_token="tok", kind="avatar")
    raw = json.loads(platform.requests["sign"][0].content)
    assert set(raw) == {"bucket", "content_type", "bytes"}


@pytest.mark.asyncio
async def test_padded_token_is_sent_stripped(platform, client_factory):
    async with client_factory() as client:
        await client.direct.upload_direct(png(), access_token="  tok \n", kind="avatar")

    assert platform.requests["sign"][0].headers["authorization"] == "Bearer tok"
    assert platform.requests["verify"][0].headers["authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_sign_timeout_fails_signing_without_status(platform, client_factory):
    platform.sign_error = httpx.ReadTimeout("backend too slow")
    async with client_factory() as client:
        with pytest.raises(SigningFailedException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    assert info.value.message == "Upload signing failed: request timed out"
    assert info.value.status_code is None
    assert info.value.stage == "signing"
    assert platform.call_names() == ["sign"]


@pytest.mark.asyncio
async def test_verify_timeout_fails_verification_without_status(platform, client_factory):
    platform.verify_error = httpx.ReadTimeout("backend too slow")
    async with client_factory() as client:
        with pytest.raises(VerificationFailedException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="banner")

    assert info.value.message == "Upload verification failed: request timed out"
    assert info.value.status_code is None
    assert info.value.stage == "verifying"
    assert platform.call_names() == ["sign", "put", "verify"]


@pytest.mark.asyncio
async def test_failing_progress_callback_aborts_transfer(platform, client_factory):
    def on_progress(percent: float) -> None:
        raise RuntimeError("ui gone")

    reporter = RecordingReporter()
    async with client_factory(reporter=reporter) as client:
        with pytest.raises(UploadTransportException) as info:
            await client.direct.upload_direct(png(), access_token="tok", kind="avatar", on_progress=on_progress)

    assert info.value.stage == "transferring"
    assert info.value.message == "Upload failed: progress callback raised RuntimeError"
    assert "verify" not in platform.call_names()
    assert [r.stage for r in reporter.reports] == ["transferring"]


@pytest.mark.asyncio
async def test_default_reporter_logs_a_warning(platform, client_factory):
    platform.sign_status = 403
    platform.sign_body = {"error": "Forbidden bucket"}
    platform.sign_headers = {"x-request-id": "sign-rid"}
    async with client_factory() as client:
        with capture_logs() as logs:
            with pytest.raises(SigningFailedException):
                await client.direct.upload_direct(png(), access_token="tok", kind="avatar")

    warnings = [entry for entry in logs if entry["event"] == "Direct upload failed"]
    assert len(warnings) == 1
    entry = warnings[0]
    assert entry["log_level"] == "warning"
    assert entry["stage"] == "signing"
    assert entry["error_type"] == "SigningFailed"
    assert entry["error"] == "Forbidden bucket"
    assert entry["status_code"] == 403
    assert entry["upstream_request_id"] == "sign-rid"
    assert entry["kind"] == "avatar"
