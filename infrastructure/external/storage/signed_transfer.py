"""Direct-to-storage transfer through a pre-signed PUT URL."""
import asyncio
from typing import AsyncIterator, Callable, Optional

import httpx

from core.logging_config import get_logger
from domain.upload import TransferReceipt
from .exceptions import TransferError, TransferTimeoutError

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]

DEFAULT_CHUNK_SIZE = 64 * 1024


def _notify(on_progress: Optional[ProgressCallback], percent: float) -> None:
    """Invoke the caller's progress callback; a failing callback aborts the transfer."""
    if on_progress is None:
        return
    try:
        on_progress(percent)
    except Exception as exc:
        raise TransferError(
            f"Upload failed: progress callback raised {exc.__class__.__name__}"
        ) from exc


async def iter_chunks(
    content: bytes,
    chunk_size: int,
    on_progress: Optional[ProgressCallback] = None,
) -> AsyncIterator[bytes]:
    """Yield ``content`` in chunks, reporting percent sent once each chunk is consumed.

    The generator resumes only after the transport has taken the previous
    chunk, so progress tracks bytes handed to the socket.
    """
    total = len(content)
    view = memoryview(content)
    sent = 0
    _notify(on_progress, 0.0)
    while sent < total:
        chunk = bytes(view[sent:sent + chunk_size])
        yield chunk
        sent += len(chunk)
        _notify(on_progress, min(100.0, sent * 100.0 / total))
    if total == 0:
        _notify(on_progress, 100.0)


class SignedURLTransfer:
    """Performs the raw-bytes PUT to a signed storage URL.

    The signed URL carries its own authorization, so no Authorization header
    is ever sent. A fresh HTTP client is used per transfer; nothing is shared
    between concurrent uploads.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.verify_ssl = verify_ssl
        self._transport = transport

    async def put(
        self,
        upload_url: str,
        content: bytes,
        content_type: str,
        *,
        timeout: float,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferReceipt:
        """PUT ``content`` to ``upload_url``.

        Raises:
            TransferTimeoutError: the whole transfer exceeded ``timeout`` seconds
            TransferError: non-2xx status or transport failure
        """
        size = len(content)
        headers = {
            "Content-Type": content_type,
            "Content-Length": str(size),
        }

        async def _send() -> httpx.Response:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                verify=self.verify_ssl,
                transport=self._transport,
            ) as client:
                return await client.put(
                    upload_url,
                    content=iter_chunks(content, self.chunk_size, on_progress),
                    headers=headers,
                )

        try:
            response = await asyncio.wait_for(_send(), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise TransferTimeoutError(timeout) from exc
        except httpx.TransportError as exc:
            raise TransferError(f"Upload failed: network error ({exc.__class__.__name__})") from exc

        request_id = response.headers.get("x-request-id")
        if not 200 <= response.status_code < 300:
            snippet = response.text[:500] if response.content else ""
            logger.warning(
                "Signed PUT rejected",
                status_code=response.status_code,
                body=snippet or None,
                request_id=request_id,
            )
            raise TransferError(
                f"Upload failed: {response.status_code}",
                status_code=response.status_code,
                request_id=request_id,
            )

        return TransferReceipt(status_code=response.status_code, bytes_sent=size, request_id=request_id)
