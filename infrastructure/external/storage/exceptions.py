"""Storage transfer exceptions."""
from typing import Optional


class StorageError(Exception):
    """Base storage exception."""
    pass


class TransferError(StorageError):
    """Signed-URL PUT rejected by storage or lost in transport."""

    def __init__(self, message: str, status_code: Optional[int] = None, request_id: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(message)


class TransferTimeoutError(StorageError):
    """Signed-URL PUT did not finish within the allowed time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Transfer timed out after {timeout:g}s")
