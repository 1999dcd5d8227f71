"""
Upload specific codes.
"""
from __future__ import annotations

from enum import IntEnum


class UploadCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Pre-flight validation (7xxxx)
    AUTHENTICATION_REQUIRED = 70001
    MISSING_FILE = 70002
    INVALID_UPLOAD_KIND = 70003
    FILE_TOO_LARGE = 70004
    FILE_TOO_SMALL = 70005
    UNSUPPORTED_MEDIA_TYPE = 70006

    # Remote protocol failures (71xxx)
    SIGNING_FAILED = 71001
    INCOMPLETE_SIGNING_RESPONSE = 71002
    UPLOAD_TRANSPORT_ERROR = 71003
    UPLOAD_TIMED_OUT = 71004
    VERIFICATION_FAILED = 71005
    UPLOAD_REQUEST_FAILED = 71006


__all__ = ["UploadCode"]
