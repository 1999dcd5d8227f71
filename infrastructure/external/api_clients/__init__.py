"""
API客户端模块

提供与平台后端上传接口集成的客户端实现
"""
from .base import BaseAPIClient, APIResponse, APIError, APITimeoutError
from .uploads import UploadsAPIClient, SignUploadResponse, VerifyUploadResponse

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "APITimeoutError",
    "UploadsAPIClient",
    "SignUploadResponse",
    "VerifyUploadResponse",
]
