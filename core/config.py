"""
配置文件 - 项目配置管理
"""
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_BACKEND = "http://localhost:3001"


class BackendSettings(BaseModel):
    base_url: str = DEV_BACKEND
    # sign / verify / health are metadata-only calls
    timeout: float = 15.0
    # only applied to idempotent requests (GET/HEAD)
    max_retries: int = 2
    retry_delay: float = 0.5
    user_agent: str = "direct-upload-client/1.0"
    debug_http: bool = False
    verify_ssl: bool = True

    @field_validator("base_url", mode="before")
    @classmethod
    def _trim_base_url(cls, v):
        if v is None:
            return DEV_BACKEND
        s = str(v).strip().rstrip("/")
        return s or DEV_BACKEND


class UploadSettings(BaseModel):
    max_bytes: int = 5 * 1024 * 1024  # 5MB
    min_image_bytes: int = 1024
    transfer_timeout: float = 30.0
    chunk_size: int = 64 * 1024
    # 签名URL所在存储的证书校验（本地自签名存储可关闭）
    verify_ssl: bool = True
    image_content_types: list[str] = Field(
        default_factory=lambda: ["image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp"]
    )
    generic_content_types: list[str] = Field(
        default_factory=lambda: ["image/png", "image/jpeg", "image/jpg", "image/gif", "application/pdf"]
    )
    bucket_avatars: str = "avatars"
    bucket_banners: str = "banners"
    bucket_movement_media: str = "movement-media"
    # e.g. https://<project>.supabase.co/storage/v1/object/public
    public_storage_base: Optional[str] = None

    @field_validator("image_content_types", "generic_content_types", mode="before")
    @classmethod
    def _parse_types(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                import json
                try:
                    arr = json.loads(s)
                    if isinstance(arr, list):
                        return [str(item).strip().lower() for item in arr]
                except ValueError:
                    pass
            return [item.strip().lower() for item in s.split(",") if item.strip()]
        return v

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.max_bytes <= 0:
            raise ValueError("uploads.max_bytes 必须为正数")
        if self.min_image_bytes < 0 or self.min_image_bytes > self.max_bytes:
            raise ValueError("uploads.min_image_bytes 必须位于 [0, max_bytes] 区间")
        if self.transfer_timeout <= 0:
            raise ValueError("uploads.transfer_timeout 必须为正数")
        return self


class Settings(BaseSettings):
    """项目配置"""

    PROJECT_NAME: str = Field(default="Direct Upload Client")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")

    backend: BackendSettings = Field(default_factory=BackendSettings)
    uploads: UploadSettings = Field(default_factory=UploadSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() in {"prod", "production"}

    @model_validator(mode="after")
    def _validate_backend_base(self):
        # 生产环境禁止走相对路径或 /api 代理，必须直连后端源站
        if not self.is_production:
            return self
        parsed = urlparse(self.backend.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "backend.base_url 在生产环境必须是绝对 http(s) URL，不能使用 \"/api\" 之类的相对路径"
            )
        if (parsed.path or "").startswith("/api"):
            raise ValueError(
                "backend.base_url 在生产环境不能指向 /api 代理，请直接配置后端源站地址"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """构建并缓存配置；服务在构造时显式注入，不直接读取全局变量。"""
    return Settings()
