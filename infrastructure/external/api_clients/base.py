"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 幂等请求（GET/HEAD）自动重试
- 类型化错误（状态码 + 服务端消息）
- 请求/响应日志（不记录 Authorization）
- 请求追踪ID透传
- 超时控制
"""
import asyncio
import json
from typing import Dict, Any, Optional, Union, Type, TypeVar
from dataclasses import dataclass
from enum import Enum
import httpx
from pydantic import BaseModel
import logging
from datetime import datetime

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from core.request_context import REQUEST_ID_HEADER, get_request_id, new_request_id

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)

class HTTPMethod(Enum):
    """HTTP方法枚举"""
    GET = "GET"
    POST = "POST"

IDEMPOTENT_METHODS = {"GET", "HEAD"}

def extract_request_id(headers: Dict[str, str], data: Any) -> Optional[str]:
    """从响应头或响应体中提取请求追踪ID"""
    if isinstance(data, dict):
        rid = data.get("request_id") or data.get("requestId")
        if rid:
            return str(rid)
    for key, value in headers.items():
        if key.lower() == "x-request-id" and value:
            return value
    return None

def extract_server_message(data: Any) -> Optional[str]:
    """提取服务端错误消息，没有则返回None"""
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None

@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        """判断请求是否成功"""
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        """判断请求是否失败"""
        return not self.is_success


class APIError(Exception):
    """API错误基类

    status_code 为 None 表示请求未拿到响应（超时、网络错误）。
    """
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None,
        server_message: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        self.server_message = server_message
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)

class RateLimitError(APIError):
    """速率限制错误"""
    pass

class AuthenticationError(APIError):
    """认证错误"""
    pass

class NotFoundError(APIError):
    """资源未找到错误"""
    pass

class ServerError(APIError):
    """服务器错误"""
    pass

class APITimeoutError(APIError):
    """请求超时"""
    pass

class APINetworkError(APIError):
    """网络错误（未拿到响应）"""
    pass

class RetryableAPIError(APIError):
    """可重试的API错误"""

    def __init__(self, message: str, status_code: Optional[int], response: Optional['APIResponse'], retry_after: Optional[float] = None):
        super().__init__(message=message, status_code=status_code, response=response, request_id=response.request_id if response else None)
        self.retry_after = retry_after

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

class BaseAPIClient:
    """
    REST API客户端基类

    提供通用的HTTP请求功能，子类可以继承并实现具体的API调用
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        max_retries: int = 0,
        retry_delay: float = 0.5,
        verify_ssl: bool = True,
        debug: bool = False,
        user_agent: str = "direct-upload-client/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化API客户端

        Args:
            base_url: API基础URL
            timeout: 请求超时时间（秒）
            max_retries: 幂等请求的最大重试次数
            retry_delay: 重试延迟（秒）
            verify_ssl: 是否验证SSL证书
            debug: 是否开启调试模式
            user_agent: User-Agent 请求头
            transport: 自定义 httpx transport（测试时注入 MockTransport）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.verify_ssl = verify_ssl
        self.debug = debug
        self._transport = transport

        # Content-Type 交给 httpx 按 json/files 自动设置
        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": user_agent,
        }

        self._client: Optional[httpx.AsyncClient] = None

    @staticmethod
    def bearer(token: str) -> Dict[str, str]:
        """单次请求的 Bearer 认证头"""
        return {"Authorization": f"Bearer {token}"}

    @property
    async def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        """构建完整URL"""
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _log_request(self, method: str, url: str, **kwargs):
        """记录请求日志"""
        if self.debug:
            logger.debug(
                f"API Request: {method} {url}",
                extra={
                    "method": method,
                    "url": url,
                    "params": kwargs.get("params"),
                    "json": kwargs.get("json"),
                    "headers": {k: v for k, v in kwargs.get("headers", {}).items()
                              if k.lower() != "authorization"}
                }
            )

    def _log_response(self, response: APIResponse):
        """记录响应日志"""
        if self.debug:
            logger.debug(
                f"API Response: {response.status_code}",
                extra={
                    "status_code": response.status_code,
                    "elapsed_ms": response.elapsed_ms,
                    "request_id": response.request_id,
                    "data": response.data if response.is_success else None
                }
            )

    def _handle_error_response(self, status_code: int, response: APIResponse):
        """处理错误响应"""
        error_map = {
            401: AuthenticationError,
            403: AuthenticationError,
            404: NotFoundError,
            429: RateLimitError,
            500: ServerError,
            502: ServerError,
            503: ServerError,
            504: ServerError
        }

        error_class = error_map.get(status_code, APIError)
        server_message = extract_server_message(response.data)

        raise error_class(
            message=server_message or f"API request failed with status {status_code}",
            status_code=status_code,
            response=response,
            request_id=response.request_id,
            server_message=server_message,
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> APIResponse:
        """
        发送HTTP请求

        Args:
            method: HTTP方法
            endpoint: API端点
            params: 查询参数
            json_data: JSON数据
            data: 表单数据
            headers: 请求头
            files: 上传文件
            **kwargs: 其他httpx参数

        Returns:
            APIResponse: API响应（2xx）

        Raises:
            APIError: API错误（非2xx、超时、网络错误）
        """
        if isinstance(method, HTTPMethod):
            method = method.value

        url = self._build_url(endpoint)

        # 合并请求头，并透传追踪ID
        request_headers = {**self.default_headers}
        if headers:
            request_headers.update(headers)
        request_headers.setdefault(REQUEST_ID_HEADER, get_request_id() or new_request_id())

        if json_data is not None and isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(exclude_none=True)

        self._log_request(method, url, params=params, json=json_data, headers=request_headers)

        async def _send_once() -> APIResponse:
            start_time = datetime.now()
            client = await self.client
            response = await client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                data=data,
                headers=request_headers,
                files=files,
                **kwargs
            )

            elapsed = (datetime.now() - start_time).total_seconds() * 1000

            content_type = response.headers.get("content-type", "")
            response_data = None

            if "json" in content_type:
                try:
                    response_data = response.json()
                except (json.JSONDecodeError, UnicodeDecodeError):
                    response_data = None

            response_headers = dict(response.headers)
            api_response = APIResponse(
                status_code=response.status_code,
                headers=response_headers,
                data=response_data,
                elapsed_ms=elapsed,
                request_id=extract_request_id(response_headers, response_data),
            )

            self._log_response(api_response)

            if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES and method in IDEMPOTENT_METHODS:
                retry_after: Optional[float] = None
                if api_response.status_code == 429:
                    retry_header = api_response.headers.get("retry-after")
                    try:
                        if retry_header:
                            retry_after = float(retry_header)
                    except (TypeError, ValueError):
                        retry_after = None
                    if retry_after:
                        await asyncio.sleep(retry_after)

                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    retry_after=retry_after,
                )

            if api_response.is_error:
                self._handle_error_response(api_response.status_code, api_response)

            return api_response

        # 非幂等请求（POST 签名/校验等）只发送一次，由调用方决定是否整体重试
        attempts = self.max_retries + 1 if method in IDEMPOTENT_METHODS else 1
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=before_sleep_log(logger, logging.WARNING)
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise APITimeoutError(f"Request timeout after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise APINetworkError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            if exc.response:
                self._handle_error_response(exc.status_code or exc.response.status_code, exc.response)
            raise APIError(exc.message) from exc
        except APIError:
            raise
        except Exception as exc:
            logger.error(f"Unexpected error during API request: {exc}")
            raise APIError(f"Unexpected error: {exc}") from exc

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        """GET请求"""
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        """POST请求"""
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)

    async def post_typed(self, endpoint: str, response_model: Type[T], **kwargs) -> tuple[T, APIResponse]:
        """发送POST请求并返回类型化响应（同时返回原始响应以便读取追踪ID）"""
        response = await self.post(endpoint, **kwargs)
        body = response.data if isinstance(response.data, dict) else {}
        return response_model.model_validate(body), response
