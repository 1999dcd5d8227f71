"""
Request ID 上下文
用于生成或透传追踪ID，并通过contextvars传递给日志系统与出站请求头
"""
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

import structlog

REQUEST_ID_HEADER = "X-Request-ID"

# 定义context变量，用于在一次上传调用内共享request_id
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def new_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> Optional[str]:
    """
    获取当前上下文的request_id

    Returns:
        当前上下文绑定的request_id，如果未绑定则返回None
    """
    return request_id_var.get()


@contextmanager
def bind_request_id(request_id: Optional[str] = None) -> Iterator[str]:
    """
    在上下文内绑定request_id（未提供则复用外层或新生成），退出时恢复

    同时绑定到structlog上下文，保证日志行自动带上request_id
    """
    rid = request_id or get_request_id() or new_request_id()
    token = request_id_var.set(rid)
    with structlog.contextvars.bound_contextvars(request_id=rid):
        try:
            yield rid
        finally:
            request_id_var.reset(token)
