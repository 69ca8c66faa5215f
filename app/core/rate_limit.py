"""
app.core.rate_limit
~~~~~~~~~~~~~~~~~~~

HTTP 接口限流配置（slowapi）。

基于客户端 IP 计数，使用进程内存存储；测试环境下关闭，避免用例之间互相影响。
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=not settings.is_test,
)
