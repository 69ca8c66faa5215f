"""
app.core.exceptions
~~~~~~~~~~~~~~~~~~~

业务异常体系。

HTTP 层抛出的 ``AppError`` 子类由 ``app.main`` 中的异常处理器统一转换为
``ApiResponse.fail()``；实时网关只使用其中的鉴权类异常和 ``ProtocolMisuseError``。
"""
from __future__ import annotations


class AppError(Exception):
    """所有业务异常的基类。

    Attributes:
        message: 返回给客户端的可读信息。
        status_code: 对应的 HTTP 状态码。
    """

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    """凭证缺失、无效、过期，或（网关握手时）不是该服务器成员。"""

    status_code = 401


class AuthorizationError(AppError):
    """已登录但没有执行该操作的权限。"""

    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class TransientDependencyError(AppError):
    """外部依赖（如 MongoDB）暂时不可用。"""

    status_code = 503


class ProtocolMisuseError(AppError):
    """客户端发来了无法解析或参数不合法的网关事件。"""

    status_code = 400
