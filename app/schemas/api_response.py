"""
app.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~

REST 接口的统一应答信封 ``{code, data, msg}``。

成功与失败走同一结构：业务异常由 ``app.main`` 中的异常处理器
转换为 ``ApiResponse.fail()``，``code`` 与 HTTP 状态码保持一致。
"""
from __future__ import annotations
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": {...}, "msg": "success"}
        {"code": 403, "data": null, "msg": "Forbidden: You are not a member of this server"}

    Attributes:
        code: 与 HTTP 状态码一致，成功为 200。
        data: 业务数据，失败时为 ``null``。
        msg: 面向客户端的英文提示。
    """

    code: int = Field(default=200, description="状态码（与 HTTP 状态码一致）")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="提示信息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str, code: int = 500, data: Any = None) -> ApiResponse[Any]:
        """失败响应，``code`` 由调用方传入对应的 HTTP 状态码。"""
        return cls(code=code, data=data, msg=msg)
