"""
app.main
~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api import auth, channels, gateway_ws, servers
from app.core.exceptions import AppError, TransientDependencyError
from app.core.logging import get_logger, request_id_ctx_var, setup_logging
from app.core.rate_limit import limiter
from app.core.security import decode_token
from app.core.settings import settings
from app.db import close_mongo, connect_mongo
from app.db.channel_repository import ChannelRepository
from app.db.like_repository import LikeRepository
from app.db.membership_repository import MembershipRepository
from app.db.message_repository import MessageRepository
from app.db.server_repository import ServerRepository
from app.db.user_repository import UserRepository
from app.schemas.api_response import ApiResponse
from app.services.auth_service import AuthService
from app.services.channel_service import ChannelService
from app.services.gateway import ChatGateway
from app.services.handshake import HandshakeAuthenticator
from app.services.server_service import ServerService

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


def init_state(app: FastAPI, db: AsyncIOMotorDatabase) -> None:
    """构建仓库、业务服务与实时网关，挂载到 ``app.state``。"""
    users = UserRepository(db)
    servers_repo = ServerRepository(db)
    memberships = MembershipRepository(db)
    channels_repo = ChannelRepository(db)
    messages = MessageRepository(db)
    likes = LikeRepository(db)

    app.state.memberships = memberships
    app.state.auth_service = AuthService(users)
    app.state.server_service = ServerService(
        users, servers_repo, memberships, channels_repo, messages, likes,
    )
    app.state.channel_service = ChannelService(users, channels_repo, messages, likes)
    app.state.gateway = ChatGateway(
        HandshakeAuthenticator(
            verify_token=decode_token,
            lookup_membership=memberships.get_membership,
        ),
        outbox_size=settings.WS_OUTBOX_SIZE,
    )


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    db = await connect_mongo()
    init_state(app, db)
    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    await close_mongo()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="校园社区聊天后端：账号、服务器、频道、消息与实时网关",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter

# ── CORS 中间件 ───────────────────────────────────────────────────────
if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源，方便本地调试
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """为每个 HTTP 请求分配请求 ID，写入日志上下文和响应头。"""
    req_id = request.headers.get("x-request-id") or f"req-{uuid.uuid4().hex[:8]}"
    token = request_id_ctx_var.set(req_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx_var.reset(token)
    response.headers["X-Request-ID"] = req_id
    return response


# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(servers.router, prefix="/api/server", tags=["Servers"])
app.include_router(channels.router, prefix="/api/server/{server_id}/channel", tags=["Channels"])
app.include_router(gateway_ws.router, tags=["Realtime Gateway"])


# ── 异常处理器 ────────────────────────────────────────────────────────

def _fail(status_code: int, msg: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse.fail(msg=msg, code=status_code).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """业务异常 → 对应状态码的 ``ApiResponse.fail()``。"""
    if exc.status_code >= 500:
        logger.warning("依赖异常: %s %s -> %s", request.method, request.url.path, exc.message)
    return _fail(exc.status_code, exc.message)


@app.exception_handler(ConnectionFailure)
async def mongo_unavailable_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
    """MongoDB 不可达时返回 503，而不是泛化的 500。"""
    logger.error("MongoDB 不可用: %s %s -> %s", request.method, request.url.path, exc)
    return await app_error_handler(request, TransientDependencyError("Service temporarily unavailable"))


app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "Internal server error"
    return _fail(500, detail)


@app.get("/health", tags=["System"])
async def health_check() -> JSONResponse:
    """验证服务是否正常运行。"""
    gateway: ChatGateway | None = getattr(app.state, "gateway", None)
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "debug": settings.debug,
            "log_level": settings.effective_log_level,
            "online_connections": gateway.online_count if gateway else 0,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
