"""
本文件用于启动 FastAPI 应用并注册路由、异常处理与生命周期任务。
主要函数/类:
- `lifespan`: 应用生命周期管理（初始化数据库、创建报表服务、启动定时任务、退出时释放资源）
- `create_app`: 创建 FastAPI 应用
- `admin_login`: 管理登录（写入 Cookie 会话）
- `admin_logout`: 管理退出（清理 Cookie 会话）
- `logicore_error_handler` / `database_error_handler`: 统一错误响应
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.api import api_router
from app.api.deps import settings
from app.core.database import dispose_engine, init_db
from app.core.exceptions import AggregationFailureError, LogiCoreError
from app.core.logger import configure_logging, setup_logger
from app.schemas.system import AdminLoginPayload
from app.services.admin_service import (
    ADMIN_COOKIE_NAME,
    create_admin_session_token,
    revoke_admin_session_token,
    verify_admin_password,
)
from app.services.report_service import ReportService
from app.services.scheduler_service import scheduled_report_task

lifespan_logger = setup_logger("lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    输入:
    - `app`: FastAPI 应用实例

    输出:
    - 生命周期上下文（启动后进入、退出时清理）

    作用:
    - 应用启动时初始化数据库与报表服务，按配置启动定时报表任务；退出时取消任务并释放连接
    """

    app.state.db_init_error = None
    db_initialized = False
    try:
        await init_db()
        db_initialized = True
    except Exception as e:
        app.state.db_init_error = str(e)
        lifespan_logger.error(f"❌ 初始化数据库失败: {e}")
        lifespan_logger.warning("=" * 60)
        lifespan_logger.warning("⚠️  系统配置缺失或数据库连接失败！")
        lifespan_logger.warning("⚠️  报表生成将不可用，直到配置修正。")
        lifespan_logger.warning("=" * 60)

    report_service = ReportService.from_settings(settings)
    app.state.report_service = report_service

    scheduler_task = None
    if settings.REPORT_SCHEDULE_ENABLED and db_initialized:
        scheduler_task = asyncio.create_task(scheduled_report_task(report_service))
    elif settings.REPORT_SCHEDULE_ENABLED:
        lifespan_logger.warning("⚠️ 由于数据库初始化失败，定时报表任务已跳过启动。")

    yield

    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
    await report_service.ai_service.aclose()
    await dispose_engine()


async def logicore_error_handler(request: Request, exc: LogiCoreError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    lifespan_logger.error(f"❌ 数据库操作失败: {exc}")
    err = AggregationFailureError(f"数据库操作失败: {exc.__class__.__name__}")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


async def admin_login(payload: AdminLoginPayload):
    if not verify_admin_password(payload.password):
        return JSONResponse(status_code=403, content={"ok": False, "message": "密码错误"})

    token = create_admin_session_token()
    resp = JSONResponse(content={"ok": True})
    resp.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
    )
    return resp


async def admin_logout(request: Request):
    revoke_admin_session_token(request.cookies.get(ADMIN_COOKIE_NAME))
    resp = JSONResponse(content={"ok": True})
    resp.delete_cookie(ADMIN_COOKIE_NAME)
    return resp


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
        debug=settings.DEBUG,
    )
    application.add_exception_handler(LogiCoreError, logicore_error_handler)
    application.add_exception_handler(SQLAlchemyError, database_error_handler)
    application.add_api_route("/admin/login", admin_login, methods=["POST"])
    application.add_api_route("/admin/logout", admin_logout, methods=["POST"])
    application.include_router(api_router)
    return application


configure_logging()
app = create_app()


if __name__ == "__main__":
    log_level = (settings.LOG_LEVEL or "info").lower()
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        log_level=log_level,
        access_log=log_level in {"debug", "info"},
    )
