"""
本文件用于提供系统相关 API：健康检查、应用信息与管理端日志查看/清理接口。
主要函数:
- `api_health`: 数据库连通性、缺失配置项与 AI 通道状态
- `api_get_app_info`: 应用名称与版本
- `api_get_admin_logs` / `api_clear_admin_logs`: 内存日志的读取与清理（管理员）
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import get_report_service, settings, verify_admin_access
from app.core.config import get_missing_config_keys
from app.core.database import check_db_connection
from app.core.logger import clear_cached_logs, get_cached_log_text
from app.services.report_service import ReportService

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
async def api_health(request: Request, service: ReportService = Depends(get_report_service)):
    """
    输入:
    - 无

    输出:
    - `{status, database, db_init_error, missing_keys, ai}`

    作用:
    - 配置缺失或数据库不可达时返回 `degraded`，但接口本身始终可用
    """

    db_ok = await check_db_connection(verbose=False)
    missing_keys = get_missing_config_keys(settings)
    return {
        "status": "ok" if db_ok and not missing_keys else "degraded",
        "database": db_ok,
        "db_init_error": getattr(request.app.state, "db_init_error", None),
        "missing_keys": missing_keys,
        "ai": service.ai_service.get_status(),
    }


@router.get("/app_info")
async def api_get_app_info():
    return {"app_name": settings.APP_NAME, "version": settings.VERSION}


@router.get("/admin/logs", dependencies=[Depends(verify_admin_access)])
async def api_get_admin_logs(lines: Optional[int] = Query(default=None, ge=1, le=5000)):
    return {"logs": get_cached_log_text(lines)}


@router.delete("/admin/logs", dependencies=[Depends(verify_admin_access)])
async def api_clear_admin_logs():
    clear_cached_logs()
    return {"ok": True}
