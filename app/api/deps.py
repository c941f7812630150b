"""
本文件用于提供 FastAPI 依赖注入的集中出口。
主要对象:
- `settings`: 全局配置对象
- `get_report_service`: 获取应用生命周期内创建的 `ReportService`
- `get_caller`: 识别调用方（未识别时 401）
- `verify_admin_access`: 管理员权限校验
"""

from fastapi import Depends, HTTPException, Request, status

from app.core.config import get_settings
from app.services.admin_service import Caller, resolve_caller
from app.services.report_service import ReportService

settings = get_settings()


def get_report_service(request: Request) -> ReportService:
    service = getattr(request.app.state, "report_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="报表服务尚未初始化")
    return service


async def get_caller(request: Request) -> Caller:
    caller = resolve_caller(request)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未识别的调用方，请先登录",
        )
    return caller


async def verify_admin_access(caller: Caller = Depends(get_caller)):
    """
    依赖项：校验当前请求是否来自已登录的管理员。
    """
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="仅管理员可执行此操作",
        )


__all__ = ["get_caller", "get_report_service", "settings", "verify_admin_access"]
