"""
本文件用于提供 AI 库存报表相关 API：生成报表、批量生成、列表、读取、下载、统计与 AI 系统状态。
主要函数:
- `generate_report`: 生成并保存一份周报/月报
- `generate_scheduled_reports`: 批量生成周报与月报（管理员）
- `list_reports`: 获取当前调用方可见的报表列表
- `get_report` / `download_report`: 读取/下载指定报表
- `get_report_stats`: 报表数量统计
- `get_ai_system_status` / `reset_ai_client`: AI 通道状态与切回主通道
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from app.api.deps import get_caller, get_report_service, verify_admin_access
from app.core.logger import logger
from app.schemas.report import GenerateReportPayload, ReportDocument
from app.services.admin_service import Caller
from app.services.report_service import ReportService

router = APIRouter(prefix="/api/ai-reports", tags=["ai-reports"])


def _ensure_can_view(caller: Caller, report: ReportDocument) -> None:
    if not caller.is_admin and report.metadata.user_id != caller.user_id:
        raise HTTPException(status_code=403, detail="无权访问：只能查看自己生成的报表")


@router.post("/generate")
async def generate_report(
    payload: GenerateReportPayload,
    caller: Caller = Depends(get_caller),
    service: ReportService = Depends(get_report_service),
):
    """
    输入:
    - `payload`: `{type, startDate, endDate}`

    输出:
    - `{"success": true, "report": ReportDocument}`

    作用:
    - 管理员生成全量数据报表，普通用户只基于自己的数据生成
    """

    scope = "全部用户（管理员视图）" if caller.is_admin else f"用户 {caller.user_id}"
    logger.info(f"📊 生成 {payload.type} 报表，范围: {scope}")

    try:
        report = await service.generate_report(payload.type, payload.start_date, payload.end_date, caller.data_scope)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "report": report.model_dump(mode="json", by_alias=True)}


@router.post("/generate-scheduled", dependencies=[Depends(verify_admin_access)])
async def generate_scheduled_reports(service: ReportService = Depends(get_report_service)):
    result = await service.generate_scheduled_reports()
    return result.model_dump(mode="json", by_alias=True)


@router.get("/list")
async def list_reports(caller: Caller = Depends(get_caller), service: ReportService = Depends(get_report_service)):
    reports = service.get_reports_list(caller.data_scope)
    return {"success": True, "reports": [r.model_dump(mode="json", by_alias=True) for r in reports]}


@router.get("/stats/overview")
async def get_report_stats(caller: Caller = Depends(get_caller), service: ReportService = Depends(get_report_service)):
    return {"success": True, "stats": service.get_report_stats(caller.data_scope)}


@router.get("/status/ai-system")
async def get_ai_system_status(caller: Caller = Depends(get_caller), service: ReportService = Depends(get_report_service)):
    return {"success": True, "ai_system": service.get_system_status()}


@router.post("/status/ai-system/reset", dependencies=[Depends(verify_admin_access)])
async def reset_ai_client(service: ReportService = Depends(get_report_service)):
    service.ai_service.reset_to_primary()
    return {"success": True, "ai_system": service.ai_service.get_status()}


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    caller: Caller = Depends(get_caller),
    service: ReportService = Depends(get_report_service),
):
    report = service.load_report(report_id)
    _ensure_can_view(caller, report)
    return {"success": True, "report": report.model_dump(mode="json", by_alias=True)}


@router.get("/{report_id}/download")
async def download_report(
    report_id: str,
    caller: Caller = Depends(get_caller),
    service: ReportService = Depends(get_report_service),
):
    report = service.load_report(report_id)
    _ensure_can_view(caller, report)
    return PlainTextResponse(
        report.content,
        headers={"Content-Disposition": f'attachment; filename="inventory_report_{report_id}.txt"'},
    )
