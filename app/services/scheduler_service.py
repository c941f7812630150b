"""
本文件用于提供报表定时调度入口：每周日 23:55 自动批量生成周报与月报。
主要函数:
- `scheduled_report_task`: 定时调度循环（由应用生命周期以后台任务启动）
- `is_weekly_slot`: 判断当前时刻是否为每周生成时间点
"""

import asyncio
from datetime import date, datetime
from typing import Optional

from app.core.database import check_db_connection
from app.core.logger import setup_logger
from app.services.report_service import ReportService

logger = setup_logger("Scheduler")

CHECK_INTERVAL_SECONDS = 60


def is_weekly_slot(now: datetime) -> bool:
    return now.weekday() == 6 and now.hour == 23 and now.minute == 55


async def scheduled_report_task(report_service: ReportService) -> None:
    """
    输入:
    - `report_service`: 报表服务实例

    输出:
    - 无（常驻循环，随应用退出被取消）

    作用:
    - 每分钟检查一次是否到达生成时间点；同一天只触发一次。单次失败只记录日志，不中断调度
    """

    logger.info("⏰ 报表定时调度器启动...")
    last_weekly_run: Optional[date] = None

    while True:
        try:
            now = datetime.now()
            if is_weekly_slot(now) and last_weekly_run != now.date():
                if not await check_db_connection():
                    logger.warning("⚠️ 数据库连接异常，跳过本次定时报表")
                else:
                    logger.info("⏰ [Schedule] 触发每周批量报表 (周日 23:55)...")
                    result = await report_service.generate_scheduled_reports(today=now.date())
                    logger.info(f"⏰ [Schedule] 批量报表完成: {result.summary.total_generated}/{result.summary.total_requested}")
                last_weekly_run = now.date()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ 定时报表任务异常: {e}")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)
