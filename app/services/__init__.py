"""
本包用于集中导出服务层的核心类，便于上层按需组装。
主要导出:
- `AIService`
- `QuotaMonitor`
- `ReportDataService`
- `ReportService`
- `ReportStore`
"""

from app.services.ai_service import AIService
from app.services.quota_monitor import QuotaMonitor
from app.services.report_data_service import ReportDataService
from app.services.report_service import ReportService
from app.services.report_store import ReportStore

__all__ = ["AIService", "QuotaMonitor", "ReportDataService", "ReportService", "ReportStore"]
