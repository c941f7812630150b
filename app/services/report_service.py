"""
本文件用于编排 AI 库存报表的生成流程：配额检查、调用节流、数据聚合、提示词构建、AI 调用与持久化。
主要类:
- `ReportService`: 报表生成服务（单份报表 / 周报+月报批量生成 / 列表 / 读取 / 统计）

生成流程: 配额检查 → 节流等待 → 数据获取与分析 → 构建提示词 → AI 调用（带超时）→ 保存。
任一步骤失败即终止，错误按 `app.core.exceptions` 中的分类抛出。
"""

import asyncio
from datetime import date, datetime
from time import monotonic
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic_core import to_jsonable_python

from app.core.config import Settings
from app.core.exceptions import (
    AIGenerationError,
    InsufficientQuotaError,
    ModelUnavailableError,
    ProviderErrorKind,
    ProviderQuotaExceededError,
    ProviderRateLimitedError,
    RateLimitedError,
    ReportGenerationError,
)
from app.core.logger import setup_logger
from app.core.prompts import PERIOD_LABELS, build_report_prompt
from app.schemas.report import (
    AIStatusSnapshot,
    BatchReportResult,
    BatchSummary,
    DataSnapshot,
    GenerationStats,
    ReportAnalysis,
    ReportData,
    ReportDocument,
    ReportHighlights,
    ReportMetadata,
    ReportSummary,
    StockHealth,
)
from app.services.ai_service import AIService, GenerationConfig, GenerationResult
from app.services.quota_monitor import QuotaMonitor
from app.services.report_analysis import analyze_report_data
from app.services.report_data_service import ReportDataService
from app.services.report_store import ReportStore
from app.utils.tools import DateLike, parse_report_date, recent_period

logger = setup_logger("ReportService")

BATCH_PLAN = (("weekly", 7), ("monthly", 30))


class ReportService:
    """
    输入:
    - `quota_monitor` / `ai_service` / `data_service` / `report_store`: 协作组件（显式注入）
    - `min_call_interval`: 两次 AI 调用的最小间隔（秒，全局节流）
    - `request_timeout`: 单次 AI 调用超时（秒）
    - `pre_call_delay`: 发起 AI 调用前的固定等待（秒）
    - `batch_delay`: 批量生成时两份报表之间的等待（秒）
    - `clock` / `sleep`: 时钟与休眠函数，测试时可注入

    输出:
    - `ReportDocument` 及列表/统计数据

    作用:
    - 生成并保存 AI 库存报表
    """

    def __init__(
        self,
        quota_monitor: QuotaMonitor,
        ai_service: AIService,
        data_service: ReportDataService,
        report_store: ReportStore,
        generation_config: Optional[GenerationConfig] = None,
        min_call_interval: float = 10.0,
        request_timeout: float = 30.0,
        pre_call_delay: float = 1.0,
        batch_delay: float = 5.0,
        clock: Callable[[], float] = monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.quota_monitor = quota_monitor
        self.ai_service = ai_service
        self.data_service = data_service
        self.report_store = report_store
        self.generation_config = generation_config or GenerationConfig()
        self.min_call_interval = min_call_interval
        self.request_timeout = request_timeout
        self.pre_call_delay = pre_call_delay
        self.batch_delay = batch_delay
        self._clock = clock
        self._sleep = sleep

        self.last_api_call: Optional[float] = None
        self.last_api_call_at: Optional[datetime] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportService":
        return cls(
            quota_monitor=QuotaMonitor(
                max_per_minute=settings.AI_MAX_REQUESTS_PER_MINUTE,
                max_per_hour=settings.AI_MAX_REQUESTS_PER_HOUR,
            ),
            ai_service=AIService.from_settings(settings),
            data_service=ReportDataService(ttl_seconds=settings.REPORT_CACHE_TTL_SECONDS),
            report_store=ReportStore(settings.REPORTS_DIR),
            generation_config=GenerationConfig(
                temperature=settings.AI_TEMPERATURE,
                top_p=settings.AI_TOP_P,
                max_output_tokens=settings.AI_MAX_OUTPUT_TOKENS,
            ),
            min_call_interval=settings.AI_MIN_CALL_INTERVAL_SECONDS,
            request_timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
            pre_call_delay=settings.AI_PRE_CALL_DELAY_SECONDS,
            batch_delay=settings.BATCH_REPORT_DELAY_SECONDS,
        )

    def _check_quota(self) -> None:
        if self.quota_monitor.can_make_request():
            return
        stats = self.quota_monitor.get_stats()
        if stats["hourly_requests"] >= self.quota_monitor.max_per_hour:
            retry_after = stats["hourly_reset_in"]
        else:
            retry_after = stats["quota_reset_in"]
        raise RateLimitedError(
            f"AI 服务请求已达上限，剩余 {stats['remaining_quota']} 次，请等待 {retry_after} 秒后再试。",
            remaining_quota=stats["remaining_quota"],
            retry_after=retry_after,
        )

    async def _wait_for_throttle(self) -> None:
        if self.last_api_call is None:
            return
        elapsed = self._clock() - self.last_api_call
        if elapsed < self.min_call_interval:
            wait = self.min_call_interval - elapsed
            logger.info(f"⏳ 调用节流：等待 {wait:.1f} 秒...")
            await self._sleep(wait)

    @staticmethod
    def _translate_ai_error(e: AIGenerationError) -> Exception:
        key = e.status.get("current_key", "unknown")
        if e.kind == ProviderErrorKind.QUOTA:
            return ProviderQuotaExceededError(f"AI 服务额度已用尽（{key} 通道）")
        if e.kind == ProviderErrorKind.RATE_LIMIT:
            return ProviderRateLimitedError(f"AI 服务请求频率超限（{key} 通道）")
        if e.kind == ProviderErrorKind.MODEL_NOT_FOUND:
            return ModelUnavailableError("AI 模型不可用")
        return ReportGenerationError(e.message)

    async def _call_ai(self, prompt: str) -> GenerationResult:
        # 未配置任何密钥时直接抛出 NoClientAvailableError，不占用配额
        model = self.ai_service.get_generative_model(self.generation_config)
        logger.info(f"🤖 调用 AI 生成报表 ({model.route.name}: {model.model})")

        self.quota_monitor.record_request()
        self.last_api_call = self._clock()
        self.last_api_call_at = datetime.now()

        if self.pre_call_delay > 0:
            await self._sleep(self.pre_call_delay)

        try:
            return await asyncio.wait_for(
                self.ai_service.generate_content(prompt, self.generation_config),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"❌ AI 调用超时（{self.request_timeout:.0f} 秒）")
            raise ReportGenerationError(f"AI 调用超时（{self.request_timeout:.0f} 秒）")
        except AIGenerationError as e:
            logger.error(f"❌ AI 报表生成失败 [{e.kind.value}]: {e.message}")
            raise self._translate_ai_error(e) from e

    async def generate_report(
        self,
        report_type: str,
        start_date: DateLike,
        end_date: DateLike,
        user_id: Optional[int] = None,
    ) -> ReportDocument:
        """
        输入:
        - `report_type`: weekly/monthly
        - `start_date` / `end_date`: 报表周期（`YYYY-MM-DD`）
        - `user_id`: 数据范围；None 表示全部用户（管理员视图）

        输出:
        - 已保存的 `ReportDocument`

        作用:
        - 执行完整的报表生成流程并写入报表存储
        """

        if report_type not in PERIOD_LABELS:
            raise ValueError(f"无效的报表类型: {report_type}，必须为 weekly 或 monthly")
        start = parse_report_date(start_date).isoformat()
        end = parse_report_date(end_date).isoformat()

        self._check_quota()
        await self._wait_for_throttle()

        cache_hit = self.data_service.is_cached(start, end, user_id)
        data = await self.data_service.get_report_data(start, end, user_id)
        analysis = analyze_report_data(data)
        prompt = build_report_prompt(report_type, start, end, analysis)

        t0 = self._clock()
        result = await self._call_ai(prompt)
        generation_seconds = round(self._clock() - t0, 3)

        document = self._build_document(
            report_type=report_type,
            start=start,
            end=end,
            user_id=user_id,
            data=data,
            analysis=analysis,
            result=result,
            generation=GenerationStats(
                prompt_chars=len(prompt),
                cache_hit=cache_hit,
                generation_seconds=generation_seconds,
            ),
        )
        self.report_store.save(document)
        logger.info(
            f"✅ AI 报表已生成: {document.metadata.id}（{len(result.text)} 字符，{result.key_used} 通道）"
        )
        return document

    def _build_document(
        self,
        report_type: str,
        start: str,
        end: str,
        user_id: Optional[int],
        data: ReportData,
        analysis: ReportAnalysis,
        result: GenerationResult,
        generation: GenerationStats,
    ) -> ReportDocument:
        status = self.ai_service.get_status()
        generated_at = datetime.now()
        s = analysis.stock_status

        metadata = ReportMetadata(
            id=f"{report_type}_ai_{int(generated_at.timestamp() * 1000)}",
            type=report_type,
            period=f"{start} to {end}",
            generated_at=generated_at,
            user_id=user_id,
            ai_status=AIStatusSnapshot(
                key_used=result.key_used,
                using_fallback=status["using_fallback"],
                primary_failures=status["primary_failures"],
            ),
            data_snapshot=DataSnapshot(
                total_products=analysis.summary.total_products,
                total_value=analysis.summary.total_value,
                total_units=analysis.summary.total_units,
                orders_in_period=analysis.period_activity.total_orders,
                critical_alerts=len(analysis.critical_alerts),
                stock_health=StockHealth(
                    normal=s.normal,
                    low_stock=s.low_stock,
                    out_of_stock=s.out_of_stock,
                    overstock=s.overstock,
                ),
            ),
            highlights=ReportHighlights(
                stock_distribution=s,
                financial_metrics=analysis.financial,
                top_performers=to_jsonable_python(analysis.top_products[:3]),
                critical_items=len(analysis.critical_alerts),
            ),
            generation=generation,
        )
        return ReportDocument(metadata=metadata, content=result.text, raw_data=data, analysis=analysis)

    async def generate_scheduled_reports(self, today: Optional[date] = None) -> BatchReportResult:
        """
        输入:
        - `today`: 周期截止日（默认今天）

        输出:
        - `BatchReportResult`（成功生成的报表元数据与汇总）

        作用:
        - 依次生成最近 7 天的周报与最近 30 天的月报；需要至少 2 次剩余配额，
          前一份失败不影响后一份
        """

        stats = self.quota_monitor.get_stats()
        needed = len(BATCH_PLAN)
        if stats["remaining_quota"] < needed:
            if self.quota_monitor.max_per_hour - stats["hourly_requests"] < needed:
                retry_after = stats["hourly_reset_in"]
            else:
                retry_after = stats["quota_reset_in"]
            raise InsufficientQuotaError(
                f"剩余配额不足以批量生成报表：仅剩 {stats['remaining_quota']} 次",
                remaining_quota=stats["remaining_quota"],
                retry_after=retry_after,
            )

        logger.info("🔄 开始批量生成报表...")
        generated: List[ReportMetadata] = []
        for index, (report_type, days) in enumerate(BATCH_PLAN):
            if index > 0:
                logger.info(f"⏳ 等待 {self.batch_delay:.0f} 秒后生成下一份报表...")
                await self._sleep(self.batch_delay)

            start, end = recent_period(days, today)
            logger.info(f"📅 生成{PERIOD_LABELS[report_type]}: {start} ~ {end}")
            try:
                document = await self.generate_report(report_type, start, end, None)
                generated.append(document.metadata)
            except Exception as e:
                logger.error(f"❌ {PERIOD_LABELS[report_type]}生成失败: {e}")

        logger.info(f"🎉 批量生成完成: {len(generated)}/{len(BATCH_PLAN)}")
        return BatchReportResult(
            generated_reports=generated,
            summary=BatchSummary(
                total_requested=len(BATCH_PLAN),
                total_generated=len(generated),
                weekly_success=any(m.type == "weekly" for m in generated),
                monthly_success=any(m.type == "monthly" for m in generated),
            ),
        )

    def get_reports_list(self, user_id: Optional[int] = None) -> List[ReportSummary]:
        reports = self.report_store.list()
        if user_id is None:
            return reports
        return [r for r in reports if r.metadata.user_id == user_id]

    def load_report(self, report_id: str) -> ReportDocument:
        return self.report_store.load(report_id)

    def get_report_stats(self, user_id: Optional[int] = None) -> Dict[str, Any]:
        reports = self.get_reports_list(user_id)
        return {
            "total_reports": len(reports),
            "weekly_reports": sum(1 for r in reports if r.metadata.type == "weekly"),
            "monthly_reports": sum(1 for r in reports if r.metadata.type == "monthly"),
            "last_generated": reports[0].metadata.generated_at if reports else None,
        }

    def get_system_status(self) -> Dict[str, Any]:
        return {
            **self.ai_service.get_status(),
            "quota": self.quota_monitor.get_stats(),
            "last_api_call_at": self.last_api_call_at,
            "cache_size": self.data_service.cache_size,
        }
