"""
本文件用于定义报表链路上的数据模型：聚合结果集、分析视图、报表文档与请求体。
主要类:
- `ReportData`: 聚合查询结果集（只读）
- `ReportAnalysis`: 基于结果集计算的分析视图
- `ReportMetadata` / `ReportDocument`: 持久化的报表文档
- `ReportSummary`: 报表列表项
- `GenerateReportPayload`: 生成报表请求体
- `BatchReportResult`: 批量（周报+月报）生成结果

对外 JSON 统一使用 camelCase 字段名（如 `dataSnapshot.stockHealth.lowStock`）。
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ReportType = Literal["weekly", "monthly"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReportData(CamelModel):
    """
    输入:
    - 六组聚合查询的结果行（字典列表；金额字段为 `Decimal`）

    输出:
    - 只读的聚合结果集

    作用:
    - 作为分析与 AI 报表的原始数据，同时原样写入报表文档的 `rawData`
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    current_inventory: List[Dict[str, Any]] = Field(default_factory=list)
    inventory_summary: Dict[str, Any] = Field(default_factory=dict)
    orders_in_period: List[Dict[str, Any]] = Field(default_factory=list)
    top_selling_products: List[Dict[str, Any]] = Field(default_factory=list)
    supplier_performance: List[Dict[str, Any]] = Field(default_factory=list)
    stock_alerts: List[Dict[str, Any]] = Field(default_factory=list)


class AnalysisSummary(CamelModel):
    total_products: int = 0
    total_value: Decimal = Decimal("0")
    total_units: int = 0
    avg_price: Decimal = Decimal("0")


class StockStatusBreakdown(CamelModel):
    normal: int = 0
    low_stock: int = 0
    out_of_stock: int = 0
    overstock: int = 0
    normal_percent: int = 0
    low_stock_percent: int = 0
    out_of_stock_percent: int = 0
    overstock_percent: int = 0


class PeriodActivity(CamelModel):
    total_orders: int = 0
    total_order_value: Decimal = Decimal("0")
    top_selling: str = "None"


class FinancialMetrics(CamelModel):
    turnover_risk: Literal["High", "Medium", "Low"] = "Low"
    capital_tied_up: Decimal = Decimal("0")
    reorder_investment: Decimal = Decimal("0")


class ReportAnalysis(CamelModel):
    summary: AnalysisSummary
    stock_status: StockStatusBreakdown
    top_products: List[Dict[str, Any]] = Field(default_factory=list)
    critical_alerts: List[Dict[str, Any]] = Field(default_factory=list)
    top_suppliers: List[Dict[str, Any]] = Field(default_factory=list)
    period_activity: PeriodActivity
    financial: FinancialMetrics


class AIStatusSnapshot(CamelModel):
    key_used: str
    using_fallback: bool
    primary_failures: int


class StockHealth(CamelModel):
    normal: int = 0
    low_stock: int = 0
    out_of_stock: int = 0
    overstock: int = 0


class DataSnapshot(CamelModel):
    total_products: int
    total_value: Decimal
    total_units: int
    orders_in_period: int
    critical_alerts: int
    stock_health: StockHealth


class ReportHighlights(CamelModel):
    stock_distribution: StockStatusBreakdown
    financial_metrics: FinancialMetrics
    top_performers: List[Dict[str, Any]] = Field(default_factory=list)
    critical_items: int = 0


class GenerationStats(CamelModel):
    prompt_chars: int
    cache_hit: bool
    generation_seconds: float


class ReportMetadata(CamelModel):
    id: str
    type: ReportType
    period: str
    generated_at: datetime
    user_id: Optional[int] = None
    ai_status: AIStatusSnapshot
    data_snapshot: DataSnapshot
    highlights: ReportHighlights
    generation: GenerationStats


class ReportDocument(CamelModel):
    metadata: ReportMetadata
    content: str
    raw_data: ReportData
    analysis: ReportAnalysis


class ReportSummary(CamelModel):
    filename: str
    metadata: ReportMetadata
    size: int


class GenerateReportPayload(CamelModel):
    type: ReportType
    start_date: date
    end_date: date


class BatchSummary(CamelModel):
    total_requested: int = 2
    total_generated: int = 0
    weekly_success: bool = False
    monthly_success: bool = False


class BatchReportResult(CamelModel):
    success: bool = True
    generated_reports: List[ReportMetadata] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
