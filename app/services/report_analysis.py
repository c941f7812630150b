"""
本文件用于对报表聚合结果做本地分析（库存状态分布、Top 商品、预警、资金占用等）。
主要函数:
- `analyze_report_data`: 由 `ReportData` 计算 `ReportAnalysis`（纯函数，无副作用）
- `turnover_risk_label`: 按积压占比给出周转风险等级
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List

from app.schemas.report import (
    AnalysisSummary,
    FinancialMetrics,
    PeriodActivity,
    ReportAnalysis,
    ReportData,
    StockStatusBreakdown,
)
from app.services.report_data_service import LOW_STOCK, NORMAL, OUT_OF_STOCK, OVERSTOCK

TOP_N = 5
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        # float 先转字符串，避免二进制误差被带入金额
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def to_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(to_decimal(value))


def percent_of(part: int, total: int) -> int:
    if total <= 0:
        return 0
    ratio = Decimal(part) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def turnover_risk_label(overstock_percent: float) -> str:
    if overstock_percent > 50:
        return "High"
    if overstock_percent > 25:
        return "Medium"
    return "Low"


def _sum_money(rows: Iterable[Dict[str, Any]], field: str) -> Decimal:
    return sum((to_decimal(r.get(field)) for r in rows), Decimal("0"))


def _top_by(rows: List[Dict[str, Any]], key, n: int = TOP_N) -> List[Dict[str, Any]]:
    return sorted(rows, key=key, reverse=True)[:n]


def analyze_report_data(data: ReportData) -> ReportAnalysis:
    """
    输入:
    - `data`: 聚合结果集

    输出:
    - `ReportAnalysis`：汇总指标、库存状态分布（百分比四舍五入取整）、Top5 商品/预警/供应商、
      周期订单统计、积压资金、补货所需资金与周转风险等级

    作用:
    - 为提示词与报表元数据提供确定性的分析结果；金额全程使用 `Decimal`
    """

    summary = data.inventory_summary or {}
    products = data.current_inventory
    alerts = data.stock_alerts
    orders = data.orders_in_period

    total_products = to_int(summary.get("total_products"))
    total_value = to_decimal(summary.get("total_inventory_value"))
    total_units = to_int(summary.get("total_units"))
    avg_price = (total_value / total_units).quantize(CENT, rounding=ROUND_HALF_UP) if total_units > 0 else Decimal("0")

    counts = {NORMAL: 0, LOW_STOCK: 0, OUT_OF_STOCK: 0, OVERSTOCK: 0}
    for p in products:
        status = p.get("stock_status")
        if status in counts:
            counts[status] += 1

    stock_status = StockStatusBreakdown(
        normal=counts[NORMAL],
        low_stock=counts[LOW_STOCK],
        out_of_stock=counts[OUT_OF_STOCK],
        overstock=counts[OVERSTOCK],
        normal_percent=percent_of(counts[NORMAL], total_products),
        low_stock_percent=percent_of(counts[LOW_STOCK], total_products),
        out_of_stock_percent=percent_of(counts[OUT_OF_STOCK], total_products),
        overstock_percent=percent_of(counts[OVERSTOCK], total_products),
    )

    top_products = _top_by(products, lambda p: to_decimal(p.get("total_value")))
    critical_alerts = _top_by(alerts, lambda a: to_int(a.get("units_needed")))
    top_suppliers = _top_by(data.supplier_performance, lambda s: to_decimal(s.get("total_value")))

    top_selling = data.top_selling_products[0].get("name") if data.top_selling_products else None

    capital_tied_up = _sum_money((p for p in products if p.get("stock_status") == OVERSTOCK), "total_value")

    return ReportAnalysis(
        summary=AnalysisSummary(
            total_products=total_products,
            total_value=total_value,
            total_units=total_units,
            avg_price=avg_price,
        ),
        stock_status=stock_status,
        top_products=top_products,
        critical_alerts=critical_alerts,
        top_suppliers=top_suppliers,
        period_activity=PeriodActivity(
            total_orders=len(orders),
            total_order_value=_sum_money(orders, "total_amount"),
            top_selling=top_selling or "None",
        ),
        financial=FinancialMetrics(
            turnover_risk=turnover_risk_label(stock_status.overstock_percent),
            capital_tied_up=capital_tied_up,
            reorder_investment=_sum_money(alerts, "reorder_cost"),
        ),
    )
