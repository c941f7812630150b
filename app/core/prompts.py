"""
本文件用于集中维护 AI 库存报表的提示词模板，并根据分析结果渲染最终提示词。
主要函数/对象:
- `REPORT_USER_PROMPT`: 报表提示词模板
- `build_report_prompt`: 由 `ReportAnalysis` 渲染提示词

提示词只嵌入分析后的统计数字与 Top 列表，不嵌入逐行原始数据，长度与商品数量无关。
"""

from decimal import Decimal
from typing import Any, Dict, List

from app.schemas.report import ReportAnalysis

PERIOD_LABELS = {"weekly": "周报", "monthly": "月报"}

REPORT_USER_PROMPT = """你是一名资深的库存与供应链分析师。请为 {start_date} 至 {end_date} 生成一份完整的库存{period_label}。

当前情况如下：

【库存概览】
共有 {total_products} 个商品，总货值 ${total_value}（共 {total_units} 件，平均每件 ${avg_price}）。

【库存状态分布】
- {overstock} 个商品（{overstock_percent}%）库存积压
- {low_stock} 个商品（{low_stock_percent}%）库存偏低
- {out_of_stock} 个商品已完全缺货
- 仅 {normal} 个商品（{normal_percent}%）处于合理库存水平

【货值最高的商品】
{top_products}

【紧急预警】
{critical_alerts}

【业务活动】
本周期共 {total_orders} 笔订单，金额 ${total_order_value}。{top_selling_line}

【资金影响】
积压库存占用资金 ${capital_tied_up}（周转风险：{turnover_risk}）。处理紧急补货需要 ${reorder_investment}。

请撰写一份专业且易读的业务报告：
1. 总结整体库存健康状况与主要隐患
2. 指出需要立即处理的最重要问题
3. 解释当前库存分布对业务意味着什么
4. 给出具体、可执行且有明确优先级的建议
5. 讨论对资金与现金流的影响

篇幅控制在 800 字以内，聚焦能帮助业务决策的洞察，语气专业清晰，面向业务经理。"""

RISK_LABELS = {"High": "高", "Medium": "中", "Low": "低"}


def _money(value: Any) -> str:
    return f"{Decimal(str(value or 0)):,.2f}"


def _format_top_products(products: List[Dict[str, Any]]) -> str:
    if not products:
        return "暂无商品数据"
    return "\n".join(
        f"• {p.get('name')}: {p.get('stock_quantity')} 件 @ ${_money(p.get('unit_price'))}/件"
        f"（合计 ${_money(p.get('total_value'))}）- {p.get('stock_status')}"
        for p in products
    )


def _format_alerts(alerts: List[Dict[str, Any]]) -> str:
    if not alerts:
        return "暂无紧急库存预警"
    return "\n".join(
        f"• {a.get('name')} 库存告急：仅剩 {a.get('stock_quantity')} 件"
        f"（需补 {a.get('units_needed')} 件，约 ${_money(a.get('reorder_cost'))}）"
        for a in alerts
    )


def build_report_prompt(report_type: str, start_date: str, end_date: str, analysis: ReportAnalysis) -> str:
    """
    输入:
    - `report_type`: weekly/monthly
    - `start_date` / `end_date`: 报表周期
    - `analysis`: 分析结果

    输出:
    - 渲染后的提示词文本

    作用:
    - 将分析结果中的统计数字填入模板，供 AI 生成报表正文
    """

    s = analysis.stock_status
    activity = analysis.period_activity
    top_selling_line = f"最畅销商品：{activity.top_selling}" if activity.top_selling != "None" else "本周期暂无销售记录"

    return REPORT_USER_PROMPT.format(
        start_date=start_date,
        end_date=end_date,
        period_label=PERIOD_LABELS.get(report_type, "报表"),
        total_products=analysis.summary.total_products,
        total_value=_money(analysis.summary.total_value),
        total_units=analysis.summary.total_units,
        avg_price=_money(analysis.summary.avg_price),
        overstock=s.overstock,
        overstock_percent=s.overstock_percent,
        low_stock=s.low_stock,
        low_stock_percent=s.low_stock_percent,
        out_of_stock=s.out_of_stock,
        normal=s.normal,
        normal_percent=s.normal_percent,
        top_products=_format_top_products(analysis.top_products[:3]),
        critical_alerts=_format_alerts(analysis.critical_alerts),
        total_orders=activity.total_orders,
        total_order_value=_money(activity.total_order_value),
        top_selling_line=top_selling_line,
        capital_tied_up=_money(analysis.financial.capital_tied_up),
        turnover_risk=RISK_LABELS.get(analysis.financial.turnover_risk, analysis.financial.turnover_risk),
        reorder_investment=_money(analysis.financial.reorder_investment),
    )
