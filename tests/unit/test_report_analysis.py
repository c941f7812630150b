"""
Unit tests for local analysis and prompt rendering
"""

from decimal import Decimal

import pytest

from app.core.prompts import build_report_prompt
from app.schemas.report import ReportData
from app.services.report_analysis import analyze_report_data, percent_of, turnover_risk_label


@pytest.mark.parametrize("percent, label", [(60, "High"), (51, "High"), (50, "Medium"), (30, "Medium"), (25, "Low"), (10, "Low")])
def test_turnover_risk_label(percent, label):
    assert turnover_risk_label(percent) == label


def test_percent_rounds_half_up():
    assert percent_of(1, 8) == 13
    assert percent_of(1, 3) == 33
    assert percent_of(2, 3) == 67
    assert percent_of(0, 0) == 0


def test_analysis_of_sample_data(sample_report_data):
    analysis = analyze_report_data(sample_report_data)

    assert analysis.summary.total_products == 3
    assert analysis.summary.total_value == Decimal("140.00")
    assert analysis.summary.total_units == 21
    assert analysis.summary.avg_price == Decimal("6.67")

    s = analysis.stock_status
    assert (s.normal, s.low_stock, s.out_of_stock, s.overstock) == (0, 1, 1, 1)
    assert (s.low_stock_percent, s.out_of_stock_percent, s.overstock_percent) == (33, 33, 33)

    assert [p["name"] for p in analysis.top_products] == ["Bracket", "Cable", "Anchor"]
    assert analysis.critical_alerts[0]["name"] == "Anchor"
    assert analysis.period_activity.total_orders == 2
    assert analysis.period_activity.total_order_value == Decimal("50.00")
    assert analysis.period_activity.top_selling == "Cable"
    assert analysis.financial.capital_tied_up == Decimal("40.00")
    assert analysis.financial.reorder_investment == Decimal("50.00")
    assert analysis.financial.turnover_risk == "Medium"


def test_analysis_of_empty_inventory():
    analysis = analyze_report_data(ReportData())

    assert analysis.summary.total_products == 0
    assert analysis.summary.avg_price == Decimal("0")
    assert analysis.stock_status.normal_percent == 0
    assert analysis.period_activity.top_selling == "None"
    assert analysis.financial.turnover_risk == "Low"
    assert analysis.top_products == []


def test_top_lists_are_capped_at_five():
    products = [
        {"name": f"P{i}", "total_value": Decimal(i), "stock_status": "NORMAL"}
        for i in range(8)
    ]
    data = ReportData(current_inventory=products, inventory_summary={"total_products": 8, "total_units": 8})

    analysis = analyze_report_data(data)

    assert [p["name"] for p in analysis.top_products] == ["P7", "P6", "P5", "P4", "P3"]
    assert analysis.stock_status.normal_percent == 100


def test_prompt_embeds_numbers_not_rows(sample_report_data):
    analysis = analyze_report_data(sample_report_data)

    prompt = build_report_prompt("weekly", "2024-01-01", "2024-01-07", analysis)

    assert "2024-01-01 至 2024-01-07" in prompt
    assert "周报" in prompt
    assert "共有 3 个商品，总货值 $140.00" in prompt
    assert "最畅销商品：Cable" in prompt
    assert "Anchor 库存告急" in prompt
    assert "周转风险：中" in prompt
    # only the top three products by value are listed
    assert prompt.count("件 @ $") == 3


def test_prompt_without_sales():
    prompt = build_report_prompt("monthly", "2024-01-01", "2024-01-31", analyze_report_data(ReportData()))

    assert "月报" in prompt
    assert "本周期暂无销售记录" in prompt
    assert "暂无紧急库存预警" in prompt
