"""
Shared fixtures: fake clock, fake AI clients, in-memory SQLite inventory and sample report data.
"""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models.inventory import Order, OrderItem, Product, Supplier
from app.schemas.report import (
    AIStatusSnapshot,
    DataSnapshot,
    GenerationStats,
    ReportData,
    ReportDocument,
    ReportHighlights,
    ReportMetadata,
    StockHealth,
)
from app.services.ai_service import AIRoute
from app.services.report_analysis import analyze_report_data


class FakeClock:
    """Monotonic clock that only moves when told to"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def completion(text: str):
    """Shape of an openai chat completion response"""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def make_route(name: str, model: str = "test-model", side_effect=None, text: str = "generated report"):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=side_effect, return_value=completion(text))
    client.close = AsyncMock()
    return AIRoute(name=name, model=model, client=client)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_report_data():
    """Three products: one out of stock, one low, one overstocked; two orders in period"""
    return ReportData(
        current_inventory=[
            {"id": 3, "name": "Cable", "sku": "CB-3", "unit_price": Decimal("2.50"), "stock_quantity": 16,
             "reorder_level": 5, "total_value": Decimal("40.00"), "stock_status": "OVERSTOCK"},
            {"id": 2, "name": "Bracket", "sku": "BR-2", "unit_price": Decimal("20.00"), "stock_quantity": 5,
             "reorder_level": 5, "total_value": Decimal("100.00"), "stock_status": "LOW_STOCK"},
            {"id": 1, "name": "Anchor", "sku": "AN-1", "unit_price": Decimal("10.00"), "stock_quantity": 0,
             "reorder_level": 5, "total_value": Decimal("0.00"), "stock_status": "OUT_OF_STOCK"},
        ],
        inventory_summary={
            "total_products": 3,
            "total_inventory_value": Decimal("140.00"),
            "total_units": 21,
            "out_of_stock_count": 1,
            "low_stock_count": 2,
            "overstock_count": 1,
        },
        orders_in_period=[
            {"id": 1, "order_number": "ORD-1", "total_amount": Decimal("40.00")},
            {"id": 2, "order_number": "ORD-2", "total_amount": Decimal("10.00")},
        ],
        top_selling_products=[
            {"name": "Cable", "sku": "CB-3", "total_sold": 4, "total_revenue": Decimal("10.00")},
            {"name": "Bracket", "sku": "BR-2", "total_sold": 2, "total_revenue": Decimal("40.00")},
        ],
        supplier_performance=[
            {"name": "Acme", "contact_email": "ops@acme.test", "product_count": 3, "total_value": Decimal("140.00")},
        ],
        stock_alerts=[
            {"name": "Anchor", "sku": "AN-1", "stock_quantity": 0, "reorder_level": 5, "units_needed": 5,
             "reorder_cost": Decimal("50.00")},
            {"name": "Bracket", "sku": "BR-2", "stock_quantity": 5, "reorder_level": 5, "units_needed": 0,
             "reorder_cost": Decimal("0.00")},
        ],
    )


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite seeded with two users' inventory for the week 2024-01-01 .. 2024-01-07"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with factory() as db:
        db.add(Supplier(id=1, name="Acme", contact_email="ops@acme.test", user_id=1))
        db.add_all([
            Product(id=1, name="Anchor", sku="AN-1", supplier_id=1, unit_price=Decimal("10.00"),
                    stock_quantity=0, reorder_level=5, user_id=1),
            Product(id=2, name="Bracket", sku="BR-2", supplier_id=1, unit_price=Decimal("20.00"),
                    stock_quantity=5, reorder_level=5, user_id=1),
            Product(id=3, name="Cable", sku="CB-3", supplier_id=None, unit_price=Decimal("2.50"),
                    stock_quantity=16, reorder_level=5, user_id=2),
        ])
        db.add_all([
            Order(id=1, order_number="ORD-1", customer_name="Northwind", status="completed", user_id=1,
                  created_at=datetime(2024, 1, 3, 10, 0)),
            # last minute of the end day still belongs to the period
            Order(id=2, order_number="ORD-2", customer_name="Contoso", status="completed", user_id=2,
                  created_at=datetime(2024, 1, 7, 23, 30)),
            Order(id=3, order_number="ORD-3", customer_name="Fabrikam", status="pending", user_id=1,
                  created_at=datetime(2024, 1, 8, 0, 0)),
        ])
        await db.flush()
        db.add_all([
            OrderItem(order_id=1, product_id=2, quantity=2, unit_price=Decimal("20.00")),
            OrderItem(order_id=2, product_id=3, quantity=4, unit_price=Decimal("2.50")),
            OrderItem(order_id=3, product_id=2, quantity=7, unit_price=Decimal("20.00")),
        ])
        await db.commit()

    yield factory
    await engine.dispose()


def make_document(report_id: str, report_type: str = "weekly", generated_at: datetime = None,
                  user_id=None, data: ReportData = None, content: str = "report body") -> ReportDocument:
    data = data or ReportData()
    analysis = analyze_report_data(data)
    s = analysis.stock_status
    metadata = ReportMetadata(
        id=report_id,
        type=report_type,
        period="2024-01-01 to 2024-01-07",
        generated_at=generated_at or datetime(2024, 1, 7, 23, 55),
        user_id=user_id,
        ai_status=AIStatusSnapshot(key_used="primary", using_fallback=False, primary_failures=0),
        data_snapshot=DataSnapshot(
            total_products=analysis.summary.total_products,
            total_value=analysis.summary.total_value,
            total_units=analysis.summary.total_units,
            orders_in_period=analysis.period_activity.total_orders,
            critical_alerts=len(analysis.critical_alerts),
            stock_health=StockHealth(
                normal=s.normal, low_stock=s.low_stock, out_of_stock=s.out_of_stock, overstock=s.overstock
            ),
        ),
        highlights=ReportHighlights(stock_distribution=s, financial_metrics=analysis.financial),
        generation=GenerationStats(prompt_chars=100, cache_hit=False, generation_seconds=0.5),
    )
    return ReportDocument(metadata=metadata, content=content, raw_data=data, analysis=analysis)
