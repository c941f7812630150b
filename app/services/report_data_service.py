"""
本文件用于聚合报表所需的库存/订单/供应商数据，并在进程内按查询参数缓存结果。
主要类/函数:
- `ReportDataService`: 报表数据聚合与 TTL 缓存
- `stock_status_expr`: 库存状态的 SQL CASE 表达式
"""

import asyncio
from dataclasses import dataclass
from time import monotonic
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, case, desc, distinct, func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal
from app.core.logger import setup_logger
from app.models.inventory import Order, OrderItem, Product, Supplier
from app.schemas.report import ReportData
from app.utils.tools import DateLike, parse_report_date, period_bounds

logger = setup_logger("ReportDataService")

OUT_OF_STOCK = "OUT_OF_STOCK"
LOW_STOCK = "LOW_STOCK"
OVERSTOCK = "OVERSTOCK"
NORMAL = "NORMAL"

CacheKey = Tuple[str, str, str]


def stock_status_expr():
    return case(
        (Product.stock_quantity == 0, literal(OUT_OF_STOCK)),
        (Product.stock_quantity <= Product.reorder_level, literal(LOW_STOCK)),
        (Product.stock_quantity > Product.reorder_level * 3, literal(OVERSTOCK)),
        else_=literal(NORMAL),
    )


@dataclass
class CacheEntry:
    data: ReportData
    timestamp: float


class ReportDataService:
    """
    输入:
    - `session_factory`: 返回 `AsyncSession` 的工厂（默认 `AsyncSessionLocal`）
    - `ttl_seconds`: 缓存有效期（默认 5 分钟）
    - `clock`: 单调时钟，测试时可注入

    输出:
    - `ReportData` 聚合结果集

    作用:
    - 按 `(开始日期, 结束日期, 用户)` 缓存聚合结果；同一 key 的并发未命中共享同一次查询
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, asyncio.Task] = {}

    @staticmethod
    def _cache_key(start_date: DateLike, end_date: DateLike, user_id: Optional[int]) -> CacheKey:
        return (
            parse_report_date(start_date).isoformat(),
            parse_report_date(end_date).isoformat(),
            str(user_id) if user_id is not None else "all",
        )

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def get_cache_entry(self, start_date: DateLike, end_date: DateLike, user_id: Optional[int] = None) -> Optional[CacheEntry]:
        return self._cache.get(self._cache_key(start_date, end_date, user_id))

    def is_cached(self, start_date: DateLike, end_date: DateLike, user_id: Optional[int] = None) -> bool:
        entry = self.get_cache_entry(start_date, end_date, user_id)
        return entry is not None and self._is_fresh(entry)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp < self.ttl_seconds

    def _sweep_expired(self) -> None:
        now = self._clock()
        expired = [k for k, v in self._cache.items() if now - v.timestamp > self.ttl_seconds]
        for k in expired:
            self._cache.pop(k, None)

    async def get_report_data(self, start_date: DateLike, end_date: DateLike, user_id: Optional[int] = None) -> ReportData:
        """
        输入:
        - `start_date` / `end_date`: 报表周期（`YYYY-MM-DD`，含结束当天）
        - `user_id`: 用户 ID；管理员视图传 None 查看全部数据

        输出:
        - `ReportData`

        作用:
        - 命中未过期缓存时直接返回；否则执行整组聚合查询并写入缓存。任一查询失败则整体失败，不缓存部分结果
        """

        key = self._cache_key(start_date, end_date, user_id)
        cached = self._cache.get(key)
        if cached and self._is_fresh(cached):
            logger.info("📦 使用缓存的报表数据")
            return cached.data

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._load(key, start_date, end_date, user_id))
            self._inflight[key] = task
        else:
            logger.info("⏳ 相同参数的报表数据正在查询，等待其结果")
        return await asyncio.shield(task)

    async def _load(self, key: CacheKey, start_date: DateLike, end_date: DateLike, user_id: Optional[int]) -> ReportData:
        try:
            scope = f"用户 {user_id}" if user_id is not None else "全部用户（管理员视图）"
            logger.info(f"🔄 从数据库获取报表数据: {key[0]} ~ {key[1]}，范围: {scope}")
            data = await self._fetch_report_data(start_date, end_date, user_id)
            self._cache[key] = CacheEntry(data=data, timestamp=self._clock())
            self._sweep_expired()
            return data
        finally:
            self._inflight.pop(key, None)

    async def _fetch_report_data(self, start_date: DateLike, end_date: DateLike, user_id: Optional[int]) -> ReportData:
        period_start, period_end = period_bounds(start_date, end_date)
        t0 = monotonic()

        async with self._session_factory() as db:
            current_inventory = await self._fetch_rows(db, self._current_inventory_stmt(user_id))
            summary_rows = await self._fetch_rows(db, self._inventory_summary_stmt(user_id))
            orders = await self._fetch_rows(db, self._orders_in_period_stmt(period_start, period_end, user_id))
            top_selling = await self._fetch_rows(db, self._top_selling_stmt(period_start, period_end, user_id))
            suppliers = await self._fetch_rows(db, self._supplier_performance_stmt(user_id))
            alerts = await self._fetch_rows(db, self._stock_alerts_stmt(user_id))

        elapsed = monotonic() - t0
        logger.info(
            f"✅ 报表数据已获取: {len(current_inventory)} 个商品, {len(orders)} 个订单, {len(alerts)} 条库存预警 ({elapsed:.2f}s)"
        )

        return ReportData(
            current_inventory=current_inventory,
            inventory_summary=summary_rows[0] if summary_rows else {},
            orders_in_period=orders,
            top_selling_products=top_selling,
            supplier_performance=suppliers,
            stock_alerts=alerts,
        )

    @staticmethod
    async def _fetch_rows(db: AsyncSession, stmt) -> List[Dict[str, Any]]:
        result = await db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    def _current_inventory_stmt(user_id: Optional[int]):
        total_value = (Product.stock_quantity * Product.unit_price).label("total_value")
        stmt = (
            select(
                Product.id,
                Product.name,
                Product.sku,
                Product.description,
                Product.supplier_id,
                Product.unit_price,
                Product.stock_quantity,
                Product.reorder_level,
                Product.user_id,
                Supplier.name.label("supplier_name"),
                total_value,
                stock_status_expr().label("stock_status"),
            )
            .select_from(Product)
            .outerjoin(Supplier, Product.supplier_id == Supplier.id)
        )
        if user_id is not None:
            stmt = stmt.where(Product.user_id == user_id)
        return stmt.order_by(desc(total_value), Product.id)

    @staticmethod
    def _inventory_summary_stmt(user_id: Optional[int]):
        stmt = select(
            func.count(Product.id).label("total_products"),
            func.sum(Product.stock_quantity * Product.unit_price).label("total_inventory_value"),
            func.avg(Product.unit_price).label("average_price"),
            func.sum(Product.stock_quantity).label("total_units"),
            func.count(case((Product.stock_quantity == 0, 1))).label("out_of_stock_count"),
            func.count(case((Product.stock_quantity <= Product.reorder_level, 1))).label("low_stock_count"),
            func.count(case((Product.stock_quantity > Product.reorder_level * 3, 1))).label("overstock_count"),
        ).select_from(Product)
        if user_id is not None:
            stmt = stmt.where(Product.user_id == user_id)
        return stmt

    @staticmethod
    def _orders_in_period_stmt(period_start, period_end, user_id: Optional[int]):
        filters = [Order.created_at >= period_start, Order.created_at < period_end]
        if user_id is not None:
            filters.append(Order.user_id == user_id)

        return (
            select(
                Order.id,
                Order.order_number,
                Order.customer_name,
                Order.status,
                Order.user_id,
                Order.created_at,
                func.count(OrderItem.id).label("item_count"),
                func.sum(OrderItem.quantity * OrderItem.unit_price).label("total_amount"),
                func.date(Order.created_at).label("order_date"),
            )
            .select_from(Order)
            .outerjoin(OrderItem, OrderItem.order_id == Order.id)
            .where(and_(*filters))
            .group_by(Order.id, Order.order_number, Order.customer_name, Order.status, Order.user_id, Order.created_at)
            .order_by(desc(Order.created_at))
        )

    @staticmethod
    def _top_selling_stmt(period_start, period_end, user_id: Optional[int]):
        filters = [Order.created_at >= period_start, Order.created_at < period_end]
        if user_id is not None:
            filters.append(Order.user_id == user_id)

        total_sold = func.sum(OrderItem.quantity).label("total_sold")
        return (
            select(
                Product.name,
                Product.sku,
                total_sold,
                func.sum(OrderItem.quantity * OrderItem.unit_price).label("total_revenue"),
                func.count(distinct(Order.id)).label("order_count"),
            )
            .select_from(Product)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, OrderItem.order_id == Order.id)
            .where(and_(*filters))
            .group_by(Product.id, Product.name, Product.sku)
            .order_by(desc(total_sold))
            .limit(10)
        )

    @staticmethod
    def _supplier_performance_stmt(user_id: Optional[int]):
        join_on = Product.supplier_id == Supplier.id
        if user_id is not None:
            join_on = and_(join_on, Product.user_id == user_id)

        total_value = func.sum(Product.stock_quantity * Product.unit_price).label("total_value")
        stmt = (
            select(
                Supplier.name,
                Supplier.contact_email,
                func.count(Product.id).label("product_count"),
                total_value,
                func.count(case((Product.stock_quantity <= Product.reorder_level, 1))).label("low_stock_products"),
                func.avg(Product.unit_price).label("avg_product_price"),
            )
            .select_from(Supplier)
            .outerjoin(Product, join_on)
        )
        if user_id is not None:
            stmt = stmt.where(Supplier.user_id == user_id)
        return stmt.group_by(Supplier.id, Supplier.name, Supplier.contact_email).order_by(total_value.desc().nulls_last())

    @staticmethod
    def _stock_alerts_stmt(user_id: Optional[int]):
        units_needed = (Product.reorder_level - Product.stock_quantity).label("units_needed")
        filters = [Product.stock_quantity <= Product.reorder_level]
        if user_id is not None:
            filters.append(Product.user_id == user_id)

        return (
            select(
                Product.name,
                Product.sku,
                Product.stock_quantity,
                Product.reorder_level,
                Supplier.name.label("supplier_name"),
                Supplier.contact_email,
                units_needed,
                ((Product.reorder_level - Product.stock_quantity) * Product.unit_price).label("reorder_cost"),
            )
            .select_from(Product)
            .outerjoin(Supplier, Product.supplier_id == Supplier.id)
            .where(and_(*filters))
            .order_by(desc(units_needed))
        )
