"""
本文件用于定义库存相关表的 ORM 模型（供应商、商品、订单、订单明细），报表聚合查询基于这些表。
主要类:
- `Supplier`: 供应商
- `Product`: 商品（库存数量、补货阈值、单价）
- `Order`: 订单
- `OrderItem`: 订单明细

所有表均带 `user_id` 归属列，用于按用户隔离数据。
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from app.core.database import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    contact_email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    user_id = Column(Integer, index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Product(Base):
    """
    输入:
    - `stock_quantity`: 当前库存数量
    - `reorder_level`: 补货阈值
    - `unit_price`: 单价（精确小数）

    输出:
    - 数据库 `products` 表的 ORM 映射对象

    作用:
    - 存储商品库存信息；库存状态（缺货/低库存/积压/正常）由查询时计算
    """

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=0)
    user_id = Column(Integer, index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False)
    customer_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    user_id = Column(Integer, index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.now, index=True)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
