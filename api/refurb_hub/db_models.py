# refurb_hub/db_models.py
"""
SQLAlchemy ORM Models for Refurb Hub.

Three tables: products (one row per serialized unit), local_sales and
additional_costs, both keyed by stock id.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import enum

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, Text, DateTime,
    Numeric, ForeignKey, Index, Enum as SQLEnum, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from refurb_hub.database import Base

# ============================================================================
# ENUMS
# ============================================================================

class PaymentMethod(str, enum.Enum):
    cash = "cash"
    interac = "interac"


class CostType(str, enum.Enum):
    repair = "repair"
    charger = "charger"
    taxes = "taxes"
    shipping = "shipping"
    other = "other"


# ============================================================================
# MIXINS
# ============================================================================

class TimestampMixin:
    """Mixin for created_at and updated_at columns."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


# ============================================================================
# INVENTORY
# ============================================================================

class Product(TimestampMixin, Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stock_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(String(100))
    product_type: Mapped[str] = mapped_column(String(100), nullable=False)
    processor: Mapped[Optional[str]] = mapped_column(String(100))
    storage: Mapped[Optional[str]] = mapped_column(String(50))
    memory: Mapped[Optional[str]] = mapped_column(String(50))
    display_size: Mapped[Optional[str]] = mapped_column(String(20))
    year: Mapped[Optional[str]] = mapped_column(String(10))
    color: Mapped[Optional[str]] = mapped_column(String(50))
    condition: Mapped[Optional[str]] = mapped_column(String(5))
    keyboard_layout: Mapped[Optional[str]] = mapped_column(String(50))
    supplier_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    additional_costs: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    remote_product_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    remote_variant_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    is_sold: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    date_added: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    sales: Mapped[List["LocalSale"]] = relationship(back_populates="product")
    costs: Mapped[List["AdditionalCost"]] = relationship(back_populates="product")

    __table_args__ = (
        Index("idx_products_sold", "is_sold"),
        Index("idx_products_type", "product_type"),
    )


# ============================================================================
# LOCAL POINT OF SALE
# ============================================================================

class LocalSale(TimestampMixin, Base):
    __tablename__ = "local_sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stock_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("products.stock_id", ondelete="RESTRICT"), nullable=False
    )
    sale_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method", native_enum=False), nullable=False
    )
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    sale_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    product: Mapped["Product"] = relationship(back_populates="sales")

    __table_args__ = (
        Index("idx_local_sales_stock", "stock_id"),
        Index("idx_local_sales_date", "sale_date"),
    )


class AdditionalCost(TimestampMixin, Base):
    __tablename__ = "additional_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stock_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("products.stock_id", ondelete="CASCADE"), nullable=False
    )
    cost_type: Mapped[CostType] = mapped_column(
        SQLEnum(CostType, name="cost_type", native_enum=False), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    date_added: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    product: Mapped["Product"] = relationship(back_populates="costs")

    __table_args__ = (
        Index("idx_additional_costs_stock", "stock_id"),
    )
