# refurb_hub/services/store.py
"""
Inventory Store - persistence for units, local sales and added costs.

Handles:
- Upsert of serialized units by stock id (from grouped uploads)
- Local point-of-sale records (marks the unit sold)
- Added costs with per-unit aggregation
- Read-only reports by type and optional date range
"""
from __future__ import annotations
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from refurb_hub.database import Database
from refurb_hub.db_models import AdditionalCost, CostType, LocalSale, PaymentMethod, Product
from refurb_hub.domain import ProductGroup, StockItem
from refurb_hub.errors import RecordNotFoundError
from refurb_hub.models import AddCostIn, CostOut, DashboardStats, ProductOut, RecordSaleIn

logger = logging.getLogger(__name__)

REPORT_TYPES = ("interac-sales", "all-sales", "inventory", "profit", "costs")

DateLike = Union[date, datetime, str, None]


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _money(value: Any) -> float:
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01")))


def _row(mapping: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in mapping.items():
        if isinstance(v, Decimal):
            v = _money(v)
        elif isinstance(v, (PaymentMethod, CostType)):
            v = v.value
        elif isinstance(v, datetime):
            v = v.isoformat()
        out[k] = v
    return out


class InventoryStore:
    """Service over an explicitly opened Database."""

    def __init__(self, database: Database):
        self.database = database

    async def open(self) -> None:
        await self.database.open()

    async def close(self) -> None:
        await self.database.close()

    async def health(self) -> dict:
        return await self.database.health()

    # =========================================================================
    # Products
    # =========================================================================

    @staticmethod
    async def _get(db: AsyncSession, stock_id: str) -> Optional[Product]:
        result = await db.execute(select(Product).where(Product.stock_id == stock_id))
        return result.scalar_one_or_none()

    async def _require(self, db: AsyncSession, stock_id: str) -> Product:
        product = await self._get(db, stock_id)
        if product is None:
            raise RecordNotFoundError(stock_id)
        return product

    @staticmethod
    def _apply(product: Product, group: ProductGroup, item: StockItem) -> None:
        product.serial_number = item.serial_number or None
        product.product_type = group.product_type
        product.processor = group.processor or None
        product.storage = group.storage or None
        product.memory = group.memory or None
        product.display_size = group.display_size or None
        product.year = group.year or None
        product.color = item.color
        product.condition = item.condition
        product.keyboard_layout = item.keyboard_layout
        product.comments = item.comments or None
        if group.shopify_product_id:
            product.remote_product_id = group.shopify_product_id

    async def upsert_product(self, group: ProductGroup, item: StockItem) -> bool:
        """Insert or refresh one unit. Returns False when the unit has no stock id."""
        if not item.stock_id:
            return False
        async with self.database.session() as db:
            await self._upsert(db, group, item, {})
        return True

    async def _upsert(self, db: AsyncSession, group: ProductGroup, item: StockItem, pending: Dict[str, Product]) -> None:
        # autoflush is off, so repeated stock ids in one batch resolve through pending
        product = pending.get(item.stock_id) or await self._get(db, item.stock_id)
        if product is None:
            product = Product(stock_id=item.stock_id)
            db.add(product)
        pending[item.stock_id] = product
        # sold flag and costs are owned by the sales side
        self._apply(product, group, item)

    async def upsert_groups(self, groups: Iterable[ProductGroup]) -> int:
        """Upsert every unit of every group in one transaction."""
        saved = 0
        pending: Dict[str, Product] = {}
        async with self.database.session() as db:
            for group in groups:
                for item in group.stock_items:
                    if not item.stock_id:
                        continue
                    await self._upsert(db, group, item, pending)
                    saved += 1
        logger.info("Saved %d units to the inventory store", saved)
        return saved

    async def get_product(self, stock_id: str) -> ProductOut:
        async with self.database.session() as db:
            p = await self._require(db, stock_id)
            return ProductOut(
                stock_id=p.stock_id,
                serial_number=p.serial_number,
                product_type=p.product_type,
                display_size=p.display_size,
                processor=p.processor,
                storage=p.storage,
                memory=p.memory,
                year=p.year,
                color=p.color,
                condition=p.condition,
                keyboard_layout=p.keyboard_layout,
                supplier_cost=_money(p.supplier_cost),
                additional_costs=_money(p.additional_costs),
                remote_product_id=p.remote_product_id,
                sold=p.is_sold,
                date_added=p.date_added,
                comments=p.comments,
            )

    async def set_remote_product_id(self, stock_ids: Iterable[str], remote_product_id: int) -> int:
        ids = [s for s in stock_ids if s]
        if not ids:
            return 0
        async with self.database.session() as db:
            result = await db.execute(
                update(Product)
                .where(Product.stock_id.in_(ids))
                .values(remote_product_id=remote_product_id)
            )
            return result.rowcount or 0

    # =========================================================================
    # Sales / costs
    # =========================================================================

    async def record_sale(self, sale: RecordSaleIn) -> int:
        async with self.database.session() as db:
            product = await self._require(db, sale.stock_id)
            row = LocalSale(
                stock_id=sale.stock_id,
                sale_price=Decimal(str(sale.sale_price)),
                payment_method=PaymentMethod(sale.payment_method),
                customer_name=sale.customer_name,
                customer_email=sale.customer_email,
                customer_phone=sale.customer_phone,
                notes=sale.notes,
            )
            if sale.sale_date is not None:
                row.sale_date = sale.sale_date
            db.add(row)
            product.is_sold = True
            await db.flush()
            logger.info("Sale recorded: %s for %s (%s)", sale.stock_id, sale.sale_price, sale.payment_method)
            return row.id

    async def add_cost(self, cost: AddCostIn) -> float:
        """Record a cost and return the unit's new total of added costs."""
        async with self.database.session() as db:
            product = await self._require(db, cost.stock_id)
            row = AdditionalCost(
                stock_id=cost.stock_id,
                cost_type=CostType(cost.cost_type),
                amount=Decimal(str(cost.amount)),
                description=cost.description,
            )
            if cost.date is not None:
                row.date_added = cost.date
            db.add(row)
            await db.flush()
            total = await db.scalar(
                select(func.coalesce(func.sum(AdditionalCost.amount), 0))
                .where(AdditionalCost.stock_id == cost.stock_id)
            )
            product.additional_costs = Decimal(str(total))
            return _money(total)

    async def cost_history(self, stock_id: str) -> List[CostOut]:
        async with self.database.session() as db:
            result = await db.execute(
                select(AdditionalCost)
                .where(AdditionalCost.stock_id == stock_id)
                .order_by(AdditionalCost.date_added.desc(), AdditionalCost.id.desc())
            )
            return [
                CostOut(
                    id=c.id,
                    stock_id=c.stock_id,
                    cost_type=c.cost_type.value,
                    amount=_money(c.amount),
                    description=c.description,
                    date=c.date_added,
                )
                for c in result.scalars()
            ]

    # =========================================================================
    # Reports
    # =========================================================================

    @staticmethod
    def _date_filter(stmt, column, start: Optional[date], end: Optional[date]):
        if start is not None:
            stmt = stmt.where(column >= datetime.combine(start, time.min))
        if end is not None:
            stmt = stmt.where(column < datetime.combine(end + timedelta(days=1), time.min))
        return stmt

    async def query(self, report: str, start: DateLike = None, end: DateLike = None) -> Dict[str, Any]:
        """Run one named report; returns {"data": [...], "stats": {...}}."""
        if report not in REPORT_TYPES:
            raise ValueError(f"Invalid report type: {report}")
        start_d, end_d = _as_date(start), _as_date(end)
        async with self.database.session() as db:
            if report == "interac-sales":
                return await self._sales_report(db, start_d, end_d, interac_only=True)
            if report == "all-sales":
                return await self._sales_report(db, start_d, end_d, interac_only=False)
            if report == "inventory":
                return await self._inventory_report(db)
            if report == "profit":
                return await self._profit_report(db, start_d, end_d)
            return await self._costs_report(db)

    async def _sales_report(self, db: AsyncSession, start, end, interac_only: bool) -> Dict[str, Any]:
        profit = (LocalSale.sale_price - Product.supplier_cost - Product.additional_costs).label("profit")
        stmt = (
            select(
                LocalSale.id, LocalSale.stock_id, LocalSale.sale_price, LocalSale.payment_method,
                LocalSale.customer_name, LocalSale.customer_email, LocalSale.customer_phone,
                LocalSale.sale_date, LocalSale.notes,
                Product.product_type, Product.serial_number, Product.processor,
                Product.supplier_cost, Product.additional_costs, profit,
            )
            .join(Product, Product.stock_id == LocalSale.stock_id)
            .order_by(LocalSale.sale_date.desc(), LocalSale.id.desc())
        )
        stats_stmt = select(
            func.count(LocalSale.id).label("total_sales"),
            func.coalesce(func.sum(LocalSale.sale_price), 0).label("total_amount"),
            func.avg(LocalSale.sale_price).label("average_sale"),
            func.coalesce(func.sum(case((LocalSale.payment_method == PaymentMethod.cash, LocalSale.sale_price), else_=0)), 0).label("cash_sales"),
            func.coalesce(func.sum(case((LocalSale.payment_method == PaymentMethod.interac, LocalSale.sale_price), else_=0)), 0).label("interac_sales"),
        )
        if interac_only:
            stmt = stmt.where(LocalSale.payment_method == PaymentMethod.interac)
            stats_stmt = stats_stmt.where(LocalSale.payment_method == PaymentMethod.interac)
        stmt = self._date_filter(stmt, LocalSale.sale_date, start, end)
        stats_stmt = self._date_filter(stats_stmt, LocalSale.sale_date, start, end)

        rows = (await db.execute(stmt)).mappings().all()
        stats = (await db.execute(stats_stmt)).mappings().one()
        return {"data": [_row(r) for r in rows], "stats": _row(stats)}

    async def _inventory_report(self, db: AsyncSession) -> Dict[str, Any]:
        stmt = select(
            Product.stock_id, Product.product_type, Product.processor, Product.storage, Product.memory,
            Product.color, Product.condition, Product.supplier_cost, Product.additional_costs,
            Product.is_sold, Product.date_added,
        ).order_by(Product.date_added.desc(), Product.id.desc())
        stats_stmt = select(
            func.count(Product.id).label("total_products"),
            func.count(case((Product.is_sold.is_(False), 1))).label("available"),
            func.count(case((Product.is_sold.is_(True), 1))).label("sold"),
            func.coalesce(func.sum(Product.supplier_cost + Product.additional_costs), 0).label("total_invested"),
        )
        rows = (await db.execute(stmt)).mappings().all()
        stats = (await db.execute(stats_stmt)).mappings().one()
        return {"data": [_row(r) for r in rows], "stats": _row(stats)}

    async def _profit_report(self, db: AsyncSession, start, end) -> Dict[str, Any]:
        cost = Product.supplier_cost + Product.additional_costs
        profit = LocalSale.sale_price - cost
        stmt = (
            select(
                LocalSale.stock_id, LocalSale.sale_price, LocalSale.payment_method, LocalSale.sale_date,
                Product.product_type, Product.supplier_cost, Product.additional_costs,
                profit.label("profit"),
                func.round(profit / LocalSale.sale_price * 100, 2).label("profit_margin"),
            )
            .join(Product, Product.stock_id == LocalSale.stock_id)
            .order_by(profit.desc())
        )
        stats_stmt = (
            select(
                func.count(LocalSale.id).label("sales_count"),
                func.coalesce(func.sum(LocalSale.sale_price), 0).label("total_revenue"),
                func.coalesce(func.sum(cost), 0).label("total_costs"),
                func.coalesce(func.sum(profit), 0).label("total_profit"),
                func.avg(profit / LocalSale.sale_price * 100).label("avg_profit_margin"),
            )
            .join(Product, Product.stock_id == LocalSale.stock_id)
        )
        stmt = self._date_filter(stmt, LocalSale.sale_date, start, end)
        stats_stmt = self._date_filter(stats_stmt, LocalSale.sale_date, start, end)
        rows = (await db.execute(stmt)).mappings().all()
        stats = (await db.execute(stats_stmt)).mappings().one()
        return {"data": [_row(r) for r in rows], "stats": _row(stats)}

    async def _costs_report(self, db: AsyncSession) -> Dict[str, Any]:
        stmt = (
            select(
                AdditionalCost.id, AdditionalCost.stock_id, AdditionalCost.cost_type, AdditionalCost.amount,
                AdditionalCost.description, AdditionalCost.date_added,
                Product.product_type, Product.serial_number,
            )
            .join(Product, Product.stock_id == AdditionalCost.stock_id)
            .order_by(AdditionalCost.date_added.desc(), AdditionalCost.id.desc())
        )
        stats_stmt = select(
            func.count(AdditionalCost.id).label("total_entries"),
            func.coalesce(func.sum(AdditionalCost.amount), 0).label("total_costs"),
            func.avg(AdditionalCost.amount).label("average_cost"),
        )
        rows = (await db.execute(stmt)).mappings().all()
        stats = (await db.execute(stats_stmt)).mappings().one()
        return {"data": [_row(r) for r in rows], "stats": _row(stats)}

    async def dashboard_stats(self) -> DashboardStats:
        async with self.database.session() as db:
            counts = (await db.execute(select(
                func.count(Product.id).label("total"),
                func.count(case((Product.is_sold.is_(False), 1))).label("available"),
                func.count(case((Product.is_sold.is_(True), 1))).label("sold"),
            ))).mappings().one()
            total_sales = await db.scalar(select(func.coalesce(func.sum(LocalSale.sale_price), 0)))
        return DashboardStats(
            total_products=counts["total"] or 0,
            available_products=counts["available"] or 0,
            sold_products=counts["sold"] or 0,
            total_sales=_money(total_sales),
        )
