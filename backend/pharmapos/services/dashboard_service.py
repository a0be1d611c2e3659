# Overview: Read-only dashboard rollups over the order and stock ledgers.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Order, OrderItem, Product
from ..models.orders import ORDER_COMPLETED
from ..money import cents_to_decimal
from . import stock_service
from pharmapos.time_utils import to_utc_z, today_utc, utc_day_window

WALK_IN_CUSTOMER = "Walk-in"


@dataclass(frozen=True)
class RecentOrder:
    id: int
    customer_name: str
    total_amount_cents: int
    status: str
    payment_status: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
        }


@dataclass(frozen=True)
class TopProduct:
    id: int
    name: str
    quantity_sold: int
    revenue_cents: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity_sold": self.quantity_sold,
            "revenue_cents": self.revenue_cents,
        }


def _margin_percent(profit_cents: int, cost_cents: int) -> Decimal | None:
    if cost_cents <= 0:
        return None
    return (Decimal(profit_cents) * 100 / Decimal(cost_cents)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ProductProfit:
    """
    Sales of one product over completed orders.

    revenue is net of line discounts; cost is units sold at the product's
    current cost_price_cents. margin_percent is profit over cost.
    """
    id: int
    name: str
    category: str | None
    quantity_sold: int
    revenue_cents: int
    cost_cents: int

    @property
    def profit_cents(self) -> int:
        return self.revenue_cents - self.cost_cents

    @property
    def margin_percent(self) -> Decimal | None:
        return _margin_percent(self.profit_cents, self.cost_cents)

    def to_dict(self) -> dict:
        margin = self.margin_percent
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "quantity_sold": self.quantity_sold,
            "revenue_cents": self.revenue_cents,
            "cost_cents": self.cost_cents,
            "profit_cents": self.profit_cents,
            "margin_percent": str(margin) if margin is not None else None,
        }


@dataclass
class ProfitReport:
    products: list[ProductProfit] = field(default_factory=list)
    category: str | None = None

    @property
    def total_revenue_cents(self) -> int:
        return sum(p.revenue_cents for p in self.products)

    @property
    def total_cost_cents(self) -> int:
        return sum(p.cost_cents for p in self.products)

    @property
    def total_profit_cents(self) -> int:
        return self.total_revenue_cents - self.total_cost_cents

    @property
    def margin_percent(self) -> Decimal | None:
        return _margin_percent(self.total_profit_cents, self.total_cost_cents)

    def categories(self) -> list[str]:
        return sorted({p.category for p in self.products if p.category})

    def to_dict(self) -> dict:
        margin = self.margin_percent
        return {
            "category": self.category,
            "categories": self.categories(),
            "products": [p.to_dict() for p in self.products],
            "total_revenue_cents": self.total_revenue_cents,
            "total_cost_cents": self.total_cost_cents,
            "total_profit_cents": self.total_profit_cents,
            "margin_percent": str(margin) if margin is not None else None,
        }


@dataclass(frozen=True)
class TrendPoint:
    date: date
    total_cents: int

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "total_cents": self.total_cents}


@dataclass
class DashboardMetrics:
    total_products: int
    low_stock_count: int
    total_orders: int
    total_revenue_cents: int
    gross_profit_cents: int = 0
    recent_orders: list[RecentOrder] = field(default_factory=list)
    top_products: list[TopProduct] = field(default_factory=list)
    sales_trend: list[TrendPoint] = field(default_factory=list)

    @property
    def total_revenue(self) -> Decimal:
        return cents_to_decimal(self.total_revenue_cents)

    def to_dict(self) -> dict:
        return {
            "total_products": self.total_products,
            "low_stock_count": self.low_stock_count,
            "total_orders": self.total_orders,
            "total_revenue_cents": self.total_revenue_cents,
            "gross_profit_cents": self.gross_profit_cents,
            "recent_orders": [o.to_dict() for o in self.recent_orders],
            "top_products": [p.to_dict() for p in self.top_products],
            "sales_trend": [t.to_dict() for t in self.sales_trend],
        }


def completed_totals() -> tuple[int, int]:
    """(count, revenue_cents) over completed orders."""
    row = db.session.query(
        func.count(Order.id).label("orders"),
        func.coalesce(func.sum(Order.total_amount_cents), 0).label("revenue"),
    ).filter(Order.status == ORDER_COMPLETED).one()
    return int(row.orders or 0), int(row.revenue or 0)


def recent_orders(limit: int = 5) -> list[RecentOrder]:
    rows = (
        db.session.query(Order, Customer.name)
        .outerjoin(Customer, Customer.id == Order.customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    return [
        RecentOrder(
            id=order.id,
            customer_name=name or WALK_IN_CUSTOMER,
            total_amount_cents=order.total_amount_cents,
            status=order.status,
            payment_status=order.payment_status,
            created_at=order.created_at,
        )
        for order, name in rows
    ]


def top_products(limit: int = 5) -> list[TopProduct]:
    """
    Best sellers across completed orders.

    Ranked by units sold, then revenue, then product id so equal rows
    always come back in the same order.
    """
    quantity_sold = func.sum(OrderItem.quantity)
    revenue = func.sum(OrderItem.quantity * OrderItem.unit_price_cents - OrderItem.discount_amount_cents)

    rows = (
        db.session.query(
            Product.id.label("id"),
            Product.name.label("name"),
            quantity_sold.label("quantity_sold"),
            revenue.label("revenue"),
        )
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.status == ORDER_COMPLETED)
        .group_by(Product.id, Product.name)
        .order_by(quantity_sold.desc(), revenue.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        TopProduct(
            id=row.id,
            name=row.name,
            quantity_sold=int(row.quantity_sold or 0),
            revenue_cents=int(row.revenue or 0),
        )
        for row in rows
    ]


def profit_report(category: str | None = None) -> ProfitReport:
    """
    Revenue, cost and profit per product sold on completed orders, most
    profitable first. category narrows the rows; ties break on product id.
    """
    quantity_sold = func.sum(OrderItem.quantity)
    revenue = func.sum(OrderItem.quantity * OrderItem.unit_price_cents - OrderItem.discount_amount_cents)
    cost = func.sum(OrderItem.quantity * Product.cost_price_cents)

    query = (
        db.session.query(
            Product.id.label("id"),
            Product.name.label("name"),
            Product.category.label("category"),
            quantity_sold.label("quantity_sold"),
            revenue.label("revenue"),
            cost.label("cost"),
        )
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.status == ORDER_COMPLETED)
    )
    if category:
        query = query.filter(Product.category == category)
    rows = query.group_by(Product.id, Product.name, Product.category).all()

    products = [
        ProductProfit(
            id=row.id,
            name=row.name,
            category=row.category,
            quantity_sold=int(row.quantity_sold or 0),
            revenue_cents=int(row.revenue or 0),
            cost_cents=int(row.cost or 0),
        )
        for row in rows
    ]
    products.sort(key=lambda p: (-p.profit_cents, p.id))
    return ProfitReport(products=products, category=category or None)


def sales_trend(days: int = 7, today: date | None = None) -> list[TrendPoint]:
    """
    One point per calendar day (UTC) over the trailing window ending today,
    oldest first. Days without completed orders report 0.
    """
    if days <= 0:
        return []
    today = today or today_utc()
    start_day = today - timedelta(days=days - 1)
    window_start, window_end = utc_day_window(start_day, today)

    buckets = {start_day + timedelta(days=i): 0 for i in range(days)}

    rows = (
        db.session.query(Order.created_at, Order.total_amount_cents)
        .filter(
            Order.status == ORDER_COMPLETED,
            Order.created_at >= window_start,
            Order.created_at < window_end,
        )
        .all()
    )
    for created_at, total in rows:
        day = created_at.date()
        if day in buckets:
            buckets[day] += int(total or 0)

    return [TrendPoint(date=day, total_cents=buckets[day]) for day in sorted(buckets)]


def compute_metrics(
    *,
    days: int = 7,
    recent_limit: int = 5,
    top_limit: int = 5,
    today: date | None = None,
) -> DashboardMetrics:
    total_orders, total_revenue = completed_totals()
    return DashboardMetrics(
        total_products=db.session.query(Product).count(),
        low_stock_count=len(stock_service.get_low_stock()),
        total_orders=total_orders,
        total_revenue_cents=total_revenue,
        gross_profit_cents=profit_report().total_profit_cents,
        recent_orders=recent_orders(recent_limit),
        top_products=top_products(top_limit),
        sales_trend=sales_trend(days, today=today),
    )
