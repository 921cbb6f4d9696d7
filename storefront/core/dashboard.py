"""Sales aggregates for the admin dashboard."""
import calendar
from typing import Any, Dict, List

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.serializers import cents_to_dollars
from storefront.database.models import Order, OrderItem

# Orders that did not turn into revenue
EXCLUDED_FROM_REVENUE = ("cancelled", "refunded")


async def monthly_sales(db: AsyncSession) -> List[Dict[str, Any]]:
    """Revenue per calendar month across all years, January first."""
    month = extract("month", Order.created_at)
    result = await db.execute(
        select(month.label("month"), func.sum(Order.total_cents))
        .where(Order.status.not_in(EXCLUDED_FROM_REVENUE))
        .group_by(month)
        .order_by(month)
    )
    return [
        {"month": calendar.month_abbr[int(m)], "revenue": cents_to_dollars(total)}
        for m, total in result.all()
    ]


async def top_products(db: AsyncSession, limit: int = 5) -> List[Dict[str, Any]]:
    """Best sellers by units sold. Lines of deleted products are grouped by name."""
    sold = func.sum(OrderItem.quantity).label("sold")
    result = await db.execute(
        select(OrderItem.product_id, OrderItem.name, sold)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.status.not_in(EXCLUDED_FROM_REVENUE))
        .group_by(OrderItem.product_id, OrderItem.name)
        .order_by(sold.desc())
        .limit(limit)
    )
    return [
        {"id": str(pid) if pid else None, "name": name, "sales": int(units)}
        for pid, name, units in result.all()
    ]


async def order_status_breakdown(db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Order.status, func.count(Order.id)).group_by(Order.status).order_by(Order.status)
    )
    return [{"name": status, "value": count} for status, count in result.all()]


async def payment_method_breakdown(db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Order.payment_method, func.count(Order.id))
        .group_by(Order.payment_method)
        .order_by(Order.payment_method)
    )
    return [{"name": method or "unknown", "value": count} for method, count in result.all()]
