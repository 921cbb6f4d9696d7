"""
Integration tests for the admin sales dashboard.
"""
from datetime import datetime, timezone
from typing import Dict

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import Order, OrderItem, Product, User


def _order(
    owner: User,
    product: Product,
    status: str,
    month: int,
    quantity: int,
    payment_method: str = "card",
) -> Order:
    return Order(
        user_id=owner.id,
        shipping_address={"street": "1 Main St", "city": "Toronto", "country": "CA"},
        total_cents=product.price_cents * quantity,
        status=status,
        payment_method=payment_method,
        is_paid=True,
        created_at=datetime(2026, month, 15, tzinfo=timezone.utc),
        items=[
            OrderItem(
                product_id=product.id,
                name=product.name,
                price_cents=product.price_cents,
                quantity=quantity,
            )
        ],
    )


@pytest_asyncio.fixture
async def sales(db: AsyncSession, user: User, product: Product) -> None:
    db.add_all(
        [
            _order(user, product, "paid", month=1, quantity=1),
            _order(user, product, "delivered", month=1, quantity=2, payment_method="stripe"),
            _order(user, product, "shipped", month=3, quantity=1, payment_method="stripe"),
            _order(user, product, "cancelled", month=3, quantity=5),
            _order(user, product, "refunded", month=4, quantity=4, payment_method="stripe"),
        ]
    )
    await db.commit()


class TestDashboard:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_monthly_sales_excludes_lost_revenue(
        self, client: AsyncClient, admin_headers: Dict[str, str], sales: None
    ) -> None:
        response = await client.get("/api/admin/dashboard/monthly-sales", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == [
            {"month": "Jan", "revenue": 149.97},
            {"month": "Mar", "revenue": 49.99},
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_top_products(
        self,
        client: AsyncClient,
        admin_headers: Dict[str, str],
        product: Product,
        sales: None,
    ) -> None:
        response = await client.get("/api/admin/dashboard/top-products", headers=admin_headers)

        assert response.json() == [
            {"id": str(product.id), "name": "Wireless Headphones", "sales": 4}
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_order_status_breakdown(
        self, client: AsyncClient, admin_headers: Dict[str, str], sales: None
    ) -> None:
        response = await client.get("/api/admin/dashboard/order-status", headers=admin_headers)

        assert {row["name"]: row["value"] for row in response.json()} == {
            "cancelled": 1,
            "delivered": 1,
            "paid": 1,
            "refunded": 1,
            "shipped": 1,
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payment_method_breakdown(
        self, client: AsyncClient, admin_headers: Dict[str, str], sales: None
    ) -> None:
        response = await client.get(
            "/api/admin/dashboard/payment-methods", headers=admin_headers
        )

        assert response.json() == [
            {"name": "card", "value": 2},
            {"name": "stripe", "value": 3},
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_empty_dashboard(
        self, client: AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.get("/api/admin/dashboard/monthly-sales", headers=admin_headers)

        assert response.json() == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_dashboard_is_admin_only(
        self, client: AsyncClient, auth_headers: Dict[str, str]
    ) -> None:
        response = await client.get("/api/admin/dashboard/order-status", headers=auth_headers)

        assert response.status_code == 403
