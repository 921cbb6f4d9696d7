"""
Integration tests for the cart API.
"""
from typing import Awaitable, Callable, Dict

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import CartItem, Product


class TestAddToCart:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_add_and_merge(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 2}
        )
        response = await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 3}
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["items"]) == 1
        assert body["items"][0]["quantity"] == 5
        assert body["items"][0]["lineTotal"] == 249.95
        assert body["totalItems"] == 5
        assert body["subtotal"] == 249.95

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_quantity_defaults_to_one(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        response = await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id)}
        )

        assert response.json()["totalItems"] == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_out_of_stock(
        self,
        client: AsyncClient,
        auth_headers: Dict[str, str],
        make_product: Callable[..., Awaitable[Product]],
    ) -> None:
        sold_out = await make_product(stock=0)

        response = await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(sold_out.id)}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Product is out of stock"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_new_line_exceeding_stock(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        response = await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 11}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Only 10 items available in stock."

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_merge_exceeding_stock(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 8}
        )

        response = await client.post(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 3}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot add 3. Only 2 more available in stock."

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_product(self, client: AsyncClient, auth_headers: Dict[str, str]) -> None:
        response = await client.post(
            "/api/cart", headers=auth_headers, json={"productId": "missing"}
        )

        assert response.status_code == 404


class TestUpdateCart:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_set_quantity(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        await client.post("/api/cart", headers=auth_headers, json={"productId": str(product.id)})

        response = await client.patch(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 4}
        )

        assert response.json()["items"][0]["quantity"] == 4

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_zero_removes_line(
        self,
        client: AsyncClient,
        db: AsyncSession,
        auth_headers: Dict[str, str],
        product: Product,
    ) -> None:
        await client.post("/api/cart", headers=auth_headers, json={"productId": str(product.id)})

        response = await client.patch(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 0}
        )

        assert response.json()["items"] == []
        assert (await db.execute(select(CartItem))).scalars().all() == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_item_not_in_cart(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        response = await client.patch(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": 1}
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Item not found in cart"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        response = await client.patch(
            "/api/cart", headers=auth_headers, json={"productId": str(product.id), "quantity": -1}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"


class TestRemoveFromCart:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_remove_line(
        self,
        client: AsyncClient,
        auth_headers: Dict[str, str],
        make_product: Callable[..., Awaitable[Product]],
    ) -> None:
        keep = await make_product(name="Keep Me")
        drop = await make_product(name="Drop Me")
        for product in (keep, drop):
            await client.post(
                "/api/cart", headers=auth_headers, json={"productId": str(product.id)}
            )

        response = await client.delete(f"/api/cart/{drop.id}", headers=auth_headers)

        assert [i["product"]["name"] for i in response.json()["items"]] == ["Keep Me"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_clear_cart(
        self, client: AsyncClient, auth_headers: Dict[str, str], product: Product
    ) -> None:
        await client.post("/api/cart", headers=auth_headers, json={"productId": str(product.id)})

        response = await client.delete("/api/cart", headers=auth_headers)

        assert response.json() == {"items": [], "totalItems": 0, "subtotal": 0.0}
