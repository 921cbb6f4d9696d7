"""
Integration tests for the category API.
"""
from typing import Awaitable, Callable, Dict

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import Category, Product


class TestCategories:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_and_list(
        self, client: AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        created = await client.post(
            "/api/category",
            headers=admin_headers,
            json={"name": "  Garden ", "description": "Outdoor tools"},
        )
        assert created.status_code == 201
        assert created.json()["data"]["name"] == "Garden"

        listed = await client.get("/api/category")
        assert [c["name"] for c in listed.json()["data"]] == ["Garden"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_name_is_case_insensitive(
        self, client: AsyncClient, admin_headers: Dict[str, str], category: Category
    ) -> None:
        response = await client.post(
            "/api/category", headers=admin_headers, json={"name": "electronics"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Category already exists"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_shopper_cannot_create(
        self, client: AsyncClient, auth_headers: Dict[str, str]
    ) -> None:
        response = await client.post("/api/category", headers=auth_headers, json={"name": "Toys"})

        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_category(
        self,
        client: AsyncClient,
        db: AsyncSession,
        admin_headers: Dict[str, str],
        category: Category,
    ) -> None:
        response = await client.patch(
            f"/api/category/{category.id}",
            headers=admin_headers,
            json={"description": "Everything with a battery"},
        )

        assert response.status_code == 200
        await db.refresh(category)
        assert category.name == "Electronics"
        assert category.description == "Everything with a battery"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_category_products(
        self,
        client: AsyncClient,
        category: Category,
        make_product: Callable[..., Awaitable[Product]],
    ) -> None:
        await make_product()
        await make_product(name="Tablet Stand")

        response = await client.get(f"/api/category/{category.id}/products", params={"limit": 1})

        body = response.json()
        assert body["category"]["name"] == "Electronics"
        assert len(body["data"]) == 1
        assert body["pagination"]["totalItems"] == 2
        assert body["pagination"]["totalPages"] == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cannot_delete_category_in_use(
        self,
        client: AsyncClient,
        admin_headers: Dict[str, str],
        category: Category,
        product: Product,
    ) -> None:
        response = await client.delete(f"/api/category/{category.id}", headers=admin_headers)

        assert response.status_code == 400
        assert "1 product(s)" in response.json()["message"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_delete_empty_category(
        self, client: AsyncClient, admin_headers: Dict[str, str], category: Category
    ) -> None:
        response = await client.delete(f"/api/category/{category.id}", headers=admin_headers)

        assert response.status_code == 200
        missing = await client.get(f"/api/category/{category.id}")
        assert missing.status_code == 404
        assert missing.json()["message"] == "Category not found"
