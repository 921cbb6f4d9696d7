"""
Integration tests for product browsing, search and admin product maintenance.
"""
from typing import Awaitable, Callable, Dict
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import (
    CartItem,
    Category,
    Product,
    Review,
    User,
    WishlistItem,
)
from storefront.integrations.image_store import ImageUploadError

ProductFactory = Callable[..., Awaitable[Product]]


@pytest_asyncio.fixture
async def catalog(db: AsyncSession, make_product: ProductFactory) -> Dict[str, Product]:
    books = Category(name="Books")
    db.add(books)
    await db.commit()
    return {
        "headphones": await make_product(),
        "speaker": await make_product(
            name="Bluetooth Speaker",
            description="Portable speaker with 100% more bass",
            price_cents=2500,
            brand="Sonic",
            is_featured=True,
        ),
        "novel": await make_product(
            name="Mystery Novel",
            description="A page-turning detective story",
            price_cents=1500,
            brand="Penguin",
            in_category=books,
        ),
    }


class TestBrowse:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_products_paginates(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get("/api/products", params={"page": 2, "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 1
        assert body["pagination"] == {
            "totalItems": 3,
            "currentPage": 2,
            "totalPages": 2,
            "pageSize": 2,
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_products_sorted_by_price(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get("/api/products", params={"sortBy": "price", "order": "asc"})

        prices = [p["price"] for p in response.json()["data"]]
        assert prices == [15.0, 25.0, 49.99]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_sort_field_falls_back(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get("/api/products", params={"sortBy": "password_hash"})

        assert response.status_code == 200
        assert len(response.json()["data"]) == 3

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_featured_products(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get("/api/products/featured")

        names = [p["name"] for p in response.json()["data"]]
        assert names == ["Bluetooth Speaker"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_product(self, client: AsyncClient, product: Product) -> None:
        response = await client.get(f"/api/products/{product.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == str(product.id)
        assert data["price"] == 49.99
        assert data["category"]["name"] == "Electronics"

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("product_id", ["not-a-uuid", "6f1c2a4e-2b7a-4d8e-9d61-0c1f1e2a3b4c"])
    async def test_get_missing_product(self, client: AsyncClient, product_id: str) -> None:
        response = await client.get(f"/api/products/{product_id}")

        assert response.status_code == 404
        assert response.json()["message"] == "Product not found"


class TestSearch:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_keyword_matches_name_and_description(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        by_name = await client.get("/api/products/search", params={"keyword": "SPEAKER"})
        by_description = await client.get("/api/products/search", params={"keyword": "detective"})

        assert [p["name"] for p in by_name.json()["products"]] == ["Bluetooth Speaker"]
        assert [p["name"] for p in by_description.json()["products"]] == ["Mystery Novel"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_keyword_wildcards_are_literal(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get("/api/products/search", params={"keyword": "100%"})

        assert response.json()["totalProducts"] == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_category_by_name_or_id(
        self,
        client: AsyncClient,
        category: Category,
        catalog: Dict[str, Product],
    ) -> None:
        by_name = await client.get("/api/products/search", params={"category": "books"})
        by_id = await client.get("/api/products/search", params={"category": str(category.id)})

        assert by_name.json()["totalProducts"] == 1
        assert by_id.json()["totalProducts"] == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_price_range_and_sort(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get(
            "/api/products/search",
            params={"minPrice": 15, "maxPrice": 25, "sortBy": "price", "order": "desc"},
        )

        body = response.json()
        assert body["success"] is True
        assert body["totalProducts"] == 2
        assert [p["price"] for p in body["products"]] == [25.0, 15.0]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_brand_and_pagination(
        self, client: AsyncClient, catalog: Dict[str, Product]
    ) -> None:
        response = await client.get(
            "/api/products/search", params={"brand": "Acme", "page": 1, "limit": 5}
        )

        body = response.json()
        assert body["currentPage"] == 1
        assert body["itemsPerPage"] == 5
        assert body["totalPages"] == 1
        assert body["products"][0]["brand"] == "Acme"


class TestAdminProducts:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_product(
        self,
        client: AsyncClient,
        admin_headers: Dict[str, str],
        category: Category,
        image_store: MagicMock,
    ) -> None:
        response = await client.post(
            "/api/admin/products",
            headers=admin_headers,
            data={
                "name": "Smart Watch",
                "description": "Tracks steps & heart rate",
                "brand": "Acme",
                "price": "199.99",
                "category": str(category.id),
                "stock": "12",
                "isFeatured": "true",
            },
            files=[("images", ("watch.png", b"\x89PNG fake", "image/png"))],
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["price"] == 199.99
        assert data["stock"] == 12
        assert data["isFeatured"] is True
        assert data["description"] == "Tracks steps &amp; heart rate"
        assert data["images"] == image_store.upload_many.return_value

        images, folder = image_store.upload_many.await_args.args
        assert folder == "products"
        assert images[0].filename == "watch.png"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_product_validation_runs_before_upload(
        self,
        client: AsyncClient,
        admin_headers: Dict[str, str],
        category: Category,
        image_store: MagicMock,
    ) -> None:
        response = await client.post(
            "/api/admin/products",
            headers=admin_headers,
            data={"name": "TV", "price": "-5", "category": str(category.id)},
            files=[("images", ("tv.png", b"\x89PNG fake", "image/png"))],
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid product data"
        assert "price must be a positive number" in body["errors"]
        assert "stock is required" in body["errors"]
        image_store.upload_many.assert_not_awaited()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_product_requires_images(
        self, client: AsyncClient, admin_headers: Dict[str, str], category: Category
    ) -> None:
        response = await client.post(
            "/api/admin/products",
            headers=admin_headers,
            data={
                "name": "Smart Watch",
                "description": "Tracks steps and heart rate",
                "brand": "Acme",
                "price": "199.99",
                "category": str(category.id),
                "stock": "12",
            },
        )

        assert response.status_code == 400
        assert response.json()["message"] == "At least one product image is required"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_product_upload_failure(
        self,
        client: AsyncClient,
        admin_headers: Dict[str, str],
        category: Category,
        image_store: MagicMock,
    ) -> None:
        image_store.upload_many.side_effect = ImageUploadError("cloudinary down")

        response = await client.post(
            "/api/admin/products",
            headers=admin_headers,
            data={
                "name": "Smart Watch",
                "description": "Tracks steps and heart rate",
                "brand": "Acme",
                "price": "199.99",
                "category": str(category.id),
                "stock": "12",
            },
            files=[("images", ("watch.png", b"\x89PNG fake", "image/png"))],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Product creation failed during image upload"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_product_unknown_category(
        self, client: AsyncClient, admin_headers: Dict[str, str], category: Category
    ) -> None:
        response = await client.post(
            "/api/admin/products",
            headers=admin_headers,
            data={
                "name": "Smart Watch",
                "description": "Tracks steps and heart rate",
                "brand": "Acme",
                "price": "199.99",
                "category": "garden",
                "stock": "12",
            },
            files=[("images", ("watch.png", b"\x89PNG fake", "image/png"))],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid category Id"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_product(
        self,
        client: AsyncClient,
        db: AsyncSession,
        admin_headers: Dict[str, str],
        product: Product,
    ) -> None:
        response = await client.patch(
            f"/api/admin/products/{product.id}",
            headers=admin_headers,
            data={"price": "39.50", "stock": "3", "imageUrls": ["https://img.test/a.webp"]},
        )

        assert response.status_code == 200
        await db.refresh(product)
        assert product.price_cents == 3950
        assert product.stock == 3
        assert product.images == ["https://img.test/a.webp"]
        assert product.name == "Wireless Headphones"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_delete_product_removes_references(
        self,
        client: AsyncClient,
        db: AsyncSession,
        admin_headers: Dict[str, str],
        user: User,
        product: Product,
    ) -> None:
        db.add_all(
            [
                CartItem(user_id=user.id, product_id=product.id, quantity=1),
                WishlistItem(user_id=user.id, product_id=product.id),
                Review(user_id=user.id, product_id=product.id, rating=4, comment="Nice sound"),
            ]
        )
        await db.commit()

        response = await client.delete(f"/api/admin/products/{product.id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Product deleted successfully"
        for model in (Product, CartItem, WishlistItem, Review):
            assert (await db.execute(select(model))).scalars().all() == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_shopper_cannot_create_products(
        self, client: AsyncClient, auth_headers: Dict[str, str]
    ) -> None:
        response = await client.post("/api/admin/products", headers=auth_headers, data={})

        assert response.status_code == 403
        assert response.json()["message"] == "Not authorized as an admin"
