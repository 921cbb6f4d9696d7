"""
Product catalog: browsing, search and administrator maintenance.
"""
import html
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import NotFoundError, ValidationError
from storefront.core.pagination import PageRequest
from storefront.core.serializers import parse_id, product_to_dict
from storefront.database.models import (
    CartItem,
    Category,
    OrderItem,
    Product,
    Review,
    WishlistItem,
)
from storefront.integrations.image_store import ImageFile, ImageStore, ImageUploadError

logger = structlog.get_logger(__name__)

SORT_FIELDS = {
    "createdAt": Product.created_at,
    "price": Product.price_cents,
    "name": Product.name,
    "rating": Product.rating,
    "stock": Product.stock,
}


def sort_column(sort_by: Optional[str]):
    return SORT_FIELDS.get(sort_by or "createdAt", Product.created_at)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _price_to_cents(value: Any) -> Optional[int]:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return int((amount * 100).to_integral_value())


def _to_int(value: Any) -> Optional[int]:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


class CatalogService:
    """Read side of the catalog."""

    @staticmethod
    async def get_product(product_id: Any, db: AsyncSession) -> Product:
        """
        Raises:
            NotFoundError: If there is no such product
        """
        product = await db.get(Product, parse_id(product_id, "Product"))
        if product is None:
            raise NotFoundError("Product")
        return product

    async def get_product_detail(self, product_id: str, db: AsyncSession) -> Dict[str, Any]:
        return {"data": product_to_dict(await self.get_product(product_id, db))}

    @staticmethod
    async def list_products(
        db: AsyncSession,
        page: Any = 1,
        limit: Any = 12,
        sort_by: Optional[str] = "createdAt",
        order: str = "desc",
    ) -> Dict[str, Any]:
        paging = PageRequest.from_query(page, limit, default_limit=12)
        column = sort_column(sort_by)

        total = (await db.execute(select(func.count(Product.id)))).scalar_one()
        result = await db.execute(
            select(Product)
            .order_by(column.asc() if order == "asc" else column.desc())
            .offset(paging.offset)
            .limit(paging.limit)
        )
        return {
            "data": [product_to_dict(p) for p in result.scalars().all()],
            "pagination": {
                "totalItems": total,
                "currentPage": paging.page,
                "totalPages": paging.total_pages(total),
                "pageSize": paging.limit,
            },
        }

    @staticmethod
    async def featured_products(db: AsyncSession, limit: Any = 8) -> Dict[str, Any]:
        paging = PageRequest.from_query(1, limit, default_limit=8)
        result = await db.execute(
            select(Product)
            .where(Product.is_featured.is_(True))
            .order_by(Product.created_at.desc())
            .limit(paging.limit)
        )
        return {"data": [product_to_dict(p) for p in result.scalars().all()]}

    @staticmethod
    async def search_products(
        db: AsyncSession,
        keyword: Optional[str] = None,
        category: Optional[str] = None,
        brand: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort_by: Optional[str] = None,
        order: str = "asc",
        page: Any = 1,
        limit: Any = 10,
    ) -> Dict[str, Any]:
        """
        Filtered, sorted and paginated product search.

        ``category`` is matched against category ids first and names
        otherwise. Price bounds are inclusive and expressed in dollars.
        Without ``sort_by`` results are newest first.
        """
        paging = PageRequest.from_query(page, limit, default_limit=10)

        conditions = []
        if keyword:
            pattern = _like_pattern(keyword.strip())
            conditions.append(
                or_(
                    Product.name.ilike(pattern, escape="\\"),
                    Product.description.ilike(pattern, escape="\\"),
                )
            )
        if category:
            try:
                conditions.append(Product.category_id == uuid.UUID(category))
            except ValueError:
                conditions.append(
                    Product.category_id.in_(
                        select(Category.id).where(
                            func.lower(Category.name) == category.strip().lower()
                        )
                    )
                )
        if brand:
            conditions.append(Product.brand == brand)
        if min_price is not None:
            conditions.append(Product.price_cents >= _price_to_cents(min_price))
        if max_price is not None:
            conditions.append(Product.price_cents <= _price_to_cents(max_price))

        if sort_by:
            column = sort_column(sort_by)
            ordering = column.desc() if order == "desc" else column.asc()
        else:
            ordering = Product.created_at.desc()

        total = (
            await db.execute(select(func.count(Product.id)).where(*conditions))
        ).scalar_one()
        result = await db.execute(
            select(Product)
            .where(*conditions)
            .order_by(ordering)
            .offset(paging.offset)
            .limit(paging.limit)
        )
        return {
            "success": True,
            "currentPage": paging.page,
            "itemsPerPage": paging.limit,
            "totalProducts": total,
            "totalPages": paging.total_pages(total),
            "products": [product_to_dict(p) for p in result.scalars().all()],
        }


class ProductAdminService:
    """
    Create, update and delete catalog products.

    Images are uploaded to the image store before the row is written and
    destroyed again if the write fails.
    """

    def __init__(self, image_store: Optional[ImageStore] = None):
        """
        Args:
            image_store: Optional image store
        """
        self.image_store = image_store or ImageStore()

    @staticmethod
    async def _resolve_category(value: Any, db: AsyncSession) -> Category:
        try:
            category_id = uuid.UUID(str(value))
        except ValueError:
            raise ValidationError("Invalid category Id")
        category = await db.get(Category, category_id)
        if category is None:
            raise ValidationError("Category not found")
        return category

    @staticmethod
    def _validate_fields(fields: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
        """
        Validate and normalise product form fields.

        Returns:
            Column values keyed by attribute name

        Raises:
            ValidationError: Listing every invalid field
        """
        errors: List[str] = []
        values: Dict[str, Any] = {}

        def present(key: str) -> bool:
            return fields.get(key) is not None and str(fields[key]).strip() != ""

        for key, minimum in (("name", 3), ("description", 10), ("brand", 1)):
            if present(key):
                text = str(fields[key]).strip()
                if len(text) < minimum:
                    errors.append(f"{key} must be at least {minimum} characters")
                values[key] = html.escape(text)
            elif not partial:
                errors.append(f"{key} is required")

        if present("price"):
            cents = _price_to_cents(fields["price"])
            if cents is None or cents <= 0:
                errors.append("price must be a positive number")
            else:
                values["price_cents"] = cents
        elif not partial:
            errors.append("price is required")

        if present("stock"):
            stock = _to_int(fields["stock"])
            if stock is None or stock < 0:
                errors.append("stock must be a non-negative integer")
            else:
                values["stock"] = stock
        elif not partial:
            errors.append("stock is required")

        if fields.get("isFeatured") is not None:
            values["is_featured"] = _to_bool(fields["isFeatured"])

        if errors:
            raise ValidationError("Invalid product data", errors=errors)
        return values

    async def create_product(
        self,
        fields: Mapping[str, Any],
        images: Sequence[ImageFile],
        db: AsyncSession,
    ) -> Dict[str, Any]:
        """
        Create a product from admin form fields and uploaded images.

        Raises:
            ValidationError: On invalid fields, unknown category, missing or
                unacceptable images, or a failed upload
        """
        values = self._validate_fields(fields, partial=False)
        if not fields.get("category"):
            raise ValidationError("Invalid product data", errors=["category is required"])
        category = await self._resolve_category(fields["category"], db)
        if not images:
            raise ValidationError("At least one product image is required")

        try:
            urls = await self.image_store.upload_many(images, "products")
        except ImageUploadError:
            raise ValidationError("Product creation failed during image upload")

        product = Product(category=category, images=urls, **values)
        db.add(product)
        try:
            await db.flush()
        except Exception:
            logger.error("product_create_failed", name=values.get("name"))
            await self.image_store.destroy(urls)
            raise

        logger.info("product_created", product_id=str(product.id), images=len(urls))
        return {
            "success": True,
            "message": "Product created successfully",
            "data": product_to_dict(product),
        }

    async def update_product(
        self,
        product_id: str,
        fields: Mapping[str, Any],
        images: Sequence[ImageFile],
        db: AsyncSession,
    ) -> Dict[str, Any]:
        """
        Partially update a product.

        ``imageUrls`` replaces the image list; uploaded files replace it in
        turn.
        """
        product = await CatalogService.get_product(product_id, db)
        values = self._validate_fields(fields, partial=True)

        if fields.get("category"):
            values["category"] = await self._resolve_category(fields["category"], db)

        image_urls = fields.get("imageUrls")
        if image_urls is not None:
            values["images"] = [u for u in image_urls if u]

        uploaded: List[str] = []
        if images:
            try:
                uploaded = await self.image_store.upload_many(images, "products")
            except ImageUploadError:
                raise ValidationError("Product update failed during image upload")
            values["images"] = uploaded

        for attr, value in values.items():
            setattr(product, attr, value)
        try:
            await db.flush()
        except Exception:
            await self.image_store.destroy(uploaded)
            raise

        logger.info("product_updated", product_id=str(product.id), fields=sorted(values))
        return {
            "success": True,
            "message": "Product updated successfully",
            "data": product_to_dict(product),
        }

    @staticmethod
    async def delete_product(product_id: str, db: AsyncSession) -> Dict[str, Any]:
        """Delete a product along with cart, wishlist and review rows that point at it."""
        product = await CatalogService.get_product(product_id, db)

        await db.execute(delete(CartItem).where(CartItem.product_id == product.id))
        await db.execute(delete(WishlistItem).where(WishlistItem.product_id == product.id))
        await db.execute(delete(Review).where(Review.product_id == product.id))
        await db.execute(
            update(OrderItem).where(OrderItem.product_id == product.id).values(product_id=None)
        )
        await db.delete(product)

        logger.info("product_deleted", product_id=str(product.id))
        return {"success": True, "message": "Product deleted successfully"}
