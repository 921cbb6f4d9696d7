"""
Administrator routes: products, orders, users and the sales dashboard.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import dashboard
from storefront.core.catalog import ProductAdminService
from storefront.core.orders import OrderService
from storefront.core.user_service import UserService
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_product_admin_service, require_admin
from ..schemas import OrderStatusRequest
from .uploads import read_uploads

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# Products


@router.post("/products", status_code=status.HTTP_201_CREATED, summary="Create a product")
async def create_product(
    name: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    brand: Optional[str] = Form(default=None),
    price: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    stock: Optional[str] = Form(default=None),
    is_featured: Optional[str] = Form(default=None, alias="isFeatured"),
    images: Optional[List[UploadFile]] = File(default=None),
    products: ProductAdminService = Depends(get_product_admin_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Multipart product creation with up to five images."""
    fields = {
        "name": name,
        "description": description,
        "brand": brand,
        "price": price,
        "category": category,
        "stock": stock,
        "isFeatured": is_featured,
    }
    return await products.create_product(fields, await read_uploads(images), db)


@router.patch("/products/{product_id}", summary="Update a product")
async def update_product(
    product_id: str,
    name: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    brand: Optional[str] = Form(default=None),
    price: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    stock: Optional[str] = Form(default=None),
    is_featured: Optional[str] = Form(default=None, alias="isFeatured"),
    image_urls: Optional[List[str]] = Form(default=None, alias="imageUrls"),
    images: Optional[List[UploadFile]] = File(default=None),
    products: ProductAdminService = Depends(get_product_admin_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Partial update. ``imageUrls`` replaces the image list; uploaded
    ``images`` replace it again.
    """
    fields = {
        "name": name,
        "description": description,
        "brand": brand,
        "price": price,
        "category": category,
        "stock": stock,
        "isFeatured": is_featured,
        "imageUrls": image_urls,
    }
    return await products.update_product(product_id, fields, await read_uploads(images), db)


@router.delete("/products/{product_id}", summary="Delete a product")
async def delete_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await ProductAdminService.delete_product(product_id, db)


# Orders


@router.get("/orders", summary="List all orders")
async def list_orders(
    page: int = Query(default=1),
    limit: int = Query(default=10),
    order_status: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: str = Query(default="desc"),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await OrderService.list_orders(
        db,
        page=page,
        limit=limit,
        status=order_status,
        search=search,
        sort_by=sort_by,
        order=order,
    )


@router.get("/orders/{order_id}", summary="Get any order")
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return await OrderService.get_order_admin(order_id, db)


@router.patch("/orders/{order_id}/status", summary="Change an order's status")
async def update_order_status(
    order_id: str,
    request: OrderStatusRequest,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await OrderService.update_status(order_id, request.status, db)


# Users


@router.get("/users", summary="List users")
async def list_users(
    page: int = Query(default=1),
    limit: int = Query(default=10),
    sort: str = Query(default="-createdAt"),
    user_status: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await UserService.list_users(
        db, page=page, limit=limit, sort=sort, status=user_status, search=search
    )


@router.get("/users/{user_id}", summary="Get a user with order history")
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return await UserService.get_user(user_id, db)


@router.patch("/users/{user_id}/deactivate", summary="Suspend or reactivate a user")
async def toggle_user_status(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await UserService.toggle_status(user_id, admin, db)


# Dashboard


@router.get("/dashboard/monthly-sales", summary="Revenue per month")
async def monthly_sales(db: AsyncSession = Depends(get_db)) -> List[Dict[str, Any]]:
    return await dashboard.monthly_sales(db)


@router.get("/dashboard/top-products", summary="Best-selling products")
async def top_products(db: AsyncSession = Depends(get_db)) -> List[Dict[str, Any]]:
    return await dashboard.top_products(db)


@router.get("/dashboard/order-status", summary="Orders per status")
async def order_status(db: AsyncSession = Depends(get_db)) -> List[Dict[str, Any]]:
    return await dashboard.order_status_breakdown(db)


@router.get("/dashboard/payment-methods", summary="Orders per payment method")
async def payment_methods(db: AsyncSession = Depends(get_db)) -> List[Dict[str, Any]]:
    return await dashboard.payment_method_breakdown(db)
