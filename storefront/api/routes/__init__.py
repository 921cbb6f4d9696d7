"""API routers. Everything except monitoring is mounted under ``/api``."""
from fastapi import APIRouter

from . import admin, auth, cart, categories, orders, payments, products, users, wishlist
from .monitoring import router as monitoring_router

api_router = APIRouter(prefix="/api")
for module in (auth, users, products, categories, cart, wishlist, orders, payments, admin):
    api_router.include_router(module.router)

__all__ = ["api_router", "monitoring_router"]
