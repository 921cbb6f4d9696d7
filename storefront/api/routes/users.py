"""
Profile routes for the signed-in user.
"""
import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import ValidationError
from storefront.core.user_service import UserService
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_current_user, get_user_service
from .uploads import read_upload

router = APIRouter(prefix="/user", tags=["user"])


def _address_form(value: Optional[str], label: str) -> Optional[Dict[str, Any]]:
    """Addresses arrive as JSON objects inside multipart form fields."""
    if not value:
        return None
    try:
        address = json.loads(value)
    except ValueError:
        raise ValidationError("Validation failed", errors=[f"{label} must be a JSON object"])
    if not isinstance(address, dict):
        raise ValidationError("Validation failed", errors=[f"{label} must be a JSON object"])
    return address


@router.get("/profile", summary="Current user's profile and orders")
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await UserService.get_profile(user, db)


@router.patch("/profile", summary="Update the current user's profile")
async def update_profile(
    first_name: Optional[str] = Form(default=None, alias="firstName"),
    last_name: Optional[str] = Form(default=None, alias="lastName"),
    email: Optional[str] = Form(default=None),
    phone: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None),
    confirm_password: Optional[str] = Form(default=None, alias="confirmPassword"),
    shipping_address: Optional[str] = Form(default=None, alias="shippingAddress"),
    billing_address: Optional[str] = Form(default=None, alias="billingAddress"),
    profile_image: Optional[UploadFile] = File(default=None, alias="profileImage"),
    user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Multipart update; every field is optional. Addresses are JSON objects
    with street/city/province/postalCode/country keys.
    """
    fields = {
        "firstName": first_name,
        "lastName": last_name,
        "email": email,
        "phone": phone,
        "password": password,
        "confirmPassword": confirm_password,
        "shippingAddress": _address_form(shipping_address, "shippingAddress"),
        "billingAddress": _address_form(billing_address, "billingAddress"),
    }
    image = await read_upload(profile_image) if profile_image is not None else None
    return await service.update_profile(user, fields, db, profile_image=image)
