"""
User profile management, for shoppers and for administrators.
"""
import html
import re
from typing import Any, Dict, List, Mapping, Optional

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.auth_service import PASSWORD_MISMATCH
from storefront.core.exceptions import ConflictError, NotFoundError, ValidationError
from storefront.core.pagination import PageRequest
from storefront.core.security import PASSWORD_RULE, hash_password, is_strong_password
from storefront.core.serializers import (
    order_summary_to_dict,
    order_to_dict,
    parse_id,
    user_to_dict,
)
from storefront.database.models import Order, User
from storefront.integrations.image_store import ImageFile, ImageStore, ImageUploadError

logger = structlog.get_logger(__name__)

PHONE_PATTERN = re.compile(r"^[\d\s\-().+]{7,20}$")
ADDRESS_FIELDS = ("street", "city", "province", "postalCode", "country")
USER_SORT_FIELDS = {
    "createdAt": User.created_at,
    "email": User.email,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "status": User.status,
}


def clean(value: Any) -> str:
    """Trim and HTML-escape user supplied text."""
    return html.escape(str(value).strip())


def _check_name(label: str, value: str, errors: List[str]) -> None:
    if not 3 <= len(value) <= 30:
        errors.append(f"{label} must be between 3 and 30 characters")


def _merge_address(
    current: Optional[Dict[str, Any]], update: Optional[Mapping[str, Any]]
) -> Optional[Dict[str, Any]]:
    if not update:
        return current
    merged = dict(current or {})
    for key in ADDRESS_FIELDS:
        if update.get(key) is not None:
            merged[key] = clean(update[key])
    return merged


class UserService:
    """Profile reads and updates, plus the admin user directory."""

    def __init__(self, image_store: Optional[ImageStore] = None):
        self.image_store = image_store or ImageStore()

    @staticmethod
    async def get_profile(user: User, db: AsyncSession) -> Dict[str, Any]:
        result = await db.execute(
            select(Order).where(Order.user_id == user.id).order_by(Order.created_at.desc())
        )
        return {
            "user": user_to_dict(user),
            "orders": [order_to_dict(o) for o in result.scalars().all()],
        }

    async def update_profile(
        self,
        user: User,
        fields: Mapping[str, Any],
        db: AsyncSession,
        profile_image: Optional[ImageFile] = None,
    ) -> Dict[str, Any]:
        """
        Apply a partial profile update.

        Args:
            user: The authenticated user
            fields: Submitted values keyed by API name (``firstName``,
                ``shippingAddress``...); ``None`` means "leave unchanged"
            db: Database session
            profile_image: Optional new profile picture

        Raises:
            ValidationError: With one entry per rejected field
            ConflictError: If the new email belongs to another account
        """
        errors: List[str] = []
        changes: Dict[str, Any] = {}

        for key, attr, label in (
            ("firstName", "first_name", "First name"),
            ("lastName", "last_name", "Last name"),
        ):
            if fields.get(key) is not None:
                value = clean(fields[key])
                _check_name(label, value, errors)
                changes[attr] = value

        if fields.get("email") is not None:
            try:
                email = validate_email(
                    str(fields["email"]).strip(), check_deliverability=False
                ).normalized.lower()
            except EmailNotValidError:
                errors.append("Invalid email address")
            else:
                if email != user.email:
                    changes["email"] = email

        if fields.get("phone") is not None:
            phone = str(fields["phone"]).strip()
            if not PHONE_PATTERN.match(phone):
                errors.append("Invalid phone number")
            changes["phone"] = clean(phone)

        password = fields.get("password")
        if password:
            if password != fields.get("confirmPassword"):
                errors.append(PASSWORD_MISMATCH)
            elif not is_strong_password(password):
                errors.append(PASSWORD_RULE)

        if errors:
            raise ValidationError("Validation failed", errors=errors)

        if "email" in changes:
            taken = await db.execute(select(User.id).where(User.email == changes["email"]))
            if taken.scalar_one_or_none() is not None:
                raise ConflictError("Email already exists")

        if profile_image is not None:
            self.image_store.validate([profile_image])
            try:
                changes["profile_image"] = await self.image_store.upload(
                    profile_image, "profiles"
                )
            except ImageUploadError:
                raise ValidationError("Profile image upload failed")

        for attr, value in changes.items():
            setattr(user, attr, value)
        user.shipping_address = _merge_address(user.shipping_address, fields.get("shippingAddress"))
        user.billing_address = _merge_address(user.billing_address, fields.get("billingAddress"))
        if password:
            user.password_hash = hash_password(password)

        await db.flush()
        await db.refresh(user)

        logger.info("user_profile_updated", user_id=str(user.id), fields=sorted(changes))
        return {"message": "User successfully updated!", "data": user_to_dict(user)}

    @staticmethod
    async def list_users(
        db: AsyncSession,
        page: Any = 1,
        limit: Any = 10,
        sort: str = "-createdAt",
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Paginated user directory for administrators.

        ``sort`` names a field, prefixed with ``-`` for descending order.
        """
        paging = PageRequest.from_query(page, limit, default_limit=10)
        descending = sort.startswith("-")
        column = USER_SORT_FIELDS.get(sort.lstrip("-+"), User.created_at)

        conditions = []
        if status:
            conditions.append(User.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                or_(
                    User.email.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                )
            )

        total = (
            await db.execute(select(func.count(User.id)).where(*conditions))
        ).scalar_one()
        result = await db.execute(
            select(User)
            .where(*conditions)
            .order_by(column.desc() if descending else column.asc())
            .offset(paging.offset)
            .limit(paging.limit)
        )

        return {
            "success": True,
            "data": [user_to_dict(u) for u in result.scalars().all()],
            "pagination": {
                "currentPage": paging.page,
                "totalPages": paging.total_pages(total),
                "totalUsers": total,
                "usersPerPage": paging.limit,
            },
            "filters": {"status": status, "search": search},
        }

    @staticmethod
    async def get_user(user_id: str, db: AsyncSession) -> Dict[str, Any]:
        user = await db.get(User, parse_id(user_id, "User"))
        if user is None:
            raise NotFoundError("User")

        result = await db.execute(
            select(Order).where(Order.user_id == user.id).order_by(Order.created_at.desc())
        )
        doc = user_to_dict(user)
        doc["orders"] = [order_summary_to_dict(o) for o in result.scalars().all()]
        return {"success": True, "data": doc}

    @staticmethod
    async def toggle_status(user_id: str, admin: User, db: AsyncSession) -> Dict[str, Any]:
        """Flip a user between active and suspended."""
        user = await db.get(User, parse_id(user_id, "User"))
        if user is None:
            raise NotFoundError("User")
        if user.id == admin.id:
            raise ValidationError("You cannot deactivate your own account")

        user.status = "active" if user.status == "suspended" else "suspended"
        logger.info(
            "user_status_changed",
            user_id=str(user.id),
            status=user.status,
            changed_by=str(admin.id),
        )
        action = "activated" if user.status == "active" else "deactivated"
        return {
            "success": True,
            "message": f"User account {action} successfully",
            "data": {"id": str(user.id), "status": user.status},
        }
