"""
Request dependencies: authentication and shared service instances.

Integration clients are process-wide singletons so the Stripe circuit
breaker and the webhook Redis connection are shared across requests. Tests
replace them through ``app.dependency_overrides``.
"""
from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.auth_service import AuthService
from storefront.core.catalog import ProductAdminService
from storefront.core.exceptions import AuthenticationError, PermissionDenied
from storefront.core.orders import OrderService
from storefront.core.payments import PaymentService
from storefront.core.security import ACCESS, decode_token, token_user_id
from storefront.core.user_service import UserService
from storefront.database.connection import get_db
from storefront.database.models import User
from storefront.integrations.email_client import EmailSender
from storefront.integrations.image_store import ImageStore
from storefront.integrations.stripe_client import StripeClient
from storefront.integrations.webhook_handler import WebhookHandler

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer access token to an active user.

    Raises:
        AuthenticationError: If no bearer token was sent
        PermissionDenied: If the token is invalid or expired, or the account
            is gone or suspended
    """
    if credentials is None:
        raise AuthenticationError("Not authorized")

    try:
        user_id = token_user_id(decode_token(credentials.credentials, ACCESS))
    except AuthenticationError:
        raise PermissionDenied("Invalid or expired token")

    user = await db.get(User, user_id)
    if user is None:
        raise PermissionDenied("Invalid or expired token")
    if user.status == "suspended":
        raise PermissionDenied("Your account has been suspended.")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise PermissionDenied("Not authorized as an admin")
    return user


@lru_cache
def get_stripe_client() -> StripeClient:
    return StripeClient()


@lru_cache
def get_email_sender() -> EmailSender:
    return EmailSender()


@lru_cache
def get_image_store() -> ImageStore:
    return ImageStore()


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    """Webhook router with the payment event handlers registered once."""
    stripe_client = get_stripe_client()
    payments = PaymentService(
        stripe_client=stripe_client,
        order_service=OrderService(stripe_client=stripe_client, email_sender=get_email_sender()),
    )
    return payments.register_webhook_handlers(WebhookHandler())


def get_auth_service(email_sender: EmailSender = Depends(get_email_sender)) -> AuthService:
    return AuthService(email_sender=email_sender)


def get_user_service(image_store: ImageStore = Depends(get_image_store)) -> UserService:
    return UserService(image_store=image_store)


def get_product_admin_service(
    image_store: ImageStore = Depends(get_image_store),
) -> ProductAdminService:
    return ProductAdminService(image_store=image_store)


def get_order_service(
    stripe_client: StripeClient = Depends(get_stripe_client),
    email_sender: EmailSender = Depends(get_email_sender),
) -> OrderService:
    return OrderService(stripe_client=stripe_client, email_sender=email_sender)


def get_payment_service(
    stripe_client: StripeClient = Depends(get_stripe_client),
    order_service: OrderService = Depends(get_order_service),
) -> PaymentService:
    return PaymentService(stripe_client=stripe_client, order_service=order_service)
