"""
Pytest configuration and fixtures.

Settings come from the environment, so the test environment is installed
before anything from ``storefront`` is imported.
"""
import os

os.environ.update(
    {
        "STRIPE_SECRET_KEY": "sk_test_fake_key_for_testing",
        "STRIPE_PUBLISHABLE_KEY": "pk_test_fake_key_for_testing",
        "STRIPE_WEBHOOK_SECRET": "whsec_test_fake_secret",
        "DATABASE_URL": "sqlite+aiosqlite://",
        "JWT_SECRET": "test-access-token-secret-0123456789abcdef",
        "REFRESH_TOKEN_SECRET": "test-refresh-token-secret-0123456789abcdef",
        "RESEND_API_KEY": "",
        "ADMIN_EMAIL": "owner@example.com",
        "CLIENT_URL": "http://shop.test",
        "API_BASE_URL": "http://api.test",
        "APP_ENV": "test",
        "LOG_LEVEL": "WARNING",
    }
)

from typing import Any, AsyncGenerator, Awaitable, Callable, Dict  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from storefront.api.dependencies import (  # noqa: E402
    get_email_sender,
    get_image_store,
    get_stripe_client,
    get_webhook_handler,
)
from storefront.api.main import app  # noqa: E402
from storefront.core.orders import OrderService  # noqa: E402
from storefront.core.payments import PaymentService  # noqa: E402
from storefront.core.security import create_access_token, hash_password  # noqa: E402
from storefront.database.connection import get_db  # noqa: E402
from storefront.database.models import Base, Category, Product, User  # noqa: E402
from storefront.integrations.email_client import EmailSender  # noqa: E402
from storefront.integrations.image_store import ImageStore  # noqa: E402
from storefront.integrations.stripe_client import StripeClient  # noqa: E402
from storefront.integrations.webhook_handler import WebhookHandler  # noqa: E402

PASSWORD = "Str0ng!Pass"
# bcrypt is deliberately slow; hash the shared test password once
PASSWORD_HASH = hash_password(PASSWORD)


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """File-backed SQLite database, fresh for every test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Session for seeding and inspecting data directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def stripe_client() -> AsyncMock:
    return AsyncMock(spec=StripeClient)


@pytest.fixture
def email_sender() -> AsyncMock:
    return AsyncMock(spec=EmailSender)


@pytest.fixture
def image_store() -> MagicMock:
    store = MagicMock(spec=ImageStore)
    store.upload_many.return_value = [
        "https://res.cloudinary.com/demo/image/upload/v1/products/one.webp"
    ]
    store.upload.return_value = (
        "https://res.cloudinary.com/demo/image/upload/v1/profiles/me.webp"
    )
    return store


@pytest.fixture
def redis_client() -> AsyncMock:
    redis = AsyncMock()
    redis.exists.return_value = 0
    return redis


@pytest.fixture
def webhook_handler(
    redis_client: AsyncMock, stripe_client: AsyncMock, email_sender: AsyncMock
) -> WebhookHandler:
    payments = PaymentService(
        stripe_client=stripe_client,
        order_service=OrderService(stripe_client=stripe_client, email_sender=email_sender),
    )
    return payments.register_webhook_handlers(WebhookHandler(redis_client=redis_client))


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    stripe_client: AsyncMock,
    email_sender: AsyncMock,
    image_store: MagicMock,
    webhook_handler: WebhookHandler,
) -> AsyncGenerator[AsyncClient, Any]:
    """HTTP client against the app with the test database and mocked integrations."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, Any]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_webhook_handler] = lambda: webhook_handler

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def _make(
        email: str = "shopper@example.com",
        role: str = "user",
        verified: bool = True,
        status: str = "active",
        first_name: str = "Jane",
        last_name: str = "Smith",
        **fields: Any,
    ) -> User:
        user = User(
            email=email,
            password_hash=PASSWORD_HASH,
            role=role,
            is_verified=verified,
            status=status,
            first_name=first_name,
            last_name=last_name,
            **fields,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def user(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(
        shipping_address={
            "street": "1 Main St",
            "city": "Toronto",
            "province": "ON",
            "postalCode": "M5V 1A1",
            "country": "CA",
        }
    )


@pytest_asyncio.fixture
async def admin(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(email="admin@example.com", role="admin", first_name="Ada")


def bearer(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def auth_headers(user: User) -> Dict[str, str]:
    return bearer(user)


@pytest.fixture
def admin_headers(admin: User) -> Dict[str, str]:
    return bearer(admin)


@pytest_asyncio.fixture
async def category(db: AsyncSession) -> Category:
    category = Category(name="Electronics", description="Gadgets and devices")
    db.add(category)
    await db.commit()
    return category


@pytest.fixture
def make_product(db: AsyncSession, category: Category) -> Callable[..., Awaitable[Product]]:
    async def _make(
        name: str = "Wireless Headphones",
        price_cents: int = 4999,
        stock: int = 10,
        brand: str = "Acme",
        description: str = "Over-ear headphones with noise cancelling",
        is_featured: bool = False,
        in_category: Category | None = None,
        **fields: Any,
    ) -> Product:
        product = Product(
            name=name,
            description=description,
            brand=brand,
            price_cents=price_cents,
            stock=stock,
            category=in_category or category,
            images=["https://res.cloudinary.com/demo/image/upload/v1/products/p.webp"],
            is_featured=is_featured,
            **fields,
        )
        db.add(product)
        await db.commit()
        return product

    return _make


@pytest_asyncio.fixture
async def product(make_product: Callable[..., Awaitable[Product]]) -> Product:
    return await make_product()


@pytest.fixture
def shipping_address() -> Dict[str, str]:
    return {
        "street": "1 Main St",
        "city": "Toronto",
        "province": "ON",
        "postalCode": "M5V 1A1",
        "country": "CA",
    }
