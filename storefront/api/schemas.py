"""
Pydantic schemas for API request/response models.

Request bodies use the camelCase field names the storefront front end sends
(``confirmPassword``, ``productId``...); Python attributes stay snake_case.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """Request schema for account registration."""

    first_name: str = Field(..., min_length=3, max_length=30, description="First name")
    last_name: str = Field(..., min_length=3, max_length=30, description="Last name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="Password")
    confirm_password: str = Field(..., description="Password confirmation")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("must be between 3 and 30 characters")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "firstName": "Jane",
                    "lastName": "Smith",
                    "email": "jane@example.com",
                    "password": "Str0ng!Pass",
                    "confirmPassword": "Str0ng!Pass",
                }
            ]
        },
    )


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1, description="Email address")
    password: str = Field(..., min_length=1, description="Password")


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, description="Refresh token")


class EmailRequest(CamelModel):
    email: Optional[str] = Field(default=None, description="Account email address")


class ResetPasswordRequest(CamelModel):
    password: str = Field(..., description="New password")
    confirm_password: str = Field(..., description="Password confirmation")


class CartItemRequest(CamelModel):
    """Add a product to the cart."""

    product_id: str = Field(..., description="Product ID")
    quantity: int = Field(default=1, ge=1, description="Units to add")


class CartUpdateRequest(CamelModel):
    """Set a cart line's quantity; zero removes it."""

    product_id: str = Field(..., description="Product ID")
    quantity: int = Field(..., ge=0, description="New quantity")


class ReviewRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5, description="Star rating")
    comment: str = Field(..., min_length=3, max_length=500, description="Review text")


class CategoryRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=100, description="Category name")
    description: Optional[str] = Field(default=None, max_length=1000)


class CategoryUpdateRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)


class OrderItemRequest(CamelModel):
    product: str = Field(..., description="Product ID")
    quantity: int = Field(..., ge=1, description="Units ordered")


class CreateOrderRequest(CamelModel):
    """
    Order posted after the client confirmed a PaymentIntent.

    Every field is checked by the order service so a missing one produces
    the "Missing order details." message.
    """

    items: Optional[List[OrderItemRequest]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    total_amount: Optional[float] = None
    payment_intent_id: Optional[str] = None


class CheckoutSessionRequest(CamelModel):
    cart_items: List[Dict[str, Any]] = Field(default_factory=list, description="Cart lines")


class CheckoutSessionResponse(CamelModel):
    url: str = Field(..., description="Stripe hosted checkout URL")
    session_id: str = Field(..., description="Checkout Session ID")


class RefundRequest(CamelModel):
    """Request schema for refunding a PaymentIntent."""

    payment_intent_id: Optional[str] = Field(default=None, description="PaymentIntent ID")
    amount: Optional[float] = Field(
        default=None, gt=0, description="Partial refund amount in dollars (full if omitted)"
    )
    reason: Optional[str] = Field(
        default=None,
        description="Refund reason (duplicate, fraudulent, requested_by_customer)",
    )

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("duplicate", "fraudulent", "requested_by_customer"):
            raise ValueError("Reason must be: duplicate, fraudulent, or requested_by_customer")
        return v


class OrderStatusRequest(CamelModel):
    status: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    received: bool = Field(default=True)
    status: str = Field(..., description="Processing status")
    event_id: str = Field(..., description="Stripe event ID")
