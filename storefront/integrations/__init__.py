"""External integrations: Stripe, email and image storage."""
from .email_client import EmailSender
from .image_store import ImageFile, ImageStore
from .stripe_client import StripeClient, StripeError
from .webhook_handler import WebhookHandler

__all__ = [
    "EmailSender",
    "ImageFile",
    "ImageStore",
    "StripeClient",
    "StripeError",
    "WebhookHandler",
]
