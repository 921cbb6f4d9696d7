"""
Order placement and order history.

Orders are created in two ways:

1. ``place_order``: the client confirmed a PaymentIntent itself and posts
   the order; the PaymentIntent is re-read from Stripe before anything is
   written.
2. ``create_from_checkout_session``: Stripe reports a completed Checkout
   Session through the webhook.

Either way the order is written as paid, stock is decremented and emails go
out. A PaymentIntent or Checkout Session backs at most one order.
"""
import html
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog
from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.catalog import CatalogService
from storefront.core.checkout_metadata import decode_cart, decode_shipping
from storefront.core.exceptions import (
    ConflictError,
    NotFoundError,
    OutOfStockError,
    PaymentError,
    PermissionDenied,
    ValidationError,
)
from storefront.core.pagination import PageRequest
from storefront.core.serializers import cents_to_dollars, order_to_dict, parse_id
from storefront.database.models import (
    PAYMENT_METHODS,
    CartItem,
    Order,
    OrderItem,
    Product,
    User,
    utcnow,
)
from storefront.integrations.email_client import EmailSender
from storefront.integrations.stripe_client import StripeClient, StripeError
from storefront.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

ADMIN_ORDER_STATUSES = ("pending", "paid", "shipped", "delivered", "cancelled")
REQUIRED_ADDRESS_FIELDS = ("street", "city", "postalCode", "country")
# Checkout may collect an address without a country in the metadata fallback
CHECKOUT_REQUIRED_ADDRESS_FIELDS = ("street", "city", "province", "postalCode")
ADDRESS_FIELDS = ("street", "city", "province", "postalCode", "country")
ORDER_SORT_FIELDS = {
    "createdAt": Order.created_at,
    "totalAmount": Order.total_cents,
    "status": Order.status,
}


def clean_address(address: Mapping[str, Any]) -> Dict[str, str]:
    return {
        key: html.escape(str(address[key]).strip())
        for key in ADDRESS_FIELDS
        if address.get(key) not in (None, "")
    }


def address_from_stripe(session: Mapping[str, Any]) -> Dict[str, str]:
    """
    Shipping address collected by Checkout, in storefront form.

    Newer API versions report it under ``collected_information``, older ones
    under ``shipping_details``.
    """
    details = (session.get("collected_information") or {}).get("shipping_details") or (
        session.get("shipping_details") or {}
    )
    address = details.get("address") or {}
    street = ", ".join(filter(None, (address.get("line1"), address.get("line2"))))
    return clean_address(
        {
            "street": street,
            "city": address.get("city"),
            "province": address.get("state"),
            "postalCode": address.get("postal_code"),
            "country": address.get("country"),
        }
    )


def _merge_lines(items: Sequence[Mapping[str, Any]]) -> List[Tuple[uuid.UUID, int]]:
    merged: Dict[uuid.UUID, int] = {}
    for item in items:
        product_id = parse_id(item.get("product"), "Product")
        quantity = int(item.get("quantity") or 0)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def _order_item(product: Product, quantity: int) -> OrderItem:
    return OrderItem(
        product_id=product.id,
        name=product.name,
        image=(product.images or [None])[0],
        price_cents=product.price_cents,
        quantity=quantity,
    )


class OrderService:
    """Creates orders and serves order history to shoppers and administrators."""

    def __init__(
        self,
        stripe_client: Optional[StripeClient] = None,
        email_sender: Optional[EmailSender] = None,
    ):
        """
        Args:
            stripe_client: Optional Stripe client
            email_sender: Optional email sender
        """
        self.stripe_client = stripe_client or StripeClient()
        self.email_sender = email_sender or EmailSender()

    @staticmethod
    async def _find_one(condition: Any, db: AsyncSession) -> Optional[Order]:
        result = await db.execute(select(Order).where(condition))
        return result.scalar_one_or_none()

    @staticmethod
    async def _reserve_stock(product: Product, quantity: int, db: AsyncSession) -> None:
        """
        Decrement stock only if enough remains.

        Raises:
            OutOfStockError: If another order took the stock first
        """
        if product.stock < quantity:
            metrics.record_stock_rejection("place_order")
            raise OutOfStockError(f"Not enough stock for {product.name}")

        result = await db.execute(
            update(Product)
            .where(Product.id == product.id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            metrics.record_stock_rejection("place_order")
            raise OutOfStockError(f"Not enough stock for {product.name}")
        await db.refresh(product, ["stock"])

    async def _notify(self, order: Order, customer_email: Optional[str]) -> None:
        total = cents_to_dollars(order.total_cents)
        if customer_email:
            await self.email_sender.send_order_confirmation(customer_email, str(order.id), total)
            await self.email_sender.send_admin_order_notice(customer_email, str(order.id))

    async def place_order(
        self,
        user: User,
        items: Optional[Sequence[Mapping[str, Any]]],
        shipping_address: Optional[Mapping[str, Any]],
        payment_method: Optional[str],
        total_amount: Optional[float],
        payment_intent_id: Optional[str],
        db: AsyncSession,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Record an order paid through a client-confirmed PaymentIntent.

        The stored total is the amount Stripe actually collected; catalog
        prices are captured on each line.

        Returns:
            Tuple of (response body, whether a new order was created)

        Raises:
            ValidationError: If details are missing or malformed
            PaymentError: If the PaymentIntent has not succeeded or does not
                cover the order
            NotFoundError: If a product does not exist
            OutOfStockError: If a product lacks stock
        """
        if (
            not items
            or not shipping_address
            or not payment_method
            or total_amount is None
            or not payment_intent_id
        ):
            raise ValidationError("Missing order details.")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError("Invalid payment method")

        address = clean_address(shipping_address)
        missing = [f for f in REQUIRED_ADDRESS_FIELDS if f not in address]
        if missing:
            raise ValidationError(
                "Missing order details.",
                errors=[f"shippingAddress.{f} is required" for f in missing],
            )

        existing = await self._find_one(Order.payment_intent_id == payment_intent_id, db)
        if existing is not None:
            if existing.user_id != user.id:
                raise ConflictError("This payment has already been used for another order")
            logger.info(
                "order_already_exists",
                order_id=str(existing.id),
                payment_intent_id=payment_intent_id,
            )
            return {"message": "Order already placed", "order": order_to_dict(existing)}, False

        lines = _merge_lines(items)

        try:
            intent = await self.stripe_client.retrieve_payment_intent(payment_intent_id)
        except StripeError as e:
            raise PaymentError(
                "Unable to verify payment", status_code=502 if e.retryable else 400
            ) from e
        if getattr(intent, "status", None) != "succeeded":
            logger.warning("order_payment_not_completed", payment_intent_id=payment_intent_id)
            raise PaymentError("Payment not completed.")

        products = [(await CatalogService.get_product(pid, db), qty) for pid, qty in lines]
        items_total = sum(p.price_cents * qty for p, qty in products)
        paid_cents = getattr(intent, "amount_received", None) or getattr(intent, "amount", 0)
        if paid_cents < items_total:
            logger.warning(
                "order_underpaid",
                payment_intent_id=payment_intent_id,
                paid_cents=paid_cents,
                items_total=items_total,
            )
            raise PaymentError("Payment amount does not cover the order total.")

        for product, qty in products:
            await self._reserve_stock(product, qty, db)

        order = Order(
            user_id=user.id,
            shipping_address=address,
            total_cents=paid_cents,
            status="paid",
            payment_method=payment_method,
            is_paid=True,
            paid_at=utcnow(),
            payment_intent_id=payment_intent_id,
            items=[_order_item(p, qty) for p, qty in products],
        )
        db.add(order)
        await db.flush()

        await db.execute(
            delete(CartItem).where(
                CartItem.user_id == user.id,
                CartItem.product_id.in_([p.id for p, _ in products]),
            )
        )

        metrics.record_order_created("direct", payment_method, order.total_cents)
        logger.info(
            "order_created",
            order_id=str(order.id),
            user_id=str(user.id),
            total_cents=order.total_cents,
            source="direct",
        )

        await self._notify(order, user.email)
        return {"message": "Order placed successfully", "order": order_to_dict(order)}, True

    async def create_from_checkout_session(
        self, session: Dict[str, Any], db: AsyncSession
    ) -> Dict[str, Any]:
        """
        Create the order for a completed Checkout Session.

        Payment has already been taken, so nothing here rejects the order
        for stock: stock is floored at zero and an oversell is logged.

        Returns:
            Dict[str, Any]: ``status`` is ``created``, ``duplicate`` or
            ``skipped`` (with a ``reason``)
        """
        session_id = session.get("id")
        metadata = session.get("metadata") or {}

        existing = await self._find_one(Order.session_id == session_id, db)
        if existing is not None:
            logger.info(
                "checkout_order_already_exists",
                session_id=session_id,
                order_id=str(existing.id),
            )
            return {"status": "duplicate", "order_id": str(existing.id)}

        address = address_from_stripe(session) or clean_address(decode_shipping(metadata))
        if any(f not in address for f in CHECKOUT_REQUIRED_ADDRESS_FIELDS):
            logger.warning("checkout_shipping_incomplete", session_id=session_id)
            return {"status": "skipped", "reason": "incomplete_shipping_address"}

        try:
            user = await db.get(User, uuid.UUID(str(metadata.get("userId"))))
            lines = decode_cart(metadata)
        except ValueError:
            logger.error("checkout_metadata_invalid", session_id=session_id)
            return {"status": "skipped", "reason": "invalid_metadata"}
        if user is None or not lines:
            logger.warning("checkout_user_or_cart_missing", session_id=session_id)
            return {"status": "skipped", "reason": "missing_user_or_cart"}

        order_items = []
        for product_id, qty in lines:
            product = await db.get(Product, product_id)
            if product is None:
                logger.warning(
                    "checkout_product_missing",
                    session_id=session_id,
                    product_id=str(product_id),
                )
                continue
            if product.stock < qty:
                logger.warning(
                    "checkout_oversold",
                    session_id=session_id,
                    product_id=str(product.id),
                    stock=product.stock,
                    quantity=qty,
                )
            await db.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(stock=case((Product.stock >= qty, Product.stock - qty), else_=0))
                .execution_options(synchronize_session=False)
            )
            order_items.append(_order_item(product, qty))

        if not order_items:
            return {"status": "skipped", "reason": "no_products"}

        total_cents = session.get("amount_total")
        if total_cents is None:
            total_cents = sum(i.price_cents * i.quantity for i in order_items)

        order = Order(
            user_id=user.id,
            shipping_address=address,
            total_cents=total_cents,
            status="paid",
            payment_method="stripe",
            is_paid=True,
            paid_at=utcnow(),
            session_id=session_id,
            payment_intent_id=session.get("payment_intent"),
            items=order_items,
        )
        db.add(order)
        await db.flush()

        await db.execute(delete(CartItem).where(CartItem.user_id == user.id))

        metrics.record_order_created("checkout", "stripe", total_cents)
        logger.info(
            "order_created",
            order_id=str(order.id),
            user_id=str(user.id),
            total_cents=total_cents,
            source="checkout",
        )

        customer_email = (session.get("customer_details") or {}).get("email") or session.get(
            "customer_email"
        ) or user.email
        await self._notify(order, customer_email)
        return {"status": "created", "order_id": str(order.id)}

    @staticmethod
    async def mark_refunded(charge: Mapping[str, Any], db: AsyncSession) -> Dict[str, Any]:
        """
        Apply a ``charge.refunded`` event to its order.

        Stripe sends the event for partial refunds too. Only a charge that is
        refunded in full moves the order to ``refunded``; a partial refund is
        logged and the order keeps its status.
        """
        payment_intent_id = charge.get("payment_intent")
        if not payment_intent_id:
            return {"status": "skipped", "reason": "no_payment_intent"}

        order = await OrderService._find_one(Order.payment_intent_id == payment_intent_id, db)
        if order is None:
            logger.warning("refund_for_unknown_order", payment_intent_id=payment_intent_id)
            return {"status": "skipped", "reason": "order_not_found"}

        amount = charge.get("amount")
        amount_refunded = charge.get("amount_refunded") or 0
        fully_refunded = bool(charge.get("refunded")) or (
            amount is not None and amount_refunded >= amount
        )
        if not fully_refunded:
            logger.info(
                "order_partially_refunded",
                order_id=str(order.id),
                payment_intent_id=payment_intent_id,
                amount_refunded=amount_refunded,
                amount=amount,
            )
            return {"status": "partial_refund", "order_id": str(order.id)}

        if order.status != "refunded":
            order.status = "refunded"
            metrics.record_order_status_change("refunded")
            logger.info(
                "order_refunded", order_id=str(order.id), payment_intent_id=payment_intent_id
            )
        return {"status": "refunded", "order_id": str(order.id)}

    @staticmethod
    async def my_orders(user: User, db: AsyncSession) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(Order).where(Order.user_id == user.id).order_by(Order.created_at.desc())
        )
        return [order_to_dict(o) for o in result.scalars().all()]

    @staticmethod
    async def get_order(order_id: str, user: User, db: AsyncSession) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If there is no such order
            PermissionDenied: If the order belongs to someone else
        """
        order = await db.get(Order, parse_id(order_id, "Order"))
        if order is None:
            raise NotFoundError("Order")
        if order.user_id != user.id:
            raise PermissionDenied("Not authorized to view this order")
        return order_to_dict(order)

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        page: Any = 1,
        limit: Any = 10,
        status: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = "createdAt",
        order: str = "desc",
    ) -> Dict[str, Any]:
        """All orders, for administrators. ``search`` matches customer name or email."""
        paging = PageRequest.from_query(page, limit, default_limit=10)
        column = ORDER_SORT_FIELDS.get(sort_by or "createdAt", Order.created_at)

        conditions = []
        if status:
            conditions.append(Order.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                Order.user_id.in_(
                    select(User.id).where(
                        or_(
                            User.email.ilike(pattern),
                            User.first_name.ilike(pattern),
                            User.last_name.ilike(pattern),
                        )
                    )
                )
            )

        total = (
            await db.execute(select(func.count(Order.id)).where(*conditions))
        ).scalar_one()
        result = await db.execute(
            select(Order)
            .where(*conditions)
            .order_by(column.asc() if order == "asc" else column.desc())
            .offset(paging.offset)
            .limit(paging.limit)
        )
        return {
            "data": [order_to_dict(o, include_user=True) for o in result.scalars().all()],
            "pagination": {
                "totalOrders": total,
                "currentPage": paging.page,
                "totalPages": paging.total_pages(total),
                "pageSize": paging.limit,
            },
        }

    @staticmethod
    async def get_order_admin(order_id: str, db: AsyncSession) -> Dict[str, Any]:
        order = await db.get(Order, parse_id(order_id, "Order"))
        if order is None:
            raise NotFoundError("Order")
        return order_to_dict(order, include_user=True)

    @staticmethod
    async def update_status(
        order_id: str, status: Optional[str], db: AsyncSession
    ) -> Dict[str, Any]:
        """
        Move an order to a new status.

        ``paid`` stamps the payment time and ``delivered`` the delivery time,
        each only the first time.
        """
        if status not in ADMIN_ORDER_STATUSES:
            raise ValidationError("Invalid or missing status value")

        order = await db.get(Order, parse_id(order_id, "Order"))
        if order is None:
            raise NotFoundError("Order")

        previous = order.status
        order.status = status
        if status == "paid" and not order.is_paid:
            order.is_paid = True
            order.paid_at = utcnow()
        if status == "delivered" and order.delivered_at is None:
            order.delivered_at = utcnow()
        await db.flush()

        metrics.record_order_status_change(status)
        logger.info(
            "order_status_updated", order_id=str(order.id), previous=previous, status=status
        )
        return {
            "message": f"Order status updated to {status}",
            "order": order_to_dict(order, include_user=True),
        }
