"""PayHere checkout hashing and notify-URL verification.

Both digests follow PayHere's scheme: an uppercase MD5 over the concatenated
fields, with the merchant secret folded in as its own uppercase MD5.
"""

import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy.orm import Session

from marketplace.models import Order, Payment, PaymentMethod
from marketplace.schemas.payments import PayHereNotification
from marketplace.services import order_service
from marketplace.services.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SUCCESS_STATUS_CODE = "2"


def md5_upper(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def format_amount(amount) -> str:
    """Render an amount with exactly two decimals and no grouping, e.g. ``1000.00``."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("amount must be a number")
    return format(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP), "f")


def build_checkout_hash(merchant_id: str, order_id: str, amount, currency: str, merchant_secret: str) -> str:
    raw = f"{merchant_id}{order_id}{format_amount(amount)}{currency}{md5_upper(merchant_secret)}"
    return md5_upper(raw)


def build_notification_signature(
    merchant_id: str,
    order_id: str,
    amount: str,
    currency: str,
    status_code: str,
    merchant_secret: str,
) -> str:
    # amount is used exactly as PayHere sent it
    raw = f"{merchant_id}{order_id}{amount}{currency}{status_code}{md5_upper(merchant_secret)}"
    return md5_upper(raw)


def issue_checkout_hash(order_id: str, amount, currency: str, merchant_id: str, merchant_secret: str) -> str:
    if not merchant_id or not merchant_secret:
        raise ConfigurationError("PayHere credentials not configured")
    return build_checkout_hash(merchant_id, order_id, amount, currency, merchant_secret)


def verify_notification(
    notification: PayHereNotification,
    merchant_secret: str,
    expected_merchant_id: str | None = None,
) -> None:
    if not merchant_secret:
        logger.error("PAYHERE_SECRET_KEY is not set, rejecting PayHere notification")
        raise ConfigurationError("PayHere credentials not configured")

    expected = build_notification_signature(
        notification.merchant_id,
        notification.order_id,
        notification.payhere_amount,
        notification.payhere_currency,
        notification.status_code,
        merchant_secret,
    )
    if not hmac.compare_digest(notification.md5sig.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(
            "Security: PayHere notification with invalid md5sig (merchant_id=%s, order_id=%s, payment_id=%s)",
            notification.merchant_id,
            notification.order_id,
            notification.payment_id,
        )
        raise AuthenticationError("Invalid signature")

    if expected_merchant_id and notification.merchant_id != expected_merchant_id:
        logger.warning(
            "Security: PayHere notification for unexpected merchant_id=%s (order_id=%s)",
            notification.merchant_id,
            notification.order_id,
        )
        raise AuthenticationError("Invalid merchant")

    # custom_1 is outside the signed fields
    if notification.custom_1 and notification.custom_1.strip() != notification.order_id.strip():
        logger.warning(
            "Security: PayHere notification custom_1=%r does not match signed order_id=%r",
            notification.custom_1,
            notification.order_id,
        )
        raise AuthenticationError("Order reference mismatch")


def _resolve_order(db: Session, reference: str | None) -> Order:
    try:
        order_id = int(str(reference).strip())
    except (TypeError, ValueError):
        logger.warning("PayHere notification with malformed order reference: %r", reference)
        raise NotFoundError("Order not found")
    if order_id <= 0:
        raise NotFoundError("Order not found")
    try:
        return order_service.get_order(db, order_id, for_update=True)
    except NotFoundError:
        logger.warning("PayHere notification for unknown order %s", order_id)
        raise


def _parse_amount(raw: str) -> Decimal:
    try:
        amount = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        raise ValidationError("payhere_amount must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError("payhere_amount must be a non-negative number")
    return amount


def apply_notification(
    db: Session,
    notification: PayHereNotification,
    merchant_secret: str,
    expected_merchant_id: str | None = None,
) -> tuple[Payment, bool]:
    """Verify a notify-URL callback and record its outcome on the referenced order.

    Returns ``(payment, applied)``; ``applied`` is False for a re-delivered
    notification whose payment_id was already recorded.
    """
    verify_notification(notification, merchant_secret, expected_merchant_id)
    order = _resolve_order(db, notification.order_id)

    if not notification.payment_id.strip():
        raise ValidationError("payment_id is required")
    amount = _parse_amount(notification.payhere_amount)
    succeeded = notification.status_code.strip() == SUCCESS_STATUS_CODE

    if succeeded and order_service.to_money(amount) != order_service.to_money(order.total_amount):
        logger.warning(
            "PayHere amount mismatch for order %s: expected=%s, received=%s",
            order.id,
            order.total_amount,
            amount,
        )
        raise ValidationError("Payment amount does not match order total")

    payment, applied = order_service.record_payment_outcome(
        db,
        order,
        transaction_id=notification.payment_id.strip(),
        amount=amount,
        succeeded=succeeded,
        method=PaymentMethod.CARD.value,
    )
    if applied:
        logger.info(
            "PayHere notification applied: order %s, payment_id %s, status_code %s",
            order.id,
            notification.payment_id,
            notification.status_code,
        )
    return payment, applied
