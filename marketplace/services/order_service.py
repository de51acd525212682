import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.models import (
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Product,
)
from marketplace.services.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from marketplace.services.principal import Principal

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

# Statuses an order may be cancelled from; stock was reserved at creation and
# is handed back for each of them.
CANCELLABLE_STATUSES = {
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.PAYMENT_FAILED.value,
}

# Statuses a payment outcome may still move the order out of.
AWAITING_PAYMENT_STATUSES = {OrderStatus.PENDING.value, OrderStatus.PAYMENT_FAILED.value}


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _merge_line_items(items: Iterable) -> dict[int, int]:
    merged: dict[int, int] = {}
    for item in items:
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


def _latest_payment(db: Session, order_id: int) -> Payment | None:
    return db.query(Payment).filter(Payment.order_id == order_id).order_by(Payment.id.desc()).first()


def _same_caller(
    order: Order,
    principal: Principal | None,
    customer_email: str | None,
    customer_phone: str | None,
) -> bool:
    if principal is not None:
        return order.user_id == principal.user_id
    # guest orders have no owner; the contact details stand in for one
    if order.user_id is not None or not customer_email or not customer_phone:
        return False
    return (
        (order.customer_email or "").lower() == customer_email.lower()
        and order.customer_phone == customer_phone
    )


def _replay_idempotent_order(
    db: Session,
    order: Order,
    principal: Principal | None,
    customer_email: str | None = None,
    customer_phone: str | None = None,
) -> tuple[Order, Payment]:
    if not _same_caller(order, principal, customer_email, customer_phone):
        logger.warning("Idempotency key of order %s reused by a different caller", order.id)
        raise ValidationError("Idempotency key has already been used")
    logger.info("Order %s replayed for idempotency key", order.id)
    return order, _latest_payment(db, order.id)


def _reserve_stock(db: Session, product: Product, quantity: int) -> None:
    """Decrement stock only while enough remains; a concurrent buyer makes this a no-op."""
    updated = (
        db.query(Product)
        .filter(
            Product.id == product.id,
            Product.is_active.is_(True),
            Product.stock >= quantity,
        )
        .update({Product.stock: Product.stock - quantity}, synchronize_session=False)
    )
    if updated != 1:
        raise ValidationError(f"Insufficient stock for {product.title}")


def _restore_stock(db: Session, order: Order) -> None:
    for item in order.items:
        db.query(Product).filter(Product.id == item.product_id).update(
            {Product.stock: Product.stock + item.quantity},
            synchronize_session=False,
        )


def create_order(
    db: Session,
    *,
    items: Iterable,
    shipping_address: str,
    principal: Principal | None = None,
    customer_name: str | None = None,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    payment_method: str = PaymentMethod.CARD.value,
    idempotency_key: str | None = None,
) -> tuple[Order, Payment]:
    """Validate stock, then persist order, stock decrements and a pending payment in one commit.

    ``items`` are objects exposing ``product_id`` and ``quantity``. Any invalid
    line item rejects the whole order before anything is written.
    """
    requested = _merge_line_items(items)
    if not requested:
        raise ValidationError("Products are required")
    if any(quantity <= 0 for quantity in requested.values()):
        raise ValidationError("Quantity must be a positive integer")
    if not shipping_address or not shipping_address.strip():
        raise ValidationError("Shipping address is required")
    if principal is None and not (customer_name and customer_email and customer_phone):
        raise ValidationError("Customer information is required for guest orders")

    if idempotency_key:
        existing = db.query(Order).filter(Order.idempotency_key == idempotency_key).first()
        if existing is not None:
            return _replay_idempotent_order(db, existing, principal, customer_email, customer_phone)

    try:
        products = {
            product.id: product
            for product in db.query(Product)
            .filter(Product.id.in_(list(requested)))
            .order_by(Product.id)
            .with_for_update()
            .populate_existing()
            .all()
        }
        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None:
                raise ValidationError(f"Product {product_id} not found")
            if not product.is_active:
                raise ValidationError(f"Product {product.title} is not available")
            if product.stock < quantity:
                raise ValidationError(f"Insufficient stock for {product.title}")

        order = Order(
            user_id=principal.user_id if principal else None,
            shipping_address=shipping_address.strip(),
            status=OrderStatus.PENDING.value,
            idempotency_key=idempotency_key,
        )
        if principal is None:
            order.customer_name = customer_name
            order.customer_email = customer_email
            order.customer_phone = customer_phone

        total = Decimal("0.00")
        for product_id, quantity in requested.items():
            product = products[product_id]
            _reserve_stock(db, product, quantity)
            unit_price = to_money(product.price)
            total += unit_price * quantity
            order.items.append(OrderItem(product_id=product.id, quantity=quantity, unit_price=unit_price))
        order.total_amount = to_money(total)

        db.add(order)
        db.flush()

        payment = Payment(
            order_id=order.id,
            amount=order.total_amount,
            method=payment_method,
            status=PaymentStatus.PENDING.value,
        )
        db.add(payment)
        db.commit()
    except ValidationError:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        if idempotency_key:
            existing = db.query(Order).filter(Order.idempotency_key == idempotency_key).first()
            if existing is not None:
                return _replay_idempotent_order(db, existing, principal, customer_email, customer_phone)
        logger.exception("Integrity error while creating order")
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while creating order")
        raise

    db.refresh(order)
    db.refresh(payment)
    logger.info(
        "Order %s created (user_id=%s, items=%s, total=%s), payment %s pending",
        order.id,
        order.user_id,
        len(requested),
        order.total_amount,
        payment.id,
    )
    return order, payment


def get_order(db: Session, order_id: int, for_update: bool = False) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    order = query.first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for_principal(db: Session, order_id: int, principal: Principal) -> Order:
    order = get_order(db, order_id)
    if not principal.can_manage_order(order):
        raise PermissionDeniedError("Not authorized to view this order")
    return order


def cancel_order(db: Session, order_id: int, principal: Principal) -> Order:
    order = get_order(db, order_id)
    if not principal.can_manage_order(order):
        raise PermissionDeniedError("Not authorized to cancel this order")

    previous_status = order.status
    if previous_status == OrderStatus.CANCELLED.value:
        raise ValidationError("Order is already cancelled")
    if previous_status == OrderStatus.DELIVERED.value:
        raise ValidationError("Cannot cancel delivered order")
    if previous_status not in CANCELLABLE_STATUSES:
        raise ValidationError(f"Cannot cancel {previous_status} order")

    try:
        updated = (
            db.query(Order)
            .filter(Order.id == order.id, Order.status == previous_status)
            .update({Order.status: OrderStatus.CANCELLED.value}, synchronize_session=False)
        )
        if updated != 1:
            raise ValidationError("Order status changed concurrently, please retry")
        _restore_stock(db, order)
        db.commit()
    except ValidationError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while cancelling order %s", order_id)
        raise

    db.refresh(order)
    logger.info("Order %s cancelled by user %s (was %s), stock restored", order.id, principal.user_id, previous_status)
    return order


def update_order_status(
    db: Session,
    order_id: int,
    new_status: str,
    tracking_info: Mapping[str, str | None] | None = None,
) -> Order:
    """Admin override: any known status may be set, no transition rules apply.

    Setting ``cancelled`` on an order that still holds reserved stock hands the
    stock back, as ``cancel_order`` does. Moving an order out of ``cancelled``
    does not reserve stock again.
    """
    try:
        status_value = OrderStatus(new_status)
    except ValueError:
        raise ValidationError("Invalid status")

    order = get_order(db, order_id, for_update=True)
    previous_status = order.status
    order.status = status_value.value
    restock = status_value is OrderStatus.CANCELLED and previous_status in CANCELLABLE_STATUSES
    if restock:
        _restore_stock(db, order)
    if status_value is OrderStatus.SHIPPED and tracking_info:
        order.tracking_provider = tracking_info.get("provider")
        order.tracking_number = tracking_info.get("tracking_number")
        order.tracking_status = tracking_info.get("status")
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while updating order %s status", order_id)
        raise
    db.refresh(order)
    logger.info(
        "Order %s status set to %s (was %s%s)",
        order.id,
        order.status,
        previous_status,
        ", stock restored" if restock else "",
    )
    return order


def list_orders(
    db: Session,
    *,
    user_id: int | None = None,
    creator_id: int | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Order], int]:
    query = db.query(Order)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if creator_id is not None:
        creator_products = select(Product.id).where(Product.creator_id == creator_id)
        query = query.filter(Order.items.any(OrderItem.product_id.in_(creator_products)))
    if status:
        query = query.filter(Order.status == status)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def record_payment_outcome(
    db: Session,
    order: Order,
    *,
    transaction_id: str,
    amount: Decimal,
    succeeded: bool,
    method: str | None = None,
) -> tuple[Payment, bool]:
    """Settle the order's pending payment with a gateway result.

    Returns ``(payment, applied)``. ``applied`` is False when the transaction id
    was already recorded, in which case nothing is written.
    """
    existing = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
    if existing is not None:
        if existing.order_id != order.id:
            raise ValidationError("Transaction already recorded for another order")
        logger.info("Payment transaction %s already recorded for order %s, skipping", transaction_id, order.id)
        return existing, False

    payment = (
        db.query(Payment)
        .filter(Payment.order_id == order.id, Payment.status == PaymentStatus.PENDING.value)
        .order_by(Payment.id.desc())
        .with_for_update()
        .first()
    )
    if payment is None:
        payment = Payment(order_id=order.id, method=method or PaymentMethod.CARD.value)
        db.add(payment)
    elif method:
        payment.method = method

    payment.amount = to_money(amount)
    payment.transaction_id = transaction_id
    payment.status = PaymentStatus.PAID.value if succeeded else PaymentStatus.FAILED.value

    if order.status in AWAITING_PAYMENT_STATUSES:
        order.status = OrderStatus.CONFIRMED.value if succeeded else OrderStatus.PAYMENT_FAILED.value
    else:
        logger.warning(
            "Order %s is %s; payment %s recorded without changing order status",
            order.id,
            order.status,
            transaction_id,
        )
    if succeeded:
        order.payment_reference = transaction_id

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        duplicate = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
        if duplicate is None:
            raise
        logger.info("Payment transaction %s recorded concurrently, skipping", transaction_id)
        return duplicate, False
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while recording payment for order %s", order.id)
        raise

    db.refresh(payment)
    logger.info(
        "Payment %s for order %s marked %s (transaction %s)",
        payment.id,
        order.id,
        payment.status,
        transaction_id,
    )
    return payment, True
