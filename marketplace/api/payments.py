from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.dependencies import get_principal, require_roles
from marketplace.models import Order, Payment, Role, get_db
from marketplace.schemas.payments import (
    PayHereHashRequest,
    PayHereHashResponse,
    PaymentConfirmRequest,
    PaymentConfirmResponse,
    PaymentResponse,
)
from marketplace.services import order_service, payhere
from marketplace.services.principal import Principal

router = APIRouter()

COMPLETED_STATUS = "completed"


def payment_to_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        order_id=payment.order_id,
        amount=payment.amount,
        method=payment.method,
        status=payment.status,
        transaction_id=payment.transaction_id,
        created_at=payment.created_at.isoformat() if payment.created_at else "",
    )


@router.post(
    "/payhere-hash",
    response_model=PayHereHashResponse,
    summary="Sign a PayHere checkout request",
)
def payhere_hash(body: PayHereHashRequest):
    """Return the checkout hash PayHere expects for (merchant, order, amount, currency)."""
    merchant_id = settings.PAYHERE_MERCHANT_ID
    checkout_hash = payhere.issue_checkout_hash(
        order_id=body.order_id,
        amount=body.amount,
        currency=body.currency,
        merchant_id=merchant_id,
        merchant_secret=settings.PAYHERE_SECRET_KEY,
    )
    return PayHereHashResponse(hash=checkout_hash, merchant_id=merchant_id)


@router.post(
    "/confirm",
    response_model=PaymentConfirmResponse,
    summary="Confirm a payment manually (admin)",
)
def confirm_payment(
    body: PaymentConfirmRequest,
    _: Annotated[Principal, Depends(require_roles(Role.ADMIN))],
    db: Annotated[Session, Depends(get_db)],
):
    """Record a completed gateway payment for an order. Idempotent per payment_id."""
    order = order_service.get_order(db, body.order_id, for_update=True)
    if body.status != COMPLETED_STATUS:
        return PaymentConfirmResponse(success=False, message="Payment not completed")

    payment, applied = order_service.record_payment_outcome(
        db,
        order,
        transaction_id=body.payment_id,
        amount=order.total_amount,
        succeeded=True,
    )
    message = "Payment confirmed successfully" if applied else "Payment already recorded"
    return PaymentConfirmResponse(success=True, message=message, payment=payment_to_response(payment))


@router.get(
    "/history",
    response_model=list[PaymentResponse],
    summary="Payment history of the current user",
)
def payment_history(
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[Session, Depends(get_db)],
):
    payments = (
        db.query(Payment)
        .join(Order, Payment.order_id == Order.id)
        .filter(Order.user_id == principal.user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    return [payment_to_response(p) for p in payments]
