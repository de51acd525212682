import json
import logging
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.models import get_db
from marketplace.schemas.payments import PayHereNotification, WebhookAckResponse
from marketplace.services import payhere

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse_body(raw_body: bytes, content_type: str) -> dict:
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
    body = json.loads(raw_body)
    if not isinstance(body, dict):
        raise ValueError("notification body must be an object")
    return body


@router.post(
    "/payhere",
    response_model=WebhookAckResponse,
    summary="PayHere notify URL",
)
async def payhere_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    PayHere posts the payment result here (form-encoded or JSON).
    md5sig is verified before anything is read from the database.
    Idempotent: a re-delivered payment_id is acknowledged without changes.
    """
    raw_body = await request.body()
    try:
        data = _parse_body(raw_body, request.headers.get("content-type", ""))
    except (ValueError, UnicodeDecodeError) as e:
        logger.error("Invalid PayHere notification body: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid notification body")

    try:
        notification = PayHereNotification.model_validate(data)
    except PydanticValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        logger.warning("PayHere notification missing or invalid fields: %s", ", ".join(missing))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid notification fields: {', '.join(missing)}",
        )

    payhere.apply_notification(
        db,
        notification,
        merchant_secret=settings.PAYHERE_SECRET_KEY,
        expected_merchant_id=settings.PAYHERE_MERCHANT_ID or None,
    )
    return WebhookAckResponse(success=True)
