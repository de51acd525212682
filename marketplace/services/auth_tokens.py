import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from marketplace.models import OneTimeToken

ONE_TIME_PURPOSE_EMAIL_VERIFY = "email_verify"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _db_datetime(db: Session, value: datetime) -> datetime:
    bind = db.get_bind()
    if bind and bind.dialect.name == "sqlite":
        return value.replace(tzinfo=None)
    return value


def _new_token() -> str:
    return secrets.token_urlsafe(48)


def issue_one_time_token(
    db: Session,
    user_id: int,
    purpose: str,
    expires_in_minutes: int,
) -> tuple[str, OneTimeToken]:
    raw = _new_token()
    record = OneTimeToken(
        user_id=user_id,
        purpose=purpose,
        token_hash=_hash_token(raw),
        expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
    )
    db.add(record)
    db.flush()
    return raw, record


def consume_one_time_token(db: Session, raw_token: str, purpose: str) -> OneTimeToken | None:
    """Mark an unused, unexpired token as used. Returns None when nothing matched."""
    token_hash = _hash_token(raw_token)
    db_now = _db_datetime(db, utcnow())

    updated = (
        db.query(OneTimeToken)
        .filter(
            OneTimeToken.token_hash == token_hash,
            OneTimeToken.purpose == purpose,
            OneTimeToken.used_at.is_(None),
            OneTimeToken.expires_at > db_now,
        )
        .update({OneTimeToken.used_at: db_now}, synchronize_session=False)
    )
    if updated != 1:
        return None

    return (
        db.query(OneTimeToken)
        .filter(OneTimeToken.token_hash == token_hash, OneTimeToken.purpose == purpose)
        .first()
    )
