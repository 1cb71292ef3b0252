# ertha_exchange/services/auth_service.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ertha_exchange.config import get_settings
from ertha_exchange.errors import AppError, BadRequestError, ConflictError, UnauthorizedError
from ertha_exchange.models import PasswordResetToken, RevokedToken, User, utcnow
from ertha_exchange.schemas import RegisterRequest
from ertha_exchange.services import user_service
from ertha_exchange.utils.security import (
    hash_password, verify_password, create_access_token,
    generate_reset_token, sha256_hex,
)

logger = logging.getLogger(__name__)


def issue_token(user: User) -> str:
    return create_access_token({
        "sub": user.id,
        "email": user.email,
        "role": user.role,
    })


def register(db: Session, data: RegisterRequest) -> Tuple[User, str]:
    email = str(data.email).lower()
    if user_service.get_by_email(db, email):
        raise ConflictError("User already exists with this email")

    user = User(
        email=email,
        password=hash_password(data.password),
        name=data.name,
        role=data.role,
        status="active",
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("Registered %s account %s", user.role, user.id)
    return user, issue_token(user)


def login(db: Session, email: str, password: str) -> Tuple[User, str]:
    user = user_service.get_by_email(db, email)
    if not user or not verify_password(password, user.password):
        logger.info("Failed login for %s", email)
        raise UnauthorizedError("Invalid credentials")
    if user.status != "active":
        raise AppError("Account suspended", status_code=403)

    return user, issue_token(user)


def logout(db: Session, user: User, payload: dict) -> None:
    """Revoke the presented token's jti until it would have expired anyway."""
    jti = payload.get("jti")
    if not jti or db.get(RevokedToken, jti) is not None:
        return
    purged = (
        db.query(RevokedToken)
        .filter(RevokedToken.expires_at.isnot(None), RevokedToken.expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    if purged:
        logger.debug("Purged %d expired revoked tokens", purged)
    exp = payload.get("exp")
    expires_at = (
        datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None) if exp else None
    )
    db.add(RevokedToken(jti=jti, user_id=user.id, expires_at=expires_at))
    db.commit()


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password):
        raise BadRequestError("Current password is incorrect")
    if verify_password(new_password, user.password):
        raise BadRequestError("New password must differ from the current password")
    user.password = hash_password(new_password)
    db.commit()
    logger.info("Password changed for user %s", user.id)


# --------------------------------------------------
# Password reset
# --------------------------------------------------
def forgot_password(db: Session, email: str) -> Optional[str]:
    """
    Issue a single-use reset token for `email` and return it, or None when the
    address is unknown. Callers must answer identically in both cases.
    """
    settings = get_settings()
    user = user_service.get_by_email(db, email)
    if not user:
        return None

    token = generate_reset_token()
    db.add(PasswordResetToken(
        user_id=user.id,
        token_hash=sha256_hex(token),
        expires_at=utcnow() + timedelta(minutes=settings.reset_token_minutes),
    ))
    db.commit()

    # No mail transport is bundled; outside production the route returns the token.
    logger.info("Password reset requested for user %s (link base %s/reset-password)",
                user.id, settings.frontend_url)
    return token


def reset_password(db: Session, token: str, new_password: str) -> User:
    row = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.token_hash == sha256_hex(token))
        .first()
    )
    if not row or row.used_at is not None or row.expires_at < utcnow():
        raise BadRequestError("Invalid or expired reset token")

    user = user_service.get_user(db, row.user_id)
    user.password = hash_password(new_password)
    row.used_at = utcnow()
    db.commit()
    logger.info("Password reset completed for user %s", user.id)
    return user
