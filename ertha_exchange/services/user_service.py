# ertha_exchange/services/user_service.py
import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ertha_exchange.errors import BadRequestError, ConflictError, NotFoundError
from ertha_exchange.models import User, Transaction
from ertha_exchange.schemas import ProfileUpdate

logger = logging.getLogger(__name__)

WALLET_CURRENCY = "ERTHA"


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, str(user_id))
    if not user:
        raise NotFoundError("User not found")
    return user


def get_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def update_profile(db: Session, user: User, data: ProfileUpdate) -> User:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise BadRequestError("No profile fields to update")

    if "email" in changes:
        email = str(changes["email"]).lower()
        if email != user.email:
            if get_by_email(db, email):
                raise ConflictError("User already exists with this email")
            user.email = email
            user.email_verified = False
    if "name" in changes:
        user.name = changes["name"]

    db.commit()
    db.refresh(user)
    logger.info("Profile updated for user %s", user.id)
    return user


def get_wallet(db: Session, user: User) -> dict:
    last = (
        db.query(Transaction)
        .filter(Transaction.user_id == user.id)
        .order_by(Transaction.created_at.desc())
        .first()
    )
    return {
        "balance": float(user.wallet_balance or 0),
        "currency": WALLET_CURRENCY,
        "lastTransaction": last.to_dict() if last else None,
    }


# --------------------------------------------------
# Wallet mutations (caller owns the DB transaction)
# --------------------------------------------------
def lock_user(db: Session, user_id: str) -> User:
    """Reload a user row with a row lock (no-op lock on SQLite)."""
    user = (
        db.query(User)
        .filter(User.id == str(user_id))
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if not user:
        raise NotFoundError("User not found")
    return user


def debit_wallet(db: Session, user_id: str, amount: Decimal,
                 message: str = "Insufficient wallet balance") -> Tuple[Decimal, Decimal]:
    user = lock_user(db, user_id)
    before = Decimal(user.wallet_balance or 0)
    if before < amount:
        raise BadRequestError(message, data={"balance": float(before), "required": float(amount)})
    user.wallet_balance = before - amount
    return before, before - amount


def credit_wallet(db: Session, user_id: str, amount: Decimal) -> Tuple[Decimal, Decimal]:
    user = lock_user(db, user_id)
    before = Decimal(user.wallet_balance or 0)
    user.wallet_balance = before + amount
    return before, before + amount
