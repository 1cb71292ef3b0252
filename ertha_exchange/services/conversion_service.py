# ertha_exchange/services/conversion_service.py
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ertha_exchange.config import get_settings
from ertha_exchange.errors import BadRequestError, ConflictError, NotFoundError
from ertha_exchange.models import ConversionRequest, User, utcnow
from ertha_exchange.schemas import ConversionCreate, ConversionApprove
from ertha_exchange.services import audit_service, transaction_service, user_service
from ertha_exchange.utils.helpers import Pagination
from ertha_exchange.utils.rbac import check_ownership

logger = logging.getLogger(__name__)


def _load(db: Session, request_id: str, lock: bool = False) -> ConversionRequest:
    q = (
        db.query(ConversionRequest)
        .options(joinedload(ConversionRequest.organization))
        .filter(ConversionRequest.id == str(request_id))
    )
    if lock:
        q = q.with_for_update(of=ConversionRequest).populate_existing()
    conversion = q.first()
    if not conversion:
        raise NotFoundError("Conversion request not found")
    return conversion


def create_request(db: Session, org: User, data: ConversionCreate) -> ConversionRequest:
    amount = Decimal(data.amount)
    if Decimal(org.wallet_balance or 0) < amount:
        raise BadRequestError("Insufficient wallet balance for conversion")

    pending = (
        db.query(ConversionRequest)
        .filter(ConversionRequest.organization_id == org.id, ConversionRequest.status == "pending")
        .first()
    )
    if pending:
        raise ConflictError("A conversion request is already pending")

    conversion = ConversionRequest(
        organization_id=org.id,
        amount=amount,
        currency=get_settings().payment_currency,
        status="pending",
        reason=data.reason,
        bank_details=data.bank_details.model_dump(by_alias=True),
    )
    db.add(conversion)
    db.commit()
    db.refresh(conversion)
    logger.info("Conversion request %s for %s by org %s", conversion.id, amount, org.id)
    return conversion


def list_requests(db: Session, user: User, pagination: Pagination, status: Optional[str] = None):
    q = db.query(ConversionRequest).options(joinedload(ConversionRequest.organization))
    if user.role != "admin":
        q = q.filter(ConversionRequest.organization_id == user.id)
    if status:
        q = q.filter(ConversionRequest.status == status)
    total = q.count()
    rows = (
        q.order_by(ConversionRequest.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    return [r.to_dict() for r in rows], total


def get_request(db: Session, user: User, request_id: str) -> ConversionRequest:
    conversion = _load(db, request_id)
    check_ownership(user, conversion.organization_id)
    return conversion


def approve_request(db: Session, admin: User, request_id: str, data: ConversionApprove,
                    ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> dict:
    """Debit the org and record the payout in one DB transaction."""
    try:
        conversion = _load(db, request_id, lock=True)
        if conversion.status != "pending":
            raise BadRequestError(f"Conversion request is already {conversion.status}")

        amount = Decimal(conversion.amount)
        before, after = user_service.debit_wallet(
            db, conversion.organization_id, amount,
            message="Organization balance no longer covers this conversion",
        )
        txn = transaction_service.create_transaction(
            db,
            user_id=conversion.organization_id,
            type="coin_conversion",
            amount=amount,
            status="completed",
            description=f"Coin conversion to {conversion.currency}",
            payment_id=data.transaction_id,
            metadata={
                "conversionRequestId": conversion.id,
                "balanceBefore": float(before),
                "balanceAfter": float(after),
            },
        )
        conversion.status = "approved"
        conversion.processed_by = admin.id
        conversion.processed_at = utcnow()
        conversion.transaction_id = data.transaction_id or txn.id

        audit_service.record(
            db,
            actor_id=admin.id,
            action="approve_conversion",
            resource="conversion_request",
            resource_id=conversion.id,
            old_values={"status": "pending"},
            new_values={"status": "approved", "transactionId": conversion.transaction_id},
            metadata={"amount": amount, "organizationId": conversion.organization_id},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Conversion %s approved by admin %s", conversion.id, admin.id)
    return {"conversion": conversion.to_dict(), "transaction": txn.to_dict()}


def reject_request(db: Session, admin: User, request_id: str, reason: str,
                   ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> ConversionRequest:
    conversion = _load(db, request_id, lock=True)
    if conversion.status != "pending":
        raise BadRequestError(f"Conversion request is already {conversion.status}")

    conversion.status = "rejected"
    conversion.reason = reason
    conversion.processed_by = admin.id
    conversion.processed_at = utcnow()
    audit_service.record(
        db,
        actor_id=admin.id,
        action="reject_conversion",
        resource="conversion_request",
        resource_id=conversion.id,
        old_values={"status": "pending"},
        new_values={"status": "rejected"},
        metadata={"reason": reason},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    logger.info("Conversion %s rejected by admin %s", conversion.id, admin.id)
    return conversion
