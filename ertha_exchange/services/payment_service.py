# ertha_exchange/services/payment_service.py
"""Coin purchases through Razorpay: orders, verification, webhooks, refunds, saved methods."""

import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ertha_exchange.config import get_settings
from ertha_exchange.errors import AppError, BadRequestError, NotFoundError, PaymentGatewayError
from ertha_exchange.integrations.razorpay_client import RazorpayClient
from ertha_exchange.models import (
    PaymentMethod, PaymentTransaction, Service, User, mask_card_number,
)
from ertha_exchange.schemas import (
    CreateOrderRequest, VerifyPaymentRequest, RefundRequest,
    PaymentMethodCreate, PaymentMethodUpdate,
)
from ertha_exchange.services import audit_service, transaction_service, user_service
from ertha_exchange.utils.helpers import Pagination

logger = logging.getLogger(__name__)

OPEN_PAYMENT_STATUSES = ("created", "pending")
_SENSITIVE_DETAIL_KEYS = ("cvv", "cvc", "pin", "otp")


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def _payment_by_order(db: Session, order_id: str, lock: bool = False) -> Optional[PaymentTransaction]:
    q = db.query(PaymentTransaction).filter(PaymentTransaction.razorpay_order_id == order_id)
    if lock:
        q = q.with_for_update().populate_existing()
    return q.first()


# --------------------------------------------------
# Orders
# --------------------------------------------------
def create_order(db: Session, gateway: RazorpayClient, user: User, data: CreateOrderRequest) -> Dict[str, Any]:
    settings = get_settings()
    amount = Decimal(data.amount)
    if amount < settings.min_payment_amount or amount > settings.max_payment_amount:
        raise BadRequestError(
            f"Amount must be between {settings.min_payment_amount} and {settings.max_payment_amount}"
        )
    if gateway.demo_mode and settings.is_production:
        raise PaymentGatewayError("Payment gateway not configured", status_code=503)

    service = None
    if data.purpose == "service_booking":
        if data.service_id is None:
            raise BadRequestError("serviceId is required for service bookings")
        service = db.get(Service, str(data.service_id))
        if not service or service.status != "active":
            raise BadRequestError("Service is not available for booking")

    receipt = f"rcpt_{uuid.uuid4().hex[:20]}"
    order = gateway.create_order(
        amount_paise=to_paise(amount),
        currency=settings.payment_currency,
        receipt=receipt,
        notes={"userId": user.id, "purpose": data.purpose},
    )

    try:
        txn = transaction_service.create_transaction(
            db,
            user_id=user.id,
            type=data.purpose,
            amount=amount,
            status="pending",
            service_id=service.id if service else None,
            description="ErthaCoin purchase" if service is None else f"Booking payment: {service.title}",
            metadata={"orderId": order["id"], "receipt": receipt},
        )
        payment = PaymentTransaction(
            user_id=user.id,
            transaction_id=txn.id,
            service_id=service.id if service else None,
            razorpay_order_id=order["id"],
            amount=amount,
            currency=settings.payment_currency,
            status="created",
            purpose=data.purpose,
            gateway_response=order,
            meta={"receipt": receipt, "demo": gateway.demo_mode},
        )
        db.add(payment)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Order %s created for user %s (%s %s)", order["id"], user.id, amount, settings.payment_currency)
    return {
        "orderId": order["id"],
        "amount": float(amount),
        "amountPaise": to_paise(amount),
        "currency": settings.payment_currency,
        "keyId": gateway.key_id,
        "paymentId": payment.id,
        "transactionId": txn.id,
        "demoMode": gateway.demo_mode,
    }


# --------------------------------------------------
# Completion (verify + webhook)
# --------------------------------------------------
def _fulfil(db: Session, payment: PaymentTransaction) -> Optional[Decimal]:
    """Apply the purchase's effect; returns the payer's new balance for coin purchases."""
    amount = Decimal(payment.amount)
    if payment.purpose == "coin_purchase":
        _, after = user_service.credit_wallet(db, payment.user_id, amount)
        return after

    service = db.get(Service, payment.service_id) if payment.service_id else None
    if service is None:
        raise BadRequestError("Booked service no longer exists")
    user_service.credit_wallet(db, service.organization_id, amount)
    db.query(Service).filter(Service.id == service.id).update(
        {Service.bookings: Service.bookings + 1}, synchronize_session=False
    )
    return None


def _complete(db: Session, payment: PaymentTransaction, razorpay_payment_id: str,
              signature: Optional[str] = None, method: Optional[str] = None) -> bool:
    """Mark paid and fulfil exactly once; the caller commits."""
    payment = (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.id == payment.id)
        .with_for_update()
        .populate_existing()
        .one()
    )
    if payment.status == "completed":
        return False
    if payment.status not in OPEN_PAYMENT_STATUSES:
        raise BadRequestError(f"Payment is already {payment.status}")

    new_balance = _fulfil(db, payment)
    payment.status = "completed"
    payment.razorpay_payment_id = razorpay_payment_id
    if signature:
        payment.razorpay_signature = signature
    if method:
        payment.payment_method = method

    if payment.transaction is not None:
        extra = {"paymentId": razorpay_payment_id}
        if new_balance is not None:
            extra["balanceAfter"] = float(new_balance)
        transaction_service.update_transaction_status(db, payment.transaction, "completed", extra)
        payment.transaction.payment_id = razorpay_payment_id
    return True


def verify_payment(db: Session, gateway: RazorpayClient, user: User, data: VerifyPaymentRequest) -> Dict[str, Any]:
    if not gateway.verify_payment_signature(data.razorpay_order_id, data.razorpay_payment_id,
                                            data.razorpay_signature):
        logger.warning("Signature mismatch for order %s", data.razorpay_order_id)
        raise BadRequestError("Invalid payment signature")

    payment = _payment_by_order(db, data.razorpay_order_id)
    if not payment or (payment.user_id != user.id and user.role != "admin"):
        raise NotFoundError("Payment order not found")

    try:
        processed = _complete(db, payment, data.razorpay_payment_id, data.razorpay_signature)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    if processed:
        logger.info("Payment %s verified for order %s", data.razorpay_payment_id, payment.razorpay_order_id)
    payer = user_service.get_user(db, payment.user_id)
    return {
        "payment": payment.to_dict(),
        "transaction": payment.transaction.to_dict() if payment.transaction else None,
        "walletBalance": float(payer.wallet_balance or 0),
        "alreadyProcessed": not processed,
    }


def _payment_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
    return ((payload.get("payload") or {}).get("payment") or {}).get("entity") or {}


def _refund_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
    return ((payload.get("payload") or {}).get("refund") or {}).get("entity") or {}


def handle_webhook(db: Session, gateway: RazorpayClient, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
    if not gateway.webhook_secret:
        raise AppError("Webhook verification is not configured", status_code=503)
    if not gateway.verify_webhook_signature(body, signature):
        logger.warning("Rejected webhook with invalid signature")
        raise BadRequestError("Invalid webhook signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise BadRequestError("Malformed webhook payload")
    if not isinstance(payload, dict):
        raise BadRequestError("Malformed webhook payload")

    event = payload.get("event")
    if event == "payment.failed":
        changed = _on_payment_failed(db, _payment_entity(payload))
    elif event in ("payment.authorized", "payment.captured"):
        changed = _on_payment_authorized(db, _payment_entity(payload))
    elif event == "refund.processed":
        changed = _on_refund_processed(db, _refund_entity(payload))
    else:
        logger.info("Ignoring webhook event %s", event)
        return {"event": event, "handled": False, "changed": False}

    return {"event": event, "handled": True, "changed": changed}


def _on_payment_failed(db: Session, entity: Dict[str, Any]) -> bool:
    payment = _payment_by_order(db, entity.get("order_id") or "", lock=True)
    if not payment:
        logger.warning("payment.failed for unknown order %s", entity.get("order_id"))
        return False
    if payment.status not in OPEN_PAYMENT_STATUSES:
        return False

    reason = entity.get("error_description") or entity.get("error_reason") or "Payment failed"
    payment.status = "failed"
    payment.failure_reason = reason
    payment.razorpay_payment_id = entity.get("id") or payment.razorpay_payment_id
    payment.payment_method = entity.get("method") or payment.payment_method
    if payment.transaction is not None and payment.transaction.status == "pending":
        transaction_service.update_transaction_status(
            db, payment.transaction, "failed", {"failureReason": reason}
        )
    db.commit()
    logger.info("Order %s marked failed: %s", payment.razorpay_order_id, reason)
    return True


def _on_payment_authorized(db: Session, entity: Dict[str, Any]) -> bool:
    payment = _payment_by_order(db, entity.get("order_id") or "")
    if not payment:
        logger.warning("Authorization for unknown order %s", entity.get("order_id"))
        return False
    if payment.status not in OPEN_PAYMENT_STATUSES:
        return False
    try:
        changed = _complete(db, payment, entity.get("id"), method=entity.get("method"))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return changed


def _on_refund_processed(db: Session, entity: Dict[str, Any]) -> bool:
    payment = (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.razorpay_payment_id == entity.get("payment_id"))
        .first()
    )
    if not payment:
        logger.warning("Refund for unknown payment %s", entity.get("payment_id"))
        return False
    payment.refund_id = entity.get("id") or payment.refund_id
    payment.refund_status = entity.get("status") or "processed"
    if payment.refund_amount is None and entity.get("amount") is not None:
        payment.refund_amount = Decimal(entity["amount"]) / 100
    db.commit()
    return True


# --------------------------------------------------
# Refunds (admin)
# --------------------------------------------------
def refund_payment(db: Session, gateway: RazorpayClient, admin: User, data: RefundRequest,
                   ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
    payment = (
        db.query(PaymentTransaction)
        .filter(or_(PaymentTransaction.id == data.payment_id,
                    PaymentTransaction.razorpay_payment_id == data.payment_id))
        .first()
    )
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.status != "completed" or not payment.razorpay_payment_id:
        raise BadRequestError("Only completed payments can be refunded")

    amount = Decimal(data.amount) if data.amount is not None else Decimal(payment.amount)
    if amount > Decimal(payment.amount):
        raise BadRequestError("Refund amount exceeds the payment amount")

    if payment.purpose == "coin_purchase":
        holder_id = payment.user_id
    else:
        service = db.get(Service, payment.service_id)
        holder_id = service.organization_id if service else payment.user_id

    refund = None
    try:
        # coins must still be there before money goes back out
        holder = user_service.lock_user(db, holder_id)
        if Decimal(holder.wallet_balance or 0) < amount:
            raise BadRequestError("Wallet balance no longer covers this refund")

        before, after = user_service.debit_wallet(db, holder_id, amount)
        txn = transaction_service.create_transaction(
            db,
            user_id=payment.user_id,
            type="refund",
            amount=amount,
            status="completed",
            service_id=payment.service_id,
            description=data.reason or "Payment refund",
            payment_id=payment.razorpay_payment_id,
            metadata={"balanceBefore": float(before), "balanceAfter": float(after),
                      "walletUserId": holder_id},
        )
        entry = audit_service.record(
            db,
            actor_id=admin.id,
            action="refund_payment",
            resource="payment",
            resource_id=payment.id,
            old_values={"status": "completed"},
            new_values={"status": "refunded", "refundAmount": amount},
            metadata={"reason": data.reason},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.flush()

        # money moves only once the ledger rows have flushed
        refund = gateway.refund(payment.razorpay_payment_id, amount_paise=to_paise(amount),
                                notes={"reason": data.reason or "", "refundedBy": admin.id})

        payment.status = "refunded"
        payment.refund_id = refund.get("id")
        payment.refund_amount = amount
        payment.refund_status = refund.get("status", "pending")
        txn.meta = {**(txn.meta or {}), "refundId": refund.get("id")}
        entry.meta = {**(entry.meta or {}), "refundId": refund.get("id")}
        db.commit()
    except Exception:
        db.rollback()
        if refund is not None:
            logger.error("Gateway refund %s for payment %s succeeded but the local update failed",
                         refund.get("id"), payment.id)
        raise

    logger.info("Refunded %s on payment %s by admin %s", amount, payment.id, admin.id)
    return {"payment": payment.to_dict(), "transaction": txn.to_dict(), "refund": refund}


# --------------------------------------------------
# History + stats
# --------------------------------------------------
def payment_history(db: Session, user: User, pagination: Pagination, status: Optional[str] = None):
    q = db.query(PaymentTransaction)
    if user.role != "admin":
        q = q.filter(PaymentTransaction.user_id == user.id)
    if status:
        q = q.filter(PaymentTransaction.status == status)
    total = q.count()
    rows = (
        q.order_by(PaymentTransaction.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    return [r.to_dict() for r in rows], total


def payment_stats(db: Session, user: User) -> Dict[str, Any]:
    q = db.query(PaymentTransaction.status, func.count(PaymentTransaction.id),
                 func.coalesce(func.sum(PaymentTransaction.amount), 0))
    if user.role != "admin":
        q = q.filter(PaymentTransaction.user_id == user.id)
    rows = q.group_by(PaymentTransaction.status).all()

    by_status = {status: {"count": count, "amount": float(amount or 0)} for status, count, amount in rows}
    refunded = db.query(func.coalesce(func.sum(PaymentTransaction.refund_amount), 0))
    if user.role != "admin":
        refunded = refunded.filter(PaymentTransaction.user_id == user.id)
    return {
        "totalPayments": sum(v["count"] for v in by_status.values()),
        "totalPaid": by_status.get("completed", {}).get("amount", 0.0)
        + by_status.get("refunded", {}).get("amount", 0.0),
        "totalRefunded": float(refunded.scalar() or 0),
        "byStatus": by_status,
    }


# --------------------------------------------------
# Saved payment methods
# --------------------------------------------------
def _safe_details(method_type: str, details: Dict[str, Any]) -> Dict[str, Any]:
    clean = {k: v for k, v in (details or {}).items() if k.lower() not in _SENSITIVE_DETAIL_KEYS}
    if method_type == "card":
        for key in ("cardNumber", "card_number", "number"):
            if key in clean:
                number = str(clean.pop(key))
                clean["cardNumber"] = mask_card_number(number)
                clean["last4"] = number[-4:]
    return clean


def _clear_default(db: Session, user_id: str) -> None:
    db.query(PaymentMethod).filter(
        PaymentMethod.user_id == user_id, PaymentMethod.is_default.is_(True)
    ).update({PaymentMethod.is_default: False}, synchronize_session=False)


def list_payment_methods(db: Session, user: User):
    rows = (
        db.query(PaymentMethod)
        .filter(PaymentMethod.user_id == user.id, PaymentMethod.is_active.is_(True))
        .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
        .all()
    )
    return [r.to_dict() for r in rows]


def _own_method(db: Session, user: User, method_id: str) -> PaymentMethod:
    method = db.get(PaymentMethod, str(method_id))
    if not method or method.user_id != user.id or not method.is_active:
        raise NotFoundError("Payment method not found")
    return method


def add_payment_method(db: Session, user: User, data: PaymentMethodCreate) -> PaymentMethod:
    if data.is_default:
        _clear_default(db, user.id)
    method = PaymentMethod(
        user_id=user.id,
        type=data.type,
        provider=data.provider,
        is_default=data.is_default,
        details=_safe_details(data.type, data.details),
    )
    db.add(method)
    db.commit()
    db.refresh(method)
    return method


def update_payment_method(db: Session, user: User, method_id: str, data: PaymentMethodUpdate) -> PaymentMethod:
    method = _own_method(db, user, method_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if changes.get("is_default"):
        _clear_default(db, user.id)
        db.refresh(method)
    if "provider" in changes:
        method.provider = changes["provider"]
    if "is_default" in changes:
        method.is_default = changes["is_default"]
    if "details" in changes:
        method.details = _safe_details(method.type, changes["details"])
    db.commit()
    db.refresh(method)
    return method


def delete_payment_method(db: Session, user: User, method_id: str) -> None:
    method = _own_method(db, user, method_id)
    method.is_active = False
    method.is_default = False
    db.commit()
