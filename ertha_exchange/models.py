# ertha_exchange/models.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column, String, Text, Enum, DateTime, Boolean, Integer, Numeric, JSON,
    ForeignKey, UniqueConstraint, Index, text, false, true,
)
from sqlalchemy.orm import relationship

from ertha_exchange.database import Base

ROLE_VALUES = ("user", "org", "admin")
USER_STATUS_VALUES = ("active", "suspended")
SERVICE_STATUS_VALUES = ("pending", "active", "inactive")
TRANSACTION_TYPE_VALUES = ("coin_purchase", "service_booking", "coin_conversion", "refund")
TRANSACTION_STATUS_VALUES = ("pending", "completed", "failed", "cancelled")
CONVERSION_STATUS_VALUES = ("pending", "approved", "rejected")
PAYMENT_METHOD_TYPE_VALUES = ("card", "upi", "netbanking", "wallet")
PAYMENT_STATUS_VALUES = ("created", "pending", "completed", "failed", "refunded")
PAYMENT_PURPOSE_VALUES = ("coin_purchase", "service_booking")


def utcnow() -> datetime:
    """Naive UTC now, matching the DB's CURRENT_TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _money(value):
    if value is None:
        return None
    return float(value) if isinstance(value, Decimal) else value


def _iso(value):
    return value.isoformat() if value is not None else None


def _created_at():
    return Column(DateTime(timezone=False), nullable=False, default=utcnow,
                  server_default=text("CURRENT_TIMESTAMP"))


def _updated_at():
    return Column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow,
                  server_default=text("CURRENT_TIMESTAMP"))


# --------------------------------------------------
# Users
# --------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)

    role = Column(Enum(*ROLE_VALUES, name="user_role"), nullable=False,
                  default="user", server_default=text("'user'"))
    wallet_balance = Column(Numeric(10, 2), nullable=False, default=Decimal("0"),
                            server_default=text("0"))
    status = Column(Enum(*USER_STATUS_VALUES, name="user_status"), nullable=False,
                    default="active", server_default=text("'active'"))
    email_verified = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = _created_at()
    updated_at = _updated_at()

    services = relationship("Service", back_populates="organization")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "walletBalance": _money(self.wallet_balance),
            "status": self.status,
            "emailVerified": bool(self.email_verified),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# --------------------------------------------------
# Services + reviews
# --------------------------------------------------
class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    organization_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(*SERVICE_STATUS_VALUES, name="service_status"), nullable=False,
                    default="pending", server_default=text("'pending'"), index=True)
    features = Column(JSON, nullable=False, default=list)
    bookings = Column(Integer, nullable=False, default=0, server_default=text("0"))
    rating = Column(Numeric(3, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    review_count = Column(Integer, nullable=False, default=0, server_default=text("0"))

    created_at = _created_at()
    updated_at = _updated_at()

    organization = relationship("User", back_populates="services")
    reviews = relationship("ServiceReview", back_populates="service", cascade="all, delete-orphan")

    def to_dict(self, include_organization: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": _money(self.price),
            "category": self.category,
            "organizationId": self.organization_id,
            "status": self.status,
            "features": list(self.features or []),
            "bookings": self.bookings or 0,
            "rating": _money(self.rating),
            "reviewCount": self.review_count or 0,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_organization and self.organization is not None:
            data["organization"] = {"id": self.organization.id, "name": self.organization.name}
        return data


class ServiceReview(Base):
    __tablename__ = "service_reviews"
    __table_args__ = (UniqueConstraint("service_id", "user_id", name="uq_review_service_user"),)

    id = Column(String(36), primary_key=True, default=new_id)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    review = Column(Text, nullable=True)
    is_visible = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = _created_at()

    service = relationship("Service", back_populates="reviews")
    user = relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serviceId": self.service_id,
            "userId": self.user_id,
            "userName": self.user.name if self.user is not None else None,
            "rating": self.rating,
            "review": self.review,
            "createdAt": _iso(self.created_at),
        }


# --------------------------------------------------
# Ledger
# --------------------------------------------------
class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=True, index=True)
    type = Column(Enum(*TRANSACTION_TYPE_VALUES, name="transaction_type"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(*TRANSACTION_STATUS_VALUES, name="transaction_status"), nullable=False,
                    default="pending", server_default=text("'pending'"))
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    payment_id = Column(String(255), nullable=True)

    created_at = _created_at()
    updated_at = _updated_at()

    service = relationship("Service")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "serviceId": self.service_id,
            "type": self.type,
            "amount": _money(self.amount),
            "status": self.status,
            "description": self.description,
            "metadata": self.meta or {},
            "paymentId": self.payment_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


Index("ix_transactions_user_created", Transaction.user_id, Transaction.created_at)


class ConversionRequest(Base):
    __tablename__ = "conversion_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR", server_default=text("'INR'"))
    status = Column(Enum(*CONVERSION_STATUS_VALUES, name="conversion_status"), nullable=False,
                    default="pending", server_default=text("'pending'"), index=True)
    reason = Column(Text, nullable=True)
    bank_details = Column(JSON, nullable=False)
    processed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime(timezone=False), nullable=True)
    transaction_id = Column(String(255), nullable=True)

    created_at = _created_at()
    updated_at = _updated_at()

    organization = relationship("User", foreign_keys=[organization_id])

    def to_dict(self) -> dict:
        bank = dict(self.bank_details or {})
        if bank.get("accountNumber"):
            bank["accountNumber"] = mask_account_number(bank["accountNumber"])
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "organizationName": self.organization.name if self.organization is not None else None,
            "amount": _money(self.amount),
            "currency": self.currency,
            "status": self.status,
            "reason": self.reason,
            "bankDetails": bank,
            "processedBy": self.processed_by,
            "processedAt": _iso(self.processed_at),
            "transactionId": self.transaction_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# --------------------------------------------------
# Audit trail (append-only)
# --------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)  # actor
    action = Column(String(100), nullable=False, index=True)   # e.g. 'approve_service', 'suspend_user'
    resource = Column(String(100), nullable=False)
    resource_id = Column(String(255), nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=False), nullable=False, default=utcnow,
                        server_default=text("CURRENT_TIMESTAMP"), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "resource": self.resource,
            "resourceId": self.resource_id,
            "oldValues": self.old_values,
            "newValues": self.new_values,
            "metadata": self.meta or {},
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "createdAt": _iso(self.created_at),
        }


# --------------------------------------------------
# Payments
# --------------------------------------------------
def mask_card_number(number: str) -> str:
    digits = "".join(ch for ch in str(number) if ch.isdigit())
    if len(digits) <= 4:
        return digits
    return "*" * (len(digits) - 4) + digits[-4:]


def mask_account_number(number: str) -> str:
    value = str(number)
    return "X" * max(len(value) - 4, 0) + value[-4:]


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(*PAYMENT_METHOD_TYPE_VALUES, name="payment_method_type"), nullable=False)
    provider = Column(String(100), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False, server_default=false())
    details = Column(JSON, nullable=False, default=dict)  # card numbers are stored masked
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    created_at = _created_at()
    updated_at = _updated_at()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "provider": self.provider,
            "isDefault": bool(self.is_default),
            "details": self.details or {},
            "isActive": bool(self.is_active),
            "createdAt": _iso(self.created_at),
        }


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=True)

    razorpay_order_id = Column(String(255), unique=True, nullable=False, index=True)
    razorpay_payment_id = Column(String(255), nullable=True, index=True)
    razorpay_signature = Column(String(255), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(Enum(*PAYMENT_STATUS_VALUES, name="payment_status"), nullable=False,
                    default="created", server_default=text("'created'"))
    purpose = Column(Enum(*PAYMENT_PURPOSE_VALUES, name="payment_purpose"), nullable=False,
                     default="coin_purchase")
    payment_method = Column(String(50), nullable=True)
    failure_reason = Column(Text, nullable=True)

    refund_id = Column(String(255), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_status = Column(String(50), nullable=True)

    gateway_response = Column(JSON, nullable=True)
    meta = Column("metadata", JSON, nullable=True)

    created_at = _created_at()
    updated_at = _updated_at()

    transaction = relationship("Transaction")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "transactionId": self.transaction_id,
            "serviceId": self.service_id,
            "orderId": self.razorpay_order_id,
            "paymentId": self.razorpay_payment_id,
            "amount": _money(self.amount),
            "currency": self.currency,
            "status": self.status,
            "purpose": self.purpose,
            "paymentMethod": self.payment_method,
            "failureReason": self.failure_reason,
            "refundId": self.refund_id,
            "refundAmount": _money(self.refund_amount),
            "refundStatus": self.refund_status,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# --------------------------------------------------
# Auth bookkeeping
# --------------------------------------------------
class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    # SHA-256 hex of the emailed token
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=False), nullable=False)
    used_at = Column(DateTime(timezone=False), nullable=True)
    created_at = _created_at()


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    expires_at = Column(DateTime(timezone=False), nullable=True)
    revoked_at = Column(DateTime(timezone=False), nullable=False, default=utcnow,
                        server_default=text("CURRENT_TIMESTAMP"))
