# ertha_exchange/services/admin_service.py
"""Read-only platform aggregates plus the moderation actions (always audited)."""

import logging
import os
import time
from typing import Any, Dict, Optional

import psutil
from sqlalchemy import func
from sqlalchemy.orm import Session

from ertha_exchange.errors import BadRequestError, NotFoundError
from ertha_exchange.database import check_connection
from ertha_exchange.integrations.razorpay_client import RazorpayClient
from ertha_exchange.integrations.supabase_client import check_supabase
from ertha_exchange.models import (
    ConversionRequest, Service, Transaction, User,
    ROLE_VALUES, SERVICE_STATUS_VALUES,
)
from ertha_exchange.services import audit_service

logger = logging.getLogger(__name__)

PROCESS_STARTED_AT = time.time()


# --------------------------------------------------
# Dashboard
# --------------------------------------------------
def _sum_completed(db: Session, txn_type: str) -> float:
    total = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.type == txn_type, Transaction.status == "completed")
        .scalar()
    )
    return float(total or 0)


def dashboard_stats(db: Session) -> Dict[str, Any]:
    role_counts = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    status_counts = dict(db.query(User.status, func.count(User.id)).group_by(User.status).all())
    service_counts = dict(db.query(Service.status, func.count(Service.id)).group_by(Service.status).all())

    pending_conversions = (
        db.query(func.count(ConversionRequest.id), func.coalesce(func.sum(ConversionRequest.amount), 0))
        .filter(ConversionRequest.status == "pending")
        .one()
    )
    wallet_total = db.query(func.coalesce(func.sum(User.wallet_balance), 0)).scalar()

    return {
        "users": {
            "total": sum(role_counts.values()),
            "byRole": {role: role_counts.get(role, 0) for role in ROLE_VALUES},
            "active": status_counts.get("active", 0),
            "suspended": status_counts.get("suspended", 0),
        },
        "services": {
            "total": sum(service_counts.values()),
            **{status: service_counts.get(status, 0) for status in SERVICE_STATUS_VALUES},
        },
        "financial": {
            "coinPurchases": _sum_completed(db, "coin_purchase"),
            "bookings": _sum_completed(db, "service_booking"),
            "conversions": _sum_completed(db, "coin_conversion"),
            "refunds": _sum_completed(db, "refund"),
            "pendingConversions": {
                "count": pending_conversions[0],
                "amount": float(pending_conversions[1] or 0),
            },
            "totalWalletBalance": float(wallet_total or 0),
        },
    }


def recent_activity(db: Session, limit: int = 10) -> Dict[str, Any]:
    transactions = db.query(Transaction).order_by(Transaction.created_at.desc()).limit(limit).all()
    users = db.query(User).order_by(User.created_at.desc()).limit(limit).all()
    return {
        "transactions": [t.to_dict() for t in transactions],
        "registrations": [u.to_dict() for u in users],
        "auditLogs": audit_service.recent_audit_logs(db, limit),
    }


def system_health(db: Session, gateway: RazorpayClient) -> Dict[str, Any]:
    started = time.perf_counter()
    db_ok = check_connection(db)
    latency_ms = round((time.perf_counter() - started) * 1000, 2)

    process = psutil.Process(os.getpid())
    mem = psutil.virtual_memory()
    supabase = check_supabase()

    healthy = db_ok and supabase.get("status") != "unhealthy"
    return {
        "status": "healthy" if healthy else "degraded",
        "database": {"status": "healthy" if db_ok else "unhealthy", "latencyMs": latency_ms},
        "uptimeSeconds": round(time.time() - PROCESS_STARTED_AT, 1),
        "memory": {
            "processRssMb": round(process.memory_info().rss / (1024 * 1024), 2),
            "systemPercent": mem.percent,
        },
        "services": {
            "razorpay": {"status": "healthy", "mode": gateway.mode},
            "supabase": supabase,
        },
    }


# --------------------------------------------------
# Moderation
# --------------------------------------------------
def approve_service(db: Session, admin: User, service_id: str, reason: Optional[str] = None,
                    ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Service:
    service = db.get(Service, str(service_id))
    if not service:
        raise NotFoundError("Service not found")
    if service.status != "pending":
        raise BadRequestError(f"Service is {service.status}, only pending services can be approved")

    service.status = "active"
    audit_service.record(
        db,
        actor_id=admin.id,
        action="approve_service",
        resource="service",
        resource_id=service.id,
        old_values={"status": "pending"},
        new_values={"status": "active"},
        metadata={"reason": reason, "organizationId": service.organization_id},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    db.refresh(service)
    logger.info("Service %s approved by admin %s", service.id, admin.id)
    return service


def suspend_user(db: Session, admin: User, user_id: str, reason: str,
                 ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> User:
    user = db.get(User, str(user_id))
    if not user:
        raise NotFoundError("User not found")
    # Don't modify admins
    if user.role == "admin":
        raise BadRequestError("Administrators cannot be suspended")
    if user.status == "suspended":
        raise BadRequestError("User is already suspended")

    user.status = "suspended"
    audit_service.record(
        db,
        actor_id=admin.id,
        action="suspend_user",
        resource="user",
        resource_id=user.id,
        old_values={"status": "active"},
        new_values={"status": "suspended"},
        metadata={"reason": reason},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    db.refresh(user)
    logger.info("User %s suspended by admin %s", user.id, admin.id)
    return user


def reactivate_user(db: Session, admin: User, user_id: str,
                    ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> User:
    user = db.get(User, str(user_id))
    if not user:
        raise NotFoundError("User not found")
    if user.status != "suspended":
        raise BadRequestError("User is not suspended")

    user.status = "active"
    audit_service.record(
        db,
        actor_id=admin.id,
        action="reactivate_user",
        resource="user",
        resource_id=user.id,
        old_values={"status": "suspended"},
        new_values={"status": "active"},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    db.refresh(user)
    logger.info("User %s reactivated by admin %s", user.id, admin.id)
    return user
