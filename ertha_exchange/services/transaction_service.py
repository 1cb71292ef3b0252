# ertha_exchange/services/transaction_service.py
import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ertha_exchange.errors import ConflictError, NotFoundError
from ertha_exchange.models import Transaction, TRANSACTION_TYPE_VALUES, TRANSACTION_STATUS_VALUES
from ertha_exchange.utils.helpers import Pagination

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed", "cancelled")


def create_transaction(
    db: Session,
    *,
    user_id: str,
    type: str,
    amount: Decimal,
    status: str = "pending",
    description: Optional[str] = None,
    service_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    payment_id: Optional[str] = None,
) -> Transaction:
    """Add a ledger row to the session; the caller commits."""
    txn = Transaction(
        user_id=user_id,
        service_id=service_id,
        type=type,
        amount=amount,
        status=status,
        description=description,
        meta=metadata or {},
        payment_id=payment_id,
    )
    db.add(txn)
    db.flush()
    return txn


def update_transaction_status(db: Session, txn: Transaction, new_status: str,
                              metadata: Optional[Dict[str, Any]] = None) -> bool:
    """
    Move a transaction forward: pending -> completed | failed | cancelled.
    Returns False when it already has `new_status`; a terminal row never changes.
    """
    if txn.status == new_status:
        return False
    if txn.status in TERMINAL_STATUSES:
        raise ConflictError(f"Transaction already {txn.status}")
    if new_status not in TERMINAL_STATUSES:
        raise ConflictError(f"Cannot move transaction to {new_status}")

    txn.status = new_status
    if metadata:
        txn.meta = {**(txn.meta or {}), **metadata}
    logger.info("Transaction %s -> %s", txn.id, new_status)
    return True


# --------------------------------------------------
# Reads
# --------------------------------------------------
def _filtered(db: Session, user_id=None, type=None, status=None, service_id=None,
              start_date=None, end_date=None):
    q = db.query(Transaction)
    if user_id:
        q = q.filter(Transaction.user_id == str(user_id))
    if type:
        q = q.filter(Transaction.type == type)
    if status:
        q = q.filter(Transaction.status == status)
    if service_id:
        q = q.filter(Transaction.service_id == str(service_id))
    if start_date:
        q = q.filter(Transaction.created_at >= start_date)
    if end_date:
        q = q.filter(Transaction.created_at <= end_date)
    return q


def list_transactions(db: Session, pagination: Pagination, **filters):
    q = _filtered(db, **filters)
    total = q.count()
    rows = (
        q.order_by(Transaction.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    return [row.to_dict() for row in rows], total


def get_transaction(db: Session, transaction_id: str) -> Transaction:
    txn = db.get(Transaction, str(transaction_id))
    if not txn:
        raise NotFoundError("Transaction not found")
    return txn


def transaction_stats(db: Session, user_id: Optional[str] = None) -> Dict[str, Any]:
    q = db.query(
        Transaction.type,
        Transaction.status,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.amount), 0),
    )
    if user_id:
        q = q.filter(Transaction.user_id == str(user_id))
    rows = q.group_by(Transaction.type, Transaction.status).all()

    by_type = {t: {"count": 0, "amount": 0.0} for t in TRANSACTION_TYPE_VALUES}
    by_status = {s: {"count": 0, "amount": 0.0} for s in TRANSACTION_STATUS_VALUES}
    total_count = 0
    for type_, status, count, amount in rows:
        amount = float(amount or 0)
        by_type[type_]["count"] += count
        by_type[type_]["amount"] += amount
        by_status[status]["count"] += count
        by_status[status]["amount"] += amount
        total_count += count

    completed = by_status["completed"]
    return {
        "totalTransactions": total_count,
        "completedAmount": round(completed["amount"], 2),
        "byType": by_type,
        "byStatus": by_status,
    }


def transaction_history(db: Session, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
    """Newest-first transactions grouped by calendar day."""
    rows = (
        db.query(Transaction)
        .filter(Transaction.user_id == str(user_id))
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .all()
    )
    days: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for row in rows:
        day = (row.created_at or datetime.min).date().isoformat()
        days.setdefault(day, []).append(row.to_dict())
    return [{"date": day, "transactions": items} for day, items in days.items()]
