# ertha_exchange/routes/transactions_routes.py
import uuid
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ertha_exchange.database import get_db
from ertha_exchange.services import transaction_service
from ertha_exchange.utils.helpers import Pagination, api_response, pagination_params
from ertha_exchange.utils.rbac import check_ownership, get_current_user

router = APIRouter(prefix="/transactions", tags=["Transactions"])

TransactionType = Literal["coin_purchase", "service_booking", "coin_conversion", "refund"]
TransactionStatus = Literal["pending", "completed", "failed", "cancelled"]


def _scope(user, user_id: Optional[uuid.UUID]) -> Optional[str]:
    """Admins may look at anyone (or everyone); others only ever see themselves."""
    if user.role == "admin":
        return str(user_id) if user_id else None
    return user.id


@router.get("")
def list_transactions(
    pagination: Pagination = Depends(pagination_params),
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    service_id: Optional[uuid.UUID] = Query(None, alias="serviceId"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = transaction_service.list_transactions(
        db,
        pagination,
        user_id=_scope(user, user_id),
        type=type,
        status=status,
        service_id=service_id,
        start_date=start_date,
        end_date=end_date,
    )
    return api_response(rows, "Transactions retrieved successfully", pagination=pagination.meta(total))


@router.get("/stats")
def transaction_stats(
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    stats = transaction_service.transaction_stats(db, _scope(user, user_id))
    return api_response(stats, "Transaction statistics retrieved successfully")


@router.get("/history")
def transaction_history(
    limit: int = Query(20, ge=1, le=100),
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    history = transaction_service.transaction_history(db, user.id, limit)
    return api_response(history, "Transaction history retrieved successfully")


@router.get("/{transaction_id}")
def get_transaction(transaction_id: uuid.UUID, user=Depends(get_current_user), db: Session = Depends(get_db)):
    txn = transaction_service.get_transaction(db, str(transaction_id))
    check_ownership(user, txn.user_id)
    return api_response(txn.to_dict(), "Transaction retrieved successfully")
