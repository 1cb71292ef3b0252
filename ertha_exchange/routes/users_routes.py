# ertha_exchange/routes/users_routes.py
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ertha_exchange import schemas
from ertha_exchange.database import get_db
from ertha_exchange.services import transaction_service, user_service
from ertha_exchange.utils.helpers import Pagination, api_response, pagination_params, sanitize_user
from ertha_exchange.utils.rbac import check_ownership, get_current_user

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/profile")
def get_profile(user=Depends(get_current_user)):
    return api_response(sanitize_user(user), "Profile retrieved successfully")


@router.put("/profile")
def update_profile(
    data: schemas.ProfileUpdate,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = user_service.update_profile(db, user, data)
    return api_response(sanitize_user(user), "Profile updated successfully")


@router.get("/wallet")
@router.get("/wallet/balance")
def wallet_balance(user=Depends(get_current_user), db: Session = Depends(get_db)):
    return api_response(user_service.get_wallet(db, user), "Wallet balance retrieved successfully")


@router.get("/transactions")
def my_transactions(
    pagination: Pagination = Depends(pagination_params),
    type: Optional[Literal["coin_purchase", "service_booking", "coin_conversion", "refund"]] = None,
    status: Optional[Literal["pending", "completed", "failed", "cancelled"]] = None,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = transaction_service.list_transactions(
        db, pagination, user_id=user.id, type=type, status=status
    )
    return api_response(rows, "Transactions retrieved successfully", pagination=pagination.meta(total))


@router.get("/{user_id}")
def get_user(user_id: uuid.UUID, user=Depends(get_current_user), db: Session = Depends(get_db)):
    check_ownership(user, str(user_id))
    target = user_service.get_user(db, str(user_id))
    return api_response(sanitize_user(target), "User retrieved successfully")
