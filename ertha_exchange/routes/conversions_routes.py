# ertha_exchange/routes/conversions_routes.py
"""Coin-to-cash conversion requests; mounted at both /conversion and /conversions."""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ertha_exchange import schemas
from ertha_exchange.database import get_db
from ertha_exchange.services import conversion_service
from ertha_exchange.utils.helpers import (
    Pagination, api_response, pagination_params, get_client_ip, get_user_agent,
)
from ertha_exchange.utils.rbac import require_admin, require_org, require_org_or_admin

router = APIRouter(tags=["Conversions"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_conversion(
    data: schemas.ConversionCreate,
    org=Depends(require_org),
    db: Session = Depends(get_db),
):
    conversion = conversion_service.create_request(db, org, data)
    return api_response(conversion.to_dict(), "Conversion request submitted successfully")


@router.get("")
def list_conversions(
    pagination: Pagination = Depends(pagination_params),
    status: Optional[Literal["pending", "approved", "rejected"]] = None,
    user=Depends(require_org_or_admin),
    db: Session = Depends(get_db),
):
    rows, total = conversion_service.list_requests(db, user, pagination, status)
    return api_response(rows, "Conversion requests retrieved successfully", pagination=pagination.meta(total))


@router.get("/{request_id}")
def get_conversion(request_id: uuid.UUID, user=Depends(require_org_or_admin), db: Session = Depends(get_db)):
    conversion = conversion_service.get_request(db, user, str(request_id))
    return api_response(conversion.to_dict(), "Conversion request retrieved successfully")


@router.post("/{request_id}/approve")
def approve_conversion(
    request_id: uuid.UUID,
    request: Request,
    data: Optional[schemas.ConversionApprove] = None,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = conversion_service.approve_request(
        db, admin, str(request_id), data or schemas.ConversionApprove(),
        ip_address=get_client_ip(request), user_agent=get_user_agent(request),
    )
    return api_response(result, "Conversion request approved successfully")


@router.post("/{request_id}/reject")
def reject_conversion(
    request_id: uuid.UUID,
    data: schemas.ReasonRequest,
    request: Request,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    conversion = conversion_service.reject_request(
        db, admin, str(request_id), data.reason,
        ip_address=get_client_ip(request), user_agent=get_user_agent(request),
    )
    return api_response(conversion.to_dict(), "Conversion request rejected")
