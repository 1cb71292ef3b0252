# ertha_exchange/routes/admin_routes.py
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ertha_exchange import schemas
from ertha_exchange.database import get_db
from ertha_exchange.integrations.razorpay_client import RazorpayClient, get_razorpay_client
from ertha_exchange.services import admin_service, audit_service
from ertha_exchange.utils.helpers import (
    Pagination, api_response, pagination_params, get_client_ip, get_user_agent, sanitize_user,
)
from ertha_exchange.utils.rbac import require_admin

# every route here is admin-only
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    return api_response(admin_service.dashboard_stats(db), "Dashboard statistics retrieved successfully")


@router.get("/activity")
def activity(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return api_response(admin_service.recent_activity(db, limit), "Recent activity retrieved successfully")


@router.get("/health")
def system_health(
    gateway: RazorpayClient = Depends(get_razorpay_client),
    db: Session = Depends(get_db),
):
    return api_response(admin_service.system_health(db, gateway), "System health retrieved successfully")


@router.post("/services/{service_id}/approve")
def approve_service(
    service_id: uuid.UUID,
    request: Request,
    data: Optional[schemas.ApproveServiceRequest] = None,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = admin_service.approve_service(
        db, admin, str(service_id), reason=data.reason if data else None,
        ip_address=get_client_ip(request), user_agent=get_user_agent(request),
    )
    return api_response(service.to_dict(), "Service approved successfully")


@router.post("/users/{user_id}/suspend")
def suspend_user(
    user_id: uuid.UUID,
    data: schemas.ReasonRequest,
    request: Request,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = admin_service.suspend_user(
        db, admin, str(user_id), data.reason,
        ip_address=get_client_ip(request), user_agent=get_user_agent(request),
    )
    return api_response(sanitize_user(user), "User suspended successfully")


@router.post("/users/{user_id}/reactivate")
def reactivate_user(
    user_id: uuid.UUID,
    request: Request,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = admin_service.reactivate_user(
        db, admin, str(user_id),
        ip_address=get_client_ip(request), user_agent=get_user_agent(request),
    )
    return api_response(sanitize_user(user), "User reactivated successfully")


@router.get("/audit-logs")
def audit_logs(
    pagination: Pagination = Depends(pagination_params),
    action: Optional[str] = None,
    resource: Optional[str] = None,
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    rows, total = audit_service.list_audit_logs(
        db,
        pagination,
        action=action,
        user_id=str(user_id) if user_id else None,
        resource=resource,
        start_date=start_date,
        end_date=end_date,
    )
    return api_response(rows, "Audit logs retrieved successfully", pagination=pagination.meta(total))
