# ertha_exchange/routes/services_routes.py
import uuid
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ertha_exchange import schemas
from ertha_exchange.database import get_db
from ertha_exchange.services import catalog_service
from ertha_exchange.utils.helpers import Pagination, api_response, pagination_params
from ertha_exchange.utils.rbac import (
    get_optional_user, require_org, require_org_or_admin, require_user,
)

router = APIRouter(prefix="/services", tags=["Services"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_service(
    data: schemas.ServiceCreate,
    org=Depends(require_org),
    db: Session = Depends(get_db),
):
    service = catalog_service.create_service(db, org, data)
    return api_response(service.to_dict(), "Service created successfully and is pending approval")


@router.get("")
def list_services(
    pagination: Pagination = Depends(pagination_params),
    category: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    status: Optional[Literal["pending", "active", "inactive"]] = None,
    organization_id: Optional[uuid.UUID] = Query(None, alias="organizationId"),
    sort_by: Literal["createdAt", "price", "rating", "bookings"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    viewer=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    rows, total = catalog_service.list_services(
        db,
        pagination,
        viewer=viewer,
        category=category,
        search=search,
        min_price=min_price,
        max_price=max_price,
        status=status,
        organization_id=str(organization_id) if organization_id else None,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return api_response(rows, "Services retrieved successfully", pagination=pagination.meta(total))


@router.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    return api_response(catalog_service.list_categories(db), "Categories retrieved successfully")


@router.get("/{service_id}")
def get_service(service_id: uuid.UUID, viewer=Depends(get_optional_user), db: Session = Depends(get_db)):
    service = catalog_service.get_service(db, str(service_id), viewer)
    return api_response(service.to_dict(), "Service retrieved successfully")


@router.put("/{service_id}")
def update_service(
    service_id: uuid.UUID,
    data: schemas.ServiceUpdate,
    user=Depends(require_org_or_admin),
    db: Session = Depends(get_db),
):
    service = catalog_service.update_service(db, str(service_id), user, data)
    return api_response(service.to_dict(), "Service updated successfully")


@router.delete("/{service_id}")
def delete_service(
    service_id: uuid.UUID,
    user=Depends(require_org_or_admin),
    db: Session = Depends(get_db),
):
    service = catalog_service.deactivate_service(db, str(service_id), user)
    return api_response({"id": service.id, "status": service.status}, "Service deleted successfully")


# --------------------------------------------------
# Reviews + booking
# --------------------------------------------------
@router.get("/{service_id}/reviews")
def list_reviews(
    service_id: uuid.UUID,
    pagination: Pagination = Depends(pagination_params),
    viewer=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    rows, total = catalog_service.list_reviews(db, str(service_id), pagination, viewer)
    return api_response(rows, "Reviews retrieved successfully", pagination=pagination.meta(total))


@router.post("/{service_id}/reviews", status_code=status.HTTP_201_CREATED)
def add_review(
    service_id: uuid.UUID,
    data: schemas.ReviewCreate,
    user=Depends(require_user),
    db: Session = Depends(get_db),
):
    review = catalog_service.add_review(db, str(service_id), user, data)
    return api_response(review.to_dict(), "Review added successfully")


@router.post("/{service_id}/book")
def book_service(
    service_id: uuid.UUID,
    user=Depends(require_user),
    db: Session = Depends(get_db),
):
    result = catalog_service.book_service(db, str(service_id), user)
    return api_response(result, "Service booked successfully")
