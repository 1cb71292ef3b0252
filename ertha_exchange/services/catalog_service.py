# ertha_exchange/services/catalog_service.py
"""Service listings: creation, discovery, moderation-aware visibility, reviews and booking."""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ertha_exchange.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ertha_exchange.models import Service, ServiceReview, User
from ertha_exchange.schemas import ServiceCreate, ServiceUpdate, ReviewCreate
from ertha_exchange.services import transaction_service, user_service
from ertha_exchange.utils.helpers import Pagination
from ertha_exchange.utils.rbac import INSUFFICIENT_PERMISSIONS

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "createdAt": Service.created_at,
    "price": Service.price,
    "rating": Service.rating,
    "bookings": Service.bookings,
}


def _can_view(service: Service, viewer: Optional[User]) -> bool:
    if service.status == "active":
        return True
    if viewer is None:
        return False
    return viewer.role == "admin" or service.organization_id == viewer.id


def _can_manage(service: Service, user: User) -> bool:
    return user.role == "admin" or service.organization_id == user.id


def _load(db: Session, service_id: str) -> Service:
    service = (
        db.query(Service)
        .options(joinedload(Service.organization))
        .filter(Service.id == str(service_id))
        .first()
    )
    if not service:
        raise NotFoundError("Service not found")
    return service


# --------------------------------------------------
# CRUD
# --------------------------------------------------
def create_service(db: Session, org: User, data: ServiceCreate) -> Service:
    service = Service(
        title=data.title,
        description=data.description,
        price=data.price,
        category=data.category,
        features=data.features,
        organization_id=org.id,
        status="pending",
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info("Service %s created by org %s (pending approval)", service.id, org.id)
    return service


def list_services(
    db: Session,
    pagination: Pagination,
    viewer: Optional[User] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    status: Optional[str] = None,
    organization_id: Optional[str] = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
):
    q = db.query(Service).options(joinedload(Service.organization))

    # admins see every status, orgs every status of their own listings, everyone else active only
    sees_all = viewer is not None and (
        viewer.role == "admin"
        or (viewer.role == "org" and organization_id and str(organization_id) == viewer.id)
    )
    if sees_all:
        if status:
            q = q.filter(Service.status == status)
    else:
        q = q.filter(Service.status == "active")

    if organization_id:
        q = q.filter(Service.organization_id == str(organization_id))
    if category:
        q = q.filter(Service.category == category)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Service.title.ilike(pattern), Service.description.ilike(pattern)))
    if min_price is not None:
        q = q.filter(Service.price >= min_price)
    if max_price is not None:
        q = q.filter(Service.price <= max_price)

    total = q.count()
    column = SORT_FIELDS.get(sort_by, Service.created_at)
    order = column.asc() if sort_order == "asc" else column.desc()
    rows = q.order_by(order, Service.id).offset(pagination.offset).limit(pagination.limit).all()
    return [row.to_dict() for row in rows], total


def list_categories(db: Session) -> List[str]:
    rows = (
        db.query(Service.category)
        .filter(Service.status == "active")
        .distinct()
        .order_by(Service.category)
        .all()
    )
    return [r[0] for r in rows]


def get_service(db: Session, service_id: str, viewer: Optional[User] = None) -> Service:
    service = _load(db, service_id)
    if not _can_view(service, viewer):
        raise NotFoundError("Service not found")
    return service


def update_service(db: Session, service_id: str, user: User, data: ServiceUpdate) -> Service:
    service = _load(db, service_id)
    if not _can_manage(service, user):
        raise ForbiddenError(INSUFFICIENT_PERMISSIONS)

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise BadRequestError("No service fields to update")
    if "status" in changes and user.role != "admin":
        raise ForbiddenError("Only administrators can change service status")

    for field, value in changes.items():
        setattr(service, field, value)
    db.commit()
    db.refresh(service)
    logger.info("Service %s updated by %s", service.id, user.id)
    return service


def deactivate_service(db: Session, service_id: str, user: User) -> Service:
    """Soft delete: listings are never removed, only set inactive."""
    service = _load(db, service_id)
    if not _can_manage(service, user):
        raise ForbiddenError(INSUFFICIENT_PERMISSIONS)
    service.status = "inactive"
    db.commit()
    logger.info("Service %s deactivated by %s", service.id, user.id)
    return service


# --------------------------------------------------
# Reviews
# --------------------------------------------------
def add_review(db: Session, service_id: str, user: User, data: ReviewCreate) -> ServiceReview:
    service = get_service(db, service_id, user)
    if service.status != "active":
        raise BadRequestError("Only active services can be reviewed")

    existing = (
        db.query(ServiceReview)
        .filter(ServiceReview.service_id == service.id, ServiceReview.user_id == user.id)
        .first()
    )
    if existing:
        raise ConflictError("You have already reviewed this service")

    review = ServiceReview(service_id=service.id, user_id=user.id,
                           rating=data.rating, review=data.review)
    db.add(review)
    db.flush()
    _recalculate_rating(db, service)
    db.commit()
    db.refresh(review)
    return review


def _recalculate_rating(db: Session, service: Service) -> None:
    avg, count = (
        db.query(func.avg(ServiceReview.rating), func.count(ServiceReview.id))
        .filter(ServiceReview.service_id == service.id, ServiceReview.is_visible.is_(True))
        .one()
    )
    service.rating = Decimal(str(avg or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    service.review_count = count or 0


def list_reviews(db: Session, service_id: str, pagination: Pagination,
                 viewer: Optional[User] = None):
    service = get_service(db, service_id, viewer)
    q = db.query(ServiceReview).filter(
        ServiceReview.service_id == service.id, ServiceReview.is_visible.is_(True)
    )
    total = q.count()
    rows = (
        q.order_by(ServiceReview.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    return [r.to_dict() for r in rows], total


# --------------------------------------------------
# Booking
# --------------------------------------------------
def book_service(db: Session, service_id: str, user: User) -> Dict[str, Any]:
    """
    Pay for a service from the wallet. Debit, org credit, counter increment and the
    ledger row are one DB transaction: on any failure nothing is applied.
    """
    service = _load(db, service_id)
    if service.status != "active":
        raise BadRequestError("Service is not available for booking")
    if service.organization_id == user.id:
        raise BadRequestError("You cannot book your own service")

    price = Decimal(service.price)
    try:
        before, after = user_service.debit_wallet(db, user.id, price)
        user_service.credit_wallet(db, service.organization_id, price)
        db.query(Service).filter(Service.id == service.id).update(
            {Service.bookings: Service.bookings + 1}, synchronize_session=False
        )
        txn = transaction_service.create_transaction(
            db,
            user_id=user.id,
            type="service_booking",
            amount=price,
            status="completed",
            service_id=service.id,
            description=f"Booking: {service.title}",
            metadata={
                "organizationId": service.organization_id,
                "balanceBefore": float(before),
                "balanceAfter": float(after),
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(service)
    logger.info("User %s booked service %s for %s", user.id, service.id, price)
    return {
        "transaction": txn.to_dict(),
        "service": service.to_dict(include_organization=False),
        "walletBalance": float(after),
    }
