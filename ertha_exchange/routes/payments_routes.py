# ertha_exchange/routes/payments_routes.py
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ertha_exchange import schemas
from ertha_exchange.database import get_db
from ertha_exchange.integrations.razorpay_client import RazorpayClient, get_razorpay_client
from ertha_exchange.services import payment_service
from ertha_exchange.utils.helpers import (
    Pagination, api_response, pagination_params, get_client_ip, get_user_agent,
)
from ertha_exchange.utils.rbac import get_current_user, require_admin, require_user

router = APIRouter(prefix="/payments", tags=["Payments"])

PaymentStatus = Literal["created", "pending", "completed", "failed", "refunded"]


@router.post("/create-order", status_code=status.HTTP_201_CREATED)
@router.post("/orders", status_code=status.HTTP_201_CREATED, include_in_schema=False)
def create_order(
    data: schemas.CreateOrderRequest,
    user=Depends(require_user),
    gateway: RazorpayClient = Depends(get_razorpay_client),
    db: Session = Depends(get_db),
):
    order = payment_service.create_order(db, gateway, user, data)
    return api_response(order, "Payment order created successfully")


@router.post("/verify")
def verify_payment(
    data: schemas.VerifyPaymentRequest,
    user=Depends(get_current_user),
    gateway: RazorpayClient = Depends(get_razorpay_client),
    db: Session = Depends(get_db),
):
    result = payment_service.verify_payment(db, gateway, user, data)
    message = "Payment already verified" if result["alreadyProcessed"] else "Payment verified successfully"
    return api_response(result, message)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    gateway: RazorpayClient = Depends(get_razorpay_client),
    db: Session = Depends(get_db),
):
    # the signature covers the raw bytes, so the body is never re-serialised
    body = await request.body()
    result = await run_in_threadpool(
        payment_service.handle_webhook, db, gateway, body, x_razorpay_signature
    )
    return api_response(result, "Webhook processed")


@router.post("/refund")
def refund_payment(
    data: schemas.RefundRequest,
    request: Request,
    admin=Depends(require_admin),
    gateway: RazorpayClient = Depends(get_razorpay_client),
    db: Session = Depends(get_db),
):
    result = payment_service.refund_payment(
        db, gateway, admin, data,
        ip_address=get_client_ip(request), user_agent=get_user_agent(request),
    )
    return api_response(result, "Refund processed successfully")


@router.get("/history")
def payment_history(
    pagination: Pagination = Depends(pagination_params),
    status: Optional[PaymentStatus] = None,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = payment_service.payment_history(db, user, pagination, status)
    return api_response(rows, "Payment history retrieved successfully", pagination=pagination.meta(total))


@router.get("/stats")
def payment_stats(user=Depends(get_current_user), db: Session = Depends(get_db)):
    return api_response(payment_service.payment_stats(db, user), "Payment statistics retrieved successfully")


# --------------------------------------------------
# Saved payment methods
# --------------------------------------------------
@router.get("/methods")
def list_payment_methods(user=Depends(get_current_user), db: Session = Depends(get_db)):
    return api_response(payment_service.list_payment_methods(db, user), "Payment methods retrieved successfully")


@router.post("/methods", status_code=status.HTTP_201_CREATED)
def add_payment_method(
    data: schemas.PaymentMethodCreate,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    method = payment_service.add_payment_method(db, user, data)
    return api_response(method.to_dict(), "Payment method added successfully")


@router.put("/methods/{method_id}")
def update_payment_method(
    method_id: uuid.UUID,
    data: schemas.PaymentMethodUpdate,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    method = payment_service.update_payment_method(db, user, str(method_id), data)
    return api_response(method.to_dict(), "Payment method updated successfully")


@router.delete("/methods/{method_id}")
def delete_payment_method(method_id: uuid.UUID, user=Depends(get_current_user), db: Session = Depends(get_db)):
    payment_service.delete_payment_method(db, user, str(method_id))
    return api_response(None, "Payment method removed successfully")
