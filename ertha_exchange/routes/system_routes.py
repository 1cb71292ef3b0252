# ertha_exchange/routes/system_routes.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ertha_exchange.config import APP_NAME, APP_VERSION, get_settings
from ertha_exchange.database import get_db, check_connection
from ertha_exchange.integrations.razorpay_client import RazorpayClient, get_razorpay_client
from ertha_exchange.integrations.supabase_client import check_supabase
from ertha_exchange.utils.helpers import api_response

router = APIRouter(tags=["System"])

ROUTE_GROUPS = ("auth", "users", "services", "transactions", "payments", "conversion", "admin")


@router.get("/")
def home():
    settings = get_settings()
    return api_response(
        {"name": APP_NAME, "version": APP_VERSION, "environment": settings.app_env},
        "ErthaExchange API is running",
    )


@router.get("/health")
def health(
    gateway: RazorpayClient = Depends(get_razorpay_client),
    db: Session = Depends(get_db),
):
    db_ok = check_connection(db)
    data = {
        "status": "healthy" if db_ok else "unhealthy",
        "version": APP_VERSION,
        "dependencies": {
            "database": "healthy" if db_ok else "unhealthy",
            "razorpay": gateway.mode,
            "supabase": check_supabase()["status"],
        },
    }
    if not db_ok:
        return JSONResponse(status_code=503, content=api_response(data, "Service unavailable", success=False))
    return api_response(data, "Service is healthy")


@router.get("/api")
def api_index():
    prefix = get_settings().api_prefix
    return api_response(
        {"version": APP_VERSION, "endpoints": {group: f"{prefix}/{group}" for group in ROUTE_GROUPS}},
        "ErthaExchange API",
    )
