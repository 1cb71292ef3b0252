# ertha_exchange/routes/auth_routes.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ertha_exchange import schemas
from ertha_exchange.config import get_settings
from ertha_exchange.database import get_db
from ertha_exchange.services import auth_service, user_service
from ertha_exchange.utils.helpers import api_response, sanitize_user
from ertha_exchange.utils.rbac import get_current_user, get_token_payload

router = APIRouter(prefix="/auth", tags=["Auth"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a reset link has been sent"


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(data: schemas.RegisterRequest, db: Session = Depends(get_db)):
    user, token = auth_service.register(db, data)
    return api_response({"user": sanitize_user(user), "token": token}, "User registered successfully")


@router.post("/login")
def login(data: schemas.LoginRequest, db: Session = Depends(get_db)):
    user, token = auth_service.login(db, str(data.email), data.password)
    return api_response({"user": sanitize_user(user), "token": token}, "Login successful")


@router.post("/logout")
def logout(
    payload: dict = Depends(get_token_payload),
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.logout(db, user, payload)
    return api_response(None, "Logout successful")


@router.put("/password")
def change_password(
    data: schemas.ChangePasswordRequest,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, user, data.current_password, data.new_password)
    return api_response(None, "Password changed successfully")


@router.post("/forgot-password")
def forgot_password(data: schemas.ForgotPasswordRequest, db: Session = Depends(get_db)):
    token = auth_service.forgot_password(db, str(data.email))
    payload = None
    if token and not get_settings().is_production:
        payload = {"resetToken": token}
    return api_response(payload, FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password")
def reset_password(data: schemas.ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_service.reset_password(db, data.token, data.password)
    return api_response(None, "Password reset successfully")


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
