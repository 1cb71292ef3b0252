# ertha_exchange/schemas.py

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase (frontend) and snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


Money = Decimal


# ==========================================================
# AUTH
# ==========================================================
class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=2, max_length=100)
    role: Literal["user", "org"] = "user"

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "asha@example.com",
                "password": "s3cret-pass",
                "name": "Asha",
                "role": "user",
            }
        }
    )


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=10)
    password: str = Field(..., min_length=8, max_length=128)


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None


# ==========================================================
# SERVICES
# ==========================================================
class ServiceCreate(CamelModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=20, max_length=2000)
    price: Money = Field(..., ge=1, le=1_000_000, decimal_places=2)
    category: str = Field(..., min_length=2, max_length=100)
    features: List[str] = Field(default_factory=list, max_length=20)

    @field_validator("features")
    @classmethod
    def strip_features(cls, value: List[str]) -> List[str]:
        return [f.strip() for f in value if f and f.strip()]


class ServiceUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, min_length=20, max_length=2000)
    price: Optional[Money] = Field(None, ge=1, le=1_000_000, decimal_places=2)
    category: Optional[str] = Field(None, min_length=2, max_length=100)
    features: Optional[List[str]] = Field(None, max_length=20)
    status: Optional[Literal["pending", "active", "inactive"]] = None


class ReviewCreate(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


# ==========================================================
# PAYMENTS
# ==========================================================
class CreateOrderRequest(CamelModel):
    amount: Money = Field(..., ge=10, le=1_000_000, decimal_places=2)
    purpose: Literal["coin_purchase", "service_booking"] = "coin_purchase"
    service_id: Optional[uuid.UUID] = None


class VerifyPaymentRequest(CamelModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class RefundRequest(CamelModel):
    payment_id: str = Field(..., min_length=1)
    amount: Optional[Money] = Field(None, gt=0, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=500)


class PaymentMethodCreate(CamelModel):
    type: Literal["card", "upi", "netbanking", "wallet"]
    provider: Optional[str] = Field(None, max_length=100)
    is_default: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class PaymentMethodUpdate(CamelModel):
    provider: Optional[str] = Field(None, max_length=100)
    is_default: Optional[bool] = None
    details: Optional[Dict[str, Any]] = None


# ==========================================================
# CONVERSIONS
# ==========================================================
class BankDetails(CamelModel):
    account_number: str = Field(..., pattern=r"^\d{9,18}$")
    ifsc_code: str = Field(..., pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    account_holder_name: str = Field(..., min_length=2, max_length=100)
    bank_name: str = Field(..., min_length=2, max_length=100)


class ConversionCreate(CamelModel):
    amount: Money = Field(..., ge=50, le=100_000, decimal_places=2)
    bank_details: BankDetails
    reason: Optional[str] = Field(None, max_length=500)


class ConversionApprove(CamelModel):
    transaction_id: Optional[str] = Field(None, max_length=255)


# ==========================================================
# ADMIN
# ==========================================================
class ReasonRequest(CamelModel):
    reason: str = Field(..., min_length=10, max_length=500)


class ApproveServiceRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)
