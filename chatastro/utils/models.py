from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    return int(time.time() * 1000)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class OrderStatus(str, Enum):
    created = "created"
    paid = "paid"
    failed = "failed"


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class Coordinates(BaseModel):
    latitude: float
    longitude: float
    timezone: str = "Asia/Kolkata"
    city: Optional[str] = None
    country: Optional[str] = None


class BirthData(BaseModel):
    full_name: str
    gender: Gender
    birth_date: str
    birth_time: str
    birth_place: str
    day: int
    month: int
    year: int
    hour: int
    minute: int
    latitude: float
    longitude: float
    timezone: str
    timezone_offset: float
    city: Optional[str] = None
    country: Optional[str] = None


class UserProfile(BaseModel):
    id: str
    full_name: str
    gender: Gender
    birth_data: BirthData
    created_at: datetime = Field(default_factory=utcnow)
    last_active: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @property
    def location(self) -> str:
        return f"{self.birth_data.city}, {self.birth_data.country}"


class ProfileCreate(BaseModel):
    full_name: str = Field(default="", alias="fullName")
    gender: str = ""
    birth_date: str = Field(default="", alias="birthDate")
    birth_time: str = Field(default="", alias="birthTime")
    birth_place: str = Field(default="", alias="birthPlace")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Classification(BaseModel):
    intent: str
    confidence: float
    required_data: List[str]
    is_general_overview: bool = False
    is_complex: bool = False


class Exchange(BaseModel):
    user_text: str
    bot_text: str
    timestamp: int = Field(default_factory=now_ms)
    intent: str
    confidence: float
    is_general_overview: bool = False


class Session(BaseModel):
    id: str
    messages: List[Exchange] = Field(default_factory=list)
    context: str = ""
    query_count: int = 0
    start_time: int = Field(default_factory=now_ms)
    last_activity: Optional[int] = None


class UsageState(BaseModel):
    user_id: str
    free_questions_used: int = 0
    is_premium: bool = False
    total_questions: int = 0
    has_received_overview: bool = False
    plan_type: Optional[str] = None
    remaining_questions: Optional[int] = None
    purchase_date: Optional[datetime] = None
    payment_id: Optional[str] = None
    applied_payment_ids: List[str] = Field(default_factory=list, exclude=True)

class CacheEntry(BaseModel):
    key: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)
    degraded: bool = False


class ChatReply(BaseModel):
    response: str
    session_id: str
    classification: Classification
    usage: UsageState
    timestamp: datetime = Field(default_factory=utcnow)


class ChatMessageRequest(BaseModel):
    user_id: str = Field(default="", alias="userId")
    session_id: str = Field(default="", alias="sessionId")
    message: str = ""

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class Plan(BaseModel):
    id: str
    name: str
    questions: int
    price: int


class Order(BaseModel):
    id: str
    user_id: str
    plan_type: str
    plan: Plan
    amount: int
    currency: str = "INR"
    receipt: Optional[str] = None
    user_details: Dict[str, Any] = Field(default_factory=dict)
    status: OrderStatus = OrderStatus.created
    payment_id: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    failed_at: Optional[datetime] = None


class Payment(BaseModel):
    id: str
    order_id: str
    user_id: str
    plan_type: str
    plan: Plan
    amount: int
    currency: str = "INR"
    status: str = "captured"
    created_at: datetime = Field(default_factory=utcnow)
    verified_at: datetime = Field(default_factory=utcnow)


class VerificationResult(BaseModel):
    payment: Payment
    order: Order
    newly_paid: bool = True


class CreateOrderRequest(BaseModel):
    user_id: str = Field(default="", alias="userId")
    plan_type: str = Field(default="", alias="planType")
    user_details: Dict[str, Any] = Field(default_factory=dict, alias="userDetails")

    model_config = {"populate_by_name": True}


class PaymentData(BaseModel):
    razorpay_order_id: str = ""
    razorpay_payment_id: str = ""
    razorpay_signature: str = ""


class VerifyPaymentRequest(BaseModel):
    user_id: str = Field(default="", alias="userId")
    payment_data: Optional[PaymentData] = Field(default=None, alias="paymentData")

    model_config = {"populate_by_name": True}


class PaymentFailureRequest(BaseModel):
    order_id: str = Field(default="", alias="orderId")
    error_data: Dict[str, Any] = Field(default_factory=dict, alias="errorData")

    model_config = {"populate_by_name": True}
