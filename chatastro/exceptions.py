"""
Custom exceptions for ChatAstro.

Every exception carries a machine-readable code and the HTTP status the API
layer answers with. `to_dict()` is the JSON error body.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ChatAstroException(Exception):
    """Base exception for all ChatAstro errors."""

    def __init__(
        self,
        message: str,
        code: str = "CHATASTRO_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Validation


class ValidationError(ChatAstroException):
    """Bad input shape; raised before any state is touched."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", status_code=400, details=details)


class InvalidPlanError(ChatAstroException):
    def __init__(self, plan_type: str, valid_plans: Optional[list] = None):
        details = {"plan_type": plan_type}
        if valid_plans:
            details["valid_plans"] = list(valid_plans)
        super().__init__(
            f"Invalid plan type: {plan_type}",
            code="INVALID_PLAN",
            status_code=400,
            details=details,
        )


# Lookup


class ResourceNotFoundError(ChatAstroException):
    def __init__(self, resource: str, resource_id: Optional[str] = None, code: str = "NOT_FOUND"):
        message = f"{resource} not found"
        details = {}
        if resource_id:
            message = f"{resource} not found: {resource_id}"
            details["resource_id"] = resource_id
        super().__init__(message, code=code, status_code=404, details=details)


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: Optional[str] = None):
        super().__init__("User", user_id, code="USER_NOT_FOUND")


class SessionNotFoundError(ResourceNotFoundError):
    def __init__(self, session_id: Optional[str] = None):
        super().__init__("Session", session_id, code="SESSION_NOT_FOUND")


class OrderNotFoundError(ResourceNotFoundError):
    def __init__(self, order_id: Optional[str] = None):
        super().__init__("Order", order_id, code="ORDER_NOT_FOUND")


# Monetization


class QuotaExceededError(ChatAstroException):
    """Free question limit reached; the user must buy a plan to continue."""

    def __init__(
        self,
        free_questions_used: int,
        free_question_limit: int,
        is_premium: bool = False,
        remaining_free_questions: int = 0,
    ):
        self.free_questions_used = free_questions_used
        self.remaining_free_questions = remaining_free_questions
        self.free_question_limit = free_question_limit
        self.is_premium = is_premium
        super().__init__(
            "Free question limit reached. Please purchase a plan to continue.",
            code="QUOTA_EXCEEDED",
            status_code=402,
            details={
                "requires_payment": True,
                "free_questions_used": free_questions_used,
                "free_question_limit": free_question_limit,
                "remaining_free_questions": remaining_free_questions,
                "is_premium": is_premium,
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["requires_payment"] = True
        return body


class SignatureMismatchError(ChatAstroException):
    def __init__(self, message: str = "Invalid payment signature", order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else {}
        super().__init__(message, code="SIGNATURE_MISMATCH", status_code=400, details=details)


class OrderAlreadyPaidError(ChatAstroException):
    def __init__(self, order_id: str):
        super().__init__(
            f"Order already paid: {order_id}",
            code="ORDER_ALREADY_PAID",
            status_code=409,
            details={"order_id": order_id},
        )


# Upstream collaborators


class ExternalServiceError(ChatAstroException):
    """Any external collaborator failure (geocoding, astrology data, LLM, gateway)."""

    def __init__(
        self,
        service: str,
        message: str,
        original_error: Optional[str] = None,
        code: str = "UPSTREAM_UNAVAILABLE",
        status_code: int = 502,
    ):
        self.service = service
        details = {"service": service}
        if original_error:
            details["original_error"] = original_error
        super().__init__(f"{service}: {message}", code=code, status_code=status_code, details=details)


class LocationNotFoundError(ExternalServiceError):
    def __init__(self, place: str, original_error: Optional[str] = None):
        self.place = place
        super().__init__(
            "Geocoding",
            f"Failed to get location coordinates for '{place}'",
            original_error=original_error,
            code="LOCATION_NOT_FOUND",
            status_code=404,
        )


class GenerationUnavailableError(ExternalServiceError):
    def __init__(self, message: str = "Generation provider unavailable", original_error: Optional[str] = None):
        super().__init__("LLM", message, original_error=original_error, code="GENERATION_UNAVAILABLE")


class GenerationFailedError(ExternalServiceError):
    """The exchange could not be completed because generation failed."""

    def __init__(self, original_error: Optional[str] = None, quota_charged: bool = False):
        self.quota_charged = quota_charged
        super().__init__(
            "LLM",
            "Could not generate a response. Please try again.",
            original_error=original_error,
            code="GENERATION_FAILED",
        )
        self.details["quota_charged"] = quota_charged
