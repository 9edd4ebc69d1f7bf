"""
Business exceptions for bargaining operations.

WHAT: The error taxonomy shared by the HTTP and realtime paths
WHY: Clients must tell "out of turns" from "offer too low" from "session closed"
HOW: Exception classes carrying a stable code; handlers map codes to transports
"""

from typing import Optional, List, Dict, Any


class BusinessException(Exception):
    """Base class for business logic exceptions."""

    code = "BUSINESS_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        return {"reason": self.code, "message": self.message, "details": self.details}


class NotFoundException(BusinessException):
    """Raised when a session or product does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource.capitalize()} not found: {resource_id}",
            details={"resource": resource, "id": resource_id}
        )


class SessionNotFoundException(NotFoundException):
    def __init__(self, session_id: str):
        super().__init__("bargaining session", session_id)


class ProductNotFoundException(NotFoundException):
    def __init__(self, product_id: str):
        super().__init__("product", product_id)


class ForbiddenException(BusinessException):
    """Raised when the principal is not a participant or has the wrong role."""

    code = "FORBIDDEN"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message=message, details=details)


class InvalidStateException(BusinessException):
    """Raised when mutating a session that is no longer active."""

    code = "INVALID_STATE"

    def __init__(
        self,
        session_id: str,
        current_status: str,
        message: Optional[str] = None,
        expiry: Optional[Any] = None
    ):
        super().__init__(
            message=message or f"Bargaining session {session_id} is {current_status}",
            details={"session_id": session_id, "current_status": current_status}
        )
        # Set when the rejected call is the one that moved the session to expired
        self.expiry = expiry


class TurnLimitExceededException(BusinessException):
    """Raised when a participant has used all allotted messages."""

    code = "TURN_LIMIT_EXCEEDED"

    def __init__(self, session_id: str, role: str, max_turns: int):
        super().__init__(
            message=f"The {role} has already sent {max_turns} messages in this session",
            details={"session_id": session_id, "role": role, "max_turns": max_turns}
        )


class InvalidOfferException(BusinessException):
    """Raised when an offer falls outside [floor, reference)."""

    code = "INVALID_OFFER"

    def __init__(self, offer_amount: float, floor: float, reference_price: float):
        if offer_amount >= reference_price:
            message = f"Offer ${offer_amount:.2f} must be below the listed price of ${reference_price:.2f}"
        else:
            message = f"Offer ${offer_amount:.2f} is below the minimum acceptable price of ${floor:.2f}"
        super().__init__(
            message=message,
            details={
                "offer_amount": offer_amount,
                "floor": floor,
                "reference_price": reference_price
            }
        )


class ValidationException(BusinessException):
    """Raised for missing or malformed fields."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            message=message,
            details={"field_errors": field_errors} if field_errors else None
        )


class AuthenticationException(BusinessException):
    """Raised when a bearer credential is missing, invalid or expired."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Not authorized", code: Optional[str] = None):
        super().__init__(message=message, code=code)


class CapacityExceededException(BusinessException):
    """Raised when a realtime connection or room limit is reached."""

    code = "CAPACITY_EXCEEDED"

    def __init__(self, message: str, limit: int):
        super().__init__(message=message, details={"limit": limit})
