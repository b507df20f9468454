"""
Exceptions for conditions that are not ordinary business outcomes

Expected failures (seat taken, bad promo code, ...) travel as Result values;
see services/result.py.
"""


class CheckoutServiceError(Exception):
    """Base exception for checkout service errors"""
    pass


class SeatStoreUnavailableError(CheckoutServiceError):
    """Raised when the seat lock store cannot be reached"""
    pass


class GatewayError(CheckoutServiceError):
    """Raised when the payment gateway fails or answers with garbage"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ConsistencyError(CheckoutServiceError):
    """Raised when persisted state contradicts itself (missing payment, bad reservation metadata)"""
    pass
