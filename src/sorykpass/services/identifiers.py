"""
Identifier generation for orders, gateway sessions and tickets

Webpay rejects a buy_order longer than 26 characters and a session_id
longer than 61, so both generators truncate to those limits.
"""
from datetime import datetime
from typing import Optional
import secrets
import string
import time

BUY_ORDER_MAX_LENGTH = 26
GATEWAY_SESSION_MAX_LENGTH = 61

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_buy_order(prefix: str = "SP", now: Optional[datetime] = None) -> str:
    """
    Order number / Webpay buy_order

    Format: PREFIX + YYMMDDHHMMSS + two millisecond digits + 4 random chars.
    """
    now = now or datetime.now()
    stamp = now.strftime("%y%m%d%H%M%S")
    millis = f"{now.microsecond // 1000:03d}"[:2]
    buy_order = f"{prefix}{stamp}{millis}{random_base36(4).upper()}"
    return buy_order[:BUY_ORDER_MAX_LENGTH]


def generate_gateway_session_id(prefix: str = "sess", timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    session_id = f"{prefix}-{to_base36(timestamp_ms)}-{random_base36(4)}"
    return session_id[:GATEWAY_SESSION_MAX_LENGTH]


def generate_qr_code(event_id: str, user_id: str, index: int, timestamp_ns: Optional[int] = None) -> str:
    """
    Ticket QR payload

    Event and user prefixes, a nanosecond timestamp, 6 random characters and
    the ticket's position in its order. The tickets table has a unique
    constraint on the result.
    """
    if timestamp_ns is None:
        timestamp_ns = time.time_ns()
    parts = [
        event_id[:8],
        user_id[:8],
        to_base36(timestamp_ns),
        random_base36(6),
        str(index),
    ]
    return "-".join(parts).upper()
