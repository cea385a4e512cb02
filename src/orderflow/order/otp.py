"""One-time code policy for proof-of-delivery and agent handover.

Expiry and cooldown are wall-clock windows evaluated lazily whenever a code
is issued, checked or inspected; nothing runs in the background.
"""

import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

DELIVERY_OTP_DIGITS = 4
HANDOVER_CODE_DIGITS = 6
OTP_TTL = timedelta(minutes=10)
OTP_COOLDOWN = timedelta(minutes=2)
MAX_OTP_ATTEMPTS = 3


class OTPOutcome(Enum):
    VERIFIED = "verified"
    INVALID = "invalid"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


def generate_code(digits: int) -> str:
    """Random numeric code without a leading zero."""
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))


def is_expired(issued_at: datetime, now: datetime) -> bool:
    return now - issued_at > OTP_TTL


def cooldown_remaining(issued_at: datetime | None, now: datetime) -> int:
    """Seconds left before another code may be issued, rounded up."""
    if issued_at is None:
        return 0
    remaining = (OTP_COOLDOWN - (now - issued_at)).total_seconds()
    return max(0, math.ceil(remaining))


@dataclass(frozen=True)
class OTPStatus:
    """Read model describing the delivery OTP of one order."""

    has_otp: bool
    verified: bool
    sent_at: datetime | None
    attempts: int
    attempts_remaining: int
    is_expired: bool
    expires_in: int
    can_resend: bool
    retry_after: int
