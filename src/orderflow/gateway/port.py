"""Ports for the collaborators that live outside the fulfilment core.

Payment confirmation, OTP delivery (SMS) and refund execution are reached
only through these interfaces, so the orchestrator never depends on a
concrete provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentConfirmation:
    """Outcome of confirming an online payment for a checkout."""

    paid: bool
    reference: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message_id: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundExecution:
    success: bool
    transaction_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def confirm(self, order_draft: dict) -> PaymentConfirmation:
        """Confirm that the customer paid for ``order_draft`` (customer, amount, reference)."""
        ...


class OTPNotifier(ABC):
    @abstractmethod
    def send_otp(self, destination: str, code: str, context: dict) -> NotificationResult:
        """Deliver a one-time code to a phone number."""
        ...


class RefundExecutor(ABC):
    @abstractmethod
    def execute(self, amount: float, method: str, reference: str) -> RefundExecution:
        """Move money back to the customer."""
        ...
