"""Configurable in-memory adapters for development and testing.

Each fake records every call in ``calls`` and can be switched to fail at
runtime with ``configure(should_succeed=False, failure_reason=...)``.
"""

from uuid import uuid4

from orderflow.gateway.port import (
    NotificationResult,
    OTPNotifier,
    PaymentConfirmation,
    PaymentGateway,
    RefundExecution,
    RefundExecutor,
)


class _Configurable:
    default_failure = "Failed"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = self.default_failure
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str | None = None) -> None:
        """Configure adapter behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason or self.default_failure


class FakePaymentGateway(_Configurable, PaymentGateway):
    default_failure = "Payment not received"

    def confirm(self, order_draft: dict) -> PaymentConfirmation:
        self.calls.append({"method": "confirm", **order_draft})

        if self.should_succeed:
            return PaymentConfirmation(
                paid=True,
                reference=order_draft.get("payment_reference") or f"fake_pay_{uuid4().hex[:12]}",
            )
        return PaymentConfirmation(paid=False, failure_reason=self.failure_reason)


class FakeOTPNotifier(_Configurable, OTPNotifier):
    """Keeps delivered codes in ``sent_messages`` instead of sending SMS."""

    default_failure = "SMS provider unavailable"

    def __init__(self) -> None:
        super().__init__()
        self.sent_messages: list[dict] = []

    def send_otp(self, destination: str, code: str, context: dict) -> NotificationResult:
        self.calls.append({"method": "send_otp", "destination": destination, "context": context})

        if not self.should_succeed:
            return NotificationResult(success=False, failure_reason=self.failure_reason)

        message_id = f"fake_sms_{uuid4().hex[:12]}"
        self.sent_messages.append(
            {"message_id": message_id, "destination": destination, "code": code, **context}
        )
        return NotificationResult(success=True, message_id=message_id)

    def last_code(self, purpose: str | None = None) -> str | None:
        for message in reversed(self.sent_messages):
            if purpose is None or message.get("purpose") == purpose:
                return message["code"]
        return None


class FakeRefundExecutor(_Configurable, RefundExecutor):
    default_failure = "Refund rejected by provider"

    def execute(self, amount: float, method: str, reference: str) -> RefundExecution:
        self.calls.append({"method": "execute", "amount": amount, "refund_method": method, "reference": reference})

        if self.should_succeed:
            return RefundExecution(success=True, transaction_id=f"fake_rfd_{uuid4().hex[:12]}")
        return RefundExecution(success=False, failure_reason=self.failure_reason)
