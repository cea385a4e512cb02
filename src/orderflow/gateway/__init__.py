"""Collaborator adapters — payment confirmation, OTP delivery, refund execution.

Each port has a singleton accessor pair. The adapter is chosen by an
environment variable (``PAYMENT_GATEWAY``, ``OTP_NOTIFIER``,
``REFUND_EXECUTOR``); only ``fake`` ships with this package, anything else
is installed with the matching ``set_*`` call.
"""

import os

from orderflow.gateway.fake_adapter import FakeOTPNotifier, FakePaymentGateway, FakeRefundExecutor
from orderflow.gateway.port import OTPNotifier, PaymentGateway, RefundExecutor

_payment_gateway: PaymentGateway | None = None
_otp_notifier: OTPNotifier | None = None
_refund_executor: RefundExecutor | None = None


def _adapter_name(variable: str) -> str:
    adapter = os.environ.get(variable, "fake")
    if adapter != "fake":
        raise ValueError(f"Unknown adapter for {variable}: {adapter}")
    return adapter


def get_payment_gateway() -> PaymentGateway:
    global _payment_gateway
    if _payment_gateway is None:
        _adapter_name("PAYMENT_GATEWAY")
        _payment_gateway = FakePaymentGateway()
    return _payment_gateway


def set_payment_gateway(gateway: PaymentGateway) -> None:
    global _payment_gateway
    _payment_gateway = gateway


def get_otp_notifier() -> OTPNotifier:
    global _otp_notifier
    if _otp_notifier is None:
        _adapter_name("OTP_NOTIFIER")
        _otp_notifier = FakeOTPNotifier()
    return _otp_notifier


def set_otp_notifier(notifier: OTPNotifier) -> None:
    global _otp_notifier
    _otp_notifier = notifier


def get_refund_executor() -> RefundExecutor:
    global _refund_executor
    if _refund_executor is None:
        _adapter_name("REFUND_EXECUTOR")
        _refund_executor = FakeRefundExecutor()
    return _refund_executor


def set_refund_executor(executor: RefundExecutor) -> None:
    global _refund_executor
    _refund_executor = executor


def reset_gateways() -> None:
    """Drop every configured adapter (useful for tests)."""
    global _payment_gateway, _otp_notifier, _refund_executor
    _payment_gateway = None
    _otp_notifier = None
    _refund_executor = None
