"""Proof-of-delivery OTP — issue, resend and verify commands.

Verification returns an outcome rather than raising for a wrong, expired or
exhausted code so the attempt is committed; the orchestrator turns the
outcome into the matching error after the unit of work has finished.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order import otp
from orderflow.order.order import Order
from orderflow.settings import setting


@orderflow.command(part_of="Order")
class IssueDeliveryOTP:
    order_id = Identifier(required=True)


@orderflow.command(part_of="Order")
class ResendDeliveryOTP:
    order_id = Identifier(required=True)


@orderflow.command(part_of="Order")
class VerifyDeliveryOTP:
    order_id = Identifier(required=True)
    code = String(required=True, max_length=6)


@orderflow.command_handler(part_of=Order)
class DeliveryOTPHandler:
    @handle(IssueDeliveryOTP)
    def issue(self, command):
        return self._issue(command.order_id, resend=False)

    @handle(ResendDeliveryOTP)
    def resend(self, command):
        return self._issue(command.order_id, resend=True)

    def _issue(self, order_id, resend):
        repo = current_domain.repository_for(Order)
        order = repo.get(order_id)
        code = otp.generate_code(otp.DELIVERY_OTP_DIGITS)
        order.issue_delivery_otp(code, resend=resend)
        repo.add(order)
        return code

    @handle(VerifyDeliveryOTP)
    def verify(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        outcome = order.check_delivery_otp(command.code, default_fee=setting("DEFAULT_DELIVERY_FEE"))
        repo.add(order)
        return outcome.value
