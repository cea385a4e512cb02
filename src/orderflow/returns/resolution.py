"""Quality check and the refund or exchange that closes a return."""

from protean import handle
from protean.fields import Boolean, Identifier, String

from orderflow.domain import orderflow
from orderflow.returns.repository import load_return
from orderflow.returns.return_request import ReturnRequest


@orderflow.command(part_of="ReturnRequest")
class RecordQualityCheck:
    return_id = Identifier(required=True)
    passed = Boolean(required=True)
    notes = String(max_length=1000)
    inspector = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class InitiateRefund:
    return_id = Identifier(required=True)
    transaction_ref = String(required=True, max_length=255)
    admin = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class RecordRefundTransaction:
    return_id = Identifier(required=True)
    transaction_id = String(required=True, max_length=255)


@orderflow.command(part_of="ReturnRequest")
class CompleteRefund:
    return_id = Identifier(required=True)
    admin = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class InitiateExchange:
    return_id = Identifier(required=True)
    exchange_product_id = Identifier(required=True)
    exchange_variant = String(max_length=100)
    admin = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class MarkExchangeDelivered:
    return_id = Identifier(required=True)
    actor = String(max_length=100)


@orderflow.command_handler(part_of=ReturnRequest)
class ReturnResolutionHandler:
    @handle(RecordQualityCheck)
    def quality_check(self, command):
        repo, request = load_return(command.return_id)
        request.record_quality_check(bool(command.passed), notes=command.notes, author=command.inspector)
        repo.add(request)

    @handle(InitiateRefund)
    def initiate_refund(self, command):
        repo, request = load_return(command.return_id)
        request.initiate_refund(command.transaction_ref, author=command.admin)
        repo.add(request)
        return request.refund_amount

    @handle(RecordRefundTransaction)
    def record_transaction(self, command):
        repo, request = load_return(command.return_id)
        request.record_refund_transaction(command.transaction_id)
        repo.add(request)

    @handle(CompleteRefund)
    def complete_refund(self, command):
        repo, request = load_return(command.return_id)
        request.complete_refund(author=command.admin)
        repo.add(request)

    @handle(InitiateExchange)
    def initiate_exchange(self, command):
        repo, request = load_return(command.return_id)
        request.initiate_exchange(
            command.exchange_product_id,
            variant=command.exchange_variant,
            author=command.admin,
        )
        repo.add(request)

    @handle(MarkExchangeDelivered)
    def exchange_delivered(self, command):
        repo, request = load_return(command.return_id)
        request.mark_exchange_delivered(author=command.actor)
        repo.add(request)
