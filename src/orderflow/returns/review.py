"""Admin review of return requests — approve, reject, annotate, cancel."""

from protean import handle
from protean.fields import Identifier, String

from orderflow.domain import orderflow
from orderflow.returns.repository import load_return
from orderflow.returns.return_request import ReturnRequest


@orderflow.command(part_of="ReturnRequest")
class ApproveReturn:
    return_id = Identifier(required=True)
    refund_method = String(max_length=50)
    admin = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class RejectReturn:
    return_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    admin = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class AddReturnNote:
    return_id = Identifier(required=True)
    note = String(required=True, max_length=1000)
    author = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class CancelReturn:
    """Customer withdraws a return that has not been picked up yet."""

    return_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_by = String(max_length=100)


@orderflow.command_handler(part_of=ReturnRequest)
class ReturnReviewHandler:
    @handle(ApproveReturn)
    def approve_return(self, command):
        repo, request = load_return(command.return_id)
        request.approve(refund_method=command.refund_method, author=command.admin)
        repo.add(request)

    @handle(RejectReturn)
    def reject_return(self, command):
        repo, request = load_return(command.return_id)
        request.reject(command.reason, author=command.admin)
        repo.add(request)

    @handle(AddReturnNote)
    def add_note(self, command):
        repo, request = load_return(command.return_id)
        request.add_admin_note(command.note, author=command.author)
        repo.add(request)

    @handle(CancelReturn)
    def cancel_return(self, command):
        repo, request = load_return(command.return_id)
        request.cancel(reason=command.reason, author=command.cancelled_by)
        repo.add(request)
