"""Reverse-logistics milestones of a return: pickup through warehouse receipt."""

from protean import handle
from protean.fields import Date, Identifier, String

from orderflow.domain import orderflow
from orderflow.returns.repository import load_return
from orderflow.returns.return_request import ReturnRequest


@orderflow.command(part_of="ReturnRequest")
class ScheduleReturnPickup:
    return_id = Identifier(required=True)
    pickup_date = Date(required=True)
    pickup_slot = String(max_length=50)


@orderflow.command(part_of="ReturnRequest")
class AssignReturnPickupAgent:
    return_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    admin = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class MarkReturnPickedUp:
    return_id = Identifier(required=True)
    notes = String(max_length=500)


@orderflow.command(part_of="ReturnRequest")
class MarkReturnInTransit:
    return_id = Identifier(required=True)
    actor = String(max_length=100)


@orderflow.command(part_of="ReturnRequest")
class MarkReturnReceived:
    return_id = Identifier(required=True)
    actor = String(max_length=100)


@orderflow.command_handler(part_of=ReturnRequest)
class ReturnPickupHandler:
    @handle(ScheduleReturnPickup)
    def schedule_pickup(self, command):
        repo, request = load_return(command.return_id)
        request.schedule_pickup(command.pickup_date, slot=command.pickup_slot)
        repo.add(request)

    @handle(AssignReturnPickupAgent)
    def assign_agent(self, command):
        repo, request = load_return(command.return_id)
        request.assign_pickup_agent(command.agent_id, author=command.admin)
        repo.add(request)

    @handle(MarkReturnPickedUp)
    def picked_up(self, command):
        repo, request = load_return(command.return_id)
        request.mark_pickup_completed(notes=command.notes)
        repo.add(request)

    @handle(MarkReturnInTransit)
    def in_transit(self, command):
        repo, request = load_return(command.return_id)
        request.mark_in_transit(author=command.actor)
        repo.add(request)

    @handle(MarkReturnReceived)
    def received(self, command):
        repo, request = load_return(command.return_id)
        request.mark_received_at_warehouse(author=command.actor)
        repo.add(request)
