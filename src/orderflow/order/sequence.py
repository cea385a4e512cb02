"""Daily order number sequence — ``ORD-YYYYMMDD-NNNN``.

One DailyOrderSequence exists per calendar day; numbering restarts at 0001
because each day has its own aggregate, so nothing has to reset a counter.
"""

from datetime import UTC, date, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Integer, String
from protean.utils.globals import current_domain

from orderflow.domain import orderflow


def format_order_number(day: date, sequence: int) -> str:
    return f"ORD-{day.strftime('%Y%m%d')}-{sequence:04d}"


@orderflow.aggregate
class DailyOrderSequence:
    date = String(identifier=True, required=True, max_length=10)  # YYYY-MM-DD
    last_sequence = Integer(default=0, min_value=0)
    updated_at = DateTime()

    def next_number(self) -> str:
        self.last_sequence = (self.last_sequence or 0) + 1
        self.updated_at = datetime.now(UTC)
        return format_order_number(date.fromisoformat(self.date), self.last_sequence)


@orderflow.command(part_of="DailyOrderSequence")
class AllocateOrderNumber:
    date = String(identifier=True, required=True, max_length=10)


@orderflow.command_handler(part_of=DailyOrderSequence)
class OrderNumberHandler:
    @handle(AllocateOrderNumber)
    def allocate(self, command):
        repo = current_domain.repository_for(DailyOrderSequence)
        try:
            sequence = repo.get(command.date)
        except ObjectNotFoundError:
            sequence = DailyOrderSequence(date=command.date, last_sequence=0)
        number = sequence.next_number()
        repo.add(sequence)
        return number
