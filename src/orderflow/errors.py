"""Typed business errors raised by aggregates, handlers and the orchestrator.

Every error keeps Protean's ``{"field": ["message"]}`` message shape so
existing callers that catch ``ValidationError`` keep working, while the
subclass tells the caller which rule rejected the request.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class InvalidStatus(ValidationError):
    """The requested status is not a member of the order status enum."""

    def __init__(self, status: str):
        self.status = status
        super().__init__({"status": [f"Unknown order status: {status}"]})


class PreconditionFailed(ValidationError):
    """A state machine guard rejected the call."""

    def __init__(self, field: str, message: str, current_status: str | None = None):
        self.current_status = current_status
        if current_status is not None:
            message = f"{message}, current status: {current_status}"
        super().__init__({field: [message]})


class InsufficientStock(ValidationError):
    def __init__(self, product_id: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            {"quantity": [f"Insufficient stock for {product_id}: {available} available, {requested} requested"]}
        )


class NotFound(ObjectNotFoundError):
    """An order, return, product or agent id is unknown."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} `{identifier}` does not exist")


class Conflict(ValidationError):
    """The request collides with existing state (duplicate return, same agent)."""

    def __init__(self, field: str, message: str):
        super().__init__({field: [message]})


class AgentUnavailable(ValidationError):
    def __init__(self, agent_id: str, reason: str):
        self.agent_id = agent_id
        super().__init__({"agent_id": [f"Delivery agent {agent_id} is unavailable: {reason}"]})


class AgentAtCapacity(Conflict):
    def __init__(self, agent_id: str, capacity: int):
        self.agent_id = agent_id
        self.capacity = capacity
        super().__init__("agent_id", f"Delivery agent {agent_id} already holds {capacity} active orders")


class RateLimited(ValidationError):
    """An OTP was requested again inside the cooldown window."""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__({"otp": [f"Please wait {retry_after} seconds before requesting a new OTP"]})


class Expired(ValidationError):
    def __init__(self):
        super().__init__({"otp": ["OTP has expired. Please request a new one"]})


class AttemptsExceeded(ValidationError):
    def __init__(self):
        self.attempts_remaining = 0
        super().__init__({"otp": ["Maximum OTP attempts exceeded. Please request a new OTP"]})


class InvalidCode(ValidationError):
    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__({"otp": [f"Invalid OTP. {attempts_remaining} attempts remaining"]})


class ExternalFailure(ValidationError):
    """A collaborator call (SMS, payment, refund executor) failed."""

    def __init__(self, collaborator: str, reason: str):
        self.collaborator = collaborator
        self.reason = reason
        super().__init__({collaborator: [reason]})
