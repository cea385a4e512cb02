"""OrderFlow bounded context — Order Fulfilment and Returns.

Handles the order status lifecycle, delivery assignment with OTP
proof-of-delivery, the per-product inventory ledger, and the
return/refund/exchange pipeline that starts from a delivered order.
All aggregates use CQRS; cross-aggregate coordination happens in the
orchestrator under per-key locks.
"""

import os

import structlog
from protean.domain import Domain

from orderflow.utils.logging import configure_logging

# File handlers only when a log directory is configured
configure_logging(log_dir=os.getenv("ORDERFLOW_LOG_DIR"))

logger = structlog.get_logger(__name__)

# Domain Composition Root
orderflow = Domain(name="orderflow")
