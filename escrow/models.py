"""
Expose ORM models for Django's auto-discovery while keeping real definitions
under the infrastructure module.
"""

from escrow.infra.models import *  # noqa: F401,F403
from escrow.infra.read_models import OrderSummary  # noqa: F401
from escrow.infra.event_store import EventStore  # noqa: F401
from escrow.infra.outbox import OutboxEvent  # noqa: F401
