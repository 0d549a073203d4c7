"""
In-process domain events.

Every mutating operation announces what changed so read models (the claim
websocket room, dashboards) refresh without polling. Handlers are awaited
in subscription order; a failing handler is logged and never breaks the
operation that published the event.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CLAIM_STATUS_CHANGED = "claim_status_changed"
    CLAIM_STEP_ADVANCED = "claim_step_advanced"

    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_PARSED = "document_parsed"
    DOCUMENT_PARSE_FAILED = "document_parse_failed"

    WORKFLOW_PHASE_CHANGED = "workflow_phase_changed"
    VERDICT_REACHED = "verdict_reached"
    DISPUTE_LETTER_GENERATED = "dispute_letter_generated"
    OWNER_PITCH_GENERATED = "owner_pitch_generated"
    OWNER_PITCH_ACKNOWLEDGED = "owner_pitch_acknowledged"
    ADJUDICATION_STEP_COMPLETED = "adjudication_step_completed"
    AUDIT_REPORT_SUPERSEDED = "audit_report_superseded"
    LEGAL_PACKAGE_GENERATED = "legal_package_generated"

    PAYMENT_EXPECTED = "payment_expected"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_RECONCILED = "payment_reconciled"
    PAYMENT_DISPUTED = "payment_disputed"

    RCV_DEMAND_GENERATED = "rcv_demand_generated"
    RCV_DEMAND_SENT = "rcv_demand_sent"


@dataclass
class DomainEvent:
    event_type: EventType
    claim_id: UUID
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_json(self) -> str:
        payload = {
            "event": self.event_type.value,
            "claim_id": str(self.claim_id),
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
        return json.dumps(payload, default=str)


Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        # None key = all event types
        self._handlers: dict[Optional[EventType], list[Handler]] = {}

    def subscribe(self, handler: Handler, event_type: Optional[EventType] = None) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, handler: Handler, event_type: Optional[EventType] = None) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def publish(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(event.event_type, []) + self._handlers.get(None, [])
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.event_type.value} on claim {event.claim_id}: {e}")

    async def emit(self, event_type: EventType, claim_id: UUID, **data: Any) -> DomainEvent:
        event = DomainEvent(event_type=event_type, claim_id=claim_id, data=data)
        await self.publish(event)
        return event


event_bus = EventBus()
