from __future__ import annotations

import logging
import json
import uuid
from dataclasses import asdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Type

from app.observability import observe_domain_event_emitted


EventHandler = Callable[["DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        normalized_event_id = str(self.event_id or "").strip() or uuid.uuid4().hex
        normalized_occurred_at = self.occurred_at if isinstance(self.occurred_at, datetime) else _utc_now()
        if normalized_occurred_at.tzinfo is None:
            normalized_occurred_at = normalized_occurred_at.replace(tzinfo=timezone.utc)
        normalized_occurred_at = normalized_occurred_at.astimezone(timezone.utc)

        object.__setattr__(self, "event_id", normalized_event_id)
        object.__setattr__(self, "occurred_at", normalized_occurred_at)


@dataclass(frozen=True, kw_only=True)
class PurchaseRequestCreated(DomainEvent):
    request_key: str
    status: str
    department: str | None = None


@dataclass(frozen=True, kw_only=True)
class RequestStatusChanged(DomainEvent):
    request_key: str
    from_status: str
    to_status: str
    transition_id: str = ""


@dataclass(frozen=True, kw_only=True)
class ProposalSubmitted(DomainEvent):
    request_key: str
    slot: str
    proposal_number: int
    total_cost: str


@dataclass(frozen=True, kw_only=True)
class NegotiationFinalized(DomainEvent):
    request_key: str
    license_count: str
    optimized_cost: str


class EventBus:
    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("app")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        observe_domain_event_emitted(type(event).__name__)
        self._logger.info(
            "domain_event_published",
            extra={"event_type": type(event).__name__, "event": self.serialize_event_payload(event)},
        )
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                self._logger.exception("event_handler_failed", extra={"event_type": type(event).__name__})

    @staticmethod
    def serialize_event_payload(event: DomainEvent) -> Dict[str, object]:
        raw = asdict(event)
        payload: Dict[str, object] = {}
        for key, value in raw.items():
            if isinstance(value, datetime):
                resolved = value
                if resolved.tzinfo is None:
                    resolved = resolved.replace(tzinfo=timezone.utc)
                payload[key] = resolved.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
            else:
                payload[key] = value

        json.loads(json.dumps(payload, default=str))
        return payload

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


_DEFAULT_EVENT_BUS = EventBus()


def get_event_bus() -> EventBus:
    return _DEFAULT_EVENT_BUS


def reset_event_bus_for_tests() -> None:
    _DEFAULT_EVENT_BUS.clear()
