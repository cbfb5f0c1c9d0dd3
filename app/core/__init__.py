from app.core.event_bus import (
    DomainEvent,
    EventBus,
    NegotiationFinalized,
    ProposalSubmitted,
    PurchaseRequestCreated,
    RequestStatusChanged,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "PurchaseRequestCreated",
    "RequestStatusChanged",
    "ProposalSubmitted",
    "NegotiationFinalized",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
