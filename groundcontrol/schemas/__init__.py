"""Pydantic schemas for push events"""
from groundcontrol.schemas.push import (
    DevicePlatform,
    LightningInvoicePaid,
    Message,
    NotificationLevel,
    OnchainAddressPaid,
    OnchainAddressUnconfirmedTx,
    OnchainTxConfirmed,
    PushEvent,
    PushEventBase,
    PushEventType,
    TRANSPORT_FIELDS,
    parse_push_event,
)

__all__ = [
    "DevicePlatform",
    "NotificationLevel",
    "PushEventType",
    "PushEvent",
    "PushEventBase",
    "LightningInvoicePaid",
    "OnchainAddressPaid",
    "OnchainAddressUnconfirmedTx",
    "OnchainTxConfirmed",
    "Message",
    "TRANSPORT_FIELDS",
    "parse_push_event",
]
