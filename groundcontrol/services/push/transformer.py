"""
Payload transformer.

Turns a validated push event into the payload each gateway expects.
Pure functions, no I/O.
"""

from typing import Any, Dict, Tuple

from groundcontrol.schemas.push import (
    LightningInvoicePaid,
    Message,
    OnchainAddressPaid,
    OnchainAddressUnconfirmedTx,
    OnchainTxConfirmed,
    PushEventBase,
)
from groundcontrol.services.push.models import APNSAlert, APNSPayload, FCMPayload
from groundcontrol.utils.string_utils import shorten_address, shorten_txid


def _render(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def build_title_body(event: PushEventBase) -> Tuple[str, str]:
    """
    Render the human-readable title and body for an event.

    Args:
        event: Any PushEvent variant

    Returns:
        Tuple of (title, body)
    """
    if isinstance(event, OnchainAddressUnconfirmedTx):
        return (
            "New unconfirmed transaction",
            f"You received new transfer on {shorten_address(event.address)}",
        )
    if isinstance(event, OnchainTxConfirmed):
        return (
            "Transaction - Confirmed",
            f"Your transaction {shorten_txid(event.txid)} has been confirmed",
        )
    if isinstance(event, Message):
        return "Message", event.text
    if isinstance(event, OnchainAddressPaid):
        return f"+{event.sat} sats", f"Received on {shorten_address(event.address)}"
    if isinstance(event, LightningInvoicePaid):
        return f"+{event.sat} sats", f"Paid: {event.memo or 'your invoice'}"
    raise TypeError(f"Unsupported push event: {type(event).__name__}")


def build_data(event: PushEventBase) -> Dict[str, str]:
    """App-visible data map of an event; both gateways require string values."""
    return {name: _render(value) for name, value in event.data_fields().items()}


def build_fcm_payload(event: PushEventBase) -> FCMPayload:
    title, body = build_title_body(event)
    tag = event.collapse_key

    data = build_data(event)
    data["title"] = title
    data["body"] = body
    if tag:
        data["tag"] = tag

    return FCMPayload(title=title, body=body, data=data, tag=tag)


def build_apns_payload(event: PushEventBase) -> APNSPayload:
    title, body = build_title_body(event)
    return APNSPayload(
        alert=APNSAlert(title=title, body=body),
        badge=event.badge,
        data=build_data(event),
    )


def transform(event: PushEventBase) -> Tuple[FCMPayload, APNSPayload]:
    """
    Build both gateway payloads for an event.

    The collapse key is not part of the APNS body; it travels in the
    apns-collapse-id header and is read from ``event.collapse_key``.

    Returns:
        Tuple of (FCMPayload, APNSPayload)
    """
    return build_fcm_payload(event), build_apns_payload(event)
