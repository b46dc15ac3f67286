"""
Response classifier.

Decides whether a gateway response is a success, a transient failure or a
terminal failure. Only a terminal failure leads to token invalidation, so
anything the gateway did not explicitly reject as a dead token is treated
as transient.
"""

import json
import logging
from typing import Any, Dict, Optional

from groundcontrol.services.push.constants import (
    APNS_ERROR_CODES,
    APNS_TERMINAL_REASONS,
    FCM_TERMINAL_DETAIL_CODES,
    FCM_TERMINAL_ERROR_CODE,
)
from groundcontrol.services.push.models import APNSRawResponse, DeliveryOutcome, FCMRawResponse

logger = logging.getLogger(__name__)


def _parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def classify_fcm_response(text: str) -> DeliveryOutcome:
    """
    Classify an FCM v1 send response body.

    A body with ``name`` is a success. ``error.code == 404`` or any
    ``error.details[].errorCode == "UNREGISTERED"`` is terminal.

    Args:
        text: Raw response body

    Returns:
        DeliveryOutcome
    """
    response = _parse_json_object(text)
    if response is None:
        logger.error("Malformed FCM response", extra={"response_text": text[:500]})
        return DeliveryOutcome.transient("malformed response")

    if response.get("name"):
        return DeliveryOutcome.succeeded()

    error = response.get("error")
    if not isinstance(error, dict):
        return DeliveryOutcome.transient("no message name in response")

    code = error.get("code")
    if code == FCM_TERMINAL_ERROR_CODE:
        return DeliveryOutcome.terminal(f"error code {code}")

    details = error.get("details") or []
    if isinstance(details, list):
        for detail in details:
            if not isinstance(detail, dict):
                continue
            error_code = detail.get("errorCode")
            if isinstance(error_code, str) and error_code in FCM_TERMINAL_DETAIL_CODES:
                return DeliveryOutcome.terminal(error_code)

    return DeliveryOutcome.transient(str(error.get("status") or error.get("message") or code))


def classify_fcm_raw(raw: FCMRawResponse) -> DeliveryOutcome:
    """Classify a captured FCM exchange, transport failures included."""
    if raw.status_code is None:
        return DeliveryOutcome.transient(raw.error or "no response")
    return classify_fcm_response(raw.text)


def classify_apns_response(raw: APNSRawResponse) -> DeliveryOutcome:
    """
    Classify a captured APNS exchange.

    Status 200 is a success. A response without headers never reached the
    gateway and is transient with the transport error as reason. Otherwise
    the JSON ``reason`` decides: Unregistered, BadDeviceToken and
    DeviceTokenNotForTopic are terminal.

    Args:
        raw: Headers, body and transport error of the exchange

    Returns:
        DeliveryOutcome
    """
    if not raw.headers:
        return DeliveryOutcome.transient(raw.error or "no response")

    status = raw.status_code
    if status == 200:
        return DeliveryOutcome.succeeded()

    body = _parse_json_object(raw.body)
    if body is None:
        logger.error(
            "Malformed APNS response",
            extra={"status_code": status, "response_text": raw.body[:500]}
        )
        return DeliveryOutcome.transient(raw.error or f"status {status}")

    reason = body.get("reason")
    if not isinstance(reason, str):
        if reason is not None:
            logger.error(
                "Unexpected APNS reason",
                extra={"status_code": status, "response_text": raw.body[:500]}
            )
        return DeliveryOutcome.transient(f"status {status}")

    if reason in APNS_TERMINAL_REASONS:
        return DeliveryOutcome.terminal(reason)

    if reason:
        logger.debug(
            "APNS rejected notification",
            extra={"status_code": status, "reason": reason, "description": APNS_ERROR_CODES.get(reason)}
        )
        return DeliveryOutcome.transient(reason)
    return DeliveryOutcome.transient(f"status {status}")
