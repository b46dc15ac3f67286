"""
Push notification dispatch engine.

This package contains:
- APNS (Apple Push Notification Service) provider - iOS
- FCM (Firebase Cloud Messaging) provider - Android
- Payload transformer, response classifier and credential cache
- Token lifecycle manager and delivery audit log
- PushDispatchService - single-token dispatch orchestration
"""

from groundcontrol.services.push.apns_provider import APNSProvider
from groundcontrol.services.push.audit_log import DeliveryAuditLog
from groundcontrol.services.push.classifier import (
    classify_apns_response,
    classify_fcm_raw,
    classify_fcm_response,
)
from groundcontrol.services.push.credentials import (
    APNSTokenCache,
    CredentialError,
    FCMCredentialSource,
)
from groundcontrol.services.push.dispatch_service import (
    DispatchResult,
    PushDispatchService,
    build_dispatch_service,
)
from groundcontrol.services.push.fcm_provider import FCMProvider
from groundcontrol.services.push.models import (
    APNSAlert,
    APNSConfig,
    APNSPayload,
    APNSRawResponse,
    DeliveryOutcome,
    DeliveryStatus,
    FCMConfig,
    FCMPayload,
    FCMRawResponse,
)
from groundcontrol.services.push.token_lifecycle import TokenLifecycleManager
from groundcontrol.services.push.transformer import transform

__all__ = [
    # Dispatch Service
    "PushDispatchService",
    "DispatchResult",
    "build_dispatch_service",
    # APNS
    "APNSProvider",
    "APNSConfig",
    "APNSPayload",
    "APNSAlert",
    "APNSRawResponse",
    "APNSTokenCache",
    "classify_apns_response",
    # FCM
    "FCMProvider",
    "FCMConfig",
    "FCMPayload",
    "FCMRawResponse",
    "FCMCredentialSource",
    "classify_fcm_response",
    "classify_fcm_raw",
    # Common
    "CredentialError",
    "DeliveryOutcome",
    "DeliveryStatus",
    "DeliveryAuditLog",
    "TokenLifecycleManager",
    "transform",
]
