"""
Push Dispatch Service.

Delivers one validated push event to its destination device and handles
the full lifecycle of the attempt.

Features:
- Platform-aware routing (ios -> APNS, android -> FCM)
- Provider credentials from the APNS token cache and FCM service account
- Per-call timeout on every gateway request
- Dead token invalidation on terminal gateway rejection
- One audit row and one metrics sample per attempt
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from groundcontrol.core.config import ConfigurationError, Settings
from groundcontrol.core.logging_config import dispatch_scope, mask_token
from groundcontrol.core.metrics import (
    push_dispatches_in_progress,
    record_push_delivery,
    record_token_invalidated,
)
from groundcontrol.schemas.push import DevicePlatform, PushEventBase
from groundcontrol.services.push.apns_provider import APNSProvider
from groundcontrol.services.push.audit_log import DeliveryAuditLog
from groundcontrol.services.push.classifier import classify_apns_response, classify_fcm_raw
from groundcontrol.services.push.constants import DEFAULT_REQUEST_TIMEOUT_SECONDS
from groundcontrol.services.push.credentials import (
    APNSTokenCache,
    CredentialError,
    FCMCredentialSource,
)
from groundcontrol.services.push.fcm_provider import FCMProvider
from groundcontrol.services.push.models import (
    APNSConfig,
    APNSPayload,
    DeliveryOutcome,
    FCMConfig,
    FCMPayload,
)
from groundcontrol.services.push.token_lifecycle import TokenLifecycleManager
from groundcontrol.services.push.transformer import transform

logger = logging.getLogger(__name__)

# Default concurrency limit for dispatch_many
DEFAULT_CONCURRENCY = 50


@dataclass
class DispatchResult:
    """Result of dispatching one event.

    Attributes:
        token: Destination device token
        platform: Target platform
        outcome: Classified delivery outcome
        invalidated_rows: Subscription rows removed after a terminal failure
        duration_ms: Total dispatch duration in milliseconds
        timestamp: When dispatch occurred
    """

    token: str
    platform: str
    outcome: DeliveryOutcome
    invalidated_rows: int = 0
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.outcome.success


class PushDispatchService:
    """
    Push dispatch engine.

    Sequence for every event: transform -> credential -> deliver ->
    classify -> invalidate (terminal failures only) -> audit -> metrics.
    No gateway, credential or database failure escapes as an exception;
    each one ends up as a transient failure in the returned result.

    Usage:
        service = build_dispatch_service(get_settings(), db)
        result = await service.dispatch(parse_push_event(raw_event))
    """

    def __init__(
        self,
        db: Session,
        apns_provider: APNSProvider,
        fcm_provider: FCMProvider,
        apns_tokens: APNSTokenCache,
        fcm_credentials: FCMCredentialSource,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """
        Initialize dispatch service.

        Args:
            db: Database session for audit rows and token invalidation
            apns_provider: APNS provider (iOS)
            fcm_provider: FCM provider (Android)
            apns_tokens: Provider token cache for APNS
            fcm_credentials: Access token source for FCM
            timeout: Upper bound in seconds for each gateway call
            concurrency: Default parallelism of dispatch_many
        """
        self.db = db
        self._apns = apns_provider
        self._fcm = fcm_provider
        self._apns_tokens = apns_tokens
        self._fcm_credentials = fcm_credentials
        self.timeout = timeout
        self.concurrency = concurrency
        self._lifecycle = TokenLifecycleManager(db)
        self._audit = DeliveryAuditLog(db)

        logger.info(
            "PushDispatchService initialized",
            extra={"timeout": timeout, "concurrency": concurrency}
        )

    async def _send_apns(self, event: PushEventBase, payload: APNSPayload) -> Tuple[DeliveryOutcome, Any]:
        provider_token = self._apns_tokens.get_token()
        raw = await asyncio.wait_for(
            self._apns.deliver(provider_token, event.token, payload, event.collapse_key),
            timeout=self.timeout,
        )
        return classify_apns_response(raw), raw.to_log_dict()

    async def _send_fcm(self, event: PushEventBase, payload: FCMPayload) -> Tuple[DeliveryOutcome, Any]:
        access_token = await asyncio.wait_for(
            self._fcm_credentials.get_access_token(),
            timeout=self.timeout,
        )
        raw = await asyncio.wait_for(
            self._fcm.deliver(access_token, event.token, payload),
            timeout=self.timeout,
        )
        return classify_fcm_raw(raw), raw.to_log_text()

    async def dispatch(self, event: PushEventBase) -> DispatchResult:
        """
        Deliver one event to its destination token.

        Args:
            event: Validated PushEvent variant

        Returns:
            DispatchResult with the classified outcome
        """
        with dispatch_scope():
            return await self._dispatch(event)

    async def _dispatch(self, event: PushEventBase) -> DispatchResult:
        start_time = time.time()
        platform = event.os.value
        in_progress = push_dispatches_in_progress.labels(platform=platform)
        in_progress.inc()

        try:
            fcm_payload, apns_payload = transform(event)
            if event.os == DevicePlatform.IOS:
                logged_payload: Any = apns_payload.to_apns_dict()
            else:
                logged_payload = {"message": fcm_payload.to_message()}

            try:
                if event.os == DevicePlatform.IOS:
                    outcome, response = await self._send_apns(event, apns_payload)
                else:
                    outcome, response = await self._send_fcm(event, fcm_payload)

            except CredentialError as e:
                logger.error(
                    "Could not obtain gateway credential",
                    extra={"platform": platform, "error": str(e)}
                )
                outcome = DeliveryOutcome.transient(f"credential error: {e}")
                response = {"error": str(e)}

            except asyncio.TimeoutError:
                logger.warning(
                    "Gateway call timed out",
                    extra={
                        "platform": platform,
                        "device_token": mask_token(event.token),
                        "timeout": self.timeout,
                    }
                )
                outcome = DeliveryOutcome.transient("timeout")
                response = {"error": f"timed out after {self.timeout}s"}

            except Exception as e:
                logger.error(
                    f"Error dispatching to device: {e}",
                    exc_info=True,
                    extra={"platform": platform, "device_token": mask_token(event.token)}
                )
                outcome = DeliveryOutcome.transient(str(e) or type(e).__name__)
                response = {"error": str(e)}

            invalidated_rows = 0
            if outcome.is_terminal:
                invalidated_rows = self._lifecycle.invalidate(event.token)
                record_token_invalidated(platform, invalidated_rows)

            self._audit.record(
                token=event.token,
                os=platform,
                payload=logged_payload,
                response=response,
                success=outcome.success,
            )

            duration = time.time() - start_time
            record_push_delivery(platform, outcome.status.value, duration)

            logger.info(
                "Dispatch complete",
                extra={
                    "platform": platform,
                    "device_token": mask_token(event.token),
                    "event_type": event.type,
                    "outcome": outcome.status.value,
                    "reason": outcome.reason,
                    "invalidated_rows": invalidated_rows,
                    "duration_ms": round(duration * 1000, 2),
                }
            )

            return DispatchResult(
                token=event.token,
                platform=platform,
                outcome=outcome,
                invalidated_rows=invalidated_rows,
                duration_ms=duration * 1000,
            )

        finally:
            in_progress.dec()

    async def dispatch_many(
        self,
        events: Iterable[PushEventBase],
        concurrency: Optional[int] = None,
    ) -> List[DispatchResult]:
        """
        Dispatch independent events concurrently.

        Results are returned in input order; completion order is not
        guaranteed.

        Args:
            events: Validated events, one destination token each
            concurrency: Max concurrent dispatches (defaults to service setting)

        Returns:
            One DispatchResult per event
        """
        events = list(events)
        if not events:
            return []

        semaphore = asyncio.Semaphore(concurrency or self.concurrency)

        async def dispatch_with_semaphore(event: PushEventBase) -> DispatchResult:
            async with semaphore:
                return await self.dispatch(event)

        results = await asyncio.gather(
            *[dispatch_with_semaphore(e) for e in events],
            return_exceptions=True,
        )

        dispatch_results: List[DispatchResult] = []
        for event, result in zip(events, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(f"Dispatch exception: {result}")
                dispatch_results.append(DispatchResult(
                    token=event.token,
                    platform=event.os.value,
                    outcome=DeliveryOutcome.transient(str(result)),
                ))
            else:
                dispatch_results.append(result)

        success_count = sum(1 for r in dispatch_results if r.success)
        logger.info(
            "Batch dispatch complete",
            extra={
                "total": len(dispatch_results),
                "success": success_count,
                "failed": len(dispatch_results) - success_count,
                "invalidated_tokens": sum(1 for r in dispatch_results if r.outcome.is_terminal),
            }
        )
        return dispatch_results

    async def close(self) -> None:
        """Close providers and release resources."""
        await self._fcm.close()
        logger.debug("PushDispatchService closed")

    async def __aenter__(self) -> "PushDispatchService":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()


def build_dispatch_service(settings: Settings, db: Session) -> PushDispatchService:
    """
    Build the dispatch engine from configuration.

    Args:
        settings: Application settings
        db: Database session used by the engine

    Returns:
        Ready PushDispatchService

    Raises:
        ConfigurationError: If any push setting is missing or invalid
    """
    settings.require_push_config()

    try:
        apns_config = APNSConfig.from_settings(settings)
        fcm_config = FCMConfig.from_settings(settings)
    except ValueError as e:
        raise ConfigurationError(f"invalid push settings: {e}") from e

    timeout = settings.PUSH_REQUEST_TIMEOUT_SECONDS
    return PushDispatchService(
        db=db,
        apns_provider=APNSProvider(apns_config, timeout=timeout),
        fcm_provider=FCMProvider(fcm_config, timeout=timeout),
        apns_tokens=APNSTokenCache(apns_config),
        fcm_credentials=FCMCredentialSource(fcm_config),
        timeout=timeout,
        concurrency=settings.PUSH_DISPATCH_CONCURRENCY,
    )
