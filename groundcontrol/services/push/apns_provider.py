"""
APNS (Apple Push Notification Service) Provider.

Delivers one notification per call over the HTTP/2 provider API.

Features:
- Fresh HTTP/2 connection per request, always closed afterwards
- Token-based authentication (bearer provider token)
- Collapse identifier and 24h expiration headers
- Response headers and streamed body captured for classification
- Transport errors captured into the response, never raised
"""

import json
import logging
import time
from typing import Optional

import httpx

from groundcontrol.core.logging_config import mask_token
from groundcontrol.services.push.constants import (
    APNS_DEVICE_PATH,
    APNS_EXPIRATION_SECONDS,
    APNS_PRODUCTION_HOST,
    APNS_SANDBOX_HOST,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from groundcontrol.services.push.models import APNSConfig, APNSPayload, APNSRawResponse

logger = logging.getLogger(__name__)


class APNSProvider:
    """
    APNS provider for sending push notifications to Apple devices.

    Usage:
        provider = APNSProvider(APNSConfig.from_settings(settings))
        raw = await provider.deliver(cache.get_token(), device_token, payload, collapse_id)

    Attributes:
        config: APNS configuration
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        config: APNSConfig,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize APNS provider.

        Args:
            config: APNS configuration with topic and environment
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport replacing the network
        """
        self.config = config
        self.timeout = timeout
        self._transport = transport

        self._host = APNS_SANDBOX_HOST if config.use_sandbox else APNS_PRODUCTION_HOST
        self._base_url = f"https://{self._host}"

        logger.info(
            "APNS provider initialized",
            extra={
                "host": self._host,
                "topic": config.topic,
                "sandbox": config.use_sandbox,
            }
        )

    def _create_client(self) -> httpx.AsyncClient:
        """Create a new HTTP/2 client for a single request."""
        return httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

    def _build_headers(self, provider_token: str, collapse_id: Optional[str]) -> dict:
        """Build request headers for APNS."""
        headers = {
            "authorization": f"bearer {provider_token}",
            "apns-topic": self.config.topic,
            "apns-push-type": "alert",
            "apns-expiration": str(int(time.time()) + APNS_EXPIRATION_SECONDS),
        }
        if collapse_id:
            headers["apns-collapse-id"] = collapse_id
        return headers

    async def deliver(
        self,
        provider_token: str,
        device_token: str,
        payload: APNSPayload,
        collapse_id: Optional[str] = None,
    ) -> APNSRawResponse:
        """
        Send a notification to a single device.

        Args:
            provider_token: Signed provider token (JWT)
            device_token: APNS device token (hex string)
            payload: Notification payload
            collapse_id: Identifier coalescing notifications about one subject

        Returns:
            APNSRawResponse with headers (":status" included), body and any
            transport error
        """
        url = f"{self._base_url}{APNS_DEVICE_PATH.format(device_token=device_token)}"
        headers = self._build_headers(provider_token, collapse_id)
        body = json.dumps(payload.to_apns_dict())

        raw = APNSRawResponse()
        start_time = time.time()
        client = self._create_client()
        try:
            async with client.stream("POST", url, content=body, headers=headers) as response:
                raw.headers[":status"] = response.status_code
                raw.headers.update(response.headers.items())

                chunks = []
                async for chunk in response.aiter_text():
                    chunks.append(chunk)
                raw.body = "".join(chunks)

        except httpx.HTTPError as e:
            raw.error = str(e) or type(e).__name__
            # A broken exchange is never reported as delivered
            if raw.headers.get(":status") == 200:
                del raw.headers[":status"]
            logger.warning(
                "APNS request failed",
                extra={
                    "device_token": mask_token(device_token),
                    "error": raw.error,
                    "error_type": type(e).__name__,
                }
            )

        finally:
            await client.aclose()

        logger.debug(
            "APNS response received",
            extra={
                "device_token": mask_token(device_token),
                "status_code": raw.status_code,
                "apns_id": raw.headers.get("apns-id"),
                "duration_ms": int((time.time() - start_time) * 1000),
            }
        )
        return raw
