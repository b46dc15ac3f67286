"""
FCM (Firebase Cloud Messaging) Provider.

Delivers one notification per call through the FCM HTTP v1 API.

Features:
- Bearer authentication with a service-account access token
- Pooled async HTTP client
- Response text captured for classification
- Transport errors captured into the response, never raised
"""

import logging
import time
from typing import Optional

import httpx

from groundcontrol.core.logging_config import mask_token
from groundcontrol.services.push.constants import DEFAULT_REQUEST_TIMEOUT_SECONDS, FCM_SEND_URL
from groundcontrol.services.push.models import FCMConfig, FCMPayload, FCMRawResponse

logger = logging.getLogger(__name__)


class FCMProvider:
    """
    FCM provider for sending push notifications to Android devices.

    Usage:
        provider = FCMProvider(FCMConfig.from_settings(settings))
        raw = await provider.deliver(access_token, device_token, payload)

    Attributes:
        config: FCM configuration
        timeout: Per-request timeout in seconds
        _client: httpx AsyncClient (lazy initialized)
    """

    def __init__(
        self,
        config: FCMConfig,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize FCM provider.

        Args:
            config: FCM configuration with project id
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport replacing the network
        """
        self.config = config
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._url = FCM_SEND_URL.format(project_id=config.project_id)

        logger.info(
            "FCM provider created",
            extra={"project_id": config.project_id}
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def deliver(
        self,
        access_token: str,
        device_token: str,
        payload: FCMPayload,
    ) -> FCMRawResponse:
        """
        Send a notification to a single device.

        Args:
            access_token: OAuth2 access token for the FCM API
            device_token: FCM registration token
            payload: Notification payload

        Returns:
            FCMRawResponse with status code, body text and any transport error
        """
        client = await self._get_client()
        body = {"message": payload.to_message(device_token)}
        headers = {"Authorization": f"Bearer {access_token}"}

        raw = FCMRawResponse()
        start_time = time.time()
        try:
            response = await client.post(self._url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raw.error = str(e) or type(e).__name__
            logger.warning(
                "FCM request failed",
                extra={
                    "device_token": mask_token(device_token),
                    "error": raw.error,
                    "error_type": type(e).__name__,
                }
            )
            return raw

        raw.status_code = response.status_code
        raw.text = response.text

        logger.debug(
            "FCM response received",
            extra={
                "device_token": mask_token(device_token),
                "status_code": raw.status_code,
                "duration_ms": int((time.time() - start_time) * 1000),
            }
        )
        return raw

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.debug("FCM provider closed")

    async def __aenter__(self) -> "FCMProvider":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()
