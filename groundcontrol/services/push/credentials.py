"""
Provider credentials for the push gateways.

APNS requires a short-lived ES256 provider token signed with the .p8 auth
key; FCM requires an OAuth2 access token minted from the Google service
account.
"""

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from firebase_admin import credentials

from groundcontrol.core.metrics import record_apns_token_generated
from groundcontrol.services.push.constants import JWT_ALGORITHM, JWT_TOKEN_LIFETIME_SECONDS
from groundcontrol.services.push.models import APNSConfig, FCMConfig

logger = logging.getLogger(__name__)


class CredentialError(Exception):
    """Raised when a gateway credential cannot be produced."""


class APNSTokenCache:
    """
    Cached APNS provider token.

    The cached value is a ``(token, issued_at)`` pair. A token older than
    the lifetime is replaced on the next read. Check, refresh and write
    happen under one lock so concurrent readers never sign twice.

    Usage:
        cache = APNSTokenCache(APNSConfig.from_settings(settings))
        bearer = cache.get_token()
    """

    def __init__(
        self,
        config: APNSConfig,
        lifetime_seconds: int = JWT_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.lifetime_seconds = lifetime_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: Optional[Tuple[str, int]] = None
        self._private_key: Optional[ec.EllipticCurvePrivateKey] = None

    @property
    def issued_at(self) -> Optional[int]:
        """Issue time of the cached token, None before the first read."""
        cached = self._cached
        return cached[1] if cached else None

    def _load_private_key(self) -> ec.EllipticCurvePrivateKey:
        """Load the EC private key from PEM contents or the .p8 file."""
        if self._private_key is None:
            if self.config.key_pem:
                key_data = self.config.key_pem.encode("utf-8")
            else:
                key_path = Path(self.config.key_file)
                if not key_path.exists():
                    raise CredentialError(f"APNS key file not found: {key_path}")
                key_data = key_path.read_bytes()

            try:
                private_key = serialization.load_pem_private_key(key_data, password=None)
            except ValueError as e:
                raise CredentialError(f"APNS key could not be loaded: {e}") from e

            if not isinstance(private_key, ec.EllipticCurvePrivateKey):
                raise CredentialError("APNS key must be an EC private key (ES256)")

            self._private_key = private_key
            logger.debug("Loaded APNS private key", extra={"key_id": self.config.key_id})

        return self._private_key

    def _sign(self, issued_at: int) -> str:
        return jwt.encode(
            {"iss": self.config.team_id, "iat": issued_at},
            self._load_private_key(),
            algorithm=JWT_ALGORITHM,
            headers={"kid": self.config.key_id},
        )

    def get_token(self) -> str:
        """
        Return a provider token no older than the lifetime.

        Returns:
            Signed JWT for the APNS authorization header

        Raises:
            CredentialError: If the signing key is missing or unusable
        """
        with self._lock:
            now = int(self._clock())
            cached = self._cached
            if cached is not None and now - cached[1] < self.lifetime_seconds:
                return cached[0]

            token = self._sign(now)
            self._cached = (token, now)

        record_apns_token_generated()
        logger.debug(
            "Generated new APNS provider token",
            extra={
                "team_id": self.config.team_id,
                "key_id": self.config.key_id,
                "expires_in": self.lifetime_seconds,
            }
        )
        return token


class FCMCredentialSource:
    """
    OAuth2 access tokens for the FCM HTTP v1 API.

    Token minting and refresh are delegated to the firebase-admin
    service-account credential, which keeps its own token until expiry.
    """

    def __init__(
        self,
        config: FCMConfig,
        credential: Optional[credentials.Certificate] = None,
    ):
        self.config = config
        self._credential = credential

    def _get_credential(self) -> credentials.Certificate:
        if self._credential is None:
            try:
                self._credential = credentials.Certificate(self.config.credentials_path)
            except (IOError, ValueError) as e:
                raise CredentialError(f"FCM service account could not be loaded: {e}") from e
            logger.info(
                "Loaded FCM service account",
                extra={"project_id": self.config.project_id}
            )
        return self._credential

    def _fetch_access_token(self) -> str:
        credential = self._get_credential()
        try:
            return credential.get_access_token().access_token
        except Exception as e:
            raise CredentialError(f"FCM access token refresh failed: {e}") from e

    async def get_access_token(self) -> str:
        """
        Return a valid FCM access token.

        The Google auth library blocks on the network, so the call runs in
        a worker thread.

        Raises:
            CredentialError: If the service account is unreadable or the
                token refresh fails
        """
        return await asyncio.to_thread(self._fetch_access_token)
