"""Push token registry service

Keeps the latest device token per owner identity and platform.
"""
import logging
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from groundcontrol.core.logging_config import mask_token
from groundcontrol.models.push_token import PushToken
from groundcontrol.schemas.push import DevicePlatform

logger = logging.getLogger(__name__)


class PushTokenService:
    """Register and look up device tokens by owner."""

    def __init__(self, db: Session):
        self.db = db

    def register(self, owner: str, platform: DevicePlatform, token: str) -> PushToken:
        """
        Register (or replace) the token of an owner on a platform.

        Args:
            owner: Owner identity (e.g. wallet address)
            platform: Device platform
            token: FCM registration token or APNS device token

        Returns:
            The stored registry entry

        Raises:
            ValueError: If owner or token is blank
        """
        owner = owner.strip()
        token = token.strip()
        if not owner:
            raise ValueError("owner cannot be empty")
        if not token:
            raise ValueError("token cannot be empty")
        platform_value = DevicePlatform(platform).value

        entry = self.db.query(PushToken).filter(
            PushToken.owner == owner,
            PushToken.platform == platform_value,
        ).first()

        if entry:
            entry.token = token
        else:
            entry = PushToken(owner=owner, platform=platform_value, token=token)
            self.db.add(entry)

        self.db.commit()
        self.db.refresh(entry)

        logger.info(
            "Push token registered",
            extra={
                "owner": owner,
                "platform": platform_value,
                "device_token": mask_token(token),
            }
        )
        return entry

    def get_token(self, owner: str, platform: DevicePlatform) -> Optional[str]:
        """Return the registered token for an owner on a platform, if any."""
        entry = self.db.query(PushToken).filter(
            PushToken.owner == owner,
            PushToken.platform == DevicePlatform(platform).value,
        ).first()
        return entry.token if entry else None

    def list_for_owner(self, owner: str) -> List[PushToken]:
        """All registry entries of an owner, most recently updated first."""
        return (
            self.db.query(PushToken)
            .filter(PushToken.owner == owner)
            .order_by(desc(PushToken.updated_at))
            .all()
        )
