"""PushToken SQLAlchemy ORM model (device token registry per owner identity)"""
from sqlalchemy import Column, String, Text, DateTime
from groundcontrol.core.database import Base
from datetime import datetime, timezone


class PushToken(Base):
    """
    Latest device token registered by an owner for a platform.

    The owner is the wallet identity that authenticated the registration
    (e.g. a bc1... address). Registering again for the same platform
    replaces the token.

    Attributes:
        owner: Owner identity (composite primary key)
        platform: 'android' or 'ios' (composite primary key)
        token: FCM registration token or APNS device token
        created_at: First registration timestamp (UTC)
        updated_at: Last registration timestamp (UTC)
    """

    __tablename__ = "push_tokens"

    owner = Column(String(128), primary_key=True)
    platform = Column(String(16), primary_key=True)
    token = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<PushToken(owner={self.owner}, platform={self.platform})>"

    def to_dict(self) -> dict:
        """Convert registry entry to dictionary (token included)."""
        return {
            "owner": self.owner,
            "platform": self.platform,
            "token": self.token,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
