"""PushLog SQLAlchemy ORM model for the delivery audit trail"""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Index
from groundcontrol.core.database import Base
from datetime import datetime, timezone


class PushLog(Base):
    """
    Append-only record of a single push delivery attempt.

    One row is written for every attempt, whatever the outcome, including
    attempts where the network call never produced a response. Rows are
    purged by an external housekeeping job, never by the dispatch engine.

    Attributes:
        id: Auto-increment primary key
        token: Destination device token
        os: Target platform ('android' or 'ios')
        payload: JSON payload as sent to the gateway
        response: Serialized gateway response, or the transport error
        success: Whether the attempt was classified as delivered
        created_at: Attempt timestamp (UTC)
    """

    __tablename__ = "push_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(Text, nullable=False)
    os = Column(String(16), nullable=False)
    payload = Column(Text, nullable=False)
    response = Column(Text, nullable=False, default="")
    success = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True
    )

    __table_args__ = (
        Index('idx_push_log_success', 'success'),
    )

    def __repr__(self):
        return f"<PushLog(id={self.id}, os={self.os}, success={self.success})>"
