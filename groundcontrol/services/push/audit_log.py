"""Delivery audit log: one push_log row per delivery attempt"""

import json
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groundcontrol.core.logging_config import mask_token
from groundcontrol.models.push_log import PushLog

logger = logging.getLogger(__name__)


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class DeliveryAuditLog:
    """Append-only writer for delivery attempts."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        token: str,
        os: str,
        payload: Any,
        response: Any,
        success: bool,
    ) -> Optional[PushLog]:
        """
        Persist one delivery attempt.

        Args:
            token: Destination device token
            os: Platform of the destination
            payload: Payload sent (dict or pre-serialized string)
            response: Gateway response or error (dict or string)
            success: Whether the attempt was classified as a success

        Returns:
            The stored PushLog, or None when the write failed
        """
        try:
            entry = PushLog(
                token=token,
                os=os,
                payload=_serialize(payload),
                response=_serialize(response),
                success=success,
            )
            self.db.add(entry)
            self.db.commit()
            return entry
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to log push attempt",
                extra={"device_token": mask_token(token), "os": os, "error": str(e)}
            )
            return None
