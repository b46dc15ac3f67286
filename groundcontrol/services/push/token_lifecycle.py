"""
Token lifecycle manager.

Removes every subscription that references a device token the gateway
reported as permanently invalid.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groundcontrol.core.logging_config import mask_token
from groundcontrol.models.subscription import SUBSCRIPTION_INDEX_MODELS

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """
    Deletes dead device tokens from the subscription index tables.

    Each table is cleaned and committed on its own; a failure on one table
    is logged and does not stop the others. Deleting a token that has no
    rows is a no-op, so invalidation can be repeated safely.
    """

    def __init__(self, db: Session):
        self.db = db

    def invalidate(self, token: str) -> int:
        """
        Remove all subscription rows for a token.

        Args:
            token: Device token rejected as dead by a gateway

        Returns:
            Number of rows removed across all index tables
        """
        removed = 0
        for model in SUBSCRIPTION_INDEX_MODELS:
            try:
                count = (
                    self.db.query(model)
                    .filter(model.token == token)
                    .delete(synchronize_session=False)
                )
                self.db.commit()
                removed += count
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    "Failed to remove dead token subscriptions",
                    extra={
                        "table": model.__tablename__,
                        "device_token": mask_token(token),
                        "error": str(e),
                    }
                )

        logger.info(
            "Invalidated dead device token",
            extra={"device_token": mask_token(token), "rows_removed": removed}
        )
        return removed
