"""Subscription index service

Maintains the token -> subject tables the dispatch engine cleans up when a
device token dies: on-chain addresses, transaction ids and lightning
invoice hashes.
"""
import logging
from typing import Dict, List, Tuple, Type

from sqlalchemy.orm import Session

from groundcontrol.core.logging_config import mask_token
from groundcontrol.models.subscription import TokenToAddress, TokenToHash, TokenToTxid
from groundcontrol.schemas.push import DevicePlatform

logger = logging.getLogger(__name__)

# Subject kind -> (model, subject column name)
SUBJECT_KINDS: Dict[str, Tuple[Type, str]] = {
    "address": (TokenToAddress, "address"),
    "txid": (TokenToTxid, "txid"),
    "hash": (TokenToHash, "hash"),
}


def _resolve(kind: str) -> Tuple[Type, str]:
    try:
        return SUBJECT_KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown subscription kind: {kind}") from None


class SubscriptionService:
    """
    Subscribe device tokens to addresses, transactions and invoices.

    Subscribing twice to the same subject is a no-op.
    """

    def __init__(self, db: Session):
        self.db = db

    def subscribe(self, kind: str, token: str, os: DevicePlatform, subjects: List[str]) -> int:
        """
        Subscribe a token to one or more subjects.

        Args:
            kind: 'address', 'txid' or 'hash'
            token: Device token
            os: Device platform
            subjects: Subject identifiers; blank entries are skipped

        Returns:
            Number of new rows created
        """
        model, column = _resolve(kind)
        platform = DevicePlatform(os).value
        created = 0

        for subject in dict.fromkeys(s.strip() for s in subjects):
            if not subject:
                continue
            existing = self.db.query(model).filter(
                model.token == token,
                getattr(model, column) == subject,
            ).first()
            if existing:
                continue
            self.db.add(model(token=token, os=platform, **{column: subject}))
            created += 1

        self.db.commit()
        logger.info(
            "Subscriptions added",
            extra={"kind": kind, "device_token": mask_token(token), "created": created}
        )
        return created

    def unsubscribe(self, kind: str, token: str, subjects: List[str]) -> int:
        """
        Remove a token's subscriptions to the given subjects.

        Returns:
            Number of rows removed
        """
        model, column = _resolve(kind)
        subjects = [s.strip() for s in subjects if s and s.strip()]
        if not subjects:
            return 0

        removed = self.db.query(model).filter(
            model.token == token,
            getattr(model, column).in_(subjects),
        ).delete(synchronize_session=False)
        self.db.commit()

        logger.info(
            "Subscriptions removed",
            extra={"kind": kind, "device_token": mask_token(token), "removed": removed}
        )
        return removed

    def subscribers(self, kind: str, subject: str) -> List[Tuple[str, str]]:
        """
        Find the devices subscribed to a subject.

        Returns:
            List of (token, os) pairs
        """
        model, column = _resolve(kind)
        rows = self.db.query(model.token, model.os).filter(
            getattr(model, column) == subject
        ).all()
        return [(row.token, row.os) for row in rows]

    def subscriptions_for_token(self, token: str) -> Dict[str, List[str]]:
        """Return every subject a token is subscribed to, grouped by kind."""
        result: Dict[str, List[str]] = {}
        for kind, (model, column) in SUBJECT_KINDS.items():
            rows = self.db.query(getattr(model, column)).filter(model.token == token).all()
            result[kind] = [row[0] for row in rows]
        return result
