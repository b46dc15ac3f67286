"""SQLAlchemy ORM models"""
from groundcontrol.models.push_log import PushLog
from groundcontrol.models.push_token import PushToken
from groundcontrol.models.subscription import (
    SUBSCRIPTION_INDEX_MODELS,
    TokenToAddress,
    TokenToHash,
    TokenToTxid,
)

__all__ = [
    "PushLog",
    "PushToken",
    "TokenToAddress",
    "TokenToTxid",
    "TokenToHash",
    "SUBSCRIPTION_INDEX_MODELS",
]
