"""Subscription index SQLAlchemy ORM models

Each table maps a device token to one subject it wants updates about:
an on-chain address, a transaction id, or a lightning invoice hash.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index, UniqueConstraint
from groundcontrol.core.database import Base
from datetime import datetime, timezone


class TokenToAddress(Base):
    """Device token subscribed to activity on an on-chain address."""

    __tablename__ = "token_to_address"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(255), nullable=False)
    address = Column(String(128), nullable=False)
    os = Column(String(16), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint('token', 'address', name='uq_token_to_address'),
        Index('idx_token_to_address_token', 'token'),
        Index('idx_token_to_address_address', 'address'),
    )

    def __repr__(self):
        return f"<TokenToAddress(id={self.id}, address={self.address})>"


class TokenToTxid(Base):
    """Device token subscribed to confirmation of a transaction."""

    __tablename__ = "token_to_txid"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(255), nullable=False)
    txid = Column(String(64), nullable=False)
    os = Column(String(16), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint('token', 'txid', name='uq_token_to_txid'),
        Index('idx_token_to_txid_token', 'token'),
        Index('idx_token_to_txid_txid', 'txid'),
    )

    def __repr__(self):
        return f"<TokenToTxid(id={self.id}, txid={self.txid})>"


class TokenToHash(Base):
    """Device token subscribed to settlement of a lightning invoice."""

    __tablename__ = "token_to_hash"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(255), nullable=False)
    hash = Column(Text, nullable=False)
    os = Column(String(16), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index('idx_token_to_hash_token', 'token'),
    )

    def __repr__(self):
        return f"<TokenToHash(id={self.id}, hash={self.hash[:16]}...)>"


# Every index table keyed by device token; invalidation walks this list
SUBSCRIPTION_INDEX_MODELS = (TokenToAddress, TokenToTxid, TokenToHash)
