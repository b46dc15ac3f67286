"""Pytest fixtures and configuration for test suite

This module provides:
1. Database session fixtures for test isolation
2. Factory functions for creating push events and subscription rows
3. Credential fixtures (generated EC keys, fake FCM access tokens)

Factory Functions:
    - make_event(variant, **overrides) -> PushEvent variant
    - make_subscriptions(db_session, token, ...) -> int

Each row factory takes the db_session to persist into.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from groundcontrol.core.database import Base
from groundcontrol.models.subscription import TokenToAddress, TokenToHash, TokenToTxid
from groundcontrol.schemas.push import (
    LightningInvoicePaid,
    Message,
    OnchainAddressPaid,
    OnchainAddressUnconfirmedTx,
    OnchainTxConfirmed,
)
from groundcontrol.services.push.models import APNSConfig, FCMConfig


ANDROID_TOKEN = "fcm-token-abcdefghijklmnopqrstuvwxyz0123456789"
IOS_TOKEN = "a1b2c3d4e5f6a1b2c3d4e5f6a1b2c3d4e5f6a1b2c3d4e5f6a1b2c3d4e5f6a1b2"
ADDRESS = "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh"
TXID = "4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b"
PAYMENT_HASH = "0001020304050607080900010203040506070809000102030405060708090102"


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

_EVENT_DEFAULTS = {
    LightningInvoicePaid: {"sat": 1500, "hash": PAYMENT_HASH, "memo": "coffee"},
    OnchainAddressPaid: {"sat": 1000, "address": ADDRESS, "txid": TXID},
    OnchainAddressUnconfirmedTx: {"sat": 2500, "address": ADDRESS, "txid": TXID},
    OnchainTxConfirmed: {"txid": TXID},
    Message: {"text": "Hello from GroundControl"},
}


def make_event(variant=OnchainAddressPaid, os: str = "android", token: str = None, **overrides):
    """
    Factory function to create PushEvent variants for testing.

    Args:
        variant: PushEvent variant class
        os: Destination platform ('android' or 'ios')
        token: Device token. Defaults to a platform-appropriate token.
        **overrides: Any variant field

    Returns:
        Validated event instance

    Example:
        event = make_event(Message, text="hi")
        event = make_event(OnchainTxConfirmed, os="ios", badge=3)
    """
    if token is None:
        token = IOS_TOKEN if os == "ios" else ANDROID_TOKEN
    fields = dict(_EVENT_DEFAULTS[variant])
    fields.update(overrides)
    return variant(token=token, os=os, **fields)


def make_subscriptions(
    db_session,
    token: str,
    os: str = "android",
    addresses=(ADDRESS,),
    txids=(TXID,),
    hashes=(PAYMENT_HASH,),
) -> int:
    """
    Create subscription index rows for a token in all three tables.

    Returns:
        Number of rows created
    """
    rows = []
    rows.extend(TokenToAddress(token=token, address=a, os=os) for a in addresses)
    rows.extend(TokenToTxid(token=token, txid=t, os=os) for t in txids)
    rows.extend(TokenToHash(token=token, hash=h, os=os) for h in hashes)
    db_session.add_all(rows)
    db_session.commit()
    return len(rows)


def count_subscriptions(db_session, token: str) -> int:
    """Count subscription index rows referencing a token across all tables."""
    return sum(
        db_session.query(model).filter(model.token == token).count()
        for model in (TokenToAddress, TokenToTxid, TokenToHash)
    )


# =============================================================================
# Credential Fixtures
# =============================================================================

@pytest.fixture
def ec_private_key():
    """Generate a P-256 private key like the ones in Apple .p8 files."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def p8_pem(ec_private_key) -> str:
    return ec_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def test_key_file(tmp_path, p8_pem):
    """Create a temporary .p8 key file for testing."""
    key_file = tmp_path / "AuthKey_TEST.p8"
    key_file.write_text(p8_pem)
    return str(key_file)


@pytest.fixture
def apns_config(test_key_file):
    """Create a test APNS configuration."""
    return APNSConfig(
        key_file=test_key_file,
        key_id="KEYID12345",
        team_id="TEAMID1234",
        topic="io.groundcontrol.test",
        use_sandbox=True,
    )


@pytest.fixture
def test_credentials_file(tmp_path):
    """Create a placeholder service account file."""
    creds_file = tmp_path / "service-account.json"
    creds_file.write_text('{"type": "service_account", "project_id": "gc-test"}')
    return str(creds_file)


@pytest.fixture
def fcm_config(test_credentials_file):
    """Create a test FCM configuration."""
    return FCMConfig(
        project_id="gc-test",
        credentials_path=test_credentials_file,
    )


# =============================================================================
# Database Session Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_session():
    """
    Create an in-memory SQLite database for testing

    Yields:
        SQLAlchemy Session for test database

    Cleanup:
        Drops all tables after test completes
    """
    import groundcontrol.models  # noqa: F401

    # Create in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False}
    )

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()
