"""
Tests for Push Dispatch Service.

Both gateways are served by httpx.MockTransport; the database is the
in-memory db_session fixture.
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError

from groundcontrol.core.config import ConfigurationError, Settings
from groundcontrol.core.logging_config import get_dispatch_id
from groundcontrol.core.metrics import push_deliveries_total
from groundcontrol.models.push_log import PushLog
from groundcontrol.schemas.push import (
    LightningInvoicePaid,
    Message,
    OnchainAddressPaid,
    OnchainTxConfirmed,
)
from groundcontrol.services.push.apns_provider import APNSProvider
from groundcontrol.services.push.credentials import (
    APNSTokenCache,
    CredentialError,
    FCMCredentialSource,
)
from groundcontrol.services.push.dispatch_service import (
    DispatchResult,
    PushDispatchService,
    build_dispatch_service,
)
from groundcontrol.services.push.fcm_provider import FCMProvider
from groundcontrol.services.push.models import DeliveryStatus
from tests.conftest import (
    ANDROID_TOKEN,
    IOS_TOKEN,
    TXID,
    count_subscriptions,
    make_event,
    make_subscriptions,
)


class GatewayStub:
    """Records requests and answers with a fixed response."""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, Exception):
            raise self.body
        if self.body is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.body)


@pytest.fixture
def fcm_gateway():
    return GatewayStub(200, {"name": "projects/gc-test/messages/0:1"})


@pytest.fixture
def apns_gateway():
    return GatewayStub(200, None)


@pytest.fixture
def fcm_credential():
    credential = MagicMock()
    credential.get_access_token.return_value = MagicMock(access_token="ya29.test")
    return credential


@pytest.fixture
def service(db_session, apns_config, fcm_config, apns_gateway, fcm_gateway, fcm_credential):
    return PushDispatchService(
        db=db_session,
        apns_provider=APNSProvider(apns_config, transport=httpx.MockTransport(apns_gateway)),
        fcm_provider=FCMProvider(fcm_config, transport=httpx.MockTransport(fcm_gateway)),
        apns_tokens=APNSTokenCache(apns_config),
        fcm_credentials=FCMCredentialSource(fcm_config, credential=fcm_credential),
        timeout=1.0,
    )


def audit_rows(db_session):
    return db_session.query(PushLog).all()


class TestDispatchFCM:
    @pytest.mark.asyncio
    async def test_address_paid_success(self, service, db_session, fcm_gateway):
        make_subscriptions(db_session, ANDROID_TOKEN)
        event = make_event(OnchainAddressPaid, sat=1000)

        result = await service.dispatch(event)

        assert isinstance(result, DispatchResult)
        assert result.success
        assert result.outcome.status == DeliveryStatus.SUCCESS
        assert result.platform == "android"
        assert result.invalidated_rows == 0

        message = json.loads(fcm_gateway.requests[0].content)["message"]
        assert message["notification"]["title"] == "+1000 sats"
        assert message["notification"]["body"] == "Received on bc1qx…0wlh"
        assert message["android"]["notification"]["tag"] == TXID
        assert fcm_gateway.requests[0].headers["authorization"] == "Bearer ya29.test"

        rows = audit_rows(db_session)
        assert len(rows) == 1
        assert rows[0].success is True
        assert rows[0].os == "android"
        assert "token" not in json.loads(rows[0].payload)["message"]
        assert json.loads(rows[0].response)["name"].startswith("projects/")

        assert count_subscriptions(db_session, ANDROID_TOKEN) == 3

    @pytest.mark.asyncio
    async def test_404_invalidates_token(self, service, db_session, fcm_gateway):
        fcm_gateway.status_code = 404
        fcm_gateway.body = {"error": {"code": 404, "status": "NOT_FOUND"}}
        make_subscriptions(db_session, ANDROID_TOKEN, addresses=("a1", "a2"))

        result = await service.dispatch(make_event(Message))

        assert result.outcome.status == DeliveryStatus.TERMINAL_FAILURE
        assert result.invalidated_rows == 4
        assert count_subscriptions(db_session, ANDROID_TOKEN) == 0

        rows = audit_rows(db_session)
        assert len(rows) == 1
        assert rows[0].success is False

    @pytest.mark.asyncio
    async def test_unregistered_detail_invalidates_token(self, service, db_session, fcm_gateway):
        fcm_gateway.status_code = 400
        fcm_gateway.body = {"error": {"code": 400, "details": [{"errorCode": "UNREGISTERED"}]}}
        make_subscriptions(db_session, ANDROID_TOKEN)

        result = await service.dispatch(make_event(OnchainTxConfirmed))

        assert result.outcome.is_terminal
        assert count_subscriptions(db_session, ANDROID_TOKEN) == 0

    @pytest.mark.asyncio
    async def test_server_error_keeps_subscriptions(self, service, db_session, fcm_gateway):
        fcm_gateway.status_code = 503
        fcm_gateway.body = {"error": {"code": 503, "status": "UNAVAILABLE"}}
        make_subscriptions(db_session, ANDROID_TOKEN)

        result = await service.dispatch(make_event(Message))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert count_subscriptions(db_session, ANDROID_TOKEN) == 3
        assert audit_rows(db_session)[0].success is False

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self, service, db_session, fcm_gateway):
        fcm_gateway.body = httpx.ConnectError("Connection refused")
        make_subscriptions(db_session, ANDROID_TOKEN)

        result = await service.dispatch(make_event(Message))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert count_subscriptions(db_session, ANDROID_TOKEN) == 3
        rows = audit_rows(db_session)
        assert len(rows) == 1
        assert "Connection refused" in rows[0].response

    @pytest.mark.asyncio
    async def test_credential_failure_is_transient(self, service, db_session, fcm_gateway, fcm_credential):
        fcm_credential.get_access_token.side_effect = RuntimeError("invalid_grant")

        result = await service.dispatch(make_event(Message))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert "invalid_grant" in result.outcome.reason
        assert fcm_gateway.requests == []
        rows = audit_rows(db_session)
        assert len(rows) == 1
        assert "invalid_grant" in json.loads(rows[0].response)["error"]


class TestDispatchAPNS:
    @pytest.mark.asyncio
    async def test_success(self, service, db_session, apns_gateway):
        event = make_event(LightningInvoicePaid, os="ios", badge=2)

        result = await service.dispatch(event)

        assert result.success
        request = apns_gateway.requests[0]
        assert request.url.path == f"/3/device/{IOS_TOKEN}"
        assert request.headers["apns-collapse-id"] == event.hash
        assert request.headers["authorization"].startswith("bearer ")

        rows = audit_rows(db_session)
        assert len(rows) == 1
        assert rows[0].success is True
        assert json.loads(rows[0].payload)["aps"]["badge"] == 2
        assert json.loads(rows[0].response)[":status"] == 200

    @pytest.mark.asyncio
    async def test_410_unregistered_invalidates(self, service, db_session, apns_gateway):
        apns_gateway.status_code = 410
        apns_gateway.body = {"reason": "Unregistered"}
        make_subscriptions(db_session, IOS_TOKEN, os="ios")

        result = await service.dispatch(make_event(Message, os="ios"))

        assert result.outcome.status == DeliveryStatus.TERMINAL_FAILURE
        assert result.outcome.reason == "Unregistered"
        assert count_subscriptions(db_session, IOS_TOKEN) == 0
        assert audit_rows(db_session)[0].success is False

    @pytest.mark.asyncio
    async def test_expired_provider_token_is_transient(self, service, db_session, apns_gateway):
        apns_gateway.status_code = 403
        apns_gateway.body = {"reason": "ExpiredProviderToken"}
        make_subscriptions(db_session, IOS_TOKEN, os="ios")

        result = await service.dispatch(make_event(Message, os="ios"))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert count_subscriptions(db_session, IOS_TOKEN) == 3

    @pytest.mark.asyncio
    async def test_unexpected_reason_shape_keeps_gateway_response(self, service, db_session, apns_gateway):
        apns_gateway.status_code = 400
        apns_gateway.body = {"reason": ["BadTopic"]}
        make_subscriptions(db_session, IOS_TOKEN, os="ios")

        result = await service.dispatch(make_event(Message, os="ios"))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert count_subscriptions(db_session, IOS_TOKEN) == 3
        response = json.loads(audit_rows(db_session)[0].response)
        assert response[":status"] == 400
        assert "BadTopic" in response["data"]

    @pytest.mark.asyncio
    async def test_unreadable_key_is_transient(self, db_session, apns_config, fcm_config, tmp_path):
        broken = apns_config.model_copy(update={"key_file": str(tmp_path / "gone.p8")})
        service = PushDispatchService(
            db=db_session,
            apns_provider=APNSProvider(broken, transport=httpx.MockTransport(GatewayStub())),
            fcm_provider=FCMProvider(fcm_config, transport=httpx.MockTransport(GatewayStub())),
            apns_tokens=APNSTokenCache(broken),
            fcm_credentials=FCMCredentialSource(fcm_config, credential=MagicMock()),
        )

        result = await service.dispatch(make_event(Message, os="ios"))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert len(audit_rows(db_session)) == 1


class TestDispatchTimeout:
    @pytest.mark.asyncio
    async def test_slow_gateway_is_transient(self, db_session, apns_config, fcm_config, fcm_credential):
        async def slow_deliver(*args, **kwargs):
            await asyncio.sleep(5)

        fcm_provider = MagicMock(spec=FCMProvider)
        fcm_provider.deliver = AsyncMock(side_effect=slow_deliver)

        service = PushDispatchService(
            db=db_session,
            apns_provider=MagicMock(spec=APNSProvider),
            fcm_provider=fcm_provider,
            apns_tokens=APNSTokenCache(apns_config),
            fcm_credentials=FCMCredentialSource(fcm_config, credential=fcm_credential),
            timeout=0.05,
        )

        result = await service.dispatch(make_event(Message))

        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert result.outcome.reason == "timeout"
        assert len(audit_rows(db_session)) == 1

    @pytest.mark.asyncio
    async def test_slow_credential_is_transient(self, service, db_session, fcm_gateway, fcm_credential):
        def slow_access_token():
            time.sleep(0.5)
            return MagicMock(access_token="ya29.late")

        fcm_credential.get_access_token.side_effect = slow_access_token
        service.timeout = 0.05
        started = time.monotonic()

        result = await service.dispatch(make_event(Message))

        assert time.monotonic() - started < 0.4
        assert result.outcome.status == DeliveryStatus.TRANSIENT_FAILURE
        assert result.outcome.reason == "timeout"
        assert fcm_gateway.requests == []
        assert len(audit_rows(db_session)) == 1


class TestAuditAndMetrics:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,body,expected", [
        (200, {"name": "projects/x/messages/1"}, True),
        (404, {"error": {"code": 404}}, False),
        (500, {"error": {"code": 500}}, False),
    ])
    async def test_exactly_one_audit_row(self, service, db_session, fcm_gateway, status_code, body, expected):
        fcm_gateway.status_code = status_code
        fcm_gateway.body = body

        result = await service.dispatch(make_event(Message))

        rows = audit_rows(db_session)
        assert len(rows) == 1
        assert rows[0].success is expected
        assert result.success is expected

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_raise(self, service, db_session, monkeypatch):
        commit = MagicMock(side_effect=SQLAlchemyError("database is locked"))
        monkeypatch.setattr(db_session, "commit", commit)

        result = await service.dispatch(make_event(Message))

        assert result.success
        commit.assert_called_once()
        monkeypatch.undo()
        assert audit_rows(db_session) == []

    @pytest.mark.asyncio
    async def test_delivery_counted(self, service):
        counter = push_deliveries_total.labels(platform="android", outcome="success")
        before = counter._value.get()

        await service.dispatch(make_event(Message))

        assert counter._value.get() == before + 1

    @pytest.mark.asyncio
    async def test_dispatch_id_cleared_afterwards(self, service):
        await service.dispatch(make_event(Message))
        assert get_dispatch_id() is None


class TestDispatchMany:
    @pytest.mark.asyncio
    async def test_results_in_input_order(self, service, db_session):
        events = [
            make_event(Message, token=f"fcm-token-{i}", text=f"message {i}")
            for i in range(5)
        ]

        results = await service.dispatch_many(events, concurrency=2)

        assert [r.token for r in results] == [e.token for e in events]
        assert all(r.success for r in results)
        assert db_session.query(PushLog).count() == 5

    @pytest.mark.asyncio
    async def test_mixed_platforms(self, service, apns_gateway, fcm_gateway):
        events = [make_event(Message), make_event(Message, os="ios")]

        results = await service.dispatch_many(events)

        assert [r.platform for r in results] == ["android", "ios"]
        assert len(apns_gateway.requests) == 1
        assert len(fcm_gateway.requests) == 1

    @pytest.mark.asyncio
    async def test_empty(self, service):
        assert await service.dispatch_many([]) == []


class TestBuildDispatchService:
    def test_missing_configuration_fails_fast(self, db_session):
        settings = Settings(_env_file=None, GOOGLE_PROJECT_ID="gc-test")

        with pytest.raises(ConfigurationError) as exc_info:
            build_dispatch_service(settings, db_session)

        assert "APNS_KEY_ID" in exc_info.value.missing
        assert "APNS_TOPIC" in exc_info.value.missing

    def test_invalid_key_id_rejected(self, db_session, test_key_file, test_credentials_file):
        settings = Settings(
            _env_file=None,
            GOOGLE_PROJECT_ID="gc-test",
            GOOGLE_KEY_FILE=test_credentials_file,
            APNS_KEY_FILE=test_key_file,
            APNS_KEY_ID="SHORT",
            APNS_TEAM_ID="TEAMID1234",
            APNS_TOPIC="io.groundcontrol.test",
        )

        with pytest.raises(ConfigurationError):
            build_dispatch_service(settings, db_session)

    @pytest.mark.asyncio
    async def test_builds_from_hex_key(self, db_session, p8_pem, test_credentials_file):
        settings = Settings(
            _env_file=None,
            GOOGLE_PROJECT_ID="gc-test",
            GOOGLE_KEY_FILE=test_credentials_file,
            APNS_P8=p8_pem.encode("utf-8").hex(),
            APNS_KEY_ID="KEYID12345",
            APNS_TEAM_ID="TEAMID1234",
            APNS_TOPIC="io.groundcontrol.test",
            PUSH_REQUEST_TIMEOUT_SECONDS=2.5,
        )

        async with build_dispatch_service(settings, db_session) as service:
            assert isinstance(service, PushDispatchService)
            assert service.timeout == 2.5
            assert service._apns_tokens.get_token()
