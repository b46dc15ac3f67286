"""
Models for the push gateways.

Configuration and payload models are Pydantic; delivery artifacts and
outcomes are plain dataclasses.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from groundcontrol.core.config import Settings


class DeliveryStatus(str, Enum):
    """Classification of a single delivery attempt."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of classifying a gateway response.

    A terminal failure means the gateway proved the device token dead;
    anything not proven terminal is transient and safe to retry later.
    """

    status: DeliveryStatus
    reason: Optional[str] = None

    @classmethod
    def succeeded(cls) -> "DeliveryOutcome":
        return cls(DeliveryStatus.SUCCESS)

    @classmethod
    def transient(cls, reason: str) -> "DeliveryOutcome":
        return cls(DeliveryStatus.TRANSIENT_FAILURE, reason)

    @classmethod
    def terminal(cls, reason: str) -> "DeliveryOutcome":
        return cls(DeliveryStatus.TERMINAL_FAILURE, reason)

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.SUCCESS

    @property
    def is_terminal(self) -> bool:
        return self.status == DeliveryStatus.TERMINAL_FAILURE


@dataclass
class APNSRawResponse:
    """Everything captured from one APNS HTTP/2 exchange.

    Attributes:
        headers: Response headers, with the status under ":status"
        body: Concatenated response body chunks
        error: Transport error text when the request failed
    """

    headers: Dict[str, Any] = field(default_factory=dict)
    body: str = ""
    error: Optional[str] = None

    @property
    def status_code(self) -> Optional[int]:
        return self.headers.get(":status")

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten into the shape stored in the audit log."""
        result = dict(self.headers)
        result["data"] = self.body
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class FCMRawResponse:
    """Everything captured from one FCM HTTP v1 send call.

    Attributes:
        status_code: HTTP status, None when no response arrived
        text: Response body (empty when unreadable)
        error: Transport error text when the request failed
    """

    status_code: Optional[int] = None
    text: str = ""
    error: Optional[str] = None

    def to_log_text(self) -> str:
        """Response body as stored in the audit log, or the transport error."""
        if self.error is not None and not self.text:
            return json.dumps({"error": self.error})
        return self.text


class APNSConfig(BaseModel):
    """Configuration for APNS provider.

    Attributes:
        key_file: Path to the .p8 auth key file
        key_pem: PEM contents of the .p8 key (alternative to key_file)
        key_id: 10-character key identifier from Apple Developer Portal
        team_id: 10-character team identifier
        topic: App bundle identifier sent as apns-topic
        use_sandbox: Whether to use sandbox environment (development)
    """

    key_file: Optional[str] = Field(None, description="Path to .p8 auth key file")
    key_pem: Optional[str] = Field(None, description="PEM contents of the .p8 key")
    key_id: str = Field(..., min_length=10, max_length=10, description="10-character key ID")
    team_id: str = Field(..., min_length=10, max_length=10, description="10-character team ID")
    topic: str = Field(..., min_length=1, description="App bundle identifier")
    use_sandbox: bool = Field(default=False, description="Use sandbox environment")

    @field_validator("key_id", "team_id")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Validate that identifiers are alphanumeric."""
        if not v.isalnum():
            raise ValueError("Must be alphanumeric")
        return v.upper()

    @model_validator(mode="after")
    def require_key_material(self) -> "APNSConfig":
        if not self.key_file and not self.key_pem:
            raise ValueError("Either key_file or key_pem is required")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "APNSConfig":
        """Build from settings; APNS_P8 holds the hex-encoded key file."""
        key_pem = None
        if settings.APNS_P8:
            key_pem = bytes.fromhex(settings.APNS_P8.strip()).decode("utf-8")
        return cls(
            key_file=settings.APNS_KEY_FILE,
            key_pem=key_pem,
            key_id=settings.APNS_KEY_ID,
            team_id=settings.APNS_TEAM_ID,
            topic=settings.APNS_TOPIC,
            use_sandbox=settings.APNS_USE_SANDBOX,
        )


class APNSAlert(BaseModel):
    """APNS alert payload structure."""

    title: str = Field(..., description="Alert title")
    body: str = Field(..., description="Alert body text")


class APNSPayload(BaseModel):
    """APNS notification payload.

    Attributes:
        alert: Title and body shown by the system
        badge: App icon badge number
        sound: Sound filename or "default"
        data: App-visible event fields (string values)
    """

    alert: APNSAlert
    badge: int = Field(default=0, ge=0, description="Badge number")
    sound: str = Field(default="default", description="Sound name or 'default'")
    data: Dict[str, str] = Field(default_factory=dict, description="Event data")

    def to_apns_dict(self) -> Dict[str, Any]:
        """Convert to the JSON body sent to APNS."""
        return {
            "aps": {
                "badge": self.badge,
                "alert": {
                    "title": self.alert.title,
                    "body": self.alert.body,
                },
                "sound": self.sound,
            },
            "data": dict(self.data),
        }


# =============================================================================
# FCM (Firebase Cloud Messaging) Models
# =============================================================================


class FCMConfig(BaseModel):
    """Configuration for FCM provider.

    Attributes:
        project_id: Firebase project ID
        credentials_path: Path to the service account JSON file
    """

    project_id: str = Field(..., min_length=1, description="Firebase project ID")
    credentials_path: str = Field(..., description="Path to service account JSON file")

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Validate that credentials path is not empty."""
        if not v or not v.strip():
            raise ValueError("credentials_path cannot be empty")
        return v

    @classmethod
    def from_settings(cls, settings: Settings) -> "FCMConfig":
        return cls(
            project_id=settings.GOOGLE_PROJECT_ID,
            credentials_path=settings.GOOGLE_KEY_FILE,
        )


class FCMPayload(BaseModel):
    """FCM notification payload.

    The title and body are rendered by the system; the data map repeats
    them so the app can act on tap. The tag makes Android replace an
    earlier notification about the same subject.

    Attributes:
        title: Notification title
        body: Notification body text
        data: Custom data payload (FCM requires string values)
        tag: Notification tag (collapse key), None for no coalescing
    """

    title: str = Field(..., description="Notification title")
    body: str = Field(..., description="Notification body text")
    data: Dict[str, str] = Field(default_factory=dict, description="Custom data payload")
    tag: Optional[str] = Field(None, description="Notification tag for collapsing")

    def to_message(self, device_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Build the ``message`` object of an FCM v1 send request.

        Args:
            device_token: Registration token; omitted for audit copies
        """
        message: Dict[str, Any] = {}
        if device_token is not None:
            message["token"] = device_token
        message["notification"] = {
            "title": self.title,
            "body": self.body,
        }
        if self.tag:
            message["android"] = {"notification": {"tag": self.tag}}
        message["data"] = dict(self.data)
        return message

