"""Push event Pydantic schemas

A PushEvent is a closed tagged union discriminated by the integer ``type``
field. Every variant lists the fields that are copied into the app-visible
data map of a notification; the list is checked against the declared
fields when the class is created, so a renamed or added field cannot be
silently dropped from (or leaked into) the payload.
"""
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class DevicePlatform(str, Enum):
    """Supported device platforms."""
    IOS = "ios"
    ANDROID = "android"


class NotificationLevel(str, Enum):
    """Notification category a subscriber can opt in to."""
    TRANSACTIONS = "transactions"
    PRICE = "price"
    NEWS = "news"
    TIPS = "tips"


class PushEventType(int, Enum):
    """Wire values of the ``type`` discriminator."""
    LIGHTNING_INVOICE_PAID = 1
    ONCHAIN_ADDRESS_PAID = 2
    ONCHAIN_ADDRESS_UNCONFIRMED_TX = 3
    ONCHAIN_TX_CONFIRMED = 4
    MESSAGE = 5


# Transport fields: needed to route the notification, never shown to the app
TRANSPORT_FIELDS = frozenset({"token", "os", "badge", "level"})


class PushEventBase(BaseModel):
    """Fields shared by every push event variant."""

    model_config = ConfigDict(frozen=True)

    # Fields copied into notification data maps, in order
    DATA_FIELDS: ClassVar[Tuple[str, ...]] = ()

    token: str = Field(..., min_length=1, description="Destination device token")
    os: DevicePlatform = Field(..., description="Destination platform")
    badge: int = Field(default=0, ge=0, description="App icon badge count")
    level: NotificationLevel = Field(
        default=NotificationLevel.TRANSACTIONS,
        description="Notification category"
    )

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        declared = set(cls.model_fields) - TRANSPORT_FIELDS
        listed = set(cls.DATA_FIELDS)
        if listed != declared:
            raise TypeError(
                f"{cls.__name__}.DATA_FIELDS must list exactly {sorted(declared)}, "
                f"got {sorted(listed)}"
            )

    @field_validator("token")
    @classmethod
    def strip_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("token cannot be empty")
        return v

    @property
    def collapse_key(self) -> Optional[str]:
        """Identifier the gateways use to coalesce notifications about one subject."""
        return None

    def data_fields(self) -> Dict[str, Any]:
        """Return the app-visible fields of this event, keyed by name."""
        return {name: getattr(self, name) for name in self.DATA_FIELDS}


class LightningInvoicePaid(PushEventBase):
    """A lightning invoice the subscriber created has been paid."""

    DATA_FIELDS: ClassVar[Tuple[str, ...]] = ("type", "sat", "hash", "memo")

    type: Literal[1] = PushEventType.LIGHTNING_INVOICE_PAID.value
    sat: int = Field(..., ge=0, description="Amount paid in satoshis")
    hash: str = Field(..., min_length=1, description="Payment hash of the invoice")
    memo: Optional[str] = Field(default=None, description="Invoice description")

    @property
    def collapse_key(self) -> Optional[str]:
        return self.hash


class OnchainAddressPaid(PushEventBase):
    """A watched address received a confirmed payment."""

    DATA_FIELDS: ClassVar[Tuple[str, ...]] = ("type", "sat", "address", "txid")

    type: Literal[2] = PushEventType.ONCHAIN_ADDRESS_PAID.value
    sat: int = Field(..., ge=0, description="Amount received in satoshis")
    address: str = Field(..., min_length=1)
    txid: str = Field(..., min_length=1)

    @property
    def collapse_key(self) -> Optional[str]:
        return self.txid


class OnchainAddressUnconfirmedTx(PushEventBase):
    """A watched address appears in an unconfirmed (mempool) transaction."""

    DATA_FIELDS: ClassVar[Tuple[str, ...]] = ("type", "sat", "address", "txid")

    type: Literal[3] = PushEventType.ONCHAIN_ADDRESS_UNCONFIRMED_TX.value
    sat: int = Field(..., ge=0, description="Amount received in satoshis")
    address: str = Field(..., min_length=1)
    txid: str = Field(..., min_length=1)

    @property
    def collapse_key(self) -> Optional[str]:
        return self.txid


class OnchainTxConfirmed(PushEventBase):
    """A watched transaction got its first confirmation."""

    DATA_FIELDS: ClassVar[Tuple[str, ...]] = ("type", "txid")

    type: Literal[4] = PushEventType.ONCHAIN_TX_CONFIRMED.value
    txid: str = Field(..., min_length=1)

    @property
    def collapse_key(self) -> Optional[str]:
        return self.txid


class Message(PushEventBase):
    """Free-text message to the subscriber."""

    DATA_FIELDS: ClassVar[Tuple[str, ...]] = ("type", "text")

    type: Literal[5] = PushEventType.MESSAGE.value
    text: str = Field(..., description="Message body")


PushEvent = Annotated[
    Union[
        LightningInvoicePaid,
        OnchainAddressPaid,
        OnchainAddressUnconfirmedTx,
        OnchainTxConfirmed,
        Message,
    ],
    Field(discriminator="type"),
]

_push_event_adapter: TypeAdapter = TypeAdapter(PushEvent)


def parse_push_event(data: Dict[str, Any]) -> PushEventBase:
    """
    Validate a raw event dictionary into its PushEvent variant.

    Args:
        data: Decoded JSON event, ``type`` selects the variant

    Returns:
        The matching PushEvent variant instance

    Raises:
        pydantic.ValidationError: unknown type or missing/invalid fields
    """
    return _push_event_adapter.validate_python(data)
