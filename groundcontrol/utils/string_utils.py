"""Helpers for rendering identifiers in notification text"""

ELLIPSIS = "…"

ADDRESS_MAX_LENGTH = 12
ADDRESS_PREFIX = 5
ADDRESS_SUFFIX = 4

TXID_MAX_LENGTH = 16
TXID_PREFIX = 6
TXID_SUFFIX = 6


def shorten(value: str, max_length: int, prefix: int, suffix: int) -> str:
    """
    Keep the head and tail of ``value`` around an ellipsis.

    Values of at most ``max_length`` characters are returned unchanged.
    """
    if len(value) <= max_length:
        return value
    return f"{value[:prefix]}{ELLIPSIS}{value[-suffix:]}"


def shorten_address(address: str) -> str:
    """Shorten an on-chain address for display, e.g. bc1qx…9xyz."""
    return shorten(address, ADDRESS_MAX_LENGTH, ADDRESS_PREFIX, ADDRESS_SUFFIX)


def shorten_txid(txid: str) -> str:
    """Shorten a transaction id for display."""
    return shorten(txid, TXID_MAX_LENGTH, TXID_PREFIX, TXID_SUFFIX)
