"""Address and amount helpers shared by the bridge services."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from web3 import Web3

from l2_bridge.errors.definitions import ValidationError

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_address(address: str) -> str:
    """Return the EIP-55 checksum form of *address*.

    Raises:
        ValidationError: If *address* is not a 20-byte hex address.
    """
    value = (address or "").strip()
    if not Web3.is_address(value):
        msg = f"invalid address: {address!r}"
        raise ValidationError(msg)
    return Web3.to_checksum_address(value)


def same_address(a: str, b: str) -> bool:
    """Case-insensitive address comparison."""
    return a.lower() == b.lower()


def parse_amount(value: int | str | Decimal) -> int:
    """Parse an amount in the smallest unit (wei).

    Integers and integer strings are taken as-is.

    Raises:
        ValidationError: If the value is not a positive integer.
    """
    if isinstance(value, bool):
        msg = "amount must be an integer number of wei"
        raise ValidationError(msg)
    try:
        if isinstance(value, (Decimal, float)) and value != int(value):
            msg = f"amount must be a whole number of wei: {value}"
            raise ValidationError(msg)
        amount = int(value)
    except (TypeError, ValueError, InvalidOperation, OverflowError) as exc:
        msg = f"invalid amount: {value!r}"
        raise ValidationError(msg) from exc
    if amount <= 0:
        msg = "amount must be greater than zero"
        raise ValidationError(msg)
    return amount


def format_ether(wei: int) -> str:
    """Render a wei amount as a decimal ether string."""
    return f"{Decimal(Web3.from_wei(wei, 'ether')):f}"


def validate_tx_hash(tx_hash: str) -> str:
    """Check *tx_hash* is ``0x`` followed by 64 hex characters."""
    value = (tx_hash or "").strip()
    if not _TX_HASH_RE.match(value):
        msg = "transaction hash must be 0x followed by 64 hex characters"
        raise ValidationError(msg)
    return value
