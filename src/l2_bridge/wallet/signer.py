"""Wallet signing provider — personal messages and transactions.

``WalletSigner`` is the seam to whatever holds the chain account key
(browser wallet bridge, hardware wallet, local key). Both signing calls
are suspension points: an interactive wallet may wait on human approval
for as long as it likes, and a refusal surfaces as ``SigningRejected``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from l2_bridge.errors.definitions import ValidationError

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount


class WalletSigner(Protocol):
    """Protocol for chain-account signing backends."""

    @property
    def address(self) -> str: ...

    async def sign_message(self, message: str) -> str: ...

    async def sign_transaction(self, tx: dict[str, Any]) -> bytes: ...


class LocalWalletSigner:
    """Headless signer backed by an in-process eth-account key."""

    def __init__(self, private_key: str) -> None:
        """Initialize from a hex private key.

        Raises:
            ValidationError: If the key cannot be parsed.
        """
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as exc:
            msg = "invalid wallet private key"
            raise ValidationError(msg) from exc

    @property
    def address(self) -> str:
        """Checksum address of the account."""
        return self._account.address

    async def sign_message(self, message: str) -> str:  # noqa: ASYNC910
        """EIP-191 personal-message signature as 0x-prefixed hex."""
        signed = self._account.sign_message(encode_defunct(text=message))
        return Web3.to_hex(signed.signature)

    async def sign_transaction(self, tx: dict[str, Any]) -> bytes:  # noqa: ASYNC910
        """Sign a transaction dict, returning the raw encoded transaction."""
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)


def recover_message_signer(message: str, signature: str) -> str:
    """Recover the checksum address that produced an EIP-191 *signature*."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def verify_account_signature(address: str, message: str, signature: str) -> bool:
    """Check that *signature* over *message* was made by *address*."""
    try:
        recovered = recover_message_signer(message, signature)
    except Exception:  # noqa: BLE001
        return False
    return recovered.lower() == address.lower()
