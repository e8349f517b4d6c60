"""L1 bridge contract client — deposits, claims, escape hatch.

Wraps the bridge contract through web3's ``AsyncWeb3``. Every state-changing
call follows the same path: build the transaction, have the wallet sign it,
broadcast, then wait for the receipt. The receipt wait has no deadline; a
slow chain is not a failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from l2_bridge.errors.chain_errors import ClaimFailureKind, ClaimReverted, TransactionFailed
from l2_bridge.errors.definitions import NetworkError, SigningRejected, ValidationError
from l2_bridge.utils.units import normalize_address, parse_amount

if TYPE_CHECKING:
    from collections.abc import Sequence

    from l2_bridge.config.settings import ChainConfig
    from l2_bridge.wallet.signer import WalletSigner

logger = logging.getLogger(__name__)

BRIDGE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "deposit",
        "stateMutability": "payable",
        "inputs": [],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "withdraw",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amount", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
            {"name": "batchId", "type": "uint256"},
            {"name": "proof", "type": "bytes32[]"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "initiateForceWithdrawal",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amount", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "proveCensorship",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "user", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
        ],
        "outputs": [],
    },
]

# EIP-1193 "user rejected request"
_USER_REJECTED_CODE = 4001
_USER_REJECTED_CODE_RE = re.compile(r"[\"']?code[\"']?\s*[:=]\s*4001\b")

# Revert reason fragments, checked in order
_REASON_MAP: tuple[tuple[tuple[str, ...], ClaimFailureKind], ...] = (
    (("user rejected", "user denied", "action_rejected"), ClaimFailureKind.USER_REJECTED),
    (("insufficient funds",), ClaimFailureKind.INSUFFICIENT_FUNDS),
    (("out of gas", "intrinsic gas too low"), ClaimFailureKind.OUT_OF_GAS),
    (("invalid proof", "invalid merkle proof"), ClaimFailureKind.INVALID_PROOF),
    (
        ("already processed", "already withdrawn", "already claimed", "nonce already used"),
        ClaimFailureKind.ALREADY_PROCESSED,
    ),
)


def _error_code(error: BaseException | str) -> int | None:
    """Numeric provider error code carried by *error*, if any."""
    if isinstance(error, str):
        return None
    code = getattr(error, "code", None)
    if code is None and error.args and isinstance(error.args[0], dict):
        code = error.args[0].get("code")
    return code if isinstance(code, int) else None


def classify_failure(error: BaseException | str) -> ClaimFailureKind:
    """Map a wallet/RPC/contract error to a :class:`ClaimFailureKind`."""
    if isinstance(error, SigningRejected) or _error_code(error) == _USER_REJECTED_CODE:
        return ClaimFailureKind.USER_REJECTED
    text = str(error).lower()
    if _USER_REJECTED_CODE_RE.search(text):
        return ClaimFailureKind.USER_REJECTED
    for fragments, kind in _REASON_MAP:
        if any(f in text for f in fragments):
            return kind
    return ClaimFailureKind.REVERTED


@dataclass(frozen=True)
class TxReceipt:
    """Mined transaction summary."""

    tx_hash: str
    block_number: int
    gas_used: int
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class BridgeContract:
    """Async client for the L1 bridge contract.

    Usage::

        bridge = BridgeContract(config, signer)
        await bridge.connect()
        receipt = await bridge.deposit(10**16)
    """

    def __init__(
        self,
        config: ChainConfig,
        signer: WalletSigner,
        *,
        web3: AsyncWeb3 | None = None,
    ) -> None:
        self._config = config
        self._signer = signer
        self._web3 = web3
        self._owns_web3 = web3 is None
        self._contract: Any = None

    async def connect(self, bridge_address: str | None = None) -> None:
        """Create the web3 provider and bind the contract.

        Args:
            bridge_address: Overrides ``config.bridge_address`` (e.g. the
                address advertised by the relay).

        Raises:
            ValidationError: No bridge address configured.
        """
        address = bridge_address or self._config.bridge_address
        if not address:
            msg = "bridge contract address not configured"
            raise ValidationError(msg)
        if self._web3 is None:
            self._web3 = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(
                    self._config.rpc_url,
                    request_kwargs={"timeout": self._config.request_timeout},
                )
            )
        self._contract = self._web3.eth.contract(address=normalize_address(address), abi=BRIDGE_ABI)
        logger.info("Bridge contract bound at %s", address)

    async def close(self) -> None:
        if self._web3 is not None and self._owns_web3:
            await self._web3.provider.disconnect()
            self._web3 = None
        self._contract = None

    @property
    def is_connected(self) -> bool:
        return self._contract is not None

    @property
    def address(self) -> str:
        return self._ensure_connected().address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self) -> int:
        """L1 balance held by the bridge contract, in wei."""
        contract = self._ensure_connected()
        return await self._call_rpc(self._w3.eth.get_balance(contract.address), "get_balance")

    async def get_account_balance(self, address: str) -> int:
        """L1 balance of *address*, in wei."""
        return await self._call_rpc(
            self._w3.eth.get_balance(normalize_address(address)), "get_account_balance"
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def deposit(self, amount: int) -> TxReceipt:
        """Lock *amount* wei in the bridge for credit on L2."""
        amount = parse_amount(amount)
        contract = self._ensure_connected()
        return await self._transact(contract.functions.deposit(), "deposit", value=amount)

    async def withdraw(
        self,
        amount: int,
        nonce: int,
        batch_id: int,
        proof: Sequence[str],
    ) -> TxReceipt:
        """Claim a batched withdrawal on L1.

        Raises:
            ClaimReverted: The claim did not land; ``kind`` says why.
        """
        contract = self._ensure_connected()
        fn = contract.functions.withdraw(amount, nonce, batch_id, list(proof))
        try:
            return await self._transact(fn, "withdraw")
        except TransactionFailed as exc:
            raise ClaimReverted(exc.kind, exc.detail, tx_hash=exc.tx_hash) from exc

    async def initiate_force_withdrawal(self, amount: int, nonce: int) -> TxReceipt:
        """Escape hatch: request a withdrawal directly on L1."""
        contract = self._ensure_connected()
        fn = contract.functions.initiateForceWithdrawal(parse_amount(amount), nonce)
        return await self._transact(fn, "initiate_force_withdrawal")

    async def prove_censorship(self, user: str, amount: int, nonce: int) -> TxReceipt:
        """Escape hatch: prove the relay ignored a forced withdrawal."""
        contract = self._ensure_connected()
        fn = contract.functions.proveCensorship(normalize_address(user), parse_amount(amount), nonce)
        return await self._transact(fn, "prove_censorship")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _w3(self) -> AsyncWeb3:
        if self._web3 is None:
            msg = "Bridge contract not connected. Call connect() first."
            raise ValidationError(msg)
        return self._web3

    def _ensure_connected(self) -> Any:
        if self._contract is None:
            msg = "Bridge contract not connected. Call connect() first."
            raise ValidationError(msg)
        return self._contract

    @staticmethod
    async def _call_rpc(awaitable: Any, operation: str) -> Any:
        try:
            return await awaitable
        except (Web3Exception, OSError) as exc:
            raise NetworkError(f"RPC {operation} failed: {exc}") from exc

    async def _transact(self, fn: Any, operation: str, *, value: int = 0) -> TxReceipt:
        """Build, sign, broadcast and await one contract transaction."""
        w3 = self._w3
        sender = self._signer.address
        params: dict[str, Any] = {"from": sender, "value": value}

        try:
            gas_estimate = await fn.estimate_gas(params)
            params["gas"] = int(gas_estimate * 1.2)
            params["nonce"] = await w3.eth.get_transaction_count(sender, "pending")
            params["chainId"] = self._config.chain_id
            tx = await fn.build_transaction(params)
        except (ContractLogicError, Web3Exception, ValueError) as exc:
            kind = classify_failure(exc)
            logger.warning("%s failed before broadcast: %s (%s)", operation, kind, exc)
            raise TransactionFailed(kind, str(exc)) from exc

        try:
            raw = await self._signer.sign_transaction(tx)
        except SigningRejected as exc:
            raise TransactionFailed(ClaimFailureKind.USER_REJECTED, exc.message) from exc

        try:
            tx_hash = Web3.to_hex(await w3.eth.send_raw_transaction(raw))
        except (Web3Exception, ValueError) as exc:
            kind = classify_failure(exc)
            logger.warning("%s broadcast rejected: %s (%s)", operation, kind, exc)
            raise TransactionFailed(kind, str(exc)) from exc

        logger.info("%s broadcast: %s", operation, tx_hash)
        receipt = await self._wait_for_receipt(tx_hash)
        if not receipt.succeeded:
            kind = (
                ClaimFailureKind.OUT_OF_GAS
                if receipt.gas_used >= tx.get("gas", params["gas"])
                else ClaimFailureKind.REVERTED
            )
            logger.warning("%s reverted on-chain: %s (%s)", operation, tx_hash, kind)
            raise TransactionFailed(kind, "transaction reverted", tx_hash=tx_hash)
        logger.info("%s confirmed in block %d", operation, receipt.block_number)
        return receipt

    async def _wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        """Poll for the receipt until the transaction is mined."""
        w3 = self._w3
        while True:
            try:
                receipt = await w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            if receipt:
                return TxReceipt(
                    tx_hash=tx_hash,
                    block_number=int(receipt["blockNumber"]),
                    gas_used=int(receipt["gasUsed"]),
                    status=int(receipt["status"]),
                )
            await asyncio.sleep(self._config.receipt_poll_interval)
