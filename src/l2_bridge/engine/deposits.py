"""Deposits — L1 → L2 funding and deposit replay."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from l2_bridge.errors.bridge_errors import BridgeError
from l2_bridge.errors.definitions import ValidationError
from l2_bridge.utils.units import normalize_address, parse_amount, validate_tx_hash

if TYPE_CHECKING:
    from l2_bridge.chain.bridge_contract import BridgeContract, TxReceipt
    from l2_bridge.engine.session import BridgeSession
    from l2_bridge.relay.client import RelayClient
    from l2_bridge.relay.models import DepositResult, SyncResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepositOutcome:
    """A confirmed L1 deposit and whether L2 credit was observed."""

    receipt: TxReceipt
    credited: bool
    l2_balance: int | None = None


class DepositService:
    """Deposits for the session account, plus relay-side deposit replay.

    After an L1 deposit confirms, the relay balance is watched until it
    reflects the deposit. The watch is advisory: not seeing the credit
    within the budget is not an error.
    """

    def __init__(
        self,
        session: BridgeSession,
        relay: RelayClient,
        contract: BridgeContract,
        *,
        watch_delay: float = 5.0,
        watch_interval: float = 3.0,
        watch_attempts: int = 20,
    ) -> None:
        self._session = session
        self._relay = relay
        self._contract = contract
        self._watch_delay = watch_delay
        self._watch_interval = watch_interval
        self._watch_attempts = watch_attempts

    async def deposit(self, amount: int, *, watch: bool = True) -> DepositOutcome:
        """Deposit *amount* wei into the bridge.

        Raises:
            ValidationError: Bad amount or insufficient L1 balance.
            TransactionFailed: The deposit transaction did not land.
        """
        amount = parse_amount(amount)
        account = self._session.address

        l1_balance = await self._contract.get_account_balance(account)
        if l1_balance < amount:
            msg = f"insufficient L1 balance: have {l1_balance}, need {amount}"
            raise ValidationError(msg)

        starting = await self._current_l2_balance(account)
        receipt = await self._contract.deposit(amount)
        logger.info("Deposit of %d wei confirmed for %s: %s", amount, account, receipt.tx_hash)
        if not watch:
            return DepositOutcome(receipt=receipt, credited=False)

        target = (starting or 0) + amount
        credited, balance = await self.watch_balance(account, target)
        return DepositOutcome(receipt=receipt, credited=credited, l2_balance=balance)

    async def watch_balance(self, account: str, target: int) -> tuple[bool, int | None]:
        """Poll the relay balance until it reaches *target*."""
        await asyncio.sleep(self._watch_delay)
        balance: int | None = None
        for attempt in range(1, self._watch_attempts + 1):
            balance = await self._current_l2_balance(account)
            if balance is not None and balance >= target:
                logger.info("L2 balance for %s reached %d", account, balance)
                return True, balance
            if attempt < self._watch_attempts:
                await asyncio.sleep(self._watch_interval)
        logger.warning("L2 balance for %s not yet credited; relay may still be processing", account)
        return False, balance

    async def sync_deposits(
        self,
        *,
        from_block: int | None = None,
        to_block: int | None = None,
        user: str | None = None,
    ) -> SyncResult:
        """Ask the relay to replay deposit events in a block range."""
        if from_block is not None and to_block is not None and from_block > to_block:
            msg = "from_block must not exceed to_block"
            raise ValidationError(msg)
        result = await self._relay.sync_deposits(
            from_block=from_block,
            to_block=to_block,
            user=normalize_address(user) if user else None,
        )
        logger.info(
            "Deposit sync: %d processed, %d skipped, %d failed of %d",
            result.processed,
            result.skipped,
            result.failed,
            result.total,
        )
        return result

    async def process_deposit(self, tx_hash: str) -> DepositResult:
        """Replay a single deposit by its L1 transaction hash."""
        return await self._relay.process_deposit(validate_tx_hash(tx_hash))

    async def _current_l2_balance(self, account: str) -> int | None:
        try:
            return (await self._relay.get_balance(account)).balance
        except BridgeError as exc:
            logger.warning("L2 balance lookup for %s failed: %s", account, exc.message)
            return None
