"""BridgeEngine — central engine owning infrastructure and the wallet session."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, TypeVar

from l2_bridge.chain.bridge_contract import BridgeContract
from l2_bridge.config.settings import LedgerBackend
from l2_bridge.datastore.client import Datastore
from l2_bridge.engine.deposits import DepositService
from l2_bridge.engine.nonce import NonceManager
from l2_bridge.engine.orchestrator import WithdrawalOrchestrator
from l2_bridge.engine.poller import ProofPoller
from l2_bridge.engine.reconciler import BalanceReconciler
from l2_bridge.engine.session import BridgeSession
from l2_bridge.engine.transfers import TransferService
from l2_bridge.errors.definitions import ErrEngineNotInitialized, ErrNoSession
from l2_bridge.ledger.ledger import ClaimLedger
from l2_bridge.ledger.store import create_store
from l2_bridge.metrics.collector import BridgeMetrics
from l2_bridge.relay.client import RelayClient
from l2_bridge.taskmanager.manager import CronJob, TaskManager
from l2_bridge.taskmanager.tasks import task_refresh_ledger_proofs
from l2_bridge.utils.units import validate_tx_hash
from l2_bridge.wallet.signer import LocalWalletSigner

if TYPE_CHECKING:
    from web3 import AsyncWeb3

    from l2_bridge.chain.bridge_contract import TxReceipt
    from l2_bridge.config.settings import AppConfig
    from l2_bridge.ledger.store import KeyValueStore
    from l2_bridge.relay.models import TransactionHistory, TransactionRecord
    from l2_bridge.wallet.signer import WalletSigner

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class BridgeEngine:
    """Owns the relay client, ledger, background jobs and the active session.

    Usage::

        engine = BridgeEngine(config)
        await engine.initialize()
        await engine.connect_session(signer)
        flow = await engine.orchestrator.request_withdrawal(10**18)
        ...
        await engine.close()

    Args:
        config: Application configuration.
        relay: Pre-built relay client (tests); built from config otherwise.
        store: Pre-built ledger store (tests); built from config otherwise.
        web3: Pre-built ``AsyncWeb3`` handed to the bridge contract.
        metrics: Shared metrics, so the API can expose the same registry.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        relay: RelayClient | None = None,
        store: KeyValueStore | None = None,
        web3: AsyncWeb3 | None = None,
        metrics: BridgeMetrics | None = None,
    ) -> None:
        self._config = config
        self._initialized = False
        self._injected_relay = relay
        self._injected_store = store
        self._web3 = web3

        self._datastore: Datastore | None = None
        self._relay: RelayClient | None = None
        self._ledger: ClaimLedger | None = None
        self._nonces: NonceManager | None = None
        self._poller: ProofPoller | None = None
        self._reconciler: BalanceReconciler | None = None
        self._metrics = metrics or BridgeMetrics()
        self._task_manager: TaskManager | None = None

        # Session-scoped
        self._session: BridgeSession | None = None
        self._contract: BridgeContract | None = None
        self._orchestrator: WithdrawalOrchestrator | None = None
        self._deposits: DepositService | None = None
        self._transfers: TransferService | None = None

    async def initialize(self) -> None:
        """Open the ledger store, connect the relay, and start background jobs.

        If ``chain.private_key`` is configured, a session for that key is
        connected as well.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        store = self._injected_store
        if store is None:
            if self._config.ledger.backend is LedgerBackend.DATABASE:
                self._datastore = Datastore(self._config.db)
                await self._datastore.open()
            store = create_store(self._config.ledger, self._datastore)
        self._ledger = ClaimLedger(store, self._config.ledger.namespace)

        self._relay = self._injected_relay or RelayClient(self._config.relay)
        if not self._relay.is_connected:
            await self._relay.connect()

        self._nonces = NonceManager(self._relay)
        self._poller = ProofPoller.from_config(
            self._relay, self._config.poller, on_attempt=self._metrics.record_poll_attempt
        )
        self._reconciler = BalanceReconciler(self._relay, metrics=self._metrics)
        self._metrics.set_ledger_size(len(await self._ledger.list_all()))

        if self._config.task.enabled:
            self._task_manager = TaskManager(metrics=self._metrics)
            self._task_manager.register(
                "refresh_ledger_proofs",
                CronJob(
                    handler=partial(
                        task_refresh_ledger_proofs, self, auto_claim=self._config.task.auto_claim
                    ),
                    period=self._config.task.proof_refresh_period,
                ),
            )
            await self._task_manager.start()

        self._initialized = True
        logger.info("Bridge engine initialized (relay %s)", self._relay.base_url)

        if self._config.chain.private_key:
            await self.connect_session(LocalWalletSigner(self._config.chain.private_key))

    async def close(self) -> None:
        """Gracefully shut down. Idempotent."""
        if not self._initialized:
            return

        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None

        await self.disconnect()

        if self._relay is not None:
            await self._relay.close()
            self._relay = None

        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._ledger = None
        self._nonces = None
        self._poller = None
        self._reconciler = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def connect_session(self, signer: WalletSigner, *, derive_keys: bool = True) -> BridgeSession:
        """Open a session for *signer*'s account, replacing any current one.

        Derives the secondary keypair, binds the bridge contract, and
        resumes every batched withdrawal in the ledger for the account.
        """
        relay = self._require(self._relay)
        ledger = self._require(self._ledger)
        await self.disconnect()

        session = BridgeSession(signer)
        if derive_keys:
            await session.derive_keys()

        contract = BridgeContract(self._config.chain, signer, web3=self._web3)
        await contract.connect(await self._bridge_address())

        self._session = session
        self._contract = contract
        self._orchestrator = WithdrawalOrchestrator(
            session,
            relay,
            contract,
            ledger,
            self._require(self._nonces),
            self._require(self._poller),
            metrics=self._metrics,
        )
        self._deposits = DepositService(session, relay, contract)
        self._transfers = TransferService(session, relay)

        resumed = await self._orchestrator.resume()
        logger.info("Session connected for %s (%d withdrawal(s) resumed)", session.address, len(resumed))
        return session

    async def disconnect(self) -> None:
        """Tear down the session: cancel polls, drop the keypair."""
        if self._orchestrator is not None:
            self._orchestrator.shutdown()
            self._orchestrator = None
        if self._contract is not None:
            await self._contract.close()
            self._contract = None
        if self._session is not None:
            self._session.close()
            self._session = None
        self._deposits = None
        self._transfers = None

    async def _bridge_address(self) -> str | None:
        if self._config.chain.bridge_address:
            return self._config.chain.bridge_address
        info = await self._require(self._relay).get_contracts()
        if info.chain_id and info.chain_id != self._config.chain.chain_id:
            logger.warning(
                "Relay serves chain %d but chain %d is configured",
                info.chain_id,
                self._config.chain.chain_id,
            )
            return None
        return info.bridge_address or None

    # ------------------------------------------------------------------
    # Passthrough operations
    # ------------------------------------------------------------------

    async def transactions(self, account: str | None = None) -> TransactionHistory:
        """Relay transaction history for *account* (default: session account)."""
        if account is None:
            account = self.session.address
        return await self.relay.get_transactions(account)

    async def transaction(self, tx_hash: str) -> TransactionRecord:
        return await self.relay.get_transaction(validate_tx_hash(tx_hash))

    async def force_withdraw(self, amount: int, nonce: int) -> TxReceipt:
        """Escape hatch: initiate a withdrawal directly on L1."""
        return await self.contract.initiate_force_withdrawal(amount, nonce)

    async def prove_censorship(self, user: str, amount: int, nonce: int) -> TxReceipt:
        """Escape hatch: prove the relay censored a forced withdrawal."""
        return await self.contract.prove_censorship(user, amount, nonce)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @staticmethod
    def _require(value: _T | None) -> _T:
        if value is None:
            raise ErrEngineNotInitialized
        return value

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def has_session(self) -> bool:
        return self._session is not None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def relay(self) -> RelayClient:
        return self._require(self._relay)

    @property
    def ledger(self) -> ClaimLedger:
        return self._require(self._ledger)

    @property
    def reconciler(self) -> BalanceReconciler:
        return self._require(self._reconciler)

    @property
    def metrics(self) -> BridgeMetrics:
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        return self._task_manager

    @property
    def session(self) -> BridgeSession:
        if self._session is None:
            raise ErrNoSession
        return self._session

    @property
    def contract(self) -> BridgeContract:
        if self._contract is None:
            raise ErrNoSession
        return self._contract

    @property
    def orchestrator(self) -> WithdrawalOrchestrator:
        if self._orchestrator is None:
            raise ErrNoSession
        return self._orchestrator

    @property
    def deposits(self) -> DepositService:
        if self._deposits is None:
            raise ErrNoSession
        return self._deposits

    @property
    def transfers(self) -> TransferService:
        if self._transfers is None:
            raise ErrNoSession
        return self._transfers
