"""Background task definitions — cron job handlers.

- ``refresh_ledger_proofs`` — one proof lookup per waiting batched
  withdrawal of the active session; retires already-processed entries and,
  with ``auto_claim``, claims entries whose proof is ready.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from l2_bridge.errors.bridge_errors import BridgeError

if TYPE_CHECKING:
    from l2_bridge.engine.client import BridgeEngine

logger = logging.getLogger(__name__)


async def task_refresh_ledger_proofs(engine: BridgeEngine, *, auto_claim: bool = False) -> None:
    """Refresh proof availability for ledger entries of the session account."""
    if not engine.has_session:
        return

    # Imported here to avoid a cycle with the engine package
    from l2_bridge.engine.orchestrator import WithdrawalState

    orchestrator = engine.orchestrator
    await orchestrator.resume()

    waiting = (WithdrawalState.AWAITING_BATCH, WithdrawalState.EXPIRED)
    for flow in orchestrator.flows():
        nonce = flow.nonce
        if nonce is None:
            continue
        try:
            if flow.state in waiting:
                await orchestrator.refresh(nonce)
            if auto_claim and flow.state is WithdrawalState.PROOF_READY:
                await orchestrator.claim(nonce)
        except BridgeError as exc:
            logger.warning("Proof refresh for nonce=%d skipped: %s", nonce, exc.message)

    engine.metrics.set_ledger_size(len(await engine.ledger.list_all()))
