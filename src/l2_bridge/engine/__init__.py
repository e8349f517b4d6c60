"""Engine — withdrawal orchestration, polling, reconciliation, session."""

from l2_bridge.engine.client import BridgeEngine
from l2_bridge.engine.orchestrator import (
    WithdrawalFlow,
    WithdrawalOrchestrator,
    WithdrawalRequest,
    WithdrawalState,
)
from l2_bridge.engine.poller import PollOutcome, PollStatus, ProofPoller
from l2_bridge.engine.session import BridgeSession

__all__ = [
    "BridgeEngine",
    "BridgeSession",
    "PollOutcome",
    "PollStatus",
    "ProofPoller",
    "WithdrawalFlow",
    "WithdrawalOrchestrator",
    "WithdrawalRequest",
    "WithdrawalState",
]
