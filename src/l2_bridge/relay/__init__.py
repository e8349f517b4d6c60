"""Relay — HTTP client and wire models for the off-chain relay."""

from l2_bridge.relay.client import RelayClient
from l2_bridge.relay.models import Proof, ProofLookup, ProofStatus

__all__ = ["Proof", "ProofLookup", "ProofStatus", "RelayClient"]
