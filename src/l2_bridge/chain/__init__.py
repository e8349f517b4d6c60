"""Chain — L1 bridge contract client."""

from l2_bridge.chain.bridge_contract import BRIDGE_ABI, BridgeContract, TxReceipt, classify_failure

__all__ = ["BRIDGE_ABI", "BridgeContract", "TxReceipt", "classify_failure"]
