"""Wallet — chain-account signing providers."""

from l2_bridge.wallet.signer import LocalWalletSigner, WalletSigner

__all__ = ["LocalWalletSigner", "WalletSigner"]
