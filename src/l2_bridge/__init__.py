"""py-l2bridge — batching L1/L2 bridge client with recoverable withdrawals."""

__version__ = "0.1.0"
