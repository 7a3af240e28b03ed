"""Key-value stores, Merkle contract-state management and node bookkeeping."""

__version__ = "0.1.0"