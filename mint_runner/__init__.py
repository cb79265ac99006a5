"""Mint Runner.

Submits a payable contract call (typically a mint) from one or many signers,
escalating fees on the pinned nonce until the transaction lands.
"""

__version__ = "0.1.0"
