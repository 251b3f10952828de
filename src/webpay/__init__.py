"""Encrypted Phantom deep-link payments.

- crypto: X25519 key agreement and NaCl box payload encryption
- transactions: unsigned SOL / SPL token payment construction
- deeplink: deep-link dispatch, pending transaction store, redirect handling
- monitor: bounded security audit trail
- session: the connect / sign / redirect flow
"""

__version__ = "0.1.0"
