"""Unsigned payment transaction construction.

- TransactionBuilder: pure SOL / SPL token transfer construction
- chain helpers: blockhash, fee, balance and account lookups, explorer links
"""

from webpay.transactions.builder import TransactionBuilder, memo_for_order, to_base_units
from webpay.transactions.chain import (
    DEFAULT_FEE_LAMPORTS,
    estimate_fee,
    explorer_url,
    fetch_existing_accounts,
    fetch_latest_blockhash,
    fetch_sol_balance,
    fetch_token_account_state,
    fetch_token_balance,
)
from webpay.transactions.contracts import (
    OrderData,
    TokenMetadata,
    TransactionRequest,
    UnsignedTransaction,
)

__all__ = [
    "DEFAULT_FEE_LAMPORTS",
    "OrderData",
    "TokenMetadata",
    "TransactionBuilder",
    "TransactionRequest",
    "UnsignedTransaction",
    "estimate_fee",
    "explorer_url",
    "fetch_existing_accounts",
    "fetch_latest_blockhash",
    "fetch_sol_balance",
    "fetch_token_account_state",
    "fetch_token_balance",
    "memo_for_order",
    "to_base_units",
]
