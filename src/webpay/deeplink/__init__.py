"""Wallet deep-link dispatch and redirect reconciliation."""

from webpay.deeplink.dispatcher import DeepLinkDispatcher
from webpay.deeplink.pending import (
    FileSessionStorage,
    MemorySessionStorage,
    PendingTransaction,
    PendingTransactionStore,
    SessionStorage,
)
from webpay.deeplink.response import (
    EncryptedResult,
    HandlerState,
    RedirectResponseHandler,
    ReturnOutcome,
    SignatureResult,
    Unrecognized,
    WalletErrorResult,
    WalletResponse,
    classify_return,
    is_valid_signature,
)

__all__ = [
    "DeepLinkDispatcher",
    "EncryptedResult",
    "FileSessionStorage",
    "HandlerState",
    "MemorySessionStorage",
    "PendingTransaction",
    "PendingTransactionStore",
    "RedirectResponseHandler",
    "ReturnOutcome",
    "SessionStorage",
    "SignatureResult",
    "Unrecognized",
    "WalletErrorResult",
    "WalletResponse",
    "classify_return",
    "is_valid_signature",
]
