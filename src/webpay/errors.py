"""Error taxonomy for the wallet deep-link protocol.

Construction errors (key agreement, transaction building) are raised to the
immediate caller. Redirect handling never raises across the async boundary;
it reports through the ``on_error`` callback instead.
"""

from enum import Enum
from typing import Optional


class WalletProtocolError(Exception):
    """Base class for all protocol errors."""


class KeyAgreementError(WalletProtocolError):
    """Raised when the counterpart public key cannot be used for key agreement."""


class DecryptionFailure(WalletProtocolError):
    """Raised when authenticated decryption fails.

    The message is intentionally generic and never carries key material.
    """

    def __init__(self, message: str = "Failed to process transaction"):
        super().__init__(message)


class MalformedPayloadError(WalletProtocolError):
    """Raised when an encrypted payload is structurally invalid."""


class MalformedSignature(WalletProtocolError):
    """Raised when a signature string fails the base58/length check."""

    def __init__(self, signature: str):
        self.signature = signature
        preview = signature[:12] + "..." if len(signature) > 12 else signature
        super().__init__(f"Malformed transaction signature: {preview!r}")


class TransactionBuildError(WalletProtocolError):
    """Base class for caller contract violations during transaction construction."""


class InvalidAmount(TransactionBuildError):
    """Raised when an amount is zero, negative, or not a whole number of base units."""


class InvalidAddress(TransactionBuildError):
    """Raised when an address is not a valid base58 public key."""


class MissingTokenAccount(TransactionBuildError):
    """Raised when an associated token account cannot be resolved."""

    def __init__(self, role: str, owner: str, mint: str, reason: str = ""):
        self.role = role
        self.owner = owner
        self.mint = mint
        detail = f": {reason}" if reason else ""
        super().__init__(f"{role.capitalize()} token account not found for mint {mint}{detail}")


class InsufficientBalance(TransactionBuildError):
    """Raised when the sender's known balance cannot cover the transfer."""

    def __init__(self, required: int, available: int, asset: str = "SOL"):
        self.required = required
        self.available = available
        self.asset = asset
        super().__init__(
            f"Sender {asset} balance not enough, current balance: {available}, need: {required}"
        )


class InactiveTokenAccount(TransactionBuildError):
    """Raised when the recipient token account is not in the initialized state."""

    def __init__(self, account: str, state: str):
        self.account = account
        self.state = state
        super().__init__(f"Recipient token account {account} is {state}, expected initialized")


class WalletErrorCode(str, Enum):
    """Normalized wallet error categories."""

    USER_REJECTED = "USER_REJECTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"
    NOT_CONNECTED = "NOT_CONNECTED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INVALID_TRANSACTION = "INVALID_TRANSACTION"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Phantom / EIP-1193 style numeric codes
_PROVIDER_CODES = {
    "4001": WalletErrorCode.USER_REJECTED,
    "4100": WalletErrorCode.NOT_CONNECTED,
    "-32000": WalletErrorCode.INVALID_TRANSACTION,
    "-32003": WalletErrorCode.TRANSACTION_FAILED,
    "-32603": WalletErrorCode.NETWORK_MISMATCH,
}

_USER_MESSAGES = {
    WalletErrorCode.USER_REJECTED: "You cancelled the request in your wallet",
    WalletErrorCode.INSUFFICIENT_BALANCE: "Insufficient balance, please top up and try again",
    WalletErrorCode.NETWORK_MISMATCH: "Wallet is on the wrong network or lacks funds for fees",
    WalletErrorCode.NOT_CONNECTED: "Wallet is not connected, please connect first",
    WalletErrorCode.TRANSACTION_FAILED: "Transaction failed, please try again",
    WalletErrorCode.INVALID_TRANSACTION: "Transaction data is invalid",
}


class WalletError(WalletProtocolError):
    """The external wallet's own rejection of a request.

    Attributes:
        code: Raw code reported by the wallet (e.g. "-32603", "4001")
        message: Raw message reported by the wallet
        category: Normalized WalletErrorCode
        recoverable: Whether retrying the same request may succeed
    """

    def __init__(
        self,
        code: str,
        message: str,
        category: Optional[WalletErrorCode] = None,
        recoverable: bool = True,
    ):
        self.code = code
        self.message = message
        self.category = category or _PROVIDER_CODES.get(code, WalletErrorCode.UNKNOWN_ERROR)
        if self.category == WalletErrorCode.UNKNOWN_ERROR and "insufficient" in message.lower():
            self.category = WalletErrorCode.INSUFFICIENT_BALANCE
        self.recoverable = recoverable and self.category != WalletErrorCode.USER_REJECTED
        super().__init__(f"Wallet error ({code}): {message}")

    def user_message(self) -> str:
        """Get a user friendly message for the error."""
        return _USER_MESSAGES.get(self.category, self.message or "Payment failed")

    def should_retry(self) -> bool:
        """Whether the caller may automatically retry."""
        return self.recoverable and self.category == WalletErrorCode.TRANSACTION_FAILED


class WalletNotConnected(WalletError):
    """Raised when a request needs a wallet session that does not exist yet."""

    def __init__(self, message: str = "Wallet not connected. Complete the connect handshake first."):
        super().__init__("4100", message, WalletErrorCode.NOT_CONNECTED, recoverable=False)
