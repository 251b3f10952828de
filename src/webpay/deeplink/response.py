"""Reconciliation of the wallet's redirect back to the dapp.

The wallet returns by navigating to the redirect link with one of:

- ``signature``: plaintext signature (legacy)
- ``data`` + ``nonce``: encrypted ``{"signature": ...}`` payload
- ``errorCode`` + ``errorMessage``: the wallet rejected the request

classify_return() maps the query onto exactly one WalletResponse variant,
synchronously and in that precedence order. Only decryption is async.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from webpay.config import get_settings
from webpay.deeplink.pending import SOURCE_REDIRECT, PendingTransactionStore
from webpay.encoding import b58decode
from webpay.errors import (
    DecryptionFailure,
    MalformedSignature,
    WalletError,
    WalletNotConnected,
    WalletProtocolError,
)
from webpay.monitor import SecurityMonitor

logger = logging.getLogger(__name__)

SIGNATURE_BYTES = 64
SIGNATURE_B58_LENGTHS = (87, 88)

NETWORK_ERROR_CODE = "-32603"
DEFAULT_ERROR_MESSAGE = "Payment failed"
PROCESSING_ERROR_MESSAGE = "Failed to process transaction"
INVALID_SIGNATURE_MESSAGE = "Invalid transaction signature"

DecryptFn = Callable[[str, str], Awaitable[Optional[Mapping[str, Any]]]]
SuccessCallback = Callable[[str], Any]
ErrorCallback = Callable[[str], Any]


def is_valid_signature(candidate: Any) -> bool:
    """Check the shape of a transaction signature.

    Valid iff it is 87 or 88 base58 characters decoding to exactly 64 bytes.
    Does not verify the signature against the network.
    """
    if not isinstance(candidate, str) or len(candidate) not in SIGNATURE_B58_LENGTHS:
        return False
    try:
        return len(b58decode(candidate)) == SIGNATURE_BYTES
    except ValueError:
        return False


def require_valid_signature(candidate: Any) -> str:
    """Return the signature or raise MalformedSignature."""
    if not is_valid_signature(candidate):
        raise MalformedSignature(str(candidate))
    return candidate


# ======================
# Wallet response variants
# ======================


@dataclass(frozen=True)
class SignatureResult:
    signature: str


@dataclass(frozen=True)
class EncryptedResult:
    data: str
    nonce: str


@dataclass(frozen=True)
class WalletErrorResult:
    code: str
    message: str

    def to_error(self) -> WalletError:
        return WalletError(self.code, self.message)


@dataclass(frozen=True)
class Unrecognized:
    pass


WalletResponse = Union[SignatureResult, EncryptedResult, WalletErrorResult, Unrecognized]


def classify_return(query: Mapping[str, str]) -> WalletResponse:
    """Classify redirect query parameters. First match wins."""
    signature = query.get("signature")
    if signature:
        return SignatureResult(signature=signature)

    data = query.get("data")
    nonce = query.get("nonce")
    if data and nonce:
        return EncryptedResult(data=data, nonce=nonce)

    error_code = query.get("errorCode")
    if error_code:
        return WalletErrorResult(
            code=error_code,
            message=query.get("errorMessage") or DEFAULT_ERROR_MESSAGE,
        )

    return Unrecognized()


def wallet_error_message(code: str, message: str, network: Optional[str] = None) -> str:
    """User-facing message for a wallet error code."""
    if code == NETWORK_ERROR_CODE:
        network = network or get_settings().solana_network
        return (
            f"Phantom wallet error ({code}): Please make sure your wallet is connected to "
            f"Solana {network} and has enough SOL for the transaction and fees."
            f"\n\nOriginal error: {message}"
        )
    return message


class HandlerState(str, Enum):
    """Lifecycle of one dispatched wallet request."""

    IDLE = "idle"
    DISPATCHED = "dispatched"
    RESOLVED_SUCCESS = "resolved_success"
    RESOLVED_ERROR = "resolved_error"
    UNRECOGNIZED = "unrecognized"

    @property
    def is_terminal(self) -> bool:
        return self in (
            HandlerState.RESOLVED_SUCCESS,
            HandlerState.RESOLVED_ERROR,
            HandlerState.UNRECOGNIZED,
        )


@dataclass
class ReturnOutcome:
    """Result of handle_return().

    ``task`` is set for the encrypted branch when an event loop is running;
    callbacks fire when it completes.
    """

    should_clear_url: bool
    response: WalletResponse
    task: Optional[asyncio.Task] = None


class RedirectResponseHandler:
    """Classifies the wallet's return and reports through callbacks.

    Args:
        pending: Store cleared once a response is reconciled
        monitor: Receives malformed signatures and decryption failures
        network: Cluster named in the -32603 guidance (defaults to settings)
    """

    def __init__(
        self,
        pending: Optional[PendingTransactionStore] = None,
        monitor: Optional[SecurityMonitor] = None,
        network: Optional[str] = None,
    ):
        self.pending = pending
        self.monitor = monitor
        self.network = network or get_settings().solana_network
        self.state = HandlerState.IDLE
        if pending is not None and pending.load() is not None:
            self.state = HandlerState.DISPATCHED

    def mark_dispatched(self) -> None:
        """Record that a request was sent to the wallet."""
        if self.state == HandlerState.DISPATCHED:
            logger.warning("New request dispatched while another is outstanding")
        self.state = HandlerState.DISPATCHED

    def reset(self) -> None:
        """Abandon the outstanding request."""
        self.state = HandlerState.IDLE
        if self.pending is not None:
            self.pending.clear()

    def handle_return(
        self,
        query: Mapping[str, str],
        decrypt_fn: DecryptFn,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> ReturnOutcome:
        """Process the redirect query.

        Classification and URL cleanup are decided synchronously. The
        encrypted branch schedules decryption on the running event loop and
        returns before it completes. Without a running loop it is run to
        completion before returning.
        """
        response = classify_return(query)

        if isinstance(response, SignatureResult):
            if is_valid_signature(response.signature):
                self._succeed(response.signature, on_success)
            else:
                self._record("malformed_signature", {"source": "redirect", "length": len(response.signature)})
                self._fail(INVALID_SIGNATURE_MESSAGE, on_error)
            return ReturnOutcome(should_clear_url=True, response=response)

        if isinstance(response, EncryptedResult):
            completion = self._complete_encrypted(response, decrypt_fn, on_success, on_error)
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None

            if loop is None:
                asyncio.run(self._complete_then_drain(completion))
                return ReturnOutcome(should_clear_url=True, response=response)

            task = loop.create_task(completion)
            return ReturnOutcome(should_clear_url=True, response=response, task=task)

        if isinstance(response, WalletErrorResult):
            logger.info("Payment error: code=%s message=%s", response.code, response.message)
            self._fail(wallet_error_message(response.code, response.message, self.network), on_error)
            return ReturnOutcome(should_clear_url=True, response=response)

        if self.state == HandlerState.IDLE:
            self.state = HandlerState.UNRECOGNIZED
        return ReturnOutcome(should_clear_url=False, response=response)

    async def resolve(self, response: WalletResponse, decrypt_fn: DecryptFn) -> SignatureResult:
        """Resolve a classified response to its signature.

        Raises:
            DecryptionFailure: Decryption failed or the payload had no usable signature
            WalletNotConnected: ``decrypt_fn`` has no shared secret yet
            WalletError: The wallet reported an error
            MalformedSignature: A plaintext signature failed the shape check
            ValueError: The response carried no recognized parameters
        """
        if isinstance(response, SignatureResult):
            require_valid_signature(response.signature)
            return response

        if isinstance(response, EncryptedResult):
            try:
                payload = await decrypt_fn(response.data, response.nonce)
            except WalletNotConnected:
                raise
            except WalletProtocolError as e:
                if isinstance(e, DecryptionFailure):
                    raise
                raise DecryptionFailure() from e

            signature = payload.get("signature") if isinstance(payload, Mapping) else None
            if not is_valid_signature(signature):
                raise DecryptionFailure()
            return SignatureResult(signature=signature)

        if isinstance(response, WalletErrorResult):
            raise response.to_error()

        raise ValueError("Redirect carried no wallet response")

    async def _complete_encrypted(
        self,
        response: EncryptedResult,
        decrypt_fn: DecryptFn,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> None:
        try:
            result = await self.resolve(response, decrypt_fn)
        except WalletNotConnected:
            if self.pending is not None:
                self._defer(response)
                return
            logger.error("Encrypted redirect arrived with no session to decrypt it")
            self._fail(PROCESSING_ERROR_MESSAGE, on_error)
            return
        except Exception as e:
            logger.error("Error processing transaction: %s", type(e).__name__)
            self._record("decryption_failed", {"error": type(e).__name__})
            self._fail(PROCESSING_ERROR_MESSAGE, on_error)
            return
        self._succeed(result.signature, on_success)

    async def _complete_then_drain(self, completion: Awaitable[None]) -> None:
        # Audit forwards started inside a short-lived loop must finish before it closes
        await completion
        if self.monitor is not None:
            await self.monitor.drain()

    def _defer(self, response: EncryptedResult) -> None:
        self.pending.save(response.data, response.nonce, source=SOURCE_REDIRECT)
        self.state = HandlerState.DISPATCHED
        logger.info("Encrypted redirect held until the wallet session is restored")

    async def resume_pending(
        self,
        decrypt_fn: DecryptFn,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> bool:
        """Reconcile a redirect that was held because decryption was not possible.

        Call after the shared secret is available again (connect or restore).

        Returns:
            True if a held redirect was found and reported
        """
        if self.pending is None:
            return False
        held = self.pending.load()
        if held is None or not held.is_redirect:
            return False

        response = EncryptedResult(data=held.data, nonce=held.nonce)
        await self._complete_encrypted(response, decrypt_fn, on_success, on_error)
        return not self.pending.has_pending

    def _succeed(self, signature: str, on_success: SuccessCallback) -> None:
        self.state = HandlerState.RESOLVED_SUCCESS
        self._clear_pending()
        logger.info("Transaction signed: %s...", signature[:16])
        on_success(signature)

    def _fail(self, message: str, on_error: ErrorCallback) -> None:
        self.state = HandlerState.RESOLVED_ERROR
        self._clear_pending()
        on_error(message)

    def _clear_pending(self) -> None:
        if self.pending is not None:
            self.pending.clear()

    def _record(self, type: str, details: dict) -> None:
        if self.monitor is not None:
            self.monitor.record(type, details)
