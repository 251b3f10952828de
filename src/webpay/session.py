"""Phantom wallet session: connect handshake, signing requests, redirects.

Ties the components together in the order a payment flows:

    builder -> encryptor -> dispatcher -> (wallet) -> response handler

SECURITY: the session never holds the payer's keys. It only holds the
ephemeral dapp keypair used for payload encryption.
"""

import logging
from typing import Any, Mapping, Optional, Union

from webpay.config import get_settings
from webpay.crypto import EncryptedPayload, EphemeralKeyPair, KeyExchangeEncryptor, SharedSecret
from webpay.deeplink.dispatcher import DeepLinkDispatcher
from webpay.deeplink.pending import MemorySessionStorage, PendingTransactionStore
from webpay.deeplink.response import (
    ErrorCallback,
    RedirectResponseHandler,
    ReturnOutcome,
    SuccessCallback,
)
from webpay.encoding import b58encode
from webpay.errors import WalletNotConnected, WalletProtocolError
from webpay.monitor import SecurityMonitor
from webpay.transactions.contracts import UnsignedTransaction

logger = logging.getLogger(__name__)


class PhantomSession:
    """One dapp <-> wallet interaction session.

    Args:
        keypair: Ephemeral dapp keypair (generated if omitted)
        pending: Pending transaction store (in-memory if omitted)
        monitor: Security monitor for protocol anomalies
        dispatcher: Deep-link builder
    """

    def __init__(
        self,
        keypair: Optional[EphemeralKeyPair] = None,
        pending: Optional[PendingTransactionStore] = None,
        monitor: Optional[SecurityMonitor] = None,
        dispatcher: Optional[DeepLinkDispatcher] = None,
    ):
        settings = get_settings()
        if keypair is None:
            keypair = EphemeralKeyPair.generate()
        if pending is None:
            pending = PendingTransactionStore(MemorySessionStorage(), settings.pending_tx_ttl_seconds)
        if monitor is None:
            monitor = SecurityMonitor()
        if dispatcher is None:
            dispatcher = DeepLinkDispatcher()

        self.keypair = keypair
        self.encryptor = KeyExchangeEncryptor(self.keypair)
        self.pending = pending
        self.monitor = monitor
        self.dispatcher = dispatcher
        self.handler = RedirectResponseHandler(self.pending, self.monitor, settings.solana_network)

        self.wallet_public_key: Optional[str] = None
        self.wallet_encryption_public_key: Optional[str] = None
        self.session_token: Optional[str] = None
        self._secret: Optional[SharedSecret] = None

    @property
    def is_connected(self) -> bool:
        return self._secret is not None and bool(self.session_token)

    def restore(
        self,
        wallet_encryption_public_key: str,
        wallet_public_key: str,
        session_token: str,
    ) -> None:
        """Restore a connection the caller persisted from an earlier handshake."""
        self._secret = self.encryptor.derive_shared_secret(wallet_encryption_public_key)
        self.wallet_encryption_public_key = wallet_encryption_public_key
        self.wallet_public_key = wallet_public_key
        self.session_token = session_token

    # ======================
    # Connect handshake
    # ======================

    def connect_link(self, redirect_link: str, app_url: Optional[str] = None) -> str:
        """Deep link that asks the wallet to connect and share its encryption key."""
        return self.dispatcher.build_connect_link(
            self.keypair.public_key_b58,
            app_url or get_settings().app_url,
            redirect_link,
        )

    def process_connect_callback(
        self,
        wallet_encryption_public_key: str,
        nonce: str,
        data: str,
    ) -> bool:
        """Handle the connect redirect (``phantom_encryption_public_key``, ``nonce``, ``data``).

        Returns:
            True if the wallet session was established
        """
        try:
            secret = self.encryptor.derive_shared_secret(wallet_encryption_public_key)
            payload = self.encryptor.decrypt(EncryptedPayload.from_base58(data, nonce), secret)
        except WalletProtocolError as e:
            logger.error("Failed to process connect callback: %s", type(e).__name__)
            self.monitor.record("connect_callback_failed", {"error": type(e).__name__})
            return False

        if not isinstance(payload, Mapping) or not payload.get("public_key") or not payload.get("session"):
            logger.error("Connect payload missing required fields")
            self.monitor.record("connect_payload_invalid", {"keys": sorted(payload) if isinstance(payload, Mapping) else []})
            return False

        self._secret = secret
        self.wallet_encryption_public_key = wallet_encryption_public_key
        self.wallet_public_key = payload["public_key"]
        self.session_token = payload["session"]
        logger.info("Phantom wallet connected: %s", self.wallet_public_key)
        return True

    # ======================
    # Signing requests
    # ======================

    def sign_and_send_link(
        self,
        transaction: Union[UnsignedTransaction, str],
        redirect_link: str,
    ) -> str:
        """Encrypt a signAndSendTransaction request and return its deep link.

        The encrypted request is saved as the pending transaction so the
        redirect can be reconciled after a reload.

        Raises:
            WalletNotConnected: If the connect handshake has not completed
        """
        if not self.is_connected:
            raise WalletNotConnected()

        serialized = (
            transaction.serialized_b58
            if isinstance(transaction, UnsignedTransaction)
            else transaction
        )
        payload = {"session": self.session_token, "transaction": serialized}
        encrypted = self.encryptor.encrypt(payload, self._secret)

        link = self.dispatcher.build_deep_link(encrypted, redirect_link, self.keypair.public_key)
        self.pending.save(encrypted.ciphertext_b58, encrypted.nonce_b58)
        self.handler.mark_dispatched()
        return link

    async def decrypt_transaction_response(self, data: str, nonce: str) -> Any:
        """Decrypt the wallet's ``data``/``nonce`` redirect payload.

        Raises:
            WalletNotConnected: If no shared secret exists
            MalformedPayloadError / DecryptionFailure: On bad input
        """
        if self._secret is None:
            raise WalletNotConnected()
        return self.encryptor.decrypt(EncryptedPayload.from_base58(data, nonce), self._secret)

    def handle_return(
        self,
        query: Mapping[str, str],
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> ReturnOutcome:
        """Reconcile the wallet's redirect using this session's secret."""
        return self.handler.handle_return(
            query, self.decrypt_transaction_response, on_success, on_error
        )

    async def resume_pending(self, on_success: SuccessCallback, on_error: ErrorCallback) -> bool:
        """Report a redirect that arrived before the session was restored.

        Call after restore() or process_connect_callback().
        """
        return await self.handler.resume_pending(
            self.decrypt_transaction_response, on_success, on_error
        )

    def __repr__(self) -> str:
        wallet = self.wallet_public_key or "-"
        return f"PhantomSession(dapp={b58encode(self.keypair.public_key)[:8]}..., wallet={wallet})"
