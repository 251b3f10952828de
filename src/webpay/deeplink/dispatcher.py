"""Deep-link construction for the Phantom wallet.

Pure URI builders; navigating to the link is the caller's responsibility.
"""

import logging
from typing import Optional, Union
from urllib.parse import urlencode

from webpay.config import get_settings
from webpay.crypto import EncryptedPayload
from webpay.encoding import b58encode

logger = logging.getLogger(__name__)

NATIVE_SCHEME = "phantom://"
UNIVERSAL_LINK = "https://phantom.app/ul/"
API_VERSION = "v1"

SIGN_AND_SEND = "signAndSendTransaction"
CONNECT = "connect"


class DeepLinkDispatcher:
    """Builds URIs addressed to the wallet's signing endpoints."""

    def __init__(self, use_universal_links: Optional[bool] = None):
        if use_universal_links is None:
            use_universal_links = get_settings().phantom_use_universal_links
        self.use_universal_links = use_universal_links

    @property
    def base_url(self) -> str:
        prefix = UNIVERSAL_LINK if self.use_universal_links else NATIVE_SCHEME
        return f"{prefix}{API_VERSION}/"

    def build_url(self, method: str, params: dict[str, str]) -> str:
        """Join a wallet method with URL-encoded query parameters."""
        return f"{self.base_url}{method}?{urlencode(params)}"

    def build_deep_link(
        self,
        encrypted_request: EncryptedPayload,
        return_url: str,
        dapp_public_key: Union[bytes, str],
        method: str = SIGN_AND_SEND,
    ) -> str:
        """Build the signAndSendTransaction deep link.

        Args:
            encrypted_request: Payload encrypted with the shared secret
            return_url: Where the wallet redirects after approve/reject
            dapp_public_key: Our ephemeral public key (raw bytes or base58)
            method: Wallet method, signAndSendTransaction by default
        """
        if not return_url:
            raise ValueError("return_url is required")

        if isinstance(dapp_public_key, str):
            dapp_key_b58 = dapp_public_key
        else:
            dapp_key_b58 = b58encode(dapp_public_key)

        params = {
            "dapp_encryption_public_key": dapp_key_b58,
            "nonce": encrypted_request.nonce_b58,
            "redirect_link": return_url,
            "payload": encrypted_request.ciphertext_b58,
        }
        url = self.build_url(method, params)
        logger.info("Built %s deep link, redirect to %s", method, return_url)
        return url

    def build_connect_link(
        self,
        dapp_public_key: Union[bytes, str],
        app_url: str,
        redirect_link: str,
        cluster: Optional[str] = None,
    ) -> str:
        """Build the connect deep link that starts the key exchange."""
        if isinstance(dapp_public_key, bytes):
            dapp_public_key = b58encode(dapp_public_key)

        params = {
            "dapp_encryption_public_key": dapp_public_key,
            "cluster": cluster or get_settings().solana_network,
            "app_url": app_url,
            "redirect_link": redirect_link,
        }
        return self.build_url(CONNECT, params)
