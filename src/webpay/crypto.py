"""Key agreement and payload encryption for the wallet deep-link handshake.

Uses NaCl box (X25519 + XSalsa20-Poly1305) through PyNaCl:

    keypair = EphemeralKeyPair.generate()
    encryptor = KeyExchangeEncryptor(keypair)
    secret = encryptor.derive_shared_secret(wallet_encryption_public_key)
    encrypted = encryptor.encrypt({"session": session, "transaction": tx}, secret)
    payload = encryptor.decrypt(encrypted, secret)

Key material is never logged and never persisted by this module.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

import nacl.exceptions
import nacl.utils
from nacl.public import Box, PrivateKey, PublicKey

from webpay.encoding import b58decode, b58encode, to_bytes
from webpay.errors import DecryptionFailure, KeyAgreementError, MalformedPayloadError

logger = logging.getLogger(__name__)

NONCE_SIZE = Box.NONCE_SIZE  # 24 bytes
KEY_SIZE = PublicKey.SIZE  # 32 bytes


class EphemeralKeyPair:
    """Dapp-side X25519 keypair owned by one browsing session."""

    def __init__(self, private_key: PrivateKey):
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "EphemeralKeyPair":
        """Generate a fresh keypair."""
        return cls(PrivateKey.generate())

    @classmethod
    def from_secret_bytes(cls, secret: bytes) -> "EphemeralKeyPair":
        """Restore a keypair held by the caller (e.g. in its own session state)."""
        if len(secret) != PrivateKey.SIZE:
            raise KeyAgreementError(f"Private key must be {PrivateKey.SIZE} bytes")
        return cls(PrivateKey(secret))

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> bytes:
        return bytes(self._private_key.public_key)

    @property
    def public_key_b58(self) -> str:
        return b58encode(self.public_key)

    def __repr__(self) -> str:
        return f"EphemeralKeyPair(public_key={self.public_key_b58})"


class SharedSecret:
    """Precomputed box key for one wallet interaction session."""

    def __init__(self, box: Box, wallet_public_key: bytes):
        self._box = box
        self.wallet_public_key = wallet_public_key

    @property
    def box(self) -> Box:
        return self._box

    def __repr__(self) -> str:
        return f"SharedSecret(wallet={b58encode(self.wallet_public_key)[:8]}..., key=***)"


@dataclass(frozen=True)
class EncryptedPayload:
    """A nonce and the authenticated ciphertext produced with it."""

    nonce: bytes
    ciphertext: bytes

    @property
    def nonce_b58(self) -> str:
        return b58encode(self.nonce)

    @property
    def ciphertext_b58(self) -> str:
        return b58encode(self.ciphertext)

    @classmethod
    def from_base58(cls, data: str, nonce: str) -> "EncryptedPayload":
        """Build from the base58 ``data``/``nonce`` pair found in redirect URLs.

        Raises:
            MalformedPayloadError: If either value is not valid base58
        """
        try:
            return cls(nonce=b58decode(nonce), ciphertext=b58decode(data))
        except ValueError as e:
            raise MalformedPayloadError(f"Encrypted payload is not valid base58: {e}") from e


def encode_payload(payload: Any) -> bytes:
    """Serialize a JSON-compatible value to its canonical UTF-8 encoding."""
    try:
        return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Payload is not JSON serializable: {e}") from e


class KeyExchangeEncryptor:
    """Derives shared secrets and encrypts/decrypts wallet payloads."""

    def __init__(self, keypair: EphemeralKeyPair):
        self.keypair = keypair

    def derive_shared_secret(self, wallet_public_key: Union[str, bytes]) -> SharedSecret:
        """Combine our private key with the wallet's encryption public key.

        Args:
            wallet_public_key: Raw 32 bytes or base58 text

        Raises:
            KeyAgreementError: If the key is undecodable, the wrong size,
                or rejected by the X25519 primitive
        """
        try:
            raw = to_bytes(wallet_public_key)
        except ValueError as e:
            raise KeyAgreementError(f"Wallet public key is not valid base58: {e}") from e

        if len(raw) != KEY_SIZE:
            raise KeyAgreementError(
                f"Wallet public key must be {KEY_SIZE} bytes, got {len(raw)}"
            )

        try:
            box = Box(self.keypair.private_key, PublicKey(raw))
        except (nacl.exceptions.CryptoError, nacl.exceptions.ValueError, nacl.exceptions.TypeError) as e:
            raise KeyAgreementError("Wallet public key rejected by key agreement") from e

        logger.debug("Derived shared secret with wallet key %s...", b58encode(raw)[:8])
        return SharedSecret(box, raw)

    def encrypt(self, payload: Any, secret: SharedSecret) -> EncryptedPayload:
        """Encrypt a JSON-serializable payload under a fresh random nonce."""
        plaintext = encode_payload(payload)
        nonce = nacl.utils.random(NONCE_SIZE)
        encrypted = secret.box.encrypt(plaintext, nonce)
        return EncryptedPayload(nonce=nonce, ciphertext=encrypted.ciphertext)

    def decrypt(self, payload: EncryptedPayload, secret: SharedSecret) -> Any:
        """Authenticate and decrypt a payload.

        Raises:
            MalformedPayloadError: Nonce of the wrong size or non-JSON plaintext
            DecryptionFailure: Authentication failed (tampering, wrong key or nonce)
        """
        if len(payload.nonce) != NONCE_SIZE:
            raise MalformedPayloadError(
                f"Nonce must be {NONCE_SIZE} bytes, got {len(payload.nonce)}"
            )

        try:
            plaintext = secret.box.decrypt(payload.ciphertext, payload.nonce)
        except nacl.exceptions.CryptoError as e:
            logger.warning("Wallet payload failed authentication")
            raise DecryptionFailure() from e

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayloadError("Decrypted payload is not valid JSON") from e
