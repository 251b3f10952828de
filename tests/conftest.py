"""Pytest configuration and fixtures."""

import os

import pytest
from solders.keypair import Keypair

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["SOLANA_NETWORK"] = "devnet"
os.environ["AUDIT_ENDPOINT_URL"] = ""
os.environ["DEBUG"] = "true"

from webpay.config import get_settings
from webpay.crypto import EphemeralKeyPair, KeyExchangeEncryptor
from webpay.deeplink.pending import MemorySessionStorage, PendingTransactionStore
from webpay.encoding import b58encode
from webpay.monitor import SecurityMonitor

get_settings.cache_clear()

# Deterministic wallet addresses
PAYER = str(Keypair.from_seed(bytes([1] * 32)).pubkey())
MERCHANT = str(Keypair.from_seed(bytes([2] * 32)).pubkey())
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BLOCKHASH = b58encode(bytes([7] * 32))

# 64 bytes of 0xff encode to 88 base58 characters, 0x01 + 63 zero bytes to 87
VALID_SIGNATURE = b58encode(b"\xff" * 64)
VALID_SIGNATURE_87 = b58encode(b"\x01" + b"\x00" * 63)


@pytest.fixture
def dapp_keypair() -> EphemeralKeyPair:
    return EphemeralKeyPair.generate()


@pytest.fixture
def wallet_keypair() -> EphemeralKeyPair:
    """Stands in for the wallet's encryption keypair."""
    return EphemeralKeyPair.generate()


@pytest.fixture
def dapp_encryptor(dapp_keypair) -> KeyExchangeEncryptor:
    return KeyExchangeEncryptor(dapp_keypair)


@pytest.fixture
def wallet_encryptor(wallet_keypair) -> KeyExchangeEncryptor:
    return KeyExchangeEncryptor(wallet_keypair)


@pytest.fixture
def shared_secret(dapp_encryptor, wallet_keypair):
    return dapp_encryptor.derive_shared_secret(wallet_keypair.public_key)


@pytest.fixture
def wallet_secret(wallet_encryptor, dapp_keypair):
    return wallet_encryptor.derive_shared_secret(dapp_keypair.public_key)


@pytest.fixture
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture
def pending_store(storage) -> PendingTransactionStore:
    return PendingTransactionStore(storage, ttl_seconds=900)


@pytest.fixture
def monitor() -> SecurityMonitor:
    """Monitor with forwarding disabled."""
    return SecurityMonitor(audit_url=None)
