"""Tests for deep-link construction and pending transaction persistence."""

import time
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from webpay.crypto import EncryptedPayload
from webpay.deeplink import (
    DeepLinkDispatcher,
    FileSessionStorage,
    MemorySessionStorage,
    PendingTransactionStore,
)
from webpay.deeplink.pending import (
    CREATED_AT_KEY,
    DATA_KEY,
    NONCE_KEY,
    SOURCE_KEY,
    SOURCE_REDIRECT,
    SOURCE_REQUEST,
)
from webpay.encoding import b58decode


def query_of(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestDeepLinkDispatcher:
    """Tests for the wallet deep-link URIs."""

    def test_sign_and_send_link(self, dapp_encryptor, dapp_keypair, shared_secret):
        """Test the link carries key, nonce, payload and redirect."""
        encrypted = dapp_encryptor.encrypt({"session": "s", "transaction": "t"}, shared_secret)
        dispatcher = DeepLinkDispatcher(use_universal_links=False)

        url = dispatcher.build_deep_link(
            encrypted, "https://shop.example/pay/1?step=confirm", dapp_keypair.public_key
        )

        assert url.startswith("phantom://v1/signAndSendTransaction?")
        params = query_of(url)
        assert params["dapp_encryption_public_key"] == dapp_keypair.public_key_b58
        assert b58decode(params["nonce"]) == encrypted.nonce
        assert b58decode(params["payload"]) == encrypted.ciphertext
        assert params["redirect_link"] == "https://shop.example/pay/1?step=confirm"

    def test_link_payload_decrypts(self, dapp_encryptor, dapp_keypair, shared_secret, wallet_encryptor, wallet_secret):
        """Test the wallet can open the request from the link alone."""
        encrypted = dapp_encryptor.encrypt({"session": "s", "transaction": "t"}, shared_secret)
        url = DeepLinkDispatcher(False).build_deep_link(encrypted, "https://x", dapp_keypair.public_key_b58)

        params = query_of(url)
        received = EncryptedPayload.from_base58(params["payload"], params["nonce"])
        assert wallet_encryptor.decrypt(received, wallet_secret) == {"session": "s", "transaction": "t"}

    def test_universal_link(self, dapp_encryptor, dapp_keypair, shared_secret):
        encrypted = dapp_encryptor.encrypt({}, shared_secret)
        url = DeepLinkDispatcher(use_universal_links=True).build_deep_link(
            encrypted, "https://x", dapp_keypair.public_key
        )
        assert url.startswith("https://phantom.app/ul/v1/signAndSendTransaction?")

    def test_return_url_required(self, dapp_encryptor, dapp_keypair, shared_secret):
        encrypted = dapp_encryptor.encrypt({}, shared_secret)
        with pytest.raises(ValueError):
            DeepLinkDispatcher(False).build_deep_link(encrypted, "", dapp_keypair.public_key)

    def test_connect_link(self, dapp_keypair):
        url = DeepLinkDispatcher(False).build_connect_link(
            dapp_keypair.public_key, "https://shop.example", "https://shop.example/cb"
        )
        assert url.startswith("phantom://v1/connect?")
        params = query_of(url)
        assert params["dapp_encryption_public_key"] == dapp_keypair.public_key_b58
        assert params["cluster"] == "devnet"
        assert params["app_url"] == "https://shop.example"
        assert params["redirect_link"] == "https://shop.example/cb"


class TestPendingTransactionStore:
    """Tests for the single pending slot."""

    def test_save_load_clear(self, pending_store):
        pending_store.save("abc", "123")

        loaded = pending_store.load()
        assert loaded is not None
        assert (loaded.data, loaded.nonce) == ("abc", "123")

        pending_store.clear()
        assert pending_store.load() is None

    def test_survives_reload(self, storage):
        """Test a new store over the same session storage sees the entry."""
        PendingTransactionStore(storage).save("abc", "123")

        reloaded = PendingTransactionStore(storage).load()
        assert (reloaded.data, reloaded.nonce) == ("abc", "123")

    def test_save_overwrites(self, pending_store):
        pending_store.save("first", "1")
        pending_store.save("second", "2")

        loaded = pending_store.load()
        assert (loaded.data, loaded.nonce) == ("second", "2")

    def test_partial_entry_is_absent(self, storage, pending_store):
        storage.set_item(DATA_KEY, "abc")
        assert pending_store.load() is None

    def test_expired_entry_is_abandoned(self, storage):
        """Test entries older than the ttl are cleared on load."""
        store = PendingTransactionStore(storage, ttl_seconds=60)
        store.save("abc", "123")
        old = datetime.now(timezone.utc) - timedelta(seconds=61)
        storage.set_item(CREATED_AT_KEY, old.isoformat())

        assert store.load() is None
        assert storage.get_item(DATA_KEY) is None
        assert storage.get_item(NONCE_KEY) is None

    def test_no_ttl_never_expires(self, storage):
        store = PendingTransactionStore(storage, ttl_seconds=None)
        store.save("abc", "123")
        storage.set_item(CREATED_AT_KEY, "2000-01-01T00:00:00+00:00")

        assert store.load() is not None

    def test_missing_timestamp_counts_as_fresh(self, storage, pending_store):
        storage.set_item(DATA_KEY, "abc")
        storage.set_item(NONCE_KEY, "123")

        loaded = pending_store.load()
        assert loaded is not None
        assert loaded.age_seconds(time.time()) < 5

    def test_request_is_default_source(self, pending_store):
        loaded = pending_store.save("abc", "123")
        assert loaded.source == SOURCE_REQUEST
        assert not pending_store.load().is_redirect

    def test_held_redirect_survives_reload(self, storage):
        PendingTransactionStore(storage).save("wallet-data", "wallet-nonce", source=SOURCE_REDIRECT)

        reloaded = PendingTransactionStore(storage).load()
        assert reloaded.is_redirect
        assert (reloaded.data, reloaded.nonce) == ("wallet-data", "wallet-nonce")

    def test_clear_removes_source(self, storage, pending_store):
        pending_store.save("abc", "123", source=SOURCE_REDIRECT)
        pending_store.clear()

        assert storage.get_item(SOURCE_KEY) is None

    def test_unknown_source_rejected(self, pending_store):
        with pytest.raises(ValueError):
            pending_store.save("abc", "123", source="elsewhere")


class TestFileSessionStorage:
    """Tests for file-backed session storage."""

    def test_survives_process_restart(self, tmp_path):
        """Test that a fresh storage object for the same session sees the entry."""
        PendingTransactionStore(FileSessionStorage(str(tmp_path), "sess-1")).save("abc", "123")

        loaded = PendingTransactionStore(FileSessionStorage(str(tmp_path), "sess-1")).load()
        assert (loaded.data, loaded.nonce) == ("abc", "123")

    def test_new_session_starts_empty(self, tmp_path):
        PendingTransactionStore(FileSessionStorage(str(tmp_path), "sess-1")).save("abc", "123")

        assert PendingTransactionStore(FileSessionStorage(str(tmp_path), "sess-2")).load() is None

    def test_clear_removes_entry(self, tmp_path):
        store = PendingTransactionStore(FileSessionStorage(str(tmp_path), "sess-1"))
        store.save("abc", "123")
        store.clear()

        assert PendingTransactionStore(FileSessionStorage(str(tmp_path), "sess-1")).load() is None

    def test_corrupt_file_is_empty(self, tmp_path):
        (tmp_path / "sess-1.json").write_text("{not json")
        assert FileSessionStorage(str(tmp_path), "sess-1").get_item(DATA_KEY) is None

    @pytest.mark.parametrize("session_id", ["../escape", "", "a/b", "x" * 200])
    def test_rejects_unsafe_session_ids(self, tmp_path, session_id):
        with pytest.raises(ValueError):
            FileSessionStorage(str(tmp_path), session_id)

    def test_memory_storage_remove_missing(self):
        storage = MemorySessionStorage()
        storage.remove_item("missing")
        assert storage.get_item("missing") is None
