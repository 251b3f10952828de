"""Pending transaction persistence across page reloads.

One outstanding request per browsing session. The slot is last-writer-wins;
dispatching a second request before the first resolves is unsupported.
"""

import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DATA_KEY = "pendingTxData"
NONCE_KEY = "pendingTxNonce"
CREATED_AT_KEY = "pendingTxCreatedAt"
SOURCE_KEY = "pendingTxSource"

# What the stored ciphertext is: the request we sent, or the wallet's
# redirect payload held until the shared secret is available again
SOURCE_REQUEST = "request"
SOURCE_REDIRECT = "redirect"

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class SessionStorage(ABC):
    """String key/value storage scoped to one browsing session."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Get a value, or None if absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Set a value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a value if present."""


class MemorySessionStorage(SessionStorage):
    """In-process storage, used in tests and single-process flows."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileSessionStorage(SessionStorage):
    """JSON file per session id.

    Survives a process restart for the same session id; a new session id
    starts empty.
    """

    def __init__(self, directory: str, session_id: str):
        if not _SESSION_ID_RE.match(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        self.path = Path(directory) / f"{session_id}.json"

    def _read(self) -> dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Corrupt session storage file %s, starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


@dataclass(frozen=True)
class PendingTransaction:
    """A dispatched request awaiting the wallet's redirect."""

    data: str
    nonce: str
    created_at: datetime
    source: str = SOURCE_REQUEST

    @property
    def is_redirect(self) -> bool:
        return self.source == SOURCE_REDIRECT

    def age_seconds(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return now - self.created_at.timestamp()


class PendingTransactionStore:
    """Single-slot pending transaction register.

    Args:
        storage: Session-scoped backing storage
        ttl_seconds: Age after which an entry is treated as abandoned
            (None = never expires)
    """

    def __init__(self, storage: SessionStorage, ttl_seconds: Optional[int] = 900):
        self.storage = storage
        self.ttl_seconds = ttl_seconds

    def save(self, data: str, nonce: str, source: str = SOURCE_REQUEST) -> PendingTransaction:
        """Record a dispatched request, replacing any previous one.

        ``source`` is SOURCE_REDIRECT when the pair is the wallet's encrypted
        response that could not be decrypted yet.
        """
        if source not in (SOURCE_REQUEST, SOURCE_REDIRECT):
            raise ValueError(f"Unknown pending source: {source!r}")
        previous = self.storage.get_item(SOURCE_KEY) or SOURCE_REQUEST
        # A redirect held for later replaces the request it answers
        if self.storage.get_item(DATA_KEY) is not None and not (
            source == SOURCE_REDIRECT and previous == SOURCE_REQUEST
        ):
            logger.warning("Replacing unresolved pending transaction")

        created_at = datetime.now(timezone.utc)
        self.storage.set_item(DATA_KEY, data)
        self.storage.set_item(NONCE_KEY, nonce)
        self.storage.set_item(CREATED_AT_KEY, created_at.isoformat())
        self.storage.set_item(SOURCE_KEY, source)
        return PendingTransaction(data=data, nonce=nonce, created_at=created_at, source=source)

    def load(self) -> Optional[PendingTransaction]:
        """Return the pending entry, or None if absent or expired."""
        data = self.storage.get_item(DATA_KEY)
        nonce = self.storage.get_item(NONCE_KEY)
        if not data or not nonce:
            return None

        created_at = self._parse_created_at(self.storage.get_item(CREATED_AT_KEY))
        source = self.storage.get_item(SOURCE_KEY) or SOURCE_REQUEST
        pending = PendingTransaction(data=data, nonce=nonce, created_at=created_at, source=source)

        if self.ttl_seconds is not None and pending.age_seconds() > self.ttl_seconds:
            logger.info(
                "Pending transaction abandoned after %.0fs (ttl %ss)",
                pending.age_seconds(),
                self.ttl_seconds,
            )
            self.clear()
            return None
        return pending

    def clear(self) -> None:
        """Drop the pending entry."""
        self.storage.remove_item(DATA_KEY)
        self.storage.remove_item(NONCE_KEY)
        self.storage.remove_item(CREATED_AT_KEY)
        self.storage.remove_item(SOURCE_KEY)

    @property
    def has_pending(self) -> bool:
        return self.load() is not None

    @staticmethod
    def _parse_created_at(value: Optional[str]) -> datetime:
        # Entries written without a timestamp count as fresh
        if value:
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                logger.warning("Unparsable pending timestamp %r", value)
        return datetime.now(timezone.utc)
