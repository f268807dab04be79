"""Storage substrates for persisted lists.

A backend stores one text blob per key. Absence is a normal ``None`` read;
failures surface as :class:`StorageUnavailableError` and are absorbed by
:class:`BackendChain`, which is what stores talk to.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Sequence
from urllib.parse import quote, unquote

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.responses import Response

from app.models.storage import StorageSlot
from app.storage.errors import CorruptionError, StorageUnavailableError

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class StorageBackend(ABC):
    """Interface for a key -> text blob substrate."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short name used in log messages."""
        pass

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Return the stored blob, or None if the key was never written."""
        pass

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``.

        Raises:
            StorageUnavailableError: If the substrate refused the write.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""
        pass


class MemoryBackend(StorageBackend):
    """Process-local key-value slots with an optional byte quota."""

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes
        self._slots: Dict[str, str] = {}

    @property
    def name(self) -> str:
        return "memory"

    def read(self, key: str) -> str | None:
        return self._slots.get(key)

    def write(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            used = sum(
                len(k.encode("utf-8")) + len(v.encode("utf-8"))
                for k, v in self._slots.items()
                if k != key
            )
            needed = len(key.encode("utf-8")) + len(value.encode("utf-8"))
            if used + needed > self.max_bytes:
                raise StorageUnavailableError(
                    f"Quota of {self.max_bytes} bytes exceeded writing {key!r}"
                )
        self._slots[key] = value

    def delete(self, key: str) -> None:
        self._slots.pop(key, None)


class KeyValueBackend(StorageBackend):
    """Key-value slots stored as rows of the ``storage_slots`` table."""

    def __init__(self, session: Session, namespace: str) -> None:
        self.session = session
        self.namespace = namespace

    @property
    def name(self) -> str:
        return "key-value"

    def _get(self, key: str) -> StorageSlot | None:
        try:
            return self.session.get(StorageSlot, (self.namespace, key))
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageUnavailableError(f"Could not read slot {key!r}", exc)

    def read(self, key: str) -> str | None:
        slot = self._get(key)
        return slot.value if slot is not None else None

    def write(self, key: str, value: str) -> None:
        slot = self._get(key)
        if slot is None:
            slot = StorageSlot(namespace=self.namespace, key=key, value=value)
        else:
            slot.value = value
            slot.updated_at = datetime.now(timezone.utc)
        try:
            self.session.add(slot)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageUnavailableError(f"Could not write slot {key!r}", exc)

    def delete(self, key: str) -> None:
        slot = self._get(key)
        if slot is None:
            return
        try:
            self.session.delete(slot)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageUnavailableError(f"Could not delete slot {key!r}", exc)


class CookieJar:
    """Cookies of one request, mirroring writes onto the outgoing response.

    Reads see the request cookies plus anything written since, so several
    operations within one request observe each other.
    """

    def __init__(
        self,
        cookies: Mapping[str, str] | None = None,
        response: Response | None = None,
        path: str = "/",
    ) -> None:
        self._cookies: Dict[str, str] = dict(cookies or {})
        self.response = response
        self.path = path

    def get(self, name: str) -> str | None:
        return self._cookies.get(name)

    def set(self, name: str, value: str, max_age: int) -> None:
        self._cookies[name] = value
        if self.response is not None:
            self.response.set_cookie(
                name,
                value,
                max_age=max_age,
                expires=max_age,
                path=self.path,
                samesite="lax",
            )

    def delete(self, name: str) -> None:
        self._cookies.pop(name, None)
        if self.response is not None:
            self.response.delete_cookie(name, path=self.path, samesite="lax")


class CookieBackend(StorageBackend):
    """Size-limited cookie slot. Values are percent-encoded."""

    def __init__(
        self, jar: CookieJar, max_bytes: int = 4096, max_age_days: int = 365
    ) -> None:
        self.jar = jar
        self.max_bytes = max_bytes
        self.max_age = max_age_days * SECONDS_PER_DAY

    @property
    def name(self) -> str:
        return "cookie"

    def read(self, key: str) -> str | None:
        raw = self.jar.get(key)
        if not raw:
            return None
        return unquote(raw)

    def write(self, key: str, value: str) -> None:
        encoded = quote(value, safe="")
        size = len(key) + 1 + len(encoded)
        if size > self.max_bytes:
            raise StorageUnavailableError(
                f"Cookie {key!r} would be {size} bytes, limit is {self.max_bytes}"
            )
        self.jar.set(key, encoded, max_age=self.max_age)

    def delete(self, key: str) -> None:
        self.jar.delete(key)


class BackendChain:
    """Ordered backends for one store.

    Precedence: reads walk the backends in order and return the first payload
    that is present and decodes; absent, unreadable and corrupt payloads fall
    through to the next backend, and an exhausted chain reads as empty.
    Writes and deletes go to every backend and succeed if any backend
    accepted them. After a successful write, backends that refused it drop
    their now stale copy; a write nobody accepted leaves every backend as it
    was.
    """

    def __init__(self, backends: Sequence[StorageBackend]) -> None:
        self.backends: List[StorageBackend] = list(backends)

    @property
    def available(self) -> bool:
        return bool(self.backends)

    def load(self, key: str, decode: Callable[[str], list]) -> list:
        for backend in self.backends:
            try:
                raw = backend.read(key)
            except StorageUnavailableError as exc:
                logger.warning("Could not read %r from %s: %s", key, backend.name, exc)
                continue
            if raw is None:
                continue
            try:
                return decode(raw)
            except CorruptionError as exc:
                logger.warning(
                    "Ignoring corrupt %r payload in %s: %s", key, backend.name, exc
                )
        return []

    def save(self, key: str, value: str) -> bool:
        stored = False
        refused = []
        for backend in self.backends:
            try:
                backend.write(key, value)
            except StorageUnavailableError as exc:
                logger.error("Failed to write %r to %s: %s", key, backend.name, exc)
                refused.append(backend)
                continue
            stored = True

        if stored:
            # A stale copy would shadow the new one for backends read first
            for backend in refused:
                try:
                    backend.delete(key)
                except StorageUnavailableError as exc:
                    logger.error(
                        "Failed to drop stale %r from %s: %s", key, backend.name, exc
                    )
        return stored

    def erase(self, key: str) -> bool:
        erased = False
        for backend in self.backends:
            try:
                backend.delete(key)
            except StorageUnavailableError as exc:
                logger.error("Failed to delete %r from %s: %s", key, backend.name, exc)
                continue
            erased = True
        return erased
