"""Persisted list engine behind Watch Later and Watch History.

A :class:`ListStore` never keeps records between calls. Every operation
reloads the list from its backends, applies one change, writes the whole
list back and then notifies observers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Generic, List, Mapping, Optional, Sequence, Tuple, Type

from pydantic import BaseModel

from app.core.config import Settings
from app.models.media import (
    HistoryItem,
    Invalid,
    MediaType,
    ParseResult,
    RecordT,
    WatchLaterItem,
    parse_record,
)
from app.storage import codec
from app.storage.backends import BackendChain, CookieBackend, StorageBackend
from app.storage.notifier import ChangeEvent, ChangeNotifier, Observer, StoreAction

logger = logging.getLogger(__name__)

WATCH_LATER_EVENT = "watch-later-updated"
HISTORY_EVENT = "history-updated"


@dataclass(frozen=True)
class StoreConfig(Generic[RecordT]):
    """Everything that distinguishes one list store from another."""

    storage_key: str
    event_name: str
    item_model: Type[RecordT]
    key_fields: Tuple[str, ...] = ("id", "media_type")
    cap: Optional[int] = None
    dual_backend: bool = False
    # False: a duplicate add is rejected. True: it moves the entry to the front.
    refresh_on_duplicate: bool = False


def watch_later_config(settings: Settings) -> StoreConfig[WatchLaterItem]:
    return StoreConfig(
        storage_key=settings.watch_later_key,
        event_name=WATCH_LATER_EVENT,
        item_model=WatchLaterItem,
    )


def watch_history_config(settings: Settings) -> StoreConfig[HistoryItem]:
    return StoreConfig(
        storage_key=settings.history_key,
        event_name=HISTORY_EVENT,
        item_model=HistoryItem,
        key_fields=("id", "media_type", "season", "episode"),
        cap=settings.history_limit,
        dual_backend=True,
        refresh_on_duplicate=True,
    )


def select_backends(
    config: StoreConfig,
    key_value: StorageBackend | None,
    cookies: CookieBackend | None = None,
) -> List[StorageBackend]:
    """Order the available backends by read precedence for ``config``.

    Dual-backend stores read the cookie first and fall back to the key-value
    slot; the others only use the key-value slot. Missing substrates are
    skipped.
    """
    ordered = [cookies, key_value] if config.dual_backend else [key_value]
    return [backend for backend in ordered if backend is not None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_media_type(value: MediaType | str) -> MediaType | None:
    try:
        return MediaType(value)
    except ValueError:
        return None


class ListStore(Generic[RecordT]):
    """Deduplicated, newest-first list of media references."""

    def __init__(
        self,
        config: StoreConfig[RecordT],
        backends: Sequence[StorageBackend],
        notifier: ChangeNotifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.chain = BackendChain(backends)
        self.notifier = notifier if notifier is not None else ChangeNotifier()
        self._clock = clock or _utcnow
        self._decode = partial(codec.decode, model=config.item_model)

    # Observers ---------------------------------------------------------
    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self.notifier.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self.notifier.unsubscribe(observer)

    # Internal helpers --------------------------------------------------
    def _key(self, source: Any) -> tuple:
        if isinstance(source, Mapping):
            return tuple(source.get(field) for field in self.config.key_fields)
        return tuple(getattr(source, field, None) for field in self.config.key_fields)

    def _load(self) -> List[RecordT]:
        if not self.chain.available:
            return []
        records = self.chain.load(self.config.storage_key, self._decode)
        seen = set()
        unique = []
        for record in records:
            key = self._key(record)
            if key in seen:
                continue
            seen.add(key)
            unique.append(record)
        if self.config.cap is not None:
            unique = unique[: self.config.cap]
        return unique

    def _persist(self, records: List[RecordT]) -> bool:
        return self.chain.save(self.config.storage_key, codec.encode(records))

    def _identity(self, record: RecordT) -> dict:
        return {field: getattr(record, field) for field in self.config.key_fields}

    def _emit(self, action: StoreAction, **identity: Any) -> None:
        self.notifier.emit(
            ChangeEvent(name=self.config.event_name, action=action, **identity)
        )

    # Public API --------------------------------------------------------
    def list(self) -> List[RecordT]:
        """Return the stored records, newest first."""
        return self._load()

    def prepare(self, candidate: Any) -> ParseResult:
        """Stamp ``candidate`` with a fresh timestamp and validate it.

        Any timestamp supplied by the caller is discarded.
        """
        if isinstance(candidate, BaseModel):
            data = candidate.model_dump(exclude_none=True)
        elif isinstance(candidate, Mapping):
            data = dict(candidate)
        else:
            return Invalid(f"expected an object, got {type(candidate).__name__}")

        model = self.config.item_model
        field_name = model.recency_field
        alias = model.model_fields[field_name].alias
        data.pop(alias, None)
        data[field_name] = self._clock()
        return parse_record(data, model)

    def add(self, candidate: Any) -> bool:
        """Insert ``candidate`` at the front of the list.

        Returns:
            True if the list changed, False if the candidate was invalid, was
            a rejected duplicate, or could not be persisted.
        """
        if not self.chain.available:
            logger.debug("No storage for %s, dropping add", self.config.storage_key)
            return False

        result = self.prepare(candidate)
        if isinstance(result, Invalid):
            logger.warning(
                "Rejected %s entry: %s", self.config.storage_key, result.reason
            )
            return False
        record = result.record
        key = self._key(record)

        records = self._load()
        if any(self._key(existing) == key for existing in records):
            if not self.config.refresh_on_duplicate:
                logger.info(
                    "%s already in %s", record.display_title, self.config.storage_key
                )
                return False
            records = [existing for existing in records if self._key(existing) != key]

        records.insert(0, record)
        if self.config.cap is not None:
            records = records[: self.config.cap]

        if not self._persist(records):
            return False
        self._emit(StoreAction.ADD, **self._identity(record))
        return True

    def remove(
        self,
        id: int,
        media_type: MediaType | str,
        season: int | None = None,
        episode: int | None = None,
    ) -> bool:
        """Remove the record matching the full dedup key.

        ``season`` and ``episode`` are only part of the key for stores that
        track them.
        """
        media_type = _as_media_type(media_type)
        if media_type is None or not self.chain.available:
            return False

        target = self._key(
            {
                "id": id,
                "media_type": media_type,
                "season": season,
                "episode": episode,
            }
        )
        records = self._load()
        remaining = [record for record in records if self._key(record) != target]
        if len(remaining) == len(records):
            logger.debug("%s#%s not in %s", media_type, id, self.config.storage_key)
            return False

        if not self._persist(remaining):
            return False
        self._emit(
            StoreAction.REMOVE,
            **dict(zip(self.config.key_fields, target)),
        )
        return True

    def clear(self) -> bool:
        """Empty the store.

        Returns:
            False only if no backend accepted the deletion.
        """
        if not self.chain.erase(self.config.storage_key):
            return False
        self._emit(StoreAction.CLEAR)
        return True

    def contains(self, id: int, media_type: MediaType | str) -> bool:
        """Whether any record has this ``(id, media_type)``."""
        media_type = _as_media_type(media_type)
        if media_type is None:
            return False
        return any(
            record.id == id and record.media_type == media_type
            for record in self._load()
        )

    def count(self) -> int:
        return len(self._load())
