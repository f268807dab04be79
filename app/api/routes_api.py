"""API routes returning JSON for HTMX or external tools.

Stores are built per request: the Watch History cookie belongs to the
request, while the key-value slot is shared by every request. Changes are
reported to HTMX through the ``HX-Trigger`` response header so that badges
and list widgets can refresh themselves.
"""

import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from sqlmodel import Session

from app.core.config import get_settings
from app.core.database import get_session
from app.models.media import HistoryItem, Invalid, MediaReference, MediaType, WatchLaterItem
from app.services.tmdb import TMDBError, get_media_reference
from app.storage import (
    ChangeEvent,
    CookieBackend,
    CookieJar,
    KeyValueBackend,
    ListSort,
    ListStore,
    MemoryBackend,
    StorageBackend,
    StoreConfig,
    StoreQueries,
    select_backends,
    watch_history_config,
    watch_later_config,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# Process-wide slots for key_value_store="memory"
memory_slots = MemoryBackend()


def log_change(event: ChangeEvent) -> None:
    logger.info("%s: %s", event.name, event.detail())


class HXTrigger:
    """Observer that mirrors change events into the HX-Trigger header."""

    def __init__(self, response: Response) -> None:
        self.response = response
        self.events: Dict[str, Any] = {}

    def __call__(self, event: ChangeEvent) -> None:
        self.events[event.name] = event.detail()
        self.response.headers["HX-Trigger"] = json.dumps(self.events)


# --- Dependencies ---


def get_key_value_backend(
    session: Session = Depends(get_session),
) -> StorageBackend | None:
    """Return the configured key-value substrate, or None when disabled."""
    settings = get_settings()
    if settings.key_value_store == "sql":
        return KeyValueBackend(session, settings.storage_namespace)
    if settings.key_value_store == "memory":
        return memory_slots
    return None


def get_cookie_backend(request: Request, response: Response) -> CookieBackend:
    settings = get_settings()
    jar = CookieJar(request.cookies, response)
    return CookieBackend(
        jar,
        max_bytes=settings.cookie_max_bytes,
        max_age_days=settings.cookie_max_age_days,
    )


def _build_store(
    config: StoreConfig, backends: List[StorageBackend], response: Response
) -> ListStore:
    store = ListStore(config, backends)
    store.subscribe(log_change)
    store.subscribe(HXTrigger(response))
    logger.debug(
        "Built %s store with %d observers", config.storage_key, len(store.notifier)
    )
    return store


def get_watch_later_store(
    response: Response,
    key_value: StorageBackend | None = Depends(get_key_value_backend),
) -> ListStore[WatchLaterItem]:
    config = watch_later_config(get_settings())
    return _build_store(config, select_backends(config, key_value), response)


def get_history_store(
    response: Response,
    key_value: StorageBackend | None = Depends(get_key_value_backend),
    cookies: CookieBackend = Depends(get_cookie_backend),
) -> ListStore[HistoryItem]:
    config = watch_history_config(get_settings())
    return _build_store(config, select_backends(config, key_value, cookies), response)


# --- Helpers ---


def _add(store: ListStore, payload: Dict[str, Any]) -> Dict[str, bool]:
    result = store.prepare(payload)
    if isinstance(result, Invalid):
        raise HTTPException(status_code=422, detail=result.reason)
    return {"added": store.add(result.record)}


def _lookup(tmdb_id: int, media_type: MediaType) -> MediaReference:
    try:
        return get_media_reference(tmdb_id, media_type)
    except TMDBError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@router.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "bingearr"}


# --- Watch Later ---


@router.get("/watch-later", response_model=List[WatchLaterItem])
def list_watch_later(
    media_type: MediaType | None = None,
    q: str | None = None,
    sort: ListSort = ListSort.NEWEST,
    store: ListStore = Depends(get_watch_later_store),
):
    """List bookmarked titles, newest first unless another sort is asked for."""
    return StoreQueries(store).filter(media_type=media_type, query=q, sort=sort)


@router.get("/watch-later/count")
def count_watch_later(
    media_type: MediaType | None = None,
    store: ListStore = Depends(get_watch_later_store),
):
    return {"count": StoreQueries(store).count(media_type)}


@router.post("/watch-later")
def add_watch_later(
    payload: Dict[str, Any] = Body(...),
    store: ListStore = Depends(get_watch_later_store),
):
    """Bookmark a title. Bookmarking it again is a no-op."""
    return _add(store, payload)


@router.post("/watch-later/tmdb/{media_type}/{tmdb_id}")
def add_watch_later_from_tmdb(
    media_type: MediaType,
    tmdb_id: int,
    store: ListStore = Depends(get_watch_later_store),
):
    """Look a title up on TMDB and bookmark it."""
    reference = _lookup(tmdb_id, media_type)
    return {"added": store.add(reference)}


@router.get("/watch-later/{media_type}/{id}")
def watch_later_contains(
    media_type: MediaType,
    id: int,
    store: ListStore = Depends(get_watch_later_store),
):
    return {"contains": StoreQueries(store).contains(id, media_type)}


@router.delete("/watch-later/{media_type}/{id}")
def remove_watch_later(
    media_type: MediaType,
    id: int,
    store: ListStore = Depends(get_watch_later_store),
):
    return {"removed": store.remove(id, media_type)}


@router.delete("/watch-later")
def clear_watch_later(store: ListStore = Depends(get_watch_later_store)):
    return {"cleared": store.clear()}


# --- Watch History ---


@router.get("/history", response_model=List[HistoryItem])
def list_history(
    media_type: MediaType | None = None,
    q: str | None = None,
    sort: ListSort = ListSort.NEWEST,
    store: ListStore = Depends(get_history_store),
):
    """List watched movies and episodes, newest first unless another sort is asked for."""
    return StoreQueries(store).filter(media_type=media_type, query=q, sort=sort)


@router.get("/history/count")
def count_history(
    media_type: MediaType | None = None,
    store: ListStore = Depends(get_history_store),
):
    return {"count": StoreQueries(store).count(media_type)}


@router.post("/history")
def add_history(
    payload: Dict[str, Any] = Body(...),
    store: ListStore = Depends(get_history_store),
):
    """Record a viewing. Watching the same movie or episode again refreshes it."""
    return _add(store, payload)


@router.post("/history/tmdb/{media_type}/{tmdb_id}")
def add_history_from_tmdb(
    media_type: MediaType,
    tmdb_id: int,
    season: int | None = None,
    episode: int | None = None,
    store: ListStore = Depends(get_history_store),
):
    """Look a title up on TMDB and record a viewing of it."""
    reference = _lookup(tmdb_id, media_type)
    payload = reference.model_dump(exclude_none=True)
    payload.update(season=season, episode=episode)
    return _add(store, payload)


@router.get("/history/{media_type}/{id}")
def history_contains(
    media_type: MediaType,
    id: int,
    store: ListStore = Depends(get_history_store),
):
    return {"contains": StoreQueries(store).contains(id, media_type)}


@router.delete("/history/{media_type}/{id}")
def remove_history(
    media_type: MediaType,
    id: int,
    season: int | None = None,
    episode: int | None = None,
    store: ListStore = Depends(get_history_store),
):
    return {"removed": store.remove(id, media_type, season, episode)}


@router.delete("/history")
def clear_history(store: ListStore = Depends(get_history_store)):
    return {"cleared": store.clear()}
