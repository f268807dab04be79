"""TMDB lookups that turn a catalog id into a media reference."""

from cachetools import cached
from cachetools import TTLCache

import tmdbsimple as tmdb

from app.core.config import get_settings
from app.models.media import MediaReference, MediaType
import logging

logger = logging.getLogger(__name__)


class TMDBError(Exception):
    """Domain exception for TMDB failures."""

    def __init__(self, message: str, original_exception: Exception = None):
        super().__init__(message)
        self.original_exception = original_exception


reference_cache = TTLCache(maxsize=256, ttl=1800)

# Initialize TMDB
settings = get_settings()
tmdb.API_KEY = settings.tmdb_api_key


def _parse_reference(info: dict, media_type: MediaType) -> MediaReference:
    """Keep the catalog fields the lists store."""
    genre_ids = [g["id"] for g in info.get("genres", []) if "id" in g]

    return MediaReference.model_validate(
        {
            "id": info["id"],
            "media_type": media_type,
            "title": info.get("title"),
            "name": info.get("name"),
            "poster_path": info.get("poster_path"),
            "backdrop_path": info.get("backdrop_path"),
            "overview": info.get("overview") or None,
            "vote_average": info.get("vote_average") or 0.0,
            "release_date": info.get("release_date") or None,
            "first_air_date": info.get("first_air_date") or None,
            "genre_ids": genre_ids or info.get("genre_ids"),
            "adult": info.get("adult"),
            "original_language": info.get("original_language"),
            "popularity": info.get("popularity"),
        }
    )


@cached(reference_cache)
def get_media_reference(tmdb_id: int, media_type: MediaType) -> MediaReference:
    """Fetch a movie or series from TMDB as a media reference (cached)."""
    if not tmdb.API_KEY:
        raise TMDBError("TMDB_API_KEY is not configured")

    api = tmdb.Movies(tmdb_id) if media_type == MediaType.MOVIE else tmdb.TV(tmdb_id)
    try:
        info = api.info()
    except Exception as exc:
        logger.error(
            "Failed to fetch %s details for ID %s: %s", media_type.value, tmdb_id, exc
        )
        raise TMDBError(
            f"Failed to fetch {media_type.value} details for ID {tmdb_id}", exc
        )

    return _parse_reference(info, media_type)
