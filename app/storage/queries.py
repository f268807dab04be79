"""Read-only views of a store for badges, counters and list pages."""

from enum import Enum
from typing import List, Optional

from app.models.media import MediaReference, MediaType
from app.storage.engine import ListStore


class ListSort(str, Enum):
    """Orderings offered by the list pages."""

    NEWEST = "newest"
    OLDEST = "oldest"
    TITLE = "title"
    RATING = "rating"


def _title_key(record: MediaReference) -> str:
    return (record.title or record.name or "").casefold()


def _matches(record: MediaReference, needle: str) -> bool:
    haystacks = (record.title or record.name or "", record.overview or "")
    return any(needle in text.casefold() for text in haystacks)


class StoreQueries:
    """Answers "is this saved?", "how many?" and "which ones?" without mutating.

    The store keeps records newest first, so ``NEWEST`` is the stored order
    and ``OLDEST`` its reverse. Title and rating sorts are stable, leaving
    ties in recency order.
    """

    def __init__(self, store: ListStore) -> None:
        self._store = store

    def contains(self, id: int, media_type: MediaType | str) -> bool:
        return self._store.contains(id, media_type)

    def count(self, media_type: MediaType | str | None = None) -> int:
        """Number of records, optionally only those of one media type."""
        if media_type is None:
            return self._store.count()
        return len(self.filter(media_type=media_type))

    def filter(
        self,
        media_type: MediaType | str | None = None,
        query: Optional[str] = None,
        sort: ListSort | str = ListSort.NEWEST,
    ) -> List[MediaReference]:
        """Return the records matching ``media_type`` and ``query``, sorted.

        Args:
            media_type: Keep only this media type. An unknown type matches
                nothing.
            query: Case-insensitive text looked up in the title (or series
                name) and the overview. Blank queries match everything.
            sort: One of :class:`ListSort`.

        Raises:
            ValueError: If ``sort`` is not a known ordering.
        """
        sort = ListSort(sort)
        records = self._store.list()

        if media_type is not None:
            try:
                wanted = MediaType(media_type)
            except ValueError:
                return []
            records = [record for record in records if record.media_type is wanted]

        needle = (query or "").strip().casefold()
        if needle:
            records = [record for record in records if _matches(record, needle)]

        if sort is ListSort.OLDEST:
            records = records[::-1]
        elif sort is ListSort.TITLE:
            records = sorted(records, key=_title_key)
        elif sort is ListSort.RATING:
            records = sorted(records, key=lambda record: record.vote_average, reverse=True)
        return records
