"""Change notifications for list stores."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from app.models.media import MediaType

logger = logging.getLogger(__name__)


class StoreAction(str, Enum):
    """What a change event did to a store."""

    ADD = "add"
    REMOVE = "remove"
    CLEAR = "clear"


@dataclass(frozen=True)
class ChangeEvent:
    """A change to a store's persisted state."""

    name: str
    action: StoreAction
    id: Optional[int] = None
    media_type: Optional[MediaType] = None
    season: Optional[int] = None
    episode: Optional[int] = None

    def detail(self) -> Dict[str, Any]:
        """Return the JSON-ready event payload."""
        detail: Dict[str, Any] = {"action": self.action.value}
        if self.id is not None:
            detail["id"] = self.id
        if self.media_type is not None:
            detail["media_type"] = self.media_type.value
        if self.season is not None:
            detail["season"] = self.season
        if self.episode is not None:
            detail["episode"] = self.episode
        return detail


Observer = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """Synchronous observer registry.

    Observers are called in subscription order. Observers registered after
    an event was emitted never see it.
    """

    def __init__(self) -> None:
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` and return a callable that unregisters it."""
        self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        """Unregister ``observer``; unknown observers are ignored."""
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def emit(self, event: ChangeEvent) -> None:
        """Deliver ``event`` to every observer registered right now."""
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Observer %r failed handling %s", observer, event.name)

    def __len__(self) -> int:
        return len(self._observers)
