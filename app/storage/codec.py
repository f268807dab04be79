"""JSON codec for persisted media reference lists."""

import json
import logging
from typing import List, Sequence, Type

from app.models.media import Invalid, MediaReference, RecordT, parse_record
from app.storage.errors import CorruptionError

logger = logging.getLogger(__name__)


def encode(records: Sequence[MediaReference]) -> str:
    """Serialize records to a compact JSON array using the persisted field names."""
    return json.dumps(
        [
            record.model_dump(mode="json", by_alias=True, exclude_none=True)
            for record in records
        ],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def decode(text: str, model: Type[RecordT]) -> List[RecordT]:
    """Deserialize a JSON array into ``model`` records.

    Entries that fail validation are skipped so that one bad entry does not
    cost the whole list.

    Raises:
        CorruptionError: If the payload is not JSON or not an array.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError, RecursionError) as exc:
        raise CorruptionError("Stored list is not valid JSON", exc)

    if not isinstance(payload, list):
        raise CorruptionError(
            f"Stored list must be a JSON array, got {type(payload).__name__}"
        )

    records = []
    for index, entry in enumerate(payload):
        result = parse_record(entry, model)
        if isinstance(result, Invalid):
            logger.warning(
                "Dropping stored %s entry %d: %s", model.__name__, index, result.reason
            )
            continue
        records.append(result.record)
    return records
