"""Recent-digest history: a small JSON list, newest first."""

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from scholardigest.io_utils import write_atomically
from scholardigest.models import HistoryEntry, HistoryError

logger = logging.getLogger(__name__)

MAX_HISTORY = 3

_ENTRIES = TypeAdapter(list[HistoryEntry])


class HistoryStore:
    """File-backed list of the most recent digests."""

    def __init__(self, path: Path, limit: int = MAX_HISTORY) -> None:
        self.path = path
        self.limit = limit

    def load(self) -> list[HistoryEntry]:
        """Return stored entries, newest first; ``[]`` if the file does not exist.

        Raises:
            HistoryError: if the file exists but is not a valid history list.
        """
        if not self.path.exists():
            return []
        try:
            return _ENTRIES.validate_json(self.path.read_bytes())
        except ValidationError as exc:
            raise HistoryError(f"Corrupt history file {self.path}: {exc}") from exc

    def add(self, entry: HistoryEntry) -> list[HistoryEntry]:
        """Prepend ``entry``, keep the newest ``limit`` entries, and return them."""
        entries = [entry, *self.load()][: self.limit]
        payload = json.dumps(
            [e.model_dump(mode="json") for e in entries], ensure_ascii=False, indent=2
        )
        write_atomically(self.path, payload)
        logger.debug("History updated (%d entries)", len(entries))
        return entries
