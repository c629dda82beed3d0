# booking_engine/infrastructure/drafts.py

import json

from booking_engine.application.ports import DraftStore


def draft_key(event_id: str) -> str:
    return f"event_registration_{event_id}"


class InMemoryDraftStore(DraftStore):
    """
    Keeps each event's draft as a JSON string, the way browser storage
    would, so a stored draft can never alias the caller's dict.
    """

    def __init__(self):
        self._items: dict[str, str] = {}

    def load(self, event_id: str) -> dict | None:
        raw = self._items.get(draft_key(event_id))
        if raw is None:
            return None
        return json.loads(raw)

    def save(self, event_id: str, draft: dict) -> None:
        self._items[draft_key(event_id)] = json.dumps(draft, default=str)

    def clear(self, event_id: str) -> None:
        self._items.pop(draft_key(event_id), None)
