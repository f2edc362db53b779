import json
import logging
import os
from typing import Any, Dict, List, MutableMapping, Optional

logger = logging.getLogger(__name__)

SELECTED_DATES_KEY = "event_selected_dates"
DATE_TIMES_KEY = "event_date_times"
ACTIVE_DATE_KEY = "event_active_date"


def inspiration_key(booking_id: str) -> str:
    return f"inspiration_{booking_id}"


class DraftStore:
    """
    Key -> JSON-string store for in-progress wizard state.

    Values are kept as strings exactly like browser storage. When `path`
    is given the whole store is mirrored to that JSON file after every
    write, so drafts survive a restart (not shared across machines).
    """

    def __init__(self, backend: Optional[MutableMapping[str, str]] = None, path: Optional[str] = None):
        self._backend = backend if backend is not None else {}
        self._path = path
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                try:
                    stored = json.load(fh)
                except ValueError:
                    logger.warning("Draft store %s is not valid JSON; starting empty", path)
                    stored = {}
            for key, value in stored.items():
                self._backend[key] = str(value)

    # -------------------------
    # raw string access
    # -------------------------
    def get_item(self, key: str) -> Optional[str]:
        return self._backend.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._backend[key] = str(value)
        self._flush()

    def remove_item(self, key: str) -> None:
        self._backend.pop(key, None)
        self._flush()

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_item(key)
        if raw is None or raw == "":
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable draft value for %s", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))

    def _flush(self) -> None:
        if not self._path:
            return
        with open(self._path, "w", encoding="utf-8") as fh:
            json.dump(dict(self._backend), fh)

    # -------------------------
    # wizard state
    # -------------------------
    def selected_dates(self) -> List[str]:
        value = self.get_json(SELECTED_DATES_KEY, [])
        return value if isinstance(value, list) else []

    def date_times(self) -> Dict[str, Any]:
        value = self.get_json(DATE_TIMES_KEY, {})
        return value if isinstance(value, dict) else {}

    def active_date(self) -> Optional[str]:
        # stored as a bare string, "" when nothing is active
        return self.get_item(ACTIVE_DATE_KEY) or None

    def save_wizard_state(
        self,
        selected_dates: List[str],
        date_times: Dict[str, Any],
        active_date: Optional[str] = None,
    ) -> None:
        self.set_json(SELECTED_DATES_KEY, list(selected_dates))
        self.set_json(DATE_TIMES_KEY, dict(date_times))
        self.set_item(ACTIVE_DATE_KEY, active_date or "")

    def clear_wizard_state(self) -> None:
        for key in (SELECTED_DATES_KEY, DATE_TIMES_KEY, ACTIVE_DATE_KEY):
            self._backend.pop(key, None)
        self._flush()

    # -------------------------
    # inspiration links
    # -------------------------
    def inspiration(self, booking_id: str) -> Dict[str, Any]:
        value = self.get_json(inspiration_key(booking_id), {})
        return value if isinstance(value, dict) else {}

    def save_inspiration(self, booking_id: str, links: List[str]) -> Optional[Dict[str, Any]]:
        """Blank links are dropped; nothing is stored when none remain."""
        valid = [link.strip() for link in links if link and link.strip()]
        if not valid:
            return None
        data = {
            "inspiration_link": valid[0],
            "inspiration_images": valid,
        }
        self.set_json(inspiration_key(booking_id), data)
        return data
