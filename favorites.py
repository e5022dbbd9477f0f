import json
import logging
import os
from typing import Dict, List, Optional

from options import get_favorites_path

LOG = logging.getLogger(__name__)

FAVORITE_TYPES = ("channel", "stream", "radio")
_FIELDS = ("id", "name", "type", "stream_url", "live_url", "logo_url", "title")


class FavoritesStore:
    """Favorites kept in a small JSON file, keyed by (id, type)."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or get_favorites_path()

    def list(self) -> List[Dict[str, object]]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as err:
            LOG.error("Error loading favorites from %s: %s", self.path, err)
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def _write(self, items: List[Dict[str, object]]) -> bool:
        try:
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            tmp_path = self.path + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2)
            os.replace(tmp_path, self.path)
            return True
        except OSError as err:
            LOG.error("Error saving favorites to %s: %s", self.path, err)
            return False

    @staticmethod
    def _matches(item: Dict[str, object], item_id, item_type: str) -> bool:
        return item.get("id") == item_id and item.get("type") == item_type

    def add(self, item: Dict[str, object]) -> bool:
        if item.get("type") not in FAVORITE_TYPES or item.get("id") is None:
            return False
        favorites = self.list()
        if any(self._matches(fav, item["id"], item["type"]) for fav in favorites):
            return False
        favorites.append({k: item[k] for k in _FIELDS if item.get(k) is not None})
        return self._write(favorites)

    def remove(self, item_id, item_type: str) -> bool:
        favorites = self.list()
        kept = [fav for fav in favorites if not self._matches(fav, item_id, item_type)]
        return self._write(kept)

    def is_favorite(self, item_id, item_type: str) -> bool:
        return any(self._matches(fav, item_id, item_type) for fav in self.list())

    def export(self) -> str:
        return json.dumps(self.list(), indent=2)

    def import_json(self, text: str) -> bool:
        try:
            parsed = json.loads(text)
        except ValueError as err:
            LOG.error("Error importing favorites: %s", err)
            return False
        if not isinstance(parsed, list):
            return False
        return self._write([item for item in parsed if isinstance(item, dict)])


__all__ = ["FAVORITE_TYPES", "FavoritesStore"]
