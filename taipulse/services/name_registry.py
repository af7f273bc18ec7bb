import json
import logging
import os
import re
import threading
from typing import Dict, Optional

from taipulse.config import settings
from taipulse.constants import ALL_STOCK_MAP

logger = logging.getLogger(__name__)

_CJK = re.compile(r"[一-龥]")


def is_chinese(text: str) -> bool:
    return bool(text) and bool(_CJK.search(text))


class NameRegistry:
    """
    Display-name lookup for stock ids.

    Resolution order: built-in map -> learned names (persisted JSON) ->
    name returned by a quote provider -> the raw id. Only Chinese provider
    names are learned; English fallbacks from secondary feeds are not kept.
    A missing or corrupt cache file just starts an empty table.
    """

    def __init__(self, cache_file: Optional[str] = settings.NAME_CACHE_FILE,
                 static_map: Optional[Dict[str, str]] = None):
        self.cache_file = cache_file
        self.static_map = ALL_STOCK_MAP if static_map is None else static_map
        self._learned: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._load()

    # ------------------------------------------------------------------
    # PERSISTENCE
    # ------------------------------------------------------------------
    def _load(self) -> None:
        if not self.cache_file or not os.path.exists(self.cache_file):
            return
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if isinstance(raw, dict):
                self._learned = {str(k): str(v) for k, v in raw.items()}
        except Exception as e:
            logger.warning(f"Name cache load failed, starting empty: {e}")
            self._learned = {}

    def _save(self) -> None:
        if not self.cache_file:
            return
        try:
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(self._learned, f, ensure_ascii=False)
        except Exception as e:
            logger.warning(f"Name cache write failed: {e}")

    # ------------------------------------------------------------------
    # LOOKUP
    # ------------------------------------------------------------------
    def lookup(self, sid: str) -> Optional[str]:
        if sid in self.static_map:
            return self.static_map[sid]
        with self._lock:
            return self._learned.get(sid)

    def learn(self, sid: str, name: str) -> None:
        if not sid or not name or sid == name or not is_chinese(name):
            return
        with self._lock:
            if self._learned.get(sid) == name:
                return
            self._learned[sid] = name
            self._save()

    def resolve(self, sid: str, api_name: Optional[str] = None) -> str:
        known = self.lookup(sid)
        if known:
            return known
        if api_name and is_chinese(api_name):
            self.learn(sid, api_name)
            return api_name
        return api_name or sid
