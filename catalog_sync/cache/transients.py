# catalog_sync/cache/transients.py
# Short-lived key/value cache that survives across sync runs (JSON file, TTL per key).
from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

DAY_IN_SECONDS = 24 * 60 * 60


class TransientCache:
    def __init__(self, path: Optional[Path] = None, clock: Callable[[], float] = time.time):
        self.path = Path(path) if path else None
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Any]] = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return raw if isinstance(raw, dict) else {}
        except Exception:
            return {}

    def _save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            rec = self._data.get(key)
            if not rec:
                return default
            if rec.get("expires", 0) <= self._clock():
                self._data.pop(key, None)
                self._save()
                return default
            return rec.get("value", default)

    def set(self, key: str, value: Any, ttl: int = DAY_IN_SECONDS) -> None:
        with self._lock:
            self._data[key] = {"value": value, "expires": self._clock() + ttl}
            self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save()
