# catalog_sync/sync_logger.py
# Structured sync log: (message, level, context) entries kept in a bounded JSON
# file and mirrored to the Python logger.
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("uvicorn.error")

LEVELS = ("info", "warning", "error", "success")

_PY_LEVEL = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _now() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S")


class LogStore:
    """Append-only list of log entries, trimmed to the newest ``max_entries``."""

    def __init__(self, path: Optional[Path] = None, max_entries: int = 100):
        self.path = Path(path) if path else None
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: List[Dict[str, Any]] = self._load()

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path or not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return data[-self.max_entries:] if isinstance(data, list) else []
        except Exception:
            return []

    def _save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._entries, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        tmp.replace(self.path)

    def append(self, entry: Dict[str, Any]) -> None:
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                self._entries = self._entries[-self.max_entries:]
            self._save()

    def entries(self, limit: int = 50, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Newest first, optionally filtered by level."""
        with self._lock:
            rows = [e for e in self._entries if not level or e.get("level") == level]
        return list(reversed(rows))[:limit]

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._save()


class SyncLogger:
    """
    The structured logging collaborator handed to every sync component.
    When ``enabled`` is False every call is a no-op.
    """

    def __init__(self, store: Optional[LogStore] = None, enabled: bool = True):
        self.store = store if store is not None else LogStore()
        self.enabled = enabled

    def log(self, message: str, level: str = "info", context: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled or not message:
            return
        if level not in LEVELS:
            level = "info"
        context = context or {}
        self.store.append({
            "timestamp": _now(),
            "level": level,
            "message": message,
            "context": context,
        })
        suffix = f" | {json.dumps(context, ensure_ascii=False, default=str)}" if context else ""
        logger.log(_PY_LEVEL[level], "[SYNC][%s] %s%s", level.upper(), message, suffix)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(message, "info", context)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(message, "warning", context)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(message, "error", context)

    def success(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(message, "success", context)
