"""Append-only JSON-lines sink for client and server events."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class EventLogger:
    """Thread-safe sink writing one file per UTC day under ``events_dir``."""

    def __init__(self, events_dir: str):
        self._dir = Path(events_dir).expanduser()
        self._lock = threading.Lock()

    def _path_for(self, now: datetime) -> Path:
        return self._dir / f"{now.strftime('%Y-%m-%d')}.json"

    def log(self, event_type: str, payload: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        record = {
            "ts": int(now.timestamp() * 1000),
            "event": {event_type: payload},
        }
        line = json.dumps(record, ensure_ascii=True, sort_keys=True)
        with self._lock:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
                with open(self._path_for(now), "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.warning("Failed to write %s event: %s", event_type, e)


def create_event_logger(events_dir: str) -> EventLogger:
    logger.info("Writing events to %s", events_dir)
    return EventLogger(events_dir)
