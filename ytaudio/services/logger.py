"""Relay event log.

Entries are plain dicts: seq, timestamp, level, category, message and, when
the event concerns one video, video_id lifted out of the details. Each entry
lands in three places: a bounded in-memory tail served by the admin API, a
JSONL file under LOG_DIR (or TEMP_DIR/logs) and a one-line stdout echo.
"""

import json
import threading
from collections import Counter, deque
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ytaudio.config import settings


class EventLog:
    """In-memory tail plus JSONL sink; safe to call from executor threads."""

    def __init__(self, directory: Path, capacity: int = 2000, filename: str = "relay.jsonl"):
        self.directory = directory
        self.path = directory / filename
        self._entries: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._seq = 0

    def append(self, level: str, message: str, category: str, details: Optional[dict]) -> dict:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": level,
            "category": category,
            "message": message,
        }
        if details:
            details = dict(details)
            video_id = details.pop("video_id", None)
            if video_id:
                entry["video_id"] = video_id
            if details:
                entry["details"] = details

        with self._lock:
            self._seq += 1
            entry["seq"] = self._seq
            self._entries.append(entry)
            self._write(entry)
        return entry

    def _write(self, entry: dict) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError:
            # Memory tail and stdout still carry the entry
            pass

    def snapshot(self) -> List[dict]:
        with self._lock:
            return list(self._entries)

    def rotate(self) -> Optional[Path]:
        """Empty the tail and move the JSONL file aside; returns the archive path."""
        with self._lock:
            self._entries.clear()
            if not self.path.exists():
                return None
            archive = self.path.with_name(f"relay.{datetime.now().strftime('%Y%m%d_%H%M%S')}.jsonl")
            try:
                self.path.rename(archive)
            except OSError:
                return None
            return archive


def _log_directory() -> Path:
    if settings.LOG_DIR:
        return Path(settings.LOG_DIR)
    return Path(settings.TEMP_DIR) / "logs"


_events = EventLog(_log_directory())


def log(level: str, message: str, category: str = "general", details: Optional[dict] = None):
    """
    Record one event.

    Args:
        level: One of DEBUG, INFO, SUCCESS, WARN, ERROR
        message: Human readable line
        category: general, request, ytdlp, cache, queue, retry, proxy, auth, stream, admin
        details: Extra fields; a "video_id" key is promoted onto the entry
    """
    entry = _events.append(level, message, category, details)
    tag = f" [{entry['video_id']}]" if "video_id" in entry else ""
    print(f"[{entry['timestamp']}] [{level}] [{category}]{tag} {message}", flush=True)


def get_logs(
    limit: int = 100,
    category: Optional[str] = None,
    level: Optional[str] = None,
    since_seq: int = 0,
    video_id: Optional[str] = None,
) -> list:
    """Most recent entries from the in-memory tail, oldest first."""
    entries = [e for e in _events.snapshot() if e["seq"] > since_seq]
    if category:
        entries = [e for e in entries if e["category"] == category]
    if level:
        entries = [e for e in entries if e["level"] == level.upper()]
    if video_id:
        entries = [e for e in entries if e.get("video_id") == video_id]
    return entries[-limit:] if limit > 0 else []


def clear_logs():
    archive = _events.rotate()
    log("INFO", "Logs cleared", "admin", {"archive": str(archive)} if archive else None)


def get_log_stats() -> dict:
    """Counts by level and category, plus which videos produced errors."""
    entries = _events.snapshot()
    failing = Counter(e["video_id"] for e in entries if e["level"] == "ERROR" and "video_id" in e)
    return {
        "total": len(entries),
        "by_level": dict(Counter(e["level"] for e in entries)),
        "by_category": dict(Counter(e["category"] for e in entries)),
        "errors_by_video": dict(failing.most_common(10)),
        "log_file": str(_events.path),
    }


def info(message: str, category: str = "general", details: Optional[dict] = None):
    log("INFO", message, category, details)

def warn(message: str, category: str = "general", details: Optional[dict] = None):
    log("WARN", message, category, details)

def error(message: str, category: str = "general", details: Optional[dict] = None):
    log("ERROR", message, category, details)

def debug(message: str, category: str = "general", details: Optional[dict] = None):
    log("DEBUG", message, category, details)

def success(message: str, category: str = "general", details: Optional[dict] = None):
    log("SUCCESS", message, category, details)


class YtdlpLogger:
    """yt-dlp `logger` option that files its output under the video being extracted."""

    def __init__(self, video_id: str):
        self.details = {"video_id": video_id}

    def debug(self, msg):
        # yt-dlp routes progress lines through debug() too; only "[debug]" is noise
        log("DEBUG" if msg.startswith("[debug]") else "INFO", msg, "ytdlp", self.details)

    def info(self, msg):
        log("INFO", msg, "ytdlp", self.details)

    def warning(self, msg):
        log("WARN", msg, "ytdlp", self.details)

    def error(self, msg):
        log("ERROR", msg, "ytdlp", self.details)
