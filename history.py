"""Locally stored results of past generations.

Entries live in a single JSON file, newest first, one per video. Saving the
same video again replaces its entry and refreshes its timestamp.
"""

import json
import os
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

MAX_ENTRIES = 50
_DEFAULT_HISTORY_PATH = Path("mindmap_history.json")


@dataclass
class HistoryEntry:
    id: str
    url: str
    video_id: str
    title: str
    markdown: str
    # Milliseconds since the epoch.
    created_at: int


def history_path() -> Path:
    configured = os.getenv("YTMINDMAP_HISTORY_PATH")
    return Path(configured).expanduser() if configured else _DEFAULT_HISTORY_PATH


def _now_ms() -> int:
    return int(time.time() * 1000)


def _read_entries(path: Path) -> list[HistoryEntry]:
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return []
    if not isinstance(raw, list):
        return []
    entries: list[HistoryEntry] = []
    for item in raw:
        try:
            entries.append(HistoryEntry(**item))
        except TypeError:
            continue
    return entries


def _write_entries(path: Path, entries: list[HistoryEntry]) -> None:
    payload = [asdict(entry) for entry in entries]
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def get_history(path: Optional[Path] = None) -> list[HistoryEntry]:
    entries = _read_entries(path or history_path())
    return sorted(entries, key=lambda entry: entry.created_at, reverse=True)


def get_entry(entry_id: str, path: Optional[Path] = None) -> Optional[HistoryEntry]:
    for entry in get_history(path):
        if entry.id == entry_id:
            return entry
    return None


def save_to_history(
    url: str,
    video_id: str,
    title: str,
    markdown: str,
    *,
    path: Optional[Path] = None,
) -> HistoryEntry:
    target = path or history_path()
    entries = get_history(target)
    existing_index = next(
        (index for index, entry in enumerate(entries) if entry.video_id == video_id), None
    )
    new_entry = HistoryEntry(
        id=entries[existing_index].id if existing_index is not None else str(uuid.uuid4()),
        url=url,
        video_id=video_id,
        title=title,
        markdown=markdown,
        created_at=_now_ms(),
    )
    if existing_index is not None:
        del entries[existing_index]
    entries.insert(0, new_entry)
    _write_entries(target, entries[:MAX_ENTRIES])
    return new_entry


def delete_from_history(entry_id: str, path: Optional[Path] = None) -> None:
    target = path or history_path()
    entries = [entry for entry in get_history(target) if entry.id != entry_id]
    _write_entries(target, entries)


def clear_history(path: Optional[Path] = None) -> None:
    target = path or history_path()
    if target.exists():
        target.unlink()


def time_ago(timestamp: int, now: Optional[int] = None) -> str:
    current = now if now is not None else _now_ms()
    seconds = (current - timestamp) // 1000
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 604800:
        return f"{seconds // 86400}d ago"
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d")
