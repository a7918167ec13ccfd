"""
Per-tab navigation history with scroll-position memory.

Session files hold one JSON record per line, one record per tab:
``{"URLs": [{"URL": ..., "ScrollPos": ...}], "Pos": n}``.
"""

import json
from pathlib import Path
from typing import Iterable, Optional

from .enums import ErrorCode
from .exceptions import PersistenceError
from .models import HistoryEntry


class History:
    """
    Back/forward stack.

    Once at least one entry exists the cursor always indexes a valid
    entry. Adding an entry discards everything after the cursor.
    """

    def __init__(self, entries: Optional[Iterable[HistoryEntry]] = None, pos: int = 0) -> None:
        self._entries: list[HistoryEntry] = list(entries or [])
        if self._entries:
            pos = min(max(pos, 0), len(self._entries) - 1)
        else:
            pos = 0
        self._pos = pos

    def add(self, url: str, scroll_pos: int = 0) -> None:
        if self._entries:
            del self._entries[self._pos + 1:]
        self._entries.append(HistoryEntry(url=url, scroll_pos=scroll_pos))
        self._pos = len(self._entries) - 1

    def back(self) -> Optional[HistoryEntry]:
        """Move the cursor back; returns the new current entry or None at the start."""
        if self._pos > 0:
            self._pos -= 1
            return self._entries[self._pos]
        return None

    def forward(self) -> Optional[HistoryEntry]:
        """Move the cursor forward; returns the new current entry or None at the end."""
        if self._pos < len(self._entries) - 1:
            self._pos += 1
            return self._entries[self._pos]
        return None

    def current(self) -> Optional[HistoryEntry]:
        if not self._entries:
            return None
        return self._entries[self._pos]

    def update_scroll(self, scroll_pos: int) -> None:
        """Remember the scroll position of the current entry."""
        if self._entries:
            entry = self._entries[self._pos]
            self._entries[self._pos] = HistoryEntry(url=entry.url, scroll_pos=scroll_pos)

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def pos(self) -> int:
        return self._pos

    def __len__(self) -> int:
        return len(self._entries)

    def status(self) -> str:
        return f"Count={len(self._entries)}, Pos={self._pos}"

    def to_dict(self) -> dict:
        return {
            "URLs": [{"URL": e.url, "ScrollPos": e.scroll_pos} for e in self._entries],
            "Pos": self._pos,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "History":
        """
        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        urls = data.get("URLs") or []
        entries = [
            HistoryEntry(url=str(item["URL"]), scroll_pos=int(item.get("ScrollPos", 0)))
            for item in urls
        ]
        return cls(entries, pos=int(data.get("Pos", 0)))


def load_histories(file_path: Path) -> list[History]:
    """
    Load one History per line of a session file.

    A missing file yields an empty list.

    Raises:
        PersistenceError: If the file cannot be read or any record fails
            to decode. Callers fall back to a fresh session.
    """
    if not file_path.exists():
        return []

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except OSError as e:
        raise PersistenceError(
            code=ErrorCode.IO_ERROR.value,
            message=f"Failed to read history file: {e}",
            details={"file_path": str(file_path)},
        )

    histories = []
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
            if not isinstance(data, dict):
                raise TypeError("record is not an object")
            histories.append(History.from_dict(data))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceError(
                code=ErrorCode.DECODE_ERROR.value,
                message=f"Failed to decode history record: {e}",
                details={"file_path": str(file_path), "line": line_number},
            )
    return histories


def save_histories(file_path: Path, histories: Iterable[History]) -> None:
    """
    Raises:
        PersistenceError: If the file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            for history in histories:
                f.write(history.to_json())
                f.write("\n")
    except OSError as e:
        raise PersistenceError(
            code=ErrorCode.IO_ERROR.value,
            message=f"Failed to write history file: {e}",
            details={"file_path": str(file_path)},
        )
