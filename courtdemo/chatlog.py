"""Entries of the in-character chat log."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

UNKNOWN = "UNKNOWN"


def _format_timestamp(timestamp: datetime | None) -> str:
    if timestamp is None:
        return ""
    return (f"{_DAYS[timestamp.weekday()]} {_MONTHS[timestamp.month - 1]} "
            f"{timestamp.day} {timestamp:%H:%M:%S} {timestamp.year}")


def _or_unknown(text: str) -> str:
    return text if text else UNKNOWN


@dataclass
class ChatLogPiece:
    """One logged message together with who said it and when."""

    character: str = ""
    character_name: str = ""
    message: str = ""
    action: str = ""
    timestamp: datetime | None = None
    local_player: bool = False
    color: int = 0

    def to_string(self) -> str:
        """Render the entry as a single log line."""
        details = f"[{_format_timestamp(self.timestamp)}] {_or_unknown(self.character_name)}"
        if self.character_name != self.character:
            details += f" ({_or_unknown(self.character)})"
        if self.action:
            details += " " + self.action
        return details + ": " + _or_unknown(self.message)

    def __str__(self) -> str:
        return self.to_string()