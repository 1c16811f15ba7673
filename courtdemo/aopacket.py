"""Packets of the courtroom protocol: escaping, serialising and parsing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

_ESCAPES = (
    ("#", "<num>"),
    ("%", "<percent>"),
    ("$", "<dollar>"),
    ("&", "<and>"),
)


def encode(data: str) -> str:
    """Escape the characters that carry meaning on the wire."""
    for raw, escaped in _ESCAPES:
        data = data.replace(raw, escaped)
    return data


def decode(data: str) -> str:
    """Undo :func:`encode`."""
    for raw, escaped in _ESCAPES:
        data = data.replace(escaped, raw)
    return data


@dataclass
class AOPacket:
    """A single protocol packet: a header followed by its fields."""

    header: str = ""
    content: list[str] = field(default_factory=list)

    def to_string(self, ensure_encoded: bool = False) -> str:
        """Serialise the packet as ``HEADER#field#...#%``."""
        items = (encode(item) if ensure_encoded else item for item in self.content)
        return "".join([self.header, *("#" + item for item in items), "#%"])

    def __str__(self) -> str:
        return self.to_string()


def parse_packets(message: str) -> Iterator[AOPacket]:
    """Split a raw message into packets, decoding every field."""
    for raw in message.split("%"):
        if not raw:
            continue
        if raw.endswith("#"):
            raw = raw[:-1]
        header, *fields = raw.split("#")
        yield AOPacket(header, [decode(item) for item in fields])