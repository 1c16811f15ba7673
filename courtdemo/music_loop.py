"""Loop-point files and status text for music streams."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

STREAM_COUNT = 2  # 0 = music, 1 = ambience
STOP_SONG = "~stop.mp3"
STREAMING_DISABLED = "[MISSING] Streaming disabled."
_SAMPLE_SIZE = 16 // 8
_CHANNELS = 2
_BLOCK = _SAMPLE_SIZE * _CHANNELS
_UINT_MAX = 0xFFFFFFFF
_UINT = re.compile(r"\s*\+?(\d+)\s*")


@dataclass
class LoopPoints:
    """Loop start and end as byte positions in a 16-bit stereo stream."""

    start: int = 0
    end: int = 0

    @property
    def has_custom_loop(self) -> bool:
        return self.start < self.end


def _to_uint(text: str) -> int:
    match = _UINT.fullmatch(text)
    if not match:
        return 0
    value = int(match.group(1))
    return value if value <= _UINT_MAX else 0


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_loop_data(text: str, bytes_per_second: int = 44100 * _BLOCK) -> LoopPoints:
    """Read ``loop_start``/``loop_length``/``loop_end`` lines.

    Values are in samples unless a ``seconds=true`` line precedes them, in
    which case they are seconds converted with ``bytes_per_second``.
    """
    points = LoopPoints()
    seconds_mode = False
    for line in text.split("\n"):
        args = line.split("=")
        if len(args) < 2:
            continue
        arg = args[0].strip()
        value = args[1].strip()
        if arg == "seconds":
            if value == "true":
                seconds_mode = True
            continue

        if seconds_mode:
            size = int(_to_float(value) * bytes_per_second)
            size -= size % _BLOCK
        else:
            size = _to_uint(value) * _BLOCK
        size &= _UINT_MAX

        if arg == "loop_start":
            points.start = size
        elif arg == "loop_length":
            points.end = (points.start + size) & _UINT_MAX
        elif arg == "loop_end":
            points.end = size
    return points


def _song_title(song: str) -> str:
    name = unquote(urlsplit(song).path.rsplit("/", 1)[-1])
    dot = name.rfind(".")
    return name if dot < 0 else name[:dot]


def _describe(song: str, stream_id: int, file_missing: bool,
              streaming_enabled: bool) -> str:
    if not 0 <= stream_id < STREAM_COUNT:
        return "[ERROR] Invalid Channel"
    is_url = song.startswith("http")
    if is_url and not streaming_enabled:
        return STREAMING_DISABLED

    title = _song_title(song)
    if song == STOP_SONG and stream_id == 0:
        return "None"
    if file_missing:
        return f"[MISSING] {title}"
    if is_url and stream_id == 0:
        return f"[STREAM] {title}"
    if stream_id == 0:
        return title
    return ""


def describe_stream(song: str, stream_id: int, file_missing: bool) -> str:
    """The status text shown after asking a stream to play ``song``.

    Streaming is taken to be enabled; when it is not, a URL song yields
    ``STREAMING_DISABLED`` instead.
    """
    return _describe(song, stream_id, file_missing, True)