"""A local websocket server that replays recorded courtroom sessions ("demos").

:class:`DemoSession` holds the replay state and answers protocol packets
without any networking; outgoing messages go to its ``send`` callback.  Its
single-shot wait timer is reported by :attr:`DemoSession.timer_remaining` and
fired by the owner through :meth:`DemoSession.timer_expired`.
:class:`DemoServer` binds a session to a websocket listening on localhost.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import shutil
import time
from collections import deque
from typing import Callable, Sequence

import websockets
from websockets.exceptions import ConnectionClosed

from courtdemo.aopacket import AOPacket, parse_packets

log = logging.getLogger(__name__)

FEATURES = (
    "noencryption", "yellowtext", "prezoom", "flipping", "customobjections",
    "fastloading", "deskmod", "evidence", "cccc_ic_support", "arup",
    "casing_alerts", "modcall_reason", "looping_sfx", "additive", "effects",
    "y_offset", "expanded_desk_mods",
)

DECRYPTOR = "decryptor#NOENCRYPT#%"
EMPTY_SC = "SC#%"
LOADED_TEXT = "Demo file loaded. Send /play or > in OOC to begin playback."
RELOADED_TEXT = "Current demo file reloaded. Send /play or > in OOC to begin playback."
RESUME_TEXT = "Resuming playback."
PAUSE_TEXT = "Pausing playback."
END_TEXT = ("Reached the end of the demo file. Send /play or > in OOC to restart, "
            "or /load to open a new file.")
INVALID_INT_TEXT = "Not a valid integer!"
MIN_WAIT_TEXT = "min_wait is deprecated. Use the client Settings for minimum wait instead!"
DEBUG_VALUES_TEXT = "Valid values are 1 or 0!"
DEBUG_HELP_TEXT = ("Set debug mode using /debug 1 to enable, and /debug 0 to disable, which "
                   "will use the fifth timer (TI#4) to show the remaining time until next "
                   "demo line.")
HELP_TEXT = "Available commands:\nload, reload, play, pause, max_wait, debug, help"

RESET_MESSAGES = (
    "LE##%",
    "TI#0#1#0#%", "TI#0#3#0#%",
    "TI#1#1#0#%", "TI#1#3#0#%",
    "TI#2#1#0#%", "TI#2#3#0#%",
    "TI#3#1#0#%", "TI#3#3#0#%",
    "TI#4#1#0#%", "TI#4#3#0#%",
    "BN#default#wit#%",
)

_INT = re.compile(r"\s*([+-]?\d+)\s*")
_INT_MIN, _INT_MAX = -(2 ** 31), 2 ** 31 - 1


def _ct(text: str) -> str:
    return f"CT#DEMO#{text}#1#%"


def _parse_int(text: str) -> int | None:
    match = _INT.fullmatch(text)
    if not match:
        return None
    value = int(match.group(1))
    return value if _INT_MIN <= value <= _INT_MAX else None


def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def read_demo_file(path: str | os.PathLike[str]) -> list[str]:
    """Read a demo file into packets; a packet may span lines until it ends with ``%``."""
    with open(path, encoding="utf-8", errors="replace") as handle:
        text = handle.read()
    raw = text.split("\n")
    if raw and raw[-1] == "":
        raw.pop()

    packets: list[str] = []
    lines = iter(raw)
    for line in lines:
        while not line.endswith("%"):
            following = next(lines, None)
            if following is None:
                break
            line += "\n" + following
        packets.append(line)
    return packets


def repair_demo_lines(lines: Sequence[str]) -> list[str]:
    """Move every wait packet one place earlier, fixing demos with shifted waits."""
    repaired: list[str] = []
    for packet in lines:
        if not packet.startswith("SC#") and packet.startswith("wait#"):
            repaired.insert(max(1, len(repaired) - 1), packet)
        else:
            repaired.append(packet)
    return repaired


class _Timer:
    """A single-shot timer measured against a millisecond clock."""

    def __init__(self, clock: Callable[[], int]) -> None:
        self._clock = clock
        self.interval = 0
        self._deadline: int | None = None

    @property
    def active(self) -> bool:
        return self._deadline is not None

    @property
    def remaining(self) -> int:
        """Milliseconds left, or -1 when the timer is not running."""
        if self._deadline is None:
            return -1
        return max(0, self._deadline - self._clock())

    def start(self, interval: int | None = None) -> None:
        if interval is not None:
            self.interval = interval
        if self.interval < 0:
            self._deadline = None
            return
        self._deadline = self._clock() + self.interval

    def stop(self) -> None:
        self._deadline = None


class DemoSession:
    """Replay state of one demo file and the minimal server protocol around it."""

    def __init__(self, send: Callable[[str], None] | None = None, *,
                 clock: Callable[[], int] = _monotonic_ms,
                 choose_file: Callable[[], str] | None = None,
                 confirm_repair: Callable[[str], bool] | None = None,
                 on_skip_timers: Callable[[int], None] | None = None) -> None:
        self.send: Callable[[str], None] = send or (lambda message: None)
        self._choose_file = choose_file
        self._confirm_repair = confirm_repair
        self._on_skip_timers = on_skip_timers
        self._timer = _Timer(clock)
        self.filename = ""
        self.path = ""
        self.max_wait = -1
        self.debug_mode = False
        self.connected = False
        self.sc_packet = ""
        self.num_chars = 0
        self.elapsed_time = 0
        self.demo_data: deque[str] = deque()

    # -- timer -----------------------------------------------------------

    @property
    def timer_active(self) -> bool:
        return self._timer.active

    @property
    def timer_interval(self) -> int:
        return self._timer.interval

    @property
    def timer_remaining(self) -> int | None:
        """Milliseconds until the wait timer fires, or None when it is idle."""
        return self._timer.remaining if self._timer.active else None

    def timer_expired(self) -> None:
        """Fire the wait timer: continue playback."""
        if not self._timer.active:
            return
        self._timer.stop()
        self.playback()

    # -- files -----------------------------------------------------------

    def set_demo_file(self, filepath: str) -> None:
        self.filename = filepath

    def load_demo(self, filename: str) -> None:
        """Load ``filename``; an unreadable file leaves the current data alone."""
        try:
            lines = read_demo_file(filename)
        except OSError:
            return
        self.demo_data = deque(lines)
        self.path = filename

        if lines and lines[0].startswith("SC#") and lines[-1].startswith("wait#"):
            log.info("Loaded a broken pre-2.9.1 demo file, with the wait desync issue!")
            if self._confirm_repair is not None and self._confirm_repair(filename):
                self._repair(filename, lines)

    def _repair(self, filename: str, lines: Sequence[str]) -> None:
        log.info("Making a backup of the broken demo...")
        backup = filename + ".backup"
        if not os.path.exists(backup):
            shutil.copyfile(filename, backup)
        repaired = repair_demo_lines(lines)
        try:
            with open(filename, "w", encoding="utf-8") as handle:
                handle.write("\n".join(repaired))
        except OSError as error:
            log.warning("Could not rewrite %s: %s", filename, error)
            return
        self.demo_data = deque(repaired)

    # -- connection ------------------------------------------------------

    def accept(self) -> bool:
        """Accept a client; False when no demo is available or one is connected."""
        if not self.filename:
            return False
        self.load_demo(self.filename)
        if not self.demo_data:
            return False

        if self.demo_data[0].startswith("SC#"):
            self.sc_packet = self.demo_data.popleft()
            self.num_chars = len(AOPacket(self.sc_packet).content)
        else:
            self.sc_packet = EMPTY_SC
            self.num_chars = 0

        if self.connected:
            log.warning("Multiple connections to demo server disallowed.")
            return False
        self.connected = True
        self.send(DECRYPTOR)
        return True

    def disconnect(self) -> None:
        self.connected = False

    def receive(self, message: str) -> None:
        """Handle every packet in a raw client message."""
        for packet in parse_packets(message):
            self.handle_packet(packet)

    def handle_packet(self, packet: AOPacket) -> None:
        header = packet.header
        if header == "HI":
            self.send("ID#0#DEMOINTERNAL#0#%")
        elif header == "ID":
            self.send("PN#0#1#%")
            self.send("FL#" + "#".join(FEATURES) + "#%")
        elif header == "askchaa":
            self.send(f"SI#{self.num_chars}#0#1#%")
        elif header == "RC":
            self.send(self.sc_packet)
        elif header == "RM":
            self.send("SM#%")
        elif header == "RD":
            self.send("DONE#%")
        elif header == "CC":
            self.send("PV#0#CID#-1#%")
            self.send(_ct(LOADED_TEXT))
        elif header == "CT" and len(packet.content) >= 2:
            self._handle_command(packet.content[1])

    def _handle_command(self, text: str) -> None:
        if text.startswith("/load"):
            path = self._choose_file() if self._choose_file is not None else ""
            if not path:
                return
            self.load_demo(path)
            self.send(_ct(LOADED_TEXT))
            self.reset_state()
        elif text.startswith("/play") or text == ">":
            if self._timer.interval != 0 and not self._timer.active:
                self._timer.start()
                self.send(_ct(RESUME_TEXT))
            else:
                if not self.demo_data and self.path:
                    self.load_demo(self.path)
                self.playback()
        elif text.startswith("/pause") or text == "|":
            time_left = self._timer.remaining
            self._timer.stop()
            self._timer.interval = time_left
            self.send(_ct(PAUSE_TEXT))
        elif text.startswith("/max_wait"):
            args = text.split(" ")
            if len(args) > 1:
                value = _parse_int(args[1])
                if value is None:
                    self.send(_ct(INVALID_INT_TEXT))
                else:
                    self.max_wait = -1 if value < 0 else value
                    self.send(_ct(f"Setting max_wait to {self.max_wait} milliseconds."))
            else:
                self.send(_ct(f"Current max_wait is {self.max_wait}milliseconds."))
        elif text.startswith("/reload"):
            self.load_demo(self.path)
            self.send(_ct(RELOADED_TEXT))
            self.reset_state()
        elif text.startswith("/min_wait"):
            self.send(_ct(MIN_WAIT_TEXT))
        elif text.startswith("/debug"):
            args = text.split(" ")
            if len(args) > 1:
                toggle = _parse_int(args[1])
                if toggle in (0, 1):
                    self.debug_mode = toggle == 1
                    self.send(_ct(f"Setting debug mode to {int(self.debug_mode)}"))
                    if not self.debug_mode:
                        self.send("TI#4#1#0#%")
                        self.send("TI#4#3#0#%")
                else:
                    self.send(_ct(DEBUG_VALUES_TEXT))
            else:
                self.send(_ct(DEBUG_HELP_TEXT))
        elif text.startswith("/help"):
            self.send(_ct(HELP_TEXT))

    def reset_state(self) -> None:
        """Clear evidence, timers and background on the client and stop waiting."""
        for message in RESET_MESSAGES:
            self.send(message)
        self._timer.stop()

    def playback(self) -> None:
        """Send packets up to the next wait packet and arm the timer for it."""
        if not self.demo_data:
            return

        current = self.demo_data.popleft()
        if current.startswith("MS#"):
            self.elapsed_time = 0

        while not current.startswith("wait#"):
            self.send(current)
            if not self.demo_data:
                break
            current = self.demo_data.popleft()

        if not self.demo_data:
            self.send(_ct(END_TEXT))
            self._timer.interval = 0
            return

        fields = (current[:-1] if current.endswith("#") else current).split("#")[1:]
        duration = (_parse_int(fields[0]) or 0) if fields else 0

        if self.max_wait != -1 and duration + self.elapsed_time > self.max_wait:
            previous = duration
            duration = max(0, self.max_wait - self.elapsed_time)
            log.debug("Max wait of %d reached, forcing duration to %d ms", self.max_wait, duration)
            self._skip_timers(previous - duration)
        elif self._timer.remaining > 0:
            self._skip_timers(self._timer.remaining)

        self.elapsed_time += duration
        self._timer.start(duration)
        if self.debug_mode:
            self.send("TI#4#2#%")
            self.send(f"TI#4#0#{duration}#%")

    def _skip_timers(self, msecs: int) -> None:
        if self._on_skip_timers is not None:
            self._on_skip_timers(msecs)


class DemoServer:
    """Serves a :class:`DemoSession` over a websocket on localhost.

    The server takes over the session's ``send`` callback.
    """

    def __init__(self, session: DemoSession | None = None, host: str = "127.0.0.1") -> None:
        self.session = session if session is not None else DemoSession()
        self.session.send = self._outbox_append
        self.host = host
        self.port = 0
        self._outbox: list[str] = []
        self._server = None

    def _outbox_append(self, message: str) -> None:
        self._outbox.append(message)

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        """Listen on a free local port; does nothing when already started."""
        if self._server is not None:
            return
        try:
            self._server = await websockets.serve(self._handle, self.host, 0)
        except OSError as error:
            log.critical("Could not start demo playback server: %s", error)
            return
        self.port = next(iter(self._server.sockets)).getsockname()[1]
        log.info("Demo server started at port %d", self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def __aenter__(self) -> DemoServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _flush(self, websocket) -> None:
        while self._outbox:
            await websocket.send(self._outbox.pop(0))

    async def _handle(self, websocket, *_: object) -> None:
        if not self.session.accept():
            await websocket.close()
            return
        try:
            await self._flush(websocket)
            while True:
                remaining = self.session.timer_remaining
                timeout = None if remaining is None else remaining / 1000
                try:
                    message = await asyncio.wait_for(websocket.recv(), timeout)
                except asyncio.TimeoutError:
                    self.session.timer_expired()
                else:
                    if isinstance(message, bytes):
                        message = message.decode("utf-8", "replace")
                    self.session.receive(message)
                await self._flush(websocket)
        except ConnectionClosed:
            pass
        finally:
            self.session.disconnect()
            self._outbox.clear()


async def _serve(session: DemoSession) -> int:
    server = DemoServer(session)
    await server.start()
    if not server.is_running:
        return 1
    print(f"Demo server listening on {server.host}:{server.port}", flush=True)
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Replay a demo file to a client connecting on localhost."""
    parser = argparse.ArgumentParser(prog="courtdemo", description="Replay a recorded demo file.")
    parser.add_argument("demo", help="path of the .demo file to replay")
    parser.add_argument("--repair", action="store_true",
                        help="fix demo files with the shifted wait packets")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    session = DemoSession(confirm_repair=(lambda _name: True) if args.repair else None)
    session.set_demo_file(args.demo)
    try:
        return asyncio.run(_serve(session))
    except KeyboardInterrupt:
        return 0