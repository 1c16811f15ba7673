import pytest
import websockets

from courtdemo.aopacket import AOPacket
from courtdemo.demoserver import (
    DECRYPTOR,
    END_TEXT,
    FEATURES,
    LOADED_TEXT,
    RESET_MESSAGES,
    DemoServer,
    DemoSession,
    read_demo_file,
    repair_demo_lines,
)

DEMO = [
    "SC#Phoenix#Edgeworth#%",
    "MS#one#%",
    "CT#a#b#%",
    "wait#500#%",
    "MS#two#%",
    "wait#300#%",
    "CT#end#%",
]


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


def write_demo(path, lines):
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def make_session(tmp_path, lines=DEMO, **kwargs):
    path = write_demo(tmp_path / "sample.demo", lines)
    sent = []
    clock = FakeClock()
    session = DemoSession(sent.append, clock=clock, **kwargs)
    session.set_demo_file(str(path))
    return session, sent, clock, path


def ct(text):
    return f"CT#DEMO#{text}#1#%"


def test_read_demo_file_joins_multiline_packets(tmp_path):
    path = tmp_path / "multi.demo"
    path.write_text("CT#a#line1\nline2#%\nwait#5#%\n", encoding="utf-8")
    assert read_demo_file(path) == ["CT#a#line1\nline2#%", "wait#5#%"]


def test_read_demo_file_empty(tmp_path):
    path = tmp_path / "empty.demo"
    path.write_text("", encoding="utf-8")
    assert read_demo_file(path) == []


def test_repair_moves_waits_earlier():
    lines = ["SC#x#%", "MS#a#%", "wait#1#%", "MS#b#%", "wait#2#%"]
    repaired = repair_demo_lines(lines)
    assert repaired == ["SC#x#%", "wait#1#%", "MS#a#%", "wait#2#%", "MS#b#%"]
    assert sorted(repaired) == sorted(lines)


def test_accept_without_file_is_refused():
    sent = []
    session = DemoSession(sent.append)
    assert session.accept() is False
    assert sent == []


def test_accept_sends_decryptor_and_takes_sc(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    assert session.accept() is True
    assert sent == [DECRYPTOR]
    assert session.sc_packet == DEMO[0]
    assert list(session.demo_data) == DEMO[1:]


def test_accept_without_sc_uses_empty_list(tmp_path):
    session, sent, _, _ = make_session(tmp_path, ["MS#one#%", "wait#5#%"])
    assert session.accept() is True
    assert session.sc_packet == "SC#%"


def test_second_connection_is_refused(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    assert session.accept() is True
    assert session.accept() is False
    assert sent == [DECRYPTOR]


def test_handshake_packets(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    session.accept()
    sent.clear()
    session.receive("HI#hdid#%ID#client#1#%askchaa#%RC#%RM#%RD#%")
    assert sent == [
        "ID#0#DEMOINTERNAL#0#%",
        "PN#0#1#%",
        "FL#" + "#".join(FEATURES) + "#%",
        f"SI#{session.num_chars}#0#1#%",
        DEMO[0],
        "SM#%",
        "DONE#%",
    ]


def test_character_choice_announces_demo(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    session.accept()
    sent.clear()
    session.handle_packet(AOPacket("CC", ["0", "1", "hdid"]))
    assert sent == ["PV#0#CID#-1#%", ct(LOADED_TEXT)]


def test_playback_runs_until_end(tmp_path):
    session, sent, clock, _ = make_session(tmp_path)
    session.accept()
    sent.clear()
    session.receive("CT#me#/play#%")
    assert sent == ["MS#one#%", "CT#a#b#%"]
    assert session.timer_remaining == 500

    clock.now = 500
    session.timer_expired()
    assert sent[-1] == "MS#two#%"
    assert session.timer_remaining == 300

    clock.now = 800
    session.timer_expired()
    assert sent[-2:] == ["CT#end#%", ct(END_TEXT)]
    assert session.timer_interval == 0
    assert session.timer_remaining is None


def test_play_while_waiting_skips_clocks(tmp_path):
    skips = []
    session, sent, clock, _ = make_session(tmp_path, on_skip_timers=skips.append)
    session.accept()
    session.receive("CT#me#>#%")
    clock.now = 200
    session.receive("CT#me#>#%")
    assert skips == [300]
    assert session.timer_remaining == 300


def test_max_wait_limits_duration(tmp_path):
    skips = []
    session, sent, _, _ = make_session(tmp_path, on_skip_timers=skips.append)
    session.accept()
    sent.clear()
    session.receive("CT#me#/max_wait 100#%")
    assert sent == [ct("Setting max_wait to 100 milliseconds.")]
    session.receive("CT#me#/play#%")
    assert session.timer_remaining == 100
    assert skips == [400]


def test_max_wait_negative_and_invalid(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    session.accept()
    session.max_wait = 50
    session.receive("CT#me#/max_wait -5#%")
    assert session.max_wait == -1
    sent.clear()
    session.receive("CT#me#/max_wait abc#%")
    session.receive("CT#me#/max_wait#%")
    assert sent == [ct("Not a valid integer!"), ct("Current max_wait is -1milliseconds.")]


def test_pause_and_resume(tmp_path):
    session, sent, clock, _ = make_session(tmp_path)
    session.accept()
    session.receive("CT#me#/play#%")
    clock.now = 200
    sent.clear()
    session.receive("CT#me#|#%")
    assert session.timer_remaining is None
    assert session.timer_interval == 300
    session.receive("CT#me#/play#%")
    assert session.timer_remaining == 300
    assert sent == [ct("Pausing playback."), ct("Resuming playback.")]


def test_debug_mode(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    session.accept()
    sent.clear()
    session.receive("CT#me#/debug 1#%")
    assert session.debug_mode is True
    session.receive("CT#me#/play#%")
    assert sent[-2:] == ["TI#4#2#%", "TI#4#0#500#%"]
    sent.clear()
    session.receive("CT#me#/debug 0#%")
    assert session.debug_mode is False
    assert sent == [ct("Setting debug mode to 0"), "TI#4#1#0#%", "TI#4#3#0#%"]
    sent.clear()
    session.receive("CT#me#/debug 2#%")
    assert sent == [ct("Valid values are 1 or 0!")]


def test_reset_state_stops_timer(tmp_path):
    session, sent, _, _ = make_session(tmp_path)
    session.accept()
    session.receive("CT#me#/play#%")
    sent.clear()
    session.reset_state()
    assert sent == list(RESET_MESSAGES)
    assert sent[0] == "LE##%"
    assert sent[-1] == "BN#default#wit#%"
    assert session.timer_remaining is None


def test_load_command_uses_chooser(tmp_path):
    other = write_demo(tmp_path / "other.demo", ["MS#x#%", "wait#10#%"])
    session, sent, _, _ = make_session(tmp_path, choose_file=lambda: str(other))
    session.accept()
    sent.clear()
    session.receive("CT#me#/load#%")
    assert list(session.demo_data) == ["MS#x#%", "wait#10#%"]
    assert sent[0] == ct(LOADED_TEXT)
    assert sent[1:] == list(RESET_MESSAGES)


def test_load_command_cancelled(tmp_path):
    session, sent, _, _ = make_session(tmp_path, choose_file=lambda: "")
    session.accept()
    sent.clear()
    session.receive("CT#me#/load#%")
    assert sent == []
    assert list(session.demo_data) == DEMO[1:]


def test_broken_demo_is_repaired_on_confirmation(tmp_path):
    lines = ["SC#x#%", "MS#a#%", "wait#1#%", "MS#b#%", "wait#2#%"]
    session, _, _, path = make_session(tmp_path, lines, confirm_repair=lambda name: True)
    session.load_demo(str(path))
    assert read_demo_file(str(path) + ".backup") == lines
    assert read_demo_file(path) == repair_demo_lines(lines)
    assert list(session.demo_data) == repair_demo_lines(lines)


def test_broken_demo_left_alone_without_confirmation(tmp_path):
    lines = ["SC#x#%", "MS#a#%", "wait#1#%"]
    session, _, _, path = make_session(tmp_path, lines, confirm_repair=lambda name: False)
    session.load_demo(str(path))
    assert read_demo_file(path) == lines
    assert list(session.demo_data) == lines
    assert not (tmp_path / "sample.demo.backup").exists()


@pytest.mark.asyncio
async def test_server_answers_over_websocket(tmp_path):
    path = write_demo(tmp_path / "sample.demo", DEMO)
    session = DemoSession()
    session.set_demo_file(str(path))
    async with DemoServer(session) as server:
        assert server.port > 0
        async with websockets.connect(f"ws://127.0.0.1:{server.port}") as client:
            assert await client.recv() == DECRYPTOR
            await client.send("HI#hdid#%")
            assert await client.recv() == "ID#0#DEMOINTERNAL#0#%"
            await client.send("RC#%")
            assert await client.recv() == DEMO[0]
    assert server.is_running is False