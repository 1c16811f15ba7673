# courtdemo

Building blocks for a courtroom roleplay client, and a small server that
replays recorded demo files to a connecting client.

## What is inside

- `courtdemo.aopacket`: the `AOPacket` dataclass (`header`, `content`,
  `to_string`), with `encode`, `decode` and `parse_packets` for the
  `#`-separated, `%`-terminated wire format.
- `courtdemo.chatlog`: `ChatLogPiece`, one entry of the in-character chat log;
  `to_string()` renders it as a single line, with `UNKNOWN` standing in for
  empty names or messages.
- `courtdemo.effects_migration`: `migrate_effects` turns flat
  `name=sound` / `name_property=value` pairs into version 2 sections, and
  `migrate_effects_file` rewrites an old `effects.ini` in place and returns
  the new sections.
- `courtdemo.clock`: `Countdown`, a countdown whose `text` is refreshed by
  `tick()`, and `format_remaining`, which formats milliseconds as
  `hh:mm:ss.zzz`, wrapping at one day. The millisecond clock can be passed in.
- `courtdemo.animation_loader`: `AnimationLoader` decodes an animated image
  with Pillow on a worker thread; `frame(n)` waits until frame `n` is ready
  and returns an `AnimationFrame` (`image`, `duration` in milliseconds).
- `courtdemo.animation`: `AnimationLayer` and `CharacterAnimationLayer`, frame
  playback with play-once, pause, frame jumps, masking, scaling, flipping and
  per-frame shake, flash and sound effects. A layer does not run timers
  itself: `pending_tick` holds the delay after which the owner calls `tick()`,
  and the current frame is rendered into the Pillow image `pixmap`.
- `courtdemo.music_loop`: `parse_loop_data` reads `loop_start`,
  `loop_length`, `loop_end` and `seconds` lines into `LoopPoints` (byte
  positions for 16-bit stereo), and `describe_stream` gives the now-playing
  text for a song on stream 0 (music) or 1 (ambience).
- `courtdemo.demoserver`: `DemoSession` (the replay state and protocol
  answers, without networking), `DemoServer` (a session served over a
  WebSocket on localhost), `read_demo_file`, `repair_demo_lines` and the
  `main` command.

## Installing

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Playing back a demo

```
courtdemo path/to/recording.demo
```

This starts a WebSocket server on a free port of 127.0.0.1 and prints
`Demo server listening on 127.0.0.1:<port>`. Point a client at it. Add
`--repair` to rewrite demo files whose wait packets are shifted (the file is
first copied to `<name>.backup`). Once the character is picked, type these in
OOC chat:

- `/play` or `>`: start or resume playback
- `/pause` or `|`: pause playback
- `/max_wait <ms>`: cap the total wait between message lines (a negative value
  removes the cap); `/max_wait` alone shows the current value
- `/debug 1` or `/debug 0`: show the time to the next line on timer 4
- `/reload`: reload the current demo file
- `/help`: list the commands

`/load` asks the session's `choose_file` callback for another file. The
`courtdemo` command gives it none, so there `/load` does nothing; a program
that builds its own `DemoSession(choose_file=...)` can supply one.

## Using the packet format

```python
from courtdemo.aopacket import AOPacket, parse_packets

packet = AOPacket("CT", ["DEMO", "50% done", "1"])
print(packet.to_string(True))   # CT#DEMO#50<percent> done#1#%

for received in parse_packets("HI#abc#%ID#0#client#%"):
    print(received.header, received.content)
```

## What this package does not do

It is not a client. There is no window, no character select, no courtroom
screen and no connection to a real game server; the only network code is the
local demo server. Nothing plays sound: `courtdemo.music_loop` only reads loop
files and builds status text, and the sound effects of a
`CharacterAnimationLayer` are only reported through its `sound_effect`
callbacks. Animation layers render frames into Pillow images but never show
them on screen, and they do not look up theme, character or background files
by name: they are given the file path to play.