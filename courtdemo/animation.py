"""Frame-by-frame playback of decoded animations, without a GUI toolkit.

A layer keeps the playback state, computes display geometry and renders the
current frame into a Pillow image.  Timers are modelled by ``pending_tick``:
the delay in milliseconds after which the owner should call :meth:`tick`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Sequence

from PIL import Image, ImageOps

from courtdemo.animation_loader import AnimationFrame, AnimationLoader

INVALID_FILE = "Invalid File"

Size = tuple[int, int]
Rect = tuple[int, int, int, int]


class ResizeMode(Enum):
    """How frames are resampled when scaled."""

    AUTO = "auto"
    PIXEL = "pixel"
    SMOOTH = "smooth"


class EmoteType(IntEnum):
    NONE = 0
    PRE = 1
    IDLE = 2
    TALK = 3
    POST = 4


class EffectType(IntEnum):
    SFX = 0
    SHAKE = 1
    FLASH = 2


@dataclass
class FrameEffect:
    """An effect fired when a given emote reaches a given frame."""

    emote_name: str = ""
    type: EffectType = EffectType.SFX
    file_name: str = ""


class _Signal:
    """A minimal list of callbacks invoked in connection order."""

    def __init__(self) -> None:
        self._slots: list[Callable[..., object]] = []

    def connect(self, slot: Callable[..., object]) -> None:
        self._slots.append(slot)

    def emit(self, *args: object) -> None:
        for slot in list(self._slots):
            slot(*args)


def _valid(size: Size | None) -> bool:
    return size is not None and size[0] >= 0 and size[1] >= 0


def _round(value: float) -> int:
    return math.floor(value + 0.5) if value >= 0 else math.ceil(value - 0.5)


def _contains(outer: Rect, inner: Rect | None) -> bool:
    if inner is None:
        return False
    ox, oy, ow, oh = outer
    ix, iy, iw, ih = inner
    if ow <= 0 or oh <= 0 or iw <= 0 or ih <= 0:
        return False
    return ix >= ox and iy >= oy and ix + iw <= ox + ow and iy + ih <= oy + oh


def _to_int(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


class AnimationLayer:
    """Plays an animation file frame by frame."""

    def __init__(self, loader_factory: Callable[[], AnimationLoader] = AnimationLoader) -> None:
        self._loader_factory = loader_factory
        self._loader = loader_factory()
        self._file_name = ""
        self.play_once = False
        self.stretch_to_fit = False
        self.reset_cache_when_stopped = False
        self.flipped = False
        self.resize_mode = ResizeMode.AUTO
        self.minimum_duration = 0
        self.maximum_duration = 0
        self.smooth_transformation = False
        self.size: Size | None = None
        self.scaled_frame_size: Size | None = None
        self.pixmap: Image.Image | None = None
        self.visible = False
        self.pending_tick: int | None = None
        self._frame_size: Size | None = None
        self._frame_rect: Rect = (0, 0, 0, 0)
        self._mask_rect_hint: Rect | None = None
        self._mask_rect: Rect | None = None
        self._processing = False
        self._paused = False
        self._first_frame = False
        self._frame_number = 0
        self._target_frame_number = -1
        self._frame_count = 0
        self._current_frame = AnimationFrame()

        self.started_playback = _Signal()
        self.stopped_playback = _Signal()
        self.finished_playback = _Signal()
        self.frame_number_changed = _Signal()

    # -- state -----------------------------------------------------------

    @property
    def file_name(self) -> str:
        return self._file_name

    @property
    def frame_size(self) -> Size | None:
        return self._frame_size

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def current_frame_number(self) -> int:
        return self._frame_number

    @property
    def mask_rect(self) -> Rect | None:
        return self._mask_rect

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_paused(self) -> bool:
        return self._paused

    def close(self) -> None:
        """Stop any background decoding."""
        self._loader.close()

    def __enter__(self) -> AnimationLayer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- playback --------------------------------------------------------

    def set_file_name(self, file_name: str) -> None:
        """Stop playback and switch to another file."""
        self.stop_playback()
        self._file_name = file_name if file_name.strip() else INVALID_FILE
        self._reset_data()

    def start_playback(self) -> None:
        if self._processing:
            return
        self._reset_data()
        self._processing = True
        self.visible = True
        self.started_playback.emit()
        self._frame_ticker()

    def stop_playback(self) -> None:
        self.pending_tick = None
        self._processing = False
        if self.reset_cache_when_stopped:
            self._loader.close()
            self._loader = self._loader_factory()
        self.stopped_playback.emit()

    def restart_playback(self) -> None:
        self.stop_playback()
        self.start_playback()

    def pause_playback(self, enabled: bool) -> None:
        self._paused = enabled

    def jump_to_frame(self, number: int) -> None:
        """Show ``number`` next; out-of-range numbers are ignored."""
        if not 0 <= number < self._frame_count:
            return
        was_processing = self._processing
        self.pending_tick = None
        self._target_frame_number = number
        if was_processing:
            self._frame_ticker()

    def tick(self) -> None:
        """Fire the pending frame timer, if one is pending."""
        if self.pending_tick is None:
            return
        self.pending_tick = None
        self._frame_ticker()

    # -- geometry --------------------------------------------------------

    def set_masking_rect(self, rect: Rect | None) -> None:
        self._mask_rect_hint = rect
        self._calculate_frame_geometry()

    def resize(self, width: int, height: int) -> None:
        self.size = (width, height)
        self._calculate_frame_geometry()

    # -- internals -------------------------------------------------------

    def _reset_data(self) -> None:
        self._first_frame = True
        self._frame_number = 0
        if self._file_name != self._loader.loaded_file_name:
            self._loader.load(self._file_name)
        self._frame_count = self._loader.frame_count
        self._frame_size = self._loader.size
        width, height = self._frame_size if self._frame_size else (0, 0)
        self._frame_rect = (0, 0, width, height)
        self.pending_tick = None
        self._calculate_frame_geometry()

    def _calculate_frame_geometry(self) -> None:
        self._mask_rect = None
        self.scaled_frame_size = None
        self.smooth_transformation = True

        if not _valid(self.size) or not _valid(self._frame_size):
            return
        assert self.size is not None and self._frame_size is not None

        if self.stretch_to_fit:
            self.scaled_frame_size = self.size
        else:
            scaled = self._frame_size
            if _contains(self._frame_rect, self._mask_rect_hint):
                assert self._mask_rect_hint is not None
                self._mask_rect = self._mask_rect_hint
                scaled = (self._mask_rect_hint[2], self._mask_rect_hint[3])
            if scaled[1] == 0:
                self.scaled_frame_size = (0, 0)
            else:
                scale = self.size[1] / scaled[1]
                self.scaled_frame_size = (_round(scaled[0] * scale), _round(scaled[1] * scale))
            if self._frame_size[1] < self.size[1]:
                self.smooth_transformation = False

        if self.resize_mode is ResizeMode.PIXEL:
            self.smooth_transformation = False
        elif self.resize_mode is ResizeMode.SMOOTH:
            self.smooth_transformation = True

        self._display_current_frame()

    def _finish_playback(self) -> None:
        self.stop_playback()
        self.finished_playback.emit()

    def _prepare_next_tick(self) -> None:
        duration = max(self.minimum_duration, self._current_frame.duration)
        if self.maximum_duration > 0:
            duration = min(self.maximum_duration, duration)
        self.pending_tick = duration

    def _display_current_frame(self) -> None:
        image = self._current_frame.image
        if _valid(self._frame_size):
            if self._mask_rect is not None and image is not None:
                x, y, w, h = self._mask_rect
                image = image.crop((x, y, x + w, y + h))
            if image is not None:
                scaled = self.scaled_frame_size
                if scaled is None or scaled[0] <= 0 or scaled[1] <= 0:
                    image = None
                else:
                    resample = (Image.Resampling.BILINEAR if self.smooth_transformation
                                else Image.Resampling.NEAREST)
                    image = image.resize(scaled, resample)
                    if self.flipped:
                        image = ImageOps.mirror(image)
        else:
            image = Image.new("RGBA", (1, 1), (0, 0, 0, 0))
        self.pixmap = image

    def _frame_ticker(self) -> None:
        if not self._processing:
            return

        if self._frame_count < 1:
            if self.play_once:
                self._finish_playback()
            else:
                self.stop_playback()
            return

        if self._paused and not self._first_frame:
            return

        if self._frame_number == self._frame_count:
            if self.play_once:
                self._finish_playback()
                return
            if self._frame_count > 1:
                self._frame_number = 0
            else:
                return

        self._first_frame = False
        if self._target_frame_number != -1:
            self._frame_number = self._target_frame_number
            self._target_frame_number = -1
        self._current_frame = self._loader.frame(self._frame_number)
        self._display_current_frame()
        self.frame_number_changed.emit(self._frame_number)
        self._frame_number += 1

        if not self._paused:
            self._prepare_next_tick()


_EFFECT_ORDER = (EffectType.SHAKE, EffectType.FLASH, EffectType.SFX)
_DIALOG_EMOTES = (EmoteType.IDLE, EmoteType.TALK)


class CharacterAnimationLayer(AnimationLayer):
    """An animation layer for character emotes, with per-frame effects."""

    def __init__(self, loader_factory: Callable[[], AnimationLoader] = AnimationLoader) -> None:
        super().__init__(loader_factory)
        self.emote_type = EmoteType.NONE
        self.resolved_emote = ""
        self.duration_limit = 0
        self._emote = ""
        self._time_limit_active = False
        self._effects: dict[int, list[FrameEffect]] = {}

        self.finished_pre_or_post_emote_playback = _Signal()
        self.sound_effect = _Signal()
        self.shake_effect = _Signal()
        self.flash_effect = _Signal()

        self.stopped_playback.connect(self._on_playback_stopped)
        self.frame_number_changed.connect(self._notify_frame_effect)
        self.finished_playback.connect(self._notify_emote_playback_finished)

    @property
    def effects(self) -> dict[int, list[FrameEffect]]:
        return self._effects

    @property
    def time_limit_active(self) -> bool:
        return self._time_limit_active

    def load_emote(self, file_name: str, emote_type: EmoteType,
                   resolved_emote: str | None = None, duration_limit: int = 0) -> None:
        """Load an emote image; dialog emotes of the same file keep their frame."""
        synchronize = (self._emote == file_name
                       and self.emote_type in _DIALOG_EMOTES
                       and emote_type in _DIALOG_EMOTES)
        previous_count = self.frame_count
        previous_number = self.current_frame_number

        self._emote = file_name
        self.resolved_emote = file_name if resolved_emote is None else resolved_emote
        self.emote_type = emote_type

        self.set_file_name(file_name)
        self.play_once = emote_type is EmoteType.PRE
        if synchronize and previous_count == self.frame_count:
            self.jump_to_frame(previous_number)
        self.duration_limit = duration_limit

    def set_frame_effects(self, data: Sequence[str]) -> None:
        """Read shake, flash and sfx definitions, in that order.

        Each entry holds ``emote|frame=value|...`` groups separated by ``^``.
        """
        if len(data) > len(_EFFECT_ORDER):
            raise ValueError(f"at most {len(_EFFECT_ORDER)} effect lists, got {len(data)}")
        self._effects = {}
        for effect_type, entry in zip(_EFFECT_ORDER, data):
            for emote in entry.split("^"):
                emote_name, *raw_effects = emote.split("|")
                for raw_effect in raw_effects:
                    frame_data = raw_effect.split("=")
                    if len(frame_data) < 2:
                        continue
                    effect = FrameEffect(emote_name, effect_type,
                                         frame_data[1] if effect_type is EffectType.SFX else "")
                    self._effects.setdefault(_to_int(frame_data[0]), []).append(effect)

    def start_time_limit(self) -> None:
        """Arm the duration limit, when one is set."""
        if self.duration_limit > 0:
            self._time_limit_active = True
            self.pending_time_limit = self.duration_limit

    def duration_expired(self) -> None:
        """Handle the duration limit running out."""
        self.stop_playback()
        self._notify_emote_playback_finished()

    def _on_playback_stopped(self) -> None:
        self._time_limit_active = False

    def _notify_emote_playback_finished(self) -> None:
        if self.emote_type in (EmoteType.PRE, EmoteType.POST):
            self.finished_pre_or_post_emote_playback.emit()

    def _notify_frame_effect(self, frame_number: int) -> None:
        for effect in self._effects.get(frame_number, ()):
            if effect.emote_name != self.resolved_emote:
                continue
            if effect.type is EffectType.SFX:
                self.sound_effect.emit(effect.file_name)
            elif effect.type is EffectType.SHAKE:
                self.shake_effect.emit()
            elif effect.type is EffectType.FLASH:
                self.flash_effect.emit()