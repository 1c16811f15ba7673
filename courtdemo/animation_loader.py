"""Background decoding of animated images into frames."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from PIL import Image, ImageSequence


@dataclass
class AnimationFrame:
    """One decoded frame and how long it is shown, in milliseconds."""

    image: Image.Image | None = None
    duration: int = 0


class AnimationLoader:
    """Decodes an image file on a worker thread; frames can be read as they arrive."""

    def __init__(self) -> None:
        self._file_name = ""
        self._size: tuple[int, int] | None = None
        self._frame_count = 0
        self._loop_count = -1
        self._frames: list[AnimationFrame] = []
        self._condition = threading.Condition()
        self._exit = threading.Event()
        self._thread: threading.Thread | None = None
        self._finished = True

    @property
    def loaded_file_name(self) -> str:
        return self._file_name

    @property
    def size(self) -> tuple[int, int] | None:
        return self._size

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def loop_count(self) -> int:
        """Times the animation repeats; -1 means forever."""
        return self._loop_count

    def load(self, file_name: str) -> None:
        """Start decoding ``file_name``, unless it is already loaded."""
        if file_name == self._file_name:
            return
        self.stop_loading()
        self._file_name = file_name
        with self._condition:
            self._frames = []

        try:
            image = Image.open(file_name)
        except (OSError, ValueError):
            self._size = None
            self._frame_count = 0
            self._loop_count = 0
            return

        self._size = image.size
        self._frame_count = getattr(image, "n_frames", 1)
        loop = image.info.get("loop")
        self._loop_count = 0 if loop is None else (-1 if loop == 0 else int(loop))

        self._exit.clear()
        self._finished = False
        self._thread = threading.Thread(target=self._populate, args=(image, self._frame_count),
                                        daemon=True)
        self._thread.start()

    def stop_loading(self) -> None:
        """Ask the worker to stop and wait for it."""
        self._exit.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join()
        self._thread = None

    def close(self) -> None:
        self.stop_loading()

    def __enter__(self) -> AnimationLoader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def frame(self, frame_number: int) -> AnimationFrame:
        """Return a frame, waiting until the worker has decoded it."""
        if self._frame_count <= 0:
            return AnimationFrame()
        if not 0 <= frame_number < self._frame_count:
            raise IndexError(f"frame {frame_number} out of range (0..{self._frame_count - 1})")
        with self._condition:
            self._condition.wait_for(
                lambda: len(self._frames) > frame_number or self._finished)
            if len(self._frames) <= frame_number:
                raise RuntimeError(f"loading stopped before frame {frame_number}")
            return self._frames[frame_number]

    def _populate(self, image: Image.Image, count: int) -> None:
        try:
            for index, decoded in enumerate(ImageSequence.Iterator(image)):
                if self._exit.is_set() or index >= count:
                    break
                frame = AnimationFrame(decoded.convert("RGBA"),
                                       int(decoded.info.get("duration", 0) or 0))
                with self._condition:
                    self._frames.append(frame)
                    self._condition.notify_all()
        except OSError:
            pass
        finally:
            image.close()
            with self._condition:
                self._finished = True
                self._condition.notify_all()