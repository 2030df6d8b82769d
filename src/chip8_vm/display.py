"""Display sinks for the CHIP-8 frame buffer.

A sink receives a read-only 64x32 frame (indexed ``frame[x][y]``)
whenever a draw instruction marked the display as changed, and is closed
exactly once when the loop stops.

Sinks:
    TerminalDisplay: ANSI terminal renderer, two block characters per pixel
    NullDisplay: discards frames (headless runs, tests)
"""

import sys
from typing import Optional, Protocol, TextIO

from .errors import RenderError
from .state import DISPLAY_HEIGHT, DISPLAY_WIDTH, Frame


PIXEL_ON = "██"
PIXEL_OFF = "  "

# ANSI control sequences
CURSOR_HOME = "\x1b[H"
CLEAR_SCREEN = "\x1b[2J"
HIDE_CURSOR = "\x1b[?25l"
SHOW_CURSOR = "\x1b[?25h"


class DisplaySink(Protocol):
    def render(self, frame: Frame) -> None:
        ...

    def close(self) -> None:
        ...


def render_frame_text(frame: Frame, on: str = PIXEL_ON, off: str = PIXEL_OFF) -> str:
    """Render a frame as text, one line per display row.

    Args:
        frame: 64x32 frame indexed [x][y]
        on: Text for a lit pixel
        off: Text for an unlit pixel

    Returns:
        32 lines joined by newlines
    """
    width = len(frame)
    height = len(frame[0]) if width else 0
    return "\n".join(
        "".join(on if frame[x][y] else off for x in range(width))
        for y in range(height)
    )


class TerminalDisplay:
    """Draws frames in place on an ANSI terminal.

    The screen is cleared and the cursor hidden on the first frame; each
    later frame overwrites the previous one from the home position.
    ``close()`` restores the cursor.

    Attributes:
        stream: Text stream to write to (stdout by default)
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout
        self._started = False

    def render(self, frame: Frame) -> None:
        """Write one frame.

        Raises:
            RenderError: If the frame has the wrong shape or writing fails
        """
        if len(frame) != DISPLAY_WIDTH or any(len(column) != DISPLAY_HEIGHT for column in frame):
            raise RenderError("Frame must be 64x32")
        try:
            if not self._started:
                self.stream.write(HIDE_CURSOR + CLEAR_SCREEN)
                self._started = True
            self.stream.write(CURSOR_HOME + render_frame_text(frame) + "\n")
            self.stream.flush()
        except (OSError, ValueError) as e:
            raise RenderError(f"Failed to draw display to console: {e}") from e

    def close(self) -> None:
        if not self._started:
            return
        try:
            self.stream.write(SHOW_CURSOR)
            self.stream.flush()
        except (OSError, ValueError) as e:
            raise RenderError(f"Failed to restore terminal: {e}") from e


class NullDisplay:
    """Sink that only counts what it is given."""

    def __init__(self):
        self.frames_rendered = 0
        self.closed = False

    def render(self, frame: Frame) -> None:
        self.frames_rendered += 1

    def close(self) -> None:
        self.closed = True
