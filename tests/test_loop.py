"""Tests for the paced execution loop, cancellation and display sinks."""

import io
import signal
import sys
import threading
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import Chip8, EmulatorConfig, parse_hex_program
from chip8_vm.cancellation import CancellationToken, install_sigint_handler
from chip8_vm.display import (
    CLEAR_SCREEN,
    HIDE_CURSOR,
    SHOW_CURSOR,
    NullDisplay,
    TerminalDisplay,
    render_frame_text,
)
from chip8_vm.errors import ExecutionError, RenderError
from chip8_vm.state import MachineState


DRAW_THEN_LOOP = parse_hex_program("A20A 6003 6102 D014 1208 FFFFFFFF")
SPIN = parse_hex_program("1200")


class FakeClock:
    """Advances by a fixed step on every reading."""

    def __init__(self, step=0.0):
        self.step = step
        self.now = 0.0

    def __call__(self):
        self.now += self.step
        return self.now


class RecordingToken(CancellationToken):
    """Token that records wait timeouts instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout):
        self.waits.append(timeout)
        return self.cancelled


class CountingDisplay(NullDisplay):
    def __init__(self):
        super().__init__()
        self.close_calls = 0
        self.frames = []

    def render(self, frame):
        super().render(frame)
        self.frames.append(frame)

    def close(self):
        super().close()
        self.close_calls += 1


class CancelOnRender(CountingDisplay):
    def __init__(self, token):
        super().__init__()
        self.token = token

    def render(self, frame):
        super().render(frame)
        self.token.cancel()


class FailingDisplay(CountingDisplay):
    def render(self, frame):
        raise RenderError("console gone")


def make_chip8(program, ips=0, **kwargs):
    chip8 = Chip8(EmulatorConfig(instructions_per_second=ips), **kwargs)
    chip8.load_program(program)
    return chip8


class TestRunLoop:
    """Loop termination and teardown."""

    def test_max_cycles(self):
        display = CountingDisplay()
        chip8 = make_chip8(SPIN, display=display)
        assert chip8.run(max_cycles=25) == 25
        assert chip8.get_cycle_count() == 25
        assert display.close_calls == 1

    def test_cancelled_before_start(self):
        """A tripped token stops the loop before any instruction runs."""
        token = CancellationToken()
        token.cancel()
        display = CountingDisplay()
        chip8 = make_chip8(SPIN, display=display, cancel_token=token)
        assert chip8.run() == 0
        assert chip8.get_pc() == 0x200
        assert display.close_calls == 1

    def test_cancelled_by_sink(self):
        token = CancellationToken()
        display = CancelOnRender(token)
        chip8 = make_chip8(DRAW_THEN_LOOP, display=display, cancel_token=token)
        assert chip8.run() == 4
        assert display.frames_rendered == 1
        assert display.close_calls == 1

    def test_cancelled_from_another_thread(self):
        token = CancellationToken()
        chip8 = make_chip8(SPIN, ips=700, cancel_token=token)
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            executed = chip8.run()
        finally:
            timer.cancel()
        assert executed > 0
        assert time.monotonic() - started < 5

    def test_renders_only_on_change(self):
        display = CountingDisplay()
        chip8 = make_chip8(DRAW_THEN_LOOP, display=display)
        chip8.run(max_cycles=100)
        assert display.frames_rendered == 1
        assert chip8.state.display_changed is False
        frame = display.frames[0]
        assert frame[3][2] is True
        assert frame[11][2] is False

    def test_clear_screen_renders(self):
        display = CountingDisplay()
        chip8 = make_chip8(parse_hex_program("00E0 1202"), display=display)
        chip8.run(max_cycles=10)
        assert display.frames_rendered == 1

    def test_fatal_error_tears_down_once(self):
        display = CountingDisplay()
        chip8 = make_chip8(parse_hex_program("00EE"), display=display)
        with pytest.raises(ExecutionError):
            chip8.run()
        assert display.close_calls == 1
        assert chip8.is_halted() is True

    def test_render_error_propagates_after_teardown(self):
        display = FailingDisplay()
        chip8 = make_chip8(DRAW_THEN_LOOP, display=display)
        with pytest.raises(RenderError):
            chip8.run()
        assert display.close_calls == 1
        assert chip8.get_cycle_count() == 4

    def test_run_after_shutdown(self):
        chip8 = make_chip8(SPIN)
        chip8.run(max_cycles=1)
        with pytest.raises(RuntimeError):
            chip8.run(max_cycles=1)

    def test_close_is_idempotent(self):
        display = CountingDisplay()
        chip8 = make_chip8(SPIN, display=display)
        chip8.close()
        chip8.close()
        assert display.close_calls == 1


class TestPacing:
    """Per-instruction sleep budget."""

    def test_waits_remaining_budget(self):
        token = RecordingToken()
        chip8 = make_chip8(SPIN, ips=700, cancel_token=token, clock=FakeClock(0.0))
        chip8.run(max_cycles=3)
        assert token.waits == [pytest.approx(1 / 700)] * 3

    def test_slow_cycle_not_compensated(self):
        token = RecordingToken()
        chip8 = make_chip8(SPIN, ips=700, cancel_token=token, clock=FakeClock(0.01))
        chip8.run(max_cycles=3)
        assert token.waits == []

    def test_unthrottled_never_waits(self):
        token = RecordingToken()
        chip8 = make_chip8(SPIN, ips=0, cancel_token=token)
        chip8.run(max_cycles=50)
        assert token.waits == []


class TestTimers:
    """Timers count down at 60 Hz from the loop."""

    def test_timers_tick_with_elapsed_time(self):
        chip8 = make_chip8(SPIN, clock=FakeClock(0.03))
        chip8.state.delay_timer = 10
        chip8.state.sound_timer = 2
        chip8.run(max_cycles=1)
        # 0.06 s elapsed between the loop start and the timer check
        assert chip8.state.delay_timer == 7
        assert chip8.state.sound_timer == 0

    def test_frozen_clock_leaves_timers(self):
        chip8 = make_chip8(SPIN, clock=FakeClock(0.0))
        chip8.state.delay_timer = 10
        chip8.run(max_cycles=20)
        assert chip8.state.delay_timer == 10

    def test_timer_hz_zero_disables_timers(self):
        chip8 = Chip8(EmulatorConfig(instructions_per_second=0, timer_hz=0), clock=FakeClock(1.0))
        chip8.load_program(SPIN)
        chip8.state.delay_timer = 10
        chip8.run(max_cycles=5)
        assert chip8.state.delay_timer == 10


class TestConfig:
    """EmulatorConfig defaults and validation."""

    def test_defaults(self):
        config = EmulatorConfig()
        assert config.instructions_per_second == 700
        assert config.timer_hz == 60
        assert config.cycle_time == pytest.approx(1 / 700)
        config.validate()

    def test_unthrottled_cycle_time(self):
        assert EmulatorConfig(instructions_per_second=0).cycle_time == 0.0

    @pytest.mark.parametrize("kwargs", [
        {"instructions_per_second": -1},
        {"timer_hz": -60},
        {"max_stack_depth": 0},
        {"trace_limit": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            EmulatorConfig(**kwargs).validate()

    def test_machine_rejects_invalid_config(self):
        with pytest.raises(ValueError):
            Chip8(EmulatorConfig(trace_limit=-1))

    def test_stack_cap_reaches_state(self):
        chip8 = Chip8(EmulatorConfig(instructions_per_second=0, max_stack_depth=2))
        chip8.load_program(parse_hex_program("2200"))
        with pytest.raises(ExecutionError):
            chip8.run(max_cycles=10)
        assert chip8.get_cycle_count() == 2


class TestCancellationToken:
    """CancellationToken and the SIGINT hook."""

    def test_initially_clear(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.wait(0.001) is False

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled is True
        assert token.wait(10) is True

    def test_sigint_handler_cancels(self):
        token = CancellationToken()
        previous = install_sigint_handler(token)
        try:
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
            assert token.cancelled is True
        finally:
            signal.signal(signal.SIGINT, previous)


class TestDisplaySinks:
    """Frame rendering."""

    def test_render_frame_text(self):
        state = MachineState()
        state.display[1][0] = True
        state.display[63][31] = True
        lines = render_frame_text(state.frame(), on="#", off=".").split("\n")
        assert len(lines) == 32
        assert lines[0] == "." + "#" + "." * 62
        assert lines[31] == "." * 63 + "#"

    def test_terminal_display(self):
        stream = io.StringIO()
        display = TerminalDisplay(stream)
        state = MachineState()
        state.display[0][0] = True
        display.render(state.frame())
        display.render(state.frame())
        display.close()
        output = stream.getvalue()
        assert output.startswith(HIDE_CURSOR + CLEAR_SCREEN)
        assert output.count(CLEAR_SCREEN) == 1
        assert "██" in output
        assert output.endswith(SHOW_CURSOR)

    def test_terminal_close_without_render(self):
        stream = io.StringIO()
        TerminalDisplay(stream).close()
        assert stream.getvalue() == ""

    def test_terminal_bad_frame(self):
        display = TerminalDisplay(io.StringIO())
        with pytest.raises(RenderError):
            display.render(((False,) * 32,) * 10)

    def test_terminal_write_failure(self):
        stream = io.StringIO()
        stream.close()
        with pytest.raises(RenderError):
            TerminalDisplay(stream).render(MachineState().frame())
