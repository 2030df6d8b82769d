"""Runtime configuration for the emulator."""

from dataclasses import dataclass
from typing import Optional


DEFAULT_INSTRUCTIONS_PER_SECOND = 700
DEFAULT_TIMER_HZ = 60


@dataclass
class EmulatorConfig:
    """Settings fixed for the lifetime of one machine.

    Attributes:
        instructions_per_second: Pacing target for the loop (0 = unthrottled)
        timer_hz: Rate at which delay/sound timers count down (0 = frozen)
        legacy_shift: 8XY6/8XYE read Vy (original interpreter) instead of Vx
        max_stack_depth: Call depth cap; None leaves the stack unbounded
        trace: Record an ExecutionTraceEntry per cycle
        trace_limit: Number of most recent trace entries kept
    """
    instructions_per_second: float = DEFAULT_INSTRUCTIONS_PER_SECOND
    timer_hz: float = DEFAULT_TIMER_HZ
    legacy_shift: bool = False
    max_stack_depth: Optional[int] = None
    trace: bool = False
    trace_limit: int = 1000

    @property
    def cycle_time(self) -> float:
        """Seconds budgeted per instruction (0 when unthrottled)."""
        if not self.instructions_per_second:
            return 0.0
        return 1.0 / self.instructions_per_second

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ValueError: On negative rates, a non-positive stack cap or trace limit
        """
        if self.instructions_per_second < 0:
            raise ValueError("instructions_per_second must be >= 0")
        if self.timer_hz < 0:
            raise ValueError("timer_hz must be >= 0")
        if self.max_stack_depth is not None and self.max_stack_depth <= 0:
            raise ValueError("max_stack_depth must be positive or None")
        if self.trace_limit <= 0:
            raise ValueError("trace_limit must be positive")
