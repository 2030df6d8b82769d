"""Chip8: fetch-decode-execute orchestrator and paced execution loop.

This module implements the full execution pipeline:
    MEMORY -> FETCH -> DECODE -> INSTRUCTION -> REGISTRY -> STATE -> DISPLAY

Each cycle reads two bytes at the program counter, advances the counter
by 2, decodes and executes. When a draw marked the frame buffer as
changed, the frame is handed to the display sink. The loop is paced to a
fixed instruction rate (700/s by default) and stops cooperatively when
its cancellation token is tripped.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Union

from .cancellation import CancellationToken
from .config import EmulatorConfig
from .decoder import decode
from .display import DisplaySink, NullDisplay
from .errors import Chip8Error, ExecutionError
from .instructions import Instruction
from .registry import InstructionRegistry, get_registry
from .state import MachineState, create_initial_state


logger = logging.getLogger(__name__)

# Upper bound on timer catch-up after a stall; timers saturate at 0 anyway.
MAX_TIMER_CATCH_UP = 256


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        address: Address the instruction was fetched from
        opcode: Raw instruction bytes as hex (empty if the fetch failed)
        instruction: Mnemonic of the decoded instruction (empty if decode failed)
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
        error: Error message if execution failed
    """
    cycle: int
    address: int
    opcode: str
    instruction: str
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class Chip8:
    """CHIP-8 virtual machine.

    Attributes:
        config: EmulatorConfig fixed at construction
        display: Sink receiving frames when the display changes
        cancel_token: Token polled once per cycle by ``run``
        registry: InstructionRegistry with the execution rules
        state: Current machine state
        trace: Most recent execution trace entries (if tracing is enabled)
    """

    def __init__(
        self,
        config: Optional[EmulatorConfig] = None,
        display: Optional[DisplaySink] = None,
        cancel_token: Optional[CancellationToken] = None,
        registry: Optional[InstructionRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the machine.

        Args:
            config: Emulator settings (defaults to EmulatorConfig())
            display: Display sink (defaults to NullDisplay)
            cancel_token: Shutdown signal for ``run`` (a private one if omitted)
            registry: Instruction registry (defaults to the shared instance)
            clock: Monotonic time source in seconds, used for pacing and timers
        """
        self.config = config if config is not None else EmulatorConfig()
        self.config.validate()
        self.display = display if display is not None else NullDisplay()
        self.cancel_token = cancel_token if cancel_token is not None else CancellationToken()
        self.registry = registry if registry is not None else get_registry()
        self.clock = clock
        self.state: MachineState = self._new_state()
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=self.config.trace_limit)
        self._closed = False

    def _new_state(self) -> MachineState:
        return create_initial_state(
            legacy_shift=self.config.legacy_shift,
            max_stack_depth=self.config.max_stack_depth,
        )

    # =========================================================================
    # Loading
    # =========================================================================

    def reset(self) -> None:
        """Discard all machine state and the trace."""
        self.state = self._new_state()
        self.trace.clear()

    def load_program(self, program: bytes) -> None:
        """Reset the machine and load a program image at 0x200.

        Raises:
            ProgramTooLargeError: If the image exceeds 3584 bytes
        """
        self.reset()
        self.state.load_program(bytes(program))
        logger.info("Loaded %d byte program", len(program))

    def load_rom(self, path: Union[str, Path]) -> None:
        """Read a ROM file from disk and load it.

        Raises:
            FileNotFoundError: If the file does not exist
            ProgramTooLargeError: If the ROM does not fit in memory
        """
        rom_path = Path(path)
        logger.info("Loading ROM %s", rom_path)
        self.load_program(rom_path.read_bytes())

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Instruction:
        """Execute a single instruction cycle.

        Performs: FETCH -> ADVANCE PC -> DECODE -> EXECUTE

        Returns:
            The instruction that was executed

        Raises:
            RuntimeError: If the machine is halted
            ExecutionError: On any fatal fetch, decode or execution error
        """
        state = self.state
        if state.halted:
            raise RuntimeError("Machine is halted")

        address = state.pc
        opcode = b""
        instruction: Optional[Instruction] = None
        pre_state = state.snapshot() if self.config.trace else None

        try:
            opcode = state.read_memory(address, 2)
            state.pc = address + 2
            instruction = decode(opcode)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("%03X: %s  %s", address, opcode.hex().upper(), instruction.mnemonic())
            self.registry.execute(state, instruction)
        except Chip8Error as e:
            state.halted = True
            logger.error("Fatal error at 0x%03X (opcode %s): %s", address, opcode.hex().upper() or "----", e)
            self._record(address, opcode, instruction, pre_state, error=str(e))
            raise ExecutionError(address, opcode, e) from e

        self._record(address, opcode, instruction, pre_state)
        state.cycle_count += 1
        return instruction

    def _record(
        self,
        address: int,
        opcode: bytes,
        instruction: Optional[Instruction],
        pre_state: Optional[dict],
        error: Optional[str] = None,
    ) -> None:
        if pre_state is None:
            return
        self.trace.append(ExecutionTraceEntry(
            cycle=self.state.cycle_count,
            address=address,
            opcode=opcode.hex().upper(),
            instruction=instruction.mnemonic() if instruction is not None else "",
            pre_state=pre_state,
            post_state=self.state.snapshot(),
            error=error,
        ))

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Run until cancelled, a fatal error, or ``max_cycles`` cycles.

        Each cycle executes one instruction, renders the frame if it
        changed, counts the timers down and sleeps off whatever is left of
        the per-instruction budget. A slow cycle is not compensated for.
        The display is closed exactly once when the loop exits, whatever
        the reason.

        Args:
            max_cycles: Optional limit on cycles executed by this call

        Returns:
            Number of cycles executed

        Raises:
            RuntimeError: If the display was already closed by a previous run
            ExecutionError: On a fatal machine error (after teardown)
            RenderError: If the display sink fails (after teardown)
        """
        if self._closed:
            raise RuntimeError("Machine has been shut down")

        cycle_time = self.config.cycle_time
        timer_period = 1.0 / self.config.timer_hz if self.config.timer_hz else None
        last_timer_tick = self.clock()
        executed = 0

        logger.info("Starting execution at 0x%03X", self.state.pc)
        try:
            while not self.cancel_token.cancelled:
                if max_cycles is not None and executed >= max_cycles:
                    break
                cycle_start = self.clock()

                self.step()
                executed += 1

                if self.state.display_changed:
                    self.display.render(self.state.frame())
                    self.state.display_changed = False

                if timer_period is not None:
                    ticks = int((self.clock() - last_timer_tick) / timer_period)
                    if ticks > 0:
                        for _ in range(min(ticks, MAX_TIMER_CATCH_UP)):
                            self.state.tick_timers()
                        last_timer_tick += ticks * timer_period

                if cycle_time:
                    remaining = cycle_time - (self.clock() - cycle_start)
                    if remaining > 0:
                        self.cancel_token.wait(remaining)
        finally:
            self.close()
            logger.info("Stopped after %d cycles", executed)

        return executed

    def close(self) -> None:
        """Tear down the display sink (only the first call has an effect)."""
        if self._closed:
            return
        self._closed = True
        self.display.close()

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_register(self, reg: int) -> int:
        """Get value of a register (0-15)."""
        return self.state.get_register(reg)

    def dump_registers(self) -> Dict[str, int]:
        """Get all register values keyed V0..VF."""
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def is_halted(self) -> bool:
        return self.state.halted

    def get_trace(self) -> List[ExecutionTraceEntry]:
        return list(self.trace)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] 0x{entry.address:03X}  {entry.opcode}  {status}")
            print(f"  Instruction: {entry.instruction}")

            # Show register changes
            pre_regs = entry.pre_state.get("registers", {})
            post_regs = entry.post_state.get("registers", {})
            changes = []
            for reg in sorted(pre_regs.keys()):
                if pre_regs[reg] != post_regs.get(reg, pre_regs[reg]):
                    changes.append(f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            pre_index = entry.pre_state.get("index", 0)
            post_index = entry.post_state.get("index", 0)
            if pre_index != post_index:
                print(f"  I: 0x{pre_index:03X} -> 0x{post_index:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  Registers: {self.dump_registers()}")
        print(f"  PC: 0x{self.get_pc():03X}")
        print(f"  I: 0x{self.state.index:03X}")
        print(f"  Stack: {[hex(a) for a in self.state.stack]}")
        print(f"  Cycles: {self.get_cycle_count()}")
        print(f"  Halted: {self.is_halted()}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "registers": self.dump_registers(),
            "pc": self.get_pc(),
            "index": self.state.index,
            "stack_depth": len(self.state.stack),
            "delay_timer": self.state.delay_timer,
            "sound_timer": self.state.sound_timer,
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
