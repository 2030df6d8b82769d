"""MachineState: mutable state of the CHIP-8 virtual machine.

This module defines the core state structure for the emulator. Unlike a
pure functional model, the state is owned by a single loop thread and
mutated in place by the instruction registry.

State Components:
    - Memory: 4096 bytes, font glyphs at 0x050, programs at 0x200
    - Registers: V0-VF (16 general-purpose 8-bit registers, VF = flags)
    - Index register (I) and program counter (PC), both 16-bit
    - Call stack: list of return addresses
    - Delay and sound timers (8-bit, decremented at 60 Hz)
    - Frame buffer: 64x32 booleans addressed [x][y]
    - Quirk flag selecting the legacy shift source register
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .errors import InvalidRegisterError, MemoryAccessError, ProgramTooLargeError, StackOverflowError, StackUnderflowError


MEMORY_SIZE = 4096
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
FONT_START = 0x050
REGISTER_COUNT = 16
FLAG_REGISTER = 0xF

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32

# 16 hexadecimal digit glyphs, 5 bytes each (0-F)
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

Frame = Tuple[Tuple[bool, ...], ...]


class Register(int):
    """Register index constrained to V0..VF.

    Behaves as a plain int everywhere (indexing, comparison, hashing) but
    refuses to be constructed out of range.

    Raises:
        InvalidRegisterError: If the value is not an integer in 0..15
    """

    def __new__(cls, value: Union[int, "Register"]) -> "Register":
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRegisterError(f"Register index must be an int, got {value!r}")
        if not 0 <= value < REGISTER_COUNT:
            raise InvalidRegisterError(f"Invalid register: {value} (expected 0-15)")
        return super().__new__(cls, value)

    @property
    def name(self) -> str:
        return f"V{int(self):X}"

    def __repr__(self) -> str:
        return self.name


def _blank_frame() -> List[List[bool]]:
    return [[False] * DISPLAY_HEIGHT for _ in range(DISPLAY_WIDTH)]


@dataclass
class MachineState:
    """Complete machine state.

    Attributes:
        memory: 4096 bytes of RAM
        registers: V0-VF values (0-255)
        pc: Program counter
        index: Index register (I)
        stack: Return addresses, most recent last
        delay_timer: Delay timer (0-255)
        sound_timer: Sound timer (0-255)
        display: Frame buffer, display[x][y]
        display_changed: Set by draw instructions, cleared by the loop after rendering
        legacy_shift: Shift instructions read Vy (True) or Vx (False)
        max_stack_depth: Optional cap on call stack depth (None = unbounded)
        halted: Whether a fatal error stopped the machine
        cycle_count: Number of executed instructions
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    registers: List[int] = field(default_factory=lambda: [0] * REGISTER_COUNT)
    pc: int = PROGRAM_START
    index: int = 0
    stack: List[int] = field(default_factory=list)
    delay_timer: int = 0
    sound_timer: int = 0
    display: List[List[bool]] = field(default_factory=_blank_frame)
    display_changed: bool = False
    legacy_shift: bool = False
    max_stack_depth: Optional[int] = None
    halted: bool = False
    cycle_count: int = 0

    # =========================================================================
    # Registers
    # =========================================================================

    def get_register(self, reg: int) -> int:
        """Get value of a register.

        Args:
            reg: Register index (0-15)

        Returns:
            Register value

        Raises:
            InvalidRegisterError: If the index is out of range
        """
        return self.registers[Register(reg)]

    def set_register(self, reg: int, value: int) -> None:
        """Set a register, wrapping the value to 8 bits."""
        self.registers[Register(reg)] = value & 0xFF

    def set_flag(self, value: int) -> None:
        self.registers[FLAG_REGISTER] = value & 0xFF

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0..VF."""
        return {f"V{i:X}": value for i, value in enumerate(self.registers)}

    # =========================================================================
    # Memory
    # =========================================================================

    def check_address(self, address: int, length: int = 1) -> None:
        """Ensure ``length`` bytes starting at ``address`` lie in memory.

        Raises:
            MemoryAccessError: If any byte of the range is out of bounds
        """
        if address < 0 or address >= MEMORY_SIZE:
            raise MemoryAccessError(address)
        end = address + length - 1
        if end >= MEMORY_SIZE:
            raise MemoryAccessError(end)

    def read_memory(self, address: int, length: int = 1) -> bytes:
        self.check_address(address, length)
        return bytes(self.memory[address:address + length])

    def write_memory(self, address: int, data: bytes) -> None:
        self.check_address(address, len(data))
        self.memory[address:address + len(data)] = data

    def load_program(self, program: bytes) -> None:
        """Copy a program image into memory at 0x200.

        Args:
            program: Raw instruction bytes

        Raises:
            ProgramTooLargeError: If the image exceeds 3584 bytes
        """
        if len(program) > MAX_PROGRAM_SIZE:
            raise ProgramTooLargeError(
                f"Program is {len(program)} bytes, maximum is {MAX_PROGRAM_SIZE}"
            )
        self.memory[PROGRAM_START:PROGRAM_START + len(program)] = program

    # =========================================================================
    # Call stack
    # =========================================================================

    def push_return(self, address: int) -> None:
        if self.max_stack_depth is not None and len(self.stack) >= self.max_stack_depth:
            raise StackOverflowError(f"Call stack depth limit ({self.max_stack_depth}) exceeded")
        self.stack.append(address)

    def pop_return(self) -> int:
        if not self.stack:
            raise StackUnderflowError("No value on stack to return to")
        return self.stack.pop()

    # =========================================================================
    # Display and timers
    # =========================================================================

    def clear_display(self) -> None:
        for column in self.display:
            for y in range(DISPLAY_HEIGHT):
                column[y] = False
        self.display_changed = True

    def frame(self) -> Frame:
        """Read-only copy of the frame buffer for display sinks."""
        return tuple(tuple(column) for column in self.display)

    def tick_timers(self) -> None:
        """Decrement both timers toward zero (called at 60 Hz)."""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    # =========================================================================
    # Introspection
    # =========================================================================

    def snapshot(self) -> dict:
        """Create a snapshot of the current state for tracing.

        Returns:
            Dictionary with copies of all scalar state and the stack
        """
        return {
            "registers": self.dump_registers(),
            "pc": self.pc,
            "index": self.index,
            "stack": list(self.stack),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "halted": self.halted,
            "cycle_count": self.cycle_count,
            # memory and frame buffer excluded: too large to copy every cycle
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory is exactly 4096 bytes
            - 16 registers, each within 0..255
            - PC and index register within 16 bits
            - Stack entries within 16 bits and under the depth cap
            - Frame buffer is 64x32

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False

        if len(self.registers) != REGISTER_COUNT:
            return False
        for value in self.registers:
            if not isinstance(value, int) or not 0 <= value <= 0xFF:
                return False

        if not 0 <= self.pc <= 0xFFFF or not 0 <= self.index <= 0xFFFF:
            return False

        if any(not 0 <= address <= 0xFFFF for address in self.stack):
            return False
        if self.max_stack_depth is not None and len(self.stack) > self.max_stack_depth:
            return False

        if not 0 <= self.delay_timer <= 0xFF or not 0 <= self.sound_timer <= 0xFF:
            return False

        if len(self.display) != DISPLAY_WIDTH:
            return False
        if any(len(column) != DISPLAY_HEIGHT for column in self.display):
            return False

        return self.cycle_count >= 0

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{i:X}={v:02X}" for i, v in enumerate(self.registers))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.index:03X} {regs}"
            f"{' HALTED' if self.halted else ''}"
        )


def create_initial_state(
    program: bytes = b"",
    legacy_shift: bool = False,
    max_stack_depth: Optional[int] = None,
) -> MachineState:
    """Create a fresh machine state with fonts installed.

    Args:
        program: Optional program image to load at 0x200
        legacy_shift: Shift instructions read their source from Vy
        max_stack_depth: Optional call stack depth cap

    Returns:
        MachineState with zeroed registers and PC at 0x200

    Raises:
        ProgramTooLargeError: If the program does not fit in memory
    """
    state = MachineState(legacy_shift=legacy_shift, max_stack_depth=max_stack_depth)
    state.memory[FONT_START:FONT_START + len(FONT)] = FONT
    if program:
        state.load_program(program)
    return state
