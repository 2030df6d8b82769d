"""chip8_vm: CHIP-8 virtual machine core.

This package executes programs written for the classic CHIP-8 virtual
8-bit machine: 16 registers, 4 KiB of memory, a call stack, two timers
and a 64x32 monochrome frame buffer drawn with XOR sprites.

Architecture:
    MEMORY -> FETCH -> DECODE -> INSTRUCTION -> REGISTRY -> STATE -> DISPLAY
               |         |           |             |          |
            [PC += 2] [pure fn] [tagged union] [frozen    [mutable,
                                                rules]     loop-owned]

Modules:
    state: MachineState dataclass, Register index type, font table
    instructions: Frozen dataclasses, one per instruction variant
    decoder: decode(), disassemble(), parse_hex_program()
    registry: Execution rules for every instruction (InstructionRegistry)
    cpu: Chip8 orchestrator with the paced execution loop
    display: Display sinks (terminal, null)
    cancellation: Cooperative shutdown token and SIGINT wiring
    config: EmulatorConfig
    errors: Exception hierarchy
"""

__version__ = "0.1.0"

from .cancellation import CancellationToken, install_sigint_handler
from .config import EmulatorConfig
from .cpu import Chip8, ExecutionTraceEntry
from .decoder import decode, disassemble, parse_hex_program
from .display import NullDisplay, TerminalDisplay
from .errors import Chip8Error, ExecutionError
from .registry import InstructionRegistry, get_registry
from .state import MachineState, Register, create_initial_state

__all__ = [
    "CancellationToken",
    "Chip8",
    "Chip8Error",
    "EmulatorConfig",
    "ExecutionError",
    "ExecutionTraceEntry",
    "InstructionRegistry",
    "MachineState",
    "NullDisplay",
    "Register",
    "TerminalDisplay",
    "create_initial_state",
    "decode",
    "disassemble",
    "get_registry",
    "install_sigint_handler",
    "parse_hex_program",
]
