"""Exception hierarchy for the CHIP-8 virtual machine.

Every fatal condition the engine can hit derives from Chip8Error, so
callers that only want to stop the machine can catch a single type.
Register arithmetic overflow is not an error: it wraps and is reported
through VF.
"""

from typing import Optional


class Chip8Error(Exception):
    """Base class for all virtual machine errors."""


class DecodeError(Chip8Error):
    """Instruction word could not be decoded."""

    def __init__(self, message: str, opcode: Optional[bytes] = None):
        super().__init__(message)
        self.opcode = opcode


class UnsupportedInstructionError(DecodeError):
    """Opcode is reserved, unmapped, or a 0NNN machine-code call."""


class StackUnderflowError(Chip8Error):
    """Return executed with an empty call stack."""


class StackOverflowError(Chip8Error):
    """Call executed with the call stack at its configured depth cap."""


class MemoryAccessError(Chip8Error):
    """Address falls outside the 4 KiB address space."""

    def __init__(self, address: int, message: Optional[str] = None):
        super().__init__(message or f"Memory access out of bounds: 0x{address:04X}")
        self.address = address


class ProgramTooLargeError(Chip8Error):
    """Program image does not fit between 0x200 and the end of memory."""


class InvalidRegisterError(Chip8Error, ValueError):
    """Register index outside V0..VF."""


class RenderError(Chip8Error):
    """Display sink failed to render a frame."""


class ExecutionError(Chip8Error):
    """Fatal error raised while running the instruction at ``address``.

    Attributes:
        address: Address the failing instruction was fetched from
        opcode: The two raw instruction bytes (may be shorter if the
            fetch itself failed)
        cause: The underlying Chip8Error
    """

    def __init__(self, address: int, opcode: bytes, cause: Chip8Error):
        self.address = address
        self.opcode = bytes(opcode)
        self.cause = cause
        opcode_text = self.opcode.hex().upper() or "----"
        super().__init__(f"Fatal error at 0x{address:03X} (opcode {opcode_text}): {cause}")
