"""Instruction decoder for the CHIP-8 virtual machine.

Turns a 2-byte instruction word into a tagged Instruction value:

    memory[PC:PC+2] -> decode() -> Instruction -> registry -> execute

The high nibble of the first byte selects the opcode family; the
remaining nibbles carry register indices, immediates and addresses.
Decoding is pure and deterministic. Unmapped opcodes and the
hardware-dependent 0NNN machine-code calls raise
UnsupportedInstructionError.

Helpers for programs as a whole live here as well: ``disassemble`` for
listings and traces, and ``parse_hex_program`` for inline programs typed
as hex text.
"""

import re
from typing import List, Tuple, Union

from .errors import DecodeError, UnsupportedInstructionError
from .instructions import (
    Add, AddToIndex, AddValueToRegister, And, BinaryCodedDecimal, Call,
    ClearScreen, Draw, Instruction, Jump, Load, Or, ReadIntoRegisters, Return,
    SetIndexRegister, SetRegister, ShiftLeft, ShiftRight, SkipEqualX,
    SkipEqualXY, SkipNotEqualX, SkipNotEqualXY, StoreRegisters, Sub, SubN, Xor,
)
from .state import PROGRAM_START


# 8XYN arithmetic/logic group, keyed by the low nibble
ALU_OPERATIONS = {
    0x0: Load,
    0x1: Or,
    0x2: And,
    0x3: Xor,
    0x4: Add,
    0x5: Sub,
    0x6: ShiftRight,
    0x7: SubN,
    0xE: ShiftLeft,
}

# FXNN group, keyed by the second byte
MISC_OPERATIONS = {
    0x1E: AddToIndex,
    0x33: BinaryCodedDecimal,
    0x55: StoreRegisters,
    0x65: ReadIntoRegisters,
}

Word = Union[bytes, bytearray, memoryview, int]


def _to_bytes(word: Word) -> bytes:
    if isinstance(word, int) and not isinstance(word, bool):
        if not 0 <= word <= 0xFFFF:
            raise DecodeError(f"Instruction word out of range: {word!r}")
        return word.to_bytes(2, "big")
    if isinstance(word, (bytes, bytearray, memoryview)):
        data = bytes(word)
        if len(data) != 2:
            raise DecodeError(f"Instruction must be 2 bytes, got {len(data)}", data)
        return data
    raise DecodeError(f"Cannot decode instruction of type {type(word).__name__}")


def decode(word: Word) -> Instruction:
    """Decode one instruction word.

    Args:
        word: Two raw bytes (big-endian) or an int in 0..0xFFFF

    Returns:
        The decoded Instruction

    Raises:
        UnsupportedInstructionError: For 0NNN calls and unmapped opcodes
        DecodeError: If the word is not 2 bytes
    """
    data = _to_bytes(word)
    high, low = data[0], data[1]
    family = high >> 4
    x = high & 0xF
    y = (low >> 4) & 0xF

    if family == 0x0:
        if data == b"\x00\xe0":
            return ClearScreen()
        if data == b"\x00\xee":
            return Return()
        raise UnsupportedInstructionError(
            f"0NNN machine-code call {data.hex().upper()} is hardware dependent and not supported",
            data,
        )

    if family in (0x1, 0x2, 0xA):
        address = (x << 8) | low
        if family == 0x1:
            return Jump(address)
        if family == 0x2:
            return Call(address)
        return SetIndexRegister(address)

    if family == 0x3:
        return SkipEqualX(x, low)
    if family == 0x4:
        return SkipNotEqualX(x, low)
    if family == 0x6:
        return SetRegister(x, low)
    if family == 0x7:
        return AddValueToRegister(x, low)

    # low nibble of 5XY0 / 9XY0 is not checked
    if family == 0x5:
        return SkipEqualXY(x, y)
    if family == 0x9:
        return SkipNotEqualXY(x, y)

    if family == 0x8:
        operation = ALU_OPERATIONS.get(low & 0xF)
        if operation is not None:
            return operation(x, y)

    if family == 0xD:
        return Draw(x, y, low & 0xF)

    if family == 0xF:
        operation = MISC_OPERATIONS.get(low)
        if operation is not None:
            return operation(x)

    raise UnsupportedInstructionError(f"Instruction {data.hex().upper()} not found", data)


def disassemble(program: bytes, start: int = PROGRAM_START) -> List[Tuple[int, str, str]]:
    """Produce a listing of a program image.

    Undecodable words are shown as ``DATA 0xNNNN`` (sprite data and
    padding commonly sit between instructions), as is a trailing odd
    byte.

    Args:
        program: Raw program bytes
        start: Address of the first byte

    Returns:
        List of (address, opcode hex, mnemonic) tuples
    """
    listing = []
    for offset in range(0, len(program), 2):
        chunk = bytes(program[offset:offset + 2])
        address = start + offset
        if len(chunk) < 2:
            listing.append((address, chunk.hex().upper(), f"DATA 0x{chunk.hex().upper()}"))
            continue
        try:
            text = decode(chunk).mnemonic()
        except DecodeError:
            text = f"DATA 0x{chunk.hex().upper()}"
        listing.append((address, chunk.hex().upper(), text))
    return listing


def parse_hex_program(source: str) -> bytes:
    """Parse a program written as hex text.

    Handles:
        - Comments (starting with ; or #)
        - Tokens of any even number of hex digits, read as big-endian bytes
        - Optional 0x prefixes, whitespace and commas as separators

    Args:
        source: Program text, e.g. ``"A2 0A  6003 ; load"``

    Returns:
        Program bytes

    Raises:
        ValueError: If a token is not 2 or 4 hex digits
    """
    program = bytearray()

    for line in source.split("\n"):
        # Remove comments
        line = re.sub(r'[;#].*$', '', line).strip()

        if not line:
            continue

        for token in re.split(r'[\s,]+', line):
            if not token:
                continue
            digits = token[2:] if token.lower().startswith("0x") else token
            if not digits or len(digits) % 2 or not re.fullmatch(r'[0-9A-Fa-f]+', digits):
                raise ValueError(f"Invalid hex token: {token}")
            program.extend(bytes.fromhex(digits))

    return bytes(program)
