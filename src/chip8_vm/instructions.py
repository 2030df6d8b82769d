"""Decoded CHIP-8 instructions.

Each instruction variant is a small frozen dataclass. Together they form
a closed tagged union (``Instruction``); the registry maps every member of
``INSTRUCTION_TYPES`` to exactly one execution rule.

Register operands are coerced to the validated ``Register`` type, so an
out-of-range register reference fails at construction time.
"""

from dataclasses import dataclass, fields
from typing import Tuple, Union

from .state import Register


class BaseInstruction:
    """Shared behaviour for instruction dataclasses."""

    MNEMONIC = ""

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ("x", "y"):
                object.__setattr__(self, f.name, Register(value))
            elif f.name == "address":
                _check_range(f.name, value, 0xFFF)
            elif f.name == "value":
                _check_range(f.name, value, 0xFF)
            elif f.name == "height":
                _check_range(f.name, value, 0xF)

    def operands(self) -> str:
        return ""

    def mnemonic(self) -> str:
        """Assembly-style rendering, e.g. ``DRW V3, V2, 8``."""
        operands = self.operands()
        return f"{self.MNEMONIC} {operands}" if operands else self.MNEMONIC


def _check_range(name: str, value: int, maximum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= maximum:
        raise ValueError(f"{name} must be an int in 0..0x{maximum:X}, got {value!r}")


class _AddressOperand(BaseInstruction):
    def operands(self) -> str:
        return f"0x{self.address:03X}"


class _RegisterValueOperands(BaseInstruction):
    def operands(self) -> str:
        return f"{self.x.name}, 0x{self.value:02X}"


class _RegisterPairOperands(BaseInstruction):
    def operands(self) -> str:
        return f"{self.x.name}, {self.y.name}"


class _RegisterOperand(BaseInstruction):
    def operands(self) -> str:
        return self.x.name


# =============================================================================
# Display and flow control
# =============================================================================

@dataclass(frozen=True)
class ClearScreen(BaseInstruction):
    """00E0"""
    MNEMONIC = "CLS"


@dataclass(frozen=True)
class Return(BaseInstruction):
    """00EE"""
    MNEMONIC = "RET"


@dataclass(frozen=True)
class Jump(_AddressOperand):
    """1NNN"""
    address: int
    MNEMONIC = "JP"


@dataclass(frozen=True)
class Call(_AddressOperand):
    """2NNN"""
    address: int
    MNEMONIC = "CALL"


# =============================================================================
# Conditional skips
# =============================================================================

@dataclass(frozen=True)
class SkipEqualX(_RegisterValueOperands):
    """3XNN"""
    x: Register
    value: int
    MNEMONIC = "SE"


@dataclass(frozen=True)
class SkipNotEqualX(_RegisterValueOperands):
    """4XNN"""
    x: Register
    value: int
    MNEMONIC = "SNE"


@dataclass(frozen=True)
class SkipEqualXY(_RegisterPairOperands):
    """5XY0"""
    x: Register
    y: Register
    MNEMONIC = "SE"


@dataclass(frozen=True)
class SkipNotEqualXY(_RegisterPairOperands):
    """9XY0"""
    x: Register
    y: Register
    MNEMONIC = "SNE"


# =============================================================================
# Register loads and arithmetic
# =============================================================================

@dataclass(frozen=True)
class SetRegister(_RegisterValueOperands):
    """6XNN"""
    x: Register
    value: int
    MNEMONIC = "LD"


@dataclass(frozen=True)
class AddValueToRegister(_RegisterValueOperands):
    """7XNN"""
    x: Register
    value: int
    MNEMONIC = "ADD"


@dataclass(frozen=True)
class Load(_RegisterPairOperands):
    """8XY0"""
    x: Register
    y: Register
    MNEMONIC = "LD"


@dataclass(frozen=True)
class Or(_RegisterPairOperands):
    """8XY1"""
    x: Register
    y: Register
    MNEMONIC = "OR"


@dataclass(frozen=True)
class And(_RegisterPairOperands):
    """8XY2"""
    x: Register
    y: Register
    MNEMONIC = "AND"


@dataclass(frozen=True)
class Xor(_RegisterPairOperands):
    """8XY3"""
    x: Register
    y: Register
    MNEMONIC = "XOR"


@dataclass(frozen=True)
class Add(_RegisterPairOperands):
    """8XY4"""
    x: Register
    y: Register
    MNEMONIC = "ADD"


@dataclass(frozen=True)
class Sub(_RegisterPairOperands):
    """8XY5"""
    x: Register
    y: Register
    MNEMONIC = "SUB"


@dataclass(frozen=True)
class ShiftRight(_RegisterPairOperands):
    """8XY6"""
    x: Register
    y: Register
    MNEMONIC = "SHR"


@dataclass(frozen=True)
class SubN(_RegisterPairOperands):
    """8XY7"""
    x: Register
    y: Register
    MNEMONIC = "SUBN"


@dataclass(frozen=True)
class ShiftLeft(_RegisterPairOperands):
    """8XYE"""
    x: Register
    y: Register
    MNEMONIC = "SHL"


# =============================================================================
# Index register, drawing and memory
# =============================================================================

@dataclass(frozen=True)
class SetIndexRegister(BaseInstruction):
    """ANNN"""
    address: int
    MNEMONIC = "LD"

    def operands(self) -> str:
        return f"I, 0x{self.address:03X}"


@dataclass(frozen=True)
class AddToIndex(BaseInstruction):
    """FX1E"""
    x: Register
    MNEMONIC = "ADD"

    def operands(self) -> str:
        return f"I, {self.x.name}"


@dataclass(frozen=True)
class Draw(BaseInstruction):
    """DXYN"""
    x: Register
    y: Register
    height: int
    MNEMONIC = "DRW"

    def operands(self) -> str:
        return f"{self.x.name}, {self.y.name}, {self.height}"


@dataclass(frozen=True)
class BinaryCodedDecimal(_RegisterOperand):
    """FX33"""
    x: Register
    MNEMONIC = "BCD"


@dataclass(frozen=True)
class StoreRegisters(BaseInstruction):
    """FX55"""
    x: Register
    MNEMONIC = "LD"

    def operands(self) -> str:
        return f"[I], {self.x.name}"


@dataclass(frozen=True)
class ReadIntoRegisters(BaseInstruction):
    """FX65"""
    x: Register
    MNEMONIC = "LD"

    def operands(self) -> str:
        return f"{self.x.name}, [I]"


Instruction = Union[
    ClearScreen, Return, Jump, Call,
    SkipEqualX, SkipNotEqualX, SkipEqualXY, SkipNotEqualXY,
    SetRegister, AddValueToRegister,
    Load, Or, And, Xor, Add, Sub, ShiftRight, SubN, ShiftLeft,
    SetIndexRegister, AddToIndex, Draw,
    BinaryCodedDecimal, StoreRegisters, ReadIntoRegisters,
]

INSTRUCTION_TYPES: Tuple[type, ...] = Instruction.__args__
