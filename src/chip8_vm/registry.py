"""InstructionRegistry: execution rules for every CHIP-8 instruction.

This module implements the registry pattern for instruction execution:
each instruction type maps to exactly one rule that mutates the machine
state according to that instruction's contract.

Rules by group:
    Flow: ClearScreen, Return, Jump, Call
    Skips: SkipEqualX, SkipNotEqualX, SkipEqualXY, SkipNotEqualXY
    Registers: SetRegister, AddValueToRegister, Load, Or, And, Xor
    Arithmetic with VF: Add, Sub, SubN, ShiftRight, ShiftLeft
    Index/memory: SetIndexRegister, AddToIndex, BinaryCodedDecimal,
                  StoreRegisters, ReadIntoRegisters
    Display: Draw

The program counter has already been advanced past the instruction when
a rule runs. Rules that write VF read all of their operands first and
write VF last, so VF as destination ends up holding the flag.
"""

from typing import Callable, Dict, Optional, Set

from . import instructions as ins
from .errors import UnsupportedInstructionError
from .instructions import INSTRUCTION_TYPES, Instruction
from .state import DISPLAY_HEIGHT, DISPLAY_WIDTH, MachineState


Handler = Callable[[MachineState, Instruction], None]


class InstructionRegistry:
    """Frozen registry of instruction execution rules.

    The registry is checked for completeness and then frozen during
    initialization, so every Instruction variant has exactly one rule
    and no rule can be swapped at runtime.

    Attributes:
        _handlers: Dictionary mapping instruction types to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all execution rules."""
        self._handlers: Dict[type, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self._check_complete()
        self.freeze()

    def _register_all_handlers(self) -> None:
        """Register all instruction execution rules."""
        # Flow control
        self.register(ins.ClearScreen, self._op_clear_screen)
        self.register(ins.Return, self._op_return)
        self.register(ins.Jump, self._op_jump)
        self.register(ins.Call, self._op_call)

        # Conditional skips
        self.register(ins.SkipEqualX, self._op_skip_equal_x)
        self.register(ins.SkipNotEqualX, self._op_skip_not_equal_x)
        self.register(ins.SkipEqualXY, self._op_skip_equal_xy)
        self.register(ins.SkipNotEqualXY, self._op_skip_not_equal_xy)

        # Register loads and logic
        self.register(ins.SetRegister, self._op_set_register)
        self.register(ins.AddValueToRegister, self._op_add_value_to_register)
        self.register(ins.Load, self._op_load)
        self.register(ins.Or, self._op_or)
        self.register(ins.And, self._op_and)
        self.register(ins.Xor, self._op_xor)

        # Arithmetic writing VF
        self.register(ins.Add, self._op_add)
        self.register(ins.Sub, self._op_sub)
        self.register(ins.SubN, self._op_sub_n)
        self.register(ins.ShiftRight, self._op_shift_right)
        self.register(ins.ShiftLeft, self._op_shift_left)

        # Index register and memory
        self.register(ins.SetIndexRegister, self._op_set_index_register)
        self.register(ins.AddToIndex, self._op_add_to_index)
        self.register(ins.BinaryCodedDecimal, self._op_binary_coded_decimal)
        self.register(ins.StoreRegisters, self._op_store_registers)
        self.register(ins.ReadIntoRegisters, self._op_read_into_registers)

        # Display
        self.register(ins.Draw, self._op_draw)

    def register(self, instruction_type: type, handler: Handler) -> None:
        """Register an execution rule.

        Args:
            instruction_type: Instruction dataclass the rule applies to
            handler: Function that takes (state, instruction) and mutates state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If the type is already registered or not an instruction
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if instruction_type not in INSTRUCTION_TYPES:
            raise ValueError(f"Not an instruction type: {instruction_type!r}")
        if instruction_type in self._handlers:
            raise ValueError(f"Handler already registered: {instruction_type.__name__}")
        self._handlers[instruction_type] = handler

    def _check_complete(self) -> None:
        missing = [t.__name__ for t in INSTRUCTION_TYPES if t not in self._handlers]
        if missing:
            raise RuntimeError(f"No execution rule for: {', '.join(missing)}")

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_registered_types(self) -> Set[type]:
        """Get set of all instruction types with a rule."""
        return set(self._handlers.keys())

    def execute(self, state: MachineState, instruction: Instruction) -> None:
        """Execute one decoded instruction against the state.

        Args:
            state: Machine state (mutated in place)
            instruction: Decoded instruction

        Raises:
            UnsupportedInstructionError: If the instruction type has no rule
            Chip8Error: Whatever the rule raises (stack, memory bounds)
        """
        handler = self._handlers.get(type(instruction))
        if handler is None:
            raise UnsupportedInstructionError(f"No execution rule for {type(instruction).__name__}")
        handler(state, instruction)

    # =========================================================================
    # Flow Control
    # =========================================================================

    def _op_clear_screen(self, state: MachineState, instruction: ins.ClearScreen) -> None:
        """00E0 - Turn every pixel off."""
        state.clear_display()

    def _op_return(self, state: MachineState, instruction: ins.Return) -> None:
        """00EE - Return from subroutine.

        Raises:
            StackUnderflowError: If there is no return address
        """
        state.pc = state.pop_return()

    def _op_jump(self, state: MachineState, instruction: ins.Jump) -> None:
        state.pc = instruction.address

    def _op_call(self, state: MachineState, instruction: ins.Call) -> None:
        """2NNN - Push the (already advanced) PC and jump.

        Raises:
            StackOverflowError: If a depth cap is configured and reached
        """
        state.push_return(state.pc)
        state.pc = instruction.address

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _op_skip_equal_x(self, state: MachineState, instruction: ins.SkipEqualX) -> None:
        if state.registers[instruction.x] == instruction.value:
            state.pc += 2

    def _op_skip_not_equal_x(self, state: MachineState, instruction: ins.SkipNotEqualX) -> None:
        if state.registers[instruction.x] != instruction.value:
            state.pc += 2

    def _op_skip_equal_xy(self, state: MachineState, instruction: ins.SkipEqualXY) -> None:
        if state.registers[instruction.x] == state.registers[instruction.y]:
            state.pc += 2

    def _op_skip_not_equal_xy(self, state: MachineState, instruction: ins.SkipNotEqualXY) -> None:
        if state.registers[instruction.x] != state.registers[instruction.y]:
            state.pc += 2

    # =========================================================================
    # Register Loads and Logic
    # =========================================================================

    def _op_set_register(self, state: MachineState, instruction: ins.SetRegister) -> None:
        state.registers[instruction.x] = instruction.value

    def _op_add_value_to_register(self, state: MachineState, instruction: ins.AddValueToRegister) -> None:
        """7XNN - Add immediate, wrapping at 256. VF is untouched."""
        state.registers[instruction.x] = (state.registers[instruction.x] + instruction.value) & 0xFF

    def _op_load(self, state: MachineState, instruction: ins.Load) -> None:
        state.registers[instruction.x] = state.registers[instruction.y]

    def _op_or(self, state: MachineState, instruction: ins.Or) -> None:
        state.registers[instruction.x] |= state.registers[instruction.y]

    def _op_and(self, state: MachineState, instruction: ins.And) -> None:
        state.registers[instruction.x] &= state.registers[instruction.y]

    def _op_xor(self, state: MachineState, instruction: ins.Xor) -> None:
        state.registers[instruction.x] ^= state.registers[instruction.y]

    # =========================================================================
    # Arithmetic (writes VF)
    # =========================================================================

    def _op_add(self, state: MachineState, instruction: ins.Add) -> None:
        """8XY4 - Vx += Vy, VF = 1 on carry."""
        total = state.registers[instruction.x] + state.registers[instruction.y]
        state.registers[instruction.x] = total & 0xFF
        state.set_flag(1 if total > 0xFF else 0)

    def _op_sub(self, state: MachineState, instruction: ins.Sub) -> None:
        """8XY5 - Vx -= Vy, VF = 1 when there is no borrow (Vx >= Vy)."""
        vx = state.registers[instruction.x]
        vy = state.registers[instruction.y]
        state.registers[instruction.x] = (vx - vy) & 0xFF
        state.set_flag(1 if vx >= vy else 0)

    def _op_sub_n(self, state: MachineState, instruction: ins.SubN) -> None:
        """8XY7 - Vx = Vy - Vx, VF = 1 when there is no borrow (Vy >= Vx)."""
        vx = state.registers[instruction.x]
        vy = state.registers[instruction.y]
        state.registers[instruction.x] = (vy - vx) & 0xFF
        state.set_flag(1 if vy >= vx else 0)

    def _op_shift_right(self, state: MachineState, instruction: ins.ShiftRight) -> None:
        """8XY6 - Shift right by one; the shifted-out bit goes to VF.

        The source register is Vy on legacy hardware and Vx otherwise.
        """
        source = instruction.y if state.legacy_shift else instruction.x
        value = state.registers[source]
        state.registers[instruction.x] = value >> 1
        state.set_flag(value & 0x1)

    def _op_shift_left(self, state: MachineState, instruction: ins.ShiftLeft) -> None:
        """8XYE - Shift left by one; the shifted-out bit goes to VF.

        The source register is Vy on legacy hardware and Vx otherwise.
        """
        source = instruction.y if state.legacy_shift else instruction.x
        value = state.registers[source]
        state.registers[instruction.x] = (value << 1) & 0xFF
        state.set_flag((value & 0x80) >> 7)

    # =========================================================================
    # Index Register and Memory
    # =========================================================================

    def _op_set_index_register(self, state: MachineState, instruction: ins.SetIndexRegister) -> None:
        state.index = instruction.address

    def _op_add_to_index(self, state: MachineState, instruction: ins.AddToIndex) -> None:
        """FX1E - I += Vx, wrapping at 16 bits. VF is untouched."""
        state.index = (state.index + state.registers[instruction.x]) & 0xFFFF

    def _op_binary_coded_decimal(self, state: MachineState, instruction: ins.BinaryCodedDecimal) -> None:
        """FX33 - Store hundreds, tens and units of Vx at I, I+1, I+2."""
        value = state.registers[instruction.x]
        state.write_memory(state.index, bytes([value // 100, value // 10 % 10, value % 10]))

    def _op_store_registers(self, state: MachineState, instruction: ins.StoreRegisters) -> None:
        """FX55 - Copy V0..Vx inclusive to memory starting at I. I is unchanged."""
        state.write_memory(state.index, bytes(state.registers[:instruction.x + 1]))

    def _op_read_into_registers(self, state: MachineState, instruction: ins.ReadIntoRegisters) -> None:
        """FX65 - Load V0..Vx inclusive from memory starting at I. I is unchanged."""
        data = state.read_memory(state.index, instruction.x + 1)
        state.registers[:instruction.x + 1] = list(data)

    # =========================================================================
    # Display
    # =========================================================================

    def _op_draw(self, state: MachineState, instruction: ins.Draw) -> None:
        """DXYN - XOR an 8xN sprite from memory at I onto the frame buffer.

        The origin wraps around the screen once; sprite bits that would
        fall past the right or bottom edge are clipped. VF is set to 1 if
        any lit pixel is turned off, 0 otherwise. The changed flag is set
        even when no pixel flips.

        Raises:
            MemoryAccessError: If the sprite rows extend past memory
        """
        x_start = state.registers[instruction.x] % DISPLAY_WIDTH
        y_start = state.registers[instruction.y] % DISPLAY_HEIGHT
        sprite = state.read_memory(state.index, instruction.height)

        collision = 0
        for row, byte in enumerate(sprite):
            y_pos = y_start + row
            if y_pos >= DISPLAY_HEIGHT:
                break
            for bit in range(8):
                x_pos = x_start + bit
                if x_pos >= DISPLAY_WIDTH:
                    break
                if not (byte >> (7 - bit)) & 0x1:
                    continue
                column = state.display[x_pos]
                if column[y_pos]:
                    collision = 1
                column[y_pos] = not column[y_pos]

        state.set_flag(collision)
        state.display_changed = True


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry instance.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
