"""Tests for MachineState dataclass."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.errors import (
    InvalidRegisterError,
    MemoryAccessError,
    ProgramTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from chip8_vm.state import (
    FONT,
    FONT_START,
    MAX_PROGRAM_SIZE,
    MEMORY_SIZE,
    PROGRAM_START,
    MachineState,
    Register,
    create_initial_state,
)


class TestMachineStateCreation:
    """Test MachineState initialization and defaults."""

    def test_default_state(self):
        """Default state has zeroed registers, PC at 0x200."""
        state = MachineState()
        assert state.pc == 0x200
        assert state.index == 0
        assert state.stack == []
        assert state.registers == [0] * 16
        assert state.delay_timer == 0
        assert state.sound_timer == 0
        assert state.display_changed is False
        assert state.halted is False
        assert len(state.memory) == MEMORY_SIZE

    def test_create_initial_state_installs_font(self):
        """Font glyphs are installed at 0x050."""
        state = create_initial_state()
        assert bytes(state.memory[FONT_START:FONT_START + 80]) == FONT
        # "0" glyph
        assert list(state.memory[0x50:0x55]) == [0xF0, 0x90, 0x90, 0x90, 0xF0]
        # "F" glyph
        assert list(state.memory[0x9B:0xA0]) == [0xF0, 0x80, 0xF0, 0x80, 0x80]

    def test_create_initial_state_loads_program(self):
        state = create_initial_state(bytes([0x00, 0xE0, 0x12, 0x00]))
        assert list(state.memory[PROGRAM_START:PROGRAM_START + 4]) == [0x00, 0xE0, 0x12, 0x00]
        assert state.pc == PROGRAM_START

    def test_quirk_and_stack_cap_are_stored(self):
        state = create_initial_state(legacy_shift=True, max_stack_depth=12)
        assert state.legacy_shift is True
        assert state.max_stack_depth == 12

    def test_display_is_64_by_32(self):
        state = create_initial_state()
        assert len(state.display) == 64
        assert all(len(column) == 32 for column in state.display)
        assert not any(any(column) for column in state.display)


class TestProgramLoading:
    """Test program image loading bounds."""

    def test_max_size_program_fits(self):
        state = create_initial_state()
        state.load_program(bytes([0xAB]) * MAX_PROGRAM_SIZE)
        assert state.memory[MEMORY_SIZE - 1] == 0xAB

    def test_oversized_program_fails(self):
        state = create_initial_state()
        with pytest.raises(ProgramTooLargeError):
            state.load_program(bytes(MAX_PROGRAM_SIZE + 1))


class TestRegister:
    """Test the validated register index type."""

    def test_valid_indices(self):
        for i in range(16):
            assert Register(i) == i

    def test_name(self):
        assert Register(0xA).name == "VA"
        assert repr(Register(15)) == "VF"

    @pytest.mark.parametrize("value", [-1, 16, 255])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidRegisterError):
            Register(value)

    def test_invalid_register_is_value_error(self):
        with pytest.raises(ValueError):
            Register(16)

    @pytest.mark.parametrize("value", ["V1", 1.0, None, True])
    def test_non_int_rejected(self, value):
        with pytest.raises(InvalidRegisterError):
            Register(value)


class TestRegisterAccess:
    """Test register helpers."""

    def test_set_register_wraps(self):
        state = MachineState()
        state.set_register(3, 0x1FF)
        assert state.get_register(3) == 0xFF

    def test_get_register_out_of_range(self):
        state = MachineState()
        with pytest.raises(InvalidRegisterError):
            state.get_register(16)

    def test_dump_registers(self):
        state = MachineState()
        state.set_register(0xA, 7)
        regs = state.dump_registers()
        assert list(regs.keys()) == [f"V{i:X}" for i in range(16)]
        assert regs["VA"] == 7


class TestMemoryBounds:
    """Test fail-fast memory bounds."""

    def test_read_last_byte(self):
        state = MachineState()
        state.memory[0xFFF] = 0x42
        assert state.read_memory(0xFFF) == b"\x42"

    def test_read_past_end(self):
        state = MachineState()
        with pytest.raises(MemoryAccessError) as exc_info:
            state.read_memory(0xFFF, 2)
        assert exc_info.value.address == 0x1000

    def test_write_past_end_leaves_memory_untouched(self):
        state = MachineState()
        with pytest.raises(MemoryAccessError):
            state.write_memory(0xFFE, b"\x01\x02\x03")
        assert state.memory[0xFFE] == 0
        assert state.memory[0xFFF] == 0

    def test_address_beyond_memory(self):
        state = MachineState()
        with pytest.raises(MemoryAccessError):
            state.read_memory(0x1000)


class TestStack:
    """Test call stack helpers."""

    def test_push_pop_lifo(self):
        state = MachineState()
        state.push_return(0x202)
        state.push_return(0x304)
        assert state.pop_return() == 0x304
        assert state.pop_return() == 0x202

    def test_pop_empty(self):
        state = MachineState()
        with pytest.raises(StackUnderflowError):
            state.pop_return()

    def test_unbounded_by_default(self):
        state = MachineState()
        for i in range(100):
            state.push_return(0x200 + i)
        assert len(state.stack) == 100

    def test_depth_cap(self):
        state = MachineState(max_stack_depth=2)
        state.push_return(0x200)
        state.push_return(0x202)
        with pytest.raises(StackOverflowError):
            state.push_return(0x204)
        assert state.stack == [0x200, 0x202]


class TestTimersAndDisplay:
    """Test timers and frame buffer helpers."""

    def test_tick_timers_counts_down_to_zero(self):
        state = MachineState(delay_timer=2, sound_timer=1)
        state.tick_timers()
        assert (state.delay_timer, state.sound_timer) == (1, 0)
        state.tick_timers()
        state.tick_timers()
        assert (state.delay_timer, state.sound_timer) == (0, 0)

    def test_frame_is_immutable_copy(self):
        state = MachineState()
        state.display[5][6] = True
        frame = state.frame()
        assert frame[5][6] is True
        state.display[5][6] = False
        assert frame[5][6] is True
        assert isinstance(frame, tuple) and isinstance(frame[0], tuple)

    def test_clear_display(self):
        state = MachineState()
        state.display[0][0] = True
        state.display[63][31] = True
        state.clear_display()
        assert not any(any(column) for column in state.display)
        assert state.display_changed is True


class TestValidationAndSnapshot:
    """Test state validation and snapshots."""

    def test_valid_state(self):
        assert create_initial_state().validate() is True

    def test_invalid_register_value(self):
        state = MachineState()
        state.registers[0] = 256
        assert state.validate() is False

    def test_stack_over_cap_invalid(self):
        state = MachineState(max_stack_depth=1)
        state.stack = [0x200, 0x202]
        assert state.validate() is False

    def test_snapshot_is_a_copy(self):
        state = MachineState()
        state.push_return(0x202)
        snap = state.snapshot()
        state.set_register(0, 9)
        state.push_return(0x204)
        assert snap["registers"]["V0"] == 0
        assert snap["stack"] == [0x202]
        assert snap["pc"] == 0x200

    def test_str(self):
        state = MachineState()
        text = str(state)
        assert "PC=200" in text
        assert "VF=00" in text
