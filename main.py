#!/usr/bin/env python3
"""CHIP-8 Command Line Interface.

Run CHIP-8 ROMs in the terminal.

Usage:
    python main.py --rom roms/ibm_logo.ch8
    python main.py --rom roms/5-quirks.ch8 --legacy-shift
    python main.py --inline "A20A 6003 6102 D014 1208 FFFFFFFF" --max-cycles 10
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import (
    CancellationToken,
    Chip8,
    EmulatorConfig,
    NullDisplay,
    TerminalDisplay,
    disassemble,
    install_sigint_handler,
    parse_hex_program,
)
from chip8_vm.errors import Chip8Error


def main():
    parser = argparse.ArgumentParser(
        description="CHIP-8 virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM in the terminal (Ctrl-C to stop)
    python main.py --rom roms/ibm_logo.ch8

    # Use the original interpreter's shift behaviour (8XY6/8XYE read VY)
    python main.py --rom roms/5-quirks.ch8 --legacy-shift

    # Run inline hex for 10 cycles, headless, with a trace
    python main.py --inline "A20A 6003 6102 D014 1208 FFFFFFFF" --max-cycles 10 --no-display --trace

    # Print a disassembly listing and exit
    python main.py --rom roms/ibm_logo.ch8 --disassemble
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to ROM file (.ch8)"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline program as hex bytes or words (comments with ;)"
    )
    parser.add_argument(
        "--legacy-shift",
        action="store_true",
        help="Shift instructions read VY instead of VX"
    )
    parser.add_argument(
        "--ips",
        type=float,
        default=700,
        help="Instructions per second, 0 for unthrottled. Default: 700"
    )
    parser.add_argument(
        "--max-stack-depth",
        type=int,
        default=None,
        help="Fail when the call stack exceeds this depth. Default: unbounded"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Stop after this many cycles. Default: run until Ctrl-C"
    )
    parser.add_argument(
        "--no-display",
        action="store_true",
        help="Do not render frames to the terminal"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print a disassembly listing and exit"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print the execution trace when stopped"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final registers only)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (logs go to stderr). Default: WARNING"
    )

    args = parser.parse_args()

    # Validate arguments
    if not args.rom and not args.inline:
        parser.error("Either --rom or --inline is required")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="[%(levelname)s]:  %(message)s",
        stream=sys.stderr,
    )

    # Load program bytes
    if args.rom:
        rom_path = Path(args.rom)
        if not rom_path.exists():
            print(f"Error: ROM file not found: {args.rom}", file=sys.stderr)
            return 1
        program = rom_path.read_bytes()
    else:
        try:
            program = parse_hex_program(args.inline)
        except ValueError as e:
            parser.error(str(e))

    if args.disassemble:
        for address, opcode, text in disassemble(program):
            print(f"{address:03X}: {opcode:<4}  {text}")
        return 0

    config = EmulatorConfig(
        instructions_per_second=args.ips,
        legacy_shift=args.legacy_shift,
        max_stack_depth=args.max_stack_depth,
        trace=args.trace,
    )
    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    token = CancellationToken()
    install_sigint_handler(token)
    display = NullDisplay() if args.no_display else TerminalDisplay()
    chip8 = Chip8(config=config, display=display, cancel_token=token)

    try:
        chip8.load_program(program)
    except Chip8Error as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    exit_code = 0
    try:
        chip8.run(max_cycles=args.max_cycles)
    except Chip8Error as e:
        print(f"Execution error: {e}", file=sys.stderr)
        exit_code = 1

    # Output
    if args.trace:
        chip8.print_trace()
    elif not args.quiet:
        summary = chip8.get_summary()
        print()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['index']:03X}")
        print(f"Registers: {summary['registers']}")
    else:
        # Quiet mode - just print non-zero registers
        regs = chip8.dump_registers()
        for reg in sorted(regs.keys()):
            if regs[reg] != 0:
                print(f"{reg}={regs[reg]}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
