"""CHIP-8 Interactive Demo.

A Gradio web interface for running CHIP-8 programs and inspecting the
result.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Write or load programs as hex
    - Toggle the legacy shift quirk
    - See the frame buffer, registers and a disassembly listing
    - Step-by-step execution trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import Chip8, EmulatorConfig, disassemble, parse_hex_program
from chip8_vm.display import render_frame_text
from chip8_vm.errors import Chip8Error


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Filled Rectangle": """A20A        ; I = sprite at 0x20A
6003        ; V0 = 3 (x)
6102        ; V1 = 2 (y)
D014        ; draw 8x4 sprite at (V0, V1)
1208        ; loop forever
FF FF FF FF ; sprite rows""",

    "Hex Digits 0-7": """A050        ; I = glyph for 0
6000        ; V0 = 0 (x)
6100        ; V1 = 0 (y)
6205        ; V2 = 5 (bytes per glyph)
D015        ; draw glyph
F21E        ; I += 5 (next glyph)
7005        ; x += 5
3028        ; skip when x == 40
1208        ; next digit
1212        ; loop forever""",

    "Score 235 (BCD)": """60EB        ; V0 = 235
A300        ; I = scratch
F033        ; BCD of V0 -> [I], [I+1], [I+2]
F265        ; V0..V2 = digits
6305        ; V3 = 5 (x)
6405        ; V4 = 5 (y)
8600 866E 866E 8604  ; V6 = V0 * 5
A050 F61E D345 7305  ; draw hundreds, x += 5
8610 866E 866E 8614  ; V6 = V1 * 5
A050 F61E D345 7305  ; draw tens, x += 5
8620 866E 866E 8624  ; V6 = V2 * 5
A050 F61E D345       ; draw units
123A        ; loop forever""",

    "Subroutine": """2206        ; call 0x206
1202        ; loop forever
0000        ; padding
6A2A        ; VA = 42
00EE        ; return""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(program: str, legacy_shift: bool, max_cycles: int) -> tuple:
    """Execute a hex program and return results.

    Args:
        program: Program as hex text
        legacy_shift: Use the legacy shift quirk
        max_cycles: Number of cycles to execute

    Returns:
        Tuple of (summary_text, frame_text, trace_text, registers_text, listing_text)
    """
    if not program.strip():
        return "Error: No program provided", "", "", "", ""

    try:
        image = parse_hex_program(program)
    except ValueError as e:
        return f"Error: {e}", "", "", "", ""

    config = EmulatorConfig(
        instructions_per_second=0,
        legacy_shift=legacy_shift,
        trace=True,
        trace_limit=100,
    )
    chip8 = Chip8(config=config)

    try:
        chip8.load_program(image)
    except Chip8Error as e:
        return f"Error: {e}", "", "", "", ""

    error_msg = None
    try:
        chip8.run(max_cycles=int(max_cycles))
    except Chip8Error as e:
        error_msg = str(e)

    # Format summary
    summary = chip8.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"PC: 0x{summary['pc']:03X}",
        f"I: 0x{summary['index']:03X}",
        f"Stack depth: {summary['stack_depth']}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    summary_text = "\n".join(summary_lines)

    frame_text = render_frame_text(chip8.state.frame(), on="█", off="·")

    # Format trace
    trace = chip8.get_trace()
    trace_lines = [
        "EXECUTION TRACE (most recent 100)",
        "=" * 60,
    ]
    for entry in trace:
        trace_lines.append(f"\n--- Cycle {entry.cycle} (0x{entry.address:03X}) {entry.opcode} ---")
        trace_lines.append(f"Instruction: {entry.instruction}")
        if entry.error:
            trace_lines.append(f"Error:       {entry.error}")

        # Show register changes
        pre_regs = entry.pre_state['registers']
        post_regs = entry.post_state['registers']
        changes = []
        for reg in sorted(pre_regs.keys()):
            if pre_regs[reg] != post_regs[reg]:
                changes.append(f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}")
        if changes:
            trace_lines.append(f"Changes:     {', '.join(changes)}")
    trace_text = "\n".join(trace_lines)

    # Format registers
    regs = chip8.dump_registers()
    reg_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for reg, value in regs.items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: {value:>3} (0x{value:02X}){marker}")
    registers_text = "\n".join(reg_lines)

    listing_text = "\n".join(
        f"{address:03X}: {opcode:<4}  {text}" for address, opcode, text in disassemble(image)
    )

    return summary_text, frame_text, trace_text, registers_text, listing_text


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHIP-8 Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHIP-8 Virtual Machine

        Runs CHIP-8 programs for a fixed number of cycles and shows the
        resulting 64x32 frame buffer, registers and execution trace.

        **Pipeline**: `fetch -> decode -> instruction -> registry -> state -> display`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program (hex)")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Filled Rectangle",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Filled Rectangle"],
                    label="Program",
                    lines=15,
                    placeholder="Enter hex bytes or words, ; for comments..."
                )

                gr.Markdown("### Settings")

                with gr.Row():
                    legacy_shift = gr.Checkbox(
                        value=False,
                        label="Legacy shift (8XY6/8XYE read VY)"
                    )
                    max_cycles = gr.Slider(
                        minimum=1,
                        maximum=10000,
                        value=200,
                        step=1,
                        label="Cycles"
                    )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                frame_output = gr.Textbox(
                    label="Frame Buffer",
                    lines=32,
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=18,
                        interactive=False
                    )

        with gr.Row():
            listing_output = gr.Textbox(
                label="Disassembly",
                lines=20,
                interactive=False
            )
            trace_output = gr.Textbox(
                label="Execution Trace",
                lines=20,
                interactive=False
            )

        # ISA Reference
        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Opcode | Mnemonic | Effect |
            |--------|----------|--------|
            | `00E0` | `CLS` | Clear the display |
            | `00EE` | `RET` | Return from subroutine |
            | `1NNN` | `JP NNN` | Jump |
            | `2NNN` | `CALL NNN` | Call subroutine |
            | `3XNN` / `4XNN` | `SE` / `SNE VX, NN` | Skip if VX ==/!= NN |
            | `5XY0` / `9XY0` | `SE` / `SNE VX, VY` | Skip if VX ==/!= VY |
            | `6XNN` / `7XNN` | `LD` / `ADD VX, NN` | Set / add immediate |
            | `8XY0`..`8XYE` | `LD OR AND XOR ADD SUB SHR SUBN SHL` | Register ALU (VF = flag) |
            | `ANNN` | `LD I, NNN` | Set index register |
            | `DXYN` | `DRW VX, VY, N` | XOR sprite, VF = collision |
            | `FX1E` | `ADD I, VX` | Add to index register |
            | `FX33` | `BCD VX` | Decimal digits of VX at I |
            | `FX55` / `FX65` | `LD [I], VX` / `LD VX, [I]` | Store / load V0..VX |

            `0NNN` machine-code calls are not supported.
            """)

        # Event handlers
        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, legacy_shift, max_cycles],
            outputs=[summary_output, frame_output, trace_output, registers_output, listing_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
