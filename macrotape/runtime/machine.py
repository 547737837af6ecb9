"""Byte-tape machine that executes compiled macrotape programs."""

from __future__ import annotations

from collections import deque
import sys
from typing import Optional, TextIO, Union

from ..constants import DEFAULT_EOF_POLICY, DUMP_WIDTH, EOF_POLICIES
from .core import CompiledProgram, Instruction, Op, RuntimeFault


def _hex(value: int) -> str:
    return format(value, ".>4X")


class MachineResult:
    """Execution artefact from the tape machine."""

    def __init__(self, output: bytes, steps: int, pointer: int, tape: dict):
        self.output = output
        self.steps = steps
        self.pointer = pointer
        self.tape = tape

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return f"<MachineResult {len(self.output)} bytes, {self.steps} steps>"


class TapeMachine:
    """Single-pointer interpreter over a lazily grown byte tape.

    Cells hold values 0-255 and wrap in both directions. The pointer may
    move anywhere; untouched cells read as zero. ``eof`` selects what
    ``,`` does once the input queue is empty: ``zero`` stores 0, ``keep``
    leaves the cell alone and ``fault`` aborts the run.
    """

    def __init__(
        self,
        program: CompiledProgram,
        input_data: Union[bytes, str] = b"",
        *,
        debug: bool = False,
        eof: str = DEFAULT_EOF_POLICY,
        max_steps: Optional[int] = None,
        diagnostics: Optional[TextIO] = None,
    ):
        if eof not in EOF_POLICIES:
            raise ValueError(f"Unknown end-of-input policy '{eof}'. Choose from {EOF_POLICIES}.")
        if isinstance(input_data, str):
            input_data = input_data.encode("utf-8")
        self.program = program
        self.tape: dict[int, int] = {}
        self.pointer = 0
        self.ip = 0
        self.input = deque(input_data)
        self.output = bytearray()
        self.debug = debug
        self.eof = eof
        self.max_steps = max_steps
        self.steps = 0
        self._diagnostics = diagnostics

    @property
    def diagnostics(self) -> TextIO:
        return self._diagnostics if self._diagnostics is not None else sys.stderr

    def run(self) -> MachineResult:
        instructions = self.program.instructions
        count = len(instructions)
        while self.ip < count:
            if self.max_steps is not None and self.steps >= self.max_steps:
                raise RuntimeFault(
                    f"Instruction budget of {self.max_steps} steps exhausted at "
                    f"instruction {self.ip}",
                    self.program.origin(self.ip),
                    output=self.output,
                )
            self._step(instructions[self.ip])
            self.steps += 1

        return MachineResult(bytes(self.output), self.steps, self.pointer, dict(self.tape))

    # -- internal helpers -------------------------------------------------

    def _step(self, instr: Instruction) -> None:
        op = instr.op
        if self.debug:
            print(self.render_trace(op), file=self.diagnostics)

        if op is Op.INCREMENT:
            self.tape[self.pointer] = (self.tape.get(self.pointer, 0) + 1) & 0xFF
        elif op is Op.DECREMENT:
            self.tape[self.pointer] = (self.tape.get(self.pointer, 0) - 1) & 0xFF
        elif op is Op.SHIFT_RIGHT:
            self.pointer += 1
        elif op is Op.SHIFT_LEFT:
            self.pointer -= 1
        elif op is Op.OUTPUT:
            self.output.append(self.tape.get(self.pointer, 0))
        elif op is Op.INPUT:
            self._read_input()
        elif op is Op.LOOP_OPEN:
            if self.tape.get(self.pointer, 0) == 0:
                self.ip = instr.target + 1
                return
        elif op is Op.LOOP_CLOSE:
            if self.tape.get(self.pointer, 0) != 0:
                self.ip = instr.target + 1
                return
        elif op is Op.DEBUG:
            # Dumps are suppressed while tracing.
            if not self.debug:
                print(self.render_dump(), file=self.diagnostics)
        else:  # pragma: no cover - Op is a closed enumeration
            raise RuntimeFault(f"Invalid instruction {op!r} at {self.ip}", output=self.output)

        self.ip += 1

    def _read_input(self) -> None:
        if self.input:
            self.tape[self.pointer] = self.input.popleft()
        elif self.eof == "zero":
            self.tape[self.pointer] = 0
        elif self.eof == "fault":
            raise RuntimeFault(
                f"Input exhausted at instruction {self.ip} ({self.program.origin(self.ip)})",
                self.program.origin(self.ip),
                output=self.output,
            )

    def render_trace(self, op: Op) -> str:
        return f"instr: {_hex(self.ip)}, mem: {_hex(self.pointer)} | {op.name}"

    def render_dump(self) -> str:
        """Render the instruction index, pointer and the tape row around it."""

        start = self.pointer - self.pointer % DUMP_WIDTH
        prefix = f"{_hex(start)} |"
        cells = "".join(f" {self.tape.get(start + i, 0):02X}" for i in range(DUMP_WIDTH))
        caret = " " * (len(prefix) + 1 + 3 * (self.pointer - start)) + "^^"
        return "\n".join(
            [
                f"instr: {_hex(self.ip)}, mem: {_hex(self.pointer)}",
                prefix + cells,
                caret,
            ]
        )


def run_program(
    program: CompiledProgram,
    input_data: Union[bytes, str] = b"",
    debug: bool = False,
    **options,
) -> bytes:
    """Execute ``program`` on a fresh tape and return its output bytes."""

    return TapeMachine(program, input_data, debug=debug, **options).run().output


__all__ = [
    "MachineResult",
    "TapeMachine",
    "run_program",
]
