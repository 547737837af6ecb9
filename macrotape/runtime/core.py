"""Core data structures shared by the macrotape compiler and tape machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional, Sequence, Union

from .. import constants as _c


class MacroTapeError(Exception):
    """Base class for every compile-time and run-time failure."""

    def __init__(self, message: str, location=None):
        super().__init__(message)
        self.location = location


class LexError(MacroTapeError):
    """Raised when source text cannot be tokenized or read into items."""


class ScopeError(MacroTapeError):
    """Raised when the scope tree cannot be built or a path cannot be resolved."""


class ExpansionError(MacroTapeError):
    """Raised when macro expansion or bracket linking fails."""


class ArtifactError(MacroTapeError):
    """Raised when a compiled artifact is corrupt or unrecognized."""


class RuntimeFault(MacroTapeError):
    """Raised when the tape machine aborts a run.

    ``output`` holds every byte the program produced before the fault.
    """

    def __init__(self, message: str, location=None, *, output: bytes = b""):
        super().__init__(message, location)
        self.output = bytes(output)


@dataclass(frozen=True)
class SourceLocation:
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"


@dataclass(frozen=True)
class ArtifactOffset:
    filename: str
    offset: int

    def __str__(self) -> str:
        return f"{self.filename}@{self.offset}"


class Op(IntEnum):
    """Primitive tape-machine operations; values double as artifact tags."""

    SHIFT_RIGHT = _c.SHIFT_RIGHT
    SHIFT_LEFT = _c.SHIFT_LEFT
    INCREMENT = _c.INCREMENT
    DECREMENT = _c.DECREMENT
    LOOP_OPEN = _c.LOOP_OPEN
    LOOP_CLOSE = _c.LOOP_CLOSE
    OUTPUT = _c.OUTPUT
    INPUT = _c.INPUT
    DEBUG = _c.DEBUG

    @property
    def symbol(self) -> str:
        return OP_SYMBOLS[self]


OP_SYMBOLS = {Op(tag): char for char, tag in _c.PRIMITIVE_CHARS.items()}
OP_SYMBOLS[Op.DEBUG] = _c.DEBUG_CHAR


# -- lexical items ---------------------------------------------------------


@dataclass(frozen=True)
class PrimitiveOp:
    op: Op
    location: SourceLocation


@dataclass(frozen=True)
class DebugMarker:
    location: SourceLocation


@dataclass(frozen=True)
class StringLiteral:
    data: bytes
    location: SourceLocation


@dataclass(frozen=True)
class PathRef:
    """A macro reference: ``up`` parent hops followed by child ``steps``."""

    up: int
    steps: tuple
    is_import: bool
    location: SourceLocation

    def __str__(self) -> str:
        text = _c.UP_MARKER * self.up + _c.PATH_SEPARATOR.join(self.steps)
        prefix = f"{_c.IMPORT_KEYWORD} " if self.is_import else ""
        return f"{prefix}{_c.REFERENCE_MARKER}{text}"


@dataclass(frozen=True)
class MacroDef:
    name: str
    body: tuple
    location: SourceLocation


@dataclass(frozen=True)
class Group:
    items: tuple
    location: SourceLocation


@dataclass(frozen=True)
class CountSpec:
    """Repetition count as written: ``hex`` digits or a quoted ``char``."""

    kind: str
    text: str

    @property
    def value(self) -> int:
        if self.kind == "hex":
            return int(self.text, 16)
        if self.kind == "char":
            return ord(self.text)
        raise ValueError(f"Unknown count kind '{self.kind}'")


@dataclass(frozen=True)
class Repeat:
    count_spec: CountSpec
    target: "LexItem"
    location: SourceLocation


LexItem = Union[
    PrimitiveOp, DebugMarker, StringLiteral, PathRef, MacroDef, Group, Repeat
]


# -- compiled programs -----------------------------------------------------


@dataclass(frozen=True)
class Instruction:
    op: Op
    target: Optional[int] = None

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        if self.target is None:
            return f"{self.op.name}"
        return f"{self.op.name}->{self.target}"


class CompiledProgram:
    """Immutable, linked sequence of primitive instructions."""

    def __init__(self, instructions: Iterable[Instruction], origins=None):
        self.instructions = tuple(instructions)
        self.origins = tuple(origins) if origins is not None else None

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self):
        return iter(self.instructions)

    def __getitem__(self, index):
        return self.instructions[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, CompiledProgram):
            return NotImplemented
        return self.instructions == other.instructions

    def __hash__(self) -> int:
        return hash(self.instructions)

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return f"<CompiledProgram {len(self.instructions)} instrs>"

    @property
    def ops(self) -> tuple:
        return tuple(instr.op for instr in self.instructions)

    def origin(self, index: int):
        """Describe where instruction ``index`` came from."""

        if self.origins is not None and 0 <= index < len(self.origins):
            origin = self.origins[index]
            if origin is not None:
                return origin
        return f"instruction {index}"


def link(
    ops: Sequence[Op],
    origins: Optional[Sequence] = None,
    error_cls=ExpansionError,
) -> CompiledProgram:
    """Match loop brackets and return a program with jump targets filled in."""

    ops = list(ops)
    targets: list[Optional[int]] = [None] * len(ops)
    stack: list[int] = []

    def where(index):
        if origins is not None and origins[index] is not None:
            return origins[index]
        return f"instruction {index}"

    for index, op in enumerate(ops):
        if op is Op.LOOP_OPEN:
            stack.append(index)
        elif op is Op.LOOP_CLOSE:
            if not stack:
                loc = where(index)
                raise error_cls(f"Unmatched ']' at {loc}", loc)
            partner = stack.pop()
            targets[partner] = index
            targets[index] = partner

    if stack:
        loc = where(stack[-1])
        raise error_cls(f"Unmatched '[' at {loc}", loc)

    instructions = [Instruction(op, target) for op, target in zip(ops, targets)]
    return CompiledProgram(instructions, origins)


__all__ = [
    "ArtifactError",
    "ArtifactOffset",
    "CompiledProgram",
    "CountSpec",
    "DebugMarker",
    "ExpansionError",
    "Group",
    "Instruction",
    "LexError",
    "LexItem",
    "MacroDef",
    "MacroTapeError",
    "OP_SYMBOLS",
    "Op",
    "PathRef",
    "PrimitiveOp",
    "Repeat",
    "RuntimeFault",
    "ScopeError",
    "SourceLocation",
    "StringLiteral",
    "link",
]
