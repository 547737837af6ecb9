"""Macro expansion and the source-to-program compilation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .. import constants as _c
from .core import (
    CompiledProgram,
    DebugMarker,
    ExpansionError,
    Group,
    LexError,
    MacroDef,
    Op,
    PathRef,
    PrimitiveOp,
    Repeat,
    SourceLocation,
    StringLiteral,
    link,
)
from .lexer import parse_source
from .scopes import ScopeNode, ScopeTree, build_scope_tree


def lower_string(data: bytes, location=None) -> list:
    """Lower a string literal to ``[-]``, ``+`` × byte, ``>`` per byte."""

    out = []
    for byte in data:
        out.append((Op.LOOP_OPEN, location))
        out.append((Op.DECREMENT, location))
        out.append((Op.LOOP_CLOSE, location))
        out.extend([(Op.INCREMENT, location)] * byte)
        out.append((Op.SHIFT_RIGHT, location))
    return out


class Expander:
    """Inline macro references into a flat list of ``(op, origin)`` pairs.

    References inside a macro body resolve against the macro's own scope,
    never against the call site, so a finished expansion depends only on
    the macro's identity and is cached per scope index. ``active`` is the
    chain of macros currently being expanded; meeting one of them again is
    a cyclic inclusion.
    """

    def __init__(self, tree: ScopeTree):
        self.tree = tree
        self._cache: dict[int, tuple] = {}

    def expand_macro(self, node: ScopeNode, active: tuple = ()) -> tuple:
        cached = self._cache.get(node.index)
        if cached is not None:
            return cached
        result = tuple(self.expand(node.body or (), node.index, active + (node.index,)))
        self._cache[node.index] = result
        return result

    def expand(self, items: Iterable, scope: int, active: tuple = ()) -> list:
        out: list = []
        for item in items:
            out.extend(self._expand_item(item, scope, active))
        return out

    def _expand_item(self, item, scope: int, active: tuple):
        if isinstance(item, PrimitiveOp):
            return [(item.op, item.location)]
        if isinstance(item, DebugMarker):
            return [(Op.DEBUG, item.location)]
        if isinstance(item, StringLiteral):
            return lower_string(item.data, item.location)
        if isinstance(item, PathRef):
            return self._expand_reference(item, scope, active)
        if isinstance(item, Group):
            return self.expand(item.items, scope, active)
        if isinstance(item, Repeat):
            body = self._expand_item(item.target, scope, active)
            return body * item.count_spec.value
        if isinstance(item, MacroDef):
            raise ExpansionError(
                f"Macro definition '{item.name}' was not registered in the scope "
                f"tree at {item.location}",
                item.location,
            )
        raise TypeError(f"Unknown lexical item {item!r}")

    def _expand_reference(self, ref: PathRef, scope: int, active: tuple):
        if ref.is_import:
            raise ExpansionError(
                f"Import '{ref}' was not bound by the scope tree at {ref.location}",
                ref.location,
            )
        target = self.tree.resolve(scope, ref)
        if target.index in active:
            chain = " -> ".join(
                self.tree.path_of(index) for index in active + (target.index,)
            )
            raise ExpansionError(
                f"Cyclic macro inclusion {chain} at {ref.location}", ref.location
            )
        return list(self.expand_macro(target, active))


def expand_tree(tree: ScopeTree, root: str = _c.DEFAULT_ROOT) -> CompiledProgram:
    """Expand the top-level body of ``root`` and link the result."""

    root_node = tree.root(root)
    pairs = Expander(tree).expand(root_node.body or (), root_node.index)
    ops = [op for op, _ in pairs]
    origins = [origin for _, origin in pairs]
    return link(ops, origins)


@dataclass(frozen=True)
class Compilation:
    """Result of compiling macrotape source into a primitive program."""

    source: str
    tree: ScopeTree
    program: CompiledProgram


def compile_source(
    src: str,
    filename: str = "<src>",
    *,
    root: str = _c.DEFAULT_ROOT,
    library: Optional[str] = None,
    library_filename: str = "<std>",
    library_root: str = _c.LIBRARY_ROOT,
    pure: bool = False,
) -> Compilation:
    """Lex, build the scope tree, expand and link ``src``.

    When ``library`` source is given it is loaded first under its own root,
    so program code can reach it with absolute paths such as ``#std/name``.
    """

    tree = ScopeTree()
    if library is not None:
        build_scope_tree(
            parse_source(library, library_filename, pure=pure), library_root, tree
        )
    build_scope_tree(parse_source(src, filename, pure=pure), root, tree)
    return Compilation(src, tree, expand_tree(tree, root))


def compile_program(src: str, filename: str = "<src>", **options) -> CompiledProgram:
    return compile_source(src, filename, **options).program


def render_program(program: CompiledProgram, include_debug: bool = False) -> str:
    """Return the primitive-instruction text of ``program``."""

    return "".join(
        instr.op.symbol
        for instr in program
        if include_debug or instr.op is not Op.DEBUG
    )


def read_source(path) -> str:
    """Read a UTF-8 source file; undecodable bytes are a :class:`LexError`."""

    data = Path(path).read_bytes()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        head = data[: exc.start]
        line = head.count(b"\n") + 1
        column = exc.start - (head.rfind(b"\n") + 1) + 1
        loc = SourceLocation(str(path), line, column)
        raise LexError(
            f"Source is not valid UTF-8 (byte 0x{data[exc.start]:02X}) at {loc}", loc
        ) from None


def load_program(
    path,
    *,
    library_path=None,
    root: str = _c.DEFAULT_ROOT,
    library_root: str = _c.LIBRARY_ROOT,
    pure: bool = False,
):
    """Load ``path`` as an artifact or compile it as source.

    Returns ``(program, compilation)``; ``compilation`` is ``None`` when the
    file was already compiled.
    """

    from .bitcode import is_artifact, load_artifact

    path = Path(path)
    if is_artifact(path):
        return load_artifact(path), None

    library = None
    if library_path is not None:
        library = read_source(library_path)
    compilation = compile_source(
        read_source(path),
        str(path),
        root=root,
        library=library,
        library_filename=str(library_path) if library_path is not None else "<std>",
        library_root=library_root,
        pure=pure,
    )
    return compilation.program, compilation


def compile_and_run(src: str, input_data: bytes = b"", *, debug: bool = False, **options):
    """Compile ``src`` and execute it, returning ``(compilation, result)``."""

    from .machine import TapeMachine

    machine_keys = ("eof", "max_steps", "diagnostics")
    machine_options = {k: options.pop(k) for k in machine_keys if k in options}
    compilation = compile_source(src, **options)
    machine = TapeMachine(
        compilation.program, input_data, debug=debug, **machine_options
    )
    return compilation, machine.run()


__all__ = [
    "Compilation",
    "Expander",
    "compile_and_run",
    "compile_program",
    "compile_source",
    "expand_tree",
    "load_program",
    "read_source",
    "lower_string",
    "render_program",
]
