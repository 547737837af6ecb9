"""Command-line interface for the macrotape compiler and tape machine.

Flags use ``*`` as their prefix and take data after ``=``, e.g.
``python -m macrotape hello.mt *in=abc *bin=hello.bin``.
"""
from __future__ import annotations

import argparse
import sys

from ..constants import DEFAULT_EOF_POLICY, EOF_POLICIES, REPL_HISTORY_LIMIT
from .analysis import (
    explain_path,
    export_graphviz,
    print_scopes,
    visualize_graph,
)
from .bitcode import (
    diff_artifacts,
    diff_programs,
    hash_program,
    record_run,
    show_logbook,
    write_artifact,
)
from .compiler import compile_and_run, load_program, render_program
from .core import MacroTapeError, RuntimeFault
from .machine import TapeMachine


def _report(error):
    print(f"{type(error).__name__}: {error}", file=sys.stderr)


def _write_output(data):
    stream = sys.stdout
    buffer = getattr(stream, "buffer", None)
    if buffer is None:
        stream.write(data.decode("latin-1"))
        return
    stream.flush()
    buffer.write(data)
    buffer.flush()


def pick_program(programs, token=None):
    """Return ``(number, compilation)`` for a REPL program reference.

    ``programs`` maps program numbers to compilations, oldest first. No
    token means the latest program; otherwise the token is a number,
    optionally written ``#3``. Raises ``KeyError`` with a printable reason.
    """

    if not programs:
        raise KeyError("nothing compiled yet")
    if token is None:
        number = next(reversed(programs))
        return number, programs[number]
    text = token.lstrip("#")
    if not text.isdigit():
        raise KeyError(f"'{token}' is not a program number")
    number = int(text)
    if number not in programs:
        kept = ", ".join(f"#{n}" for n in programs)
        raise KeyError(f"program #{number} is not kept (have {kept})")
    return number, programs[number]


def run_repl(history_limit=REPL_HISTORY_LIMIT):  # pragma: no cover
    """Compile and run one program per line; ``:``-commands inspect past programs."""

    print("macrotape REPL — one program per line, :help for commands")
    programs = {}
    number = 0

    def lookup(token=None):
        try:
            return pick_program(programs, token)
        except KeyError as exc:
            print(f"  ✗ {exc.args[0]}")
            return None, None

    while True:
        try:
            line = input("tape> ")
        except EOFError:
            print()
            break

        words = line.split()
        if not words:
            continue

        command = words[0]
        token = words[1] if len(words) > 1 else None
        if command in (":quit", ":exit"):
            break
        if command == ":help":
            print("  :bin [n]  :scopes [n]  :hash [n]  :save [n] [file]  :diff n m  :quit")
            print(f"  the last {history_limit} programs are kept, numbered from #1")
            continue
        if command in (":bin", ":scopes", ":hash", ":save"):
            n, compilation = lookup(token)
            if compilation is None:
                continue
            if command == ":bin":
                print(f"Bin: {render_program(compilation.program)}")
            elif command == ":scopes":
                print_scopes(compilation.tree)
            elif command == ":hash":
                print(f"SHA256(#{n}) = {hash_program(compilation.program)}")
            else:
                target = words[2] if len(words) > 2 else f"program_{n}.bin"
                write_artifact(compilation.program, target)
            continue
        if command == ":diff":
            if len(words) != 3:
                print("  usage: :diff <n> <m>")
                continue
            a, left = lookup(words[1])
            b, right = lookup(words[2])
            if left is None or right is None:
                continue
            diff = diff_programs(left.program, right.program, f"#{a}", f"#{b}")
            for diff_line in diff or ["  programs are identical"]:
                print(diff_line)
            continue

        try:
            compilation, result = compile_and_run(line, filename="<repl>", diagnostics=sys.stdout)
        except RuntimeFault as exc:
            print(f"  partial output: {exc.output!r}")
            _report(exc)
            continue
        except MacroTapeError as exc:
            _report(exc)
            continue

        number += 1
        programs[number] = compilation
        while len(programs) > history_limit:
            del programs[next(iter(programs))]

        print(f"#{number}: {len(compilation.program)} instrs, {result.steps} steps")
        print(f"  output: {result.output.decode('latin-1')!r}")


def parse_args(args):
    argp = argparse.ArgumentParser(
        description="macrotape — macro tape-language compiler and runtime",
        prefix_chars="*",
        allow_abbrev=False,
    )

    argp.add_argument(
        "program",
        nargs="?",
        help="Source file or compiled artifact (detected automatically)",
    )
    argp.add_argument(
        "*print_bin",
        action="store_true",
        help="Print the expanded program as primitive-instruction text",
    )
    argp.add_argument(
        "*debug", action="store_true", help="Trace every instruction as it executes"
    )
    argp.add_argument("*bin", metavar="PATH", help="Write the compiled artifact to PATH")
    argp.add_argument(
        "*in", dest="input_text", default="", metavar="TEXT", help="Pre-load the input queue"
    )
    argp.add_argument(
        "*pure",
        action="store_true",
        help="Disable macro extensions; only the eight primitives are read",
    )
    argp.add_argument("*std", metavar="PATH", help="Load a library under the 'std' root")
    argp.add_argument(
        "*eof",
        choices=EOF_POLICIES,
        default=DEFAULT_EOF_POLICY,
        help="Behaviour of ',' once input is exhausted",
    )
    argp.add_argument(
        "*max_steps",
        type=int,
        metavar="N",
        help="Abort the run after N executed instructions",
    )
    argp.add_argument("*no_run", action="store_true", help="Compile only; do not execute")
    argp.add_argument("*scopes", action="store_true", help="Print the scope tree")
    argp.add_argument("*viz", metavar="SVG", help="Export the scope tree as Graphviz SVG")
    argp.add_argument("*plot", action="store_true", help="Plot the scope tree")
    argp.add_argument("*why", metavar="PATH", help="Explain how a macro path resolves")
    argp.add_argument("*hash", action="store_true", help="Print the artifact SHA-256")
    argp.add_argument("*diff", metavar="ARTIFACT", help="Compare against another artifact")
    argp.add_argument(
        "*record", action="store_true", help="Record a signed entry in the run logbook"
    )
    argp.add_argument("*logbook", action="store_true", help="Show the run logbook")
    argp.add_argument("*repl", action="store_true", help="Start an interactive REPL")

    return argp.parse_args(args)


def main(args=None):
    params = parse_args(sys.argv[1:] if args is None else args)

    if params.logbook:
        show_logbook()
        return 0
    if params.repl:
        run_repl()
        return 0
    if params.program is None:
        print("error: a program path is required", file=sys.stderr)
        return 2

    try:
        program, compilation = load_program(
            params.program, library_path=params.std, pure=params.pure
        )
    except MacroTapeError as exc:
        _report(exc)
        return 1
    except OSError as exc:
        print(f"Failed to read {params.program}: {exc}", file=sys.stderr)
        return 1

    if params.scopes or params.viz or params.plot or params.why:
        if compilation is None:
            print("  ✗ Scope tree is unavailable for a compiled artifact", file=sys.stderr)
        else:
            tree = compilation.tree
            if params.scopes:
                print_scopes(tree)
            if params.why:
                info = explain_path(tree, params.why)
                for line in info["lines"]:
                    print(line)
            if params.viz:
                export_graphviz(tree, params.viz)
            if params.plot:
                visualize_graph(tree)

    try:
        if params.bin:
            write_artifact(program, params.bin)
        if params.diff:
            diff_artifacts(program, params.diff)
    except MacroTapeError as exc:
        _report(exc)
        return 1
    except OSError as exc:
        print(f"Failed to access artifact: {exc}", file=sys.stderr)
        return 1
    if params.hash:
        print(f"SHA256({params.program}) = {hash_program(program)}", file=sys.stderr)
    if params.print_bin:
        print(f"Bin: {render_program(program)}")

    if params.no_run:
        return 0

    machine = TapeMachine(
        program,
        params.input_text,
        debug=params.debug,
        eof=params.eof,
        max_steps=params.max_steps,
    )
    try:
        result = machine.run()
    except RuntimeFault as exc:
        _write_output(exc.output)
        _report(exc)
        return 1
    _write_output(result.output)

    if params.record:
        record_run(program, result, filename=params.program)
    return 0


__all__ = [
    "main",
    "parse_args",
    "pick_program",
    "run_repl",
]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
