"""Compiled artifact codec, hashing and the provenance logbook.

An artifact is the 4-byte magic ``BF FF BB FF``, the instruction count as a
little-endian ``uint32`` and then one tag byte per instruction. Loop jump
targets are not stored; they are re-derived when the artifact is decoded.
"""

from __future__ import annotations

from datetime import datetime, timezone
import difflib
import hashlib
import json
from pathlib import Path
import struct
import sys

from ..constants import ARTIFACT_MAGIC, LOGBOOK_FILE
from . import crypto as _crypto
from .core import ArtifactError, ArtifactOffset, CompiledProgram, Op, link

HEADER = struct.Struct("<4sI")


def encode_program(program: CompiledProgram) -> bytes:
    """Serialize ``program`` into artifact bytes."""

    return HEADER.pack(ARTIFACT_MAGIC, len(program)) + bytes(
        int(instr.op) for instr in program
    )


def decode_program(data: bytes, filename: str = "<artifact>") -> CompiledProgram:
    """Rebuild a linked program from artifact bytes."""

    data = bytes(data)
    if len(data) >= len(ARTIFACT_MAGIC) and not data.startswith(ARTIFACT_MAGIC):
        loc = ArtifactOffset(filename, 0)
        raise ArtifactError(f"Unrecognized artifact discriminator at {loc}", loc)
    if len(data) < HEADER.size:
        loc = ArtifactOffset(filename, len(data))
        raise ArtifactError(
            f"Artifact header truncated ({len(data)} of {HEADER.size} bytes) at {loc}",
            loc,
        )

    _, count = HEADER.unpack_from(data)
    body = data[HEADER.size:]
    if len(body) < count:
        loc = ArtifactOffset(filename, len(data))
        raise ArtifactError(
            f"Artifact truncated: header declares {count} instructions but only "
            f"{len(body)} follow at {loc}",
            loc,
        )
    if len(body) > count:
        loc = ArtifactOffset(filename, HEADER.size + count)
        raise ArtifactError(
            f"Artifact has {len(body) - count} trailing bytes at {loc}", loc
        )

    ops = []
    origins = []
    for position, tag in enumerate(body):
        loc = ArtifactOffset(filename, HEADER.size + position)
        try:
            ops.append(Op(tag))
        except ValueError:
            raise ArtifactError(
                f"Unknown instruction tag 0x{tag:02X} at {loc}", loc
            ) from None
        origins.append(loc)

    return link(ops, origins, error_cls=ArtifactError)


def is_artifact(path) -> bool:
    """True when the file at ``path`` starts with the artifact magic."""

    with open(path, "rb") as f:
        return f.read(len(ARTIFACT_MAGIC)) == ARTIFACT_MAGIC


def write_artifact(program: CompiledProgram, filename) -> bytes:
    """Persist ``program`` to ``filename`` and return the bytes written."""

    data = encode_program(program)
    Path(filename).write_bytes(data)
    print(f"  ✓ Artifact exported → {filename}", file=sys.stderr)
    return data


def load_artifact(filename) -> CompiledProgram:
    return decode_program(Path(filename).read_bytes(), str(filename))


def hash_program(program: CompiledProgram) -> str:
    """SHA-256 of the artifact encoding of ``program``."""

    return hashlib.sha256(encode_program(program)).hexdigest()


def hash_artifact(filename) -> str:
    """Compute and print the SHA-256 of a validated artifact file."""

    h = hash_program(load_artifact(filename))
    print(f"SHA256({filename}) = {h}", file=sys.stderr)
    return h


def diff_programs(program_a, program_b, label_a="a", label_b="b"):
    """Unified diff of two programs, one instruction per line."""

    text_a = [instr.op.name for instr in program_a]
    text_b = [instr.op.name for instr in program_b]
    return list(
        difflib.unified_diff(text_a, text_b, fromfile=label_a, tofile=label_b, lineterm="")
    )


def diff_artifacts(file_a, file_b):
    """Compare two programs (artifacts or loaded programs) and report differences."""

    a = load_artifact(file_a) if not isinstance(file_a, CompiledProgram) else file_a
    b = load_artifact(file_b) if not isinstance(file_b, CompiledProgram) else file_b
    label_a = str(file_a) if not isinstance(file_a, CompiledProgram) else "program"
    label_b = str(file_b) if not isinstance(file_b, CompiledProgram) else "program"

    ha, hb = hash_program(a), hash_program(b)
    if ha == hb:
        print(f"✓ Programs are identical ({ha})", file=sys.stderr)
        return []

    print(f"✗ Programs differ\n  {label_a}: {ha}\n  {label_b}: {hb}", file=sys.stderr)
    if len(a) != len(b):
        print(f"  • Instruction count differs: {len(a)} vs {len(b)}", file=sys.stderr)
    lines = diff_programs(a, b, label_a, label_b)
    for line in lines:
        print(line, file=sys.stderr)
    return lines


def record_run(program: CompiledProgram, result, filename="<program>", logbook_path=LOGBOOK_FILE):
    """Append this run's metadata to the logbook, signed."""

    sha = hash_program(program)
    sig = _crypto.sign_digest(sha)

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "filename": str(filename),
        "hash": sha,
        "signature": sig,
        "instructions": len(program),
        "steps": result.steps,
        "output_length": len(result.output),
        "output_preview": result.output[:32].decode("latin-1"),
    }

    with open(logbook_path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry) + "\n")

    print(f"  📜 Recorded and signed run → {logbook_path}", file=sys.stderr)
    return entry


def show_logbook(limit=10, logbook_path=LOGBOOK_FILE):
    """Display recent logbook entries."""

    try:
        with open(logbook_path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except FileNotFoundError:
        print("No logbook yet.")
        return []

    entries = [json.loads(line) for line in lines[-limit:]]
    print(f"\nmacrotape logbook — last {len(entries)} entries:")
    for e in reversed(entries):
        print(
            f"• {e['timestamp']}  {e['filename']}  "
            f"[{e['instructions']} instrs, {e['steps']} steps]  {e['hash'][:12]}…"
        )
        if e.get("output_preview"):
            print(f"    output: {e['output_preview']!r}")
    return entries


__all__ = [
    "HEADER",
    "decode_program",
    "diff_artifacts",
    "diff_programs",
    "encode_program",
    "hash_artifact",
    "hash_program",
    "is_artifact",
    "load_artifact",
    "record_run",
    "show_logbook",
    "write_artifact",
]
