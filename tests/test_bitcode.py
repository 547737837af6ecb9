import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from macrotape import (  # noqa: E402
    ARTIFACT_MAGIC,
    ArtifactError,
    ArtifactOffset,
    MachineResult,
    Op,
    compile_program,
    decode_program,
    diff_artifacts,
    diff_programs,
    encode_program,
    hash_artifact,
    hash_program,
    is_artifact,
    load_artifact,
    record_run,
    show_logbook,
    sign_digest,
    verify_digest,
    write_artifact,
)
from macrotape.runtime import crypto  # noqa: E402


def test_encode_layout():
    data = encode_program(compile_program("+[-]>.,?<"))
    assert data == bytes.fromhex("bfffbbff" "09000000" "020403050006070801")


def test_decode_restores_jump_targets():
    program = compile_program("+[>[-]<-]")
    decoded = decode_program(encode_program(program), "loops.bin")
    assert decoded == program
    assert decoded[1].target == 8
    assert decoded[3].target == 5
    assert decoded.origin(0) == ArtifactOffset("loops.bin", 8)


def test_empty_program_round_trip():
    data = encode_program(compile_program(""))
    assert data == ARTIFACT_MAGIC + b"\x00\x00\x00\x00"
    assert len(decode_program(data)) == 0


@pytest.mark.parametrize(
    "data, fragment, offset",
    [
        (b"BFBF\x00\x00\x00\x00", "Unrecognized artifact", 0),
        (ARTIFACT_MAGIC + b"\x01", "header truncated", 5),
        (b"\xbf\xff", "header truncated", 2),
        (ARTIFACT_MAGIC + b"\x03\x00\x00\x00\x02", "only 1 follow", 9),
        (ARTIFACT_MAGIC + b"\x01\x00\x00\x00\x02\x02", "1 trailing bytes", 9),
        (ARTIFACT_MAGIC + b"\x02\x00\x00\x00\x02\x09", "Unknown instruction tag 0x09", 9),
        (ARTIFACT_MAGIC + b"\x01\x00\x00\x00\x04", "Unmatched '['", 8),
        (ARTIFACT_MAGIC + b"\x02\x00\x00\x00\x02\x05", "Unmatched ']'", 9),
    ],
)
def test_corrupt_artifacts(data, fragment, offset):
    with pytest.raises(ArtifactError) as excinfo:
        decode_program(data, "bad.bin")
    assert fragment in str(excinfo.value)
    assert excinfo.value.location == ArtifactOffset("bad.bin", offset)


def test_file_helpers(tmp_path, capsys):
    program = compile_program("+'A.")
    path = tmp_path / "a.bin"
    data = write_artifact(program, path)
    assert path.read_bytes() == data
    assert is_artifact(path)
    assert load_artifact(path) == program
    assert hash_artifact(path) == hash_program(program)
    err = capsys.readouterr().err
    assert "Artifact exported" in err
    assert f"SHA256({path})" in err

    source = tmp_path / "a.mt"
    source.write_text("+'A.", encoding="utf-8")
    assert not is_artifact(source)


def test_hash_identifies_instruction_stream():
    assert hash_program(compile_program(":m{+}#m#m")) == hash_program(compile_program("++"))
    assert hash_program(compile_program("+")) != hash_program(compile_program("-"))


def test_diff_programs_lists_changes():
    lines = diff_programs(compile_program("+."), compile_program("+>."), "old", "new")
    assert lines[0] == "--- old"
    assert lines[1] == "+++ new"
    assert "+SHIFT_RIGHT" in lines


def test_diff_artifacts(tmp_path, capsys):
    a = tmp_path / "a.bin"
    b = tmp_path / "b.bin"
    write_artifact(compile_program("+."), a)
    write_artifact(compile_program("++."), b)
    capsys.readouterr()

    assert diff_artifacts(a, a) == []
    assert "identical" in capsys.readouterr().err

    lines = diff_artifacts(a, compile_program("++."))
    err = capsys.readouterr().err
    assert "+INCREMENT" in lines
    assert "Programs differ" in err
    assert "Instruction count differs: 2 vs 3" in err
    assert diff_artifacts(b, compile_program("++.")) == []


def test_record_run_and_logbook(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(crypto, "sign_digest", lambda digest: "sig:" + digest[:8])
    logbook = tmp_path / "runs.jsonl"
    program = compile_program("+'h.")
    result = MachineResult(b"h", 106, 0, {0: 104})

    entry = record_run(program, result, filename="h.mt", logbook_path=logbook)
    assert entry["hash"] == hash_program(program)
    assert entry["signature"] == "sig:" + entry["hash"][:8]
    assert entry["instructions"] == 105
    assert entry["output_preview"] == "h"
    assert json.loads(logbook.read_text(encoding="utf-8").splitlines()[0]) == entry

    entries = show_logbook(logbook_path=logbook)
    assert entries == [entry]
    out = capsys.readouterr().out
    assert "h.mt" in out
    assert "[105 instrs, 106 steps]" in out


def test_show_logbook_missing(tmp_path, capsys):
    assert show_logbook(logbook_path=tmp_path / "none.jsonl") == []
    assert "No logbook yet." in capsys.readouterr().out


def test_sign_and_verify_digest(tmp_path):
    key = tmp_path / "key.pem"
    pub = tmp_path / "pub.pem"
    digest = hash_program(compile_program("+"))
    signature = sign_digest(digest, key, pub)
    assert key.exists() and pub.exists()
    assert verify_digest(digest, signature, pub)
    assert not verify_digest(hash_program(compile_program("-")), signature, pub)
    # a second signature reuses the stored key
    assert verify_digest(digest, sign_digest(digest, key, pub), pub)


def test_op_tags_are_stable():
    assert [int(op) for op in Op] == list(range(9))
