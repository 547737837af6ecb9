import json
import runpy
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from macrotape import main, parse_args  # noqa: E402
from macrotape.runtime import crypto  # noqa: E402
from macrotape.runtime.cli import pick_program  # noqa: E402

BBC_SOURCE = """\
:print_b{+'b.[-]}
:outer{:inner{#^^print_b}#inner}
:letters{:print_c{+'c.[-]}}
use #letters/print_c
#print_b
#outer
#print_c
"""


@pytest.fixture
def write_source(tmp_path):
    def _write(text, name="prog.mt"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


def test_parse_args_defaults_and_flags():
    params = parse_args(["p.mt"])
    assert params.program == "p.mt"
    assert params.eof == "zero"
    assert params.input_text == ""
    assert not params.debug and not params.print_bin and not params.pure

    params = parse_args(["p.mt", "*in=abc", "*bin=out.bin", "*max_steps=9", "*eof=keep", "*debug"])
    assert params.input_text == "abc"
    assert params.bin == "out.bin"
    assert params.max_steps == 9
    assert params.eof == "keep"
    assert params.debug


def test_parse_args_rejects_unknown_policy():
    with pytest.raises(SystemExit):
        parse_args(["p.mt", "*eof=wrap"])


def test_main_runs_source(write_source, capsys):
    assert main([write_source(BBC_SOURCE)]) == 0
    assert capsys.readouterr().out == "bbc"


def test_main_reads_input(write_source, capsys):
    assert main([write_source(",.,."), "*in=xy"]) == 0
    assert capsys.readouterr().out == "xy"


def test_main_print_bin(write_source, capsys):
    assert main([write_source(":m{+'A}#m."), "*print_bin", "*no_run"]) == 0
    assert capsys.readouterr().out == "Bin: " + "+" * 65 + ".\n"


def test_main_bin_round_trip(write_source, tmp_path, capsys):
    artifact = tmp_path / "out.bin"
    assert main([write_source(BBC_SOURCE), f"*bin={artifact}"]) == 0
    assert artifact.read_bytes()[:4] == b"\xbf\xff\xbb\xff"
    capsys.readouterr()

    assert main([str(artifact)]) == 0
    assert capsys.readouterr().out == "bbc"


def test_main_pure_mode(write_source, capsys):
    assert main([write_source("+++ +5 :x{.}"), "*pure"]) == 0
    # the count digit is plain commentary in pure mode
    assert capsys.readouterr().out == "\x04"


def test_main_with_library(write_source, capsys):
    lib = write_source(":bang{+'!.[-]}", "lib.mt")
    assert main([write_source("use #std/bang #bang#bang"), f"*std={lib}"]) == 0
    assert capsys.readouterr().out == "!!"


def test_main_reports_compile_errors(write_source, capsys):
    assert main([write_source("#nope")]) == 1
    err = capsys.readouterr().err
    assert err.startswith("ScopeError: Unknown macro 'nope'")


def test_main_reports_corrupt_artifact(tmp_path, capsys):
    bad = tmp_path / "bad.bin"
    bad.write_bytes(b"\xbf\xff\xbb\xff\x05\x00\x00\x00\x02")
    assert main([str(bad)]) == 1
    assert "ArtifactError: Artifact truncated" in capsys.readouterr().err


def test_main_fault_flushes_partial_output(write_source, capsys):
    assert main([write_source("+'a.,"), "*eof=fault"]) == 1
    captured = capsys.readouterr()
    assert captured.out == "a"
    assert captured.err.startswith("RuntimeFault: Input exhausted")


def test_main_step_budget(write_source, capsys):
    assert main([write_source("+[]"), "*max_steps=10"]) == 1
    assert "budget of 10 steps" in capsys.readouterr().err


def test_main_missing_program(capsys, tmp_path):
    assert main([]) == 2
    assert main([str(tmp_path / "absent.mt")]) == 1
    err = capsys.readouterr().err
    assert "a program path is required" in err
    assert "Failed to read" in err


def test_main_debug_traces_to_stderr(write_source, capsys):
    assert main([write_source("+."), "*debug"]) == 0
    captured = capsys.readouterr()
    assert captured.out == "\x01"
    assert captured.err.splitlines() == [
        "instr: ...0, mem: ...0 | INCREMENT",
        "instr: ...1, mem: ...0 | OUTPUT",
    ]


def test_main_scope_tools(write_source, capsys):
    path = write_source(BBC_SOURCE)
    assert main([path, "*scopes", "*why=outer/inner", "*no_run"]) == 0
    out = capsys.readouterr().out
    assert "src  (3 items)" in out
    assert "  ✓ resolves to src/outer/inner" in out


def test_main_scope_tools_need_source(write_source, tmp_path, capsys):
    artifact = tmp_path / "a.bin"
    main([write_source("+"), f"*bin={artifact}", "*no_run"])
    capsys.readouterr()
    assert main([str(artifact), "*scopes", "*no_run"]) == 0
    assert "unavailable for a compiled artifact" in capsys.readouterr().err


def test_main_hash_and_diff(write_source, tmp_path, capsys):
    artifact = tmp_path / "a.bin"
    main([write_source("+."), f"*bin={artifact}", "*no_run"])
    capsys.readouterr()

    assert main([write_source("++."), "*hash", f"*diff={artifact}", "*no_run"]) == 0
    err = capsys.readouterr().err
    assert "Programs differ" in err
    assert "SHA256(" in err


def test_main_record_and_logbook(write_source, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(crypto, "sign_digest", lambda digest: "sig")
    assert main([write_source("+'z."), "*record"]) == 0
    entry = json.loads((tmp_path / "macrotape.logbook.jsonl").read_text(encoding="utf-8"))
    assert entry["signature"] == "sig"
    assert entry["output_preview"] == "z"
    capsys.readouterr()

    assert main(["*logbook"]) == 0
    assert "prog.mt" in capsys.readouterr().out


def test_module_entry_point(write_source, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["macrotape", write_source("+'k.")])
    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module("macrotape", run_name="__main__")
    assert excinfo.value.code == 0
    assert capsys.readouterr().out == "k"


def test_main_rejects_non_utf8_source(tmp_path, capsys):
    bad = tmp_path / "bad.mt"
    bad.write_bytes(b"+\xff\xfe.")
    assert main([str(bad)]) == 1
    err = capsys.readouterr().err
    assert err.startswith("LexError: Source is not valid UTF-8 (byte 0xFF)")
    assert f"{bad}:1:2" in err


def test_main_rejects_non_utf8_library(write_source, tmp_path, capsys):
    lib = tmp_path / "lib.mt"
    lib.write_bytes(b":x{+}\n:y{\xc3}")
    assert main([write_source("#std/x"), f"*std={lib}"]) == 1
    assert f"LexError: Source is not valid UTF-8 (byte 0xC3) at {lib}:2:4" in capsys.readouterr().err


def test_pick_program_by_number():
    programs = {3: "third", 4: "fourth", 5: "fifth"}
    assert pick_program(programs) == (5, "fifth")
    assert pick_program(programs, "4") == (4, "fourth")
    assert pick_program(programs, "#3") == (3, "third")


@pytest.mark.parametrize(
    "programs, token, reason",
    [
        ({}, None, "nothing compiled yet"),
        ({2: "p"}, "two", "'two' is not a program number"),
        ({2: "p", 3: "q"}, "1", "program #1 is not kept (have #2, #3)"),
    ],
)
def test_pick_program_reasons(programs, token, reason):
    with pytest.raises(KeyError) as excinfo:
        pick_program(programs, token)
    assert excinfo.value.args[0] == reason
