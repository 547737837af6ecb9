import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from macrotape import (  # noqa: E402
    DebugMarker,
    ExpansionError,
    Group,
    LexError,
    Lexer,
    MacroDef,
    Op,
    PathRef,
    PrimitiveOp,
    Repeat,
    StringLiteral,
    parse_source,
)


def test_primitives_and_comments():
    items = parse_source("+ % everything here is ignored +-\n-?")
    assert [type(item) for item in items] == [PrimitiveOp, PrimitiveOp, DebugMarker]
    assert items[0].op is Op.INCREMENT
    assert items[1].op is Op.DECREMENT


def test_locations_track_line_and_column():
    items = parse_source("\n  +", "demo.mt")
    loc = items[0].location
    assert (loc.line, loc.column) == (2, 3)
    assert str(loc) == "demo.mt:2:3"


@pytest.mark.parametrize(
    "src, value",
    [
        ("+5", 5),
        ("+0", 0),
        ("+1f", 31),
        ("+FF", 255),
        ("+'a", 97),
        ("+' ", 32),
    ],
)
def test_counts_wrap_previous_item(src, value):
    (item,) = parse_source(src)
    assert isinstance(item, Repeat)
    assert isinstance(item.target, PrimitiveOp)
    assert item.count_spec.value == value


def test_count_on_group_and_reference():
    group, ref = parse_source("(+-)3 #name2")
    assert isinstance(group.target, Group)
    assert group.count_spec.value == 3
    assert isinstance(ref.target, PathRef)
    assert ref.target.steps == ("name",)
    assert ref.count_spec.value == 2


@pytest.mark.parametrize(
    "src, fragment",
    [
        ("+123", "at most two hex digits"),
        ("+ 5", "Unexpected character '5'"),
        ("'a", "must directly follow"),
        ("+'", "expected a character"),
        ('"abc', "Unterminated string"),
        ('"\\q"', "Invalid escape"),
        (":{+}", "Expected a macro name"),
        (":a +", "Expected '{'"),
        (":a{+", "Unclosed body of macro 'a'"),
        ("+}", "Unexpected '}'"),
        ("{+}", "without a macro name"),
        ("#", "Expected a macro path"),
        ("#a/", "Expected a macro name after '/'"),
        ("use +", "Expected a macro reference"),
        ("use #^", "Cannot import a parent scope"),
        ("use #a5", "cannot be repeated"),
        ("(:a{+})", "not allowed inside '( )'"),
        ("(use #a)", "not allowed inside '( )'"),
        ("@", "Unexpected character"),
    ],
)
def test_lex_errors(src, fragment):
    with pytest.raises(LexError) as excinfo:
        parse_source(src, "bad.mt")
    assert fragment in str(excinfo.value)
    assert excinfo.value.location is not None


@pytest.mark.parametrize("src", ["(+", ")", "(+)+)", ":a{(+}"])
def test_unbalanced_parentheses_are_expansion_errors(src):
    with pytest.raises(ExpansionError):
        parse_source(src)


def test_string_escapes_and_bytes():
    (item,) = parse_source(r'"a\n\t\0\\\"z"')
    assert isinstance(item, StringLiteral)
    assert item.data == b'a\n\t\x00\\"z'


def test_non_byte_string_is_rejected():
    with pytest.raises(LexError):
        parse_source('"€"')


def test_macro_definitions_nest():
    (outer,) = parse_source(":outer{:inner{+} #inner}")
    assert isinstance(outer, MacroDef)
    assert outer.name == "outer"
    inner, ref = outer.body
    assert isinstance(inner, MacroDef) and inner.name == "inner"
    assert isinstance(ref, PathRef) and not ref.is_import


def test_references_and_imports():
    ref, imp = parse_source("#^^lib/print use #std/util")
    assert (ref.up, ref.steps, ref.is_import) == (2, ("lib", "print"), False)
    assert (imp.up, imp.steps, imp.is_import) == (0, ("std", "util"), True)
    assert str(ref) == "#^^lib/print"
    assert str(imp) == "use #std/util"


def test_pure_mode_reads_only_primitives():
    items = parse_source(':a{+} #a ? "x" +5 use', pure=True)
    assert [item.op for item in items] == [Op.INCREMENT, Op.INCREMENT]


def test_tokenize_marks_counts_only_after_items():
    tokens = Lexer("+2 :a{-}").tokenize()
    assert [tok.type for tok in tokens] == [
        "OP",
        "COUNT",
        "DEFINE",
        "LBRACE",
        "OP",
        "RBRACE",
    ]
