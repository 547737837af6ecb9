"""Shared constant values for the macrotape compiler and tape machine."""

# Artifact tags for the primitive instruction set.
SHIFT_RIGHT = 0x00
SHIFT_LEFT = 0x01
INCREMENT = 0x02
DECREMENT = 0x03
LOOP_OPEN = 0x04
LOOP_CLOSE = 0x05
OUTPUT = 0x06
INPUT = 0x07
DEBUG = 0x08

PRIMITIVE_CHARS = {
    ">": SHIFT_RIGHT,
    "<": SHIFT_LEFT,
    "+": INCREMENT,
    "-": DECREMENT,
    "[": LOOP_OPEN,
    "]": LOOP_CLOSE,
    ".": OUTPUT,
    ",": INPUT,
}

COMMENT_CHAR = "%"
DEBUG_CHAR = "?"
DEFINE_MARKER = ":"
REFERENCE_MARKER = "#"
UP_MARKER = "^"
PATH_SEPARATOR = "/"
CHAR_COUNT_MARKER = "'"
IMPORT_KEYWORD = "use"

STRING_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "0": "\0",
    "\\": "\\",
    '"': '"',
}

DEFAULT_ROOT = "src"
LIBRARY_ROOT = "std"

ARTIFACT_MAGIC = b"\xbf\xff\xbb\xff"

SCOPE_COLORS = {
    "root": "#90CAF9",
    "macro": "#8BC34A",
    "alias": "#FFEB3B",
}

DUMP_WIDTH = 16
EOF_POLICIES = ("zero", "keep", "fault")
DEFAULT_EOF_POLICY = "zero"

LOGBOOK_FILE = "macrotape.logbook.jsonl"
KEY_FILE = "macrotape_private_key.pem"
PUB_FILE = "macrotape_public_key.pem"
REPL_HISTORY_LIMIT = 10

__all__ = [
    "SHIFT_RIGHT",
    "SHIFT_LEFT",
    "INCREMENT",
    "DECREMENT",
    "LOOP_OPEN",
    "LOOP_CLOSE",
    "OUTPUT",
    "INPUT",
    "DEBUG",
    "PRIMITIVE_CHARS",
    "COMMENT_CHAR",
    "DEBUG_CHAR",
    "DEFINE_MARKER",
    "REFERENCE_MARKER",
    "UP_MARKER",
    "PATH_SEPARATOR",
    "CHAR_COUNT_MARKER",
    "IMPORT_KEYWORD",
    "STRING_ESCAPES",
    "DEFAULT_ROOT",
    "LIBRARY_ROOT",
    "ARTIFACT_MAGIC",
    "SCOPE_COLORS",
    "DUMP_WIDTH",
    "EOF_POLICIES",
    "DEFAULT_EOF_POLICY",
    "LOGBOOK_FILE",
    "KEY_FILE",
    "PUB_FILE",
    "REPL_HISTORY_LIMIT",
]
