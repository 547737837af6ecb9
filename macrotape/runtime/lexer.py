"""Tokenizer and item reader for macrotape source text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

from .. import constants as _c
from .core import (
    CountSpec,
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
)

HEX_DIGITS = "0123456789abcdefABCDEF"


@dataclass
class Token:
    type: str
    value: Any
    location: SourceLocation


def _is_name_char(ch: str) -> bool:
    return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z")


class Lexer:
    def __init__(self, text: str, filename: str = "<src>", pure: bool = False):
        self.text = text
        self.filename = filename
        self.pure = pure
        self.index = 0
        self.line = 1
        self.column = 1
        self._item_end = -1

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self, offset: int = 0) -> str:
        pos = self.index + offset
        if pos >= len(self.text):
            return ""
        return self.text[pos]

    def _advance(self) -> str:
        ch = self.text[self.index]
        self.index += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _location(self) -> SourceLocation:
        return SourceLocation(self.filename, self.line, self.column)

    def tokenize(self) -> List[Token]:
        if self.pure:
            return self._tokenize_pure()

        tokens: List[Token] = []
        append = tokens.append

        while not self._eof:
            ch = self._peek()
            loc = self._location()

            if self.index == self._item_end and (
                ch == _c.CHAR_COUNT_MARKER or ch in HEX_DIGITS
            ):
                append(self._consume_count())
                continue
            if ch == _c.CHAR_COUNT_MARKER:
                raise LexError(
                    f"Repetition count must directly follow an item at {loc}", loc
                )
            if ch.isspace():
                self._advance()
                continue
            if ch == _c.COMMENT_CHAR:
                while not self._eof and self._peek() != "\n":
                    self._advance()
                continue
            if ch in _c.PRIMITIVE_CHARS:
                self._advance()
                append(self._item(Token("OP", Op(_c.PRIMITIVE_CHARS[ch]), loc)))
                continue
            if ch == _c.DEBUG_CHAR:
                self._advance()
                append(self._item(Token("DEBUG", None, loc)))
                continue
            if ch == '"':
                append(self._item(self._consume_string()))
                continue
            if ch == _c.REFERENCE_MARKER:
                append(self._item(self._consume_reference()))
                continue
            if ch == _c.DEFINE_MARKER:
                self._advance()
                name = self._consume_name()
                if not name:
                    raise LexError(f"Expected a macro name after ':' at {loc}", loc)
                append(self._plain(Token("DEFINE", name, loc)))
                continue
            if ch in "{}()":
                self._advance()
                kind = {"{": "LBRACE", "}": "RBRACE", "(": "LPAREN", ")": "RPAREN"}[ch]
                token = Token(kind, ch, loc)
                append(self._item(token) if kind == "RPAREN" else self._plain(token))
                continue
            if self._at_keyword(_c.IMPORT_KEYWORD):
                for _ in _c.IMPORT_KEYWORD:
                    self._advance()
                append(self._plain(Token("USE", None, loc)))
                continue
            raise LexError(f"Unexpected character {ch!r} at {loc}", loc)

        return tokens

    def _tokenize_pure(self) -> List[Token]:
        tokens: List[Token] = []
        while not self._eof:
            loc = self._location()
            ch = self._advance()
            if ch in _c.PRIMITIVE_CHARS:
                tokens.append(Token("OP", Op(_c.PRIMITIVE_CHARS[ch]), loc))
        return tokens

    # -- helpers -----------------------------------------------------------

    def _item(self, token: Token) -> Token:
        self._item_end = self.index
        return token

    def _plain(self, token: Token) -> Token:
        self._item_end = -1
        return token

    def _at_keyword(self, word: str) -> bool:
        if not self.text.startswith(word, self.index):
            return False
        follow = self._peek(len(word))
        return follow == "" or follow.isspace() or follow == _c.REFERENCE_MARKER

    def _consume_name(self) -> str:
        chars = []
        while not self._eof and _is_name_char(self._peek()):
            chars.append(self._advance())
        return "".join(chars)

    def _consume_count(self) -> Token:
        loc = self._location()
        self._item_end = -1
        if self._peek() == _c.CHAR_COUNT_MARKER:
            self._advance()
            if self._eof or self._peek() == "\n":
                raise LexError(
                    f"Invalid repetition count: expected a character after "
                    f"{_c.CHAR_COUNT_MARKER!r} at {loc}",
                    loc,
                )
            ch = self._advance()
            if ord(ch) > 0xFF:
                raise LexError(
                    f"Invalid repetition count: {ch!r} is not a byte value at {loc}",
                    loc,
                )
            return Token("COUNT", CountSpec("char", ch), loc)

        digits = self._advance()
        if self._peek() and self._peek() in HEX_DIGITS:
            digits += self._advance()
            if self._peek() and self._peek() in HEX_DIGITS:
                bad = self._location()
                raise LexError(
                    f"Invalid repetition count digit {self._peek()!r}: counts are "
                    f"at most two hex digits at {bad}",
                    bad,
                )
        return Token("COUNT", CountSpec("hex", digits), loc)

    def _consume_string(self) -> Token:
        loc = self._location()
        self._advance()
        data = bytearray()
        while not self._eof:
            ch = self._advance()
            if ch == '"':
                return Token("STRING", bytes(data), loc)
            if ch == "\\":
                if self._eof:
                    break
                esc_loc = self._location()
                esc = self._advance()
                if esc not in _c.STRING_ESCAPES:
                    raise LexError(
                        f"Invalid escape sequence '\\{esc}' at {esc_loc}", esc_loc
                    )
                ch = _c.STRING_ESCAPES[esc]
            if ord(ch) > 0xFF:
                raise LexError(
                    f"String literal character {ch!r} is not a byte value at {loc}",
                    loc,
                )
            data.append(ord(ch))
        raise LexError(f"Unterminated string literal at {loc}", loc)

    def _consume_reference(self) -> Token:
        loc = self._location()
        self._advance()
        up = 0
        while self._peek() == _c.UP_MARKER:
            self._advance()
            up += 1

        steps = []
        name = self._consume_name()
        if name:
            steps.append(name)
            while self._peek() == _c.PATH_SEPARATOR:
                self._advance()
                name = self._consume_name()
                if not name:
                    bad = self._location()
                    raise LexError(
                        f"Expected a macro name after '{_c.PATH_SEPARATOR}' at {bad}",
                        bad,
                    )
                steps.append(name)
        elif up == 0:
            raise LexError(f"Expected a macro path after '#' at {loc}", loc)

        return Token("REF", (up, tuple(steps)), loc)


def read_items(tokens: List[Token]) -> tuple:
    """Assemble a flat token list into nested lexical items."""

    # Each frame: (kind, items, opening token)
    frames: list[tuple[str, list, Token | None]] = [("root", [], None)]
    pos = 0
    count = len(tokens)

    while pos < count:
        token = tokens[pos]
        pos += 1
        kind, items, _ = frames[-1]
        loc = token.location

        if token.type == "OP":
            items.append(PrimitiveOp(token.value, loc))
        elif token.type == "DEBUG":
            items.append(DebugMarker(loc))
        elif token.type == "STRING":
            items.append(StringLiteral(token.value, loc))
        elif token.type == "REF":
            up, steps = token.value
            items.append(PathRef(up, steps, False, loc))
        elif token.type in ("USE", "DEFINE") and kind == "group":
            raise LexError(
                f"Definitions and imports are not allowed inside '( )' at {loc}", loc
            )
        elif token.type == "USE":
            if pos >= count or tokens[pos].type != "REF":
                raise LexError(
                    f"Expected a macro reference after '{_c.IMPORT_KEYWORD}' at {loc}",
                    loc,
                )
            up, steps = tokens[pos].value
            if not steps:
                raise LexError(f"Cannot import a parent scope at {loc}", loc)
            pos += 1
            if pos < count and tokens[pos].type == "COUNT":
                raise LexError(f"An import cannot be repeated at {loc}", loc)
            items.append(PathRef(up, steps, True, loc))
        elif token.type == "DEFINE":
            if pos >= count or tokens[pos].type != "LBRACE":
                raise LexError(f"Expected '{{' after macro name at {loc}", loc)
            pos += 1
            frames.append(("macro", [], token))
        elif token.type == "LBRACE":
            raise LexError(f"Unexpected '{{' without a macro name at {loc}", loc)
        elif token.type == "RBRACE":
            if kind == "group":
                opener = frames[-1][2].location
                raise ExpansionError(f"Unmatched '(' at {opener}", opener)
            if kind != "macro":
                raise LexError(f"Unexpected '}}' at {loc}", loc)
            _, body, opener = frames.pop()
            frames[-1][1].append(MacroDef(opener.value, tuple(body), opener.location))
        elif token.type == "LPAREN":
            frames.append(("group", [], token))
        elif token.type == "RPAREN":
            if kind != "group":
                raise ExpansionError(f"Unmatched ')' at {loc}", loc)
            _, body, opener = frames.pop()
            frames[-1][1].append(Group(tuple(body), opener.location))
        elif token.type == "COUNT":
            target = items.pop()
            items.append(Repeat(token.value, target, target.location))
        else:  # pragma: no cover - the lexer emits no other token types
            raise LexError(f"Unknown token {token.type} at {loc}", loc)

    if len(frames) > 1:
        kind, _, opener = frames[-1]
        if kind == "group":
            raise ExpansionError(f"Unmatched '(' at {opener.location}", opener.location)
        raise LexError(
            f"Unclosed body of macro '{opener.value}' opened at {opener.location}",
            opener.location,
        )

    return tuple(frames[0][1])


def parse_source(text: str, filename: str = "<src>", pure: bool = False) -> tuple:
    """Tokenize ``text`` and return its top-level lexical items."""

    return read_items(Lexer(text, filename, pure=pure).tokenize())


__all__ = [
    "Lexer",
    "Token",
    "parse_source",
    "read_items",
]
