"""
Tolerant parser for the provider's dictionary-literal analysis strings.

The analysis model emits something that looks like a Python dict repr:

    {'intent_level': 'High', "reasoning": "Customer's budget is approved", 'total_score': 85}

Keys and values are quoted with either quote character, chosen per token, and a
value may contain the other quote character unescaped. Numbers, booleans and
None/null may appear bare, and older agents emit bare words for keys and
values too. A single regex cannot split this reliably, so the text is scanned
by a small pull tokenizer and parsed by recursive descent.

Tokenizer rules:
- A quoted span ends at the next occurrence of the *same* quote character
  (backslash escapes the next character). A value like "it's here" is fine.
- Bare tokens end at , } ] or a newline (values) or at : , } ] (keys). A comma
  inside a bare value only ends it when a key or closing brace follows.
- Whitespace between tokens is skipped; , and : are structural.

Errors never abort the parse. Each one is recorded with its cursor position
and the parser resumes at the next plausible key boundary, so one corrupted
field does not throw away the rest of the block.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

MAX_NESTING_DEPTH = 32

_QUOTES = ("'", '"')
_PUNCTUATION = {
    "{": "LBRACE",
    "}": "RBRACE",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ":": "COLON",
    ",": "COMMA",
}
# Characters that may legitimately follow a closing quote
_AFTER_CLOSE = frozenset(",:}]")

_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?$|^[-+]?\d+[eE][-+]?\d+$")
_BARE_KEY_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_ ]*\s*:")
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_LITERALS = {
    "True": True,
    "true": True,
    "False": False,
    "false": False,
    "None": None,
    "null": None,
}


class TokenKind(str, Enum):
    LBRACE = "LBRACE"
    RBRACE = "RBRACE"
    LBRACKET = "LBRACKET"
    RBRACKET = "RBRACKET"
    COLON = "COLON"
    COMMA = "COMMA"
    STRING = "STRING"
    BARE = "BARE"
    EOF = "EOF"


class ScanMode(str, Enum):
    """What the parser expects next; only changes where bare tokens stop."""
    KEY = "key"
    VALUE = "value"
    LIST_ITEM = "list_item"


@dataclass(frozen=True)
class LiteralParseError:
    message: str
    position: int

    def __str__(self) -> str:
        return f"{self.message} at position {self.position}"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Any
    text: str
    start: int
    end: int
    errors: tuple[LiteralParseError, ...] = ()


@dataclass(frozen=True)
class LiteralParseResult:
    values: dict[str, Any] = field(default_factory=dict)
    errors: tuple[LiteralParseError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


def _unescape(content: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), content)


def _convert_bare(text: str) -> Any:
    """Bare words become int/float/bool/None where they spell one, else stay text."""
    if text in _LITERALS:
        return _LITERALS[text]
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return text


def _describe(token: Token) -> str:
    if token.kind == TokenKind.EOF:
        return "end of input"
    shown = token.text if len(token.text) <= 40 else token.text[:37] + "..."
    return repr(shown)


class LiteralTokenizer:
    """
    Pull tokenizer over the literal text. Scanning is stateless with respect to
    the caller: lex(pos, mode) always returns the same token for the same
    arguments, so the parser can peek freely.

    Scanner states: outside a token, inside a single-quoted span, inside a
    double-quoted span, inside a bare word.
    """

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)

    def lex(self, pos: int, mode: ScanMode) -> Token:
        text = self.text
        i = pos
        # Outside-token state: skip whitespace, dispatch on the first character
        while i < self.length and text[i].isspace():
            i += 1
        if i >= self.length:
            return Token(TokenKind.EOF, None, "", i, i)

        ch = text[i]
        if ch in _PUNCTUATION:
            return Token(TokenKind(_PUNCTUATION[ch]), ch, ch, i, i + 1)
        if ch in _QUOTES:
            return self._scan_quoted(i)
        return self._scan_bare(i, mode)

    # -- quoted state -------------------------------------------------------

    def _find_quote(self, i: int, quote: str, stop: Optional[int] = None) -> int:
        end = self.length if stop is None else stop
        while i < end:
            c = self.text[i]
            if c == "\\":
                i += 2
                continue
            if c == quote:
                return i
            i += 1
        return -1

    def _closes_here(self, j: int) -> bool:
        """A closing quote must be followed by a delimiter or the end of the text."""
        k = j + 1
        while k < self.length and self.text[k].isspace():
            k += 1
        return k >= self.length or self.text[k] in _AFTER_CLOSE

    def _quoted_token(self, start: int, close: int, errors: list[LiteralParseError]) -> Token:
        raw = self.text[start:close + 1]
        return Token(
            TokenKind.STRING, _unescape(self.text[start + 1:close]), raw, start, close + 1, tuple(errors),
        )

    def _unterminated(self, start: int, end: int, quote: str) -> Token:
        """The span runs to end; a trailing comma is left for the parser as a delimiter."""
        content_end = end
        while content_end > start + 1 and self.text[content_end - 1].isspace():
            content_end -= 1
        if content_end > start + 1 and self.text[content_end - 1] == ",":
            content_end -= 1
            end = content_end
        content = self.text[start + 1:content_end].rstrip()
        error = LiteralParseError(f"unterminated {quote} quote", start)
        return Token(TokenKind.STRING, _unescape(content), self.text[start:end], start, end, (error,))

    def _scan_quoted(self, start: int) -> Token:
        quote = self.text[start]
        close = self._find_quote(start + 1, quote)

        if close == -1:
            newline = self.text.find("\n", start)
            return self._unterminated(start, newline if newline != -1 else self.length, quote)

        if self._closes_here(close):
            return self._quoted_token(start, close, [])

        # The matching quote is followed by text, not a delimiter. If a line
        # break came first, the span most likely lost its closing quote and the
        # "match" is the opening quote of the next key.
        newline = self.text.find("\n", start, close)
        if newline != -1:
            return self._unterminated(start, newline, quote)

        # Same line: treat the stray quote as part of the value when a proper
        # closing quote exists later on the line.
        line_end = self.text.find("\n", close)
        line_end = self.length if line_end == -1 else line_end
        candidate = close
        while True:
            candidate = self._find_quote(candidate + 1, quote, stop=line_end)
            if candidate == -1:
                break
            if self._closes_here(candidate):
                error = LiteralParseError(f"unescaped {quote} inside quoted string", close)
                return self._quoted_token(start, candidate, [error])

        # Nothing better on this line; close at the first match and let the
        # parser report whatever follows.
        return self._quoted_token(start, close, [])

    # -- bare state ---------------------------------------------------------

    def _comma_ends_value(self, comma: int) -> bool:
        """A comma ends a bare value when a key, a closing brace or the end follows."""
        k = comma + 1
        while k < self.length and self.text[k].isspace():
            k += 1
        if k >= self.length or self.text[k] in "},":
            return True
        c = self.text[k]
        if c in _QUOTES:
            close = self._find_quote(k + 1, c)
            if close == -1:
                return False
            after = close + 1
            while after < self.length and self.text[after].isspace():
                after += 1
            return after < self.length and self.text[after] == ":"
        return bool(_BARE_KEY_RE.match(self.text, k))

    def _scan_bare(self, start: int, mode: ScanMode) -> Token:
        text = self.text
        i = start
        while i < self.length:
            c = text[i]
            if c == "\n" or c in "}]":
                break
            if mode == ScanMode.KEY and c in ":,{[":
                break
            if mode == ScanMode.LIST_ITEM and c == ",":
                break
            if mode == ScanMode.VALUE and c == "," and self._comma_ends_value(i):
                break
            i += 1

        raw = text[start:i].rstrip()
        end = start + len(raw)
        try:
            value = _convert_bare(raw)
        except ValueError:
            # int() refuses digit strings past the interpreter's conversion limit
            error = LiteralParseError("numeric literal too long", start)
            return Token(TokenKind.BARE, raw, raw, start, end, (error,))
        return Token(TokenKind.BARE, value, raw, start, end)


_MISSING = object()


class LiteralDictParser:
    """Recursive-descent parser over LiteralTokenizer tokens with error recovery."""

    def __init__(self, text: str):
        self.text = text
        self.tokenizer = LiteralTokenizer(text)
        self.pos = 0
        self.depth = 0
        self.errors: list[LiteralParseError] = []

    # -- token plumbing -----------------------------------------------------

    def _peek(self, mode: ScanMode = ScanMode.KEY) -> Token:
        return self.tokenizer.lex(self.pos, mode)

    def _take(self, token: Token) -> None:
        self.pos = token.end
        self.errors.extend(token.errors)

    def _error(self, message: str, position: int) -> None:
        self.errors.append(LiteralParseError(message, position))

    def _skip_to_boundary(self) -> None:
        """Drop tokens until the next , or closing bracket at the current nesting level."""
        nesting = 0
        while True:
            token = self._peek()
            if token.kind == TokenKind.EOF:
                return
            if nesting == 0 and token.kind in (TokenKind.COMMA, TokenKind.RBRACE, TokenKind.RBRACKET):
                return
            if token.kind in (TokenKind.LBRACE, TokenKind.LBRACKET):
                nesting += 1
            elif token.kind in (TokenKind.RBRACE, TokenKind.RBRACKET):
                nesting -= 1
            self._take(token)

    def _skip_balanced(self) -> None:
        """Drop an opening bracket and everything up to its matching closer."""
        nesting = 0
        while True:
            token = self._peek()
            if token.kind == TokenKind.EOF:
                return
            if token.kind in (TokenKind.LBRACE, TokenKind.LBRACKET):
                nesting += 1
            elif token.kind in (TokenKind.RBRACE, TokenKind.RBRACKET):
                nesting -= 1
            self._take(token)
            if nesting == 0:
                return

    # -- grammar ------------------------------------------------------------

    def parse(self) -> dict[str, Any]:
        first = self._peek()
        if first.kind == TokenKind.EOF:
            self._error("empty analysis literal", 0)
            return {}

        if first.kind == TokenKind.LBRACE:
            self._take(first)
            values = self._parse_members(opening=first.start)
        else:
            self._error("missing opening '{'", first.start)
            values = self._parse_members(opening=None)

        trailing = self._peek()
        if trailing.kind != TokenKind.EOF:
            self._error(f"unexpected trailing content {_describe(trailing)}", trailing.start)
        return values

    def _parse_members(self, opening: Optional[int]) -> dict[str, Any]:
        members: dict[str, Any] = {}
        while True:
            token = self._peek()

            if token.kind == TokenKind.RBRACE:
                self._take(token)
                return members
            if token.kind == TokenKind.EOF:
                if opening is not None:
                    self._error(f"unbalanced braces: '{{' at position {opening} is never closed", token.start)
                return members
            if token.kind == TokenKind.COMMA:
                self._take(token)
                continue
            if token.kind not in (TokenKind.STRING, TokenKind.BARE):
                self._error(f"unexpected {_describe(token)} where a key was expected", token.start)
                self._take(token)
                self._skip_to_boundary()
                continue

            self._take(token)
            key = token.value if token.kind == TokenKind.STRING else token.text

            colon = self._peek()
            if colon.kind != TokenKind.COLON:
                self._error(f"key {key!r} has no value", colon.start)
                self._skip_to_boundary()
                continue
            self._take(colon)

            value = self._parse_value(key, ScanMode.VALUE)
            if value is _MISSING:
                continue
            members[key] = value

            after = self._peek()
            if after.kind in (TokenKind.COMMA, TokenKind.RBRACE, TokenKind.EOF):
                continue
            if after.kind in (TokenKind.STRING, TokenKind.BARE):
                # Missing comma between pairs; parse the next pair as normal
                self._error(f"missing ',' before {_describe(after)}", after.start)
                continue
            self._error(f"unexpected {_describe(after)} after value of {key!r}", after.start)
            self._take(after)
            self._skip_to_boundary()

    def _parse_value(self, key: Any, mode: ScanMode) -> Any:
        token = self._peek(mode)

        if token.kind in (TokenKind.LBRACE, TokenKind.LBRACKET):
            if self.depth >= MAX_NESTING_DEPTH:
                self._error(f"nesting deeper than {MAX_NESTING_DEPTH} levels", token.start)
                self._skip_balanced()
                return _MISSING
            self._take(token)
            self.depth += 1
            try:
                if token.kind == TokenKind.LBRACE:
                    return self._parse_members(opening=token.start)
                return self._parse_list(opening=token.start)
            finally:
                self.depth -= 1

        if token.kind in (TokenKind.STRING, TokenKind.BARE):
            self._take(token)
            return token.value

        self._error(f"key {key!r} has no value", token.start)
        return _MISSING

    def _parse_list(self, opening: int) -> list[Any]:
        items: list[Any] = []
        while True:
            token = self._peek(ScanMode.LIST_ITEM)
            if token.kind == TokenKind.RBRACKET:
                self._take(token)
                return items
            if token.kind == TokenKind.EOF:
                self._error(f"unbalanced brackets: '[' at position {opening} is never closed", token.start)
                return items
            if token.kind == TokenKind.RBRACE:
                self._error(f"unbalanced brackets: expected ']' for '[' at position {opening}", token.start)
                return items
            if token.kind in (TokenKind.COMMA, TokenKind.COLON):
                if token.kind == TokenKind.COLON:
                    self._error("unexpected ':' inside list", token.start)
                self._take(token)
                continue

            value = self._parse_value(len(items), ScanMode.LIST_ITEM)
            if value is not _MISSING:
                items.append(value)


def parse_literal_dict(text: Optional[str]) -> LiteralParseResult:
    """
    Parse a dictionary-literal string into an ordered mapping.

    Strict JSON is accepted as-is; everything else goes through the tolerant
    tokenizer. Never raises for malformed text.

    Returns:
        LiteralParseResult with the recovered values and every recoverable error.
    """
    if text is None or not text.strip():
        return LiteralParseResult(values={}, errors=(LiteralParseError("empty analysis literal", 0),))

    try:
        decoded = json.loads(text)
    except (ValueError, RecursionError):
        decoded = None
    if isinstance(decoded, dict):
        return LiteralParseResult(values=decoded)

    parser = LiteralDictParser(text)
    values = parser.parse()
    if parser.errors:
        logger.info(
            "Recovered analysis literal with %d parse error(s); first: %s",
            len(parser.errors), parser.errors[0],
            extra={"position": parser.errors[0].position},
        )
    return LiteralParseResult(values=values, errors=tuple(parser.errors))
