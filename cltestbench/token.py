"""Tokenizer for testbench command lines."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

_WHITESPACE = " \t\n\r"
_NON_WHITESPACE = re.compile(r"[^ \t\n\r]")
# Characters that end a bare word: anything that is not alphanumeric or one of
# the path-friendly punctuation marks.
_SEPARATOR = re.compile(r"[^A-Za-z0-9_\-+~./\\]")
_SPECIALS = {
    "=": "EQUAL",
    ",": "COMMA",
    "(": "OPEN_PAREN",
    ")": "CLOSE_PAREN",
}
_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


class TokenType(enum.Enum):
    """Kinds of token produced by the tokenizer."""

    INVALID = "(invalid)"
    CONSTANT = "Constant"
    STRING = "String"
    TEXT = "Text"
    COMMA = "Comma"
    EQUAL = "Equal"
    OPEN_PAREN = "OpenParen"
    CLOSE_PAREN = "CloseParen"
    END = "End"


@dataclass(frozen=True)
class Token:
    """A token: its type and the span it covers on the input line."""

    type: TokenType = TokenType.INVALID
    begin: int = 0
    end: int = 0

    def __bool__(self) -> bool:
        return self.type is not TokenType.INVALID

    def text(self, line: str) -> str:
        """Return the part of ``line`` this token was parsed from."""
        if self.end < self.begin:
            raise ValueError("token ends before it begins")
        return line[self.begin:self.end]

    @property
    def span(self) -> tuple[int, int]:
        return self.begin, self.end

    def __str__(self) -> str:
        return "{" + self.type.value + "}"


class CommandError(Exception):
    """A command could not be carried out; may point at a span of the line."""

    def __init__(self, message: str, token: Token | None = None) -> None:
        super().__init__(message)
        self.message = message
        if token is not None:
            self.begin, self.end = token.begin, token.end
        else:
            self.begin = self.end = 0

    @property
    def has_location_info(self) -> bool:
        return self.end > self.begin


def _looks_like_number(text: str) -> bool:
    if text[:1] in ("-", "+"):
        text = text[1:]
    return text[:1].isdigit() and text[:1].isascii()


def _parse_token(line: str, index: int) -> Token:
    match = _NON_WHITESPACE.search(line, index)
    if match is None:
        return Token(TokenType.END, index, index)
    start = match.start()

    first = line[start]
    if first in _SPECIALS:
        return Token(TokenType[_SPECIALS[first]], start, start + 1)

    if first == '"':
        escape = False
        for offset, char in enumerate(line[start + 1:], start + 1):
            if char == '"' and not escape:
                # Include the closing quote in the token.
                return Token(TokenType.TEXT, start, offset + 1)
            escape = char == "\\" and not escape
        return Token(TokenType.INVALID, start, len(line))

    separator = _SEPARATOR.search(line, start)
    end = separator.start() if separator else len(line)
    kind = TokenType.CONSTANT if _looks_like_number(line[start:]) else TokenType.STRING
    return Token(kind, start, end)


def trim_whitespace(text: str) -> str:
    """Strip spaces, tabs and line breaks from both ends."""
    return text.strip(_WHITESPACE)


class TokenStream:
    """A stream of tokens over one command line, with one token of lookahead."""

    def __init__(self, line: str) -> None:
        self._line = line
        self._index = 0
        self._token = _parse_token(line, 0)
        self._next = Token()

    def __bool__(self) -> bool:
        return self._token.type not in (TokenType.END, TokenType.INVALID)

    def token_text(self, token: Token) -> str:
        """Return the source text of ``token``."""
        return token.text(self._line)

    def unquoted_text(self, token: Token) -> str:
        """Strip the quotes from a text token and resolve its escapes."""
        if token.type is not TokenType.TEXT:
            raise ValueError("only text tokens can be unquoted")
        source = self.token_text(token)[1:-1]
        result = []
        escape = False
        for char in source:
            if escape:
                result.append(_ESCAPES.get(char, ""))
                escape = False
            elif char == "\\":
                escape = True
            else:
                result.append(char)
        return "".join(result)

    def next(self) -> Token:
        """Peek at the token after the current one."""
        if not self:
            return Token()
        if not self._next:
            self._next = _parse_token(self._line, self._token.end)
        return self._next

    def current(self) -> Token:
        return self._token

    def consume(self) -> Token:
        """Return the current token and advance past it."""
        token = self._token
        self.advance()
        return token

    def advance(self) -> None:
        """Move to the next token; the end token is never passed."""
        if self._token.type is TokenType.END:
            return
        self._token = self.next()
        self._next = Token()
        self._index = self._token.end

    def expect(self, token_type: TokenType) -> Token:
        """Consume the current token if it has ``token_type``; else an invalid token."""
        if self._token.type is not token_type:
            return Token()
        return self.consume()

    def remaining_text(self) -> str:
        """Text after the current token, untrimmed."""
        return self._line[self._index:]

    def remaining_text_as_token(self) -> Token:
        """A string token spanning the text after the current token."""
        if not self._token or self._token.type is TokenType.END:
            return self._token
        return Token(TokenType.STRING, self._index, len(self._line))

    def current_text(self) -> str:
        """Text from the start of the current token to the end of the line."""
        return self._line[self._token.begin:]

    def current_text_as_token(self) -> Token:
        """A string token spanning the current token and all text after it."""
        if not self._token or self._token.type is TokenType.END:
            return self._token
        return Token(TokenType.STRING, self._token.begin, len(self._line))

    def text(self) -> str:
        """The whole line this stream was built from."""
        return self._line