"""revlang lexer: tokenizer with line/column tracking.

Produces a stream of tokens from revlang source. Whitespace and newlines
only separate tokens; statement boundaries come from the grammar.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from revlang.errors import SourceLocation, syntax_error, CompileError


class TokenType(Enum):
    # Keywords
    PROCEDURE = auto()
    IF = auto()
    ELSE = auto()
    ASSERT = auto()
    CALL = auto()
    UNCALL = auto()
    LOCAL = auto()
    DELOCAL = auto()
    FROM = auto()
    DO = auto()
    LOOP = auto()
    UNTIL = auto()
    TRUE = auto()
    FALSE = auto()

    # Literals
    INT_LIT = auto()

    # Identifier
    IDENT = auto()

    # Expression operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    AMP = auto()
    PIPE = auto()
    CARET = auto()
    TILDE = auto()
    SHL = auto()
    SHR = auto()
    EQ = auto()
    NEQ = auto()
    GTE = auto()
    LTE = auto()
    GT = auto()
    LT = auto()
    AND = auto()
    OR = auto()
    NOT = auto()

    # Mutation operators
    ASSIGN = auto()
    PLUS_ASSIGN = auto()
    MINUS_ASSIGN = auto()
    XOR_ASSIGN = auto()
    STAR_ASSIGN = auto()
    SLASH_ASSIGN = auto()
    PERCENT_ASSIGN = auto()
    AND_ASSIGN = auto()
    OR_ASSIGN = auto()
    SHL_ASSIGN = auto()
    SHR_ASSIGN = auto()
    SWAP = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COMMA = auto()
    SEMICOLON = auto()

    # Special
    EOF = auto()


KEYWORDS: dict[str, TokenType] = {
    "procedure": TokenType.PROCEDURE,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "assert": TokenType.ASSERT,
    "call": TokenType.CALL,
    "uncall": TokenType.UNCALL,
    "local": TokenType.LOCAL,
    "delocal": TokenType.DELOCAL,
    "from": TokenType.FROM,
    "do": TokenType.DO,
    "loop": TokenType.LOOP,
    "until": TokenType.UNTIL,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
}

# Longest symbols first so that "<=>" wins over "<=" and "<<=" over "<<".
SYMBOLS: list[tuple[str, TokenType]] = [
    ("<=>", TokenType.SWAP),
    ("<<=", TokenType.SHL_ASSIGN),
    (">>=", TokenType.SHR_ASSIGN),
    ("<<", TokenType.SHL),
    (">>", TokenType.SHR),
    ("<=", TokenType.LTE),
    (">=", TokenType.GTE),
    ("==", TokenType.EQ),
    ("!=", TokenType.NEQ),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    ("+=", TokenType.PLUS_ASSIGN),
    ("-=", TokenType.MINUS_ASSIGN),
    ("^=", TokenType.XOR_ASSIGN),
    ("*=", TokenType.STAR_ASSIGN),
    ("/=", TokenType.SLASH_ASSIGN),
    ("%=", TokenType.PERCENT_ASSIGN),
    ("&=", TokenType.AND_ASSIGN),
    ("|=", TokenType.OR_ASSIGN),
    ("<", TokenType.LT),
    (">", TokenType.GT),
    ("=", TokenType.ASSIGN),
    ("!", TokenType.NOT),
    ("+", TokenType.PLUS),
    ("-", TokenType.MINUS),
    ("*", TokenType.STAR),
    ("/", TokenType.SLASH),
    ("%", TokenType.PERCENT),
    ("&", TokenType.AMP),
    ("|", TokenType.PIPE),
    ("^", TokenType.CARET),
    ("~", TokenType.TILDE),
    ("{", TokenType.LBRACE),
    ("}", TokenType.RBRACE),
    ("(", TokenType.LPAREN),
    (")", TokenType.RPAREN),
    ("[", TokenType.LBRACKET),
    ("]", TokenType.RBRACKET),
    (",", TokenType.COMMA),
    (";", TokenType.SEMICOLON),
]

ASSIGN_TOKENS = frozenset({
    TokenType.ASSIGN, TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN,
    TokenType.XOR_ASSIGN, TokenType.STAR_ASSIGN, TokenType.SLASH_ASSIGN,
    TokenType.PERCENT_ASSIGN, TokenType.AND_ASSIGN, TokenType.OR_ASSIGN,
    TokenType.SHL_ASSIGN, TokenType.SHR_ASSIGN,
})


@dataclass
class Token:
    type: TokenType
    value: str
    location: SourceLocation

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.location})"


class Lexer:
    """Tokenizer for revlang source code."""

    def __init__(self, source: str, filename: str = "<stdin>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1

    def _loc(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.filename)

    def _peek(self) -> Optional[str]:
        if self.pos < len(self.source):
            return self.source[self.pos]
        return None

    def _peek_ahead(self, offset: int = 1) -> Optional[str]:
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return None

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _skip_whitespace_and_comments(self) -> None:
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch in (" ", "\t", "\r", "\n"):
                self._advance()
            elif ch == "/" and self._peek_ahead() == "/":
                while self.pos < len(self.source) and self.source[self.pos] != "\n":
                    self._advance()
            elif ch == "/" and self._peek_ahead() == "*":
                loc = self._loc()
                self._advance()
                self._advance()
                while True:
                    if self.pos >= len(self.source):
                        raise CompileError(syntax_error("Unterminated block comment", loc))
                    if self.source[self.pos] == "*" and self._peek_ahead() == "/":
                        self._advance()
                        self._advance()
                        break
                    self._advance()
            else:
                break

    def _read_number(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and self.source[self.pos].isdigit():
            value += self._advance()
        if self.pos < len(self.source) and (self.source[self.pos].isalpha() or self.source[self.pos] == "_"):
            raise CompileError(syntax_error(
                f"Invalid number literal '{value}{self.source[self.pos]}'", loc))
        return Token(TokenType.INT_LIT, value, loc)

    def _read_identifier(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and (self.source[self.pos].isalnum() or self.source[self.pos] == "_"):
            value += self._advance()
        token_type = KEYWORDS.get(value, TokenType.IDENT)
        return Token(token_type, value, loc)

    def _read_symbol(self) -> Token:
        loc = self._loc()
        for text, token_type in SYMBOLS:
            if self.source.startswith(text, self.pos):
                for _ in text:
                    self._advance()
                return Token(token_type, text, loc)
        ch = self._advance()
        raise CompileError(syntax_error(f"Unexpected character '{ch}'", loc))

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while self.pos < len(self.source):
            self._skip_whitespace_and_comments()
            if self.pos >= len(self.source):
                break

            ch = self._peek()
            if ch.isdigit():
                tokens.append(self._read_number())
            elif ch.isalpha() or ch == "_":
                tokens.append(self._read_identifier())
            else:
                tokens.append(self._read_symbol())

        tokens.append(Token(TokenType.EOF, "", self._loc()))
        return tokens


def tokenize(source: str, filename: str = "<stdin>") -> list[Token]:
    """Convenience function to tokenize revlang source code."""
    return Lexer(source, filename).tokenize()
