"""VERISM Lexer — Tokenizer with line/column tracking.

Produces a stream of tokens from state-machine source text.
No whitespace-sensitive parsing. `state`, `machine` and `fields` are
contextual keywords and lex as plain identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from verism.errors import SourceLocation, syntax_error, CompileError


class TokenType(Enum):
    # Keywords
    FN = auto()
    LET = auto()
    MUT = auto()
    IF = auto()
    ELSE = auto()
    TRUE = auto()
    FALSE = auto()
    RETURN = auto()
    WHILE = auto()
    SELF = auto()

    # Literals
    INT_LIT = auto()
    STRING_LIT = auto()

    # Identifier
    IDENT = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    EQ = auto()
    NEQ = auto()
    GTE = auto()
    LTE = auto()
    GT = auto()
    LT = auto()
    ARROW = auto()
    IMPLIES = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    AMP = auto()
    ASSIGN = auto()
    DOT = auto()
    DOUBLE_COLON = auto()
    HASH = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COLON = auto()
    COMMA = auto()
    SEMICOLON = auto()

    # Special
    EOF = auto()


KEYWORDS: dict[str, TokenType] = {
    "fn": TokenType.FN,
    "let": TokenType.LET,
    "mut": TokenType.MUT,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "return": TokenType.RETURN,
    "while": TokenType.WHILE,
    "self": TokenType.SELF,
}

# Single-character tokens that never start a longer operator.
_SIMPLE: dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.PERCENT,
    "#": TokenType.HASH,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ",": TokenType.COMMA,
    ";": TokenType.SEMICOLON,
    ".": TokenType.DOT,
}


@dataclass
class Token:
    type: TokenType
    value: str
    location: SourceLocation

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.location})"


class Lexer:
    """Tokenizer for state-machine source code."""

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

    def _read_string(self) -> Token:
        loc = self._loc()
        self._advance()  # opening quote
        value = ""
        while self.pos < len(self.source):
            ch = self._advance()
            if ch == '"':
                return Token(TokenType.STRING_LIT, value, loc)
            if ch == "\\":
                if self.pos >= len(self.source):
                    break
                next_ch = self._advance()
                escape_map = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}
                value += escape_map.get(next_ch, next_ch)
            else:
                value += ch
        raise CompileError(syntax_error("Unterminated string literal", loc))

    def _read_number(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and (self.source[self.pos].isdigit() or self.source[self.pos] == "_"):
            ch = self._advance()
            if ch != "_":
                value += ch
        return Token(TokenType.INT_LIT, value, loc)

    def _read_identifier(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and (self.source[self.pos].isalnum() or self.source[self.pos] == "_"):
            value += self._advance()
        token_type = KEYWORDS.get(value, TokenType.IDENT)
        return Token(token_type, value, loc)

    def _two(self, second: str, double: TokenType, single: Optional[TokenType], text: str, loc: SourceLocation) -> Token:
        """Lex `text` or `text + second`; single=None means the short form is illegal."""
        self._advance()
        if self._peek() == second:
            self._advance()
            return Token(double, text + second, loc)
        if single is None:
            raise CompileError(syntax_error(f"Unexpected character '{text}'", loc))
        return Token(single, text, loc)

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while self.pos < len(self.source):
            self._skip_whitespace_and_comments()
            if self.pos >= len(self.source):
                break

            ch = self._peek()
            loc = self._loc()

            if ch == '"':
                tokens.append(self._read_string())
            elif ch.isdigit():
                tokens.append(self._read_number())
            elif ch.isalpha() or ch == "_":
                tokens.append(self._read_identifier())
            elif ch in _SIMPLE:
                self._advance()
                tokens.append(Token(_SIMPLE[ch], ch, loc))
            elif ch == "-":
                tokens.append(self._two(">", TokenType.ARROW, TokenType.MINUS, "-", loc))
            elif ch == "=":
                self._advance()
                if self._peek() == "=" and self._peek_ahead() == ">":
                    self._advance()
                    self._advance()
                    tokens.append(Token(TokenType.IMPLIES, "==>", loc))
                elif self._peek() == "=":
                    self._advance()
                    tokens.append(Token(TokenType.EQ, "==", loc))
                else:
                    tokens.append(Token(TokenType.ASSIGN, "=", loc))
            elif ch == "!":
                tokens.append(self._two("=", TokenType.NEQ, TokenType.NOT, "!", loc))
            elif ch == ">":
                tokens.append(self._two("=", TokenType.GTE, TokenType.GT, ">", loc))
            elif ch == "<":
                tokens.append(self._two("=", TokenType.LTE, TokenType.LT, "<", loc))
            elif ch == "&":
                tokens.append(self._two("&", TokenType.AND, TokenType.AMP, "&", loc))
            elif ch == "|":
                tokens.append(self._two("|", TokenType.OR, None, "|", loc))
            elif ch == ":":
                tokens.append(self._two(":", TokenType.DOUBLE_COLON, TokenType.COLON, ":", loc))
            else:
                self._advance()
                raise CompileError(syntax_error(f"Unexpected character '{ch}'", loc))

        tokens.append(Token(TokenType.EOF, "", self._loc()))
        return tokens


def tokenize(source: str, filename: str = "<stdin>") -> list[Token]:
    """Convenience function to tokenize state-machine source code."""
    return Lexer(source, filename).tokenize()
