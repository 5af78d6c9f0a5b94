"""
Scans Carrion source text into a flat list of tokens.

Indentation is significant: the lexer keeps a stack of open indentation
widths and emits INDENT/DEDENT tokens when a logical line starts deeper or
shallower than the current block. Newlines inside brackets are ignored, as
are blank and comment-only lines.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from carrion.carrion_datatypes import LexError


class TokenType(Enum):
    IDENTIFIER = "identifier"
    INTEGER = "integer-literal"
    FLOAT = "float-literal"
    STRING = "string-literal"
    KEYWORD = "keyword"
    OPERATOR = "operator"
    DELIMITER = "delimiter"
    INDENT = "indent"
    DEDENT = "dedent"
    NEWLINE = "newline"
    EOF = "end-of-file"


KEYWORDS = frozenset({
    "if", "otherwise", "else",
    "True", "true", "False", "false",
    "and", "or", "not",
    "return",
    "while", "for", "in",
})

# Longest match first
OPERATORS = (
    "**", "==", "!=", "<=", ">=", "+=", "-=", "*=", "/=", "++", "--",
    "+", "-", "*", "/", "%", "=", "<", ">",
)

DELIMITERS = frozenset("()[]{},:;")
OPENING = "([{"
CLOSING = ")]}"

ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}

TAB_WIDTH = 8


def _is_digit(ch: str) -> bool:
    return ch != "" and "0" <= ch <= "9"


@dataclass(frozen=True)
class Token:
    type: TokenType
    literal: str
    line: int
    col: int

    def matches(self, token_type: TokenType, *literals: str) -> bool:
        if self.type is not token_type:
            return False
        return not literals or self.literal in literals

    @property
    def loc(self) -> Dict[str, object]:
        return {'line': self.line, 'col': self.col, 'tag': self.type.value, 'text': self.literal}

    def describe(self) -> str:
        """Human-readable token name for error messages."""
        if self.type in (TokenType.INDENT, TokenType.DEDENT, TokenType.NEWLINE, TokenType.EOF):
            return self.type.value
        if self.type is TokenType.STRING:
            return f"string {self.literal!r}"
        return f"'{self.literal}'"

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.literal!r}, {self.line}:{self.col})"


class Lexer:
    """Single-use scanner. Call `tokenize()` once and take the list."""

    def __init__(self, source: str, max_indent_depth: int = 50):
        self.source = source
        self.max_indent_depth = max_indent_depth
        self.tokens: List[Token] = []
        self.pos = 0
        self.line = 1
        self.col = 1
        self.indent_stack = [0]
        self.bracket_depth = 0
        self.at_line_start = True
        self.line_has_tokens = False

    # --- character helpers ---

    def _at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.source[i] if i < len(self.source) else ""

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _add(self, token_type: TokenType, literal: str, line: int, col: int):
        self.tokens.append(Token(token_type, literal, line, col))
        if token_type not in (TokenType.NEWLINE, TokenType.INDENT, TokenType.DEDENT):
            self.line_has_tokens = True

    # --- driver ---

    def tokenize(self) -> List[Token]:
        while not self._at_end():
            if self.at_line_start and self.bracket_depth == 0:
                self._handle_indentation()
                continue
            self._scan_token()

        if self.line_has_tokens:
            self._add(TokenType.NEWLINE, "", self.line, self.col)
        # Close every open block
        while len(self.indent_stack) > 1:
            self.indent_stack.pop()
            self._add(TokenType.DEDENT, "", self.line, self.col)
        self._add(TokenType.EOF, "", self.line, self.col)
        return self.tokens

    def _handle_indentation(self):
        width = 0
        while self._peek() in (" ", "\t", "\r") and not self._at_end():
            ch = self._advance()
            if ch == " ":
                width += 1
            elif ch == "\t":
                width += TAB_WIDTH

        # Blank or comment-only lines leave the indentation untouched
        nxt = self._peek()
        if self._at_end() or nxt == "\n":
            if nxt == "\n":
                self._advance()
            return
        if nxt == "/" and self._peek(1) == "/":
            self._skip_line_comment()
            return
        if nxt == "/" and self._peek(1) == "*":
            self._skip_block_comment()
            if self._at_end() or self._peek() == "\n":
                return
            # Code follows the comment on the same line: its column is the width
            width = self.col - 1

        self.at_line_start = False
        current = self.indent_stack[-1]
        if width > current:
            if len(self.indent_stack) > self.max_indent_depth:
                raise LexError(
                    f"maximum indentation depth ({self.max_indent_depth}) exceeded", self.line, 1)
            self.indent_stack.append(width)
            self._add(TokenType.INDENT, "", self.line, 1)
        elif width < current:
            while self.indent_stack[-1] > width:
                self.indent_stack.pop()
                self._add(TokenType.DEDENT, "", self.line, 1)
            if self.indent_stack[-1] != width:
                raise LexError(
                    f"inconsistent indentation: width {width} does not match any enclosing block",
                    self.line, 1)

    def _scan_token(self):
        line, col = self.line, self.col
        ch = self._peek()

        if ch == "\n":
            if self.bracket_depth == 0:
                if self.line_has_tokens:
                    self._add(TokenType.NEWLINE, "", line, col)
                self.line_has_tokens = False
                self.at_line_start = True
            self._advance()
            return
        if ch in (" ", "\t", "\r"):
            self._advance()
            return
        if ch == "/" and self._peek(1) == "/":
            self._skip_line_comment()
            return
        if ch == "/" and self._peek(1) == "*":
            self._skip_block_comment()
            return
        if _is_digit(ch):
            self._number(line, col)
            return
        if ch.isalpha() or ch == "_":
            self._identifier(line, col)
            return
        if ch in ("'", '"'):
            self._string(line, col)
            return

        for op in OPERATORS:
            if self.source.startswith(op, self.pos):
                for _ in op:
                    self._advance()
                self._add(TokenType.OPERATOR, op, line, col)
                return

        if ch in DELIMITERS:
            self._advance()
            if ch in OPENING:
                self.bracket_depth += 1
            elif ch in CLOSING and self.bracket_depth > 0:
                self.bracket_depth -= 1
            self._add(TokenType.DELIMITER, ch, line, col)
            return

        raise LexError(f"unexpected character {ch!r}", line, col)

    # --- lexeme routines ---

    def _skip_line_comment(self):
        while not self._at_end() and self._peek() != "\n":
            self._advance()

    def _skip_block_comment(self):
        line, col = self.line, self.col
        self._advance()
        self._advance()
        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()
        raise LexError("unterminated block comment", line, col)

    def _number(self, line: int, col: int):
        start = self.pos
        while _is_digit(self._peek()):
            self._advance()
        is_float = self._peek() == "." and _is_digit(self._peek(1))
        if is_float:
            self._advance()
            while _is_digit(self._peek()):
                self._advance()
        text = self.source[start:self.pos]
        self._add(TokenType.FLOAT if is_float else TokenType.INTEGER, text, line, col)

    def _identifier(self, line: int, col: int):
        start = self.pos
        while self._peek().isalnum() or self._peek() == "_":
            self._advance()
        text = self.source[start:self.pos]
        kind = TokenType.KEYWORD if text in KEYWORDS else TokenType.IDENTIFIER
        self._add(kind, text, line, col)

    def _string(self, line: int, col: int):
        quote = self._advance()
        chars = []
        while True:
            if self._at_end():
                raise LexError("unterminated string literal", line, col)
            ch = self._advance()
            if ch == quote:
                break
            if ch == "\\":
                if self._at_end():
                    raise LexError("unterminated string literal", line, col)
                esc = self._advance()
                chars.append(ESCAPES.get(esc, "\\" + esc))
                continue
            chars.append(ch)
        self._add(TokenType.STRING, "".join(chars), line, col)


def tokenize(source: str, max_indent_depth: Optional[int] = None) -> List[Token]:
    """Scan `source` into tokens. Raises `LexError` on the first lexical error."""
    if max_indent_depth is None:
        return Lexer(source).tokenize()
    return Lexer(source, max_indent_depth=max_indent_depth).tokenize()
