"""
Lexer for Swift - Recursive Descent Parser

Tokenizes Swift source code into a stream of tokens without losing a byte.

Features:
- Single-pass tokenization
- Trivia-preserving: whitespace and comments are attached to tokens
  (trailing trivia stops at the next line break, everything else leads)
- Position tracking (line, column)
- String literal handling (multi-line, raw, nested interpolation)
"""

from typing import List, Optional

from .token_types import TT, Tok

# ============================================================================
# Lexer Implementation
# ============================================================================

OPERATOR_CHARS = frozenset('/=-+!*%<>&|^~?.')


class Lexer:
    """
    Swift lexer with trivia attachment.

    Based on the swift-syntax trivia model:
    - A token's trailing trivia is the whitespace and comments after it up to
      (not including) the next line break
    - Everything else between two tokens is the second token's leading trivia
    - The EOF token carries the trivia that ends the file
    """

    # Keyword mapping (declaration keywords only; the rest stay identifiers)
    KEYWORDS = {
        'class': TT.CLASS,
        'struct': TT.STRUCT,
        'enum': TT.ENUM,
        'protocol': TT.PROTOCOL,
        'extension': TT.EXTENSION,
        'var': TT.VAR,
        'let': TT.LET,
    }

    PUNCTUATION = {
        '(': TT.LPAR,
        ')': TT.RPAR,
        '[': TT.LSQB,
        ']': TT.RSQB,
        '{': TT.LBRACE,
        '}': TT.RBRACE,
        ',': TT.COMMA,
        ':': TT.COLON,
        ';': TT.SEMI,
        '@': TT.AT,
        '\\': TT.BACKSLASH,
    }

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Tok] = []

    # ========================================================================
    # Main Tokenization
    # ========================================================================

    def tokenize(self) -> List[Tok]:
        """Tokenize entire source, return token list"""
        while True:
            leading = self.scan_leading_trivia()
            if self.pos >= len(self.source):
                self.tokens.append(Tok(TT.EOF, '', leading, '', self.line, self.column))
                return self.tokens
            self.scan_token(leading)

    def scan_token(self, leading: str):
        """Scan next token and the trailing trivia that follows it"""
        line, column = self.line, self.column
        start = self.pos
        token_type = self.scan_token_text()
        value = self.source[start:self.pos]
        trailing = self.scan_trailing_trivia()
        self.tokens.append(Tok(token_type, value, leading, trailing, line, column))

    def scan_token_text(self) -> TT:
        ch = self.peek()

        # String literals
        if ch == '"':
            self.scan_string(0)
            return TT.STRING

        # Raw strings and pound keywords
        if ch == '#':
            hashes = self.count_run('#')
            if self.peek(hashes) == '"':
                self.advance(hashes)
                self.scan_string(hashes)
                return TT.STRING
            if self.is_ident_start(self.peek(1)):
                self.advance()
                self.scan_identifier_chars()
                return TT.POUND
            self.advance()
            return TT.OPERATOR

        # Numbers
        if ch.isdigit():
            self.scan_number()
            return TT.NUMBER

        # Escaped identifiers: `class`
        if ch == '`':
            end = self.source.find('`', self.pos + 1)
            newline = self.source.find('\n', self.pos + 1)
            if end == -1 or (newline != -1 and newline < end):
                self.advance()
                return TT.BACKQUOTE
            self.advance(end + 1 - self.pos)
            return TT.IDENT

        # Identifiers, keywords, $0 and $projected names
        if self.is_ident_start(ch) or (ch == '$' and self.is_ident_char(self.peek(1))):
            start = self.pos
            self.advance()
            self.scan_identifier_chars()
            return self.KEYWORDS.get(self.source[start:self.pos], TT.IDENT)

        if ch in self.PUNCTUATION:
            self.advance()
            return self.PUNCTUATION[ch]

        # Operators and punctuation
        if ch in OPERATOR_CHARS:
            return self.scan_operator()

        # Unknown characters pass through as single-character operators
        self.advance()
        return TT.OPERATOR

    # ========================================================================
    # Trivia
    # ========================================================================

    def scan_leading_trivia(self) -> str:
        start = self.pos
        if self.pos == 0 and self.peek() == '\ufeff':
            self.advance()
        while self.pos < len(self.source):
            ch = self.peek()
            if ch in (' ', '\t', '\n', '\r', '\f', '\v'):
                self.advance()
            elif ch == '/' and self.peek(1) == '/':
                self.skip_line_comment()
            elif ch == '/' and self.peek(1) == '*':
                self.skip_block_comment()
            else:
                break
        return self.source[start:self.pos]

    def scan_trailing_trivia(self) -> str:
        start = self.pos
        while self.pos < len(self.source):
            ch = self.peek()
            if ch in (' ', '\t', '\f', '\v'):
                self.advance()
            elif ch == '/' and self.peek(1) == '/':
                self.skip_line_comment()
            elif ch == '/' and self.peek(1) == '*':
                self.skip_block_comment()
            else:
                break
        return self.source[start:self.pos]

    def skip_line_comment(self):
        """Skip comment until end of line"""
        while self.pos < len(self.source) and self.peek() not in ('\n', '\r'):
            self.advance()

    def skip_block_comment(self):
        """Skip a block comment; Swift block comments nest"""
        start_line, start_column = self.line, self.column
        depth = 0
        while self.pos < len(self.source):
            if self.peek() == '/' and self.peek(1) == '*':
                self.advance(2)
                depth += 1
            elif self.peek() == '*' and self.peek(1) == '/':
                self.advance(2)
                depth -= 1
                if depth == 0:
                    return
            else:
                self.advance()
        raise LexError("Unterminated block comment", start_line, start_column)

    # ========================================================================
    # Token Scanners
    # ========================================================================

    def scan_string(self, hashes: int):
        """
        Scan string literal: "...", \"\"\"...\"\"\" or #"..."#.

        The opening '#' run has already been consumed. Interpolations are
        scanned with bracket matching so nested string literals inside
        \\( ... ) do not end the outer literal early.
        """
        start_line, start_column = self.line, self.column - hashes
        multiline = self.source.startswith('"""', self.pos)
        quote = '"""' if multiline else '"'
        closing = quote + '#' * hashes
        escape = '\\' + '#' * hashes
        self.advance(len(quote))

        while True:
            if self.pos >= len(self.source):
                raise LexError("Unterminated string", start_line, start_column)
            ch = self.peek()
            if not multiline and ch in ('\n', '\r'):
                raise LexError("Unterminated string", start_line, start_column)
            if self.source.startswith(closing, self.pos):
                self.advance(len(closing))
                return
            if self.source.startswith(escape, self.pos):
                self.advance(len(escape))
                if self.peek() == '(':
                    self.advance()
                    self.scan_interpolation(start_line, start_column)
                elif self.pos < len(self.source):
                    self.advance()
                continue
            self.advance()

    def scan_interpolation(self, start_line: int, start_column: int):
        """Consume an interpolation body up to its matching ')'"""
        depth = 1
        while self.pos < len(self.source):
            ch = self.peek()
            if ch == '(':
                depth += 1
                self.advance()
            elif ch == ')':
                depth -= 1
                self.advance()
                if depth == 0:
                    return
            elif ch == '"':
                self.scan_string(0)
            elif ch == '#' and self.peek(self.count_run('#')) == '"':
                hashes = self.count_run('#')
                self.advance(hashes)
                self.scan_string(hashes)
            elif ch == '/' and self.peek(1) == '*':
                self.skip_block_comment()
            else:
                self.advance()
        raise LexError("Unterminated string interpolation", start_line, start_column)

    def scan_number(self):
        """Scan number literal"""
        if self.peek() == '0' and self.peek(1) in ('x', 'b', 'o'):
            self.advance(2)
            while self.peek().isalnum() or self.peek() in ('_', '.'):
                if self.peek() == '.' and not self.peek(1).isalnum():
                    break
                if self.peek() in ('p', 'P') and self.peek(1) in ('+', '-'):
                    self.advance()
                self.advance()
            return

        # Integer part
        while self.peek().isdigit() or self.peek() == '_':
            self.advance()

        # Decimal part
        if self.peek() == '.' and self.peek(1).isdigit():
            self.advance()
            while self.peek().isdigit() or self.peek() == '_':
                self.advance()

        # Scientific notation
        if self.peek() in ('e', 'E') and (
            self.peek(1).isdigit() or (self.peek(1) in ('+', '-') and self.peek(2).isdigit())
        ):
            self.advance(2)
            while self.peek().isdigit() or self.peek() == '_':
                self.advance()

    def scan_identifier_chars(self):
        while self.is_ident_char(self.peek()):
            self.advance()

    def scan_operator(self) -> TT:
        """
        Scan an operator run greedily.

        A run that does not start with '.' never contains one, and a run
        stops in front of a comment opener.
        """
        start = self.pos
        dotted = self.peek() == '.'
        while self.pos < len(self.source):
            ch = self.peek()
            if ch not in OPERATOR_CHARS:
                break
            if ch == '.' and not dotted:
                break
            if ch == '/' and self.peek(1) in ('/', '*') and self.pos > start:
                break
            self.advance()

        value = self.source[start:self.pos]
        if value == '.':
            return TT.DOT
        if value == '=':
            return TT.ASSIGN
        if value == '->':
            return TT.ARROW
        return TT.OPERATOR

    # ========================================================================
    # Utilities
    # ========================================================================

    def peek(self, offset: int = 0) -> str:
        """Look ahead at character"""
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return '\0'

    def advance(self, n: int = 1):
        """Consume n characters, keeping line/column current"""
        if n < 0:
            raise ValueError(f"advance() requires n >= 0, got {n}")
        for _ in range(n):
            if self.pos >= len(self.source):
                return
            ch = self.source[self.pos]
            self.pos += 1
            if ch == '\n' or (ch == '\r' and self.peek() != '\n'):
                self.line += 1
                self.column = 1
            else:
                self.column += 1

    def count_run(self, ch: str) -> int:
        count = 0
        while self.peek(count) == ch:
            count += 1
        return count

    @staticmethod
    def is_ident_start(ch: str) -> bool:
        return ch == '_' or (ch.isalpha() and ch != '\0')

    @staticmethod
    def is_ident_char(ch: str) -> bool:
        return ch == '_' or (ch.isalnum() and ch != '\0')


class LexError(Exception):
    """Lexical analysis error"""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(
            f"{message} at line {line}, col {column}" if line is not None else message
        )


def tokenize(source: str) -> List[Tok]:
    """Convenience function to tokenize source"""
    lexer = Lexer(source)
    return lexer.tokenize()
