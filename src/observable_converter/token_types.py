"""
Token Types for the Swift Lexer and Parser

Shared between lexer, parser and rewriter to avoid circular dependencies.
Every token owns its surrounding whitespace and comments as explicit
leading/trailing trivia so a tree can be printed back byte for byte.
"""

from typing import Optional
from dataclasses import dataclass, replace
from enum import Enum, auto


class TT(Enum):
    """Token Types"""

    # Literals
    NUMBER = auto()
    STRING = auto()
    IDENT = auto()
    POUND = auto()  # #if, #Preview, #selector

    # Declaration keywords
    CLASS = auto()
    STRUCT = auto()
    ENUM = auto()
    PROTOCOL = auto()
    EXTENSION = auto()
    VAR = auto()
    LET = auto()

    # Punctuation
    LPAR = auto()
    RPAR = auto()
    LSQB = auto()
    RSQB = auto()
    LBRACE = auto()
    RBRACE = auto()
    DOT = auto()
    COMMA = auto()
    COLON = auto()
    SEMI = auto()
    AT = auto()
    ASSIGN = auto()  # =
    ARROW = auto()  # ->
    BACKSLASH = auto()  # key paths
    BACKQUOTE = auto()

    # Any other operator run (+, ??, ==, <, >>, ?, !, ...)
    OPERATOR = auto()

    # Special
    EOF = auto()


WORD_TYPES = frozenset({
    TT.IDENT,
    TT.CLASS,
    TT.STRUCT,
    TT.ENUM,
    TT.PROTOCOL,
    TT.EXTENSION,
    TT.VAR,
    TT.LET,
})

OPENERS = {TT.LPAR: TT.RPAR, TT.LSQB: TT.RSQB, TT.LBRACE: TT.RBRACE}
CLOSERS = frozenset(OPENERS.values())


@dataclass(frozen=True)
class Tok:
    """Token with trivia and position info"""

    type: TT
    value: str
    leading: str = ''
    trailing: str = ''
    line: int = 0
    column: int = 0

    @property
    def full_text(self) -> str:
        return self.leading + self.value + self.trailing

    @property
    def starts_line(self) -> bool:
        """True when a line break separates this token from the previous one."""
        return '\n' in self.leading or '\r' in self.leading

    def is_word(self, *values: str) -> bool:
        if self.type not in WORD_TYPES:
            return False
        return not values or self.value in values

    def update(
        self,
        type_: Optional[TT] = None,
        value: Optional[str] = None,
        leading: Optional[str] = None,
        trailing: Optional[str] = None,
    ) -> 'Tok':
        """Return new token with the given fields replaced."""
        changes = {}
        if type_ is not None:
            changes['type'] = type_
        if value is not None:
            changes['value'] = value
        if leading is not None:
            changes['leading'] = leading
        if trailing is not None:
            changes['trailing'] = trailing
        return replace(self, **changes)

    def __repr__(self):
        return f"Tok({self.type.name}, {self.value!r}, {self.line}:{self.column})"
