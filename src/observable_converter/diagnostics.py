"""Structured problem reports shared by the recorder, pipeline and runner."""

from dataclasses import dataclass
from typing import Optional

WARNING = 'warning'
ERROR = 'error'

AMBIGUOUS_GENERIC = 'ambiguous-generic'
PARSE_FAILURE = 'parse-failure'
REWRITE_FAILURE = 'rewrite-failure'
READ_FAILURE = 'read-failure'
WRITE_FAILURE = 'write-failure'


@dataclass(frozen=True)
class Diagnostic:
    severity: str
    code: str
    message: str
    path: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def render(self) -> str:
        """path:line:column: severity: message"""
        location = ':'.join(
            str(part) for part in (self.path, self.line, self.column) if part is not None
        )
        prefix = f"{location}: " if location else ''
        return f"{prefix}{self.severity}: {self.message}"

    def __str__(self):
        return self.render()


def error_from_exception(code: str, exc: Exception, path: Optional[str] = None) -> Diagnostic:
    """Build an error diagnostic from LexError, ParseError or OSError."""
    message = getattr(exc, 'message', None) or getattr(exc, 'strerror', None) or str(exc)
    return Diagnostic(
        ERROR,
        code,
        message,
        path,
        getattr(exc, 'line', None),
        getattr(exc, 'column', None),
    )
