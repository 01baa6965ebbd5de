"""
Per-file driver: read, parse, record, rewrite, serialize, replace.

Files are independent; a failure on one is reported on its FileResult and
the batch moves on. The original file is only ever touched by the final
``os.replace`` of a fully written sibling temporary file.
"""
from __future__ import annotations

import difflib
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Union

from lark.exceptions import VisitError

from .diagnostics import (
    ERROR,
    PARSE_FAILURE,
    READ_FAILURE,
    REWRITE_FAILURE,
    WRITE_FAILURE,
    Diagnostic,
    error_from_exception,
)
from .lexer_rd import LexError
from .parser_rd import ParseError, parse_source
from .recorder import record
from .rewriter import rewrite
from .tree import to_source

PathLike = Union[str, 'os.PathLike[str]']

CONVERTED = 'converted'
UNCHANGED = 'unchanged'
FAILED = 'failed'

NESTING_TOO_DEEP = 'Nesting too deep to convert'


class ConversionError(Exception):
    """A file could not be converted; ``diagnostic`` says why."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.render())


@dataclass(frozen=True)
class Conversion:
    source: str
    output: str
    names: FrozenSet[str] = frozenset()
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.output != self.source

    def diff(self, path: Optional[str] = None) -> str:
        name = path or '<source>'
        return ''.join(difflib.unified_diff(
            self.source.splitlines(keepends=True),
            self.output.splitlines(keepends=True),
            fromfile=f"a/{name}",
            tofile=f"b/{name}",
        ))


@dataclass
class FileResult:
    path: str
    status: str
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diff: str = ''

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    @property
    def reason(self) -> Optional[str]:
        errors = [d for d in self.diagnostics if d.is_error]
        return errors[0].message if errors else None


@dataclass
class BatchResult:
    files: List[FileResult] = field(default_factory=list)
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        return not self.interrupted and all(result.ok for result in self.files)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return [d for result in self.files for d in result.diagnostics]

    def by_status(self, status: str) -> List[FileResult]:
        return [result for result in self.files if result.status == status]


# ============================================================================
# In-memory conversion
# ============================================================================

def convert_source(source: str, path: Optional[str] = None) -> Conversion:
    """
    Convert one file's text.

    Raises ConversionError when the text cannot be parsed or rewritten.
    """
    try:
        tree = parse_source(source)
    except (LexError, ParseError) as exc:
        raise ConversionError(error_from_exception(PARSE_FAILURE, exc, path)) from exc
    except RecursionError as exc:
        raise ConversionError(Diagnostic(ERROR, PARSE_FAILURE, NESTING_TOO_DEEP, path)) from exc

    recorder = record(tree, path)

    try:
        new_tree = rewrite(tree, recorder.names)
    except VisitError as exc:
        raise ConversionError(
            error_from_exception(REWRITE_FAILURE, exc.orig_exc, path)
        ) from exc
    except RecursionError as exc:
        raise ConversionError(Diagnostic(ERROR, REWRITE_FAILURE, NESTING_TOO_DEEP, path)) from exc

    return Conversion(source, to_source(new_tree), recorder.names, list(recorder.diagnostics))


# ============================================================================
# Files
# ============================================================================

def read_source(path: Path) -> str:
    """Read a file as UTF-8 without newline translation."""
    return path.read_bytes().decode('utf-8')


def write_atomic(path: Path, text: str) -> None:
    """
    Replace ``path`` with ``text``.

    The new contents go to a temporary file in the same directory, which is
    flushed, synced and given the original's mode before it is moved over
    the original. On any failure the temporary file is removed and the
    original is left as it was.
    """
    fd, temp_name = tempfile.mkstemp(prefix=f"{path.name}.", suffix='.temp', dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as handle:
            handle.write(text.encode('utf-8'))
            handle.flush()
            os.fsync(handle.fileno())
        shutil.copymode(path, temp_name)
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


def convert_file(path: PathLike, dry_run: bool = False) -> FileResult:
    """Convert one file in place and report what happened."""
    path = Path(path)
    name = str(path)

    try:
        source = read_source(path)
    except (OSError, UnicodeDecodeError) as exc:
        return FileResult(name, FAILED, [error_from_exception(READ_FAILURE, exc, name)])

    try:
        conversion = convert_source(source, name)
    except ConversionError as exc:
        return FileResult(name, FAILED, [exc.diagnostic])

    diagnostics = list(conversion.diagnostics)
    if not conversion.changed:
        return FileResult(name, UNCHANGED, diagnostics)

    diff = conversion.diff(name) if dry_run else ''
    if not dry_run:
        try:
            write_atomic(path, conversion.output)
        except OSError as exc:
            diagnostics.append(error_from_exception(WRITE_FAILURE, exc, name))
            return FileResult(name, FAILED, diagnostics)

    return FileResult(name, CONVERTED, diagnostics, diff)


def convert_files(paths: Iterable[PathLike], dry_run: bool = False) -> BatchResult:
    """
    Convert every path, one at a time. A KeyboardInterrupt stops the batch
    before the next file; the file being written keeps either its old or
    its new contents, never a mix.
    """
    batch = BatchResult()

    for path in paths:
        try:
            batch.files.append(convert_file(path, dry_run=dry_run))
        except KeyboardInterrupt:
            batch.interrupted = True
            break

    return batch
