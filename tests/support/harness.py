from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterator, List, Optional

BASE_DIR = Path(__file__).resolve().parent.parent.parent
SRC_DIR = (BASE_DIR / "src").resolve()
RESOURCES_DIR = BASE_DIR / "tests" / "resources"

if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))
if str(SRC_DIR) not in sys.path:
    sys.path.append(str(SRC_DIR))

from lark import Tree

from observable_converter.lexer_rd import LexError, tokenize
from observable_converter.parser_rd import ParseError, parse_source
from observable_converter.pipeline import Conversion, ConversionError, convert_source
from observable_converter.recorder import record
from observable_converter.rewriter import rewrite
from observable_converter.token_types import TT, Tok
from observable_converter.tree import to_source


@dataclass(frozen=True)
class ConvertCase:
    """One source snippet and the text the converter should produce."""

    name: str
    source: str
    expected: str
    names: Optional[FrozenSet[str]] = None


def read_resource(name: str) -> str:
    return (RESOURCES_DIR / name).read_bytes().decode("utf-8")


def convert(source: str) -> str:
    """Run the full in-memory pipeline and return the output text."""
    return convert_source(source).output


def rewrite_text(source: str, *names: str) -> str:
    """Rewrite with an explicit qualifying-name set, bypassing the recorder."""
    return to_source(rewrite(parse_source(source), names))


def recorded_names(source: str) -> FrozenSet[str]:
    return record(parse_source(source)).names


def non_eof_tokens(source: str) -> List[Tok]:
    return [tok for tok in tokenize(source) if tok.type != TT.EOF]


def iter_labels(node: object) -> Iterator[str]:
    """Every tree label below ``node`` in pre-order."""
    if not isinstance(node, Tree):
        return
    yield node.data
    for child in node.children:
        yield from iter_labels(child)


def find_all(node: object, label: str) -> List[Tree]:
    if not isinstance(node, Tree):
        return []
    return [sub for sub in node.iter_subtrees_topdown() if sub.data == label]


def find_one(node: object, label: str) -> Tree:
    found = find_all(node, label)
    assert found, f"no {label!r} node in tree"
    return found[0]


__all__ = [
    "Conversion",
    "ConversionError",
    "ConvertCase",
    "LexError",
    "ParseError",
    "TT",
    "Tok",
    "convert",
    "convert_source",
    "find_all",
    "find_one",
    "iter_labels",
    "non_eof_tokens",
    "parse_source",
    "read_resource",
    "recorded_names",
    "rewrite_text",
    "to_source",
    "tokenize",
]
