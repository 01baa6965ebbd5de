"""Shared helpers for working with the concrete syntax tree.

Nodes are ``lark.Tree`` instances tagged by ``Tree.data``; leaves are ``Tok``
values carrying their own trivia. Trees are treated as persistent: helpers
that "modify" a node return a new one and leave the input untouched.
"""
from __future__ import annotations
from typing import Callable, Iterator, List, Optional, Union

from lark import Tree
from typing_extensions import TypeAlias, TypeGuard

from .token_types import Tok


Node: TypeAlias = Union[Tree, Tok]


def is_tree(node: object) -> TypeGuard[Tree]:
    return isinstance(node, Tree)

def is_token(node: object) -> TypeGuard[Tok]:
    return isinstance(node, Tok)

def tree_label(node: object) -> Optional[str]:
    return node.data if is_tree(node) else None

def tree_children(node: object) -> List[Node]:
    if not is_tree(node):
        return []

    return [child for child in node.children if child is not None]

def child_by_label(node: Node, label: str) -> Optional[Tree]:
    for ch in tree_children(node):
        if tree_label(ch) == label:
            return ch

    return None

def children_by_label(node: Node, label: str) -> List[Tree]:
    return [ch for ch in tree_children(node) if tree_label(ch) == label]

def iter_tokens(node: Optional[Node]) -> Iterator[Tok]:
    """Yield every token under ``node`` in source order."""
    stack: List[Optional[Node]] = [node]

    while stack:
        current = stack.pop()
        if current is None:
            continue
        if is_token(current):
            yield current
            continue
        stack.extend(reversed(current.children))

def to_source(node: Optional[Node]) -> str:
    """Serialize a node back to text, trivia included."""
    return ''.join(tok.full_text for tok in iter_tokens(node))

def token_text(node: Optional[Node]) -> str:
    """Serialize a node without its outermost leading/trailing trivia."""
    tokens = list(iter_tokens(node))
    if not tokens:
        return ''

    text = to_source(node)
    return text[len(tokens[0].leading):len(text) - len(tokens[-1].trailing)]

def first_token(node: Optional[Node]) -> Optional[Tok]:
    return next(iter_tokens(node), None)

def last_token(node: Optional[Node]) -> Optional[Tok]:
    found = None
    for tok in iter_tokens(node):
        found = tok
    return found

def replace_first_token(node: Node, fn: Callable[[Tok], Tok]) -> Node:
    """Return ``node`` with its first token replaced by ``fn(token)``."""
    return _replace_edge_token(node, fn, from_end=False)

def replace_last_token(node: Node, fn: Callable[[Tok], Tok]) -> Node:
    """Return ``node`` with its last token replaced by ``fn(token)``."""
    return _replace_edge_token(node, fn, from_end=True)

def _replace_edge_token(node: Node, fn: Callable[[Tok], Tok], from_end: bool) -> Node:
    if is_token(node):
        return fn(node)

    indices = range(len(node.children))
    if from_end:
        indices = reversed(indices)

    for idx in indices:
        child = node.children[idx]
        if child is None or first_token(child) is None:
            continue
        children = list(node.children)
        children[idx] = _replace_edge_token(child, fn, from_end)
        return Tree(node.data, children)

    return node

def merge_leading(removed: str, following: str) -> str:
    """
    Combine the leading trivia of a removed node with that of the token
    taking its place.

    When the following token already starts its own line, the indentation
    and line break that belonged to the removed node are dropped so no
    whitespace-only line is left behind. Comments are kept.
    """
    if '\n' in following or '\r' in following:
        head = removed.rstrip(' \t')
        if head.endswith('\r\n'):
            head = head[:-2]
        elif head.endswith(('\n', '\r')):
            head = head[:-1]
        return head + following

    return removed + following

def line_indent(trivia: str) -> str:
    """Whitespace after the last line break in ``trivia``, if only whitespace."""
    cut = max(trivia.rfind('\n'), trivia.rfind('\r'))
    tail = trivia[cut + 1:]
    return tail if tail.strip(' \t') == '' else ''

def line_break(trivia: str) -> str:
    return '\r\n' if '\r\n' in trivia else '\n'
