"""
Declaration analysis: infer observable classes from how structs use them.

A class does not have to declare ``ObservableObject`` itself to need
converting; a struct holding it in a ``@StateObject``, ``@EnvironmentObject``
or ``@ObservedObject`` property is evidence enough. The recorder walks every
struct in one file and collects those type names.
"""

from typing import FrozenSet, List, Optional, Set

from lark import Tree, Visitor

from .diagnostics import AMBIGUOUS_GENERIC, WARNING, Diagnostic
from .token_types import TT, Tok
from .tree import (
    child_by_label,
    children_by_label,
    first_token,
    is_token,
    tree_children,
    tree_label,
)

WRAPPERS = frozenset({'StateObject', 'EnvironmentObject', 'ObservedObject'})


class ObservableObjectRecorder(Visitor):
    """
    Read-only pass over a parsed file.

    After ``visit_topdown(tree)``, ``names`` holds every inferred type name
    and ``diagnostics`` every generic parameter collision that was skipped.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._names: Set[str] = set()
        self.diagnostics: List[Diagnostic] = []

    @property
    def names(self) -> FrozenSet[str]:
        return frozenset(self._names)

    def type_decl(self, tree: Tree):
        keyword = tree.children[2]
        if keyword.type != TT.STRUCT:
            return

        generic_names = generic_parameter_names(tree)
        members = child_by_label(tree, 'member_block')

        for member in children_by_label(members, 'variable_decl'):
            if not attribute_names(member) & WRAPPERS:
                continue

            candidate = candidate_type(member)
            if candidate is None:
                continue

            if candidate.value in generic_names:
                self.diagnostics.append(Diagnostic(
                    WARNING,
                    AMBIGUOUS_GENERIC,
                    f"ambiguous generic parameter collision for candidate name "
                    f"'{candidate.value}' in declaration '{tree.children[3].value}'",
                    self.path,
                    candidate.line,
                    candidate.column,
                ))
                continue

            self._names.add(candidate.value)


def attribute_name(attribute: Tree) -> Optional[str]:
    """Name of a plain ``@Name`` attribute; None for ``@Module.Name`` or ``@Name<T>``."""
    name = attribute.children[1] if len(attribute.children) > 1 else None
    if tree_label(name) != 'type_identifier' or len(name.children) != 1:
        return None
    return name.children[0].value


def attribute_names(decl: Tree) -> Set[str]:
    attributes = child_by_label(decl, 'attributes')
    names = (attribute_name(attr) for attr in children_by_label(attributes, 'attribute'))
    return {name for name in names if name is not None}


def generic_parameter_names(decl: Tree) -> Set[str]:
    names: Set[str] = set()

    for param in children_by_label(child_by_label(decl, 'generic_params'), 'generic_param'):
        words = []
        for part in tree_children(param):
            if not (is_token(part) and part.is_word()):
                break
            words.append(part)
        if words:
            names.add(words[-1].value)

    return names


def candidate_type(decl: Tree) -> Optional[Tok]:
    """
    The type token of the first binding that names one: its annotation when
    that is a plain identifier, else the callee of a ``= TypeName(...)``
    initializer.
    """
    for binding in children_by_label(decl, 'binding'):
        annotation = child_by_label(binding, 'type_annotation')
        bound_type = annotation.children[1] if annotation is not None and len(annotation.children) > 1 else None
        if tree_label(bound_type) == 'type_identifier':
            return first_token(bound_type)

        initializer = child_by_label(binding, 'initializer')
        if initializer is None:
            continue
        elements = initializer.children[1].children
        if len(elements) == 1 and tree_label(elements[0]) == 'call':
            callee = elements[0].children[0]
            if is_token(callee) and callee.type == TT.IDENT:
                return callee

    return None


def record(tree: Tree, path: Optional[str] = None) -> ObservableObjectRecorder:
    """Run the recorder over ``tree`` and return it with its results filled in."""
    recorder = ObservableObjectRecorder(path)
    recorder.visit_topdown(tree)
    return recorder
