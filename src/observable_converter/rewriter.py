"""
Tree rewriter: ObservableObject-era SwiftUI to the Observation framework.

Bottom-up ``lark.Transformer`` over the CST. Each method handles one node
kind, receives the node with its children already rewritten, and returns
either that node or a replacement. Shapes a rule does not recognize are
returned as they came in.

Rules:
    type_decl      class Foo: ObservableObject  ->  @Observable class Foo
                   (also for classes the recorder inferred), minus @Published
    variable_decl  @EnvironmentObject var x: T  ->  @Environment(T.self) var x
    attribute      @StateObject  ->  @State,  @ObservedObject  ->  (erased)
    call           StateObject(wrappedValue:)  ->  State(initialValue:)
    member_access  .environmentObject(...)  ->  .environment(...)
"""

from typing import Callable, FrozenSet, Iterable, List, Optional

from lark import Transformer, Tree, v_args

from .recorder import attribute_name
from .token_types import TT, Tok
from .tree import (
    Node,
    child_by_label,
    first_token,
    is_token,
    last_token,
    line_break,
    line_indent,
    merge_leading,
    replace_first_token,
    replace_last_token,
    to_source,
    token_text,
    tree_label,
)

# ============================================================================
# Vocabulary
# ============================================================================

OBSERVABLE_PROTOCOL = 'ObservableObject'
OBSERVABLE_MACRO = 'Observable'
PUBLISHED = 'Published'

STATE_OBJECT = 'StateObject'
STATE = 'State'
OBSERVED_OBJECT = 'ObservedObject'
ENVIRONMENT_OBJECT = 'EnvironmentObject'
ENVIRONMENT = 'Environment'

WRAPPED_VALUE_LABEL = 'wrappedValue'
INITIAL_VALUE_LABEL = 'initialValue'

ENVIRONMENT_OBJECT_MODIFIER = 'environmentObject'
ENVIRONMENT_MODIFIER = 'environment'


class ObservableConverterRewriter(Transformer):
    """
    Rewrite one parsed file. ``names`` is the recorder's set of type names
    known to be observable even without a local ``ObservableObject``.
    """

    def __init__(self, names: Iterable[str] = ()):
        super().__init__(visit_tokens=False)
        self.known_class_names: FrozenSet[str] = frozenset(names)

    # ========================================================================
    # Declarations
    # ========================================================================

    @v_args(tree=True)
    def type_decl(self, tree: Tree) -> Tree:
        attributes, modifiers, keyword, name = tree.children[:4]
        if keyword.type != TT.CLASS:
            return tree

        children = list(tree.children)
        inheritance = child_by_label(tree, 'inheritance')
        inherits_protocol = False

        if inheritance is not None:
            idx = children.index(inheritance)
            kept = [entry for entry in inheritance.children[1:] if not _is_observable_protocol(entry)]
            inherits_protocol = len(kept) < len(inheritance.children) - 1
            if inherits_protocol:
                previous, clause = _drop_inherited(children[idx - 1], inheritance)
                if clause is inheritance:
                    return tree
                children[idx - 1], children[idx] = previous, clause

        if not (inherits_protocol or name.value in self.known_class_names):
            return tree

        children = [child for child in children if child is not None]
        block = children[-1]
        children[-1] = Tree(block.data, [
            _drop_attributes(member, _is_published) if tree_label(member) == 'variable_decl' else member
            for member in block.children
        ])

        if OBSERVABLE_MACRO not in _names_of(attributes):
            children = _prepend_observable(children)

        return Tree('type_decl', children)

    @v_args(tree=True)
    def variable_decl(self, tree: Tree) -> Tree:
        tree = self._environment_object(tree)
        return _drop_attributes(tree, _is_erased)

    def _environment_object(self, tree: Tree) -> Tree:
        attributes = tree.children[0]
        target = next(
            (attr for attr in attributes.children if attribute_name(attr) == ENVIRONMENT_OBJECT),
            None,
        )
        if target is None or len(target.children) != 2:
            return tree

        for idx, binding in enumerate(tree.children):
            if tree_label(binding) != 'binding':
                continue
            annotation = child_by_label(binding, 'type_annotation')
            if annotation is None or len(annotation.children) < 2:
                continue
            bound_type = annotation.children[1]
            if tree_label(bound_type) != 'type_identifier':
                continue

            children = list(tree.children)
            children[idx] = _drop_annotation(binding, annotation)
            children[0] = Tree('attributes', [
                _environment_attribute(attr, bound_type) if attr is target else attr
                for attr in attributes.children
            ])
            return Tree('variable_decl', children)

        return tree

    # ========================================================================
    # Attributes and expressions
    # ========================================================================

    @v_args(tree=True)
    def attribute(self, tree: Tree) -> Tree:
        name = attribute_name(tree)

        if name == STATE_OBJECT:
            return Tree('attribute', [
                tree.children[0],
                _rename(tree.children[1], STATE),
            ] + tree.children[2:])

        if name == OBSERVED_OBJECT:
            at = tree.children[0]
            return Tree('attribute', [at.update(value='', trailing='')])

        return tree

    @v_args(tree=True)
    def call(self, tree: Tree) -> Tree:
        callee = tree.children[0]
        if not (is_token(callee) and callee.type == TT.IDENT and callee.value == STATE_OBJECT):
            return tree

        arguments = tree.children[1] if len(tree.children) > 1 else None
        if tree_label(arguments) != 'arguments':
            return tree

        relabeled = [
            _relabel(arg, WRAPPED_VALUE_LABEL, INITIAL_VALUE_LABEL) if tree_label(arg) == 'argument' else arg
            for arg in arguments.children
        ]
        if relabeled == arguments.children:
            return tree

        return Tree('call', [
            callee.update(value=STATE),
            Tree('arguments', relabeled),
        ] + tree.children[2:])

    @v_args(tree=True)
    def member_access(self, tree: Tree) -> Tree:
        receiver, dot, name = tree.children
        if name.value != ENVIRONMENT_OBJECT_MODIFIER:
            return tree

        return Tree('member_access', [receiver, dot, name.update(value=ENVIRONMENT_MODIFIER)])


# ============================================================================
# Helpers
# ============================================================================

def _names_of(attributes: Tree) -> List[Optional[str]]:
    return [attribute_name(attr) for attr in attributes.children]

def _is_published(attribute: Tree) -> bool:
    return attribute_name(attribute) == PUBLISHED

def _is_erased(attribute: Tree) -> bool:
    return len(attribute.children) == 1 and attribute.children[0].value == ''

def _is_observable_protocol(entry: Tree) -> bool:
    bound_type = entry.children[0]
    return tree_label(bound_type) == 'type_identifier' and token_text(bound_type) == OBSERVABLE_PROTOCOL

def _rename(name: Tree, value: str) -> Tree:
    return Tree(name.data, [name.children[0].update(value=value)] + name.children[1:])

def _relabel(argument: Node, old: str, new: str) -> Node:
    label = argument.children[0]
    if not (is_token(label) and label.value == old and len(argument.children) > 1):
        return argument
    return Tree('argument', [label.update(value=new)] + argument.children[1:])


def _drop_inherited(previous: Node, inheritance: Tree):
    """
    Remove ``ObservableObject`` entries from an inheritance clause.

    Returns the (possibly updated) node before the clause and the new clause,
    or None when nothing is left to inherit. A clause whose entries all end
    in a comma comes back as given.
    """
    colon, entries = inheritance.children[0], inheritance.children[1:]
    kept: List[Node] = []
    carried: Optional[str] = None

    for entry in entries:
        if not _is_observable_protocol(entry):
            if carried is not None:
                entry = replace_first_token(entry, lambda tok: tok.update(leading=merge_leading(carried, tok.leading)))
                carried = None
            kept.append(entry)
            continue

        tail = last_token(entry)
        if tail.type == TT.COMMA:
            carried = first_token(entry).leading if carried is None else carried
            continue

        # Last entry: the comma before it goes too, the space after it stays
        if kept:
            before = kept[-1]
            kept[-1] = _strip_comma(before, tail.trailing)
        else:
            previous = replace_last_token(previous, lambda tok: tok.update(trailing=tail.trailing))
            return previous, None

    if not kept:
        # Every entry ended with a comma
        return previous, inheritance

    return previous, Tree('inheritance', [colon] + kept)

def _strip_comma(entry: Tree, trailing: str) -> Tree:
    children = list(entry.children)
    if is_token(children[-1]) and children[-1].type == TT.COMMA:
        children.pop()
    entry = Tree(entry.data, children)
    return replace_last_token(entry, lambda tok: tok.update(trailing=trailing))


def _drop_attributes(decl: Tree, doomed: Callable[[Tree], bool]) -> Tree:
    """
    Remove the attributes of ``decl`` matching ``doomed``. Their leading
    trivia (and any comment after them) moves onto the next surviving token.
    """
    attributes = decl.children[0]
    if tree_label(attributes) != 'attributes' or not any(doomed(attr) for attr in attributes.children):
        return decl

    kept: List[Tree] = []
    carried: Optional[str] = None

    for attr in attributes.children:
        if doomed(attr):
            leading = first_token(attr).leading
            if carried is not None:
                leading = merge_leading(carried, leading)
            carried = leading + last_token(attr).trailing.lstrip()
            continue
        if carried is not None:
            attr = replace_first_token(attr, lambda tok: tok.update(leading=merge_leading(carried, tok.leading)))
            carried = None
        kept.append(attr)

    rest = Tree(decl.data, decl.children[1:])
    if carried is not None:
        rest = replace_first_token(rest, lambda tok: tok.update(leading=merge_leading(carried, tok.leading)))
    return Tree(decl.data, [Tree('attributes', kept)] + rest.children)


def _prepend_observable(children: List[Node]) -> List[Node]:
    """Insert ``@Observable`` on its own line in front of the declaration."""
    decl = Tree('type_decl', children)
    head = first_token(decl)
    displaced = head.leading

    decl = replace_first_token(decl, lambda tok: tok.update(leading=line_indent(displaced)))
    macro = Tree('attribute', [
        Tok(TT.AT, '@', displaced, '', head.line, head.column),
        Tree('type_identifier', [Tok(TT.IDENT, OBSERVABLE_MACRO, '', line_break(to_source(decl)))]),
    ])

    attributes = decl.children[0]
    return [Tree('attributes', [macro] + attributes.children)] + decl.children[1:]


def _drop_annotation(binding: Tree, annotation: Tree) -> Tree:
    """Remove ``: Type`` from a binding; the type's trailing trivia stays behind."""
    trailing = last_token(annotation).trailing
    children = [child for child in binding.children if child is not annotation]
    children[0] = replace_last_token(children[0], lambda tok: tok.update(trailing=trailing))
    return Tree('binding', children)


def _environment_attribute(attribute: Tree, bound_type: Tree) -> Tree:
    """@EnvironmentObject -> @Environment(Type.self)"""
    at, name = attribute.children
    old_name = last_token(name)
    renamed = replace_last_token(_rename(name, ENVIRONMENT), lambda tok: tok.update(trailing=''))

    type_ref = replace_first_token(bound_type, lambda tok: tok.update(leading=''))
    type_ref = replace_last_token(type_ref, lambda tok: tok.update(trailing=''))
    argument = Tree('argument', [
        Tree('expr', [
            Tree('member_access', [type_ref, Tok(TT.DOT, '.'), Tok(TT.IDENT, 'self')]),
        ]),
    ])

    return Tree('attribute', [
        at,
        renamed,
        Tree('arguments', [Tok(TT.LPAR, '('), argument, Tok(TT.RPAR, ')', '', old_name.trailing)]),
    ])


def rewrite(tree: Tree, names: Iterable[str] = ()) -> Tree:
    """Return a rewritten copy of ``tree``; the input is left untouched."""
    return ObservableConverterRewriter(names).transform(tree)
