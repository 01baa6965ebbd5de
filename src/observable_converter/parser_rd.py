"""
Recursive Descent Parser for Swift

A coarse, lossless parser: it models the declarations, attributes, bindings,
calls and member accesses the converter rewrites, and keeps every other token
as an opaque leaf in source order. Printing the tree therefore reproduces
the input exactly.

Structure:
- Lexer: Token stream with trivia from source
- Parser: Recursive descent over items (declarations and postfix chains)
- CST: lark Trees tagged by node kind, Tok leaves
"""

from typing import List, Optional

from lark import Tree

from .lexer_rd import tokenize
from .token_types import CLOSERS, OPENERS, TT, Tok
from .tree import Node, is_token, tree_children, tree_label

# ============================================================================
# Vocabulary
# ============================================================================

MODIFIERS = frozenset({
    'private', 'fileprivate', 'internal', 'public', 'open', 'package',
    'final', 'static', 'override', 'mutating', 'nonmutating', 'lazy',
    'weak', 'unowned', 'required', 'convenience', 'dynamic', 'optional',
    'indirect', 'nonisolated', 'isolated', 'distributed', 'prefix',
    'postfix', 'infix', 'consuming', 'borrowing',
})

# Words that may follow a modifier run
DECLARATION_WORDS = frozenset({
    'func', 'init', 'deinit', 'subscript', 'typealias', 'associatedtype',
    'case', 'import', 'operator', 'precedencegroup', 'macro', 'actor',
})

# `class` is a modifier when followed by one of these
CLASS_MEMBER_WORDS = frozenset({'func', 'var', 'let', 'subscript', 'typealias'}) | MODIFIERS

# A `{` after these words opens a body, never a trailing closure
CONDITION_WORDS = frozenset({'if', 'guard', 'while', 'switch', 'for', 'catch'})

NON_CALLABLE_WORDS = frozenset({
    'if', 'else', 'guard', 'while', 'for', 'in', 'switch', 'case', 'default',
    'do', 'defer', 'repeat', 'return', 'throw', 'throws', 'rethrows', 'try',
    'await', 'async', 'where', 'catch', 'is', 'as', 'some', 'any', 'import',
    'true', 'false', 'nil', 'break', 'continue', 'fallthrough', 'inout',
    'get', 'set', 'willSet', 'didSet', 'func', 'init', 'deinit', 'subscript',
})

TYPE_PREFIX_WORDS = frozenset({
    'some', 'any', 'inout', 'borrowing', 'consuming', 'sending', 'isolated',
    'each', 'repeat', '__owned', '__shared',
})

EFFECT_WORDS = frozenset({'async', 'throws', 'rethrows'})

TYPE_DECL_TYPES = frozenset({TT.CLASS, TT.STRUCT, TT.ENUM, TT.PROTOCOL, TT.EXTENSION})

# ============================================================================
# Parser
# ============================================================================

class ParseError(Exception):
    """Parse error with position info"""
    def __init__(self, message: str, token: Optional[Tok] = None):
        self.message = message
        self.token = token
        self.line = token.line if token else None
        self.column = token.column if token else None
        super().__init__(
            f"{message} at line {token.line}, col {token.column}" if token else message
        )

class Parser:
    """
    Recursive descent parser for Swift source files.

    Item grammar (inside a file, a member block or any brace block):
    1. attributes / modifiers followed by a type declaration keyword
    2. attributes / modifiers followed by var / let
    3. attributes / modifiers in front of any other declaration (kept as a head)
    4. postfix chains: primary (.name | (args) | [args] | { closure } | ? | !)*
    5. any other token, verbatim

    Brackets must balance; everything else is accepted as-is.
    """

    def __init__(self, tokens: List[Tok]):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type != TT.EOF:
            self.tokens.append(Tok(TT.EOF, ''))
        self.pos = 0
        self.in_condition = False  # between `if`/`while`/... and its body

    # ========================================================================
    # Token Navigation
    # ========================================================================

    @property
    def current(self) -> Tok:
        return self.peek()

    def peek(self, offset: int = 0) -> Tok:
        """Look ahead at token"""
        idx = self.pos + offset
        if 0 <= idx < len(self.tokens):
            return self.tokens[idx]
        return self.tokens[-1]

    def advance(self) -> Tok:
        """Consume current token and move to next"""
        tok = self.current
        if tok.type != TT.EOF:
            self.pos += 1
        return tok

    def check(self, *types: TT) -> bool:
        """Check if current token matches any of the given types"""
        return self.current.type in types

    def attached(self) -> bool:
        """No whitespace or comment between the previous token and the current one"""
        return self.pos > 0 and not self.peek(-1).trailing and not self.current.leading

    def at_boundary(self) -> bool:
        return self.check(TT.EOF, *CLOSERS)

    def split_operator(self, head: str) -> Tok:
        """
        Consume the first character of an operator run (``>>`` while closing
        nested generics, ``>?`` before an optional suffix).
        """
        tok = self.current
        if tok.value == head:
            return self.advance()

        rest_value = tok.value[len(head):]
        first = Tok(tok.type, head, tok.leading, '', tok.line, tok.column)
        rest = Tok(_operator_type(rest_value), rest_value, '', tok.trailing,
                   tok.line, tok.column + len(head))
        self.tokens[self.pos:self.pos + 1] = [first, rest]
        return self.advance()

    # ========================================================================
    # Top-Level Parsing
    # ========================================================================

    def parse(self) -> Tree:
        """Parse entire source file"""
        items = self.parse_items(None, None)
        return Tree('source_file', items + [self.advance()])

    def parse_items(self, closer: Optional[TT], opener: Optional[Tok]) -> List[Node]:
        items: List[Node] = []

        while not self.check(TT.EOF):
            if closer is not None and self.check(closer):
                return items
            if self.check(*CLOSERS):
                raise ParseError(f"Unbalanced '{self.current.value}'", self.current)
            items.append(self.parse_item())

        if opener is not None:
            raise ParseError(f"Unclosed '{opener.value}'", opener)
        return items

    def parse_item(self) -> Node:
        tok = self.current

        if tok.type == TT.AT and self.peek(1).is_word():
            return self.parse_declaration()
        if self.modifier_run_length() or self.at_type_decl_keyword() or self.check(TT.VAR, TT.LET):
            return self.parse_declaration()

        if tok.type == TT.IDENT and tok.value in CONDITION_WORDS:
            self.in_condition = True
            return self.advance()

        return self.parse_postfix_chain()

    # ========================================================================
    # Declarations
    # ========================================================================

    def parse_declaration(self) -> Tree:
        attributes = self.parse_attributes()
        modifiers = self.parse_modifiers()

        if self.at_type_decl_keyword():
            return self.parse_type_decl(attributes, modifiers)
        if self.check(TT.VAR, TT.LET):
            return self.parse_variable_decl(attributes, modifiers)

        # func, init, subscript, ... keep their head; the rest parses as items
        return Tree('decl_head', [attributes, modifiers])

    def at_type_decl_keyword(self) -> bool:
        tok = self.current
        if tok.type == TT.CLASS:
            return self.peek(1).type == TT.IDENT and not self.class_is_modifier(0)
        if tok.type in TYPE_DECL_TYPES:
            return True
        return tok.is_word('actor') and self.peek(1).type == TT.IDENT and not self.peek(1).starts_line

    def class_is_modifier(self, offset: int) -> bool:
        return self.peek(offset).type == TT.CLASS and self.peek(offset + 1).is_word(*CLASS_MEMBER_WORDS)

    def is_declaration_start(self, offset: int) -> bool:
        tok = self.peek(offset)
        if tok.type in TYPE_DECL_TYPES or tok.type in (TT.VAR, TT.LET):
            return True
        return tok.type == TT.IDENT and tok.value in DECLARATION_WORDS

    def modifier_run_length(self) -> int:
        """Number of tokens in the modifier run at the cursor, 0 if none."""
        offset = 0

        while True:
            tok = self.peek(offset)
            if not ((tok.type == TT.IDENT and tok.value in MODIFIERS) or self.class_is_modifier(offset)):
                break
            offset += 1
            # private(set), unowned(unsafe), nonisolated(unsafe)
            if (
                self.peek(offset).type == TT.LPAR
                and self.peek(offset + 1).type == TT.IDENT
                and self.peek(offset + 2).type == TT.RPAR
            ):
                offset += 3

        if offset and self.is_declaration_start(offset):
            return offset
        return 0

    def parse_attributes(self) -> Tree:
        attributes: List[Node] = []

        while self.check(TT.AT) and self.peek(1).is_word():
            attributes.append(self.parse_attribute())

        return Tree('attributes', attributes)

    def parse_attribute(self) -> Tree:
        """@Name, @Name(arguments), @Module.Name"""
        at = self.advance()
        name = self.parse_type_identifier()
        children: List[Node] = [at, name]

        if self.check(TT.LPAR) and self.attached():
            children.append(self.parse_arguments(TT.LPAR))

        return Tree('attribute', children)

    def parse_modifiers(self) -> Tree:
        end = self.pos + self.modifier_run_length()
        modifiers: List[Node] = []

        while self.pos < end:
            parts: List[Node] = [self.advance()]
            if self.pos < end and self.check(TT.LPAR):
                parts.extend([self.advance(), self.advance(), self.advance()])
            modifiers.append(Tree('modifier', parts))

        return Tree('modifiers', modifiers)

    def parse_type_decl(self, attributes: Tree, modifiers: Tree) -> Tree:
        """
        Parse type declaration:
        [attributes] [modifiers] kind Name [<params>] [: inherited, ...] [where ...] { members }
        """
        keyword = self.advance()
        children: List[Node] = [attributes, modifiers, keyword]

        if keyword.type == TT.EXTENSION:
            name = self.parse_type()
        elif self.current.is_word():
            name = self.advance()
        else:
            name = None
        if name is None:
            raise ParseError(f"Expected a name after '{keyword.value}'", self.current)
        children.append(name)

        generics = self.parse_generic_params()
        if generics is not None:
            children.append(generics)
        if self.check(TT.COLON):
            children.append(self.parse_inheritance())
        if self.current.is_word('where'):
            children.append(self.parse_where_clause())

        if not self.check(TT.LBRACE):
            raise ParseError(f"Expected '{{' to open the {keyword.value} body", self.current)
        children.append(self.parse_block('member_block'))

        return Tree('type_decl', children)

    def parse_generic_params(self) -> Optional[Tree]:
        tok = self.current
        if tok.type != TT.OPERATOR or not tok.value.startswith('<'):
            return None

        opener = self.split_operator('<')
        children: List[Node] = [opener]

        while True:
            cur = self.current
            if cur.type == TT.OPERATOR and cur.value.startswith('>'):
                children.append(self.split_operator('>'))
                return Tree('generic_params', children)
            if self.at_boundary():
                raise ParseError("Unclosed generic parameter clause", opener)
            children.append(self.parse_generic_param())

    def parse_generic_param(self) -> Tree:
        parts: List[Node] = []

        if self.current.is_word():
            parts.append(self.advance())
            # parameter packs: <each T>
            if parts[-1].value == 'each' and self.current.is_word():
                parts.append(self.advance())
        if self.check(TT.COLON):
            parts.append(self.advance())
            constraint = self.parse_type()
            if constraint is not None:
                parts.append(constraint)
        if self.check(TT.COMMA):
            parts.append(self.advance())
        if not parts:
            parts.append(self.advance())

        return Tree('generic_param', parts)

    def parse_inheritance(self) -> Tree:
        children: List[Node] = [self.advance()]

        while True:
            inherited = self.parse_type()
            if inherited is None:
                break
            entry: List[Node] = [inherited]
            if self.check(TT.COMMA):
                entry.append(self.advance())
            children.append(Tree('inherited_type', entry))
            if len(entry) == 1:
                break

        return Tree('inheritance', children)

    def parse_where_clause(self) -> Tree:
        children: List[Node] = [self.advance()]
        self.in_condition = True

        while not self.check(TT.LBRACE) and not self.at_boundary():
            children.append(self.parse_item())

        self.in_condition = False
        return Tree('where_clause', children)

    def parse_variable_decl(self, attributes: Tree, modifiers: Tree) -> Tree:
        """
        Parse variable declaration:
        [attributes] [modifiers] var|let binding (, binding)*
        """
        children: List[Node] = [attributes, modifiers, self.advance()]

        while True:
            binding = self.parse_binding()
            if binding is None:
                break
            children.append(binding)
            last = binding.children[-1]
            if not (is_token(last) and last.type == TT.COMMA):
                break

        return Tree('variable_decl', children)

    def parse_binding(self) -> Optional[Tree]:
        """pattern [: Type] [= expr] [{ accessors }] [,]"""
        if self.check(TT.IDENT):
            pattern: Node = self.advance()
        elif self.check(TT.LPAR):
            pattern = self.parse_arguments(TT.LPAR, 'group')
        else:
            return None

        children: List[Node] = [pattern]
        annotated = False
        initialized = False

        if self.check(TT.COLON):
            annotation: List[Node] = [self.advance()]
            bound_type = self.parse_type()
            if bound_type is not None:
                annotation.append(bound_type)
            children.append(Tree('type_annotation', annotation))
            annotated = True

        if self.check(TT.ASSIGN):
            children.append(Tree('initializer', [self.advance(), self.parse_expr()]))
            initialized = True

        if (
            self.check(TT.LBRACE)
            and not self.in_condition
            and (not self.current.starts_line or (annotated and not initialized))
        ):
            children.append(self.parse_block('accessor_block'))

        if self.check(TT.COMMA):
            children.append(self.advance())

        return Tree('binding', children)

    # ========================================================================
    # Types
    # ========================================================================

    def parse_type(self) -> Optional[Node]:
        """
        Parse a type. A plain name (with optional generic arguments) comes
        back as a bare ``type_identifier``; anything richer is wrapped in a
        ``type`` node.
        """
        parts: List[Node] = []

        while True:
            if self.check(TT.AT) and self.peek(1).is_word():
                parts.append(self.parse_attribute())
            elif (
                self.current.is_word(*TYPE_PREFIX_WORDS)
                and self.peek(1).type in (TT.IDENT, TT.LPAR, TT.LSQB)
            ):
                parts.append(self.advance())
            else:
                break

        primary = self.parse_type_primary()
        if primary is None:
            return Tree('type', parts) if parts else None
        parts.append(primary)

        while True:
            tok = self.current
            if tok.type == TT.OPERATOR and self.attached() and set(tok.value) <= {'?', '!'}:
                parts.append(self.advance())
            elif tok.type == TT.OPERATOR and self.attached() and tok.value == '...':
                parts.append(self.advance())
            elif (
                tok.type == TT.DOT
                and self.attached()
                and self.peek(1).is_word('Type', 'Protocol')
            ):
                parts.extend([self.advance(), self.advance()])
            elif tok.is_word(*EFFECT_WORDS) and self.peek(1).type in (TT.ARROW, TT.IDENT, TT.LPAR):
                parts.append(self.advance())
                if self.check(TT.LPAR) and self.attached():
                    parts.append(self.parse_arguments(TT.LPAR, 'group'))
            elif tok.type == TT.ARROW or (tok.type == TT.OPERATOR and tok.value == '&'):
                parts.append(self.advance())
                rest = self.parse_type()
                if rest is not None:
                    parts.append(rest)
                break
            else:
                break

        if len(parts) == 1:
            return parts[0]
        return Tree('type', parts)

    def parse_type_primary(self) -> Optional[Node]:
        tok = self.current
        if tok.type == TT.IDENT:
            return self.parse_type_identifier()
        if tok.type in (TT.LPAR, TT.LSQB):
            return self.parse_arguments(tok.type, 'group')
        return None

    def parse_type_identifier(self) -> Tree:
        """Name[<Args>] (.Member[<Args>])*"""
        children: List[Node] = [self.advance()]
        generic_args = self.parse_generic_args()
        if generic_args is not None:
            children.append(generic_args)
        node = Tree('type_identifier', children)

        while (
            self.check(TT.DOT)
            and self.attached()
            and not self.current.trailing
            and self.peek(1).type == TT.IDENT
            and not self.peek(1).leading
            and self.peek(1).value not in ('Type', 'Protocol')
        ):
            member: List[Node] = [node, self.advance(), self.advance()]
            generic_args = self.parse_generic_args()
            if generic_args is not None:
                member.append(generic_args)
            node = Tree('member_type', member)

        return node

    def parse_generic_args(self) -> Optional[Tree]:
        tok = self.current
        if tok.type != TT.OPERATOR or not tok.value.startswith('<') or not self.attached():
            return None

        start = self.pos
        children: List[Node] = [self.split_operator('<')]

        while True:
            cur = self.current
            if cur.type == TT.OPERATOR and cur.value.startswith('>'):
                children.append(self.split_operator('>'))
                return Tree('generic_args', children)
            arg = self.parse_type()
            if arg is None:
                # Not a generic argument list after all (a < b); split tokens stay split
                self.pos = start
                return None
            children.append(arg)
            if self.check(TT.COMMA):
                children.append(self.advance())

    # ========================================================================
    # Expressions
    # ========================================================================

    def parse_expr(self) -> Tree:
        """
        Parse an initializer expression: postfix chains joined by binary
        operators, casts and ternaries. Stops at the first token that cannot
        continue the expression.
        """
        elements: List[Node] = []
        pending_ternary = 0

        while not self.check(TT.COMMA, TT.SEMI) and not self.at_boundary():
            while self.current.is_word('try', 'await'):
                elements.append(self.advance())
                if self.current.type == TT.OPERATOR and self.current.value in ('?', '!') and self.attached():
                    elements.append(self.advance())
            if self.check(TT.COMMA, TT.SEMI) or self.at_boundary():
                break

            elements.append(self.parse_postfix_chain())

            if self.current.is_word('as', 'is'):
                cast = self.advance()
                elements.append(cast)
                if cast.value == 'as' and self.current.type == TT.OPERATOR and self.current.value in ('?', '!') and self.attached():
                    elements.append(self.advance())
                target = self.parse_type()
                if target is not None:
                    elements.append(target)

            tok = self.current
            if self.is_binary_operator(tok):
                if tok.value == '?':
                    pending_ternary += 1
                elements.append(self.advance())
                continue
            if tok.type == TT.COLON and pending_ternary:
                pending_ternary -= 1
                elements.append(self.advance())
                continue
            break

        return Tree('expr', elements)

    def is_binary_operator(self, tok: Tok) -> bool:
        """An operator is binary when it is spaced the same on both sides."""
        if tok.type != TT.OPERATOR:
            return False
        space_before = bool(self.peek(-1).trailing or tok.leading)
        space_after = bool(tok.trailing or self.peek(1).leading)
        return space_before == space_after and self.peek(1).type != TT.EOF

    def parse_postfix_chain(self) -> Node:
        """primary ( .name | (args) | [args] | { closure } | ? | ! )*"""
        node = self.parse_primary()
        if not self.is_operand(node):
            return node

        while True:
            tok = self.current
            nxt = self.peek(1)

            if tok.type == TT.DOT and (nxt.is_word() or nxt.type == TT.NUMBER) and not tok.trailing and not nxt.leading:
                node = Tree('member_access', [node, self.advance(), self.advance()])
            elif (
                tok.type == TT.OPERATOR
                and tok.value in ('?', '!')
                and self.attached()
                and self.callable(node)
            ):
                node = Tree('postfix', [node, self.advance()])
            elif tok.type == TT.LPAR and not tok.starts_line and self.callable(node, tok):
                node = Tree('call', [node, self.parse_arguments(TT.LPAR)])
            elif tok.type == TT.LSQB and self.attached() and self.callable(node):
                node = Tree('subscript', [node, self.parse_arguments(TT.LSQB)])
            elif (
                tok.type == TT.LBRACE
                and not tok.starts_line
                and not self.in_condition
                and self.callable(node)
                and tree_label(node) != 'group'
            ):
                node = self.parse_trailing_closures(node)
            else:
                return node

    def parse_trailing_closures(self, node: Node) -> Tree:
        """callee { ... } [label: { ... }]*"""
        if tree_label(node) == 'call':
            children = list(node.children)
        else:
            children = [node]
        children.append(self.parse_block('block'))

        while (
            self.current.is_word()
            and not self.current.starts_line
            and self.peek(1).type == TT.COLON
            and self.peek(2).type == TT.LBRACE
        ):
            children.extend([self.advance(), self.advance(), self.parse_block('block')])

        return Tree('call', children)

    def parse_primary(self) -> Node:
        tok = self.current

        if tok.type == TT.LBRACE:
            return self.parse_block('block')
        if tok.type in (TT.LPAR, TT.LSQB):
            return self.parse_arguments(tok.type, 'group')
        if tok.type == TT.DOT and self.peek(1).is_word() and not tok.trailing and not self.peek(1).leading:
            # Implicit member: .tint, .environmentObject(model)
            return Tree('member_access', [None, self.advance(), self.advance()])
        if tok.type in (TT.OPERATOR, TT.BACKSLASH) and not tok.trailing and self.starts_operand(self.peek(1)):
            return Tree('prefix', [self.advance(), self.parse_postfix_chain()])
        if self.at_boundary():
            raise ParseError(f"Unexpected '{tok.value or 'end of file'}'", tok)

        return self.advance()

    def parse_block(self, label: str) -> Tree:
        opener = self.advance()
        self.in_condition = False
        items = self.parse_items(TT.RBRACE, opener)
        return Tree(label, [opener] + items + [self.advance()])

    def parse_arguments(self, opener_type: TT, label: str = 'arguments') -> Tree:
        """( [label:] expr, ... ) or [ ... ]"""
        opener = self.advance()
        closer_type = OPENERS[opener_type]
        saved = self.in_condition
        self.in_condition = False
        children: List[Node] = [opener]

        while not self.check(closer_type):
            if self.check(TT.EOF):
                raise ParseError(f"Unclosed '{opener.value}'", opener)
            if self.check(*CLOSERS):
                raise ParseError(f"Unbalanced '{self.current.value}'", self.current)
            children.append(self.parse_argument(closer_type))

        children.append(self.advance())
        self.in_condition = saved
        return Tree(label, children)

    def parse_argument(self, closer_type: TT) -> Tree:
        children: List[Node] = []

        if self.current.is_word() and self.peek(1).type == TT.COLON:
            children.extend([self.advance(), self.advance()])

        elements: List[Node] = []
        while not self.check(TT.COMMA, closer_type) and not self.at_boundary():
            elements.append(self.parse_item())
        children.append(Tree('expr', elements))

        if self.check(TT.COMMA):
            children.append(self.advance())

        return Tree('argument', children)

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def is_operand(node: Node) -> bool:
        if is_token(node):
            return node.type in (TT.IDENT, TT.NUMBER, TT.STRING, TT.POUND) or node.is_word()
        return True

    @staticmethod
    def callable(node: Node, paren: Optional[Tok] = None) -> bool:
        """Whether ``(``, ``[`` or ``{`` right after ``node`` continues it."""
        if is_token(node):
            if node.type == TT.IDENT:
                return node.value not in NON_CALLABLE_WORDS
            return node.type == TT.POUND
        if tree_label(node) in ('block', 'group'):
            # { ... }() and (f)(x) only when written back to back
            return paren is not None and not paren.leading and not _last_trailing(node)
        return tree_label(node) in ('call', 'member_access', 'subscript', 'postfix')

    @staticmethod
    def starts_operand(tok: Tok) -> bool:
        if tok.leading:
            return False
        return tok.type in (TT.IDENT, TT.NUMBER, TT.STRING, TT.POUND, TT.LPAR, TT.LSQB, TT.DOT) or tok.is_word()


def _operator_type(value: str) -> TT:
    if value == '.':
        return TT.DOT
    if value == '=':
        return TT.ASSIGN
    if value == '->':
        return TT.ARROW
    return TT.OPERATOR


def _last_trailing(node: Node) -> str:
    children = tree_children(node)
    return children[-1].trailing if children and is_token(children[-1]) else ''


# ============================================================================
# Entry points
# ============================================================================

def parse_tokens(tokens: List[Tok]) -> Tree:
    return Parser(tokens).parse()


def parse_source(source: str) -> Tree:
    """Tokenize and parse Swift source into a lossless tree"""
    return parse_tokens(tokenize(source))
