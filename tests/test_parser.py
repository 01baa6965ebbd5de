from __future__ import annotations

from dataclasses import dataclass
from typing import List

import pytest

from tests.support.harness import (
    ParseError,
    TT,
    find_all,
    find_one,
    iter_labels,
    parse_source,
    read_resource,
    to_source,
)
from observable_converter.tree import first_token, token_text


@dataclass(frozen=True)
class Case:
    name: str
    source: str


ROUND_TRIP_CASES: List[Case] = [
    Case("empty", ""),
    Case("only-comments", "// header\n/* block */\n"),
    Case("import", "import SwiftUI\nimport Observation\n"),
    Case(
        "struct-view",
        "struct A: View {\n    var body: some View {\n        Text(\"hi\")\n            .padding()\n    }\n}\n",
    ),
    Case(
        "generics",
        "final class Box<T: Equatable, U>: Base<T>, P where U: Hashable {\n"
        "    var items: Array<Dictionary<String, Int>> = []\n"
        "    var lookup: [String: Int] = [:]\n"
        "}\n",
    ),
    Case(
        "control-flow",
        "func run() {\n"
        "    if let value = cache[key], value > 0 {\n"
        "        print(value)\n"
        "    } else if flag { return }\n"
        "    guard let x = y else { return }\n"
        "    for item in items where item.ok { handle(item) }\n"
        "    switch mode {\n"
        "    case .a, .b: break\n"
        "    default: fatalError()\n"
        "    }\n"
        "    while x < 10 { x += 1 }\n"
        "}\n",
    ),
    Case(
        "closures",
        "let sorted = items.sorted { $0.name < $1.name }\n"
        "let mapped = items.map({ item in item.id })\n"
        "Button(\"Tap\") {\n    tap()\n} label: {\n    Text(\"x\")\n}\n"
        "let lazyValue: Int = { 42 }()\n",
    ),
    Case(
        "attributes",
        "@available(iOS 17, *)\n"
        "@MainActor\n"
        "struct Screen {\n"
        "    @Environment(\\.dismiss) private var dismiss\n"
        "    @AppStorage(\"key\") var stored = false\n"
        "    private(set) var count = 0\n"
        "    nonisolated(unsafe) static var shared: Screen?\n"
        "}\n",
    ),
    Case(
        "pound-directives",
        "#if DEBUG\nlet mode = \"debug\"\n#else\nlet mode = \"release\"\n#endif\n#Preview {\n    Screen()\n}\n",
    ),
    Case(
        "operators",
        "let a = b ?? c\nlet d = e ? f : g\nlet h = -i + j * (k - l)\nlet m = n as? Int ?? 0\nlet r = 0..<5\nlet kp = \\Model.name\n",
    ),
    Case(
        "enum-and-protocol",
        "enum Kind: String, CaseIterable {\n    case one, two\n    indirect case node(Kind)\n}\n"
        "protocol Store: AnyObject {\n    associatedtype Value\n    func load() async throws -> Value\n}\n"
        "extension Array where Element == Int {}\n"
        "actor Counter {\n    var value = 0\n}\n",
    ),
    Case(
        "accessors",
        "class Model {\n"
        "    var name: String {\n        get { stored }\n        set { stored = newValue }\n    }\n"
        "    var watched = 0 {\n        didSet { print(oldValue) }\n    }\n"
        "    class func make() -> Model { Model() }\n"
        "    lazy var helper = Helper()\n"
        "}\n",
    ),
    Case("crlf", "struct A {\r\n    @State var x = 0\r\n}\r\n"),
    Case("no-trailing-newline", "let x = 1"),
    Case("semicolons", "let a = 1; let b = 2;"),
]


@pytest.mark.parametrize("case", ROUND_TRIP_CASES, ids=lambda case: case.name)
def test_round_trip(case: Case) -> None:
    assert to_source(parse_source(case.source)) == case.source


def test_round_trip_fixture() -> None:
    source = read_resource("ContentView-before.swift")
    assert to_source(parse_source(source)) == source


def test_source_file_ends_with_eof_token() -> None:
    tree = parse_source("let x = 1\n")
    assert tree.data == "source_file"
    assert tree.children[-1].type == TT.EOF
    assert tree.children[-1].leading == "\n"


def test_variable_decl_shape() -> None:
    tree = parse_source("@StateObject private var vm = Foo()")
    decl = find_one(tree, "variable_decl")

    attributes, modifiers, keyword, binding = decl.children
    assert attributes.data == "attributes"
    assert [token_text(attr) for attr in attributes.children] == ["@StateObject"]
    assert [token_text(mod) for mod in modifiers.children] == ["private"]
    assert keyword.type == TT.VAR
    assert binding.data == "binding"
    assert binding.children[0].value == "vm"

    initializer = binding.children[1]
    assert initializer.data == "initializer"
    (call,) = initializer.children[1].children
    assert call.data == "call"
    assert call.children[0].value == "Foo"
    assert call.children[1].data == "arguments"


def test_type_decl_shape() -> None:
    tree = parse_source("final class Box<T: Equatable, U>: Base, P where U: Hashable {\n}\n")
    decl = find_one(tree, "type_decl")

    labels = [child.data if hasattr(child, "data") else child.type for child in decl.children]
    assert labels == [
        "attributes",
        "modifiers",
        TT.CLASS,
        TT.IDENT,
        "generic_params",
        "inheritance",
        "where_clause",
        "member_block",
    ]

    params = find_all(decl, "generic_param")
    assert [first_token(param).value for param in params] == ["T", "U"]
    inherited = find_all(decl, "inherited_type")
    assert [token_text(entry.children[0]) for entry in inherited] == ["Base", "P"]


def test_extension_name_is_a_type() -> None:
    decl = find_one(parse_source("extension Foo.Bar {}"), "type_decl")
    assert decl.children[2].type == TT.EXTENSION
    assert token_text(decl.children[3]) == "Foo.Bar"


def test_actor_is_a_type_decl() -> None:
    decl = find_one(parse_source("actor Counter {}"), "type_decl")
    assert decl.children[2].value == "actor"


def test_nested_generic_arguments_split_shift_operator() -> None:
    tree = parse_source("var items: Array<Dictionary<String, Int>> = []")
    args = find_all(tree, "generic_args")
    assert len(args) == 2
    assert args[0].children[-1].value == ">"
    assert args[1].children[-1].value == ">"
    annotation = find_one(tree, "type_annotation")
    assert annotation.children[1].data == "type_identifier"


def test_comparison_is_not_generic() -> None:
    tree = parse_source("let ok = a < b && c > d")
    assert "generic_args" not in list(iter_labels(tree))


def test_trailing_closure_call() -> None:
    tree = parse_source("VStack { Text(\"x\") }")
    call = find_one(tree, "call")
    assert call.children[0].value == "VStack"
    assert call.children[1].data == "block"


def test_labelled_trailing_closures_join_call() -> None:
    tree = parse_source("Button { tap() } label: { Text(\"x\") }")
    call = find_one(tree, "call")
    assert [getattr(child, "data", None) or child.value for child in call.children] == [
        "Button", "block", "label", ":", "block",
    ]


def test_implicit_member_call() -> None:
    tree = parse_source("view.environmentObject(model)")
    call = find_one(tree, "call")
    access = call.children[0]
    assert access.data == "member_access"
    assert access.children[0].value == "view"
    assert access.children[2].value == "environmentObject"

    tree = parse_source("x(.large)")
    access = find_one(tree, "member_access")
    assert access.children[0] is None
    assert access.children[2].value == "large"


def test_member_chain_continues_on_next_line() -> None:
    tree = parse_source("Text(\"x\")\n    .padding()\n    .environmentObject(model)\n")
    names = [access.children[2].value for access in find_all(tree, "member_access")]
    assert names == ["environmentObject", "padding"]


def test_argument_labels() -> None:
    tree = parse_source("StateObject(wrappedValue: Model(), extra)")
    arguments = find_one(tree, "arguments")
    first, second = [child for child in arguments.children if getattr(child, "data", None) == "argument"]
    assert first.children[0].value == "wrappedValue"
    assert first.children[1].type == TT.COLON
    assert first.children[-1].type == TT.COMMA
    assert second.children[0].data == "expr"


def test_attribute_arguments_require_adjacent_paren() -> None:
    tree = parse_source("@Environment(\\.dismiss) var dismiss")
    attribute = find_one(tree, "attribute")
    assert attribute.children[-1].data == "arguments"

    tree = parse_source("@objc (x)")
    attribute = find_one(tree, "attribute")
    assert len(attribute.children) == 2


def test_modifier_detail() -> None:
    tree = parse_source("private(set) var count = 0")
    (modifier,) = find_one(tree, "modifiers").children
    assert [tok.value for tok in modifier.children] == ["private", "(", "set", ")"]


def test_class_as_member_modifier() -> None:
    tree = parse_source("class func make() {}")
    assert "type_decl" not in list(iter_labels(tree))
    head = find_one(tree, "decl_head")
    assert [tok.value for tok in head.children[1].children[0].children] == ["class"]


def test_accessor_block_only_outside_conditions() -> None:
    tree = parse_source("var body: some View {\n    Text(\"x\")\n}\n")
    assert len(find_all(tree, "accessor_block")) == 1

    tree = parse_source("if let x = y {\n    use(x)\n}\n")
    assert not find_all(tree, "accessor_block")
    assert [call.children[0].value for call in find_all(tree, "call")] == ["use"]


def test_condition_suppresses_trailing_closure() -> None:
    tree = parse_source("if isReady {\n    go()\n}\n")
    assert [call.children[0].value for call in find_all(tree, "call")] == ["go"]


def test_multiple_bindings() -> None:
    tree = parse_source("var a = 1, b: Int, c = f()")
    bindings = find_all(tree, "binding")
    assert [binding.children[0].value for binding in bindings] == ["a", "b", "c"]


@pytest.mark.parametrize(
    "source,message,line,column",
    [
        ("struct A {\n", "Unclosed '{'", 1, 10),
        ("foo())", "Unbalanced ')'", 1, 6),
        ("let x = (1, 2", "Unclosed '('", 1, 9),
        ("}", "Unbalanced '}'", 1, 1),
        ("struct A: B", "Expected '{'", 1, 12),
    ],
    ids=["unclosed-brace", "stray-paren", "unclosed-paren", "stray-brace", "missing-body"],
)
def test_parse_errors(source: str, message: str, line: int, column: int) -> None:
    with pytest.raises(ParseError) as exc_info:
        parse_source(source)

    err = exc_info.value
    assert message in str(err)
    assert err.line == line
    assert err.column == column
