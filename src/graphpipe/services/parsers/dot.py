"""
Parser for the subset of the Graphviz DOT language graphpipe accepts.

Supported:
    [strict] (digraph | graph) [ID] { stmt_list }
    node statements          a [label="A", color=red]
    edge statements/chains   a -> b -> c [weight=2]
    attribute statements     node [shape=box]      (accepted, ignored)
    graph assignments        rankdir=LR            (accepted, ignored)
    comments                 // ..., /* ... */, and lines starting with #

Not supported: subgraphs, ports (a:n) and HTML labels; they raise ParseError.

Node attributes become the node's data, with "label" defaulting to the node id.
Edge attributes become the edge's data; an `id` attribute names the edge.
Edge endpoints that never appear in a node statement are reported in
`GraphFragment.implicit_nodes` so the store can create them on demand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re

from graphpipe.contracts.errors import ParseError
from graphpipe.core.graph.types import EdgeSpec, Node

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>[ \t\r\f\v]+)
  | (?P<newline>\n)
  | (?P<line_comment>//[^\n]*)
  | (?P<block_comment>/\*.*?\*/)
  | (?P<edgeop>->|--)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<number>-?(?:\.\d+|\d+(?:\.\d*)?))
  | (?P<ident>[A-Za-z_\u0080-\uffff][A-Za-z_0-9\u0080-\uffff]*)
  | (?P<punct>[{}\[\];,=:])
  | (?P<html><)
    """,
    re.VERBOSE | re.DOTALL,
)

_KEYWORDS = {"strict", "graph", "digraph", "node", "edge", "subgraph"}


@dataclass(frozen=True)
class Token:
    kind: str  # "id", "keyword", "edgeop", "punct", "eof"
    value: str
    line: int
    column: int


@dataclass
class GraphFragment:
    """Structured result of parsing one submission."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[EdgeSpec] = field(default_factory=list)
    implicit_nodes: list[str] = field(default_factory=list)
    directed: bool = True
    name: str | None = None


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    line, line_start, pos = 1, 0, 0

    while pos < len(text):
        # '#' lines are preprocessor output in DOT; skip them whole
        if text.startswith("#", pos) and text[line_start:pos].strip() == "":
            end = text.find("\n", pos)
            pos = len(text) if end == -1 else end
            continue

        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise ParseError(f"unexpected character {text[pos]!r}", line=line, column=pos - line_start + 1)

        kind = m.lastgroup
        value = m.group()
        column = pos - line_start + 1

        if kind == "newline":
            line += 1
            line_start = m.end()
        elif kind == "block_comment":
            newlines = value.count("\n")
            if newlines:
                line += newlines
                line_start = pos + value.rfind("\n") + 1
        elif kind == "html":
            raise ParseError("HTML strings are not supported", line=line, column=column)
        elif kind == "string":
            tokens.append(Token("id", _unquote(value), line, column))
            newlines = value.count("\n")
            if newlines:
                line += newlines
                line_start = pos + value.rfind("\n") + 1
        elif kind in ("number", "ident"):
            lowered = value.lower()
            if kind == "ident" and lowered in _KEYWORDS:
                tokens.append(Token("keyword", lowered, line, column))
            else:
                tokens.append(Token("id", value, line, column))
        elif kind in ("edgeop", "punct"):
            tokens.append(Token(kind, value, line, column))

        pos = m.end()

    tokens.append(Token("eof", "", line, pos - line_start + 1))
    return tokens


def _unquote(value: str) -> str:
    body = value[1:-1]
    # DOT only escapes the double quote; a backslash-newline continues the line
    return body.replace('\\"', '"').replace("\\\n", "")


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.i = 0
        self.fragment = GraphFragment()
        self._node_attrs: dict[str, dict[str, str]] = {}
        self._referenced: list[str] = []
        self._edge_op = "->"

    # -------- token helpers --------

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.i + offset, len(self.tokens) - 1)]

    def next(self) -> Token:
        tok = self.peek()
        self.i += 1
        return tok

    def accept(self, kind: str, value: str | None = None) -> Token | None:
        tok = self.peek()
        if tok.kind == kind and (value is None or tok.value == value):
            self.i += 1
            return tok
        return None

    def expect(self, kind: str, value: str | None = None) -> Token:
        tok = self.accept(kind, value)
        if tok is None:
            got = self.peek()
            want = value or kind
            shown = got.value or got.kind
            raise ParseError(f"expected {want!r}, got {shown!r}", line=got.line, column=got.column)
        return tok

    # -------- grammar --------

    def parse(self) -> GraphFragment:
        self.accept("keyword", "strict")
        head = self.next()
        if head.kind != "keyword" or head.value not in ("graph", "digraph"):
            raise ParseError("expected 'graph' or 'digraph'", line=head.line, column=head.column)
        self.fragment.directed = head.value == "digraph"
        self._edge_op = "->" if self.fragment.directed else "--"

        name = self.accept("id")
        self.fragment.name = name.value if name else None

        self.expect("punct", "{")
        self.stmt_list()
        self.expect("punct", "}")
        self.expect("eof")

        declared = set(self._node_attrs)
        for node_id, attrs in self._node_attrs.items():
            data = {"label": node_id, **attrs}
            self.fragment.nodes.append(Node(id=node_id, data=data))
        seen: set[str] = set()
        for node_id in self._referenced:
            if node_id not in declared and node_id not in seen:
                seen.add(node_id)
                self.fragment.implicit_nodes.append(node_id)
        return self.fragment

    def stmt_list(self) -> None:
        while True:
            tok = self.peek()
            if tok.kind == "eof" or (tok.kind == "punct" and tok.value == "}"):
                return
            self.stmt()
            self.accept("punct", ";")

    def stmt(self) -> None:
        tok = self.peek()
        if tok.kind == "keyword":
            if tok.value in ("graph", "node", "edge"):
                self.next()
                self.attr_list()  # defaults are accepted but not applied
                return
            if tok.value == "subgraph":
                raise ParseError("subgraphs are not supported", line=tok.line, column=tok.column)
            raise ParseError(f"unexpected keyword {tok.value!r}", line=tok.line, column=tok.column)
        if tok.kind == "punct" and tok.value == "{":
            raise ParseError("subgraphs are not supported", line=tok.line, column=tok.column)

        first = self.expect("id")
        if self.accept("punct", "="):
            self.expect("id")  # graph-level assignment, ignored
            return
        if self.peek().kind == "punct" and self.peek().value == ":":
            port = self.peek()
            raise ParseError("ports are not supported", line=port.line, column=port.column)

        if self.peek().kind == "edgeop":
            self.edge_stmt(first)
        else:
            attrs = self.attr_list()
            self._node_attrs.setdefault(first.value, {}).update(attrs)

    def edge_stmt(self, first: Token) -> None:
        chain = [first.value]
        while (op := self.accept("edgeop")) is not None:
            if op.value != self._edge_op:
                kind = "digraph" if self.fragment.directed else "graph"
                raise ParseError(f"edge operator {op.value!r} is not valid in a {kind}", line=op.line, column=op.column)
            nxt = self.peek()
            if (nxt.kind == "punct" and nxt.value == "{") or (nxt.kind == "keyword" and nxt.value == "subgraph"):
                raise ParseError("subgraphs are not supported", line=nxt.line, column=nxt.column)
            chain.append(self.expect("id").value)

        attrs = self.attr_list()
        edge_id = attrs.pop("id", None)
        pairs = list(zip(chain, chain[1:]))
        for k, (a, b) in enumerate(pairs):
            if edge_id is None:
                eid = None
            elif len(pairs) == 1:
                eid = edge_id
            else:
                eid = f"{edge_id}#{k}"
            self.fragment.edges.append(EdgeSpec(a=a, b=b, id=eid, data=dict(attrs)))
        self._referenced.extend(chain)

    def attr_list(self) -> dict[str, str]:
        attrs: dict[str, str] = {}
        while self.accept("punct", "["):
            while not self.accept("punct", "]"):
                key = self.expect("id").value
                value = "true"
                if self.accept("punct", "="):
                    value = self.expect("id").value
                attrs[key] = value
                if not self.accept("punct", ","):
                    self.accept("punct", ";")
        return attrs


def parse_dot(text: str) -> GraphFragment:
    """
    Parse DOT text into a GraphFragment.

    Raises:
        ParseError: the text is not in the supported DOT subset.
    """
    if not text or not text.strip():
        raise ParseError("empty graph description")
    return _Parser(tokenize(text)).parse()
