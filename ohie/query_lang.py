"""
Where-expressions (record filters)
==================================

Filters for the aggregator can be written as small boolean expressions:

- outbreak_type == 'Respiratory'
- year >= 2020 AND setting in ('LTCH', 'Retirement Home')
- NOT (type == Enteric) AND date_began < '2021-01-01'
- causative_agent_1 contains 'norovirus'

This file provides:
- Tokenizer (text -> tokens)
- Parser (tokens -> AST of And/Or/Not/Cmp nodes)
- `compile_where`, which turns an AST into a predicate over OutbreakRecord
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, List, Optional
import re

from .derive import normalize_outbreak_type, normalize_setting
from .models import OutbreakRecord, RECORD_FIELD_KINDS, VariableKind

# expr       := term (OR term)*
# term       := factor (AND factor)*
# factor     := NOT factor | "(" expr ")" | comparison
# comparison := IDENT (OP | contains) VALUE | IDENT in "(" VALUE ("," VALUE)* ")"
# OP         := == != >= <= > <
# VALUE      := number | quoted string | bareword

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<LPAREN>\() |
        (?P<RPAREN>\)) |
        (?P<COMMA>,) |
        (?P<OP>==|!=|>=|<=|>|<) |
        (?P<KW>\b(?:AND|OR|NOT|IN|contains)\b) |
        (?P<NUMBER>-?\d+(?:\.\d+)?(?![\w-])) |
        (?P<STRING>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*') |
        (?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
    )\s*
    """,
    re.VERBOSE | re.IGNORECASE
)

FIELD_ALIASES = {
    "type": "outbreak_type",
    "date": "date_began",
    "began": "date_began",
    "declared_over": "date_declared_over",
    "duration": "duration_days",
    "institution": "institution_name",
    "agent": "causative_agent_1",
}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str


class ParseError(ValueError):
    pass


def tokenize(s: str) -> List[Token]:
    """Split an expression into tokens; keywords are case-insensitive."""
    pos = 0
    out: List[Token] = []
    while pos < len(s):
        m = _TOKEN_RE.match(s, pos)
        if not m or m.end() == pos:
            raise ParseError(f"Unexpected character near: {s[pos:pos+20]!r}")
        pos = m.end()
        kind = m.lastgroup
        val = m.group(kind)
        if kind == "KW":
            kind = val.upper()
            val = val.lower()
        out.append(Token(kind=kind, value=val))
    return out


# AST nodes
@dataclass(frozen=True)
class Node: ...


@dataclass(frozen=True)
class And(Node):
    left: Node
    right: Node


@dataclass(frozen=True)
class Or(Node):
    left: Node
    right: Node


@dataclass(frozen=True)
class Not(Node):
    operand: Node


@dataclass(frozen=True)
class Cmp(Node):
    field: str
    op: str
    value: Any


# Binary operators by binding strength (higher binds tighter).
_BINARY = {"OR": (1, Or), "AND": (2, And)}


class _Cursor:
    """Position in a token list; `accept` consumes a token only if its kind matches."""

    def __init__(self, toks: List[Token]) -> None:
        self.toks = toks
        self.i = 0

    def current(self) -> Optional[Token]:
        return self.toks[self.i] if self.i < len(self.toks) else None

    def accept(self, *kinds: str, required: bool = False) -> Optional[Token]:
        t = self.current()
        if t is not None and t.kind in kinds:
            self.i += 1
            return t
        if required:
            got = "end of input" if t is None else f"{t.kind} ({t.value})"
            raise ParseError(f"Expected {' or '.join(kinds)}, got {got}")
        return None


def parse(expr: str) -> Node:
    cur = _Cursor(tokenize(expr))
    if cur.current() is None:
        raise ParseError("Empty expression")
    node = _parse_binary(cur, 1)
    if cur.current() is not None:
        raise ParseError(f"Unexpected token: {cur.current().value}")
    return node


def _parse_binary(cur: _Cursor, min_prec: int) -> Node:
    node = _parse_unary(cur)
    while True:
        t = cur.current()
        if t is None or t.kind not in _BINARY or _BINARY[t.kind][0] < min_prec:
            return node
        prec, cls = _BINARY[t.kind]
        cur.accept(t.kind)
        node = cls(node, _parse_binary(cur, prec + 1))


def _parse_unary(cur: _Cursor) -> Node:
    if cur.accept("NOT"):
        return Not(_parse_unary(cur))
    if cur.accept("LPAREN"):
        node = _parse_binary(cur, 1)
        cur.accept("RPAREN", required=True)
        return node
    field = cur.accept("IDENT", required=True).value
    if cur.accept("IN"):
        cur.accept("LPAREN", required=True)
        values = [_parse_value(cur)]
        while cur.accept("COMMA"):
            values.append(_parse_value(cur))
        cur.accept("RPAREN", required=True)
        return Cmp(field=field, op="in", value=tuple(values))
    op = cur.accept("CONTAINS", "OP", required=True)
    return Cmp(field=field, op=op.value, value=_parse_value(cur))


def _parse_value(cur: _Cursor) -> Any:
    tok = cur.accept("NUMBER", "STRING", "IDENT")
    if tok is None:
        raise ParseError("Expected a value after operator")
    if tok.kind == "NUMBER":
        return float(tok.value) if "." in tok.value else int(tok.value)
    if tok.kind == "STRING":
        # \' \" \\ become the escaped character; everything else is kept as typed
        return re.sub(r"\\(.)", r"\1", tok.value[1:-1])
    return tok.value


# ---------------- Compilation to predicates ----------------

def resolve_field(name: str) -> str:
    """Canonical OutbreakRecord attribute for a (possibly aliased) field name."""
    f = name.lower().strip()
    f = FIELD_ALIASES.get(f, f)
    if f not in OutbreakRecord.__dataclass_fields__:
        raise ValueError(f"Unknown field: {name!r}")
    return f


def _enum_literal(field: str, value: Any, normalize: Callable[[str], Enum]) -> Enum:
    member = normalize(str(value))
    if member.value == "Unknown" and str(value).strip().lower() != "unknown":
        raise ParseError(f"{field} has no value {value!r}")
    return member


def _number_literal(field: str, value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    for conv in (int, float):
        try:
            return conv(str(value))
        except ValueError:
            continue
    raise ParseError(f"{field} needs a number, got {value!r}")


def _literal_for(field: str, value: Any) -> Any:
    """Bring a query literal into the domain of the record attribute."""
    if field == "setting":
        return _enum_literal(field, value, normalize_setting)
    if field == "outbreak_type":
        return _enum_literal(field, value, normalize_outbreak_type)
    kind = RECORD_FIELD_KINDS.get(field)
    if kind is VariableKind.TEMPORAL:
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value))
        except ValueError as e:
            raise ParseError(f"{field} needs an ISO date ('YYYY-MM-DD'), got {value!r}") from e
    if kind is VariableKind.NUMERIC or field == "row_id":
        return _number_literal(field, value)
    return str(value)


def _ordering(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


def _compile_cmp(cmp: Cmp) -> Callable[[OutbreakRecord], bool]:
    field = resolve_field(cmp.field)
    op = cmp.op

    def get(r: OutbreakRecord) -> Any:
        return getattr(r, field)

    if op == "contains":
        needle = str(cmp.value).lower()
        return lambda r: get(r) is not None and needle in str(_ordering(get(r))).lower()

    if op == "in":
        wanted = tuple(_literal_for(field, v) for v in cmp.value)
        return lambda r: get(r) in wanted

    val = _literal_for(field, cmp.value)
    if op == "==": return lambda r: get(r) == val
    if op == "!=": return lambda r: get(r) != val

    # Ordered comparisons; missing values never match.
    key = _ordering(val)

    def ordered(test: Callable[[Any, Any], bool]) -> Callable[[OutbreakRecord], bool]:
        def pred(r: OutbreakRecord) -> bool:
            v = get(r)
            return v is not None and test(_ordering(v), key)
        return pred

    if op == ">=": return ordered(lambda a, b: a >= b)
    if op == "<=": return ordered(lambda a, b: a <= b)
    if op == ">":  return ordered(lambda a, b: a > b)
    if op == "<":  return ordered(lambda a, b: a < b)

    raise ValueError(f"Unsupported operator: {op}")


def _compile(node: Node) -> Callable[[OutbreakRecord], bool]:
    if isinstance(node, And):
        left, right = _compile(node.left), _compile(node.right)
        return lambda r: left(r) and right(r)
    if isinstance(node, Or):
        left, right = _compile(node.left), _compile(node.right)
        return lambda r: left(r) or right(r)
    if isinstance(node, Not):
        inner = _compile(node.operand)
        return lambda r: not inner(r)
    if isinstance(node, Cmp):
        return _compile_cmp(node)
    raise ValueError("Unknown AST node")


def compile_where(expr: str) -> Callable[[OutbreakRecord], bool]:
    """Parse `expr` and return a predicate over OutbreakRecord."""
    return _compile(parse(expr))
