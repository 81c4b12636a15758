"""Expression construction and pure tree transforms.

Simplifying constructors for the generated predicates (conjunction,
implication, negation) and a generic rebuild-on-change traversal over the
ast_nodes expression family. Transforms never mutate their input; a
subtree that is not changed is returned as the very same object, so callers
can detect "nothing changed" by identity.
"""

from __future__ import annotations

import dataclasses
from typing import Callable, Iterator, Optional, Sequence

from verism.ast_nodes import (
    Expr, BoolLiteral, Identifier, BinaryOp, UnaryOp, FunctionCall,
    FieldAccess, MethodCall, PathExpr, Statement,
)
from verism.errors import SourceLocation


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def true_expr(location: Optional[SourceLocation] = None) -> Expr:
    return BoolLiteral(value=True, location=location)


def is_true(expr: Expr) -> bool:
    return isinstance(expr, BoolLiteral) and expr.value is True


def conjoin(exprs: Sequence[Expr]) -> Expr:
    """Left-associated && chain; `true` for an empty sequence."""
    parts = [e for e in exprs if not is_true(e)]
    if not parts:
        return true_expr()
    result = parts[0]
    for part in parts[1:]:
        result = BinaryOp(op="&&", left=result, right=part, location=result.location)
    return result


def implies(antecedent: Expr, consequent: Expr) -> Expr:
    if is_true(antecedent):
        return consequent
    return BinaryOp(op="==>", left=antecedent, right=consequent, location=antecedent.location)


def negate(expr: Expr) -> Expr:
    if isinstance(expr, UnaryOp) and expr.op == "!":
        return expr.operand
    return UnaryOp(op="!", operand=expr, location=expr.location)


def equal(left: Expr, right: Expr) -> Expr:
    return BinaryOp(op="==", left=left, right=right, location=left.location)


def state_field(base: str, field_name: str) -> FieldAccess:
    return FieldAccess(obj=Identifier(name=base), field_name=field_name)


def self_field(field_name: str) -> FieldAccess:
    return state_field("self", field_name)


def post_field(field_name: str) -> FieldAccess:
    return state_field("post", field_name)


def method_call(receiver: str, method: str, args: Sequence[Expr] = ()) -> MethodCall:
    return MethodCall(obj=Identifier(name=receiver), method_name=method, args=list(args))


def path_call(segments: Sequence[str], args: Sequence[Expr] = ()) -> FunctionCall:
    return FunctionCall(callee=PathExpr(segments=list(segments)), args=list(args))


def names(identifiers: Sequence[str]) -> list[Expr]:
    return [Identifier(name=n) for n in identifiers]


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def _is_node(value: object) -> bool:
    return isinstance(value, (Expr, Statement))


def children(node: Expr | Statement) -> Iterator[Expr | Statement]:
    """Direct expression/statement children of a node, in field order."""
    for f in dataclasses.fields(node):
        value = getattr(node, f.name)
        if _is_node(value):
            yield value
        elif isinstance(value, list):
            for item in value:
                if _is_node(item):
                    yield item


def walk(node: Expr | Statement) -> Iterator[Expr | Statement]:
    """Pre-order traversal of a node and all its descendants."""
    yield node
    for child in children(node):
        yield from walk(child)


def rewrite(node: Expr, fn: Callable[[Expr], Optional[Expr]]) -> Expr:
    """Top-down rebuild.

    `fn` sees each node before its children; a non-None result replaces the
    whole subtree and is not descended into.
    """
    replacement = fn(node)
    if replacement is not None:
        return replacement
    return _rebuild(node, lambda child: rewrite(child, fn))


def _rebuild(node, visit):
    """Apply `visit` to every expression below `node`, statements included."""
    changes = {}
    for f in dataclasses.fields(node):
        value = getattr(node, f.name)
        if isinstance(value, Expr):
            new = visit(value)
        elif isinstance(value, Statement):
            new = _rebuild(value, visit)
        elif isinstance(value, list) and any(_is_node(v) for v in value):
            items = [
                visit(v) if isinstance(v, Expr)
                else _rebuild(v, visit) if isinstance(v, Statement)
                else v
                for v in value
            ]
            new = items if any(a is not b for a, b in zip(items, value)) else value
        else:
            continue
        if new is not value:
            changes[f.name] = new
    if not changes:
        return node
    return dataclasses.replace(node, **changes)


def contains(haystack: Expr, needle: Expr) -> bool:
    """True when `needle` (by identity) occurs inside `haystack`."""
    return any(node is needle for node in walk(haystack))
