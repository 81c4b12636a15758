"""Transition body translator.

Converts the executable body of a transition function into the restricted
TransitionStmt tree:

  Block, Let, If, Require, Assert, Update

Anything outside that grammar is rejected with a located CompileError.
Expressions are checked but kept as-is; they are host expressions.
"""

from __future__ import annotations

import logging
from typing import Iterable

from verism.ast_nodes import (
    Expr, Identifier, FunctionCall, FieldAccess, BlockExpr, IfExpr,
    LetStmt, ExprStmt, FnItem, Statement,
)
from verism.errors import (
    CompileError, grammar_error, reference_error, arity_error, scoping_error,
    definition_error,
)
from verism.exprs import walk
from verism.printer import format_expr
from verism.smir import (
    TransitionStmt, Block, Let, If, Require, Assert, Update,
    Transition, TransitionKind, TransitionParam,
)

logger = logging.getLogger(__name__)

RESERVED_CALLS = {"require": 1, "assert": 1, "update": 2}
RESERVED_NAMES = ("self", "post")


def _is_reserved_call(expr: Expr) -> bool:
    return isinstance(expr, FunctionCall) and isinstance(expr.callee, Identifier) \
        and expr.callee.name in RESERVED_CALLS


class TransitionTranslator:
    """Translates one transition function; not reused across functions."""

    def __init__(self, func: FnItem, kind: TransitionKind, field_names: Iterable[str]):
        self.func = func
        self.kind = kind
        self.field_names = set(field_names)

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------

    def translate(self) -> Transition:
        func = self.func
        if func.receiver is None:
            raise CompileError(grammar_error(
                f"Transition '{func.name}' must take a 'self' receiver",
                func.location,
            ))
        params: list[TransitionParam] = []
        scope: set[str] = set()
        for p in func.params:
            if p.name in RESERVED_NAMES:
                raise CompileError(scoping_error(
                    f"Transition parameter may not be named '{p.name}'",
                    p.location, name=p.name,
                ))
            scope.add(p.name)
            params.append(TransitionParam(p.name, p.type_annotation, p.location))

        body = self._translate_block(func.body, scope)

        if self.kind == TransitionKind.READONLY:
            for stmt in iter_stmts(body):
                if isinstance(stmt, Update):
                    raise CompileError(definition_error(
                        f"Readonly transition '{func.name}' may not update field '{stmt.field_name}'",
                        stmt.location,
                    ))

        logger.debug("translated %s transition %s", self.kind.value, func.name)
        return Transition(
            kind=self.kind,
            name=func.name,
            params=tuple(params),
            body=body,
            location=func.location,
        )

    # -------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------

    def _translate_block(self, block: BlockExpr, outer_scope: set[str]) -> Block:
        scope = set(outer_scope)
        stmts: list[TransitionStmt] = []
        for stmt in block.statements:
            stmts.append(self._translate_statement(stmt, scope))
        if block.result is not None:
            # Statements in tail position may omit the semicolon.
            if not isinstance(block.result, (IfExpr, BlockExpr)) and not _is_reserved_call(block.result):
                raise CompileError(grammar_error(
                    "Transition blocks may not yield a value: "
                    f"'{format_expr(block.result)}'",
                    block.result.location,
                ))
            stmts.append(self._translate_expr_stmt(block.result, scope))
        return Block(location=block.location, stmts=tuple(stmts))

    def _translate_statement(self, stmt: Statement, scope: set[str]) -> TransitionStmt:
        if isinstance(stmt, LetStmt):
            return self._translate_let(stmt, scope)
        if isinstance(stmt, ExprStmt):
            return self._translate_expr_stmt(stmt.expr, scope)
        raise CompileError(grammar_error(
            f"Unsupported statement in transition '{self.func.name}': "
            f"{type(stmt).__name__}",
            stmt.location,
        ))

    def _translate_let(self, stmt: LetStmt, scope: set[str]) -> Let:
        if stmt.mutable:
            raise CompileError(grammar_error(
                f"'let mut {stmt.name}' is not allowed in a transition",
                stmt.location,
            ))
        if stmt.value is None:
            raise CompileError(grammar_error(
                f"'let {stmt.name}' requires an initializer",
                stmt.location,
            ))
        if stmt.name in RESERVED_NAMES or stmt.name in scope:
            raise CompileError(scoping_error(
                f"'{stmt.name}' is already bound",
                stmt.location, name=stmt.name,
            ))
        self._check_expr(stmt.value)
        scope.add(stmt.name)
        return Let(location=stmt.location, name=stmt.name, value=stmt.value)

    def _translate_expr_stmt(self, expr: Expr, scope: set[str]) -> TransitionStmt:
        if isinstance(expr, IfExpr):
            return self._translate_if(expr, scope)
        if isinstance(expr, BlockExpr):
            return self._translate_block(expr, scope)
        if _is_reserved_call(expr):
            return self._translate_call(expr)
        raise CompileError(grammar_error(
            f"Unsupported statement in transition '{self.func.name}': "
            f"'{format_expr(expr)}'",
            expr.location,
        ))

    def _translate_if(self, expr: IfExpr, scope: set[str]) -> If:
        self._check_expr(expr.condition)
        then_branch = self._translate_block(expr.then_branch, scope)
        if expr.else_branch is None:
            else_branch: TransitionStmt = Block(location=expr.location)
        elif isinstance(expr.else_branch, IfExpr):
            else_branch = self._translate_if(expr.else_branch, scope)
        elif isinstance(expr.else_branch, BlockExpr):
            else_branch = self._translate_block(expr.else_branch, scope)
        else:
            raise CompileError(grammar_error("Malformed else branch", expr.else_branch.location))
        return If(
            location=expr.location,
            condition=expr.condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _translate_call(self, call: FunctionCall) -> TransitionStmt:
        name = call.callee.name
        expected = RESERVED_CALLS[name]
        if len(call.args) != expected:
            raise CompileError(arity_error(name, expected, len(call.args), call.location))

        if name == "update":
            target, value = call.args
            if not isinstance(target, Identifier):
                raise CompileError(grammar_error(
                    f"expected field name as first argument of 'update', got '{format_expr(target)}'",
                    target.location or call.location,
                ))
            if target.name not in self.field_names:
                raise CompileError(reference_error(
                    target.name,
                    f"'update' of undeclared field '{target.name}'",
                    target.location or call.location,
                ))
            self._check_expr(value)
            return Update(location=call.location, field_name=target.name, value=value)

        (arg,) = call.args
        self._check_expr(arg)
        if name == "require":
            return Require(location=call.location, expr=arg)
        return Assert(location=call.location, expr=arg)

    # -------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------

    def _check_expr(self, expr: Expr) -> None:
        for node in walk(expr):
            if isinstance(node, FunctionCall) and isinstance(node.callee, Identifier) \
                    and node.callee.name in RESERVED_CALLS:
                raise CompileError(grammar_error(
                    f"'{node.callee.name}' may only be used as a statement",
                    node.location,
                ))
            if isinstance(node, FieldAccess) and isinstance(node.obj, Identifier) \
                    and node.obj.name == "self":
                if self.kind == TransitionKind.INIT:
                    raise CompileError(scoping_error(
                        f"Init transition '{self.func.name}' may not read 'self.{node.field_name}'",
                        node.location, name="self",
                    ))
                if node.field_name not in self.field_names:
                    raise CompileError(reference_error(
                        node.field_name,
                        f"Reference to undeclared field 'self.{node.field_name}'",
                        node.location,
                    ))
            elif isinstance(node, Identifier) and node.name == "self" \
                    and self.kind == TransitionKind.INIT:
                raise CompileError(scoping_error(
                    f"Init transition '{self.func.name}' may not read 'self'",
                    node.location, name="self",
                ))


def iter_stmts(stmt: TransitionStmt):
    """Pre-order traversal of a TransitionStmt tree."""
    yield stmt
    if isinstance(stmt, Block):
        for child in stmt.stmts:
            yield from iter_stmts(child)
    elif isinstance(stmt, If):
        yield from iter_stmts(stmt.then_branch)
        yield from iter_stmts(stmt.else_branch)


def translate_transition(
    func: FnItem,
    kind: TransitionKind,
    field_names: Iterable[str],
) -> Transition:
    return TransitionTranslator(func, kind, field_names).translate()
