"""Concurrency token generator.

For a concurrent state machine M every field f becomes a resource token
`M_f` holding {instance: M_Instance, f: <type>}. Each non-readonly
transition T becomes an exchange operation `M_T` over token arguments
`t_input_f` whose contract is the transition relation restated in terms of
token values:

  self.f       ->  old(t_input_f).f
  post.f       ->  t_input_f.f

Written fields are taken by mutable reference, fields that are only read by
shared reference, and untouched fields are not passed at all.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from verism.ast_nodes import Expr, Identifier, FieldAccess, FunctionCall
from verism.errors import CompileError, scoping_error
from verism.exprs import equal, rewrite
from verism.output import InstanceType, TokenType, TokenParam, ExchangeOp, Param
from verism.smir import (
    SM, Transition, TransitionStmt, Block, Let, If, Require,
    Assert, Update,
)
from verism.weakest import analyze_transition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def instance_type_name(machine: str) -> str:
    return f"{machine}_Instance"


def token_type_name(machine: str, field_name: str) -> str:
    return f"{machine}_{field_name}"


def exchange_op_name(machine: str, transition: str) -> str:
    return f"{machine}_{transition}"


def token_arg_name(field_name: str) -> str:
    return f"t_input_{field_name}"


def old_field_value(field_name: str) -> Expr:
    """old(t_input_f).f"""
    arg = FunctionCall(callee=Identifier(name="old"), args=[Identifier(name=token_arg_name(field_name))])
    return FieldAccess(obj=arg, field_name=field_name)


def new_field_value(field_name: str) -> Expr:
    """t_input_f.f"""
    return FieldAccess(obj=Identifier(name=token_arg_name(field_name)), field_name=field_name)


# ---------------------------------------------------------------------------
# Body rewriting
# ---------------------------------------------------------------------------

class TokenRewriter:
    """Rewrites `self.f` reads into token-relative old values."""

    def __init__(self, sm: SM, transition: Transition):
        self.sm = sm
        self.transition = transition
        self.field_names = set(sm.field_names)
        self.fields_read: set[str] = set()

    def _visit(self, node: Expr) -> Optional[Expr]:
        if isinstance(node, FieldAccess) and isinstance(node.obj, Identifier) \
                and node.obj.name == "self":
            if node.field_name not in self.field_names:
                raise CompileError(scoping_error(
                    f"'self.{node.field_name}' is not a field of '{self.sm.name}'",
                    node.location, name=node.field_name,
                ))
            self.fields_read.add(node.field_name)
            return old_field_value(node.field_name)
        if isinstance(node, Identifier) and node.name == "self":
            raise CompileError(scoping_error(
                f"Transition '{self.transition.name}' uses 'self' other than as a field read; "
                "this cannot be expressed over tokens",
                node.location, name="self",
            ))
        return None

    def rewrite_expr(self, expr: Expr) -> Expr:
        return rewrite(expr, self._visit)

    def rewrite_stmt(self, stmt: TransitionStmt) -> TransitionStmt:
        if isinstance(stmt, Block):
            return dataclasses.replace(stmt, stmts=tuple(self.rewrite_stmt(s) for s in stmt.stmts))
        if isinstance(stmt, Let):
            return dataclasses.replace(stmt, value=self.rewrite_expr(stmt.value))
        if isinstance(stmt, If):
            return dataclasses.replace(
                stmt,
                condition=self.rewrite_expr(stmt.condition),
                then_branch=self.rewrite_stmt(stmt.then_branch),
                else_branch=self.rewrite_stmt(stmt.else_branch),
            )
        if isinstance(stmt, (Require, Assert)):
            return dataclasses.replace(stmt, expr=self.rewrite_expr(stmt.expr))
        if isinstance(stmt, Update):
            return dataclasses.replace(stmt, value=self.rewrite_expr(stmt.value))
        raise TypeError(f"Unknown transition statement {type(stmt).__name__}")

    def rewrite_transition(self) -> Transition:
        return dataclasses.replace(self.transition, body=self.rewrite_stmt(self.transition.body))


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def exchange_op(sm: SM, transition: Transition) -> ExchangeOp:
    """Build the exchange operation for one non-readonly transition."""
    rewriter = TokenRewriter(sm, transition)
    rewritten = rewriter.rewrite_transition()
    analysis = analyze_transition(rewritten, sm.field_names, old_field_value)

    tokens: list[TokenParam] = []
    for f in sm.fields:
        written = f.name in analysis.outputs
        if written or f.name in rewriter.fields_read:
            tokens.append(TokenParam(
                name=token_arg_name(f.name),
                token_type=token_type_name(sm.name, f.name),
                mutable=written,
            ))

    ensures = [
        equal(new_field_value(f), analysis.outputs[f])
        for f in analysis.fields_written
    ]
    logger.debug(
        "exchange %s: %d token(s), %d requires, %d ensures",
        exchange_op_name(sm.name, transition.name), len(tokens),
        len(analysis.requirements), len(ensures),
    )
    return ExchangeOp(
        name=exchange_op_name(sm.name, transition.name),
        transition=transition.name,
        instance_type=instance_type_name(sm.name),
        tokens=tokens,
        args=[Param(p.name, str(p.type_annotation)) for p in transition.params],
        requires=list(analysis.requirements),
        ensures=ensures,
    )


def token_declarations(sm: SM) -> tuple[InstanceType, list[TokenType]]:
    """The instance type and one token type per field."""
    instance = InstanceType(name=instance_type_name(sm.name))
    token_types = [
        TokenType(
            name=token_type_name(sm.name, f.name),
            instance_type=instance.name,
            field_name=f.name,
            field_type=str(f.type_annotation),
        )
        for f in sm.fields
    ]
    return instance, token_types
