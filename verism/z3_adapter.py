"""Verifier adapters.

A verifier adapter maps generated declarations onto a downstream
verifier's terms. The compiler itself never solves anything; adapters are a
pure translation and fail with a translation error on any expression shape
they do not support.

Z3Adapter maps onto z3 terms:

  int, nat, uN, iN, usize, isize   -> Int
  bool                             -> Bool

State fields become constants named "<state>.<field>", e.g. "self.counter"
and "post.counter". Calls to generated spec predicates, invariant
predicates and helpers are inlined.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import z3

from verism.ast_nodes import (
    Expr, IntLiteral, BoolLiteral, Identifier, PathExpr, BinaryOp, UnaryOp,
    FunctionCall, FieldAccess, MethodCall, BlockExpr, IfExpr, CondExpr,
    LetExpr, LetStmt, FnItem,
)
from verism.errors import CompileError, translation_error
from verism.output import GeneratedModule, SpecFn, ExchangeOp, Param
from verism.printer import format_expr
from verism.smir import SM

logger = logging.getLogger(__name__)

INT_TYPES = {
    "int", "nat", "usize", "isize",
    "u8", "u16", "u32", "u64", "u128",
    "i8", "i16", "i32", "i64", "i128",
}
UNSIGNED_TYPES = {"nat", "usize", "u8", "u16", "u32", "u64", "u128"}
BOOL_TYPES = {"bool"}

MAX_INLINE_DEPTH = 32


class VerifierAdapter(ABC):
    """Maps generated declarations onto a downstream verifier's terms."""

    @abstractmethod
    def translate_field(self, field_name: str, state: str = "self") -> Any:
        ...

    @abstractmethod
    def translate_transition(self, name: str) -> Any:
        ...

    @abstractmethod
    def translate_invariant(self, state: str = "self") -> Any:
        ...

    @abstractmethod
    def translate_lemma(self, name: str) -> Any:
        ...


@dataclass
class Env:
    """Name bindings while translating one expression.

    values      local names (parameters, lets) -> z3 terms
    states      names denoting a machine state -> constant prefix
    old_states  token argument names -> prefix used for old(arg).f
    new_states  token argument names -> prefix used for arg.f
    """
    values: dict[str, Any] = field(default_factory=dict)
    states: dict[str, str] = field(default_factory=dict)
    old_states: dict[str, str] = field(default_factory=dict)
    new_states: dict[str, str] = field(default_factory=dict)
    depth: int = 0

    def child(self, **changes: Any) -> Env:
        env = Env(
            values=dict(self.values),
            states=dict(self.states),
            old_states=dict(self.old_states),
            new_states=dict(self.new_states),
            depth=self.depth,
        )
        for key, value in changes.items():
            setattr(env, key, value)
        return env


@dataclass
class Obligation:
    """One translated declaration, emitted as a stand-alone SMT-LIB2 query.

    A negated obligation asserts the negation of its formula, so unsat means
    the formula is valid.
    """
    kind: str
    name: str
    formula: Any
    negated: bool = False

    def to_smtlib2(self, assumptions: list[Any]) -> str:
        solver = z3.Solver()
        solver.add(*assumptions)
        solver.add(z3.Not(self.formula) if self.negated else self.formula)
        return solver.to_smt2()


def _unsupported(message: str, expr: Optional[Expr] = None) -> CompileError:
    shape = type(expr).__name__ if expr is not None else None
    location = expr.location if expr is not None else None
    return CompileError(translation_error(message, location, shape=shape))


class Z3Adapter(VerifierAdapter):
    """Z3 rendition of one machine's GeneratedModule."""

    def __init__(self, module: GeneratedModule, sm: SM):
        self.module = module
        self.sm = sm
        self._functions: dict[str, SpecFn | FnItem] = {}
        for helper in module.helpers:
            self._functions[helper.name] = helper
        for spec_fn in module.spec_fns:
            self._functions[spec_fn.name] = spec_fn

    # -------------------------------------------------------------------
    # Sorts and constants
    # -------------------------------------------------------------------

    def sort_of(self, type_name: str, expr: Optional[Expr] = None) -> Any:
        if type_name in INT_TYPES:
            return z3.IntSort()
        if type_name in BOOL_TYPES:
            return z3.BoolSort()
        raise _unsupported(f"Unsupported type '{type_name}'", expr)

    def const(self, name: str, type_name: str) -> Any:
        return z3.Const(name, self.sort_of(type_name))

    def translate_field(self, field_name: str, state: str = "self") -> Any:
        f = self.sm.get_field(field_name)
        if f is None:
            raise _unsupported(f"Unknown field '{field_name}'")
        return self.const(f"{state}.{field_name}", str(f.type_annotation))

    def domain_constraints(self, state: str = "self") -> list[Any]:
        """Non-negativity of unsigned fields in `state`."""
        return [
            self.translate_field(f.name, state) >= 0
            for f in self.sm.fields
            if str(f.type_annotation) in UNSIGNED_TYPES
        ]

    def param_const(self, param: Param) -> Any:
        return self.const(param.name, param.type_name)

    # -------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------

    def _bind_params(self, params: list[Param], env: Env) -> Env:
        for p in params:
            if p.type_name == self.sm.name:
                env.states[p.name] = p.name
            else:
                env.values[p.name] = self.param_const(p)
        return env

    def translate_spec_fn(self, name: str, state: str = "self") -> Any:
        spec_fn = self.module.get_spec_fn(name)
        if spec_fn is None:
            raise _unsupported(f"Unknown spec function '{name}'")
        env = Env()
        if spec_fn.receiver is not None:
            env.states["self"] = state
        self._bind_params(spec_fn.params, env)
        return self.translate_expr(spec_fn.body, env)

    def translate_transition(self, name: str) -> Any:
        """The relation of transition `name` over self.*, post.* and its parameters."""
        return self.translate_spec_fn(name)

    def translate_invariant(self, state: str = "self") -> Any:
        return self.translate_spec_fn("invariant", state)

    def translate_lemma(self, name: str) -> Any:
        """requires ==> ensures for a wired proof function."""
        proof = self.module.get_proof(name)
        if proof is None:
            raise _unsupported(f"Unknown lemma '{name}'")
        env = Env()
        if proof.receiver is not None:
            env.states["self"] = "self"
        self._bind_params(proof.params, env)
        requires = [self.translate_expr(e, env) for e in proof.requires]
        ensures = [self.translate_expr(e, env) for e in proof.ensures]
        return z3.Implies(z3.And(*requires), z3.And(*ensures))

    def translate_exchange_op(self, name: str, old_state: str = "self", new_state: str = "post") -> Any:
        """requires && ensures of an exchange op, tokens read as `old_state`/`new_state` fields."""
        op: Optional[ExchangeOp] = self.module.get_exchange_op(name)
        if op is None:
            raise _unsupported(f"Unknown exchange operation '{name}'")
        env = Env()
        for token in op.tokens:
            env.old_states[token.name] = old_state
            env.new_states[token.name] = new_state
        self._bind_params(op.args, env)
        parts = [self.translate_expr(e, env) for e in op.requires + op.ensures]
        return z3.And(*parts) if parts else z3.BoolVal(True)

    # -------------------------------------------------------------------
    # SMT-LIB2 export
    # -------------------------------------------------------------------

    def obligations(self) -> list[Obligation]:
        """Every declaration of the module in module order; lemmas are negated."""
        result = [
            Obligation(fn.role.value, fn.name, self.translate_spec_fn(fn.name))
            for fn in self.module.spec_fns
        ]
        result += [
            Obligation("exchange", op.name, self.translate_exchange_op(op.name))
            for op in self.module.exchange_ops
        ]
        result += [
            Obligation(f"{proof.purpose} lemma", proof.name, self.translate_lemma(proof.name), negated=True)
            for proof in self.module.proofs
        ]
        return result

    def to_smtlib2_bundle(self, source_file: str = "<stdin>") -> str:
        """Emit every obligation as an annotated SMT-LIB2 script. Nothing is solved."""
        assumptions = self.domain_constraints("self") + self.domain_constraints("post")
        obligations = self.obligations()
        parts = [
            f"; VERISM SMT-LIB2 bundle: state machine {self.sm.name}",
            f"; Source: {source_file}",
            f"; Total obligations: {len(obligations)}",
            "",
        ]
        for i, o in enumerate(obligations, 1):
            parts += [
                f"; --- Obligation {i}: {o.kind} {o.name} ---",
                "; unsat means valid" if o.negated else "; sat means satisfiable",
                o.to_smtlib2(assumptions),
                "(reset)",
                "",
            ]
        logger.debug("exported %d obligation(s) for %s", len(obligations), self.sm.name)
        return "\n".join(parts)

    # -------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------

    def translate_expr(self, expr: Expr, env: Env) -> Any:
        if isinstance(expr, IntLiteral):
            return z3.IntVal(expr.value)
        if isinstance(expr, BoolLiteral):
            return z3.BoolVal(expr.value)
        if isinstance(expr, Identifier):
            if expr.name in env.values:
                return env.values[expr.name]
            raise _unsupported(f"Unbound name '{expr.name}'", expr)
        if isinstance(expr, FieldAccess):
            return self._translate_field_access(expr, env)
        if isinstance(expr, BinaryOp):
            return self._translate_binary(expr, env)
        if isinstance(expr, UnaryOp):
            operand = self.translate_expr(expr.operand, env)
            if expr.op == "!":
                return z3.Not(operand)
            if expr.op == "-":
                return -operand
            raise _unsupported(f"Unsupported unary operator '{expr.op}'", expr)
        if isinstance(expr, (CondExpr, IfExpr)):
            return self._translate_conditional(expr, env)
        if isinstance(expr, LetExpr):
            value = self.translate_expr(expr.value, env)
            return self.translate_expr(expr.body, env.child(values={**env.values, expr.name: value}))
        if isinstance(expr, BlockExpr):
            return self._translate_block(expr, env)
        if isinstance(expr, MethodCall):
            if isinstance(expr.obj, Identifier) and expr.obj.name in env.states:
                return self._inline(expr.method_name, env.states[expr.obj.name], expr.args, env, expr)
            raise _unsupported(f"Unsupported method call '{format_expr(expr)}'", expr)
        if isinstance(expr, FunctionCall):
            callee = expr.callee
            if isinstance(callee, PathExpr) and len(callee.segments) == 2 and callee.segments[0] == "Self":
                return self._inline(callee.segments[1], None, expr.args, env, expr)
            if isinstance(callee, Identifier):
                return self._inline(callee.name, None, expr.args, env, expr)
            raise _unsupported(f"Unsupported call '{format_expr(expr)}'", expr)
        raise _unsupported(f"Unsupported expression '{format_expr(expr)}'", expr)

    def _translate_field_access(self, expr: FieldAccess, env: Env) -> Any:
        obj = expr.obj
        if isinstance(obj, Identifier):
            if obj.name in env.states:
                return self.translate_field(expr.field_name, env.states[obj.name])
            if obj.name in env.new_states:
                return self.translate_field(expr.field_name, env.new_states[obj.name])
        if isinstance(obj, FunctionCall) and isinstance(obj.callee, Identifier) \
                and obj.callee.name == "old" and len(obj.args) == 1 \
                and isinstance(obj.args[0], Identifier) and obj.args[0].name in env.old_states:
            return self.translate_field(expr.field_name, env.old_states[obj.args[0].name])
        raise _unsupported(f"Unsupported field access '{format_expr(expr)}'", expr)

    def _translate_binary(self, expr: BinaryOp, env: Env) -> Any:
        left = self.translate_expr(expr.left, env)
        right = self.translate_expr(expr.right, env)
        ops = {
            "+": lambda l, r: l + r,
            "-": lambda l, r: l - r,
            "*": lambda l, r: l * r,
            "/": lambda l, r: l / r,
            "%": lambda l, r: l % r,
            "==": lambda l, r: l == r,
            "!=": lambda l, r: l != r,
            "<": lambda l, r: l < r,
            ">": lambda l, r: l > r,
            "<=": lambda l, r: l <= r,
            ">=": lambda l, r: l >= r,
            "&&": lambda l, r: z3.And(l, r),
            "||": lambda l, r: z3.Or(l, r),
            "==>": lambda l, r: z3.Implies(l, r),
        }
        op = ops.get(expr.op)
        if op is None:
            raise _unsupported(f"Unsupported binary operator '{expr.op}'", expr)
        try:
            return op(left, right)
        except z3.Z3Exception as e:
            raise _unsupported(f"Ill-sorted operands for '{expr.op}': {e}", expr) from e

    def _translate_conditional(self, expr: CondExpr | IfExpr, env: Env) -> Any:
        if isinstance(expr, CondExpr):
            then_value, else_value = expr.then_value, expr.else_value
        else:
            if expr.else_branch is None:
                raise _unsupported("'if' without 'else' has no value", expr)
            then_value, else_value = expr.then_branch, expr.else_branch
        return z3.If(
            self.translate_expr(expr.condition, env),
            self.translate_expr(then_value, env),
            self.translate_expr(else_value, env),
        )

    def _translate_block(self, block: BlockExpr, env: Env) -> Any:
        scope = env.child()
        for stmt in block.statements:
            if not isinstance(stmt, LetStmt) or stmt.value is None:
                raise _unsupported("Only let statements are supported in expression blocks", block)
            scope.values[stmt.name] = self.translate_expr(stmt.value, scope)
        if block.result is None:
            raise _unsupported("Block has no value", block)
        return self.translate_expr(block.result, scope)

    # -------------------------------------------------------------------
    # Inlining
    # -------------------------------------------------------------------

    def _inline(self, name: str, receiver_state: Optional[str], args: list[Expr], env: Env, call: Expr) -> Any:
        if env.depth >= MAX_INLINE_DEPTH:
            raise _unsupported(f"Inlining depth exceeded at '{name}'", call)
        fn = self._functions.get(name)
        if fn is None:
            raise _unsupported(f"Unknown function '{name}'", call)

        if isinstance(fn, SpecFn):
            receiver = fn.receiver
            params = fn.params
            body: Expr = fn.body
        else:
            receiver = fn.receiver
            params = [Param(p.name, str(p.type_annotation)) for p in fn.params]
            body = fn.body

        if (receiver is None) != (receiver_state is None):
            raise _unsupported(f"Receiver mismatch calling '{name}'", call)
        if len(params) != len(args):
            raise _unsupported(f"'{name}' expects {len(params)} argument(s), got {len(args)}", call)

        inner = Env(depth=env.depth + 1)
        if receiver_state is not None:
            inner.states["self"] = receiver_state
        for p, arg in zip(params, args):
            if p.type_name == self.sm.name:
                if not isinstance(arg, Identifier) or arg.name not in env.states:
                    raise _unsupported(f"State argument to '{name}' must name a state", arg)
                inner.states[p.name] = env.states[arg.name]
            else:
                inner.values[p.name] = self.translate_expr(arg, env)
        logger.debug("inlining %s", name)
        return self.translate_expr(body, inner)
