"""Weakest-precondition engine.

Walks a transition's TransitionStmt tree with two prequel accumulators:

  prequel               facts every later statement may assume
  prequel_with_asserts  the same plus the asserts seen so far

Each requirement is guarded by `prequel_with_asserts` (a later require may
assume an earlier assert). Each safety condition is guarded by `prequel`
only: an assert never assumes requires or sibling asserts. A conditional
contributes its branch facts as a single Branch element on the outer
`prequel_with_asserts`.

Guarding folds the prequel from the innermost element outwards:

  Let(x, e)        { let x = e; body }
  Condition(c)     c ==> body
  Branch(b, t, e)  (b ==> t) / (!b ==> e) / (if b { t } else { e }) ==> body

Per-field output values are computed by a sequential fold in which later
updates override earlier ones and conditionals merge into value-level
if-expressions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from verism.ast_nodes import Expr, Identifier, CondExpr, LetExpr
from verism.errors import CompileError, definition_error
from verism.exprs import (
    conjoin, implies, negate, equal, self_field, post_field, method_call,
    names, contains,
)
from verism.output import SpecFn, SpecRole, Param
from verism.smir import (
    SM, Transition, TransitionKind, TransitionStmt, Block, Let, If, Require,
    Assert, Update,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prequel elements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrequelLet:
    name: str
    value: Expr


@dataclass(frozen=True)
class PrequelCondition:
    expr: Expr


@dataclass(frozen=True)
class PrequelBranch:
    condition: Expr
    then_facts: tuple[PrequelElement, ...]
    else_facts: tuple[PrequelElement, ...]


PrequelElement = Union[PrequelLet, PrequelCondition, PrequelBranch]
Prequel = tuple[PrequelElement, ...]


def with_prequel(prequel: Prequel, expr: Expr) -> Expr:
    """Guard `expr` by every element of `prequel`."""
    for element in reversed(prequel):
        if isinstance(element, PrequelLet):
            expr = LetExpr(name=element.name, value=element.value, body=expr, location=expr.location)
        else:
            fact = prequel_element_to_expr(element)
            if fact is not None:
                expr = implies(fact, expr)
    return expr


def prequel_element_to_expr(element: PrequelElement) -> Optional[Expr]:
    if isinstance(element, PrequelCondition):
        return element.expr
    if isinstance(element, PrequelLet):
        return None
    then_fact = prequel_to_expr(element.then_facts)
    else_fact = prequel_to_expr(element.else_facts)
    if then_fact is None and else_fact is None:
        return None
    if else_fact is None:
        return implies(element.condition, then_fact)
    if then_fact is None:
        return implies(negate(element.condition), else_fact)
    return CondExpr(
        condition=element.condition,
        then_value=then_fact,
        else_value=else_fact,
        location=element.condition.location,
    )


def prequel_to_expr(elements: Sequence[PrequelElement]) -> Optional[Expr]:
    """Conjunction of the facts in `elements`; None when there are none."""
    result: Optional[Expr] = None
    for element in reversed(elements):
        if isinstance(element, PrequelLet):
            if result is not None:
                result = LetExpr(name=element.name, value=element.value, body=result)
            continue
        fact = prequel_element_to_expr(element)
        if fact is None:
            continue
        result = fact if result is None else conjoin([fact, result])
    return result


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

class _Collector:
    def __init__(self) -> None:
        self.requirements: list[Expr] = []
        self.safety_conditions: list[Expr] = []
        self.fields_written: set[str] = set()

    def collect(
        self,
        stmt: TransitionStmt,
        prequel: Prequel,
        prequel_with_asserts: Prequel,
    ) -> tuple[Prequel, Prequel]:
        if isinstance(stmt, Block):
            for child in stmt.stmts:
                prequel, prequel_with_asserts = self.collect(child, prequel, prequel_with_asserts)
            return prequel, prequel_with_asserts

        if isinstance(stmt, Let):
            element = PrequelLet(stmt.name, stmt.value)
            return prequel + (element,), prequel_with_asserts + (element,)

        if isinstance(stmt, If):
            cond = PrequelCondition(stmt.condition)
            not_cond = PrequelCondition(negate(stmt.condition))
            _, pa_then = self.collect(
                stmt.then_branch, prequel + (cond,), prequel_with_asserts + (cond,),
            )
            _, pa_else = self.collect(
                stmt.else_branch, prequel + (not_cond,), prequel_with_asserts + (not_cond,),
            )
            start = len(prequel_with_asserts) + 1
            branch = PrequelBranch(stmt.condition, pa_then[start:], pa_else[start:])
            return prequel, prequel_with_asserts + (branch,)

        if isinstance(stmt, Require):
            self.requirements.append(with_prequel(prequel_with_asserts, stmt.expr))
            return prequel, prequel_with_asserts

        if isinstance(stmt, Assert):
            self.safety_conditions.append(with_prequel(prequel, stmt.expr))
            return prequel, prequel_with_asserts + (PrequelCondition(stmt.expr),)

        if isinstance(stmt, Update):
            self.fields_written.add(stmt.field_name)
            return prequel, prequel_with_asserts

        raise TypeError(f"Unknown transition statement {type(stmt).__name__}")


# ---------------------------------------------------------------------------
# Output values
# ---------------------------------------------------------------------------

class _OutputFolder:
    """Sequential fold computing the value a transition leaves in one field."""

    def __init__(self, transition: str, field_name: str, initial: Expr):
        self.transition = transition
        self.field_name = field_name
        self.initial = initial

    def fold(self, stmt: TransitionStmt, current: Expr) -> Expr:
        if isinstance(stmt, Block):
            return self._fold_seq(stmt.stmts, 0, current)
        if isinstance(stmt, If):
            then_value = self.fold(stmt.then_branch, current)
            else_value = self.fold(stmt.else_branch, current)
            if then_value is current and else_value is current:
                return current
            return CondExpr(
                condition=stmt.condition,
                then_value=then_value,
                else_value=else_value,
                location=stmt.location,
            )
        if isinstance(stmt, Update) and stmt.field_name == self.field_name:
            if current is not self.initial:
                logger.warning(
                    "%s: field '%s' is updated more than once on a path; the last update wins",
                    self.transition, self.field_name,
                )
            return stmt.value
        return current

    def _fold_seq(self, stmts: Sequence[TransitionStmt], index: int, current: Expr) -> Expr:
        while index < len(stmts):
            stmt = stmts[index]
            if isinstance(stmt, Let):
                rest = self._fold_seq(stmts, index + 1, current)
                if rest is current:
                    return current
                return LetExpr(name=stmt.name, value=stmt.value, body=rest, location=stmt.location)
            current = self.fold(stmt, current)
            index += 1
        return current


def output_value(
    body: TransitionStmt,
    field_name: str,
    initial: Expr,
    transition: str = "<transition>",
) -> Expr:
    """The value `field_name` holds after `body`, given it held `initial` before.

    Returns `initial` itself (same object) when no path writes the field.
    """
    folder = _OutputFolder(transition, field_name, initial)
    return folder.fold(body, initial)


# ---------------------------------------------------------------------------
# Transition analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionAnalysis:
    transition: Transition
    requirements: tuple[Expr, ...]
    safety_conditions: tuple[Expr, ...]
    fields_written: tuple[str, ...]
    outputs: dict[str, Expr]

    @property
    def name(self) -> str:
        return self.transition.name


def analyze_transition(
    transition: Transition,
    field_names: Sequence[str],
    initial_value: Callable[[str], Expr] = self_field,
) -> TransitionAnalysis:
    """Collect requirements, safety conditions and per-field output values.

    `initial_value(f)` gives the expression for a field's value before the
    transition; for init transitions a placeholder is used instead and any
    path that leaves a written field at its placeholder is an error.
    """
    collector = _Collector()
    collector.collect(transition.body, (), ())

    outputs: dict[str, Expr] = {}
    written = tuple(f for f in field_names if f in collector.fields_written)
    for f in written:
        if transition.is_init:
            placeholder = Identifier(name=f"<uninitialized {f}>")
            value = output_value(transition.body, f, placeholder, transition.name)
            if contains(value, placeholder):
                raise CompileError(definition_error(
                    f"Init transition '{transition.name}' does not initialize field '{f}' on every path",
                    transition.location,
                ))
        else:
            value = output_value(transition.body, f, initial_value(f), transition.name)
        outputs[f] = value

    logger.debug(
        "%s: %d requirement(s), %d safety condition(s), writes %s",
        transition.name, len(collector.requirements), len(collector.safety_conditions),
        ", ".join(written) or "nothing",
    )
    return TransitionAnalysis(
        transition=transition,
        requirements=tuple(collector.requirements),
        safety_conditions=tuple(collector.safety_conditions),
        fields_written=written,
        outputs=outputs,
    )


def transition_relation(sm: SM, analysis: TransitionAnalysis) -> Expr:
    """Requirements, then `post.f == value` for every field in declaration order."""
    parts = list(analysis.requirements)
    for f in sm.fields:
        if f.name in analysis.outputs:
            parts.append(equal(post_field(f.name), analysis.outputs[f.name]))
        elif not analysis.transition.is_init:
            parts.append(equal(post_field(f.name), self_field(f.name)))
    return conjoin(parts)


# ---------------------------------------------------------------------------
# Spec predicates
# ---------------------------------------------------------------------------

def safety_fn_name(transition: str, index: int) -> str:
    return f"{transition}_safety_{index}"


def strong_fn_name(transition: str) -> str:
    return f"{transition}_strong"


def enabled_fn_name(transition: str) -> str:
    return f"{transition}_enabled"


def _params(transition: Transition) -> list[Param]:
    return [Param(p.name, str(p.type_annotation)) for p in transition.params]


def transition_spec_fns(sm: SM, analysis: TransitionAnalysis) -> list[SpecFn]:
    """Relation, safety, strong and enabled predicates for one transition."""
    transition = analysis.transition
    name = transition.name
    params = _params(transition)
    arg_names = [p.name for p in transition.params]
    post = Param("post", sm.name)
    fns: list[SpecFn] = []

    if transition.kind != TransitionKind.READONLY:
        receiver = None if transition.is_init else "&self"
        fns.append(SpecFn(
            name=name,
            role=SpecRole.RELATION,
            body=transition_relation(sm, analysis),
            receiver=receiver,
            params=[post] + params,
            transition=name,
        ))

    for k, condition in enumerate(analysis.safety_conditions, start=1):
        fns.append(SpecFn(
            name=safety_fn_name(name, k),
            role=SpecRole.SAFETY,
            body=condition,
            receiver="&self",
            params=list(params),
            transition=name,
        ))

    if transition.kind in (TransitionKind.TRANSITION, TransitionKind.STATIC):
        strong_parts = [method_call("self", name, names(["post"] + arg_names))]
        strong_parts.extend(
            method_call("self", safety_fn_name(name, k), names(arg_names))
            for k in range(1, len(analysis.safety_conditions) + 1)
        )
        fns.append(SpecFn(
            name=strong_fn_name(name),
            role=SpecRole.STRONG,
            body=conjoin(strong_parts),
            receiver="&self",
            params=[post] + params,
            transition=name,
        ))

    if not transition.is_init:
        fns.append(SpecFn(
            name=enabled_fn_name(name),
            role=SpecRole.ENABLED,
            body=conjoin(list(analysis.requirements)),
            receiver="&self",
            params=list(params),
            transition=name,
        ))
    return fns
