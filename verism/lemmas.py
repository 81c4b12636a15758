"""Lemma wiring.

Attaches generated contracts to user-written proof functions:

  #[inductive(T)], T init     requires Self::T(post, args...)
  #[inductive(T)], otherwise  requires self.invariant() && self.T_strong(post, args...)
                              ensures  post.invariant()
  #[safety(T)]                requires self.invariant() && self.T_enabled(args...)
                              ensures  self.T_safety_k(args...) for every k

The proof body is passed through untouched.
"""

from __future__ import annotations

import logging

from verism.errors import (
    CompileError, reference_error, arity_error, scoping_error, grammar_error,
    definition_error,
)
from verism.exprs import conjoin, method_call, path_call, names
from verism.output import SpecFn, SpecRole, ProofFn, Param
from verism.smir import SM, Lemma, LemmaKind, TransitionKind
from verism.weakest import (
    TransitionAnalysis, strong_fn_name, enabled_fn_name, safety_fn_name,
)

logger = logging.getLogger(__name__)

INVARIANT_FN = "invariant"


def invariant_spec_fn(sm: SM) -> SpecFn:
    """The machine invariant: conjunction of every #[invariant] predicate."""
    return SpecFn(
        name=INVARIANT_FN,
        role=SpecRole.INVARIANT,
        body=conjoin([method_call("self", inv.name) for inv in sm.invariants]),
        receiver="&self",
    )


def wire_lemma(sm: SM, lemma: Lemma, analyses: dict[str, TransitionAnalysis]) -> ProofFn:
    purpose = lemma.purpose
    func = lemma.func
    transition = sm.get_transition(purpose.transition)
    if transition is None:
        raise CompileError(reference_error(
            purpose.transition,
            f"Lemma '{func.name}' refers to unknown transition '{purpose.transition}'",
            purpose.location,
        ))
    analysis = analyses[transition.name]
    params = [Param(p.name, str(p.type_annotation)) for p in func.params]
    arg_names = [p.name for p in func.params]

    if purpose.kind == LemmaKind.SAFETY:
        if transition.is_init:
            raise CompileError(definition_error(
                f"Safety lemma '{func.name}' cannot target init transition '{transition.name}'",
                purpose.location,
            ))
        if func.receiver is None:
            raise CompileError(grammar_error(
                f"Safety lemma '{func.name}' must take a 'self' receiver", func.location,
            ))
        if len(func.params) != len(transition.params):
            raise CompileError(arity_error(
                func.name, len(transition.params), len(func.params), func.location,
            ))
        requires = [conjoin([
            method_call("self", INVARIANT_FN),
            method_call("self", enabled_fn_name(transition.name), names(arg_names)),
        ])]
        ensures = [
            method_call("self", safety_fn_name(transition.name, k), names(arg_names))
            for k in range(1, len(analysis.safety_conditions) + 1)
        ]
    else:
        if transition.kind == TransitionKind.READONLY:
            raise CompileError(definition_error(
                f"Inductive lemma '{func.name}' cannot target readonly transition '{transition.name}'",
                purpose.location,
            ))
        if transition.is_init and func.receiver is not None:
            raise CompileError(grammar_error(
                f"Inductive lemma '{func.name}' for init transition '{transition.name}' "
                "may not take a 'self' receiver",
                func.location,
            ))
        if not transition.is_init and func.receiver is None:
            raise CompileError(grammar_error(
                f"Inductive lemma '{func.name}' must take a 'self' receiver", func.location,
            ))
        if not func.params or func.params[0].name != "post":
            raise CompileError(scoping_error(
                f"First argument of inductive lemma '{func.name}' must be named 'post'",
                func.params[0].location if func.params else func.location,
                name="post",
            ))
        if len(func.params) != len(transition.params) + 1:
            raise CompileError(arity_error(
                func.name, len(transition.params) + 1, len(func.params), func.location,
            ))
        if transition.is_init:
            requires = [path_call(["Self", transition.name], names(arg_names))]
        else:
            requires = [conjoin([
                method_call("self", INVARIANT_FN),
                method_call("self", strong_fn_name(transition.name), names(arg_names)),
            ])]
        ensures = [method_call("post", INVARIANT_FN)]

    logger.debug("wired %s lemma %s for %s", purpose.kind.value, func.name, transition.name)
    return ProofFn(
        name=func.name,
        purpose=purpose.kind.value,
        transition=transition.name,
        body=func.body,
        receiver=func.receiver,
        params=params,
        requires=requires,
        ensures=ensures,
    )
