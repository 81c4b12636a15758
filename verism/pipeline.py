"""VERISM compilation pipeline.

  source -> parse -> spec parser (+ body translation) -> WP analysis
         -> {exchange operations, lemma wiring} -> GeneratedModule

By default the first error aborts. With collect_errors the pipeline keeps
going across independent constructs (transitions, lemmas) and raises a
single CompileError carrying everything it found.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from verism.ast_nodes import Program
from verism.errors import CompileError, VerismError
from verism.lemmas import invariant_spec_fn, wire_lemma
from verism.output import GeneratedModule
from verism.parser import parse
from verism.smir import SM, TransitionKind
from verism.spec_parser import parse_program
from verism.tokens import exchange_op, token_declarations
from verism.weakest import TransitionAnalysis, analyze_transition, transition_spec_fns

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _ErrorSink:
    def __init__(self, collect: bool):
        self.collect = collect
        self.errors: list[VerismError] = []

    def run(self, fn: Callable[..., T], *args) -> Optional[T]:
        try:
            return fn(*args)
        except CompileError as e:
            if not self.collect:
                raise
            self.errors.extend(e.errors)
            return None

    def raise_if_any(self) -> None:
        if self.errors:
            raise CompileError(self.errors)


def compile_sm(sm: SM, concurrent: bool = False, collect_errors: bool = False) -> GeneratedModule:
    """Generate every declaration for one classified state machine."""
    sink = _ErrorSink(collect_errors)
    module = GeneratedModule(machine=sm.name)

    analyses: dict[str, TransitionAnalysis] = {}
    for transition in sm.transitions:
        analysis = sink.run(analyze_transition, transition, sm.field_names)
        if analysis is None:
            continue
        analyses[transition.name] = analysis
        module.spec_fns.extend(transition_spec_fns(sm, analysis))
    module.spec_fns.append(invariant_spec_fn(sm))

    if concurrent:
        module.instance_type, module.token_types = token_declarations(sm)
        for transition in sm.transitions:
            if transition.kind == TransitionKind.READONLY or transition.name not in analyses:
                continue
            op = sink.run(exchange_op, sm, transition)
            if op is not None:
                module.exchange_ops.append(op)

    for lemma in sm.lemmas:
        # Lemmas about a transition that already failed are skipped.
        if lemma.purpose.transition in analyses or sm.get_transition(lemma.purpose.transition) is None:
            proof = sink.run(wire_lemma, sm, lemma, analyses)
            if proof is not None:
                module.proofs.append(proof)

    module.helpers = list(sm.helpers) + [inv.func for inv in sm.invariants]
    sink.raise_if_any()
    logger.info(
        "compiled %s: %d spec fn(s), %d exchange op(s), %d proof(s)",
        sm.name, len(module.spec_fns), len(module.exchange_ops), len(module.proofs),
    )
    return module


def compile_program(
    program: Program,
    concurrent: bool = False,
    collect_errors: bool = False,
) -> list[GeneratedModule]:
    sms = parse_program(program, collect_errors=collect_errors)
    sink = _ErrorSink(collect_errors)
    modules: list[GeneratedModule] = []
    for sm in sms:
        module = sink.run(compile_sm, sm, concurrent, collect_errors)
        if module is not None:
            modules.append(module)
    sink.raise_if_any()
    return modules


def compile_source(
    source: str,
    filename: str = "<stdin>",
    concurrent: bool = False,
    collect_errors: bool = False,
) -> list[GeneratedModule]:
    """Compile state-machine source text into one GeneratedModule per machine."""
    program = parse(source, filename)
    return compile_program(program, concurrent=concurrent, collect_errors=collect_errors)


def check_source(source: str, filename: str = "<stdin>", concurrent: bool = False) -> list[VerismError]:
    """Compile and return every error found; an empty list means the source is valid."""
    try:
        compile_source(source, filename, concurrent=concurrent, collect_errors=True)
    except CompileError as e:
        return e.errors
    return []
