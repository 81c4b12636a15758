"""Spec parser — classifies a state machine's items.

Takes the structured item sequence of one or more `state machine NAME {}`
blocks and produces the validated SM value: fields with shard kinds,
transitions (bodies translated), invariants, lemma purposes and
pass-through helpers.

Recognized function annotations:
  #[init] #[transition] #[static] #[readonly]   transitions
  #[invariant]                                   invariant predicates
  #[inductive(T)] #[safety(T)]                   lemmas about transition T
Anything else (spec, proof, exec, ...) is opaque and passed through.
"""

from __future__ import annotations

import logging
from typing import Optional

from verism.ast_nodes import (
    Program, MachineSource, FieldsBlock, FieldDecl, FnItem, Attribute, Identifier,
)
from verism.errors import (
    CompileError, VerismError, annotation_error, grammar_error, reference_error,
)
from verism.smir import (
    SM, Field, Transition, TransitionKind, Invariant, Lemma, LemmaKind,
    LemmaPurpose, SHARD_KINDS, VariableShard,
)
from verism.transitions import translate_transition

logger = logging.getLogger(__name__)

TRANSITION_ATTRIBUTES: dict[str, TransitionKind] = {
    "init": TransitionKind.INIT,
    "transition": TransitionKind.TRANSITION,
    "static": TransitionKind.STATIC,
    "readonly": TransitionKind.READONLY,
}
LEMMA_ATTRIBUTES: dict[str, LemmaKind] = {
    "inductive": LemmaKind.INDUCTIVE,
    "safety": LemmaKind.SAFETY,
}
INVARIANT_ATTRIBUTE = "invariant"
SHARDING_ATTRIBUTE = "sharding"

RECOGNIZED = set(TRANSITION_ATTRIBUTES) | set(LEMMA_ATTRIBUTES) | {INVARIANT_ATTRIBUTE}


class SpecParser:
    """Builds one SM from all blocks that share a machine name."""

    def __init__(self, name: str, blocks: list[MachineSource], collect_errors: bool = False):
        self.name = name
        self.blocks = blocks
        self.collect_errors = collect_errors
        self.errors: list[VerismError] = []

    def _guard(self, fn, *args):
        """Run fn; in collecting mode record its CompileError and return None."""
        try:
            return fn(*args)
        except CompileError as e:
            if not self.collect_errors:
                raise
            self.errors.extend(e.errors)
            return None

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------

    def parse(self) -> SM:
        primary = self._find_primary()
        fields = self._parse_fields(primary) if primary is not None else ()
        field_names = [f.name for f in fields]

        transitions: list[Transition] = []
        invariants: list[Invariant] = []
        lemmas: list[Lemma] = []
        helpers: list[FnItem] = []
        seen_transitions: set[str] = set()

        for block in self.blocks:
            is_primary = block is primary
            for item in block.items:
                if not isinstance(item, FnItem):
                    continue
                role = self._guard(self._classify, item)
                if role is None:
                    continue
                if role == "helper":
                    helpers.append(item)
                elif role == INVARIANT_ATTRIBUTE:
                    inv = self._guard(self._parse_invariant, item)
                    if inv is not None:
                        invariants.append(inv)
                elif role in LEMMA_ATTRIBUTES:
                    lemma = self._guard(self._parse_lemma, item, role)
                    if lemma is not None:
                        lemmas.append(lemma)
                else:
                    transition = self._guard(
                        self._parse_transition, item, role, is_primary, field_names, seen_transitions,
                    )
                    if transition is not None:
                        transitions.append(transition)

        if self.errors:
            raise CompileError(self.errors)

        logger.info(
            "machine %s: %d field(s), %d transition(s), %d invariant(s), %d lemma(s)",
            self.name, len(fields), len(transitions), len(invariants), len(lemmas),
        )
        return SM(
            name=self.name,
            fields=tuple(fields),
            transitions=tuple(transitions),
            invariants=tuple(invariants),
            lemmas=tuple(lemmas),
            helpers=tuple(helpers),
            location=(primary or self.blocks[0]).location,
        )

    # -------------------------------------------------------------------
    # Blocks and fields
    # -------------------------------------------------------------------

    def _find_primary(self) -> Optional[MachineSource]:
        primary: Optional[MachineSource] = None
        for block in self.blocks:
            fields_blocks = [i for i in block.items if isinstance(i, FieldsBlock)]
            if len(fields_blocks) > 1:
                raise CompileError(annotation_error(
                    f"State machine '{self.name}' declares more than one fields block",
                    fields_blocks[1].location,
                ))
            if fields_blocks:
                if primary is not None:
                    raise CompileError(annotation_error(
                        f"State machine '{self.name}' has more than one primary body",
                        block.location,
                    ))
                primary = block
        return primary

    def _parse_fields(self, block: MachineSource) -> tuple[Field, ...]:
        (fields_block,) = [i for i in block.items if isinstance(i, FieldsBlock)]
        fields: list[Field] = []
        seen: set[str] = set()
        for decl in fields_block.fields:
            if decl.name in seen:
                raise CompileError(reference_error(
                    decl.name, f"Duplicate field '{decl.name}'", decl.location,
                ))
            seen.add(decl.name)
            fields.append(self._parse_field(decl))
        return tuple(fields)

    def _parse_field(self, decl: FieldDecl) -> Field:
        shard_name = VariableShard.kind
        for attr in decl.attributes:
            if attr.name != SHARDING_ATTRIBUTE:
                raise CompileError(annotation_error(
                    f"Unknown field attribute '{attr}' on '{decl.name}'", attr.location,
                ))
            shard_name = _single_name_arg(attr)
            if shard_name not in SHARD_KINDS:
                raise CompileError(annotation_error(
                    f"Unknown shard kind '{shard_name}' on field '{decl.name}'", attr.location,
                ))
        shard = SHARD_KINDS[shard_name](decl.type_annotation)
        return Field(name=decl.name, shard=shard, location=decl.location)

    # -------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------

    def _classify(self, func: FnItem) -> str:
        recognized = [a for a in func.attributes if a.name in RECOGNIZED]
        if not recognized:
            return "helper"
        if len(recognized) > 1:
            names = ", ".join(str(a) for a in recognized)
            raise CompileError(annotation_error(
                f"Conflicting annotations on '{func.name}': {names}", recognized[1].location,
            ))
        attr = recognized[0]
        if attr.name not in LEMMA_ATTRIBUTES and attr.args is not None:
            raise CompileError(annotation_error(
                f"Annotation '#[{attr.name}]' takes no arguments", attr.location,
            ))
        return attr.name

    def _parse_transition(
        self,
        func: FnItem,
        role: str,
        is_primary: bool,
        field_names: list[str],
        seen: set[str],
    ) -> Transition:
        if not is_primary:
            raise CompileError(annotation_error(
                f"Transition '{func.name}' must be declared in the body with the fields block",
                func.location,
            ))
        if func.name in seen:
            raise CompileError(reference_error(
                func.name, f"Duplicate transition '{func.name}'", func.location,
            ))
        seen.add(func.name)
        return translate_transition(func, TRANSITION_ATTRIBUTES[role], field_names)

    def _parse_invariant(self, func: FnItem) -> Invariant:
        if func.receiver != "&self" or func.params:
            raise CompileError(grammar_error(
                f"Invariant '{func.name}' must take exactly '&self'", func.location,
            ))
        return Invariant(func=func)

    def _parse_lemma(self, func: FnItem, role: str) -> Lemma:
        attr = next(a for a in func.attributes if a.name == role)
        transition = _single_name_arg(attr)
        purpose = LemmaPurpose(
            transition=transition, kind=LEMMA_ATTRIBUTES[role], location=attr.location,
        )
        return Lemma(purpose=purpose, func=func)


def _single_name_arg(attr: Attribute) -> str:
    if attr.args is None or len(attr.args) != 1 or not isinstance(attr.args[0], Identifier):
        raise CompileError(annotation_error(
            f"Annotation '#[{attr.name}(...)]' expects exactly one name argument", attr.location,
        ))
    return attr.args[0].name


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_machine(blocks: list[MachineSource], collect_errors: bool = False) -> SM:
    """Build the SM for blocks that all carry the same machine name."""
    return SpecParser(blocks[0].name, blocks, collect_errors).parse()


def parse_program(program: Program, collect_errors: bool = False) -> list[SM]:
    """Group a program's blocks by machine name and build one SM per machine."""
    grouped: dict[str, list[MachineSource]] = {}
    for block in program.machines:
        grouped.setdefault(block.name, []).append(block)

    sms: list[SM] = []
    errors: list[VerismError] = []
    for blocks in grouped.values():
        try:
            sms.append(parse_machine(blocks, collect_errors))
        except CompileError as e:
            if not collect_errors:
                raise
            errors.extend(e.errors)
    if errors:
        raise CompileError(errors)
    return sms
