"""VERISM state-machine IR.

The classified, validated form of a state-machine specification:
fields with their shard kinds, transitions with translated bodies,
invariants, lemmas and pass-through helpers. Built once by the spec parser
and never mutated afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from verism.ast_nodes import Expr, FnItem, TypeAnnotation
from verism.errors import SourceLocation


# ---------------------------------------------------------------------------
# Fields and shard kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ShardKind:
    """Base of the open family of shard kinds."""

    kind = "abstract"

    def value_type(self) -> TypeAnnotation:
        raise NotImplementedError


@dataclass(frozen=True)
class VariableShard(ShardKind):
    """A single owned value of the given type."""
    type_annotation: TypeAnnotation

    kind = "variable"

    def value_type(self) -> TypeAnnotation:
        return self.type_annotation


# Registry consulted by the spec parser for #[sharding(kind)].
SHARD_KINDS: dict[str, type[ShardKind]] = {
    VariableShard.kind: VariableShard,
}


@dataclass(frozen=True)
class Field:
    name: str
    shard: ShardKind
    location: Optional[SourceLocation] = None

    @property
    def type_annotation(self) -> TypeAnnotation:
        return self.shard.value_type()


@dataclass(frozen=True)
class TransitionParam:
    name: str
    type_annotation: TypeAnnotation
    location: Optional[SourceLocation] = None


# ---------------------------------------------------------------------------
# Transition statements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionStmt:
    location: Optional[SourceLocation] = None


@dataclass(frozen=True)
class Block(TransitionStmt):
    stmts: tuple[TransitionStmt, ...] = ()


@dataclass(frozen=True)
class Let(TransitionStmt):
    name: str = ""
    value: Expr = None  # type: ignore[assignment]


@dataclass(frozen=True)
class If(TransitionStmt):
    condition: Expr = None  # type: ignore[assignment]
    then_branch: TransitionStmt = Block()
    else_branch: TransitionStmt = Block()


@dataclass(frozen=True)
class Require(TransitionStmt):
    expr: Expr = None  # type: ignore[assignment]


@dataclass(frozen=True)
class Assert(TransitionStmt):
    expr: Expr = None  # type: ignore[assignment]


@dataclass(frozen=True)
class Update(TransitionStmt):
    field_name: str = ""
    value: Expr = None  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Transitions, invariants, lemmas
# ---------------------------------------------------------------------------

class TransitionKind(Enum):
    INIT = "init"
    TRANSITION = "transition"
    READONLY = "readonly"
    STATIC = "static"


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    name: str
    params: tuple[TransitionParam, ...]
    body: TransitionStmt
    location: Optional[SourceLocation] = None

    @property
    def is_init(self) -> bool:
        return self.kind == TransitionKind.INIT


@dataclass(frozen=True)
class Invariant:
    func: FnItem

    @property
    def name(self) -> str:
        return self.func.name


class LemmaKind(Enum):
    INDUCTIVE = "inductive"
    SAFETY = "safety"


@dataclass(frozen=True)
class LemmaPurpose:
    transition: str
    kind: LemmaKind = LemmaKind.INDUCTIVE
    location: Optional[SourceLocation] = None


@dataclass(frozen=True)
class Lemma:
    purpose: LemmaPurpose
    func: FnItem

    @property
    def name(self) -> str:
        return self.func.name


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SM:
    name: str
    fields: tuple[Field, ...]
    transitions: tuple[Transition, ...]
    invariants: tuple[Invariant, ...] = ()
    lemmas: tuple[Lemma, ...] = ()
    helpers: tuple[FnItem, ...] = ()
    location: Optional[SourceLocation] = None

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_transition(self, name: str) -> Optional[Transition]:
        for t in self.transitions:
            if t.name == name:
                return t
        return None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def to_dict(self) -> dict[str, Any]:
        from verism.printer import format_expr, format_stmt

        return {
            "name": self.name,
            "fields": [
                {
                    "name": f.name,
                    "shard": f.shard.kind,
                    "type": str(f.type_annotation),
                }
                for f in self.fields
            ],
            "transitions": [
                {
                    "name": t.name,
                    "kind": t.kind.value,
                    "params": [
                        {"name": p.name, "type": str(p.type_annotation)}
                        for p in t.params
                    ],
                    "body": format_stmt(t.body),
                }
                for t in self.transitions
            ],
            "invariants": [inv.name for inv in self.invariants],
            "lemmas": [
                {
                    "name": lemma.name,
                    "kind": lemma.purpose.kind.value,
                    "transition": lemma.purpose.transition,
                }
                for lemma in self.lemmas
            ],
            "helpers": [
                {
                    "name": h.name,
                    "attributes": [str(a) for a in h.attributes],
                    "body": format_expr(h.body),
                }
                for h in self.helpers
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
