"""VERISM generated declarations.

The output contract of the compiler: spec predicates (relations, safety
conditions, strengthened relations, enabling conditions, the machine
invariant), concurrency declarations (instance type, per-field token types,
exchange operations), wired proof functions and pass-through helpers.

JSON-serializable for downstream tooling.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from verism.ast_nodes import Expr, BlockExpr, FnItem


class SpecRole(Enum):
    RELATION = "relation"
    SAFETY = "safety"
    STRONG = "strong"
    ENABLED = "enabled"
    INVARIANT = "invariant"


def _expr_text(expr: Expr) -> str:
    from verism.printer import format_expr
    return format_expr(expr)


@dataclass
class Param:
    name: str
    type_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type_name}


@dataclass
class SpecFn:
    """A boolean specification predicate."""
    name: str
    role: SpecRole
    body: Expr
    receiver: Optional[str] = None
    params: list[Param] = field(default_factory=list)
    transition: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "decl": "spec_fn",
            "name": self.name,
            "role": self.role.value,
            "receiver": self.receiver,
            "params": [p.to_dict() for p in self.params],
            "body": _expr_text(self.body),
        }
        if self.transition is not None:
            d["transition"] = self.transition
        return d


@dataclass
class InstanceType:
    """Opaque identifier shared by every token of one machine instance."""
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"decl": "instance_type", "name": self.name}


@dataclass
class TokenType:
    """Resource token for one field: {instance, <field>: <type>}."""
    name: str
    instance_type: str
    field_name: str
    field_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "decl": "token_type",
            "name": self.name,
            "instance_type": self.instance_type,
            "field": self.field_name,
            "field_type": self.field_type,
        }


@dataclass
class TokenParam:
    name: str
    token_type: str
    mutable: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "token_type": self.token_type, "mutable": self.mutable}


@dataclass
class ExchangeOp:
    """Atomic effect of one transition on resource tokens."""
    name: str
    transition: str
    instance_type: str
    tokens: list[TokenParam] = field(default_factory=list)
    args: list[Param] = field(default_factory=list)
    requires: list[Expr] = field(default_factory=list)
    ensures: list[Expr] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decl": "exchange_op",
            "name": self.name,
            "transition": self.transition,
            "instance_type": self.instance_type,
            "tokens": [t.to_dict() for t in self.tokens],
            "args": [a.to_dict() for a in self.args],
            "requires": [_expr_text(e) for e in self.requires],
            "ensures": [_expr_text(e) for e in self.ensures],
        }


@dataclass
class ProofFn:
    """A user lemma with its generated contract attached."""
    name: str
    purpose: str
    transition: str
    body: BlockExpr
    receiver: Optional[str] = None
    params: list[Param] = field(default_factory=list)
    requires: list[Expr] = field(default_factory=list)
    ensures: list[Expr] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decl": "proof_fn",
            "name": self.name,
            "purpose": self.purpose,
            "transition": self.transition,
            "receiver": self.receiver,
            "params": [p.to_dict() for p in self.params],
            "requires": [_expr_text(e) for e in self.requires],
            "ensures": [_expr_text(e) for e in self.ensures],
            "body": _expr_text(self.body),
        }


Declaration = Union[SpecFn, InstanceType, TokenType, ExchangeOp, ProofFn]


@dataclass
class GeneratedModule:
    """Everything generated for one state machine, in emission order."""
    machine: str
    spec_fns: list[SpecFn] = field(default_factory=list)
    instance_type: Optional[InstanceType] = None
    token_types: list[TokenType] = field(default_factory=list)
    exchange_ops: list[ExchangeOp] = field(default_factory=list)
    proofs: list[ProofFn] = field(default_factory=list)
    helpers: list[FnItem] = field(default_factory=list)

    @property
    def declarations(self) -> list[Declaration]:
        decls: list[Declaration] = list(self.spec_fns)
        if self.instance_type is not None:
            decls.append(self.instance_type)
        decls.extend(self.token_types)
        decls.extend(self.exchange_ops)
        decls.extend(self.proofs)
        return decls

    def get_spec_fn(self, name: str) -> Optional[SpecFn]:
        for fn in self.spec_fns:
            if fn.name == name:
                return fn
        return None

    def get_exchange_op(self, name: str) -> Optional[ExchangeOp]:
        for op in self.exchange_ops:
            if op.name == name:
                return op
        return None

    def get_proof(self, name: str) -> Optional[ProofFn]:
        for proof in self.proofs:
            if proof.name == name:
                return proof
        return None

    def get_helper(self, name: str) -> Optional[FnItem]:
        for helper in self.helpers:
            if helper.name == name:
                return helper
        return None

    def to_dict(self) -> dict[str, Any]:
        from verism.printer import format_fn
        return {
            "machine": self.machine,
            "declarations": [d.to_dict() for d in self.declarations],
            "helpers": [format_fn(h) for h in self.helpers],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
