"""VERISM AST node definitions.

The structured item sequence handed to the spec parser:
  state machine blocks, fields blocks, function items with attributes.
Host expressions and statements used inside function bodies, plus two
generated-only expression forms (CondExpr, LetExpr) produced by the
weakest-precondition engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from verism.errors import SourceLocation


# ---------------------------------------------------------------------------
# Type Annotations (in source)
# ---------------------------------------------------------------------------

@dataclass
class TypeAnnotation:
    name: str
    generic_args: list[TypeAnnotation] = field(default_factory=list)
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        if self.generic_args:
            args = ", ".join(str(a) for a in self.generic_args)
            return f"{self.name}<{args}>"
        return self.name


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass
class Expr:
    location: Optional[SourceLocation] = None


@dataclass
class IntLiteral(Expr):
    value: int = 0


@dataclass
class BoolLiteral(Expr):
    value: bool = False


@dataclass
class StringLiteral(Expr):
    value: str = ""


@dataclass
class Identifier(Expr):
    name: str = ""


@dataclass
class PathExpr(Expr):
    """A qualified path:  Self::initialize"""
    segments: list[str] = field(default_factory=list)


@dataclass
class BinaryOp(Expr):
    op: str = ""
    left: Expr = field(default_factory=Expr)
    right: Expr = field(default_factory=Expr)


@dataclass
class UnaryOp(Expr):
    op: str = ""
    operand: Expr = field(default_factory=Expr)


@dataclass
class FunctionCall(Expr):
    callee: Expr = field(default_factory=Expr)
    args: list[Expr] = field(default_factory=list)


@dataclass
class FieldAccess(Expr):
    obj: Expr = field(default_factory=Expr)
    field_name: str = ""


@dataclass
class MethodCall(Expr):
    obj: Expr = field(default_factory=Expr)
    method_name: str = ""
    args: list[Expr] = field(default_factory=list)


@dataclass
class BlockExpr(Expr):
    """{ stmt; stmt; result }  — result is None for a void block."""
    statements: list[Statement] = field(default_factory=list)
    result: Optional[Expr] = None


@dataclass
class IfExpr(Expr):
    """if cond { ... } else { ... }  — else_branch is a BlockExpr or an IfExpr."""
    condition: Expr = field(default_factory=Expr)
    then_branch: BlockExpr = field(default_factory=BlockExpr)
    else_branch: Optional[Expr] = None


@dataclass
class CondExpr(Expr):
    """Generated value-level conditional:  cond ? then_value : else_value"""
    condition: Expr = field(default_factory=Expr)
    then_value: Expr = field(default_factory=Expr)
    else_value: Expr = field(default_factory=Expr)


@dataclass
class LetExpr(Expr):
    """Generated let-binding scoped over body:  { let name = value; body }"""
    name: str = ""
    value: Expr = field(default_factory=Expr)
    body: Expr = field(default_factory=Expr)


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@dataclass
class Statement:
    location: Optional[SourceLocation] = None


@dataclass
class LetStmt(Statement):
    name: str = ""
    type_annotation: Optional[TypeAnnotation] = None
    value: Optional[Expr] = None
    mutable: bool = False


@dataclass
class ExprStmt(Statement):
    expr: Expr = field(default_factory=Expr)


@dataclass
class AssignStmt(Statement):
    target: Expr = field(default_factory=Expr)
    value: Expr = field(default_factory=Expr)


@dataclass
class ReturnStmt(Statement):
    value: Optional[Expr] = None


@dataclass
class WhileStmt(Statement):
    condition: Expr = field(default_factory=Expr)
    body: BlockExpr = field(default_factory=BlockExpr)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

@dataclass
class Attribute:
    """#[name] or #[name(arg, ...)]; args is None for the bare form."""
    name: str
    args: Optional[list[Expr]] = None
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        if self.args is None:
            return f"#[{self.name}]"
        from verism.printer import format_expr
        return f"#[{self.name}({', '.join(format_expr(a) for a in self.args)})]"


@dataclass
class Parameter:
    name: str
    type_annotation: TypeAnnotation
    location: Optional[SourceLocation] = None


@dataclass
class FieldDecl:
    name: str
    type_annotation: TypeAnnotation
    attributes: list[Attribute] = field(default_factory=list)
    location: Optional[SourceLocation] = None


@dataclass
class FieldsBlock:
    fields: list[FieldDecl] = field(default_factory=list)
    location: Optional[SourceLocation] = None


@dataclass
class FnItem:
    """A function item.  receiver is None, "self", "&self" or "&mut self"."""
    name: str
    receiver: Optional[str] = None
    params: list[Parameter] = field(default_factory=list)
    return_type: Optional[TypeAnnotation] = None
    attributes: list[Attribute] = field(default_factory=list)
    body: BlockExpr = field(default_factory=BlockExpr)
    location: Optional[SourceLocation] = None


Item = Union[FieldsBlock, FnItem]


@dataclass
class MachineSource:
    """One  state machine NAME { items }  block."""
    name: str
    items: list[Item] = field(default_factory=list)
    location: Optional[SourceLocation] = None


# ---------------------------------------------------------------------------
# Program (root node)
# ---------------------------------------------------------------------------

@dataclass
class Program:
    machines: list[MachineSource] = field(default_factory=list)
    filename: str = "<stdin>"
