"""Deterministic text rendering.

Expressions print with the minimal parentheses their precedence needs, so
the same tree always yields the same text. Used for error messages, the
JSON export and the `compile` command's text output.
"""

from __future__ import annotations

from verism.ast_nodes import (
    Expr, IntLiteral, BoolLiteral, StringLiteral, Identifier, PathExpr,
    BinaryOp, UnaryOp, FunctionCall, FieldAccess, MethodCall, BlockExpr,
    IfExpr, CondExpr, LetExpr, Statement, LetStmt, ExprStmt, AssignStmt,
    ReturnStmt, WhileStmt, FnItem,
)
from verism.output import (
    GeneratedModule, SpecFn, InstanceType, TokenType, ExchangeOp, ProofFn, Param,
)
from verism.smir import (
    TransitionStmt, Block, Let, If, Require, Assert, Update,
)


BINARY_PRECEDENCE: dict[str, int] = {
    "==>": 1,
    "||": 2,
    "&&": 3,
    "==": 4, "!=": 4,
    "<": 5, ">": 5, "<=": 5, ">=": 5,
    "+": 6, "-": 6,
    "*": 7, "/": 7, "%": 7,
}
RIGHT_ASSOCIATIVE = {"==>"}
PREC_CONDITIONAL = 0
PREC_UNARY = 8
PREC_ATOM = 9

INDENT = "    "


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

def format_expr(expr: Expr) -> str:
    return _fmt(expr)[0]


def _wrap(expr: Expr, min_prec: int) -> str:
    text, prec = _fmt(expr)
    if prec < min_prec:
        return f"({text})"
    return text


def _wrap_leading(expr: Expr, min_prec: int) -> str:
    """_wrap, but a block-like expression is always parenthesised; a leading block ends a statement."""
    if isinstance(expr, (BlockExpr, LetExpr)):
        return f"({format_expr(expr)})"
    return _wrap(expr, min_prec)


def _args(args: list[Expr]) -> str:
    return ", ".join(format_expr(a) for a in args)


def _fmt(expr: Expr) -> tuple[str, int]:
    if isinstance(expr, IntLiteral):
        if expr.value < 0:
            return str(expr.value), PREC_UNARY
        return str(expr.value), PREC_ATOM
    if isinstance(expr, BoolLiteral):
        return ("true" if expr.value else "false"), PREC_ATOM
    if isinstance(expr, StringLiteral):
        escaped = expr.value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"', PREC_ATOM
    if isinstance(expr, Identifier):
        return expr.name, PREC_ATOM
    if isinstance(expr, PathExpr):
        return "::".join(expr.segments), PREC_ATOM
    if isinstance(expr, BinaryOp):
        prec = BINARY_PRECEDENCE[expr.op]
        if expr.op in RIGHT_ASSOCIATIVE:
            left = _wrap_leading(expr.left, prec + 1)
            right = _wrap(expr.right, prec)
        else:
            left = _wrap_leading(expr.left, prec)
            right = _wrap(expr.right, prec + 1)
        return f"{left} {expr.op} {right}", prec
    if isinstance(expr, UnaryOp):
        return f"{expr.op}{_wrap(expr.operand, PREC_UNARY)}", PREC_UNARY
    if isinstance(expr, FunctionCall):
        return f"{_wrap(expr.callee, PREC_ATOM)}({_args(expr.args)})", PREC_ATOM
    if isinstance(expr, FieldAccess):
        return f"{_wrap_leading(expr.obj, PREC_ATOM)}.{expr.field_name}", PREC_ATOM
    if isinstance(expr, MethodCall):
        return f"{_wrap_leading(expr.obj, PREC_ATOM)}.{expr.method_name}({_args(expr.args)})", PREC_ATOM
    if isinstance(expr, BlockExpr):
        return _format_inline_block(expr), PREC_ATOM
    if isinstance(expr, IfExpr):
        return _format_if(expr), PREC_CONDITIONAL
    if isinstance(expr, CondExpr):
        cond = format_expr(expr.condition)
        return (
            f"if {cond} {{ {format_expr(expr.then_value)} }} "
            f"else {{ {format_expr(expr.else_value)} }}"
        ), PREC_CONDITIONAL
    if isinstance(expr, LetExpr):
        return f"{{ let {expr.name} = {format_expr(expr.value)}; {format_expr(expr.body)} }}", PREC_ATOM
    raise TypeError(f"Cannot format {type(expr).__name__}")


def _format_if(expr: IfExpr) -> str:
    text = f"if {format_expr(expr.condition)} {_format_inline_block(expr.then_branch)}"
    if isinstance(expr.else_branch, IfExpr):
        text += f" else {_format_if(expr.else_branch)}"
    elif isinstance(expr.else_branch, BlockExpr):
        text += f" else {_format_inline_block(expr.else_branch)}"
    elif expr.else_branch is not None:
        text += f" else {{ {format_expr(expr.else_branch)} }}"
    return text


def _format_inline_block(block: BlockExpr) -> str:
    parts = [format_statement(s) for s in block.statements]
    if block.result is not None:
        parts.append(format_expr(block.result))
    if not parts:
        return "{ }"
    return "{ " + " ".join(parts) + " }"


def format_statement(stmt: Statement) -> str:
    if isinstance(stmt, LetStmt):
        text = "let mut " if stmt.mutable else "let "
        text += stmt.name
        if stmt.type_annotation is not None:
            text += f": {stmt.type_annotation}"
        if stmt.value is not None:
            text += f" = {format_expr(stmt.value)}"
        return text + ";"
    if isinstance(stmt, ExprStmt):
        if isinstance(stmt.expr, (IfExpr, BlockExpr)):
            return format_expr(stmt.expr)
        return format_expr(stmt.expr) + ";"
    if isinstance(stmt, AssignStmt):
        return f"{format_expr(stmt.target)} = {format_expr(stmt.value)};"
    if isinstance(stmt, ReturnStmt):
        if stmt.value is None:
            return "return;"
        return f"return {format_expr(stmt.value)};"
    if isinstance(stmt, WhileStmt):
        return f"while {format_expr(stmt.condition)} {_format_inline_block(stmt.body)}"
    raise TypeError(f"Cannot format {type(stmt).__name__}")


# ---------------------------------------------------------------------------
# Transition statements
# ---------------------------------------------------------------------------

def format_stmt(stmt: TransitionStmt) -> str:
    if isinstance(stmt, Block):
        if not stmt.stmts:
            return "{ }"
        return "{ " + " ".join(format_stmt(s) for s in stmt.stmts) + " }"
    if isinstance(stmt, Let):
        return f"let {stmt.name} = {format_expr(stmt.value)};"
    if isinstance(stmt, If):
        return (
            f"if {format_expr(stmt.condition)} {format_stmt(stmt.then_branch)} "
            f"else {format_stmt(stmt.else_branch)}"
        )
    if isinstance(stmt, Require):
        return f"require({format_expr(stmt.expr)});"
    if isinstance(stmt, Assert):
        return f"assert({format_expr(stmt.expr)});"
    if isinstance(stmt, Update):
        return f"update({stmt.field_name}, {format_expr(stmt.value)});"
    raise TypeError(f"Cannot format {type(stmt).__name__}")


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

def _signature(receiver, params: list[Param]) -> str:
    parts = [receiver] if receiver else []
    parts.extend(f"{p.name}: {p.type_name}" for p in params)
    return ", ".join(parts)


def _format_body_lines(block: BlockExpr, depth: int) -> list[str]:
    pad = INDENT * depth
    lines = [pad + format_statement(s) for s in block.statements]
    if block.result is not None:
        lines.append(pad + format_expr(block.result))
    return lines


def format_fn(fn: FnItem) -> str:
    lines = [str(a) for a in fn.attributes]
    params = [Param(p.name, str(p.type_annotation)) for p in fn.params]
    header = f"fn {fn.name}({_signature(fn.receiver, params)})"
    if fn.return_type is not None:
        header += f" -> {fn.return_type}"
    lines.append(header + " {")
    lines.extend(_format_body_lines(fn.body, 1))
    lines.append("}")
    return "\n".join(lines)


def format_spec_fn(fn: SpecFn) -> str:
    return "\n".join([
        f"spec fn {fn.name}({_signature(fn.receiver, fn.params)}) -> bool {{",
        INDENT + format_expr(fn.body),
        "}",
    ])


def _format_clauses(keyword: str, exprs: list[Expr]) -> list[str]:
    if not exprs:
        return []
    lines = [INDENT + keyword]
    lines.extend(INDENT * 2 + format_expr(e) + "," for e in exprs)
    return lines


def format_exchange_op(op: ExchangeOp) -> str:
    parts = [f"instance: {op.instance_type}"]
    for token in op.tokens:
        ref = "&mut " if token.mutable else "&"
        parts.append(f"{token.name}: {ref}{token.token_type}")
    parts.extend(f"{a.name}: {a.type_name}" for a in op.args)
    lines = [f"exchange fn {op.name}({', '.join(parts)})"]
    lines.extend(_format_clauses("requires", op.requires))
    lines.extend(_format_clauses("ensures", op.ensures))
    return "\n".join(lines)


def format_proof_fn(proof: ProofFn) -> str:
    lines = [f"#[{proof.purpose}({proof.transition})]"]
    lines.append(f"proof fn {proof.name}({_signature(proof.receiver, proof.params)})")
    lines.extend(_format_clauses("requires", proof.requires))
    lines.extend(_format_clauses("ensures", proof.ensures))
    lines.append("{")
    lines.extend(_format_body_lines(proof.body, 1))
    lines.append("}")
    return "\n".join(lines)


def format_declaration(decl) -> str:
    if isinstance(decl, SpecFn):
        return format_spec_fn(decl)
    if isinstance(decl, InstanceType):
        return f"struct {decl.name};"
    if isinstance(decl, TokenType):
        return (
            f"struct {decl.name} {{ instance: {decl.instance_type}, "
            f"{decl.field_name}: {decl.field_type} }}"
        )
    if isinstance(decl, ExchangeOp):
        return format_exchange_op(decl)
    if isinstance(decl, ProofFn):
        return format_proof_fn(decl)
    raise TypeError(f"Cannot format {type(decl).__name__}")


def render_module(module: GeneratedModule) -> str:
    """Render a generated module as text; identical input gives identical text."""
    chunks = [f"// state machine {module.machine}"]
    chunks.extend(format_declaration(d) for d in module.declarations)
    chunks.extend(format_fn(h) for h in module.helpers)
    return "\n\n".join(chunks) + "\n"
