"""VERISM Parser — LL(1) recursive-descent parser.

Parses a token stream into the structured item sequence consumed by the
spec parser. One canonical form for every construct.

Top-level:
  state machine Name { item* }

Items:
  fields { #[attr] name: Type, ... }
  #[attr] fn name(&self, p: T, ...) -> T { body }
"""

from __future__ import annotations

from typing import Optional

from verism.lexer import Token, TokenType, tokenize
from verism.ast_nodes import (
    Program, MachineSource, Item, FieldsBlock, FieldDecl, FnItem,
    Attribute, Parameter, TypeAnnotation,
    Statement, ReturnStmt, LetStmt, AssignStmt, ExprStmt, WhileStmt,
    Expr, IntLiteral, StringLiteral, BoolLiteral, Identifier, PathExpr,
    BinaryOp, UnaryOp, FunctionCall, FieldAccess, MethodCall,
    BlockExpr, IfExpr,
)
from verism.errors import SourceLocation, syntax_error, CompileError


def is_block_like(expr: Expr) -> bool:
    """Block-like expressions may end a statement without a semicolon."""
    return isinstance(expr, (BlockExpr, IfExpr))


class Parser:
    """LL(1) recursive-descent parser for state-machine sources."""

    def __init__(self, tokens: list[Token], filename: str = "<stdin>"):
        self.tokens = tokens
        self.pos = 0
        self.filename = filename

    def _current(self) -> Token:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return self.tokens[-1]  # EOF

    def _peek(self) -> TokenType:
        return self._current().type

    def _peek_value(self) -> str:
        return self._current().value

    def _loc(self) -> SourceLocation:
        return self._current().location

    def _advance(self) -> Token:
        tok = self._current()
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def _expect(self, tt: TokenType) -> Token:
        tok = self._current()
        if tok.type != tt:
            raise CompileError(syntax_error(
                f"Expected {tt.name}, got {tok.type.name} ('{tok.value}')",
                tok.location,
            ))
        return self._advance()

    def _expect_word(self, word: str) -> Token:
        """Expect a contextual keyword, lexed as an identifier."""
        tok = self._current()
        if tok.type != TokenType.IDENT or tok.value != word:
            raise CompileError(syntax_error(
                f"Expected '{word}', got '{tok.value}'",
                tok.location,
            ))
        return self._advance()

    def _match(self, tt: TokenType) -> Optional[Token]:
        if self._peek() == tt:
            return self._advance()
        return None

    # -------------------------------------------------------------------
    # Top-level
    # -------------------------------------------------------------------

    def parse(self) -> Program:
        machines: list[MachineSource] = []
        while self._peek() != TokenType.EOF:
            machines.append(self._parse_machine())
        return Program(machines=machines, filename=self.filename)

    def _parse_machine(self) -> MachineSource:
        loc = self._loc()
        self._expect_word("state")
        self._expect_word("machine")
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.LBRACE)
        items: list[Item] = []
        while self._peek() != TokenType.RBRACE:
            if self._peek() == TokenType.EOF:
                raise CompileError(syntax_error(
                    f"Unterminated state machine '{name}'", loc,
                ))
            items.append(self._parse_item())
        self._expect(TokenType.RBRACE)
        return MachineSource(name=name, items=items, location=loc)

    def _parse_item(self) -> Item:
        if self._peek() == TokenType.IDENT and self._peek_value() == "fields":
            return self._parse_fields_block()
        attributes = self._parse_attributes()
        if self._peek() != TokenType.FN:
            raise CompileError(syntax_error(
                f"Expected 'fields' or 'fn', got '{self._current().value}'",
                self._loc(),
            ))
        return self._parse_fn(attributes)

    # -------------------------------------------------------------------
    # Attributes
    # -------------------------------------------------------------------

    def _parse_attributes(self) -> list[Attribute]:
        attributes: list[Attribute] = []
        while self._peek() == TokenType.HASH:
            attributes.append(self._parse_attribute())
        return attributes

    def _parse_attribute(self) -> Attribute:
        """Parse: #[name] or #[name(expr, ...)]"""
        loc = self._loc()
        self._expect(TokenType.HASH)
        self._expect(TokenType.LBRACKET)
        name = self._expect(TokenType.IDENT).value
        args: Optional[list[Expr]] = None
        if self._match(TokenType.LPAREN):
            args = self._parse_call_args()
        self._expect(TokenType.RBRACKET)
        return Attribute(name=name, args=args, location=loc)

    # -------------------------------------------------------------------
    # fields
    # -------------------------------------------------------------------

    def _parse_fields_block(self) -> FieldsBlock:
        loc = self._loc()
        self._expect_word("fields")
        self._expect(TokenType.LBRACE)
        fields: list[FieldDecl] = []
        while self._peek() != TokenType.RBRACE:
            fields.append(self._parse_field_decl())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE)
        return FieldsBlock(fields=fields, location=loc)

    def _parse_field_decl(self) -> FieldDecl:
        attributes = self._parse_attributes()
        loc = self._loc()
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.COLON)
        type_ann = self._parse_type_annotation()
        return FieldDecl(name=name, type_annotation=type_ann, attributes=attributes, location=loc)

    # -------------------------------------------------------------------
    # Type annotations
    # -------------------------------------------------------------------

    def _parse_type_annotation(self) -> TypeAnnotation:
        loc = self._loc()
        name = self._expect(TokenType.IDENT).value
        generic_args: list[TypeAnnotation] = []
        if self._peek() == TokenType.LT:
            self._advance()
            generic_args.append(self._parse_type_annotation())
            while self._match(TokenType.COMMA):
                generic_args.append(self._parse_type_annotation())
            self._expect(TokenType.GT)
        return TypeAnnotation(name=name, generic_args=generic_args, location=loc)

    # -------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------

    def _parse_fn(self, attributes: list[Attribute]) -> FnItem:
        loc = self._loc()
        self._expect(TokenType.FN)
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.LPAREN)
        receiver = self._parse_receiver()
        params: list[Parameter] = []
        if receiver is None or self._match(TokenType.COMMA):
            params = self._parse_param_list()
        self._expect(TokenType.RPAREN)
        return_type: Optional[TypeAnnotation] = None
        if self._match(TokenType.ARROW):
            return_type = self._parse_type_annotation()
        body = self._parse_block()
        return FnItem(
            name=name,
            receiver=receiver,
            params=params,
            return_type=return_type,
            attributes=attributes,
            body=body,
            location=loc,
        )

    def _parse_receiver(self) -> Optional[str]:
        """Parse an optional leading  self | &self | &mut self."""
        if self._match(TokenType.SELF):
            return "self"
        if self._match(TokenType.AMP):
            if self._match(TokenType.MUT):
                self._expect(TokenType.SELF)
                return "&mut self"
            self._expect(TokenType.SELF)
            return "&self"
        return None

    def _parse_param_list(self) -> list[Parameter]:
        params: list[Parameter] = []
        while self._peek() != TokenType.RPAREN:
            params.append(self._parse_parameter())
            if not self._match(TokenType.COMMA):
                break
        return params

    def _parse_parameter(self) -> Parameter:
        loc = self._loc()
        if self._peek() == TokenType.SELF:
            raise CompileError(syntax_error("'self' must be the first parameter", loc))
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.COLON)
        type_ann = self._parse_type_annotation()
        return Parameter(name=name, type_annotation=type_ann, location=loc)

    # -------------------------------------------------------------------
    # Blocks and statements
    # -------------------------------------------------------------------

    def _parse_block(self) -> BlockExpr:
        """Parse: { stmt* tail? }"""
        loc = self._loc()
        self._expect(TokenType.LBRACE)
        statements: list[Statement] = []
        result: Optional[Expr] = None
        while self._peek() != TokenType.RBRACE:
            if self._peek() == TokenType.EOF:
                raise CompileError(syntax_error("Unterminated block", loc))
            if self._match(TokenType.SEMICOLON):
                continue
            stmt, tail = self._parse_statement()
            if tail is not None:
                result = tail
                break
            statements.append(stmt)
        self._expect(TokenType.RBRACE)
        return BlockExpr(statements=statements, result=result, location=loc)

    def _parse_statement(self) -> tuple[Optional[Statement], Optional[Expr]]:
        """Parse one statement.

        Returns (statement, None), or (None, expr) when the expression is
        the block's tail value.
        """
        tt = self._peek()

        if tt == TokenType.LET:
            return self._parse_let(), None
        if tt == TokenType.RETURN:
            return self._parse_return(), None
        if tt == TokenType.WHILE:
            return self._parse_while(), None
        return self._parse_expr_or_assign_stmt()

    def _parse_let(self) -> LetStmt:
        loc = self._loc()
        self._expect(TokenType.LET)
        mutable = bool(self._match(TokenType.MUT))
        name = self._expect(TokenType.IDENT).value
        type_ann: Optional[TypeAnnotation] = None
        if self._match(TokenType.COLON):
            type_ann = self._parse_type_annotation()
        value: Optional[Expr] = None
        if self._match(TokenType.ASSIGN):
            value = self._parse_expression()
        self._expect(TokenType.SEMICOLON)
        return LetStmt(name=name, type_annotation=type_ann, value=value, mutable=mutable, location=loc)

    def _parse_return(self) -> ReturnStmt:
        loc = self._loc()
        self._expect(TokenType.RETURN)
        value: Optional[Expr] = None
        if self._peek() not in (TokenType.SEMICOLON, TokenType.RBRACE):
            value = self._parse_expression()
        self._match(TokenType.SEMICOLON)
        return ReturnStmt(value=value, location=loc)

    def _parse_while(self) -> WhileStmt:
        loc = self._loc()
        self._expect(TokenType.WHILE)
        condition = self._parse_expression()
        body = self._parse_block()
        return WhileStmt(condition=condition, body=body, location=loc)

    def _parse_expr_or_assign_stmt(self) -> tuple[Optional[Statement], Optional[Expr]]:
        loc = self._loc()
        if self._peek() == TokenType.IF:
            expr: Expr = self._parse_if_expr()
        elif self._peek() == TokenType.LBRACE:
            expr = self._parse_block()
        else:
            expr = self._parse_expression()

        if self._match(TokenType.ASSIGN):
            value = self._parse_expression()
            self._expect(TokenType.SEMICOLON)
            return AssignStmt(target=expr, value=value, location=loc), None

        if self._peek() == TokenType.RBRACE:
            return None, expr
        if is_block_like(expr):
            self._match(TokenType.SEMICOLON)
            return ExprStmt(expr=expr, location=loc), None
        self._expect(TokenType.SEMICOLON)
        return ExprStmt(expr=expr, location=loc), None

    # -------------------------------------------------------------------
    # Expressions (precedence climbing)
    # -------------------------------------------------------------------

    def _parse_expression(self) -> Expr:
        return self._parse_implies()

    def _parse_implies(self) -> Expr:
        """Implication ==> — lowest precedence, right-associative."""
        left = self._parse_or()
        if self._peek() == TokenType.IMPLIES:
            loc = self._loc()
            self._advance()
            right = self._parse_implies()
            return BinaryOp(op="==>", left=left, right=right, location=loc)
        return left

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self._peek() == TokenType.OR:
            loc = self._loc()
            self._advance()
            right = self._parse_and()
            left = BinaryOp(op="||", left=left, right=right, location=loc)
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_equality()
        while self._peek() == TokenType.AND:
            loc = self._loc()
            self._advance()
            right = self._parse_equality()
            left = BinaryOp(op="&&", left=left, right=right, location=loc)
        return left

    def _parse_equality(self) -> Expr:
        left = self._parse_comparison()
        while self._peek() in (TokenType.EQ, TokenType.NEQ):
            loc = self._loc()
            op = self._advance().value
            right = self._parse_comparison()
            left = BinaryOp(op=op, left=left, right=right, location=loc)
        return left

    def _parse_comparison(self) -> Expr:
        left = self._parse_additive()
        while self._peek() in (TokenType.LT, TokenType.GT, TokenType.LTE, TokenType.GTE):
            loc = self._loc()
            op = self._advance().value
            right = self._parse_additive()
            left = BinaryOp(op=op, left=left, right=right, location=loc)
        return left

    def _parse_additive(self) -> Expr:
        left = self._parse_multiplicative()
        while self._peek() in (TokenType.PLUS, TokenType.MINUS):
            loc = self._loc()
            op = self._advance().value
            right = self._parse_multiplicative()
            left = BinaryOp(op=op, left=left, right=right, location=loc)
        return left

    def _parse_multiplicative(self) -> Expr:
        left = self._parse_unary()
        while self._peek() in (TokenType.STAR, TokenType.SLASH, TokenType.PERCENT):
            loc = self._loc()
            op = self._advance().value
            right = self._parse_unary()
            left = BinaryOp(op=op, left=left, right=right, location=loc)
        return left

    def _parse_unary(self) -> Expr:
        if self._peek() == TokenType.MINUS:
            loc = self._loc()
            self._advance()
            operand = self._parse_unary()
            return UnaryOp(op="-", operand=operand, location=loc)
        if self._peek() == TokenType.NOT:
            loc = self._loc()
            self._advance()
            operand = self._parse_unary()
            return UnaryOp(op="!", operand=operand, location=loc)
        return self._parse_postfix()

    def _parse_call_args(self) -> list[Expr]:
        """Parse arguments after an opening paren, consuming the closing one."""
        args: list[Expr] = []
        while self._peek() != TokenType.RPAREN:
            args.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN)
        return args

    def _parse_postfix(self) -> Expr:
        expr = self._parse_primary()
        while True:
            if self._peek() == TokenType.LPAREN:
                loc = self._loc()
                self._advance()
                args = self._parse_call_args()
                expr = FunctionCall(callee=expr, args=args, location=expr.location or loc)
            elif self._peek() == TokenType.DOT:
                loc = self._loc()
                self._advance()
                field_name = self._expect(TokenType.IDENT).value
                if self._match(TokenType.LPAREN):
                    args = self._parse_call_args()
                    expr = MethodCall(obj=expr, method_name=field_name, args=args, location=loc)
                else:
                    expr = FieldAccess(obj=expr, field_name=field_name, location=loc)
            else:
                break
        return expr

    def _parse_primary(self) -> Expr:
        tt = self._peek()
        loc = self._loc()

        if tt == TokenType.INT_LIT:
            tok = self._advance()
            return IntLiteral(value=int(tok.value), location=loc)

        if tt == TokenType.STRING_LIT:
            tok = self._advance()
            return StringLiteral(value=tok.value, location=loc)

        if tt == TokenType.TRUE:
            self._advance()
            return BoolLiteral(value=True, location=loc)

        if tt == TokenType.FALSE:
            self._advance()
            return BoolLiteral(value=False, location=loc)

        if tt == TokenType.IDENT:
            tok = self._advance()
            if self._peek() == TokenType.DOUBLE_COLON:
                segments = [tok.value]
                while self._match(TokenType.DOUBLE_COLON):
                    segments.append(self._expect(TokenType.IDENT).value)
                return PathExpr(segments=segments, location=loc)
            return Identifier(name=tok.value, location=loc)

        if tt == TokenType.SELF:
            self._advance()
            return Identifier(name="self", location=loc)

        if tt == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN)
            return expr

        if tt == TokenType.IF:
            return self._parse_if_expr()

        if tt == TokenType.LBRACE:
            return self._parse_block()

        raise CompileError(syntax_error(
            f"Unexpected token '{self._current().value}' ({tt.name})",
            loc,
        ))

    def _parse_if_expr(self) -> IfExpr:
        """Parse: if cond { ... } [else { ... } | else if ...]"""
        loc = self._loc()
        self._expect(TokenType.IF)
        condition = self._parse_expression()
        then_branch = self._parse_block()
        else_branch: Optional[Expr] = None
        if self._match(TokenType.ELSE):
            if self._peek() == TokenType.IF:
                else_branch = self._parse_if_expr()
            else:
                else_branch = self._parse_block()
        return IfExpr(condition=condition, then_branch=then_branch, else_branch=else_branch, location=loc)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(source: str, filename: str = "<stdin>") -> Program:
    """Parse state-machine source code into an AST."""
    tokens = tokenize(source, filename)
    parser = Parser(tokens, filename)
    return parser.parse()
