"""revlang parser: LL(1) recursive-descent parser.

Parses a token stream into the AST of ``revlang.ast_nodes``. Every
compound-assignment symbol is accepted here; deciding which ones are
reversible is the validator's job, so the error names the rule instead of
being a bare syntax error.
"""

from __future__ import annotations

from typing import Optional

from revlang.ast_nodes import (
    Program, ProcedureDef, Parameter,
    Statement, AssignStmt, IfStmt, CallStmt, LocalStmt, DelocalStmt,
    LoopStmt, SwapStmt, BlockStmt,
    Expr, IntLiteral, BoolLiteral, Identifier, IndexExpr,
    BinaryOp, UnaryOp, FunctionCall, UpdateExpr, VarRef,
)
from revlang.compiler.lexer import Token, TokenType, ASSIGN_TOKENS, tokenize
from revlang.errors import SourceLocation, syntax_error, CompileError


# Binary operator levels, loosest first. Matches formatters.PRECEDENCE.
BINARY_LEVELS: list[frozenset[TokenType]] = [
    frozenset({TokenType.OR}),
    frozenset({TokenType.AND}),
    frozenset({TokenType.EQ, TokenType.NEQ, TokenType.LT, TokenType.LTE,
               TokenType.GT, TokenType.GTE}),
    frozenset({TokenType.PIPE}),
    frozenset({TokenType.CARET}),
    frozenset({TokenType.AMP}),
    frozenset({TokenType.SHL, TokenType.SHR}),
    frozenset({TokenType.PLUS, TokenType.MINUS}),
    frozenset({TokenType.STAR, TokenType.SLASH, TokenType.PERCENT}),
]

UNARY_TOKENS = frozenset({TokenType.MINUS, TokenType.NOT, TokenType.TILDE})


class Parser:
    """LL(1) recursive-descent parser for revlang."""

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

    def _peek_next(self) -> TokenType:
        if self.pos + 1 < len(self.tokens):
            return self.tokens[self.pos + 1].type
        return TokenType.EOF

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
            got = f"'{tok.value}'" if tok.value else "end of input"
            raise CompileError(syntax_error(
                f"Expected {tt.name}, got {tok.type.name} ({got})",
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
        procs: list[ProcedureDef] = []
        while self._peek() != TokenType.EOF:
            procs.append(self._parse_procedure())
        return Program(procedures=procs, filename=self.filename)

    def _parse_procedure(self) -> ProcedureDef:
        loc = self._loc()
        if self._peek() != TokenType.PROCEDURE:
            raise CompileError(syntax_error(
                f"Expected 'procedure', got '{self._current().value}'", loc))
        self._advance()
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.LPAREN)
        params = self._parse_param_list()
        self._expect(TokenType.RPAREN)
        body = self._parse_braced_body()
        return ProcedureDef(name=name, params=params, body=body, location=loc)

    def _parse_param_list(self) -> list[Parameter]:
        params: list[Parameter] = []
        if self._peek() == TokenType.RPAREN:
            return params
        while True:
            tok = self._expect(TokenType.IDENT)
            params.append(Parameter(name=tok.value, location=tok.location))
            if not self._match(TokenType.COMMA):
                break
        return params

    def _parse_braced_body(self) -> list[Statement]:
        self._expect(TokenType.LBRACE)
        body = self._parse_body()
        self._expect(TokenType.RBRACE)
        return body

    def _parse_body(self) -> list[Statement]:
        stmts: list[Statement] = []
        while self._peek() not in (TokenType.RBRACE, TokenType.EOF):
            stmts.append(self._parse_statement())
            while self._match(TokenType.SEMICOLON):
                pass
        return stmts

    # -------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------

    def _parse_statement(self) -> Statement:
        tt = self._peek()

        if tt == TokenType.IF:
            return self._parse_if()
        elif tt in (TokenType.CALL, TokenType.UNCALL):
            return self._parse_call()
        elif tt in (TokenType.LOCAL, TokenType.DELOCAL):
            return self._parse_local()
        elif tt == TokenType.FROM:
            return self._parse_loop()
        elif tt == TokenType.LBRACE:
            loc = self._loc()
            return BlockStmt(body=self._parse_braced_body(), location=loc)
        elif tt == TokenType.IDENT:
            return self._parse_update()
        else:
            raise CompileError(syntax_error(
                f"Expected a statement, got '{self._current().value}'",
                self._loc(),
            ))

    def _parse_if(self) -> IfStmt:
        loc = self._loc()
        self._expect(TokenType.IF)
        guard = self._parse_expression()
        then_body = self._parse_braced_body()
        else_body: list[Statement] = []
        if self._match(TokenType.ELSE):
            else_body = self._parse_braced_body()
        self._expect(TokenType.ASSERT)
        assertion = self._parse_expression()
        return IfStmt(guard=guard, then_body=then_body, else_body=else_body,
                      assertion=assertion, location=loc)

    def _parse_call(self) -> CallStmt:
        loc = self._loc()
        uncall = self._advance().type == TokenType.UNCALL
        callee = self._expect(TokenType.IDENT).value
        self._expect(TokenType.LPAREN)
        args: list[VarRef] = []
        if self._peek() != TokenType.RPAREN:
            args.append(self._parse_ref())
            while self._match(TokenType.COMMA):
                args.append(self._parse_ref())
        self._expect(TokenType.RPAREN)
        return CallStmt(callee=callee, args=args, uncall=uncall, location=loc)

    def _parse_local(self) -> Statement:
        loc = self._loc()
        is_local = self._advance().type == TokenType.LOCAL
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.ASSIGN)
        value = self._parse_expression()
        if is_local:
            return LocalStmt(name=name, value=value, location=loc)
        return DelocalStmt(name=name, value=value, location=loc)

    def _parse_loop(self) -> LoopStmt:
        loc = self._loc()
        self._expect(TokenType.FROM)
        entry = self._parse_expression()
        do_body: list[Statement] = []
        loop_body: list[Statement] = []
        if self._match(TokenType.DO):
            do_body = self._parse_braced_body()
        if self._match(TokenType.LOOP):
            loop_body = self._parse_braced_body()
        self._expect(TokenType.UNTIL)
        exit_cond = self._parse_expression()
        return LoopStmt(entry=entry, do_body=do_body, loop_body=loop_body,
                        exit=exit_cond, location=loc)

    def _parse_update(self) -> Statement:
        loc = self._loc()
        target = self._parse_ref()
        if self._match(TokenType.SWAP):
            other = self._parse_ref()
            return SwapStmt(left=target, right=other, location=loc)
        if self._peek() in ASSIGN_TOKENS:
            op = self._advance().value
            value = self._parse_expression()
            return AssignStmt(target=target, op=op, value=value, location=loc)
        raise CompileError(syntax_error(
            f"Expected an update operator or '<=>' after '{target.name}', "
            f"got '{self._current().value}'",
            self._loc(),
        ))

    def _parse_ref(self) -> VarRef:
        tok = self._expect(TokenType.IDENT)
        if self._match(TokenType.LBRACKET):
            index = self._parse_expression()
            self._expect(TokenType.RBRACKET)
            return IndexExpr(name=tok.value, index=index, location=tok.location)
        return Identifier(name=tok.value, location=tok.location)

    # -------------------------------------------------------------------
    # Expressions (precedence climbing)
    # -------------------------------------------------------------------

    def _parse_expression(self) -> Expr:
        return self._parse_binary(0)

    def _parse_binary(self, level: int) -> Expr:
        if level == len(BINARY_LEVELS):
            return self._parse_unary()
        left = self._parse_binary(level + 1)
        while self._peek() in BINARY_LEVELS[level]:
            loc = self._loc()
            op = self._advance().value
            right = self._parse_binary(level + 1)
            left = BinaryOp(op=op, left=left, right=right, location=loc)
        return left

    def _parse_unary(self) -> Expr:
        if self._peek() in UNARY_TOKENS:
            loc = self._loc()
            op = self._advance().value
            # "-5" is a literal, "-(5)" a negation.
            if op == "-" and self._peek() == TokenType.INT_LIT:
                tok = self._advance()
                return IntLiteral(value=-int(tok.value), location=loc)
            operand = self._parse_unary()
            return UnaryOp(op=op, operand=operand, location=loc)
        return self._parse_primary()

    def _parse_primary(self) -> Expr:
        tt = self._peek()
        loc = self._loc()

        if tt == TokenType.INT_LIT:
            tok = self._advance()
            return IntLiteral(value=int(tok.value), location=loc)

        if tt == TokenType.TRUE:
            self._advance()
            return BoolLiteral(value=True, location=loc)

        if tt == TokenType.FALSE:
            self._advance()
            return BoolLiteral(value=False, location=loc)

        if tt == TokenType.IDENT:
            if self._peek_next() == TokenType.LPAREN:
                name = self._advance().value
                self._advance()
                args: list[Expr] = []
                if self._peek() != TokenType.RPAREN:
                    args.append(self._parse_expression())
                    while self._match(TokenType.COMMA):
                        args.append(self._parse_expression())
                self._expect(TokenType.RPAREN)
                return FunctionCall(name=name, args=args, location=loc)
            return self._parse_ref()

        if tt == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            if self._peek() in ASSIGN_TOKENS:
                # A mutation in expression position; the validator rejects it.
                op = self._advance().value
                value = self._parse_expression()
                expr = UpdateExpr(op=op, target=expr, value=value, location=loc)
            self._expect(TokenType.RPAREN)
            return expr

        got = f"'{self._current().value}'" if self._current().value else "end of input"
        raise CompileError(syntax_error(f"Unexpected token {got} ({tt.name})", loc))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(source: str, filename: str = "<stdin>") -> Program:
    """Parse revlang source code into an AST."""
    tokens = tokenize(source, filename)
    parser = Parser(tokens, filename)
    return parser.parse()


def parse_procedure(source: str, filename: str = "<stdin>") -> ProcedureDef:
    """Parse source holding exactly one procedure."""
    program = parse(source, filename)
    if len(program.procedures) != 1:
        raise CompileError(syntax_error(
            f"Expected exactly one procedure, found {len(program.procedures)}",
            SourceLocation(1, 1, filename),
        ))
    return program.procedures[0]
