"""
Pratt parser: turns the token list into a `Program`.

Expressions use binding powers (precedence climbing); statements are read one
logical line at a time, with INDENT/DEDENT tokens delimiting block bodies.
A malformed statement is recorded as a `ParseError` and the parser skips to
the next statement boundary, so one bad line does not hide the rest of a
file. Nesting depth and the total number of parse steps are capped.
"""
import os
import sys
from contextlib import contextmanager
from enum import IntEnum
from typing import List, Optional, Tuple

from carrion.carrion_ast import (
    Assignment, BooleanLiteral, CallExpression, CompoundAssignment, DictLiteral,
    Expression, ExpressionStatement, FloatLiteral, ForStatement, GroupedExpression,
    Identifier, IfStatement, IndexExpression, InfixExpression, IntegerLiteral,
    ListLiteral, Node, PostfixExpression, PrefixExpression, Program, ReturnStatement,
    Statement, StringLiteral, WhileStatement,
)
from carrion.carrion_config import InterpreterConfig
from carrion.carrion_datatypes import INT_MAX, ParseError, ParseLimitExceeded
from carrion.carrion_lexer import Token, TokenType


class Precedence(IntEnum):
    LOWEST = 0
    OR = 1
    AND = 2
    EQUALITY = 3
    COMPARISON = 4
    TERM = 5
    FACTOR = 6
    EXPONENT = 7
    PREFIX = 8
    POSTFIX = 9


INFIX_PRECEDENCE = {
    'or': Precedence.OR,
    'and': Precedence.AND,
    '==': Precedence.EQUALITY,
    '!=': Precedence.EQUALITY,
    '<': Precedence.COMPARISON,
    '>': Precedence.COMPARISON,
    '<=': Precedence.COMPARISON,
    '>=': Precedence.COMPARISON,
    '+': Precedence.TERM,
    '-': Precedence.TERM,
    '*': Precedence.FACTOR,
    '/': Precedence.FACTOR,
    '%': Precedence.FACTOR,
    '**': Precedence.EXPONENT,
}

INT_DIGITS = len(str(INT_MAX))

RIGHT_ASSOCIATIVE = frozenset({'**'})

COMPOUND_OPERATORS = {'+=': '+', '-=': '-', '*=': '*', '/=': '/'}

BOOLEAN_KEYWORDS = {'True': True, 'true': True, 'False': False, 'false': False}

BLOCK_KEYWORDS = frozenset({'if', 'while', 'for'})


class Parser:
    def __init__(self, tokens: List[Token], max_depth: int = 128, max_steps: int = 200_000,
                 debug: bool = False):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type is not TokenType.EOF:
            last = self.tokens[-1] if self.tokens else None
            self.tokens.append(Token(TokenType.EOF, "", last.line if last else 1, last.col if last else 1))
        self.current = 0
        self.errors: List[ParseError] = []
        self.max_depth = max_depth
        self.max_steps = max_steps
        self.debug = debug
        self._depth = 0
        self._steps = 0

    def _dbg(self, *parts):
        if self.debug or os.environ.get("CARRION_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # --- token helpers ---

    def _peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.current + offset, len(self.tokens) - 1)]

    def _check(self, token_type: TokenType, *literals: str) -> bool:
        return self._peek().matches(token_type, *literals)

    def _step(self):
        self._steps += 1
        if self._steps > self.max_steps:
            tok = self._peek()
            raise ParseLimitExceeded(f"parse step limit ({self.max_steps}) exceeded", tok.line, tok.col)

    def _advance(self) -> Token:
        tok = self._peek()
        if tok.type is not TokenType.EOF:
            self.current += 1
        self._step()
        return tok

    def _unexpected(self, expected: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self._peek()
        return ParseError(f"expected {expected}, found {tok.describe()}", tok.line, tok.col)

    def _expect(self, token_type: TokenType, literal: str, expected: str) -> Token:
        if self._check(token_type, literal):
            return self._advance()
        raise self._unexpected(expected)

    @contextmanager
    def _nested(self, tok: Token):
        self._depth += 1
        try:
            if self._depth > self.max_depth:
                raise ParseLimitExceeded(f"maximum nesting depth ({self.max_depth}) exceeded", tok.line, tok.col)
            yield
        finally:
            self._depth -= 1

    @staticmethod
    def _node(node: Node, tok: Token) -> Node:
        node.loc = {'line': tok.line, 'col': tok.col, 'tag': tok.type.value, 'text': tok.literal}
        return node

    # --- program and statements ---

    def parse_program(self) -> Program:
        statements: List[Statement] = []
        program = Program(statements)
        try:
            self._parse_statements(statements, in_block=False)
        except ParseLimitExceeded as e:
            self.errors.append(e)
        except RecursionError:
            tok = self._peek()
            self.errors.append(ParseLimitExceeded("input nested too deeply", tok.line, tok.col))
        program.statements = statements
        return program

    def _parse_statements(self, out: List[Statement], in_block: bool):
        """Parse statements into `out` until EOF, or the closing DEDENT when `in_block`."""
        while True:
            self._step()
            tok = self._peek()
            if tok.type is TokenType.EOF:
                return
            if tok.type is TokenType.DEDENT:
                if in_block:
                    return
                self._advance()
                continue
            if tok.type is TokenType.NEWLINE or tok.matches(TokenType.DELIMITER, ';'):
                self._advance()
                continue
            try:
                if tok.type is TokenType.INDENT:
                    raise ParseError("unexpected indent", tok.line, tok.col)
                out.append(self._parse_statement())
            except ParseLimitExceeded:
                raise
            except ParseError as e:
                self._dbg("recover", e.line, e.message)
                self.errors.append(e)
                self._synchronize()

    def _synchronize(self):
        """Skip to the next statement boundary at the current indentation level.

        Nested blocks opened by the broken statement are skipped whole, along
        with any `otherwise`/`else` clauses that hang off them.
        """
        depth = 0
        while True:
            self._step()
            tok = self._peek()
            if tok.type is TokenType.EOF:
                return
            if tok.type is TokenType.INDENT:
                depth += 1
                self._advance()
                continue
            if tok.type is TokenType.DEDENT:
                if depth == 0:
                    return
                depth -= 1
                self._advance()
                if depth == 0 and not self._check(TokenType.KEYWORD, 'otherwise', 'else'):
                    return
                continue
            if tok.type is TokenType.NEWLINE or tok.matches(TokenType.DELIMITER, ';'):
                self._advance()
                if depth == 0 and not self._check(TokenType.INDENT):
                    if tok.type is TokenType.NEWLINE and self._check(TokenType.KEYWORD, 'otherwise', 'else'):
                        continue
                    return
                continue
            self._advance()

    def _parse_statement(self) -> Statement:
        tok = self._peek()
        if tok.type is TokenType.KEYWORD:
            match tok.literal:
                case 'if':
                    return self._parse_if()
                case 'while':
                    return self._parse_while()
                case 'for':
                    return self._parse_for()
                case 'otherwise' | 'else':
                    raise ParseError(f"'{tok.literal}' without a matching 'if'", tok.line, tok.col)
        stmt = self._parse_simple_statement()
        self._end_statement()
        return stmt

    def _end_statement(self):
        tok = self._peek()
        if tok.type is TokenType.NEWLINE or tok.matches(TokenType.DELIMITER, ';'):
            self._advance()
            return
        if tok.type in (TokenType.EOF, TokenType.DEDENT):
            return
        raise self._unexpected("end of statement")

    def _parse_simple_statement(self) -> Statement:
        start = self._peek()
        if start.matches(TokenType.KEYWORD, 'return'):
            return self._parse_return()
        if start.type is TokenType.KEYWORD and start.literal in BLOCK_KEYWORDS:
            raise ParseError(f"'{start.literal}' must start on its own line", start.line, start.col)

        first = self.parse_expression()
        if self._check(TokenType.DELIMITER, ',') or self._check(TokenType.OPERATOR, '='):
            targets = [first]
            while self._check(TokenType.DELIMITER, ','):
                self._advance()
                targets.append(self.parse_expression())
            if self._peek().type is TokenType.OPERATOR and self._peek().literal in COMPOUND_OPERATORS:
                tok = self._peek()
                raise ParseError("compound assignment requires exactly one target", tok.line, tok.col)
            self._expect(TokenType.OPERATOR, '=', "'='")
            for target in targets:
                self._check_target(target)
            values = [self.parse_expression()]
            while self._check(TokenType.DELIMITER, ','):
                self._advance()
                values.append(self.parse_expression())
            return self._node(Assignment(targets, values), start)

        tok = self._peek()
        if tok.type is TokenType.OPERATOR and tok.literal in COMPOUND_OPERATORS:
            self._advance()
            self._check_target(first)
            value = self.parse_expression()
            return self._node(CompoundAssignment(first, COMPOUND_OPERATORS[tok.literal], value), start)

        return self._node(ExpressionStatement(first), start)

    @staticmethod
    def _check_target(target: Expression, what: str = "assign to"):
        if isinstance(target, (Identifier, IndexExpression)):
            return
        loc = target.loc or {}
        raise ParseError(f"cannot {what} {type(target).__name__}", loc.get('line'), loc.get('col'))

    def _parse_return(self) -> ReturnStatement:
        tok = self._advance()
        nxt = self._peek()
        if nxt.type in (TokenType.NEWLINE, TokenType.EOF, TokenType.DEDENT) or nxt.matches(TokenType.DELIMITER, ';'):
            return self._node(ReturnStatement(None), tok)
        return self._node(ReturnStatement(self.parse_expression()), tok)

    def _parse_if(self) -> IfStatement:
        if_tok = self._advance()
        condition = self.parse_expression()
        branches = [(condition, self._parse_block())]
        while self._check(TokenType.KEYWORD, 'otherwise'):
            self._advance()
            condition = self.parse_expression()
            branches.append((condition, self._parse_block()))
        else_body = None
        if self._check(TokenType.KEYWORD, 'else'):
            self._advance()
            else_body = self._parse_block()
        return self._node(IfStatement(branches, else_body), if_tok)

    def _parse_while(self) -> WhileStatement:
        tok = self._advance()
        condition = self.parse_expression()
        return self._node(WhileStatement(condition, self._parse_block()), tok)

    def _parse_for(self) -> ForStatement:
        tok = self._advance()
        if not self._check(TokenType.IDENTIFIER):
            raise self._unexpected("a loop variable name")
        name = self._advance().literal
        self._expect(TokenType.KEYWORD, 'in', "'in'")
        iterable = self.parse_expression()
        return self._node(ForStatement(name, iterable, self._parse_block()), tok)

    def _parse_block(self) -> List[Statement]:
        """Parse `: body`, where body is an indented block or statements on the same line."""
        self._expect(TokenType.DELIMITER, ':', "':'")
        tok = self._peek()
        if tok.type is TokenType.NEWLINE:
            if self._peek(1).type is not TokenType.INDENT:
                raise self._unexpected("an indented block", self._peek(1))
            self._advance()
            indent = self._advance()
            body: List[Statement] = []
            with self._nested(indent):
                self._parse_statements(body, in_block=True)
            if self._check(TokenType.DEDENT):
                self._advance()
            return body
        if tok.type in (TokenType.EOF, TokenType.DEDENT):
            raise self._unexpected("a statement after ':'")
        return self._parse_inline_body()

    def _parse_inline_body(self) -> List[Statement]:
        body = [self._parse_simple_statement()]
        while self._check(TokenType.DELIMITER, ';'):
            self._advance()
            if self._peek().type in (TokenType.NEWLINE, TokenType.EOF, TokenType.DEDENT):
                break
            body.append(self._parse_simple_statement())
        self._end_statement()
        return body

    # --- expressions ---

    def _peek_precedence(self) -> Precedence:
        tok = self._peek()
        if tok.type in (TokenType.OPERATOR, TokenType.KEYWORD) and tok.literal in INFIX_PRECEDENCE:
            return INFIX_PRECEDENCE[tok.literal]
        if tok.matches(TokenType.OPERATOR, '++', '--') or tok.matches(TokenType.DELIMITER, '(', '['):
            return Precedence.POSTFIX
        return Precedence.LOWEST

    def parse_expression(self, precedence: Precedence = Precedence.LOWEST) -> Expression:
        with self._nested(self._peek()):
            left = self._parse_prefix()
            while precedence < self._peek_precedence():
                self._step()
                tok = self._peek()
                if tok.matches(TokenType.DELIMITER, '('):
                    left = self._parse_call(left)
                elif tok.matches(TokenType.DELIMITER, '['):
                    left = self._parse_index(left)
                elif tok.matches(TokenType.OPERATOR, '++', '--'):
                    self._advance()
                    self._check_target(left, "increment")
                    left = self._node(PostfixExpression(tok.literal, left), tok)
                else:
                    left = self._parse_infix(left)
            return left

    def _parse_prefix(self) -> Expression:
        tok = self._peek()
        match tok.type:
            case TokenType.INTEGER:
                self._advance()
                value = self._integer_value(tok)
                if value > INT_MAX:
                    raise ParseError(f"integer literal {tok.literal} out of range", tok.line, tok.col)
                return self._node(IntegerLiteral(value), tok)
            case TokenType.FLOAT:
                self._advance()
                return self._node(FloatLiteral(float(tok.literal)), tok)
            case TokenType.STRING:
                self._advance()
                return self._node(StringLiteral(tok.literal), tok)
            case TokenType.IDENTIFIER:
                self._advance()
                return self._node(Identifier(tok.literal), tok)
            case TokenType.KEYWORD if tok.literal in BOOLEAN_KEYWORDS:
                self._advance()
                return self._node(BooleanLiteral(BOOLEAN_KEYWORDS[tok.literal]), tok)
            case TokenType.KEYWORD if tok.literal == 'not':
                return self._parse_prefix_operator()
            case TokenType.OPERATOR if tok.literal in ('-', '++', '--'):
                return self._parse_prefix_operator()
            case TokenType.DELIMITER if tok.literal == '(':
                return self._parse_grouped()
            case TokenType.DELIMITER if tok.literal == '[':
                return self._parse_list()
            case TokenType.DELIMITER if tok.literal == '{':
                return self._parse_dict()
        raise self._unexpected("an expression")

    @staticmethod
    def _integer_value(tok: Token) -> int:
        digits = tok.literal.lstrip('0') or '0'
        if len(digits) > INT_DIGITS:
            raise ParseError(f"integer literal {tok.literal[:INT_DIGITS]}... out of range", tok.line, tok.col)
        return int(digits)

    def _parse_prefix_operator(self) -> Expression:
        tok = self._advance()
        nxt = self._peek()
        # The one literal that only fits once negated
        if tok.literal == '-' and nxt.type is TokenType.INTEGER and self._integer_value(nxt) == INT_MAX + 1:
            self._advance()
            return self._node(IntegerLiteral(-(INT_MAX + 1)), tok)
        operand = self.parse_expression(Precedence.PREFIX)
        if tok.literal in ('++', '--'):
            self._check_target(operand, "increment")
        return self._node(PrefixExpression(tok.literal, operand), tok)

    def _parse_infix(self, left: Expression) -> Expression:
        tok = self._advance()
        precedence = INFIX_PRECEDENCE[tok.literal]
        if tok.literal in RIGHT_ASSOCIATIVE:
            precedence = Precedence(precedence - 1)
        right = self.parse_expression(precedence)
        return self._node(InfixExpression(left, tok.literal, right), tok)

    def _parse_grouped(self) -> Expression:
        tok = self._advance()
        expr = self.parse_expression()
        self._expect(TokenType.DELIMITER, ')', "')'")
        return self._node(GroupedExpression(expr), tok)

    def _parse_sequence(self, closer: str, parse_item) -> list:
        """Comma-separated items up to `closer`; a trailing comma is allowed."""
        items = []
        while not self._check(TokenType.DELIMITER, closer):
            self._step()
            items.append(parse_item())
            if self._check(TokenType.DELIMITER, ','):
                self._advance()
            elif not self._check(TokenType.DELIMITER, closer):
                raise self._unexpected(f"',' or '{closer}'")
        self._advance()
        return items

    def _parse_call(self, function: Expression) -> Expression:
        tok = self._advance()
        arguments = self._parse_sequence(')', self.parse_expression)
        return self._node(CallExpression(function, arguments), tok)

    def _parse_index(self, target: Expression) -> Expression:
        tok = self._advance()
        index = self.parse_expression()
        self._expect(TokenType.DELIMITER, ']', "']'")
        return self._node(IndexExpression(target, index), tok)

    def _parse_list(self) -> Expression:
        tok = self._advance()
        return self._node(ListLiteral(self._parse_sequence(']', self.parse_expression)), tok)

    def _parse_dict(self) -> Expression:
        tok = self._advance()
        return self._node(DictLiteral(self._parse_sequence('}', self._parse_dict_pair)), tok)

    def _parse_dict_pair(self) -> Tuple[Expression, Expression]:
        key = self.parse_expression()
        self._expect(TokenType.DELIMITER, ':', "':' after Dict key")
        return key, self.parse_expression()


def parse(tokens: List[Token], config: Optional[InterpreterConfig] = None) -> Tuple[Program, List[ParseError]]:
    """Parse tokens into a Program plus the diagnostics collected along the way."""
    config = config or InterpreterConfig()
    parser = Parser(tokens, max_depth=config.max_parse_depth, max_steps=config.max_parse_steps,
                    debug=config.debug)
    program = parser.parse_program()
    return program, parser.errors
