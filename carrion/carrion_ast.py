"""
Defines the AST node classes produced by the parser and walked by the evaluator.

Nodes are immutable in practice, compare structurally (ignoring source
locations) and never hold resolved values.
"""

from typing import Any, Dict, List, Optional, Tuple


class Node:
    """Base class for all AST nodes. Subclasses list their fields in `_fields`."""
    _fields: Tuple[str, ...] = ()

    loc: Optional[Dict[str, Any]] = None

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, f) == getattr(other, f) for f in self._fields)

    __hash__ = None

    def __repr__(self) -> str:
        parts = ', '.join(f"{f}={getattr(self, f)!r}" for f in self._fields)
        return f"{type(self).__name__}({parts})"


class Statement(Node):
    pass


class Expression(Node):
    pass


# =================================================================
# Expressions
# =================================================================

class IntegerLiteral(Expression):
    _fields = ('value',)
    def __init__(self, value: int):
        self.value = value


class FloatLiteral(Expression):
    _fields = ('value',)
    def __init__(self, value: float):
        self.value = value


class BooleanLiteral(Expression):
    _fields = ('value',)
    def __init__(self, value: bool):
        self.value = value


class StringLiteral(Expression):
    _fields = ('value',)
    def __init__(self, value: str):
        self.value = value


class ListLiteral(Expression):
    _fields = ('elements',)
    def __init__(self, elements: List[Expression]):
        self.elements = list(elements)


class DictLiteral(Expression):
    """Ordered key/value expression pairs, evaluated left to right."""
    _fields = ('pairs',)
    def __init__(self, pairs: List[Tuple[Expression, Expression]]):
        self.pairs = list(pairs)


class Identifier(Expression):
    _fields = ('name',)
    def __init__(self, name: str):
        self.name = name


class PrefixExpression(Expression):
    _fields = ('operator', 'operand')
    def __init__(self, operator: str, operand: Expression):
        self.operator = operator
        self.operand = operand


class PostfixExpression(Expression):
    """`x++` / `x--`: yields the old value, then updates the target."""
    _fields = ('operator', 'operand')
    def __init__(self, operator: str, operand: Expression):
        self.operator = operator
        self.operand = operand


class InfixExpression(Expression):
    _fields = ('left', 'operator', 'right')
    def __init__(self, left: Expression, operator: str, right: Expression):
        self.left = left
        self.operator = operator
        self.right = right


class IndexExpression(Expression):
    _fields = ('target', 'index')
    def __init__(self, target: Expression, index: Expression):
        self.target = target
        self.index = index


class GroupedExpression(Expression):
    _fields = ('expression',)
    def __init__(self, expression: Expression):
        self.expression = expression


class CallExpression(Expression):
    _fields = ('function', 'arguments')
    def __init__(self, function: Expression, arguments: List[Expression]):
        self.function = function
        self.arguments = list(arguments)


# =================================================================
# Statements
# =================================================================

class ExpressionStatement(Statement):
    _fields = ('expression',)
    def __init__(self, expression: Expression):
        self.expression = expression


class Assignment(Statement):
    """`a = 1` or `a, b = 1, 2`. Arity is checked when evaluated."""
    _fields = ('targets', 'values')
    def __init__(self, targets: List[Expression], values: List[Expression]):
        self.targets = list(targets)
        self.values = list(values)


class CompoundAssignment(Statement):
    """`x += 1` and friends. `operator` is the arithmetic operator (`+`, not `+=`)."""
    _fields = ('target', 'operator', 'value')
    def __init__(self, target: Expression, operator: str, value: Expression):
        self.target = target
        self.operator = operator
        self.value = value


class IfStatement(Statement):
    """An if/otherwise chain: condition/body pairs in source order plus an optional else body."""
    _fields = ('branches', 'else_body')
    def __init__(self, branches: List[Tuple[Expression, List[Statement]]],
                 else_body: Optional[List[Statement]] = None):
        self.branches = list(branches)
        self.else_body = else_body


class WhileStatement(Statement):
    _fields = ('condition', 'body')
    def __init__(self, condition: Expression, body: List[Statement]):
        self.condition = condition
        self.body = list(body)


class ForStatement(Statement):
    _fields = ('variable', 'iterable', 'body')
    def __init__(self, variable: str, iterable: Expression, body: List[Statement]):
        self.variable = variable
        self.iterable = iterable
        self.body = list(body)


class ReturnStatement(Statement):
    _fields = ('value',)
    def __init__(self, value: Optional[Expression] = None):
        self.value = value


class Program(Node):
    _fields = ('statements',)
    def __init__(self, statements: Optional[List[Statement]] = None):
        self.statements = list(statements or [])
