"""
The tree-walking evaluator.

`Evaluator.run` executes a Program statement by statement against an
Environment. A runtime error in one top-level statement is recorded and
evaluation carries on with the next one; a `return` stops the program and
becomes its value.
"""
import math
import operator
import os
import sys
from typing import Any, List, Optional, Tuple

from carrion.carrion_ast import (
    Assignment, BooleanLiteral, CallExpression, CompoundAssignment, DictLiteral,
    ExpressionStatement, FloatLiteral, ForStatement, GroupedExpression, Identifier,
    IfStatement, IndexExpression, InfixExpression, IntegerLiteral, ListLiteral, Node,
    PostfixExpression, PrefixExpression, Program, ReturnStatement, StringLiteral,
    WhileStatement,
)
from carrion.carrion_config import InterpreterConfig
from carrion.carrion_datatypes import (
    INT_MAX, INT_MIN, ArityMismatch, CarrionDict, CarrionRuntimeError, DivisionByZero,
    Environment, IndexOutOfBounds, KeyNotFound, LoopLimitExceeded, NestingTooDeep,
    NumericOverflow, ReturnValue, TypeMismatch, UndefinedIdentifier, is_integer, is_number,
    is_truthy, type_name, values_equal,
)
from carrion.carrion_printer import Printer
from carrion.carrion_stdlib import BUILTIN_NAMES, StdLib

COMPARISONS = {
    '<': operator.lt,
    '>': operator.gt,
    '<=': operator.le,
    '>=': operator.ge,
}


def is_return(x) -> bool:
    return isinstance(x, ReturnValue)


def unwrap_return(x):
    return x.value if is_return(x) else x


def check_integer(value: int) -> int:
    if value < INT_MIN or value > INT_MAX:
        raise NumericOverflow("Integer result out of 64-bit range")
    return value


class _NameTarget:
    """An assignable variable name."""
    def __init__(self, env: Environment, name: str):
        self.env = env
        self.name = name

    def get(self):
        owner = self.env.find_owner(self.name)
        if owner is None:
            raise UndefinedIdentifier(f"identifier not found: {self.name}")
        return owner.bindings[self.name]

    def set(self, value):
        self.env.assign(self.name, value)


class _SlotTarget:
    """An element of a List or an entry of a Dict. List bounds are rechecked before writing."""
    def __init__(self, container, key):
        self.container = container
        self.key = key

    def get(self):
        try:
            return self.container[self.key]
        except KeyError:
            raise KeyNotFound(f"key not found: {Printer().pformat(self.key)}") from None

    def check(self):
        if isinstance(self.container, list):
            Evaluator._check_sequence_index(self.container, self.key)

    def set(self, value):
        self.check()
        self.container[self.key] = value


class Evaluator:
    """The Carrion execution engine."""

    def __init__(self, config: Optional[InterpreterConfig] = None):
        self.config = config or InterpreterConfig()
        self.side_effects: List[Any] = []
        self.call_stack = []
        self.current_node = None
        self.stdlib = StdLib(self)

    def _push_frame(self, name, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'args': args,
            'call_site': getattr(call_site_node, 'loc', None),
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if self.config.debug or os.environ.get("CARRION_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def eval(self, node: Node, env: Environment) -> Any:
        """Public entry point for evaluating a single node. Unwraps `return`."""
        self.current_node = node
        return unwrap_return(self._eval(node, env))

    def run(self, program: Program, env: Environment) -> Tuple[Any, List[CarrionRuntimeError]]:
        """Evaluate every top-level statement, collecting runtime errors instead of stopping."""
        value = None
        errors: List[CarrionRuntimeError] = []
        for stmt in program.statements:
            self.call_stack.clear()
            try:
                result = self._eval(stmt, env)
            except CarrionRuntimeError as e:
                e.call_stack = list(self.call_stack)
                errors.append(e)
                self._dbg("error", e.kind, e.message, "at", e.line, e.col)
                value = None
                continue
            except RecursionError:
                err = NestingTooDeep("expression nested too deeply to evaluate").at(stmt.loc)
                errors.append(err)
                self._dbg("error", err.kind, "at", err.line, err.col)
                value = None
                continue
            if is_return(result):
                self._dbg("return", type_name(result.value))
                return result.value, errors
            value = result
        return value, errors

    def _eval(self, node: Node, env: Environment) -> Any:
        """Recursive dispatcher. Tags runtime errors with the innermost failing node's location."""
        self.current_node = node
        try:
            return self._eval_node(node, env)
        except CarrionRuntimeError as e:
            raise e.at(node.loc)

    def _eval_node(self, node: Node, env: Environment) -> Any:
        match node:
            case Program():
                return self._eval_block(node.statements, env)
            case ExpressionStatement():
                return self._eval(node.expression, env)
            case IntegerLiteral() | FloatLiteral() | BooleanLiteral() | StringLiteral():
                return node.value
            case ListLiteral():
                return [self._eval(element, env) for element in node.elements]
            case DictLiteral():
                result = CarrionDict()
                for key_node, value_node in node.pairs:
                    key = self._eval(key_node, env)
                    result[key] = self._eval(value_node, env)
                return result
            case Identifier():
                return self._lookup(node.name, env)
            case GroupedExpression():
                return self._eval(node.expression, env)
            case PrefixExpression():
                return self._eval_prefix(node, env)
            case PostfixExpression():
                target = self._resolve_target(node.operand, env)
                old = target.get()
                target.set(self._step_value(old, node.operator))
                return old
            case InfixExpression():
                return self._eval_infix(node, env)
            case IndexExpression():
                container = self._eval(node.target, env)
                return self._index(container, self._eval(node.index, env))
            case CallExpression():
                return self._eval_call(node, env)
            case Assignment():
                self._eval_assignment(node, env)
                return None
            case CompoundAssignment():
                target = self._resolve_target(node.target, env)
                current = target.get()
                value = self._eval(node.value, env)
                target.set(self.binary_op(current, node.operator, value))
                return None
            case IfStatement():
                for condition, body in node.branches:
                    if is_truthy(self._eval(condition, env)):
                        return self._eval_block(body, env.child())
                if node.else_body is not None:
                    return self._eval_block(node.else_body, env.child())
                return None
            case WhileStatement():
                return self._eval_while(node, env)
            case ForStatement():
                return self._eval_for(node, env)
            case ReturnStatement():
                value = None if node.value is None else self._eval(node.value, env)
                return ReturnValue(value)
        raise TypeMismatch(f"cannot evaluate {type(node).__name__}")

    def _eval_block(self, statements, env: Environment) -> Any:
        result = None
        for stmt in statements:
            result = self._eval(stmt, env)
            if is_return(result):
                return result
        return result

    # --- names and targets ---

    def _lookup(self, name: str, env: Environment) -> Any:
        owner = env.find_owner(name)
        if owner is not None:
            return owner.bindings[name]
        if name in BUILTIN_NAMES:
            raise TypeMismatch(f"built-in function '{name}' can only be called")
        raise UndefinedIdentifier(f"identifier not found: {name}")

    @staticmethod
    def _check_bindable(name: str):
        if name in BUILTIN_NAMES:
            raise TypeMismatch(f"cannot assign to built-in function '{name}'")

    def _resolve_target(self, node: Node, env: Environment):
        """Evaluate the parts of an assignment target and check it can be written."""
        if isinstance(node, Identifier):
            self._check_bindable(node.name)
            return _NameTarget(env, node.name)
        if isinstance(node, IndexExpression):
            container = self._eval(node.target, env)
            key = self._eval(node.index, env)
            if isinstance(container, list):
                self._check_sequence_index(container, key)
            elif isinstance(container, CarrionDict):
                CarrionDict.hash_key(key)
            else:
                raise TypeMismatch(f"{type_name(container)} does not support item assignment")
            return _SlotTarget(container, key)
        raise TypeMismatch(f"cannot assign to {type(node).__name__}")

    def _eval_assignment(self, node: Assignment, env: Environment):
        values = [self._eval(v, env) for v in node.values]
        count = len(node.targets)
        if count > 1 and len(values) == 1 and isinstance(values[0], list):
            values = list(values[0])
        if len(values) != count:
            raise ArityMismatch(f"cannot assign {len(values)} value(s) to {count} target(s)")
        # Nothing is written until every target has been checked
        targets = [self._resolve_target(t, env) for t in node.targets]
        # Later index expressions may have shrunk an earlier target's List
        for target in targets:
            if isinstance(target, _SlotTarget):
                target.check()
        for target, value in zip(targets, values):
            target.set(value)

    # --- operators ---

    @staticmethod
    def _step_value(value, op: str):
        if not is_number(value):
            raise TypeMismatch(f"unsupported operand for {op}: {type_name(value)}")
        return Evaluator.arithmetic(value, '+' if op == '++' else '-', 1)

    def _eval_prefix(self, node: PrefixExpression, env: Environment) -> Any:
        op = node.operator
        if op in ('++', '--'):
            target = self._resolve_target(node.operand, env)
            new = self._step_value(target.get(), op)
            target.set(new)
            return new
        value = self._eval(node.operand, env)
        if op == 'not':
            return not is_truthy(value)
        if is_integer(value):
            return check_integer(-value)
        if isinstance(value, float):
            return -value
        raise TypeMismatch(f"unsupported operand for unary -: {type_name(value)}")

    def _eval_infix(self, node: InfixExpression, env: Environment) -> Any:
        # Walk the left spine iteratively: `a + b + c + ...` nests to the left
        chain = []
        while isinstance(node, InfixExpression):
            chain.append(node)
            node = node.left
        left = self._eval(node, env)
        for infix in reversed(chain):
            self.current_node = infix
            try:
                left = self._apply_infix(left, infix, env)
            except CarrionRuntimeError as e:
                raise e.at(infix.loc)
        return left

    def _apply_infix(self, left, node: InfixExpression, env: Environment) -> Any:
        op = node.operator
        if op == 'and':
            return self._eval(node.right, env) if is_truthy(left) else left
        if op == 'or':
            return left if is_truthy(left) else self._eval(node.right, env)
        right = self._eval(node.right, env)
        return self.binary_op(left, op, right)

    @classmethod
    def binary_op(cls, left, op: str, right):
        match op:
            case '==':
                return values_equal(left, right)
            case '!=':
                return not values_equal(left, right)
            case '<' | '>' | '<=' | '>=':
                both_numbers = is_number(left) and is_number(right)
                if both_numbers or (isinstance(left, str) and isinstance(right, str)):
                    return COMPARISONS[op](left, right)
            case '+' if isinstance(left, str) and isinstance(right, str):
                return left + right
            case '+' if isinstance(left, list) and isinstance(right, list):
                return left + right
            case _ if is_number(left) and is_number(right):
                return cls.arithmetic(left, op, right)
        raise TypeMismatch(f"unsupported operand types for {op}: {type_name(left)} and {type_name(right)}")

    @classmethod
    def arithmetic(cls, left, op: str, right):
        """Numeric `+ - * / % **`. Two Integers stay Integer except for negative powers."""
        if is_integer(left) and is_integer(right):
            if op == '**' and right < 0:
                return cls._float_arithmetic(float(left), op, float(right))
            return check_integer(cls._integer_arithmetic(left, op, right))
        return cls._float_arithmetic(float(left), op, float(right))

    @staticmethod
    def _integer_arithmetic(left: int, op: str, right: int) -> int:
        match op:
            case '+':
                return left + right
            case '-':
                return left - right
            case '*':
                return left * right
            case '/' | '%':
                if right == 0:
                    raise DivisionByZero("division by zero" if op == '/' else "modulo by zero")
                # Truncate toward zero; the remainder takes the dividend's sign
                quotient = abs(left) // abs(right)
                if (left < 0) != (right < 0):
                    quotient = -quotient
                return quotient if op == '/' else left - right * quotient
            case '**':
                if right and (abs(left).bit_length() - 1) * right >= 64:
                    raise NumericOverflow("Integer result out of 64-bit range")
                return left ** right
        raise TypeMismatch(f"unknown operator {op}")

    @staticmethod
    def _float_arithmetic(left: float, op: str, right: float) -> float:
        try:
            match op:
                case '+':
                    return left + right
                case '-':
                    return left - right
                case '*':
                    return left * right
                case '/':
                    if right == 0:
                        raise DivisionByZero("division by zero")
                    return left / right
                case '%':
                    if right == 0:
                        raise DivisionByZero("modulo by zero")
                    return math.fmod(left, right)
                case '**':
                    if left == 0 and right < 0:
                        raise DivisionByZero("zero raised to a negative power")
                    if left < 0 and not right.is_integer() and math.isfinite(right):
                        raise TypeMismatch("negative number raised to a fractional power")
                    return left ** right
        except OverflowError:
            raise NumericOverflow("Float result out of range") from None
        raise TypeMismatch(f"unknown operator {op}")

    # --- collections ---

    @staticmethod
    def _check_sequence_index(sequence, index):
        if not is_integer(index):
            raise TypeMismatch(f"{type_name(sequence)} index must be an Integer, got {type_name(index)}")
        if index < 0 or index >= len(sequence):
            raise IndexOutOfBounds(
                f"index {index} out of bounds for {type_name(sequence)} of length {len(sequence)}")

    def _index(self, container, key):
        if isinstance(container, (list, str)):
            self._check_sequence_index(container, key)
            return container[key]
        if isinstance(container, CarrionDict):
            try:
                return container[key]
            except KeyError:
                raise KeyNotFound(f"key not found: {Printer().pformat(key)}") from None
        raise TypeMismatch(f"{type_name(container)} is not indexable")

    # --- calls ---

    def _eval_call(self, node: CallExpression, env: Environment) -> Any:
        if not isinstance(node.function, Identifier):
            callee = self._eval(node.function, env)
            raise TypeMismatch(f"{type_name(callee)} is not callable")
        name = node.function.name
        if name not in self.stdlib.builtins:
            owner = env.find_owner(name)
            if owner is not None:
                raise TypeMismatch(f"{type_name(owner.bindings[name])} is not callable")
            raise UndefinedIdentifier(f"function not found: {name}")
        args = [self._eval(arg, env) for arg in node.arguments]
        self._push_frame(name, args, node)
        result = self.stdlib.call(name, args)
        self._pop_frame()
        return result

    # --- loops ---

    def _eval_while(self, node: WhileStatement, env: Environment) -> Any:
        limit = self.config.max_loop_iterations
        iterations = 0
        while is_truthy(self._eval(node.condition, env)):
            iterations += 1
            if iterations > limit:
                raise LoopLimitExceeded(f"loop exceeded {limit} iterations")
            result = self._eval_block(node.body, env.child())
            if is_return(result):
                return result
        return None

    def _eval_for(self, node: ForStatement, env: Environment) -> Any:
        self._check_bindable(node.variable)
        iterable = self._eval(node.iterable, env)
        if isinstance(iterable, (list, str)):
            items = list(iterable)
        elif isinstance(iterable, CarrionDict):
            items = list(iterable.keys())
        else:
            raise TypeMismatch(f"cannot iterate over {type_name(iterable)}")
        limit = self.config.max_loop_iterations
        for count, item in enumerate(items, 1):
            if count > limit:
                raise LoopLimitExceeded(f"loop exceeded {limit} iterations")
            scope = env.child()
            scope.define(node.variable, item)
            result = self._eval_block(node.body, scope)
            if is_return(result):
                return result
        return None


def evaluate(program: Program, environment: Optional[Environment] = None,
             config: Optional[InterpreterConfig] = None,
             evaluator: Optional[Evaluator] = None) -> Tuple[Any, List[CarrionRuntimeError]]:
    """Run `program` against `environment`, returning its value and the runtime errors raised."""
    evaluator = evaluator or Evaluator(config)
    return evaluator.run(program, environment if environment is not None else Environment())
