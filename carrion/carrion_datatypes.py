"""
Defines the core runtime types for the Carrion language.

Values are carried as native Python objects (int, float, bool, str, list)
plus the `CarrionDict` mapping defined here. This module also holds the
scope chain (`Environment`), the control-flow `ReturnValue` wrapper and the
error taxonomy shared by the lexer, parser and evaluator.
"""

import collections.abc
from typing import Any, Dict, Iterator, Optional, Tuple

INT_MIN = -2 ** 63
INT_MAX = 2 ** 63 - 1


# =================================================================
# Errors
# =================================================================

class CarrionError(Exception):
    """Base class for every diagnostic the core produces.

    Carries a message and an optional 1-based source position. Positions
    are filled in late by whoever knows the offending node.
    """
    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col
        # Evaluator frames active when a runtime error was raised
        self.call_stack: list = []

    def at(self, loc: Optional[Dict[str, Any]]) -> 'CarrionError':
        """Attach a location dict (`{'line': .., 'col': ..}`) unless one is already set."""
        if self.line is None and loc:
            self.line = loc.get('line')
            self.col = loc.get('col')
        return self

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"{self.kind}({self.message!r}, line={self.line}, col={self.col})"


class LexError(CarrionError):
    """Invalid indentation, unterminated literal or stray character."""


class ParseError(CarrionError):
    """Unexpected token or malformed construct."""


class ParseLimitExceeded(ParseError):
    """Nesting depth or step ceiling reached. Parsing stops."""


class CarrionRuntimeError(CarrionError):
    """Base class for errors raised while evaluating a program."""


class TypeMismatch(CarrionRuntimeError):
    pass


class UndefinedIdentifier(CarrionRuntimeError):
    pass


class IndexOutOfBounds(CarrionRuntimeError):
    pass


class KeyNotFound(CarrionRuntimeError):
    pass


class DivisionByZero(CarrionRuntimeError):
    pass


class ArityMismatch(CarrionRuntimeError):
    pass


class NumericOverflow(CarrionRuntimeError):
    pass


class LoopLimitExceeded(CarrionRuntimeError):
    pass


class NestingTooDeep(CarrionRuntimeError):
    pass


# =================================================================
# Values
# =================================================================

def is_integer(value: Any) -> bool:
    # bool is a subclass of int, so check it first
    return isinstance(value, int) and not isinstance(value, bool)


def is_number(value: Any) -> bool:
    return is_integer(value) or isinstance(value, float)


def type_name(value: Any) -> str:
    """Name of a value's kind as reported by the `type` built-in."""
    if value is None: return 'None'
    if isinstance(value, bool): return 'Boolean'
    if is_integer(value): return 'Integer'
    if isinstance(value, float): return 'Float'
    if isinstance(value, str): return 'String'
    if isinstance(value, list): return 'List'
    if isinstance(value, CarrionDict): return 'Dict'
    return type(value).__name__


def is_truthy(value: Any) -> bool:
    """Only `False` and the unit value are falsy. `0`, `""` and `[]` are truthy."""
    return not (value is False or value is None)


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality across all value kinds.

    Integers and Floats compare numerically. Any other pair of different
    kinds is unequal, including Boolean against a number.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, list) and isinstance(b, list):
        if a is b:
            return True
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, CarrionDict) and isinstance(b, CarrionDict):
        if a is b:
            return True
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b or not values_equal(value, b[key]):
                return False
        return True
    return a is None and b is None


class CarrionDict(collections.abc.MutableMapping):
    """Insertion-ordered mapping keyed by value equality.

    Keys are restricted to Integer, Float, Boolean and String. Keys are
    normalised so `1` and `1.0` address the same entry while `True` and `1`
    stay distinct, matching `values_equal`.
    """

    def __init__(self, pairs=None):
        self._entries: Dict[Tuple[str, Any], Tuple[Any, Any]] = {}
        for key, value in (pairs or []):
            self[key] = value

    @staticmethod
    def hash_key(key: Any) -> Tuple[str, Any]:
        if isinstance(key, bool):
            return ('boolean', key)
        if is_number(key):
            return ('number', key)
        if isinstance(key, str):
            return ('string', key)
        raise TypeMismatch(f"unhashable Dict key of type {type_name(key)}")

    def __getitem__(self, key: Any) -> Any:
        try:
            return self._entries[self.hash_key(key)][1]
        except KeyError:
            raise KeyError(key) from None

    def __setitem__(self, key: Any, value: Any):
        hk = self.hash_key(key)
        existing = self._entries.get(hk)
        # The first spelling of a key wins, like a Python dict.
        self._entries[hk] = (existing[0] if existing else key, value)

    def __delitem__(self, key: Any):
        try:
            del self._entries[self.hash_key(key)]
        except KeyError:
            raise KeyError(key) from None

    def __contains__(self, key: Any) -> bool:
        try:
            return self.hash_key(key) in self._entries
        except TypeMismatch:
            return False

    def __iter__(self) -> Iterator[Any]:
        for key, _ in list(self._entries.values()):
            yield key

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other):
        if not isinstance(other, CarrionDict):
            return NotImplemented
        return values_equal(self, other)

    __hash__ = None

    def __repr__(self) -> str:
        from carrion.carrion_printer import Printer
        return Printer().pformat(self)


class ReturnValue:
    """Control-flow wrapper produced by `return`, unwrapped at the program boundary."""
    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"ReturnValue({self.value!r})"

    def __eq__(self, other):
        if not isinstance(other, ReturnValue):
            return NotImplemented
        return values_equal(self.value, other.value)


# =================================================================
# Scopes
# =================================================================

class Environment:
    """A lexical scope: name bindings plus an optional enclosing scope.

    Lookup walks outward from the innermost scope. `assign` rebinds the name
    in the scope that already owns it, otherwise binds locally. Block bodies
    get a fresh `child()` that is simply dropped when the block ends.
    """
    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def find_owner(self, name: str) -> Optional['Environment']:
        """Finds the scope in the chain (self -> parent -> ...) that binds `name`."""
        scope = self
        while scope is not None:
            if name in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def __getitem__(self, name: str) -> Any:
        owner = self.find_owner(name)
        if owner is None:
            raise KeyError(name)
        return owner.bindings[name]

    def __setitem__(self, name: str, value: Any):
        self.define(name, value)

    def __contains__(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def get(self, name: str, default: Any = None) -> Any:
        owner = self.find_owner(name)
        if owner is None:
            return default
        return owner.bindings[name]

    def define(self, name: str, value: Any):
        """Binds `name` in this scope, shadowing any outer binding."""
        self.bindings[name] = value

    def assign(self, name: str, value: Any):
        owner = self.find_owner(name) or self
        owner.bindings[name] = value

    def child(self) -> 'Environment':
        return Environment(parent=self)

    def keys(self) -> collections.abc.KeysView:
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Environment bindings=[{keys}]{parent_id}>"
