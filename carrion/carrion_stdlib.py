"""
Python implementations of the Carrion built-in functions.
"""
import inspect

from carrion.carrion_datatypes import (
    ArityMismatch, CarrionDict, IndexOutOfBounds, TypeMismatch, is_integer, type_name,
)
from carrion.carrion_printer import Printer


def builtin(min_args: int, max_args=None):
    """Marks a StdLib method as a built-in taking `min_args`..`max_args` arguments (None: no limit)."""
    def decorate(func):
        func._carrion_arity = (min_args, max_args)
        return func
    return decorate


def _describe_arity(min_args, max_args) -> str:
    if max_args is None:
        return f"at least {min_args}"
    if min_args == max_args:
        return f"exactly {min_args}"
    return f"{min_args} to {max_args}"


class StdLib:
    """Contains Python implementations for all Carrion built-ins."""

    def __init__(self, evaluator=None):
        self.evaluator = evaluator
        self.printer = Printer()
        self.builtins = {}
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and hasattr(member, '_carrion_arity'):
                self.builtins[name[1:]] = member

    def call(self, name: str, args: list):
        func = self.builtins[name]
        min_args, max_args = func._carrion_arity
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            raise ArityMismatch(
                f"{name}() takes {_describe_arity(min_args, max_args)} argument(s), got {len(args)}")
        return func(*args)

    @staticmethod
    def _require(name, value, *kinds):
        if type_name(value) not in kinds:
            raise TypeMismatch(f"{name}() expects {' or '.join(kinds)}, got {type_name(value)}")

    # --- Output ---
    @builtin(0)
    def _print(self, *values):
        message = " ".join(self.printer.display(v) for v in values)
        if self.evaluator is not None:
            self.evaluator.side_effects.append({'topics': ['stdout'], 'message': message})
        return None

    # --- Introspection ---
    @builtin(1, 1)
    def _len(self, value):
        self._require('len', value, 'List', 'Dict', 'String')
        return len(value)

    @builtin(1, 1)
    def _type(self, value):
        return type_name(value)

    # --- Lists (mutate in place) ---
    @builtin(2)
    def _push(self, target, *values):
        self._require('push', target, 'List')
        target.extend(values)
        return target

    @builtin(1, 2)
    def _pop(self, target, index=None):
        self._require('pop', target, 'List')
        if not target:
            raise IndexOutOfBounds("pop from empty List")
        if index is None:
            return target.pop()
        if not is_integer(index):
            raise TypeMismatch(f"pop() index must be an Integer, got {type_name(index)}")
        if index < 0 or index >= len(target):
            raise IndexOutOfBounds(f"pop index {index} out of bounds for List of length {len(target)}")
        return target.pop(index)

    # --- Dicts ---
    @builtin(1, 1)
    def _keys(self, mapping: CarrionDict):
        self._require('keys', mapping, 'Dict')
        return list(mapping.keys())

    @builtin(1, 1)
    def _values(self, mapping: CarrionDict):
        self._require('values', mapping, 'Dict')
        return list(mapping.values())


BUILTIN_NAMES = frozenset(
    name[1:] for name, member in inspect.getmembers(StdLib) if hasattr(member, '_carrion_arity'))
