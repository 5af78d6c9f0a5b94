"""
A pretty-printer for Carrion values.
"""
import math
from decimal import Decimal

from carrion.carrion_datatypes import CarrionDict

STRING_ESCAPES = {'\\': '\\\\', '"': '\\"', '\n': '\\n', '\t': '\\t'}


class Printer:
    """Formats Carrion values as Carrion source that parses back to an equal value."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format an object."""
        return self._format(obj, set())

    def display(self, obj) -> str:
        """Text written by `print`: like `pformat`, but a top-level String is shown raw."""
        if isinstance(obj, str):
            return obj
        return self.pformat(obj)

    def _format(self, obj, active: set) -> str:
        handler = self._handlers.get(type(obj))
        if handler is None:
            if isinstance(obj, CarrionDict):
                handler = self._pformat_dict
            elif isinstance(obj, list):
                handler = self._pformat_list
            else:
                return repr(obj)
        return handler(obj, active)

    def _create_handlers(self):
        return {
            type(None): self._pformat_none,
            bool: self._pformat_bool,
            int: self._pformat_int,
            float: self._pformat_float,
            str: self._pformat_str,
            list: self._pformat_list,
            CarrionDict: self._pformat_dict,
        }

    def _pformat_none(self, obj, active):
        return "None"

    def _pformat_bool(self, obj, active):
        return "True" if obj else "False"

    def _pformat_int(self, obj, active):
        return str(obj)

    def _pformat_float(self, obj, active):
        if math.isnan(obj) or math.isinf(obj):
            return repr(obj)
        # Carrion literals have no exponent syntax
        text = format(Decimal(repr(obj)), 'f')
        if '.' not in text:
            text += '.0'
        return text

    def _pformat_str(self, obj, active):
        return '"' + ''.join(STRING_ESCAPES.get(ch, ch) for ch in obj) + '"'

    def _pformat_list(self, obj, active):
        if id(obj) in active:
            return "[...]"
        active.add(id(obj))
        try:
            return "[" + ", ".join(self._format(item, active) for item in obj) + "]"
        finally:
            active.discard(id(obj))

    def _pformat_dict(self, obj, active):
        if id(obj) in active:
            return "{...}"
        active.add(id(obj))
        try:
            items = (f"{self._format(k, active)}: {self._format(v, active)}" for k, v in obj.items())
            return "{" + ", ".join(items) + "}"
        finally:
            active.discard(id(obj))
