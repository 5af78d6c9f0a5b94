"""
Script execution: runs source text through the lexer, parser and evaluator
and packages the outcome, diagnostics and side effects into an ExecutionResult.
"""
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from carrion.carrion_config import InterpreterConfig
from carrion.carrion_datatypes import CarrionDict, CarrionError, Environment, LexError
from carrion.carrion_interpreter import Evaluator
from carrion.carrion_lexer import tokenize
from carrion.carrion_parser import parse
from carrion.carrion_printer import Printer

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    errors: List[CarrionError] = field(default_factory=list)
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")

        # Add a location prefix unless the message already carries one
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if f"(line {line}" not in msg:
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Tokenizes, parses, and executes Carrion code.

    Bindings made by one script stay in `environment` and are visible to the
    next `handle_script` call on the same runner.
    """

    def __init__(self, config: Optional[InterpreterConfig] = None,
                 environment: Optional[Environment] = None):
        self.config = config or InterpreterConfig.load()
        self.environment = environment if environment is not None else Environment()
        self.evaluator = Evaluator(self.config)

    @staticmethod
    def _location(error: CarrionError) -> str:
        if error.col is None:
            return f"line {error.line}"
        return f"line {error.line}, col {error.col}"

    def _source_context(self, source: str, error: CarrionError, before: int = 2) -> str:
        """The offending line, the lines leading up to it and a caret under the column."""
        lines = source.splitlines()
        if not 1 <= error.line <= len(lines):
            return ""
        numbers = range(max(1, error.line - before), error.line + 1)
        width = len(str(error.line))
        out = [f"{'>' if n == error.line else ' '} {n:>{width}} | {lines[n - 1]}" for n in numbers]
        if error.col is not None:
            out.append(f"  {'':>{width}} | {' ' * max(error.col - 1, 0)}^")
        return "\n".join(out)

    def _format_stacktrace(self, stack) -> str:
        if not stack:
            return ""
        pf = Printer().pformat

        def fmt(arg):
            match arg:
                case list():
                    return f"<List len={len(arg)}>"
                case str() if len(arg) > 40:
                    return pf(arg[:37] + "...")
            if isinstance(arg, CarrionDict):
                return f"<Dict len={len(arg)}>"
            return pf(arg)

        frames = []
        for frame in stack:
            name = frame.get('name') or '<call>'
            args_s = " ".join(fmt(a) for a in frame.get('args') or [])
            frames.append(f"({name} {args_s})" if args_s else f"({name})")
        return "Carrion stacktrace: " + " ".join(frames)

    def _format_error(self, error: CarrionError, source: str) -> str:
        msg = f"{error.kind}: {error.message}"
        if error.line is not None:
            msg = f"{msg} ({self._location(error)})"
            context = self._source_context(source, error)
            if context:
                msg = f"{msg}\n{context}"
        st = self._format_stacktrace(error.call_stack)
        if st:
            msg += "\n" + st
        return msg

    def _error_result(self, errors: List[CarrionError], source: str, value: Any = None) -> ExecutionResult:
        messages = []
        for error in errors:
            msg = self._format_error(error, source)
            messages.append(msg)
            self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        first = errors[0]
        token = {'line': first.line, 'col': first.col} if first.line is not None else None
        return ExecutionResult(
            status='error',
            value=value,
            error_message="\n".join(messages),
            error_token=token,
            errors=list(errors),
            side_effects=self.evaluator.side_effects,
        )

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        # Each run gets its own effects list; earlier results keep theirs
        self.evaluator.side_effects = []
        self.evaluator.call_stack.clear()
        try:
            # 1. Tokenize
            try:
                tokens = tokenize(source_code, max_indent_depth=self.config.max_indent_depth)
            except LexError as e:
                return self._error_result([e], source_code)

            # 2. Parse. Any diagnostic means the program is not run.
            program, parse_errors = parse(tokens, self.config)
            if parse_errors:
                return self._error_result(parse_errors, source_code)

            # 3. Evaluate
            value, runtime_errors = self.evaluator.run(program, self.environment)
            if runtime_errors:
                return self._error_result(runtime_errors, source_code, value)
            return ExecutionResult(status='success', value=value, side_effects=self.evaluator.side_effects)

        except Exception as e:
            self.evaluator._dbg("internal error", traceback.format_exc())
            msg = f"InternalError: {e}"
            self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(status='error', error_message=msg, side_effects=self.evaluator.side_effects)
