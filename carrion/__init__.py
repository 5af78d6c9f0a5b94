"""Carrion: lexer, Pratt parser and tree-walking evaluator for the Carrion scripting language."""
from carrion.carrion_config import InterpreterConfig
from carrion.carrion_datatypes import (
    ArityMismatch, CarrionDict, CarrionError, CarrionRuntimeError, DivisionByZero, Environment,
    IndexOutOfBounds, KeyNotFound, LexError, LoopLimitExceeded, NestingTooDeep, NumericOverflow,
    ParseError, ParseLimitExceeded, TypeMismatch, UndefinedIdentifier,
)
from carrion.carrion_interpreter import Evaluator, evaluate
from carrion.carrion_lexer import Token, TokenType, tokenize
from carrion.carrion_parser import parse
from carrion.carrion_printer import Printer
from carrion.carrion_runtime import ExecutionResult, ScriptRunner
