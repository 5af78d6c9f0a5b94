"""
Interpreter limits and switches.

Settings come from, lowest priority first: the dataclass defaults, a YAML or
JSON file, `CARRION_*` environment variables, and explicit overrides.
"""
from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

# Environment variable -> field name
ENV_VARS = {
    "CARRION_MAX_PARSE_DEPTH": "max_parse_depth",
    "CARRION_MAX_PARSE_STEPS": "max_parse_steps",
    "CARRION_MAX_LOOP_ITERS": "max_loop_iterations",
    "CARRION_MAX_INDENT_DEPTH": "max_indent_depth",
    "CARRION_DEBUG": "debug",
}

CONFIG_FILE_VAR = "CARRION_CONFIG"

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"", "0", "false", "no", "off"}


def _coerce(name: str, raw: Any, target_type: type) -> Any:
    if target_type is bool:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"{name}: expected a boolean, got {raw!r}")
    if isinstance(raw, bool):
        raise ValueError(f"{name}: expected an integer, got {raw!r}")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name}: expected an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name}: must be positive, got {value}")
    return value


def detect_format(path: Path, text: str) -> str:
    """'json' or 'yaml', by file extension first and then by content."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    stripped = text.lstrip()
    if stripped.startswith("{"):
        return "json"
    return "yaml"


@dataclass(frozen=True)
class InterpreterConfig:
    """Production limits for the lexer, parser and evaluator."""
    max_parse_depth: int = 128
    max_parse_steps: int = 200_000
    max_loop_iterations: int = 1_000_000
    max_indent_depth: int = 50
    debug: bool = False

    @classmethod
    def field_types(cls) -> dict:
        return {f.name: (bool if f.name == "debug" else int) for f in dataclasses.fields(cls)}

    def merged(self, data: Mapping[str, Any]) -> 'InterpreterConfig':
        """Returns a copy with `data` applied on top. Unknown keys are rejected."""
        types = self.field_types()
        updates = {}
        for key, raw in data.items():
            name = str(key).replace("-", "_")
            if name not in types:
                raise ValueError(f"unknown config setting: {key!r}")
            updates[name] = _coerce(name, raw, types[name])
        return dataclasses.replace(self, **updates)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'InterpreterConfig':
        return cls().merged(data)

    @classmethod
    def from_file(cls, path: str | os.PathLike, base: Optional['InterpreterConfig'] = None) -> 'InterpreterConfig':
        p = Path(path)
        text = p.read_text(encoding="utf-8")
        if detect_format(p, text) == "json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"{p}: config must be a mapping, got {type(data).__name__}")
        return (base or cls()).merged(data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 base: Optional['InterpreterConfig'] = None) -> 'InterpreterConfig':
        env = os.environ if environ is None else environ
        data = {field: env[var] for var, field in ENV_VARS.items() if var in env}
        return (base or cls()).merged(data)

    @classmethod
    def load(cls, path: str | os.PathLike | None = None,
             environ: Optional[Mapping[str, str]] = None) -> 'InterpreterConfig':
        """Defaults, then the config file (`path` or $CARRION_CONFIG), then the environment."""
        env = os.environ if environ is None else environ
        config = cls()
        config_path = path or env.get(CONFIG_FILE_VAR)
        if config_path:
            config = cls.from_file(config_path, base=config)
        return cls.from_env(env, base=config)
