import importlib.util
import sys
from pathlib import Path
import uuid

import pytest


def _load_repl_module():
    """Dynamically load the top-level carrion_repl.py as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "carrion_repl.py"
    mod_name = f"carrion_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod


def _feed(monkeypatch, repl, lines):
    it = iter(lines)
    prompts = []

    def fake_read_line(prompt: str) -> str:
        prompts.append(prompt)
        return next(it)
    monkeypatch.setattr(repl, "read_line", fake_read_line)
    monkeypatch.setattr(sys, "argv", ["carrion_repl.py"])
    return prompts


def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["exit"])

    repl.main()
    out = capsys.readouterr().out
    assert "Carrion REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out


def test_repl_prints_side_effects_and_values(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [
        'print("hello from carrion")',
        "1 + 2",
        "x = 5",
        "exit",
    ])

    repl.main()
    out, err = capsys.readouterr()
    assert "hello from carrion" in out
    assert "\n3\n" in out
    assert err == ""


def test_repl_keeps_bindings_between_lines(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["xs = [1, 2]", 'push(xs, "three")', "exit"])

    repl.main()
    out = capsys.readouterr().out
    assert '[1, 2, "three"]' in out


def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ['1 + "a"', "exit"])

    repl.main()
    out, err = capsys.readouterr()
    assert "Carrion REPL v0.1" in out
    assert "TypeMismatch: unsupported operand types for +" in err


def test_repl_eof_quits(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [""])

    repl.main()
    assert "Exiting." in capsys.readouterr().out


def test_repl_multiline_block(monkeypatch, capsys):
    repl = _load_repl_module()
    prompts = _feed(monkeypatch, repl, [
        "x = 0",
        "if x == 0:",
        "    x = 5",
        "    print(\"in block\")",
        "",
        "x",
        "exit",
    ])

    repl.main()
    out = capsys.readouterr().out
    assert "in block" in out
    assert "\n5\n" in out
    assert prompts.count(".. ") == 3


def test_run_script_file(tmp_path, monkeypatch, capsys):
    repl = _load_repl_module()
    script = tmp_path / "demo.carrion"
    script.write_text('total = 0\nfor n in [1, 2, 3]:\n    total += n\nprint("total", total)\nreturn total * 2\n',
                      encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["carrion_repl.py", str(script)])

    repl.main()
    out = capsys.readouterr().out
    assert out == "total 6\n12\n"


def test_run_script_file_error_exits_nonzero(tmp_path, monkeypatch, capsys):
    repl = _load_repl_module()
    script = tmp_path / "bad.carrion"
    script.write_text('print("start")\nx = [1][9]\n', encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["carrion_repl.py", str(script)])

    with pytest.raises(SystemExit) as exc:
        repl.main()
    assert exc.value.code == 1
    out, err = capsys.readouterr()
    assert "start" in out
    assert "IndexOutOfBounds" in err


def test_run_missing_file(tmp_path, capsys):
    repl = _load_repl_module()
    with pytest.raises(SystemExit):
        repl.run_script_file(str(tmp_path / "missing.carrion"))
    assert "file not found" in capsys.readouterr().err
