import pytest

from carrion.carrion_ast import ExpressionStatement, IntegerLiteral, PrefixExpression, Program
from carrion.carrion_config import InterpreterConfig
from carrion.carrion_datatypes import (
    ArityMismatch, CarrionDict, DivisionByZero, Environment, IndexOutOfBounds, KeyNotFound,
    LoopLimitExceeded, NestingTooDeep, NumericOverflow, TypeMismatch, UndefinedIdentifier,
)
from carrion.carrion_interpreter import Evaluator, evaluate
from carrion.carrion_lexer import tokenize
from carrion.carrion_parser import parse


def run_carrion(src, env=None, config=None):
    program, errors = parse(tokenize(src))
    assert errors == [], errors
    return evaluate(program, env if env is not None else Environment(), config)


def value_of(src, env=None):
    value, errors = run_carrion(src, env)
    assert errors == [], errors
    return value


def error_of(src, env=None, config=None):
    _, errors = run_carrion(src, env, config)
    assert len(errors) == 1, errors
    return errors[0]


# --- arithmetic ---

@pytest.mark.parametrize("src, expected", [
    ("5 + 2 * 3", 11),
    ("(5 + 2) * 3", 21),
    ("7 / 2", 3),
    ("-7 / 2", -3),
    ("7 / -2", -3),
    ("-7 % 3", -1),
    ("7 % -3", 1),
    ("7.0 / 2", 3.5),
    ("1 + 0.5", 1.5),
    ("7.5 % 2", 1.5),
    ("2 ** 10", 1024),
    ("2 ** -1", 0.5),
    ("2 ** 3 ** 2", 512),
    ("-2 ** 2", 4),
    ("2.0 ** 0.5 * 2.0 ** 0.5 > 1.99", True),
    ("-(3)", -3),
    ("-1.5", -1.5),
])
def test_arithmetic(src, expected):
    result = value_of(src)
    assert result == expected
    assert type(result) is type(expected)


def test_string_and_list_concatenation():
    assert value_of('"ab" + "cd"') == "abcd"
    assert value_of("a = [1]\nb = a + [2]\n[a, b]") == [[1], [1, 2]]


@pytest.mark.parametrize("src, error", [
    ("1 / 0", DivisionByZero),
    ("1 % 0", DivisionByZero),
    ("1.5 / 0", DivisionByZero),
    ("1.5 % 0.0", DivisionByZero),
    ("0.0 ** -1", DivisionByZero),
    ("9223372036854775807 + 1", NumericOverflow),
    ("-9223372036854775808 - 1", NumericOverflow),
    ("-9223372036854775808 / -1", NumericOverflow),
    ("3037000500 * 3037000500", NumericOverflow),
    ("2 ** 64", NumericOverflow),
    ("2 ** 63", NumericOverflow),
    ("10.0 ** 400", NumericOverflow),
    ("(-8.0) ** 0.5", TypeMismatch),
    ('"a" + 1', TypeMismatch),
    ('"a" * 3', TypeMismatch),
    ("[1] - [1]", TypeMismatch),
    ("True + 1", TypeMismatch),
    ('-"a"', TypeMismatch),
])
def test_arithmetic_errors(src, error):
    assert isinstance(error_of(src), error)


def test_largest_power_that_fits():
    assert value_of("2 ** 62") == 2 ** 62
    assert value_of("(-2) ** 63") == -2 ** 63


# --- comparison and logic ---

@pytest.mark.parametrize("src, expected", [
    ("True == (5 < 10)", True),
    ("1 == 1.0", True),
    ("True == 1", False),
    ('"1" == 1', False),
    ("[1, 2] == [1, 2]", True),
    ('{"a": 1} == {"a": 1.0}', True),
    ("1 != 2", True),
    ('"apple" < "banana"', True),
    ("2 >= 2.0", True),
    ("3 <= 2", False),
])
def test_comparisons(src, expected):
    assert value_of(src) is expected


def test_ordering_mixed_kinds_is_a_type_error():
    assert isinstance(error_of('1 < "a"'), TypeMismatch)
    assert isinstance(error_of("[1] < [2]"), TypeMismatch)


def test_and_or_return_the_deciding_operand():
    assert value_of("0 and 5") == 5
    assert value_of('False or "x"') == "x"
    assert value_of("False and 5") is False
    assert value_of("1 or 2") == 1


def test_and_or_short_circuit():
    assert value_of("False and undefined_name") is False
    assert value_of("True or 1 / 0") is True


def test_not_uses_truthiness():
    assert value_of("not 0") is False
    assert value_of('not ""') is False
    assert value_of("not False") is True


# --- increments ---

def test_postfix_yields_old_value():
    assert value_of("x = 5\ny = x++\n[x, y]") == [6, 5]
    assert value_of("x = 5\ny = x--\n[x, y]") == [4, 5]


def test_prefix_yields_new_value():
    assert value_of("x = 5\ny = ++x\n[x, y]") == [6, 6]
    assert value_of("x = 5\ny = --x\n[x, y]") == [4, 4]


def test_increment_list_element():
    assert value_of("xs = [1, 2]\nxs[1]++\nxs") == [1, 3]


def test_increment_errors():
    assert isinstance(error_of("y++"), UndefinedIdentifier)
    assert isinstance(error_of('s = "a"\ns++'), TypeMismatch)


# --- assignment ---

def test_multi_assignment_binds_in_order():
    env = Environment()
    run_carrion("a, b, c = 1, 2, 3", env)
    assert (env["a"], env["b"], env["c"]) == (1, 2, 3)


def test_multi_assignment_arity_mismatch_binds_nothing():
    env = Environment()
    err = error_of("a, b = 1, 2, 3", env)
    assert isinstance(err, ArityMismatch)
    assert "a" not in env and "b" not in env


def test_failing_target_leaves_environment_untouched():
    env = Environment()
    err = error_of("xs = [1]\na, xs[5] = 1, 2", env)
    assert isinstance(err, IndexOutOfBounds)
    assert "a" not in env
    assert env["xs"] == [1]


def test_compound_assignment_rechecks_bounds_after_the_value():
    env = Environment()
    err = error_of("lst = [1, 2]\nlst[1] += pop(lst)", env)
    assert isinstance(err, IndexOutOfBounds)
    assert env["lst"] == [1]


def test_list_shrunk_by_a_later_target_writes_nothing():
    env = Environment()
    err = error_of("lst = [5, 1]\nlst[1], lst[pop(lst) - 1] = 7, 8", env)
    assert isinstance(err, IndexOutOfBounds)
    assert "index 1 out of bounds for List of length 1" in err.message
    assert env["lst"] == [5]


def test_multi_assignment_unpacks_a_list():
    assert value_of("a, b = [1, 2]\n[b, a]") == [2, 1]


def test_swap_evaluates_values_first():
    assert value_of("a, b = 1, 2\na, b = b, a\n[a, b]") == [2, 1]


def test_assignment_evaluates_to_unit():
    assert value_of("x = 1") is None
    assert value_of("x = 1\nx += 1") is None


def test_compound_assignment_sequence():
    assert value_of("counter = 0\ncounter += 1\ncounter *= 2\ncounter -= 1\ncounter") == 1
    assert value_of("x = 7\nx /= 2\nx") == 3
    assert value_of('s = "a"\ns += "b"\ns') == "ab"


def test_compound_assignment_on_undefined_name():
    assert isinstance(error_of("nope += 1"), UndefinedIdentifier)


def test_index_assignment_mutates_in_place():
    assert value_of("a = [1, 2]\nb = a\nb[0] = 9\na") == [9, 2]
    d = value_of('d = {"a": 1}\nd["b"] = 2\nd["a"] += 5\nd')
    assert list(d.items()) == [("a", 6), ("b", 2)]


def test_index_assignment_errors():
    assert isinstance(error_of('s = "abc"\ns[0] = "x"'), TypeMismatch)
    assert isinstance(error_of("d = {}\nd[[1]] = 1"), TypeMismatch)
    assert isinstance(error_of('d = {}\nd["k"] += 1'), KeyNotFound)


def test_builtin_names_cannot_be_bound():
    assert isinstance(error_of("print = 1"), TypeMismatch)
    assert isinstance(error_of("a, len = 1, 2"), TypeMismatch)
    assert isinstance(error_of("for type in [1]: x = 1"), TypeMismatch)


# --- names and indexing ---

def test_undefined_identifier():
    err = error_of("x = 1\ny = nope + 1")
    assert isinstance(err, UndefinedIdentifier)
    assert "nope" in err.message
    assert (err.line, err.col) == (2, 5)


def test_builtin_used_as_value():
    assert isinstance(error_of("x = len"), TypeMismatch)


def test_indexing():
    assert value_of("myList = [1, 2, 3, 4, 5]\nmyList[0]") == 1
    assert value_of("myList = [1, 2, 3, 4, 5]\nmyList[4]") == 5
    assert value_of('"hello"[1]') == "e"
    assert value_of('{"city": "Paris", "population": 2200000}["city"]') == "Paris"
    assert value_of('{1: "x"}[1.0]') == "x"


@pytest.mark.parametrize("src, error", [
    ("myList = [1, 2, 3, 4, 5]\nmyList[5]", IndexOutOfBounds),
    ("[1][-1]", IndexOutOfBounds),
    ('"abc"[3]', IndexOutOfBounds),
    ('[1]["0"]', TypeMismatch),
    ("[1][0.0]", TypeMismatch),
    ('{"a": 1}["b"]', KeyNotFound),
    ("{1: 2}[[1]]", TypeMismatch),
    ("5[0]", TypeMismatch),
    ("{[1]: 2}", TypeMismatch),
])
def test_indexing_errors(src, error):
    assert isinstance(error_of(src), error)


def test_calling_a_non_function():
    assert isinstance(error_of("x = 1\nx(2)"), TypeMismatch)
    assert isinstance(error_of("nothing(2)"), UndefinedIdentifier)
    assert isinstance(error_of("[1](2)"), TypeMismatch)


# --- control flow ---

def test_if_first_truthy_branch_wins():
    src = (
        "x = 5\n"
        "if x > 10:\n"
        "    r = 1\n"
        "otherwise x > 3:\n"
        "    r = 2\n"
        "otherwise x > 1:\n"
        "    r = 3\n"
        "else:\n"
        "    r = 4\n"
    )
    env = Environment()
    env.define("r", 0)
    run_carrion(src, env)
    assert env["r"] == 2


def test_if_without_match_is_unit():
    assert value_of("if False: 1") is None
    assert value_of("if True: 1") == 1


def test_zero_is_truthy_in_conditions():
    assert value_of("x = 0\nif 0: x = 1\nx") == 1


def test_block_locals_do_not_leak():
    value, errors = run_carrion("if True: fresh = 1\nfresh")
    assert isinstance(errors[0], UndefinedIdentifier)


def test_while_loop():
    assert value_of("i = 0\nwhile i < 5: i += 1\ni") == 5


def test_while_loop_limit():
    err = error_of("while True: x = 1", config=InterpreterConfig(max_loop_iterations=10))
    assert isinstance(err, LoopLimitExceeded)
    assert "10" in err.message


def test_for_over_list_string_and_dict():
    assert value_of("total = 0\nfor n in [1, 2, 3]: total += n\ntotal") == 6
    assert value_of('s = ""\nfor ch in "abc": s = ch + s\ns') == "cba"
    assert value_of('ks = []\nfor k in {"a": 1, "b": 2}: push(ks, k)\nks') == ["a", "b"]


def test_for_iterates_a_snapshot():
    assert value_of("xs = [1, 2]\nfor x in xs: push(xs, x)\nxs") == [1, 2, 1, 2]


def test_for_loop_variable_is_scoped_to_the_body():
    _, errors = run_carrion("for i in [1]: y = i\ni")
    assert isinstance(errors[0], UndefinedIdentifier)


def test_for_over_non_iterable():
    assert isinstance(error_of("for x in 5: y = x"), TypeMismatch)


def test_for_loop_limit():
    err = error_of("for x in [1, 2, 3]: y = x", config=InterpreterConfig(max_loop_iterations=2))
    assert isinstance(err, LoopLimitExceeded)


def test_return_stops_the_program():
    env = Environment()
    value, errors = run_carrion("x = 1\nreturn x + 1\nx = 100", env)
    assert (value, errors) == (2, [])
    assert env["x"] == 1


def test_return_unwinds_nested_blocks():
    src = "for i in [1, 2, 3]:\n    if i == 2:\n        return i * 10\n"
    assert value_of(src) == 20
    assert value_of("while True: return 7") == 7
    assert value_of("return") is None


# --- top-level error policy ---

def test_failing_statement_does_not_stop_the_program():
    env = Environment()
    value, errors = run_carrion("x = 1 / 0\ny = 2\ny", env)
    assert value == 2
    assert len(errors) == 1
    assert isinstance(errors[0], DivisionByZero)
    assert errors[0].line == 1
    assert "x" not in env


def test_error_location_is_the_failing_operator():
    err = error_of('x = 1\ny = x + "a"')
    assert (err.line, err.col) == (2, 7)


def test_error_location_inside_block():
    err = error_of("if True:\n    z = [1][3]\n")
    assert err.line == 2


def test_runtime_error_snapshots_call_stack():
    err = error_of('len(5)')
    assert [f['name'] for f in err.call_stack] == ['len']
    assert err.call_stack[0]['args'] == [5]


def test_long_left_chain_evaluates_without_recursion():
    src = " + ".join(["1"] * 5000)
    assert value_of(src) == 5000


def test_deep_nesting_is_reported_not_raised():
    node = IntegerLiteral(1)
    for _ in range(20000):
        node = PrefixExpression('-', node)
    value, errors = evaluate(Program([ExpressionStatement(node)]), Environment())
    assert value is None
    assert isinstance(errors[0], NestingTooDeep)


def test_evaluator_eval_unwraps_return():
    program, _ = parse(tokenize("return 3"))
    assert Evaluator().eval(program, Environment()) == 3


def test_dict_literal_keeps_insertion_order():
    d = value_of('{"b": 1, "a": 2, "b": 3}')
    assert isinstance(d, CarrionDict)
    assert list(d.items()) == [("b", 3), ("a", 2)]
