import io

import pytest

from cltestbench.testbench import Options, Result, Testbench, parse_flag
from cltestbench.token import CommandError, TokenStream


class Widget:
    pass


class Gadget:
    pass


def make_bench(evaluator=None):
    out = io.StringIO()
    err = io.StringIO()
    bench = Testbench(out=out, err=err, evaluator=evaluator)
    return bench, out, err


def first_token_text(tokens):
    return tokens.token_text(tokens.consume())


def test_quit_command():
    bench, _, _ = make_bench()
    assert bench.run("quit") is Result.QUIT


def test_quit_abbreviated_with_trailing_tokens():
    bench, _, err = make_bench()
    assert bench.run("q now") is Result.QUIT
    assert err.getvalue() == "Trailing tokens after 'quit' command ignored.\n"


def test_empty_line_is_good():
    bench, out, err = make_bench()
    assert bench.run("   ") is Result.GOOD
    assert out.getvalue() == ""
    assert err.getvalue() == ""


def test_unknown_command():
    bench, _, err = make_bench()
    assert bench.run("xyz") is Result.FAIL
    assert err.getvalue() == "Unknown command 'xyz'.\n"


def test_ambiguous_command():
    bench, _, err = make_bench()
    assert bench.run("se") is Result.FAIL
    assert err.getvalue() == "Ambiguous command autocomplete for 'se'.\n"


def test_default_options():
    assert Options() == Options(verbose=True, caret=True, echo=False)


def test_set_without_arguments_prints_options():
    bench, out, _ = make_bench()
    assert bench.run("set") is Result.GOOD
    assert out.getvalue() == (
        "Options:\n  verbose:  yes\n  caret:    yes\n  echo:     no\n"
    )


def test_set_changes_options():
    bench, _, _ = make_bench()
    assert bench.run("set verbose off") is Result.GOOD
    assert bench.run("SET ech YES") is Result.GOOD
    assert bench.options == Options(verbose=False, caret=True, echo=True)


def test_set_unknown_option_prints_caret():
    bench, _, err = make_bench()
    assert bench.run("set bogus 1") is Result.FAIL
    assert err.getvalue() == (
        " " * 8 + " " * 4 + "^^^^^\n" + "Command error: Unknown option.\n"
    )


def test_set_without_caret():
    bench, _, err = make_bench()
    bench.run("set caret off")
    assert bench.run("set bogus 1") is Result.FAIL
    assert err.getvalue() == "Command error: Unknown option.\n"


def test_set_bad_value():
    bench, _, err = make_bench()
    assert bench.run("set verbose maybe") is Result.FAIL
    assert bench.options.verbose is True
    assert "Command error:" in err.getvalue()


def test_set_block_requires_driver():
    bench, _, err = make_bench()
    bench.run("set caret off")
    assert bench.run("set block 1") is Result.FAIL
    assert err.getvalue() == "Command error: No driver loaded.\n"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1", True), ("y", True), ("yes", True), ("on", True), ("t", True),
        ("true", True), ("0", False), ("n", False), ("no", False),
        ("off", False), ("f", False), ("false", False), ("TRUE", True),
    ],
)
def test_parse_flag(text, expected):
    assert parse_flag(text) is expected


@pytest.mark.parametrize("text", ["", "maybe", "2", "yess"])
def test_parse_flag_invalid(text):
    with pytest.raises(ValueError):
        parse_flag(text)


def test_add_and_release_objects():
    bench, _, _ = make_bench()
    bench.add_object("a", Widget())
    bench.add_object("b", Gadget())
    assert bench.run("release a b") is Result.GOOD
    assert dict(bench.objects) == {}


def test_add_object_twice_fails():
    bench, _, _ = make_bench()
    bench.add_object("a", Widget())
    with pytest.raises(CommandError):
        bench.add_object("a", Gadget())


def test_release_missing_object():
    bench, _, err = make_bench()
    bench.run("set caret off")
    assert bench.run("release nothing") is Result.FAIL
    assert err.getvalue() == "Command error: Object not found.\n"


def test_release_without_identifier():
    bench, _, err = make_bench()
    assert bench.run("release") is Result.FAIL
    assert err.getvalue() == "Command error: Expected identifier for 'release' command.\n"


def test_execute_raises_command_error():
    bench, _, _ = make_bench()
    with pytest.raises(CommandError) as info:
        bench.execute(TokenStream("release nothing"))
    assert info.value.message == "Object not found."
    assert (info.value.begin, info.value.end) == (8, 15)


def test_list_objects():
    bench, out, _ = make_bench()
    bench.add_object("zeta", Gadget())
    bench.add_object("alpha", Widget())
    assert bench.run("list") is Result.GOOD
    lines = out.getvalue().splitlines()
    assert lines[0] == "List of objects currently available:"
    assert lines[1].split() == ["Identifier", "Type"]
    assert lines[3].split() == ["alpha", "Widget"]
    assert lines[4].split() == ["zeta", "Gadget"]


def test_list_empty():
    bench, out, _ = make_bench()
    assert bench.run("list") is Result.GOOD
    assert out.getvalue() == "No created objects.\n"


def test_assignment_with_evaluator():
    bench, _, _ = make_bench(first_token_text)
    assert bench.run("x = 5") is Result.GOOD
    assert bench.objects["x"] == "5"


def test_assignment_trailing_tokens():
    bench, _, err = make_bench(first_token_text)
    bench.run("set caret off")
    assert bench.run("x = 5 6") is Result.FAIL
    assert "x" not in bench.objects
    assert err.getvalue() == (
        "Command error: Trailing tokens in assignment command not allowed.\n"
    )


def test_assignment_existing_name():
    bench, _, _ = make_bench(first_token_text)
    bench.add_object("x", Widget())
    assert bench.run("x = 5") is Result.FAIL
    assert isinstance(bench.objects["x"], Widget)


def test_assignment_missing_expression():
    bench, _, err = make_bench(first_token_text)
    assert bench.run("x =") is Result.FAIL
    assert "Missing expression" in err.getvalue()


def test_assignment_without_evaluator():
    bench, _, _ = make_bench()
    assert bench.run("x = 5") is Result.FAIL
    assert "x" not in bench.objects


def test_wait_requires_driver():
    bench, _, err = make_bench()
    assert bench.run("wait") is Result.FAIL
    assert err.getvalue() == "Command error: A driver is required for a 'wait' command.\n"


def test_flush_requires_driver():
    bench, _, err = make_bench()
    assert bench.run("flush") is Result.FAIL
    assert err.getvalue() == (
        "Command error: A driver is required for a 'flush' command.\n"
    )


def test_select_without_driver():
    bench, _, err = make_bench()
    assert bench.run("select platform 0") is Result.GOOD
    assert err.getvalue() == "No OpenCL implementation loaded.\n"


def test_load_without_name():
    bench, _, err = make_bench()
    assert bench.run("load") is Result.FAIL
    assert err.getvalue() == "Command error: Missing library name for 'load' command.\n"


def test_load_reports_library_error():
    bench, out, err = make_bench()
    assert bench.run("load libdummycl.so") is Result.GOOD
    assert out.getvalue() == ""
    assert err.getvalue().startswith("Error while loading library: libdummycl.so")


def test_script_runs_commands(tmp_path):
    script = tmp_path / "commands.txt"
    script.write_text("# comment\n\n  set verbose off\n@set echo on\n")
    bench, out, _ = make_bench()
    assert bench.run(f"script {script}") is Result.GOOD
    assert bench.options.verbose is False
    assert bench.options.echo is True
    assert out.getvalue() == ""


def test_script_echo(tmp_path):
    script = tmp_path / "echo.txt"
    script.write_text("set verbose off\n@set caret off\n")
    bench, out, _ = make_bench()
    bench.run("set echo on")
    assert bench.run(f"script {script}") is Result.GOOD
    assert out.getvalue() == "set verbose off\n"
    assert bench.options.caret is False


def test_script_stops_at_quit(tmp_path):
    script = tmp_path / "quit.txt"
    script.write_text("set verbose off\nquit\nset caret off\n")
    bench, _, _ = make_bench()
    assert bench.run(f"script {script}") is Result.GOOD
    assert bench.options.verbose is False
    assert bench.options.caret is True


def test_script_missing_file(tmp_path):
    bench, _, err = make_bench()
    bench.run("set caret off")
    assert bench.run(f"script {tmp_path / 'missing.txt'}") is Result.FAIL
    assert err.getvalue().startswith("Command error: ")


def test_script_without_filename():
    bench, _, err = make_bench()
    assert bench.run("script") is Result.FAIL
    assert "Expected file name argument" in err.getvalue()


def test_script_error_restores_level(tmp_path):
    script = tmp_path / "bad.txt"
    script.write_text("set bogus 1\nset verbose off\n")
    bench, _, err = make_bench()
    assert bench.run(f"script {script}") is Result.FAIL
    assert bench.options.verbose is True
    assert "Command error: Unknown option." in err.getvalue()

    fresh = io.StringIO()
    bench.err = fresh
    assert bench.run("set bogus 1") is Result.FAIL
    assert fresh.getvalue().startswith(" " * 12 + "^^^^^\n")