"""Command interpreter: parses command lines and keeps named objects."""

from __future__ import annotations

import enum
import sys
import types
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TextIO

from .istringview import AmbiguousMatchError, autocomplete
from .token import CommandError, Token, TokenStream, TokenType, trim_whitespace

_COMMANDS = (
    "load",
    "select",
    "info",
    "list",
    "set",
    "release",
    "save",
    "run",
    "script",
    "wait",
    "flush",
    "bind",
    "help",
    "quit",
)
# Commands that cannot do anything without a loaded driver, and what they report.
_DRIVER_REQUIRED = {
    "info": "An OpenCL implementation must be loaded for a 'info' command.",
    "save": "An OpenCL implementation must be loaded for a 'save' command.",
    "run": "An OpenCL implementation must be loaded for a 'run' command.",
    "wait": "A driver is required for a 'wait' command.",
    "flush": "A driver is required for a 'flush' command.",
    "bind": "An OpenCL implementation must be loaded for a 'bind' command.",
}
_OPTIONS = ("verbose", "caret", "echo", "block")
_TRUE_WORDS = frozenset({"1", "y", "yes", "on", "t", "true"})
_FALSE_WORDS = frozenset({"0", "n", "no", "off", "f", "false"})
# Width of the interactive prompt, used to line carets up under the input.
_PROMPT_WIDTH = 8
# Longer lines are likely pasted and would wrap, making carets useless.
_CARET_LINE_LIMIT = 120

Evaluator = Callable[[TokenStream], Any]


class Result(enum.Enum):
    """Outcome of running one command line."""

    GOOD = "good"
    FAIL = "fail"
    QUIT = "quit"


@dataclass
class Options:
    """User-adjustable behaviour of the testbench."""

    verbose: bool = True
    caret: bool = True
    echo: bool = False


def parse_flag(text: str) -> bool:
    """Interpret a yes/no style word as a boolean."""
    word = text.lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"'{text}' is not a boolean value")


def _type_name(obj: Any) -> str:
    return type(obj).__name__


class Testbench:
    """Runs command lines, holding the objects they create by name."""

    def __init__(
        self,
        out: TextIO | None = None,
        err: TextIO | None = None,
        evaluator: Evaluator | None = None,
    ) -> None:
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self.evaluator = evaluator
        self.options = Options()
        self._objects: dict[str, Any] = {}
        self._script_level = 0
        self._handlers: dict[str, Callable[[TokenStream], None]] = {
            "load": self._load,
            "select": self._select,
            "list": self._list,
            "set": self._set,
            "release": self._release,
            "script": self._script,
            "help": self._help,
        }

    @property
    def objects(self) -> Mapping[str, Any]:
        """Read-only view of the named objects."""
        return types.MappingProxyType(self._objects)

    def add_object(self, name: str, obj: Any) -> None:
        """Store ``obj`` under ``name``; names may not be reused."""
        if name in self._objects:
            raise CommandError(
                f"An object named '{name}' already exists.  Use 'release' to clear it."
            )
        self._objects[name] = obj

    def run(self, line: str) -> Result:
        """Run one command line, reporting command errors on the error stream."""
        tokens = TokenStream(line)
        try:
            return self.execute(tokens)
        except CommandError as error:
            self._report(line, error)
        except MemoryError:
            self.err.write("Memory allocation failed. (out of memory?)\n")
        return Result.FAIL

    def _report(self, line: str, error: CommandError) -> None:
        if (
            self.options.caret
            and error.has_location_info
            and len(line) < _CARET_LINE_LIMIT
        ):
            if self._script_level == 0:
                self.err.write(" " * _PROMPT_WIDTH)
            elif not self.options.echo:
                # A script line without echo was never shown, so show it now.
                self.err.write(line + "\n")
            self.err.write(" " * error.begin + "^" * (error.end - error.begin) + "\n")
        self.err.write(f"Command error: {error.message}\n")

    def execute(self, tokens: TokenStream) -> Result:
        """Execute the command in ``tokens``; command errors propagate."""
        if not tokens:
            return Result.GOOD

        first = tokens.consume()
        if tokens.current().type is TokenType.EQUAL:
            tokens.advance()
            self._assign(tokens.token_text(first), tokens)
            return Result.GOOD

        command = tokens.token_text(first)
        try:
            index = autocomplete(command, _COMMANDS)
        except AmbiguousMatchError:
            self.err.write(f"Ambiguous command autocomplete for '{command}'.\n")
            return Result.FAIL
        if index is None:
            self.err.write(f"Unknown command '{command}'.\n")
            return Result.FAIL

        name = _COMMANDS[index]
        if name == "quit":
            if tokens:
                self.err.write("Trailing tokens after 'quit' command ignored.\n")
            return Result.QUIT
        if name in _DRIVER_REQUIRED:
            raise CommandError(_DRIVER_REQUIRED[name])
        self._handlers[name](tokens)
        return Result.GOOD

    def _assign(self, name: str, tokens: TokenStream) -> None:
        if name in self._objects:
            raise CommandError(
                f"An object named '{name}' already exists.  Use 'release' to clear it."
            )
        if not tokens:
            raise CommandError(
                "Missing expression to evaluate for assignment.  "
                "Use 'release' to clear an object."
            )
        if self.evaluator is None:
            raise CommandError("No expression evaluator available.", tokens.current())

        evaluated = self.evaluator(tokens)
        if evaluated is None:
            raise CommandError("Internal error: evaluation produced no object.")
        current = tokens.current()
        if current.type is TokenType.INVALID:
            raise CommandError(
                "Internal error: token stream is invalid but no diagnostic presented."
            )
        if current.type is not TokenType.END:
            raise CommandError(
                "Trailing tokens in assignment command not allowed.", current
            )
        self._objects[name] = evaluated

    def _load(self, tokens: TokenStream) -> None:
        lib_token = tokens.current()
        if lib_token.type is TokenType.END:
            raise CommandError("Missing library name for 'load' command.")
        lib_name = tokens.token_text(lib_token)
        if not lib_name:
            raise CommandError("Missing library name for 'load' command.")
        if lib_token.type is TokenType.TEXT:
            lib_name = tokens.unquoted_text(lib_token)
        self.err.write(
            f"Error while loading library: {lib_name}: "
            "OpenCL implementations cannot be loaded.\n"
        )

    def _select(self, tokens: TokenStream) -> None:
        self.err.write("No OpenCL implementation loaded.\n")

    def _list(self, tokens: TokenStream) -> None:
        if not self._objects:
            if self.options.verbose:
                self.out.write("No created objects.\n")
            return
        if self.options.verbose:
            self.out.write("List of objects currently available:\n")
        rows = [("Identifier", "Type")]
        rows += [(name, _type_name(obj)) for name, obj in sorted(self._objects.items())]
        width = max(len(name) for name, _ in rows)
        type_width = max(len(kind) for _, kind in rows)
        lines = [f"{name:<{width}}  {kind}".rstrip() for name, kind in rows]
        lines.insert(1, f"{'-' * width}  {'-' * type_width}")
        # The table is printed even when not verbose; it is the point of the command.
        self.out.write("\n".join(lines) + "\n")

    def _set(self, tokens: TokenStream) -> None:
        if not tokens:
            shown = {
                name: "yes" if getattr(self.options, name) else "no"
                for name in ("verbose", "caret", "echo")
            }
            self.out.write(
                "Options:"
                f"\n  verbose:  {shown['verbose']}"
                f"\n  caret:    {shown['caret']}"
                f"\n  echo:     {shown['echo']}\n"
            )
            return

        option_token = tokens.expect(TokenType.STRING)
        if not option_token:
            raise CommandError("Unknown option.", option_token)
        option = tokens.token_text(option_token)

        value_token = tokens.consume()
        if not value_token:
            raise CommandError("Missing argument for 'set' command.", option_token)

        try:
            index = autocomplete(option, _OPTIONS)
        except AmbiguousMatchError:
            index = None
        if index is None:
            raise CommandError("Unknown option.", option_token)

        name = _OPTIONS[index]
        if name == "block":
            raise CommandError("No driver loaded.", option_token)
        text = tokens.token_text(value_token)
        try:
            value = parse_flag(text)
        except ValueError as exc:
            raise CommandError(
                f"Expected a boolean value, got '{text}'.", value_token
            ) from exc
        setattr(self.options, name, value)

    def _release(self, tokens: TokenStream) -> None:
        if not tokens:
            raise CommandError("Expected identifier for 'release' command.")
        while True:
            token = tokens.consume()
            if token.type is not TokenType.STRING:
                raise CommandError("Invalid identifier.", token)
            identifier = tokens.token_text(token)
            if identifier not in self._objects:
                raise CommandError("Object not found.", token)
            del self._objects[identifier]
            if not tokens:
                return

    def _help(self, tokens: TokenStream) -> None:
        self.out.write("Commands: " + ", ".join(_COMMANDS) + "\n")

    def _script(self, tokens: TokenStream) -> None:
        if not tokens:
            raise CommandError("Expected file name argument to 'script' command.\n")

        filename = trim_whitespace(tokens.current_text())
        location: Token = tokens.remaining_text_as_token()
        try:
            handle = open(filename, encoding="utf-8")
        except OSError as exc:
            raise CommandError(exc.strerror or str(exc), location) from exc

        self._script_level += 1
        try:
            with handle:
                for raw in handle:
                    if not self._run_script_line(raw):
                        return
        except OSError as exc:
            raise CommandError(exc.strerror or str(exc), location) from exc
        finally:
            self._script_level -= 1

    def _run_script_line(self, raw: str) -> bool:
        """Run one script line; False when the script should stop."""
        line = trim_whitespace(raw)
        if not line or line.startswith("#"):
            return True
        echo = self.options.echo
        if line.startswith("@"):
            line = trim_whitespace(line[1:])
            echo = False
        if echo:
            self.out.write(line + "\n")
        return self.execute(TokenStream(line)) is Result.GOOD