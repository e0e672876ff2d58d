# cltestbench

A small command interpreter for compute-kernel experiments, run from Python
code or from script files. Each line is split into tokens. The first word is
matched against the known commands, and any unambiguous, case-insensitive
prefix is accepted. The command then runs against a table of named objects.

The package has three parts:

- `cltestbench.token`: the tokenizer.
- `cltestbench.istringview`: case-insensitive prefix matching.
- `cltestbench.png`: a PNG reader and writer.

The interpreter itself is `cltestbench.testbench`.

## Running commands

```python
import io
from cltestbench.testbench import Testbench, Result

out, err = io.StringIO(), io.StringIO()
bench = Testbench(out=out, err=err)

bench.run("set verbose off")        # options: verbose, caret, echo
bench.run("set")                    # prints the current options
bench.run("list")                   # table of named objects and their types
bench.run("script setup.txt")       # runs every line of a script file
assert bench.run("quit") is Result.QUIT
```

### Results and errors

`Testbench.run` returns one of three results:

- `Result.GOOD` when the command succeeds.
- `Result.FAIL` when it does not.
- `Result.QUIT` for `quit`.

A `CommandError` raised by a command is caught and written to the error stream. So is a `MemoryError`. When the `caret` option is on and the error points at part of the line, a line of `^` marks that part. Any other exception is not caught and reaches the caller.

Unknown or ambiguous command words are reported on the error stream, and the call returns `Result.FAIL`.

`Testbench.execute(tokens)` runs an already tokenized `TokenStream`. It does not catch command errors.

### Commands

| Command | What it does |
| --- | --- |
| `set [option value]` | With no arguments, shows the options. Otherwise sets `verbose`, `caret` or `echo`. The value is read with `parse_flag`, which accepts `1 y yes on t true` and `0 n no off f false`. The option name `block` is recognised but always fails with "No driver loaded." |
| `list` | Prints a table of object names, sorted, with the Python type name of each object. |
| `release name [name ...]` | Removes the named objects. An unknown name is an error. |
| `script path` | Runs each line of a file. Blank lines and lines that start with `#` are skipped. When the `echo` option is on, lines are echoed, except those that start with `@`. The script stops at the first line that does not return `Result.GOOD`. |
| `help` | Lists the command words. |
| `quit` | Returns `Result.QUIT`. |

### Named objects

There are two ways to add an object:

- `Testbench.add_object(name, obj)` registers an object from Python code.
- An assignment line, `name = expression`, evaluates the rest of the line with the `evaluator` callable given to `Testbench`. The callable receives the `TokenStream`, positioned after the `=`, and returns the object.

In both cases a name that is already in use is an error. Without an evaluator, assignments fail. Tokens left over after the expression are also an error.

`Testbench.objects` is a read-only view of the table. `Testbench.options` is an `Options` dataclass with `verbose`, `caret` and `echo` fields.

## Tokens

```python
from cltestbench.token import TokenStream, TokenType, trim_whitespace

stream = TokenStream('run kern((64), ) "a \\"quoted\\" text"')
word = stream.consume()
assert word.type is TokenType.STRING
assert stream.token_text(word) == "run"
assert trim_whitespace("  a  b ") == "a  b"
```

There are four kinds of token:

- **Constants**: anything that starts with a digit, optionally after a sign.
- **Strings**: words, paths and file names.
- **Quoted text**: `TokenStream.unquoted_text` resolves the escapes `\n`, `\t`, `\\` and `\"`.
- **Punctuation**: `=`, `,`, `(` and `)`.

Text whose closing quote is missing gives an `INVALID` token.

`TokenStream` has one token of lookahead (`next`). It also has these methods:

- `current`, `consume`, `advance` and `expect` move through the tokens.
- `remaining_text`, `current_text` and their `..._as_token` forms cover the rest of the line.

## Prefix matching

```python
from cltestbench.istringview import autocomplete, starts_with, iequals, AmbiguousMatchError

assert autocomplete("REL", ["release", "run", "list"]) == 0
assert autocomplete("x", ["release", "run"]) is None
assert starts_with("ABCDE", "abc") and iequals("ABC", "abc")
```

The keywords passed in are expected in lower case. If the input is a prefix of more than one keyword, `autocomplete` raises `AmbiguousMatchError`.

## PNG images

`cltestbench.png` reads and writes 8- and 16-bit greyscale, grey+alpha, RGB and RGBA images. It needs nothing beyond the standard library. Interlaced files are read as well.

```python
from cltestbench.png import load_png, encode_png, write_png, ChannelOrder, ChannelType

with open("picture.png", "rb") as handle:
    image = load_png(handle.read(), "picture.png")

assert image.channel_order in (ChannelOrder.R, ChannelOrder.RA,
                               ChannelOrder.RGB, ChannelOrder.RGBA)
assert image.channel_type in (ChannelType.UNSIGNED_INT8, ChannelType.UNSIGNED_INT16)
write_png(image, "copy.png")
```

An `Image` holds:

- its width and height;
- its channel order and channel type;
- the raw, unfiltered pixel rows in `data`, with 16-bit samples big-endian;
- an optional name.

`image_type` is `ImageType.IMAGE1D` for a single row and `ImageType.IMAGE2D` otherwise. Malformed or unsupported files raise `CommandError`.

## What this package does not do

There is no compute driver behind the interpreter. `load` reports that an implementation cannot be loaded, and `select` reports that none is loaded. `info`, `save`, `run`, `wait`, `flush` and `bind` always fail because they need a driver.

The package has no built-in expression language either. The package does not parse typed data lists, buffers, programs, kernels, files or images inside command lines. Such objects come only from the `evaluator` you supply or from `add_object`.

There is no interactive prompt or command-line program. Lines are run through `Testbench.run`.