"""Command interpreter with a tokenizer, prefix matching, named objects, scripts and a PNG codec."""

__version__ = "0.1.0"