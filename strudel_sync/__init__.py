"""Keep a Strudel REPL tab in sync with a file edited on disk."""

__version__ = "0.1.0"
