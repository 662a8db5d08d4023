"""fstn - command-line client for the Faasten data store."""

__version__ = "0.1.0"
