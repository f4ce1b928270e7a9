"""Subcommand handlers. Each module exposes ``execute(router, invocation)``."""
