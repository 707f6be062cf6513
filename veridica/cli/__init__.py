"""Veridica CLI: Typer-based command-line interface.

Provides the ``veridica`` command with subcommands for checking and
registering content, verifying ledger transactions, listing an owner's
proofs, and inspecting tier status.

All output uses Rich for formatted terminal display.
"""
