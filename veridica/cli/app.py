"""Main Typer application: imports and registers all CLI commands.

Entry point: ``veridica`` (configured via pyproject.toml scripts).

Commands: check, register, verify, proofs, status.
"""

from __future__ import annotations

import typer

from veridica.cli.commands.check import check_cmd
from veridica.cli.commands.proofs import proofs_cmd
from veridica.cli.commands.register import register_cmd
from veridica.cli.commands.status import status_cmd
from veridica.cli.commands.verify import verify_cmd
from veridica.cli.runtime import configure_logging
from veridica.config import VeridicaConfig

app = typer.Typer(
    name="veridica",
    help="Veridica: content ownership verification with tiered proof persistence.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Override VERIDICA_LOG_LEVEL for this invocation.",
    ),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level or VeridicaConfig().log_level)


# Register subcommands
app.command(name="check", help="Check whether content is registered and who owns it.")(check_cmd)
app.command(name="register", help="Register ownership of new content.")(register_cmd)
app.command(name="verify", help="Verify a proof transaction on the ledger.")(verify_cmd)
app.command(name="proofs", help="List an owner's proofs.")(proofs_cmd)
app.command(name="status", help="Show storage policy, tier health and ledger status.")(status_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
