import asyncio
import click
import sys

from chanopen.cli.helpers import format_errors, load_restore_transaction
from chanopen.cli.nodecli import run_open
from chanopen.errors import ChannelOpenError
from chanopen.settings import ChannelSettings, Settings
from pydantic import ValidationError


# --- open subcommand -----------
@click.command("open", help="Open a payment channel to COUNTERPARTY (pubkey@host:port)")
@click.argument("counterparty", type=str)
@click.option(
    "--restore-file",
    "restore_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file with a countersigned restore transaction, skips the"
    " handshake with the counterparty"
)
@click.option(
    "--fund",
    "default_fund",
    type=int,
    default=None,
    help=f"funding in wei [default: {ChannelSettings().default_fund}]"
)
@click.option(
    "--timeout",
    "opening_timeout_seconds",
    type=float,
    default=None,
    help="seconds to wait for the ledger to confirm the opening"
    f" [default: {ChannelSettings().opening_timeout_seconds}]"
)
@click.pass_context
def openargs(ctx, counterparty, restore_file, **kwargs):
    """
    Run the opening handshake with a counterparty and wait for the channel
    to be confirmed on the ledger.
    """
    overrides = {k: v for k, v in kwargs.items() if v is not None}
    overrides.update(ctx.obj or {})
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        click.secho(format_errors(e), fg="red", err=True)
        sys.exit(1)

    restore_transaction = None
    if restore_file:
        try:
            restore_transaction = load_restore_transaction(restore_file)
        except ValueError as e:
            click.secho(f"Invalid restore file {restore_file}: {e}", fg="red", err=True)
            sys.exit(1)

    try:
        record = asyncio.run(run_open(settings, counterparty, restore_transaction))
    except (ChannelOpenError, ValueError) as e:
        click.secho(str(e), fg="red", err=True)
        sys.exit(1)

    click.secho("Payment channel is open", fg="green")
    click.echo(str(record))
