import asyncio
import click
import sys

from chanopen.cli.helpers import format_errors
from chanopen.cli.nodecli import run_listen
from chanopen.settings import Settings, TransportSettings
from pydantic import ValidationError


# --- listen subcommand -----------
@click.command("listen", help="Answer payment channel opening requests")
@click.option(
    "--host",
    "listen_host",
    type=str,
    default=TransportSettings().listen_host,
    show_default=True,
    help="address to accept connections on"
)
@click.option(
    "--port",
    "listen_port",
    type=int,
    default=TransportSettings().listen_port,
    show_default=True,
    help="port to accept connections on"
)
@click.option(
    "--max-fund",
    "max_accepted_fund",
    type=int,
    default=None,
    help="refuse requests funding more than this many wei"
)
@click.pass_context
def listenargs(ctx, **kwargs):
    overrides = {k: v for k, v in kwargs.items() if v is not None}
    overrides.update(ctx.obj or {})
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        click.secho(format_errors(e), fg="red", err=True)
        sys.exit(1)

    try:
        asyncio.run(run_listen(settings))
    except ValueError as e:
        click.secho(str(e), fg="red", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("Stopped listening")
