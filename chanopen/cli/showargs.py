import asyncio
import click
import sys

from chanopen.cli.helpers import format_errors, parse_channel_id
from chanopen.cli.nodecli import run_show
from chanopen.settings import Settings
from pydantic import ValidationError


# --- show subcommand -----------
@click.command("show", help="Show the stored record of CHANNEL_ID")
@click.argument("channel_id", type=str)
@click.pass_context
def showargs(ctx, channel_id):
    try:
        settings = Settings(**(ctx.obj or {}))
    except ValidationError as e:
        click.secho(format_errors(e), fg="red", err=True)
        sys.exit(1)

    try:
        channel_id_bytes = parse_channel_id(channel_id)
    except ValueError as e:
        click.secho(f"Invalid channel id {channel_id}: {e}", fg="red", err=True)
        sys.exit(1)

    record = asyncio.run(run_show(settings, channel_id_bytes))
    if record is None:
        click.secho(f"No record for channel {channel_id_bytes.hex()}", fg="red", err=True)
        sys.exit(1)

    click.echo(str(record))
