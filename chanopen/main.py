import click

from chanopen.cli.listenargs import listenargs
from chanopen.cli.logger import LoggerSetup
from chanopen.cli.openargs import openargs
from chanopen.cli.showargs import showargs
from chanopen.settings import ChanopenSettings, IdentitySettings, LogLevel

LOG_LEVELS = [lvl.value.lower() for lvl in LogLevel]


@click.group(
    context_settings={
        "help_option_names": ["-h", "--help"],
        "max_content_width": 120,
        "terminal_width": 120,
    }
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=ChanopenSettings().log_level.value.lower(),
    show_default=True,
    help="logging level, e.g. DEBUG, info, WaRnInG, etc.",
)
@click.option(
    "--reuse-keys/--fresh-keys",
    "reuse_keys",
    default=IdentitySettings().reuse_keys,
    show_default=True,
    help="sign with the latest key from the keys file or generate a new one"
)
@click.option(
    "--write-keys/--no-write-keys",
    "write_keys",
    default=IdentitySettings().write_keys,
    show_default=True,
    help="write newly generated keys to file, default is"
    " output/chanopen-keys.json"
)
@click.pass_context
def cli(ctx, log_level, reuse_keys, write_keys):
    """
    chanopen: open payment channels between two peers and a ledger
    """
    level_enum = LogLevel[log_level.upper()]
    LoggerSetup(level_enum).setup_logging()

    ctx.ensure_object(dict)
    ctx.obj["log_level"] = level_enum
    ctx.obj["reuse_keys"] = reuse_keys
    ctx.obj["write_keys"] = write_keys


def register_commands(group: click.Group):
    group.add_command(openargs)
    group.add_command(listenargs)
    group.add_command(showargs)


def main():
    register_commands(cli)
    cli()


if __name__ == "__main__":
    main()
