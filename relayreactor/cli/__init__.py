"""
relayreactor/cli/__init__.py

Relay Reactor CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    relayreactor = "relayreactor.cli:cli"
"""

import logging

import click

from relayreactor.cli.inspect import payload_command, status_command
from relayreactor.cli.verify import verify_command


@click.group()
@click.version_option(package_name="relay-reactor")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log at DEBUG level to stderr.")
def cli(verbose: bool) -> None:
    """
    Relay Reactor — relay order settlement tooling.

    \b
    Commands:
      verify    Verify a replay ledger — chain, signatures, schema, replays.
      status    Report whether an order id has been consumed.
      payload   Decode a {commands, inputs, value} fill payload file.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


cli.add_command(verify_command)
cli.add_command(status_command)
cli.add_command(payload_command)
