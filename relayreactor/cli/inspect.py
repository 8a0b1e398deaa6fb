"""
relayreactor status / relayreactor payload

status:   is an order id consumed in a replay ledger?
          exit 0 consumed, 1 not consumed, 2 error
payload:  decode a fill payload file (the {commands, inputs, value}
          fixture format) into readable commands
"""

import json
import sys

import click

from relayreactor.cli.verify import resolve_ledger_file
from relayreactor.core.exceptions import InvalidFillPayload
from relayreactor.core.models import FillPayload
from relayreactor.ledger.verify import LedgerVerifier
from relayreactor.router.commands import COMMAND_TYPE_MASK, FLAG_ALLOW_REVERT, command_name


@click.command(name="status")
@click.argument("ledger", type=click.Path(exists=False))
@click.argument("order_id")
def status_command(ledger: str, order_id: str) -> None:
    """
    Report whether ORDER_ID is consumed in LEDGER.
    """
    ledger_path = resolve_ledger_file(ledger)
    if not ledger_path.exists():
        click.echo(f"not consumed  {order_id}  (no ledger at {ledger_path})")
        sys.exit(1)

    verifier = LedgerVerifier()
    try:
        verifier.load(ledger_path)
    except ValueError as e:
        click.echo(f"❌  ERROR: {e}", err=True)
        sys.exit(2)

    for entry in verifier.entries:
        if entry.order_id == order_id:
            click.echo(
                f"{entry.kind}  {order_id}  "
                f"sequence={entry.sequence}  at={entry.timestamp}"
            )
            sys.exit(0)

    click.echo(f"not consumed  {order_id}")
    sys.exit(1)


@click.command(name="payload")
@click.argument("payload_file", type=click.File("r"))
def payload_command(payload_file) -> None:
    """
    Decode PAYLOAD_FILE, a JSON {commands, inputs, value} fill payload.
    """
    try:
        payload = FillPayload.from_dict(json.load(payload_file))
    except (ValueError, InvalidFillPayload) as e:
        click.echo(f"❌  ERROR: {e}", err=True)
        sys.exit(2)

    click.echo(f"value     {payload.value}")
    click.echo(f"commands  {len(payload.commands)}")
    for index, byte in enumerate(payload.commands):
        flag = "  (allow revert)" if byte & FLAG_ALLOW_REVERT else ""
        click.echo(f"  #{index}  {command_name(byte & COMMAND_TYPE_MASK)}{flag}")
        if index < len(payload.inputs):
            blob = bytes(payload.inputs[index])
            try:
                click.echo(f"       {blob.decode('utf-8')}")
            except UnicodeDecodeError:
                click.echo(f"       0x{blob.hex()}")
    if len(payload.inputs) != len(payload.commands):
        click.echo(
            f"⚠️   {len(payload.inputs)} inputs for {len(payload.commands)} commands",
            err=True,
        )
