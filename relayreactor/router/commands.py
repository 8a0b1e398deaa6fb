"""
Universal-router command vocabulary and payload planner.

A payload is (commands, inputs, value):
    commands  one byte per command: low 6 bits = command id,
              0x80 = allow-revert flag
    inputs    one blob per command: RFC 8785 canonical JSON of its params
    value     native currency forwarded with the call

The settlement core never imports this module; fillers and tests use
it to build payloads for the simulated router.
"""

from typing import Any, Dict, List, Sequence, Union

from relayreactor.core.canonical import canonicalize, encode_amount
from relayreactor.core.models import FillPayload


FLAG_ALLOW_REVERT  = 0x80
COMMAND_TYPE_MASK  = 0x3F

# Special recipients, resolved by the router at execution time
MSG_SENDER   = "MSG_SENDER"
ADDRESS_THIS = "ADDRESS_THIS"


class Command:
    """Command ids. Values follow the universal router's numbering."""
    V3_SWAP_EXACT_IN  = 0x00
    V3_SWAP_EXACT_OUT = 0x01
    SWEEP             = 0x04
    TRANSFER          = 0x05
    WRAP_ETH          = 0x0B
    UNWRAP_WETH       = 0x0C


_COMMAND_NAMES: Dict[int, str] = {
    value: name
    for name, value in vars(Command).items()
    if not name.startswith("_")
}


def command_name(command_type: int) -> str:
    return _COMMAND_NAMES.get(command_type, f"UNKNOWN(0x{command_type:02x})")


Path = Sequence[Union[str, int]]


def v3_swap_exact_in(
    recipient:      str,
    amount_in:      int,
    amount_out_min: int,
    path:           Path,
    payer_is_user:  bool = True,
) -> Dict[str, Any]:
    """Params for V3_SWAP_EXACT_IN. path = [token_in, fee, token, fee, ..., token_out]."""
    return {
        "recipient":      recipient,
        "amount_in":      encode_amount(amount_in),
        "amount_out_min": encode_amount(amount_out_min),
        "path":           list(path),
        "payer_is_user":  payer_is_user,
    }


def v3_swap_exact_out(
    recipient:     str,
    amount_out:    int,
    amount_in_max: int,
    path:          Path,
    payer_is_user: bool = True,
) -> Dict[str, Any]:
    """Params for V3_SWAP_EXACT_OUT. path is ordered input token first."""
    return {
        "recipient":     recipient,
        "amount_out":    encode_amount(amount_out),
        "amount_in_max": encode_amount(amount_in_max),
        "path":          list(path),
        "payer_is_user": payer_is_user,
    }


def sweep(token: str, recipient: str, amount_min: int = 0) -> Dict[str, Any]:
    return {"token": token, "recipient": recipient, "amount_min": encode_amount(amount_min)}


def transfer(token: str, recipient: str, value: int) -> Dict[str, Any]:
    return {"token": token, "recipient": recipient, "value": encode_amount(value)}


def wrap_eth(recipient: str, amount_min: int = 0) -> Dict[str, Any]:
    return {"recipient": recipient, "amount_min": encode_amount(amount_min)}


def unwrap_weth(recipient: str, amount_min: int = 0) -> Dict[str, Any]:
    return {"recipient": recipient, "amount_min": encode_amount(amount_min)}


class RoutePlanner:
    """
    Accumulates commands and their encoded inputs.

        planner = RoutePlanner()
        planner.add_command(Command.V3_SWAP_EXACT_IN, v3_swap_exact_in(...))
        payload = planner.build()
    """

    def __init__(self) -> None:
        self._commands: List[int]   = []
        self._inputs:   List[bytes] = []

    def add_command(
        self,
        command_type: int,
        params:       Dict[str, Any],
        allow_revert: bool = False,
    ) -> "RoutePlanner":
        if command_type not in _COMMAND_NAMES:
            raise ValueError(f"Unknown command type 0x{command_type:02x}")
        byte = command_type | (FLAG_ALLOW_REVERT if allow_revert else 0)
        self._commands.append(byte)
        self._inputs.append(canonicalize(params))
        return self

    @property
    def commands(self) -> bytes:
        return bytes(self._commands)

    @property
    def inputs(self) -> List[bytes]:
        return list(self._inputs)

    def build(self, value: int = 0) -> FillPayload:
        return FillPayload(commands=self.commands, inputs=tuple(self._inputs), value=value)
