"""
Relay Reactor Settlement Engine

The Settlement Engine settles a signed relay order through an
untrusted router:
- funds custody from the payer (requester or filler)
- hands the opaque (commands, inputs, value) payload to the router
- sweeps custody to the recipient
- enforces the minimum output by balance delta
- consumes the order id in the replay guard

Critical Invariants:
- Settlement never inspects router commands
- Settlement is all-or-nothing; a failure leaves balances untouched
- The order id is consumed only after every transfer succeeded
- An order id is consumed at most once, ever
"""

from relayreactor.settlement.engine import SettlementEngine

__all__ = ["SettlementEngine"]
