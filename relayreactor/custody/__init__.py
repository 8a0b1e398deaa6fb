"""
Relay Reactor Custody

TokenBalances is the balance book every party holds tokens in.
CustodyLedger records what the settlement engine holds around one
router call; its deltas are the only surface settlement trusts.
"""

from relayreactor.custody.balances import TokenBalances
from relayreactor.custody.ledger import CustodyLedger, CustodyRecord

__all__ = ["TokenBalances", "CustodyLedger", "CustodyRecord"]
