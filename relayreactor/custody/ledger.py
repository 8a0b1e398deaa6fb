"""
Custody ledger for a single settlement attempt.

Records the balances the settlement engine (and any watched account,
such as the order recipient) holds immediately before and after the
router call. Nothing survives the settlement that created it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from relayreactor.custody.balances import TokenBalances

logger = logging.getLogger(__name__)


_Key = Tuple[str, str]   # (token, account)


@dataclass
class CustodyRecord:
    """Before/after balances per (token, account) for one router call."""
    before: Dict[_Key, int] = field(default_factory=dict)
    after:  Dict[_Key, int] = field(default_factory=dict)

    def delta(self, token: str, account: str) -> int:
        key = (token, account)
        if key not in self.before or key not in self.after:
            raise KeyError(f"No custody snapshot for token={token} account={account}")
        return self.after[key] - self.before[key]


class CustodyLedger:
    """
    Per-settlement view of the engine's custody.

    Usage:
        custody = CustodyLedger(balances, engine_address)
        custody.open([input_token, output_token], watch=[recipient])
        router.execute(...)
        custody.close()
        custody.after(output_token)                 # engine holdings
        custody.delta(output_token)                 # engine delta
        custody.delta(output_token, recipient)      # recipient delta
    """

    def __init__(self, balances: TokenBalances, holder: str) -> None:
        self.balances = balances
        self.holder   = holder
        self.record   = CustodyRecord()
        self._tokens: Tuple[str, ...] = ()
        self._accounts: Tuple[str, ...] = (holder,)
        self._opened = False

    def open(self, tokens: Iterable[str], watch: Iterable[str] = ()) -> None:
        """Snapshot balances of every token for the holder and watched accounts."""
        self._tokens   = tuple(dict.fromkeys(tokens))
        self._accounts = tuple(dict.fromkeys((self.holder, *watch)))
        self.record.before = self._take()
        self._opened = True
        logger.debug(f"custody: opened holder={self.holder} before={self.record.before}")

    def close(self) -> None:
        """Snapshot balances again after the router call."""
        if not self._opened:
            raise RuntimeError("CustodyLedger.close() called before open()")
        self.record.after = self._take()
        logger.debug(f"custody: closed holder={self.holder} after={self.record.after}")

    def before(self, token: str, account: Optional[str] = None) -> int:
        return self.record.before[(token, account or self.holder)]

    def after(self, token: str, account: Optional[str] = None) -> int:
        return self.record.after[(token, account or self.holder)]

    def delta(self, token: str, account: Optional[str] = None) -> int:
        return self.record.delta(token, account or self.holder)

    def _take(self) -> Dict[_Key, int]:
        return {
            (token, account): self.balances.balance_of(token, account)
            for token in self._tokens
            for account in self._accounts
        }
