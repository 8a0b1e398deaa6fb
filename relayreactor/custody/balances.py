"""
Token balance book with transactional rollback.

Balances are plain ints keyed by (token, account). Native currency is
an ordinary token under NATIVE_ASSET. transaction() is the unit of
atomicity for settlement: every mutation inside the block is undone if
the block raises.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from relayreactor.core.exceptions import InsufficientBalance

logger = logging.getLogger(__name__)


class TokenBalances:
    """
    In-memory ledger of token balances.

    Thread-safe via an internal re-entrant lock. transaction() holds the
    lock for the whole block, so no other thread's mutations interleave
    with a settlement in progress.
    """

    def __init__(self) -> None:
        self._lock:     threading.RLock                  = threading.RLock()
        self._balances: Dict[str, Dict[str, int]]        = defaultdict(dict)
        self._snapshots: List[Dict[str, Dict[str, int]]] = []

    # ── Reads ─────────────────────────────────────────────────

    def balance_of(self, token: str, account: str) -> int:
        with self._lock:
            return self._balances.get(token, {}).get(account, 0)

    def total_supply(self, token: str) -> int:
        with self._lock:
            return sum(self._balances.get(token, {}).values())

    def holdings(self, account: str) -> Dict[str, int]:
        """Every non-zero balance held by account, keyed by token."""
        with self._lock:
            return {
                token: accounts[account]
                for token, accounts in self._balances.items()
                if accounts.get(account)
            }

    # ── Mutations ─────────────────────────────────────────────

    def mint(self, token: str, account: str, amount: int) -> None:
        self._check_amount(amount)
        with self._lock:
            book = self._balances[token]
            book[account] = book.get(account, 0) + amount

    def burn(self, token: str, account: str, amount: int) -> None:
        self._check_amount(amount)
        with self._lock:
            self._debit(token, account, amount)

    def transfer(self, token: str, sender: str, receiver: str, amount: int) -> None:
        """
        Move amount of token from sender to receiver.
        Raises InsufficientBalance without mutating anything if sender is short.
        """
        self._check_amount(amount)
        if amount == 0 or sender == receiver:
            if self.balance_of(token, sender) < amount:
                raise InsufficientBalance(
                    "Transfer amount exceeds balance",
                    {"token": token, "account": sender, "amount": amount},
                )
            return
        with self._lock:
            self._debit(token, sender, amount)
            book = self._balances[token]
            book[receiver] = book.get(receiver, 0) + amount

    # ── Atomicity ─────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["TokenBalances"]:
        """
        Run a block as one all-or-nothing unit.

        On any exception every balance is restored to its state at block
        entry and the exception propagates. Transactions nest; an inner
        rollback leaves the outer transaction's earlier writes intact.
        """
        with self._lock:
            self._snapshots.append(self._copy())
            try:
                yield self
            except BaseException:
                self._balances = self._snapshots.pop()
                logger.debug(f"balances: rolled back transaction depth={len(self._snapshots) + 1}")
                raise
            else:
                self._snapshots.pop()

    # ── Internal ──────────────────────────────────────────────

    def _debit(self, token: str, account: str, amount: int) -> None:
        book    = self._balances[token]
        balance = book.get(account, 0)
        if balance < amount:
            raise InsufficientBalance(
                "Transfer amount exceeds balance",
                {"token": token, "account": account, "balance": balance, "amount": amount},
            )
        book[account] = balance - amount

    def _copy(self) -> Dict[str, Dict[str, int]]:
        copied: Dict[str, Dict[str, int]] = defaultdict(dict)
        for token, accounts in self._balances.items():
            copied[token] = dict(accounts)
        return copied

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValueError(f"amount must be a non-negative int, got {amount!r}")

    def snapshot(self) -> List[Tuple[str, str, int]]:
        """Sorted (token, account, balance) triples for every non-zero balance."""
        with self._lock:
            return sorted(
                (token, account, balance)
                for token, accounts in self._balances.items()
                for account, balance in accounts.items()
                if balance
            )
