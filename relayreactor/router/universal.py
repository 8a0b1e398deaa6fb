"""
Simulated universal router over constant-product pools.

This is the external execution engine a relay filler points the
settlement engine at. It keeps its own semantics (commands, paths,
special recipients, revert reasons); the settlement core only sees the
balance changes it leaves behind.

Pool math (fee in pips, 1 pip = 1e-6):
    exact in:   in_less_fee = amount_in * (1e6 - fee) // 1e6
                amount_out  = reserve_out * in_less_fee // (reserve_in + in_less_fee)
    exact out:  in_less_fee = ceil(reserve_in * amount_out / (reserve_out - amount_out))
                amount_in   = ceil(in_less_fee * 1e6 / (1e6 - fee))
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from relayreactor.core.canonical import decode_amount
from relayreactor.core.models import NATIVE_ASSET
from relayreactor.custody.balances import TokenBalances
from relayreactor.core.exceptions import InsufficientBalance
from relayreactor.router.commands import (
    ADDRESS_THIS,
    COMMAND_TYPE_MASK,
    FLAG_ALLOW_REVERT,
    MSG_SENDER,
    Command,
    command_name,
)

logger = logging.getLogger(__name__)


FEE_DENOMINATOR = 1_000_000


class RouterRevert(Exception):
    """A router call reverted. reason is the router's own error name."""

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


@dataclass(frozen=True)
class Pool:
    """A constant-product pool. Reserves live in the balance book under `address`."""
    token0: str
    token1: str
    fee:    int

    @property
    def address(self) -> str:
        return f"pool:{self.token0}/{self.token1}/{self.fee}"

    def other(self, token: str) -> str:
        if token == self.token0:
            return self.token1
        if token == self.token1:
            return self.token0
        raise RouterRevert("InvalidPath", f"{token} not in pool {self.address}")


class SimulatedUniversalRouter:
    """
    Executes (commands, inputs) on behalf of a caller.

    Usage:
        router = SimulatedUniversalRouter(balances, weth="0xC02a...")
        router.create_pool(DAI, USDC, 500, dai_reserve, usdc_reserve)
        router.execute(payload.commands, payload.inputs, caller=engine_address)

    The router pulls `payer_is_user` input from the caller's balance,
    otherwise from its own. Any failure raises RouterRevert; a
    failed command flagged allow-revert is rolled back and skipped.
    """

    def __init__(
        self,
        balances:     TokenBalances,
        weth:         str,
        address:      str = "router:universal",
        native_asset: str = NATIVE_ASSET,
    ) -> None:
        self.balances     = balances
        self.weth         = weth
        self.address      = address
        self.native_asset = native_asset
        self._pools: Dict[Tuple[str, str, int], Pool] = {}

    # ── Pools ─────────────────────────────────────────────────

    def create_pool(
        self,
        token_a:   str,
        token_b:   str,
        fee:       int,
        reserve_a: int,
        reserve_b: int,
    ) -> Pool:
        """Create a pool and seed its reserves by minting into the pool account."""
        if not 0 <= fee < FEE_DENOMINATOR:
            raise ValueError(f"fee must be in [0, {FEE_DENOMINATOR}), got {fee}")
        token0, token1 = sorted((token_a, token_b))
        pool = Pool(token0=token0, token1=token1, fee=fee)
        self._pools[(token0, token1, fee)] = pool
        self.balances.mint(token_a, pool.address, reserve_a)
        self.balances.mint(token_b, pool.address, reserve_b)
        return pool

    def get_pool(self, token_a: str, token_b: str, fee: int) -> Pool:
        token0, token1 = sorted((token_a, token_b))
        pool = self._pools.get((token0, token1, fee))
        if pool is None:
            raise RouterRevert("PoolNotFound", f"{token_a}/{token_b}/{fee}")
        return pool

    def reserves(self, pool: Pool, token_in: str) -> Tuple[int, int]:
        token_out = pool.other(token_in)
        return (
            self.balances.balance_of(token_in, pool.address),
            self.balances.balance_of(token_out, pool.address),
        )

    # ── Quotes ────────────────────────────────────────────────

    def quote_exact_in(self, amount_in: int, path: Sequence[Any]) -> List[int]:
        """Amounts at every hop boundary, starting with amount_in."""
        amounts = [amount_in]
        for token_in, fee, token_out in self._hops(path):
            pool = self.get_pool(token_in, token_out, fee)
            reserve_in, reserve_out = self.reserves(pool, token_in)
            in_less_fee = amounts[-1] * (FEE_DENOMINATOR - pool.fee) // FEE_DENOMINATOR
            if reserve_in + in_less_fee == 0:
                raise RouterRevert("InsufficientLiquidity", pool.address)
            amounts.append(reserve_out * in_less_fee // (reserve_in + in_less_fee))
        return amounts

    def quote_exact_out(self, amount_out: int, path: Sequence[Any]) -> List[int]:
        """Amounts at every hop boundary, ending with amount_out."""
        amounts = [amount_out]
        for token_in, fee, token_out in reversed(self._hops(path)):
            pool = self.get_pool(token_in, token_out, fee)
            reserve_in, reserve_out = self.reserves(pool, token_in)
            if amounts[0] >= reserve_out:
                raise RouterRevert("InsufficientLiquidity", pool.address)
            in_less_fee = _ceil_div(reserve_in * amounts[0], reserve_out - amounts[0])
            amounts.insert(0, _ceil_div(in_less_fee * FEE_DENOMINATOR, FEE_DENOMINATOR - pool.fee))
        return amounts

    # ── Execution ─────────────────────────────────────────────

    def execute(
        self,
        commands: bytes,
        inputs:   Sequence[bytes],
        caller:   str,
    ) -> None:
        """Run every command in order. Raises RouterRevert on the first hard failure."""
        if len(commands) != len(inputs):
            raise RouterRevert(
                "LengthMismatch", f"{len(commands)} commands, {len(inputs)} inputs",
            )

        with self.balances.transaction():
            for index, (byte, blob) in enumerate(zip(commands, inputs)):
                command_type = byte & COMMAND_TYPE_MASK
                allow_revert = bool(byte & FLAG_ALLOW_REVERT)
                logger.debug(
                    f"router: command #{index} {command_name(command_type)} "
                    f"caller={caller} allow_revert={allow_revert}"
                )
                try:
                    with self.balances.transaction():
                        try:
                            self._dispatch(command_type, self._decode(blob), caller)
                        except (KeyError, TypeError, ValueError) as exc:
                            raise RouterRevert("InvalidInput", repr(exc)) from exc
                except RouterRevert as exc:
                    if not allow_revert:
                        raise
                    logger.debug(f"router: command #{index} reverted, continuing: {exc}")

    def _dispatch(self, command_type: int, params: Dict[str, Any], caller: str) -> None:
        if command_type == Command.V3_SWAP_EXACT_IN:
            self._swap_exact_in(params, caller)
        elif command_type == Command.V3_SWAP_EXACT_OUT:
            self._swap_exact_out(params, caller)
        elif command_type == Command.SWEEP:
            self._sweep(params, caller)
        elif command_type == Command.TRANSFER:
            self._transfer(params, caller)
        elif command_type == Command.WRAP_ETH:
            self._wrap_eth(params, caller)
        elif command_type == Command.UNWRAP_WETH:
            self._unwrap_weth(params, caller)
        else:
            raise RouterRevert("InvalidCommandType", f"0x{command_type:02x}")

    # ── Commands ──────────────────────────────────────────────

    def _swap_exact_in(self, params: Dict[str, Any], caller: str) -> None:
        path      = params["path"]
        amounts   = self.quote_exact_in(decode_amount(params["amount_in"]), path)
        minimum   = decode_amount(params["amount_out_min"])
        if amounts[-1] < minimum:
            raise RouterRevert("V3TooLittleReceived", f"out={amounts[-1]} min={minimum}")
        self._run_hops(path, amounts, self._payer(params, caller), self._resolve(params["recipient"], caller))

    def _swap_exact_out(self, params: Dict[str, Any], caller: str) -> None:
        path    = params["path"]
        amounts = self.quote_exact_out(decode_amount(params["amount_out"]), path)
        maximum = decode_amount(params["amount_in_max"])
        if amounts[0] > maximum:
            raise RouterRevert("V3TooMuchRequested", f"in={amounts[0]} max={maximum}")
        self._run_hops(path, amounts, self._payer(params, caller), self._resolve(params["recipient"], caller))

    def _sweep(self, params: Dict[str, Any], caller: str) -> None:
        token   = params["token"]
        balance = self.balances.balance_of(token, self.address)
        if balance < decode_amount(params.get("amount_min", "0")):
            raise RouterRevert("InsufficientToken", f"{token} balance={balance}")
        if balance:
            self.balances.transfer(token, self.address, self._resolve(params["recipient"], caller), balance)

    def _transfer(self, params: Dict[str, Any], caller: str) -> None:
        recipient = self._resolve(params["recipient"], caller)
        self._move(params["token"], self.address, recipient, decode_amount(params["value"]))

    def _wrap_eth(self, params: Dict[str, Any], caller: str) -> None:
        amount = self.balances.balance_of(self.native_asset, self.address)
        if amount < decode_amount(params.get("amount_min", "0")):
            raise RouterRevert("InsufficientETH", f"balance={amount}")
        self._move(self.native_asset, self.address, self.weth, amount)
        self.balances.mint(self.weth, self._resolve(params["recipient"], caller), amount)

    def _unwrap_weth(self, params: Dict[str, Any], caller: str) -> None:
        amount = self.balances.balance_of(self.weth, self.address)
        if amount < decode_amount(params.get("amount_min", "0")):
            raise RouterRevert("InsufficientToken", f"WETH balance={amount}")
        self.balances.burn(self.weth, self.address, amount)
        self._move(self.native_asset, self.weth, self._resolve(params["recipient"], caller), amount)

    # ── Internal ──────────────────────────────────────────────

    def _run_hops(self, path: Sequence[Any], amounts: List[int], payer: str, recipient: str) -> None:
        hops = self._hops(path)
        pools = [self.get_pool(token_in, token_out, fee) for token_in, fee, token_out in hops]
        self._move(hops[0][0], payer, pools[0].address, amounts[0])
        for i, ((token_in, fee, token_out), pool) in enumerate(zip(hops, pools)):
            receiver = pools[i + 1].address if i + 1 < len(pools) else recipient
            self._move(token_out, pool.address, receiver, amounts[i + 1])

    def _move(self, token: str, sender: str, receiver: str, amount: int) -> None:
        try:
            self.balances.transfer(token, sender, receiver, amount)
        except InsufficientBalance as exc:
            raise RouterRevert("TransferFailed", str(exc)) from exc

    def _payer(self, params: Dict[str, Any], caller: str) -> str:
        return caller if params.get("payer_is_user", True) else self.address

    def _resolve(self, recipient: str, caller: str) -> str:
        if recipient == MSG_SENDER:
            return caller
        if recipient == ADDRESS_THIS:
            return self.address
        return recipient

    @staticmethod
    def _hops(path: Sequence[Any]) -> List[Tuple[str, int, str]]:
        if len(path) < 3 or len(path) % 2 == 0:
            raise RouterRevert("InvalidPath", f"path length {len(path)}")
        hops = []
        for i in range(0, len(path) - 1, 2):
            token_in, fee, token_out = path[i], path[i + 1], path[i + 2]
            if not isinstance(fee, int) or isinstance(fee, bool):
                raise RouterRevert("InvalidPath", f"fee {fee!r} at position {i + 1}")
            hops.append((token_in, fee, token_out))
        return hops

    @staticmethod
    def _decode(blob: bytes) -> Dict[str, Any]:
        try:
            params = json.loads(bytes(blob).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise RouterRevert("InvalidInput", str(exc)) from exc
        if not isinstance(params, dict):
            raise RouterRevert("InvalidInput", "command input must be a JSON object")
        return params
