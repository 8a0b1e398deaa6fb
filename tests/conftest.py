"""
tests/conftest.py

Shared fixtures: a balance book with a DAI/USDC and a WETH/USDC pool,
the simulated universal router, a replay guard in tmp_path and a
settlement engine on a fixed clock. Also helpers that make the replay
ledger append fail part way (failed fsync, half-written line).
"""

import builtins
import errno
import os

import pytest

from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.models import NATIVE_ASSET, Order
from relayreactor.custody.balances import TokenBalances
from relayreactor.ledger import replay_guard as replay_guard_module
from relayreactor.ledger.replay_guard import ReplayGuard
from relayreactor.router.adapter import UniversalRouterAdapter
from relayreactor.router.commands import Command, RoutePlanner, v3_swap_exact_in
from relayreactor.router.universal import SimulatedUniversalRouter
from relayreactor.settlement.engine import SettlementEngine


NOW = 1_700_000_000

DAI  = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

RECIPIENT = "0x" + "11" * 20
FILLER    = "0x" + "22" * 20
FILLER_2  = "0x" + "33" * 20
ENGINE    = "reactor:relay"

DAI_UNIT  = 10 ** 18
USDC_UNIT = 10 ** 6
ETH_UNIT  = 10 ** 18


# ─────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def requester_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def engine_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def balances():
    return TokenBalances()


@pytest.fixture
def router(balances):
    """10M DAI / 10M USDC at 0.05%, 5k WETH / 10M USDC at 0.3%."""
    r = SimulatedUniversalRouter(balances, weth=WETH)
    r.create_pool(DAI, USDC, 500, 10_000_000 * DAI_UNIT, 10_000_000 * USDC_UNIT)
    r.create_pool(WETH, USDC, 3000, 5_000 * ETH_UNIT, 10_000_000 * USDC_UNIT)
    # WETH is backed 1:1 by native currency held at the WETH contract
    balances.mint(NATIVE_ASSET, WETH, 5_000 * ETH_UNIT)
    return r


@pytest.fixture
def adapter(router):
    return UniversalRouterAdapter(router)


@pytest.fixture
def replay_guard(engine_key, tmp_path):
    return ReplayGuard(engine_key, ledger_path=str(tmp_path / "ledger"))


@pytest.fixture
def engine(balances, adapter, replay_guard, engine_key):
    return SettlementEngine(
        balances=     balances,
        router=       adapter,
        replay_guard= replay_guard,
        key_manager=  engine_key,
        address=      ENGINE,
        clock=        lambda: NOW,
    )


@pytest.fixture
def make_order(requester_key):
    """Factory: a signed 100 DAI -> >=95 USDC order, fields overridable."""

    def _make(sign=True, **overrides):
        fields = dict(
            requester=         requester_key.public_key_hex,
            input_token=       DAI,
            input_amount=      100 * DAI_UNIT,
            output_token=      USDC,
            min_output_amount= 95 * USDC_UNIT,
            recipient=         RECIPIENT,
            deadline=          NOW + 3600,
            payer_is_user=     False,
            now=               NOW,
        )
        fields.update(overrides)
        order = Order.create(**fields)
        return order.sign(requester_key) if sign else order

    return _make


def exact_in_payload(order, swap_recipient, fee=500):
    """Single-hop exact-in swap of the whole order input, paid by the caller."""
    return RoutePlanner().add_command(
        Command.V3_SWAP_EXACT_IN,
        v3_swap_exact_in(
            recipient=      swap_recipient,
            amount_in=      order.input_amount,
            amount_out_min= 0,
            path=           [order.input_token, fee, order.output_token],
        ),
    ).build()


def fail_first_fsync(monkeypatch):
    """os.fsync raises once, then behaves normally."""
    real_fsync = os.fsync
    calls = []

    def fsync(fd):
        calls.append(fd)
        if len(calls) == 1:
            raise OSError(errno.EIO, "Input/output error")
        return real_fsync(fd)

    monkeypatch.setattr(os, "fsync", fsync)


class _HalfWriter:
    """Append handle that writes half the line, then runs out of space."""

    def __init__(self, f):
        self._f = f

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self._f.close()
        return False

    def write(self, text):
        self._f.write(text[: len(text) // 2])
        self._f.flush()
        raise OSError(errno.ENOSPC, "No space left on device")


def half_write_appends(monkeypatch):
    real_open = builtins.open

    def _open(path, mode="r", *args, **kwargs):
        f = real_open(path, mode, *args, **kwargs)
        return _HalfWriter(f) if mode == "a" else f

    monkeypatch.setattr(replay_guard_module, "open", _open, raising=False)
