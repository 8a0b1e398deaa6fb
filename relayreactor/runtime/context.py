"""
Runtime context for a relay reactor.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from relayreactor.config import ReactorConfig
from relayreactor.core.crypto import Ed25519KeyManager
from relayreactor.core.time import unix_now
from relayreactor.custody.balances import TokenBalances
from relayreactor.ledger.replay_guard import ReplayGuard
from relayreactor.router.adapter import RouterAdapter
from relayreactor.settlement.engine import SettlementEngine


@dataclass
class ReactorContext:
    """Everything a running reactor needs, wired from one config."""

    config: ReactorConfig
    key_manager: Ed25519KeyManager
    replay_guard: ReplayGuard
    settlement_engine: SettlementEngine

    @classmethod
    def from_config(
        cls,
        config: ReactorConfig,
        balances: TokenBalances,
        router: RouterAdapter,
        clock: Callable[[], int] = unix_now,
    ) -> "ReactorContext":
        """Create a reactor from config. Generates and saves the engine key on first run."""
        key_manager = Ed25519KeyManager.load_or_create(config.key_path)
        replay_guard = ReplayGuard(key_manager, ledger_path=str(config.ledger_path))
        settlement_engine = SettlementEngine(
            balances=balances,
            router=router,
            replay_guard=replay_guard,
            key_manager=key_manager,
            address=config.engine_address,
            native_asset=config.native_asset,
            require_signatures=config.require_signatures,
            clock=clock,
        )
        return cls(
            config=config,
            key_manager=key_manager,
            replay_guard=replay_guard,
            settlement_engine=settlement_engine,
        )

    @classmethod
    def from_yaml(
        cls,
        config_file: Path,
        balances: TokenBalances,
        router: RouterAdapter,
        clock: Callable[[], int] = unix_now,
    ) -> "ReactorContext":
        return cls.from_config(ReactorConfig.from_yaml(config_file), balances, router, clock)

    def __repr__(self) -> str:
        return (
            f"ReactorContext("
            f"engine={self.config.engine_address!r}, "
            f"consumed_orders={len(self.replay_guard)})"
        )
