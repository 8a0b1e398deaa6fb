"""
Router Adapter — the settlement engine's only contact with an
external execution engine.

One operation: execute(payload, caller). No return value, no
introspection. Whatever goes wrong inside the router surfaces as a
single RouterExecutionFailed; the engine judges the outcome purely by
the balance deltas left behind.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from relayreactor.core.exceptions import RouterExecutionFailed
from relayreactor.core.models import FillPayload
from relayreactor.router.universal import RouterRevert, SimulatedUniversalRouter

logger = logging.getLogger(__name__)


class RouterAdapter(ABC):
    """Capability to execute an opaque fill payload on behalf of `caller`."""

    @abstractmethod
    def execute(self, payload: FillPayload, caller: str) -> None:
        """Run the payload. Raises RouterExecutionFailed on any failure."""


class UniversalRouterAdapter(RouterAdapter):
    """
    Adapter for SimulatedUniversalRouter.

    Forwards payload.value from the caller's native balance to the
    router, then executes the commands. Both steps share one balance
    transaction, so a revert leaves no partial transfer behind.
    """

    def __init__(self, router: SimulatedUniversalRouter) -> None:
        self.router = router

    def execute(self, payload: FillPayload, caller: str) -> None:
        balances = self.router.balances
        try:
            with balances.transaction():
                if payload.value:
                    balances.transfer(
                        self.router.native_asset, caller, self.router.address, payload.value,
                    )
                self.router.execute(payload.commands, payload.inputs, caller)
        except RouterRevert as exc:
            raise RouterExecutionFailed(
                "Router call reverted",
                {"router": self.router.address, "reason": exc.reason},
            ) from exc
        except Exception as exc:
            raise RouterExecutionFailed(
                "Router call failed",
                {"router": self.router.address, "error": f"{type(exc).__name__}: {exc}"},
            ) from exc


class CallableRouterAdapter(RouterAdapter):
    """
    Wrap an arbitrary callable `fn(payload, caller)` as a router.

    Used to plug in external execution engines (RPC clients, test
    doubles) without teaching the settlement engine about them.
    """

    def __init__(self, fn: Callable[[FillPayload, str], object], name: str = "callable-router") -> None:
        self.fn   = fn
        self.name = name

    def execute(self, payload: FillPayload, caller: str) -> None:
        try:
            self.fn(payload, caller)
        except RouterExecutionFailed:
            raise
        except Exception as exc:
            raise RouterExecutionFailed(
                "Router call failed",
                {"router": self.name, "error": f"{type(exc).__name__}: {exc}"},
            ) from exc
