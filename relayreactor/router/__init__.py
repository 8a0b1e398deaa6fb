"""
Relay Reactor Router

RouterAdapter is the settlement core's capability interface.
SimulatedUniversalRouter and RoutePlanner are the external collaborator
a filler drives it with.
"""

from relayreactor.router.adapter import (
    CallableRouterAdapter,
    RouterAdapter,
    UniversalRouterAdapter,
)
from relayreactor.router.commands import Command, RoutePlanner
from relayreactor.router.universal import Pool, RouterRevert, SimulatedUniversalRouter

__all__ = [
    "RouterAdapter",
    "UniversalRouterAdapter",
    "CallableRouterAdapter",
    "Command",
    "RoutePlanner",
    "Pool",
    "RouterRevert",
    "SimulatedUniversalRouter",
]
