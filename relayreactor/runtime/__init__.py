"""
Relay Reactor Runtime - wiring a reactor from configuration.
"""

from relayreactor.runtime.context import ReactorContext

__all__ = ["ReactorContext"]
