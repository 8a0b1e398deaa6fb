"""
Relay Reactor Exception Hierarchy

All exceptions inherit from ReactorError for easy catching.
Settlement outcomes a filler must be told about inherit from SettlementError.
"""


class ReactorError(Exception):
    """Base exception for all Relay Reactor errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidOrder(ReactorError):
    """Raised when an order violates its shape invariants"""
    pass


class InvalidSignature(ReactorError):
    """Raised when an order or cancellation signature does not verify"""
    pass


class InvalidFillPayload(ReactorError):
    """Raised when a fill payload is malformed or carries illegal native value"""
    pass


class InsufficientBalance(ReactorError):
    """Raised when an account cannot cover a transfer or burn"""
    pass


class LedgerError(ReactorError):
    """Raised when replay ledger operations fail"""
    pass


class ConfigError(ReactorError):
    """Raised when reactor configuration is missing or invalid"""
    pass


class SettlementError(ReactorError):
    """Raised when a settlement attempt is rejected"""
    pass


class OrderExpired(SettlementError):
    """Raised when the order deadline has passed"""
    pass


class OrderAlreadyFilled(SettlementError):
    """Raised when an order id was already consumed (replay)"""
    pass


class InsufficientInputFunding(SettlementError):
    """Raised when the payer cannot fund the order's input amount"""
    pass


class RouterExecutionFailed(SettlementError):
    """Raised when the external router call fails for any reason"""
    pass


class SlippageViolation(SettlementError):
    """Raised when the recipient receives less than the minimum output"""
    pass
