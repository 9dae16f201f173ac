"""Exception hierarchy shared by the engine, ledger and session controller."""


class QuantflowError(Exception):
    """Base class for engine errors."""


class ValidationError(QuantflowError, ValueError):
    """Input rejected at the boundary; never reaches the ledger."""


class MalformedBar(ValidationError):
    pass


class InvalidQuantity(ValidationError):
    pass


class StrategyError(QuantflowError):
    """Unhandled fault raised from inside a strategy's init/on_bar."""

    def __init__(self, message: str, bar_time=None):
        super().__init__(message)
        self.bar_time = bar_time


class CredentialError(QuantflowError):
    """LIVE mode requested without a usable key/secret pair."""


MissingCredentials = CredentialError


class StreamInterrupted(QuantflowError):
    """Live bar feed dropped."""


class EndOfStream(QuantflowError):
    """Bar source has no more bars."""
