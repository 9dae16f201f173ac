"""Order & position ledger."""

from quantflow.ledger.ledger import Ledger

__all__ = ["Ledger"]
