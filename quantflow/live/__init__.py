"""Live / paper trading sessions."""

from quantflow.live.log_ring import LogRing
from quantflow.live.session import Credentials, LiveSessionController, SessionMode, SessionSnapshot

__all__ = ["LogRing", "Credentials", "LiveSessionController", "SessionMode", "SessionSnapshot"]
