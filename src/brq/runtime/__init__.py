"""Runtime: the exchange state machine and the streaming handle."""

from .exchange import Exchange, ExchangeState, Listener
from .stream import RequestStream

__all__ = ["Exchange", "ExchangeState", "Listener", "RequestStream"]
