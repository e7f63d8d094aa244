"""
Hub client layer: negotiation, framing, per-socket sessions, the session
registry and restart handling.
"""

from .negotiator import HubNegotiator
from .pin_validator import PinValidationResult, PinValidator
from .reconnection import ReconnectionOrchestrator
from .session import HubSession, HubSessionFactory, websocket_connector
from .session_registry import SessionRegistry

__all__ = [
    'HubNegotiator',
    'HubSession',
    'HubSessionFactory',
    'PinValidationResult',
    'PinValidator',
    'ReconnectionOrchestrator',
    'SessionRegistry',
    'websocket_connector',
]
