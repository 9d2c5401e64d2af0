"""
Core module for relaycast.
Contains configuration, logging, events and common exceptions.
"""

from .config import ServerConfig
from .events import ListenerRegistry
from .logging import setup_logging, debug_log, LoggerMixin
from .exceptions import RelaycastError, ProtocolError, ConnectionError, NegotiationError, ConfigError

__all__ = [
    'ServerConfig',
    'ListenerRegistry',
    'setup_logging',
    'debug_log',
    'LoggerMixin',
    'RelaycastError',
    'ProtocolError',
    'ConnectionError',
    'NegotiationError',
    'ConfigError'
]
