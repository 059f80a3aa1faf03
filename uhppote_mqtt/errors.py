"""
Error types raised by the bridge

Errors raised before the receive loop starts are fatal; errors raised while
handling a single message are logged and the loop carries on.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors"""


class ConfigurationError(BridgeError):
    """Missing or invalid configuration, including incomplete broker credentials"""


class ResolutionError(BridgeError):
    """Broker credentials could not be fetched from the Supervisor"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(BridgeError):
    """MQTT connect, subscribe, publish or network loop failure"""


class TranslationError(BridgeError):
    """Inbound command payload could not be decoded"""


class DeviceError(BridgeError):
    """Door controller call failed or was rejected"""
