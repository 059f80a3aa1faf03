"""
Command Translator for the door bridge
Translates MQTT command payloads to door controller calls
"""

import logging
from typing import Dict, Optional, Tuple

from .device import DoorControlMode
from .errors import DeviceError, TranslationError

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 5

# payload -> (door control mode, resulting state)
COMMANDS: Dict[str, Tuple[DoorControlMode, str]] = {
    "LOCK": (DoorControlMode.CONTROLLED, "LOCKED"),
    "UNLOCK": (DoorControlMode.NORMALLY_OPEN, "UNLOCKED"),
}


class CommandTranslator:
    """Translates LOCK / UNLOCK payloads into door control calls"""

    def __init__(self, device, delay: int = DEFAULT_DELAY):
        """
        Args:
            device: Object with set_door_control(door, mode, delay)
            delay: Door open delay in seconds sent with every call
        """
        self.device = device
        self.delay = delay

    def translate(self, door: int, payload: bytes) -> Optional[str]:
        """
        Apply a command payload to the door

        Args:
            door: Door number on the controller
            payload: Raw MQTT payload

        Returns:
            State to publish ("LOCKED" / "UNLOCKED"), or None for unknown commands

        Raises:
            TranslationError: If the payload is not valid UTF-8
            DeviceError: If the door control call fails
        """
        try:
            command = payload.decode('utf-8')
        except UnicodeDecodeError as e:
            raise TranslationError(f"Command payload is not valid UTF-8: {payload!r}") from e

        if command not in COMMANDS:
            logger.warning(f"Unknown command: {command!r}")
            return None

        mode, state = COMMANDS[command]
        logger.info(f"{command.capitalize()}ing door {door}")

        try:
            self.device.set_door_control(door, mode, self.delay)
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(f"Door control failed: {e}") from e

        return state
