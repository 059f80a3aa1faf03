"""
UHPPOTE door controller access

Thin adapter over the uhppoted library. The controller is either addressed
directly by IP or found by UDP broadcast using its serial number.
"""

import enum
import logging
from typing import Optional, Tuple, Union

from uhppoted import uhppote

from .errors import DeviceError

logger = logging.getLogger(__name__)

UHPPOTE_PORT = 60000


class DoorControlMode(enum.IntEnum):
    """Door control modes as encoded by the controller"""
    NORMALLY_OPEN = 1
    NORMALLY_CLOSED = 2
    CONTROLLED = 3


class UhppoteDevice:
    """A single UHPPOTE access controller"""

    def __init__(self,
                 device_id: int,
                 address: Optional[str] = None,
                 bind: str = "0.0.0.0",
                 broadcast: str = "255.255.255.255:60000",
                 listen: str = "0.0.0.0:60001",
                 timeout: float = 2.5,
                 debug: bool = False):
        """
        Args:
            device_id: Controller serial number
            address: Controller IP (optionally "ip:port"); None to use broadcast
            bind: Local address for outgoing requests
            broadcast: Broadcast address used when no address is configured
            listen: Local address for controller events
            timeout: Reply timeout in seconds
            debug: Dump UDP packets
        """
        self.device_id = device_id
        self.address = address
        self.timeout = timeout
        self._api = uhppote.Uhppote(bind, broadcast, listen, debug)

        if address:
            logger.info(f"Using controller {device_id} at {self._controller_address()}")
        else:
            logger.info(f"Using controller {device_id} via broadcast {broadcast}")

    def _controller_address(self) -> str:
        if ':' in self.address:
            return self.address
        return f"{self.address}:{UHPPOTE_PORT}"

    @property
    def controller(self) -> Union[int, Tuple[int, str, str]]:
        """Controller reference in the form the uhppoted library expects"""
        if self.address:
            return (self.device_id, self._controller_address(), 'udp')
        return self.device_id

    def set_door_control(self, door: int, mode: DoorControlMode, delay: int):
        """
        Set the control mode and open delay of a door

        Raises:
            DeviceError: If the controller is unreachable or rejects the change
        """
        logger.debug(f"set-door-control {self.device_id} door={door} mode={mode.name} delay={delay}")
        try:
            response = self._api.set_door_control(self.controller, door, int(mode), delay, timeout=self.timeout)
        except Exception as e:
            raise DeviceError(f"set-door-control failed for controller {self.device_id}: {e}") from e

        if response is None:
            raise DeviceError(f"No reply from controller {self.device_id}")

        if response.mode != int(mode) or response.delay != delay:
            raise DeviceError(
                f"Controller {self.device_id} rejected door {door} control: "
                f"requested mode={int(mode)} delay={delay}, got mode={response.mode} delay={response.delay}"
            )

        return response
