"""
Bridge session between the MQTT broker and the door controller

Owns the connection lifecycle: connect, subscribe to the command topic,
announce the door on the config topic, then poll for commands until stopped.
Everything runs on one thread, so the controller and the publish channel are
never used concurrently.
"""

import enum
import logging
import time
from typing import Callable, Optional

from .discovery import DiscoveryPayload
from .errors import DeviceError, TransportError, TranslationError
from .mqtt_client import QOS_AT_LEAST_ONCE, QOS_AT_MOST_ONCE
from .topics import TopicSet
from .translator import CommandTranslator

module_logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RUNNING = "running"


class Backoff:
    """Exponential reconnect delay, capped"""

    def __init__(self, initial: float = 1.0, factor: float = 2.0, maximum: float = 60.0):
        self.initial = initial
        self.factor = factor
        self.maximum = maximum
        self._next = initial

    def next_delay(self) -> float:
        delay = self._next
        self._next = min(self._next * self.factor, self.maximum)
        return delay

    def reset(self):
        self._next = self.initial


class BridgeSession:
    """Connects the command topic to the door controller"""

    def __init__(self,
                 transport,
                 translator: CommandTranslator,
                 topics: TopicSet,
                 name: str,
                 door: int,
                 logger: Optional[logging.Logger] = None,
                 fatal_state_publish: bool = False,
                 backoff: Optional[Backoff] = None,
                 poll_timeout: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            transport: MQTTTransport (or compatible) used for all broker traffic
            translator: Translator bound to the door controller
            topics: Config, state and command topics
            name: Display name announced in the discovery payload
            door: Door number on the controller
            logger: Logger for session events
            fatal_state_publish: Raise out of run() when a state publish fails
                instead of logging and continuing
            backoff: Reconnect delay policy
            poll_timeout: Seconds each poll may block
            sleep: Sleep function used between reconnect attempts
        """
        self.transport = transport
        self.translator = translator
        self.topics = topics
        self.door = door
        self.discovery = DiscoveryPayload.for_topics(topics, name)
        self.logger = logger or module_logger
        self.fatal_state_publish = fatal_state_publish
        self.backoff = backoff or Backoff()
        self.poll_timeout = poll_timeout
        self._sleep = sleep

        self.state = SessionState.DISCONNECTED
        self.running = False

    def start(self):
        """
        Connect, subscribe and publish the discovery payload

        Raises:
            TransportError: If any startup step fails
        """
        self.state = SessionState.CONNECTING
        try:
            self.transport.connect()
            self._subscribe_and_announce()
        except TransportError:
            self.state = SessionState.DISCONNECTED
            raise

    def _subscribe_and_announce(self):
        self.logger.info(f"Subscribing to {self.topics.command}")
        self.transport.subscribe(self.topics.command, qos=QOS_AT_MOST_ONCE)
        self.state = SessionState.SUBSCRIBED

        payload = self.discovery.to_json()
        self.logger.info(f"Publishing {payload} to {self.topics.config}")
        self.transport.publish(self.topics.config, payload, qos=QOS_AT_LEAST_ONCE, retain=True)

    def run(self, max_iterations: Optional[int] = None):
        """
        Poll for commands until stop() is called

        Args:
            max_iterations: Stop after this many polls (None runs forever)

        Raises:
            TransportError: If a state publish fails and fatal_state_publish is set
        """
        self.running = True
        self.state = SessionState.RUNNING
        iterations = 0

        while self.running:
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1

            try:
                messages = self.transport.poll(self.poll_timeout)
            except TransportError as e:
                self.logger.error(f"MQTT error: {e}")
                self.state = SessionState.DISCONNECTED
                self._reconnect()
                continue

            for message in messages:
                self.handle_message(message.topic, message.payload)

        self.running = False

    def stop(self):
        """Ask the receive loop to exit after the current poll"""
        self.running = False

    def _reconnect(self):
        while self.running:
            delay = self.backoff.next_delay()
            self.logger.info(f"Reconnecting in {delay:.0f}s")
            self._sleep(delay)

            self.state = SessionState.CONNECTING
            try:
                self.transport.reconnect()
                self._subscribe_and_announce()
            except TransportError as e:
                self.logger.warning(f"Reconnect failed: {e}")
                self.state = SessionState.DISCONNECTED
                continue

            self.backoff.reset()
            self.state = SessionState.RUNNING
            return

    def handle_message(self, topic: str, payload: bytes):
        """Dispatch one inbound message"""
        if topic != self.topics.command:
            self.logger.debug(f"Ignoring message on {topic}")
            return

        try:
            state = self.translator.translate(self.door, payload)
        except (TranslationError, DeviceError) as e:
            self.logger.error(f"Command failed: {e}")
            return

        if state is None:
            return

        self.logger.info(f"Publishing {state} to {self.topics.state}")
        try:
            self.transport.publish(self.topics.state, state, qos=QOS_AT_LEAST_ONCE, retain=False)
        except TransportError as e:
            if self.fatal_state_publish:
                raise
            self.logger.error(f"Failed to publish state {state}: {e}")
