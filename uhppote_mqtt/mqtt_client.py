"""
MQTT transport for the door bridge

Wraps paho-mqtt without starting its background network thread: the bridge
drives the network loop itself through poll(), so connect, subscribe, publish
and message dispatch all happen on one thread.
"""

import logging
import time
from collections import deque
from typing import Deque, List

import paho.mqtt.client as mqtt

from .credentials import BrokerCredentials
from .errors import TransportError

logger = logging.getLogger(__name__)

QOS_AT_MOST_ONCE = 0
QOS_AT_LEAST_ONCE = 1

DEFAULT_KEEPALIVE = 5
DEFAULT_CONNECT_TIMEOUT = 10


class MQTTTransport:
    """Single-threaded MQTT client for the bridge"""

    def __init__(self,
                 client_id: str,
                 credentials: BrokerCredentials,
                 keepalive: int = DEFAULT_KEEPALIVE,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT):
        """
        Initialize MQTT transport

        Args:
            client_id: MQTT client identifier
            credentials: Resolved broker host, port, username and password
            keepalive: Keep-alive interval in seconds
            connect_timeout: Seconds to wait for the broker's CONNACK
        """
        self.client_id = client_id
        self.host = credentials.host
        self.port = credentials.port
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self.client.username_pw_set(credentials.username, credentials.password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self.connected = False
        self._connect_result = None
        self._inbox: Deque[mqtt.MQTTMessage] = deque()

    def connect(self):
        """
        Connect to the broker and wait for CONNACK

        Raises:
            TransportError: If the connection cannot be opened or is refused
        """
        logger.info(f"Connecting to MQTT broker {self.host}:{self.port} as {self.client_id}")
        self._connect_result = None
        try:
            self.client.connect(self.host, self.port, keepalive=self.keepalive)
        except (OSError, ValueError) as e:
            raise TransportError(f"Failed to connect to {self.host}:{self.port}: {e}") from e
        self._wait_for_connack()

    def reconnect(self):
        """
        Reconnect using the parameters of the last connect()

        Raises:
            TransportError: If the broker is still unreachable or refuses the connection
        """
        logger.info(f"Reconnecting to MQTT broker {self.host}:{self.port}")
        self.connected = False
        self._connect_result = None
        try:
            self.client.reconnect()
        except (OSError, ValueError) as e:
            raise TransportError(f"Failed to reconnect to {self.host}:{self.port}: {e}") from e
        self._wait_for_connack()

    def _wait_for_connack(self):
        deadline = time.monotonic() + self.connect_timeout
        while not self.connected:
            if self._connect_result is not None:
                raise TransportError(f"Connection refused by broker: {self._connect_result}")
            if time.monotonic() >= deadline:
                raise TransportError(f"Timed out waiting for CONNACK from {self.host}:{self.port}")

            rc = self.client.loop(timeout=0.1)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                raise TransportError(f"Connection to {self.host}:{self.port} lost: {mqtt.error_string(rc)}")

        logger.info("Connected to MQTT broker")

    def disconnect(self):
        """Disconnect from the broker"""
        logger.info("Disconnecting from MQTT broker")
        self.client.disconnect()
        self.connected = False

    def subscribe(self, topic: str, qos: int = QOS_AT_MOST_ONCE):
        """
        Subscribe to a topic

        Raises:
            TransportError: If the SUBSCRIBE could not be sent
        """
        result, _mid = self.client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Failed to subscribe to {topic}: {mqtt.error_string(result)}")
        logger.info(f"Subscribed to {topic}")

    def publish(self, topic: str, payload: str, qos: int = QOS_AT_LEAST_ONCE, retain: bool = False):
        """
        Publish a message

        Raises:
            TransportError: If the PUBLISH could not be queued
        """
        info = self.client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Failed to publish to {topic}: {mqtt.error_string(info.rc)}")
        logger.debug(f"Published to {topic}")

    def poll(self, timeout: float = 1.0) -> List[mqtt.MQTTMessage]:
        """
        Run one iteration of the network loop

        Args:
            timeout: Maximum seconds to block waiting for network traffic

        Returns:
            Messages received during this iteration, in arrival order

        Raises:
            TransportError: If the connection was lost
        """
        rc = self.client.loop(timeout=timeout)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self.connected = False
            raise TransportError(f"MQTT network loop error: {mqtt.error_string(rc)}")

        messages = list(self._inbox)
        self._inbox.clear()
        return messages

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback for connection"""
        if reason_code == 0:
            self.connected = True
        else:
            self._connect_result = reason_code
            logger.error(f"Connection failed with code {reason_code}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback for disconnection"""
        self.connected = False
        if reason_code != 0:
            logger.warning(f"Unexpected disconnection (code {reason_code})")

    def _on_message(self, client, userdata, msg):
        """Callback for incoming messages"""
        self._inbox.append(msg)
