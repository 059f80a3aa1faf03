"""
Tests for the single-threaded MQTT transport
"""

import itertools
import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt

from uhppote_mqtt.errors import TransportError
from uhppote_mqtt.mqtt_client import QOS_AT_LEAST_ONCE, QOS_AT_MOST_ONCE, MQTTTransport


@pytest.fixture
def paho_client():
    with patch('uhppote_mqtt.mqtt_client.mqtt.Client') as MockClient:
        client = MagicMock()
        client.loop.return_value = mqtt.MQTT_ERR_SUCCESS
        client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
        client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS, mid=2)
        MockClient.return_value = client
        yield MockClient, client


@pytest.fixture
def transport(paho_client, credentials):
    return MQTTTransport("uhppote-mqtt", credentials, connect_timeout=0.5)


def accept_connection(transport, client):
    """Make the next loop() call deliver a successful CONNACK"""
    def loop(timeout=1.0):
        transport._on_connect(client, None, {}, 0, None)
        return mqtt.MQTT_ERR_SUCCESS
    client.loop.side_effect = loop


# ============================================================================
# Connection
# ============================================================================

class TestConnection:

    def test_client_setup(self, paho_client, credentials):
        """Should create a VERSION2 client with the configured id and credentials"""
        MockClient, client = paho_client

        MQTTTransport("uhppote-mqtt", credentials)

        MockClient.assert_called_once_with(mqtt.CallbackAPIVersion.VERSION2, client_id="uhppote-mqtt")
        client.username_pw_set.assert_called_once_with("mqtt_user", "mqtt_pass")

    def test_connect_uses_five_second_keepalive(self, paho_client, transport):
        _, client = paho_client
        accept_connection(transport, client)

        transport.connect()

        client.connect.assert_called_once_with("broker.local", 1883, keepalive=5)
        assert transport.connected is True
        client.loop_start.assert_not_called()

    def test_connect_socket_error(self, paho_client, transport):
        _, client = paho_client
        client.connect.side_effect = ConnectionRefusedError("Connection refused")

        with pytest.raises(TransportError, match="broker.local:1883"):
            transport.connect()

    def test_connect_refused_by_broker(self, paho_client, transport):
        """Should fail when CONNACK carries a failure code"""
        _, client = paho_client

        def loop(timeout=1.0):
            transport._on_connect(client, None, {}, 5, None)
            return mqtt.MQTT_ERR_SUCCESS
        client.loop.side_effect = loop

        with pytest.raises(TransportError, match="refused"):
            transport.connect()
        assert transport.connected is False

    def test_connect_timeout(self, paho_client, transport):
        _, client = paho_client

        clock = itertools.count(0.0, 0.3)

        with patch('uhppote_mqtt.mqtt_client.time.monotonic', side_effect=lambda: next(clock)):
            with pytest.raises(TransportError, match="Timed out"):
                transport.connect()

    def test_connection_lost_while_waiting(self, paho_client, transport):
        _, client = paho_client
        client.loop.return_value = mqtt.MQTT_ERR_CONN_LOST

        with pytest.raises(TransportError, match="lost"):
            transport.connect()

    def test_reconnect(self, paho_client, transport):
        _, client = paho_client
        accept_connection(transport, client)

        transport.reconnect()

        client.reconnect.assert_called_once()
        assert transport.connected is True

    def test_reconnect_failure(self, paho_client, transport):
        _, client = paho_client
        client.reconnect.side_effect = OSError("unreachable")

        with pytest.raises(TransportError):
            transport.reconnect()

    def test_on_disconnect(self, paho_client, transport):
        _, client = paho_client
        transport.connected = True

        transport._on_disconnect(client, None, {}, 7, None)

        assert transport.connected is False

    def test_disconnect(self, paho_client, transport):
        _, client = paho_client
        transport.connected = True

        transport.disconnect()

        client.disconnect.assert_called_once()
        assert transport.connected is False


# ============================================================================
# Subscribe / publish
# ============================================================================

class TestSubscribePublish:

    def test_subscribe(self, paho_client, transport):
        _, client = paho_client

        transport.subscribe("uhppote/command", qos=QOS_AT_MOST_ONCE)

        client.subscribe.assert_called_once_with("uhppote/command", qos=0)

    def test_subscribe_failure(self, paho_client, transport):
        _, client = paho_client
        client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

        with pytest.raises(TransportError, match="uhppote/command"):
            transport.subscribe("uhppote/command")

    def test_publish(self, paho_client, transport):
        _, client = paho_client

        transport.publish("uhppote/state", "LOCKED", qos=QOS_AT_LEAST_ONCE, retain=False)

        client.publish.assert_called_once_with("uhppote/state", "LOCKED", qos=1, retain=False)

    def test_publish_failure(self, paho_client, transport):
        _, client = paho_client
        client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN, mid=None)

        with pytest.raises(TransportError, match="uhppote/state"):
            transport.publish("uhppote/state", "LOCKED")


# ============================================================================
# Polling
# ============================================================================

class TestPoll:

    def test_returns_received_messages_in_order(self, paho_client, transport):
        _, client = paho_client
        first = SimpleNamespace(topic="uhppote/command", payload=b"LOCK")
        second = SimpleNamespace(topic="uhppote/command", payload=b"UNLOCK")

        def loop(timeout=1.0):
            transport._on_message(client, None, first)
            transport._on_message(client, None, second)
            return mqtt.MQTT_ERR_SUCCESS
        client.loop.side_effect = loop

        assert transport.poll(0.5) == [first, second]
        client.loop.assert_called_once_with(timeout=0.5)

    def test_inbox_drained(self, paho_client, transport):
        _, client = paho_client
        transport._on_message(client, None, SimpleNamespace(topic="t", payload=b"x"))

        assert len(transport.poll()) == 1
        assert transport.poll() == []

    def test_loop_error(self, paho_client, transport):
        _, client = paho_client
        transport.connected = True
        client.loop.return_value = mqtt.MQTT_ERR_CONN_LOST

        with pytest.raises(TransportError):
            transport.poll()
        assert transport.connected is False
