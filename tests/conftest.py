"""
Shared pytest fixtures for uhppote-mqtt tests
"""

import json
import tempfile
import pytest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

from uhppote_mqtt.config import BridgeConfig
from uhppote_mqtt.credentials import BrokerCredentials
from uhppote_mqtt.topics import derive


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config_dict():
    """Options as written by the Home Assistant add-on"""
    return {
        "uhppote_device_id": 405419896,
        "name": "Front Door",
        "door": 1,
        "mqtt_id": "uhppote-mqtt",
        "mqtt_host": "broker.local",
        "mqtt_port": 1883,
        "mqtt_username": "mqtt_user",
        "mqtt_password": "mqtt_pass",
        "base_topic": "uhppote"
    }


@pytest.fixture
def config_file(temp_dir, config_dict):
    """Write the sample options to a JSON file"""
    path = temp_dir / "options.json"
    with open(path, 'w') as f:
        json.dump(config_dict, f, indent=2)
    return path


@pytest.fixture
def bridge_config(config_dict):
    return BridgeConfig.from_dict(config_dict)


@pytest.fixture
def credentials():
    return BrokerCredentials(host="broker.local", port=1883, username="mqtt_user", password="mqtt_pass")


@pytest.fixture
def topics():
    return derive("uhppote")


@pytest.fixture
def mock_transport():
    """Transport that accepts every operation and receives nothing"""
    transport = MagicMock()
    transport.poll.return_value = []
    return transport


@pytest.fixture
def mock_device():
    """Door controller that accepts every door control call"""
    device = MagicMock()
    device.set_door_control.return_value = SimpleNamespace(controller=405419896, door=1, mode=3, delay=5)
    return device


def make_message(topic, payload):
    """Inbound MQTT message as delivered by the transport"""
    return SimpleNamespace(topic=topic, payload=payload)


@pytest.fixture
def message():
    return make_message
