"""
MQTT topic layout for a single bridged door
"""

from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass(frozen=True)
class TopicSet:
    """Topics derived from the configured base topic"""
    config: str    # discovery descriptor, retained
    state: str     # LOCKED / UNLOCKED
    command: str   # LOCK / UNLOCK


def derive(base_topic: str) -> TopicSet:
    """
    Derive the config, state and command topics from a base topic

    Args:
        base_topic: Base topic, e.g. "uhppote"

    Returns:
        TopicSet with "<base>/config", "<base>/state" and "<base>/command"

    Raises:
        ConfigurationError: If the base topic is empty
    """
    if not base_topic:
        raise ConfigurationError("base_topic must not be empty")

    return TopicSet(
        config=f"{base_topic}/config",
        state=f"{base_topic}/state",
        command=f"{base_topic}/command",
    )
