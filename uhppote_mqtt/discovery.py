"""
Home Assistant discovery descriptor for the bridged door
"""

import json
from dataclasses import dataclass, asdict

from .topics import TopicSet


@dataclass(frozen=True)
class DiscoveryPayload:
    """Descriptor published retained to the config topic"""
    command_topic: str
    state_topic: str
    name: str

    @classmethod
    def for_topics(cls, topics: TopicSet, name: str) -> "DiscoveryPayload":
        return cls(command_topic=topics.command, state_topic=topics.state, name=name)

    def to_json(self) -> str:
        return json.dumps(asdict(self))
