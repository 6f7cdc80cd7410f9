"""Wire format of the bridge: tagged value codec and topic mapping."""

from zway_mqtt.protocol.codec import TypeCodec
from zway_mqtt.protocol.topics import PathTopicMapper

__all__ = [
    "PathTopicMapper",
    "TypeCodec",
]
