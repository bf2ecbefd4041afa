"""RabbitMQ source lifecycle states."""
from enum import Enum


class SourceState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CHANNEL_OPEN = "CHANNEL_OPEN"
    READY = "READY"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
