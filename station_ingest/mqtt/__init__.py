"""MQTT intake.

- receiver.py: paho-mqtt client, subscription and reconnect logging
- async_processor.py: bounded queue + worker threads running the pipeline
"""

from .async_processor import AsyncMessageProcessor
from .receiver import ReceiverStats, StationMQTTReceiver

__all__ = ["AsyncMessageProcessor", "ReceiverStats", "StationMQTTReceiver"]
