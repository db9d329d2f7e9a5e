"""Station telemetry ingester.

MQTT → envelope decode → sensor catalog fan-out → entity resolver → batch writer → store
"""

__version__ = "0.4.0"
