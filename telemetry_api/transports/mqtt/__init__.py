from .receiver import DEFAULT_TOPIC, TelemetryMQTTReceiver

__all__ = ["DEFAULT_TOPIC", "TelemetryMQTTReceiver"]
