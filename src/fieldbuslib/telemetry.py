"""
Telemetry egress via MQTT.

Only publishing is supported; readings are sent as small json documents.
"""

import json
import logging

import paho.mqtt.client as mqtt

from fieldbuslib.types import DeviceEndpoint, FunctionCode, MqttSettings, TelemetryError

logger = logging.getLogger(__name__)


class MqttPublisher:
    KEEPALIVE = 5

    def __init__(self, settings: MqttSettings, client: mqtt.Client | None = None):
        self._settings = settings
        self._client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=settings.client_id
        )

    def connect(self):
        logger.debug(
            f"Connecting to MQTT broker {self._settings.broker}:{self._settings.port}"
        )
        try:
            self._client.connect(
                self._settings.broker, self._settings.port, keepalive=self.KEEPALIVE
            )
        except (OSError, ValueError) as e:
            raise TelemetryError(
                f"Cannot connect to MQTT broker {self._settings.broker}: {e}"
            ) from e
        self._client.loop_start()

    def disconnect(self):
        self._client.loop_stop()
        self._client.disconnect()

    def publish(self, topic: str, payload: str | bytes):
        info = self._client.publish(topic, payload, qos=1, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TelemetryError(
                f"Cannot publish to {topic}: {mqtt.error_string(info.rc)}"
            )

    def topic_for(self, endpoint: DeviceEndpoint, code: FunctionCode) -> str:
        return (
            f"{self._settings.topic_prefix}/{endpoint.address}/"
            f"{endpoint.station_id}/{code.value:02x}"
        )

    def publish_reading(
        self,
        endpoint: DeviceEndpoint,
        code: FunctionCode,
        address: int,
        values: list[int],
    ):
        payload = json.dumps(
            {"function_code": code.value, "address": address, "values": values}
        )
        self.publish(self.topic_for(endpoint, code), payload)
