import json
from dataclasses import dataclass

import paho.mqtt.client as mqtt
import pytest

from fieldbuslib import DeviceEndpoint, FunctionCode, MqttPublisher
from fieldbuslib.types import MqttSettings, TelemetryError


@dataclass
class PublishInfo:
    rc: int


class FakeMqttClient:
    def __init__(
        self, rc: int = mqtt.MQTT_ERR_SUCCESS, connect_error: Exception | None = None
    ):
        self.rc = rc
        self.connect_error = connect_error
        self.published: list[tuple[str, object, int, bool]] = []
        self.connected_to: tuple[str, int, int] | None = None
        self.loop_running = False

    def connect(self, host: str, port: int, keepalive: int):
        if self.connect_error:
            raise self.connect_error
        self.connected_to = (host, port, keepalive)

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.connected_to = None

    def publish(self, topic: str, payload: object, qos: int, retain: bool):
        self.published.append((topic, payload, qos, retain))
        return PublishInfo(self.rc)


SETTINGS = MqttSettings(broker="broker.local", topic_prefix="plant")


def test_publish_reading():
    client = FakeMqttClient()
    publisher = MqttPublisher(SETTINGS, client)  # type: ignore[arg-type]

    publisher.connect()
    publisher.publish_reading(
        DeviceEndpoint("10.0.0.5", 502, 3), FunctionCode.READ_COILS, 8, [1, 0]
    )

    assert client.connected_to == ("broker.local", 1883, 5)
    assert client.loop_running
    topic, payload, qos, retain = client.published[0]
    assert topic == "plant/10.0.0.5/3/01"
    assert json.loads(payload) == {"function_code": 1, "address": 8, "values": [1, 0]}
    assert (qos, retain) == (1, False)

    publisher.disconnect()
    assert not client.loop_running


def test_publish_failure():
    publisher = MqttPublisher(SETTINGS, FakeMqttClient(rc=mqtt.MQTT_ERR_NO_CONN))  # type: ignore[arg-type]
    with pytest.raises(TelemetryError):
        publisher.publish("plant/x", "{}")


# paho raises ValueError for an unusable host name
@pytest.mark.parametrize(
    "error", [ConnectionRefusedError("refused"), ValueError("Invalid host.")]
)
def test_connect_failure(error: Exception):
    publisher = MqttPublisher(SETTINGS, FakeMqttClient(connect_error=error))  # type: ignore[arg-type]
    with pytest.raises(TelemetryError):
        publisher.connect()
