"""
Loads the device descriptor file (yaml) into a DeviceConfig.

If the file does not exist, a template with a single placeholder gateway is
written and returned, so the operator has something to fill in.
"""

import dataclasses
import logging
import pathlib

import yaml

from fieldbuslib.types import (
    ConfigError,
    ConnectionMode,
    DeviceConfig,
    GatewayDescriptor,
    MqttSettings,
    Timeouts,
)
from fieldbuslib.util import typesafe_get

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = pathlib.Path("modbus_config.yaml")


def default_config() -> DeviceConfig:
    return DeviceConfig(
        gateways=(GatewayDescriptor(address="template", port=0, station_ids=()),)
    )


def _dump_gateway(gateway: GatewayDescriptor) -> dict[str, object]:
    data: dict[str, object] = {
        "ip": gateway.address,
        "port": gateway.port,
        "slave_ids": list(gateway.station_ids),
    }
    if gateway.mode != ConnectionMode.TCP:
        data["mode"] = str(gateway.mode)
    return data


def dump_config(config: DeviceConfig) -> str:
    data: dict[str, object] = {
        "gateways": [_dump_gateway(g) for g in config.gateways],
    }
    if config.timeouts != Timeouts():
        data["timeouts"] = dataclasses.asdict(config.timeouts)
    if config.mqtt:
        data["mqtt"] = dataclasses.asdict(config.mqtt)
    return yaml.safe_dump(data, sort_keys=False)


def _parse_gateway(raw: object) -> GatewayDescriptor:
    station_ids = typesafe_get(raw, "slave_ids", list)
    for station_id in station_ids:
        if not isinstance(station_id, int) or isinstance(station_id, bool):
            raise ConfigError(f"Invalid station id: {station_id!r}")

    mode = typesafe_get(raw, "mode", str, default=str(ConnectionMode.TCP))
    try:
        connection_mode = ConnectionMode(mode)
    except ValueError:
        raise ConfigError(f"Unsupported connection mode: {mode!r}") from None

    return GatewayDescriptor(
        address=typesafe_get(raw, "ip", str),
        port=typesafe_get(raw, "port", int),
        station_ids=tuple(station_ids),
        mode=connection_mode,
    )


def _parse_timeouts(raw: object) -> Timeouts:
    if not isinstance(raw, dict):
        raise ConfigError("'timeouts' must be a mapping")

    known = {field.name for field in dataclasses.fields(Timeouts)}
    values: dict[str, float] = {}
    for key, value in raw.items():
        if key not in known:
            raise ConfigError(f"Unknown timeout '{key}', expected one of {sorted(known)}")
        if not isinstance(value, int | float) or isinstance(value, bool) or value <= 0:
            raise ConfigError(f"Timeout '{key}' must be a positive number of seconds")
        values[key] = float(value)
    return Timeouts(**values)


def _parse_mqtt(raw: object) -> MqttSettings:
    defaults = MqttSettings(broker="")
    broker = typesafe_get(raw, "broker", str)
    if not broker.strip():
        raise ConfigError("'mqtt.broker' must not be empty")
    return MqttSettings(
        broker=broker,
        port=typesafe_get(raw, "port", int, default=defaults.port),
        client_id=typesafe_get(raw, "client_id", str, default=defaults.client_id),
        topic_prefix=typesafe_get(
            raw, "topic_prefix", str, default=defaults.topic_prefix
        ),
    )


def parse_config(data: object) -> DeviceConfig:
    gateways = typesafe_get(data, "gateways", list)
    timeouts = typesafe_get(data, "timeouts", dict, default=None)
    mqtt = typesafe_get(data, "mqtt", dict, default=None)

    return DeviceConfig(
        gateways=tuple(_parse_gateway(g) for g in gateways),
        timeouts=_parse_timeouts(timeouts) if timeouts is not None else Timeouts(),
        mqtt=_parse_mqtt(mqtt) if mqtt is not None else None,
    )


def load_config(path: str | pathlib.Path = DEFAULT_CONFIG_PATH) -> DeviceConfig:
    path = pathlib.Path(path)

    if not path.exists():
        config = default_config()
        path.write_text(dump_config(config), encoding="utf-8")
        logger.warning(f"Config file not found, created a template at {path}")
        return config

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e

    config = parse_config(data)
    logger.debug(f"Loaded {len(config.gateways)} gateways from {path}")
    return config
