"""
Contains the data model shared by the client, the transports and the loader,
and the errors the library raises.
It does NOT know about pymodbus.
"""

import logging
from collections.abc import Iterator
from dataclasses import astuple, dataclass
from enum import IntEnum, StrEnum

logger = logging.getLogger(__name__)


class GenericError(Exception):
    """Generic error for all fieldbuslib related errors."""


class NotConnectedError(GenericError):
    """An operation was attempted before connect() or after disconnect()."""


class TimeoutError(GenericError):  # noqa: A001
    """A bounded wait (connect, read or write) exceeded its deadline."""


class ProtocolError(GenericError):
    """The device answered within the deadline, but with a failure."""

    def __init__(self, message: str, exception_code: int | None = None):
        super().__init__(message)
        self.exception_code = exception_code


class InvalidArgumentError(GenericError):
    """Quantity/values do not match the shape the function code requires."""


class UnsupportedFunctionError(GenericError):
    """The function code is not one of the supported read/write codes."""


class ConnectionError(GenericError):  # noqa: A001
    """Network related error."""


class CannotConnectError(ConnectionError):
    pass


class ConfigError(GenericError):
    """The device descriptor file is malformed."""


class TelemetryError(GenericError):
    """Publishing to the telemetry broker failed."""


class ConnectionMode(StrEnum):
    TCP = "tcp"
    RTU_OVER_TCP = "rtu"


class FunctionCode(IntEnum):
    READ_COILS = 0x01
    READ_DISCRETE_INPUTS = 0x02
    READ_HOLDING_REGISTERS = 0x03
    READ_INPUT_REGISTERS = 0x04
    WRITE_SINGLE_COIL = 0x05
    WRITE_SINGLE_REGISTER = 0x06
    WRITE_MULTIPLE_COILS = 0x0F
    WRITE_MULTIPLE_REGISTERS = 0x10

    @classmethod
    def parse(cls, code: int) -> "FunctionCode":
        try:
            return cls(code)
        except ValueError:
            raise UnsupportedFunctionError(
                f"Unsupported function code: 0x{code:02X}"
            ) from None

    @property
    def is_bit_access(self) -> bool:
        """Coils and discrete inputs carry booleans, registers carry 16 bit ints."""
        return self in (
            FunctionCode.READ_COILS,
            FunctionCode.READ_DISCRETE_INPUTS,
            FunctionCode.WRITE_SINGLE_COIL,
            FunctionCode.WRITE_MULTIPLE_COILS,
        )

    def __str__(self):
        return f"0x{self.value:02X} ({self.name.lower()})"


@dataclass(frozen=True)
class Timeouts:
    """Deadlines in seconds."""

    connect: float = 5.0
    read_coils: float = 5.0
    # Shorter than the others. Kept as the default, override in the config file.
    read_discrete_inputs: float = 1.0
    read_holding_registers: float = 5.0
    read_input_registers: float = 5.0
    write: float = 5.0

    def longest(self) -> float:
        return max(astuple(self))

    def for_read(self, code: FunctionCode) -> float:
        match code:
            case FunctionCode.READ_COILS:
                return self.read_coils
            case FunctionCode.READ_DISCRETE_INPUTS:
                return self.read_discrete_inputs
            case FunctionCode.READ_HOLDING_REGISTERS:
                return self.read_holding_registers
            case FunctionCode.READ_INPUT_REGISTERS:
                return self.read_input_registers
            case _:
                raise UnsupportedFunctionError(f"{code} is not a read function code")


@dataclass(frozen=True)
class DeviceEndpoint:
    """One (gateway, station id) pair, the unit of connection."""

    address: str
    port: int
    station_id: int

    def __str__(self):
        return f"{self.address}:{self.port} (station {self.station_id})"


@dataclass(frozen=True)
class GatewayDescriptor:
    address: str
    port: int
    station_ids: tuple[int, ...]
    mode: ConnectionMode = ConnectionMode.TCP

    def endpoints(self) -> Iterator[DeviceEndpoint]:
        for station_id in self.station_ids:
            yield DeviceEndpoint(self.address, self.port, station_id)


@dataclass(frozen=True)
class MqttSettings:
    broker: str
    port: int = 1883
    client_id: str = "fieldbuslib"
    topic_prefix: str = "fieldbus"


@dataclass(frozen=True)
class DeviceConfig:
    gateways: tuple[GatewayDescriptor, ...]
    timeouts: Timeouts = Timeouts()
    mqtt: MqttSettings | None = None
