"""
A convinience wrapper for pymodbus.
"""

import logging
from collections.abc import Awaitable

import pymodbus.client
import pymodbus.exceptions
import pymodbus.pdu
from pymodbus import FramerType

from fieldbuslib.types import CannotConnectError, ConnectionMode, ProtocolError

logger = logging.getLogger(__name__)


async def _call_pymodbus(
    request: Awaitable[pymodbus.pdu.ModbusPDU],
    description: str,
) -> pymodbus.pdu.ModbusPDU:
    """Low level pymodbus abstraction, mostly for error handling."""

    try:
        rr: pymodbus.pdu.ModbusPDU = await request
    except pymodbus.exceptions.ConnectionException as e:
        raise ProtocolError(f"{description}: connection lost: {e}") from e
    except pymodbus.exceptions.ModbusIOException as e:
        raise ProtocolError(f"{description}: IO error in pymodbus: {e}") from e
    except pymodbus.exceptions.ModbusException as e:
        raise ProtocolError(f"{description}: {type(e).__name__}: {e}") from e

    if rr.isError():
        if isinstance(rr, pymodbus.pdu.ExceptionResponse):
            raise ProtocolError(
                f"{description}: device responded with exception code "
                f"{rr.exception_code}",
                exception_code=rr.exception_code,
            )
        raise ProtocolError(f"{description}: unknown error response: {rr}")

    return rr


def _check_length(received: int, quantity: int, description: str):
    if received < quantity:
        raise ProtocolError(
            f"{description}: mismatched number of elements "
            f"(requested {quantity}, responded {received})"
        )


class PymodbusSession:
    """An open pymodbus connection, bound to a single station."""

    def __init__(
        self, client: pymodbus.client.AsyncModbusTcpClient, station_id: int, name: str
    ):
        self._client = client
        self._station_id = station_id
        self._name = name

    async def read_coils(self, address: int, quantity: int) -> list[bool]:
        description = f"{self._name} read_coils({address}, {quantity})"
        rr = await _call_pymodbus(
            self._client.read_coils(
                address, count=quantity, device_id=self._station_id
            ),
            description,
        )
        # pymodbus pads bits up to a full byte
        _check_length(len(rr.bits), quantity, description)
        return list(rr.bits[:quantity])

    async def read_discrete_inputs(self, address: int, quantity: int) -> list[bool]:
        description = f"{self._name} read_discrete_inputs({address}, {quantity})"
        rr = await _call_pymodbus(
            self._client.read_discrete_inputs(
                address, count=quantity, device_id=self._station_id
            ),
            description,
        )
        _check_length(len(rr.bits), quantity, description)
        return list(rr.bits[:quantity])

    async def read_holding_registers(self, address: int, quantity: int) -> list[int]:
        description = f"{self._name} read_holding_registers({address}, {quantity})"
        rr = await _call_pymodbus(
            self._client.read_holding_registers(
                address, count=quantity, device_id=self._station_id
            ),
            description,
        )
        _check_length(len(rr.registers), quantity, description)
        return list(rr.registers[:quantity])

    async def read_input_registers(self, address: int, quantity: int) -> list[int]:
        description = f"{self._name} read_input_registers({address}, {quantity})"
        rr = await _call_pymodbus(
            self._client.read_input_registers(
                address, count=quantity, device_id=self._station_id
            ),
            description,
        )
        _check_length(len(rr.registers), quantity, description)
        return list(rr.registers[:quantity])

    async def write_single_coil(self, address: int, value: bool) -> None:
        await _call_pymodbus(
            self._client.write_coil(address, value, device_id=self._station_id),
            f"{self._name} write_coil({address})",
        )

    async def write_single_register(self, address: int, value: int) -> None:
        await _call_pymodbus(
            self._client.write_register(address, value, device_id=self._station_id),
            f"{self._name} write_register({address})",
        )

    async def write_multiple_coils(self, address: int, values: list[bool]) -> None:
        await _call_pymodbus(
            self._client.write_coils(address, values, device_id=self._station_id),
            f"{self._name} write_coils({address}, {len(values)})",
        )

    async def write_multiple_registers(self, address: int, values: list[int]) -> None:
        await _call_pymodbus(
            self._client.write_registers(address, values, device_id=self._station_id),
            f"{self._name} write_registers({address}, {len(values)})",
        )

    async def close(self) -> None:
        logger.debug(f"{self._name}: Disconnecting...")
        self._client.close()
        logger.debug(f"{self._name}: Disconnected")

    def __str__(self):
        return self._name


class PymodbusTransport:
    """
    Transport layer for pymodbus.

    Every open() creates a new pymodbus client, so sessions never share a socket.
    Automatic reconnects and retries of pymodbus are disabled, the caller decides.
    """

    def __init__(
        self,
        mode: ConnectionMode = ConnectionMode.TCP,
        request_timeout: float = 10.0,
    ):
        self._mode = mode
        # Needs to be above the deadlines of ModbusClient, otherwise pymodbus
        # reports an IO error before the client can report a timeout.
        self._request_timeout = request_timeout

    @staticmethod
    def default_port() -> int:
        return 502

    @property
    def framer(self) -> FramerType:
        match self._mode:
            case ConnectionMode.TCP:
                return FramerType.SOCKET
            case ConnectionMode.RTU_OVER_TCP:
                return FramerType.RTU

    async def open(self, address: str, port: int, station_id: int) -> PymodbusSession:
        name = f"{self._mode}://{address}:{port}/{station_id}"
        logger.debug(f"{name}: Connecting...")

        client = pymodbus.client.AsyncModbusTcpClient(
            host=address,
            port=port,
            framer=self.framer,
            timeout=self._request_timeout,
            retries=0,
            reconnect_delay=0,
        )
        try:
            connected = await client.connect()
        finally:
            # Also reached when the caller gives up waiting (cancellation).
            if not client.connected:
                client.close()

        if not connected:
            raise CannotConnectError(f"Cannot connect to {address}:{port}")

        logger.debug(f"{name}: Connected")
        return PymodbusSession(client, station_id, name)

    def __str__(self):
        return f"pymodbus({self._mode})"
