"""
The abstraction level is chosen so every operation is a single call keyed by the
modbus function code, and all timeouts/validation are handled within this class.
Basically it's pure modbus, with a (hopefully) better interface.
"""

import asyncio
import builtins
import ipaddress
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from fieldbuslib.transports import (
    ModbusSession,
    ModbusTransport,
    create_transport,
    request_timeout_for,
)
from fieldbuslib.types import (
    ConnectionError,
    DeviceEndpoint,
    FunctionCode,
    GenericError,
    InvalidArgumentError,
    NotConnectedError,
    ProtocolError,
    TimeoutError,
    Timeouts,
    UnsupportedFunctionError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _check_address(address: str):
    try:
        ipaddress.ip_address(address)
    except ValueError:
        raise ConnectionError(f"Invalid device address: {address!r}") from None


def _require_single_value(code: FunctionCode, quantity: int, values: list[int]):
    if quantity != 1:
        raise InvalidArgumentError(
            f"{code} writes exactly one element, got quantity {quantity}"
        )
    if not values:
        raise InvalidArgumentError(f"{code} needs a value to write")


def _require_matching_length(code: FunctionCode, quantity: int, values: list[int]):
    if len(values) != quantity:
        raise InvalidArgumentError(
            f"{code}: number of values ({len(values)}) "
            f"does not match quantity ({quantity})"
        )


class ModbusClient:
    """A modbus connection to a single station."""

    @dataclass
    class Stats:
        connections: int = 0
        read_calls_success: int = 0
        read_calls_failed: int = 0
        write_calls_success: int = 0
        write_calls_failed: int = 0
        timeouts: int = 0

    def __init__(
        self,
        endpoint: DeviceEndpoint,
        transport: ModbusTransport | None = None,
        timeouts: Timeouts | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeouts = timeouts or Timeouts()
        self._transport = transport or create_transport(
            request_timeout=request_timeout_for(self._timeouts)
        )
        self._session: ModbusSession | None = None
        self._stats = ModbusClient.Stats()

    @property
    def endpoint(self):
        return self._endpoint

    @property
    def stats(self):
        return self._stats

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """
        Establish the session, bounded by `timeouts.connect`.

        Raises TimeoutError when the deadline passes (the attempt is abandoned),
        ConnectionError for every other failure.
        """
        if self._session is not None:
            return

        _check_address(self._endpoint.address)
        logger.debug(f"Connecting to {self._endpoint}...")
        self._stats.connections += 1

        try:
            self._session = await self._with_deadline(
                self._transport.open(
                    self._endpoint.address,
                    self._endpoint.port,
                    self._endpoint.station_id,
                ),
                self._timeouts.connect,
                f"Connecting to {self._endpoint}",
            )
        except (TimeoutError, ConnectionError):
            raise
        except Exception as e:
            raise ConnectionError(f"Cannot connect to {self._endpoint}: {e}") from e

        logger.debug(f"Connected to {self._endpoint}")

    async def disconnect(self) -> None:
        """Always leaves the client disconnected, even if closing fails."""
        session, self._session = self._session, None
        if session is None:
            return

        logger.debug(f"Disconnecting from {self._endpoint}...")
        try:
            await session.close()
        except Exception as e:
            raise ProtocolError(f"Closing {self._endpoint} failed: {e}") from e
        logger.debug(f"Disconnected from {self._endpoint}")

    async def read(self, function_code: int, address: int, quantity: int) -> list[int]:
        """
        Read `quantity` coils, discrete inputs or registers starting at `address`.

        Coils and discrete inputs are returned as 0/1, so the result is always a
        list of 16 bit values in request order.
        """
        session = self._require_session()
        code = FunctionCode.parse(function_code)

        request: Awaitable[list[bool]] | Awaitable[list[int]]
        match code:
            case FunctionCode.READ_COILS:
                request = session.read_coils(address, quantity)
            case FunctionCode.READ_DISCRETE_INPUTS:
                request = session.read_discrete_inputs(address, quantity)
            case FunctionCode.READ_HOLDING_REGISTERS:
                request = session.read_holding_registers(address, quantity)
            case FunctionCode.READ_INPUT_REGISTERS:
                request = session.read_input_registers(address, quantity)
            case _:
                raise UnsupportedFunctionError(f"{code} is not a read function code")

        description = f"{self._endpoint}: read {code} at {address} (x{quantity})"
        logger.debug(description)
        try:
            values = await self._call(request, self._timeouts.for_read(code), description)
        except GenericError:
            self._stats.read_calls_failed += 1
            raise

        self._stats.read_calls_success += 1
        if code.is_bit_access:
            return [1 if bit else 0 for bit in values]
        return list(values)

    async def write(
        self,
        function_code: int,
        address: int,
        quantity: int,
        values: list[int],
    ) -> None:
        """
        Write `values` starting at `address`.

        For coils every value >= 1 is ON, 0 is OFF.
        Shape violations are reported before anything is sent.
        """
        session = self._require_session()
        code = FunctionCode.parse(function_code)

        request: Awaitable[None]
        match code:
            case FunctionCode.WRITE_SINGLE_COIL:
                _require_single_value(code, quantity, values)
                request = session.write_single_coil(address, values[0] >= 1)
            case FunctionCode.WRITE_SINGLE_REGISTER:
                _require_single_value(code, quantity, values)
                request = session.write_single_register(address, values[0])
            case FunctionCode.WRITE_MULTIPLE_COILS:
                _require_matching_length(code, quantity, values)
                request = session.write_multiple_coils(
                    address, [value >= 1 for value in values]
                )
            case FunctionCode.WRITE_MULTIPLE_REGISTERS:
                _require_matching_length(code, quantity, values)
                request = session.write_multiple_registers(address, list(values))
            case _:
                raise UnsupportedFunctionError(f"{code} is not a write function code")

        description = f"{self._endpoint}: write {code} at {address} (x{quantity})"
        logger.debug(description)
        try:
            await self._call(request, self._timeouts.write, description)
        except GenericError:
            self._stats.write_calls_failed += 1
            raise

        self._stats.write_calls_success += 1

    def _require_session(self) -> ModbusSession:
        if self._session is None:
            raise NotConnectedError(f"Not connected to {self._endpoint}")
        return self._session

    async def _call(self, request: Awaitable[T], deadline: float, description: str) -> T:
        try:
            return await self._with_deadline(request, deadline, description)
        except TimeoutError:
            # The request may still be in flight, the session is in an unknown state.
            logger.warning(f"{description} timed out, reconnect before reusing")
            raise
        except GenericError:
            raise
        except Exception as e:
            raise ProtocolError(f"{description} failed: {e}") from e

    async def _with_deadline(
        self, request: Awaitable[T], deadline: float, description: str
    ) -> T:
        timeout = asyncio.timeout(deadline)
        try:
            async with timeout:
                return await request
        except builtins.TimeoutError:
            if not timeout.expired():
                # Raised by the transport itself, not by our deadline.
                raise
            self._stats.timeouts += 1
            raise TimeoutError(f"{description} timed out after {deadline}s") from None

    async def __aenter__(self):
        """Called on 'async with' enter."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: object | None,
    ) -> None:
        """Called on 'async with' exit."""
        await self.disconnect()

    def __str__(self):
        return f"ModbusClient({self._endpoint})"
