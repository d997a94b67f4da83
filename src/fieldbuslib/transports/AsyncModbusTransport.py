from typing import Protocol, runtime_checkable


@runtime_checkable
class ModbusSession(Protocol):
    """
    An established session with one station behind a gateway.

    Reads return exactly `quantity` elements.
    Device failures are raised as ProtocolError (or any other exception, which the
    client will wrap into a ProtocolError).
    """

    async def read_coils(self, address: int, quantity: int) -> list[bool]: ...

    async def read_discrete_inputs(self, address: int, quantity: int) -> list[bool]: ...

    async def read_holding_registers(self, address: int, quantity: int) -> list[int]: ...

    async def read_input_registers(self, address: int, quantity: int) -> list[int]: ...

    async def write_single_coil(self, address: int, value: bool) -> None: ...

    async def write_single_register(self, address: int, value: int) -> None: ...

    async def write_multiple_coils(self, address: int, values: list[bool]) -> None: ...

    async def write_multiple_registers(self, address: int, values: list[int]) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class ModbusTransport(Protocol):
    async def open(self, address: str, port: int, station_id: int) -> ModbusSession:
        """Throws a ConnectionError if the session cannot be established."""
        ...
