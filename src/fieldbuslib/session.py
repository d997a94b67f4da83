"""
Drives one ModbusClient per configured endpoint, strictly one after the other:
connect, run the operations, disconnect, next endpoint.

Failures of a single device are logged and skipped, never fatal.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from fieldbuslib.ModbusClient import ModbusClient
from fieldbuslib.telemetry import MqttPublisher
from fieldbuslib.transports import (
    ModbusTransport,
    create_transport,
    request_timeout_for,
)
from fieldbuslib.types import (
    ConnectionMode,
    DeviceConfig,
    DeviceEndpoint,
    FunctionCode,
    GenericError,
    TelemetryError,
    TimeoutError,
)

logger = logging.getLogger(__name__)

# Called with the gateway mode and the pymodbus request timeout.
TransportFactory = Callable[[ConnectionMode, float], ModbusTransport]


@dataclass(frozen=True)
class Operation:
    label: str
    function_code: FunctionCode
    address: int
    quantity: int
    values: tuple[int, ...] = ()

    @property
    def is_write(self) -> bool:
        return self.function_code >= FunctionCode.WRITE_SINGLE_COIL


DEMO_OPERATIONS: tuple[Operation, ...] = (
    Operation("input registers", FunctionCode.READ_INPUT_REGISTERS, 0, 4),
    Operation("holding registers", FunctionCode.READ_HOLDING_REGISTERS, 0, 4),
    Operation("coils", FunctionCode.WRITE_MULTIPLE_COILS, 0, 4, (1, 1, 1, 1)),
)


@dataclass
class SessionReport:
    endpoints_connected: int = 0
    endpoints_failed: int = 0
    operations_succeeded: int = 0
    operations_failed: int = 0


async def _run_operation(
    client: ModbusClient,
    operation: Operation,
    publisher: MqttPublisher | None,
):
    if operation.is_write:
        logger.info(f"Writing {operation.label}...")
        await client.write(
            operation.function_code,
            operation.address,
            operation.quantity,
            list(operation.values),
        )
        logger.info(f"Wrote {operation.label}")
        return

    logger.info(f"Reading {operation.label}...")
    values = await client.read(
        operation.function_code, operation.address, operation.quantity
    )
    logger.info(f"{operation.label}: {values}")

    if publisher:
        try:
            publisher.publish_reading(
                client.endpoint, operation.function_code, operation.address, values
            )
        except TelemetryError as e:
            logger.warning(f"Cannot publish {operation.label}: {e}")


async def run_endpoint(
    client: ModbusClient,
    operations: Sequence[Operation],
    report: SessionReport,
    settle_delay: float = 0.1,
    publisher: MqttPublisher | None = None,
) -> bool:
    """Returns False if the endpoint could not be connected."""
    endpoint = client.endpoint
    logger.info(f"Connecting to {endpoint}")
    try:
        await client.connect()
    except GenericError as e:
        logger.error(f"Connection to {endpoint} failed: {e}")
        report.endpoints_failed += 1
        return False

    logger.info(f"Connected to {endpoint}")
    report.endpoints_connected += 1

    # Give the session some time to settle
    await asyncio.sleep(settle_delay)

    for index, operation in enumerate(operations):
        if not client.connected:
            # Reconnect after a timeout failed, don't try the rest.
            skipped = len(operations) - index
            logger.error(
                f"Not connected to {endpoint}, skipping {skipped} remaining operations"
            )
            report.operations_failed += skipped
            break

        try:
            await _run_operation(client, operation, publisher)
            report.operations_succeeded += 1
        except TimeoutError as e:
            report.operations_failed += 1
            logger.error(f"{operation.label} failed: {e}")
            await _reconnect(client)
        except GenericError as e:
            report.operations_failed += 1
            logger.error(f"{operation.label} failed: {e}")

    try:
        await client.disconnect()
        logger.info(f"Disconnected from {endpoint}")
    except GenericError as e:
        logger.error(f"Disconnecting from {endpoint} failed: {e}")

    return True


async def _reconnect(client: ModbusClient):
    # The timed out request may still arrive later, use a fresh session.
    try:
        await client.disconnect()
    except GenericError as e:
        logger.debug(f"Ignoring error while closing timed out session: {e}")

    try:
        await client.connect()
    except GenericError as e:
        logger.error(f"Reconnecting to {client.endpoint} failed: {e}")


async def run_session(
    config: DeviceConfig,
    *,
    transport_factory: TransportFactory = create_transport,
    operations: Sequence[Operation] = DEMO_OPERATIONS,
    settle_delay: float = 0.1,
    publisher: MqttPublisher | None = None,
) -> SessionReport:
    report = SessionReport()

    if not config.gateways:
        logger.warning("No modbus gateways configured")
        return report

    request_timeout = request_timeout_for(config.timeouts)
    for gateway in config.gateways:
        logger.info(f"Processing gateway {gateway.address}:{gateway.port}")
        transport = transport_factory(gateway.mode, request_timeout)

        for endpoint in gateway.endpoints():
            client = ModbusClient(endpoint, transport, config.timeouts)
            await run_endpoint(client, operations, report, settle_delay, publisher)

    logger.info(
        f"All device operations complete: "
        f"{report.endpoints_connected} connected, "
        f"{report.endpoints_failed} failed, "
        f"{report.operations_succeeded}/"
        f"{report.operations_succeeded + report.operations_failed} operations succeeded"
    )
    return report


def endpoints_of(config: DeviceConfig) -> list[DeviceEndpoint]:
    return [e for gateway in config.gateways for e in gateway.endpoints()]
