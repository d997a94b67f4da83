import logging

import pytest
from fakes import FakeSession, FakeTransport

from fieldbuslib import (
    ConnectionMode,
    DeviceConfig,
    FunctionCode,
    GatewayDescriptor,
    Operation,
    Timeouts,
    run_session,
)

FAST = Timeouts(connect=0.2, read_input_registers=0.1, read_holding_registers=0.1)


def config_for(*gateways: GatewayDescriptor, timeouts: Timeouts = FAST) -> DeviceConfig:
    return DeviceConfig(gateways=tuple(gateways), timeouts=timeouts)


class FakePublisher:
    def __init__(self):
        self.readings: list[tuple[object, ...]] = []

    def publish_reading(self, endpoint, code, address, values):
        self.readings.append((endpoint.station_id, code, address, values))


async def test_demo_sequence_per_station():
    session = FakeSession(registers=[1, 2, 3, 4])
    transport = FakeTransport(session)
    modes: list[ConnectionMode] = []
    timeouts: list[float] = []

    def factory(mode: ConnectionMode, request_timeout: float):
        modes.append(mode)
        timeouts.append(request_timeout)
        return transport

    report = await run_session(
        config_for(GatewayDescriptor("10.0.0.5", 502, (1, 2))),
        transport_factory=factory,
        settle_delay=0.0,
    )

    assert modes == [ConnectionMode.TCP]
    assert timeouts == [10.0]
    assert transport.opened == [("10.0.0.5", 502, 1), ("10.0.0.5", 502, 2)]
    assert session.calls == 2 * [
        ("read_input_registers", 0, 4),
        ("read_holding_registers", 0, 4),
        ("write_multiple_coils", 0, [True, True, True, True]),
    ]
    assert report.endpoints_connected == 2
    assert report.operations_succeeded == 6
    assert report.operations_failed == 0


async def test_connect_failure_skips_endpoint(caplog: pytest.LogCaptureFixture):
    good = FakeTransport(FakeSession(registers=[0, 0, 0, 0]))
    bad = FakeTransport(error=OSError("connection refused"))

    def factory(mode: ConnectionMode, request_timeout: float):
        return good if mode == ConnectionMode.TCP else bad

    with caplog.at_level(logging.INFO):
        report = await run_session(
            config_for(
                GatewayDescriptor("10.0.0.9", 502, (1,), ConnectionMode.RTU_OVER_TCP),
                GatewayDescriptor("10.0.0.5", 502, (1,)),
            ),
            transport_factory=factory,
            settle_delay=0.0,
        )

    assert report.endpoints_failed == 1
    assert report.endpoints_connected == 1
    assert report.operations_succeeded == 3
    assert "Connection to 10.0.0.9:502 (station 1) failed" in caplog.text
    assert "All device operations complete" in caplog.text


async def test_operation_failures_are_logged_and_skipped():
    session = FakeSession(error=RuntimeError("device busy"))
    report = await run_session(
        config_for(GatewayDescriptor("10.0.0.5", 502, (1,))),
        transport_factory=lambda mode, request_timeout: FakeTransport(session),
        settle_delay=0.0,
    )

    assert report.operations_failed == 3
    assert report.operations_succeeded == 0
    assert session.closed


async def test_timeout_reconnects_before_next_operation():
    session = FakeSession(registers=[1, 2, 3, 4], delay=0.5)
    transport = FakeTransport(session)
    operations = [
        Operation("slow", FunctionCode.READ_INPUT_REGISTERS, 0, 4),
        Operation("coil", FunctionCode.WRITE_SINGLE_COIL, 0, 1, (1,)),
    ]

    report = await run_session(
        config_for(GatewayDescriptor("10.0.0.5", 502, (1,))),
        transport_factory=lambda mode, request_timeout: transport,
        operations=operations,
        settle_delay=0.0,
    )

    assert len(transport.opened) == 2
    assert report.operations_failed == 1
    assert report.operations_succeeded == 1


async def test_invalid_template_address_is_skipped():
    transport = FakeTransport()
    report = await run_session(
        config_for(GatewayDescriptor("template", 0, (1,))),
        transport_factory=lambda mode, request_timeout: transport,
        settle_delay=0.0,
    )

    assert transport.opened == []
    assert report.endpoints_failed == 1


async def test_no_gateways(caplog: pytest.LogCaptureFixture):
    report = await run_session(config_for(), settle_delay=0.0)

    assert report.endpoints_connected == 0
    assert "No modbus gateways configured" in caplog.text


async def test_readings_are_published():
    publisher = FakePublisher()
    await run_session(
        config_for(GatewayDescriptor("10.0.0.5", 502, (4,))),
        transport_factory=lambda mode, request_timeout: FakeTransport(
            FakeSession(registers=[5, 6, 7, 8])
        ),
        settle_delay=0.0,
        publisher=publisher,  # type: ignore[arg-type]
    )

    assert publisher.readings == [
        (4, FunctionCode.READ_INPUT_REGISTERS, 0, [5, 6, 7, 8]),
        (4, FunctionCode.READ_HOLDING_REGISTERS, 0, [5, 6, 7, 8]),
    ]


async def test_request_timeout_outlasts_configured_deadlines():
    received: list[float] = []

    def factory(mode: ConnectionMode, request_timeout: float):
        received.append(request_timeout)
        return FakeTransport(FakeSession(registers=[0, 0, 0, 0]))

    await run_session(
        config_for(
            GatewayDescriptor("10.0.0.5", 502, (1,)),
            timeouts=Timeouts(read_holding_registers=30.0),
        ),
        transport_factory=factory,
        settle_delay=0.0,
    )

    assert len(received) == 1
    assert received[0] > 30.0


async def test_failed_reconnect_skips_remaining_operations(
    caplog: pytest.LogCaptureFixture,
):
    # The first open succeeds, the reconnect after the timeout is refused.
    transport = FakeTransport(
        FakeSession(registers=[1, 2, 3, 4], delay=0.5), refuse_after=1
    )
    operations = [
        Operation("slow", FunctionCode.READ_INPUT_REGISTERS, 0, 4),
        Operation("holding", FunctionCode.READ_HOLDING_REGISTERS, 0, 4),
        Operation("coil", FunctionCode.WRITE_SINGLE_COIL, 0, 1, (1,)),
    ]

    with caplog.at_level(logging.INFO):
        report = await run_session(
            config_for(GatewayDescriptor("10.0.0.5", 502, (1,))),
            transport_factory=lambda mode, request_timeout: transport,
            operations=operations,
            settle_delay=0.0,
        )

    assert len(transport.opened) == 2
    assert report.operations_failed == 3
    assert report.operations_succeeded == 0
    assert caplog.text.count("skipping 2 remaining operations") == 1
