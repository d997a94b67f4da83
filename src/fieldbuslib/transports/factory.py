import logging

from fieldbuslib.transports.AsyncModbusTransport import ModbusTransport
from fieldbuslib.transports.PymodbusTransport import PymodbusTransport
from fieldbuslib.types import ConnectionMode, Timeouts

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
# pymodbus must give up later than the client, never first.
REQUEST_TIMEOUT_MARGIN = 1.0


def request_timeout_for(timeouts: Timeouts) -> float:
    """Internal pymodbus timeout that outlasts every client deadline."""
    return max(DEFAULT_REQUEST_TIMEOUT, timeouts.longest() + REQUEST_TIMEOUT_MARGIN)


def create_transport(
    mode: ConnectionMode = ConnectionMode.TCP,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> ModbusTransport:
    match mode:
        case ConnectionMode.TCP | ConnectionMode.RTU_OVER_TCP:
            logger.debug(f"Using pymodbus transport for {mode} connections")
            return PymodbusTransport(mode, request_timeout)
    raise ValueError(f"Unsupported connection mode: {mode}")
