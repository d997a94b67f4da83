from fieldbuslib.transports.AsyncModbusTransport import (
    ModbusSession as ModbusSession,
)
from fieldbuslib.transports.AsyncModbusTransport import (
    ModbusTransport as ModbusTransport,
)
from fieldbuslib.transports.factory import create_transport as create_transport
from fieldbuslib.transports.PymodbusTransport import (
    PymodbusTransport as PymodbusTransport,
)
from fieldbuslib.transports.factory import (
    request_timeout_for as request_timeout_for,
)
