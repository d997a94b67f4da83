import os

from .config import load_config as load_config
from .ModbusClient import ModbusClient as ModbusClient
from .session import DEMO_OPERATIONS as DEMO_OPERATIONS
from .session import Operation as Operation
from .session import run_session as run_session
from .telemetry import MqttPublisher as MqttPublisher
from .transports import ModbusSession as ModbusSession
from .transports import ModbusTransport as ModbusTransport
from .types import CannotConnectError as CannotConnectError
from .types import ConfigError as ConfigError
from .types import ConnectionError as ConnectionError
from .types import ConnectionMode as ConnectionMode
from .types import DeviceConfig as DeviceConfig
from .types import DeviceEndpoint as DeviceEndpoint
from .types import FunctionCode as FunctionCode
from .types import GatewayDescriptor as GatewayDescriptor
from .types import GenericError as GenericError
from .types import InvalidArgumentError as InvalidArgumentError
from .types import NotConnectedError as NotConnectedError
from .types import ProtocolError as ProtocolError
from .types import TimeoutError as TimeoutError
from .types import Timeouts as Timeouts
from .types import UnsupportedFunctionError as UnsupportedFunctionError

# Runtime type checks, only for package modules imported after this point
# (fieldbuslib.__main__). The modules imported above are not checked.
DEVELOPMENT = os.environ.get("FIELDBUSLIB_BEARTYPE", "1") == "1"
if DEVELOPMENT:
    from beartype.claw import beartype_this_package

    beartype_this_package()
