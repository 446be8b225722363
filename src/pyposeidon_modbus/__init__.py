"""pyposeidon-modbus: Poseidon I/O unit sensor polling and actuator control over pymodbus TCP."""

__version__ = "0.1.0"

from .decode import combine_u32, decode_words, to_signed16
from .errors import (
    ConnectError,
    DecodeError,
    PoseidonError,
    RegisterReadError,
    UnknownSignalError,
    UpdateError,
    WriteError,
)
from .registermap import RegisterMap, get_default_registermap
from .session import DeviceSession
from .types import DecodeRule, DeviceVariant, ExplainInfo, ModbusTable, RegisterBinding, SensorSnapshot, Signal

__all__ = [
    "__version__",
    "DeviceSession",
    "ConnectError",
    "DecodeError",
    "PoseidonError",
    "RegisterReadError",
    "UnknownSignalError",
    "UpdateError",
    "WriteError",
    "combine_u32",
    "decode_words",
    "to_signed16",
    "RegisterMap",
    "get_default_registermap",
    "DecodeRule",
    "DeviceVariant",
    "ExplainInfo",
    "ModbusTable",
    "RegisterBinding",
    "SensorSnapshot",
    "Signal",
]
