"""Core data model: Modbus tables, decode rules, signals, RegisterBinding and the sensor snapshot."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ModbusTable(str, Enum):
    """Modbus table types used for pymodbus dispatch."""

    COIL = "coil"
    DISCRETE_INPUT = "discrete_input"
    INPUT_REGISTER = "input_register"
    HOLDING_REGISTER = "holding_register"


class DecodeRule(str, Enum):
    """How the raw words of a binding turn into a value."""

    BOOL = "bool"
    INT16 = "int16"
    INT16_TENTHS = "int16_tenths"
    UINT16 = "uint16"
    UINT32 = "uint32"

    @property
    def word_count(self) -> int:
        return 2 if self is DecodeRule.UINT32 else 1


class Signal(str, Enum):
    """Logical signals of a Poseidon unit."""

    EXTERNAL_TEMPERATURE = "external_temperature"
    TANK_FULL = "tank_full"
    PULSE_COUNTER = "pulse_counter"
    PUMP_RELAY = "pump_relay"
    SOURCE_VALVE = "source_valve"

    @property
    def writable(self) -> bool:
        return self in (Signal.PUMP_RELAY, Signal.SOURCE_VALVE)


# Order in which refresh_all() reads the sensors
READ_SIGNALS: tuple[Signal, ...] = (
    Signal.EXTERNAL_TEMPERATURE,
    Signal.TANK_FULL,
    Signal.PULSE_COUNTER,
)


class DeviceVariant(str, Enum):
    """Packaged register map profiles."""

    POSEIDON = "poseidon"
    SIMULATOR = "simulator"


_BIT_TABLES = (ModbusTable.COIL, ModbusTable.DISCRETE_INPUT)


@dataclass(frozen=True)
class RegisterBinding:
    """One RegisterMap entry: where a signal lives on the wire and how to decode it."""

    signal: Signal
    table: ModbusTable
    address: int
    count: int
    rule: DecodeRule

    def __post_init__(self) -> None:
        if self.address < 0 or self.address > 0xFFFF:
            raise ValueError(f"address must be in 0..65535, got {self.address}")
        if self.count != self.rule.word_count:
            raise ValueError(
                f"{self.signal.value}: rule {self.rule.value!r} needs {self.rule.word_count} word(s), "
                f"got count={self.count}"
            )
        if self.address + self.count - 1 > 0xFFFF:
            raise ValueError(
                f"{self.signal.value}: {self.count} word(s) at address {self.address} run past 65535"
            )
        if self.table in _BIT_TABLES and self.rule is not DecodeRule.BOOL:
            raise ValueError(f"{self.signal.value}: table {self.table.value!r} only supports the 'bool' rule")
        if self.signal.writable and self.table is not ModbusTable.COIL:
            raise ValueError(f"{self.signal.value}: writable signals must be bound to a coil")

    @property
    def is_bit(self) -> bool:
        return self.table in _BIT_TABLES


@dataclass
class SensorSnapshot:
    """
    Last known sensor values. Each field is updated on its own, only after a
    successful decode; None means the signal was never read.
    """

    temperature: float | int | None = None
    tank_full: bool | None = None
    pulse_count: int | None = None
    updated_at: dict[Signal, datetime] = field(default_factory=dict)


@dataclass(frozen=True)
class ExplainInfo:
    """Result of session.explain(signal): binding details and the pymodbus function used."""

    signal: Signal
    table: ModbusTable
    address: int
    count: int
    rule: DecodeRule
    function_used: str
