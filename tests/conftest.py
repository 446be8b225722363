"""Shared fixtures: an in-memory stand-in for pymodbus ModbusTcpClient."""

from typing import Any

import pytest
from pymodbus.exceptions import ModbusIOException


class FakeResponse:
    def __init__(self, registers: list[int] | None = None, bits: list[bool] | None = None, error: bool = False) -> None:
        self.registers = registers or []
        self.bits = bits or []
        self._error = error

    def isError(self) -> bool:
        return self._error

    def __str__(self) -> str:
        return "ExceptionResponse(fake)" if self._error else "FakeResponse"


class FakeModbusClient:
    """
    Minimal sync Modbus server image. Tables are dicts of address -> value;
    (table, address) pairs in `errors` answer with an exception response and
    pairs in `raises` raise a pymodbus exception.
    """

    def __init__(self, connect_ok: bool = True) -> None:
        self.connect_ok = connect_ok
        self.coils: dict[int, bool] = {}
        self.discrete_inputs: dict[int, bool] = {}
        self.input_registers: dict[int, int] = {}
        self.holding_registers: dict[int, int] = {}
        self.errors: set[tuple[str, int]] = set()
        self.raises: set[tuple[str, int]] = set()
        self.calls: list[tuple[str, int, Any]] = []
        self.closed = 0

    def connect(self) -> bool:
        return self.connect_ok

    def close(self) -> None:
        self.closed += 1

    def _check(self, table: str, address: int) -> FakeResponse | None:
        if (table, address) in self.raises:
            raise ModbusIOException(f"no reply from {table}@{address}")
        if (table, address) in self.errors:
            return FakeResponse(error=True)
        return None

    def _bits(self, table: str, store: dict[int, bool], address: int, count: int) -> FakeResponse:
        failed = self._check(table, address)
        if failed is not None:
            return failed
        bits = [store.get(address + i, False) for i in range(count)]
        # pymodbus pads bit replies to a multiple of 8
        return FakeResponse(bits=bits + [False] * (-len(bits) % 8))

    def _regs(self, table: str, store: dict[int, int], address: int, count: int) -> FakeResponse:
        failed = self._check(table, address)
        if failed is not None:
            return failed
        return FakeResponse(registers=[store.get(address + i, 0) for i in range(count)])

    def read_coils(self, address: int, count: int = 1, device_id: int = 1) -> FakeResponse:
        self.calls.append(("read_coils", address, device_id))
        return self._bits("coil", self.coils, address, count)

    def read_discrete_inputs(self, address: int, count: int = 1, device_id: int = 1) -> FakeResponse:
        self.calls.append(("read_discrete_inputs", address, device_id))
        return self._bits("discrete_input", self.discrete_inputs, address, count)

    def read_input_registers(self, address: int, count: int = 1, device_id: int = 1) -> FakeResponse:
        self.calls.append(("read_input_registers", address, device_id))
        return self._regs("input_register", self.input_registers, address, count)

    def read_holding_registers(self, address: int, count: int = 1, device_id: int = 1) -> FakeResponse:
        self.calls.append(("read_holding_registers", address, device_id))
        return self._regs("holding_register", self.holding_registers, address, count)

    def write_coil(self, address: int, value: bool, device_id: int = 1) -> FakeResponse:
        self.calls.append(("write_coil", address, value))
        failed = self._check("coil", address)
        if failed is not None:
            return failed
        self.coils[address] = bool(value)
        return FakeResponse()


@pytest.fixture
def fake_client() -> FakeModbusClient:
    """Fake loaded with a healthy Poseidon image: -20.0 °C, tank full, 100000 pulses."""
    client = FakeModbusClient()
    client.input_registers.update({5: 0xFF38, 1: 0x0001, 2: 0x86A0})
    client.holding_registers.update({5: 44, 1: 1234})
    client.discrete_inputs[100] = True
    return client
