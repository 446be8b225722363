"""DeviceSession: one Poseidon unit over pymodbus TCP, with a per-signal cached snapshot."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from .decode import decode_words
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
from .types import ExplainInfo, ModbusTable, RegisterBinding, SensorSnapshot, Signal

logger = logging.getLogger(__name__)

_READ_FUNCTIONS: dict[ModbusTable, str] = {
    ModbusTable.COIL: "read_coils",
    ModbusTable.DISCRETE_INPUT: "read_discrete_inputs",
    ModbusTable.INPUT_REGISTER: "read_input_registers",
    ModbusTable.HOLDING_REGISTER: "read_holding_registers",
}

# Snapshot attribute fed by each sensor signal
_SNAPSHOT_FIELDS: dict[Signal, str] = {
    Signal.EXTERNAL_TEMPERATURE: "temperature",
    Signal.TANK_FULL: "tank_full",
    Signal.PULSE_COUNTER: "pulse_count",
}


class DeviceSession:
    """
    Modbus TCP session to a single Poseidon unit.

    Reads and writes go through a RegisterMap, so the same code serves the real
    unit and the simulator. refresh_all() updates the snapshot signal by
    signal: a failing register is logged and keeps its previous value.

    Not thread-safe; serialise access to one session externally.
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        unit_id: int | None = None,
        variant: str = "poseidon",
        map_override: RegisterMap | None = None,
        timeout: float = 3.0,
        retries: int = 0,
        litres_per_pulse: float = 1.0,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._retries = retries
        self._litres_per_pulse = litres_per_pulse
        self._regmap = map_override if map_override is not None else get_default_registermap(variant)
        if unit_id is not None:
            self._unit_id = unit_id
        elif self._regmap.unit_id is not None:
            self._unit_id = self._regmap.unit_id
        else:
            self._unit_id = 1
        self._client: ModbusTcpClient | None = None
        self._snapshot = SensorSnapshot()
        self.last_errors: dict[Signal, PoseidonError] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Connect to the unit; raise ConnectError and keep no client on failure."""
        if self._client is not None:
            return
        client = ModbusTcpClient(
            host=self._host,
            port=self._port,
            timeout=self._timeout,
            retries=self._retries,
        )
        try:
            ok = client.connect()
        except Exception as e:
            self._release(client)
            raise ConnectError(
                self._host,
                self._port,
                f"Failed to connect to {self._host}:{self._port}: {e}",
                cause=e,
            ) from e
        if not ok:
            self._release(client)
            raise ConnectError(self._host, self._port)
        self._client = client
        logger.info("Connected to Poseidon at %s:%d (unit %d, map %s)", self._host, self._port, self._unit_id, self._regmap.profile)

    def close(self) -> None:
        """Close the TCP connection. Safe to call more than once."""
        if self._client is not None:
            client, self._client = self._client, None
            self._release(client)
            logger.info("Disconnected from %s:%d", self._host, self._port)

    @staticmethod
    def _release(client: ModbusTcpClient) -> None:
        try:
            client.close()
        except Exception as e:
            logger.warning("Error closing Modbus client: %s", e)

    @property
    def connected(self) -> bool:
        return self._client is not None

    def __enter__(self) -> "DeviceSession":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_client", None) is not None:
            self.close()

    # ------------------------------------------------------------------
    # Wire access
    # ------------------------------------------------------------------

    def _read_binding(self, client: ModbusTcpClient, binding: RegisterBinding) -> list[int]:
        sig = binding.signal.value
        table = binding.table.value
        addr = binding.address
        count = binding.count
        try:
            if binding.table == ModbusTable.COIL:
                rr = client.read_coils(addr, count=count, device_id=self._unit_id)
            elif binding.table == ModbusTable.DISCRETE_INPUT:
                rr = client.read_discrete_inputs(addr, count=count, device_id=self._unit_id)
            elif binding.table == ModbusTable.INPUT_REGISTER:
                rr = client.read_input_registers(addr, count=count, device_id=self._unit_id)
            elif binding.table == ModbusTable.HOLDING_REGISTER:
                rr = client.read_holding_registers(addr, count=count, device_id=self._unit_id)
            else:
                raise RegisterReadError(f"Unknown table: {binding.table}", signal=sig, table=table, address=addr)
        except PymodbusException as e:
            raise RegisterReadError(str(e), signal=sig, table=table, address=addr, cause=e) from e

        if rr.isError():
            raise RegisterReadError(
                str(rr),
                signal=sig,
                table=table,
                address=addr,
                cause=getattr(rr, "exception", None),
            )
        if binding.is_bit:
            bits = getattr(rr, "bits", None)
            # pymodbus pads bit replies to a whole byte
            if not bits or len(bits) < count:
                raise RegisterReadError("Short bit response", signal=sig, table=table, address=addr)
            return [1 if b else 0 for b in bits[:count]]
        registers = getattr(rr, "registers", None)
        if not registers or len(registers) < count:
            raise RegisterReadError("Short register response", signal=sig, table=table, address=addr)
        return [int(r) for r in registers[:count]]

    def _write_coil(self, signal: Signal, value: bool) -> None:
        if self._client is None:
            raise WriteError(f"Cannot write {signal.value}: session is not connected", signal=signal.value)
        try:
            binding = self._regmap.lookup(signal)
        except UnknownSignalError as e:
            raise WriteError(str(e), signal=signal.value, cause=e) from e
        addr = binding.address
        try:
            rr = self._client.write_coil(addr, bool(value), device_id=self._unit_id)
        except PymodbusException as e:
            raise WriteError(str(e), signal=signal.value, address=addr, cause=e) from e
        if rr.isError():
            raise WriteError(
                str(rr),
                signal=signal.value,
                address=addr,
                cause=getattr(rr, "exception", None),
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def refresh_all(self) -> dict[Signal, PoseidonError]:
        """
        Read every sensor signal in the map once and update the snapshot.

        Per-signal failures are logged, kept in last_errors and returned; they
        never abort the cycle, and the failed field keeps its previous value.
        Raises UpdateError only when the session is not connected.
        """
        if self._client is None:
            raise UpdateError()
        client = self._client
        failures: dict[Signal, PoseidonError] = {}
        for binding in self._regmap.read_bindings():
            try:
                words = self._read_binding(client, binding)
                value = decode_words(binding.rule, words, signal=binding.signal.value)
            except (RegisterReadError, DecodeError) as e:
                logger.warning("Read of %s failed (%s @ %d): %s", binding.signal.value, binding.table.value, binding.address, e)
                failures[binding.signal] = e
                continue
            setattr(self._snapshot, _SNAPSHOT_FIELDS[binding.signal], value)
            self._snapshot.updated_at[binding.signal] = datetime.now(timezone.utc)
            logger.debug("%s = %r (words %s)", binding.signal.value, value, words)
        self.last_errors = failures
        return failures

    def read(self, signal: Signal | str) -> bool | int | float:
        """Read and decode one signal (coils included) without touching the snapshot."""
        binding = self._regmap.lookup(signal)
        if self._client is None:
            raise RegisterReadError(
                "Session is not connected",
                signal=binding.signal.value,
                table=binding.table.value,
                address=binding.address,
            )
        words = self._read_binding(self._client, binding)
        return decode_words(binding.rule, words, signal=binding.signal.value)

    def get_temperature(self) -> float | int | None:
        return self._snapshot.temperature

    def is_tank_full(self) -> bool | None:
        return self._snapshot.tank_full

    def get_pulse_count(self) -> int | None:
        return self._snapshot.pulse_count

    def get_consumption_litres(self) -> float | None:
        """Water consumed since the counter started, from the cached pulse count."""
        if self._snapshot.pulse_count is None:
            return None
        return self._snapshot.pulse_count * self._litres_per_pulse

    @property
    def snapshot(self) -> SensorSnapshot:
        """Copy of the cached sensor values."""
        return replace(self._snapshot, updated_at=dict(self._snapshot.updated_at))

    def set_pump(self, on: bool) -> None:
        """Switch the pump relay. Raises WriteError; no retry, no read-back."""
        self._write_coil(Signal.PUMP_RELAY, on)
        logger.info("Pump set to %s", "ON" if on else "OFF")

    def set_water_source(self, use_rain: bool) -> None:
        """Select rainwater (True) or municipal supply (False). Raises WriteError; no retry, no read-back."""
        self._write_coil(Signal.SOURCE_VALVE, use_rain)
        logger.info("Water source set to %s", "RAIN" if use_rain else "CITY")

    def explain(self, signal: Signal | str) -> dict[str, Any]:
        """Return table, address, word count, rule and pymodbus function for a signal."""
        binding = self._regmap.lookup(signal)
        info = ExplainInfo(
            signal=binding.signal,
            table=binding.table,
            address=binding.address,
            count=binding.count,
            rule=binding.rule,
            function_used=_READ_FUNCTIONS.get(binding.table, "unknown"),
        )
        return {
            "signal": info.signal.value,
            "table": info.table.value,
            "address": info.address,
            "count": info.count,
            "rule": info.rule.value,
            "function_used": info.function_used,
            "write_function": "write_coil" if binding.signal.writable else None,
        }

    @property
    def register_map(self) -> RegisterMap:
        return self._regmap

    @property
    def unit_id(self) -> int:
        return self._unit_id

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port
