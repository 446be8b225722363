"""RegisterMap: load packaged variant JSON via importlib.resources, or build from override entries."""

import json
import logging
from importlib import resources
from typing import Any

from .errors import UnknownSignalError
from .types import READ_SIGNALS, DecodeRule, DeviceVariant, ModbusTable, RegisterBinding, Signal

logger = logging.getLogger(__name__)

_PROFILE_RESOURCE: dict[str, str] = {
    DeviceVariant.POSEIDON.value: "pyposeidon_modbus.data.poseidon_registermap",
    DeviceVariant.SIMULATOR.value: "pyposeidon_modbus.data.simulator_registermap",
}


def _parse_signal(name: Any) -> Signal:
    try:
        return Signal(name)
    except ValueError:
        raise UnknownSignalError(str(name)) from None


def _parse_entry(raw: dict[str, Any]) -> RegisterBinding:
    """Build RegisterBinding from a JSON entry (signal, table, address, count, rule)."""
    signal_str = raw["signal"]
    try:
        signal = Signal(signal_str)
    except ValueError:
        raise ValueError(f"Unknown signal {signal_str!r}") from None
    try:
        table = ModbusTable(raw["table"])
    except ValueError:
        raise ValueError(f"Unknown table {raw['table']!r} for signal {signal_str!r}") from None
    try:
        rule = DecodeRule(raw["rule"])
    except ValueError:
        raise ValueError(f"Unknown decode rule {raw['rule']!r} for signal {signal_str!r}") from None
    address = int(raw["address"])
    # count defaults to what the rule needs; an explicit mismatch still fails
    count = int(raw.get("count", rule.word_count))
    return RegisterBinding(signal=signal, table=table, address=address, count=count, rule=rule)


class RegisterMap:
    """
    Signal -> RegisterBinding table for one device variant.

    Loaded from a packaged profile (default "poseidon") or from map_override,
    a list of entry dicts. The session never branches on the variant; every
    protocol difference is carried by the bindings.
    """

    def __init__(
        self,
        profile: str = "poseidon",
        map_override: list[dict[str, Any]] | None = None,
        unit_id: int | None = None,
    ) -> None:
        self._profile = profile.lower()
        self._unit_id = unit_id
        self._by_signal: dict[Signal, RegisterBinding] = {}

        if map_override is not None:
            for i, entry in enumerate(map_override):
                if not isinstance(entry, dict):
                    raise ValueError(f"Map entry {i} must be a dict, got {type(entry).__name__}")
            self._load_entries(map_override)
            self._profile = "custom"
            logger.debug("RegisterMap loaded from override: %d entries", len(self._by_signal))
            return

        resource_name = _PROFILE_RESOURCE.get(self._profile)
        if not resource_name:
            raise ValueError(f"Unknown profile: {profile!r}")

        pkg, name = resource_name.rsplit(".", 1)
        json_name = f"{name}.json"
        try:
            with resources.files(pkg).joinpath(json_name).open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise FileNotFoundError(f"Register map resource not found: {pkg}/{json_name}") from None

        if isinstance(data, dict):
            entries = data.get("entries", [])
            if self._unit_id is None and data.get("unit_id") is not None:
                self._unit_id = int(data["unit_id"])
        elif isinstance(data, list):
            entries = data
        else:
            entries = []

        self._load_entries(entries)
        logger.debug("RegisterMap loaded for profile %s: %d entries", self._profile, len(self._by_signal))

    def _load_entries(self, entries: list[dict[str, Any]]) -> None:
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            binding = _parse_entry(entry)
            if binding.signal in self._by_signal:
                raise ValueError(f"Duplicate signal in map: {binding.signal.value}")
            self._by_signal[binding.signal] = binding

    def lookup(self, signal: Signal | str) -> RegisterBinding:
        """Return the binding for a signal; raise UnknownSignalError if it is not bound."""
        sig = _parse_signal(signal)
        if sig not in self._by_signal:
            raise UnknownSignalError(sig.value, f"Signal not bound in {self._profile!r} map: {sig.value!r}")
        return self._by_signal[sig]

    def read_bindings(self) -> list[RegisterBinding]:
        """Bindings of the sensor signals present in the map, in refresh order."""
        return [self._by_signal[s] for s in READ_SIGNALS if s in self._by_signal]

    def write_bindings(self) -> list[RegisterBinding]:
        return [b for b in self._by_signal.values() if b.signal.writable]

    def __contains__(self, signal: object) -> bool:
        try:
            return Signal(signal) in self._by_signal
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._by_signal)

    @property
    def profile(self) -> str:
        return self._profile

    @property
    def unit_id(self) -> int | None:
        """Default unit id for this variant, if the profile declares one."""
        return self._unit_id


def get_default_registermap(profile: str = "poseidon") -> RegisterMap:
    """Load and return the packaged RegisterMap for the given variant (default poseidon)."""
    return RegisterMap(profile=profile)
