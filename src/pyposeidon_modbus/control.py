"""Water management rules: rainwater vs. municipal supply and pump enable, from cached sensor values."""

import logging

from .session import DeviceSession
from .types import SensorSnapshot

logger = logging.getLogger(__name__)

# Below this external temperature (°C) the rainwater circuit may freeze
FROST_THRESHOLD_C = 1.0


def no_frost(snapshot: SensorSnapshot) -> bool:
    """True when the last temperature is known and at or above the frost threshold."""
    if snapshot.temperature is None:
        return False
    return snapshot.temperature >= FROST_THRESHOLD_C


def should_use_rainwater(snapshot: SensorSnapshot) -> bool:
    """Use the rain tank only when it is full and there is no frost; otherwise fall back to city water."""
    return bool(snapshot.tank_full) and no_frost(snapshot)


def should_run_pump(snapshot: SensorSnapshot, demand: bool) -> bool:
    return bool(demand) and bool(snapshot.tank_full) and no_frost(snapshot)


def apply_water_source(session: DeviceSession) -> bool:
    """Write the valve from the session's cached snapshot; return True if rainwater was selected."""
    use_rain = should_use_rainwater(session.snapshot)
    session.set_water_source(use_rain)
    return use_rain


def apply_pump(session: DeviceSession, demand: bool) -> bool:
    """Write the pump relay from the cached snapshot and the watering demand; return the state written."""
    run = should_run_pump(session.snapshot, demand)
    logger.debug("Pump decision: demand=%s -> %s", demand, run)
    session.set_pump(run)
    return run
