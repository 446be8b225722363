#!/usr/bin/env python3
"""Example: fixed-count supervision loop against the Node.js simulator, with the water rules applied."""

import sys
import time

from pyposeidon_modbus import DeviceSession
from pyposeidon_modbus.control import apply_pump, apply_water_source
from pyposeidon_modbus.errors import ConnectError, WriteError


def main() -> None:
    host = "127.0.0.1"  # simulator address
    cycles = 10
    interval_s = 2.0

    try:
        with DeviceSession(host=host, variant="simulator") as unit:
            for i in range(1, cycles + 1):
                unit.refresh_all()
                print(f"cycle {i}/{cycles}: {unit.get_temperature()} °C, "
                      f"tank {'FULL' if unit.is_tank_full() else 'EMPTY'}, "
                      f"{unit.get_consumption_litres()} L")
                rain = apply_water_source(unit)
                pump = apply_pump(unit, demand=(i % 2 == 0))
                print(f"  source={'RAIN' if rain else 'CITY'} pump={'ON' if pump else 'OFF'}")
                time.sleep(interval_s)
    except KeyboardInterrupt:
        print("\nStopped.")
    except ConnectError as e:
        print(f"Connection error: {e}", file=sys.stderr)
        sys.exit(1)
    except WriteError as e:
        print(f"Actuator write failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
