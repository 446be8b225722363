#!/usr/bin/env python3
"""Example: connect to a Poseidon unit, refresh the sensors once and switch the valve."""

import sys

from pyposeidon_modbus import DeviceSession
from pyposeidon_modbus.errors import ConnectError, WriteError


def main() -> None:
    host = "192.168.1.10"  # change to your Poseidon IP
    port = 502

    try:
        with DeviceSession(host=host, port=port, variant="poseidon") as unit:
            failures = unit.refresh_all()
            for signal, err in failures.items():
                print(f"{signal.value}: read failed ({err})", file=sys.stderr)

            print(f"Temperature = {unit.get_temperature()} °C")
            print(f"Tank full   = {unit.is_tank_full()}")
            print(f"Pulses      = {unit.get_pulse_count()}")

            # Inspect where a signal lives on the wire
            print(f"explain(pulse_counter): {unit.explain('pulse_counter')}")

            # Switch to rainwater (uncomment if the unit may be driven)
            # unit.set_water_source(True)
    except ConnectError as e:
        print(f"Connection error: {e}", file=sys.stderr)
        sys.exit(1)
    except WriteError as e:
        print(f"Actuator write failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
