#!/usr/bin/env python3
"""Command-line driver for pyposeidon-modbus using Typer."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .control import apply_pump, apply_water_source
from .errors import ConnectError, PoseidonError, UnknownSignalError
from .registermap import get_default_registermap
from .session import DeviceSession
from .types import Signal

app = typer.Typer(
    name="poseidon",
    help="Poll a Poseidon I/O unit and drive its pump and water-source valve over Modbus TCP.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Poseidon hostname or IP address", envvar="POSEIDON_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="POSEIDON_PORT"),
]
UnitIdOption = Annotated[
    Optional[int],
    typer.Option("--unit-id", "-u", help="Modbus unit ID (default: from the variant)", envvar="POSEIDON_UNIT_ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Connect and response timeout in seconds", envvar="POSEIDON_TIMEOUT"),
]
RetriesOption = Annotated[
    int,
    typer.Option("--retries", "-r", help="pymodbus retries per request", envvar="POSEIDON_RETRIES"),
]
VariantOption = Annotated[
    str,
    typer.Option("--variant", help="Register map variant: poseidon or simulator", envvar="POSEIDON_VARIANT"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_session(
    host: Optional[str],
    port: int,
    unit_id: Optional[int],
    timeout: float,
    retries: int,
    variant: str,
) -> DeviceSession:
    """Create and return a DeviceSession instance."""
    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    return DeviceSession(
        host=host,
        port=port,
        unit_id=unit_id,
        timeout=timeout,
        retries=retries,
        variant=variant,
    )


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_source(value: str) -> bool:
    """Parse a water source name; True means rainwater."""
    v = value.lower().strip()
    if v in ("rain", "rainwater", "pluie"):
        return True
    if v in ("city", "municipal", "ville"):
        return False
    raise ValueError(f"Invalid water source: {value!r} (expected rain or city)")


def format_value(value: bool | int | float | None) -> str:
    """Format a cached value for display."""
    if value is None:
        return "n/a"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        return f"{value:.1f}"
    return str(value)


def snapshot_values(session: DeviceSession) -> dict[str, Any]:
    """Cached values of a session as a plain dict."""
    return {
        "temperature": session.get_temperature(),
        "tank_full": session.is_tank_full(),
        "pulse_count": session.get_pulse_count(),
        "consumption_litres": session.get_consumption_litres(),
    }


# Output name -> sensor signal, for per-signal update times
_UPDATED_FIELDS: tuple[tuple[str, Signal], ...] = (
    ("temperature", Signal.EXTERNAL_TEMPERATURE),
    ("tank_full", Signal.TANK_FULL),
    ("pulse_count", Signal.PULSE_COUNTER),
)


def snapshot_updated_at(session: DeviceSession) -> dict[str, str | None]:
    """ISO time of each signal's last successful read; None if never read."""
    stamps = session.snapshot.updated_at
    return {name: stamps[sig].isoformat() if sig in stamps else None for name, sig in _UPDATED_FIELDS}


def report_failures(failures: dict[Any, PoseidonError]) -> None:
    for signal, err in failures.items():
        name = getattr(signal, "value", signal)
        typer.echo(f"Warning: {name} read failed: {err}", err=True)


def fail(message: str, code: int, verbose: bool = False) -> None:
    typer.echo(f"Error: {message}", err=True)
    if verbose and code == 4:
        import traceback
        traceback.print_exc()
    raise typer.Exit(code)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def info(
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 0,
    variant: VariantOption = "poseidon",
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show package version and variant, and optionally test connectivity.

    Without --host: shows local metadata only.
    With --host: also opens and closes a session.
    """
    setup_logging(verbose)

    try:
        regmap = get_default_registermap(variant)
    except ValueError as e:
        fail(str(e), 2)

    info_data: dict[str, Any] = {
        "version": __version__,
        "variant": regmap.profile,
        "signals": len(regmap),
    }

    if host:
        session = create_session(host, port, unit_id, timeout, retries, variant)
        try:
            with session:
                info_data["connectivity"] = {
                    "status": "connected",
                    "host": session.host,
                    "port": session.port,
                    "unit_id": session.unit_id,
                    "variant": session.register_map.profile,
                }
        except ConnectError:
            info_data["connectivity"] = {"status": "failed", "host": host, "port": port}
        except Exception as e:
            info_data["connectivity"] = {"status": "error", "error": str(e)}

    if json_output:
        typer.echo(json.dumps(info_data, indent=2))
    else:
        typer.echo(f"pyposeidon-modbus version: {info_data['version']}")
        typer.echo(f"Variant: {info_data['variant']}")
        if "connectivity" in info_data:
            status = info_data["connectivity"]["status"]
            if status == "connected":
                typer.echo(f"Connectivity: OK ({host}:{port})")
            elif status == "failed":
                typer.echo(f"Connectivity: FAILED ({host}:{port})")
            else:
                typer.echo(f"Connectivity: ERROR - {info_data['connectivity'].get('error', 'unknown')}")


@app.command()
def explain(
    signal: Annotated[str, typer.Argument(help="Signal name (e.g. external_temperature, pump_relay)")],
    variant: VariantOption = "poseidon",
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show Modbus table, address, word count and decode rule of a signal.

    Does not require a connection; uses the packaged register map only.
    """
    setup_logging(verbose)

    try:
        session = DeviceSession(host="localhost", variant=variant)
        details = session.explain(signal)
    except UnknownSignalError as e:
        fail(f"Unknown signal: {e}", 2)
    except ValueError as e:
        fail(str(e), 2)

    if json_output:
        typer.echo(json.dumps(details, indent=2))
    else:
        typer.echo(f"Signal:          {details['signal']}")
        typer.echo(f"Modbus table:    {details['table']}")
        typer.echo(f"Address:         {details['address']}")
        typer.echo(f"Words:           {details['count']}")
        typer.echo(f"Decode rule:     {details['rule']}")
        typer.echo(f"Function:        {details['function_used']}")


@app.command()
def read(
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 0,
    variant: VariantOption = "poseidon",
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Refresh every sensor once and print the snapshot.

    Signals that fail to read are reported on stderr and shown as n/a.
    """
    setup_logging(verbose)

    try:
        session = create_session(host, port, unit_id, timeout, retries, variant)
        with session:
            failures = session.refresh_all()
            report_failures(failures)
            values = snapshot_values(session)
            updated_at = snapshot_updated_at(session)
    except typer.Exit:
        raise
    except UnknownSignalError as e:
        fail(f"Unknown signal: {e}", 2)
    except ValueError as e:
        fail(str(e), 2)
    except PoseidonError as e:
        fail(f"Connection/Modbus error: {e}", 3)
    except Exception as e:
        fail(f"Unexpected error: {e}", 4, verbose)

    if json_output:
        typer.echo(json.dumps({**values, "updated_at": updated_at}))
    else:
        tank = values["tank_full"]
        typer.echo(f"Temperature:  {format_value(values['temperature'])} °C")
        typer.echo(f"Tank:         {'n/a' if tank is None else ('FULL' if tank else 'EMPTY')}")
        typer.echo(f"Counter:      {format_value(values['pulse_count'])} pulses")
        typer.echo(f"Consumption:  {format_value(values['consumption_litres'])} L")


@app.command()
def poll(
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 0,
    variant: VariantOption = "poseidon",
    verbose: VerboseOption = False,
    cycles: Annotated[int, typer.Option("--cycles", "-n", help="Number of refresh cycles")] = 5,
    interval: Annotated[float, typer.Option("--interval", "-i", help="Delay between cycles in seconds")] = 2.0,
    format: Annotated[str, typer.Option("--format", "-f", help="Output format: text, json, csv")] = "text",
    regulate: Annotated[
        bool, typer.Option("--regulate", help="Select water source and drive the pump after each refresh")
    ] = False,
    demand_every: Annotated[
        int, typer.Option("--demand-every", help="With --regulate: request watering every N cycles (0 = never)")
    ] = 2,
) -> None:
    """
    Refresh the unit a fixed number of times with a delay between cycles.

    Outputs format:
    - text: timestamp + name=value pairs (default)
    - json: NDJSON with {"timestamp": "...", "values": {...}} per line
    - csv: one header line, one row per cycle

    A cycle where some signals fail keeps their previous values and goes on.
    Press Ctrl+C to stop early.
    """
    setup_logging(verbose)

    if format not in ("text", "json", "csv"):
        fail(f"Invalid format '{format}'. Must be text, json, or csv.", 2)
    if interval <= 0:
        fail(f"Interval must be positive, got {interval}", 2)
    if cycles < 1:
        fail(f"Cycles must be at least 1, got {cycles}", 2)
    if demand_every < 0:
        fail(f"--demand-every must be >= 0, got {demand_every}", 2)

    names = ["temperature", "tank_full", "pulse_count", "consumption_litres"]

    try:
        session = create_session(host, port, unit_id, timeout, retries, variant)

        if format == "csv":
            header = ["timestamp", *names]
            if regulate:
                header += ["rain_source", "pump"]
            header += [f"{name}_updated_at" for name, _sig in _UPDATED_FIELDS]
            typer.echo(",".join(header))

        with session:
            for cycle in range(1, cycles + 1):
                failures = session.refresh_all()
                report_failures(failures)
                values = snapshot_values(session)

                if regulate:
                    values["rain_source"] = apply_water_source(session)
                    demand = demand_every > 0 and cycle % demand_every == 0
                    values["pump"] = apply_pump(session, demand)

                updated_at = snapshot_updated_at(session)
                timestamp = datetime.now(timezone.utc).isoformat()
                if format == "text":
                    pairs = " ".join(f"{k}={format_value(v)}" for k, v in values.items())
                    typer.echo(f"{timestamp} {pairs}")
                elif format == "json":
                    output = {"timestamp": timestamp, "cycle": cycle, "values": values, "updated_at": updated_at}
                    typer.echo(json.dumps(output))
                elif format == "csv":
                    row = [timestamp, *(format_value(v) for v in values.values())]
                    row += [stamp or "" for stamp in updated_at.values()]
                    typer.echo(",".join(row))

                if cycle < cycles:
                    time.sleep(interval)
    except typer.Exit:
        raise
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)
    except UnknownSignalError as e:
        fail(f"Unknown signal: {e}", 2)
    except ValueError as e:
        fail(str(e), 2)
    except PoseidonError as e:
        fail(f"Connection/Modbus error: {e}", 3)
    except Exception as e:
        fail(f"Unexpected error: {e}", 4, verbose)


@app.command()
def pump(
    state: Annotated[str, typer.Argument(help="on/off (also true/false, 1/0, yes/no)")],
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 0,
    variant: VariantOption = "poseidon",
    verbose: VerboseOption = False,
) -> None:
    """Switch the pump relay on or off."""
    setup_logging(verbose)

    try:
        on = parse_bool(state)
    except ValueError as e:
        fail(f"Invalid value: {e}", 2)

    try:
        session = create_session(host, port, unit_id, timeout, retries, variant)
        with session:
            session.set_pump(on)
        typer.echo(f"OK: Pump {'ON' if on else 'OFF'}")
    except typer.Exit:
        raise
    except UnknownSignalError as e:
        fail(f"Unknown signal: {e}", 2)
    except PoseidonError as e:
        fail(f"Connection/Modbus error: {e}", 3)
    except Exception as e:
        fail(f"Unexpected error: {e}", 4, verbose)


@app.command()
def source(
    water: Annotated[str, typer.Argument(help="rain or city")],
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = None,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 0,
    variant: VariantOption = "poseidon",
    verbose: VerboseOption = False,
) -> None:
    """Switch the water-source valve between rainwater and municipal supply."""
    setup_logging(verbose)

    try:
        use_rain = parse_source(water)
    except ValueError as e:
        fail(f"Invalid value: {e}", 2)

    try:
        session = create_session(host, port, unit_id, timeout, retries, variant)
        with session:
            session.set_water_source(use_rain)
        typer.echo(f"OK: Water source {'RAIN' if use_rain else 'CITY'}")
    except typer.Exit:
        raise
    except UnknownSignalError as e:
        fail(f"Unknown signal: {e}", 2)
    except PoseidonError as e:
        fail(f"Connection/Modbus error: {e}", 3)
    except Exception as e:
        fail(f"Unexpected error: {e}", 4, verbose)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pyposeidon-modbus {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """poseidon - Poseidon I/O unit supervisor over Modbus TCP."""
    pass


if __name__ == "__main__":
    app()
