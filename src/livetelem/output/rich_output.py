from __future__ import annotations

from typing import TYPE_CHECKING

from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rich.console import Console

    from livetelem.models.telemetry import Device, Telemetry, Vector3
    from livetelem.models.training import TrainingStats
    from livetelem.stream.calibration import CalibrationStatus


def _num(value: float | None, unit: str = "", digits: int = 2) -> str:
    if value is None:
        return "-"
    return f"{value:.{digits}f}{unit}"


def _vec(vector: Vector3 | None) -> str:
    if vector is None:
        return "-"
    return ", ".join(_num(axis) for axis in (vector.x, vector.y, vector.z))


class RichOutput:
    """Rich-based terminal output helpers for *livetelem*."""

    def __init__(self, console: Console) -> None:
        self._con = console

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def device_list(self, devices: list[Device]) -> None:
        """Print a table of registered devices."""
        table = Table(title="Devices")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Registered")

        for d in devices:
            table.add_row(d.id, d.name, d.registered_at or "")

        self._con.print(table)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def telemetry(self, record: Telemetry) -> None:
        """Print one record as a field/value table (non-None only)."""
        table = Table(title=f"Telemetry {record.device_id}")
        table.add_column("Field", style="bold")
        table.add_column("Value")

        table.add_row("Timestamp", str(record.device_timestamp))
        table.add_row("Heading", f"{record.heading_degrees:.1f}°")
        if record.temperature_c is not None:
            table.add_row("Temperature", _num(record.temperature_c, "°C", 1))
        if record.battery_percent is not None:
            table.add_row("Battery", _num(record.battery_percent, "%", 0))
        if record.accel is not None:
            table.add_row("Accel", _vec(record.accel))
        if record.gyro is not None:
            table.add_row("Gyro", _vec(record.gyro))
        if record.mag is not None:
            table.add_row("Mag", _vec(record.mag))
        if record.latitude is not None and record.longitude is not None:
            table.add_row("Coordinates", f"{record.latitude}, {record.longitude}")
        if record.speed_kmh is not None:
            table.add_row("Speed", _num(record.speed_kmh, " km/h", 1))
        if record.altitude_m is not None:
            table.add_row("Altitude", _num(record.altitude_m, " m", 1))
        if record.pressure_hpa is not None:
            table.add_row("Pressure", _num(record.pressure_hpa, " hPa", 1))

        self._con.print(table)

    def telemetry_line(self, record: Telemetry) -> None:
        """Print a compact single-line summary, used while watching."""
        parts = [
            f"[cyan]{record.device_id}[/cyan]",
            f"ts={record.device_timestamp}",
            f"hdg={record.heading_degrees:.1f}°",
        ]
        if record.temperature_c is not None:
            parts.append(f"temp={_num(record.temperature_c, '°C', 1)}")
        if record.battery_percent is not None:
            parts.append(f"batt={_num(record.battery_percent, '%', 0)}")
        if record.accel is not None:
            parts.append(f"accel=({_vec(record.accel)})")
        self._con.print("  ".join(parts))

    def history_table(self, records: Iterable[Telemetry], *, title: str = "History") -> None:
        """Print records newest first."""
        table = Table(title=title)
        table.add_column("Device", style="cyan")
        table.add_column("Timestamp")
        table.add_column("Heading", justify="right")
        table.add_column("Temp", justify="right")
        table.add_column("Battery", justify="right")
        table.add_column("Accel")

        for r in records:
            table.add_row(
                r.device_id,
                str(r.device_timestamp),
                f"{r.heading_degrees:.1f}°",
                _num(r.temperature_c, "°C", 1),
                _num(r.battery_percent, "%", 0),
                _vec(r.accel),
            )

        self._con.print(table)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibration_status(self, status: CalibrationStatus) -> None:
        """Print the calibration phase with progress and badges."""
        device = status.device_id or "no device"
        if status.locked:
            text = f"[green]LOCKED[/green]  {device}  ({status.sample_count} samples)"
            if status.recently_locked:
                text += "  [bold green]just locked[/bold green]"
        elif status.is_calibrating:
            text = (
                f"[yellow]CALIBRATING[/yellow]  {device}  "
                f"{status.progress_percent}% ({status.sample_count} samples)"
            )
            if status.is_timeout_fallback:
                text += "  [dim]low data rate[/dim]"
        else:
            text = f"[dim]UNCALIBRATED[/dim]  {device}"
        self._con.print(text)

        if status.display_stats is not None:
            self.training_stats(status.display_stats)

    def training_stats(self, stats: TrainingStats) -> None:
        table = Table(title=f"Training {stats.device_id}")
        table.add_column("Field", style="bold")
        table.add_column("Value")

        if stats.orientation is not None:
            o = stats.orientation
            table.add_row(
                "Pitch / Roll / Yaw",
                f"{_num(o.pitch_deg)} / {_num(o.roll_deg)} / {_num(o.yaw_deg)}",
            )
        if stats.movement is not None:
            m = stats.movement
            table.add_row("Stability", _num(m.stability_score))
            table.add_row("Micro moves", _num(m.micro_move_rate, "/s"))
            table.add_row("Drift", f"{_num(m.drift_deg, '°')} {m.drift_dir.value}")
        if stats.window_s is not None:
            table.add_row("Window", f"{stats.window_s}s")

        self._con.print(table)

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    def panel(self, message: str) -> None:
        self._con.print(Panel(message, expand=False))

    def command_result(self, success: bool, message: str = "") -> None:
        """Print a coloured OK / FAILED indicator."""
        text = "[green]OK[/green]" if success else "[red]FAILED[/red]"
        if message:
            text += f"  {message}"
        self._con.print(text)

    def error(self, message: str) -> None:
        """Print a bold red error line."""
        self._con.print(f"[bold red]Error:[/bold red] {message}")

    def info(self, message: str) -> None:
        self._con.print(message)
