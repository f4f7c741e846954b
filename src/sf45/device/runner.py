from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import HostConfig, apply_scan_config, load_config
from .errors import SF45Error, TransportError
from .processing import SampleRecorder
from .session import DeviceSession
from .stream import StreamController
from .transport import LwnxSerialTransport

logger = logging.getLogger(__name__)


PRESETS: Dict[str, Dict[str, Any]] = {
    "wide": {"fov": 320.0, "scan_speed": 15, "sample_rate_hz": 5000},
    "front": {"fov": 90.0, "scan_speed": 10, "sample_rate_hz": 2500},
    "slow": {"fov": 180.0, "scan_speed": 200, "sample_rate_hz": 500},
}


def preset_overrides(preset: str) -> list[str]:
    data = PRESETS[preset]
    return [
        f"scan.fov={data['fov']}",
        f"scan.scan_speed={data['scan_speed']}",
        f"scan.sample_rate_hz={data['sample_rate_hz']}",
    ]


def resolve_config(
    config_path: Optional[Path],
    preset: Optional[str],
    port: Optional[str],
    baudrate: Optional[int],
    override: Optional[List[str]],
) -> HostConfig:
    overrides: list[str] = []
    if preset:
        key = preset.lower()
        if key not in PRESETS:
            raise typer.BadParameter(f"Unknown preset '{preset}'. Expected one of {list(PRESETS)}")
        overrides.extend(preset_overrides(key))
    if port:
        overrides.append(f"serial.port={port}")
    if baudrate:
        overrides.append(f"serial.baudrate={baudrate}")
    overrides.extend(override or [])
    try:
        return load_config(config_path, overrides or None)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid configuration: {exc}") from exc


def open_session(cfg: HostConfig) -> DeviceSession:
    transport = LwnxSerialTransport(cfg.serial)
    try:
        return DeviceSession(transport)
    except TransportError as exc:
        typer.echo(f"Could not connect: {exc}", err=True)
        raise typer.Exit(code=1) from exc


app = typer.Typer(add_completion=False, help="SF45 scanning rangefinder host utilities.")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Python logging level."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_PORT = typer.Option(None, "--port", "-p", help="Serial device (overrides config).")
_BAUD = typer.Option(None, "--baud", help="Serial baudrate (overrides config).")
_CONFIG = typer.Option(None, "--config", "-c", help="Path to host config JSON.")
_PRESET = typer.Option(None, "--preset", "-P", help="Apply preset (wide|front|slow) before other overrides.")
_SET = typer.Option(None, "--set", help="Override config keys, e.g. --set scan.scan_speed=20")


@app.command()
def info(
    port: Optional[str] = _PORT,
    baudrate: Optional[int] = _BAUD,
    config_path: Optional[Path] = _CONFIG,
) -> None:
    """Print the unit header and the current scan configuration."""

    cfg = resolve_config(config_path, None, port, baudrate, None)
    with open_session(cfg) as session:
        try:
            for line in session.describe():
                typer.echo(line)
            typer.echo(f"{'Scan speed:':<15}{session.get_scan_speed():>10}")
            typer.echo(f"{'Sample rate:':<15}{session.get_sample_rate().hz:>7} Hz")
            typer.echo(f"{'Low angle:':<15}{session.get_low_angle():>10.1f}")
            typer.echo(f"{'High angle:':<15}{session.get_high_angle():>10.1f}")
            typer.echo(f"{'Outputs:':<15}{int(session.get_output_fields()):>#10x}")
        except SF45Error as exc:
            typer.echo(f"Device query failed: {exc}", err=True)
            raise typer.Exit(code=1) from exc


@app.command()
def configure(
    port: Optional[str] = _PORT,
    baudrate: Optional[int] = _BAUD,
    config_path: Optional[Path] = _CONFIG,
    preset: Optional[str] = _PRESET,
    override: Optional[List[str]] = _SET,
    stream_output: Optional[bool] = typer.Option(
        None, "--stream/--no-stream", help="Also switch device stream output on or off."
    ),
) -> None:
    """Validate and write the scan configuration to the device."""

    cfg = resolve_config(config_path, preset, port, baudrate, override)
    with open_session(cfg) as session:
        try:
            apply_scan_config(session, cfg.scan)
            if stream_output is not None:
                session.enable_stream(stream_output)
            fov = session.get_field_of_view()
        except SF45Error as exc:
            typer.echo(f"Configuration failed: {exc}", err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(
        f"Configured: speed={cfg.scan.scan_speed} rate={cfg.scan.sample_rate_hz}Hz fov={fov:.1f}"
    )


@app.command()
def poll(
    port: Optional[str] = _PORT,
    baudrate: Optional[int] = _BAUD,
    config_path: Optional[Path] = _CONFIG,
    count: int = typer.Option(1, "--count", "-n", min=1, help="Number of single polls."),
) -> None:
    """Request single distance samples and print them."""

    cfg = resolve_config(config_path, None, port, baudrate, None)
    failures = 0
    with open_session(cfg) as session:
        for _ in range(count):
            try:
                sample = session.poll_once(cfg.serial.timeout_ms)
            except (TransportError, ValueError) as exc:
                failures += 1
                logger.warning("Poll failed: %s", exc)
                continue
            typer.echo(
                f"angle={sample.angle:7.2f} first={sample.first_dist_filtered:5d}cm "
                f"strength={sample.first_strength:5d} last={sample.last_dist_filtered:5d}cm "
                f"noise={sample.noise} temp={sample.temperature:.2f}"
            )
    if failures == count:
        raise typer.Exit(code=1)


@app.command()
def stream(
    port: Optional[str] = _PORT,
    baudrate: Optional[int] = _BAUD,
    config_path: Optional[Path] = _CONFIG,
    preset: Optional[str] = _PRESET,
    override: Optional[List[str]] = _SET,
    duration: float = typer.Option(0.0, "--duration", "-d", help="Seconds to stream (0 = until Ctrl+C)."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Capture CSV (overrides stream.output_csv)."),
    skip_configure: bool = typer.Option(False, "--skip-configure", help="Use the device's current settings."),
    device_stream: bool = typer.Option(False, "--device-stream", help="Enable device stream output while running."),
) -> None:
    """Configure the device and record point samples in the background."""

    cfg = resolve_config(config_path, preset, port, baudrate, override)
    output_csv = out or cfg.stream.output_csv
    with open_session(cfg) as session:
        try:
            identity = session.refresh_identity()
            if not skip_configure:
                apply_scan_config(session, cfg.scan)
            if device_stream:
                session.enable_stream(True)
        except SF45Error as exc:
            typer.echo(f"Device setup failed: {exc}", err=True)
            raise typer.Exit(code=1) from exc
        recorder = SampleRecorder(output_csv, identity)
        controller = StreamController(session, poll_interval=cfg.stream.poll_interval_sec)
        interval_sec = max(cfg.stream.stats_log_interval, 1.0)
        deadline = time.monotonic() + duration if duration > 0 else None
        next_log = time.monotonic() + interval_sec

        def emit_stats() -> None:
            stats = controller.stats()
            logger.info(
                "samples=%d errors=%d dropped=%d recorded=%d",
                stats.get("samples", 0),
                stats.get("errors", 0),
                stats.get("dropped", 0),
                recorder.records,
            )

        try:
            controller.start(recorder)
            while controller.is_running:
                if deadline is not None and time.monotonic() >= deadline:
                    break
                time.sleep(0.1)
                if time.monotonic() >= next_log:
                    emit_stats()
                    next_log = time.monotonic() + interval_sec
        except KeyboardInterrupt:
            logger.info("Stopping stream (Ctrl+C)")
        except SF45Error as exc:
            typer.echo(f"Could not start stream: {exc}", err=True)
            raise typer.Exit(code=1) from exc
        finally:
            controller.stop()
            recorder.close()
            emit_stats()
            if device_stream and controller.last_error is None:
                try:
                    session.enable_stream(False)
                except SF45Error as exc:
                    logger.warning("Could not disable stream output: %s", exc)
    if controller.last_error is not None:
        typer.echo(f"Stream terminated: {controller.last_error}", err=True)
        raise typer.Exit(code=1)
    if output_csv:
        typer.echo(f"Recorded {recorder.records} samples to {output_csv}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
