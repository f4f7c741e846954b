"""Command line interface for offline capture analysis."""
from __future__ import annotations

from pathlib import Path

import typer

from .capture import load_capture_csv
from .demo import run_demo
from .plotting import generate_plots
from .reporting import export_summary, summarize_capture

app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]})


@app.command()
def summarize(
    input_path: Path = typer.Option(..., "--in", help="Capture CSV recorded by sf45-host stream."),
    report_dir: Path = typer.Option(..., "--report", help="Output directory for reports."),
    bin_deg: float = typer.Option(5.0, "--bin-deg", help="Angular bin width in degrees."),
    plot: bool = typer.Option(True, "--plot/--no-plot", help="Render plots.png alongside the report."),
) -> None:
    """Summarise distance by angle and write a report."""

    if bin_deg <= 0:
        raise typer.BadParameter("--bin-deg must be positive", param_hint="--bin-deg")
    try:
        data = load_capture_csv(input_path)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc

    summary = summarize_capture(data, bin_deg)

    figure_path = None
    if plot:
        try:
            figure_path = generate_plots(data, report_dir)
        except RuntimeError as exc:
            typer.echo(f"[warning] plotting skipped: {exc}")

    export_summary(
        data,
        summary,
        report_dir,
        figure_path=figure_path,
        input_path=input_path,
        bin_deg=bin_deg,
    )

    typer.echo(f"Report written to {report_dir}")


@app.command()
def demo(
    out_dir: Path = typer.Option(Path("demo_output"), "--out", help="Target directory for demo report."),
) -> None:
    """Generate a synthetic capture and its report."""

    run_demo(out_dir)
    typer.echo(f"Demo capture and report written to {out_dir}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
