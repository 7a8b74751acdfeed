"""CLI entry point and orchestration for latencymap."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

import click

from latencymap import __version__
from latencymap.config import (
    DEFAULT_INTERVAL,
    DEFAULT_PACKET_SIZE,
    DEFAULT_SAMPLES,
    DEFAULT_SHOW_GRAPH,
    DEFAULT_TIMEOUT,
    ConfigurationError,
    parse_targets,
)
from latencymap.models import LatencyReport, MeasurementConfig
from latencymap.prober import IcmpProber, Prober


@click.command()
@click.argument("targets", nargs=-1, required=True)
@click.option("-i", "--interval", default=DEFAULT_INTERVAL, help="Seconds between rounds", show_default=True)
@click.option("-n", "--samples", default=DEFAULT_SAMPLES, help="Rounds per target", show_default=True)
@click.option("-t", "--timeout", default=DEFAULT_TIMEOUT, help="Seconds before a round counts as lost", show_default=True)
@click.option("-s", "--packet-size", default=DEFAULT_PACKET_SIZE, help="ICMP payload size in bytes", show_default=True)
@click.option("--graph/--no-graph", default=DEFAULT_SHOW_GRAPH, help="Show the latency heatmap", show_default=True)
@click.option("--deadline", default=None, type=float, help="Stop sampling after this many seconds")
@click.option("--unprivileged", is_flag=True, help="Use unprivileged ICMP sockets instead of raw sockets")
@click.option("--dns-server", default=None, help="Custom DNS server (e.g., 8.8.8.8)")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("--csv", "csv_output", is_flag=True, help="Output CSV to stdout")
@click.option("-o", "--output", default=None, help="Write results to file")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress, show only results")
@click.option("-v", "--verbose", is_flag=True, help="Log per-round details to stderr")
@click.version_option(version=__version__)
def main(
    targets: tuple[str, ...],
    interval: float,
    samples: int,
    timeout: float,
    packet_size: int,
    graph: bool,
    deadline: Optional[float],
    unprivileged: bool,
    dns_server: Optional[str],
    json_output: bool,
    csv_output: bool,
    output: Optional[str],
    quiet: bool,
    verbose: bool,
) -> None:
    """latencymap — concurrent ping sampling with a latency heatmap.

    Pings every TARGET (host names or IP addresses, comma-separated lists
    allowed) at a fixed interval, then reports per-target statistics and a
    time-aligned latency grid.
    """
    _configure_logging(verbose)

    config = MeasurementConfig(
        targets=parse_targets(",".join(targets)),
        interval=interval,
        samples=samples,
        timeout=timeout,
        packet_size=packet_size,
        show_graph=graph,
        deadline=deadline,
        privileged=not unprivileged,
    )
    prober = IcmpProber(privileged=config.privileged, nameserver=dns_server)
    interactive = not quiet and not json_output and not csv_output

    try:
        report = asyncio.run(_run(config, prober, interactive))
    except ConfigurationError as exc:
        from latencymap.display import render_error
        render_error(str(exc))
        sys.exit(2)
    except KeyboardInterrupt:
        if interactive:
            from latencymap.display import console
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    _handle_output(report, json_output, csv_output, output, quiet)


def _configure_logging(verbose: bool) -> None:
    """Send library logs to stderr through Rich."""
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _banner(config: MeasurementConfig) -> str:
    return (
        f"[bold]Pinging {len(config.targets)} target(s), "
        f"{config.samples} samples each...[/bold] "
        f"[dim](up to {config.expected_duration:.0f}s)[/dim]"
    )


async def _run(config: MeasurementConfig, prober: Prober, interactive: bool) -> LatencyReport:
    """Main async orchestration."""
    from latencymap.display import ProgressTracker, console
    from latencymap.engine import run_measurement

    config.validate()

    progress = None
    if interactive:
        progress = ProgressTracker(config.targets, config.samples)

    def on_progress(target: str, completed: int, total: int, sample) -> None:
        if progress:
            progress.record(target, completed, sample.rtt_ms)

    if progress:
        console.print(_banner(config) + "\n")
        progress.start()

    try:
        return await run_measurement(config, prober, progress_callback=on_progress)
    finally:
        if progress:
            progress.finish()


def _handle_output(
    report: LatencyReport,
    json_output: bool,
    csv_output: bool,
    output_file: Optional[str],
    quiet: bool,
) -> None:
    """Handle output rendering and export."""
    from latencymap.display import console, render_full
    from latencymap.export import export_csv, export_json, write_to_file

    if json_output or csv_output:
        content = export_json(report) if json_output else export_csv(report)
        if output_file:
            write_to_file(content, output_file)
            if not quiet:
                console.print(f"[dim]Results written to {output_file}[/dim]")
        else:
            click.echo(content)
        return

    render_full(report)

    # Also write to file if -o specified (terminal mode writes JSON)
    if output_file:
        write_to_file(export_json(report), output_file)
        console.print(f"\n[dim]Results written to {output_file}[/dim]")


if __name__ == "__main__":
    main()
