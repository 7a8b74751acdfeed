"""Rich terminal output for latencymap."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from latencymap.config import (
    FAST_THRESHOLD_MS,
    HEATMAP_SHADES,
    LOSS_THRESHOLDS,
    MEDIUM_THRESHOLD_MS,
)
from latencymap.export import format_timestamp
from latencymap.models import HeatmapGrid, LatencyReport, TargetStatistics

console = Console()


def _color_for_ms(value: float) -> str:
    """Return a Rich color name based on latency thresholds."""
    if value <= FAST_THRESHOLD_MS:
        return "green"
    elif value <= MEDIUM_THRESHOLD_MS:
        return "yellow"
    return "red"


def _color_for_loss(pct: float) -> str:
    if pct <= LOSS_THRESHOLDS["ok"]:
        return "green"
    elif pct <= LOSS_THRESHOLDS["degraded"]:
        return "yellow"
    return "red"


def _fmt_ms(value: float, colorize: bool = True) -> Text:
    """Format a millisecond value with optional color."""
    text = f"{value:.2f}ms"
    if colorize:
        return Text(text, style=_color_for_ms(value))
    return Text(text)


# ── Progress tracking ─────────────────────────────────────────────────


class ProgressTracker:
    """Live per-target view of rounds done, last rtt and lost rounds."""

    BAR_WIDTH = 15

    def __init__(self, targets: list[str], total_samples: int):
        self.total_samples = total_samples
        self.rows: dict[str, dict] = {
            t: {"done": 0, "lost": 0, "last": None} for t in targets
        }
        self.live: Optional[Live] = None

    def _bar(self, done: int) -> Text:
        filled = done * self.BAR_WIDTH // self.total_samples if self.total_samples else 0
        bar = Text("█" * filled, style="green")
        bar.append("░" * (self.BAR_WIDTH - filled), style="dim")
        bar.append(f" {done}/{self.total_samples}")
        return bar

    def render(self) -> Table:
        table = Table(show_header=True, expand=False, border_style="dim")
        table.add_column("Target", style="bold")
        table.add_column("Rounds", min_width=20)
        table.add_column("Last", justify="right")
        table.add_column("Lost", justify="right")

        for target, row in self.rows.items():
            last = row["last"]
            last_text = _fmt_ms(last) if last is not None else Text("—", style="dim")
            lost_text = Text(str(row["lost"]), style="red" if row["lost"] else "dim")
            table.add_row(target, self._bar(row["done"]), last_text, lost_text)

        return table

    def start(self) -> None:
        self.live = Live(self.render(), console=console, refresh_per_second=4)
        self.live.start()

    def record(self, target: str, completed: int, rtt_ms: Optional[float]) -> None:
        row = self.rows[target]
        row["done"] = completed
        if rtt_ms is None:
            row["lost"] += 1
        else:
            row["last"] = rtt_ms
        if self.live:
            self.live.update(self.render())

    def finish(self) -> None:
        if self.live:
            self.live.stop()


# ── Statistics ────────────────────────────────────────────────────────


def build_statistics_table(statistics: list[TargetStatistics]) -> Table:
    """Build the per-target statistics table."""
    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        pad_edge=True,
        header_style="bold",
    )
    table.add_column("Target", style="bold", min_width=12)
    table.add_column("Min", justify="right", min_width=8)
    table.add_column("Avg", justify="right", min_width=8)
    table.add_column("Median", justify="right", min_width=8)
    table.add_column("Max", justify="right", min_width=8)
    table.add_column("Jitter", justify="right", min_width=8)
    table.add_column("Loss", justify="right", min_width=7)
    table.add_column("Samples", justify="right")

    for stats in statistics:
        loss = Text(f"{stats.packet_loss:.2f}%", style=_color_for_loss(stats.packet_loss))
        counts = Text(f"{stats.successful_samples}/{stats.total_samples}", style="dim")

        if not stats.is_reachable:
            dash = Text("—", style="dim")
            table.add_row(stats.target, dash, dash, dash, dash, dash, loss, counts)
            continue

        table.add_row(
            stats.target,
            _fmt_ms(stats.min_rtt),
            _fmt_ms(stats.avg_rtt),
            _fmt_ms(stats.median_rtt),
            _fmt_ms(stats.max_rtt),
            _fmt_ms(stats.jitter),
            loss,
            counts,
        )

    return table


# ── Heatmap ───────────────────────────────────────────────────────────


def _shade_for(value: float, low: float, high: float) -> str:
    """Pick a colour from HEATMAP_SHADES for *value* on the [low, high] scale."""
    if high <= low:
        return HEATMAP_SHADES[0]
    position = (value - low) / (high - low)
    index = int(position * len(HEATMAP_SHADES))
    return HEATMAP_SHADES[max(0, min(index, len(HEATMAP_SHADES) - 1))]


def build_heatmap_table(grid: HeatmapGrid) -> Table:
    """Build a colour-block rendering of *grid*, one row per target."""
    table = Table(show_header=False, box=None, expand=False, pad_edge=False)
    table.add_column("Target", style="bold", no_wrap=True)
    table.add_column("Timeline", no_wrap=True)

    for target, row in zip(grid.targets, grid.latency):
        cells = Text()
        for value in row:
            if value is None:
                cells.append("✕", style="bold red")
            elif value <= 0:
                cells.append("·", style="dim")
            else:
                cells.append("█", style=_shade_for(value, grid.min_latency, grid.max_latency))
        table.add_row(target, cells)

    return table


# ── Full result rendering ─────────────────────────────────────────────


def render_full(report: LatencyReport) -> None:
    """Render the complete measurement results."""
    config = report.config
    console.print(
        f"[bold]Latency to {len(config.targets)} target(s)[/bold] "
        f"[dim]({config.samples} samples every {config.interval:g}s, "
        f"{config.packet_size} bytes, timeout {config.timeout:g}s)[/dim]"
    )

    if report.cancelled:
        render_warning("Sampling was cancelled before all rounds completed; results are partial")

    if not report.statistics:
        console.print("[dim]No samples collected.[/dim]")
        return

    console.print()
    console.print(build_statistics_table(report.statistics))

    if config.show_graph and report.heatmap.timestamps:
        grid = report.heatmap
        console.print()
        console.print(
            f"[bold]Latency Heatmap[/bold] [dim]({grid.min_latency:.1f}ms "
            f"→ {grid.max_latency:.1f}ms)[/dim]"
        )
        console.print(build_heatmap_table(grid))
        console.print(
            f"[dim]{format_timestamp(grid.timestamps[0])} → "
            f"{format_timestamp(grid.timestamps[-1])}[/dim]"
        )

    console.print()
    console.print(f"[dim]Completed {format_timestamp(report.timestamp)}[/dim]")


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
