"""
CLI interface for AI Usage Blocks.

Provides block, daily, monthly and session reports over local Codex and
Claude Code logs.
"""

import json
import logging
import signal
import sys
import threading
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from ai_usage_blocks.config.loader import AppConfig, load_config
from ai_usage_blocks.core.aggregate import (
    UsageRow,
    aggregate_daily,
    aggregate_monthly,
    aggregate_sessions,
    is_within_range,
    normalize_filter_date,
    resolve_timezone,
    to_date_key,
)
from ai_usage_blocks.core.blocks import (
    SessionBlock,
    filter_recent_blocks,
    identify_session_blocks,
    max_block_tokens,
    segment_streams,
)
from ai_usage_blocks.core.budget import BudgetStatus, parse_token_limit
from ai_usage_blocks.core.live import LiveConfig, LiveSnapshot, run_live_monitor
from ai_usage_blocks.core.report import BlockSummary, build_blocks_report, report_to_dict
from ai_usage_blocks.core.token_counter import TokenUsage, sum_usage
from ai_usage_blocks.sources.repository import LoadResult, UsageRepository, UsageSource

logger = logging.getLogger(__name__)

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ORDERS = ("asc", "desc")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _configure_logging(verbose: bool, json_output: bool) -> None:
    """Send logs to stderr; JSON output keeps stdout clean of warnings."""
    if verbose:
        level = logging.DEBUG
    elif json_output:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, show_time=False)],
        force=True,
    )


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _load_events(source: UsageSource, paths: Optional[List[str]], config: AppConfig) -> LoadResult:
    directories = paths or config.get_source_directories(source.value)
    result = UsageRepository(source, directories).load_events()
    for missing in result.missing_directories:
        logger.warning("Session directory not found: %s", missing)
    logger.debug("Loaded %d %s usage events", len(result.events), source.value)
    return result


def _format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


def _format_number(value: float) -> str:
    return f"{value:,.0f}"


def _format_time(value: datetime, tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%Y-%m-%d %H:%M")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """AI Usage Blocks CLI."""
    ctx.obj = {"verbose": verbose}
    if ctx.invoked_subcommand is None:
        console.print("AI Usage Blocks - Use --help to see available commands")


@app.command()
def blocks(
    ctx: typer.Context,
    source: UsageSource = typer.Option(UsageSource.CODEX, "--source", "-s", help="Log source to read"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output report as JSON"),
    active: bool = typer.Option(False, "--active", "-a", help="Show only active blocks"),
    recent: bool = typer.Option(False, "--recent", "-r", help="Show blocks from the last few days"),
    token_limit: Optional[str] = typer.Option(
        None, "--token-limit", "-t", help="Token limit for quota warnings (number or 'max')"
    ),
    session_length: Optional[float] = typer.Option(
        None, "--session-length", "-n", help="Session block duration in hours"
    ),
    order: str = typer.Option("asc", "--order", "-o", help="Sort order: asc or desc"),
    since: Optional[str] = typer.Option(None, "--since", help="Filter from date (YYYY-MM-DD or YYYYMMDD)"),
    until: Optional[str] = typer.Option(None, "--until", help="Filter until date (inclusive)"),
    live: bool = typer.Option(False, "--live", help="Live monitoring of the active block"),
    refresh_interval: Optional[float] = typer.Option(
        None, "--refresh-interval", help="Live refresh interval in seconds (1-60)"
    ),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    paths: Optional[List[str]] = typer.Option(None, "--path", "-p", help="Session directory (repeatable)"),
    tz_name: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA timezone for display and dates"),
    per_stream: bool = typer.Option(False, "--per-stream", help="Segment each session file separately"),
):
    """
    Show usage grouped into fixed-length session blocks.

    Blocks start on the hour of their first event and last five hours by
    default. Idle stretches longer than a block are shown as gaps.
    """
    _configure_logging(ctx.obj["verbose"] if ctx.obj else False, json_output)

    try:
        config = load_config(config_path)
        since_key = normalize_filter_date(since)
        until_key = normalize_filter_date(until)
        tz = resolve_timezone(tz_name)
        hours = session_length if session_length is not None else config.blocks.session_length_hours
        if hours <= 0:
            raise ValueError("Session length must be a positive number")
        if order not in ORDERS:
            raise ValueError(f"Order must be one of: {list(ORDERS)}")
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        _fail(str(e))
        return

    duration = timedelta(hours=hours)
    limit_setting = token_limit if token_limit is not None else config.blocks.token_limit

    if live:
        if json_output:
            _fail("--live cannot be combined with --json")
        _run_live(source, paths, config, LiveConfig(
            session_duration=duration,
            token_limit=limit_setting,
            refresh_interval_seconds=(
                refresh_interval if refresh_interval is not None
                else config.blocks.refresh_interval_seconds
            ),
            pricing_table=config.pricing_table,
        ), tz)
        return

    result = _load_events(source, paths, config)
    metadata: Dict[str, Any] = {
        "source": source.value,
        "timezone": tz_name or "UTC",
        "order": order,
        "sessionLengthHours": hours,
        "missingDirectories": result.missing_directories,
    }

    if not result.events:
        _print_empty_blocks(json_output, metadata, "No usage data found.")
        return

    now = _now()
    if per_stream:
        by_stream = segment_streams(result.events, duration, now=now)
        found: List[SessionBlock] = [block for stream in by_stream.values() for block in stream]
        found.sort(key=lambda block: block.start_time)
    else:
        found = identify_session_blocks(result.events, duration, now=now)

    found = [
        block for block in found
        if is_within_range(to_date_key(block.start_time, tz), since_key, until_key)
    ]
    max_from_all = max_block_tokens(found)

    if recent:
        found = filter_recent_blocks(found, now=now, days=config.blocks.recent_days)
    if active:
        found = [block for block in found if block.is_active]

    found.sort(key=lambda block: block.start_time, reverse=(order == "desc"))

    if not found:
        _print_empty_blocks(json_output, metadata, "No usage data found for provided filters.")
        return

    limit = parse_token_limit(limit_setting, max_from_all)
    report = build_blocks_report(found, config.pricing_table, now=now, token_limit=limit)

    if json_output:
        metadata["tokenLimit"] = limit
        metadata["generatedAt"] = now.isoformat()
        typer.echo(json.dumps(report_to_dict(report, metadata), indent=2))
        return

    _display_blocks(report.blocks, tz, limit)
    totals = report.totals
    console.print(
        f"\n[bold]Total:[/bold] {_format_number(totals.token_counts.total_tokens)} tokens, "
        f"{_format_currency(totals.cost_usd)}"
    )


def _print_empty_blocks(json_output: bool, metadata: Dict[str, Any], message: str) -> None:
    if json_output:
        typer.echo(json.dumps(report_to_dict(None, metadata), indent=2))
    else:
        console.print(f"[yellow]{message}[/]")


def _status_text(summary: BlockSummary) -> str:
    block = summary.block
    if block.is_gap:
        return "[dim]GAP[/dim]"
    parts = []
    if block.is_active:
        parts.append("[green]ACTIVE[/green]")
    if summary.budget is not None:
        percent = f"{summary.budget.usage_percent * 100:.1f}%"
        if summary.budget.status == BudgetStatus.EXCEEDS:
            parts.append(f"[red]{percent}[/red]")
        elif summary.budget.status == BudgetStatus.WARNING:
            parts.append(f"[yellow]{percent}[/yellow]")
        else:
            parts.append(percent)
    return " ".join(parts)


def _blocks_renderable(summaries: List[BlockSummary], tz: tzinfo, token_limit: Optional[int]) -> Group:
    """Build the blocks table followed by details for active blocks."""
    title = "Session Blocks"
    if token_limit is not None:
        title += f" (limit {_format_number(token_limit)} tokens)"

    table = Table(title=title)
    table.add_column("Window", no_wrap=True)
    table.add_column("Models")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache", justify="right")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Cost (USD)", justify="right")
    table.add_column("Status", no_wrap=True)

    for summary in summaries:
        block = summary.block
        window = _format_time(block.start_time, tz)
        if block.is_gap:
            table.add_row(f"[dim]{window}[/dim]", "", "", "", "", "", "", _status_text(summary))
            continue
        counts = block.token_counts
        table.add_row(
            window,
            ", ".join(block.models),
            _format_number(counts.non_cached_input_tokens),
            _format_number(counts.output_tokens),
            _format_number(counts.cache_read_tokens + counts.cache_creation_tokens),
            _format_number(counts.total_tokens),
            _format_currency(block.cost_usd),
            _status_text(summary),
        )

    details: List[Text] = []
    for summary in summaries:
        if summary.block.is_active:
            details.extend(_active_details(summary, tz))
    return Group(table, *details)


def _display_blocks(summaries: List[BlockSummary], tz: tzinfo, token_limit: Optional[int]) -> None:
    """Display blocks as a table, then details for active blocks."""
    console.print(_blocks_renderable(summaries, tz, token_limit))


def _active_details(summary: BlockSummary, tz: tzinfo) -> List[Text]:
    block = summary.block
    lines = [Text.from_markup(f"\n[bold]Active block:[/bold] {_format_time(block.start_time, tz)} "
                              f"to {_format_time(block.end_time, tz)}")]
    if summary.burn_rate is not None:
        lines.append(Text(f"Burn rate: {_format_number(summary.burn_rate.tokens_per_minute)} tokens/min, "
                          f"{_format_currency(summary.burn_rate.cost_per_hour)}/hour"))
    if summary.projection is not None:
        lines.append(Text(f"Projected: {_format_number(summary.projection.total_tokens)} tokens, "
                          f"{_format_currency(summary.projection.total_cost)} "
                          f"({summary.projection.remaining_minutes:.0f} min remaining)"))
    return lines


def _live_renderable(snapshot: LiveSnapshot, tz: tzinfo) -> Group:
    header = Text.from_markup("[bold]Session Blocks Live Monitor[/bold]  (Ctrl+C to stop)")
    if not snapshot.blocks:
        return Group(header, Text("No active blocks detected. Waiting for new activity..."))
    return Group(header, _blocks_renderable(snapshot.blocks, tz, snapshot.token_limit))


def _run_live(
    source: UsageSource,
    paths: Optional[List[str]],
    config: AppConfig,
    live_config: LiveConfig,
    tz: tzinfo,
) -> None:
    stop_event = threading.Event()

    def handle_interrupt(signum, frame):
        stop_event.set()

    previous_handler = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        with Live(Text("Loading usage data..."), console=console, auto_refresh=False) as live:
            run_live_monitor(
                load_events=lambda: _load_events(source, paths, config).events,
                render=lambda snapshot: live.update(_live_renderable(snapshot, tz), refresh=True),
                config=live_config,
                stop_event=stop_event,
                clock=_now,
            )
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def _aggregate_command(
    ctx: typer.Context,
    kind: str,
    source: UsageSource,
    json_output: bool,
    order: str,
    since: Optional[str],
    until: Optional[str],
    config_path: Optional[str],
    paths: Optional[List[str]],
    tz_name: Optional[str],
) -> None:
    _configure_logging(ctx.obj["verbose"] if ctx.obj else False, json_output)

    aggregators = {
        "daily": (aggregate_daily, "Date"),
        "monthly": (aggregate_monthly, "Month"),
        "sessions": (aggregate_sessions, "Session"),
    }
    aggregate, key_label = aggregators[kind]

    try:
        config = load_config(config_path)
        if order not in ORDERS:
            raise ValueError(f"Order must be one of: {list(ORDERS)}")
        # Validate before loading logs
        normalize_filter_date(since)
        normalize_filter_date(until)
        resolve_timezone(tz_name)
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        _fail(str(e))
        return

    result = _load_events(source, paths, config)
    rows = aggregate(
        result.events,
        config.pricing_table,
        timezone=tz_name,
        since=since,
        until=until,
        order=order,
    )

    if not rows:
        if json_output:
            typer.echo(json.dumps({kind: [], "totals": None}, indent=2))
        else:
            console.print("[yellow]No usage data found.[/]")
        return

    totals = sum_usage((row.usage for row in rows), rows[0].usage.convention)
    total_cost = sum(row.cost_usd for row in rows)

    if json_output:
        payload = {
            kind: [row.to_dict() for row in rows],
            "totals": dict(totals.to_dict(), costUSD=total_cost),
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    _display_rows(rows, key_label, kind.capitalize(), totals, total_cost)


def _display_rows(
    rows: List[UsageRow],
    key_label: str,
    title: str,
    totals: TokenUsage,
    total_cost: float,
) -> None:
    table = Table(title=f"{title} Usage")
    table.add_column(key_label, no_wrap=True)
    table.add_column("Models")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache Read", justify="right")
    table.add_column("Cache Create", justify="right")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Cost (USD)", justify="right")

    for row in rows:
        table.add_row(
            row.key,
            ", ".join(sorted(row.models)),
            _format_number(row.usage.non_cached_input_tokens),
            _format_number(row.usage.output_tokens),
            _format_number(row.usage.cache_read_tokens),
            _format_number(row.usage.cache_creation_tokens),
            _format_number(row.usage.total_tokens),
            _format_currency(row.cost_usd),
        )

    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        "",
        _format_number(totals.non_cached_input_tokens),
        _format_number(totals.output_tokens),
        _format_number(totals.cache_read_tokens),
        _format_number(totals.cache_creation_tokens),
        _format_number(totals.total_tokens),
        _format_currency(total_cost),
    )
    console.print(table)


@app.command()
def daily(
    ctx: typer.Context,
    source: UsageSource = typer.Option(UsageSource.CODEX, "--source", "-s", help="Log source to read"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output report as JSON"),
    order: str = typer.Option("asc", "--order", "-o", help="Sort order: asc or desc"),
    since: Optional[str] = typer.Option(None, "--since", help="Filter from date (YYYY-MM-DD or YYYYMMDD)"),
    until: Optional[str] = typer.Option(None, "--until", help="Filter until date (inclusive)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    paths: Optional[List[str]] = typer.Option(None, "--path", "-p", help="Session directory (repeatable)"),
    tz_name: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA timezone for date grouping"),
):
    """Show usage grouped by day."""
    _aggregate_command(ctx, "daily", source, json_output, order, since, until, config_path, paths, tz_name)


@app.command()
def monthly(
    ctx: typer.Context,
    source: UsageSource = typer.Option(UsageSource.CODEX, "--source", "-s", help="Log source to read"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output report as JSON"),
    order: str = typer.Option("asc", "--order", "-o", help="Sort order: asc or desc"),
    since: Optional[str] = typer.Option(None, "--since", help="Filter from date (YYYY-MM-DD or YYYYMMDD)"),
    until: Optional[str] = typer.Option(None, "--until", help="Filter until date (inclusive)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    paths: Optional[List[str]] = typer.Option(None, "--path", "-p", help="Session directory (repeatable)"),
    tz_name: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA timezone for date grouping"),
):
    """Show usage grouped by month."""
    _aggregate_command(ctx, "monthly", source, json_output, order, since, until, config_path, paths, tz_name)


@app.command()
def session(
    ctx: typer.Context,
    source: UsageSource = typer.Option(UsageSource.CODEX, "--source", "-s", help="Log source to read"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output report as JSON"),
    order: str = typer.Option("asc", "--order", "-o", help="Sort order: asc or desc"),
    since: Optional[str] = typer.Option(None, "--since", help="Filter from date (YYYY-MM-DD or YYYYMMDD)"),
    until: Optional[str] = typer.Option(None, "--until", help="Filter until date (inclusive)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    paths: Optional[List[str]] = typer.Option(None, "--path", "-p", help="Session directory (repeatable)"),
    tz_name: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA timezone for date grouping"),
):
    """Show usage grouped by session."""
    _aggregate_command(ctx, "sessions", source, json_output, order, since, until, config_path, paths, tz_name)


if __name__ == "__main__":
    app()
