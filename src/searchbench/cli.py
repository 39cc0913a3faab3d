"""CLI interface for the search-engine benchmark harness."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from searchbench import __version__
from searchbench.config import settings
from searchbench.harness.errors import ConfigurationError
from searchbench.harness.models import PIPELINE_STAGES, BenchmarkReport, Endpoint, ProbeOutcome
from searchbench.harness.plan import RunPlan, default_plan, load_plan
from searchbench.harness.prober import EndpointProber
from searchbench.harness.suite import BenchmarkSuite, exit_code

# Configure logging with Rich
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)]
)

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="search-bench",
    help="Load tests and end-to-end workflow timings for the search engine services"
)

console = Console()


def _set_verbose_logging(verbose: bool) -> Optional[int]:
    if not verbose:
        return None
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    return previous_level


def _resolve_plan(
    plan_path: Optional[Path],
    services: Optional[List[str]],
    endpoints: Optional[List[str]],
) -> RunPlan:
    plan = load_plan(plan_path) if plan_path else default_plan(settings)
    if services or endpoints:
        plan = plan.select(services=services, endpoints=endpoints)
    return plan


def _format_ms(value: Optional[float]) -> str:
    return f"{value:.1f}" if value is not None else "-"


def _print_load_tests(report: BenchmarkReport) -> None:
    if not report.load_tests:
        return

    table = Table(title="Load Tests", show_header=True, header_style="bold cyan")
    table.add_column("Service", style="cyan")
    table.add_column("Endpoint", no_wrap=False)
    table.add_column("Samples", justify="right", width=8)
    table.add_column("Success", justify="right", width=8)
    table.add_column("Avg (ms)", justify="right", width=9)
    table.add_column("p95 (ms)", justify="right", width=9)
    table.add_column("Status", justify="center", width=12)

    for result in report.load_tests:
        if not result.service_reachable:
            status = "[red]unreachable[/red]"
        elif report.load_test_failed(result):
            status = "[red]failed[/red]"
        elif result.truncated:
            status = "[yellow]truncated[/yellow]"
        else:
            status = "[green]passed[/green]"
        table.add_row(
            result.endpoint.service,
            result.endpoint.label,
            f"{result.sample_count}/{result.requested_count}",
            f"{result.success_rate:.0f}%",
            _format_ms(result.average_latency_ms),
            _format_ms(result.p95_latency_ms),
            status,
        )

    console.print(table)


def _print_workflows(report: BenchmarkReport) -> None:
    if not report.workflows:
        return

    table = Table(title="Workflows", show_header=True, header_style="bold cyan")
    table.add_column("Work item", style="cyan")
    table.add_column("Total (ms)", justify="right")
    for name in PIPELINE_STAGES:
        table.add_column(f"{name.value.capitalize()} (ms)", justify="right")
    table.add_column("Result", justify="center")

    for run in report.workflows:
        if run.overall_succeeded:
            result = "[green]✓[/green]"
        else:
            result = f"[red]✗ {run.failed_stage.value if run.failed_stage else ''}[/red]"
        table.add_row(
            run.work_item_id,
            _format_ms(run.total_elapsed_ms),
            *[_format_ms(run.stage_elapsed_ms(name)) for name in PIPELINE_STAGES],
            result,
        )

    console.print(table)


def _print_summary(report: BenchmarkReport) -> None:
    console.print("\n[bold]Summary[/bold]")
    console.print(f"  Load tests: [cyan]{len(report.load_tests)}[/cyan] (failed: [red]{report.failed_load_tests}[/red])")
    console.print(f"  Workflows:  [cyan]{len(report.workflows)}[/cyan] (failed: [red]{report.failed_workflows}[/red])")
    if report.succeeded:
        console.print("  [green]All measurements succeeded[/green]\n")
    else:
        console.print(f"  [red]{report.failure_count} failure(s)[/red]\n")


@app.command()
def run(
    plan_path: Optional[Path] = typer.Option(
        None,
        "--plan",
        "-p",
        help="JSON run plan (defaults to the built-in three-service plan)",
        exists=True,
        dir_okay=False,
    ),
    output_dir: Path = typer.Option(
        settings.output_dir,
        "--output-dir",
        "-o",
        help="Directory for the benchmark report JSON",
    ),
    service: Optional[List[str]] = typer.Option(
        None,
        "--service",
        "-s",
        help="Only load test the named service (repeatable)",
    ),
    endpoint: Optional[List[str]] = typer.Option(
        None,
        "--endpoint",
        "-e",
        help="Only load test the given endpoint path (repeatable)",
    ),
    requests: Optional[int] = typer.Option(None, "--requests", "-n", help="Requests per endpoint"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Probes in flight per endpoint"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-request timeout in seconds"),
    delay: Optional[float] = typer.Option(None, "--delay", help="Minimum spacing between requests per lane"),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Suite-wide deadline in seconds"),
    skip_load: bool = typer.Option(False, "--skip-load", help="Skip endpoint load tests"),
    skip_workflows: bool = typer.Option(False, "--skip-workflows", help="Skip ingest/index/search workflows"),
    wait_for_services: bool = typer.Option(
        False,
        "--wait-for-services",
        help="Poll every service's status endpoint before measuring",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
):
    """
    Run load tests and workflow timings, then write the benchmark report.

    Exits non-zero when any load test or workflow run failed.
    """
    previous_level = _set_verbose_logging(verbose)
    try:
        try:
            plan = _resolve_plan(plan_path, service, endpoint).with_overrides(
                request_count=requests,
                concurrency=concurrency,
                per_request_timeout=timeout,
                inter_request_delay=delay,
                suite_deadline=deadline,
                wait_for_services=wait_for_services or None,
            )
            suite = BenchmarkSuite(
                plan,
                output_dir=output_dir,
                run_load_tests=not skip_load,
                run_workflows=not skip_workflows,
            )
        except ConfigurationError as exc:
            console.print(f"[red]Configuration error: {exc}[/red]")
            raise typer.Exit(2) from exc

        console.print("\n[bold blue]Search Engine Benchmark Suite[/bold blue]\n")
        report = asyncio.run(suite.run())

        _print_load_tests(report)
        _print_workflows(report)
        _print_summary(report)
        if suite.report_path is not None:
            console.print(f"[dim]Report written to {suite.report_path}[/dim]\n")
        raise typer.Exit(exit_code(report))
    finally:
        if previous_level is not None:
            logging.getLogger().setLevel(previous_level)


@app.command()
def plan(
    plan_path: Optional[Path] = typer.Option(
        None,
        "--plan",
        "-p",
        help="JSON run plan (defaults to the built-in three-service plan)",
        exists=True,
        dir_okay=False,
    ),
    service: Optional[List[str]] = typer.Option(None, "--service", "-s", help="Only show the named service"),
    endpoint: Optional[List[str]] = typer.Option(None, "--endpoint", "-e", help="Only show the endpoint path"),
):
    """Show the planned load tests and workflow work items without running them."""
    try:
        run_plan = _resolve_plan(plan_path, service, endpoint)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise typer.Exit(2) from exc

    load = run_plan.load
    console.print("\n[bold blue]Benchmark Plan[/bold blue]\n")
    console.print(
        f"  requests=[cyan]{load.request_count}[/cyan] concurrency=[cyan]{load.concurrency}[/cyan] "
        f"delay=[cyan]{load.inter_request_delay}s[/cyan] timeout=[cyan]{load.per_request_timeout}s[/cyan]\n"
    )

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Service", style="cyan")
    table.add_column("Method", width=7)
    table.add_column("URL", overflow="fold")
    for item in run_plan.endpoints():
        table.add_row(item.service, item.method, item.url)
    console.print(table)

    pipeline = run_plan.pipeline()
    if pipeline is not None and run_plan.workflow is not None:
        console.print("\n[bold]Workflow[/bold]")
        for name in PIPELINE_STAGES:
            stage = pipeline.stage_endpoint(name)
            console.print(f"  {name.value:7}: {stage.method} {stage.url}")
        items = ", ".join(run_plan.workflow.work_items) or "-"
        console.print(f"  work items: [cyan]{items}[/cyan]\n")


def _endpoint_from_url(url: str, method: str) -> Endpoint:
    parsed = httpx.URL(url)
    if not parsed.scheme or not parsed.host:
        raise ConfigurationError(f"Not an absolute URL: {url}")
    base_url = f"{parsed.scheme}://{parsed.netloc.decode('ascii')}"
    path = parsed.raw_path.decode("ascii") or "/"
    return Endpoint(service=parsed.host, base_url=base_url, path=path, method=method.upper())


async def _probe_once(target: Endpoint, timeout: float) -> ProbeOutcome:
    async with httpx.AsyncClient() as client:
        return await EndpointProber(client).probe(target, timeout)


@app.command()
def probe(
    url: str = typer.Argument(
        ...,
        help="Absolute URL to request"
    ),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    timeout: float = typer.Option(settings.per_request_timeout, "--timeout", help="Timeout in seconds"),
):
    """Send a single timed request and show how it was classified."""
    try:
        target = _endpoint_from_url(url, method)
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc

    outcome = asyncio.run(_probe_once(target, timeout))
    if outcome.succeeded:
        console.print(f"  ✓ {target.method} {target.url} → [green]{outcome.status_code}[/green] in {outcome.elapsed_ms:.1f}ms")
        return

    reason = outcome.failure_reason.value if outcome.failure_reason else "unknown"
    console.print(f"  ✗ {target.method} {target.url} → [red]{reason}[/red] after {outcome.elapsed_ms:.1f}ms")
    if outcome.detail:
        console.print(f"    [dim]{outcome.detail}[/dim]")
    raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"[cyan]search-bench[/cyan] v{__version__}")


def main():
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
