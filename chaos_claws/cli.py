"""Chaos Claws CLI - Command Line Interface."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from chaos_claws import __version__
from chaos_claws.brain.actions import ChaosDecision, RequestDescriptor
from chaos_claws.brain.chaos_engine import ChaosEngine
from chaos_claws.brain.random_source import SeededRandom
from chaos_claws.brain.stats import Stats
from chaos_claws.paws.sink import BufferedResponse
from chaos_claws.paws.transport import ChaosTransport
from chaos_claws.utils.config import ChaosConfig, Config, InvalidConfiguration

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="chaos-claws",
    help="🐾 Chaos Claws - scratches at your API responses so your clients learn to cope",
    add_completion=False,
)

console = Console()

BANNER = r"""
   /\_/\    ~ delay ~
  ( x.x )   ~ error ~
   > ^ <    ~ garbage ~
"""

CONFIG_TEMPLATE = '''# Chaos Claws Configuration
chaos:
  preset: "mild"            # mild (10%), wild (30%), extreme (70%)
  # probability: 0.25       # overrides the preset
  delay_range: [100, 3000]  # milliseconds
  error_codes: [500, 502, 503, 429]
  enabled_routes: []        # empty = every route
  disabled_routes:
    - "/health"
  logging: true
  weights:
    delay: 1
    error: 1
    corruption: 1

target:
  base_url: "http://localhost:8000"
'''


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Chaos Claws command group."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    # Keep httpx from logging every probe request twice
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold magenta]Chaos Claws[/bold magenta] v{__version__}")


@app.command()
def init(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Initialize a new chaos-claws.yaml configuration file."""
    try:
        with open("chaos-claws.yaml", "w" if force else "x", encoding="utf-8") as f:
            f.write(CONFIG_TEMPLATE)
    except FileExistsError:
        console.print("[yellow]chaos-claws.yaml already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Created chaos-claws.yaml")
    console.print("Tune the chaos section, then try 'chaos-claws simulate'.")


def _read_config(config: str) -> Dict[str, Any]:
    """Load the YAML file once; a missing file means built-in defaults."""
    try:
        return Config(config).load()
    except FileNotFoundError:
        return {}


def _chaos_config_from(
    raw: Dict[str, Any], preset: Optional[str], probability: Optional[float]
) -> ChaosConfig:
    """Apply CLI overrides to the chaos section of an already loaded file."""
    chaos: Dict[str, Any] = dict(raw.get("chaos") or {})
    if preset:
        chaos["preset"] = preset
    if probability is not None:
        chaos["probability"] = probability
    return ChaosConfig.from_mapping(chaos)


def _stats_table(stats: Stats, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Counter", style="cyan")
    table.add_column("Value", justify="right", style="magenta")
    for name, value in stats.to_dict().items():
        table.add_row(name.replace("_", " "), str(value))
    if stats.total_requests:
        rate = stats.chaos_count / stats.total_requests
        table.add_row("chaos rate", f"{rate:.1%}")
    return table


def _action_label(decision: ChaosDecision) -> str:
    if not decision.eligible:
        return "[dim]filtered[/dim]"
    if not decision.applied:
        return "[green]pass[/green]"
    colors = {"delay": "yellow", "error": "red", "corruption": "magenta"}
    kind = decision.action_kind.value
    return f"[{colors.get(kind, 'white')}]{kind}[/{colors.get(kind, 'white')}]"


async def _no_sleep(_seconds: float) -> None:
    return None


async def _run_simulation(
    engine: ChaosEngine, path: str, method: str, requests: int
) -> List[Dict[str, Any]]:
    rows = []
    for i in range(requests):
        sink = BufferedResponse(sleep=_no_sleep)

        async def call_next(index: int = i, target: BufferedResponse = sink) -> None:
            target.set_status(200)
            target.set_body({"id": index, "name": "Whiskers", "status": "ok"})

        decision = await engine.handle(RequestDescriptor(path=path, method=method), sink, call_next)
        rows.append({"decision": decision, "status": sink.status, "body": sink.body})
    return rows


@app.command()
def simulate(
    config: str = typer.Option(
        "chaos-claws.yaml",
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    preset: str = typer.Option(
        None,
        "--preset",
        "-p",
        help="Intensity preset (mild, wild, extreme)",
    ),
    probability: float = typer.Option(
        None,
        "--probability",
        help="Chaos probability between 0 and 1 (overrides preset)",
    ),
    path: str = typer.Option("/api/users", "--path", help="Request path to simulate"),
    method: str = typer.Option("GET", "--method", "-m", help="Request method to simulate"),
    requests: int = typer.Option(100, "--requests", "-n", min=1, help="Number of requests"),
    seed: int = typer.Option(None, "--seed", help="Random seed for a reproducible run"),
    show_decisions: bool = typer.Option(
        False,
        "--show-decisions",
        help="Print one row per simulated request",
    ),
):
    """Run synthetic requests through the engine and report what happened."""
    try:
        chaos_config = _chaos_config_from(_read_config(config), preset, probability)
        engine = ChaosEngine(chaos_config, random_source=SeededRandom(seed))
    except (InvalidConfiguration, ValueError) as e:
        console.print(f"[bold red]❌ Invalid configuration:[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print(Panel(BANNER, title="🐾 Chaos Claws", border_style="magenta"))
    console.print(
        f"Preset: [bold]{chaos_config.intensity.value}[/bold]  "
        f"Probability: [bold]{chaos_config.probability:.0%}[/bold]  "
        f"Requests: [bold]{requests}[/bold]"
    )

    rows = asyncio.run(_run_simulation(engine, path, method.upper(), requests))

    if show_decisions:
        table = Table(title="Decisions")
        table.add_column("#", justify="right")
        table.add_column("Request")
        table.add_column("Action")
        table.add_column("Detail")
        table.add_column("Status", justify="right")
        for i, row in enumerate(rows, start=1):
            decision = row["decision"]
            table.add_row(
                str(i),
                f"{decision.request.method} {decision.request.path}",
                _action_label(decision),
                str(decision.detail() or ""),
                str(row["status"]),
            )
        console.print(table)

    console.print(_stats_table(engine.get_stats(), "Chaos Simulation"))


async def _run_probe(
    engine: ChaosEngine, url: str, method: str, count: int, timeout: float
) -> List[Dict[str, Any]]:
    results = []
    async with httpx.AsyncClient(transport=ChaosTransport(engine), timeout=timeout) as client:
        for _ in range(count):
            start = time.perf_counter()
            response = await client.request(method, url)
            results.append({
                "status_code": response.status_code,
                "elapsed_ms": (time.perf_counter() - start) * 1000,
                "action": response.headers.get("x-chaos-action", "none"),
                "size": len(response.content),
            })
    return results


@app.command()
def probe(
    url: str = typer.Argument(None, help="URL to request (defaults to target.base_url)"),
    config: str = typer.Option(
        "chaos-claws.yaml",
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    preset: str = typer.Option(None, "--preset", "-p", help="Intensity preset (mild, wild, extreme)"),
    probability: float = typer.Option(None, "--probability", help="Chaos probability between 0 and 1"),
    method: str = typer.Option("GET", "--method", "-m", help="HTTP method"),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of requests"),
    timeout: float = typer.Option(30.0, "--timeout", help="Request timeout in seconds"),
    seed: int = typer.Option(None, "--seed", help="Random seed for a reproducible run"),
):
    """Send real requests through the chaos transport and show the results."""
    try:
        raw = _read_config(config)
        chaos_config = _chaos_config_from(raw, preset, probability)
        engine = ChaosEngine(chaos_config, random_source=SeededRandom(seed))
    except (InvalidConfiguration, ValueError) as e:
        console.print(f"[bold red]❌ Invalid configuration:[/bold red] {e}")
        raise typer.Exit(code=1)

    if not url:
        url = (raw.get("target") or {}).get("base_url")
    if not url:
        console.print("[bold red]❌ No URL given and no target.base_url configured[/bold red]")
        raise typer.Exit(code=1)

    console.print(f"🎯 Probing {method.upper()} {url} x{count}")
    try:
        results = asyncio.run(_run_probe(engine, url, method.upper(), count, timeout))
    except httpx.HTTPError as e:
        console.print(f"[bold red]❌ Probe failed:[/bold red] {e}")
        logger.debug("Probe failure", exc_info=True)
        raise typer.Exit(code=1) from e

    table = Table(title="Probe Results")
    table.add_column("#", justify="right")
    table.add_column("Status", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("Action")
    table.add_column("Bytes", justify="right")
    for i, result in enumerate(results, start=1):
        style = "red" if result["status_code"] >= 500 else "green"
        table.add_row(
            str(i),
            f"[{style}]{result['status_code']}[/{style}]",
            f"{result['elapsed_ms']:.0f} ms",
            result["action"],
            str(result["size"]),
        )
    console.print(table)
    console.print(_stats_table(engine.get_stats(), "Chaos Stats"))


if __name__ == "__main__":
    app()
