#!/usr/bin/env python3
"""
Main CLI entry point for brokerprobe.

Provides command-line tools around the availability prober:
- Shard planning preview for a topology and peer list
- Simulated probe rounds against an in-memory cluster
- Effective configuration dump
"""

import json
import sys

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from brokerprobe.config import ProberSettings, load_settings
from brokerprobe.core.errors import ShardConfigurationError
from brokerprobe.core.logging import configure_logging
from brokerprobe.core.model import (
    RoundOutcome,
    TopicMetadata,
    TopologySnapshot,
    WorkerRole,
)
from brokerprobe.core.shard_planner import ShardPlanner
from brokerprobe.service import ProbeService
from brokerprobe.simulation import (
    SimulatedBrokerClient,
    StaticTopologySource,
    parse_partition,
)

console = Console()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, verbose: bool):
    """
    Broker availability prober CLI.

    Plan topic shards across prober instances and run synchronized probe
    rounds against a simulated cluster.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _apply_logging(ctx: click.Context, settings: ProberSettings) -> None:
    """Configure loguru from settings; ``--verbose`` forces DEBUG."""
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    configure_logging(
        "DEBUG" if verbose else settings.log_level,
        debug_scopes=settings.debug_scopes,
    )


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Settings JSON file")
@click.option("--peer", "-p", "peers", multiple=True, help="Prober instance, in order")
@click.option("--self", "self_address", help="This instance's address")
@click.option("--all", "show_all", is_flag=True, help="Show the shard of every peer")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def plan(
    ctx,
    topology_file: str,
    config: str | None,
    peers: tuple[str, ...],
    self_address: str | None,
    show_all: bool,
    output: str,
):
    """Show the topics assigned to one prober instance."""
    settings = load_settings(config)
    _apply_logging(ctx, settings)
    peer_list = list(peers) or settings.service_peers
    self_address = self_address or settings.service_address
    topology = StaticTopologySource.from_file(topology_file).list_all_topic_partitions()
    planner = ShardPlanner()
    try:
        if show_all:
            assignment = planner.plan_all(topology, peer_list)
        else:
            assignment = {self_address: planner.plan(topology, peer_list, self_address)}
    except ShardConfigurationError as e:
        console.print(f"[red]Invalid shard configuration: {e}[/red]")
        sys.exit(2)

    if output == "json":
        shards = {
            peer: {
                "topics": {t.topic: list(t.partitions) for t in assigned},
                "partition_count": sum(t.partition_count for t in assigned),
            }
            for peer, assigned in assignment.items()
        }
        if show_all:
            data = {"peers": peer_list, "shards": shards}
        else:
            data = {"self": self_address, "peers": peer_list, **shards[self_address]}
        click.echo(json.dumps(data, indent=2))
        return

    if show_all:
        _print_shard_plan(topology, assignment)
        return

    assigned = assignment[self_address]
    table = Table(title=f"Shard for {self_address}")
    table.add_column("Index", justify="right", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Partitions", justify="right", style="magenta")
    names = topology.topic_names
    for topic in assigned:
        table.add_row(
            str(names.index(topic.topic)), topic.topic, str(topic.partition_count)
        )
    console.print(table)
    console.print(
        f"{len(assigned)} of {len(topology)} topics, "
        f"{sum(t.partition_count for t in assigned)} partitions"
    )


def _print_shard_plan(
    topology: TopologySnapshot, assignment: dict[str, list[TopicMetadata]]
) -> None:
    table = Table(title="Shard plan")
    table.add_column("Peer", style="cyan")
    table.add_column("Topics", style="green")
    table.add_column("Partitions", justify="right", style="magenta")
    for peer, assigned in assignment.items():
        table.add_row(
            peer,
            ", ".join(t.topic for t in assigned) or "-",
            str(sum(t.partition_count for t in assigned)),
        )
    console.print(table)
    console.print(
        f"{len(topology)} topics, {topology.partition_count} partitions "
        f"across {len(assignment)} peers"
    )


def _availability_cell(outcome: RoundOutcome | None) -> str:
    if outcome is None or outcome.availability is None:
        return "[dim]n/a[/dim]"
    value = outcome.availability
    color = "green" if value >= 0.99 else "yellow" if value >= 0.9 else "red"
    return f"[{color}]{value:.2%}[/{color}]"


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Settings JSON file")
@click.option("--rounds", "-n", type=int, default=1, show_default=True)
@click.option(
    "--role",
    "roles",
    multiple=True,
    type=click.Choice([r.value for r in WorkerRole]),
    help="Worker role to run (repeatable; default from settings)",
)
@click.option("--failure-rate", type=float, default=0.0, show_default=True)
@click.option("--fail", "failing", multiple=True, help="Always fail topic:partition")
@click.option("--latency-ms", type=float, default=0.0, show_default=True)
@click.option("--seed", type=int, default=None)
@click.pass_context
def simulate(
    ctx,
    topology_file: str,
    config: str | None,
    rounds: int,
    roles: tuple[str, ...],
    failure_rate: float,
    failing: tuple[str, ...],
    latency_ms: float,
    seed: int | None,
):
    """Run synchronized probe rounds against a simulated cluster."""
    settings = load_settings(
        config,
        max_rounds=rounds,
        roles=[WorkerRole(r) for r in roles] or None,
    )
    _apply_logging(ctx, settings)
    source = StaticTopologySource.from_file(topology_file)
    client = SimulatedBrokerClient(
        failure_rate=failure_rate,
        latency_ms=latency_ms,
        failing=[parse_partition(spec) for spec in failing],
        seed=seed,
    )
    service = ProbeService(settings, source.factory, client)
    service.run()

    table = Table(title=f"Availability for {settings.cluster_name}")
    table.add_column("Role", style="cyan")
    table.add_column("Phase", justify="right")
    table.add_column("Topics", justify="right")
    table.add_column("Probes", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Availability", justify="right")
    table.add_column("p95 ms", justify="right")
    for role, outcome in service.outcomes.items():
        if outcome is None:
            table.add_row(
                role.display_name, "-", "-", "-", "-", _availability_cell(None), "-"
            )
            continue
        table.add_row(
            role.display_name,
            str(outcome.phase),
            f"{len(outcome.assigned_topics)}/{outcome.total_topics}",
            str(outcome.try_count),
            str(outcome.fail_count),
            _availability_cell(outcome),
            f"{outcome.global_latency.p95:.0f}",
        )
    console.print(table)

    for role, error in service.errors.items():
        console.print(f"[red]{role.display_name} worker failed: {error}[/red]")
    if service.errors:
        sys.exit(1)


@cli.command("show-config")
@click.option("--config", "-c", type=click.Path(exists=True), help="Settings JSON file")
@click.pass_context
def show_config(ctx, config: str | None):
    """Print the effective settings as JSON."""
    settings = load_settings(config)
    _apply_logging(ctx, settings)
    click.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error")
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
