"""Netlab CLI.

Command-line interface for the lab planner.
Uses Click for command parsing and Rich for output formatting.
"""

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

# Load .env file if present
load_dotenv()
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from netlab.config import NetlabSettings, get_settings
from netlab.errors import ConfigError, InvalidReferenceError, NetlabError
from netlab.model import addressing
from netlab.model.loader import LabLoader
from netlab.model.subnets import Network, assignment_label
from netlab.scenarios import build_exam_session
from netlab.session import LabSession
from netlab.state.savefile import SaveFile

console = Console()


def _print_error(e: NetlabError) -> None:
    console.print(f"[bold red]Error:[/bold red] {e.message}")
    if not e.details:
        return
    if "errors" in e.details:
        console.print("[bold red]Validation errors:[/bold red]")
        for error in e.details["errors"]:
            loc = " → ".join(str(x) for x in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            console.print(f"  • {loc}: {msg}")
    else:
        console.print(f"[dim]Details: {e.details}[/dim]")


def _settings(ctx: click.Context) -> NetlabSettings:
    return ctx.obj["settings"]


def _save_file(ctx: click.Context, path: Path | None) -> SaveFile:
    return SaveFile(path) if path else SaveFile.from_settings(_settings(ctx))


def _subnet_table(session: LabSession, nodes: list[Network], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Network")
    table.add_column("Mask")
    table.add_column("Usable Range")
    table.add_column("Broadcast")
    table.add_column("Hosts", justify="right")
    table.add_column("Status")

    for node in nodes:
        usable = "-"
        if node.host_capacity > 0:
            usable = f"{addressing.format(node.first_usable)} - {addressing.format(node.last_usable)}"
        table.add_row(
            str(node.id),
            node.cidr,
            addressing.format(node.mask),
            usable,
            addressing.format(node.broadcast),
            str(node.host_capacity),
            assignment_label(node, session.owner_hostname(node)),
        )
    return table


def _subnet_tree(session: LabSession) -> Tree:
    tree = Tree("[bold]Subnets[/bold]")
    branches: list[Tree] = [tree]
    for depth, node in session.forest.walk():
        del branches[depth + 1:]
        label = f"[cyan]{node.cidr}[/cyan]"
        if node.name:
            label += f" [bold]{node.name}[/bold]"
        label += f" [dim]{assignment_label(node, session.owner_hostname(node))}[/dim]"
        if node.dhcp_enabled:
            helper = f" via {node.dhcp_helper_address}" if node.dhcp_helper_address else ""
            label += f" [green]DHCP{helper}[/green]"
        branches.append(branches[depth].add(label))
    return tree


def _print_session(session: LabSession) -> None:
    graph = session.graph

    summary = Table(title="Lab Summary", show_header=True, header_style="bold cyan")
    summary.add_column("Metric", style="dim")
    summary.add_column("Value", justify="right")
    for metric, value in session.summary().items():
        summary.add_row(metric.replace("_", " ").title(), str(value))
    console.print(summary)
    console.print()

    if len(graph):
        device_table = Table(title="Devices", show_header=True, header_style="bold green")
        device_table.add_column("Hostname")
        device_table.add_column("Class")
        device_table.add_column("Model")
        device_table.add_column("Free Ports", justify="right")
        for _, device in graph.devices():
            device_table.add_row(
                device.hostname,
                device.device_class.value,
                device.model,
                str(len(device.available_ports())),
            )
        console.print(device_table)
        console.print()

    if graph.links:
        link_table = Table(title="Cables", show_header=True, header_style="bold yellow")
        link_table.add_column("Device A")
        link_table.add_column("Port A")
        link_table.add_column("Device B")
        link_table.add_column("Port B")
        link_table.add_column("Cable")
        for link in graph.links:
            link_table.add_row(
                graph.hostname(link.device_a),
                link.port_a,
                graph.hostname(link.device_b),
                link.port_b,
                link.cable_type.label,
            )
        console.print(link_table)
        console.print()

    if len(session.vlans) > 1:
        vlan_table = Table(title="VLANs", show_header=True, header_style="bold magenta")
        vlan_table.add_column("ID", justify="right")
        vlan_table.add_column("Name")
        for vlan_id, name in session.vlans.items():
            vlan_table.add_row(str(vlan_id), name)
        console.print(vlan_table)
        console.print()

    if len(session.forest):
        console.print(_subnet_tree(session))
        console.print()


@click.group()
@click.version_option(package_name="netlab-planner")
@click.pass_context
def main(ctx: click.Context) -> None:
    """Netlab subnet and topology planner.

    Plan VLSM addressing, wire up routers, switches and PCs,
    and resolve DHCP relay targets for lab exercises.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        _print_error(ConfigError(f"Invalid settings: {e.error_count()} errors", {"errors": e.errors()}))
        raise SystemExit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command("plan")
@click.argument("base")
@click.option("--hosts", type=int, default=None, help="Usable hosts each subnet must hold")
@click.option("--subnets", type=int, default=None, help="Number of subnets to create")
@click.option("--save", "save_path", type=click.Path(path_type=Path), default=None, help="Write the plan to a save file")
@click.pass_context
def plan(ctx: click.Context, base: str, hosts: int | None, subnets: int | None, save_path: Path | None) -> None:
    """Divide a base network into equal subnets.

    BASE: Base network in x.x.x.x/yy form
    """
    try:
        if (hosts is None) == (subnets is None):
            raise click.UsageError("Give exactly one of --hosts or --subnets")

        session = LabSession.from_settings(_settings(ctx))
        blocks = session.forest.plan(base, hosts=hosts, subnets=subnets)

        console.print(_subnet_table(session, blocks, f"Subnets of {base}"))
        console.print()
        console.print(
            Panel(
                f"[bold green]Generated {len(blocks)} subnets of /{blocks[0].prefix_length}[/bold green]",
                title="Plan",
                border_style="green",
            )
        )

        if save_path:
            SaveFile(save_path).save(session)
            console.print(f"[green]✓[/green] Saved to {save_path}")

    except NetlabError as e:
        _print_error(e)
        raise SystemExit(1)


@main.command("split")
@click.argument("subnet_id", type=int)
@click.option("--hosts", type=int, default=None, help="Usable hosts each child must hold")
@click.option("--subnets", type=int, default=None, help="Number of children to create")
@click.option("--file", "-f", "path", type=click.Path(path_type=Path), default=None, help="Save file")
@click.pass_context
def split(ctx: click.Context, subnet_id: int, hosts: int | None, subnets: int | None, path: Path | None) -> None:
    """Split a subnet of a saved lab (VLSM).

    SUBNET_ID: Id of the subnet to split
    """
    try:
        if (hosts is None) == (subnets is None):
            raise click.UsageError("Give exactly one of --hosts or --subnets")

        store = _save_file(ctx, path)
        session = store.load(LabSession.from_settings(_settings(ctx)))
        if hosts is not None:
            children = session.forest.split_by_hosts(subnet_id, hosts)
        else:
            children = session.forest.split_by_subnets(subnet_id, subnets)  # type: ignore[arg-type]
        store.save(session)

        parent = session.forest.find(subnet_id)
        console.print(_subnet_table(session, children, f"Subnets of {parent.cidr}"))
        console.print(f"[green]✓[/green] Saved to {store.path}")

    except NetlabError as e:
        _print_error(e)
        raise SystemExit(1)


@main.command("show")
@click.option("--file", "-f", "path", type=click.Path(path_type=Path), default=None, help="Save file")
@click.pass_context
def show(ctx: click.Context, path: Path | None) -> None:
    """Show the devices, cables, VLANs and subnets of a saved lab."""
    try:
        session = _save_file(ctx, path).load(LabSession.from_settings(_settings(ctx)))
        _print_session(session)
    except NetlabError as e:
        _print_error(e)
        raise SystemExit(1)


@main.command("relay")
@click.argument("server")
@click.option("--file", "-f", "path", type=click.Path(path_type=Path), default=None, help="Save file")
@click.pass_context
def relay(ctx: click.Context, server: str, path: Path | None) -> None:
    """Resolve the DHCP relay address of a server router.

    SERVER: Hostname of the router running the DHCP pools
    """
    try:
        session = _save_file(ctx, path).load(LabSession.from_settings(_settings(ctx)))
        server_id = session.graph.find_device(server)
        if server_id is None:
            raise InvalidReferenceError("device", server)

        address = session.resolver.require(server_id)
        console.print(
            Panel(
                f"[bold green]ip helper-address {addressing.format(address)}[/bold green]",
                title=f"Relay target for {server}",
                border_style="green",
            )
        )
    except NetlabError as e:
        _print_error(e)
        raise SystemExit(1)


@main.command("exam")
@click.option("--save", "save_path", type=click.Path(path_type=Path), default=None, help="Write the lab to a save file")
@click.pass_context
def exam(ctx: click.Context, save_path: Path | None) -> None:
    """Build the two-router exam lab."""
    try:
        session = build_exam_session(LabSession.from_settings(_settings(ctx)))
        _print_session(session)

        helpers = sorted({n.dhcp_helper_address for n in session.forest if n.dhcp_helper_address})
        console.print(
            Panel(
                f"[bold green]Exam lab ready[/bold green]\nRelay via {', '.join(helpers) or '-'}",
                title="Exam",
                border_style="green",
            )
        )

        if save_path:
            SaveFile(save_path).save(session)
            console.print(f"[green]✓[/green] Saved to {save_path}")

    except NetlabError as e:
        _print_error(e)
        raise SystemExit(1)


@main.command("load")
@click.argument("lab_file", type=click.Path(exists=True, path_type=Path))
@click.option("--save", "save_path", type=click.Path(path_type=Path), default=None, help="Write the lab to a save file")
@click.pass_context
def load(ctx: click.Context, lab_file: Path, save_path: Path | None) -> None:
    """Load and validate a YAML lab description.

    LAB_FILE: Path to the lab YAML file
    """
    try:
        session = LabLoader(_settings(ctx)).load(lab_file)
        _print_session(session)
        console.print(
            Panel(
                f"[bold green]{len(session.graph)} devices, {len(session.graph.links)} cables, "
                f"{len(session.forest)} subnets[/bold green]",
                title="Lab Loaded",
                border_style="green",
            )
        )

        if save_path:
            SaveFile(save_path).save(session)
            console.print(f"[green]✓[/green] Saved to {save_path}")

    except NetlabError as e:
        _print_error(e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
