"""
CLI commands for DHCP operations.

Runs the raw-frame handshake against a real interface and shows the
resulting lease.
"""

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from rawdhcp.config import get_config
from rawdhcp.dhcp import client as dhcp_client
from rawdhcp.dhcp.message import DHCPLease
from rawdhcp.errors import DHCPClientError, HandshakeTimeoutError
from rawdhcp.logging_config import setup_logging

console = Console()


@click.group()
def dhcp():
    """DHCP client operations over raw link-layer frames.

    \b
    Examples:
        # Obtain a lease for eth0 and apply it
        rawdhcp dhcp obtain -i eth0

        # Give up after 10 seconds, with debug output
        rawdhcp dhcp obtain -i eth0 -t 10 -v

    Note: Requires root privileges (CAP_NET_RAW and CAP_NET_ADMIN).
    """
    pass


def display_lease(lease: DHCPLease):
    """Display lease information."""
    table = Table(title="DHCP Lease", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Address", lease.cidr)
    table.add_row("Subnet Mask", lease.subnet_mask or "N/A")
    table.add_row("Gateway", lease.gateway or "N/A")
    table.add_row("DNS Servers", ", ".join(lease.dns_servers) if lease.dns_servers else "N/A")
    table.add_row("Domain", lease.domain_name or "N/A")

    if lease.ntp_servers:
        table.add_row("NTP Servers", ", ".join(lease.ntp_servers))

    table.add_row("", "")  # Spacer
    table.add_row("Lease Time", f"{lease.lease_time}s ({lease.lease_time // 3600}h)" if lease.lease_time else "N/A")
    table.add_row("Server ID", lease.server_id or "N/A")
    if lease.transaction_id is not None:
        table.add_row("Transaction ID", f"0x{lease.transaction_id:08x}")

    console.print(table)


@dhcp.command()
@click.option("--interface", "-i", help="Network interface to configure")
@click.option("--timeout", "-t", type=float, help="Deadline for the whole handshake in seconds")
@click.option("--verbose", "-v", is_flag=True, help="Verbose debug output")
@click.option("--log-file", help="Also write a detailed log to this file")
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def obtain(
    interface: str | None,
    timeout: float | None,
    verbose: bool,
    log_file: str | None,
    json_out: bool,
):
    """Obtain a DHCP lease and apply it to the interface.

    Performs the complete handshake with broadcast frames:
    - DHCPDISCOVER
    - DHCPOFFER (from server)
    - DHCPREQUEST
    - DHCPACK (from server)

    \b
    Examples:
        rawdhcp dhcp obtain -i eth0
        rawdhcp dhcp obtain -i tap0 -t 30 --json-output
    """
    config = get_config()
    interface = interface or config.interface
    timeout = timeout if timeout is not None else config.timeout
    log_file = log_file or config.log_file

    setup_logging(
        level="DEBUG" if verbose else config.log_level,
        log_file=log_file,
        enable_file=bool(log_file),
    )

    if not dhcp_client.RAW_FRAMES_SUPPORTED:
        console.print(f"[yellow]Raw-frame DHCP is not supported on {sys.platform}; nothing to do.[/yellow]")
        return

    if not json_out and not verbose:
        console.print(f"[dim]Starting DHCP on {interface}...[/dim]")

    try:
        lease = dhcp_client.start_with_timeout(interface, timeout)
    except HandshakeTimeoutError as e:
        if json_out:
            click.echo(json.dumps({"success": False, "error": str(e)}))
        else:
            console.print(f"[yellow]No lease obtained: {e}[/yellow]")
        sys.exit(1)
    except DHCPClientError as e:
        if json_out:
            click.echo(json.dumps({"success": False, "error": str(e)}))
        else:
            console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_out:
        output = {"success": True, "interface": interface, "lease": lease.to_dict()}
        click.echo(json.dumps(output, indent=2))
    else:
        console.print()
        console.print(f"[green]{interface} configured with {lease.cidr}[/green]")
        console.print()
        display_lease(lease)


if __name__ == "__main__":
    dhcp()
