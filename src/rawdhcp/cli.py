"""
rawdhcp command line entry point.
"""

import click

from rawdhcp import __version__
from rawdhcp.dhcp.cli import dhcp


@click.group()
@click.version_option(__version__, prog_name="rawdhcp")
def main():
    """rawdhcp - DHCP client over raw link-layer frames."""
    pass


main.add_command(dhcp)


if __name__ == "__main__":
    main()
