"""
Interface helpers: link-address lookup and applying a lease.
"""

import errno
import logging
import socket
import struct

from netaddr import AddrFormatError, IPNetwork

from rawdhcp.errors import AddressAssignmentError, LinkAddressError

logger = logging.getLogger(__name__)

SIOCGIFHWADDR = 0x8927


def get_link_address(ifname: str) -> bytes:
    """Get the 6-byte MAC address of an interface."""
    import fcntl

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            info = fcntl.ioctl(
                sock.fileno(),
                SIOCGIFHWADDR,
                struct.pack('256s', ifname.encode()[:15])
            )
    except OSError as e:
        raise LinkAddressError(f"Could not get MAC of {ifname}: {e}") from e
    return info[18:24]


def assign_address(ifname: str, cidr: str) -> None:
    """Add address/prefix (e.g. "192.168.1.10/24") to an interface via netlink."""
    from pyroute2 import IPRoute
    from pyroute2.netlink.exceptions import NetlinkError

    try:
        network = IPNetwork(cidr)
    except AddrFormatError as e:
        raise AddressAssignmentError(f"Invalid address {cidr!r}: {e}") from e

    try:
        with IPRoute() as ipr:
            links = ipr.link_lookup(ifname=ifname)
            if not links:
                raise AddressAssignmentError(f"No such interface: {ifname}")
            ipr.addr("add", index=links[0], address=str(network.ip), prefixlen=network.prefixlen)
    except NetlinkError as e:
        if e.code == errno.EEXIST:
            logger.warning("%s already has %s", ifname, cidr)
            return
        raise AddressAssignmentError(f"Failed to set {cidr} on {ifname}: {e}") from e
    except PermissionError as e:
        raise AddressAssignmentError(
            f"Permission denied setting {cidr} on {ifname}. Run as root or with CAP_NET_ADMIN."
        ) from e

    logger.info("set %s to %s", ifname, cidr)
