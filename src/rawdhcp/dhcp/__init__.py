"""
Raw-frame DHCP client.

Acquires an IPv4 lease for an unconfigured interface by running the
Discover/Offer/Request/Ack handshake over link-layer broadcast frames,
then applies the lease to the interface.
"""

from rawdhcp.dhcp.client import (
    DHCPClient,
    HandshakeState,
    obtain_lease,
    start,
    start_with_timeout,
)
from rawdhcp.dhcp.message import (
    DHCPLease,
    DHCPMessage,
    DHCPMessageType,
    DHCPOption,
)

__all__ = [
    "DHCPClient",
    "DHCPLease",
    "DHCPMessage",
    "DHCPMessageType",
    "DHCPOption",
    "HandshakeState",
    "obtain_lease",
    "start",
    "start_with_timeout",
]
