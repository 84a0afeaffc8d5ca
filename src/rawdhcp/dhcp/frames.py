"""
Broadcast frame construction and inbound frame filtering.

Outgoing DHCP messages are wrapped in Ethernet/IPv4/UDP headers
addressed to the link and network broadcast addresses. Inbound frames
are accepted only when they decode to Ethernet/IPv4/UDP/BOOTP and
travel from the server port to the client port.
"""

from scapy.layers.dhcp import BOOTP
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import Ether
from scapy.packet import Raw

from rawdhcp.dhcp.message import DHCP_CLIENT_PORT, DHCP_SERVER_PORT, format_mac
from rawdhcp.errors import DecodeError, ProtocolMismatchError

BROADCAST_MAC = "ff:ff:ff:ff:ff:ff"
BROADCAST_IP = "255.255.255.255"
UNSPECIFIED_IP = "0.0.0.0"
DEFAULT_TTL = 128

EXPECTED_LAYERS = (Ether, IP, UDP, BOOTP)


def build_broadcast_frame(local_mac: bytes, payload: bytes) -> bytes:
    """Wrap a DHCP payload in broadcast Ethernet/IPv4/UDP headers."""
    frame = (
        Ether(src=format_mac(local_mac), dst=BROADCAST_MAC)
        / IP(src=UNSPECIFIED_IP, dst=BROADCAST_IP, flags="DF", ttl=DEFAULT_TTL)
        / UDP(sport=DHCP_CLIENT_PORT, dport=DHCP_SERVER_PORT)
        / Raw(load=payload)
    )
    # Lengths and checksums (UDP over the IPv4 pseudo-header) are filled in here
    return bytes(frame)


def send_broadcast(capture, local_mac: bytes, payload: bytes) -> None:
    """Build one broadcast frame and write it to the capture handle."""
    capture.write(build_broadcast_frame(local_mac, payload))


def parse_frame(raw: bytes) -> bytes:
    """
    Extract the DHCP payload from a captured frame.

    Raises:
        DecodeError: frame is malformed or lacks one of the four layers
        ProtocolMismatchError: UDP ports are not server -> client
    """
    try:
        packet = Ether(raw)
        found = [type(layer) for layer in packet.iterpayloads()]
    except Exception as e:
        raise DecodeError(f"Undecodable frame: {e}") from e

    # scapy dissects BOOTP only on the DHCP ports
    if tuple(found[:3]) != EXPECTED_LAYERS[:3]:
        names = "/".join(layer.__name__ for layer in found)
        raise DecodeError(f"not found all layers: {names}")

    udp = packet[UDP]
    if udp.sport != DHCP_SERVER_PORT or udp.dport != DHCP_CLIENT_PORT:
        raise ProtocolMismatchError(f"udp ports do not match: {udp.sport} -> {udp.dport}")

    if found[3:4] != [BOOTP]:
        names = "/".join(layer.__name__ for layer in found)
        raise DecodeError(f"not found all layers: {names}")

    return bytes(packet[BOOTP])
