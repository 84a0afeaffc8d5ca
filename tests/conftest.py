import asyncio
import logging
import socket
import struct

import pytest
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import Ether
from scapy.packet import Raw

from rawdhcp.config import ClientConfig, set_config
from rawdhcp.dhcp.message import (
    BOOTREPLY,
    DHCPMessage,
    DHCPMessageType,
    DHCPOption,
)
from rawdhcp.errors import ResourceError

CLIENT_MAC = bytes.fromhex("020000aabbcc")
SERVER_MAC = "02:00:00:00:00:01"
SERVER_IP = "192.168.1.1"
OFFERED_IP = "192.168.1.50"
XID = 0x12345678


def make_reply(
    message_type: DHCPMessageType,
    xid: int = XID,
    yiaddr: str = OFFERED_IP,
    subnet_mask: str | None = "255.255.255.0",
    server_id: str = SERVER_IP,
) -> DHCPMessage:
    """A server reply as a DHCP server would send it."""
    options = {DHCPOption.MESSAGE_TYPE: bytes([message_type])}
    options[DHCPOption.SERVER_ID] = socket.inet_aton(server_id)
    if subnet_mask:
        options[DHCPOption.SUBNET_MASK] = socket.inet_aton(subnet_mask)
    options[DHCPOption.ROUTER] = socket.inet_aton(SERVER_IP)
    options[DHCPOption.DNS_SERVER] = socket.inet_aton("8.8.8.8") + socket.inet_aton("1.1.1.1")
    options[DHCPOption.LEASE_TIME] = struct.pack(">I", 3600)
    return DHCPMessage(
        op=BOOTREPLY,
        xid=xid,
        yiaddr=yiaddr if message_type != DHCPMessageType.NAK else "0.0.0.0",
        siaddr=server_id,
        chaddr=CLIENT_MAC,
        options=options,
    )


def server_frame(message: DHCPMessage, sport: int = 67, dport: int = 68) -> bytes:
    """Wrap a reply in the frame a server puts on the wire."""
    return bytes(
        Ether(src=SERVER_MAC, dst="ff:ff:ff:ff:ff:ff")
        / IP(src=SERVER_IP, dst="255.255.255.255")
        / UDP(sport=sport, dport=dport)
        / Raw(load=message.encode())
    )


class FakeCapture:
    """In-memory capture handle.

    Delivers the scripted frames, plus whatever `respond` returns for each
    written frame, then blocks until closed like a real link.
    """

    def __init__(self, frames=(), respond=None, fail_write=False, fail_read=False):
        self.pending = list(frames)
        self.respond = respond
        self.fail_write = fail_write
        self.fail_read = fail_read
        self.written: list[bytes] = []
        self.close_calls = 0
        self.underlying_closes = 0
        self.closed = False

    def write(self, frame: bytes) -> None:
        if self.closed:
            raise ResourceError("closed")
        if self.fail_write:
            raise ResourceError("network is down")
        self.written.append(frame)
        if self.respond:
            self.pending.extend(self.respond(frame))

    async def frames(self):
        while not self.closed:
            if self.fail_read:
                raise ResourceError("device vanished")
            if self.pending:
                yield self.pending.pop(0)
            else:
                await asyncio.sleep(0.005)

    def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self.underlying_closes += 1


@pytest.fixture
def assigned():
    """Records calls to the address-assignment collaborator."""
    calls = []

    def assign(ifname, cidr):
        calls.append((ifname, cidr))

    assign.calls = calls
    return assign


@pytest.fixture(autouse=True)
def client_config():
    config = ClientConfig(interface="eth-test", timeout=5.0, poll_interval=0.01)
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("rawdhcp")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
