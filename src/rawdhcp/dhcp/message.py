"""
DHCP message encoding and decoding.

Builds the BOOTP/DHCP payloads sent during the handshake and parses
the replies coming back from the server:
- DHCPDISCOVER with a fresh transaction id
- DHCPREQUEST derived from a DHCPOFFER
- DHCPOFFER / DHCPACK / DHCPNAK decoding and option access
"""

import random
import socket
import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any

from netaddr import AddrFormatError, IPAddress

from rawdhcp.errors import DecodeError

# DHCP Constants
DHCP_SERVER_PORT = 67
DHCP_CLIENT_PORT = 68
DHCP_MAGIC_COOKIE = bytes([99, 130, 83, 99])  # 0x63825363

# Hardware types
HTYPE_ETHERNET = 1

# DHCP Operation codes
BOOTREQUEST = 1
BOOTREPLY = 2

FLAG_BROADCAST = 0x8000

# Fixed header size, options follow the magic cookie
HEADER_SIZE = 236
MIN_PACKET_SIZE = 300

ZERO_IP = "0.0.0.0"


class DHCPMessageType(IntEnum):
    """DHCP message types (Option 53)."""
    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8


class DHCPOption(IntEnum):
    """DHCP options used by the client."""
    PAD = 0
    SUBNET_MASK = 1
    ROUTER = 3
    DNS_SERVER = 6
    HOSTNAME = 12
    DOMAIN_NAME = 15
    BROADCAST_ADDRESS = 28
    NTP_SERVER = 42
    REQUESTED_IP = 50
    LEASE_TIME = 51
    MESSAGE_TYPE = 53
    SERVER_ID = 54
    PARAMETER_REQUEST = 55
    MESSAGE = 56
    MAX_MESSAGE_SIZE = 57
    RENEWAL_TIME = 58
    REBINDING_TIME = 59
    CLIENT_ID = 61
    END = 255


DEFAULT_REQUESTED_OPTIONS = [
    DHCPOption.SUBNET_MASK,
    DHCPOption.ROUTER,
    DHCPOption.DNS_SERVER,
    DHCPOption.DOMAIN_NAME,
    DHCPOption.BROADCAST_ADDRESS,
    DHCPOption.NTP_SERVER,
    DHCPOption.LEASE_TIME,
    DHCPOption.RENEWAL_TIME,
    DHCPOption.REBINDING_TIME,
]


def format_mac(mac: bytes) -> str:
    """Format MAC address as string."""
    return ":".join(f"{b:02x}" for b in mac)


def _ip_list(value: bytes) -> list[str]:
    return [socket.inet_ntoa(value[i:i + 4]) for i in range(0, len(value) - 3, 4)]


@dataclass
class DHCPMessage:
    """A BOOTP/DHCP message."""
    op: int = BOOTREQUEST
    xid: int = 0
    secs: int = 0
    flags: int = 0
    ciaddr: str = ZERO_IP
    yiaddr: str = ZERO_IP
    siaddr: str = ZERO_IP
    giaddr: str = ZERO_IP
    chaddr: bytes = b""
    hops: int = 0

    # Options in wire order, keyed by option code
    options: dict[int, bytes] = field(default_factory=dict)

    @property
    def message_type(self) -> DHCPMessageType | None:
        value = self.options.get(DHCPOption.MESSAGE_TYPE)
        if not value or len(value) != 1:
            return None
        try:
            return DHCPMessageType(value[0])
        except ValueError:
            return None

    def _ip_option(self, option: DHCPOption) -> str | None:
        value = self.options.get(option)
        if value is None or len(value) < 4:
            return None
        return socket.inet_ntoa(value[:4])

    def _int_option(self, option: DHCPOption) -> int | None:
        value = self.options.get(option)
        if value is None or len(value) != 4:
            return None
        return struct.unpack('>I', value)[0]

    @property
    def subnet_mask(self) -> str | None:
        return self._ip_option(DHCPOption.SUBNET_MASK)

    @property
    def server_id(self) -> str | None:
        return self._ip_option(DHCPOption.SERVER_ID)

    @property
    def router(self) -> str | None:
        return self._ip_option(DHCPOption.ROUTER)

    @property
    def broadcast_address(self) -> str | None:
        return self._ip_option(DHCPOption.BROADCAST_ADDRESS)

    @property
    def dns_servers(self) -> list[str]:
        return _ip_list(self.options.get(DHCPOption.DNS_SERVER, b""))

    @property
    def ntp_servers(self) -> list[str]:
        return _ip_list(self.options.get(DHCPOption.NTP_SERVER, b""))

    @property
    def domain_name(self) -> str | None:
        value = self.options.get(DHCPOption.DOMAIN_NAME)
        if value is None:
            return None
        return value.decode('utf-8', errors='ignore').rstrip('\x00')

    @property
    def server_message(self) -> str | None:
        value = self.options.get(DHCPOption.MESSAGE)
        if value is None:
            return None
        return value.decode('utf-8', errors='ignore').rstrip('\x00')

    @property
    def lease_time(self) -> int | None:
        return self._int_option(DHCPOption.LEASE_TIME)

    @property
    def renewal_time(self) -> int | None:
        return self._int_option(DHCPOption.RENEWAL_TIME)

    @property
    def rebinding_time(self) -> int | None:
        return self._int_option(DHCPOption.REBINDING_TIME)

    def encode(self) -> bytes:
        """Serialize to wire format, padded to the BOOTP minimum size."""
        if len(self.chaddr) > 16:
            raise ValueError(f"chaddr too long: {len(self.chaddr)} bytes")

        packet = struct.pack(
            '>BBBBIHH4s4s4s4s16s64s128s',
            self.op, HTYPE_ETHERNET, 6, self.hops,
            self.xid, self.secs, self.flags,
            socket.inet_aton(self.ciaddr),
            socket.inet_aton(self.yiaddr),
            socket.inet_aton(self.siaddr),
            socket.inet_aton(self.giaddr),
            self.chaddr.ljust(16, b'\x00'),
            b'\x00' * 64,   # sname
            b'\x00' * 128,  # file
        )
        packet += DHCP_MAGIC_COOKIE

        for option, value in self.options.items():
            if len(value) > 255:
                raise ValueError(f"Option {option} too long: {len(value)} bytes")
            packet += bytes([option, len(value)]) + value
        packet += bytes([DHCPOption.END])

        if len(packet) < MIN_PACKET_SIZE:
            packet += b'\x00' * (MIN_PACKET_SIZE - len(packet))
        return packet

    @classmethod
    def decode(cls, data: bytes) -> "DHCPMessage":
        """Parse a DHCP message, raising DecodeError on malformed input."""
        if len(data) < HEADER_SIZE + len(DHCP_MAGIC_COOKIE):
            raise DecodeError(f"Packet too short: {len(data)} bytes")

        (op, _htype, hlen, hops, xid, secs, flags,
         ciaddr, yiaddr, siaddr, giaddr, chaddr) = struct.unpack(
            '>BBBBIHH4s4s4s4s16s', data[:44]
        )

        if data[HEADER_SIZE:HEADER_SIZE + 4] != DHCP_MAGIC_COOKIE:
            raise DecodeError("Invalid magic cookie")

        options: dict[int, bytes] = {}
        options_data = data[HEADER_SIZE + 4:]
        i = 0
        while i < len(options_data):
            option = options_data[i]

            if option == DHCPOption.PAD:
                i += 1
                continue

            if option == DHCPOption.END:
                break

            if i + 1 >= len(options_data):
                raise DecodeError(f"Truncated option {option}")

            length = options_data[i + 1]
            if i + 2 + length > len(options_data):
                raise DecodeError(f"Option {option} overruns packet")

            # RFC 3396: repeated options are concatenated
            value = options_data[i + 2:i + 2 + length]
            options[option] = options.get(option, b"") + value
            i += 2 + length

        return cls(
            op=op,
            xid=xid,
            secs=secs,
            flags=flags,
            ciaddr=socket.inet_ntoa(ciaddr),
            yiaddr=socket.inet_ntoa(yiaddr),
            siaddr=socket.inet_ntoa(siaddr),
            giaddr=socket.inet_ntoa(giaddr),
            chaddr=chaddr[:min(hlen, 16)],
            hops=hops,
            options=options,
        )

    def summary(self) -> str:
        mtype = self.message_type
        name = mtype.name if mtype else "BOOTP"
        return f"{name} xid=0x{self.xid:08x} yiaddr={self.yiaddr} chaddr={format_mac(self.chaddr)}"


def _client_options(message_type: DHCPMessageType, mac: bytes) -> dict[int, bytes]:
    options: dict[int, bytes] = {DHCPOption.MESSAGE_TYPE: bytes([message_type])}
    # Default client identifier: hardware type + MAC
    options[DHCPOption.CLIENT_ID] = bytes([HTYPE_ETHERNET]) + mac
    return options


def _finish_options(options: dict[int, bytes], requested_options: list[int] | None) -> None:
    requested = DEFAULT_REQUESTED_OPTIONS if requested_options is None else requested_options
    if requested:
        options[DHCPOption.PARAMETER_REQUEST] = bytes(requested)
    options[DHCPOption.MAX_MESSAGE_SIZE] = struct.pack('>H', 1500)


def new_discover(
    mac: bytes,
    xid: int | None = None,
    requested_options: list[int] | None = None,
) -> DHCPMessage:
    """Build a DHCPDISCOVER for the given link address."""
    if xid is None:
        xid = random.randint(0, 0xFFFFFFFF)

    options = _client_options(DHCPMessageType.DISCOVER, mac)
    _finish_options(options, requested_options)

    return DHCPMessage(
        op=BOOTREQUEST,
        xid=xid,
        flags=FLAG_BROADCAST,
        chaddr=mac,
        options=options,
    )


def new_request_from_offer(
    offer: DHCPMessage,
    requested_options: list[int] | None = None,
) -> DHCPMessage:
    """Build the DHCPREQUEST that selects an offer, reusing its transaction id."""
    if offer.message_type != DHCPMessageType.OFFER:
        raise ValueError(f"Not an offer: {offer.summary()}")

    mac = offer.chaddr
    options = _client_options(DHCPMessageType.REQUEST, mac)
    options[DHCPOption.REQUESTED_IP] = socket.inet_aton(offer.yiaddr)
    if DHCPOption.SERVER_ID in offer.options:
        options[DHCPOption.SERVER_ID] = offer.options[DHCPOption.SERVER_ID]
    _finish_options(options, requested_options)

    return DHCPMessage(
        op=BOOTREQUEST,
        xid=offer.xid,
        flags=FLAG_BROADCAST,
        chaddr=mac,
        options=options,
    )


def prefix_length(subnet_mask: str | None) -> int:
    """Prefix length of a dotted subnet mask; a missing mask means a host route."""
    if not subnet_mask:
        return 32
    try:
        return IPAddress(subnet_mask).netmask_bits()
    except AddrFormatError as e:
        raise DecodeError(f"Invalid subnet mask {subnet_mask!r}: {e}") from e


@dataclass
class DHCPLease:
    """Represents a DHCP lease."""
    ip_address: str
    prefix_len: int = 32
    subnet_mask: str | None = None
    gateway: str | None = None
    dns_servers: list[str] = field(default_factory=list)
    domain_name: str | None = None
    broadcast_address: str | None = None
    ntp_servers: list[str] = field(default_factory=list)

    # Lease timing
    lease_time: int | None = None  # seconds
    renewal_time: int | None = None  # T1
    rebinding_time: int | None = None  # T2

    server_id: str | None = None

    obtained_at: datetime | None = None
    expires_at: datetime | None = None

    transaction_id: int | None = None
    client_mac: str | None = None

    @property
    def cidr(self) -> str:
        return f"{self.ip_address}/{self.prefix_len}"

    @classmethod
    def from_ack(cls, ack: DHCPMessage) -> "DHCPLease":
        obtained_at = datetime.now()
        lease_time = ack.lease_time
        return cls(
            ip_address=ack.yiaddr,
            prefix_len=prefix_length(ack.subnet_mask),
            subnet_mask=ack.subnet_mask,
            gateway=ack.router,
            dns_servers=ack.dns_servers,
            domain_name=ack.domain_name,
            broadcast_address=ack.broadcast_address,
            ntp_servers=ack.ntp_servers,
            lease_time=lease_time,
            renewal_time=ack.renewal_time,
            rebinding_time=ack.rebinding_time,
            server_id=ack.server_id,
            obtained_at=obtained_at,
            expires_at=obtained_at + timedelta(seconds=lease_time) if lease_time else None,
            transaction_id=ack.xid,
            client_mac=format_mac(ack.chaddr) if ack.chaddr else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip_address": self.ip_address,
            "prefix_len": self.prefix_len,
            "cidr": self.cidr,
            "subnet_mask": self.subnet_mask,
            "gateway": self.gateway,
            "dns_servers": self.dns_servers,
            "domain_name": self.domain_name,
            "broadcast_address": self.broadcast_address,
            "ntp_servers": self.ntp_servers,
            "lease_time": self.lease_time,
            "renewal_time": self.renewal_time,
            "rebinding_time": self.rebinding_time,
            "server_id": self.server_id,
            "obtained_at": self.obtained_at.isoformat() if self.obtained_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "transaction_id": self.transaction_id,
            "client_mac": self.client_mac,
        }
