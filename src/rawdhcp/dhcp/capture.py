"""
Raw link-layer capture and injection for one interface.

The interface has no IPv4 address while the handshake runs, so frames
are written and read through a packet socket (scapy L2socket) instead
of a UDP socket.

One handle belongs to one handshake session: the frame builder is its
only writer and the listener task its only reader.
"""

import asyncio
import logging
import select
import threading
from typing import AsyncIterator

from scapy.config import conf
from scapy.data import ETH_P_ALL, MTU
from scapy.error import Scapy_Exception

from rawdhcp.errors import ResourceError

logger = logging.getLogger(__name__)


class CaptureHandle:
    """Packet socket bound to a single interface."""

    def __init__(self, ifname: str, sock, poll_interval: float = 0.1):
        self.ifname = ifname
        self.poll_interval = poll_interval
        self._sock = sock
        self._closed = False
        # Serializes recv_raw() against close()
        self._lock = threading.Lock()

    @classmethod
    def open(cls, ifname: str, poll_interval: float = 0.1) -> "CaptureHandle":
        """Open a capture handle on ifname (not promiscuous, no BPF filter)."""
        try:
            sock = conf.L2socket(iface=ifname, type=ETH_P_ALL, promisc=False)
        except PermissionError as e:
            raise ResourceError(
                f"Permission denied opening {ifname}. Run as root or with CAP_NET_RAW."
            ) from e
        except (OSError, Scapy_Exception) as e:
            raise ResourceError(f"Failed to open {ifname}: {e}") from e

        logger.debug("Opened capture handle on %s", ifname)
        return cls(ifname, sock, poll_interval=poll_interval)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: bytes) -> None:
        """Inject one complete link-layer frame."""
        if self._closed:
            raise ResourceError(f"Capture handle on {self.ifname} is closed")
        try:
            self._sock.send(frame)
        except OSError as e:
            raise ResourceError(f"Failed to send on {self.ifname}: {e}") from e

    def _read_one(self) -> bytes | None:
        """Wait up to poll_interval for one inbound frame."""
        if self._closed:
            return None
        try:
            ready, _, _ = select.select([self._sock], [], [], self.poll_interval)
        except (OSError, ValueError) as e:
            if self._closed:
                return None
            raise ResourceError(f"Failed to read from {self.ifname}: {e}") from e
        if not ready:
            return None

        with self._lock:
            if self._closed:
                return None
            try:
                _, data, _ = self._sock.recv_raw(MTU)
            except OSError as e:
                raise ResourceError(f"Failed to read from {self.ifname}: {e}") from e
        # Our own outgoing frames come back as None
        return data

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield raw inbound frames until the handle is closed."""
        while not self._closed:
            frame = await asyncio.to_thread(self._read_one)
            if frame:
                yield frame

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._sock.close()
            except OSError as e:
                raise ResourceError(f"Failed to close {self.ifname}: {e}") from e
        logger.debug("Closed capture handle on %s", self.ifname)

    def __enter__(self) -> "CaptureHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
