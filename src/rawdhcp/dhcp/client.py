"""
DHCP handshake over raw link-layer frames.

Acquires an IPv4 address for an interface that has none yet:
- DHCPDISCOVER (broadcast frame)
- DHCPOFFER (from server)
- DHCPREQUEST (broadcast frame)
- DHCPACK (from server), then the lease is applied to the interface

The whole exchange runs under one deadline. Exactly one Discover and
one Request are sent; there are no retransmissions.
"""

import asyncio
import functools
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from rawdhcp.config import DEFAULT_TIMEOUT, get_config
from rawdhcp.dhcp.capture import CaptureHandle
from rawdhcp.dhcp.frames import send_broadcast
from rawdhcp.dhcp.link import assign_address, get_link_address
from rawdhcp.dhcp.listener import FrameListener
from rawdhcp.dhcp.message import (
    DHCPLease,
    DHCPMessage,
    DHCPMessageType,
    format_mac,
    new_discover,
    new_request_from_offer,
)
from rawdhcp.errors import HandshakeTimeoutError, ResourceError, UnexpectedMessageTypeError

logger = logging.getLogger(__name__)

RAW_FRAMES_SUPPORTED = sys.platform.startswith("linux")


class HandshakeState(Enum):
    """Client states, in the order they are entered."""
    INIT = "init"
    SELECTING = "selecting"
    REQUESTING = "requesting"
    BOUND = "bound"
    FAILED = "failed"


# Offer is only valid while SELECTING, Ack only while REQUESTING
TRANSITIONS: dict[tuple[HandshakeState, DHCPMessageType], HandshakeState] = {
    (HandshakeState.SELECTING, DHCPMessageType.OFFER): HandshakeState.REQUESTING,
    (HandshakeState.REQUESTING, DHCPMessageType.ACK): HandshakeState.BOUND,
}


def next_state(
    state: HandshakeState,
    message_type: DHCPMessageType | None,
    server_message: str | None = None,
) -> HandshakeState:
    """
    State entered after receiving message_type in state.

    Raises UnexpectedMessageTypeError for any pair not in TRANSITIONS,
    quoting the server's message (option 56) when there is one.
    """
    try:
        return TRANSITIONS[(state, message_type)]
    except KeyError:
        raise UnexpectedMessageTypeError(state, message_type, server_message) from None


@dataclass
class Session:
    """Everything one handshake attempt owns."""
    ifname: str
    local_mac: bytes
    xid: int
    deadline: float  # event loop time
    capture: Any
    # One-slot rendezvous between the listener and the state machine
    channel: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1))

    def remaining(self) -> float:
        return max(0.0, self.deadline - asyncio.get_running_loop().time())


class DHCPClient:
    """
    DHCP client state machine for one interface.

    Usage:
        client = DHCPClient("eth0", timeout=10)
        lease = asyncio.run(client.run())
        print(f"Got {lease.cidr}")

    The collaborators (capture handle factory, MAC lookup, address
    assignment) can be replaced, which is how the tests drive it.
    """

    def __init__(
        self,
        ifname: str,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        xid: int | None = None,
        poll_interval: float = 0.1,
        open_capture: Callable[[str], Any] | None = None,
        link_lookup: Callable[[str], bytes] = get_link_address,
        assign: Callable[[str, str], None] = assign_address,
    ):
        """
        Initialize DHCP client.

        Args:
            ifname: Interface to configure
            timeout: Deadline in seconds for the whole handshake
            xid: Transaction id to use instead of a random one
            poll_interval: Capture read wake-up interval
            open_capture: Factory returning a capture handle for ifname
            link_lookup: Returns the MAC address of ifname
            assign: Applies "address/prefix" to ifname
        """
        self.ifname = ifname
        self.timeout = timeout
        self.xid = xid
        self.open_capture = open_capture or functools.partial(
            CaptureHandle.open, poll_interval=poll_interval
        )
        self.link_lookup = link_lookup
        self.assign = assign

        self.state = HandshakeState.INIT
        self.history: list[HandshakeState] = [HandshakeState.INIT]
        self.session: Session | None = None
        self.listener: FrameListener | None = None

    def _transition(self, state: HandshakeState) -> None:
        logger.info("%s: %s -> %s", self.ifname, self.state.name, state.name)
        self.state = state
        self.history.append(state)

    async def _wait(self, listener_task: asyncio.Task, waiting_for: str) -> DHCPMessage:
        """Next message from the listener, bounded by the session deadline."""
        session = self.session
        get = asyncio.ensure_future(session.channel.get())
        try:
            while True:
                waiters = {get} if listener_task.done() else {get, listener_task}
                done, _ = await asyncio.wait(
                    waiters,
                    timeout=session.remaining(),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if get in done:
                    message = get.result()
                    logger.info("received message type: %s", message.message_type.name)
                    return message
                if not done:
                    raise HandshakeTimeoutError(waiting_for, self.timeout)

                # Listener ended first; a read failure is fatal, a clean exit
                # leaves only the deadline to wait for.
                error = listener_task.exception()
                if error is not None:
                    raise error
        finally:
            get.cancel()

    async def run(self) -> DHCPLease:
        """Perform Discover/Offer/Request/Ack and apply the lease."""
        try:
            local_mac = self.link_lookup(self.ifname)
            discover = new_discover(local_mac, xid=self.xid)
            capture = self.open_capture(self.ifname)
        except BaseException:
            self._transition(HandshakeState.FAILED)
            raise

        loop = asyncio.get_running_loop()
        self.session = Session(
            ifname=self.ifname,
            local_mac=local_mac,
            xid=discover.xid,
            deadline=loop.time() + self.timeout,
            capture=capture,
        )
        self.listener = FrameListener(self.session)
        listener_task = asyncio.create_task(self.listener.run())

        logger.info(
            "%s: starting DHCP (mac %s, transaction id 0x%08x)",
            self.ifname, format_mac(local_mac), discover.xid,
        )

        failed = False
        try:
            send_broadcast(capture, local_mac, discover.encode())
            self._transition(HandshakeState.SELECTING)

            offer = await self._wait(listener_task, "OFFER")
            state = next_state(self.state, offer.message_type, offer.server_message)
            logger.info("%s: offered %s by %s", self.ifname, offer.yiaddr, offer.server_id)

            request = new_request_from_offer(offer)
            send_broadcast(capture, local_mac, request.encode())
            self._transition(state)

            ack = await self._wait(listener_task, "ACK")
            state = next_state(self.state, ack.message_type, ack.server_message)

            lease = DHCPLease.from_ack(ack)
            self.assign(self.ifname, lease.cidr)
            self._transition(state)
            return lease

        except BaseException:
            failed = True
            self._transition(HandshakeState.FAILED)
            raise

        finally:
            listener_task.cancel()
            await asyncio.gather(listener_task, return_exceptions=True)
            try:
                capture.close()
            except ResourceError as e:
                if not failed:
                    raise
                logger.warning("%s: %s", self.ifname, e)


async def obtain_lease(ifname: str, timeout: float = DEFAULT_TIMEOUT, **kwargs) -> DHCPLease:
    """Run one handshake on ifname and return the applied lease."""
    return await DHCPClient(ifname, timeout, **kwargs).run()


def start(ifname: str) -> DHCPLease | None:
    """Acquire and apply a lease for ifname with an effectively unbounded deadline."""
    return start_with_timeout(ifname, DEFAULT_TIMEOUT)


def start_with_timeout(ifname: str, timeout: float) -> DHCPLease | None:
    """
    Acquire and apply a lease for ifname within timeout seconds.

    On platforms without raw-frame support this does nothing and
    returns None.
    """
    if not RAW_FRAMES_SUPPORTED:
        logger.debug("raw-frame DHCP not supported on %s, skipping %s", sys.platform, ifname)
        return None

    config = get_config()
    return asyncio.run(obtain_lease(ifname, timeout, poll_interval=config.poll_interval))
