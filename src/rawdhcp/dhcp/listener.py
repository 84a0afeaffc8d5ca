"""
Background task feeding server replies to the handshake.

Reads frames from the session's capture handle, drops everything that
is not an Offer, Ack or Nak for the session's transaction id, and hands the
rest to the state machine one message at a time.
"""

import asyncio
import logging
from contextlib import aclosing

from rawdhcp.dhcp.frames import parse_frame
from rawdhcp.dhcp.message import DHCPMessage, DHCPMessageType
from rawdhcp.errors import DecodeError, ProtocolMismatchError

logger = logging.getLogger(__name__)

# Nak is forwarded as well, the state machine fails on it
FORWARDED_TYPES = (DHCPMessageType.OFFER, DHCPMessageType.ACK, DHCPMessageType.NAK)


class FrameListener:
    """Producer side of the session channel."""

    def __init__(self, session):
        self.session = session
        self.accepted = 0
        self.rejected = 0

    def accept(self, raw: bytes) -> DHCPMessage:
        """
        Filter one raw frame.

        Returns the decoded message when it belongs to this session.

        Raises:
            DecodeError: frame or DHCP payload is malformed
            ProtocolMismatchError: wrong ports, transaction id or message type
        """
        message = DHCPMessage.decode(parse_frame(raw))

        if message.xid != self.session.xid:
            raise ProtocolMismatchError(
                f"unhandled transaction id: 0x{message.xid:08x} and 0x{self.session.xid:08x}"
            )

        mtype = message.message_type
        if mtype not in FORWARDED_TYPES:
            name = mtype.name if mtype else None
            raise ProtocolMismatchError(f"unhandled message type: {name}")
        return message

    async def _pump(self) -> None:
        async with aclosing(self.session.capture.frames()) as frames:
            async for raw in frames:
                try:
                    message = self.accept(raw)
                except (DecodeError, ProtocolMismatchError) as e:
                    self.rejected += 1
                    logger.debug("Dropped frame: %s", e)
                    continue

                self.accepted += 1
                logger.debug("Accepted %s", message.summary())
                await self.session.channel.put(message)

    async def run(self) -> None:
        """Run until the deadline, cancellation, or the end of the frame stream."""
        try:
            await asyncio.wait_for(self._pump(), timeout=self.session.remaining())
        except asyncio.TimeoutError:
            logger.debug("Listener reached session deadline")
        finally:
            logger.debug("closing")
            self.session.capture.close()
            logger.debug("closed")
