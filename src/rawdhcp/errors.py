"""
Error types raised by the DHCP handshake.

Fatal errors (ResourceError, HandshakeTimeoutError,
UnexpectedMessageTypeError) end the session and reach the caller.
DecodeError and ProtocolMismatchError only ever reject a single frame.
"""


class DHCPClientError(Exception):
    """Base class for all rawdhcp errors."""


class ResourceError(DHCPClientError):
    """Capture handle could not be opened, written or closed."""


class LinkAddressError(ResourceError):
    """Link-layer address of an interface could not be determined."""


class AddressAssignmentError(ResourceError):
    """Leased address could not be applied to the interface."""


class DecodeError(DHCPClientError):
    """Frame or DHCP message is malformed or incomplete."""


class ProtocolMismatchError(DHCPClientError):
    """Frame is well formed but does not belong to this handshake."""


class HandshakeTimeoutError(DHCPClientError, TimeoutError):
    """Overall deadline elapsed while waiting for a server reply."""

    def __init__(self, waiting_for: str, timeout: float | None = None):
        self.waiting_for = waiting_for
        self.timeout = timeout
        message = f"timeout waiting for DHCP {waiting_for}"
        if timeout is not None:
            message += f" (deadline {timeout:g}s)"
        super().__init__(message)


class UnexpectedMessageTypeError(DHCPClientError):
    """Reply carried the right transaction id but the wrong message type."""

    def __init__(self, state, message_type, server_message: str | None = None):
        self.state = state
        self.message_type = message_type
        self.server_message = server_message
        state_name = getattr(state, "name", state)
        type_name = getattr(message_type, "name", message_type)
        message = f"unhandled message type {type_name} in state {state_name}"
        if server_message:
            message += f": {server_message}"
        super().__init__(message)
