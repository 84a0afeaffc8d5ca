import pytest
from scapy.layers.dhcp import BOOTP
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import ARP, Ether

from conftest import CLIENT_MAC, XID, FakeCapture, make_reply, server_frame
from rawdhcp.dhcp.frames import build_broadcast_frame, parse_frame, send_broadcast
from rawdhcp.dhcp.message import DHCPMessage, DHCPMessageType, new_discover
from rawdhcp.errors import DecodeError, ProtocolMismatchError, ResourceError


def test_broadcast_frame_addressing():
    payload = new_discover(CLIENT_MAC, xid=XID).encode()
    frame = Ether(build_broadcast_frame(CLIENT_MAC, payload))

    assert frame.src == "02:00:00:aa:bb:cc"
    assert frame.dst == "ff:ff:ff:ff:ff:ff"
    assert frame[IP].src == "0.0.0.0"
    assert frame[IP].dst == "255.255.255.255"
    assert frame[IP].proto == 17
    assert frame[IP].flags == "DF"
    assert frame[IP].ttl == 128
    assert frame[UDP].sport == 68
    assert frame[UDP].dport == 67
    assert DHCPMessage.decode(bytes(frame[BOOTP])).xid == XID


def test_broadcast_frame_checksum():
    frame = Ether(build_broadcast_frame(CLIENT_MAC, new_discover(CLIENT_MAC).encode()))
    sent = frame[UDP].chksum
    assert sent

    del frame[UDP].chksum
    assert Ether(bytes(frame))[UDP].chksum == sent


def test_send_broadcast_writes_one_frame():
    capture = FakeCapture()
    send_broadcast(capture, CLIENT_MAC, b"payload")
    assert len(capture.written) == 1
    assert Ether(capture.written[0]).dst == "ff:ff:ff:ff:ff:ff"


def test_send_broadcast_write_failure():
    with pytest.raises(ResourceError):
        send_broadcast(FakeCapture(fail_write=True), CLIENT_MAC, b"payload")


def test_parse_server_reply():
    offer = make_reply(DHCPMessageType.OFFER)
    payload = parse_frame(server_frame(offer))

    decoded = DHCPMessage.decode(payload)
    assert decoded.xid == XID
    assert decoded.message_type == DHCPMessageType.OFFER


def test_parse_rejects_wrong_destination_port():
    frame = server_frame(make_reply(DHCPMessageType.OFFER), dport=69)
    with pytest.raises(ProtocolMismatchError, match="69"):
        parse_frame(frame)


def test_parse_rejects_wrong_source_port():
    frame = server_frame(make_reply(DHCPMessageType.OFFER), sport=6767)
    with pytest.raises(ProtocolMismatchError, match="6767"):
        parse_frame(frame)


def test_parse_rejects_truncated_bootp():
    frame = server_frame(make_reply(DHCPMessageType.OFFER))
    with pytest.raises(DecodeError):
        DHCPMessage.decode(parse_frame(frame[:60]))


def test_parse_rejects_client_to_server():
    # Our own broadcast echoed back by the capture
    frame = build_broadcast_frame(CLIENT_MAC, new_discover(CLIENT_MAC).encode())
    with pytest.raises(ProtocolMismatchError):
        parse_frame(frame)


def test_parse_rejects_non_ip():
    frame = bytes(Ether(dst="ff:ff:ff:ff:ff:ff") / ARP(pdst="192.168.1.1"))
    with pytest.raises(DecodeError):
        parse_frame(frame)


@pytest.mark.parametrize("raw", [b"", b"\x01\x02\x03", b"\xff" * 60])
def test_parse_rejects_garbage(raw):
    with pytest.raises(DecodeError):
        parse_frame(raw)
