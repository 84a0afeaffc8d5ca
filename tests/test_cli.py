import json

import pytest
from click.testing import CliRunner

from conftest import make_reply
from rawdhcp.cli import main
from rawdhcp.dhcp import client as dhcp_client
from rawdhcp.dhcp.message import DHCPLease, DHCPMessageType
from rawdhcp.errors import HandshakeTimeoutError, ResourceError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def calls(monkeypatch):
    """Replaces the handshake; each entry is (ifname, timeout)."""
    made = []
    monkeypatch.setattr(dhcp_client, "RAW_FRAMES_SUPPORTED", True)

    def install(result):
        def fake_start(ifname, timeout):
            made.append((ifname, timeout))
            if isinstance(result, Exception):
                raise result
            return result

        monkeypatch.setattr(dhcp_client, "start_with_timeout", fake_start)
        return made

    return install


def lease():
    return DHCPLease.from_ack(make_reply(DHCPMessageType.ACK))


def test_obtain(runner, calls):
    made = calls(lease())
    result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth1", "-t", "7"])

    assert result.exit_code == 0, result.output
    assert made == [("eth1", 7.0)]
    assert "192.168.1.50/24" in result.output
    assert "DHCP Lease" in result.output


def test_obtain_uses_configured_defaults(runner, calls):
    made = calls(lease())
    result = runner.invoke(main, ["dhcp", "obtain"])

    assert result.exit_code == 0, result.output
    assert made == [("eth-test", 5.0)]


def test_obtain_json(runner, calls):
    calls(lease())
    result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth1", "--json-output"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["success"] is True
    assert data["interface"] == "eth1"
    assert data["lease"]["cidr"] == "192.168.1.50/24"
    assert data["lease"]["gateway"] == "192.168.1.1"


def test_obtain_timeout(runner, calls):
    calls(HandshakeTimeoutError("OFFER", 7))
    result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth1", "-t", "7"])

    assert result.exit_code == 1
    assert "No lease obtained" in result.output


def test_obtain_error_json(runner, calls):
    calls(ResourceError("Failed to open eth1"))
    result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth1", "--json-output"])

    assert result.exit_code == 1
    assert json.loads(result.output) == {"success": False, "error": "Failed to open eth1"}


def test_obtain_unsupported_platform(runner, calls, monkeypatch):
    made = calls(lease())
    monkeypatch.setattr(dhcp_client, "RAW_FRAMES_SUPPORTED", False)
    result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth1"])

    assert result.exit_code == 0
    assert "not supported" in result.output
    assert made == []


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "rawdhcp" in result.output
