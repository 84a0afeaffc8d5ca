"""
rawdhcp - DHCP client over raw link-layer frames

Brings up an IPv4 address on an interface that has none yet, without
relying on the host IP stack.
"""

__version__ = "0.1.0"
