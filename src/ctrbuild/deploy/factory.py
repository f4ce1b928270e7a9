"""
Device address parsing.

Accepted formats (3dslink only speaks IPv4):
    192.168.1.50     → "192.168.1.50"
    my-3ds.local     → "my-3ds.local"
    (unset)          → None, meaning auto-discover

Rejected:
    fe80::1          → IPv6 is not supported by the netloader
    -bad-, a..b      → malformed hostnames
"""

import ipaddress
import re
from typing import Optional

_HOST_LABEL = re.compile(r'^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$')


def parse_address(value: Optional[str]) -> Optional[str]:
    """
    Validate a device address given on the command line or in ctrbuild.yaml.

    Args:
        value: IPv4 address or hostname, or None for auto-discovery

    Returns:
        The normalized address string, or None

    Raises:
        ValueError: If the format is not recognized

    Example:
        parse_address(" 10.0.0.5 ")   # "10.0.0.5"
        parse_address(None)           # None
    """
    if value is None:
        return None

    address = value.strip()
    if not address:
        raise ValueError("Device address is empty")

    if ':' in address:
        raise ValueError(
            f"Unsupported device address: {value}\n"
            f"Expected an IPv4 address or hostname (3dslink has no IPv6 or port support)"
        )

    # Dotted-quad first so "10.0.0.300" is reported as a bad IP, not a hostname
    if re.fullmatch(r'[0-9.]+', address):
        try:
            return str(ipaddress.IPv4Address(address))
        except ipaddress.AddressValueError:
            raise ValueError(f"Malformed IPv4 address: {value}")

    if len(address) > 253 or not all(_HOST_LABEL.match(label) for label in address.split('.')):
        raise ValueError(f"Malformed hostname: {value}")

    return address
