"""Address parsing helpers."""

import ipaddress
from typing import Optional


def first_ipv4(output: str) -> Optional[str]:
    """Pick the first routable IPv4 address from whitespace separated output."""
    for token in output.split():
        try:
            address = ipaddress.ip_address(token.split("/", 1)[0])
        except ValueError:
            continue
        if address.version == 4 and not address.is_loopback and not address.is_link_local:
            return str(address)
    return None
