"""
Address matching for instance attestation.

A login request carries one or more addresses (the direct peer plus any
proxy-forwarded hops). The request matches when any of them is one of the
instance's provider-attested addresses, or falls inside a trusted prefix
configured on the role for NAT topologies where the instance's own address
is never observed.
"""

from ipaddress import ip_address, ip_network, IPv4Network, IPv6Network
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Set, Union

from .errors import AddressMismatch

if TYPE_CHECKING:
    from .models import Instance

Network = Union[IPv4Network, IPv6Network]


def normalize_addr(addr: str) -> str:
    """Canonical text form of an address; unparsable input is only stripped."""
    addr = addr.strip()
    try:
        parsed = ip_address(addr)
    except ValueError:
        return addr
    # dual-stack listeners report IPv4 peers as ::ffff:a.b.c.d
    if parsed.version == 6 and parsed.ipv4_mapped is not None:
        return str(parsed.ipv4_mapped)
    return str(parsed)


def parse_prefix(prefix: str) -> Optional[Network]:
    """
    Parse a CIDR prefix such as 192.168.3.0/24 or 2001:db8::/64.

    Host bits are allowed and masked off. A bare address without a prefix
    length is not a prefix. Returns None for anything unparsable.
    """
    if not isinstance(prefix, str) or "/" not in prefix:
        return None
    try:
        return ip_network(prefix.strip(), strict=False)
    except ValueError:
        return None


def trusted_addresses(instance: "Instance") -> Set[str]:
    """Primary addresses plus every address reported in the address groups."""
    trusted = set()
    for addr in (instance.access_ipv4, instance.access_ipv6):
        if addr:
            trusted.add(normalize_addr(addr))
    for entries in instance.address_groups.values():
        for entry in entries:
            if entry.addr:
                trusted.add(normalize_addr(entry.addr))
    return trusted


def trusted_networks(prefixes: Iterable[str]) -> List[Network]:
    # unparsable prefixes never match
    networks = []
    for prefix in prefixes or ():
        network = parse_prefix(prefix)
        if network is not None:
            networks.append(network)
    return networks


def in_networks(addr: str, networks: Sequence[Network]) -> bool:
    if not networks:
        return False
    try:
        parsed = ip_address(addr)
    except ValueError:
        return False
    return any(parsed in network for network in networks)


def match_addresses(
    instance: "Instance",
    request_addrs: Sequence[str],
    trusted_prefixes: Iterable[str] = ()
) -> str:
    """
    Check the request addresses against the instance.

    Args:
        instance: Instance record from the provider
        request_addrs: Request addresses, most trusted first
        trusted_prefixes: Extra CIDR ranges that are always accepted

    Returns:
        The first request address that matched

    Raises:
        AddressMismatch: If no request address matched
    """
    addresses = trusted_addresses(instance)
    networks = trusted_networks(trusted_prefixes)

    for raw in request_addrs:
        addr = normalize_addr(raw)
        if addr in addresses or in_networks(addr, networks):
            return addr

    raise AddressMismatch(
        f"no request address of {list(request_addrs)} matches instance {instance.id}"
    )
