"""
IPv4 CIDR arithmetic.

Handles:
- Parsing A.B.C.D/N strings into network/broadcast/prefix
- Usable host counts (with the /31 and /32 edge cases)
- Planning the "populate subnet" host list
- Private-range and /24 prefix helpers used by the inventory sync

Pure functions, no I/O.
"""

import re
from dataclasses import dataclass, field
from ipaddress import IPv4Address, AddressValueError
from typing import Iterable, List, Optional

from config import settings
from .errors import InvalidCIDR, SubnetTooLarge

CIDR_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})/(\d{1,2})$")

MASK_32 = 0xFFFFFFFF

# RFC 1918 blocks as (network, mask)
PRIVATE_IPV4_BLOCKS = (
    (0x0A000000, 0xFF000000),  # 10.0.0.0/8
    (0xAC100000, 0xFFF00000),  # 172.16.0.0/12
    (0xC0A80000, 0xFFFF0000),  # 192.168.0.0/16
)


@dataclass(frozen=True)
class CIDRBlock:
    """A parsed IPv4 block. Addresses are held as unsigned 32-bit ints."""

    network: int
    broadcast: int
    prefix_length: int

    @property
    def network_address(self) -> str:
        return int_to_ip(self.network)

    @property
    def broadcast_address(self) -> str:
        return int_to_ip(self.broadcast)

    @property
    def cidr(self) -> str:
        return f"{self.network_address}/{self.prefix_length}"

    def contains(self, address: str) -> bool:
        value = ip_to_int(address)
        return self.network <= value <= self.broadcast


@dataclass
class PopulatePlan:
    """Addresses to create for a populate run, plus counts."""

    to_create: List[str] = field(default_factory=list)
    existing_count: int = 0
    total_host_count: int = 0
    # Host addresses already stored under another network
    skipped: List[str] = field(default_factory=list)


def ip_to_int(address: str) -> int:
    try:
        return int(IPv4Address(address))
    except AddressValueError:
        raise InvalidCIDR(f"Invalid IPv4 address '{address}'")


def int_to_ip(value: int) -> str:
    return str(IPv4Address(value & MASK_32))


def prefix_mask(prefix_length: int) -> int:
    if not 0 <= prefix_length <= 32:
        raise InvalidCIDR(f"Prefix length {prefix_length} is outside 0-32")
    return (MASK_32 << (32 - prefix_length)) & MASK_32


def parse_cidr(cidr: str) -> CIDRBlock:
    """
    Parse an IPv4 CIDR string.

    Host bits in the address part are masked off, so "10.10.5.7/24"
    parses to the 10.10.5.0/24 block.

    Raises:
        InvalidCIDR: if the string is not A.B.C.D/N with octets in
            0-255 and N in 0-32
    """
    match = CIDR_RE.match(cidr.strip()) if isinstance(cidr, str) else None
    if not match:
        raise InvalidCIDR(
            f"Invalid CIDR '{cidr}'. Expected A.B.C.D/N (e.g. 192.168.1.0/24)"
        )

    octets = [int(part) for part in match.groups()[:4]]
    prefix_length = int(match.group(5))
    if any(o > 255 for o in octets):
        raise InvalidCIDR(f"Invalid CIDR '{cidr}'. Each octet must be 0-255")
    if prefix_length > 32:
        raise InvalidCIDR(f"Invalid CIDR '{cidr}'. Prefix length must be 0-32")

    value = (octets[0] << 24) | (octets[1] << 16) | (octets[2] << 8) | octets[3]
    mask = prefix_mask(prefix_length)
    network = value & mask
    broadcast = (network | (~mask & MASK_32)) & MASK_32
    return CIDRBlock(network=network, broadcast=broadcast, prefix_length=prefix_length)


def host_count(prefix_length: int) -> int:
    """Usable host addresses for a prefix. /31 and /32 have none."""
    prefix_mask(prefix_length)
    if prefix_length >= 31:
        return 0
    return 2 ** (32 - prefix_length) - 2


def iter_hosts(block: CIDRBlock) -> Iterable[str]:
    """Yield every address strictly between network and broadcast."""
    for value in range(block.network + 1, block.broadcast):
        yield int_to_ip(value)


def plan_populate(
    cidr: str,
    existing_addresses: Iterable[str],
    min_prefix: Optional[int] = None,
    taken_elsewhere: Iterable[str] = (),
) -> PopulatePlan:
    """
    Work out which host addresses a populate run must create.

    Args:
        cidr: Network CIDR
        existing_addresses: Addresses already stored for the network
        min_prefix: Smallest prefix allowed (defaults to POPULATE_MIN_PREFIX)
        taken_elsewhere: Addresses in the block owned by other networks.
            They are neither created nor counted as existing.

    Returns:
        PopulatePlan with the addresses to create and the counts

    Raises:
        InvalidCIDR: if the CIDR does not parse
        SubnetTooLarge: if the prefix is shorter than min_prefix
    """
    if min_prefix is None:
        min_prefix = settings.POPULATE_MIN_PREFIX

    block = parse_cidr(cidr)
    if block.prefix_length < min_prefix:
        raise SubnetTooLarge(
            f"Network {cidr} is too large to auto-populate "
            f"(use /{min_prefix} or smaller)"
        )

    existing = set(existing_addresses)
    foreign = set(taken_elsewhere)

    plan = PopulatePlan(total_host_count=host_count(block.prefix_length))
    # Only host addresses count, so stray .0/.255 rows never inflate existing
    for address in iter_hosts(block):
        if address in existing:
            plan.existing_count += 1
        elif address in foreign:
            plan.skipped.append(address)
        else:
            plan.to_create.append(address)
    return plan


def is_private_ipv4(address: Optional[str]) -> bool:
    """True for a well-formed RFC 1918 address."""
    if not address:
        return False
    try:
        value = int(IPv4Address(address))
    except (AddressValueError, ValueError):
        return False
    return any((value & mask) == net for net, mask in PRIVATE_IPV4_BLOCKS)


def subnet_prefix(address: str) -> str:
    """First three octets of a dotted quad ("10.0.1.5" -> "10.0.1")."""
    return address.rsplit(".", 1)[0]


def address_in_cidr(address: str, cidr: str) -> bool:
    return parse_cidr(cidr).contains(address)
