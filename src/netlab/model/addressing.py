"""IP addressing utilities.

Pure functions over 32-bit IPv4 values. An address is a plain ``int``
in ``[0, 2**32)`` with the most significant octet first, so it can be
stored, compared and offset without wrapper objects.
"""

from ipaddress import AddressValueError, IPv4Address
from typing import Iterable

from netlab.errors import ParseError

ADDRESS_BITS = 32
ALL_ONES = 0xFFFFFFFF


def parse(dotted_quad: str) -> int:
    """Parse dotted-quad text into an address.

    Raises:
        ParseError: If the text is not a valid IPv4 address

    Example:
        >>> parse("192.168.1.130")
        3232235906
    """
    try:
        return int(IPv4Address(dotted_quad.strip()))
    except (AddressValueError, AttributeError) as e:
        raise ParseError(str(dotted_quad), f"Invalid IPv4 address: {dotted_quad}") from e


def format(address: int) -> str:  # noqa: A001
    """Format an address as dotted-quad text."""
    return str(IPv4Address(address & ALL_ONES))


def pack_octets(octets: Iterable[int]) -> int:
    """Pack four octet values into an address.

    Values are not range checked: each is shifted into place and OR-ed,
    and the result is truncated to 32 bits.
    """
    address = 0
    shift = 24
    for value in octets:
        address |= value << shift
        shift -= 8
    return address & ALL_ONES


def host_bits(prefix_length: int) -> int:
    """Number of host bits left by a prefix, clamped to [0, 32]."""
    return min(max(ADDRESS_BITS - prefix_length, 0), ADDRESS_BITS)


def block_size(prefix_length: int) -> int:
    """Number of addresses in a block of the given prefix."""
    return 1 << host_bits(prefix_length)


def mask_for(prefix_length: int) -> int:
    """Subnet mask for a prefix (/0 is all zeros, /32 all ones)."""
    return ALL_ONES ^ (block_size(prefix_length) - 1)


def wildcard_for(prefix_length: int) -> int:
    """Inverse mask, as used in ACLs and OSPF network statements."""
    return ~mask_for(prefix_length) & ALL_ONES


def prefix_from_mask(mask: int) -> int:
    """Count the leading one bits of a mask."""
    prefix = 0
    for bit in range(ADDRESS_BITS - 1, -1, -1):
        if not (mask >> bit) & 1:
            break
        prefix += 1
    return prefix


def network_address(address: int, prefix_length: int) -> int:
    return address & mask_for(prefix_length)


def broadcast_address(address: int, prefix_length: int) -> int:
    return network_address(address, prefix_length) | (block_size(prefix_length) - 1)


def first_usable(address: int, prefix_length: int) -> int:
    """Network address + 1 (the conventional gateway)."""
    return network_address(address, prefix_length) + 1


def last_usable(address: int, prefix_length: int) -> int:
    """Broadcast address - 1."""
    return broadcast_address(address, prefix_length) - 1


def host_capacity(prefix_length: int) -> int:
    """Usable hosts in a block, excluding network and broadcast.

    /31 and /32 report 0 usable hosts; point-to-point /31 addressing
    (RFC 3021) is not modelled.
    """
    bits = host_bits(prefix_length)
    if bits <= 1:
        return 0
    return (1 << bits) - 2


def format_cidr(address: int, prefix_length: int) -> str:
    """Format as ``a.b.c.d/nn``."""
    return f"{format(address)}/{prefix_length}"


def dhcp_excluded_range(address: int, prefix_length: int) -> tuple[int, int]:
    """Lower-half exclusion range for an "upper half only" DHCP pool.

    Returns:
        Tuple of (first excluded, last excluded), covering network+1
        up to the last address before the midpoint of the block.

    Example:
        >>> s, e = dhcp_excluded_range(parse("192.168.1.32"), 27)
        >>> format(s), format(e)
        ('192.168.1.33', '192.168.1.47')
    """
    network = network_address(address, prefix_length)
    half = block_size(prefix_length) // 2
    return network + 1, network + half - 1
