"""
Prefix Codec - IP addresses as fixed-alphabet bit-strings

A route's full address becomes a 32 or 128 character string of '0'/'1';
a VRP or delegation network becomes the first N characters of the same
encoding. Containment is then plain string prefix comparison.
"""

from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Optional, Tuple

FAMILY_WIDTH = {4: 32, 6: 128}


class PrefixCodecError(ValueError):
    """Raised when an address or prefix cannot be encoded"""
    pass


def family_width(family: int) -> int:
    """Number of bits in an address of the given family"""
    try:
        return FAMILY_WIDTH[family]
    except KeyError:
        raise PrefixCodecError(f"Unknown address family: {family}")


def detect_family(address: str) -> int:
    """Address family from the textual form: '.' means IPv4, ':' IPv6"""
    if "." in address:
        return 4
    if ":" in address:
        return 6
    raise PrefixCodecError(f"Cannot determine address family of '{address}'")


def encode(address: str, length: Optional[int] = None) -> Tuple[str, int]:
    """
    Encode an address as a bit-string.

    Args:
        address: Textual IPv4 or IPv6 address, without a length
        length: Keep only the first `length` bits (no octet/nibble rounding)

    Returns:
        (bits, family)
    """
    address = address.strip()
    family = detect_family(address)

    try:
        parsed = ip_address(address)
    except ValueError as e:
        raise PrefixCodecError(f"Malformed address '{address}': {e}")

    if family == 4 and isinstance(parsed, IPv6Address):
        # IPv4-mapped IPv6 text carries a dotted quad
        if parsed.ipv4_mapped is None:
            raise PrefixCodecError(f"Malformed address '{address}'")
        parsed = parsed.ipv4_mapped
    elif family == 6 and isinstance(parsed, IPv4Address):
        raise PrefixCodecError(f"Malformed address '{address}'")

    width = FAMILY_WIDTH[family]
    bits = format(int(parsed), f"0{width}b")

    if length is not None:
        if not 0 <= length <= width:
            raise PrefixCodecError(
                f"Prefix length {length} out of range for IPv{family} address '{address}'"
            )
        bits = bits[:length]

    return bits, family


def split_prefix(prefix: str) -> Tuple[str, Optional[int]]:
    """Split 'address/length' into its parts; length is None when absent"""
    address, sep, length = prefix.strip().partition("/")
    if not sep:
        return address, None
    try:
        return address, int(length)
    except ValueError:
        raise PrefixCodecError(f"Non-numeric prefix length in '{prefix}'")


def encode_prefix(prefix: str, truncate: bool = True) -> Tuple[str, int, int]:
    """
    Encode a CIDR-like prefix.

    Args:
        prefix: 'address/length'; a bare address is a host prefix
        truncate: Keep only the network bits (VRPs, delegations) instead of
            the full address (routes)

    Returns:
        (bits, family, prefix_length)
    """
    address, length = split_prefix(prefix)
    family = detect_family(address)
    if length is None:
        length = FAMILY_WIDTH[family]
    bits, family = encode(address, length if truncate else None)
    if not truncate and not 0 <= length <= FAMILY_WIDTH[family]:
        raise PrefixCodecError(
            f"Prefix length {length} out of range for IPv{family} prefix '{prefix}'"
        )
    return bits, family, length


def is_covered(bits: str, network_bits: str) -> bool:
    """True when network_bits is a prefix of bits, i.e. the network contains the address"""
    return bits.startswith(network_bits)


def prefix_upper_bound(network_bits: str) -> str:
    """
    Smallest string greater than every string starting with network_bits.

    '2' sorts directly after '1', so [network_bits, network_bits + '2')
    is exactly the set of bit-strings under the network.
    """
    return network_bits + "2"
