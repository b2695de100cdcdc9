"""Address arithmetic and small parsing helpers."""
from __future__ import annotations

import re
from ipaddress import IPv4Address, IPv4Network
from typing import Union


IPV4_PATTERN = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$", re.ASCII)
PREFIX_PATTERN = re.compile(r"^/?(\d{1,2})$", re.ASCII)
MEMBER_SEPARATORS = re.compile(r"[;,\s]+")

AddressLike = Union[str, int, IPv4Address]
NetworkLike = Union[str, IPv4Network]


class ParseError(ValueError):
    """Raised when parsing input data fails."""


class InvalidAddressError(ParseError):
    """Raised when text is not a dotted-quad IPv4 address."""


class InvalidMaskError(ParseError):
    """Raised when text is not a usable prefix length or netmask."""


def parse_ipv4(value: str) -> int:
    """Parse dotted-quad IPv4 text into a 32-bit unsigned integer."""
    match = IPV4_PATTERN.match(str(value).strip())
    if not match:
        raise InvalidAddressError(f"Invalid IPv4 address: {value}")
    result = 0
    for octet in match.groups():
        number = int(octet)
        if number > 255:
            raise InvalidAddressError(f"Invalid IPv4 address: {value}")
        result = (result << 8) | number
    return result


def format_ipv4(value: int) -> str:
    """Format a 32-bit unsigned integer as dotted-quad text."""
    return str(IPv4Address(value))


def prefix_from_mask(value: str | int, strict: bool = False) -> int:
    """Convert a prefix length, "/N" or dotted netmask into a prefix length.

    Dotted masks are converted by counting every set bit, so a
    non-contiguous mask such as 255.0.255.0 is accepted as /16. Exports in
    the field rely on this tolerance; pass ``strict=True`` to reject such
    masks instead.
    """
    if isinstance(value, int):
        if 0 <= value <= 32:
            return value
        raise InvalidMaskError(f"Prefix out of range: {value}")
    text = str(value).strip()
    match = PREFIX_PATTERN.match(text)
    if match:
        prefix = int(match.group(1))
        if prefix > 32:
            raise InvalidMaskError(f"Prefix out of range: {value}")
        return prefix
    try:
        mask = parse_ipv4(text)
    except InvalidAddressError as exc:
        raise InvalidMaskError(f"Invalid netmask: {value}") from exc
    if strict:
        inverted = ~mask & 0xFFFFFFFF
        if inverted & (inverted + 1):
            raise InvalidMaskError(f"Non-contiguous netmask: {value}")
    return bin(mask).count("1")


def _address_int(value: AddressLike) -> int:
    if isinstance(value, IPv4Address):
        return int(value)
    if isinstance(value, int):
        if not 0 <= value <= 0xFFFFFFFF:
            raise InvalidAddressError(f"Invalid IPv4 address: {value}")
        return value
    return parse_ipv4(value)


def parse_ipv4_address(value: AddressLike) -> IPv4Address:
    """Parse an IPv4 address, raising InvalidAddressError on failure."""
    return IPv4Address(_address_int(value))


def network_of(ip: AddressLike, prefix: int | str, strict: bool = False) -> IPv4Network:
    """Return the canonical network containing ``ip`` for the given prefix or mask."""
    prefix_length = prefix_from_mask(prefix, strict=strict)
    mask = (0xFFFFFFFF << (32 - prefix_length)) & 0xFFFFFFFF
    return IPv4Network((_address_int(ip) & mask, prefix_length))


def parse_cidr(value: NetworkLike, strict: bool = False) -> IPv4Network:
    """Parse "a.b.c.d/N", "a.b.c.d/mask" or a bare address (as /32)."""
    if isinstance(value, IPv4Network):
        return value
    text = str(value).strip()
    if "/" not in text:
        return network_of(text, 32)
    address, mask = text.split("/", 1)
    return network_of(address, mask, strict=strict)


def contains(cidr: NetworkLike, ip: AddressLike) -> bool:
    """Return True if the address falls inside the network."""
    network = parse_cidr(cidr)
    return parse_ipv4_address(ip) in network


def overlap(first: NetworkLike, second: NetworkLike) -> bool:
    """Return True if the two networks share any address."""
    left = parse_cidr(first)
    right = parse_cidr(second)
    shorter = min(left.prefixlen, right.prefixlen)
    return network_of(left.network_address, shorter) == network_of(right.network_address, shorter)


def to24(value: NetworkLike | IPv4Address) -> IPv4Network:
    """Truncate an address or network to its /24 bucket."""
    if isinstance(value, IPv4Address):
        return network_of(value, 24)
    return network_of(parse_cidr(value).network_address, 24)


def split_members(raw_value: object) -> list[str]:
    """Split a member list cell on commas, semicolons, whitespace and newlines."""
    if raw_value is None:
        return []
    if isinstance(raw_value, (list, tuple)):
        return [str(item).strip() for item in raw_value if str(item).strip()]
    return [part for part in MEMBER_SEPARATORS.split(str(raw_value)) if part]
