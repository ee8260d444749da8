"""
IP range parsing and membership.

Range expressions come in three shapes:
  192.168         partial address, missing fields padded with 0 / 255
  1.1.1.1-10      dash range, the suffix replaces the last field
  10.0.0.5        single address
"""

import ipaddress
import logging
from collections import namedtuple

from .errors import InvalidAddress

logger = logging.getLogger(__name__)


def packed_ipv4(address):
    """
    Return the 4-byte form of an address, or None if it has no IPv4 form.

    IPv4-mapped IPv6 addresses (::ffff:a.b.c.d) reduce to their IPv4 part.
    """
    if address.version == 6:
        address = address.ipv4_mapped
        if address is None:
            return None
    return address.packed


def _parse_ipv4(text):
    """Parse text into a 4-byte address or raise InvalidAddress."""
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        raise InvalidAddress(f"Can't parse IPv4 address: {text!r}")

    packed = packed_ipv4(address)
    if packed is None:
        raise InvalidAddress(f"Can't parse IPv4 address: {text!r}")
    return packed


class IPRange(namedtuple('IPRange', ['start', 'end'])):
    """
    Inclusive range of IPv4 addresses held as packed big-endian bytes.

    A range whose start is greater than its end is kept as-is and simply
    never matches.
    """

    __slots__ = ()

    def contains(self, address):
        """
        Check if an address (ipaddress object) falls inside the range.
        """
        packed = packed_ipv4(address)
        if packed is None:
            return False
        return self.start <= packed <= self.end

    def __str__(self):
        start = ipaddress.IPv4Address(self.start)
        end = ipaddress.IPv4Address(self.end)
        if start == end:
            return str(start)
        return f"{start}-{end}"


def parse_ip_range(text):
    """
    Parse a range expression into an IPRange.

    Args:
        text: Partial address, dash range, or single address

    Returns:
        IPRange

    Raises:
        InvalidAddress: if the expression doesn't reduce to IPv4 addresses
    """
    fields = text.split('.')

    # Partial address, e.g. 192.168 -> 192.168.0.0 - 192.168.255.255
    if len(fields) < 4:
        missing = 4 - len(fields)
        start = _parse_ipv4('.'.join(fields + ['0'] * missing))
        end = _parse_ipv4('.'.join(fields + ['255'] * missing))
        return IPRange(start, end)

    # Dash range, e.g. 1.1.1.1-10 -> 1.1.1.1 - 1.1.1.10
    parts = text.split('-')
    if len(parts) > 1:
        if len(parts) > 2:
            raise InvalidAddress(f"Too many '-' in range: {text!r}")
        start = _parse_ipv4(parts[0])
        end_fields = str(ipaddress.IPv4Address(start)).split('.')
        end_fields[3] = parts[1]
        end = _parse_ipv4('.'.join(end_fields))
        return IPRange(start, end)

    address = _parse_ipv4(text)
    return IPRange(address, address)
