"""
Handles parsing and validation of scan targets.

A token is one input line: either a single address, or a range expression
that expands lazily into addresses. Supported range forms are CIDR blocks
(``10.0.0.0/24``, ``2001:db8::/120``), full dash ranges
(``10.0.0.1-10.0.0.9``) and last-octet dash ranges (``10.1.8.1-254``).
"""
from __future__ import annotations
import ipaddress
from typing import Iterable, Iterator, List, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class InvalidTargetError(ValueError):
    """Raised for a token that is neither an address nor a range expression."""

    def __init__(self, token: str, reason: Optional[str] = None):
        self.token = token
        self.reason = reason
        message = f"Invalid target '{token}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class TargetRange:
    """
    An inclusive, ordered span of addresses.

    Only the two endpoints are stored. Each call to ``iter()`` returns a new
    cursor that walks the span in ascending order, so a /8 never sits in
    memory as a list.
    """

    def __init__(self, first: IPAddress, last: IPAddress, original: str):
        if first.version != last.version:
            raise InvalidTargetError(original, "range endpoints must be the same IP version")
        if int(first) > int(last):
            raise InvalidTargetError(original, f"range start {first} is after range end {last}")
        self.first = first
        self.last = last
        self.original = original

    def __iter__(self) -> Iterator[str]:
        address_type = type(self.first)
        current, end = int(self.first), int(self.last)
        while current <= end:
            yield str(address_type(current))
            current += 1

    def __repr__(self) -> str:
        return f"TargetRange({self.first}-{self.last})"


def is_skippable(line: str) -> bool:
    """Blank lines and '#' comments carry no target."""
    s = line.strip()
    return not s or s.startswith('#')


def parse_token(token: str) -> Union[str, TargetRange]:
    """
    Parses a single token into either a canonical address string or a TargetRange.

    Raises InvalidTargetError when the token is neither.
    """
    s = token.strip()
    if not s:
        raise InvalidTargetError(token, "empty target")

    if '/' in s:
        return _parse_cidr(s)
    if '-' in s:
        return _parse_dash_range(s)
    try:
        return str(ipaddress.ip_address(s))
    except ValueError:
        raise InvalidTargetError(s, "not an IP address or range") from None


def validate_tokens(tokens: Iterable[str]) -> List[str]:
    """
    Validates every token up front so bad input fails before scanning starts.

    Returns the stripped, non-skippable tokens in their original order.
    """
    valid = []
    for token in tokens:
        if is_skippable(token):
            continue
        parse_token(token)
        valid.append(token.strip())
    return valid


def _parse_cidr(s: str) -> TargetRange:
    try:
        network = ipaddress.ip_network(s, strict=False)
    except ValueError as e:
        raise InvalidTargetError(s, str(e)) from None
    return TargetRange(network.network_address, network.broadcast_address, s)


def _parse_dash_range(s: str) -> TargetRange:
    start_str, end_str = (part.strip() for part in s.split('-', 1))
    try:
        first = ipaddress.ip_address(start_str)
    except ValueError:
        raise InvalidTargetError(s, f"'{start_str}' is not an IP address") from None

    if end_str.isdigit() and first.version == 4:
        # Short form: only the last octet is given, e.g. 10.1.8.1-254
        last_octet = int(end_str)
        if not 0 <= last_octet <= 255:
            raise InvalidTargetError(s, f"last octet {last_octet} is out of range (0-255)")
        prefix = start_str.rsplit('.', 1)[0]
        end_str = f"{prefix}.{last_octet}"

    try:
        last = ipaddress.ip_address(end_str)
    except ValueError:
        raise InvalidTargetError(s, f"'{end_str}' is not an IP address") from None
    return TargetRange(first, last, s)
