"""Readers for dhcpd lease files and the Apple ``bootpd`` lease database.

Entries that cannot be understood are reported with
:class:`LeaseParseError`. When a whole file is read, the entries that did
parse travel with the error so that callers can still use them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import IO, Iterable, Optional, Union

from vmwnet.lexing import (
    ParseError,
    consume_open_close_pair,
    consume_until_sentinel,
    decode_dhcpd_lease_bytes,
    filter_out_characters,
    uncomment,
)

__all__ = [
    "LeaseParseError",
    "DhcpLeaseEntry",
    "AppleDhcpLeaseEntry",
    "read_dhcpd_lease_entry",
    "read_dhcpd_lease_entries",
    "read_apple_dhcpd_lease_entry",
    "read_apple_dhcpd_lease_entries",
]

log = logging.getLogger(__name__)

_IP_LINE = re.compile(r"lease\s+(.+?)\s*\Z")
_STARTS_LINE = re.compile(r"starts\s+(\d+)\s+(.+?)\s*\Z")
_ENDS_LINE = re.compile(r"ends\s+(\d+)\s+(.+?)\s*\Z")
_MAC_LINE = re.compile(r"hardware\s+ethernet\s+(.+?)\s*\Z")
_UID_LINE = re.compile(r"uid\s+(.+?)\s*\Z")
_TIME_FORMAT = "%Y/%m/%d %H:%M:%S"


class LeaseParseError(ParseError):
    """A lease entry or file could not be parsed completely.

    ``entry`` holds what was read of a single broken entry. When a whole
    file is read, ``entries`` holds the entries that parsed and ``errors``
    the individual failures.
    """

    def __init__(self, message, entry=None, entries=None, errors=None):
        super().__init__(message)
        self.entry = entry
        self.entries = entries if entries is not None else []
        self.errors = errors if errors is not None else []


@dataclass
class DhcpLeaseEntry:
    address: str = ""
    starts: Optional[datetime] = None
    ends: Optional[datetime] = None
    starts_weekday: int = 0
    ends_weekday: int = 0
    ether: bytes = b""
    uid: bytes = b""
    extra: list[str] = field(default_factory=list)


@dataclass
class AppleDhcpLeaseEntry:
    ip_address: str = ""
    hw_address: bytes = b""
    id: bytes = b""
    lease: str = ""
    name: str = ""
    extra: dict[str, str] = field(default_factory=dict)


def _parse_time(text: str, what: str, address: str) -> Optional[datetime]:
    try:
        return datetime.strptime(text, _TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        log.warning("error parsing %s time (%s) for entry %s", what, text, address)
        return None


def _decode_or_empty(text: str, what: str, address: str) -> bytes:
    try:
        return decode_dhcpd_lease_bytes(text)
    except ParseError:
        log.warning("error parsing %s (%s) for entry %s", what, text, address)
        return b""


def read_dhcpd_lease_entry(stream: Iterable[str]) -> Optional[DhcpLeaseEntry]:
    """Read the next ``lease ADDRESS { ... }`` entry from a character stream.

    The stream should already be free of comments and line breaks. Returns
    None once the stream holds no further entry.
    """
    prefix, block = consume_open_close_pair("{", "}", stream)
    if not prefix:
        return None

    match = _IP_LINE.search(prefix)
    if match is None:
        raise LeaseParseError(
            f"unable to parse lease entry ({prefix!r})",
            entry=DhcpLeaseEntry(extra=[prefix.strip()]),
        )

    next(block)  # the opening brace
    entry = DhcpLeaseEntry(address=match.group(1))

    more = True
    while more:
        item, more = consume_until_sentinel(";", block)

        found = _STARTS_LINE.search(item)
        if found:
            entry.starts = _parse_time(found.group(2), "start", entry.address)
            entry.starts_weekday = int(found.group(1))
            continue

        found = _ENDS_LINE.search(item)
        if found:
            entry.ends = _parse_time(found.group(2), "end", entry.address)
            entry.ends_weekday = int(found.group(1))
            continue

        found = _MAC_LINE.search(item)
        if found:
            entry.ether = _decode_or_empty(
                found.group(1), "hardware ethernet address", entry.address
            )
            continue

        found = _UID_LINE.search(item)
        if found:
            entry.uid = _decode_or_empty(found.group(1), "uid", entry.address)
            continue

        if item.endswith("}"):
            continue

        entry.extra.append(item.strip())

    return entry


def _read_text(stream: Union[IO[str], str]) -> str:
    return stream if isinstance(stream, str) else stream.read()


def read_dhcpd_lease_entries(stream: Union[IO[str], str]) -> list[DhcpLeaseEntry]:
    """Read every entry of a dhcpd.leases file from a text stream or string."""
    chars = filter_out_characters("\n\r\v", uncomment(_read_text(stream)))
    result: list[DhcpLeaseEntry] = []
    errors: list[LeaseParseError] = []

    index = 0
    while True:
        index += 1
        try:
            entry = read_dhcpd_lease_entry(chars)
        except LeaseParseError as exc:
            log.warning("error parsing dhcpd lease entry #%d: %s", index, exc)
            errors.append(exc)
            continue
        if entry is None:
            break
        result.append(entry)

    if errors:
        raise LeaseParseError(
            "errorList parsing dhcpd lease entries: "
            f"[{' '.join(str(e) for e in errors)}]",
            entries=result,
            errors=errors,
        )
    return result


def _decode_apple_address(value: str) -> bytes:
    mac = value.split(",")[1]
    octets = ["0" + octet if len(octet) == 1 else octet for octet in mac.split(":")]
    return decode_dhcpd_lease_bytes(":".join(octets))


def read_apple_dhcpd_lease_entry(stream: Iterable[str]) -> Optional[AppleDhcpLeaseEntry]:
    """Read the next ``{ key=value ... }`` entry from a character stream.

    Returns None once the stream holds no further entry.
    """
    entry = AppleDhcpLeaseEntry()
    mandatory = 0
    _, block = consume_open_close_pair("{", "}", stream)

    more = True
    while more:
        raw, more = consume_until_sentinel("\n", block)
        line = raw.strip()
        if "{" in line or "}" in line:
            continue

        key, sep, value = line.partition("=")
        if not sep:
            log.debug("error parsing invalid line: `%s`", line)
            continue
        key, value = key.strip(), value.strip()

        if key == "ip_address":
            entry.ip_address = value
            mandatory += 1
        elif key in ("identifier", "hw_address"):
            if value.count(",") != 1:
                log.warning(
                    "error %s `%s` is not properly formatted for entry %s",
                    key, value, entry.name,
                )
                continue
            try:
                decoded = _decode_apple_address(value)
            except ParseError:
                log.warning(
                    "error trying to parse %s (%s) for entry %s", key, value, entry.name
                )
                continue
            if key == "identifier":
                entry.id = decoded
            else:
                entry.hw_address = decoded
            mandatory += 1
        elif key == "lease":
            entry.lease = value
        elif key == "name":
            entry.name = value
        else:
            entry.extra[key] = value

    if mandatory == 0:
        return None
    if mandatory < 3:
        raise LeaseParseError(
            f"error entry `{entry!r}` is missing mandatory information", entry=entry
        )
    return entry


def read_apple_dhcpd_lease_entries(
    stream: Union[IO[str], str],
) -> list[AppleDhcpLeaseEntry]:
    """Read every entry of an Apple lease database from a text stream or string."""
    chars = filter_out_characters("\r\v", uncomment(_read_text(stream)))
    result: list[AppleDhcpLeaseEntry] = []
    errors: list[LeaseParseError] = []

    index = 0
    while True:
        index += 1
        try:
            entry = read_apple_dhcpd_lease_entry(chars)
        except LeaseParseError as exc:
            log.warning("error parsing apple dhcpd lease entry #%d: %s", index, exc)
            errors.append(exc)
            continue
        if entry is None:
            break
        result.append(entry)

    if errors:
        raise LeaseParseError(
            "errors found while parsing apple dhcpd lease entries: "
            f"[{' '.join(str(e) for e in errors)}]",
            entries=result,
            errors=errors,
        )
    return result