"""Character-level scanning shared by the VMware configuration parsers.

Every function here works on iterables of single characters, which lets the
higher-level parsers chain them together lazily, the same way the files are
read: comments are stripped, unwanted characters are filtered out, and the
remaining text is broken into tokens or delimited blocks.
"""

from __future__ import annotations

import string
from typing import Iterable, Iterator

__all__ = [
    "ParseError",
    "uncomment",
    "tokenize_dhcp_config",
    "tokenize_network_map_config",
    "tokenize_networking_config",
    "split_networking_config",
    "consume_until_sentinel",
    "filter_out_characters",
    "consume_open_close_pair",
    "decode_dhcpd_lease_bytes",
]

_HEX_DIGITS = frozenset(string.hexdigits)


class ParseError(ValueError):
    """Raised when configuration text cannot be interpreted."""


def uncomment(data: Iterable[str]) -> Iterator[str]:
    """Drop everything from a ``#`` up to (but not including) the end of line."""
    in_comment = False
    for ch in data:
        if ch == "#":
            in_comment = True
        elif ch == "\n" and in_comment:
            in_comment = False
        if not in_comment:
            yield ch


def tokenize_dhcp_config(data: Iterable[str]) -> Iterator[str]:
    """Split dhcpd.conf text into words, quoted strings, braces and semicolons."""
    state = ""
    quote = False
    for ch in data:
        if quote:
            if ch == '"':
                yield state + ch
                state, quote = "", False
            else:
                state += ch
            continue

        if ch == '"':
            quote = True
            state += ch
        elif ch in "\r\n\t ":
            if state:
                yield state
                state = ""
        elif ch in "{};":
            if state:
                yield state
            yield ch
            state = ""
        else:
            state += ch

    if state:
        yield state


def tokenize_network_map_config(data: Iterable[str]) -> Iterator[str]:
    """Split netmap.conf text into words, ``.``, ``=``, quoted strings and newlines.

    Runs of newlines collapse into a single ``"\\n"`` token.
    """
    state = ""
    quote = False
    last_newline = False
    for ch in data:
        if quote:
            if ch == '"':
                yield state + ch
                state, quote = "", False
            else:
                state += ch
            continue

        if ch == '"':
            quote = True
            state += ch
            continue

        if ch in "\r\t ":
            if not state:
                continue
            yield state
            state = ""
        elif ch == "\n":
            if last_newline:
                continue
            if state:
                yield state
            yield "\n"
            state = ""
            last_newline = True
            continue
        elif ch in ".=":
            if state:
                yield state
            yield ch
            state = ""
        else:
            state += ch

        last_newline = False

    if state:
        yield state


def tokenize_networking_config(data: Iterable[str]) -> Iterator[str]:
    """Split a Fusion ``networking`` file into words and newline tokens.

    Carriage returns count as newlines, and runs of them collapse into one.
    """
    state = ""
    repeat_newline = False
    for ch in data:
        if ch in "\t ":
            if not state:
                continue
            yield state
            state = ""
        elif ch in "\r\n":
            if repeat_newline:
                continue
            if state:
                yield state
            yield "\n"
            state = ""
            repeat_newline = True
            continue
        else:
            state += ch
        repeat_newline = False

    if state:
        yield state


def split_networking_config(tokens: Iterable[str]) -> Iterator[list[str]]:
    """Group tokens into rows separated by newline tokens, skipping empty rows."""
    row: list[str] = []
    for token in tokens:
        if token == "\n":
            if row:
                yield row
            row = []
        else:
            row.append(token)
    if row:
        yield row


def consume_until_sentinel(sentinel: str, stream: Iterable[str]) -> tuple[str, bool]:
    """Read characters from ``stream`` up to ``sentinel``.

    Returns the text read (without the sentinel) and ``True`` when the
    sentinel was found, or ``False`` when the stream ran out first. Pass an
    iterator to continue reading from where the previous call stopped.
    """
    collected: list[str] = []
    for ch in iter(stream):
        if ch == sentinel:
            return "".join(collected), True
        collected.append(ch)
    return "".join(collected), False


def filter_out_characters(ignore: Iterable[str], data: Iterable[str]) -> Iterator[str]:
    """Yield the characters of ``data`` that are not in ``ignore``."""
    ignored = set(ignore)
    return (ch for ch in data if ch not in ignored)


def consume_open_close_pair(
    open_char: str, close_char: str, stream: Iterable[str]
) -> tuple[str, Iterator[str]]:
    """Split off the text before ``open_char`` and the delimited block after it.

    The prefix is read eagerly. The returned iterator lazily yields
    ``open_char``, then every character up to and including ``close_char``;
    if the stream ends first, ``close_char`` is yielded to terminate the block.
    """
    it = iter(stream)
    prefix: list[str] = []
    for ch in it:
        if ch == open_char:
            break
        prefix.append(ch)

    def _block() -> Iterator[str]:
        yield open_char
        for ch in it:
            yield ch
            if ch == close_char:
                return
        yield close_char

    return "".join(prefix), _block()


def decode_dhcpd_lease_bytes(text: str) -> bytes:
    """Decode colon-separated two-digit hex octets such as ``00:0d:0e``."""
    items = text.split(":")
    for item in items:
        if len(item) != 2:
            raise ParseError(f"bytes are not well-formed ({text})")
    joined = "".join(items)
    if not all(ch in _HEX_DIGITS for ch in joined):
        raise ParseError(f"invalid hexadecimal byte in ({text})")
    return bytes.fromhex(joined)