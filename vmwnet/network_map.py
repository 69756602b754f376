"""Reader for the ``netmap.conf`` file that names the virtual networks.

Each line of the file has the form ``networkN.attribute = "value"``. The
lines are grouped by network into one mapping per network, and the networks
are returned in the order of their sorted identifiers.
"""

from __future__ import annotations

import re
from typing import IO, Iterable, Union

from vmwnet.lexing import ParseError, tokenize_network_map_config, uncomment

__all__ = [
    "NetworkMap",
    "parse_network_map_config",
    "read_network_map",
]

_ESCAPE = r"""\\(?:x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[0-7]{3}|[abfnrtv\\'"])"""
_ESCAPE_RE = re.compile(_ESCAPE)
_DOUBLE_BODY = re.compile(rf'(?:[^\\"\n]|{_ESCAPE})*')
_SINGLE_BODY = re.compile(rf"(?:[^\\'\n]|{_ESCAPE})")
_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
}


def _decode_escape(match: re.Match) -> str:
    escape = match.group(0)[1:]
    kind = escape[0]
    if kind in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[kind]
    if kind in "xuU":
        return chr(int(escape[1:], 16))
    return chr(int(escape, 8))


def _unquote(token: str) -> str:
    """Interpret a quoted literal, rejecting anything that is not one."""
    if len(token) < 2 or token[0] != token[-1] or token[0] not in "\"'`":
        raise ParseError(f"invalid syntax : {token}")
    quote, body = token[0], token[1:-1]

    if quote == "`":
        if "`" in body:
            raise ParseError(f"invalid syntax : {token}")
        return body.replace("\r", "")

    if quote == '"':
        if not _DOUBLE_BODY.fullmatch(body):
            raise ParseError(f"invalid syntax : {token}")
        return _ESCAPE_RE.sub(_decode_escape, body)

    if not _SINGLE_BODY.fullmatch(body):
        raise ParseError(f"invalid syntax : {token}")
    return _ESCAPE_RE.sub(_decode_escape, body)


class NetworkMap(list):
    """One mapping of attributes per network, such as ``name`` and ``device``."""

    def name_into_devices(self, name: str) -> list[str]:
        """The devices of every network called ``name``, ignoring case."""
        wanted = name.casefold()
        devices = [
            entry.get("device", "")
            for entry in self
            if entry.get("name", "").casefold() == wanted
        ]
        if not devices:
            raise LookupError(f"error finding network name : {name}")
        return devices

    def device_into_name(self, device: str) -> str:
        """The name of the first network using ``device``, ignoring case."""
        wanted = device.casefold()
        for entry in self:
            if entry.get("device", "").casefold() == wanted:
                return entry.get("name", "")
        raise LookupError(f"error finding device name : {device}")

    def describe(self) -> str:
        lines = []
        for index, entry in enumerate(self):
            lines.append(f'network{index}.name = "{entry.get("name", "")}"')
            lines.append(f'network{index}.device = "{entry.get("device", "")}"')
        return "\n".join(lines)


def parse_network_map_config(tokens: Iterable[str]) -> NetworkMap:
    """Build a network map from the tokens of a netmap.conf file."""
    networks: dict[str, dict[str, str]] = {}
    state: list[str] = []

    def add(network: str, attribute: str, value: str) -> None:
        networks.setdefault(network, {})[attribute] = _unquote(value)

    for token in tokens:
        if token == ".":
            if len(state) != 1:
                raise ParseError("network index missing")
        elif token == "=":
            if len(state) != 2:
                raise ParseError("assigned to empty attribute")
        elif token == "\n":
            if not state:
                continue
            if len(state) != 3:
                raise ParseError(
                    f"invalid attribute assignment : [{' '.join(state)}]"
                )
            add(*state)
            state = []
        else:
            state.append(token)

    if len(state) == 3:
        add(*state)

    return NetworkMap(networks[key] for key in sorted(networks))


def read_network_map(stream: Union[IO[str], str]) -> NetworkMap:
    """Parse netmap.conf text from a text stream or a string."""
    text = stream if isinstance(stream, str) else stream.read()
    return parse_network_map_config(tokenize_network_map_config(uncomment(text)))