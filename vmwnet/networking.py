"""Reader for the ``networking`` file of VMware Fusion and Workstation.

The file starts with a ``VERSION=major,minor`` line, followed by one command
per line such as ``answer VNET_8_NAT yes`` or
``add_nat_portfwd 8 tcp 2222 172.16.41.129 22``. The commands are replayed in
order to build a :class:`NetworkingConfig`, which can then map the generic
network names ``hostonly``, ``nat`` and ``bridged`` onto ``vmnetN`` devices
and back.
"""

from __future__ import annotations

import enum
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass, field
from typing import IO, Callable, ClassVar, Iterable, Iterator, Optional, Union

from vmwnet.lexing import ParseError, split_networking_config, tokenize_networking_config

__all__ = [
    "NetworkingVersion",
    "Vnet",
    "Answer",
    "RemoveAnswer",
    "AddNatPortFwd",
    "RemoveNatPortFwd",
    "AddDhcpMacToIp",
    "RemoveDhcpMacToIp",
    "AddBridgeMapping",
    "RemoveBridgeMapping",
    "AddNatPrefix",
    "RemoveNatPrefix",
    "NetworkingType",
    "NetworkingConfig",
    "INTERFACE_PREFIX",
    "read_version",
    "parser_by_command",
    "parse_networking_config",
    "flatten_networking_config",
    "interface_types",
    "names_to_vmnet",
    "read_networking_config",
]

log = logging.getLogger(__name__)

INTERFACE_PREFIX = "vmnet"

_IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
_UINT = re.compile(r"[0-9]+")
_INT = re.compile(r"[+-]?[0-9]+")
_HEX2 = re.compile(r"[0-9a-fA-F]{2}")
_HEX4 = re.compile(r"[0-9a-fA-F]{4}")


def _parse_uint(text: str) -> Optional[int]:
    if _UINT.fullmatch(text):
        value = int(text)
        if value < 1 << 64:
            return value
    return None


def _atoi(text: str, message: str) -> int:
    if _INT.fullmatch(text):
        value = int(text)
        if -(1 << 63) <= value < 1 << 63:
            return value
    raise ParseError(message)


def _parse_ip(text: str) -> Optional[_IPAddress]:
    if "%" in text:
        return None
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _parse_mac(text: str) -> Optional[bytes]:
    """Parse a hardware address of 6, 8 or 20 octets in the usual notations."""
    if len(text) < 14:
        return None
    if text[2] in ":-":
        parts = text.split(text[2])
        if len(parts) in (6, 8, 20) and all(_HEX2.fullmatch(p) for p in parts):
            return bytes(int(p, 16) for p in parts)
    elif text[4] == ".":
        parts = text.split(".")
        if len(parts) in (3, 4, 10) and all(_HEX4.fullmatch(p) for p in parts):
            return b"".join(int(p, 16).to_bytes(2, "big") for p in parts)
    return None


def _mac_text(mac: bytes) -> str:
    return ":".join(f"{b:02x}" for b in mac)


def _go_text(value) -> str:
    """Render nested mappings and lists with sorted keys, as the tool prints them."""
    if isinstance(value, dict):
        items = " ".join(f"{key}:{_go_text(value[key])}" for key in sorted(value))
        return f"map[{items}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_go_text(item) for item in value) + "]"
    return str(value)


# ----------------------------------------------------------------------------
# tokens


@dataclass(frozen=True)
class NetworkingVersion:
    """The ``VERSION=major,minor`` line that opens the file."""

    value: str

    def valid(self) -> bool:
        key, sep, rest = self.value.partition("=")
        if not sep or key != "VERSION":
            return False
        parts = rest.split(",")
        if len(parts) != 2:
            return False
        return all(_parse_uint(part) is not None for part in parts)

    def number(self) -> float:
        _, _, rest = self.value.partition("=")
        parts = rest.split(",")
        integer = _parse_uint(parts[0])
        result = float(integer if integer is not None else 0)
        if len(parts) < 2:
            return result
        mantissa = _parse_uint(parts[1])
        if mantissa is None:
            return result
        return result + mantissa / 10.0 ** len(parts[1])

    def describe(self) -> str:
        if not self.valid():
            return f'VERSION{{INVALID="{self.value}"}}'
        return f"VERSION{{{self.number():f}}}"


def read_version(row: list[str]) -> NetworkingVersion:
    """Interpret the first row of the file as its version."""
    if len(row) != 1:
        raise ParseError(f"unexpected format for version : {_go_text(row)}")
    version = NetworkingVersion(row[0])
    if not version.valid():
        raise ParseError(f"unexpected format for version : {_go_text(row)}")
    return version


@dataclass(frozen=True)
class Vnet:
    """A ``VNET_<number>_<option>`` answer key."""

    value: str

    def _parts(self) -> list[str]:
        return self.value.split("_", 2)

    def valid(self) -> bool:
        parts = self._parts()
        if len(parts) != 3 or parts[0] != "VNET":
            return False
        return self.value.upper() == self.value and _parse_uint(parts[1]) is not None

    def number(self) -> int:
        parts = self._parts()
        if len(parts) < 2:
            return -1
        try:
            return _atoi(parts[1], "")
        except ParseError:
            return -1

    def option(self) -> str:
        parts = self._parts()
        return parts[2] if len(parts) == 3 else ""

    def describe(self) -> str:
        if not self.valid():
            return f"VNET{{INVALID={_go_text(self._parts())}}}"
        return f"VNET{{{self.number()}}} {self.option()}"


# ----------------------------------------------------------------------------
# commands


def _expect(row: list[str], count: int) -> None:
    if len(row) != count:
        noun = "argument" if count == 1 else "arguments"
        raise ParseError(f"expected {count} {noun} but received {len(row)}")


def _vnet(text: str) -> Vnet:
    vnet = Vnet(text)
    if not vnet.valid():
        raise ParseError("invalid format for VNET")
    return vnet


def _protocol(text: str) -> str:
    protocol = text.lower()
    if protocol not in ("tcp", "udp"):
        raise ParseError(f'expected "tcp" or "udp" for second argument : {text}')
    return protocol


def _mac(text: str, ordinal: str) -> bytes:
    mac = _parse_mac(text)
    if mac is None:
        raise ParseError(f"unable to parse {ordinal} argument as hardware address : {text}")
    return mac


def _prefix(text: str) -> int:
    if not text.startswith("/"):
        raise ParseError(f'expected second argument to begin with "/" : {text}')
    return _atoi(text[1:], f"unable to parse prefix from second argument : {text}")


def _first_int(text: str) -> int:
    return _atoi(text, f"unable to parse first argument as an integer : {text}")


@dataclass(frozen=True)
class Answer:
    command: ClassVar[str] = "answer"
    vnet: Vnet
    value: str

    @classmethod
    def parse(cls, row: list[str]) -> "Answer":
        _expect(row, 2)
        return cls(vnet=_vnet(row[0]), value=row[1])


@dataclass(frozen=True)
class RemoveAnswer:
    command: ClassVar[str] = "remove_answer"
    vnet: Vnet

    @classmethod
    def parse(cls, row: list[str]) -> "RemoveAnswer":
        _expect(row, 1)
        return cls(vnet=_vnet(row[0]))


@dataclass(frozen=True)
class AddNatPortFwd:
    """A NAT port forward; ``vnet`` counts from zero."""

    command: ClassVar[str] = "add_nat_portfwd"
    vnet: int
    protocol: str
    port: int
    target_host: _IPAddress
    target_port: int

    @classmethod
    def parse(cls, row: list[str]) -> "AddNatPortFwd":
        _expect(row, 5)
        vnet = _first_int(row[0])
        protocol = _protocol(row[1])
        port = _atoi(row[2], f"unable to parse third argument as an integer : {row[2]}")
        target = _parse_ip(row[3])
        if target is None:
            raise ParseError(f"unable to parse fourth argument as an IPv4 address : {row[3]}")
        target_port = _atoi(row[4], f"unable to parse fifth argument as an integer : {row[4]}")
        return cls(vnet=vnet - 1, protocol=protocol, port=port,
                   target_host=target, target_port=target_port)


@dataclass(frozen=True)
class RemoveNatPortFwd:
    command: ClassVar[str] = "remove_nat_portfwd"
    vnet: int
    protocol: str
    port: int

    @classmethod
    def parse(cls, row: list[str]) -> "RemoveNatPortFwd":
        _expect(row, 3)
        vnet = _first_int(row[0])
        protocol = _protocol(row[1])
        port = _atoi(row[2], f"unable to parse third argument as an integer : {row[2]}")
        return cls(vnet=vnet - 1, protocol=protocol, port=port)


@dataclass(frozen=True)
class AddDhcpMacToIp:
    command: ClassVar[str] = "add_dhcp_mac_to_ip"
    vnet: int
    mac: bytes
    ip: _IPAddress

    @classmethod
    def parse(cls, row: list[str]) -> "AddDhcpMacToIp":
        _expect(row, 3)
        vnet = _first_int(row[0])
        mac = _mac(row[1], "second")
        ip = _parse_ip(row[2])
        if ip is None:
            raise ParseError(f"unable to parse third argument as IPv4 address : {row[2]}")
        return cls(vnet=vnet - 1, mac=mac, ip=ip)


@dataclass(frozen=True)
class RemoveDhcpMacToIp:
    command: ClassVar[str] = "remove_dhcp_mac_to_ip"
    vnet: int
    mac: bytes

    @classmethod
    def parse(cls, row: list[str]) -> "RemoveDhcpMacToIp":
        _expect(row, 2)
        vnet = _first_int(row[0])
        return cls(vnet=vnet - 1, mac=_mac(row[1], "second"))


@dataclass(frozen=True)
class AddBridgeMapping:
    command: ClassVar[str] = "add_bridge_mapping"
    interface: str
    vnet: int

    @classmethod
    def parse(cls, row: list[str]) -> "AddBridgeMapping":
        _expect(row, 2)
        vnet = _atoi(row[1], f"unable to parse second argument as an integer : {row[1]}")
        return cls(interface=row[0], vnet=vnet - 1)


@dataclass(frozen=True)
class RemoveBridgeMapping:
    command: ClassVar[str] = "remove_bridge_mapping"
    interface: str

    @classmethod
    def parse(cls, row: list[str]) -> "RemoveBridgeMapping":
        _expect(row, 1)
        return cls(interface=row[0])


@dataclass(frozen=True)
class AddNatPrefix:
    command: ClassVar[str] = "add_nat_prefix"
    vnet: int
    prefix: int

    @classmethod
    def parse(cls, row: list[str]) -> "AddNatPrefix":
        _expect(row, 2)
        vnet = _first_int(row[0])
        return cls(vnet=vnet - 1, prefix=_prefix(row[1]))


@dataclass(frozen=True)
class RemoveNatPrefix:
    command: ClassVar[str] = "remove_nat_prefix"
    vnet: int
    prefix: int

    @classmethod
    def parse(cls, row: list[str]) -> "RemoveNatPrefix":
        _expect(row, 2)
        vnet = _first_int(row[0])
        return cls(vnet=vnet - 1, prefix=_prefix(row[1]))


_Command = Union[
    Answer, RemoveAnswer, AddNatPortFwd, RemoveNatPortFwd, AddDhcpMacToIp,
    RemoveDhcpMacToIp, AddBridgeMapping, RemoveBridgeMapping, AddNatPrefix,
    RemoveNatPrefix,
]

_PARSERS: dict[str, Callable[[list[str]], _Command]] = {
    cls.command: cls.parse
    for cls in (
        Answer, RemoveAnswer, AddNatPortFwd, RemoveNatPortFwd, AddDhcpMacToIp,
        RemoveDhcpMacToIp, AddBridgeMapping, RemoveBridgeMapping, AddNatPrefix,
        RemoveNatPrefix,
    )
}


def parser_by_command(command: str) -> Optional[Callable[[list[str]], _Command]]:
    """The parser for the operands of ``command``, or None if it is unknown."""
    return _PARSERS.get(command)


def parse_networking_config(rows: Iterable[list[str]]) -> Iterator[_Command]:
    """Parse command rows, logging and skipping those that cannot be parsed."""
    for row in rows:
        if not row:
            continue
        parser = parser_by_command(row[0])
        if parser is None:
            log.warning("invalid command : %s", _go_text(row))
            continue
        try:
            yield parser(row[1:])
        except ParseError as exc:
            log.warning("unable to parse command : %s %s", exc, _go_text(row))


# ----------------------------------------------------------------------------
# configuration


class NetworkingType(enum.IntEnum):
    HOSTONLY = 1
    NAT = 2
    BRIDGED = 3


_TYPE_NAMES = {
    NetworkingType.HOSTONLY: "hostonly",
    NetworkingType.NAT: "nat",
    NetworkingType.BRIDGED: "bridged",
}


@dataclass
class NetworkingConfig:
    """The state left after replaying every command of the file."""

    answer: dict[int, dict[str, str]] = field(default_factory=dict)
    nat_port_fwd: dict[int, dict[str, str]] = field(default_factory=dict)
    dhcp_mac_to_ip: dict[int, dict[str, _IPAddress]] = field(default_factory=dict)
    bridge_mapping: dict[str, int] = field(default_factory=dict)
    nat_prefix: dict[int, list[int]] = field(default_factory=dict)

    def describe(self) -> str:
        return (
            f"answer -> {_go_text(self.answer)}\n"
            f"nat_portfwd -> {_go_text(self.nat_port_fwd)}\n"
            f"dhcp_mac_to_ip -> {_go_text(self.dhcp_mac_to_ip)}\n"
            f"bridge_mapping -> {_go_text(self.bridge_mapping)}\n"
            f"nat_prefix -> {_go_text(self.nat_prefix)}"
        )

    def name_into_devices(self, name: str) -> list[str]:
        """The ``vmnetN`` devices of the network type called ``name``."""
        mapping = names_to_vmnet(self)
        lowered = name.lower()
        for kind, kind_name in _TYPE_NAMES.items():
            if lowered == kind_name and mapping.get(kind):
                return [f"{INTERFACE_PREFIX}{vmnet}" for vmnet in mapping[kind]]
        raise LookupError(f"error finding network name : {lowered}")

    def device_into_name(self, device: str) -> str:
        """The network type name of a ``vmnetN`` device; other names pass through."""
        lowered = device.lower()
        if not lowered.startswith(INTERFACE_PREFIX):
            return device
        suffix = lowered[len(INTERFACE_PREFIX):]
        vmnet = _atoi(suffix, f"invalid device number : {suffix}")
        kind = interface_types(self).get(vmnet)
        if kind is None:
            raise LookupError(
                f"unable to determine network type for device {INTERFACE_PREFIX}{vmnet}"
            )
        return _TYPE_NAMES[kind]


def _interface_exists(name: str) -> bool:
    try:
        socket.if_nametoindex(name)
    except (OSError, AttributeError):
        return False
    return True


def flatten_networking_config(entries: Iterable[_Command]) -> NetworkingConfig:
    """Replay commands in order and return the resulting configuration."""
    result = NetworkingConfig()
    for entry in entries:
        match entry:
            case Answer(vnet=vnet, value=value):
                result.answer.setdefault(vnet.number(), {})[vnet.option()] = value

            case RemoveAnswer(vnet=vnet):
                answers = result.answer.get(vnet.number())
                if answers is not None:
                    answers.pop(vnet.option(), None)
                else:
                    log.warning(
                        "unable to remove answer %s as specified by `remove_answer`",
                        vnet.describe(),
                    )

            case AddNatPortFwd():
                key = f"{entry.protocol}/{entry.port}"
                target = f"{entry.target_host}:{entry.target_port}"
                result.nat_port_fwd.setdefault(entry.vnet, {})[key] = target

            case RemoveNatPortFwd():
                key = f"{entry.protocol}/{entry.port}"
                forwards = result.nat_port_fwd.get(entry.vnet)
                if forwards is not None:
                    forwards.pop(key, None)
                else:
                    log.warning(
                        "unable to remove nat port-forward %s from interface %s%d "
                        "as requested by `remove_nat_portfwd`",
                        key, INTERFACE_PREFIX, entry.vnet,
                    )

            case AddDhcpMacToIp():
                result.dhcp_mac_to_ip.setdefault(entry.vnet, {})[_mac_text(entry.mac)] = entry.ip

            case RemoveDhcpMacToIp():
                macs = result.dhcp_mac_to_ip.get(entry.vnet)
                if macs is not None:
                    macs.pop(_mac_text(entry.mac), None)
                else:
                    log.warning(
                        "unable to remove dhcp_mac_to_ip entry %s from interface %s%d "
                        "as specified by `remove_dhcp_mac_to_ip`",
                        _mac_text(entry.mac), INTERFACE_PREFIX, entry.vnet,
                    )

            case AddBridgeMapping():
                if not _interface_exists(entry.interface):
                    log.info(
                        'interface "%s" as specified by `add_bridge_mapping` was not '
                        "found on the current platform; ignoring",
                        entry.interface,
                    )
                result.bridge_mapping[entry.interface] = entry.vnet

            case RemoveBridgeMapping():
                if not _interface_exists(entry.interface):
                    log.info(
                        'interface "%s" as specified by `remove_bridge_mapping` was not '
                        "found on the current platform; ignoring",
                        entry.interface,
                    )
                result.bridge_mapping.pop(entry.interface, None)

            case AddNatPrefix():
                result.nat_prefix.setdefault(entry.vnet, []).append(entry.prefix)

            case RemoveNatPrefix():
                prefixes = result.nat_prefix.get(entry.vnet)
                if prefixes is not None:
                    if entry.prefix in prefixes:
                        prefixes.remove(entry.prefix)
                else:
                    log.warning(
                        "unable to remove nat prefix /%d from interface %s%d "
                        "as specified by `remove_nat_prefix`",
                        entry.prefix, INTERFACE_PREFIX, entry.vnet,
                    )
    return result


def interface_types(config: NetworkingConfig) -> dict[int, NetworkingType]:
    """The network type of every known vmnet number."""
    result = {
        0: NetworkingType.BRIDGED,
        1: NetworkingType.HOSTONLY,
        8: NetworkingType.NAT,
    }
    for vmnet in config.bridge_mapping.values():
        result[vmnet] = NetworkingType.BRIDGED

    for vmnet, table in config.answer.items():
        if table.get("VIRTUAL_ADAPTER") == "yes":
            if "HOSTONLY_SUBNET" not in table or "HOSTONLY_NETMASK" not in table:
                log.info(
                    "Interface %s%d is missing some expected keys (HOSTONLY_SUBNET, "
                    "HOSTONLY_NETMASK). This is non-critical. Ignoring..",
                    INTERFACE_PREFIX, vmnet,
                )
            if table.get("NAT") == "yes":
                result[vmnet] = NetworkingType.NAT
            else:
                result[vmnet] = NetworkingType.HOSTONLY
        else:
            result[vmnet] = NetworkingType.BRIDGED
    return result


def names_to_vmnet(config: NetworkingConfig) -> dict[NetworkingType, list[int]]:
    """The sorted vmnet numbers of each network type."""
    result: dict[NetworkingType, list[int]] = {}
    types = interface_types(config)
    for vmnet in sorted(types):
        result.setdefault(types[vmnet], []).append(vmnet)
    return result


def read_networking_config(stream: Union[IO[str], str]) -> NetworkingConfig:
    """Parse a networking file from a text stream or a string.

    Only version 1.0 of the format is understood.
    """
    text = stream if isinstance(stream, str) else stream.read()
    rows = split_networking_config(tokenize_networking_config(text))
    version = read_version(next(rows, []))
    number = version.number()
    if number != 1.0:
        raise ParseError(
            f"expected version {1.0:f} of networking file but received version {number:f}"
        )
    return flatten_networking_config(parse_networking_config(rows))