"""Declarations of a dhcpd.conf file and the settings each one inherits.

The token tree built by :func:`vmwnet.dhcp_params.parse_dhcp_config` is
turned into a tree of :class:`Declaration` nodes, one per block. Each node
is then flattened into a :class:`ConfigDeclaration` that holds every
setting in effect for it. Settings in a nested block override those of the
blocks around it.
"""

from __future__ import annotations

import enum
import ipaddress
import socket
from dataclasses import dataclass, field
from typing import IO, Iterator, Optional, Union

from vmwnet.dhcp_params import (
    Address4Parameter,
    Address6Parameter,
    BooleanParameter,
    ClientMatchParameter,
    ExpressionParameter,
    GrantParameter,
    HardwareParameter,
    OptionParameter,
    OtherParameter,
    TokenGroup,
    parse_dhcp_config,
    parse_parameter,
)
from vmwnet.lexing import ParseError, tokenize_dhcp_config, uncomment

__all__ = [
    "GlobalId",
    "SharedNetworkId",
    "Subnet4Id",
    "Subnet6Id",
    "HostId",
    "PoolId",
    "GroupId",
    "Declaration",
    "Grant",
    "ConfigDeclaration",
    "DhcpConfiguration",
    "parse_token_group",
    "flatten_dhcp_config",
    "create_declaration",
    "read_dhcp_configuration",
]

_IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
_MASK32 = (1 << 32) - 1
_MASK128 = (1 << 128) - 1


def _parse_ip(text: str) -> Optional[_IPAddress]:
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _coerce_ip(address: Union[str, _IPAddress]) -> Optional[_IPAddress]:
    if isinstance(address, str):
        return _parse_ip(address)
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _list_text(items) -> str:
    return "[" + " ".join(str(item) for item in items) + "]"


# ----------------------------------------------------------------------------
# declaration identifiers


@dataclass(frozen=True)
class GlobalId:
    """The implicit top-level block."""

    def describe(self) -> str:
        return "{global}"


@dataclass(frozen=True)
class SharedNetworkId:
    name: str

    def describe(self) -> str:
        return f"{{shared-network {self.name}}}"


@dataclass(frozen=True)
class Subnet4Id:
    """An IPv4 subnet given as an address and a netmask."""

    address: ipaddress.IPv4Address
    netmask: ipaddress.IPv4Address

    def _network_text(self) -> str:
        mask = int(self.netmask)
        ones = bin(mask).count("1")
        canonical = _MASK32 ^ ((1 << (32 - ones)) - 1)
        if mask == canonical:
            return f"{self.address}/{ones}"
        return f"{self.address}/{mask:08x}"

    def __contains__(self, address: Union[str, _IPAddress]) -> bool:
        candidate = _coerce_ip(address)
        if not isinstance(candidate, ipaddress.IPv4Address):
            return False
        mask = int(self.netmask)
        return int(candidate) & mask == int(self.address) & mask

    def describe(self) -> str:
        return f"{{subnet4 {self._network_text()}}}"


@dataclass(frozen=True)
class Subnet6Id:
    """An IPv6 subnet given as an address and a prefix length."""

    address: ipaddress.IPv6Address
    prefix: int

    def __contains__(self, address: Union[str, _IPAddress]) -> bool:
        candidate = _coerce_ip(address)
        if not isinstance(candidate, ipaddress.IPv6Address):
            return False
        mask = _MASK128 ^ ((1 << (128 - self.prefix)) - 1)
        return int(candidate) & mask == int(self.address) & mask

    def describe(self) -> str:
        return f"{{subnet6 {self.address}/{self.prefix}}}"


@dataclass(frozen=True)
class HostId:
    name: str

    def describe(self) -> str:
        return f"{{host name:{self.name}}}"


@dataclass(frozen=True)
class PoolId:
    def describe(self) -> str:
        return "{pool}"


@dataclass(frozen=True)
class GroupId:
    def describe(self) -> str:
        return "{group}"


_DeclarationId = Union[
    GlobalId, SharedNetworkId, Subnet4Id, Subnet6Id, HostId, PoolId, GroupId
]


@dataclass(eq=False)
class Declaration:
    """A block of the configuration with its typed parameters and children."""

    id: _DeclarationId
    parent: Optional["Declaration"] = field(default=None, repr=False)
    parameters: list = field(default_factory=list)
    declarations: list["Declaration"] = field(default_factory=list)

    def short(self) -> str:
        return self.id.describe()

    def describe(self) -> str:
        heading = self.short()
        if self.parent is not None:
            heading = f"{heading} parent:{self.parent.short()}"
        parameters = "\n".join(p.describe() for p in self.parameters)
        groups = "\n".join(f"-> {d.short()}" for d in self.declarations)
        return f"{heading}\n{parameters}\n{groups}\n"


def _parse_subnet4(params: list[str]) -> Subnet4Id:
    if len(params) != 3:
        raise ParseError("invalid number of parameters")
    if params[1].lower() != "netmask":
        raise ParseError("invalid parameters")

    octets = bytearray(4)
    for index, part in enumerate(params[2].split(".", 3)):
        if not part.isdigit() or not part.isascii() or int(part) > 255:
            raise ParseError(f"invalid octet {part!r}: not a value from 0 to 255")
        octets[index] = int(part)

    subnet = _parse_ip(params[0])
    if not isinstance(subnet, ipaddress.IPv4Address):
        raise ParseError("invalid parameters")
    return Subnet4Id(address=subnet, netmask=ipaddress.IPv4Address(bytes(octets)))


def _parse_subnet6(params: list[str]) -> Subnet6Id:
    if len(params) != 1:
        raise ParseError(f"invalid number of parameters: {_list_text(params)}")
    pieces = params[0].split("/", 1)
    if len(pieces) != 2 or ":" not in pieces[0]:
        raise ParseError("invalid parameters")
    address_text, prefix_text = pieces
    stripped = prefix_text.lstrip("+-")
    if not stripped.isdigit() or not stripped.isascii():
        raise ParseError(f"invalid prefix length : {prefix_text}")
    prefix = int(prefix_text)
    if not 0 <= prefix <= 128:
        raise ParseError(f"invalid prefix length : {prefix_text}")
    address = _parse_ip(address_text)
    if not isinstance(address, ipaddress.IPv6Address):
        raise ParseError(f"invalid ipv6 address : {address_text}")
    return Subnet6Id(address=address, prefix=prefix)


def parse_token_group(group: TokenGroup) -> Declaration:
    """Build the declaration a block heading describes, without its contents."""
    name, params = group.id.name, group.id.operand

    if name == "group":
        return Declaration(id=GroupId())
    if name == "pool":
        return Declaration(id=PoolId())
    if name == "host" and len(params) == 1:
        return Declaration(id=HostId(name=params[0]))
    if name == "subnet":
        return Declaration(id=_parse_subnet4(params))
    if name == "subnet6":
        return Declaration(id=_parse_subnet6(params))
    if name == "shared-network" and len(params) == 1:
        return Declaration(id=SharedNetworkId(name=params[0]))
    if name == "":
        return Declaration(id=GlobalId())
    raise ParseError(f"invalid pDeclaration : {name} : {_list_text(params)}")


def flatten_dhcp_config(root: TokenGroup) -> Declaration:
    """Convert a token tree into a tree of declarations with typed parameters."""
    result = parse_token_group(root)
    result.parameters.extend(parse_parameter(p) for p in root.params)
    for child in root.groups:
        declaration = flatten_dhcp_config(child)
        declaration.parent = result
        result.declarations.append(declaration)
    return result


# ----------------------------------------------------------------------------
# flattened settings


class Grant(enum.IntEnum):
    ALLOW = 0
    IGNORE = 1
    DENY = 2


_GRANTS = {"allow": Grant.ALLOW, "ignore": Grant.IGNORE, "deny": Grant.DENY}


def _map_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Grant):
        return str(int(value))
    return str(value)


def _map_text(mapping: dict) -> str:
    items = " ".join(f"{key}:{_map_value(mapping[key])}" for key in sorted(mapping))
    return f"map[{items}]"


@dataclass
class ConfigDeclaration:
    """Every setting in effect for one declaration, inherited ones included.

    ``id`` and ``composites`` list the declaration first and the global
    block last.
    """

    id: list = field(default_factory=list)
    composites: list[Declaration] = field(default_factory=list)
    address: list = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    grants: dict[str, Grant] = field(default_factory=dict)
    attributes: dict[str, bool] = field(default_factory=dict)
    parameters: dict[str, str] = field(default_factory=dict)
    expressions: dict[str, str] = field(default_factory=dict)
    hostid: list[ClientMatchParameter] = field(default_factory=list)

    def describe(self) -> str:
        lines = [",".join(i.describe() for i in self.id)]
        if self.address:
            lines.append(
                "address : " + ",".join(a.describe() for a in self.address)
            )
        if self.options:
            lines.append(f"options : {_map_text(self.options)}")
        if self.grants:
            lines.append(f"grants : {_map_text(self.grants)}")
        if self.attributes:
            lines.append(f"attributes : {_map_text(self.attributes)}")
        if self.parameters:
            lines.append(f"parameters : {_map_text(self.parameters)}")
        if self.expressions:
            lines.append(f"parameter-expressions : {_map_text(self.expressions)}")
        if self.hostid:
            lines.append("hostid : " + " ".join(h.describe() for h in self.hostid))
        return "\n".join(lines) + "\n"

    def _single_address(self, kind: type, label: str, family: int) -> _IPAddress:
        found = [a for entry in self.address if isinstance(entry, kind) for a in entry.addresses]
        if len(found) > 1:
            raise ParseError(f"more than one {label} address returned : {_list_text(found)}")
        if not found:
            raise LookupError(f"no {label.upper().replace('IPV', 'IPv')} address found")
        parsed = _parse_ip(found[0])
        if parsed is not None:
            return parsed
        infos = socket.getaddrinfo(found[0], None, family)
        return ipaddress.ip_address(infos[0][4][0])

    def ip4(self) -> _IPAddress:
        """The single fixed IPv4 address, resolving a host name if needed."""
        return self._single_address(Address4Parameter, "ipv4", socket.AF_INET)

    def ip6(self) -> _IPAddress:
        """The single fixed IPv6 address, resolving a host name if needed."""
        return self._single_address(Address6Parameter, "ipv6", socket.AF_INET6)

    def hardware(self) -> bytes:
        """The single hardware address of this declaration."""
        found = [a for a in self.address if isinstance(a, HardwareParameter)]
        if len(found) > 1:
            described = _list_text(h.describe() for h in found)
            raise ParseError(f"more than one hardware address returned : {described}")
        if not found:
            raise LookupError("no hardware address found")
        return found[0].address


def create_declaration(node: Declaration) -> ConfigDeclaration:
    """Collect the settings of ``node`` and of every block enclosing it."""
    hierarchy: list[Declaration] = []
    current: Optional[Declaration] = node
    while current is not None:
        hierarchy.append(current)
        current = current.parent

    result = ConfigDeclaration()
    for declaration in hierarchy:
        result.composites.append(declaration)
        result.id.append(declaration.id)

    for declaration in reversed(hierarchy):
        for param in declaration.parameters:
            if isinstance(param, OptionParameter):
                result.options[param.name] = param.value
            elif isinstance(param, GrantParameter):
                result.grants[param.attribute] = _GRANTS.get(param.verb, Grant.ALLOW)
            elif isinstance(param, BooleanParameter):
                result.attributes[param.parameter] = param.truth
            elif isinstance(param, ClientMatchParameter):
                result.hostid.append(param)
            elif isinstance(param, ExpressionParameter):
                result.expressions[param.parameter] = param.expression
            elif isinstance(param, OtherParameter):
                result.parameters[param.parameter] = param.value
            else:
                result.address.append(param)
    return result


class DhcpConfiguration(list):
    """The flattened declarations of a file, the global block first."""

    def global_declaration(self) -> ConfigDeclaration:
        if not self:
            raise LookupError("configuration holds no declarations")
        first = self[0]
        if len(first.id) != 1:
            raise ParseError(
                f"unexpected error : {_list_text(i.describe() for i in first.id)}"
            )
        return first

    def subnet_by_address(self, address: Union[str, _IPAddress]) -> ConfigDeclaration:
        """The one subnet declaration that contains ``address``."""
        found = [
            entry
            for entry in self
            if isinstance(entry.id[0], (Subnet4Id, Subnet6Id)) and address in entry.id[0]
        ]
        if not found:
            raise LookupError(f"no network declarations containing {address} found")
        if len(found) > 1:
            raise ParseError(f"more than one network declaration found : {len(found)}")
        return found[0]

    def host_by_name(self, host: str) -> ConfigDeclaration:
        """The one host declaration named ``host``, ignoring case."""
        wanted = host.casefold()
        found = [
            entry
            for entry in self
            if isinstance(entry.id[0], HostId) and entry.id[0].name.casefold() == wanted
        ]
        if not found:
            raise LookupError(f"no host declarations containing {host} found")
        if len(found) > 1:
            raise ParseError(f"more than one host declaration found : {len(found)}")
        return found[0]


def _walk(declaration: Declaration) -> Iterator[Declaration]:
    yield declaration
    for child in declaration.declarations:
        yield from _walk(child)


def read_dhcp_configuration(stream: Union[IO[str], str]) -> DhcpConfiguration:
    """Parse dhcpd.conf text from a text stream or a string."""
    text = stream if isinstance(stream, str) else stream.read()
    tree = parse_dhcp_config(tokenize_dhcp_config(uncomment(text)))
    root = flatten_dhcp_config(tree)
    return DhcpConfiguration(create_declaration(d) for d in _walk(root))