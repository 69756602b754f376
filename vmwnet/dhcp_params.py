"""Token trees and typed parameters for dhcpd.conf files.

The tokens produced by :func:`vmwnet.lexing.tokenize_dhcp_config` are first
assembled into a tree of :class:`TokenGroup` nodes, one per braced block.
Each statement inside a block is a :class:`TokenParameter`, which
:func:`parse_parameter` turns into one of the typed parameter classes below.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from vmwnet.lexing import ParseError

__all__ = [
    "TokenParameter",
    "TokenGroup",
    "IncludeParameter",
    "OptionParameter",
    "GrantParameter",
    "Address4Parameter",
    "Address6Parameter",
    "HardwareParameter",
    "BooleanParameter",
    "ClientMatchParameter",
    "Range4Parameter",
    "Range6Parameter",
    "Prefix6Parameter",
    "OtherParameter",
    "ExpressionParameter",
    "parse_token_parameter",
    "parse_dhcp_config",
    "parse_parameter",
]

_IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
_INTEGER = re.compile(r"[+-]?[0-9]+")
_HEX_OCTET = re.compile(r"[0-9a-fA-F]+")
_TERMINATORS = "{};"


def _atoi(text: str) -> Optional[int]:
    """Parse a plain decimal integer, returning None when it is not one."""
    if _INTEGER.fullmatch(text):
        return int(text)
    return None


def _parse_ip(text: str) -> Optional[_IPAddress]:
    """Parse an IPv4 or IPv6 address, returning None when it is invalid."""
    if "%" in text:
        return None
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _ip_text(address: Optional[_IPAddress]) -> str:
    return "<nil>" if address is None else str(address)


def _operands_text(operands: Iterable[str]) -> str:
    return "[" + " ".join(operands) + "]"


# ----------------------------------------------------------------------------
# token tree


@dataclass
class TokenParameter:
    """A statement: a name followed by its operands."""

    name: str = ""
    operand: list[str] = field(default_factory=list)

    def describe(self) -> str:
        return f"{self.name} [{','.join(self.operand)}]"


@dataclass
class TokenGroup:
    """A braced block: its heading, nested blocks and statements."""

    id: TokenParameter = field(default_factory=TokenParameter)
    parent: Optional["TokenGroup"] = field(default=None, repr=False, compare=False)
    groups: list["TokenGroup"] = field(default_factory=list)
    params: list[TokenParameter] = field(default_factory=list)

    def describe(self) -> str:
        heading = " ".join([self.id.name, *self.id.operand])
        body = "\n".join(param.describe() for param in self.params)
        return f"{heading} {{\n{body}\n}}"


def parse_token_parameter(tokens: Iterable[str]) -> TokenParameter:
    """Read one statement: a name, then operands up to a brace or semicolon."""
    result = TokenParameter()
    for token in tokens:
        if result.name == "":
            result.name = token
            continue
        if any(ch in _TERMINATORS for ch in token):
            break
        result.operand.append(token)
    return result


def _to_parameter(tokens: list[str]) -> TokenParameter:
    return parse_token_parameter([*tokens, ";"])


def parse_dhcp_config(tokens: Iterable[str]) -> TokenGroup:
    """Assemble dhcpd.conf tokens into a tree rooted at the global block.

    Tokens left over at the end of the input without a terminating
    semicolon are discarded.
    """
    root = TokenGroup()
    node = root
    pending: list[str] = []

    for token in tokens:
        if token == "{":
            group = TokenGroup(id=_to_parameter(pending), parent=node)
            node.groups.append(group)
            node = group
            pending = []
        elif token == "}":
            if node.parent is None:
                raise ParseError("refused to close the global declaration")
            if pending:
                raise ParseError(
                    f"list of tokens was left unterminated: {_operands_text(pending)}"
                )
            node = node.parent
            pending = []
        elif token == ";":
            node.params.append(_to_parameter(pending))
            pending = []
        else:
            pending.append(token)
    return root


# ----------------------------------------------------------------------------
# typed parameters


@dataclass(frozen=True)
class IncludeParameter:
    filename: str

    def describe(self) -> str:
        return f"include-file:filename={self.filename}"


@dataclass(frozen=True)
class OptionParameter:
    name: str
    value: str

    def describe(self) -> str:
        return f"option:{self.name}={self.value}"


@dataclass(frozen=True)
class GrantParameter:
    """An ``allow``, ``deny`` or ``ignore`` statement."""

    verb: str
    attribute: str

    def describe(self) -> str:
        return f"grant:{self.verb},{self.attribute}"


@dataclass(frozen=True)
class Address4Parameter:
    addresses: tuple[str, ...]

    def describe(self) -> str:
        return f"fixed-address4:{','.join(self.addresses)}"


@dataclass(frozen=True)
class Address6Parameter:
    addresses: tuple[str, ...]

    def describe(self) -> str:
        return f"fixed-address6:{','.join(self.addresses)}"


@dataclass(frozen=True)
class HardwareParameter:
    hardware_class: str
    address: bytes

    def describe(self) -> str:
        octets = ":".join(f"{b:02x}" for b in self.address)
        return f"hardware-address:{self.hardware_class}[{octets}]"


@dataclass(frozen=True)
class BooleanParameter:
    parameter: str
    truth: bool

    def describe(self) -> str:
        return f"boolean:{self.parameter}={str(self.truth).lower()}"


@dataclass(frozen=True)
class ClientMatchParameter:
    name: str
    data: str

    def describe(self) -> str:
        return f"match-client:{self.name}={self.data}"


@dataclass(frozen=True)
class Range4Parameter:
    min: Optional[_IPAddress]
    max: Optional[_IPAddress]

    def describe(self) -> str:
        return f"range4:{_ip_text(self.min)}-{_ip_text(self.max)}"


@dataclass(frozen=True)
class Range6Parameter:
    min: Optional[_IPAddress]
    max: Optional[_IPAddress]

    def describe(self) -> str:
        return f"range6:{_ip_text(self.min)}-{_ip_text(self.max)}"


@dataclass(frozen=True)
class Prefix6Parameter:
    min: Optional[_IPAddress]
    max: Optional[_IPAddress]
    bits: int

    def describe(self) -> str:
        return f"prefix6:/{self.bits}:{_ip_text(self.min)}-{_ip_text(self.max)}"


@dataclass(frozen=True)
class OtherParameter:
    parameter: str
    value: str

    def describe(self) -> str:
        return f"parameter:{self.parameter}={self.value}"


@dataclass(frozen=True)
class ExpressionParameter:
    parameter: str
    expression: str

    def describe(self) -> str:
        return f'parameter-expression:{self.parameter}="{self.expression}"'


_Parameter = Union[
    IncludeParameter,
    OptionParameter,
    GrantParameter,
    Address4Parameter,
    Address6Parameter,
    HardwareParameter,
    BooleanParameter,
    ClientMatchParameter,
    Range4Parameter,
    Range6Parameter,
    Prefix6Parameter,
    OtherParameter,
    ExpressionParameter,
]


def _count_error(kind: str, operands: list[str]) -> ParseError:
    return ParseError(
        f"invalid number of parameters for {kind} : {_operands_text(operands)}"
    )


def _parse_range4(ops: list[str]) -> Range4Parameter:
    if not ops:
        raise _count_error("pParameterRange4", ops)
    start = 1 if ops[0].lower() == "bootp" else 0
    if len(ops) > 2 + start:
        raise _count_error("pParameterRange", ops)
    addresses = ops[start:]
    if not addresses:
        raise _count_error("pParameterRange", ops)
    low = _parse_ip(addresses[0])
    high = _parse_ip(addresses[1]) if len(addresses) > 1 else low
    return Range4Parameter(min=low, max=high)


def _parse_range6(ops: list[str]) -> Range6Parameter:
    if len(ops) == 1:
        address = ops[0]
        if "/" in address:
            address_text, bits_text = address.split("/", 1)
            bits = _atoi(bits_text)
            if bits is None:
                raise ParseError(f"invalid prefix length : {bits_text}")
            try:
                network = ipaddress.ip_network(f"{address_text}/{bits}", strict=False)
            except ValueError as exc:
                raise ParseError(f"unknown ipv6 format : {address}") from exc
            if not isinstance(network, ipaddress.IPv6Network):
                raise ParseError(f"unknown ipv6 format : {address}")
            return Range6Parameter(
                min=network.network_address, max=network.broadcast_address
            )
        single = _parse_ip(address)
        return Range6Parameter(min=single, max=single)

    if len(ops) == 2:
        low = _parse_ip(ops[0])
        if ops[1].lower() == "temporary":
            return Range6Parameter(min=low, max=low)
        return Range6Parameter(min=low, max=_parse_ip(ops[1]))

    raise _count_error("pParameterRange6", ops)


def _parse_hardware(ops: list[str]) -> HardwareParameter:
    if len(ops) != 2:
        raise _count_error("pParameterHardware", ops)
    octets = ops[1].split(":")
    if len(octets) != 6:
        raise ParseError("invalid MAC address format")
    address = bytearray()
    for octet in octets:
        if not _HEX_OCTET.fullmatch(octet) or int(octet, 16) > 0xFF:
            raise ParseError(f"invalid hardware address octet : {octet}")
        address.append(int(octet, 16))
    return HardwareParameter(hardware_class=ops[0], address=bytes(address))


def parse_parameter(token: TokenParameter) -> _Parameter:
    """Interpret a statement according to its name."""
    name, ops = token.name, token.operand

    if name == "include":
        if len(ops) != 2:
            raise _count_error("pParameterInclude", ops)
        return IncludeParameter(filename=ops[0])

    if name == "option":
        if len(ops) != 2:
            raise _count_error("pParameterOption", ops)
        return OptionParameter(name=ops[0], value=ops[1])

    if name in ("allow", "deny", "ignore"):
        if not ops:
            raise _count_error("pParameterGrant", ops)
        return GrantParameter(verb=name.lower(), attribute=" ".join(ops))

    if name == "range":
        return _parse_range4(ops)

    if name == "range6":
        return _parse_range6(ops)

    if name == "prefix6":
        if len(ops) != 3:
            raise _count_error("pParameterRange6", ops)
        bits = _atoi(ops[2])
        if bits is None:
            raise ParseError(f"invalid bits for pParameterPrefix6 : {ops[2]}")
        return Prefix6Parameter(min=_parse_ip(ops[0]), max=_parse_ip(ops[1]), bits=bits)

    if name == "hardware":
        return _parse_hardware(ops)

    if name == "fixed-address":
        return Address4Parameter(addresses=tuple(ops))

    if name == "fixed-address6":
        return Address6Parameter(addresses=tuple(ops))

    if name == "host-identifier":
        if len(ops) != 3:
            raise _count_error("pParameterClientMatch", ops)
        if ops[0] != "option":
            raise ParseError(f"invalid match parameter : {ops[0]}")
        return ClientMatchParameter(name=ops[1], data=ops[2])

    if not ops:
        return BooleanParameter(parameter=name, truth=True)
    if len(ops) > 1 and ops[0] == "=":
        return ExpressionParameter(parameter=name, expression="".join(ops[1:]))
    if len(ops) != 1:
        raise _count_error("pParameterOther", ops)
    if name.lower() == "not":
        return BooleanParameter(parameter=ops[0], truth=False)
    return OtherParameter(parameter=name, value=ops[0])