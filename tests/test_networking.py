import io
import ipaddress

import pytest

from vmwnet.lexing import ParseError
from vmwnet.networking import (
    AddBridgeMapping,
    AddDhcpMacToIp,
    AddNatPortFwd,
    AddNatPrefix,
    Answer,
    NetworkingConfig,
    NetworkingType,
    NetworkingVersion,
    RemoveAnswer,
    RemoveDhcpMacToIp,
    RemoveNatPrefix,
    Vnet,
    flatten_networking_config,
    interface_types,
    names_to_vmnet,
    parse_networking_config,
    parser_by_command,
    read_networking_config,
    read_version,
)

SAMPLE = """VERSION=1,0
answer VNET_1_DHCP yes
answer VNET_1_DHCP_CFG_HASH 0123456789ABCDEF0123456789ABCDEF01234567
answer VNET_1_HOSTONLY_NETMASK 255.255.255.0
answer VNET_1_HOSTONLY_SUBNET 192.168.70.0
answer VNET_1_NAT no
answer VNET_1_VIRTUAL_ADAPTER yes
answer VNET_8_DHCP yes
answer VNET_8_DHCP_CFG_HASH FEDCBA9876543210FEDCBA9876543210FEDCBA98
answer VNET_8_HOSTONLY_NETMASK 255.255.255.0
answer VNET_8_HOSTONLY_SUBNET 172.16.41.0
answer VNET_8_NAT yes
answer VNET_8_VIRTUAL_ADAPTER yes
add_nat_portfwd 8 tcp 2200 172.16.41.129 3389
add_nat_portfwd 8 tcp 2201 172.16.41.129 3389
add_nat_portfwd 8 tcp 2222 172.16.41.129 22
add_nat_portfwd 8 tcp 3389 172.16.41.131 3389
add_nat_portfwd 8 tcp 55985 172.16.41.129 5985
add_nat_portfwd 8 tcp 55986 172.16.41.129 5986
"""


@pytest.fixture
def config():
    return read_networking_config(io.StringIO(SAMPLE))


def test_read_version_success():
    assert read_version(["VERSION=4,2"]).number() == pytest.approx(4.2)


@pytest.mark.parametrize("value", ["VERSION=1=2", "VERSION=3,4,5", "VERSION=a,b"])
def test_read_version_failure(value):
    with pytest.raises(ParseError):
        read_version([value])


def test_read_version_wrong_row_length():
    with pytest.raises(ParseError):
        read_version(["VERSION=1,0", "extra"])


def test_version_describe_and_number():
    assert NetworkingVersion("VERSION=1,0").describe() == "VERSION{1.000000}"
    assert NetworkingVersion("VERSION=1,25").number() == pytest.approx(1.25)
    assert NetworkingVersion("bogus").describe() == 'VERSION{INVALID="bogus"}'


def test_vnet_fields():
    vnet = Vnet("VNET_1_DHCP_CFG_HASH")
    assert vnet.valid()
    assert vnet.number() == 1
    assert vnet.option() == "DHCP_CFG_HASH"
    assert vnet.describe() == "VNET{1} DHCP_CFG_HASH"


def test_vnet_invalid():
    assert not Vnet("vnet_1_nat").valid()
    assert not Vnet("VNET_x_NAT").valid()
    assert Vnet("VNET_x_NAT").number() == -1
    assert Vnet("VNET_x_NAT").describe() == "VNET{INVALID=[VNET x NAT]}"


@pytest.mark.parametrize(
    "line",
    [
        "answer VNET_999_ANYTHING option",
        "remove_answer VNET_123_ALSOANYTHING",
        "add_nat_portfwd 24 udp 42 127.0.0.1 24",
        "remove_nat_portfwd 42 tcp 2502",
        "add_dhcp_mac_to_ip 57005 00:0d:0e:0a:0d:00 127.0.0.2",
        "remove_dhcp_mac_to_ip 57005 00:0d:0e:0a:0d:00",
        "add_bridge_mapping string 51",
        "remove_bridge_mapping string",
        "add_nat_prefix 57005 /24",
        "remove_nat_prefix 57005 /31",
    ],
)
def test_parse_entries(line):
    words = line.split(" ")
    parser = parser_by_command(words[0])
    assert parser is not None
    entry = parser(words[1:])
    assert entry.command == words[0]


def test_parsed_values():
    fwd = parser_by_command("add_nat_portfwd")(["24", "UDP", "42", "127.0.0.1", "24"])
    assert fwd == AddNatPortFwd(
        vnet=23, protocol="udp", port=42,
        target_host=ipaddress.ip_address("127.0.0.1"), target_port=24,
    )
    prefix = parser_by_command("add_nat_prefix")(["57005", "/24"])
    assert prefix == AddNatPrefix(vnet=57004, prefix=24)


def test_unknown_command_has_no_parser():
    assert parser_by_command("frobnicate") is None


@pytest.mark.parametrize(
    "command,row",
    [
        ("answer", ["VNET_1_NAT"]),
        ("answer", ["vnet_1_nat", "yes"]),
        ("add_nat_portfwd", ["1", "icmp", "2", "127.0.0.1", "3"]),
        ("add_nat_portfwd", ["x", "tcp", "2", "127.0.0.1", "3"]),
        ("add_nat_portfwd", ["1", "tcp", "2", "not-an-ip", "3"]),
        ("add_dhcp_mac_to_ip", ["1", "zz:zz", "127.0.0.1"]),
        ("add_nat_prefix", ["1", "24"]),
        ("remove_nat_prefix", ["1", "/x"]),
        ("add_bridge_mapping", ["en0", "y"]),
    ],
)
def test_parse_errors(command, row):
    with pytest.raises(ParseError):
        parser_by_command(command)(row)


def test_parse_networking_config_skips_bad_rows():
    rows = [["bogus"], ["answer", "VNET_1_NAT", "yes"], ["remove_answer"], []]
    entries = list(parse_networking_config(rows))
    assert entries == [Answer(vnet=Vnet("VNET_1_NAT"), value="yes")]


def test_read_networking_config_answers(config):
    assert config.answer[1] == {
        "DHCP": "yes",
        "DHCP_CFG_HASH": "0123456789ABCDEF0123456789ABCDEF01234567",
        "HOSTONLY_NETMASK": "255.255.255.0",
        "HOSTONLY_SUBNET": "192.168.70.0",
        "NAT": "no",
        "VIRTUAL_ADAPTER": "yes",
    }
    assert config.answer[8]["NAT"] == "yes"
    assert config.answer[8]["HOSTONLY_SUBNET"] == "172.16.41.0"


def test_read_networking_config_port_forwards(config):
    assert config.nat_port_fwd[7] == {
        "tcp/2200": "172.16.41.129:3389",
        "tcp/2201": "172.16.41.129:3389",
        "tcp/2222": "172.16.41.129:22",
        "tcp/3389": "172.16.41.131:3389",
        "tcp/55985": "172.16.41.129:5985",
        "tcp/55986": "172.16.41.129:5986",
    }


def test_read_networking_config_from_string():
    result = read_networking_config("VERSION=1,0\nadd_nat_prefix 2 /24\n")
    assert result.nat_prefix == {1: [24]}


def test_wrong_version_rejected():
    with pytest.raises(ParseError):
        read_networking_config("VERSION=2,0\nanswer VNET_1_NAT yes\n")


def test_empty_file_rejected():
    with pytest.raises(ParseError):
        read_networking_config("")


def test_interface_types(config):
    assert interface_types(config) == {
        0: NetworkingType.BRIDGED,
        1: NetworkingType.HOSTONLY,
        8: NetworkingType.NAT,
    }


def test_names_to_vmnet_sorted():
    cfg = flatten_networking_config([AddBridgeMapping(interface="en0", vnet=3)])
    assert names_to_vmnet(cfg)[NetworkingType.BRIDGED] == [0, 3]


def test_answer_without_virtual_adapter_is_bridged():
    cfg = NetworkingConfig(answer={4: {"NAT": "yes"}})
    assert interface_types(cfg)[4] == NetworkingType.BRIDGED


def test_name_into_devices(config):
    assert config.name_into_devices("NAT") == ["vmnet8"]
    assert config.name_into_devices("hostonly") == ["vmnet1"]
    assert config.name_into_devices("bridged") == ["vmnet0"]
    with pytest.raises(LookupError):
        config.name_into_devices("other")


def test_device_into_name(config):
    assert config.device_into_name("vmnet8") == "nat"
    assert config.device_into_name("VMnet1") == "hostonly"
    assert config.device_into_name("vmnet0") == "bridged"
    assert config.device_into_name("eth0") == "eth0"
    with pytest.raises(LookupError):
        config.device_into_name("vmnet5")
    with pytest.raises(ParseError):
        config.device_into_name("vmnetx")


def test_flatten_remove_answer():
    vnet = Vnet("VNET_2_NAT")
    cfg = flatten_networking_config(
        [Answer(vnet=vnet, value="yes"), RemoveAnswer(vnet=vnet), RemoveAnswer(Vnet("VNET_3_NAT"))]
    )
    assert cfg.answer == {2: {}}


def test_flatten_nat_prefix_removal():
    cfg = flatten_networking_config(
        [
            AddNatPrefix(vnet=1, prefix=24),
            AddNatPrefix(vnet=1, prefix=16),
            RemoveNatPrefix(vnet=1, prefix=24),
            RemoveNatPrefix(vnet=9, prefix=8),
        ]
    )
    assert cfg.nat_prefix == {1: [16]}


def test_flatten_dhcp_mac_to_ip():
    add = parser_by_command("add_dhcp_mac_to_ip")(["3", "00:0D:0E:0A:0D:00", "127.0.0.2"])
    cfg = flatten_networking_config([add])
    assert cfg.dhcp_mac_to_ip == {2: {"00:0d:0e:0a:0d:00": ipaddress.ip_address("127.0.0.2")}}
    remove = RemoveDhcpMacToIp(vnet=2, mac=bytes.fromhex("000d0e0a0d00"))
    cfg = flatten_networking_config([add, remove])
    assert cfg.dhcp_mac_to_ip == {2: {}}


def test_flatten_bridge_mapping_removal():
    cfg = flatten_networking_config(
        [
            parser_by_command("add_bridge_mapping")(["string", "51"]),
            parser_by_command("remove_bridge_mapping")(["string"]),
            parser_by_command("add_bridge_mapping")(["other", "4"]),
        ]
    )
    assert cfg.bridge_mapping == {"other": 3}


def test_describe():
    cfg = NetworkingConfig(answer={1: {"NAT": "no", "DHCP": "yes"}}, nat_prefix={0: [24, 16]})
    assert cfg.describe() == (
        "answer -> map[1:map[DHCP:yes NAT:no]]\n"
        "nat_portfwd -> map[]\n"
        "dhcp_mac_to_ip -> map[]\n"
        "bridge_mapping -> map[]\n"
        "nat_prefix -> map[0:[24 16]]"
    )